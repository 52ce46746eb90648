"""Typed event records decoded from PropertyCrowdfund and ProfitDistributor logs."""

from dataclasses import dataclass
from enum import Enum
from typing import Tuple, Union


class CampaignState(str, Enum):
    """Crowdfund lifecycle, in the order of the on-chain enum."""

    ACTIVE = "ACTIVE"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    WITHDRAWN = "WITHDRAWN"

    @classmethod
    def from_index(cls, index: int) -> "CampaignState":
        """Map the contract's uint8 state to a CampaignState.

        Raises:
            ValueError: If the index is not a known state
        """
        states = list(cls)
        if not isinstance(index, int) or index < 0 or index >= len(states):
            raise ValueError(f"Unknown campaign state index: {index}")
        return states[index]


@dataclass(frozen=True)
class ContractEvent:
    """Fields shared by every decoded log."""

    address: str
    tx_hash: str
    log_index: int
    block_number: int

    @property
    def sort_key(self) -> Tuple[int, int]:
        return (self.block_number, self.log_index)


@dataclass(frozen=True)
class Invested(ContractEvent):
    investor: str
    amount_usdc: int


@dataclass(frozen=True)
class Refunded(ContractEvent):
    investor: str
    amount_usdc: int


@dataclass(frozen=True)
class Finalized(ContractEvent):
    state: CampaignState
    raised_amount_usdc: int


@dataclass(frozen=True)
class Withdrawn(ContractEvent):
    recipient: str
    amount_usdc: int


@dataclass(frozen=True)
class TokensClaimed(ContractEvent):
    investor: str
    amount_equity_tokens: int


@dataclass(frozen=True)
class EquityTokenSet(ContractEvent):
    equity_token: str


@dataclass(frozen=True)
class Deposited(ContractEvent):
    amount_usdc: int
    acc_profit_per_share: int


@dataclass(frozen=True)
class Claimed(ContractEvent):
    user: str
    amount_usdc: int


CrowdfundEvent = Union[Invested, Refunded, Finalized, Withdrawn, TokensClaimed, EquityTokenSet]
ProfitEvent = Union[Deposited, Claimed]
