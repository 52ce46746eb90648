"""Read-only contract calls used to bootstrap contract metadata."""

from dataclasses import dataclass
from typing import Any

from eth_abi import decode
from eth_abi.exceptions import DecodingError
from web3 import Web3
from web3.exceptions import ContractLogicError

from homeshare_indexer.eth.abi_loader import (
    CROWDFUND_CONTRACT,
    EQUITY_TOKEN_CONTRACT,
    PROFIT_DISTRIBUTOR_CONTRACT,
    abi_signature,
    get_function_abi,
)
from homeshare_indexer.eth.client import EthereumClient
from homeshare_indexer.eth.events import CampaignState
from homeshare_indexer.log import get_logger

logger = get_logger(__name__)


class ContractReadError(Exception):
    """Raised when a view call reverts or returns data that does not decode."""


@dataclass(frozen=True)
class CrowdfundMetadata:
    property_id: str
    target_amount_usdc: int
    start_time: int
    end_time: int
    state: CampaignState
    raised_amount_usdc: int


@dataclass(frozen=True)
class EquityTokenMetadata:
    total_supply: int
    admin: str
    property_id: str


@dataclass(frozen=True)
class ProfitDistributorMetadata:
    usdc_token: str
    equity_token: str


def function_selector(contract_name: str, function_name: str) -> bytes:
    """4-byte selector of a zero-argument view function."""
    entry = get_function_abi(contract_name, function_name)
    return bytes(Web3.keccak(text=abi_signature(entry))[:4])


class ContractReader:
    """Encodes view calls from the bundled ABIs and decodes their single return value."""

    def __init__(self, client: EthereumClient):
        self.client = client

    def read(self, contract_name: str, address: str, function_name: str) -> Any:
        """Call a zero-argument view function and decode its return value.

        Raises:
            ContractReadError: If the call reverts or the result does not decode.
                Any other error from the client (JSON-RPC error responses
                included) propagates unchanged.
        """
        entry = get_function_abi(contract_name, function_name)
        output_type = entry["outputs"][0]["type"]
        data = function_selector(contract_name, function_name)
        logger.debug(f"Reading {contract_name}.{function_name}() on {address}")

        try:
            result = self.client.call(address, data)
        except ContractLogicError as e:
            raise ContractReadError(f"{function_name}() on {address} reverted: {e}") from e

        try:
            (value,) = decode([output_type], bytes(result))
        except DecodingError as e:
            raise ContractReadError(f"{function_name}() on {address} returned bad data: {e}") from e

        if output_type == "address":
            return value.lower()
        return value

    def read_crowdfund(self, address: str) -> CrowdfundMetadata:
        """Read the immutable and current fields of a PropertyCrowdfund contract."""
        state_index = self.read(CROWDFUND_CONTRACT, address, "state")
        try:
            state = CampaignState.from_index(state_index)
        except ValueError as e:
            raise ContractReadError(f"state() on {address}: {e}") from e

        return CrowdfundMetadata(
            property_id=self.read(CROWDFUND_CONTRACT, address, "propertyId"),
            target_amount_usdc=self.read(CROWDFUND_CONTRACT, address, "targetAmountUSDC"),
            start_time=self.read(CROWDFUND_CONTRACT, address, "startTime"),
            end_time=self.read(CROWDFUND_CONTRACT, address, "endTime"),
            state=state,
            raised_amount_usdc=self.read(CROWDFUND_CONTRACT, address, "raisedAmountUSDC"),
        )

    def read_equity_token(self, address: str) -> EquityTokenMetadata:
        return EquityTokenMetadata(
            total_supply=self.read(EQUITY_TOKEN_CONTRACT, address, "totalSupply"),
            admin=self.read(EQUITY_TOKEN_CONTRACT, address, "admin"),
            property_id=self.read(EQUITY_TOKEN_CONTRACT, address, "propertyId"),
        )

    def read_profit_distributor(self, address: str) -> ProfitDistributorMetadata:
        return ProfitDistributorMetadata(
            usdc_token=self.read(PROFIT_DISTRIBUTOR_CONTRACT, address, "usdcToken"),
            equity_token=self.read(PROFIT_DISTRIBUTOR_CONTRACT, address, "equityToken"),
        )
