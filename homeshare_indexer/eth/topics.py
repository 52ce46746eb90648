"""Event topic hash computation."""

from typing import Dict, List

from web3 import Web3

from homeshare_indexer.eth.abi_loader import (
    CROWDFUND_CONTRACT,
    PROFIT_DISTRIBUTOR_CONTRACT,
    abi_signature,
    get_event_abis,
)

CROWDFUND_EVENTS = (
    "Invested",
    "Refunded",
    "Finalized",
    "Withdrawn",
    "TokensClaimed",
    "EquityTokenSet",
)
PROFIT_EVENTS = ("Deposited", "Claimed")

# Cache topic hashes per (contract, event)
_TOPIC_CACHE: Dict[str, str] = {}


def compute_topic(event_signature: str) -> str:
    """Compute keccak256 hash of event signature.

    Args:
        event_signature: Event signature (e.g., "Invested(address,uint256)")

    Returns:
        Topic hash (0x-prefixed lowercase hex string)
    """
    return Web3.to_hex(Web3.keccak(text=event_signature))


def get_event_topic(contract_name: str, event_name: str) -> str:
    """Get the topic0 hash of an event declared in a contract ABI.

    Raises:
        KeyError: If the event is not part of the ABI
    """
    key = f"{contract_name}.{event_name}"
    if key not in _TOPIC_CACHE:
        for entry in get_event_abis(contract_name):
            if entry["name"] == event_name:
                _TOPIC_CACHE[key] = compute_topic(abi_signature(entry))
                break
        else:
            raise KeyError(f"{contract_name} ABI has no event {event_name}")
    return _TOPIC_CACHE[key]


def get_crowdfund_topics() -> List[str]:
    """Get all PropertyCrowdfund event topic hashes."""
    return [get_event_topic(CROWDFUND_CONTRACT, name) for name in CROWDFUND_EVENTS]


def get_profit_topics() -> List[str]:
    """Get all ProfitDistributor event topic hashes."""
    return [get_event_topic(PROFIT_DISTRIBUTOR_CONTRACT, name) for name in PROFIT_EVENTS]
