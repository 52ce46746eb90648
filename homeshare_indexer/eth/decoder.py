"""Event log decoder.

Raw logs are matched on topic0 against the event entries of the contract ABI,
then indexed topics and the data blob are ABI-decoded into the typed records
of ``eth.events``. Anything that does not decode cleanly raises
``EventDecodeError``; the batch processor lets it propagate so a malformed
log stops the batch instead of being silently dropped.
"""

from typing import Any, Callable, Dict, Iterable, List, Mapping

from eth_abi import decode
from eth_abi.exceptions import DecodingError
from hexbytes import HexBytes
from web3 import Web3

from homeshare_indexer.eth.abi_loader import (
    CROWDFUND_CONTRACT,
    PROFIT_DISTRIBUTOR_CONTRACT,
    get_event_abis,
)
from homeshare_indexer.eth.events import (
    CampaignState,
    Claimed,
    ContractEvent,
    CrowdfundEvent,
    Deposited,
    EquityTokenSet,
    Finalized,
    Invested,
    ProfitEvent,
    Refunded,
    TokensClaimed,
    Withdrawn,
)
from homeshare_indexer.eth.topics import get_event_topic
from homeshare_indexer.log import get_logger

logger = get_logger(__name__)


class EventDecodeError(Exception):
    """Raised when a log cannot be decoded into a known event."""


Builder = Callable[[Dict[str, Any], Dict[str, Any]], ContractEvent]

_BUILDERS: Dict[str, Builder] = {
    "Invested": lambda base, args: Invested(
        **base, investor=args["investor"], amount_usdc=args["amountUSDC"]
    ),
    "Refunded": lambda base, args: Refunded(
        **base, investor=args["investor"], amount_usdc=args["amountUSDC"]
    ),
    "Finalized": lambda base, args: Finalized(
        **base,
        state=CampaignState.from_index(args["state"]),
        raised_amount_usdc=args["raisedAmountUSDC"],
    ),
    "Withdrawn": lambda base, args: Withdrawn(
        **base, recipient=args["recipient"], amount_usdc=args["amountUSDC"]
    ),
    "TokensClaimed": lambda base, args: TokensClaimed(
        **base, investor=args["investor"], amount_equity_tokens=args["amountEquityTokens"]
    ),
    "EquityTokenSet": lambda base, args: EquityTokenSet(
        **base, equity_token=args["equityToken"]
    ),
    "Deposited": lambda base, args: Deposited(
        **base, amount_usdc=args["amountUSDC"], acc_profit_per_share=args["accProfitPerShare"]
    ),
    "Claimed": lambda base, args: Claimed(
        **base, user=args["user"], amount_usdc=args["amountUSDC"]
    ),
}

# topic0 -> event ABI entry, per contract
_EVENT_TABLES: Dict[str, Dict[str, Dict[str, Any]]] = {}


def _event_table(contract_name: str) -> Dict[str, Dict[str, Any]]:
    if contract_name not in _EVENT_TABLES:
        _EVENT_TABLES[contract_name] = {
            get_event_topic(contract_name, entry["name"]): entry
            for entry in get_event_abis(contract_name)
        }
    return _EVENT_TABLES[contract_name]


def _to_hex(value: Any) -> str:
    return Web3.to_hex(HexBytes(value)).lower()


def _normalize(abi_type: str, value: Any) -> Any:
    if abi_type == "address":
        return value.lower()
    return value


def _decode_args(entry: Dict[str, Any], topics: List[HexBytes], data: bytes) -> Dict[str, Any]:
    inputs = entry.get("inputs", [])
    indexed = [inp for inp in inputs if inp.get("indexed")]
    plain = [inp for inp in inputs if not inp.get("indexed")]

    if len(topics) - 1 != len(indexed):
        raise EventDecodeError(
            f"{entry['name']} expects {len(indexed)} indexed topics, got {len(topics) - 1}"
        )

    args: Dict[str, Any] = {}
    for inp, topic in zip(indexed, topics[1:]):
        (value,) = decode([inp["type"]], bytes(topic))
        args[inp["name"]] = _normalize(inp["type"], value)

    values = decode([inp["type"] for inp in plain], data)
    for inp, value in zip(plain, values):
        args[inp["name"]] = _normalize(inp["type"], value)
    return args


def decode_event(log: Mapping[str, Any], contract_name: str) -> ContractEvent:
    """Decode a raw log into a typed event record.

    Args:
        log: Log receipt from get_logs (web3 AttributeDict or plain mapping)
        contract_name: ABI the log belongs to

    Returns:
        Typed event record

    Raises:
        EventDecodeError: If the topic is unknown or the payload does not decode
    """
    topics = [HexBytes(topic) for topic in log.get("topics") or []]
    if not topics:
        raise EventDecodeError("Log has no topics")

    topic0 = _to_hex(topics[0])
    entry = _event_table(contract_name).get(topic0)
    if entry is None:
        raise EventDecodeError(f"Topic {topic0} is not a {contract_name} event")

    try:
        args = _decode_args(entry, topics, bytes(HexBytes(log.get("data") or b"")))
        base = {
            "address": str(log["address"]).lower(),
            "tx_hash": _to_hex(log["transactionHash"]),
            "log_index": int(log["logIndex"]),
            "block_number": int(log["blockNumber"]),
        }
        return _BUILDERS[entry["name"]](base, args)
    except (DecodingError, KeyError, ValueError) as e:
        raise EventDecodeError(f"Failed to decode {entry['name']} log: {e}") from e


def decode_crowdfund_event(log: Mapping[str, Any]) -> CrowdfundEvent:
    """Decode a PropertyCrowdfund log."""
    return decode_event(log, CROWDFUND_CONTRACT)


def decode_profit_event(log: Mapping[str, Any]) -> ProfitEvent:
    """Decode a ProfitDistributor log."""
    return decode_event(log, PROFIT_DISTRIBUTOR_CONTRACT)


def sort_events(events: Iterable[ContractEvent]) -> List[ContractEvent]:
    """Order events canonically by (block_number, log_index)."""
    return sorted(events, key=lambda event: event.sort_key)

