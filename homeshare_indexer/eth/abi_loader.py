"""ABI file loader."""

import json
from pathlib import Path
from typing import Any, Dict, List

from homeshare_indexer.log import get_logger

logger = get_logger(__name__)

# ABI directory shipped as package data
ABI_DIR = Path(__file__).parent.parent / "abi"

CROWDFUND_CONTRACT = "PropertyCrowdfund"
PROFIT_DISTRIBUTOR_CONTRACT = "ProfitDistributor"
EQUITY_TOKEN_CONTRACT = "EquityToken"

_ABI_CACHE: Dict[str, List[Dict[str, Any]]] = {}


def load_abi(contract_name: str) -> List[Dict[str, Any]]:
    """Load ABI from JSON file.

    Args:
        contract_name: Contract name (e.g., "PropertyCrowdfund")

    Returns:
        ABI as list of dictionaries

    Raises:
        FileNotFoundError: If ABI file doesn't exist
        ValueError: If ABI file is invalid JSON
    """
    if contract_name in _ABI_CACHE:
        return _ABI_CACHE[contract_name]

    abi_path = ABI_DIR / f"{contract_name}.json"
    if not abi_path.exists():
        raise FileNotFoundError(f"ABI file not found: {abi_path.absolute()}")

    try:
        with open(abi_path, "r") as f:
            abi = json.load(f)
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid JSON in ABI file {abi_path}: {e}") from e

    if not isinstance(abi, list):
        raise ValueError(f"ABI must be a list, got {type(abi)}")

    logger.debug(f"Loaded ABI for {contract_name} ({len(abi)} entries)")
    _ABI_CACHE[contract_name] = abi
    return abi


def get_event_abis(contract_name: str) -> List[Dict[str, Any]]:
    """Return the event entries of a contract ABI."""
    return [entry for entry in load_abi(contract_name) if entry.get("type") == "event"]


def get_function_abi(contract_name: str, function_name: str) -> Dict[str, Any]:
    """Return the ABI entry of a named function.

    Raises:
        KeyError: If the contract ABI has no such function
    """
    for entry in load_abi(contract_name):
        if entry.get("type") == "function" and entry.get("name") == function_name:
            return entry
    raise KeyError(f"{contract_name} ABI has no function {function_name}")


def abi_signature(entry: Dict[str, Any]) -> str:
    """Canonical signature of an event or function entry, e.g. "Invested(address,uint256)"."""
    input_types = [inp["type"] for inp in entry.get("inputs", [])]
    return f"{entry['name']}({','.join(input_types)})"
