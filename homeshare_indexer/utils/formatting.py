"""Utility functions for formatting on-chain values."""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

# USDC has 6 decimals
USDC_DECIMALS = 6
USDC_UNIT = Decimal(10) ** USDC_DECIMALS


def base_units_to_str(value: Optional[int]) -> Optional[str]:
    """Serialize a base-unit integer as a decimal string (never a float)."""
    if value is None:
        return None
    return str(int(value))


def usdc_to_decimal(base_units: Optional[int]) -> Decimal:
    """Convert USDC base units to a whole-token Decimal.

    Args:
        base_units: Amount in micro-USDC

    Returns:
        Decimal amount in USDC
    """
    if base_units is None:
        return Decimal("0")
    return Decimal(int(base_units)) / USDC_UNIT


def progress_percent(raised: Optional[int], target: Optional[int]) -> str:
    """Raised / target as a percentage string with two decimals."""
    if not target:
        return "0.00"
    percent = Decimal(int(raised or 0)) * 100 / Decimal(int(target))
    return str(percent.quantize(Decimal("0.01")))


def timestamp_to_datetime(ts: Optional[int]) -> Optional[datetime]:
    """Convert a Unix timestamp to a naive UTC datetime.

    Args:
        ts: Unix timestamp (seconds since epoch)

    Returns:
        datetime object or None if ts is None
    """
    if ts is None:
        return None
    return datetime.fromtimestamp(int(ts), tz=timezone.utc).replace(tzinfo=None)


def datetime_to_iso(value: Optional[datetime]) -> Optional[str]:
    """ISO-8601 string with a Z suffix; naive datetimes are taken as UTC."""
    if value is None:
        return None
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value.isoformat(timespec="milliseconds") + "Z"


def format_address(address: Optional[str]) -> Optional[str]:
    """Normalize an Ethereum address to lowercase."""
    return address.lower() if address else None
