"""Request validation for the read API.

Every function takes raw query/path values and either returns a normalized
value or raises ``ValidationError`` (HTTP 400).
"""

import re
from datetime import datetime, timezone
from typing import Any, Mapping, Optional, Tuple

from homeshare_indexer.config import ADDRESS_PATTERN

PROPERTY_ID_PATTERN = re.compile(r"^[a-zA-Z0-9\-_]{1,64}$")
DIGITS_PATTERN = re.compile(r"^[0-9]+$")

DEFAULT_LIMIT = 50
MAX_LIMIT = 200

# Largest value a BIGINT column can be compared against
MAX_CURSOR_VALUE = 2**63 - 1


class ApiError(Exception):
    """Error with an HTTP status and a message that is safe to show clients."""

    status = 500

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if status is not None:
            self.status = status


class ValidationError(ApiError):
    status = 400


class NotFoundError(ApiError):
    status = 404


def _first(query: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        value = query.get(key)
        if value is not None:
            return value
    return None


def normalize_address(value: Any, field: str = "address") -> str:
    """Validate a 0x-prefixed 20-byte hex address and lowercase it."""
    if not isinstance(value, str) or not ADDRESS_PATTERN.match(value):
        raise ValidationError(f"Invalid {field}")
    return value.lower()


def validate_property_id(value: Any) -> str:
    if not isinstance(value, str) or not PROPERTY_ID_PATTERN.match(value):
        raise ValidationError("Invalid propertyId")
    return value


def parse_limit(value: Any, default: int = DEFAULT_LIMIT, maximum: int = MAX_LIMIT) -> int:
    """Page size: default when absent, clamped to ``maximum``, positive integer otherwise."""
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        raise ValidationError("Invalid limit")
    if isinstance(value, int):
        parsed = value
    elif isinstance(value, str) and DIGITS_PATTERN.match(value.strip()):
        # Anything this long is clamped anyway
        text = value.strip().lstrip("0") or "0"
        parsed = maximum if len(text) > 6 else int(text)
    else:
        raise ValidationError("Invalid limit")
    if parsed <= 0:
        raise ValidationError("Invalid limit")
    return min(parsed, maximum)


def _parse_digits(value: Any, field: str) -> int:
    text = str(value)
    if not DIGITS_PATTERN.match(text):
        raise ValidationError(f"Invalid {field}")
    text = text.lstrip("0") or "0"
    if len(text) > len(str(MAX_CURSOR_VALUE)) or int(text) > MAX_CURSOR_VALUE:
        raise ValidationError(f"Invalid {field}")
    return int(text)


def parse_event_cursor(query: Mapping[str, Any]) -> Optional[Tuple[int, int]]:
    """(block_number, log_index) cursor, or None when no cursor was sent.

    Raises:
        ValidationError: If only one half is present or either half is not a
            non-negative integer no larger than MAX_CURSOR_VALUE
    """
    block_number = _first(query, "cursorBlockNumber", "blockNumber")
    log_index = _first(query, "cursorLogIndex", "logIndex")

    if block_number is None and log_index is None:
        return None
    if block_number is None or log_index is None:
        raise ValidationError(
            "Provide both cursorBlockNumber and cursorLogIndex (or blockNumber and logIndex)"
        )
    return (
        _parse_digits(block_number, "cursorBlockNumber"),
        _parse_digits(log_index, "cursorLogIndex"),
    )


def _parse_iso_datetime(value: Any) -> datetime:
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError as e:
        raise ValidationError("Invalid cursorStartTime") from e
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def parse_campaign_cursor(query: Mapping[str, Any]) -> Optional[Tuple[datetime, str]]:
    """(start_time, contract_address) cursor, or None when no cursor was sent."""
    start_time = _first(query, "cursorStartTime", "startTime")
    contract_address = _first(query, "cursorContractAddress", "contractAddress")

    if start_time is None and contract_address is None:
        return None
    if not start_time or not contract_address:
        raise ValidationError("Both cursorStartTime and cursorContractAddress are required")

    return (
        _parse_iso_datetime(start_time),
        normalize_address(contract_address, "cursorContractAddress"),
    )


def parse_property_cursor(query: Mapping[str, Any]) -> Optional[str]:
    property_id = _first(query, "cursorPropertyId", "propertyId")
    if not property_id:
        return None
    return validate_property_id(property_id)
