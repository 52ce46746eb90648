"""Read API query layer over the indexed tables."""

from homeshare_indexer.api.queries import ReadService, handle_api_call
from homeshare_indexer.api.validators import ApiError, NotFoundError, ValidationError

__all__ = [
    "ReadService",
    "handle_api_call",
    "ApiError",
    "NotFoundError",
    "ValidationError",
]
