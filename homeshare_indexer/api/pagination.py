"""Keyset (cursor) pagination over ascending sort keys."""

from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Sequence, Tuple

from sqlalchemy import literal, tuple_
from sqlalchemy.orm import Query


@dataclass
class Page:
    items: List[Any]
    next_cursor: Optional[Tuple[Any, ...]]


def after_cursor(columns: Sequence[Any], cursor: Tuple[Any, ...]):
    """Strict ``(columns) > (cursor)`` row comparison."""
    if len(columns) != len(cursor):
        raise ValueError("cursor does not match sort key")
    if len(columns) == 1:
        return columns[0] > literal(cursor[0], type_=columns[0].type)
    return tuple_(*columns) > tuple_(
        *(literal(value, type_=column.type) for column, value in zip(columns, cursor))
    )


def paginate(
    query: Query,
    sort_columns: Sequence[Any],
    cursor: Optional[Tuple[Any, ...]],
    limit: int,
    key: Callable[[Any], Tuple[Any, ...]],
) -> Page:
    """Fetch one page of ``query`` ordered by ``sort_columns``.

    Args:
        query: Filtered query, without ordering or limit
        sort_columns: Columns forming a unique ascending sort key
        cursor: Sort key of the last item already seen, or None for the first page
        limit: Page size
        key: Extracts the sort key from a result row

    Returns:
        Page whose next_cursor is the key of its last item when more rows exist
    """
    if cursor is not None:
        query = query.filter(after_cursor(sort_columns, cursor))
    rows = query.order_by(*(column.asc() for column in sort_columns)).limit(limit + 1).all()

    items = rows[:limit]
    next_cursor = key(items[-1]) if len(rows) > limit else None
    return Page(items=items, next_cursor=next_cursor)
