"""Row normalization: caller-supplied values and lazy sub-queries become a list of plain records."""
from __future__ import annotations

import logging
from collections.abc import AsyncIterable, AsyncIterator, Iterable, Iterator, Mapping
from typing import Any

from pydantic import BaseModel

from rowbridge.cancel import CancelToken
from rowbridge.errors import EmptyResult, InvalidInputShape, ValidationError
from rowbridge.types import QuerySource, Record, ValueSource

logger = logging.getLogger(__name__)


def to_record(row: Any) -> Record | None:
    """Convert one mapping-like row to a plain dict, keeping key order. None if not mapping-like."""
    if isinstance(row, BaseModel):
        return row.model_dump()
    if isinstance(row, Mapping):
        return {str(k): v for k, v in row.items()}
    return None


def normalize_input(value: Any) -> list[Record]:
    """Normalize a mapping or a list of mappings. Any bad element fails the whole call."""
    single = to_record(value)
    if single is not None:
        return [single]
    if isinstance(value, (list, tuple)):
        out: list[Record] = []
        for i, item in enumerate(value):
            rec = to_record(item)
            if rec is None:
                raise InvalidInputShape(
                    "input array elements must be dict() or map",
                    details=f"element {i} is {type(item).__name__}",
                )
            out.append(rec)
        return out
    raise InvalidInputShape(details=f"got {type(value).__name__}")


def _open_query(query: Any) -> AsyncIterator[Any] | Iterator[Any]:
    """Start one evaluation of the sub-query. Callables are invoked so each call gets a fresh iterator."""
    if callable(query) and not isinstance(query, (AsyncIterable, Iterable)):
        query = query()
    if isinstance(query, AsyncIterable):
        return query.__aiter__()
    if isinstance(query, Iterable) and not isinstance(query, (str, bytes, Mapping)):
        return iter(query)
    raise ValidationError(
        "ollama: 'query' must be an iterable of rows",
        details=f"got {type(query).__name__}",
    )


async def _release(it: AsyncIterator[Any] | Iterator[Any]) -> None:
    aclose = getattr(it, "aclose", None)
    if aclose is not None:
        await aclose()
        return
    close = getattr(it, "close", None)
    if close is not None:
        close()


async def collect_query(query: Any, limit: int, cancel: CancelToken) -> list[Record]:
    """
    Pull rows from the sub-query until it is exhausted or limit rows are collected.
    Rows past the limit are never pulled. The iterator is released on every exit path.
    Raises EmptyResult when no rows were produced, Cancelled when the token fires.
    """
    if limit < 1:
        raise ValidationError(f"ollama: limit must be positive, got {limit}")
    it = _open_query(query)
    rows: list[Record] = []
    try:
        while len(rows) < limit:
            cancel.raise_if_cancelled()
            if isinstance(it, AsyncIterator):
                try:
                    row = await cancel.run(it.__anext__())
                except StopAsyncIteration:
                    break
            else:
                try:
                    row = next(it)
                except StopIteration:
                    break
            rec = to_record(row)
            if rec is None:
                raise InvalidInputShape(
                    "query rows must be dict() or map",
                    details=f"row {len(rows)} is {type(row).__name__}",
                )
            rows.append(rec)
    finally:
        await _release(it)
    if not rows:
        raise EmptyResult()
    logger.debug("collected %d rows from query (limit=%d)", len(rows), limit)
    return rows


async def collect_records(
    source: ValueSource | QuerySource,
    limit: int,
    cancel: CancelToken,
) -> list[Record]:
    """Dispatch on the tagged input source."""
    if isinstance(source, ValueSource):
        return normalize_input(source.value)
    return await collect_query(source.query, limit, cancel)
