"""Row normalization and sub-query collection (no network)."""
import asyncio
from collections import OrderedDict

import pytest
from pydantic import BaseModel

from rowbridge.cancel import CancelToken
from rowbridge.errors import Cancelled, EmptyResult, InvalidInputShape, ValidationError
from rowbridge.rows import collect_query, collect_records, normalize_input
from rowbridge.types import QuerySource, ValueSource


class ProcessRow(BaseModel):
    pid: int
    name: str


class CountingSource:
    """Sync row source that counts pulls and records close()."""

    def __init__(self, n: int) -> None:
        self._n = n
        self.pulled = 0
        self.closed = False

    def __iter__(self):
        return self

    def __next__(self):
        if self.pulled >= self._n:
            raise StopIteration
        self.pulled += 1
        return {"i": self.pulled}

    def close(self) -> None:
        self.closed = True


def test_single_mapping_becomes_one_record() -> None:
    assert normalize_input({"a": 1}) == [{"a": 1}]


def test_list_of_mappings_keeps_length_and_order() -> None:
    rows = normalize_input([{"a": 1}, OrderedDict(b=2), ProcessRow(pid=4, name="sshd")])
    assert rows == [{"a": 1}, {"b": 2}, {"pid": 4, "name": "sshd"}]


def test_empty_list_is_empty_record_list() -> None:
    assert normalize_input([]) == []


def test_non_mapping_element_fails_whole_call() -> None:
    with pytest.raises(InvalidInputShape) as exc:
        normalize_input([{"a": 1}, "oops"])
    assert exc.value.code == "INVALID_INPUT_SHAPE"
    assert "element 1" in exc.value.details


@pytest.mark.parametrize("value", ["text", 42, 3.5, None, b"bytes"])
def test_other_shapes_fail(value) -> None:
    with pytest.raises(InvalidInputShape) as exc:
        normalize_input(value)
    assert "dict() or array()" in str(exc.value)


def test_keys_are_stringified() -> None:
    assert normalize_input({1: "x"}) == [{"1": "x"}]


@pytest.mark.asyncio
async def test_collector_stops_at_limit_without_pulling_more() -> None:
    pulled = 0
    released = False

    async def rows():
        nonlocal pulled, released
        try:
            for i in range(10):
                pulled += 1
                yield {"i": i}
        finally:
            released = True

    out = await collect_query(rows(), 3, CancelToken())
    assert [r["i"] for r in out] == [0, 1, 2]
    assert pulled == 3
    assert released is True


@pytest.mark.asyncio
async def test_collector_sync_source_respects_limit_and_is_closed() -> None:
    src = CountingSource(50)
    out = await collect_query(src, 5, CancelToken())
    assert len(out) == 5
    assert src.pulled == 5
    assert src.closed is True


@pytest.mark.asyncio
async def test_collector_exhausted_before_limit() -> None:
    out = await collect_query([{"a": 1}, {"a": 2}], 100, CancelToken())
    assert out == [{"a": 1}, {"a": 2}]


@pytest.mark.asyncio
async def test_collector_callable_source_is_evaluated_per_call() -> None:
    calls = 0

    def query():
        nonlocal calls
        calls += 1
        return iter([{"n": calls}])

    first = await collect_query(query, 10, CancelToken())
    second = await collect_query(query, 10, CancelToken())
    assert first == [{"n": 1}]
    assert second == [{"n": 2}]


@pytest.mark.asyncio
async def test_collector_empty_query_raises_empty_result() -> None:
    async def rows():
        return
        yield  # pragma: no cover

    with pytest.raises(EmptyResult) as exc:
        await collect_query(rows(), 10, CancelToken())
    assert str(exc.value) == "query produced no rows"


@pytest.mark.asyncio
async def test_collector_rejects_non_mapping_rows() -> None:
    with pytest.raises(InvalidInputShape):
        await collect_query([{"a": 1}, ["not", "a", "row"]], 10, CancelToken())


@pytest.mark.asyncio
async def test_collector_rejects_non_iterable_query() -> None:
    with pytest.raises(ValidationError):
        await collect_query(12, 10, CancelToken())


@pytest.mark.asyncio
async def test_collector_cancelled_mid_pull_releases_source() -> None:
    released = False

    async def rows():
        nonlocal released
        try:
            yield {"a": 1}
            await asyncio.sleep(3600)
            yield {"a": 2}  # pragma: no cover
        finally:
            released = True

    cancel = CancelToken()
    cancel.cancel_after(0.05)
    with pytest.raises(Cancelled):
        await asyncio.wait_for(collect_query(rows(), 10, cancel), timeout=2.0)
    assert released is True


@pytest.mark.asyncio
async def test_collector_already_cancelled_pulls_nothing() -> None:
    src = CountingSource(5)
    cancel = CancelToken()
    cancel.cancel()
    with pytest.raises(Cancelled):
        await collect_query(src, 5, cancel)
    assert src.pulled == 0
    assert src.closed is True


@pytest.mark.asyncio
async def test_collect_records_dispatches_on_source_kind() -> None:
    cancel = CancelToken()
    assert await collect_records(ValueSource(value={"a": 1}), 1, cancel) == [{"a": 1}]
    assert await collect_records(QuerySource(query=[{"b": 2}, {"b": 3}]), 1, cancel) == [{"b": 2}]
