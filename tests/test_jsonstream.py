"""Incremental JSON stream decoding over chunked bytes."""
import pytest

from rowbridge.errors import StreamDecodeError
from rowbridge.jsonstream import JSONStreamDecoder


async def _chunks(*parts: bytes):
    for p in parts:
        yield p


async def _decode(*parts: bytes) -> list:
    return [obj async for obj in JSONStreamDecoder(_chunks(*parts))]


@pytest.mark.asyncio
async def test_newline_delimited_objects() -> None:
    out = await _decode(b'{"response":"a","done":false}\n{"response":"b","done":true}\n')
    assert out == [{"response": "a", "done": False}, {"response": "b", "done": True}]


@pytest.mark.asyncio
async def test_self_delimited_objects_without_separator() -> None:
    assert await _decode(b'{"a":1}{"a":2} {"a":3}') == [{"a": 1}, {"a": 2}, {"a": 3}]


@pytest.mark.asyncio
async def test_object_split_across_chunks() -> None:
    out = await _decode(b'{"respo', b'nse":"hel', b'lo"', b',"done":true}')
    assert out == [{"response": "hello", "done": True}]


@pytest.mark.asyncio
async def test_braces_and_escapes_inside_strings() -> None:
    out = await _decode(b'{"response":"} { \\" ]"}\n{"response":"\\\\"}')
    assert out == [{"response": '} { " ]'}, {"response": "\\"}]


@pytest.mark.asyncio
async def test_multibyte_utf8_split_between_chunks() -> None:
    data = '{"response":"héllo"}'.encode("utf-8")
    cut = data.index(b"\xc3") + 1
    assert await _decode(data[:cut], data[cut:]) == [{"response": "héllo"}]


@pytest.mark.asyncio
async def test_empty_and_whitespace_stream() -> None:
    assert await _decode() == []
    assert await _decode(b"  \n\n ") == []


@pytest.mark.asyncio
async def test_malformed_object_mid_stream_stops_after_good_ones() -> None:
    decoder = JSONStreamDecoder(_chunks(b'{"a":1}\n{"a":,}\n{"a":3}\n'))
    seen = []
    with pytest.raises(StreamDecodeError) as exc:
        async for obj in decoder:
            seen.append(obj)
    assert seen == [{"a": 1}]
    assert str(exc.value).startswith("decode stream:")
    with pytest.raises(StopAsyncIteration):
        await decoder.__anext__()


@pytest.mark.asyncio
async def test_truncated_object_at_end_of_stream() -> None:
    with pytest.raises(StreamDecodeError, match="unexpected end"):
        await _decode(b'{"a":1}\n{"a":')


@pytest.mark.asyncio
async def test_top_level_scalar_is_rejected() -> None:
    with pytest.raises(StreamDecodeError, match="invalid character"):
        await _decode(b"<html>bad gateway</html>")


@pytest.mark.asyncio
async def test_decoder_is_single_use() -> None:
    decoder = JSONStreamDecoder(_chunks(b"{}"))
    assert [o async for o in decoder] == [{}]
    with pytest.raises(RuntimeError):
        decoder.__aiter__()


@pytest.mark.asyncio
async def test_bytes_read_counts_consumed_input() -> None:
    decoder = JSONStreamDecoder(_chunks(b'{"a":1}', b"\n"))
    await decoder.__anext__()
    assert decoder.bytes_read == 7


@pytest.mark.asyncio
async def test_pretty_printed_value_split_after_newline() -> None:
    out = await _decode(b'{\n  "response": "a",\n', b'  "done": true\n}\n')
    assert out == [{"response": "a", "done": True}]


@pytest.mark.asyncio
async def test_truncated_string_at_end_of_stream() -> None:
    with pytest.raises(StreamDecodeError, match="unexpected end"):
        await _decode(b'{"response":"hel')


@pytest.mark.asyncio
async def test_malformed_last_value_reports_parse_error() -> None:
    with pytest.raises(StreamDecodeError) as exc:
        await _decode(b'{"a":1}{"a":,}')
    assert "unexpected end" not in str(exc.value)
    assert str(exc.value).startswith("decode stream: Expecting value")
