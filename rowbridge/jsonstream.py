"""Incremental decoder for a byte stream of concatenated JSON values (NDJSON or self-delimited)."""
from __future__ import annotations

import codecs
import json
import re
from collections.abc import AsyncIterable, AsyncIterator
from typing import Any

from rowbridge.errors import StreamDecodeError

_WHITESPACE = re.compile(r"\s*")


def _cut_short(e: json.JSONDecodeError, buf: str) -> bool:
    return e.pos >= len(buf.rstrip()) or e.msg.startswith("Unterminated string")


class JSONStreamDecoder:
    """
    Single-use async iterator yielding one decoded JSON object or array per value in the stream.

    Values may be separated by newlines, other whitespace, or nothing at all. Each value is
    parsed with ``JSONDecoder.raw_decode`` as soon as the buffer holds all of it; a partial
    value waits for the next chunk. A malformed value, a top-level scalar, or a value cut off
    by the end of the stream raises StreamDecodeError and ends the iteration.
    """

    def __init__(self, chunks: AsyncIterable[bytes]) -> None:
        self._chunks: AsyncIterator[bytes] = chunks.__aiter__()
        self._utf8 = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._json = json.JSONDecoder()
        self._buf = ""
        self._eof = False
        self._done = False
        self._iterating = False
        self.bytes_read = 0

    def __aiter__(self) -> JSONStreamDecoder:
        if self._iterating:
            raise RuntimeError("JSONStreamDecoder can only be iterated once")
        self._iterating = True
        return self

    async def __anext__(self) -> Any:
        if self._done:
            raise StopAsyncIteration
        try:
            while True:
                found, value = self._decode_next()
                if found:
                    return value
                if self._eof:
                    self._done = True
                    raise StopAsyncIteration
                try:
                    chunk = await self._chunks.__anext__()
                except StopAsyncIteration:
                    self._eof = True
                    self._buf += self._utf8.decode(b"", final=True)
                    continue
                self.bytes_read += len(chunk)
                self._buf += self._utf8.decode(chunk)
        except StreamDecodeError:
            self._done = True
            raise

    async def aclose(self) -> None:
        self._done = True
        aclose = getattr(self._chunks, "aclose", None)
        if aclose is not None:
            await aclose()

    def _decode_next(self) -> tuple[bool, Any]:
        """Return (True, value) for the next complete value, or (False, None) if more input is needed."""
        start = _WHITESPACE.match(self._buf).end()
        self._buf = self._buf[start:]
        if not self._buf:
            return False, None
        if self._buf[0] not in "{[":
            raise StreamDecodeError(
                f"decode stream: invalid character {self._buf[0]!r} looking for beginning of value",
                details=self._buf[:200],
            )
        try:
            value, end = self._json.raw_decode(self._buf)
        except json.JSONDecodeError as e:
            # A value cut short fails on its last token, and JSON tokens never span a raw
            # newline; a newline past the failure point means the value itself is bad.
            if not self._eof and "\n" not in self._buf[e.pos :]:
                return False, None
            if self._eof and _cut_short(e, self._buf):
                raise StreamDecodeError(
                    "decode stream: unexpected end of JSON input", details=self._buf[:200]
                ) from e
            raise StreamDecodeError(f"decode stream: {e}", details=self._buf[:200]) from e
        self._buf = self._buf[end:]
        return True, value
