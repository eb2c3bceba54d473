"""
Ollama generate client: POST to /api/generate, one request per call, never retried.
Exception mapping (httpx / decode -> BridgeError):
  - httpx.HTTPError / InvalidURL before a response arrives -> TransportError
  - undecodable non-streaming body -> ResponseDecodeError (RemoteModelError on HTTP >= 400)
  - malformed object or read failure mid-stream -> StreamDecodeError
  - non-empty "error" field -> RemoteModelError
"""
from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import httpx
from pydantic import ValidationError as PydanticValidationError

from rowbridge.cancel import CancelToken
from rowbridge.errors import (
    RemoteModelError,
    ResponseDecodeError,
    StreamDecodeError,
    TransportError,
)
from rowbridge.jsonstream import JSONStreamDecoder
from rowbridge.types import Envelope

logger = logging.getLogger(__name__)

_ERROR_BODY_PREVIEW = 200


def _remote_error(env: Envelope | None, status_code: int) -> RemoteModelError | None:
    if env is not None and env.error:
        return RemoteModelError(f"LLM error: {env.error}", details=f"status={status_code}")
    if status_code >= 400:
        return RemoteModelError(f"LLM error: HTTP {status_code}", details=f"status={status_code}")
    return None


class OllamaGenerateClient:
    """Async client for one Ollama /api/generate call per invocation. Owns its own connection."""

    def __init__(
        self,
        base_url: str,
        *,
        timeout_s: float = 300.0,
        connect_timeout_s: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base = base_url.rstrip("/")
        self._timeout = httpx.Timeout(timeout_s, connect=connect_timeout_s)
        self._transport = transport

    @property
    def url(self) -> str:
        return f"{self._base}/api/generate"

    @asynccontextmanager
    async def _open(
        self,
        model: str,
        prompt: str,
        stream: bool,
        cancel: CancelToken,
    ) -> AsyncIterator[httpx.Response]:
        """Send the request and yield the response with headers read. The body is always closed on exit."""
        payload: dict[str, Any] = {
            "model": model,
            "prompt": prompt,
            "stream": stream,
        }
        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            try:
                request = client.build_request(
                    "POST",
                    self.url,
                    json=payload,
                    headers={"Content-Type": "application/json"},
                )
                response = await cancel.run(client.send(request, stream=True))
            except (httpx.HTTPError, httpx.InvalidURL) as e:
                raise TransportError(f"HTTP error: {e}", details=type(e).__name__) from e
            logger.debug("POST %s model=%s stream=%s -> %s", self.url, model, stream, response.status_code)
            try:
                yield response
            finally:
                await response.aclose()

    async def generate(self, model: str, prompt: str, cancel: CancelToken) -> Envelope:
        """Non-streaming call: read the whole body and decode one envelope."""
        async with self._open(model, prompt, False, cancel) as response:
            try:
                body = await cancel.run(response.aread())
            except httpx.HTTPError as e:
                raise TransportError(f"HTTP error: {e}", details=type(e).__name__) from e
            status_code = response.status_code
        try:
            env = Envelope.model_validate(json.loads(body))
        except (ValueError, PydanticValidationError) as e:
            if status_code >= 400:
                preview = body[:_ERROR_BODY_PREVIEW].decode("utf-8", errors="replace")
                raise RemoteModelError(f"LLM error: HTTP {status_code}: {preview}") from e
            raise ResponseDecodeError(f"parse JSON: {e}", details=type(e).__name__) from e
        err = _remote_error(env, status_code)
        if err is not None:
            raise err
        return env

    async def stream_generate(
        self,
        model: str,
        prompt: str,
        cancel: CancelToken,
    ) -> AsyncIterator[Envelope]:
        """
        Streaming call: lazily yield envelopes in receipt order. Stops after the first
        done=true envelope or at end of stream. Close with aclose() (or contextlib.aclosing)
        when abandoning early so the response is released.
        """
        async with self._open(model, prompt, True, cancel) as response:
            if response.status_code >= 400:
                try:
                    body = await cancel.run(response.aread())
                except httpx.HTTPError as e:
                    raise TransportError(f"HTTP error: {e}", details=type(e).__name__) from e
                try:
                    failed: Envelope | None = Envelope.model_validate(json.loads(body))
                except (ValueError, PydanticValidationError):
                    failed = None
                raise _remote_error(failed, response.status_code) or RemoteModelError()

            decoder = JSONStreamDecoder(response.aiter_bytes())
            chunks = decoder.__aiter__()
            try:
                while True:
                    try:
                        obj = await cancel.run(chunks.__anext__())
                    except StopAsyncIteration:
                        return
                    except httpx.HTTPError as e:
                        if decoder.bytes_read == 0:
                            raise TransportError(f"HTTP error: {e}", details=type(e).__name__) from e
                        raise StreamDecodeError(f"decode stream: {e}", details=type(e).__name__) from e
                    try:
                        env = Envelope.model_validate(obj)
                    except PydanticValidationError as e:
                        raise StreamDecodeError(f"decode stream: {e}", details="envelope") from e
                    if env.error:
                        raise RemoteModelError(f"LLM error: {env.error}")
                    yield env
                    if env.done:
                        return
            finally:
                await decoder.aclose()
