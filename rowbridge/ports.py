"""Port interfaces for the bridge. The bridge depends on these, not on the httpx client."""
from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Protocol, runtime_checkable

from rowbridge.cancel import CancelToken
from rowbridge.types import Envelope


@runtime_checkable
class GenerateClientPort(Protocol):
    """One generate request against an Ollama-compatible service."""

    async def generate(self, model: str, prompt: str, cancel: CancelToken) -> Envelope:
        """Non-streaming call. Raises BridgeError on failure."""
        ...

    def stream_generate(self, model: str, prompt: str, cancel: CancelToken) -> AsyncIterator[Envelope]:
        """Streaming call. Async generator of envelopes; caller must aclose() it."""
        ...
