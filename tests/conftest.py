"""Pytest fixtures: settings for a fake Ollama host and httpx mock transports."""
import json
from typing import Any, Callable

import httpx
import pytest

from rowbridge.bridge import OllamaBridge
from rowbridge.settings import BridgeSettings

BASE_URL = "http://ollama.test"


def ndjson(*objs: dict[str, Any]) -> bytes:
    """Encode objects the way Ollama streams them: one JSON object per line."""
    return b"".join(json.dumps(o).encode("utf-8") + b"\n" for o in objs)


class RecordingHandler:
    """MockTransport handler that records every request and returns a canned response."""

    def __init__(self, respond: Callable[[httpx.Request], Any]) -> None:
        self._respond = respond
        self.requests: list[httpx.Request] = []

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self._respond(request)

    @property
    def bodies(self) -> list[dict[str, Any]]:
        return [json.loads(r.content) for r in self.requests]


@pytest.fixture
def settings() -> BridgeSettings:
    """Settings pointing at a fake host; small channel to exercise backpressure."""
    return BridgeSettings(base_url=BASE_URL, channel_capacity=2, timeout_s=5.0, connect_timeout_s=1.0)


@pytest.fixture
def make_bridge(settings: BridgeSettings) -> Callable[..., tuple[OllamaBridge, RecordingHandler]]:
    """Build a bridge whose HTTP calls go to respond(request) instead of the network."""

    def _make(respond: Callable[[httpx.Request], Any]) -> tuple[OllamaBridge, RecordingHandler]:
        handler = RecordingHandler(respond)
        bridge = OllamaBridge(settings, transport=httpx.MockTransport(handler))
        return bridge, handler

    return _make
