"""
rowbridge: send query-engine rows to an Ollama model and read the answer back as rows.
Public API: OllamaBridge, BridgeArgs, BridgeSettings, CancelToken, RowChannel and the error taxonomy.
"""
from rowbridge.bridge import OllamaBridge
from rowbridge.cancel import CancelToken
from rowbridge.channel import RowChannel
from rowbridge.client import OllamaGenerateClient
from rowbridge.errors import (
    BridgeError,
    Cancelled,
    EmptyResult,
    InvalidInputShape,
    RemoteModelError,
    ResponseDecodeError,
    StreamDecodeError,
    TransportError,
    ValidationError,
)
from rowbridge.settings import BridgeSettings
from rowbridge.types import BridgeArgs, Envelope, PluginInfo

__all__ = [
    "OllamaBridge",
    "OllamaGenerateClient",
    "BridgeArgs",
    "BridgeSettings",
    "CancelToken",
    "RowChannel",
    "Envelope",
    "PluginInfo",
    "BridgeError",
    "ValidationError",
    "InvalidInputShape",
    "EmptyResult",
    "TransportError",
    "ResponseDecodeError",
    "StreamDecodeError",
    "RemoteModelError",
    "Cancelled",
]
