"""Error taxonomy for the bridge. Each maps to a stable code; every one ends up as an error row."""
from __future__ import annotations


class BridgeError(Exception):
    """Base for all bridge errors. code is stable for logs and metrics; details must not leak secrets."""

    def __init__(
        self,
        message: str,
        *,
        code: str = "UNKNOWN",
        details: str | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.details = details or ""


class ValidationError(BridgeError):
    """Invocation arguments are invalid (e.g. neither or both of input/query)."""

    def __init__(self, message: str = "invalid arguments", **kwargs: object) -> None:
        super().__init__(message, code="VALIDATION_ERROR", **kwargs)


class InvalidInputShape(BridgeError):
    """Input is not a mapping or a list of mappings."""

    def __init__(
        self,
        message: str = "input must be dict() or array(); use collect() for tables",
        **kwargs: object,
    ) -> None:
        super().__init__(message, code="INVALID_INPUT_SHAPE", **kwargs)


class EmptyResult(BridgeError):
    """Sub-query produced no rows."""

    def __init__(self, message: str = "query produced no rows", **kwargs: object) -> None:
        super().__init__(message, code="EMPTY_RESULT", **kwargs)


class TransportError(BridgeError):
    """Connection failed before any response bytes arrived (DNS, refused, timeout)."""

    def __init__(self, message: str = "HTTP error", **kwargs: object) -> None:
        super().__init__(message, code="TRANSPORT_ERROR", **kwargs)


class ResponseDecodeError(BridgeError):
    """Non-streaming response body could not be decoded."""

    def __init__(self, message: str = "parse JSON failed", **kwargs: object) -> None:
        super().__init__(message, code="RESPONSE_DECODE_ERROR", **kwargs)


class StreamDecodeError(BridgeError):
    """Malformed object or read failure in the middle of a streamed response."""

    def __init__(self, message: str = "decode stream failed", **kwargs: object) -> None:
        super().__init__(message, code="STREAM_DECODE_ERROR", **kwargs)


class RemoteModelError(BridgeError):
    """Service answered with a non-empty error field."""

    def __init__(self, message: str = "LLM error", **kwargs: object) -> None:
        super().__init__(message, code="REMOTE_MODEL_ERROR", **kwargs)


class Cancelled(BridgeError):
    """The invocation's cancellation token fired."""

    def __init__(self, message: str = "cancelled", **kwargs: object) -> None:
        super().__init__(message, code="CANCELLED", **kwargs)
