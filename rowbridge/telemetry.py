"""Observability: redaction, structured call log, metric hooks, active-invocation monitor."""
from __future__ import annotations

import logging
import re
import threading
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from typing import Any

logger = logging.getLogger(__name__)

# Rows from forensic sources often carry credentials; previews mask them before logging.
_REDACTIONS: list[tuple[re.Pattern[str], str]] = [
    (
        re.compile(r'\b(password|passwd|pwd|secret|token|api_key)("?\s*[=:]\s*"?)[^\s",}]+', re.IGNORECASE),
        r"\1\2[REDACTED]",
    ),
    (re.compile(r"\bsk-[A-Za-z0-9]{20,}\b", re.IGNORECASE), "[KEY]"),
    (re.compile(r"\bAIza[A-Za-z0-9_-]{35}\b"), "[KEY]"),
    (re.compile(r"\bAKIA[0-9A-Z]{16}\b"), "[KEY]"),
    (re.compile(r"\bBearer\s+[A-Za-z0-9_.~+/-]+=*", re.IGNORECASE), "Bearer [TOKEN]"),
    (re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b"), "[EMAIL]"),
]
_PREVIEW_LIMIT = 160


def redact_preview(text: str) -> str:
    """Mask credentials, API keys and e-mail addresses in a rendered prompt, then cut it to a short preview."""
    if not text:
        return ""
    for pattern, replacement in _REDACTIONS:
        text = pattern.sub(replacement, text)
    if len(text) <= _PREVIEW_LIMIT:
        return text
    return text[:_PREVIEW_LIMIT] + "..."


def log_bridge_call(
    *,
    model: str,
    base_url: str,
    stream: bool,
    rows_input: int,
    tokens: int,
    latency_ms: int,
    status: str,
    error_code: str | None = None,
    prompt_preview: str | None = None,
) -> None:
    """Emit one structured log record per invocation. Never pass raw prompt text here."""
    extra: dict[str, Any] = {
        "model": model,
        "base_url": base_url,
        "stream": stream,
        "rows_input": rows_input,
        "tokens": tokens,
        "latency_ms": latency_ms,
        "status": status,
    }
    if error_code is not None:
        extra["error_code"] = error_code
    if prompt_preview is not None:
        extra["prompt_preview"] = prompt_preview
    logger.info("ollama_call", extra=extra)


# Metrics: debug-log hooks. Swap bodies for a registry when one is available.
def emit_request_metric(model: str, stream: bool, status: str) -> None:
    logger.debug("metric ollama_requests_total %s %s %s", model, stream, status)


def emit_latency_metric(model: str, latency_ms: float) -> None:
    logger.debug("metric ollama_latency_ms %s %s", model, latency_ms)


def emit_error_metric(model: str, code: str) -> None:
    logger.debug("metric ollama_errors %s %s", model, code)


_active_lock = threading.Lock()
_active: dict[str, int] = {}


def active_invocations(name: str | None = None) -> int:
    """Number of invocations currently inside monitor(); all plugins when name is None."""
    with _active_lock:
        if name is None:
            return sum(_active.values())
        return _active.get(name, 0)


@contextmanager
def monitor(name: str, args: Mapping[str, Any] | None = None) -> Iterator[None]:
    """Track one running invocation of plugin name for the duration of the block."""
    with _active_lock:
        _active[name] = _active.get(name, 0) + 1
    logger.debug("%s: started (options=%s)", name, sorted((args or {}).keys()))
    try:
        yield
    finally:
        with _active_lock:
            _active[name] -= 1
            if not _active[name]:
                del _active[name]
        logger.debug("%s: finished", name)
