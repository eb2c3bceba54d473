"""
OllamaBridge: the public entrypoint. Validates options, collects rows, renders the prompt,
calls the model and writes result rows to a RowChannel from one producer task.
Every failure becomes exactly one error row; the channel is closed exactly once.
"""
from __future__ import annotations

import asyncio
import logging
import time
import types
import typing
from collections.abc import Mapping
from contextlib import aclosing
from dataclasses import dataclass
from typing import Any, Callable

import httpx
from pydantic import ValidationError as PydanticValidationError

from rowbridge.cancel import CancelToken
from rowbridge.channel import RowChannel
from rowbridge.client import OllamaGenerateClient
from rowbridge.errors import BridgeError, Cancelled, ValidationError
from rowbridge.ports import GenerateClientPort
from rowbridge.prompt import build_prompt
from rowbridge.rows import collect_records
from rowbridge.settings import BridgeSettings
from rowbridge.telemetry import (
    emit_error_metric,
    emit_latency_metric,
    emit_request_metric,
    log_bridge_call,
    monitor,
    redact_preview,
)
from rowbridge.types import (
    ArgInfo,
    BridgeArgs,
    ErrorRow,
    PluginInfo,
    Record,
    ResponseRow,
    TokenRow,
)

logger = logging.getLogger(__name__)

ClientFactory = Callable[[str], GenerateClientPort]


@dataclass
class _CallState:
    """Per-invocation facts gathered for the call log."""

    model: str
    base_url: str
    stream: bool = False
    rows_input: int = 0
    tokens: int = 0
    prompt_preview: str | None = None


def _type_name(annotation: Any) -> str:
    if annotation is Any:
        return "any"
    if isinstance(annotation, types.UnionType) or typing.get_origin(annotation) is typing.Union:
        args = [a for a in typing.get_args(annotation) if a is not type(None)]
        if len(args) == 1:
            return _type_name(args[0])
    return getattr(annotation, "__name__", str(annotation))


def _format_validation_error(e: PydanticValidationError) -> str:
    parts = []
    for err in e.errors():
        loc = ".".join(str(p) for p in err.get("loc", ())) or "args"
        parts.append(f"{loc}: {err.get('msg', 'invalid')}")
    return "; ".join(parts)


class OllamaBridge:
    """Bridges engine rows to an Ollama model. One instance may serve many concurrent calls."""

    name = "ollama"
    doc = "Send rows to an Ollama model and return the LLM response."

    def __init__(
        self,
        settings: BridgeSettings | None = None,
        *,
        client_factory: ClientFactory | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._settings = settings or BridgeSettings()
        self._transport = transport
        self._client_factory = client_factory or self._default_client

    def _default_client(self, base_url: str) -> GenerateClientPort:
        return OllamaGenerateClient(
            base_url,
            timeout_s=self._settings.timeout_s,
            connect_timeout_s=self._settings.connect_timeout_s,
            transport=self._transport,
        )

    def info(self) -> PluginInfo:
        """Describe the plugin and its options for the host engine."""
        return PluginInfo(
            name=self.name,
            doc=self.doc,
            args=[
                ArgInfo(
                    name=field_name,
                    type=_type_name(field.annotation),
                    doc=field.description or "",
                    required=field.is_required(),
                )
                for field_name, field in BridgeArgs.model_fields.items()
            ],
        )

    def call(
        self,
        args: Mapping[str, Any] | BridgeArgs,
        *,
        cancel: CancelToken | None = None,
    ) -> RowChannel:
        """
        Start one invocation and return its output channel. Must be called from a running loop.
        Iterate the channel with ``async for``; call ``aclose()`` on it (or cancel the token)
        to stop early.
        """
        token = cancel or CancelToken()
        channel = RowChannel(token, capacity=self._settings.channel_capacity)
        task = asyncio.get_running_loop().create_task(
            self._produce(args, channel, token),
            name=f"{self.name}-bridge",
        )
        channel.attach(task)
        return channel

    async def run(
        self,
        args: Mapping[str, Any] | BridgeArgs,
        *,
        cancel: CancelToken | None = None,
    ) -> list[Record]:
        """Run one invocation to completion and return every row it produced."""
        channel = self.call(args, cancel=cancel)
        return [row async for row in channel]

    def _parse_args(self, raw: Mapping[str, Any] | BridgeArgs) -> BridgeArgs:
        if isinstance(raw, BridgeArgs):
            return raw
        if not isinstance(raw, Mapping):
            raise ValidationError(f"ollama: options must be a mapping, got {type(raw).__name__}")
        try:
            return BridgeArgs.model_validate(dict(raw))
        except PydanticValidationError as e:
            raise ValidationError(f"ollama: {_format_validation_error(e)}") from e

    async def _produce(
        self,
        raw: Mapping[str, Any] | BridgeArgs,
        channel: RowChannel,
        cancel: CancelToken,
    ) -> None:
        state = _CallState(model=self._settings.default_model, base_url=self._settings.base_url)
        started = time.perf_counter()
        status = "SUCCEEDED"
        error_code: str | None = None
        try:
            with monitor(self.name, raw if isinstance(raw, Mapping) else None):
                try:
                    await self._invoke(raw, channel, cancel, state)
                except BridgeError as e:
                    status, error_code = "FAILED", e.code
                    if isinstance(e, Cancelled):
                        logger.info("ollama: invocation cancelled")
                    else:
                        logger.warning("ollama: %s", e)
                    await channel.send(ErrorRow(error=str(e)).as_row(), terminal=True)
                except Exception as e:  # noqa: BLE001
                    status, error_code = "FAILED", "UNKNOWN"
                    logger.exception("ollama: unexpected failure")
                    await channel.send(ErrorRow(error=f"ollama: {e}").as_row(), terminal=True)
        finally:
            channel.close()
            latency_ms = int((time.perf_counter() - started) * 1000)
            emit_request_metric(state.model, state.stream, status)
            emit_latency_metric(state.model, float(latency_ms))
            if error_code is not None:
                emit_error_metric(state.model, error_code)
            log_bridge_call(
                model=state.model,
                base_url=state.base_url,
                stream=state.stream,
                rows_input=state.rows_input,
                tokens=state.tokens,
                latency_ms=latency_ms,
                status=status,
                error_code=error_code,
                prompt_preview=state.prompt_preview,
            )

    async def _invoke(
        self,
        raw: Mapping[str, Any] | BridgeArgs,
        channel: RowChannel,
        cancel: CancelToken,
        state: _CallState,
    ) -> None:
        args = self._parse_args(raw)
        source = args.source()

        model = args.model or self._settings.default_model
        template = args.prompt or self._settings.default_prompt
        limit = args.limit or self._settings.default_limit
        base_url = args.base_url or self._settings.base_url
        state.model, state.base_url, state.stream = model, base_url, args.stream

        records = await collect_records(source, limit, cancel)
        state.rows_input = len(records)

        prompt = build_prompt(records, template)
        if self._settings.log_prompt_preview:
            state.prompt_preview = redact_preview(prompt)

        client = self._client_factory(base_url)
        if args.stream:
            async with aclosing(client.stream_generate(model, prompt, cancel)) as envelopes:
                async for env in envelopes:
                    row = TokenRow(token=env.response, done=env.done, model_used=model)
                    if not await channel.send(row.as_row()):
                        raise Cancelled()
                    state.tokens += 1
            return

        env = await client.generate(model, prompt, cancel)
        row = ResponseRow(llm_response=env.response, rows_input=len(records), model_used=model)
        if not await channel.send(row.as_row()):
            raise Cancelled()
