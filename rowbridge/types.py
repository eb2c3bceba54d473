"""Typed argument, envelope and output-row models for the bridge (Pydantic v2)."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from rowbridge.errors import ValidationError

PLACEHOLDER = "%INPUT%"

Record = dict[str, Any]


class BridgeArgs(BaseModel):
    """Named options of one invocation. Unset options are filled from settings by the bridge."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    input: Any = Field(
        default=None,
        description="Either a row-dict or list of row-dicts (use array() / collect()).",
    )
    query: Any = Field(
        default=None,
        description="Run this sub-query and send its rows to the model.",
    )
    model: str | None = Field(
        default=None,
        description="Ollama model name (default qwen2.5:latest).",
    )
    prompt: str | None = Field(
        default=None,
        description=f"Prompt template where {PLACEHOLDER} is substituted.",
    )
    limit: int | None = Field(
        default=None,
        ge=0,
        description="Maximum rows to consume from query (default 100).",
    )
    base_url: str | None = Field(
        default=None,
        description="Override OLLAMA_BASEURL env / default http://localhost:11434.",
    )
    stream: bool = Field(
        default=False,
        description="Return streaming tokens as they arrive (TRUE = one row per token).",
    )

    @field_validator("model", "prompt", "base_url", mode="before")
    @classmethod
    def _blank_is_unset(cls, v: Any) -> Any:
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @field_validator("limit", mode="after")
    @classmethod
    def _zero_is_unset(cls, v: int | None) -> int | None:
        return v or None

    def source(self) -> InputSource:
        """Return the tagged input source. Exactly one of input/query must be set."""
        has_input = self.input is not None
        has_query = self.query is not None
        if not has_input and not has_query:
            raise ValidationError("ollama: either 'input' or 'query' must be supplied")
        if has_input and has_query:
            raise ValidationError("ollama: only one of 'input' or 'query' may be supplied")
        if has_input:
            return ValueSource(value=self.input)
        return QuerySource(query=self.query)


@dataclass(frozen=True)
class ValueSource:
    """Pre-materialized input value (mapping or list of mappings)."""

    value: Any
    kind: Literal["value"] = "value"


@dataclass(frozen=True)
class QuerySource:
    """Lazy row source: async/sync iterable, or a callable returning one."""

    query: Any
    kind: Literal["query"] = "query"


InputSource = Union[ValueSource, QuerySource]


class Envelope(BaseModel):
    """One decoded object of the /api/generate response protocol."""

    model_config = ConfigDict(extra="ignore")

    response: str = ""
    done: bool = False
    error: str | None = None

    @field_validator("response", mode="before")
    @classmethod
    def _null_response(cls, v: Any) -> Any:
        return "" if v is None else v


class ErrorRow(BaseModel):
    error: str

    def as_row(self) -> Record:
        return self.model_dump()


class ResponseRow(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    llm_response: str
    rows_input: int
    model_used: str

    def as_row(self) -> Record:
        return self.model_dump()


class TokenRow(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    token: str
    done: bool
    model_used: str

    def as_row(self) -> Record:
        return self.model_dump()


class ArgInfo(BaseModel):
    """Description of one plugin option."""

    name: str
    type: str
    doc: str
    required: bool = False


class PluginInfo(BaseModel):
    """Plugin name, doc and options, as published to the host engine."""

    name: str
    doc: str
    args: list[ArgInfo] = Field(default_factory=list)
