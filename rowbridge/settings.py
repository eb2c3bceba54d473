"""Bridge configuration. Env prefix: ROWBRIDGE_. Service URL: OLLAMA_BASEURL."""
from __future__ import annotations

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from rowbridge.types import PLACEHOLDER

DEFAULT_BASE_URL = "http://localhost:11434"
DEFAULT_MODEL = "qwen2.5:latest"
DEFAULT_PROMPT = f"You are a digital forensic analyst. Analyse:\n\n{PLACEHOLDER}"


class BridgeSettings(BaseSettings):
    """Defaults for invocation options and HTTP/channel tuning. All overridable via env."""

    model_config = SettingsConfigDict(
        env_prefix="ROWBRIDGE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    base_url: str = Field(
        default=DEFAULT_BASE_URL,
        validation_alias=AliasChoices("OLLAMA_BASEURL", "ROWBRIDGE_BASE_URL"),
        description="Ollama server URL (env: OLLAMA_BASEURL)",
    )
    default_model: str = Field(default=DEFAULT_MODEL, description="Model used when the caller sets none")
    default_prompt: str = Field(default=DEFAULT_PROMPT, description="Template used when the caller sets none")
    default_limit: int = Field(default=100, ge=1, description="Max rows pulled from a sub-query")
    timeout_s: float = Field(
        default=300.0,
        gt=0,
        description="Read/write timeout per request; cold model loads can take minutes",
    )
    connect_timeout_s: float = Field(default=10.0, gt=0, description="TCP connect timeout")
    channel_capacity: int = Field(default=16, ge=1, description="Bounded output channel size")
    log_prompt_preview: bool = Field(
        default=False,
        description="Add a redacted prompt preview to the per-call log record",
    )
