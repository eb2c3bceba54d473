"""Prompt rendering: records are serialized as indented JSON and substituted for %INPUT%."""
from __future__ import annotations

import json
from collections.abc import Mapping
from typing import Any

from rowbridge.types import PLACEHOLDER, Record


def _stringify_keys(value: Any) -> Any:
    # json sorts before it converts keys, so mixed int/str keys must become str first.
    if isinstance(value, Mapping):
        return {str(k): _stringify_keys(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_stringify_keys(v) for v in value]
    return value


def serialize_records(records: list[Record]) -> str:
    """Stable, human-readable text: two-space indent, keys sorted per record. Non-JSON values use str()."""
    return json.dumps(
        _stringify_keys(records), indent=2, sort_keys=True, ensure_ascii=False, default=str
    )


def build_prompt(records: list[Record], template: str) -> str:
    """Replace every %INPUT% in one pass. No placeholder means the template is sent verbatim."""
    if PLACEHOLDER not in template:
        return template
    return template.replace(PLACEHOLDER, serialize_records(records))
