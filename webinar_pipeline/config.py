from __future__ import annotations

import logging
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

from webinar_pipeline.adapters.llm_base import CallOptions
from webinar_pipeline.utils.io import read_text

logger = logging.getLogger(__name__)

ENV_PREFIX = "WEBINAR_"
PROVIDERS = ("openai", "gemini")


@dataclass
class PipelineSettings:
    max_concurrency: int = 2
    request_timeout_seconds: float = 120.0
    max_output_tokens: int = 8000
    temperature: float = 0.7
    min_transcript_chars: int = 50
    openai_model: str = "gpt-4o-mini"
    gemini_model: str = "gemini-flash-latest"
    provider: str = "openai"

    def call_options(self) -> CallOptions:
        return CallOptions(
            max_output_tokens=self.max_output_tokens,
            temperature=self.temperature,
            timeout_seconds=self.request_timeout_seconds,
        )


def _coerce(name: str, value: Any) -> Any:
    field_type = {field.name: field.type for field in fields(PipelineSettings)}[name]
    try:
        if field_type == "int":
            return int(value)
        if field_type == "float":
            return float(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Setting {name} expects {field_type}, got {value!r}") from exc
    return str(value)


def _apply(values: Dict[str, Any], overrides: Mapping[str, Any], source: str) -> None:
    known = {field.name for field in fields(PipelineSettings)}
    for key, value in overrides.items():
        if key not in known:
            logger.warning("[config] ignoring unknown setting %s from %s", key, source)
            continue
        values[key] = _coerce(key, value)


def load_settings(
    path: Optional[Path] = None, environ: Optional[Mapping[str, str]] = None
) -> PipelineSettings:
    """Defaults, then the optional YAML file, then ``WEBINAR_*`` environment variables."""
    values: Dict[str, Any] = {}
    if path is not None:
        loaded = yaml.safe_load(read_text(Path(path))) or {}
        if not isinstance(loaded, dict):
            raise ValueError(f"Config file {path} must contain a mapping.")
        _apply(values, loaded, str(path))

    environ = os.environ if environ is None else environ
    env_values = {
        key[len(ENV_PREFIX):].lower(): value
        for key, value in environ.items()
        if key.startswith(ENV_PREFIX)
    }
    _apply(values, env_values, "environment")

    settings = PipelineSettings(**values)
    if settings.provider not in PROVIDERS:
        raise ValueError(f"provider must be one of {', '.join(PROVIDERS)}")
    if settings.max_concurrency < 1:
        raise ValueError("max_concurrency must be at least 1")
    return settings
