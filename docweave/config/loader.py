"""YAML configuration loader with environment variable overrides.

Configuration is loaded in layers (later layers override earlier):

  1. config/pipelines.yaml  -- static pipeline definitions and defaults
  2. .env file              -- local developer overrides (not committed)
  3. Environment vars       -- set at deploy time

:func:`load_config` reads the YAML file first, then deep-merges the
environment-based values from :class:`Settings` on top.
:func:`load_pipeline_definitions` turns the ``pipelines`` section into
validated :class:`~docweave.models.pipeline.PipelineDefinition` objects.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import pydantic
import yaml

from docweave.config.settings import Settings
from docweave.models.pipeline import PipelineDefinition
from docweave.utils.errors import ConfigurationError


def _read_yaml(path: str | Path) -> dict[str, Any]:
    config_path = Path(path)
    if not config_path.exists():
        return {}
    try:
        with open(config_path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Invalid YAML in {config_path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigurationError(f"Top level of {config_path} must be a mapping")
    return data


def load_config(path: str | None = None, settings: Settings | None = None) -> dict[str, Any]:
    """Load YAML config and merge with environment-based Settings.

    Args:
        path: Path to the YAML file; defaults to ``settings.pipelines_path``.
        settings: Settings instance; a fresh one is read from the environment
            when omitted.

    Returns:
        Fully resolved configuration dictionary.
    """
    settings = settings or Settings()
    yaml_config = _read_yaml(path or settings.pipelines_path)

    env_overrides = {
        "app": {
            "env": settings.app_env,
        },
        "logging": {
            "level": settings.log_level,
        },
        "chunking": {
            "chunk_size": settings.default_chunk_size,
            "chunk_overlap": settings.default_chunk_overlap,
            "min_chunk_size": settings.min_chunk_size,
        },
        "retry": {
            "base_delay": settings.retry_base_delay,
            "max_delay": settings.retry_max_delay,
            "jitter": settings.retry_jitter,
        },
        "engine": {
            "history_size": settings.history_size,
            "run_state_ttl": settings.run_state_ttl,
        },
        "batching": {
            "batch_size": settings.batch_size,
            "batch_delay": settings.batch_delay,
        },
    }

    _deep_merge(yaml_config, env_overrides)
    return yaml_config


def load_pipeline_definitions(path: str | Path) -> list[PipelineDefinition]:
    """Parse the ``pipelines`` list of a YAML file into definitions.

    Raises:
        ConfigurationError: If the file is malformed or a definition fails
            validation.
    """
    raw = _read_yaml(path).get("pipelines") or []
    if not isinstance(raw, list):
        raise ConfigurationError(f"'pipelines' in {path} must be a list")

    definitions: list[PipelineDefinition] = []
    for entry in raw:
        try:
            definitions.append(PipelineDefinition.model_validate(entry))
        except pydantic.ValidationError as exc:
            name = entry.get("name", "?") if isinstance(entry, dict) else "?"
            raise ConfigurationError(f"Invalid pipeline definition '{name}': {exc}") from exc
    return definitions


def _deep_merge(base: dict, overrides: dict) -> None:
    """Recursively merge overrides into base dict, mutating base in place."""
    for key, value in overrides.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value
