"""Configuration: environment settings and YAML pipeline definitions."""

from docweave.config.loader import load_config, load_pipeline_definitions
from docweave.config.settings import Settings

__all__ = ["Settings", "load_config", "load_pipeline_definitions"]
