"""Process-wide registry of named pipeline definitions.

Read-mostly: lookups happen on every run, registrations happen at start-up
or from :meth:`PipelineEngine.create_custom_pipeline`.  A lock guards the
map so registration from one task never tears a concurrent lookup.
"""

from __future__ import annotations

import threading
from pathlib import Path

import structlog

from docweave.config.loader import load_pipeline_definitions
from docweave.models.pipeline import (
    ErrorHandling,
    ExecutionMode,
    PipelineDefinition,
    Stage,
    StageKind,
)
from docweave.utils.logging import get_logger


def default_pipelines() -> list[PipelineDefinition]:
    """The three pipelines every registry starts with."""
    return [
        PipelineDefinition(
            name="standard-processing",
            description="Standard document processing with chunking and metadata extraction",
            stages=[
                Stage(name="transform-preprocessing", kind=StageKind.TRANSFORM),
                Stage(name="chunk-documents", kind=StageKind.CHUNK),
                Stage(name="extract-metadata", kind=StageKind.EXTRACT),
                Stage(name="version-documents", kind=StageKind.VERSION),
            ],
            error_handling=ErrorHandling(stop_on_error=False, max_retries=3),
        ),
        PipelineDefinition(
            name="rag-optimized",
            description="Pipeline optimized for RAG applications with semantic chunking",
            stages=[
                Stage(
                    name="clean-text",
                    kind=StageKind.TRANSFORM,
                    config={
                        "remove_extra_whitespace": True,
                        "normalize_unicode": True,
                        "remove_headers_footers": True,
                    },
                ),
                Stage(name="semantic-chunk", kind=StageKind.CHUNK, config={"strategy": "semantic"}),
                Stage(name="extract-entities", kind=StageKind.EXTRACT),
                Stage(
                    name="version-for-rag",
                    kind=StageKind.VERSION,
                    config={"strategy": "hash"},
                ),
            ],
            error_handling=ErrorHandling(stop_on_error=True, max_retries=2),
        ),
        PipelineDefinition(
            name="quick-analysis",
            description="Fast pipeline for quick document analysis",
            stages=[
                Stage(name="basic-clean", kind=StageKind.TRANSFORM),
                Stage(name="extract-summary", kind=StageKind.EXTRACT),
            ],
            execution_mode=ExecutionMode.PARALLEL,
            error_handling=ErrorHandling(stop_on_error=False),
        ),
    ]


class PipelineRegistry:
    """Named :class:`PipelineDefinition` lookup.

    Parameters
    ----------
    include_defaults:
        Register :func:`default_pipelines` on construction.
    """

    def __init__(self, include_defaults: bool = True) -> None:
        self._pipelines: dict[str, PipelineDefinition] = {}
        self._lock = threading.Lock()
        self._logger: structlog.BoundLogger = get_logger(__name__)
        if include_defaults:
            for definition in default_pipelines():
                self.register(definition)

    def register(self, definition: PipelineDefinition) -> None:
        """Add or replace *definition* under its name."""
        with self._lock:
            replaced = definition.name in self._pipelines
            self._pipelines[definition.name] = definition
        self._logger.debug(
            "pipeline_registered",
            pipeline=definition.name,
            stages=len(definition.stages),
            replaced=replaced,
        )

    def get(self, name: str) -> PipelineDefinition | None:
        with self._lock:
            return self._pipelines.get(name)

    def names(self) -> list[str]:
        with self._lock:
            return list(self._pipelines)

    def definitions(self) -> list[PipelineDefinition]:
        with self._lock:
            return list(self._pipelines.values())

    def load_file(self, path: str | Path) -> int:
        """Register every definition found in a pipelines YAML file.

        A missing file registers nothing.  Malformed content raises
        :class:`~docweave.utils.errors.ConfigurationError`.
        """
        definitions = load_pipeline_definitions(path)
        for definition in definitions:
            self.register(definition)
        if definitions:
            self._logger.info("pipelines_loaded", path=str(path), count=len(definitions))
        return len(definitions)

    def __contains__(self, name: object) -> bool:
        with self._lock:
            return name in self._pipelines

