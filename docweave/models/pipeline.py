"""Pipeline definition, run-state, and execution-result models.

Defines Pydantic v2 models for stages, pipeline definitions, run state and
execution results.  All models use frozen config to enforce immutability:
the engine advances a run by producing new :class:`PipelineRunState`
instances via ``model_copy(update={...})``.

Architecture note:
    PipelineRunState is the single source of truth for one run.  The engine
    (docweave/pipeline/engine.py) holds the latest snapshot per ``run_id``
    and swaps it for a new copy on every transition, so any snapshot handed
    to a caller through ``get_pipeline_state`` can never change underneath
    them.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Callable

from pydantic import BaseModel, ConfigDict, Field

from docweave.models.document import TextUnit
from docweave.models.versioning import Version, VersioningPolicy, utc_now


# ---------------------------------------------------------------------------
# Definitions
# ---------------------------------------------------------------------------
class StageKind(str, Enum):  # noqa: UP042
    """Which engine a stage delegates to."""

    LOAD = "load"            # IDocumentLoader, appends loaded units
    TRANSFORM = "transform"  # TransformationComposer chain
    CHUNK = "chunk"          # TextChunker strategy
    EXTRACT = "extract"      # IMetadataExtractor via MetadataEnricher
    VERSION = "version"      # VersioningService, output is version snapshots
    CUSTOM = "custom"        # caller-supplied handler or registered chains


class ExecutionMode(str, Enum):  # noqa: UP042
    SEQUENTIAL = "sequential"
    PARALLEL = "parallel"


class Stage(BaseModel):
    """One named processing step inside a pipeline definition."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    name: str
    kind: StageKind = StageKind.CUSTOM
    enabled: bool = True
    # Stage-specific options, e.g. {"strategy": "semantic", "chunk_size": 800}.
    config: dict[str, Any] = Field(default_factory=dict)
    # Overrides ErrorHandling.max_retries when set (total attempts).
    retry_count: int | None = None
    # Per-attempt timeout in seconds.
    timeout: float | None = None
    # Lets the run continue past this stage even under stop_on_error.
    continue_on_error: bool = False
    # Consecutive parallel-eligible stages run concurrently and are merged.
    parallel: bool = False
    # Custom-stage callable ``(units, stage) -> units``; never serialized.
    handler: Callable[..., Any] | None = Field(default=None, exclude=True, repr=False)


class ErrorHandling(BaseModel):
    model_config = ConfigDict(frozen=True)

    stop_on_error: bool = True
    max_retries: int | None = None
    fallback_pipeline: str | None = None


class Monitoring(BaseModel):
    model_config = ConfigDict(frozen=True)

    emit_events: bool = True
    collect_metrics: bool = True


class PipelineDefinition(BaseModel):
    """Declarative ordered set of stages plus error and versioning policy."""

    model_config = ConfigDict(frozen=True)

    name: str
    description: str = ""
    stages: list[Stage] = Field(default_factory=list)
    execution_mode: ExecutionMode = ExecutionMode.SEQUENTIAL
    error_handling: ErrorHandling = Field(default_factory=ErrorHandling)
    versioning: VersioningPolicy | None = None
    monitoring: Monitoring = Field(default_factory=Monitoring)

    @property
    def enabled_stages(self) -> list[Stage]:
        return [stage for stage in self.stages if stage.enabled]


# ---------------------------------------------------------------------------
# Run state
# ---------------------------------------------------------------------------
class RunStatus(str, Enum):  # noqa: UP042
    """Run state machine: idle -> running -> completed | failed | cancelled."""

    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (RunStatus.COMPLETED, RunStatus.FAILED, RunStatus.CANCELLED)


class PipelineRunState(BaseModel):
    """Snapshot of one run.  Immutable; use ``model_copy(update={...})``."""

    model_config = ConfigDict(frozen=True)

    run_id: str
    pipeline_name: str
    status: RunStatus = RunStatus.IDLE
    current_stage: str | None = None
    progress: float = Field(default=0.0, ge=0.0, le=100.0)
    documents_processed: int = 0
    total_documents: int = 0
    started_at: datetime | None = None
    finished_at: datetime | None = None
    errors: list[str] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------
class StageOutcome(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    success: bool
    duration: float = 0.0
    error: str | None = None
    documents_output: int = 0
    attempts: int = 0


class ExecutionResult(BaseModel):
    """Structured outcome of ``execute_pipeline``.

    A failed run is reported here with ``success=False``; it is never raised.
    """

    model_config = ConfigDict(frozen=True)

    run_id: str
    pipeline_name: str
    started_at: datetime = Field(default_factory=utc_now)
    ended_at: datetime = Field(default_factory=utc_now)
    duration: float = 0.0
    success: bool = False
    status: RunStatus = RunStatus.COMPLETED
    documents_processed: int = 0
    stages: list[StageOutcome] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)
    final_units: list[TextUnit] = Field(default_factory=list)
    versions: list[Version] = Field(default_factory=list)
    # Name of the primary pipeline when this result came from its fallback.
    fallback_from: str | None = None


class PipelineMetrics(BaseModel):
    """Aggregates over the retained execution history."""

    model_config = ConfigDict(frozen=True)

    total_executions: int = 0
    successful_executions: int = 0
    failed_executions: int = 0
    average_duration: float = 0.0
    average_documents_processed: float = 0.0
    # (message, count), most frequent first, at most five entries.
    most_common_errors: list[tuple[str, int]] = Field(default_factory=list)

    @property
    def success_rate(self) -> float:
        if not self.total_executions:
            return 0.0
        return self.successful_executions / self.total_executions
