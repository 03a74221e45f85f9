"""docweave data models -- re-exports all public model classes.

The models are organized across five submodules by concern:
    - document.py        -- TextUnit and the MetadataValue union
    - chunking.py        -- ChunkingConfig, HierarchicalChunks, chunk metadata keys
    - versioning.py      -- Version snapshots, policy, comparison, stats
    - transformation.py  -- TransformationConfig and TransformationResult
    - pipeline.py        -- Stage, PipelineDefinition, run state, results, metrics

If you add a new model class, remember to add it to ``__all__`` too.
"""

from __future__ import annotations

from docweave.models.chunking import (
    DEFAULT_SEPARATORS,
    ChunkingConfig,
    ChunkingStrategy,
    ChunkMetadataKeys,
    HierarchicalChunks,
)
from docweave.models.document import (
    DOCUMENT_ID_KEY,
    MetadataValue,
    TextUnit,
    compute_content_hash,
)
from docweave.models.pipeline import (
    ErrorHandling,
    ExecutionMode,
    ExecutionResult,
    Monitoring,
    PipelineDefinition,
    PipelineMetrics,
    PipelineRunState,
    RunStatus,
    Stage,
    StageKind,
    StageOutcome,
)
from docweave.models.transformation import (
    TransformationConfig,
    TransformationResult,
    TransformationStats,
)
from docweave.models.versioning import (
    ChangeInfo,
    ChangeStats,
    ChangeType,
    ContentDiff,
    MetadataDiff,
    Version,
    VersionComparison,
    VersionedDocumentStats,
    VersioningPolicy,
    VersionStrategy,
)

__all__ = [
    "DEFAULT_SEPARATORS",
    "DOCUMENT_ID_KEY",
    "ChangeInfo",
    "ChangeStats",
    "ChangeType",
    "ChunkMetadataKeys",
    "ChunkingConfig",
    "ChunkingStrategy",
    "ContentDiff",
    "ErrorHandling",
    "ExecutionMode",
    "ExecutionResult",
    "HierarchicalChunks",
    "MetadataDiff",
    "MetadataValue",
    "Monitoring",
    "PipelineDefinition",
    "PipelineMetrics",
    "PipelineRunState",
    "RunStatus",
    "Stage",
    "StageKind",
    "StageOutcome",
    "TextUnit",
    "TransformationConfig",
    "TransformationResult",
    "TransformationStats",
    "Version",
    "VersionComparison",
    "VersionStrategy",
    "VersionedDocumentStats",
    "VersioningPolicy",
    "compute_content_hash",
]
