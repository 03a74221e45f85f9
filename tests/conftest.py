"""Shared pytest fixtures for the docweave test suite."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest
import structlog

from docweave.interfaces.metadata_extractor import IMetadataExtractor
from docweave.interfaces.vector_store_provider import IVectorStoreProvider, SearchHit
from docweave.models.document import TextUnit
from docweave.pipeline.engine import PipelineEngine
from docweave.pipeline.events import PipelineEventBus
from docweave.pipeline.history import ExecutionHistory
from docweave.pipeline.registry import PipelineRegistry
from docweave.services.chunking.chunker import TextChunker
from docweave.services.extraction.enricher import MetadataEnricher
from docweave.services.extraction.structural_extractor import StructuralMetadataExtractor
from docweave.services.transformation.composer import TransformationComposer
from docweave.services.versioning.versioning_service import VersioningService
from docweave.utils.retry import BackoffPolicy

# No sleeping between retries in tests.
NO_BACKOFF = BackoffPolicy(base_delay=0.0, jitter=0.0)

SAMPLE_ARTICLE = """# Release Notes

The ingestion service now normalizes whitespace before chunking.  Documents
that arrive with Windows line endings are converted first.

Chunk overlap is measured in characters by default.  A token counter can be
supplied instead, in which case overlap is measured in whole pieces.

- Hierarchical chunking emits parents and children.
- Children point back to their parent through metadata.

Versioning deduplicates by content hash.  Re-submitting the same document is
a no-op and returns the current version.
"""


@pytest.fixture(autouse=True)
def _reset_logging() -> Iterator[None]:
    """Undo any logging configuration a test (e.g. a CLI run) installs."""
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    structlog.reset_defaults()
    root.handlers[:] = handlers
    root.setLevel(level)


# ---------------------------------------------------------------------------
# Units
# ---------------------------------------------------------------------------


@pytest.fixture
def project_root() -> Path:
    """Return the project root directory."""
    return Path(__file__).parent.parent


@pytest.fixture
def sample_unit() -> TextUnit:
    return TextUnit(
        content=SAMPLE_ARTICLE,
        metadata={"source": "release-notes.md", "format": "markdown", "document_id": "release-notes"},
    )


@pytest.fixture
def messy_unit() -> TextUnit:
    return TextUnit(
        content="  Hello\t\tworld  \n\n\n\n“Quoted” text — with a dash…  ",
        metadata={"source": "messy.txt"},
    )


@pytest.fixture
def sample_units() -> list[TextUnit]:
    return [
        TextUnit(content=f"Document {i}.  Some   text with  extra spaces.", metadata={"document_id": f"doc-{i}"})
        for i in range(3)
    ]


# ---------------------------------------------------------------------------
# Services
# ---------------------------------------------------------------------------


@pytest.fixture
def composer() -> TransformationComposer:
    return TransformationComposer(backoff=NO_BACKOFF)


@pytest.fixture
def chunker() -> TextChunker:
    return TextChunker()


@pytest.fixture
def versioning() -> VersioningService:
    return VersioningService()


@pytest.fixture
def enricher() -> MetadataEnricher:
    return MetadataEnricher(StructuralMetadataExtractor(), batch_size=2, batch_delay=0.0)


@pytest.fixture
def event_bus() -> PipelineEventBus:
    return PipelineEventBus()


@pytest.fixture
def recorded_events(event_bus: PipelineEventBus) -> list[Any]:
    """Every event published on ``event_bus``, in order."""
    events: list[Any] = []
    event_bus.subscribe(events.append)
    return events


@pytest.fixture
def engine(
    composer: TransformationComposer,
    chunker: TextChunker,
    versioning: VersioningService,
    enricher: MetadataEnricher,
    event_bus: PipelineEventBus,
) -> PipelineEngine:
    return PipelineEngine(
        registry=PipelineRegistry(),
        composer=composer,
        chunker=chunker,
        versioning=versioning,
        enricher=enricher,
        event_bus=event_bus,
        history=ExecutionHistory(),
        backoff=NO_BACKOFF,
    )


# ---------------------------------------------------------------------------
# Mock collaborators
# ---------------------------------------------------------------------------


@pytest.fixture
def mock_vector_store() -> IVectorStoreProvider:
    """Return a mock vector store that accepts every unit."""
    mock = AsyncMock(spec=IVectorStoreProvider)
    mock.add_units = AsyncMock(side_effect=lambda units, collection_name: len(units))
    mock.similarity_search = AsyncMock(
        return_value=[
            SearchHit(content="close match", metadata={"source": "a.md"}, score=0.92),
            SearchHit(content="weak match", metadata={"source": "b.md"}, score=0.41),
        ]
    )
    mock.get_collection_info = AsyncMock(return_value={"count": 12})
    mock.delete_collection = AsyncMock(return_value=True)
    return mock


@pytest.fixture
def failing_extractor() -> IMetadataExtractor:
    mock = MagicMock(spec=IMetadataExtractor)
    mock.extract = AsyncMock(side_effect=RuntimeError("extractor offline"))
    mock.get_extractor_name.return_value = "failing"
    return mock
