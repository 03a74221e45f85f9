"""docweave composition root.

Wires the registry, the leaf engines (transformation composer, chunker,
versioning service, metadata enricher) and the default providers into a
:class:`~docweave.pipeline.engine.PipelineEngine` by constructor injection.
Nothing else in the package constructs its own collaborators.

``build_engine`` is what the CLI uses; ``build_services`` returns every
piece separately for callers (or tests) that need to reach past the engine.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

from docweave.config.settings import Settings
from docweave.models.chunking import ChunkingConfig
from docweave.pipeline.engine import PipelineEngine
from docweave.pipeline.events import PipelineEventBus
from docweave.pipeline.history import ExecutionHistory
from docweave.pipeline.registry import PipelineRegistry
from docweave.providers.loader.text_file_loader import TextFileLoader
from docweave.providers.version_store.memory_version_store import InMemoryVersionStore
from docweave.services.chunking.chunker import TextChunker, TokenCounter
from docweave.services.extraction.enricher import MetadataEnricher
from docweave.services.extraction.structural_extractor import StructuralMetadataExtractor
from docweave.services.transformation.composer import TransformationComposer
from docweave.services.versioning.versioning_service import VersioningService
from docweave.utils.logging import get_logger
from docweave.utils.retry import BackoffPolicy

logger = get_logger(__name__)


def build_services(custom_settings: Settings | None = None) -> dict[str, Any]:
    """Construct every service with injected dependencies.

    Parameters
    ----------
    custom_settings:
        Library settings.  A fresh :class:`Settings` is read from the
        environment if not provided.

    Returns
    -------
    dict
        Service instances keyed by role name.
    """
    s = custom_settings or Settings()

    backoff = BackoffPolicy(
        base_delay=s.retry_base_delay,
        max_delay=s.retry_max_delay,
        jitter=s.retry_jitter,
    )
    chunking_defaults = ChunkingConfig(
        chunk_size=s.default_chunk_size,
        chunk_overlap=s.default_chunk_overlap,
        min_chunk_size=s.min_chunk_size,
    )

    composer = TransformationComposer(
        backoff=backoff,
        default_timeout=s.transform_timeout or None,
    )
    chunker = TextChunker(
        default_config=chunking_defaults,
        token_counter=TokenCounter(s.tokenizer_name or None),
    )
    versioning = VersioningService(store=InMemoryVersionStore())
    enricher = MetadataEnricher(
        StructuralMetadataExtractor(),
        batch_size=s.batch_size,
        batch_delay=s.batch_delay,
    )

    registry = PipelineRegistry()
    pipelines_path = Path(s.pipelines_path)
    if pipelines_path.exists():
        registry.load_file(pipelines_path)

    return {
        "settings": s,
        "registry": registry,
        "composer": composer,
        "chunker": chunker,
        "versioning": versioning,
        "enricher": enricher,
        "loader": TextFileLoader(),
        "event_bus": PipelineEventBus(),
        "history": ExecutionHistory(max_size=s.history_size),
        "backoff": backoff,
        "chunking_defaults": chunking_defaults,
    }


def build_engine(custom_settings: Settings | None = None) -> PipelineEngine:
    """Return a fully wired :class:`PipelineEngine`."""
    services = build_services(custom_settings)
    s: Settings = services["settings"]

    engine = PipelineEngine(
        registry=services["registry"],
        composer=services["composer"],
        chunker=services["chunker"],
        versioning=services["versioning"],
        enricher=services["enricher"],
        loader=services["loader"],
        event_bus=services["event_bus"],
        history=services["history"],
        backoff=services["backoff"],
        chunking_defaults=services["chunking_defaults"],
        run_state_ttl=s.run_state_ttl,
        run_state_max=s.run_state_max,
        concurrency=s.batch_size,
    )
    logger.info("engine_built", pipelines=engine.list_pipelines())
    return engine
