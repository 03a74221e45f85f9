"""Indexing collaborator writing chunked units to a vector store."""

from docweave.services.indexing.indexing_service import (
    BatchIndexingResult,
    IndexingMetrics,
    IndexingResult,
    IndexingService,
)

__all__ = ["BatchIndexingResult", "IndexingMetrics", "IndexingResult", "IndexingService"]
