"""Indexing collaborator: preprocess -> enrich -> chunk -> store.

Built on the core engines and an injected
:class:`~docweave.interfaces.vector_store_provider.IVectorStoreProvider`.
Embedding generation belongs to the vector store provider; this service
only decides what text goes in and with which metadata.

Batch indexing processes documents in fixed-size batches with a fixed pause
between batches, retrying each document independently with exponential
backoff.  A document that still fails is reported in the batch result and
does not stop the rest of the batch.
"""

from __future__ import annotations

import asyncio
import time
import uuid
from typing import Any, Sequence

import structlog
from pydantic import BaseModel, Field

from docweave.interfaces.vector_store_provider import IVectorStoreProvider, SearchHit
from docweave.models.chunking import ChunkingConfig
from docweave.models.document import TextUnit
from docweave.models.transformation import TransformationConfig
from docweave.models.versioning import utc_now
from docweave.services.chunking.chunker import TextChunker
from docweave.services.extraction.enricher import MetadataEnricher
from docweave.services.transformation.composer import TransformationComposer
from docweave.utils.concurrency import run_in_batches
from docweave.utils.errors import RetryExhaustedError
from docweave.utils.retry import BackoffPolicy, with_retry

logger = structlog.get_logger(logger_name=__name__)


class IndexingResult(BaseModel):
    document_id: str
    chunks: int = 0
    vectors_stored: int = 0
    processing_time: float = 0.0
    status: str = "success"  # success | failed
    errors: list[str] = Field(default_factory=list)


class BatchIndexingResult(BaseModel):
    total_documents: int = 0
    successful_documents: int = 0
    failed_documents: int = 0
    total_chunks: int = 0
    total_vectors: int = 0
    processing_time: float = 0.0
    results: list[IndexingResult] = Field(default_factory=list)


class IndexingMetrics(BaseModel):
    """Running totals since construction or the last :meth:`IndexingService.reset_metrics`."""

    total_documents_processed: int = 0
    total_chunks_created: int = 0
    total_vectors_stored: int = 0
    average_processing_time: float = 0.0
    failure_rate: float = 0.0


class IndexingService:
    """Chunks text units and writes them to a vector store.

    Parameters
    ----------
    vector_store:
        Storage backend (injected, swappable).
    chunker:
        Chunking engine used to split every document.
    composer:
        Optional transformation composer for the preprocessing chain.
    enricher:
        Optional metadata enricher applied before chunking.
    chunking_config:
        Size/overlap used for every document.
    collection_name:
        Default collection.
    batch_size:
        Documents per batch in :meth:`index_batch`.
    batch_delay:
        Seconds between batches.
    max_retries:
        Attempts per document in :meth:`index_batch`.
    backoff:
        Delay policy between per-document attempts.
    """

    def __init__(
        self,
        vector_store: IVectorStoreProvider,
        chunker: TextChunker,
        composer: TransformationComposer | None = None,
        enricher: MetadataEnricher | None = None,
        chunking_config: ChunkingConfig | None = None,
        preprocessing: TransformationConfig | None = None,
        collection_name: str = "documents",
        batch_size: int = 10,
        batch_delay: float = 0.5,
        max_retries: int = 3,
        backoff: BackoffPolicy | None = None,
    ) -> None:
        self._vector_store = vector_store
        self._chunker = chunker
        self._composer = composer
        self._enricher = enricher
        self._chunking_config = chunking_config or ChunkingConfig(chunk_size=1000, chunk_overlap=200)
        self._preprocessing = preprocessing
        self._collection_name = collection_name
        self._batch_size = batch_size
        self._batch_delay = batch_delay
        self._max_retries = max_retries
        self._backoff = backoff or BackoffPolicy()
        self._metrics = IndexingMetrics()
        self._failed_count = 0

    # ------------------------------------------------------------------
    # Indexing
    # ------------------------------------------------------------------

    async def index_unit(
        self,
        unit: TextUnit,
        collection_name: str | None = None,
    ) -> IndexingResult:
        """Preprocess, enrich, chunk and store one document in a single attempt.

        Raises whatever the chunker or vector store raises; the failure is
        still counted in the running metrics.
        """
        started = time.monotonic()
        document_id = self._document_id(unit)
        try:
            chunks, stored = await self._store_document(unit, document_id, collection_name)
        except Exception as exc:
            self._record_failure(document_id, started, exc)
            raise
        return self._record_success(document_id, started, chunks, stored)

    async def index_batch(
        self,
        units: Sequence[TextUnit],
        collection_name: str | None = None,
    ) -> BatchIndexingResult:
        """Index *units* in batches; each document is retried independently.

        Every document keeps one id across its attempts and is counted once
        in the running metrics.
        """
        started = time.monotonic()

        async def _index_with_retry(unit: TextUnit) -> IndexingResult:
            doc_started = time.monotonic()
            document_id = self._document_id(unit)
            try:
                chunks, stored = await with_retry(
                    lambda: self._store_document(unit, document_id, collection_name),
                    attempts=self._max_retries,
                    backoff=self._backoff,
                    component="indexing",
                )
            except RetryExhaustedError as exc:
                return self._record_failure(document_id, doc_started, exc.last_error or exc)
            return self._record_success(document_id, doc_started, chunks, stored)

        async def _process(batch: list[TextUnit]) -> list[IndexingResult]:
            return list(await asyncio.gather(*(_index_with_retry(unit) for unit in batch)))

        results = await run_in_batches(
            list(units),
            _process,
            batch_size=self._batch_size,
            delay=self._batch_delay,
            logger=logger,
        )

        succeeded = [r for r in results if r.status == "success"]
        batch_result = BatchIndexingResult(
            total_documents=len(results),
            successful_documents=len(succeeded),
            failed_documents=len(results) - len(succeeded),
            total_chunks=sum(r.chunks for r in succeeded),
            total_vectors=sum(r.vectors_stored for r in succeeded),
            processing_time=time.monotonic() - started,
            results=results,
        )
        logger.info(
            "batch_indexing_complete",
            successful=batch_result.successful_documents,
            total=batch_result.total_documents,
            chunks=batch_result.total_chunks,
        )
        return batch_result

    @staticmethod
    def _document_id(unit: TextUnit) -> str:
        return unit.document_id or f"doc_{int(time.time() * 1000)}_{uuid.uuid4().hex[:8]}"

    async def _store_document(
        self,
        unit: TextUnit,
        document_id: str,
        collection_name: str | None,
    ) -> tuple[int, int]:
        prepared = unit
        if self._composer is not None:
            chain = self._composer.create_preprocessing_chain(self._preprocessing)
            prepared = await chain(prepared)
        if self._enricher is not None:
            prepared = await self._enricher.enrich_one(prepared)
        prepared = prepared.with_metadata(document_id=document_id, indexed_at=utc_now().isoformat())

        chunks = self._chunker.chunk(prepared, self._chunking_config)
        if not chunks:
            return 0, 0
        stored = await self._vector_store.add_units(chunks, collection_name or self._collection_name)
        return len(chunks), stored

    def _record_success(self, document_id: str, started: float, chunks: int, stored: int) -> IndexingResult:
        result = IndexingResult(
            document_id=document_id,
            chunks=chunks,
            vectors_stored=stored,
            processing_time=time.monotonic() - started,
        )
        self._update_metrics(result)
        logger.debug("document_indexed", document_id=document_id, chunks=chunks, vectors=stored)
        return result

    def _record_failure(self, document_id: str, started: float, error: BaseException) -> IndexingResult:
        result = IndexingResult(
            document_id=document_id,
            processing_time=time.monotonic() - started,
            status="failed",
            errors=[str(error)],
        )
        self._update_metrics(result)
        logger.error("indexing_failed", document_id=document_id, error=str(error))
        return result

    # ------------------------------------------------------------------
    # Retrieval and collection management
    # ------------------------------------------------------------------

    async def retrieve(
        self,
        query: str,
        limit: int = 10,
        score_threshold: float = 0.7,
        filters: dict[str, Any] | None = None,
        collection_name: str | None = None,
        include_metadata: bool = True,
    ) -> list[SearchHit]:
        """Similarity search keeping only hits scoring at least *score_threshold*."""
        hits = await self._vector_store.similarity_search(
            query,
            limit=limit,
            collection_name=collection_name or self._collection_name,
            filters=filters,
        )
        kept = [
            hit if include_metadata else hit.model_copy(update={"metadata": {}})
            for hit in hits
            if hit.score >= score_threshold
        ]
        logger.debug("retrieval_complete", query=query[:50], hits=len(hits), kept=len(kept))
        return kept

    async def collection_stats(self, collection_name: str | None = None) -> dict[str, Any]:
        name = collection_name or self._collection_name
        info = await self._vector_store.get_collection_info(name)
        return {"name": name, **info}

    async def clear_collection(self, collection_name: str | None = None) -> bool:
        name = collection_name or self._collection_name
        deleted = await self._vector_store.delete_collection(name)
        logger.info("collection_cleared", collection=name, existed=deleted)
        return deleted

    # ------------------------------------------------------------------
    # Metrics
    # ------------------------------------------------------------------

    def get_indexing_metrics(self) -> IndexingMetrics:
        return self._metrics.model_copy()

    def reset_metrics(self) -> None:
        self._metrics = IndexingMetrics()
        self._failed_count = 0

    def _update_metrics(self, result: IndexingResult) -> None:
        m = self._metrics
        processed = m.total_documents_processed + 1
        if result.status == "failed":
            self._failed_count += 1
        self._metrics = IndexingMetrics(
            total_documents_processed=processed,
            total_chunks_created=m.total_chunks_created + result.chunks,
            total_vectors_stored=m.total_vectors_stored + result.vectors_stored,
            average_processing_time=(
                m.average_processing_time * (processed - 1) + result.processing_time
            ) / processed,
            failure_rate=self._failed_count / processed,
        )
