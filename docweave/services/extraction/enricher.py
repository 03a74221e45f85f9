"""Batch metadata enrichment on top of an :class:`IMetadataExtractor`.

Units are handed to the extractor in fixed-size batches with a fixed pause
between batches so a network-backed extractor is never hit with the whole
working set at once.  Extraction failures are logged but never block the
batch -- the affected unit is returned unchanged.
"""

from __future__ import annotations

import asyncio
from typing import Any, Sequence

import structlog

from docweave.interfaces.metadata_extractor import IMetadataExtractor
from docweave.models.document import TextUnit
from docweave.utils.concurrency import run_in_batches

logger = structlog.get_logger(logger_name=__name__)


class MetadataEnricher:
    """Merges extractor fragments onto units, batch by batch.

    Parameters
    ----------
    extractor:
        The metadata extractor (injected, swappable).
    batch_size:
        Units per batch.
    batch_delay:
        Seconds to wait between batches.
    """

    def __init__(
        self,
        extractor: IMetadataExtractor,
        batch_size: int = 10,
        batch_delay: float = 0.5,
    ) -> None:
        self._extractor = extractor
        self._batch_size = batch_size
        self._batch_delay = batch_delay

    @property
    def extractor(self) -> IMetadataExtractor:
        return self._extractor

    async def enrich(
        self,
        units: Sequence[TextUnit],
        config: dict[str, Any] | None = None,
        batch_size: int | None = None,
        batch_delay: float | None = None,
    ) -> list[TextUnit]:
        """Return new units carrying the extracted metadata, in input order."""
        if not units:
            return []

        async def _process(batch: list[TextUnit]) -> list[TextUnit]:
            return list(await asyncio.gather(*(self.enrich_one(unit, config) for unit in batch)))

        enriched = await run_in_batches(
            list(units),
            _process,
            batch_size=batch_size or self._batch_size,
            delay=self._batch_delay if batch_delay is None else batch_delay,
            logger=logger,
        )
        logger.info(
            "batch_enrichment_complete",
            extractor=self._extractor.get_extractor_name(),
            total=len(enriched),
        )
        return enriched

    async def enrich_one(self, unit: TextUnit, config: dict[str, Any] | None = None) -> TextUnit:
        try:
            fragments = await self._extractor.extract(unit, config)
        except Exception as exc:  # noqa: BLE001
            logger.warning(
                "metadata_extraction_failed",
                extractor=self._extractor.get_extractor_name(),
                document_id=unit.document_id,
                error=str(exc),
                msg="Returning unit unchanged.",
            )
            return unit
        return unit.with_metadata(**fragments)
