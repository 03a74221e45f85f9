"""Abstract base class for metadata extractors.

Entity, keyword and structural heuristics live behind this contract.  An
extractor returns metadata *fragments*; merging them onto the unit is the
caller's job (see :class:`~docweave.services.extraction.enricher.MetadataEnricher`).
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from docweave.models.document import MetadataValue, TextUnit


class IMetadataExtractor(ABC):
    """Contract for ``extract``-kind pipeline stages."""

    @abstractmethod
    async def extract(
        self,
        unit: TextUnit,
        config: dict[str, Any] | None = None,
    ) -> dict[str, MetadataValue]:
        """Return metadata fragments describing *unit*.

        Parameters
        ----------
        unit:
            The text unit to inspect.  Never modified.
        config:
            Extractor-specific options taken from the stage configuration.
        """

    @abstractmethod
    def get_extractor_name(self) -> str:
        """Return a short identifier, e.g. ``"structural"``."""
