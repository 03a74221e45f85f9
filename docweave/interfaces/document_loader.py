"""Abstract base class for format-specific document loaders.

Loaders turn a source (a path, URL or raw string) into one or more
:class:`~docweave.models.document.TextUnit` instances.  PDF, CSV, plain-text
and binary extraction all live behind this contract; the pipeline engine
only calls it from a ``load`` stage.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from docweave.models.document import TextUnit


class LoadResult(BaseModel):
    """Units produced by one ``load`` call plus loader-level metadata."""

    model_config = ConfigDict(frozen=True)

    units: list[TextUnit] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)


class LoaderValidation(BaseModel):
    model_config = ConfigDict(frozen=True)

    ok: bool
    errors: list[str] = Field(default_factory=list)
    detected_format: str | None = None


class IDocumentLoader(ABC):
    """Contract for document loaders consumed by ``load`` stages."""

    @abstractmethod
    async def load(self, source: str) -> LoadResult:
        """Load *source* into text units.

        Raises
        ------
        docweave.utils.errors.ValidationError
            If the source cannot be read in any supported format.
        """

    @abstractmethod
    async def validate(self, source: str) -> LoaderValidation:
        """Check whether *source* can be loaded without loading it."""

    @abstractmethod
    async def detect_format(self, source: str) -> str | None:
        """Return a format name such as ``"pdf"`` or ``"csv"``, or ``None``."""
