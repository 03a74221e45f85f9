"""Chunking configuration and result models.

:class:`ChunkingConfig` is validated once on construction so the splitter
never has to re-check size/overlap rules.  Chunks themselves are plain
:class:`~docweave.models.document.TextUnit` instances; the positional and
hierarchical information lives in their metadata under the keys listed in
:class:`ChunkMetadataKeys`.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, model_validator

from docweave.models.document import TextUnit
from docweave.utils.errors import ValidationError

DEFAULT_SEPARATORS: list[str] = ["\n\n", "\n", ". ", "! ", "? ", "; ", ", ", " "]


class ChunkingStrategy(str, Enum):  # noqa: UP042
    """Splitting strategies understood by the ``chunk`` pipeline stage."""

    RECURSIVE = "recursive"
    SEMANTIC = "semantic"
    TOKEN = "token"
    HIERARCHICAL = "hierarchical"


class ChunkMetadataKeys:
    """Metadata keys stamped onto every chunk."""

    INDEX = "chunk_index"
    TOTAL = "total_chunks"
    LENGTH = "chunk_length"
    BYTES = "chunk_bytes"
    METHOD = "chunking_method"
    SIZE = "chunk_size"
    OVERLAP = "chunk_overlap"
    START = "start_index"
    ORIGINAL_ID = "original_document_id"
    PARENT_ID = "parent_id"
    LEVEL = "chunk_level"
    ROLE = "chunk_role"


class ChunkingConfig(BaseModel):
    """Size, overlap and separator rules for one chunking call.

    ``chunk_size`` below 1 is clamped to 1.  ``chunk_overlap`` must satisfy
    ``0 <= chunk_overlap < chunk_size`` after clamping, otherwise
    :class:`~docweave.utils.errors.ValidationError` is raised.
    """

    model_config = ConfigDict(frozen=True)

    chunk_size: int = 1000
    chunk_overlap: int = 200
    # Highest-priority separator first.  None selects format defaults.
    separators: list[str] | None = None
    keep_separator: bool = True
    # Semantic post-pass merges chunks shorter than this into a neighbour.
    min_chunk_size: int = 100
    preserve_paragraphs: bool = True
    preserve_sentences: bool = True

    @model_validator(mode="before")
    @classmethod
    def _clamp_and_check(cls, data: object) -> object:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        size = max(1, int(data.get("chunk_size", 1000)))
        overlap = int(data.get("chunk_overlap", min(200, size - 1)))
        if overlap < 0 or overlap >= size:
            raise ValidationError(
                f"chunk_overlap must be in [0, {size}), got {overlap}",
                component="chunking",
            )
        data["chunk_size"] = size
        data["chunk_overlap"] = overlap
        return data

    @property
    def stride(self) -> int:
        """New characters contributed by every chunk after the first."""
        return self.chunk_size - self.chunk_overlap


class HierarchicalChunks(BaseModel):
    """Two-level chunking result.

    Children point back to their parent through the ``parent_id`` metadata
    key; parents hold no list of children.
    """

    model_config = ConfigDict(frozen=True)

    parents: list[TextUnit] = Field(default_factory=list)
    children: list[TextUnit] = Field(default_factory=list)

    def children_of(self, parent_id: str) -> list[TextUnit]:
        """Return the children whose ``parent_id`` equals *parent_id*, in order."""
        return [
            child
            for child in self.children
            if child.metadata.get(ChunkMetadataKeys.PARENT_ID) == parent_id
        ]

    def parent_of(self, child: TextUnit) -> TextUnit | None:
        """Resolve a child's backreference to its parent unit."""
        parent_id = child.metadata.get(ChunkMetadataKeys.PARENT_ID)
        for parent in self.parents:
            if parent.document_id == parent_id:
                return parent
        return None
