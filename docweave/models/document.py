"""Text unit model -- the value every docweave engine consumes and produces.

A :class:`TextUnit` is one document or one chunk: a content string plus an
ordered metadata mapping.  Units are frozen pydantic models; every
transformation builds a new unit through :meth:`TextUnit.with_content` or
:meth:`TextUnit.with_metadata` instead of editing one in place.

Identity is derived, never assigned: :attr:`TextUnit.content_hash` is a
SHA-256 digest over the content and the key-sorted metadata, and is the
basis for deduplication in the versioning engine.
"""

from __future__ import annotations

import hashlib
import json
from typing import Any, Dict, List, Union

from pydantic import BaseModel, ConfigDict, Field
from typing_extensions import TypeAliasType

# Recursive tagged union for metadata values.  Declared with TypeAliasType
# so pydantic can validate nested lists and maps.
MetadataValue = TypeAliasType(
    "MetadataValue",
    Union[
        str,
        bool,
        int,
        float,
        None,
        List["MetadataValue"],
        Dict[str, "MetadataValue"],
    ],
)

# Metadata key holding an explicit logical document id.
DOCUMENT_ID_KEY = "document_id"


def canonical_metadata(metadata: dict[str, Any]) -> str:
    """Serialize *metadata* deterministically (sorted keys, compact separators)."""
    return json.dumps(metadata, sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=str)


def compute_content_hash(content: str, metadata: dict[str, Any] | None = None) -> str:
    """Return the SHA-256 hex digest of ``content::canonical(metadata)``."""
    combined = f"{content}::{canonical_metadata(metadata or {})}"
    return hashlib.sha256(combined.encode("utf-8")).hexdigest()


class TextUnit(BaseModel):
    """Immutable content + metadata value.

    Example::

        unit = TextUnit(content="Hello", metadata={"source": "a.txt"})
        cleaned = unit.with_content("hello", cleaned=True)
    """

    model_config = ConfigDict(frozen=True)

    content: str = Field(default="", description="The unit's text content.")
    metadata: Dict[str, MetadataValue] = Field(
        default_factory=dict,
        description="Ordered metadata mapping (primitives, lists, nested maps).",
    )

    # ------------------------------------------------------------------
    # Derived identity
    # ------------------------------------------------------------------

    @property
    def content_hash(self) -> str:
        """SHA-256 hex digest over content and key-sorted metadata."""
        return compute_content_hash(self.content, self.metadata)

    @property
    def document_id(self) -> str | None:
        """The explicit logical document id from metadata, if present."""
        value = self.metadata.get(DOCUMENT_ID_KEY)
        if isinstance(value, str) and value:
            return value
        return None

    # ------------------------------------------------------------------
    # Copy-on-write helpers
    # ------------------------------------------------------------------

    def with_content(self, content: str, **metadata_updates: Any) -> TextUnit:
        """Return a new unit with *content* and optional metadata additions."""
        return TextUnit(content=content, metadata={**self.metadata, **metadata_updates})

    def with_metadata(self, **metadata_updates: Any) -> TextUnit:
        """Return a new unit with the same content and merged metadata."""
        return TextUnit(content=self.content, metadata={**self.metadata, **metadata_updates})

    def replace_metadata(self, metadata: dict[str, Any]) -> TextUnit:
        """Return a new unit with the same content and exactly *metadata*."""
        return TextUnit(content=self.content, metadata=dict(metadata))

    def __len__(self) -> int:
        return len(self.content)
