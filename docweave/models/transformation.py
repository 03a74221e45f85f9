"""Transformation configuration and result models."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from docweave.models.document import TextUnit
from docweave.models.versioning import utc_now


class TransformationStats(BaseModel):
    """Before/after measurements recorded for every successful execution."""

    model_config = ConfigDict(frozen=True)

    original_length: int = 0
    transformed_length: int = 0
    length_change: int = 0
    # transformed_length / original_length; 1.0 for empty input.
    compression_ratio: float = 1.0
    metadata_keys_added: int = 0

    @classmethod
    def measure(cls, original: TextUnit, transformed: TextUnit) -> TransformationStats:
        before = len(original.content)
        after = len(transformed.content)
        return cls(
            original_length=before,
            transformed_length=after,
            length_change=after - before,
            compression_ratio=(after / before) if before else 1.0,
            metadata_keys_added=len(set(transformed.metadata) - set(original.metadata)),
        )


class TransformationResult(BaseModel):
    """Outcome of ``TransformationComposer.execute``.

    On failure ``transformed`` is the untouched input unit and ``error``
    carries the message.
    """

    model_config = ConfigDict(frozen=True)

    transformation_id: str
    chain_name: str
    original: TextUnit
    transformed: TextUnit
    success: bool
    error: str | None = None
    duration: float = 0.0
    stats: TransformationStats | None = None
    timestamp: datetime = Field(default_factory=utc_now)


class TransformationConfig(BaseModel):
    """Flags selecting built-in cleaning and enrichment transforms."""

    model_config = ConfigDict(frozen=True)

    # Cleaning
    remove_extra_whitespace: bool = False
    normalize_unicode: bool = False
    remove_special_characters: bool = False
    to_lowercase: bool = False
    remove_headers_footers: bool = False

    # Enrichment
    add_timestamps: bool = False
    add_document_id: bool = False
    add_source_info: bool = False

    # Explicit chain names run after the flag-selected transforms.
    chains: list[str] = Field(default_factory=list)

    @property
    def selects_builtins(self) -> bool:
        """True when at least one cleaning or enrichment flag is set."""
        return any(self.model_dump(exclude={"chains"}).values())
