"""Version snapshot, policy, and comparison models.

A :class:`Version` is immutable.  Superseding a version never edits it in
place: the versioning service stores ``version.model_copy(update={"valid_to":
now})`` in its slot, so every stored object stays frozen.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from docweave.models.document import TextUnit


def utc_now() -> datetime:
    return datetime.now(tz=timezone.utc)  # noqa: UP017


class VersionStrategy(str, Enum):  # noqa: UP042
    """How a version id is derived."""

    TIMESTAMP = "timestamp"      # <doc>_v<n>_<epoch_ms>
    HASH = "hash"                # <doc>_v<n>_<hash[:8]>
    INCREMENTAL = "incremental"  # <doc>_v<n>


class ChangeType(str, Enum):  # noqa: UP042
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class VersioningPolicy(BaseModel):
    """Per-pipeline (or per-call) versioning switches."""

    model_config = ConfigDict(frozen=True)

    enabled: bool = False
    strategy: VersionStrategy = VersionStrategy.TIMESTAMP
    # Oldest versions beyond this count are trimmed after each append.
    max_versions: int | None = None
    track_changes: bool = True


class ChangeInfo(BaseModel):
    """Optional caller-supplied description of a change."""

    model_config = ConfigDict(frozen=True)

    change_type: ChangeType | None = None
    reason: str | None = None
    author: str | None = None


class Version(BaseModel):
    """Immutable, time-windowed snapshot of one logical document.

    ``valid_to`` is ``None`` while the version is current and is back-filled
    with the successor's ``valid_from`` when superseded.
    """

    model_config = ConfigDict(frozen=True)

    version_id: str
    document_id: str
    version_number: int = Field(ge=1)
    created_at: datetime = Field(default_factory=utc_now)
    content_hash: str
    unit: TextUnit
    valid_from: datetime = Field(default_factory=utc_now)
    valid_to: datetime | None = None
    change_type: ChangeType = ChangeType.CREATE
    change_reason: str | None = None
    created_by: str | None = None
    previous_version_id: str | None = None

    @property
    def is_current(self) -> bool:
        return self.valid_to is None

    def contains(self, instant: datetime, now: datetime | None = None) -> bool:
        """Return ``True`` if *instant* falls in ``[valid_from, valid_to)``.

        An open ``valid_to`` is treated as *now* (inclusive, so a lookup at
        the current instant still finds the current version).
        """
        if instant < self.valid_from:
            return False
        if self.valid_to is None:
            return instant <= (now or utc_now())
        return instant < self.valid_to


class ContentDiff(BaseModel):
    model_config = ConfigDict(frozen=True)

    added: list[str] = Field(default_factory=list)
    removed: list[str] = Field(default_factory=list)
    modified: list[str] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.added or self.removed or self.modified)


class MetadataDiff(BaseModel):
    model_config = ConfigDict(frozen=True)

    # key -> value for keys present on only one side.
    added: dict[str, Any] = Field(default_factory=dict)
    removed: dict[str, Any] = Field(default_factory=dict)
    # key -> {"old": ..., "new": ...}
    modified: dict[str, dict[str, Any]] = Field(default_factory=dict)

    @property
    def is_empty(self) -> bool:
        return not (self.added or self.removed or self.modified)


class ChangeStats(BaseModel):
    model_config = ConfigDict(frozen=True)

    content_changes: int = 0
    metadata_changes: int = 0
    total_changes: int = 0


class VersionComparison(BaseModel):
    """Result of ``compare_versions``: diffs plus a similarity in ``[0, 1]``."""

    model_config = ConfigDict(frozen=True)

    version_a: Version
    version_b: Version
    content_diff: ContentDiff = Field(default_factory=ContentDiff)
    metadata_diff: MetadataDiff = Field(default_factory=MetadataDiff)
    similarity: float = Field(ge=0.0, le=1.0)
    change_stats: ChangeStats = Field(default_factory=ChangeStats)


class VersionedDocumentStats(BaseModel):
    """Aggregate history statistics for one logical document."""

    model_config = ConfigDict(frozen=True)

    document_id: str
    total_versions: int
    current_version_id: str | None = None
    average_seconds_between_versions: float = 0.0
    most_frequent_change_type: ChangeType | None = None
    unique_contributors: int = 0
    total_bytes: int = 0
