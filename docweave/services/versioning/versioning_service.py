"""Versioning & diff engine.

Stores immutable :class:`~docweave.models.versioning.Version` snapshots of
logical documents, deduplicates by content hash, answers point-in-time
queries over validity windows, compares versions, rolls back, and prunes.

Invariants kept by :meth:`VersioningService.create_version`:

* per document at most one version has ``valid_to is None``;
* version numbers are ``1, 2, 3, ...`` in append order with no gaps
  (pruning removes from the front, so the numbers left are still contiguous);
* a unit whose hash equals the current version's hash creates nothing.

The read-decide-append sequence runs under a service-level lock; the store
additionally keeps its history map and hash index consistent on its own.
"""

from __future__ import annotations

import threading
import uuid
from collections import Counter
from datetime import datetime

import structlog

from docweave.interfaces.version_store import IVersionStore
from docweave.models.document import TextUnit
from docweave.models.versioning import (
    ChangeInfo,
    ChangeStats,
    ChangeType,
    Version,
    VersionComparison,
    VersionedDocumentStats,
    VersioningPolicy,
    VersionStrategy,
    utc_now,
)
from docweave.providers.version_store.memory_version_store import InMemoryVersionStore
from docweave.services.versioning.diff import content_similarity, diff_content, diff_metadata
from docweave.utils.errors import (
    DocumentNotFoundError,
    VersionNotFoundError,
    VersioningDisabledError,
    VersionsNotFoundError,
)
from docweave.utils.logging import get_logger

# Used by rollback and when no policy is passed.
DEFAULT_POLICY = VersioningPolicy(enabled=True, strategy=VersionStrategy.TIMESTAMP)


class VersioningService:
    """Content-addressed version history for logical documents.

    Parameters
    ----------
    store:
        Persistence backend.  Defaults to a fresh :class:`InMemoryVersionStore`.
    default_policy:
        Policy applied when :meth:`create_version` is called without one.
    """

    def __init__(
        self,
        store: IVersionStore | None = None,
        default_policy: VersioningPolicy | None = None,
    ) -> None:
        self._store = store or InMemoryVersionStore()
        self._default_policy = default_policy or DEFAULT_POLICY
        self._lock = threading.RLock()
        self._logger: structlog.BoundLogger = get_logger(__name__)

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    def create_version(
        self,
        unit: TextUnit,
        policy: VersioningPolicy | None = None,
        change: ChangeInfo | None = None,
        document_id: str | None = None,
    ) -> Version:
        """Snapshot *unit* as the next version of its logical document.

        Parameters
        ----------
        unit:
            The text unit to snapshot.
        policy:
            Versioning policy; defaults to the service's default policy.
        change:
            Optional change type, reason and author.
        document_id:
            Explicit logical document id.  When omitted the id is taken from
            ``unit.metadata["document_id"]``, else from the hash index, else
            a new ``doc_<uuid>`` is minted.

        Returns
        -------
        Version
            The new version, or the existing current version when the unit's
            hash equals it.

        Raises
        ------
        VersioningDisabledError
            If *policy* is disabled.
        """
        policy = policy or self._default_policy
        content_hash = unit.content_hash
        if not policy.enabled:
            raise VersioningDisabledError(component="versioning")

        with self._lock:
            doc_id = self._resolve_document_id(unit, content_hash, document_id)
            history = self._store.get_history(doc_id)
            current = history[-1] if history else None

            if current is not None and current.content_hash == content_hash:
                self._logger.debug(
                    "duplicate_version_skipped",
                    document_id=doc_id,
                    version_id=current.version_id,
                )
                return current

            now = utc_now()
            number = current.version_number + 1 if current is not None else 1
            change = change or ChangeInfo()
            version = Version(
                version_id=self._version_id(doc_id, number, policy.strategy, content_hash, now),
                document_id=doc_id,
                version_number=number,
                created_at=now,
                content_hash=content_hash,
                unit=unit,
                valid_from=now,
                valid_to=None,
                change_type=change.change_type
                or (ChangeType.UPDATE if current is not None else ChangeType.CREATE),
                change_reason=change.reason,
                created_by=change.author,
                previous_version_id=current.version_id if current is not None else None,
            )
            closed = current.model_copy(update={"valid_to": now}) if current is not None else None
            self._store.append(version, supersede=closed)

            if policy.max_versions is not None and policy.max_versions > 0:
                excess = len(history) + 1 - policy.max_versions
                if excess > 0:
                    self._store.remove_oldest(doc_id, excess)

        self._logger.info(
            "version_created",
            document_id=doc_id,
            version_id=version.version_id,
            version_number=number,
            change_type=version.change_type.value,
        )
        return version

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def get_version(self, document_id: str, version_id: str | None = None) -> Version | None:
        """Return the current version, or the version with *version_id*, or ``None``."""
        history = self._store.get_history(document_id)
        if not history:
            return None
        if version_id is None:
            return history[-1]
        return next((v for v in history if v.version_id == version_id), None)

    def get_version_history(self, document_id: str, limit: int | None = None) -> list[Version]:
        """Return versions most recent first, optionally truncated to *limit*."""
        versions = list(reversed(self._store.get_history(document_id)))
        return versions[:limit] if limit else versions

    def get_version_by_timestamp(self, document_id: str, instant: datetime) -> Version | None:
        """Return the version whose validity window contains *instant*."""
        now = utc_now()
        for version in self._store.get_history(document_id):
            if version.contains(instant, now=now):
                return version
        return None

    def find_document_by_hash(self, content_hash: str) -> str | None:
        return self._store.find_by_hash(content_hash)

    def list_documents(self) -> list[str]:
        return self._store.list_documents()

    # ------------------------------------------------------------------
    # Compare / rollback / prune
    # ------------------------------------------------------------------

    def compare_versions(self, document_id: str, version_a: str, version_b: str) -> VersionComparison:
        """Diff two versions of one document.

        Raises
        ------
        VersionsNotFoundError
            If either version does not exist.
        """
        a = self.get_version(document_id, version_a)
        b = self.get_version(document_id, version_b)
        if a is None or b is None:
            raise VersionsNotFoundError(component="versioning")

        content = diff_content(a.unit.content, b.unit.content)
        metadata = diff_metadata(a.unit.metadata, b.unit.metadata)
        content_changes = len(content.added) + len(content.removed) + len(content.modified)
        metadata_changes = len(metadata.added) + len(metadata.removed) + len(metadata.modified)

        return VersionComparison(
            version_a=a,
            version_b=b,
            content_diff=content,
            metadata_diff=metadata,
            similarity=content_similarity(a.unit.content, b.unit.content),
            change_stats=ChangeStats(
                content_changes=content_changes,
                metadata_changes=metadata_changes,
                total_changes=content_changes + metadata_changes,
            ),
        )

    def rollback_to_version(
        self,
        document_id: str,
        version_id: str,
        author: str | None = None,
    ) -> Version:
        """Append a new version whose unit equals *version_id*'s unit.

        History is never rewritten.  Rolling back to content identical to the
        current version returns the current version.

        Raises
        ------
        VersionNotFoundError
            If *version_id* is not in the document's history.
        """
        target = self.get_version(document_id, version_id)
        if target is None:
            raise VersionNotFoundError(f"Version {version_id} not found", component="versioning")

        version = self.create_version(
            target.unit,
            DEFAULT_POLICY,
            ChangeInfo(
                change_type=ChangeType.UPDATE,
                reason=f"Rollback to version {version_id}",
                author=author,
            ),
            document_id=document_id,
        )
        self._logger.info("version_rollback", document_id=document_id, target=version_id)
        return version

    def prune_versions(self, document_id: str, keep: int) -> int:
        """Remove the oldest versions beyond *keep*; return how many were removed.

        *keep* is clamped to at least one, so the current version always
        survives. Unknown documents and short histories return ``0``.
        """
        with self._lock:
            total = len(self._store.get_history(document_id))
            if total == 0:
                return 0
            keep = max(1, keep)
            if total <= keep:
                return 0
            removed = self._store.remove_oldest(document_id, total - keep)

        self._logger.info("versions_pruned", document_id=document_id, removed=len(removed))
        return len(removed)

    # ------------------------------------------------------------------
    # Stats
    # ------------------------------------------------------------------

    def get_document_stats(self, document_id: str) -> VersionedDocumentStats:
        """Aggregate statistics over a document's retained history.

        Raises
        ------
        DocumentNotFoundError
            If the document has no versions.
        """
        versions = self._store.get_history(document_id)
        if not versions:
            raise DocumentNotFoundError(f"Document {document_id} not found", component="versioning")

        gaps = [
            (later.created_at - earlier.created_at).total_seconds()
            for earlier, later in zip(versions, versions[1:])
        ]
        change_types = Counter(v.change_type for v in versions)
        contributors = {v.created_by for v in versions if v.created_by}

        return VersionedDocumentStats(
            document_id=document_id,
            total_versions=len(versions),
            current_version_id=versions[-1].version_id,
            average_seconds_between_versions=sum(gaps) / len(gaps) if gaps else 0.0,
            most_frequent_change_type=change_types.most_common(1)[0][0],
            unique_contributors=len(contributors),
            total_bytes=sum(len(v.unit.content.encode("utf-8")) for v in versions),
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _resolve_document_id(self, unit: TextUnit, content_hash: str, explicit: str | None) -> str:
        if explicit:
            return explicit
        if unit.document_id:
            return unit.document_id
        indexed = self._store.find_by_hash(content_hash)
        if indexed:
            return indexed
        return f"doc_{uuid.uuid4().hex}"

    @staticmethod
    def _version_id(
        document_id: str,
        number: int,
        strategy: VersionStrategy,
        content_hash: str,
        created_at: datetime,
    ) -> str:
        if strategy is VersionStrategy.HASH:
            return f"{document_id}_v{number}_{content_hash[:8]}"
        if strategy is VersionStrategy.INCREMENTAL:
            return f"{document_id}_v{number}"
        return f"{document_id}_v{number}_{int(created_at.timestamp() * 1000)}"
