"""Abstract base class for version storage backends.

The store holds two structures that must stay consistent with each other:
the ``document_id -> [Version]`` history (oldest first) and the
``content_hash -> document_id`` reverse index.  Implementations update both
in the same critical section.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from docweave.models.versioning import Version


class IVersionStore(ABC):
    """Contract for the versioning engine's persistence layer."""

    @abstractmethod
    def get_history(self, document_id: str) -> list[Version]:
        """Return a copy of *document_id*'s versions, oldest first (empty if unknown)."""

    @abstractmethod
    def append(self, version: Version, supersede: Version | None = None) -> None:
        """Append *version* and index its hash.

        If *supersede* is given it replaces the stored entry with the same
        ``version_id`` (used to back-fill ``valid_to`` on the predecessor)
        in the same critical section as the append.
        """

    @abstractmethod
    def remove_oldest(self, document_id: str, count: int) -> list[Version]:
        """Drop the *count* oldest versions, un-indexing orphaned hashes.

        Returns the removed versions, oldest first.
        """

    @abstractmethod
    def find_by_hash(self, content_hash: str) -> str | None:
        """Return the document id last indexed under *content_hash*, if any."""

    @abstractmethod
    def list_documents(self) -> list[str]:
        """Return every document id with at least one version."""

    @abstractmethod
    def clear(self) -> None:
        """Remove every document and index entry."""
