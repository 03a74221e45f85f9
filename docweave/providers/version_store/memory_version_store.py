"""In-memory version store.

Simple, fast store suitable for tests and single-process deployments.  Can
be swapped for a durable backend via the IVersionStore interface.  The
history map and the hash index are mutated under one ``threading.Lock`` so
a reader never sees a version whose hash is not yet indexed.
"""

from __future__ import annotations

import threading

import structlog

from docweave.interfaces.version_store import IVersionStore
from docweave.models.versioning import Version

logger = structlog.get_logger(logger_name=__name__)


class InMemoryVersionStore(IVersionStore):
    """Dict-backed :class:`IVersionStore`.

    Parameters
    ----------
    initial:
        Optional pre-populated history, ``{document_id: [Version, ...]}``
        with versions oldest first.
    """

    def __init__(self, initial: dict[str, list[Version]] | None = None) -> None:
        self._lock = threading.Lock()
        self._histories: dict[str, list[Version]] = {}
        self._hash_index: dict[str, str] = {}
        for document_id, versions in (initial or {}).items():
            self._histories[document_id] = list(versions)
            for version in versions:
                self._hash_index[version.content_hash] = document_id

    # ------------------------------------------------------------------
    # IVersionStore implementation
    # ------------------------------------------------------------------

    def get_history(self, document_id: str) -> list[Version]:
        with self._lock:
            return list(self._histories.get(document_id, []))

    def append(self, version: Version, supersede: Version | None = None) -> None:
        with self._lock:
            history = self._histories.setdefault(version.document_id, [])
            if supersede is not None:
                for position, existing in enumerate(history):
                    if existing.version_id == supersede.version_id:
                        history[position] = supersede
                        break
            history.append(version)
            self._hash_index[version.content_hash] = version.document_id
        logger.debug(
            "version_stored",
            document_id=version.document_id,
            version_id=version.version_id,
            total=len(history),
        )

    def remove_oldest(self, document_id: str, count: int) -> list[Version]:
        if count <= 0:
            return []
        with self._lock:
            history = self._histories.get(document_id)
            if not history:
                return []
            removed, kept = history[:count], history[count:]
            self._histories[document_id] = kept
            surviving = {version.content_hash for version in kept}
            for version in removed:
                if (
                    version.content_hash not in surviving
                    and self._hash_index.get(version.content_hash) == document_id
                ):
                    del self._hash_index[version.content_hash]
        logger.debug("versions_removed", document_id=document_id, removed=len(removed))
        return removed

    def find_by_hash(self, content_hash: str) -> str | None:
        with self._lock:
            return self._hash_index.get(content_hash)

    def list_documents(self) -> list[str]:
        with self._lock:
            return [doc_id for doc_id, history in self._histories.items() if history]

    def clear(self) -> None:
        with self._lock:
            self._histories.clear()
            self._hash_index.clear()
