"""Abstract base class for vector-store service providers.

Defines the contract for storing, querying, and managing embedded text
units.  Implementations may wrap ChromaDB, Qdrant, Pinecone, or any other
vector database; embedding generation is the provider's concern.  The
adapter pattern keeps the indexing layer independent of the chosen backend.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from docweave.models.document import TextUnit


class SearchHit(BaseModel):
    """A single similarity-search result."""

    model_config = ConfigDict(frozen=True)

    content: str
    metadata: dict[str, Any] = Field(default_factory=dict)
    # Higher is more similar.
    score: float = 0.0


class IVectorStoreProvider(ABC):
    """Contract for vector-store services used by the indexing collaborator.

    All query and mutation methods are async to support network-backed stores
    without blocking the event loop.

    **Filter syntax** (passed via the *filters* dict in
    :meth:`similarity_search`) is backend-defined; providers commonly accept
    equality maps such as ``{"source": "report.pdf"}`` and operator maps such
    as ``{"chunk_index": {"$lte": 3}}``.
    """

    @abstractmethod
    async def add_units(self, units: list[TextUnit], collection_name: str) -> int:
        """Embed and store *units* in *collection_name*.

        Returns
        -------
        int
            The number of units successfully added.
        """

    @abstractmethod
    async def similarity_search(
        self,
        query: str,
        limit: int = 5,
        collection_name: str | None = None,
        filters: dict[str, Any] | None = None,
    ) -> list[SearchHit]:
        """Perform a semantic search against the store.

        Parameters
        ----------
        query:
            The natural-language query to embed and search for.
        limit:
            Maximum number of results to return.
        collection_name:
            Collection to search; ``None`` selects the provider default.
        filters:
            Optional metadata filters to narrow the search.

        Returns
        -------
        list[SearchHit]
            Zero or more results ranked by score (descending).
        """

    @abstractmethod
    async def get_collection_info(self, name: str) -> dict[str, Any]:
        """Return provider-reported details (at least ``count``) for *name*."""

    @abstractmethod
    async def delete_collection(self, name: str) -> bool:
        """Delete *name*; return ``True`` if it existed."""
