"""Public interface definitions for docweave's external collaborators.

Every collaborator the core does not implement itself (format loaders,
vector stores, metadata heuristics, version persistence) is accessed
exclusively through the abstract base classes defined in this package.
Concrete adapters implement these interfaces and are injected at
construction time (see ``docweave/main.py``), so tests can substitute a
mock without touching the engines.

CONCRETE PROVIDER MAP:
    Interface              ->  Concrete implementations
    ---------------------------------------------------------------
    IVersionStore          ->  InMemoryVersionStore (providers/version_store)
    IMetadataExtractor     ->  StructuralMetadataExtractor (services/extraction)
    IDocumentLoader        ->  supplied by the host service
    IVectorStoreProvider   ->  supplied by the host service
"""

from docweave.interfaces.document_loader import IDocumentLoader, LoaderValidation, LoadResult
from docweave.interfaces.metadata_extractor import IMetadataExtractor
from docweave.interfaces.vector_store_provider import IVectorStoreProvider, SearchHit
from docweave.interfaces.version_store import IVersionStore

__all__ = [
    "IDocumentLoader",
    "IMetadataExtractor",
    "IVectorStoreProvider",
    "IVersionStore",
    "LoadResult",
    "LoaderValidation",
    "SearchHit",
]
