"""Metadata extraction collaborators."""

from docweave.services.extraction.enricher import MetadataEnricher
from docweave.services.extraction.structural_extractor import StructuralMetadataExtractor

__all__ = ["MetadataEnricher", "StructuralMetadataExtractor"]
