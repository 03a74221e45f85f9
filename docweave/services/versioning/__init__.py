"""Versioning & diff engine."""

from docweave.services.versioning.diff import content_similarity, diff_content, diff_metadata
from docweave.services.versioning.versioning_service import DEFAULT_POLICY, VersioningService

__all__ = [
    "DEFAULT_POLICY",
    "VersioningService",
    "content_similarity",
    "diff_content",
    "diff_metadata",
]
