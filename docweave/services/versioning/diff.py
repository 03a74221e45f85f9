"""Content and metadata diffing plus normalized edit-distance similarity.

Similarity is ``(len(longer) - levenshtein(longer, shorter)) / len(longer)``
with ``1.0`` for identical strings (including two empty strings).  Edit
distance comes from ``rapidfuzz``.
"""

from __future__ import annotations

from typing import Any, Mapping

from rapidfuzz.distance import Levenshtein

from docweave.models.document import canonical_metadata
from docweave.models.versioning import ContentDiff, MetadataDiff


def content_similarity(a: str, b: str) -> float:
    if a == b:
        return 1.0
    longer, shorter = (a, b) if len(a) >= len(b) else (b, a)
    distance = Levenshtein.distance(longer, shorter)
    return (len(longer) - distance) / len(longer)


def diff_content(a: str, b: str) -> ContentDiff:
    """Line-level diff from *a* to *b*.

    ``added``/``removed`` are set differences over lines.  ``modified`` lists
    positions (``"Line <n>"``) where both lines exist on both sides but in
    different places.
    """
    lines_a = a.split("\n")
    lines_b = b.split("\n")
    set_a, set_b = set(lines_a), set(lines_b)

    added = [line for line in lines_b if line not in set_a]
    removed = [line for line in lines_a if line not in set_b]
    modified = [
        f"Line {i + 1}"
        for i, (line_a, line_b) in enumerate(zip(lines_a, lines_b))
        if line_a != line_b and line_b in set_a and line_a in set_b
    ]
    return ContentDiff(added=added, removed=removed, modified=modified)


def diff_metadata(a: Mapping[str, Any], b: Mapping[str, Any]) -> MetadataDiff:
    added = {key: value for key, value in b.items() if key not in a}
    removed = {key: value for key, value in a.items() if key not in b}
    modified = {
        key: {"old": a[key], "new": value}
        for key, value in b.items()
        if key in a and canonical_metadata({"v": a[key]}) != canonical_metadata({"v": value})
    }
    return MetadataDiff(added=added, removed=removed, modified=modified)
