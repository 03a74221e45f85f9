"""Built-in text transforms registered by every :class:`TransformationComposer`.

Each transform is a pure ``TextUnit -> TextUnit`` function: it never edits
its input and always returns a new unit carrying a marker key in metadata
(``whitespace_normalized``, ``cleaned``, ...).  The patterns below are
compiled once at import time.
"""

from __future__ import annotations

import re
import unicodedata
import uuid
from collections import Counter
from typing import Callable

from docweave.models.document import TextUnit
from docweave.models.versioning import utc_now

TransformFn = Callable[[TextUnit], TextUnit]

# Anything outside word characters, whitespace and basic punctuation.
_SPECIAL_CHARS = re.compile(r"[^\w\s.,!?;:\-'\"]")

_ANY_WHITESPACE = re.compile(r"\s+")

_MULTI_SPACE = re.compile(r" {2,}")

# Collapse 3+ newlines to double-newline (preserves paragraph breaks)
_MULTI_NEWLINE = re.compile(r"\n{3,}")

_DOUBLE_QUOTES = re.compile(r"[“”„«»]")
_SINGLE_QUOTES = re.compile(r"[‘’‚]")
_DASHES = re.compile(r"[–—]")

# Trimmed lines seen more often than this are treated as running headers/footers.
_HEADER_FOOTER_MIN_REPEATS = 3

_LANGUAGE_MARKERS: dict[str, tuple[str, list[str]]] = {
    "en": ("English", ["the", "and", "of", "to", "in", "is", "that"]),
    "es": ("Spanish", ["el", "la", "de", "que", "en", "los", "las"]),
    "fr": ("French", ["le", "de", "la", "et", "les", "des", "que"]),
    "de": ("German", ["der", "die", "das", "und", "den", "des", "dem"]),
}


def normalize_whitespace(unit: TextUnit) -> TextUnit:
    """Tabs to spaces, collapse space runs and 3+ newlines, trim every line."""
    content = unit.content.replace("\t", " ")
    content = _MULTI_SPACE.sub(" ", content)
    content = _MULTI_NEWLINE.sub("\n\n", content)
    content = "\n".join(line.strip() for line in content.split("\n"))
    return unit.with_content(content, whitespace_normalized=True)


def normalize_unicode(unit: TextUnit) -> TextUnit:
    """NFC-normalize and fold typographic quotes, dashes and ellipses to ASCII."""
    content = unicodedata.normalize("NFC", unit.content)
    content = _DOUBLE_QUOTES.sub('"', content)
    content = _SINGLE_QUOTES.sub("'", content)
    content = _DASHES.sub("-", content)
    content = content.replace("…", "...")
    return unit.with_content(content, unicode_normalized=True)


def clean_text(unit: TextUnit) -> TextUnit:
    """Strip special characters and collapse all whitespace to single spaces."""
    content = _SPECIAL_CHARS.sub("", unit.content)
    content = _ANY_WHITESPACE.sub(" ", content).strip()
    return unit.with_content(content, cleaned=True, cleaned_at=utc_now().isoformat())


def lowercase(unit: TextUnit) -> TextUnit:
    return unit.with_content(unit.content.lower(), lowercased=True)


def remove_headers_footers(unit: TextUnit) -> TextUnit:
    """Drop lines that repeat more than three times (page headers, footers)."""
    lines = unit.content.split("\n")
    frequency = Counter(line.strip() for line in lines if line.strip())
    frequent = {line for line, count in frequency.items() if count > _HEADER_FOOTER_MIN_REPEATS}
    kept = [line for line in lines if line.strip() not in frequent]
    return unit.with_content(
        "\n".join(kept),
        headers_footers_removed=True,
        removed_lines=len(frequent),
    )


def add_timestamp(unit: TextUnit) -> TextUnit:
    now = utc_now()
    return unit.with_metadata(processed_at=now.isoformat(), processing_date=now.date().isoformat())


def add_document_id(unit: TextUnit) -> TextUnit:
    """Mint ``document_id`` unless the unit already carries one."""
    if unit.document_id:
        return unit.with_metadata()
    return unit.with_metadata(document_id=f"doc_{uuid.uuid4().hex}")


def add_source_info(unit: TextUnit) -> TextUnit:
    source = unit.metadata.get("source")
    return unit.with_metadata(
        source=source if source is not None else "unknown",
        source_type=unit.metadata.get("source_type") or "document",
        content_length=len(unit.content),
        word_count=len(unit.content.split()),
    )


def detect_language(unit: TextUnit) -> TextUnit:
    """Guess the language from stop-word frequency (en/es/fr/de)."""
    words = Counter(re.findall(r"\b\w+\b", unit.content.lower()))
    scores = {
        code: sum(words[marker] for marker in markers)
        for code, (_, markers) in _LANGUAGE_MARKERS.items()
    }
    code, score = max(scores.items(), key=lambda item: item[1])
    if score == 0:
        return unit.with_metadata(language="Unknown", language_code="unknown", language_confidence="low")
    return unit.with_metadata(
        language=_LANGUAGE_MARKERS[code][0],
        language_code=code,
        language_confidence="high" if score > 10 else "low",
    )


def analyze_structure(unit: TextUnit) -> TextUnit:
    """Flag headings, lists, code blocks, tables and links; count paragraphs."""
    content = unit.content
    structure = {
        "has_headings": bool(re.search(r"^#+\s", content, re.MULTILINE) or re.search(r"<h[1-6]>", content, re.I)),
        "has_lists": bool(re.search(r"^\s*(?:[*\-+]|\d+\.)\s", content, re.MULTILINE)),
        "has_code_blocks": "```" in content or "<code>" in content.lower(),
        "has_tables": bool(re.search(r"\|.*\|.*\|", content)) or "<table" in content.lower(),
        "has_links": bool(re.search(r"\[.*?\]\(.*?\)", content)) or "<a href=" in content.lower(),
        "paragraph_count": len([p for p in re.split(r"\n\n+", content) if p.strip()]),
        "estimated_reading_minutes": -(-len(content.split()) // 200),
    }
    return unit.with_metadata(structure=structure)


BUILTIN_TRANSFORMS: dict[str, tuple[TransformFn, str, str]] = {
    "whitespace-normalizer": (normalize_whitespace, "Normalizes whitespace and line breaks", "preprocessing"),
    "unicode-normalizer": (normalize_unicode, "NFC normalization and ASCII punctuation folding", "preprocessing"),
    "text-cleaner": (clean_text, "Removes special characters and collapses whitespace", "preprocessing"),
    "lowercase": (lowercase, "Lowercases content", "preprocessing"),
    "header-footer-remover": (remove_headers_footers, "Removes repeated header/footer lines", "preprocessing"),
    "add-timestamp": (add_timestamp, "Adds processing timestamps", "enrichment"),
    "add-document-id": (add_document_id, "Adds a document id when missing", "enrichment"),
    "add-source-info": (add_source_info, "Adds source, length and word count", "enrichment"),
    "language-detector": (detect_language, "Detects document language", "enrichment"),
    "structure-analyzer": (analyze_structure, "Analyzes document structure", "enrichment"),
}
