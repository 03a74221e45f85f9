"""Default metadata extractor: structural counts and a content checksum.

Needs no model or network access, so it is what ``build_engine`` wires into
``extract`` stages when the host service does not supply its own extractor.
"""

from __future__ import annotations

import hashlib
import re
from typing import Any

from docweave.interfaces.metadata_extractor import IMetadataExtractor
from docweave.models.document import MetadataValue, TextUnit

_SENTENCE_BOUNDARY = re.compile(r"[.!?]+(?:\s|$)")
_PARAGRAPH_BREAK = re.compile(r"\n\s*\n")
_WORD = re.compile(r"\b\w+\b")


class StructuralMetadataExtractor(IMetadataExtractor):
    """Counts characters, words, sentences and paragraphs.

    Config keys (all optional): ``prefix`` (prepended to every key, default
    ``""``) and ``include_checksum`` (default ``True``).
    """

    async def extract(
        self,
        unit: TextUnit,
        config: dict[str, Any] | None = None,
    ) -> dict[str, MetadataValue]:
        config = config or {}
        prefix = str(config.get("prefix", ""))
        content = unit.content
        words = _WORD.findall(content)

        fragments: dict[str, MetadataValue] = {
            "character_count": len(content),
            "word_count": len(words),
            "sentence_count": len(_SENTENCE_BOUNDARY.findall(content)) if content.strip() else 0,
            "paragraph_count": len([p for p in _PARAGRAPH_BREAK.split(content) if p.strip()]),
            "average_word_length": round(sum(len(w) for w in words) / len(words), 2) if words else 0.0,
        }
        if config.get("include_checksum", True):
            fragments["checksum"] = hashlib.sha256(content.encode("utf-8")).hexdigest()
        return {f"{prefix}{key}": value for key, value in fragments.items()}

    def get_extractor_name(self) -> str:
        return "structural"
