"""Plain-text file loader.

Reads UTF-8 text files (plain text, Markdown, HTML, JSON, CSV) into a single
:class:`TextUnit` each.  The detected format is stored in the unit's
``format`` metadata so the chunker can pick format-aware separators.
File reads run in a worker thread via ``asyncio.to_thread``.
"""

from __future__ import annotations

import asyncio
from pathlib import Path

import structlog

from docweave.interfaces.document_loader import IDocumentLoader, LoaderValidation, LoadResult
from docweave.models.document import TextUnit
from docweave.utils.errors import ValidationError

logger = structlog.get_logger(logger_name=__name__)

_FORMATS: dict[str, str] = {
    ".txt": "text",
    ".text": "text",
    ".md": "markdown",
    ".markdown": "markdown",
    ".html": "html",
    ".htm": "html",
    ".json": "json",
    ".csv": "csv",
}


class TextFileLoader(IDocumentLoader):
    """Loads text files from the local filesystem.

    Parameters
    ----------
    max_bytes:
        Files larger than this are rejected.
    encoding:
        Text encoding used to decode file contents.
    """

    def __init__(self, max_bytes: int = 10 * 1024 * 1024, encoding: str = "utf-8") -> None:
        self._max_bytes = max_bytes
        self._encoding = encoding

    # ------------------------------------------------------------------
    # IDocumentLoader implementation
    # ------------------------------------------------------------------

    async def load(self, source: str) -> LoadResult:
        validation = await self.validate(source)
        if not validation.ok:
            raise ValidationError("; ".join(validation.errors), component="loader")

        path = Path(source)
        try:
            content = await asyncio.to_thread(path.read_text, encoding=self._encoding)
        except UnicodeDecodeError as exc:
            raise ValidationError(
                f"Cannot decode {path.name} as {self._encoding}: {exc.reason} at byte {exc.start}",
                component="loader",
            ) from exc
        unit = TextUnit(
            content=content,
            metadata={
                "source": str(path),
                "filename": path.name,
                "format": validation.detected_format,
                "size_bytes": path.stat().st_size,
            },
        )
        logger.debug("document_loaded", source=str(path), characters=len(content))
        return LoadResult(units=[unit], metadata={"loader": "text_file", "source": str(path)})

    async def validate(self, source: str) -> LoaderValidation:
        path = Path(source)
        errors: list[str] = []
        detected = await self.detect_format(source)

        if not path.is_file():
            errors.append(f"File not found: {source}")
        else:
            if detected is None:
                errors.append(f"Unsupported file type: {path.suffix or '(none)'}")
            if path.stat().st_size > self._max_bytes:
                errors.append(f"File too large: {path.stat().st_size:,} bytes")

        return LoaderValidation(ok=not errors, errors=errors, detected_format=detected)

    async def detect_format(self, source: str) -> str | None:
        return _FORMATS.get(Path(source).suffix.lower())
