"""Chunking engine: recursive, semantic, token-count and hierarchical splitting.

Every strategy delegates the actual cutting to
:class:`~docweave.services.chunking.splitter.RecursiveTextSplitter` and then
stamps positional metadata onto each resulting
:class:`~docweave.models.document.TextUnit`:

* ``chunk_index`` / ``total_chunks`` -- position among siblings
* ``chunk_length`` / ``chunk_bytes`` -- characters and UTF-8 bytes
* ``chunking_method`` -- which strategy produced the chunk
* ``start_index`` -- offset of the chunk in the (pre-processed) source
* ``original_document_id`` / ``document_id`` -- ``<source>_chunk_<i>``

The semantic variant normalizes the text first and uses paragraph, heading,
list and sentence separators ahead of the generic ones, then post-processes
the chunks (small-chunk merging, partial-sentence trimming, blank-line
collapsing).  The hierarchical variant runs the splitter twice; children
point at their parent through ``parent_id`` and nothing points the other way.
"""

from __future__ import annotations

import re
from typing import Any, Callable, Sequence

import structlog
from tokenizers import Tokenizer

from docweave.models.chunking import (
    DEFAULT_SEPARATORS,
    ChunkingConfig,
    ChunkingStrategy,
    ChunkMetadataKeys as K,
    HierarchicalChunks,
)
from docweave.models.document import TextUnit
from docweave.services.chunking.splitter import RecursiveTextSplitter, TextSpan

logger = structlog.get_logger(logger_name=__name__)

# Format-specific defaults keyed by ``metadata["format"]``.
_FORMAT_SEPARATORS: dict[str, list[str]] = {
    "markdown": ["\n## ", "\n### ", "\n#### ", "\n\n", "\n", " "],
    "html": ["</div>", "</p>", "</h1>", "</h2>", "</h3>", "<br>", "\n\n", "\n", " "],
    "json": ["}", "]", ",", "\n", " "],
    "csv": ["\n", ",", ";", "\t", " "],
}

_CRLF = re.compile(r"\r\n?")
_HEADING_LINE = re.compile(r"^(#{1,6})\s+(.+)$", re.MULTILINE)
_BULLET_LINE = re.compile(r"^(\s*[-*•])\s+(.+)$", re.MULTILINE)
_NUMBERED_LINE = re.compile(r"^(\s*\d+\.)\s+(.+)$", re.MULTILINE)
_SENTENCE_LINE_BREAK = re.compile(r"([.!?])\n([A-Z])")
_MULTI_NEWLINE = re.compile(r"\n{3,}")
_TRAILING_LINE_SPACE = re.compile(r"[ \t]+$", re.MULTILINE)
_LEADING_LINE_SPACE = re.compile(r"^[ \t]+", re.MULTILINE)
_SENTENCE_END = re.compile(r"[.!?]$")

# A trailing partial sentence is trimmed only when the last full stop falls
# inside the final fifth of the chunk.
_PARTIAL_SENTENCE_WINDOW = 0.8


class TokenCounter:
    """Token length function for ``chunk_by_tokens``.

    Uses a HuggingFace ``tokenizers`` tokenizer when *tokenizer_name* is
    given and loads; otherwise falls back to the ``len(text) // 4`` estimate.
    """

    def __init__(self, tokenizer_name: str | None = None) -> None:
        self._tokenizer = self._load_tokenizer(tokenizer_name) if tokenizer_name else None

    def __call__(self, text: str) -> int:
        if self._tokenizer is not None:
            return len(self._tokenizer.encode(text, add_special_tokens=False).ids)
        return len(text) // 4

    @property
    def is_exact(self) -> bool:
        return self._tokenizer is not None

    @staticmethod
    def _load_tokenizer(name: str) -> Tokenizer | None:
        """Fetch a pretrained tokenizer; ``None`` if it cannot be downloaded."""
        try:
            return Tokenizer.from_pretrained(name)
        except Exception as exc:  # noqa: BLE001
            logger.info(
                "tokenizer_unavailable",
                tokenizer=name,
                error=str(exc),
                msg="Falling back to approximate token counting (len // 4).",
            )
            return None


class TextChunker:
    """Splits text units into chunk units with positional metadata.

    Parameters
    ----------
    default_config:
        Config used when a call does not pass one.
    token_counter:
        Length function for :meth:`chunk_by_tokens` when the caller does not
        supply one.
    """

    def __init__(
        self,
        default_config: ChunkingConfig | None = None,
        token_counter: Callable[[str], int] | None = None,
    ) -> None:
        self._default_config = default_config or ChunkingConfig()
        self._token_counter = token_counter or TokenCounter()

    # ------------------------------------------------------------------
    # Strategies
    # ------------------------------------------------------------------

    def chunk(self, unit: TextUnit, config: ChunkingConfig | None = None) -> list[TextUnit]:
        """Recursive character chunking.

        Separators come from *config*, else from the unit's ``format``
        metadata, else :data:`DEFAULT_SEPARATORS`.
        """
        config = config or self._default_config
        fmt = str(unit.metadata.get("format") or "").lower()
        separators = config.separators or _FORMAT_SEPARATORS.get(fmt, DEFAULT_SEPARATORS)
        splitter = RecursiveTextSplitter(
            chunk_size=config.chunk_size,
            chunk_overlap=config.chunk_overlap,
            separators=separators,
            keep_separator=config.keep_separator,
        )
        method = "markdown" if fmt == "markdown" and not config.separators else "recursive_character"
        chunks = self._build_chunks(unit, splitter.split_spans(unit.content), method, config)
        self._log_chunked(unit, chunks, method)
        return chunks

    def semantic_chunk(self, unit: TextUnit, config: ChunkingConfig | None = None) -> list[TextUnit]:
        """Boundary-aware chunking with a normalizing pre-pass and a cleanup post-pass."""
        config = config or self._default_config
        prepared = self._prepare_semantic(unit.content, config)
        splitter = RecursiveTextSplitter(
            chunk_size=config.chunk_size,
            chunk_overlap=config.chunk_overlap,
            separators=self._semantic_separators(config),
            keep_separator=True,
        )
        spans = self._post_process(splitter.split_spans(prepared), config.min_chunk_size)
        chunks = self._build_chunks(unit, spans, "semantic", config, post_processed=True)
        self._log_chunked(unit, chunks, "semantic")
        return chunks

    def chunk_by_tokens(
        self,
        unit: TextUnit,
        max_tokens: int,
        overlap: int = 0,
        length_function: Callable[[str], int] | None = None,
    ) -> list[TextUnit]:
        """Same contract as :meth:`chunk`, with sizes measured in tokens."""
        config = ChunkingConfig(chunk_size=max_tokens, chunk_overlap=overlap)
        splitter = RecursiveTextSplitter(
            chunk_size=config.chunk_size,
            chunk_overlap=config.chunk_overlap,
            separators=DEFAULT_SEPARATORS,
            length_function=length_function or self._token_counter,
        )
        chunks = self._build_chunks(
            unit,
            splitter.split_spans(unit.content),
            "token",
            config,
            max_tokens=config.chunk_size,
            token_overlap=config.chunk_overlap,
        )
        self._log_chunked(unit, chunks, "token")
        return chunks

    def hierarchical_chunk(
        self,
        unit: TextUnit,
        parent_config: ChunkingConfig,
        child_config: ChunkingConfig,
    ) -> HierarchicalChunks:
        """Split into large parents, then split every parent into children."""
        base_id = self._base_id(unit)
        parent_splitter = RecursiveTextSplitter(
            chunk_size=parent_config.chunk_size,
            chunk_overlap=parent_config.chunk_overlap,
            separators=parent_config.separators or DEFAULT_SEPARATORS,
            keep_separator=parent_config.keep_separator,
        )
        child_splitter = RecursiveTextSplitter(
            chunk_size=child_config.chunk_size,
            chunk_overlap=child_config.chunk_overlap,
            separators=child_config.separators or DEFAULT_SEPARATORS,
            keep_separator=child_config.keep_separator,
        )

        parent_spans = parent_splitter.split_spans(unit.content)
        parents: list[TextUnit] = []
        children: list[TextUnit] = []

        for parent_index, parent_span in enumerate(parent_spans):
            parent_id = f"{base_id}_parent_{parent_index}"
            parents.append(
                TextUnit(
                    content=parent_span.text,
                    metadata={
                        **unit.metadata,
                        **self._position_metadata(
                            parent_span, parent_index, len(parent_spans), "hierarchical", parent_config
                        ),
                        K.ORIGINAL_ID: base_id,
                        "document_id": parent_id,
                        K.LEVEL: 0,
                        K.ROLE: "parent",
                    },
                )
            )

            child_spans = child_splitter.split_spans(parent_span.text)
            for child_index, child_span in enumerate(child_spans):
                absolute = TextSpan(parent_span.start + child_span.start, child_span.text)
                children.append(
                    TextUnit(
                        content=child_span.text,
                        metadata={
                            **unit.metadata,
                            **self._position_metadata(
                                absolute, child_index, len(child_spans), "hierarchical", child_config
                            ),
                            K.ORIGINAL_ID: base_id,
                            "document_id": f"{parent_id}_child_{len(children)}",
                            K.PARENT_ID: parent_id,
                            K.LEVEL: 1,
                            K.ROLE: "child",
                        },
                    )
                )

        logger.debug(
            "hierarchical_chunking_complete",
            document_id=base_id,
            parents=len(parents),
            children=len(children),
        )
        return HierarchicalChunks(parents=parents, children=children)

    def chunk_many(
        self,
        units: Sequence[TextUnit],
        config: ChunkingConfig | None = None,
        strategy: ChunkingStrategy | str = ChunkingStrategy.RECURSIVE,
        child_config: ChunkingConfig | None = None,
        emit: str = "children",
    ) -> list[TextUnit]:
        """Apply one strategy to every unit and concatenate the chunks.

        For ``hierarchical`` the *emit* argument selects ``"children"``,
        ``"parents"`` or ``"both"`` (parents followed by their children).
        """
        strategy = ChunkingStrategy(strategy)
        config = config or self._default_config
        output: list[TextUnit] = []
        for unit in units:
            if strategy is ChunkingStrategy.SEMANTIC:
                output.extend(self.semantic_chunk(unit, config))
            elif strategy is ChunkingStrategy.TOKEN:
                output.extend(self.chunk_by_tokens(unit, config.chunk_size, config.chunk_overlap))
            elif strategy is ChunkingStrategy.HIERARCHICAL:
                if child_config is None:
                    child_size = max(1, config.chunk_size // 4)
                    child_config = ChunkingConfig(
                        chunk_size=child_size,
                        chunk_overlap=min(config.chunk_overlap // 4, child_size - 1),
                    )
                result = self.hierarchical_chunk(unit, config, child_config)
                if emit == "parents":
                    output.extend(result.parents)
                elif emit == "both":
                    for parent in result.parents:
                        output.append(parent)
                        output.extend(result.children_of(str(parent.document_id)))
                else:
                    output.extend(result.children)
            else:
                output.extend(self.chunk(unit, config))
        return output

    # ------------------------------------------------------------------
    # Semantic pre/post processing
    # ------------------------------------------------------------------

    @staticmethod
    def _semantic_separators(config: ChunkingConfig) -> list[str]:
        separators: list[str] = []
        if config.preserve_paragraphs:
            separators += ["\n\n\n", "\n\n"]
        separators += ["\n# ", "\n## ", "\n### ", "\n#### "]
        separators += ["\n• ", "\n- ", "\n* ", "\n1. ", "\n2. ", "\n3. "]
        if config.preserve_sentences:
            separators += [". ", "! ", "? ", ".\n", "!\n", "?\n"]
        separators += ["\n", "; ", ", ", " "]
        return separators

    @staticmethod
    def _prepare_semantic(content: str, config: ChunkingConfig) -> str:
        text = _CRLF.sub("\n", content)
        text = text.replace("\t", "  ")
        text = _HEADING_LINE.sub(r"\n\1 \2\n", text)
        text = _BULLET_LINE.sub(r"\n\1 \2", text)
        text = _NUMBERED_LINE.sub(r"\n\1 \2", text)
        if config.preserve_paragraphs:
            text = _SENTENCE_LINE_BREAK.sub(r"\1\n\n\2", text)
        return text

    def _post_process(self, spans: list[TextSpan], min_size: int) -> list[TextSpan]:
        """Merge undersized chunks into a neighbour and clean each chunk."""
        merged: list[TextSpan] = []
        pending: TextSpan | None = None

        for span in spans:
            text = span.text.strip()
            if not text:
                continue
            if pending is not None:
                span = TextSpan(pending.start, f"{pending.text}\n\n{text}")
                pending = None
            else:
                span = TextSpan(span.start, text)
            if len(span.text) < min_size:
                pending = span
                continue
            merged.append(span)

        if pending is not None:
            if merged:
                previous = merged.pop()
                merged.append(TextSpan(previous.start, f"{previous.text}\n\n{pending.text}"))
            else:
                merged.append(pending)

        return [TextSpan(span.start, self._clean_chunk(span.text)) for span in merged]

    @staticmethod
    def _clean_chunk(text: str) -> str:
        text = _MULTI_NEWLINE.sub("\n\n", text)
        text = _TRAILING_LINE_SPACE.sub("", text)
        text = _LEADING_LINE_SPACE.sub("", text)
        text = text.strip()
        if text and not _SENTENCE_END.search(text):
            last_period = text.rfind(".")
            if last_period > len(text) * _PARTIAL_SENTENCE_WINDOW:
                text = text[: last_period + 1]
        return text

    # ------------------------------------------------------------------
    # Metadata
    # ------------------------------------------------------------------

    @staticmethod
    def _base_id(unit: TextUnit) -> str:
        if unit.document_id:
            return unit.document_id
        source = unit.metadata.get("source")
        if isinstance(source, str) and source:
            return source
        return f"doc_{unit.content_hash[:12]}"

    @staticmethod
    def _position_metadata(
        span: TextSpan,
        index: int,
        total: int,
        method: str,
        config: ChunkingConfig,
    ) -> dict[str, Any]:
        return {
            K.INDEX: index,
            K.TOTAL: total,
            K.LENGTH: len(span.text),
            K.BYTES: len(span.text.encode("utf-8")),
            K.METHOD: method,
            K.SIZE: config.chunk_size,
            K.OVERLAP: config.chunk_overlap,
            K.START: span.start,
        }

    def _build_chunks(
        self,
        unit: TextUnit,
        spans: list[TextSpan],
        method: str,
        config: ChunkingConfig,
        **extra: Any,
    ) -> list[TextUnit]:
        base_id = self._base_id(unit)
        return [
            TextUnit(
                content=span.text,
                metadata={
                    **unit.metadata,
                    **self._position_metadata(span, index, len(spans), method, config),
                    K.ORIGINAL_ID: base_id,
                    "document_id": f"{base_id}_chunk_{index}",
                    **extra,
                },
            )
            for index, span in enumerate(spans)
        ]

    @staticmethod
    def _log_chunked(unit: TextUnit, chunks: list[TextUnit], method: str) -> None:
        logger.debug(
            "chunking_complete",
            method=method,
            num_chunks=len(chunks),
            source_length=len(unit.content),
            document_id=unit.document_id,
        )
