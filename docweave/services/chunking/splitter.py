"""Recursive separator-based text splitter with exact overlap.

The splitter works on offsets into the source string rather than on copied
fragments, which keeps the overlap exact:

1. **Split** -- the text is cut at the first separator that occurs in it
   (separators stay attached to the piece they end).  Pieces still longer
   than the stride (``chunk_size - chunk_overlap``) are split again with the
   remaining separators.  When no separator is left the piece is cut into
   single characters, so the merge step below degrades to hard slices at
   stride intervals.

2. **Merge** -- pieces are packed greedily.  The first chunk may hold up to
   ``chunk_size``; every later chunk holds up to ``stride`` new text,
   preceded by the last ``chunk_overlap`` characters of the text before it.

Dropping the trailing ``chunk_overlap`` characters of every chunk except the
last and concatenating the results reproduces the input exactly.
"""

from __future__ import annotations

from typing import Callable, NamedTuple, Sequence

from docweave.models.chunking import DEFAULT_SEPARATORS
from docweave.utils.errors import ValidationError

LengthFunction = Callable[[str], int]


class TextSpan(NamedTuple):
    """One chunk: its offset in the source and its text."""

    start: int
    text: str


class _Piece(NamedTuple):
    start: int
    end: int
    # Length of the separator that terminates this piece (0 if none).
    sep_len: int


class RecursiveTextSplitter:
    """Split text into overlapping chunks bounded by a length function.

    Parameters
    ----------
    chunk_size:
        Maximum chunk length as measured by *length_function*.  Values below
        one are clamped to one.
    chunk_overlap:
        Length repeated between adjacent chunks; must satisfy
        ``0 <= chunk_overlap < chunk_size``.
    separators:
        Ordered separators, highest priority first.  Empty strings are
        ignored (character slicing is always the last resort).
    keep_separator:
        When ``False`` the separator ending a chunk is dropped from its text.
    length_function:
        Measures text length; ``len`` counts characters.  Any other function
        (e.g. a token counter) switches overlap to whole-piece granularity.
    """

    def __init__(
        self,
        chunk_size: int = 1000,
        chunk_overlap: int = 200,
        separators: Sequence[str] | None = None,
        keep_separator: bool = True,
        length_function: LengthFunction = len,
    ) -> None:
        self._chunk_size = max(1, int(chunk_size))
        if chunk_overlap < 0 or chunk_overlap >= self._chunk_size:
            raise ValidationError(
                f"chunk_overlap must be in [0, {self._chunk_size}), got {chunk_overlap}",
                component="chunking",
            )
        self._overlap = int(chunk_overlap)
        self._stride = self._chunk_size - self._overlap
        self._separators = [s for s in (separators if separators is not None else DEFAULT_SEPARATORS) if s]
        self._keep_separator = keep_separator
        self._length = length_function

    @property
    def chunk_size(self) -> int:
        return self._chunk_size

    @property
    def chunk_overlap(self) -> int:
        return self._overlap

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def split_text(self, text: str) -> list[str]:
        return [span.text for span in self.split_spans(text)]

    def split_spans(self, text: str) -> list[TextSpan]:
        """Split *text* and return each chunk with its start offset."""
        if not text:
            return []
        if self._length(text) <= self._chunk_size:
            return [TextSpan(0, text)]

        pieces = self._split(text, 0, len(text), self._separators)
        return self._merge(text, pieces)

    # ------------------------------------------------------------------
    # Recursive splitting
    # ------------------------------------------------------------------

    def _split(self, text: str, start: int, end: int, separators: list[str]) -> list[_Piece]:
        if self._length(text[start:end]) <= self._stride:
            return [_Piece(start, end, 0)]

        for position, separator in enumerate(separators):
            if text.find(separator, start, end) == -1:
                continue
            remaining = separators[position + 1 :]
            pieces: list[_Piece] = []
            for piece in self._cut(text, start, end, separator):
                if self._length(text[piece.start : piece.end]) > self._stride:
                    sub = self._split(text, piece.start, piece.end, remaining)
                    # The terminating separator stays with the last sub-piece.
                    if sub and piece.sep_len:
                        last = sub[-1]
                        sub[-1] = _Piece(last.start, last.end, piece.sep_len)
                    pieces.extend(sub)
                else:
                    pieces.append(piece)
            return pieces

        return [_Piece(i, i + 1, 0) for i in range(start, end)]

    @staticmethod
    def _cut(text: str, start: int, end: int, separator: str) -> list[_Piece]:
        pieces: list[_Piece] = []
        pos = start
        while True:
            index = text.find(separator, pos, end)
            if index == -1:
                break
            cut = index + len(separator)
            pieces.append(_Piece(pos, cut, len(separator)))
            pos = cut
        if pos < end:
            pieces.append(_Piece(pos, end, 0))
        return pieces

    # ------------------------------------------------------------------
    # Greedy merge
    # ------------------------------------------------------------------

    def _merge(self, text: str, pieces: list[_Piece]) -> list[TextSpan]:
        spans: list[TextSpan] = []
        index = 0
        first = True

        while index < len(pieces):
            new_start = pieces[index].start
            budget = self._chunk_size if first else self._stride
            last = index
            # Always take at least one piece.
            while (
                last + 1 < len(pieces)
                and self._length(text[new_start : pieces[last + 1].end]) <= budget
            ):
                last += 1

            chunk_start = new_start if first else self._overlap_start(text, pieces, index)
            chunk_end = pieces[last].end
            if not self._keep_separator and last + 1 < len(pieces):
                chunk_end -= pieces[last].sep_len
            spans.append(TextSpan(chunk_start, text[chunk_start:chunk_end]))

            index = last + 1
            first = False

        return spans

    def _overlap_start(self, text: str, pieces: list[_Piece], index: int) -> int:
        """Return where the chunk beginning at ``pieces[index]`` should start."""
        new_start = pieces[index].start
        if self._overlap == 0:
            return new_start
        if self._length is len:
            return max(0, new_start - self._overlap)

        start = new_start
        back = index - 1
        while back >= 0 and self._length(text[pieces[back].start : new_start]) <= self._overlap:
            start = pieces[back].start
            back -= 1
        return start
