"""Chunking engine: recursive splitter plus strategy front-end."""

from docweave.services.chunking.chunker import TextChunker, TokenCounter
from docweave.services.chunking.splitter import RecursiveTextSplitter, TextSpan

__all__ = ["RecursiveTextSplitter", "TextChunker", "TextSpan", "TokenCounter"]
