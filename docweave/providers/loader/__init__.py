"""Document loader providers."""

from docweave.providers.loader.text_file_loader import TextFileLoader

__all__ = ["TextFileLoader"]
