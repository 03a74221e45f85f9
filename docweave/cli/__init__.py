"""Command-line tools for docweave."""
