"""Concrete adapters for docweave's interfaces."""
