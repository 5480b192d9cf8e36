"""Folio - a space/page knowledge base with a block editor."""

__version__ = "0.1.0"
