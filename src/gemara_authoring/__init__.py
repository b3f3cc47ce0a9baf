"""Gemara authoring: validated storage and cross-layer lookups for Gemara artifacts."""

__version__ = "0.1.0"
