# src/__init__.py — v1
"""docbrief: resumable, checkpointed LLM briefings for object-store catalogs."""

from docbrief.version import __version__

__all__ = ["__version__"]
