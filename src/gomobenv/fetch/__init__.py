"""Integrity-checked artifact retrieval."""

from .archive import extract
from .http import download

__all__ = ["download", "extract"]
