"""Toolchain cache APIs."""

from .keys import entry_segments, tree_digest
from .store import CacheLookup, ToolchainCache

__all__ = ["CacheLookup", "ToolchainCache", "entry_segments", "tree_digest"]
