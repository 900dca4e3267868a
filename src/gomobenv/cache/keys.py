"""Cache key and tree digest derivation."""

from __future__ import annotations

import hashlib
import os
import re
from pathlib import Path
from typing import Any

from gomobenv.models import ToolchainSpec

SAFE_SEGMENT = re.compile(r"[^A-Za-z0-9_.-]+")


def entry_segments(name: str, version: str) -> tuple[str, str]:
    return SAFE_SEGMENT.sub("_", name), SAFE_SEGMENT.sub("_", version)


def tree_digest(root: str | Path) -> str:
    """Digest of the relative paths, kinds and sizes under *root*.

    File contents are not hashed; the artifact is verified before extraction.
    """
    base = Path(root)
    digest = hashlib.sha256()
    for dirpath, dirnames, filenames in os.walk(base):
        dirnames.sort()
        current = Path(dirpath)
        for name in sorted(filenames + [d for d in dirnames if (current / d).is_symlink()]):
            path = current / name
            rel = path.relative_to(base).as_posix()
            if path.is_symlink():
                entry = f"{rel}\0link\0{os.readlink(path)}"
            else:
                entry = f"{rel}\0file\0{path.stat().st_size}"
            digest.update(entry.encode("utf-8"))
            digest.update(b"\n")
    return digest.hexdigest()


def spec_payload(spec: ToolchainSpec) -> dict[str, Any]:
    return {
        "name": spec.name,
        "version": spec.version,
        "source": spec.source,
        "url": spec.url,
        "module": spec.module,
        "sha256": spec.sha256,
    }
