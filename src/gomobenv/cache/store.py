"""Toolchain cache store with manifest verification and per-key locking."""

from __future__ import annotations

import json
import os
import shutil
import tempfile
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Literal

from gomobenv.cache.keys import entry_segments, spec_payload, tree_digest
from gomobenv.models import ToolchainSpec

LookupStatus = Literal["hit", "miss", "stale", "corrupt"]

MANIFEST_NAME = "manifest.json"
TREE_NAME = "tree"
STAGING_NAME = ".staging"

LockKey = tuple[str, str, str]

_locks: dict[LockKey, threading.Lock] = {}
_registry_lock = threading.Lock()


def _key_lock(key: LockKey) -> threading.Lock:
    with _registry_lock:
        return _locks.setdefault(key, threading.Lock())


@dataclass(frozen=True, slots=True)
class CacheLookup:
    status: LookupStatus
    path: Path | None = None
    reason: str = ""


class ToolchainCache:
    """Cache of extracted toolchains keyed by ``(name, version)``.

    Entries become visible only through an atomic rename of a fully
    populated staging directory. Key locks are shared by every cache object
    in the process that points at the same root.
    """

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)
        self._lock_root = str(self.root.resolve())

    def entry_path(self, name: str, version: str) -> Path:
        name_segment, version_segment = entry_segments(name, version)
        return self.root / name_segment / version_segment

    @contextmanager
    def locked(self, key: tuple[str, str]) -> Iterator[None]:
        name, version = key
        with _key_lock((self._lock_root, name, version)):
            yield

    def lookup(self, spec: ToolchainSpec) -> CacheLookup:
        entry = self.entry_path(spec.name, spec.version)
        manifest_path = entry / MANIFEST_NAME
        tree = entry / TREE_NAME
        if not entry.exists():
            return CacheLookup(status="miss")
        if not manifest_path.exists() or not tree.is_dir():
            return CacheLookup(status="corrupt", reason="entry is missing its manifest or tree")

        manifest = self._read_manifest(manifest_path)
        if manifest is None:
            return CacheLookup(status="corrupt", reason="manifest is not valid JSON")
        if manifest.get("name") != spec.name or manifest.get("version") != spec.version:
            return CacheLookup(status="corrupt", reason="manifest key mismatch")
        if spec.sha256 and manifest.get("artifact_sha256") != spec.sha256:
            return CacheLookup(status="stale", reason="expected checksum changed")
        if manifest.get("tree_digest") != tree_digest(tree):
            return CacheLookup(status="corrupt", reason="tree listing digest mismatch")
        return CacheLookup(status="hit", path=tree)

    @contextmanager
    def staging(self) -> Iterator[Path]:
        """Yield a private staging directory that is removed unless committed."""
        staging_root = self.root / STAGING_NAME
        staging_root.mkdir(parents=True, exist_ok=True)
        path = Path(tempfile.mkdtemp(prefix="stage-", dir=str(staging_root)))
        try:
            yield path
        finally:
            if path.exists():
                shutil.rmtree(path, ignore_errors=True)

    def commit(self, spec: ToolchainSpec, staged: Path, *, artifact_sha256: str) -> Path:
        """Register the ``tree`` directory under *staged* as the entry for *spec*."""
        tree = staged / TREE_NAME
        manifest = {
            "name": spec.name,
            "version": spec.version,
            "spec": spec_payload(spec),
            "artifact_sha256": artifact_sha256,
            "tree_digest": tree_digest(tree),
        }
        (staged / MANIFEST_NAME).write_text(
            json.dumps(manifest, indent=2, sort_keys=True) + "\n",
            encoding="utf-8",
        )
        entry = self.entry_path(spec.name, spec.version)
        entry.parent.mkdir(parents=True, exist_ok=True)
        if entry.exists():
            existing = self.lookup(spec)
            if existing.status == "hit" and existing.path is not None:
                # Published meanwhile by another process; keep it, staging is dropped.
                return existing.path
            shutil.rmtree(entry)
        os.replace(staged, entry)
        return entry / TREE_NAME

    def evict(self, name: str, version: str) -> bool:
        with self.locked((name, version)):
            return self.discard(name, version)

    def discard(self, name: str, version: str) -> bool:
        """Remove an entry; the caller must hold the key lock."""
        entry = self.entry_path(name, version)
        if not entry.exists():
            return False
        shutil.rmtree(entry)
        return True

    def entries(self) -> list[tuple[str, str]]:
        found: list[tuple[str, str]] = []
        for manifest_path in sorted(self.root.glob(f"*/*/{MANIFEST_NAME}")):
            if manifest_path.parts[-3] == STAGING_NAME:
                continue
            manifest = self._read_manifest(manifest_path)
            if manifest is None:
                continue
            name, version = manifest.get("name"), manifest.get("version")
            if isinstance(name, str) and isinstance(version, str):
                found.append((name, version))
        return found

    def _read_manifest(self, path: Path) -> dict[str, object] | None:
        try:
            parsed = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError):
            return None
        if not isinstance(parsed, dict):
            return None
        return parsed
