"""Shared test fixtures."""

from __future__ import annotations

import hashlib
import io
import tarfile
import zipfile
from collections.abc import Callable, Mapping
from pathlib import Path

import pytest

from gomobenv.config import Layout
from gomobenv.models import ResolvedToolchain, ToolchainSpec

FileTree = Mapping[str, str]
ArchiveFactory = Callable[..., tuple[Path, str]]


def _write_tool(path: Path, script: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("#!/bin/sh\n" + script, encoding="utf-8")
    path.chmod(0o755)
    return path


def _mode_for(name: str) -> int:
    return 0o755 if "/bin/" in f"/{name}" else 0o644


@pytest.fixture
def write_tool() -> Callable[[Path, str], Path]:
    """Write an executable POSIX shell script."""
    return _write_tool


@pytest.fixture
def layout(tmp_path: Path) -> Layout:
    return Layout.under(tmp_path / "home")


@pytest.fixture
def make_tar(tmp_path: Path) -> ArchiveFactory:
    """Build a ``.tar.gz`` from ``{relative path: content}``; files under bin/ are executable."""

    def factory(files: FileTree, *, name: str = "toolchain.tar.gz") -> tuple[Path, str]:
        archive = tmp_path / "archives" / name
        archive.parent.mkdir(parents=True, exist_ok=True)
        with tarfile.open(archive, "w:gz") as bundle:
            for rel, content in sorted(files.items()):
                data = content.encode("utf-8")
                info = tarfile.TarInfo(rel)
                info.size = len(data)
                info.mode = _mode_for(rel)
                bundle.addfile(info, io.BytesIO(data))
        return archive, hashlib.sha256(archive.read_bytes()).hexdigest()

    return factory


@pytest.fixture
def make_zip(tmp_path: Path) -> ArchiveFactory:
    def factory(files: FileTree, *, name: str = "toolchain.zip") -> tuple[Path, str]:
        archive = tmp_path / "archives" / name
        archive.parent.mkdir(parents=True, exist_ok=True)
        with zipfile.ZipFile(archive, "w") as bundle:
            for rel, content in sorted(files.items()):
                info = zipfile.ZipInfo(rel)
                info.external_attr = (0o100000 | _mode_for(rel)) << 16
                bundle.writestr(info, content)
        return archive, hashlib.sha256(archive.read_bytes()).hexdigest()

    return factory


@pytest.fixture
def local_toolchain(tmp_path: Path) -> Callable[..., ResolvedToolchain]:
    """Create an already-verified toolchain directory holding fake tools."""

    def factory(
        name: str,
        tools: Mapping[str, str],
        *,
        provides: tuple[str, ...] = (),
        env: Mapping[str, str] | None = None,
        verified: bool = True,
    ) -> ResolvedToolchain:
        root = tmp_path / "toolchains" / name
        for tool, script in tools.items():
            _write_tool(root / "bin" / tool, script)
        (root / "bin").mkdir(parents=True, exist_ok=True)
        spec = ToolchainSpec(
            name=name,
            version="1.0",
            url_template="file:///unused",
            sha256="0" * 64,
            provides=provides,
            env=dict(env or {}),
        )
        return ResolvedToolchain(spec=spec, path=root, verified=verified)

    return factory
