"""Core typed dataclasses for toolchains, environments and build results."""

from __future__ import annotations

import hashlib
import os
import shutil
import weakref
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path
from typing import Literal

import cbor2

from gomobenv.errors import (
    BuildFailure,
    CgoUnsupported,
    Unclassified,
    UnresolvedImport,
    UnsupportedApiLevel,
)

SourceKind = Literal["archive", "go-install"]


class FailureKind(StrEnum):
    """Normalized classification of a failed build invocation."""

    UNSUPPORTED_API_LEVEL = "UnsupportedApiLevel"
    UNRESOLVED_IMPORT = "UnresolvedImport"
    CGO_UNSUPPORTED = "CgoUnsupported"
    UNCLASSIFIED = "Unclassified"


FAILURE_ERRORS: dict[FailureKind, type[BuildFailure]] = {
    FailureKind.UNSUPPORTED_API_LEVEL: UnsupportedApiLevel,
    FailureKind.UNRESOLVED_IMPORT: UnresolvedImport,
    FailureKind.CGO_UNSUPPORTED: CgoUnsupported,
    FailureKind.UNCLASSIFIED: Unclassified,
}


@dataclass(frozen=True, slots=True)
class ToolchainSpec:
    """Pinned description of one toolchain artifact."""

    name: str
    version: str
    url_template: str = ""
    sha256: str = ""
    source: SourceKind = "archive"
    module: str = ""
    home: str = ""
    bin_dirs: tuple[str, ...] = ("bin",)
    env: Mapping[str, str] = field(default_factory=dict)
    provides: tuple[str, ...] = ()

    @property
    def url(self) -> str:
        return self.url_template.format(version=self.version)

    @property
    def key(self) -> tuple[str, str]:
        return (self.name, self.version)

    @property
    def label(self) -> str:
        return f"{self.name}@{self.version}"


@dataclass(frozen=True, slots=True)
class ResolvedToolchain:
    spec: ToolchainSpec
    path: Path
    verified: bool = False

    @property
    def name(self) -> str:
        return self.spec.name

    @property
    def home(self) -> Path:
        if not self.spec.home:
            return self.path
        return self.path / self.spec.home.format(version=self.spec.version)

    @property
    def bin_paths(self) -> tuple[Path, ...]:
        return tuple(self.home / rel for rel in self.spec.bin_dirs)

    def exports(self) -> dict[str, str]:
        return {key: value.format(home=self.home) for key, value in self.spec.env.items()}


@dataclass(eq=False)
class BuildEnvironment:
    """Assembled environment for one build.

    Owns ``scratch_dir``; it is removed on :meth:`release`, when the
    environment leaves a ``with`` block, or when the object is collected.
    """

    toolchains: tuple[ResolvedToolchain, ...]
    search_path: str
    variables: Mapping[str, str]
    scratch_dir: Path | None = None
    _finalizer: weakref.finalize | None = field(default=None, init=False, repr=False)

    def __post_init__(self) -> None:
        if self.scratch_dir is not None:
            self._finalizer = weakref.finalize(
                self, shutil.rmtree, str(self.scratch_dir), ignore_errors=True
            )

    def __enter__(self) -> BuildEnvironment:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.release()

    @property
    def released(self) -> bool:
        return self._finalizer is not None and not self._finalizer.alive

    def release(self) -> None:
        if self._finalizer is not None:
            self._finalizer()

    def process_env(self, base: Mapping[str, str] | None = None) -> dict[str, str]:
        env = dict(os.environ if base is None else base)
        env.update(self.variables)
        env["PATH"] = self.search_path
        return env

    def which(self, binary: str) -> Path | None:
        if os.sep in binary:
            candidate = Path(binary)
            return candidate if candidate.exists() else None
        found = shutil.which(binary, path=self.search_path)
        return Path(found) if found is not None else None

    def fingerprint(self) -> str:
        """Digest of toolchain identities and variables, independent of scratch paths."""
        scratch = str(self.scratch_dir) if self.scratch_dir is not None else None
        payload = {
            "toolchains": [
                {
                    "name": item.spec.name,
                    "version": item.spec.version,
                    "sha256": item.spec.sha256,
                }
                for item in self.toolchains
            ],
            "variables": {
                key: value
                for key, value in sorted(self.variables.items())
                if scratch is None or scratch not in value
            },
        }
        return hashlib.sha256(cbor2.dumps(payload, canonical=True)).hexdigest()


@dataclass(frozen=True, slots=True)
class BuildResult:
    command: tuple[str, ...]
    exit_status: int
    output: str
    classification: FailureKind | None = None
    artifacts: tuple[Path, ...] = ()
    duration_s: float = 0.0

    @property
    def ok(self) -> bool:
        return self.exit_status == 0

    def error(self) -> BuildFailure | None:
        if self.ok:
            return None
        kind = self.classification or FailureKind.UNCLASSIFIED
        return FAILURE_ERRORS[kind](
            f"Build command failed ({kind.value}).",
            exit_status=self.exit_status,
            output=self.output,
            hint="Inspect the captured tool output for the underlying diagnostic.",
            context={
                "operation": "invoke",
                "command": " ".join(self.command),
                "exit_status": str(self.exit_status),
                "classification": kind.value,
                "output": self.output[-2000:],
            },
        )

    def raise_for_status(self) -> None:
        error = self.error()
        if error is not None:
            raise error
