"""Toolchain resolution: cache lookup, download, verification and registration."""

from __future__ import annotations

import hashlib
import os
import shutil
from collections.abc import Sequence
from pathlib import Path

from gomobenv.cache import ToolchainCache
from gomobenv.cancel import CancellationToken, check
from gomobenv.config import Layout
from gomobenv.errors import ChecksumMismatch, DownloadError, MissingDependency, ValidationError
from gomobenv.fetch import download, extract
from gomobenv.fetch.http import Opener, Sleeper
from gomobenv.models import ResolvedToolchain, ToolchainSpec
from gomobenv.observability import Level, StructuredLogger
from gomobenv.policy import (
    Policy,
    RetryPolicy,
    enforce_mutable_version_policy,
    ensure_network_allowed,
)
from gomobenv.process import run

DOWNLOAD_NAME = "download"
TREE_NAME = "tree"
WORK_NAME = "work"


class ToolchainResolver:
    """Fetch, verify and cache toolchains declared by :class:`ToolchainSpec`."""

    def __init__(
        self,
        layout: Layout,
        *,
        policy: Policy | None = None,
        retry: RetryPolicy | None = None,
        logger: StructuredLogger | None = None,
        opener: Opener | None = None,
        sleep: Sleeper | None = None,
    ) -> None:
        self.layout = layout
        self.cache = ToolchainCache(layout.cache_root)
        self.policy = policy or Policy()
        self.retry = retry or RetryPolicy()
        self.logger = logger or StructuredLogger()
        self._opener = opener
        self._sleep = sleep

    def resolve(
        self,
        spec: ToolchainSpec,
        *,
        toolchains: Sequence[ResolvedToolchain] = (),
        cancel: CancellationToken | None = None,
    ) -> ResolvedToolchain:
        """Return a verified toolchain for *spec*, downloading it on a cache miss.

        *toolchains* supplies already-resolved toolchains needed to build
        ``go-install`` sources.
        """
        self._validate(spec)
        check(cancel, operation="resolve")
        with self.cache.locked(spec.key):
            lookup = self.cache.lookup(spec)
            if lookup.status == "hit" and lookup.path is not None:
                self._log(spec, "cache", "Cache hit.")
                return ResolvedToolchain(spec=spec, path=lookup.path, verified=True)
            if lookup.status in ("stale", "corrupt"):
                self._log(
                    spec,
                    "cache",
                    f"Evicting {lookup.status} cache entry: {lookup.reason}.",
                    level="warning",
                )
                self.cache.discard(spec.name, spec.version)

            ensure_network_allowed(policy=self.policy, operation="resolve")
            self._log(spec, "fetch", "Cache miss; fetching toolchain.")
            with self.cache.staging() as staged:
                if spec.source == "go-install":
                    digest = self._go_install(spec, staged, toolchains=toolchains, cancel=cancel)
                else:
                    digest = self._download_and_extract(spec, staged, cancel=cancel)
                check(cancel, operation="resolve")
                path = self.cache.commit(spec, staged, artifact_sha256=digest)

        if not spec.sha256:
            self._log(spec, "verify", "Integrity check skipped by policy.", level="warning")
        self._log(spec, "register", "Toolchain registered.", extra={"sha256": digest})
        return ResolvedToolchain(spec=spec, path=path, verified=True)

    def resolve_all(
        self,
        specs: Sequence[ToolchainSpec],
        *,
        cancel: CancellationToken | None = None,
    ) -> tuple[ResolvedToolchain, ...]:
        resolved: list[ResolvedToolchain] = []
        for spec in specs:
            resolved.append(self.resolve(spec, toolchains=tuple(resolved), cancel=cancel))
        return tuple(resolved)

    def _validate(self, spec: ToolchainSpec) -> None:
        enforce_mutable_version_policy(name=spec.name, version=spec.version, policy=self.policy)
        if spec.source == "archive" and not spec.url_template:
            raise ValidationError(
                "Archive toolchain has no download URL.",
                context={"toolchain": spec.label},
            )
        if not spec.sha256 and self.policy.require_integrity:
            raise ValidationError(
                "Toolchain has no expected sha256.",
                hint="Add the checksum to the config `checksums` table or relax require_integrity.",
                context={"toolchain": spec.label},
            )

    def _download_and_extract(
        self,
        spec: ToolchainSpec,
        staged: Path,
        *,
        cancel: CancellationToken | None,
    ) -> str:
        archive = staged / DOWNLOAD_NAME
        digest = download(
            spec.url,
            sha256=spec.sha256,
            dest=archive,
            policy=self.policy,
            retry=self.retry,
            cancel=cancel,
            opener=self._opener,
            sleep=self._sleep,
            logger=self.logger,
            toolchain=spec.name,
        )
        check(cancel, operation="resolve")
        extract(archive, staged / TREE_NAME)
        archive.unlink()
        return digest

    def _go_install(
        self,
        spec: ToolchainSpec,
        staged: Path,
        *,
        toolchains: Sequence[ResolvedToolchain],
        cancel: CancellationToken | None,
    ) -> str:
        go = next((item for item in reversed(toolchains) if "go" in item.spec.provides), None)
        if go is None:
            raise MissingDependency(
                "go-install toolchains need a resolved Go toolchain.",
                hint="Declare the `go` toolchain before this one.",
                context={"toolchain": spec.label},
            )
        bin_dir = staged / TREE_NAME / "bin"
        work = staged / WORK_NAME
        bin_dir.mkdir(parents=True)
        env = dict(os.environ)
        env.pop("GOOS", None)
        env.pop("GOARCH", None)
        env.update(go.exports())
        env.update(
            {
                "GOBIN": str(bin_dir),
                "GOPATH": str(work / "gopath"),
                "GOCACHE": str(work / "gocache"),
                "GOFLAGS": "-modcacherw",
                "CGO_ENABLED": "0",
                "PATH": os.pathsep.join([*map(str, go.bin_paths), env.get("PATH", "")]),
            }
        )
        go_binary = go.bin_paths[0] / "go"
        command = (str(go_binary), "install", "-trimpath", f"{spec.module}@{spec.version}")
        completed = run(command, env=env, cwd=staged, cancel=cancel, operation="go_install")
        shutil.rmtree(work, ignore_errors=True)
        if completed.returncode != 0:
            raise DownloadError(
                "go install failed.",
                transient=False,
                hint="Check the module path and version, and network access to the module proxy.",
                context={
                    "operation": "go_install",
                    "toolchain": spec.label,
                    "command": " ".join(command),
                    "output": completed.output[-2000:],
                },
            )

        binary = bin_dir / spec.module.rsplit("/", 1)[-1]
        if not binary.exists():
            raise DownloadError(
                "go install produced no binary.",
                transient=False,
                context={"toolchain": spec.label, "expected": str(binary)},
            )
        digest = hashlib.sha256(binary.read_bytes()).hexdigest()
        if spec.sha256 and digest != spec.sha256:
            raise ChecksumMismatch(
                "Installed binary hash mismatch.",
                hint="Pin the checksum of the binary built from this exact module version.",
                context={
                    "operation": "go_install",
                    "toolchain": spec.label,
                    "expected": spec.sha256,
                    "actual": digest,
                },
            )
        return digest

    def _log(
        self,
        spec: ToolchainSpec,
        phase: str,
        message: str,
        *,
        level: Level = "info",
        extra: dict[str, object] | None = None,
    ) -> None:
        self.logger.log(
            operation="resolve",
            toolchain=spec.name,
            phase=phase,
            level=level,
            message=message,
            extra={"version": spec.version, **(extra or {})},
        )
