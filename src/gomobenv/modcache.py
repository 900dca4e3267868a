"""Shared Go module cache warm-up for ``gomobile bind``."""

from __future__ import annotations

import threading
from collections.abc import Mapping
from pathlib import Path

from gomobenv.cache.keys import SAFE_SEGMENT
from gomobenv.cancel import CancellationToken, check
from gomobenv.config import BuildConfig, Layout
from gomobenv.errors import DownloadError, MissingDependency
from gomobenv.models import ResolvedToolchain
from gomobenv.observability import StructuredLogger
from gomobenv.process import run

BIND_MODULE = "golang.org/x/mobile"
MODCACHE_DIR_NAME = "gomodcache"
MARKER_PREFIX = ".prefetched-"

_prefetch_lock = threading.Lock()


class ModulePrefetcher:
    """Download the bind runtime module into the shared module cache once per version.

    Generated bindings import ``golang.org/x/mobile/bind``; with the module
    already in ``GOMODCACHE`` a bind does not need to fetch it.
    """

    def __init__(
        self,
        layout: Layout,
        config: BuildConfig,
        *,
        logger: StructuredLogger | None = None,
        module: str = BIND_MODULE,
    ) -> None:
        self.layout = layout
        self.config = config
        self.logger = logger or StructuredLogger()
        self.module = module

    @property
    def modcache(self) -> Path:
        return self.layout.install_root / MODCACHE_DIR_NAME

    @property
    def target(self) -> str:
        return f"{self.module}@{self.config.bind_version}"

    @property
    def marker(self) -> Path:
        return self.modcache / (MARKER_PREFIX + SAFE_SEGMENT.sub("_", self.target))

    def prefetched(self) -> bool:
        return self.marker.exists()

    def prefetch(
        self,
        go: ResolvedToolchain,
        *,
        env: Mapping[str, str],
        cwd: Path,
        cancel: CancellationToken | None = None,
    ) -> bool:
        """Run ``go mod download`` for the bind module; False when already cached."""
        with _prefetch_lock:
            if self.prefetched():
                self._log(go, "Bind module already in the module cache.")
                return False
            check(cancel, operation="prefetch")
            binary = next((path / "go" for path in go.bin_paths if (path / "go").exists()), None)
            if binary is None:
                raise MissingDependency(
                    "The go binary was not found in the Go toolchain.",
                    context={"operation": "prefetch", "toolchain": go.spec.label},
                )
            self.modcache.mkdir(parents=True, exist_ok=True)
            child_env = dict(env)
            child_env["GOMODCACHE"] = str(self.modcache)
            child_env.setdefault("GOFLAGS", "-modcacherw")
            command = (str(binary), "mod", "download", self.target)
            self._log(go, "Prefetching bind module.")
            completed = run(command, env=child_env, cwd=cwd, cancel=cancel, operation="prefetch")
            if completed.returncode != 0:
                raise DownloadError(
                    "go mod download failed for the bind module.",
                    transient=False,
                    hint="Check network access to the module proxy and the configured bind_version.",
                    context={
                        "operation": "prefetch",
                        "command": " ".join(command),
                        "exit_status": str(completed.returncode),
                        "output": completed.output[-2000:],
                    },
                )
            self.marker.write_text(self.target + "\n", encoding="utf-8")
        return True

    def _log(self, go: ResolvedToolchain, message: str) -> None:
        self.logger.log(
            operation="assemble",
            toolchain=go.name,
            phase="prefetch",
            message=message,
            extra={"module": self.target, "modcache": str(self.modcache)},
        )
