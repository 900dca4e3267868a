"""Environment assembly: search path, variables and per-build scratch space."""

from __future__ import annotations

import os
import shutil
import tempfile
from collections.abc import Sequence
from pathlib import Path

from gomobenv.cancel import CancellationToken, check
from gomobenv.config import Layout
from gomobenv.errors import ChecksumMismatch, MissingDependency
from gomobenv.modcache import MODCACHE_DIR_NAME, ModulePrefetcher
from gomobenv.models import BuildEnvironment, ResolvedToolchain
from gomobenv.observability import StructuredLogger
from gomobenv.sdk import SdkProvisioner

DEFAULT_REQUIRED = ("bind",)


class EnvironmentAssembler:
    def __init__(
        self,
        layout: Layout,
        *,
        provisioner: SdkProvisioner | None = None,
        prefetcher: ModulePrefetcher | None = None,
        logger: StructuredLogger | None = None,
        base_path: str | None = None,
    ) -> None:
        self.layout = layout
        self.provisioner = provisioner
        self.prefetcher = prefetcher
        self.logger = logger or StructuredLogger()
        self.base_path = base_path if base_path is not None else os.environ.get("PATH", os.defpath)

    def assemble(
        self,
        toolchains: Sequence[ResolvedToolchain],
        *,
        required: Sequence[str] = DEFAULT_REQUIRED,
        cancel: CancellationToken | None = None,
    ) -> BuildEnvironment:
        """Lay out *toolchains* into an isolated environment.

        Later toolchains take precedence over earlier ones on the search path.
        """
        if not toolchains:
            raise MissingDependency(
                "No toolchains were resolved for this environment.",
                hint="Declare at least the toolchain providing the bind step.",
                context={"operation": "assemble"},
            )
        for item in toolchains:
            if not item.verified:
                raise ChecksumMismatch(
                    "Refusing to assemble an unverified toolchain.",
                    hint="Resolve the toolchain through ToolchainResolver.",
                    context={"operation": "assemble", "toolchain": item.spec.label},
                )
        sdk_tools = _providing(toolchains, "sdkmanager") if self.provisioner is not None else None
        needed = list(required)
        if self.provisioner is not None and sdk_tools is not None:
            needed.extend(self.provisioner.requires)
        provided = {capability for item in toolchains for capability in item.spec.provides}
        for capability in needed:
            if capability not in provided:
                raise MissingDependency(
                    f"No toolchain provides the `{capability}` capability.",
                    hint="Add a toolchain declaring it in `provides`.",
                    context={
                        "operation": "assemble",
                        "capability": capability,
                        "toolchains": ", ".join(item.spec.label for item in toolchains),
                    },
                )

        self.layout.scratch_root.mkdir(parents=True, exist_ok=True)
        scratch = Path(tempfile.mkdtemp(prefix="build-", dir=str(self.layout.scratch_root)))
        try:
            check(cancel, operation="assemble")
            variables: dict[str, str] = {}
            for item in toolchains:
                variables.update(item.exports())
            modcache = self.layout.install_root / MODCACHE_DIR_NAME
            modcache.mkdir(parents=True, exist_ok=True)
            variables.update(
                {
                    "GOPATH": str(scratch / "gopath"),
                    "GOCACHE": str(scratch / "gocache"),
                    "GOMODCACHE": str(modcache),
                    "GOFLAGS": "-modcacherw",
                    "TMPDIR": str(scratch / "tmp"),
                    "CGO_ENABLED": "1",
                }
            )
            (scratch / "tmp").mkdir()

            entries = [str(path) for item in reversed(toolchains) for path in item.bin_paths]
            if self.provisioner is not None and sdk_tools is not None:
                sdk_env = self._child_env(variables, entries)
                variables.update(self.provisioner.provision(sdk_tools, env=sdk_env, cancel=cancel))
                entries.extend(str(path) for path in self.provisioner.bin_paths())
            go = _providing(toolchains, "go")
            if self.prefetcher is not None and go is not None:
                self.prefetcher.prefetch(
                    go,
                    env=self._child_env(variables, entries),
                    cwd=scratch / "tmp",
                    cancel=cancel,
                )
            search_path = os.pathsep.join([*entries, self.base_path] if self.base_path else entries)
        except BaseException:
            shutil.rmtree(scratch, ignore_errors=True)
            raise

        environment = BuildEnvironment(
            toolchains=tuple(toolchains),
            search_path=search_path,
            variables=variables,
            scratch_dir=scratch,
        )
        self.logger.log(
            operation="assemble",
            phase="ready",
            message="Build environment assembled.",
            extra={
                "toolchains": [item.spec.label for item in toolchains],
                "fingerprint": environment.fingerprint(),
            },
        )
        return environment

    def _child_env(self, variables: dict[str, str], entries: list[str]) -> dict[str, str]:
        env = dict(os.environ)
        env.update(variables)
        env["PATH"] = os.pathsep.join([*entries, self.base_path] if self.base_path else entries)
        return env


def _providing(toolchains: Sequence[ResolvedToolchain], capability: str) -> ResolvedToolchain | None:
    return next((item for item in reversed(toolchains) if capability in item.spec.provides), None)
