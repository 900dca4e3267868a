"""Resolve → assemble → invoke orchestration for ``gomobile bind``."""

from __future__ import annotations

from collections.abc import Sequence
from pathlib import Path

from gomobenv.assembler import EnvironmentAssembler
from gomobenv.cancel import CancellationToken
from gomobenv.config import BuildConfig, Layout
from gomobenv.gomobile import GomobileBind, module_name
from gomobenv.invoker import BuildInvoker
from gomobenv.modcache import ModulePrefetcher
from gomobenv.models import BuildResult, ResolvedToolchain, ToolchainSpec
from gomobenv.observability import StructuredLogger
from gomobenv.policy import Policy, RetryPolicy
from gomobenv.resolver import ToolchainResolver
from gomobenv.sdk import SdkProvisioner
from gomobenv.toolchains import default_toolchain_specs


class BuildPipeline:
    """One configured build pipeline. Each ``bind`` call gets its own environment."""

    def __init__(
        self,
        config: BuildConfig,
        layout: Layout,
        *,
        policy: Policy | None = None,
        retry: RetryPolicy | None = None,
        logger: StructuredLogger | None = None,
        specs: Sequence[ToolchainSpec] | None = None,
        resolver: ToolchainResolver | None = None,
        assembler: EnvironmentAssembler | None = None,
        invoker: BuildInvoker | None = None,
    ) -> None:
        self.config = config
        self.layout = layout
        self.logger = logger or StructuredLogger()
        self.specs = tuple(specs) if specs is not None else default_toolchain_specs(config)
        self.resolver = resolver or ToolchainResolver(
            layout, policy=policy, retry=retry, logger=self.logger
        )
        self.assembler = assembler or EnvironmentAssembler(
            layout,
            provisioner=SdkProvisioner(layout, config, logger=self.logger),
            prefetcher=ModulePrefetcher(layout, config, logger=self.logger),
            logger=self.logger,
        )
        self.invoker = invoker or BuildInvoker(logger=self.logger)
        self.bind_tool = GomobileBind()

    def resolve(self, *, cancel: CancellationToken | None = None) -> tuple[ResolvedToolchain, ...]:
        return self.resolver.resolve_all(self.specs, cancel=cancel)

    def bind(
        self,
        module_dir: str | Path,
        output_dir: str | Path,
        *,
        name: str | None = None,
        module_path: str = ".",
        cancel: CancellationToken | None = None,
    ) -> BuildResult:
        """Bind the Go module in *module_dir* into ``<output_dir>/<name>.aar``."""
        module_dir = Path(module_dir)
        output_dir = Path(output_dir).resolve()
        output_dir.mkdir(parents=True, exist_ok=True)
        name = name or module_name(module_dir)

        toolchains = self.resolve(cancel=cancel)
        with self.assembler.assemble(toolchains, cancel=cancel) as env:
            command = self.bind_tool.command(self.config, module_path, output_dir, name=name)
            result = self.invoker.invoke(
                env,
                command,
                cwd=module_dir,
                cancel=cancel,
                expected_outputs=self.bind_tool.outputs(output_dir, name).as_tuple(),
            )

        self.logger.log(
            operation="bind",
            phase="done",
            level="info" if result.ok else "error",
            message="Bind finished." if result.ok else "Bind failed.",
            extra={
                "module": name,
                "exit_status": result.exit_status,
                "classification": result.classification.value if result.classification else None,
            },
        )
        return result
