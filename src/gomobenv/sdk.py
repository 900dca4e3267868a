"""Android SDK package provisioning through ``sdkmanager``."""

from __future__ import annotations

import threading
from collections.abc import Mapping
from pathlib import Path

from gomobenv.cancel import CancellationToken
from gomobenv.config import BuildConfig, Layout
from gomobenv.errors import LicenseNotAccepted, MissingDependency
from gomobenv.models import ResolvedToolchain
from gomobenv.observability import StructuredLogger
from gomobenv.process import run

SDK_DIR_NAME = "android-sdk"
REQUIRED_CAPABILITIES = ("java",)

_provision_lock = threading.Lock()


class SdkProvisioner:
    """Install SDK platform, build-tools and NDK packages under an explicit root.

    License prompts are answered only when ``Layout.accept_licenses`` is set.
    """

    def __init__(
        self,
        layout: Layout,
        config: BuildConfig,
        *,
        logger: StructuredLogger | None = None,
    ) -> None:
        self.layout = layout
        self.config = config
        self.logger = logger or StructuredLogger()
        self.requires = REQUIRED_CAPABILITIES

    @property
    def sdk_root(self) -> Path:
        return self.layout.install_root / SDK_DIR_NAME

    @property
    def ndk_root(self) -> Path:
        return self.sdk_root / "ndk" / self.config.ndk_version

    def packages(self) -> tuple[str, ...]:
        return (
            f"build-tools;{self.config.sdk_version}.0.0",
            f"platforms;android-{self.config.sdk_version}",
            f"ndk;{self.config.ndk_version}",
        )

    def package_path(self, package: str) -> Path:
        return self.sdk_root.joinpath(*package.split(";"))

    def missing_packages(self) -> tuple[str, ...]:
        return tuple(pkg for pkg in self.packages() if not self.package_path(pkg).exists())

    def provision(
        self,
        cmdline_tools: ResolvedToolchain,
        *,
        env: Mapping[str, str],
        cancel: CancellationToken | None = None,
    ) -> dict[str, str]:
        """Install missing packages and return the SDK variable exports."""
        with _provision_lock:
            missing = self.missing_packages()
            if missing:
                self._install(cmdline_tools, missing, env=env, cancel=cancel)
            else:
                self.logger.log(
                    operation="assemble",
                    toolchain=cmdline_tools.name,
                    phase="sdk",
                    message="SDK packages already installed.",
                )
        return self.exports()

    def exports(self) -> dict[str, str]:
        return {
            "ANDROID_HOME": str(self.sdk_root),
            "ANDROID_SDK_ROOT": str(self.sdk_root),
            "ANDROID_NDK_HOME": str(self.ndk_root),
            "ANDROID_NDK_ROOT": str(self.ndk_root),
        }

    def bin_paths(self) -> tuple[Path, ...]:
        return (self.sdk_root / "platform-tools",)

    def _install(
        self,
        cmdline_tools: ResolvedToolchain,
        packages: tuple[str, ...],
        *,
        env: Mapping[str, str],
        cancel: CancellationToken | None,
    ) -> None:
        if not self.layout.accept_licenses:
            raise LicenseNotAccepted(
                "Android SDK packages require license acceptance.",
                hint="Pass --accept-licenses (Layout.accept_licenses=True) after reviewing the licenses.",
                context={"packages": ", ".join(packages)},
            )
        sdkmanager = next(
            (path / "sdkmanager" for path in cmdline_tools.bin_paths if (path / "sdkmanager").exists()),
            None,
        )
        if sdkmanager is None:
            raise MissingDependency(
                "sdkmanager was not found in the command-line tools toolchain.",
                context={"toolchain": cmdline_tools.spec.label},
            )
        self.sdk_root.mkdir(parents=True, exist_ok=True)
        command = (str(sdkmanager), f"--sdk_root={self.sdk_root}", *packages)
        self.logger.log(
            operation="assemble",
            toolchain=cmdline_tools.name,
            phase="sdk",
            message="Installing SDK packages.",
            extra={"packages": list(packages)},
        )
        completed = run(
            command,
            env=env,
            stdin="y\n" * 32,
            cancel=cancel,
            operation="sdk_install",
        )
        still_missing = self.missing_packages()
        if completed.returncode != 0 or still_missing:
            raise MissingDependency(
                "sdkmanager failed to install SDK packages.",
                hint="Inspect the sdkmanager output; a Java runtime must be on PATH or JAVA_HOME.",
                context={
                    "command": " ".join(command),
                    "exit_status": str(completed.returncode),
                    "missing": ", ".join(still_missing),
                    "output": completed.output[-2000:],
                },
            )
