"""Default toolchain set for binding Go modules into Android libraries."""

from __future__ import annotations

import platform

from gomobenv.config import BuildConfig
from gomobenv.errors import ValidationError
from gomobenv.models import ToolchainSpec

GO_DOWNLOAD_URL = "https://go.dev/dl/go{{version}}.{host}.tar.gz"
CMDLINE_TOOLS_URL = (
    "https://dl.google.com/android/repository/commandlinetools-{host}-{{version}}_latest.zip"
)
MOBILE_MODULE = "golang.org/x/mobile"
JDK_DOWNLOAD_URL = (
    "https://github.com/adoptium/temurin{major}-binaries/releases/download/"
    "jdk-{tag}/OpenJDK{major}U-jdk_{arch}_{os}_hotspot_{release}.{ext}"
)

GO_ARCHES = {
    "x86_64": "amd64",
    "amd64": "amd64",
    "aarch64": "arm64",
    "arm64": "arm64",
}
CMDLINE_TOOLS_HOSTS = {"linux": "linux", "darwin": "mac", "windows": "win"}
JDK_HOSTS = {"linux": "linux", "darwin": "mac", "windows": "windows"}
JDK_ARCHES = {"amd64": "x64", "arm64": "aarch64"}


def go_host(system: str | None = None, machine: str | None = None) -> str:
    """Return the ``<os>-<arch>`` suffix used by Go release archives."""
    os_name = (system or platform.system()).lower()
    arch = GO_ARCHES.get((machine or platform.machine()).lower())
    if arch is None:
        raise ValidationError(
            "Unsupported host architecture for Go downloads.",
            context={"machine": machine or platform.machine()},
        )
    return f"{os_name}-{arch}"


def jdk_spec(config: BuildConfig, *, system: str | None = None, machine: str | None = None) -> ToolchainSpec:
    """Temurin JDK used by ``sdkmanager`` and by ``gomobile bind`` to compile the AAR."""
    os_name, arch = go_host(system, machine).split("-", 1)
    version = config.jdk_version
    url = JDK_DOWNLOAD_URL.format(
        major=version.split(".", 1)[0].split("+", 1)[0],
        tag=version.replace("+", "%2B"),
        arch=JDK_ARCHES[arch],
        os=JDK_HOSTS.get(os_name, os_name),
        release=version.replace("+", "_"),
        ext="zip" if os_name == "windows" else "tar.gz",
    )
    home = "jdk-{version}/Contents/Home" if os_name == "darwin" else "jdk-{version}"
    return ToolchainSpec(
        name="jdk",
        version=version,
        url_template=url,
        sha256=config.checksum_for("jdk"),
        home=home,
        env={"JAVA_HOME": "{home}"},
        provides=("java",),
    )


def default_toolchain_specs(
    config: BuildConfig,
    *,
    system: str | None = None,
    machine: str | None = None,
) -> tuple[ToolchainSpec, ...]:
    """Return the ordered toolchain specs for *config*.

    Entries in ``config.toolchains`` replace defaults with the same name and
    are otherwise appended, so later declarations take search-path precedence.
    """
    os_name = (system or platform.system()).lower()
    defaults = (
        jdk_spec(config, system=system, machine=machine),
        ToolchainSpec(
            name="go",
            version=config.compiler_version,
            url_template=GO_DOWNLOAD_URL.format(host=go_host(system, machine)),
            sha256=config.checksum_for("go"),
            home="go",
            env={"GOROOT": "{home}"},
            provides=("go",),
        ),
        ToolchainSpec(
            name="android-cmdline-tools",
            version=config.sdk_tools_version,
            url_template=CMDLINE_TOOLS_URL.format(host=CMDLINE_TOOLS_HOSTS.get(os_name, os_name)),
            sha256=config.checksum_for("android-cmdline-tools"),
            home="cmdline-tools",
            provides=("sdkmanager",),
        ),
        ToolchainSpec(
            name="gobind",
            version=config.bind_version,
            sha256=config.checksum_for("gobind"),
            source="go-install",
            module=f"{MOBILE_MODULE}/cmd/gobind",
            provides=("gobind",),
        ),
        ToolchainSpec(
            name="gomobile",
            version=config.bind_version,
            sha256=config.checksum_for("gomobile"),
            source="go-install",
            module=f"{MOBILE_MODULE}/cmd/gomobile",
            provides=("bind",),
        ),
    )
    overrides = {spec.name: spec for spec in config.toolchains}
    merged = [overrides.pop(spec.name, spec) for spec in defaults]
    merged.extend(spec for spec in config.toolchains if spec.name in overrides)
    return tuple(merged)
