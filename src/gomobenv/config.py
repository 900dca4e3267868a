"""Build configuration, filesystem layout, and JSON config parsing."""

from __future__ import annotations

import json
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from gomobenv.errors import ValidationError
from gomobenv.models import ToolchainSpec

HOME_ENV = "GOMOBENV_HOME"
DEFAULT_HOME = Path.home() / ".cache" / "gomobenv"

SUPPORTED_ARCHITECTURES = ("arm", "arm64", "386", "amd64")
SHA256_PATTERN = re.compile(r"^[0-9a-f]{64}$")
SOURCE_KINDS = ("archive", "go-install")


@dataclass(frozen=True, slots=True)
class BuildConfig:
    compiler_version: str = "1.23.10"
    sdk_version: str = "31"
    sdk_tools_version: str = "8092744"
    ndk_version: str = "23.1.7779620"
    jdk_version: str = "11.0.24+8"
    android_api_level: int = 21
    target_architectures: tuple[str, ...] = SUPPORTED_ARCHITECTURES
    bind_version: str = "latest"
    checksums: dict[str, str] = field(default_factory=dict)
    toolchains: tuple[ToolchainSpec, ...] = ()

    def __post_init__(self) -> None:
        for name in (
            "compiler_version",
            "sdk_version",
            "sdk_tools_version",
            "ndk_version",
            "jdk_version",
        ):
            value = getattr(self, name)
            if not isinstance(value, str) or not value:
                raise ValidationError(f"Invalid config `{name}` value.")
        if (
            isinstance(self.android_api_level, bool)
            or not isinstance(self.android_api_level, int)
            or self.android_api_level < 1
        ):
            raise ValidationError(
                "Invalid config `android_api_level` value.",
                hint="Use a positive integer such as 21.",
                context={"android_api_level": str(self.android_api_level)},
            )
        if not self.target_architectures:
            raise ValidationError("Config `target_architectures` must not be empty.")
        unknown = [arch for arch in self.target_architectures if arch not in SUPPORTED_ARCHITECTURES]
        if unknown:
            raise ValidationError(
                "Unsupported target architecture.",
                hint=f"Choose from {', '.join(SUPPORTED_ARCHITECTURES)}.",
                context={"architectures": ", ".join(unknown)},
            )
        for name, digest in self.checksums.items():
            if not SHA256_PATTERN.fullmatch(digest):
                raise ValidationError(
                    "Checksums must be lowercase 64-character sha256 hex digests.",
                    context={"toolchain": name},
                )

    def checksum_for(self, name: str) -> str:
        return self.checksums.get(name, "")


@dataclass(frozen=True, slots=True)
class Layout:
    """Explicit roots for one isolated environment; several may coexist per process."""

    cache_root: Path
    install_root: Path
    scratch_root: Path
    accept_licenses: bool = False

    @classmethod
    def under(cls, root: str | Path, *, accept_licenses: bool = False) -> Layout:
        base = Path(root)
        return cls(
            cache_root=base / "cache",
            install_root=base / "install",
            scratch_root=base / "scratch",
            accept_licenses=accept_licenses,
        )

    @classmethod
    def default(cls, *, accept_licenses: bool = False) -> Layout:
        root = os.environ.get(HOME_ENV)
        return cls.under(Path(root) if root else DEFAULT_HOME, accept_licenses=accept_licenses)


def parse_config(raw: str) -> BuildConfig:
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ValidationError("Invalid config JSON.", hint=str(exc)) from exc
    if not isinstance(payload, dict):
        raise ValidationError("Invalid config payload type.")

    defaults = BuildConfig()
    kwargs: dict[str, Any] = {}
    for key in (
        "compiler_version",
        "sdk_version",
        "sdk_tools_version",
        "ndk_version",
        "jdk_version",
        "bind_version",
    ):
        if key in payload:
            kwargs[key] = _required_str(payload, key)
    if "android_api_level" in payload:
        kwargs["android_api_level"] = _required_int(payload, "android_api_level")
    if "target_architectures" in payload:
        kwargs["target_architectures"] = tuple(_required_str_list(payload, "target_architectures"))
    if "checksums" in payload:
        kwargs["checksums"] = _required_str_dict(payload, "checksums")
    if "toolchains" in payload:
        entries = payload["toolchains"]
        if not isinstance(entries, list):
            raise ValidationError("Invalid config `toolchains` value.")
        kwargs["toolchains"] = tuple(_parse_toolchain(item) for item in entries)
    return BuildConfig(**{**_as_kwargs(defaults), **kwargs})


def load_config(path: str | Path) -> BuildConfig:
    config_path = Path(path)
    try:
        raw = config_path.read_text(encoding="utf-8")
    except FileNotFoundError as exc:
        raise ValidationError(
            "Config file does not exist.",
            context={"path": str(config_path)},
        ) from exc
    return parse_config(raw)


def _as_kwargs(config: BuildConfig) -> dict[str, Any]:
    return {name: getattr(config, name) for name in BuildConfig.__dataclass_fields__}


def _parse_toolchain(item: Any) -> ToolchainSpec:
    if not isinstance(item, dict):
        raise ValidationError("Invalid toolchain entry in config.")
    source = item.get("source", "archive")
    if source not in SOURCE_KINDS:
        raise ValidationError(
            "Invalid toolchain `source` value.",
            hint=f"Use one of {', '.join(SOURCE_KINDS)}.",
            context={"source": str(source)},
        )
    spec = ToolchainSpec(
        name=_required_str(item, "name"),
        version=_required_str(item, "version"),
        url_template=_optional_str(item, "url"),
        sha256=_optional_str(item, "sha256"),
        source=source,
        module=_optional_str(item, "module"),
        home=_optional_str(item, "home"),
        bin_dirs=tuple(_required_str_list(item, "bin_dirs")) if "bin_dirs" in item else ("bin",),
        env=_required_str_dict(item, "env") if "env" in item else {},
        provides=tuple(_required_str_list(item, "provides")) if "provides" in item else (),
    )
    if spec.source == "archive" and not spec.url_template:
        raise ValidationError("Archive toolchains require a `url`.", context={"toolchain": spec.name})
    if spec.source == "go-install" and not spec.module:
        raise ValidationError(
            "go-install toolchains require a `module`.", context={"toolchain": spec.name}
        )
    return spec


def _required_str(payload: dict[str, Any], key: str) -> str:
    value = payload.get(key)
    if not isinstance(value, str) or not value:
        raise ValidationError(f"Invalid config `{key}` value.")
    return value


def _optional_str(payload: dict[str, Any], key: str) -> str:
    value = payload.get(key, "")
    if not isinstance(value, str):
        raise ValidationError(f"Invalid config `{key}` value.")
    return value


def _required_int(payload: dict[str, Any], key: str) -> int:
    value = payload.get(key)
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"Invalid config `{key}` value.")
    return value


def _required_str_list(payload: dict[str, Any], key: str) -> list[str]:
    value = payload.get(key)
    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        raise ValidationError(f"Invalid config `{key}` value.")
    return list(value)


def _required_str_dict(payload: dict[str, Any], key: str) -> dict[str, str]:
    value = payload.get(key)
    if not isinstance(value, dict) or not all(
        isinstance(k, str) and isinstance(v, str) for k, v in value.items()
    ):
        raise ValidationError(f"Invalid config `{key}` value.")
    return dict(value)
