"""gomobile bind command construction and output naming."""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path

from gomobenv.config import BuildConfig
from gomobenv.errors import ValidationError

MODULE_LINE = re.compile(r"^\s*module\s+(\S+)", re.MULTILINE)


def module_name(module_dir: str | Path) -> str:
    """Name a module after the last element of its ``go.mod`` module path."""
    directory = Path(module_dir)
    go_mod = directory / "go.mod"
    if go_mod.exists():
        match = MODULE_LINE.search(go_mod.read_text(encoding="utf-8"))
        if match is not None:
            return match.group(1).strip('"').rstrip("/").rsplit("/", 1)[-1]
    name = directory.resolve().name
    if not name:
        raise ValidationError("Unable to derive a module name.", context={"module": str(directory)})
    return name


@dataclass(frozen=True, slots=True)
class BindOutputs:
    bundle: Path
    sources: Path

    def as_tuple(self) -> tuple[Path, Path]:
        return (self.bundle, self.sources)


@dataclass(slots=True)
class GomobileBind:
    tool: str = "gomobile"

    def outputs(self, output_dir: str | Path, name: str) -> BindOutputs:
        directory = Path(output_dir)
        return BindOutputs(
            bundle=directory / f"{name}.aar",
            sources=directory / f"{name}-sources.jar",
        )

    def command(
        self,
        config: BuildConfig,
        module_path: str,
        output_dir: str | Path,
        *,
        name: str,
        flags: tuple[str, ...] = (),
    ) -> tuple[str, ...]:
        targets = ",".join(f"android/{arch}" for arch in config.target_architectures)
        return (
            self.tool,
            "bind",
            f"-target={targets}",
            f"-androidapi={config.android_api_level}",
            "-o",
            str(self.outputs(output_dir, name).bundle),
            *flags,
            module_path,
        )
