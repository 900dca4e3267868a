"""Archive extraction for verified toolchain downloads."""

from __future__ import annotations

import os
import shutil
import stat
import tarfile
import zipfile
from pathlib import Path

from gomobenv.errors import ValidationError


def extract(archive: str | Path, dest: str | Path) -> Path:
    """Extract a zip or tar archive into *dest*, refusing members outside it."""
    archive_path = Path(archive)
    dest_path = Path(dest)
    dest_path.mkdir(parents=True, exist_ok=True)
    if zipfile.is_zipfile(archive_path):
        _extract_zip(archive_path, dest_path)
    elif tarfile.is_tarfile(archive_path):
        with tarfile.open(archive_path) as bundle:
            try:
                bundle.extractall(dest_path, filter="data")
            except tarfile.FilterError as exc:
                raise ValidationError(
                    "Archive contains an unsafe member.",
                    context={"archive": str(archive_path), "reason": str(exc)},
                ) from exc
    else:
        raise ValidationError(
            "Unsupported archive format.",
            hint="Toolchain archives must be zip or tar (optionally compressed).",
            context={"archive": str(archive_path)},
        )
    return dest_path


def _extract_zip(archive_path: Path, dest_path: Path) -> None:
    root = dest_path.resolve()
    with zipfile.ZipFile(archive_path) as bundle:
        for info in bundle.infolist():
            target = (root / info.filename).resolve()
            if target != root and root not in target.parents:
                raise ValidationError(
                    "Archive contains an unsafe member.",
                    context={"archive": str(archive_path), "member": info.filename},
                )
            mode = (info.external_attr >> 16) & 0xFFFF
            if info.is_dir():
                target.mkdir(parents=True, exist_ok=True)
                continue
            target.parent.mkdir(parents=True, exist_ok=True)
            if stat.S_ISLNK(mode):
                link = bundle.read(info).decode("utf-8")
                if os.path.isabs(link) or root not in (target.parent / link).resolve().parents:
                    raise ValidationError(
                        "Archive contains a symlink escaping the extraction root.",
                        context={"archive": str(archive_path), "member": info.filename},
                    )
                os.symlink(link, target)
                continue
            with bundle.open(info) as source, target.open("wb") as handle:
                shutil.copyfileobj(source, handle)
            permissions = stat.S_IMODE(mode)
            if permissions:
                target.chmod(permissions)
