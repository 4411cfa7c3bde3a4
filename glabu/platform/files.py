"""Filesystem helpers."""

from __future__ import annotations

import os
import shutil
import tempfile
from pathlib import Path

__all__ = ["atomic_install_executable"]

EXECUTABLE_MODE = 0o755


def atomic_install_executable(source: Path, dest: Path) -> None:
    """Copy source to dest atomically and make it executable.

    The copy goes to a temp file beside dest and is then renamed over it,
    so a concurrent reader sees either the old binary or the new one.

    Raises:
        OSError: On any copy, chmod or rename failure (e.g. permissions).
    """
    fd, tmp_name = tempfile.mkstemp(
        prefix=f".{dest.name}.",
        suffix=".tmp",
        dir=str(dest.parent),
    )
    tmp_path = Path(tmp_name)

    try:
        with os.fdopen(fd, "wb") as handle, open(source, "rb") as src:
            shutil.copyfileobj(src, handle)
            handle.flush()
            os.fsync(handle.fileno())
        os.chmod(tmp_path, EXECUTABLE_MODE)
        os.replace(tmp_path, dest)
    finally:
        if tmp_path.exists():
            tmp_path.unlink(missing_ok=True)
