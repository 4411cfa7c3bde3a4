"""Binary compression with UPX.

UPX corrupts a binary it compresses twice, so compression is guarded by
the marker UPX writes near the start of every packed file. A binary that
already carries it is passed through untouched.
"""

from __future__ import annotations

from pathlib import Path

from glabu.core.config import CompressConfig
from glabu.core.result import Err, Ok, Result
from glabu.output.console import ConsoleProtocol, Style
from glabu.platform.process import run, which
from glabu.release.errors import ReleaseError, Stage
from glabu.release.model import ReleaseTarget

UPX_MARKER = b"UPX!"
_MARKER_WINDOW = 4096
_UPX_TIMEOUT_SECONDS = 10 * 60.0


def is_compressed(path: Path) -> bool:
    """True if the UPX marker appears in the first 4 KiB of the file.

    Raises:
        OSError: If the file cannot be read.
    """
    with open(path, "rb") as f:
        head = f.read(_MARKER_WINDOW)
    return UPX_MARKER in head


def _error(message: str, hint: str | None = None) -> Err[ReleaseError]:
    return Err(
        ReleaseError(stage=Stage.COMPRESS, kind="compression_error", message=message, hint=hint)
    )


def compress(
    *,
    target: ReleaseTarget,
    settings: CompressConfig,
    console: ConsoleProtocol,
) -> Result[ReleaseTarget, ReleaseError]:
    path = target.binary_path
    if not path.is_file():
        return _error(f"binary not found: {path}")

    try:
        already = is_compressed(path)
    except OSError as e:
        return _error(f"cannot read {path}: {e}")

    if already:
        console.print(f"{path.name} ({target.arch}): already compressed, skipping", Style.DIM)
        return Ok(target.mark_compressed())

    if which(settings.tool) is None:
        return Err(
            ReleaseError(
                stage=Stage.COMPRESS,
                kind="tool_missing",
                message=f"{settings.tool}: missing",
                hint="Install UPX (https://upx.github.io/) or set compress.enabled = false.",
            )
        )

    cmd = [settings.tool, *settings.args, str(path)]
    console.print(" ".join(cmd), Style.DIM)
    result = run(cmd, cwd=path.parent, timeout=_UPX_TIMEOUT_SECONDS)
    if isinstance(result, Err):
        return _error(
            f"{settings.tool} failed on {path} (exit {result.error.returncode})",
            hint=result.error.detail or None,
        )

    return Ok(target.mark_compressed())
