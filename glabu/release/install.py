from __future__ import annotations

from pathlib import Path

from glabu.core.config import InstallConfig
from glabu.core.result import Err, Ok, Result
from glabu.output.console import ConsoleProtocol, Style
from glabu.platform.detection import Arch
from glabu.platform.files import atomic_install_executable
from glabu.release.errors import ReleaseError, Stage
from glabu.release.model import ReleaseTarget


def install_destination(*, settings: InstallConfig, binary_name: str) -> Path:
    return Path(settings.dir).expanduser() / binary_name


def install_locally(
    *,
    target: ReleaseTarget,
    host_arch: Arch,
    settings: InstallConfig,
    binary_name: str,
    console: ConsoleProtocol,
) -> Result[Path | None, ReleaseError]:
    """Install target into the install dir if it was built for this host.

    Returns Ok(None) when the architectures differ (nothing to do).
    """
    if not target.arch.matches(host_arch):
        console.print(f"skip install: {target.arch} does not match host ({host_arch})", Style.DIM)
        return Ok(None)

    dest = install_destination(settings=settings, binary_name=binary_name)
    if not dest.parent.is_dir():
        return Err(
            ReleaseError(
                stage=Stage.INSTALL,
                kind="install_error",
                message=f"install directory does not exist: {dest.parent}",
            )
        )

    console.print(f"install {target.binary_path} -> {dest}", Style.DIM)
    try:
        atomic_install_executable(target.binary_path, dest)
    except PermissionError:
        return Err(
            ReleaseError(
                stage=Stage.INSTALL,
                kind="install_error",
                message=f"permission denied writing {dest}",
                hint=f"sudo install {target.binary_path} {dest}",
            )
        )
    except OSError as e:
        return Err(
            ReleaseError(
                stage=Stage.INSTALL,
                kind="install_error",
                message=f"cannot install {dest}: {e}",
            )
        )

    return Ok(dest)
