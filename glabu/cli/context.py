from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import typer

from glabu.core.config import (
    CONFIG_FILENAME,
    ReleaseConfig,
    find_project_root,
    load_config,
    load_config_or_default,
)
from glabu.core.errors import ErrorCode
from glabu.core.result import Err
from glabu.output.console import ConsoleProtocol, RichConsole
from glabu.platform.detection import Arch, detect_arch


@dataclass(frozen=True, slots=True)
class CLIContext:
    root: Path
    config: ReleaseConfig
    host_arch: Arch
    console: ConsoleProtocol


def resolve_root(root: Path | None) -> Path:
    """--root, else the nearest directory holding glabu.toml, else cwd."""
    if root is not None:
        return root.expanduser().resolve()
    cwd = Path.cwd()
    return find_project_root(cwd) or cwd.resolve()


def build_context(*, root: Path | None = None, config_path: Path | None = None) -> CLIContext:
    console = RichConsole()
    project_root = resolve_root(root)
    if not project_root.is_dir():
        console.error(f"--root '{project_root}' is not a directory")
        raise typer.Exit(code=int(ErrorCode.USER_ERROR))

    if config_path is not None:
        result = load_config(config_path.expanduser())
    else:
        result = load_config_or_default(project_root / CONFIG_FILENAME)
    if isinstance(result, Err):
        console.error(result.error.message)
        raise typer.Exit(code=int(ErrorCode.USER_ERROR))

    return CLIContext(
        root=project_root,
        config=result.value,
        host_arch=detect_arch(),
        console=console,
    )
