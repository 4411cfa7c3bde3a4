from __future__ import annotations

from pathlib import Path

from glabu.core.config import BuildConfig
from glabu.core.result import Err, Ok, Result
from glabu.output.console import ConsoleProtocol, Style
from glabu.platform.detection import Arch
from glabu.platform.process import run_silent, which
from glabu.release.errors import ReleaseError, Stage
from glabu.release.model import ReleaseTarget


def binary_path(*, root: Path, build: BuildConfig, arch: Arch) -> Path:
    """`<root>/<target_dir>/<triple>/release/<binary_name>`."""
    return root / build.target_dir / arch.target_triple / "release" / build.binary_name


def cargo_command(*, build: BuildConfig, arch: Arch) -> list[str]:
    cmd = [
        "cargo",
        "build",
        "--release",
        "--target",
        arch.target_triple,
        "--target-dir",
        build.target_dir,
    ]
    if build.cargo_package:
        cmd.extend(["--package", build.cargo_package])
    return cmd


def build_artifact(
    *,
    root: Path,
    build: BuildConfig,
    arch: Arch,
    console: ConsoleProtocol,
) -> Result[ReleaseTarget, ReleaseError]:
    if which("cargo") is None:
        return Err(
            ReleaseError(
                stage=Stage.BUILD,
                kind="tool_missing",
                message="cargo: missing",
                hint="Install Rust: https://rustup.rs/",
            )
        )

    cmd = cargo_command(build=build, arch=arch)
    console.print(" ".join(cmd), Style.DIM)
    result = run_silent(cmd, cwd=root)
    if isinstance(result, Err):
        return Err(
            ReleaseError(
                stage=Stage.BUILD,
                kind="build_error",
                message=f"cargo build failed for {arch} (exit {result.error.returncode})",
                hint=f"rustup target add {arch.target_triple}",
            )
        )

    path = binary_path(root=root, build=build, arch=arch)
    if not path.is_file():
        return Err(
            ReleaseError(
                stage=Stage.BUILD,
                kind="build_error",
                message=f"build succeeded but binary is missing: {path}",
                hint="Check build.binary_name and build.cargo_package in glabu.toml.",
            )
        )

    return Ok(ReleaseTarget(arch=arch, binary_path=path))
