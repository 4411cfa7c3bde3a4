from __future__ import annotations

import re
from pathlib import Path

import typer

from glabu.cli.commands._helpers import (
    exit_on_registry_error,
    exit_with_code,
    registry_from_context,
)
from glabu.cli.context import CLIContext, build_context
from glabu.core.errors import ErrorCode
from glabu.output.console import Style
from glabu.registry.models import PackageFileInfo
from glabu.registry.packages import PackageRegistry, select_files

DEFAULT_OUTPUT_DIR = Path("/tmp")


def _namespace(value: str | None, ctx: CLIContext) -> str:
    return value or ctx.config.package.namespace


def _package_name(value: str | None, ctx: CLIContext) -> str:
    return value or ctx.config.package.name


def _format_size(size: int | None) -> str:
    if size is None:
        return "?"
    if size < 1024:
        return f"{size} B"
    if size < 1024 * 1024:
        return f"{size / 1024:.1f} KiB"
    return f"{size / (1024 * 1024):.1f} MiB"


def _resolve_version(
    registry: PackageRegistry,
    ctx: CLIContext,
    *,
    namespace: str,
    package_name: str,
    package_version: str | None,
    latest: bool,
) -> str:
    if package_version and latest:
        ctx.console.error("--package-version and --latest are mutually exclusive")
        exit_with_code(ErrorCode.USER_ERROR)
    if package_version:
        return package_version
    if not latest:
        ctx.console.error("pass --package-version or --latest")
        exit_with_code(ErrorCode.USER_ERROR)
    return exit_on_registry_error(registry.latest_version(namespace, package_name), ctx)


def package_upload(
    namespace: str | None = typer.Argument(None, help="Project path (group/project)"),
    package_name: str | None = typer.Option(None, "--package-name", help="Generic package name"),
    package_version: str = typer.Option(..., "--package-version", help="Package version"),
    file_name: str | None = typer.Option(
        None, "--file-name", help="Name in the registry (default: file's name)"
    ),
    file_path: Path = typer.Option(..., "--file-path", help="Local file to upload"),
    overwrite: bool = typer.Option(
        False, "--overwrite", help="Upload even if the file already exists"
    ),
) -> None:
    """Upload one file to a generic package."""
    ctx = build_context()
    path = file_path.expanduser()
    if not path.is_file():
        ctx.console.error(f"file not found: {path}")
        exit_with_code(ErrorCode.USER_ERROR)

    try:
        data = path.read_bytes()
    except OSError as e:
        ctx.console.error(f"cannot read {path}: {e}")
        exit_with_code(ErrorCode.USER_ERROR)

    registry = registry_from_context(ctx)
    url = exit_on_registry_error(
        registry.package_upload(
            _namespace(namespace, ctx),
            _package_name(package_name, ctx),
            package_version,
            file_name or path.name,
            data,
            overwrite=overwrite,
        ),
        ctx,
    )
    ctx.console.success(url)


def package_files(
    namespace: str | None = typer.Argument(None, help="Project path (group/project)"),
    package_name: str | None = typer.Option(None, "--package-name", help="Generic package name"),
    package_version: str | None = typer.Option(
        None, "--package-version", help="Only this version (default: all)"
    ),
    latest: bool = typer.Option(False, "--latest", help="Only the newest version"),
) -> None:
    """List the files of a generic package."""
    ctx = build_context()
    ns = _namespace(namespace, ctx)
    name = _package_name(package_name, ctx)
    registry = registry_from_context(ctx)

    packages = exit_on_registry_error(
        registry.list_packages(ns, name, package_version=package_version, latest=latest), ctx
    )
    if not packages:
        ctx.console.warning(f"no package named {name} in {ns}")
        return

    for package in packages:
        ctx.console.header(f"{package.name} {package.version}")
        files = exit_on_registry_error(registry.list_package_files(ns, package.id), ctx)
        for f in select_files(files):
            ctx.console.print(f"{f.file_name}  {_format_size(f.size)}  {f.created_at or ''}")


def package_download(
    namespace: str | None = typer.Argument(None, help="Project path (group/project)"),
    package_name: str | None = typer.Option(None, "--package-name", help="Generic package name"),
    package_version: str | None = typer.Option(None, "--package-version", help="Version"),
    latest: bool = typer.Option(False, "--latest", help="Use the newest version"),
    file_name: str | None = typer.Option(None, "--file-name", help="Exact file name"),
    pattern: str | None = typer.Option(None, "--pattern", help="Regex matched against file names"),
    output_dir: Path = typer.Option(
        DEFAULT_OUTPUT_DIR, "--output-dir", help="Directory to download into"
    ),
) -> None:
    """Download files of a generic package."""
    ctx = build_context()
    if file_name and pattern:
        ctx.console.error("--file-name and --pattern are mutually exclusive")
        exit_with_code(ErrorCode.USER_ERROR)
    if pattern:
        try:
            re.compile(pattern)
        except re.error as e:
            ctx.console.error(f"invalid --pattern: {e}")
            exit_with_code(ErrorCode.USER_ERROR)

    ns = _namespace(namespace, ctx)
    name = _package_name(package_name, ctx)
    registry = registry_from_context(ctx)
    version = _resolve_version(
        registry,
        ctx,
        namespace=ns,
        package_name=name,
        package_version=package_version,
        latest=latest,
    )

    out_dir = output_dir.expanduser()
    if not out_dir.is_dir():
        ctx.console.warning(f"{out_dir} is not a directory, using {DEFAULT_OUTPUT_DIR}")
        out_dir = DEFAULT_OUTPUT_DIR

    files: list[PackageFileInfo] = exit_on_registry_error(
        registry.find_package_files(ns, name, version), ctx
    )
    selected = select_files(files, file_name=file_name, pattern=pattern)
    if not selected:
        ctx.console.error(f"no matching files in {name} {version}")
        exit_with_code(ErrorCode.REGISTRY_ERROR)

    ctx.console.print(f"{name} {version} -> {out_dir}", Style.DIM)
    for f in selected:
        path = exit_on_registry_error(
            registry.download_file(ns, name, version, f.file_name, out_dir / f.file_name), ctx
        )
        ctx.console.success(str(path))
