from __future__ import annotations

from dataclasses import replace
from pathlib import Path

import typer

from glabu.cli.commands._helpers import exit_with_code, registry_from_context
from glabu.cli.context import CLIContext, build_context
from glabu.container.engine import ContainerEngine
from glabu.core.config import ReleaseConfig
from glabu.core.errors import ErrorCode
from glabu.core.result import Err
from glabu.output.console import Style
from glabu.output.errors import print_release_error, release_error_exit_code
from glabu.platform.detection import Arch, parse_arch
from glabu.registry.http import RealHttpClient
from glabu.registry.packages import PackageRegistry
from glabu.release.model import ReleasePlan
from glabu.release.orchestrator import ReleaseOrchestrator


def _apply_overrides(
    config: ReleaseConfig,
    *,
    archs: tuple[Arch, ...] | None,
    jobs: int | None,
    no_compress: bool,
    no_install: bool,
    overwrite: bool,
) -> ReleaseConfig:
    build = config.build
    if archs:
        build = replace(build, architectures=archs)
    if jobs is not None:
        build = replace(build, jobs=jobs)
    compress = replace(config.compress, enabled=False) if no_compress else config.compress
    install = replace(config.install, enabled=False) if no_install else config.install
    package = replace(config.package, on_conflict="overwrite") if overwrite else config.package
    return replace(config, build=build, compress=compress, install=install, package=package)


def _parse_archs(values: list[str] | None, ctx: CLIContext) -> tuple[Arch, ...] | None:
    if not values:
        return None
    out: list[Arch] = []
    for value in values:
        arch = parse_arch(value)
        if not arch.is_known:
            ctx.console.error(f"unknown architecture: {value}")
            ctx.console.print("hint: use amd64 or arm64", Style.DIM)
            exit_with_code(ErrorCode.USER_ERROR)
        if arch not in out:
            out.append(arch)
    return tuple(out)


def _print_plan(plan: ReleasePlan, ctx: CLIContext) -> None:
    console = ctx.console
    console.header(f"Release plan for {plan.version}")
    for item in plan.archs:
        console.print(f"[{item.arch}]", Style.BOLD)
        console.print(f"  binary  {item.binary_path}")
        console.print(
            f"  package {item.upload.namespace} "
            f"{item.upload.package_name}/{item.upload.package_version}/{item.upload.file_name}"
        )
        console.print(f"  image   {item.image_tag}")
    console.print(f"manifest {plan.tag_root}")
    if plan.install_path is not None:
        console.print(f"install  {plan.install_path} (host {ctx.host_arch})")
    else:
        console.print("install  skipped", Style.DIM)


def release(
    root: Path | None = typer.Option(None, "--root", help="Project root (default: auto-detect)"),
    config: Path | None = typer.Option(None, "--config", help="Path to glabu.toml"),
    arch: list[str] | None = typer.Option(
        None, "--arch", help="Target architecture (repeatable; overrides build.architectures)"
    ),
    jobs: int | None = typer.Option(
        None, "--jobs", "-j", min=1, help="Architectures released in parallel"
    ),
    no_compress: bool = typer.Option(False, "--no-compress", help="Skip UPX compression"),
    no_install: bool = typer.Option(False, "--no-install", help="Skip the local install"),
    overwrite: bool = typer.Option(
        False, "--overwrite", help="Upload even if the package file already exists"
    ),
    dry_run: bool = typer.Option(False, "--dry-run", help="Print the plan and exit"),
) -> None:
    """Build, upload and publish every architecture for the current commit."""
    ctx = build_context(root=root, config_path=config)
    cfg = _apply_overrides(
        ctx.config,
        archs=_parse_archs(arch, ctx),
        jobs=jobs,
        no_compress=no_compress,
        no_install=no_install,
        overwrite=overwrite,
    )

    if dry_run:
        # The plan never talks to GitLab, so no token is required.
        registry = PackageRegistry(host=cfg.gitlab.resolved_host(), http=RealHttpClient())
    else:
        registry = registry_from_context(ctx)

    orchestrator = ReleaseOrchestrator(
        root=ctx.root,
        config=cfg,
        console=ctx.console,
        host_arch=ctx.host_arch,
        registry=registry,
        engine=ContainerEngine(ctx.root),
    )

    if dry_run:
        version = orchestrator.resolve_version_tag()
        if isinstance(version, Err):
            print_release_error(version.error, ctx.console)
            exit_with_code(release_error_exit_code(version.error))
        _print_plan(orchestrator.plan(version.value), ctx)
        return

    result = orchestrator.run()
    if isinstance(result, Err):
        print_release_error(result.error, ctx.console)
        exit_with_code(release_error_exit_code(result.error))

    report = result.value
    ctx.console.newline()
    ctx.console.success(
        f"released {report.version}: {len(report.uploads)} packages, "
        f"manifest {report.manifest.tag_root}"
    )
