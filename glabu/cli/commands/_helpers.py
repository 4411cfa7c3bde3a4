"""Shared helpers for CLI commands."""

from __future__ import annotations

from typing import TYPE_CHECKING, NoReturn, TypeVar

import typer

from glabu.core.errors import ErrorCode
from glabu.core.result import Err, Result
from glabu.output.errors import print_registry_error, registry_error_exit_code
from glabu.registry.packages import PackageRegistry, RegistryError

if TYPE_CHECKING:
    from glabu.cli.context import CLIContext

T = TypeVar("T")


def exit_on_registry_error(result: Result[T, RegistryError], ctx: CLIContext) -> T:
    """Return the Ok value, or print the error and exit with its code."""
    if isinstance(result, Err):
        print_registry_error(result.error, ctx.console)
        raise typer.Exit(code=int(registry_error_exit_code(result.error)))
    return result.value


def registry_from_context(ctx: CLIContext) -> PackageRegistry:
    return exit_on_registry_error(PackageRegistry.from_config(ctx.config.gitlab), ctx)


def exit_with_code(code: ErrorCode) -> NoReturn:
    raise typer.Exit(code=int(code))
