"""Error presentation utilities.

Centralized error formatting and exit code mapping for consistent UX.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from glabu.core.errors import ErrorCode
from glabu.output.console import Style
from glabu.registry.packages import FailureReason, RegistryError
from glabu.release.errors import ReleaseError

if TYPE_CHECKING:
    from glabu.output.console import ConsoleProtocol

__all__ = [
    "print_registry_error",
    "print_release_error",
    "registry_error_exit_code",
    "release_error_exit_code",
]


def print_release_error(error: ReleaseError, console: ConsoleProtocol) -> None:
    console.error(error.pretty())
    if error.hint:
        console.print(f"hint: {error.hint}", Style.DIM)


def release_error_exit_code(error: ReleaseError) -> ErrorCode:
    """Map a release error to its exit code.

    Authentication failures are environment errors (missing or bad token).
    install_error maps to OK: a failed local install never fails a release.
    """
    match error.kind:
        case "config_error":
            return ErrorCode.USER_ERROR
        case "tool_missing":
            return ErrorCode.ENV_ERROR
        case "vcs_error":
            return ErrorCode.VCS_ERROR
        case "build_error" | "compression_error":
            return ErrorCode.BUILD_ERROR
        case "upload_error":
            if error.reason == FailureReason.AUTH:
                return ErrorCode.ENV_ERROR
            return ErrorCode.REGISTRY_ERROR
        case "manifest_error":
            return ErrorCode.MANIFEST_ERROR
        case "install_error":
            return ErrorCode.OK


def print_registry_error(error: RegistryError, console: ConsoleProtocol) -> None:
    console.error(f"{error.message} ({error.reason})")
    if error.hint:
        console.print(f"hint: {error.hint}", Style.DIM)


def registry_error_exit_code(error: RegistryError) -> ErrorCode:
    if error.reason == FailureReason.AUTH:
        return ErrorCode.ENV_ERROR
    return ErrorCode.REGISTRY_ERROR
