from __future__ import annotations

import pytest

from glabu.core.errors import ErrorCode
from glabu.output.console import MockConsole, Style
from glabu.output.errors import (
    print_registry_error,
    print_release_error,
    registry_error_exit_code,
    release_error_exit_code,
)
from glabu.registry.packages import FailureReason, RegistryError
from glabu.release.errors import ReleaseError, ReleaseErrorKind, Stage


@pytest.mark.parametrize(
    ("kind", "expected"),
    [
        ("config_error", ErrorCode.USER_ERROR),
        ("tool_missing", ErrorCode.ENV_ERROR),
        ("vcs_error", ErrorCode.VCS_ERROR),
        ("build_error", ErrorCode.BUILD_ERROR),
        ("compression_error", ErrorCode.BUILD_ERROR),
        ("upload_error", ErrorCode.REGISTRY_ERROR),
        ("manifest_error", ErrorCode.MANIFEST_ERROR),
        ("install_error", ErrorCode.OK),
    ],
)
def test_release_exit_codes(kind: ReleaseErrorKind, expected: ErrorCode) -> None:
    error = ReleaseError(stage=Stage.BUILD, kind=kind, message="x")
    assert release_error_exit_code(error) == expected


def test_upload_auth_failure_is_environment_error() -> None:
    error = ReleaseError(
        stage=Stage.UPLOAD, kind="upload_error", message="401", reason=FailureReason.AUTH
    )
    assert release_error_exit_code(error) == ErrorCode.ENV_ERROR


def test_print_release_error_names_stage_and_reason() -> None:
    console = MockConsole()
    error = ReleaseError(
        stage=Stage.UPLOAD,
        kind="upload_error",
        message="glabu/abc1234/glabu-amd64 already exists",
        hint="Pass --overwrite",
        reason=FailureReason.CONFLICT,
    )

    print_release_error(error, console)

    assert console.messages[0] == (
        "error: [upload] glabu/abc1234/glabu-amd64 already exists (conflict)"
    )
    assert console.outputs[1].message == "hint: Pass --overwrite"
    assert console.outputs[1].style == Style.DIM


def test_print_registry_error() -> None:
    console = MockConsole()
    print_registry_error(
        RegistryError(reason=FailureReason.NETWORK, message="connection refused"), console
    )
    assert console.messages == ["error: connection refused (network)"]


@pytest.mark.parametrize(
    ("reason", "expected"),
    [
        (FailureReason.AUTH, ErrorCode.ENV_ERROR),
        (FailureReason.NETWORK, ErrorCode.REGISTRY_ERROR),
        (FailureReason.CONFLICT, ErrorCode.REGISTRY_ERROR),
        (FailureReason.NOT_FOUND, ErrorCode.REGISTRY_ERROR),
    ],
)
def test_registry_exit_codes(reason: FailureReason, expected: ErrorCode) -> None:
    assert registry_error_exit_code(RegistryError(reason=reason, message="x")) == expected
