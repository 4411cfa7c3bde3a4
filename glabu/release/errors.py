"""Error types for the release workflow."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Literal, TypeAlias

from glabu.registry.packages import FailureReason

__all__ = ["ReleaseError", "ReleaseErrorKind", "Stage"]


class Stage(Enum):
    """Release stage that produced an error (named in every failure message)."""

    CONFIG = "config"
    VERSION = "version"
    BUILD = "build"
    COMPRESS = "compress"
    UPLOAD = "upload"
    IMAGE = "image"
    MANIFEST = "manifest"
    INSTALL = "install"

    def __str__(self) -> str:
        return self.value


ReleaseErrorKind: TypeAlias = Literal[
    "config_error",
    "tool_missing",
    "vcs_error",
    "build_error",
    "compression_error",
    "upload_error",
    "manifest_error",
    "install_error",
]


@dataclass(frozen=True, slots=True)
class ReleaseError:
    """Canonical release error payload.

    `reason` is only set for upload errors (auth, network, conflict,
    unknown); it comes from the registry client or the container push.
    """

    stage: Stage
    kind: ReleaseErrorKind
    message: str
    hint: str | None = None
    reason: FailureReason | None = None

    def pretty(self) -> str:
        text = f"[{self.stage}] {self.message}"
        if self.reason is not None:
            text += f" ({self.reason})"
        return text
