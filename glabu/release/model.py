from __future__ import annotations

from dataclasses import dataclass, replace
from pathlib import Path

from glabu.platform.detection import Arch


@dataclass(frozen=True, slots=True)
class VersionTag:
    """Short HEAD hash; the package version and the image tag suffix."""

    commit: str

    def __str__(self) -> str:
        return self.commit

    @property
    def package_version(self) -> str:
        return self.commit

    def tag_root(self, registry: str) -> str:
        return f"{registry}:{self.commit}"

    def member_tag(self, registry: str, arch: Arch) -> str:
        return f"{self.tag_root(registry)}-{arch}"


@dataclass(frozen=True, slots=True)
class ReleaseTarget:
    arch: Arch
    binary_path: Path
    compressed: bool = False

    def mark_compressed(self) -> ReleaseTarget:
        return replace(self, compressed=True)


@dataclass(frozen=True, slots=True)
class UploadDescriptor:
    namespace: str
    package_name: str
    package_version: str
    file_name: str
    file_path: Path


@dataclass(frozen=True, slots=True)
class UploadResult:
    descriptor: UploadDescriptor
    url: str
    size: int


@dataclass(frozen=True, slots=True)
class ReleaseManifest:
    """Manifest list under construction; members keep insertion order."""

    tag_root: str
    members: tuple[str, ...] = ()

    def with_member(self, tag: str) -> ReleaseManifest:
        return replace(self, members=(*self.members, tag))


@dataclass(frozen=True, slots=True)
class ArchOutcome:
    """Everything one architecture produced: binary, package file, image."""

    target: ReleaseTarget
    upload: UploadResult
    image_tag: str


@dataclass(frozen=True, slots=True)
class ReleaseReport:
    version: VersionTag
    outcomes: tuple[ArchOutcome, ...]
    manifest: ReleaseManifest
    installed: Path | None = None
    install_warning: str | None = None

    @property
    def uploads(self) -> tuple[UploadResult, ...]:
        return tuple(o.upload for o in self.outcomes)


@dataclass(frozen=True, slots=True)
class PlannedArch:
    arch: Arch
    binary_path: Path
    upload: UploadDescriptor
    image_tag: str


@dataclass(frozen=True, slots=True)
class ReleasePlan:
    """What a run would do, computed without side effects (--dry-run)."""

    version: VersionTag
    tag_root: str
    archs: tuple[PlannedArch, ...]
    install_path: Path | None
