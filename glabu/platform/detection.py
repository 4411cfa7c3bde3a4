"""Architecture naming and host detection.

Hosts, cargo and container registries each spell architectures differently
(`x86_64` vs `amd64`, `aarch64` vs `arm64`). This module holds the single
mapping table between those spellings; every stage of a release goes
through `Arch` instead of comparing raw strings.
"""

from __future__ import annotations

import platform as _platform
from dataclasses import dataclass
from enum import Enum, auto
from functools import lru_cache

__all__ = [
    "Arch",
    "ArchInfo",
    "detect_arch",
    "parse_arch",
]


class Arch(Enum):
    """Canonical CPU architecture."""

    AMD64 = auto()
    ARM64 = auto()
    UNKNOWN = auto()

    def __str__(self) -> str:
        return self.name.lower()

    @property
    def is_known(self) -> bool:
        return self != Arch.UNKNOWN

    @property
    def info(self) -> ArchInfo:
        """Naming details for a known architecture.

        Raises:
            KeyError: For Arch.UNKNOWN, which has no build target.
        """
        return _ARCH_TABLE[self]

    @property
    def target_triple(self) -> str:
        return self.info.target_triple

    @property
    def container_platform(self) -> str:
        return self.info.container_platform

    def matches(self, other: Arch) -> bool:
        """True when both are the same known architecture.

        UNKNOWN never matches, not even itself.
        """
        return self.is_known and self == other


@dataclass(frozen=True, slots=True)
class ArchInfo:
    """Spellings of one architecture across tools."""

    name: str
    aliases: tuple[str, ...]
    target_triple: str
    container_platform: str


_ARCH_TABLE: dict[Arch, ArchInfo] = {
    Arch.AMD64: ArchInfo(
        name="amd64",
        aliases=("amd64", "x86_64", "x86-64", "x64"),
        target_triple="x86_64-unknown-linux-musl",
        container_platform="linux/amd64",
    ),
    Arch.ARM64: ArchInfo(
        name="arm64",
        aliases=("arm64", "aarch64", "arm64v8", "armv8"),
        target_triple="aarch64-unknown-linux-musl",
        container_platform="linux/arm64",
    ),
}


def parse_arch(value: str) -> Arch:
    """Map any known spelling (`x86_64`, `AMD64`, `aarch64`, ...) to an Arch.

    Returns Arch.UNKNOWN for anything not in the table.
    """
    needle = value.strip().lower()
    for arch, info in _ARCH_TABLE.items():
        if needle in info.aliases:
            return arch
    return Arch.UNKNOWN


@lru_cache(maxsize=1)
def detect_arch() -> Arch:
    """Detect the host CPU architecture (cached)."""
    return parse_arch(_platform.machine())
