"""Platform abstraction layer."""

from .detection import (
    Arch,
    ArchInfo,
    detect_arch,
    parse_arch,
)
from .process import (
    ProcessError,
    run,
    run_silent,
    which,
)

__all__ = [
    # detection
    "Arch",
    "ArchInfo",
    "detect_arch",
    "parse_arch",
    # process
    "ProcessError",
    "run",
    "run_silent",
    "which",
]
