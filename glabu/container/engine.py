"""Podman wrapper for per-architecture images and multi-arch manifests.

Each method is one podman invocation from the project root. Nothing is
retried; callers decide what a failure means for the release.
"""

from __future__ import annotations

from pathlib import Path

from glabu.core.result import Err, Ok, Result
from glabu.platform.detection import Arch
from glabu.platform.process import ProcessError, run, run_silent, which

__all__ = ["ContainerEngine"]

_MANIFEST_TIMEOUT_SECONDS = 120.0
_MANIFEST_MISSING_EXIT = 1


class ContainerEngine:
    """Runs podman against images and manifest lists.

    Attributes:
        root: Project root; relative containerfile/context paths resolve here.
        tool: Container CLI (podman, or a compatible drop-in).
    """

    def __init__(self, root: Path, *, tool: str = "podman") -> None:
        self.root = root
        self.tool = tool

    def is_available(self) -> bool:
        return which(self.tool) is not None

    # -------------------------------------------------------------------------
    # Images
    # -------------------------------------------------------------------------

    def build_image(
        self, *, arch: Arch, tag: str, containerfile: str, context: str
    ) -> Result[None, ProcessError]:
        return run_silent(
            [
                self.tool,
                "build",
                "--platform",
                arch.container_platform,
                "-t",
                tag,
                "-f",
                containerfile,
                context,
            ],
            cwd=self.root,
        )

    def push_image(self, tag: str) -> Result[None, ProcessError]:
        return run_silent([self.tool, "push", tag], cwd=self.root)

    # -------------------------------------------------------------------------
    # Manifests
    # -------------------------------------------------------------------------

    def manifest_exists(self, tag: str) -> Result[bool, ProcessError]:
        """True if a local manifest list named tag exists.

        `podman manifest exists` exits 1 when the manifest is absent; any
        other failure (tool missing, storage error) is an Err.
        """
        result = self._manifest(["exists", tag])
        if isinstance(result, Ok):
            return Ok(True)
        if result.error.returncode == _MANIFEST_MISSING_EXIT:
            return Ok(False)
        return result

    def manifest_create(self, tag: str) -> Result[None, ProcessError]:
        return self._manifest_unit(["create", tag])

    def manifest_remove(self, tag: str) -> Result[None, ProcessError]:
        return self._manifest_unit(["rm", tag])

    def manifest_add(self, tag: str, member: str) -> Result[None, ProcessError]:
        return self._manifest_unit(["add", tag, member])

    def manifest_push(self, tag: str) -> Result[None, ProcessError]:
        return self._manifest_unit(["push", tag])

    def _manifest_unit(self, args: list[str]) -> Result[None, ProcessError]:
        result = self._manifest(args)
        if isinstance(result, Err):
            return result
        return Ok(None)

    def _manifest(self, args: list[str]) -> Result[str, ProcessError]:
        return run(
            [self.tool, "manifest", *args],
            cwd=self.root,
            timeout=_MANIFEST_TIMEOUT_SECONDS,
        )
