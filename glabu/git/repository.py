"""Git repository queries used to version a release.

The release version is the abbreviated hash of HEAD. The repository root
is passed explicitly; git runs with `-C <root>` so the process working
directory is never changed.

Usage:
    repo = Repository(Path("/path/to/project"))
    match repo.short_head():
        case Ok(commit):
            print(f"version: {commit}")
        case Err(e):
            print(f"Error: {e.message}")
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path

from glabu.core.result import Err, Ok, Result
from glabu.platform.process import ProcessError
from glabu.platform.process import run as run_process

_GIT_TIMEOUT_SECONDS = 30.0
_SHORT_HASH_RE = re.compile(r"^[0-9a-f]{4,40}$")

__all__ = [
    "GitError",
    "Repository",
]


@dataclass(frozen=True, slots=True)
class GitError:
    """Error from a git operation.

    Attributes:
        command: The git command that failed
        message: Error message
        returncode: Process return code
    """

    command: str
    message: str
    returncode: int = 1


class Repository:
    """A git working tree rooted at `path`."""

    def __init__(self, path: Path) -> None:
        self.path = path

    def short_head(self) -> Result[str, GitError]:
        """Abbreviated hash of HEAD (`git rev-parse --short HEAD`).

        Returns:
            Ok(hash) on success
            Err(GitError) outside a repository, on an unborn HEAD, or when
            git prints something that is not a hex hash
        """
        result = self._run(["rev-parse", "--short", "HEAD"])
        match result:
            case Err(e):
                return Err(
                    GitError(
                        command="rev-parse --short HEAD",
                        message=e.stderr.strip() or "cannot resolve HEAD",
                        returncode=e.returncode,
                    )
                )
            case Ok(stdout):
                commit = stdout.strip()
                if not _SHORT_HASH_RE.match(commit):
                    return Err(
                        GitError(
                            command="rev-parse --short HEAD",
                            message=f"unexpected output from git: {commit!r}",
                        )
                    )
                return Ok(commit)

    def _run(self, args: list[str]) -> Result[str, ProcessError]:
        """Run a git command in this repository."""
        return run_process(
            ["git", "-C", str(self.path), *args],
            cwd=self.path,
            timeout=_GIT_TIMEOUT_SECONDS,
        )
