"""Error codes for CLI exit status.

One code per release stage so a failed run can be diagnosed from the exit
status alone. Local install failures never produce a non-zero code.
"""

from enum import IntEnum

__all__ = ["ErrorCode"]


class ErrorCode(IntEnum):
    """Exit codes for CLI commands.

    These values are used as process exit codes and should remain stable:
    - 0: Success (manifest pushed, or registry command completed)
    - 1: User error (bad arguments, invalid glabu.toml)
    - 2: Environment error (podman, cargo or upx missing; missing or rejected token)
    - 3: Build error (cargo/podman build or compression failed)
    - 4: Registry error (package upload/download or image push failed)
    - 5: Manifest error (manifest remove/create/add/push failed)
    - 6: Version control error (not a repository, HEAD unresolvable)
    """

    OK = 0
    USER_ERROR = 1
    ENV_ERROR = 2
    BUILD_ERROR = 3
    REGISTRY_ERROR = 4
    MANIFEST_ERROR = 5
    VCS_ERROR = 6
