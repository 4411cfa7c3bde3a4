"""GitLab generic package registry client.

GitLab stores generic packages as `<name>/<version>/<file_name>` under a
project. A project is addressed by its URL-encoded full path, so no
project-id lookup is needed:

    PUT /api/v4/projects/puterize%2Fprebuilt/packages/generic/glabu/abc1234/glabu-amd64

Every call is a single request; nothing is retried here.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from urllib.parse import quote, urlencode

from glabu.core.config import GitlabConfig, is_http_url
from glabu.core.result import Err, Ok, Result
from glabu.registry.http import HttpClient, HttpError, RealHttpClient
from glabu.registry.models import (
    PackageFileInfo,
    PackageInfo,
    parse_package_files,
    parse_packages,
)

__all__ = [
    "FailureReason",
    "PackageRegistry",
    "RegistryError",
    "classify_http_error",
    "select_files",
]

_PAGE_SIZE = 100
_CONFLICT_MARKERS = ("duplicate", "already exists", "already been taken")


class FailureReason(Enum):
    """Why a registry call failed."""

    AUTH = "auth"
    NETWORK = "network"
    CONFLICT = "conflict"
    NOT_FOUND = "not_found"
    UNKNOWN = "unknown"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True, slots=True)
class RegistryError:
    reason: FailureReason
    message: str
    hint: str | None = None


def classify_http_error(error: HttpError) -> FailureReason:
    """Map an HTTP failure to a FailureReason.

    GitLab reports disallowed duplicates as 400 or 403 with a message that
    mentions the duplicate, so the message is checked before the status.
    """
    if error.is_network:
        return FailureReason.NETWORK
    text = error.message.lower()
    if error.status == 409 or any(marker in text for marker in _CONFLICT_MARKERS):
        return FailureReason.CONFLICT
    if error.status in (401, 403):
        return FailureReason.AUTH
    if error.status == 404:
        return FailureReason.NOT_FOUND
    return FailureReason.UNKNOWN


def _registry_error(error: HttpError, what: str) -> RegistryError:
    reason = classify_http_error(error)
    hint = {
        FailureReason.AUTH: "Check that the token has the api scope and access to the project.",
        FailureReason.NETWORK: "Check connectivity to the GitLab host and re-run.",
        FailureReason.CONFLICT: "Pass --overwrite, or release a new commit.",
        FailureReason.NOT_FOUND: "Check the project path (namespace/project).",
    }.get(reason)
    return RegistryError(reason=reason, message=f"{what}: {error}", hint=hint)


class PackageRegistry:
    """Client for one GitLab instance's generic package registry."""

    def __init__(self, *, host: str, http: HttpClient) -> None:
        self.host = host.rstrip("/")
        self._http = http

    @classmethod
    def from_config(cls, config: GitlabConfig) -> Result[PackageRegistry, RegistryError]:
        """Build a registry client authenticated with the configured token."""
        token = config.token()
        if token is None:
            return Err(
                RegistryError(
                    reason=FailureReason.AUTH,
                    message=f"{config.token_env} is not set",
                    hint=f"export {config.token_env}=<personal access token with api scope>",
                )
            )
        host = config.resolved_host()
        if not is_http_url(host):
            return Err(
                RegistryError(
                    reason=FailureReason.UNKNOWN,
                    message=f"GitLab host must start with http:// or https://: {host}",
                    hint="export GITLAB_HOST=https://<gitlab host>",
                )
            )
        http = RealHttpClient(headers={"PRIVATE-TOKEN": token})
        return Ok(cls(host=host, http=http))

    # -------------------------------------------------------------------------
    # URLs
    # -------------------------------------------------------------------------

    def project_url(self, namespace: str) -> str:
        return f"{self.host}/api/v4/projects/{quote(namespace.strip('/'), safe='')}"

    def package_file_url(
        self, namespace: str, package_name: str, package_version: str, file_name: str
    ) -> str:
        return (
            f"{self.project_url(namespace)}/packages/generic/"
            f"{quote(package_name, safe='')}/{quote(package_version, safe='')}/"
            f"{quote(file_name, safe='')}"
        )

    # -------------------------------------------------------------------------
    # Operations
    # -------------------------------------------------------------------------

    def package_upload(
        self,
        namespace: str,
        package_name: str,
        package_version: str,
        file_name: str,
        file_bytes: bytes,
        *,
        overwrite: bool = False,
    ) -> Result[str, RegistryError]:
        """Upload one file into `<package_name>/<package_version>`.

        Unless overwrite is set, an existing file with the same name is a
        CONFLICT and nothing is sent. Returns the file's URL.
        """
        if not overwrite:
            existing = self.find_package_files(namespace, package_name, package_version)
            if isinstance(existing, Err):
                return existing
            if any(f.file_name == file_name for f in existing.value):
                return Err(
                    RegistryError(
                        reason=FailureReason.CONFLICT,
                        message=(
                            f"{package_name}/{package_version}/{file_name} "
                            f"already exists in {namespace}"
                        ),
                        hint="Pass --overwrite, or release a new commit.",
                    )
                )

        url = self.package_file_url(namespace, package_name, package_version, file_name)
        result = self._http.put_bytes(url, file_bytes)
        if isinstance(result, Err):
            return Err(_registry_error(result.error, "upload failed"))
        return Ok(url)

    def list_packages(
        self,
        namespace: str,
        package_name: str,
        *,
        package_version: str | None = None,
        latest: bool = False,
    ) -> Result[list[PackageInfo], RegistryError]:
        """Generic packages named exactly package_name, newest first.

        GitLab filters `package_name` by substring; exact matching is
        applied here.
        """
        query: dict[str, str] = {
            "package_type": "generic",
            "package_name": package_name,
            "order_by": "created_at",
            "sort": "desc",
            "per_page": str(_PAGE_SIZE),
        }
        if package_version is not None:
            query["package_version"] = package_version

        url = f"{self.project_url(namespace)}/packages?{urlencode(query)}"
        result = self._http.get_json(url)
        if isinstance(result, Err):
            return Err(_registry_error(result.error, "listing packages failed"))

        packages = parse_packages(result.value)
        if packages is None:
            return Err(
                RegistryError(
                    reason=FailureReason.UNKNOWN,
                    message=f"unexpected response listing packages: {url}",
                )
            )

        matching = [p for p in packages if p.name == package_name]
        if package_version is not None:
            matching = [p for p in matching if p.version == package_version]
        if latest:
            matching = matching[:1]
        return Ok(matching)

    def list_package_files(
        self, namespace: str, package_id: int
    ) -> Result[list[PackageFileInfo], RegistryError]:
        url = (
            f"{self.project_url(namespace)}/packages/{package_id}/package_files"
            f"?per_page={_PAGE_SIZE}"
        )
        result = self._http.get_json(url)
        if isinstance(result, Err):
            return Err(_registry_error(result.error, "listing package files failed"))
        files = parse_package_files(result.value)
        if files is None:
            return Err(
                RegistryError(
                    reason=FailureReason.UNKNOWN,
                    message=f"unexpected response listing package files: {url}",
                )
            )
        return Ok(files)

    def find_package_files(
        self, namespace: str, package_name: str, package_version: str
    ) -> Result[list[PackageFileInfo], RegistryError]:
        """Files of `<package_name>/<package_version>`; empty if the package is absent."""
        packages = self.list_packages(namespace, package_name, package_version=package_version)
        if isinstance(packages, Err):
            return packages

        out: list[PackageFileInfo] = []
        for package in packages.value:
            files = self.list_package_files(namespace, package.id)
            if isinstance(files, Err):
                return files
            out.extend(files.value)
        return Ok(out)

    def latest_version(self, namespace: str, package_name: str) -> Result[str, RegistryError]:
        packages = self.list_packages(namespace, package_name, latest=True)
        if isinstance(packages, Err):
            return packages
        if not packages.value:
            return Err(
                RegistryError(
                    reason=FailureReason.NOT_FOUND,
                    message=f"no package named {package_name} in {namespace}",
                )
            )
        return Ok(packages.value[0].version)

    def download_file(
        self,
        namespace: str,
        package_name: str,
        package_version: str,
        file_name: str,
        dest: Path,
    ) -> Result[Path, RegistryError]:
        url = self.package_file_url(namespace, package_name, package_version, file_name)
        result = self._http.download(url, dest)
        if isinstance(result, Err):
            return Err(_registry_error(result.error, f"download of {file_name} failed"))
        return Ok(result.value)


def select_files(
    files: list[PackageFileInfo],
    *,
    file_name: str | None = None,
    pattern: str | None = None,
) -> list[PackageFileInfo]:
    """Pick files by exact name, or by regex search on the name.

    With neither filter every file is selected. Files uploaded several
    times under one name appear once (the newest upload).

    Raises:
        re.error: If pattern is not a valid regular expression.
    """
    regex = re.compile(pattern) if pattern else None
    newest: dict[str, PackageFileInfo] = {}
    for f in files:
        if file_name is not None and f.file_name != file_name:
            continue
        if regex is not None and not regex.search(f.file_name):
            continue
        current = newest.get(f.file_name)
        if current is None or f.id > current.id:
            newest[f.file_name] = f
    return sorted(newest.values(), key=lambda f: f.file_name)
