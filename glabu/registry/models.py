"""GitLab package registry payloads.

Only the fields glabu reads are modelled; everything else in the API
response is ignored.
"""

from __future__ import annotations

from dataclasses import dataclass

from glabu.core.structured import as_obj_list, as_str_dict, get_int, get_str


@dataclass(frozen=True, slots=True)
class PackageInfo:
    """One entry of `GET /projects/:id/packages`."""

    id: int
    name: str
    version: str
    package_type: str | None = None
    created_at: str | None = None
    status: str | None = None

    @classmethod
    def from_json(cls, obj: object) -> PackageInfo | None:
        data = as_str_dict(obj)
        if data is None:
            return None
        pid = get_int(data, "id")
        name = get_str(data, "name")
        version = get_str(data, "version")
        if pid is None or name is None or version is None:
            return None
        return cls(
            id=pid,
            name=name,
            version=version,
            package_type=get_str(data, "package_type"),
            created_at=get_str(data, "created_at"),
            status=get_str(data, "status"),
        )


@dataclass(frozen=True, slots=True)
class PackageFileInfo:
    """One entry of `GET /projects/:id/packages/:package_id/package_files`."""

    id: int
    package_id: int
    file_name: str
    size: int | None = None
    created_at: str | None = None
    file_sha256: str | None = None

    @classmethod
    def from_json(cls, obj: object) -> PackageFileInfo | None:
        data = as_str_dict(obj)
        if data is None:
            return None
        fid = get_int(data, "id")
        package_id = get_int(data, "package_id")
        file_name = get_str(data, "file_name")
        if fid is None or package_id is None or file_name is None:
            return None
        return cls(
            id=fid,
            package_id=package_id,
            file_name=file_name,
            size=get_int(data, "size"),
            created_at=get_str(data, "created_at"),
            file_sha256=get_str(data, "file_sha256"),
        )


def parse_packages(payload: object) -> list[PackageInfo] | None:
    items = as_obj_list(payload)
    if items is None:
        return None
    return [p for p in (PackageInfo.from_json(item) for item in items) if p is not None]


def parse_package_files(payload: object) -> list[PackageFileInfo] | None:
    items = as_obj_list(payload)
    if items is None:
        return None
    return [f for f in (PackageFileInfo.from_json(item) for item in items) if f is not None]
