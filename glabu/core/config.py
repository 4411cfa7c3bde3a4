"""Typed configuration loading and access.

This module provides dataclasses for the glabu.toml structure with full
type safety and validation. Every key is optional; missing keys fall back
to the defaults below.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal, TypeAlias

from glabu.platform.detection import Arch, parse_arch

from .result import Err, Ok, Result
from .structured import (
    StrDict,
    as_str_dict,
    get_bool,
    get_int,
    get_str,
    get_str_list,
    get_table,
)

__all__ = [
    "CONFIG_FILENAME",
    "BuildConfig",
    "CompressConfig",
    "ConfigError",
    "ConflictPolicy",
    "GitlabConfig",
    "ImageConfig",
    "InstallConfig",
    "PackageConfig",
    "ReleaseConfig",
    "find_project_root",
    "is_http_url",
    "load_config",
    "load_config_or_default",
]

CONFIG_FILENAME = "glabu.toml"

DEFAULT_NAMESPACE = "puterize/prebuilt"
DEFAULT_PACKAGE_NAME = "glabu"
DEFAULT_BINARY_NAME = "glabu"
DEFAULT_ARCHITECTURES = (Arch.AMD64, Arch.ARM64)
DEFAULT_TARGET_DIR = "target"
DEFAULT_COMPRESS_TOOL = "upx"
DEFAULT_REGISTRY = "registry.gitlab.com/puterize/glabu"
DEFAULT_CONTAINERFILE = "Dockerfile"
DEFAULT_CONTEXT = "."
DEFAULT_INSTALL_DIR = "/usr/local/bin"
DEFAULT_GITLAB_HOST = "https://gitlab.com"
DEFAULT_TOKEN_ENV = "GITLAB_TOKEN"

ConflictPolicy: TypeAlias = Literal["reject", "overwrite"]


def is_http_url(value: str) -> bool:
    return value.startswith(("http://", "https://"))


@dataclass(frozen=True, slots=True)
class ConfigError:
    """Error when config cannot be loaded or parsed."""

    message: str
    path: Path | None = None


@dataclass(frozen=True, slots=True)
class PackageConfig:
    """Generic package destination in the GitLab package registry."""

    namespace: str = DEFAULT_NAMESPACE
    name: str = DEFAULT_PACKAGE_NAME
    on_conflict: ConflictPolicy = "reject"


@dataclass(frozen=True, slots=True)
class BuildConfig:
    """Cargo build settings."""

    binary_name: str = DEFAULT_BINARY_NAME
    architectures: tuple[Arch, ...] = DEFAULT_ARCHITECTURES
    target_dir: str = DEFAULT_TARGET_DIR
    cargo_package: str | None = None
    jobs: int = 1


@dataclass(frozen=True, slots=True)
class CompressConfig:
    enabled: bool = True
    tool: str = DEFAULT_COMPRESS_TOOL
    args: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class ImageConfig:
    """Container image settings; members are tagged `<registry>:<commit>-<arch>`."""

    registry: str = DEFAULT_REGISTRY
    containerfile: str = DEFAULT_CONTAINERFILE
    context: str = DEFAULT_CONTEXT


@dataclass(frozen=True, slots=True)
class InstallConfig:
    enabled: bool = True
    dir: str = DEFAULT_INSTALL_DIR


@dataclass(frozen=True, slots=True)
class GitlabConfig:
    host: str = DEFAULT_GITLAB_HOST
    token_env: str = DEFAULT_TOKEN_ENV

    def resolved_host(self) -> str:
        """GITLAB_HOST wins over the configured host."""
        return (os.environ.get("GITLAB_HOST") or self.host).rstrip("/")

    def token(self) -> str | None:
        value = os.environ.get(self.token_env, "").strip()
        return value or None


@dataclass(frozen=True, slots=True)
class ReleaseConfig:
    """Main configuration container."""

    package: PackageConfig = field(default_factory=PackageConfig)
    build: BuildConfig = field(default_factory=BuildConfig)
    compress: CompressConfig = field(default_factory=CompressConfig)
    image: ImageConfig = field(default_factory=ImageConfig)
    install: InstallConfig = field(default_factory=InstallConfig)
    gitlab: GitlabConfig = field(default_factory=GitlabConfig)

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> ReleaseConfig:
        """Create ReleaseConfig from a mapping (parsed TOML).

        Raises:
            ValueError: On values that parse but make no sense
                (unknown architecture, bad conflict policy, jobs < 1,
                a GitLab host without a scheme).
        """
        package: StrDict = get_table(data, "package") or {}
        build: StrDict = get_table(data, "build") or {}
        compress: StrDict = get_table(data, "compress") or {}
        image: StrDict = get_table(data, "image") or {}
        install: StrDict = get_table(data, "install") or {}
        gitlab: StrDict = get_table(data, "gitlab") or {}

        on_conflict = get_str(package, "on_conflict") or "reject"
        if on_conflict not in ("reject", "overwrite"):
            raise ValueError(f"package.on_conflict must be 'reject' or 'overwrite': {on_conflict}")

        arch_names = get_str_list(build, "architectures")
        architectures = DEFAULT_ARCHITECTURES
        if arch_names is not None:
            architectures = _parse_architectures(arch_names)

        jobs = get_int(build, "jobs")
        if jobs is None:
            jobs = 1
        if jobs < 1:
            raise ValueError(f"build.jobs must be >= 1: {jobs}")

        host = get_str(gitlab, "host") or DEFAULT_GITLAB_HOST
        if not is_http_url(host):
            raise ValueError(f"gitlab.host must start with http:// or https://: {host}")

        return cls(
            package=PackageConfig(
                namespace=get_str(package, "namespace") or DEFAULT_NAMESPACE,
                name=get_str(package, "name") or DEFAULT_PACKAGE_NAME,
                on_conflict="overwrite" if on_conflict == "overwrite" else "reject",
            ),
            build=BuildConfig(
                binary_name=get_str(build, "binary_name") or DEFAULT_BINARY_NAME,
                architectures=architectures,
                target_dir=get_str(build, "target_dir") or DEFAULT_TARGET_DIR,
                cargo_package=get_str(build, "cargo_package"),
                jobs=jobs,
            ),
            compress=CompressConfig(
                enabled=_bool_or(compress, "enabled", True),
                tool=get_str(compress, "tool") or DEFAULT_COMPRESS_TOOL,
                args=tuple(get_str_list(compress, "args") or ()),
            ),
            image=ImageConfig(
                registry=get_str(image, "registry") or DEFAULT_REGISTRY,
                containerfile=get_str(image, "containerfile") or DEFAULT_CONTAINERFILE,
                context=get_str(image, "context") or DEFAULT_CONTEXT,
            ),
            install=InstallConfig(
                enabled=_bool_or(install, "enabled", True),
                dir=get_str(install, "dir") or DEFAULT_INSTALL_DIR,
            ),
            gitlab=GitlabConfig(
                host=host,
                token_env=get_str(gitlab, "token_env") or DEFAULT_TOKEN_ENV,
            ),
        )


def _bool_or(table: Mapping[str, object], key: str, default: bool) -> bool:
    value = get_bool(table, key)
    return default if value is None else value


def _parse_architectures(names: list[str]) -> tuple[Arch, ...]:
    out: list[Arch] = []
    for name in names:
        arch = parse_arch(name)
        if not arch.is_known:
            raise ValueError(f"unknown architecture in build.architectures: {name}")
        if arch not in out:
            out.append(arch)
    if not out:
        raise ValueError("build.architectures must not be empty")
    return tuple(out)


def _parse_toml(path: Path) -> Result[StrDict, ConfigError]:
    """Parse a TOML file, handling read and parse errors."""
    import tomllib

    try:
        content = path.read_bytes()
        data_obj: object = tomllib.loads(content.decode("utf-8"))
        data = as_str_dict(data_obj)
        if data is None:
            return Err(ConfigError("Config root must be a TOML table", path=path))
        return Ok(data)
    except FileNotFoundError:
        return Err(ConfigError(f"Config file not found: {path}", path=path))
    except PermissionError:
        return Err(ConfigError(f"Permission denied reading: {path}", path=path))
    except tomllib.TOMLDecodeError as e:
        return Err(ConfigError(f"Invalid TOML syntax: {e}", path=path))
    except UnicodeDecodeError as e:
        return Err(ConfigError(f"Error reading config: {e}", path=path))


def load_config(path: Path) -> Result[ReleaseConfig, ConfigError]:
    """Load and parse configuration from a TOML file.

    Args:
        path: Path to glabu.toml

    Returns:
        Ok(ReleaseConfig) on success, Err(ConfigError) on failure
    """
    result = _parse_toml(path)
    if isinstance(result, Err):
        return result

    try:
        return Ok(ReleaseConfig.from_dict(result.value))
    except (KeyError, TypeError, ValueError) as e:
        return Err(ConfigError(f"Invalid config: {e}", path=path))


def load_config_or_default(path: Path) -> Result[ReleaseConfig, ConfigError]:
    """Like load_config, but a missing file yields the default config.

    A file that exists but is invalid is still an error.
    """
    if not path.exists():
        return Ok(ReleaseConfig())
    return load_config(path)


def find_project_root(start: Path) -> Path | None:
    """Walk upward from start to the first directory holding glabu.toml."""
    current = start.resolve()
    for candidate in (current, *current.parents):
        if (candidate / CONFIG_FILENAME).is_file():
            return candidate
    return None
