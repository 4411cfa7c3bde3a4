"""GitLab package registry access."""

from .http import HttpClient, HttpError, MockHttpClient, RealHttpClient
from .models import PackageFileInfo, PackageInfo
from .packages import FailureReason, PackageRegistry, RegistryError, select_files

__all__ = [
    # http
    "HttpClient",
    "HttpError",
    "MockHttpClient",
    "RealHttpClient",
    # models
    "PackageFileInfo",
    "PackageInfo",
    # packages
    "FailureReason",
    "PackageRegistry",
    "RegistryError",
    "select_files",
]
