"""HTTP client abstraction for the GitLab API.

This module provides:
- HttpClient: Protocol for HTTP operations (injectable for tests)
- RealHttpClient: Real implementation using urllib
- MockHttpClient: Mock implementation for testing
"""

from __future__ import annotations

import json
import os
import ssl
import tempfile
import urllib.error
import urllib.request
from dataclasses import dataclass, field
from pathlib import Path
from typing import BinaryIO, Protocol, runtime_checkable

from glabu import __version__
from glabu.core.result import Err, Ok, Result

__all__ = [
    "HttpClient",
    "HttpError",
    "MockHttpClient",
    "RealHttpClient",
]

_CHUNK_SIZE = 64 * 1024


@dataclass(frozen=True, slots=True)
class HttpError:
    """HTTP error details.

    Attributes:
        url: The URL that failed
        status: HTTP status code (0 when no response was received)
        message: Human-readable error message (GitLab's `message` when present)
        network: True only when the server could not be reached or the
            connection broke; unparseable bodies and bad URLs are not network errors
    """

    url: str
    status: int
    message: str
    network: bool = False

    def __str__(self) -> str:
        if self.status:
            return f"HTTP {self.status}: {self.message} ({self.url})"
        return f"{self.message} ({self.url})"

    @property
    def is_network(self) -> bool:
        return self.network


@runtime_checkable
class HttpClient(Protocol):
    """Protocol for HTTP operations.

    Lets tests inject a mock client instead of talking to GitLab.
    """

    def get_json(self, url: str) -> Result[object, HttpError]:
        """Fetch URL and parse the body as JSON (object or array)."""
        ...

    def put_bytes(self, url: str, data: bytes) -> Result[str, HttpError]:
        """PUT raw bytes to URL and return the response text."""
        ...

    def download(self, url: str, dest: Path) -> Result[Path, HttpError]:
        """Stream URL into dest, creating parent directories."""
        ...


class RealHttpClient:
    """Real HTTP client using urllib.

    Every request carries the configured extra headers (the GitLab
    `PRIVATE-TOKEN`). Error bodies are parsed for GitLab's `message` field.
    """

    def __init__(
        self,
        *,
        headers: dict[str, str] | None = None,
        timeout: float = 60.0,
        user_agent: str = f"glabu/{__version__}",
    ) -> None:
        self.timeout = timeout
        self._headers = {"User-Agent": user_agent, **(headers or {})}
        self._ssl_context = ssl.create_default_context()

    def _request(
        self,
        url: str,
        *,
        method: str = "GET",
        data: bytes | None = None,
    ) -> Result[bytes, HttpError]:
        headers = dict(self._headers)
        if data is not None:
            headers["Content-Type"] = "application/octet-stream"
        try:
            req = urllib.request.Request(url, data=data, headers=headers, method=method)
            with urllib.request.urlopen(
                req,
                timeout=self.timeout,
                context=self._ssl_context,
            ) as response:
                return Ok(response.read())
        except urllib.error.HTTPError as e:
            return Err(HttpError(url=url, status=e.code, message=_error_message(e)))
        except urllib.error.URLError as e:
            return Err(_network_error(url, str(e.reason)))
        except TimeoutError:
            return Err(_network_error(url, "Request timed out"))
        except ValueError as e:
            # Malformed URL, e.g. a host without http(s)://
            return Err(HttpError(url=url, status=0, message=str(e)))
        except OSError as e:
            return Err(_network_error(url, str(e)))

    def get_json(self, url: str) -> Result[object, HttpError]:
        result = self._request(url)
        if isinstance(result, Err):
            return result

        try:
            data: object = json.loads(result.value.decode("utf-8"))
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            return Err(HttpError(url=url, status=0, message=f"JSON parse error: {e}"))
        return Ok(data)

    def put_bytes(self, url: str, data: bytes) -> Result[str, HttpError]:
        result = self._request(url, method="PUT", data=data)
        if isinstance(result, Err):
            return result
        return Ok(result.value.decode("utf-8", errors="replace"))

    def download(self, url: str, dest: Path) -> Result[Path, HttpError]:
        """Stream into a temp file beside dest and rename it over dest.

        dest is only touched once the whole body arrived.
        """
        try:
            dest.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{dest.name}.",
                suffix=".part",
                dir=str(dest.parent),
            )
        except OSError as e:
            return Err(HttpError(url=url, status=0, message=f"cannot write {dest}: {e}"))
        tmp_path = Path(tmp_name)

        try:
            with os.fdopen(fd, "wb") as handle:
                streamed = self._stream(url, handle)
            if isinstance(streamed, Err):
                return streamed
            os.replace(tmp_path, dest)
        except OSError as e:
            return Err(HttpError(url=url, status=0, message=f"cannot write {dest}: {e}"))
        finally:
            tmp_path.unlink(missing_ok=True)
        return Ok(dest)

    def _stream(self, url: str, handle: BinaryIO) -> Result[None, HttpError]:
        try:
            req = urllib.request.Request(url, headers=dict(self._headers))
            with urllib.request.urlopen(
                req,
                timeout=self.timeout,
                context=self._ssl_context,
            ) as response:
                while True:
                    chunk = response.read(_CHUNK_SIZE)
                    if not chunk:
                        break
                    handle.write(chunk)
        except urllib.error.HTTPError as e:
            return Err(HttpError(url=url, status=e.code, message=_error_message(e)))
        except urllib.error.URLError as e:
            return Err(_network_error(url, str(e.reason)))
        except TimeoutError:
            return Err(_network_error(url, "Download timed out"))
        except ValueError as e:
            return Err(HttpError(url=url, status=0, message=str(e)))
        except OSError as e:
            return Err(_network_error(url, str(e)))
        return Ok(None)


def _network_error(url: str, message: str) -> HttpError:
    return HttpError(url=url, status=0, message=message, network=True)


def _error_message(error: urllib.error.HTTPError) -> str:
    """GitLab answers errors with {"message": ...}; fall back to the reason."""
    try:
        body = error.read().decode("utf-8", errors="replace")
    except OSError:
        return str(error.reason)
    try:
        payload: object = json.loads(body)
    except json.JSONDecodeError:
        return body.strip() or str(error.reason)
    if isinstance(payload, dict):
        message = payload.get("message") or payload.get("error")
        if message:
            return str(message)
    return str(error.reason)


def _empty_calls() -> list[tuple[str, str]]:
    return []


@dataclass
class MockHttpClient:
    """Mock HTTP client for testing.

    Usage:
        client = MockHttpClient()
        client.set_json("https://gitlab.com/api/v4/projects/1/packages", [])
        client.set_put("https://.../glabu-amd64", "{}")
        result = client.get_json("https://gitlab.com/api/v4/projects/1/packages")
        assert result == Ok([])
    """

    calls: list[tuple[str, str]] = field(default_factory=_empty_calls)
    uploads: dict[str, bytes] = field(default_factory=dict)
    _json: dict[str, object] = field(default_factory=dict)
    _put: dict[str, str | HttpError] = field(default_factory=dict)
    _download: dict[str, bytes | HttpError] = field(default_factory=dict)

    def set_json(self, url: str, response: object) -> None:
        """Set JSON response (or an HttpError) for URL."""
        self._json[url] = response

    def set_put(self, url: str, response: str | HttpError) -> None:
        self._put[url] = response

    def set_download(self, url: str, response: bytes | HttpError) -> None:
        self._download[url] = response

    def get_json(self, url: str) -> Result[object, HttpError]:
        self.calls.append(("GET", url))
        if url not in self._json:
            return Err(HttpError(url=url, status=404, message="Not found (mock)"))
        response = self._json[url]
        if isinstance(response, HttpError):
            return Err(response)
        return Ok(response)

    def put_bytes(self, url: str, data: bytes) -> Result[str, HttpError]:
        self.calls.append(("PUT", url))
        response = self._put.get(url, '{"message":"201 Created"}')
        if isinstance(response, HttpError):
            return Err(response)
        self.uploads[url] = data
        return Ok(response)

    def download(self, url: str, dest: Path) -> Result[Path, HttpError]:
        self.calls.append(("DOWNLOAD", url))
        if url not in self._download:
            return Err(HttpError(url=url, status=404, message="Not found (mock)"))
        response = self._download[url]
        if isinstance(response, HttpError):
            return Err(response)
        dest.parent.mkdir(parents=True, exist_ok=True)
        dest.write_bytes(response)
        return Ok(dest)

    def count(self, method: str) -> int:
        return sum(1 for m, _ in self.calls if m == method)
