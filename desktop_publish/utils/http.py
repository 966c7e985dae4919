"""Minimal HTTP client over urllib.

Status codes are data here, not exceptions: the release protocol needs to
tell 201 from 404 from 422 from 412, so every HTTP response (including error
statuses) comes back as an ``HttpResponse``. Only transport failures raise.
"""

import http.client
import json
import urllib.error
import urllib.request
from dataclasses import dataclass, field
from typing import IO, Any, Protocol

from desktop_publish.exceptions import NetworkError

USER_AGENT = "desktop-publish/0.1"

Body = bytes | IO[bytes] | None


@dataclass
class HttpResponse:
    """Response from an HTTP request."""

    status: int
    body: bytes = b""
    headers: dict[str, str] = field(default_factory=dict)

    @property
    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")

    def json(self) -> Any:
        """Decode the body as JSON.

        Raises:
            json.JSONDecodeError: If the body is not JSON
        """
        return json.loads(self.text)

    def header(self, name: str) -> str | None:
        """Case-insensitive header lookup."""
        lowered = name.lower()
        for key, value in self.headers.items():
            if key.lower() == lowered:
                return value
        return None


class HttpTransport(Protocol):
    """Anything that can perform a request (real client or test fake)."""

    def request(
        self,
        method: str,
        url: str,
        headers: dict[str, str] | None = None,
        body: Body = None,
        timeout: float = 30,
    ) -> HttpResponse: ...


class HttpClient:
    """urllib-backed transport. Redirects are followed, caches bypassed."""

    def __init__(self, timeout: float = 30) -> None:
        self.timeout = timeout

    def request(
        self,
        method: str,
        url: str,
        headers: dict[str, str] | None = None,
        body: Body = None,
        timeout: float | None = None,
    ) -> HttpResponse:
        """Perform a request and return the response whatever its status.

        Args:
            method: HTTP method
            url: Absolute URL
            headers: Request headers
            body: Request body (bytes or a binary file object to stream)
            timeout: Per-request timeout in seconds

        Returns:
            HttpResponse for any status code

        Raises:
            NetworkError: On DNS, connection, timeout or malformed-response failures
        """
        req = urllib.request.Request(
            url,
            data=body,
            method=method,
            headers={"User-Agent": USER_AGENT, "Cache-Control": "no-cache", **(headers or {})},
        )
        try:
            with urllib.request.urlopen(req, timeout=timeout or self.timeout) as response:
                return HttpResponse(
                    status=response.status,
                    body=response.read(),
                    headers=dict(response.headers.items()),
                )
        except urllib.error.HTTPError as e:
            try:
                error_body = e.read() or b""
            except (http.client.HTTPException, OSError):
                error_body = b""
            return HttpResponse(
                status=e.code,
                body=error_body,
                headers=dict(e.headers.items()) if e.headers else {},
            )
        except (urllib.error.URLError, http.client.HTTPException, TimeoutError, OSError) as e:
            raise NetworkError(
                f"{method} {url} failed",
                details=str(getattr(e, "reason", e)),
                fix_hint="Check your network connection and try again",
            ) from e
