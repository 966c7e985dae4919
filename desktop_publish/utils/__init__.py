"""Utility modules for the publish tool."""

from desktop_publish.utils.http import HttpClient, HttpResponse, HttpTransport
from desktop_publish.utils.shell import ShellError, run, strip_ansi
from desktop_publish.utils.version import (
    clean_version,
    is_prerelease,
    signing_version_string,
)

__all__ = [
    # Shell utilities
    "run",
    "strip_ansi",
    "ShellError",
    # HTTP
    "HttpClient",
    "HttpResponse",
    "HttpTransport",
    # Version utilities
    "clean_version",
    "is_prerelease",
    "signing_version_string",
]
