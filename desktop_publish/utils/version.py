"""Version string handling for published packages.

Package versions are free-form npm versions (``1.2.3``, ``1.2.3-beta.1``,
``01.02.03``). Registries store the cleaned form, so lookups and the
companion upload always use ``clean_version``.
"""

import re
from typing import Any, Mapping

# MAJOR.MINOR.PATCH core followed by a '-' prerelease qualifier
PRERELEASE_PATTERN = re.compile(r"^v?\d+(\.\d+)*-[0-9A-Za-z.-]+")


def clean_version(version: str) -> str:
    """Canonicalize a version string.

    Leading zeroes are stripped from every numeric component before the first
    ``-``. Whatever follows the ``-`` is re-appended untouched.

    Examples:
        >>> clean_version('01.02.003')
        '1.2.3'
        >>> clean_version('1.0.00-beta.01')
        '1.0.0-beta.01'
    """
    suffix = ""
    suffix_index = version.find("-")
    if suffix_index != -1:
        suffix = version[suffix_index:]
        version = version[:suffix_index]

    parts = []
    for part in version.split("."):
        parts.append(str(int(part)) if part.isdigit() else part)
    return ".".join(parts) + suffix


def is_prerelease(version: str) -> bool:
    """Check whether a version carries a prerelease qualifier.

    Prerelease versions are recorded in the ledger but never become ``latest``.

    Examples:
        >>> is_prerelease('1.0.2-beta.1')
        True
        >>> is_prerelease('1.0.1')
        False
    """
    return bool(PRERELEASE_PATTERN.match(version.strip()))


def signing_version_string(package_json: Mapping[str, Any]) -> str:
    """Version string passed to the package signer (``version#commitHash``)."""
    version_string = clean_version(str(package_json["version"]))
    commit_hash = package_json.get("commitHash")
    if commit_hash:
        version_string += f"#{commit_hash}"
    return version_string
