"""Publish targets, platforms and the per-project bundle settings.

Targets are read from ``jdeploy.publishTargets`` in package.json::

    "jdeploy": {
        "publishTargets": [
            {"name": "github", "type": "GITHUB", "url": "https://github.com/acme/widget"}
        ]
    }

A project with no explicit targets publishes to a single default npm target
named after the package.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping

from desktop_publish.exceptions import ConfigurationError

GITHUB_URL = "https://github.com/"


class PublishTargetType(Enum):
    """Kind of distribution channel."""

    NPM = "NPM"
    GITHUB = "GITHUB"

    @property
    def is_default_source(self) -> bool:
        """Whether packages on this channel resolve without a ``source`` field."""
        return self is PublishTargetType.NPM


@dataclass(frozen=True)
class PublishTarget:
    """One destination a package is published to.

    Attributes:
        type: Channel type
        name: Display name
        url: Repository URL (GitHub) or package name (npm)
        is_default: True for the implicit target created when none are configured
    """

    type: PublishTargetType
    name: str
    url: str
    is_default: bool = False

    @property
    def is_default_source(self) -> bool:
        return self.type.is_default_source

    def to_dict(self) -> dict[str, str]:
        return {"name": self.name, "type": self.type.value, "url": self.url}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "PublishTarget":
        """Deserialize a target entry.

        Raises:
            ValueError: If the entry has no url or an unknown type
        """
        url = str(data.get("url") or "").rstrip("/")
        if not url:
            raise ValueError(f"Publish target is missing a url: {dict(data)!r}")
        raw_type = data.get("type")
        if raw_type:
            try:
                target_type = PublishTargetType(str(raw_type).upper())
            except ValueError:
                raise ValueError(f"Unsupported publish target type: {raw_type!r}") from None
        else:
            target_type = (
                PublishTargetType.GITHUB if url.startswith(GITHUB_URL) else PublishTargetType.NPM
            )
        return cls(type=target_type, name=str(data.get("name") or url), url=url)


def load_publish_targets(
    package_json: Mapping[str, Any],
    include_default: bool = True,
) -> list[PublishTarget]:
    """Read the configured targets from package.json, in configured order.

    Args:
        package_json: Parsed package.json
        include_default: Add a default npm target when none are configured

    Returns:
        List of targets (possibly empty)

    Raises:
        ConfigurationError: If a configured target is invalid
    """
    jdeploy = package_json.get("jdeploy") or {}
    try:
        targets = [PublishTarget.from_dict(entry) for entry in jdeploy.get("publishTargets") or []]
    except ValueError as e:
        raise ConfigurationError("Invalid jdeploy.publishTargets entry", details=str(e)) from e
    if not targets and include_default:
        name = str(package_json["name"])
        targets.append(
            PublishTarget(type=PublishTargetType.NPM, name=name, url=name, is_default=True)
        )
    return targets


class Platform(Enum):
    """Platforms that may receive their own npm package."""

    DEFAULT = "default"
    MAC_X64 = "mac-x64"
    MAC_ARM64 = "mac-arm64"
    WIN_X64 = "win-x64"
    WIN_ARM64 = "win-arm64"
    LINUX_X64 = "linux-x64"
    LINUX_ARM64 = "linux-arm64"

    @property
    def identifier(self) -> str:
        return self.value

    @property
    def package_property_name(self) -> str:
        """Key in the jdeploy block holding this platform's npm package name."""
        if self is Platform.DEFAULT:
            return "package"
        return "package" + "".join(part.capitalize() for part in self.value.split("-"))

    @classmethod
    def from_identifier(cls, identifier: str | None) -> "Platform | None":
        for platform in cls:
            if platform.value == identifier:
                return platform
        return None


@dataclass
class ProjectSettings:
    """View over the ``jdeploy`` block that drives platform fan-out."""

    jdeploy: Mapping[str, Any]

    @classmethod
    def from_package_json(cls, package_json: Mapping[str, Any]) -> "ProjectSettings":
        return cls(jdeploy=package_json.get("jdeploy") or {})

    @property
    def platform_bundles_enabled(self) -> bool:
        return bool(self.jdeploy.get("platformBundlesEnabled", False))

    def package_name(self, platform: Platform | None) -> str | None:
        if platform is None or platform is Platform.DEFAULT:
            return None
        name = self.jdeploy.get(platform.package_property_name)
        return str(name) if name else None

    def platforms_with_package_names(self) -> list[Platform]:
        return [p for p in Platform if self.package_name(p)]
