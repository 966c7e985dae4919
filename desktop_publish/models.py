"""Package metadata and bundle descriptors."""

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from desktop_publish.exceptions import ConfigurationError
from desktop_publish.targets import Platform
from desktop_publish.utils.version import clean_version


@dataclass
class PackageMetadata:
    """The package.json document of the bundle being published.

    The build step owns the file; the publish core only injects
    target-specific fields into its staged copy.
    """

    data: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def load(cls, path: Path) -> "PackageMetadata":
        """Read package.json.

        Raises:
            ConfigurationError: If the file is missing or not a JSON object
        """
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            raise ConfigurationError(
                f"package.json not found: {path}",
                fix_hint="Run the publish command from the project directory",
            ) from None
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Invalid JSON in {path}", details=str(e)) from e
        if not isinstance(data, dict):
            raise ConfigurationError(f"{path} must contain a JSON object")
        return cls(data)

    def save(self, path: Path, indent: int | None = 2) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(self.data, indent=indent), encoding="utf-8")

    def to_dict(self) -> dict[str, Any]:
        return json.loads(json.dumps(self.data))

    @property
    def name(self) -> str:
        return str(self.data.get("name", ""))

    @name.setter
    def name(self, value: str) -> None:
        self.data["name"] = value

    @property
    def version(self) -> str:
        return str(self.data.get("version", ""))

    @property
    def clean_version(self) -> str:
        return clean_version(self.version)

    @property
    def description(self) -> str:
        return str(self.data.get("description", ""))

    @description.setter
    def description(self, value: str) -> None:
        self.data["description"] = value

    @property
    def author(self) -> Any:
        return self.data.get("author")

    @property
    def source(self) -> str:
        return str(self.data.get("source", ""))

    @source.setter
    def source(self, value: str) -> None:
        self.data["source"] = value

    @property
    def commit_hash(self) -> str | None:
        return self.data.get("commitHash") or self.jdeploy.get("commitHash")

    @property
    def jdeploy(self) -> dict[str, Any]:
        """The deployment-config block, created on first access."""
        return self.data.setdefault("jdeploy", {})


@dataclass
class PlatformBundle:
    """A per-platform copy of the bundle published under its own npm name."""

    platform: Platform
    directory: Path
    npm_package_name: str


@dataclass
class BundlerSettings:
    """Settings handed to the package builder for one target."""

    source: str | None = None
    compress_bundles: bool = False
    do_not_zip_exe_installer: bool = False
