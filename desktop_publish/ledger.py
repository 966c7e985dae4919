"""The ``package-info.json`` version ledger kept on a GitHub release.

The document mirrors npm registry metadata so installers can read either::

    {
      "name": "widget",
      "_id": "widget",
      "versions": {"2.0.36": {...package.json snapshot...}},
      "time": {"created": "...", "modified": "...", "2.0.36": "..."},
      "dist-tags": {"latest": "2.0.36"},
      "commit-hashes": {"2.0.36": "abc123"}
    }

Versions are never removed. ``latest`` only moves for non-prerelease
versions. The whole document is rewritten on every publish.
"""

import copy
import json
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Mapping

from desktop_publish.exceptions import PublishError
from desktop_publish.utils.version import is_prerelease

Clock = Callable[[], datetime]


def format_timestamp(moment: datetime) -> str:
    """Format as ``yyyy-MM-ddTHH:mm:ss.SSS+zzzz`` (millisecond precision)."""
    if moment.tzinfo is None:
        moment = moment.astimezone()
    millis = f"{moment.microsecond // 1000:03d}"
    return moment.strftime("%Y-%m-%dT%H:%M:%S.") + millis + moment.strftime("%z")


def _now() -> datetime:
    return datetime.now().astimezone()


def validate_ledger(text: str | bytes) -> dict[str, Any]:
    """Parse and sanity-check an existing ledger.

    Returns:
        The parsed document

    Raises:
        PublishError: If the document is not JSON, lacks ``name``, or has no
            object-valued ``versions``
    """
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise PublishError(
            "package-info.json is not valid JSON",
            details=str(e),
            fix_hint="Refusing to overwrite a corrupted ledger; repair or delete it first",
        ) from e
    if not isinstance(data, dict):
        raise PublishError("package-info.json must contain a JSON object")
    if "name" not in data:
        raise PublishError("package-info.json is missing required 'name' field")
    if not isinstance(data.get("versions"), dict):
        raise PublishError("package-info.json is missing required 'versions' field")
    return data


class PackageInfoBuilder:
    """Builds an npm-compatible package-info.json document.

    Args:
        clock: Returns the current time (injectable for tests)
    """

    def __init__(self, clock: Clock | None = None) -> None:
        self.data: dict[str, Any] = {}
        self.clock = clock or _now

    def load(self, source: str | bytes | Mapping[str, Any]) -> "PackageInfoBuilder":
        if isinstance(source, Mapping):
            self.data = copy.deepcopy(dict(source))
        else:
            self.data = validate_ledger(source)
        return self

    def _section(self, key: str) -> dict[str, Any]:
        section = self.data.get(key)
        if not isinstance(section, dict):
            section = self.data[key] = {}
        return section

    def _timestamp(self) -> str:
        return format_timestamp(self.clock())

    def set_created_time(self) -> "PackageInfoBuilder":
        self._section("time")["created"] = self._timestamp()
        return self

    def set_modified_time(self) -> "PackageInfoBuilder":
        self._section("time")["modified"] = self._timestamp()
        return self

    def set_version_timestamp(self, version: str, overwrite: bool = False) -> "PackageInfoBuilder":
        """Record when a version was first seen. Existing stamps are kept unless ``overwrite``."""
        times = self._section("time")
        if overwrite or version not in times:
            times[version] = self._timestamp()
        return self

    def add_version(self, version: str, metadata: Mapping[str, Any]) -> "PackageInfoBuilder":
        """Store a snapshot of the version's package.json."""
        snapshot = copy.deepcopy(dict(metadata))
        self._section("versions")[version] = snapshot

        name = snapshot.get("name")
        if name:
            self.data["name"] = name
            self.data["_id"] = name

        jdeploy = snapshot.get("jdeploy")
        commit_hash = jdeploy.get("commitHash") if isinstance(jdeploy, dict) else None
        commit_hash = commit_hash or snapshot.get("commitHash")
        if commit_hash:
            self._section("commit-hashes")[version] = commit_hash

        if snapshot.get("source"):
            self.data["source"] = snapshot["source"]
        return self

    def add_dist_tag(self, tag: str, version: str) -> "PackageInfoBuilder":
        self._section("dist-tags")[tag] = version
        return self

    def set_latest_version(self, version: str) -> "PackageInfoBuilder":
        return self.add_dist_tag("latest", version)

    @property
    def versions(self) -> dict[str, Any]:
        return self._section("versions")

    @property
    def latest(self) -> str | None:
        tags = self.data.get("dist-tags")
        return tags.get("latest") if isinstance(tags, dict) else None

    def has_version(self, version: str) -> bool:
        return version in self.versions

    def to_json(self, indent: int | None = 2) -> str:
        return json.dumps(self.data, indent=indent)

    def save(self, path: Path) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(self.to_json(), encoding="utf-8")
        return path


def build_ledger(
    existing: str | bytes | None,
    version: str,
    metadata: Mapping[str, Any],
    clock: Clock | None = None,
) -> PackageInfoBuilder:
    """Merge a newly published version into the ledger.

    Args:
        existing: Current ledger text, or None when none exists yet
        version: Version being published
        metadata: package.json snapshot for that version
        clock: Time source

    Returns:
        Builder holding the updated document

    Raises:
        PublishError: If ``existing`` is corrupt
    """
    builder = PackageInfoBuilder(clock)
    if existing:
        builder.load(existing)
    else:
        builder.set_created_time()
    builder.set_modified_time()
    builder.set_version_timestamp(version)
    builder.add_version(version, metadata)
    if not is_prerelease(version):
        builder.set_latest_version(version)
    return builder
