"""GitHub release primitives used by the GitHub publish driver.

One release per repository, tagged ``jdeploy``, is used as a shared asset
bucket and holds the version ledger. The release API offers atomic create
and delete-then-upload but no compare-and-swap, so every primitive here maps
each status that indicates a lost race to its own exception type:

- 404 on release lookup: ``ReleaseNotFoundError`` (first publish)
- 422 on create: ``ReleaseAlreadyExistsError`` (lost the create race)
- asset absent from an existing release: ``AssetNotFoundError``
- asset replaced since it was downloaded, or 412: ``ConcurrentPublishError``

None of these methods retry. Retry policy belongs to the caller.
"""

import json
import unicodedata
import urllib.parse
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable

from desktop_publish.exceptions import (
    AssetNotFoundError,
    ConcurrentPublishError,
    NetworkError,
    PublishError,
    ReleaseAlreadyExistsError,
    ReleaseNotFoundError,
)
from desktop_publish.targets import GITHUB_URL
from desktop_publish.utils.http import HttpClient, HttpResponse, HttpTransport

DEFAULT_API_URL = "https://api.github.com"


def normalize_asset_name(name: str) -> str:
    """Canonical form of an asset name for matching.

    GitHub rewrites uploaded names (spaces become dots), so names are
    compared after Unicode normalization with every non-alphanumeric
    character removed, case-insensitively.

    Examples:
        >>> normalize_asset_name('My App Installer.exe')
        'myappinstallerexe'
    """
    decomposed = unicodedata.normalize("NFKD", name)
    return "".join(ch for ch in decomposed if ch.isascii() and ch.isalnum()).lower()


def asset_names_match(first: str, second: str) -> bool:
    return normalize_asset_name(first) == normalize_asset_name(second)


@dataclass
class ReleaseAsset:
    """An asset attached to a release."""

    id: int
    file_name: str
    url: str

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "ReleaseAsset":
        return cls(id=int(data["id"]), file_name=str(data["name"]), url=str(data["url"]))


@dataclass
class ReleaseHandle:
    """A release as returned by the API.

    Attributes:
        id: Release id
        upload_url: Upload endpoint with the URI template suffix removed
        assets: Assets currently attached
        tag: Tag name
        body: Release notes
    """

    id: int
    upload_url: str
    assets: list[ReleaseAsset] = field(default_factory=list)
    tag: str = ""
    body: str = ""

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> "ReleaseHandle":
        upload_url = str(data.get("upload_url", ""))
        template_start = upload_url.find("{")
        if template_start != -1:
            upload_url = upload_url[:template_start]
        return cls(
            id=int(data["id"]),
            upload_url=upload_url,
            assets=[ReleaseAsset.from_api(a) for a in data.get("assets") or []],
            tag=str(data.get("tag_name", "")),
            body=str(data.get("body") or ""),
        )

    def find_asset(self, file_name: str) -> ReleaseAsset | None:
        for asset in self.assets:
            if asset_names_match(asset.file_name, file_name):
                return asset
        return None


@dataclass
class AssetSnapshot:
    """Downloaded asset content plus what is needed to detect later changes."""

    content: bytes
    etag: str | None
    asset_id: int

    @property
    def text(self) -> str:
        return self.content.decode("utf-8")


class GitHubReleaseClient:
    """Thin client over the GitHub releases REST API.

    Args:
        token: Bearer token
        http: Transport (defaults to a urllib client)
        api_url: REST API base URL
        timeout: Per-request timeout in seconds
    """

    def __init__(
        self,
        token: str,
        http: HttpTransport | None = None,
        api_url: str = DEFAULT_API_URL,
        timeout: float = 30,
    ) -> None:
        self.token = token
        self.http = http or HttpClient(timeout=timeout)
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout

    def api_url_for(self, repository_url: str) -> str:
        """Map ``https://github.com/owner/repo`` to its REST API base.

        Raises:
            ValueError: If the URL is not a GitHub repository URL
        """
        if not repository_url.startswith(GITHUB_URL):
            raise ValueError(f"Invalid GitHub repository URL: {repository_url}")
        slug = repository_url[len(GITHUB_URL):].strip("/")
        if slug.endswith(".git"):
            slug = slug[: -len(".git")]
        if slug.count("/") != 1:
            raise ValueError(f"Invalid GitHub repository URL: {repository_url}")
        return f"{self.api_url}/repos/{slug}"

    def _headers(self, **extra: str) -> dict[str, str]:
        headers = {
            "Authorization": f"Bearer {self.token}",
            "Accept": "application/vnd.github+json",
        }
        headers.update(extra)
        return headers

    def _request(
        self,
        method: str,
        url: str,
        headers: dict[str, str] | None = None,
        body: Any = None,
    ) -> HttpResponse:
        return self.http.request(
            method, url, headers=headers or self._headers(), body=body, timeout=self.timeout
        )

    def fetch_release(self, repository_url: str, tag: str) -> ReleaseHandle:
        """Look up a release by tag.

        Raises:
            ReleaseNotFoundError: If no release has this tag (404)
            NetworkError: On any other non-200 status
        """
        url = f"{self.api_url_for(repository_url)}/releases/tags/{urllib.parse.quote(tag)}"
        response = self._request("GET", url)
        if response.status == 404:
            raise ReleaseNotFoundError(f"Release not found for tag: {tag}")
        if response.status != 200:
            raise NetworkError(
                f"Failed to fetch release details for tag {tag}",
                details=f"HTTP {response.status}: {response.text}",
            )
        return ReleaseHandle.from_api(response.json())

    def create_release(
        self,
        repository_url: str,
        tag: str,
        body: str = "",
        artifacts: Iterable[Path] = (),
    ) -> ReleaseHandle:
        """Create a release and upload its artifacts.

        The create call is atomic: if a release with this tag already exists
        the API answers 422 and nothing is uploaded.

        Raises:
            ReleaseAlreadyExistsError: If the tag already has a release (422)
            PublishError: On any other failure
        """
        payload = json.dumps({"tag_name": tag, "name": tag, "body": body}).encode("utf-8")
        response = self._request(
            "POST",
            f"{self.api_url_for(repository_url)}/releases",
            headers=self._headers(**{"Content-Type": "application/json"}),
            body=payload,
        )
        if response.status == 422:
            raise ReleaseAlreadyExistsError(
                f"Release '{tag}' already exists",
                details="Another process created this release while this publish was running",
            )
        if response.status != 201:
            raise PublishError(
                f"Failed to create release '{tag}'",
                details=f"HTTP {response.status}: {response.text}",
            )
        release = ReleaseHandle.from_api(response.json())
        for artifact in artifacts:
            self.upload_asset(release, artifact)
        return release

    def download_asset(self, repository_url: str, tag: str, file_name: str) -> AssetSnapshot:
        """Download an asset along with its ETag and asset id.

        Raises:
            ReleaseNotFoundError: If the release does not exist
            AssetNotFoundError: If the release exists but lacks the asset
            NetworkError: On any other failure
        """
        release = self.fetch_release(repository_url, tag)
        asset = release.find_asset(file_name)
        if asset is None:
            raise AssetNotFoundError(f"Asset '{file_name}' not found in release '{tag}'")

        response = self._request(
            "GET", asset.url, headers=self._headers(Accept="application/octet-stream")
        )
        if response.status != 200:
            raise NetworkError(
                f"Failed to download asset '{file_name}'",
                details=f"HTTP {response.status}: {response.text}",
            )
        etag = response.header("ETag")
        if etag:
            etag = etag.removeprefix("W/").strip('"')
        return AssetSnapshot(content=response.body, etag=etag, asset_id=asset.id)

    def delete_asset(self, asset: ReleaseAsset) -> None:
        """Delete a release asset.

        Raises:
            PublishError: If the API does not answer 204
        """
        response = self._request("DELETE", asset.url)
        if response.status != 204:
            raise PublishError(
                f"Failed to delete existing asset '{asset.file_name}'",
                details=f"HTTP {response.status}: {response.text}",
            )

    def upload_asset(
        self,
        release: ReleaseHandle,
        path: Path,
        overwrite: bool = False,
        extra_headers: dict[str, str] | None = None,
    ) -> ReleaseAsset:
        """Stream a file to the release upload endpoint.

        With ``overwrite``, an existing asset whose normalized name matches is
        deleted first; the upload API cannot replace in place.

        Raises:
            PublishError: If the delete or the upload fails
        """
        if overwrite:
            existing = release.find_asset(path.name)
            if existing is not None:
                self.delete_asset(existing)
                release.assets.remove(existing)

        response = self._upload(release, path, extra_headers or {})
        if response.status != 201:
            raise PublishError(
                f"Failed to upload artifact '{path.name}'",
                details=f"HTTP {response.status}: {response.text}",
            )
        uploaded = ReleaseAsset.from_api(response.json())
        release.assets.append(uploaded)
        return uploaded

    def _upload(
        self, release: ReleaseHandle, path: Path, extra_headers: dict[str, str]
    ) -> HttpResponse:
        url = f"{release.upload_url}?name={urllib.parse.quote(path.name)}"
        headers = self._headers(
            **{
                "Content-Type": "application/octet-stream",
                "Content-Length": str(path.stat().st_size),
            }
        )
        headers.update(extra_headers)
        with open(path, "rb") as stream:
            return self._request("POST", url, headers=headers, body=stream)

    def upload_asset_conditional(
        self,
        repository_url: str,
        release: ReleaseHandle,
        path: Path,
        baseline: AssetSnapshot,
        backup_name: str | None = None,
    ) -> ReleaseAsset:
        """Replace an asset only if nobody replaced it since ``baseline`` was read.

        Every write to the asset is a delete-then-upload, which always yields
        a new asset id. The release is re-fetched and the current asset id
        compared with the baseline's. The upload also carries ``If-Match``
        with the baseline ETag.

        Another writer can still slip in after the id check: a 404 on the
        delete means the asset was already replaced, and a 422 on the upload
        means another upload of the same name landed first. Both are reported
        as concurrent publishes, like the id mismatch and a 412.

        Args:
            backup_name: Asset holding the previous content, named in the fix
                hint when a failure leaves the release without ``path.name``

        Raises:
            ConcurrentPublishError: If the asset changed, vanished, or the
                delete or upload lost a race with another writer
            PublishError: On any other delete or upload failure
        """
        current = self.fetch_release(repository_url, release.tag)
        existing = current.find_asset(path.name)
        if existing is None or existing.id != baseline.asset_id:
            raise concurrent_change(path.name, release.tag)

        response = self._request("DELETE", existing.url)
        if response.status == 404:
            raise concurrent_change(path.name, release.tag)
        if response.status != 204:
            raise PublishError(
                f"Failed to delete existing asset '{existing.file_name}'",
                details=f"HTTP {response.status}: {response.text}",
            )
        current.assets.remove(existing)

        extra = {"If-Match": f'"{baseline.etag}"'} if baseline.etag else {}
        response = self._upload(current, path, extra)
        if response.status == 422:
            raise concurrent_change(path.name, release.tag)
        if response.status != 201:
            restore_hint = self.restore_hint(repository_url, release.tag, path.name, backup_name)
            if response.status == 412:
                raise concurrent_change(path.name, release.tag, restore_hint)
            raise PublishError(
                f"Failed to upload artifact '{path.name}'",
                details=f"HTTP {response.status}: {response.text}",
                fix_hint=restore_hint,
            )
        uploaded = ReleaseAsset.from_api(response.json())
        current.assets.append(uploaded)
        release.assets = current.assets
        return uploaded

    @staticmethod
    def restore_hint(
        repository_url: str, tag: str, file_name: str, backup_name: str | None
    ) -> str:
        releases = f"{repository_url.rstrip('/')}/releases"
        if backup_name is None:
            return (
                f"If the '{tag}' release is missing '{file_name}', "
                f"check {releases} before publishing again"
            )
        return (
            f"If the '{tag}' release is missing '{file_name}', download '{backup_name}' "
            f"from {releases}, upload it as '{file_name}', then re-run the publish"
        )


def concurrent_change(
    file_name: str,
    tag: str,
    fix_hint: str = "Re-run the publish to merge with the latest ledger",
) -> ConcurrentPublishError:
    return ConcurrentPublishError(
        f"Concurrent publish detected: '{file_name}' in release '{tag}' "
        "was changed by another process",
        fix_hint=fix_hint,
    )
