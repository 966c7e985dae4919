"""Pytest fixtures for publish tool tests.

Provides common fixtures for:
- Temporary project directories with a built bundle and executable jar
- An in-memory GitHub releases API / npm registry (no network)
- A mocked npm CLI client
- A rich console that captures output
"""

import io
import json
import os
import urllib.parse
import zipfile
from collections.abc import Callable, Generator
from pathlib import Path
from typing import Any
from unittest.mock import MagicMock

import pytest
from rich.console import Console

from desktop_publish.publishers.base import PublishingContext
from desktop_publish.utils.http import HttpResponse

API_URL = "https://api.github.com"
UPLOADS_URL = "https://uploads.github.com"
REGISTRY_URL = "https://registry.npmjs.org/"


class FakeGitHub:
    """In-memory stand-in for the GitHub releases API and the npm registry.

    Releases live in ``self.releases`` keyed by tag. Each asset gets a fresh
    id on upload, like the real API. ``hooks`` are called with
    ``(method, url)`` before every request so tests can simulate another
    process acting between two calls.
    """

    def __init__(self, repository: str = "acme/widget") -> None:
        self.repository = repository
        self.releases: dict[str, dict[str, Any]] = {}
        self.npm_packages: dict[str, dict[str, Any]] = {}
        self.requests: list[tuple[str, str, dict[str, str]]] = []
        self.hooks: list[Callable[[str, str], None]] = []
        self.upload_status: dict[str, int] = {}
        self._next_id = 100

    @property
    def api_base(self) -> str:
        return f"{API_URL}/repos/{self.repository}"

    def _new_id(self) -> int:
        self._next_id += 1
        return self._next_id

    # State helpers

    def add_release(self, tag: str, body: str = "") -> dict[str, Any]:
        release_id = self._new_id()
        release = {
            "id": release_id,
            "tag_name": tag,
            "name": tag,
            "body": body,
            "upload_url": (
                f"{UPLOADS_URL}/repos/{self.repository}/releases/{release_id}/assets{{?name,label}}"
            ),
            "assets": [],
        }
        self.releases[tag] = release
        return release

    def add_asset(self, tag: str, name: str, content: bytes | str) -> int:
        if isinstance(content, str):
            content = content.encode("utf-8")
        asset_id = self._new_id()
        self.releases[tag]["assets"].append(
            {
                "id": asset_id,
                "name": name.replace(" ", "."),
                "url": f"{self.api_base}/releases/assets/{asset_id}",
                "content": content,
            }
        )
        return asset_id

    def find_asset(self, tag: str, name: str) -> dict[str, Any] | None:
        release = self.releases.get(tag)
        if release is None:
            return None
        for asset in release["assets"]:
            if asset["name"] == name:
                return asset
        return None

    def asset_content(self, tag: str, name: str) -> bytes | None:
        asset = self.find_asset(tag, name)
        return asset["content"] if asset else None

    def asset_names(self, tag: str) -> list[str]:
        return [a["name"] for a in self.releases[tag]["assets"]]

    def ledger(self, tag: str = "jdeploy") -> dict[str, Any]:
        content = self.asset_content(tag, "package-info.json")
        assert content is not None, f"no package-info.json in release {tag}"
        return json.loads(content)

    def calls(self, method: str, fragment: str = "") -> list[str]:
        return [url for m, url, _ in self.requests if m == method and fragment in url]

    # Transport

    def request(
        self,
        method: str,
        url: str,
        headers: dict[str, str] | None = None,
        body: Any = None,
        timeout: float = 30,
    ) -> HttpResponse:
        for hook in list(self.hooks):
            hook(method, url)
        self.requests.append((method, url, dict(headers or {})))
        if hasattr(body, "read"):
            body = body.read()

        if url.startswith(self.api_base):
            return self._api(method, url[len(self.api_base):], body)
        if url.startswith(f"{UPLOADS_URL}/repos/{self.repository}/releases/"):
            return self._upload(url, body)
        if url.startswith(f"https://github.com/{self.repository}/releases/download/"):
            tag, name = (urllib.parse.unquote(part) for part in url.rsplit("/", 2)[-2:])
            content = self.asset_content(tag, name)
            if content is None:
                return HttpResponse(404, b"Not Found")
            return HttpResponse(200, content)
        if url.startswith(REGISTRY_URL):
            name = urllib.parse.unquote(url[len(REGISTRY_URL):])
            if name not in self.npm_packages:
                return HttpResponse(404, b'{"error":"Not found"}')
            return HttpResponse(200, json.dumps(self.npm_packages[name]).encode("utf-8"))
        return HttpResponse(404, b"Not Found")

    def _release_json(self, release: dict[str, Any]) -> bytes:
        public = dict(release)
        public["assets"] = [
            {k: v for k, v in asset.items() if k != "content"} for asset in release["assets"]
        ]
        return json.dumps(public).encode("utf-8")

    def _api(self, method: str, path: str, body: Any) -> HttpResponse:
        if method == "GET" and path.startswith("/releases/tags/"):
            tag = urllib.parse.unquote(path[len("/releases/tags/"):])
            release = self.releases.get(tag)
            if release is None:
                return HttpResponse(404, b'{"message":"Not Found"}')
            return HttpResponse(200, self._release_json(release))

        if method == "POST" and path == "/releases":
            payload = json.loads(body)
            if payload["tag_name"] in self.releases:
                return HttpResponse(422, b'{"message":"Validation Failed"}')
            release = self.add_release(payload["tag_name"], payload.get("body", ""))
            return HttpResponse(201, self._release_json(release))

        if path.startswith("/releases/assets/"):
            asset_id = int(path.rsplit("/", 1)[-1])
            for release in self.releases.values():
                for asset in release["assets"]:
                    if asset["id"] != asset_id:
                        continue
                    if method == "DELETE":
                        release["assets"].remove(asset)
                        return HttpResponse(204)
                    return HttpResponse(
                        200, asset["content"], headers={"ETag": f'W/"etag-{asset_id}"'}
                    )
            return HttpResponse(404, b'{"message":"Not Found"}')

        return HttpResponse(404, b'{"message":"Not Found"}')

    def _upload(self, url: str, body: bytes) -> HttpResponse:
        parsed = urllib.parse.urlparse(url)
        release_id = int(parsed.path.split("/")[-2])
        name = urllib.parse.parse_qs(parsed.query)["name"][0]
        if name in self.upload_status:
            return HttpResponse(self.upload_status[name], b'{"message":"rejected"}')
        for tag, release in self.releases.items():
            if release["id"] == release_id:
                if self.find_asset(tag, name.replace(" ", ".")) is not None:
                    return HttpResponse(422, b'{"message":"already_exists"}')
                asset_id = self.add_asset(tag, name, body or b"")
                asset = self.find_asset(tag, name.replace(" ", "."))
                assert asset is not None and asset["id"] == asset_id
                return HttpResponse(
                    201, json.dumps({k: v for k, v in asset.items() if k != "content"}).encode()
                )
        return HttpResponse(404, b'{"message":"Not Found"}')


def write_jar(path: Path, main_class: str | None = "com.acme.widget.Main") -> Path:
    """Write a minimal jar, with a Main-Class manifest entry unless main_class is None."""
    path.parent.mkdir(parents=True, exist_ok=True)
    manifest = "Manifest-Version: 1.0\r\n"
    if main_class:
        manifest += f"Main-Class: {main_class}\r\n"
    with zipfile.ZipFile(path, "w") as jar:
        jar.writestr("META-INF/MANIFEST.MF", manifest + "\r\n")
        jar.writestr("com/acme/widget/Main.class", b"\xca\xfe\xba\xbe")
    return path


@pytest.fixture
def temp_dir(tmp_path: Path) -> Generator[Path, None, None]:
    """Create a temporary directory for tests.

    Yields:
        Path to temporary directory
    """
    yield tmp_path


@pytest.fixture
def package_json() -> dict[str, Any]:
    """package.json contents of the sample project."""
    return {
        "name": "widget",
        "version": "2.0.36",
        "description": "Acme widget desktop app",
        "author": "Acme Inc.",
        "license": "MIT",
        "jdeploy": {
            "jar": "target/widget.jar",
            "javaVersion": "17",
            "title": "Widget",
        },
    }


@pytest.fixture
def project_dir(temp_dir: Path, package_json: dict[str, Any]) -> Path:
    """Create a project with package.json, a built bundle and icons.

    Returns:
        Path to project directory
    """
    project = temp_dir / "widget"
    project.mkdir()
    (project / "package.json").write_text(json.dumps(package_json, indent=2))
    write_jar(project / "target" / "widget.jar")

    bundle = project / "jdeploy-bundle"
    bundle.mkdir()
    write_jar(bundle / "widget.jar")
    (bundle / "jdeploy.js").write_text("#!/usr/bin/env node\n")

    (project / "icon.png").write_bytes(b"\x89PNG\r\n\x1a\nicon")
    (project / "installsplash.png").write_bytes(b"\x89PNG\r\n\x1a\nsplash")
    (project / "README.md").write_text("# Widget\n")
    return project


def update_package_json(project: Path, **changes: Any) -> None:
    """Merge changes into a project's package.json."""
    path = project / "package.json"
    data = json.loads(path.read_text())
    for key, value in changes.items():
        if isinstance(value, dict) and isinstance(data.get(key), dict):
            data[key].update(value)
        else:
            data[key] = value
    path.write_text(json.dumps(data, indent=2))


@pytest.fixture
def fake_github() -> FakeGitHub:
    """In-memory GitHub API and npm registry."""
    return FakeGitHub()


@pytest.fixture
def npm_client() -> MagicMock:
    """Mocked npm CLI client; every command succeeds by default."""
    npm = MagicMock()
    npm.registry = REGISTRY_URL
    npm.package_url.side_effect = lambda name: REGISTRY_URL + urllib.parse.quote(name, safe="@")
    npm.publish.return_value = "+ widget@2.0.36"
    npm.pack.return_value = None
    npm.is_logged_in.return_value = True
    return npm


@pytest.fixture
def console() -> Console:
    """Console writing to an in-memory buffer."""
    return Console(file=io.StringIO(), width=200, color_system=None)


def console_output(console: Console) -> str:
    """Everything printed to a console created by the ``console`` fixture."""
    file = console.file
    assert isinstance(file, io.StringIO)
    return file.getvalue()


@pytest.fixture
def context(
    project_dir: Path,
    fake_github: FakeGitHub,
    npm_client: MagicMock,
    console: Console,
) -> PublishingContext:
    """Publishing context wired to the fakes."""
    return PublishingContext(
        directory=project_dir,
        npm=npm_client,
        http=fake_github,
        github_token="ghp_test",
        console=console,
    )


@pytest.fixture(autouse=True)
def clean_env() -> Generator[None, None, None]:
    """Temporarily clean environment variables.

    Removes PUBLISH_* and GITHUB_TOKEN environment variables during test.
    """
    old_env = {}
    for key in list(os.environ.keys()):
        if key.startswith("PUBLISH_") or key == "GITHUB_TOKEN":
            old_env[key] = os.environ.pop(key)

    yield

    os.environ.update(old_env)
