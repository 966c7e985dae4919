"""Unit tests for desktop_publish.publishers.base module.

Tests cover:
- PublishResult factory methods
- PublishDriver.prepare staging (private copy, source, checksums, mainClass)
- Signing hook and error wrapping
- is_version_published never raising
- DriverRegistry registration and lookup
"""

import http.client
import json
import shutil
import zipfile
from pathlib import Path
from typing import Any, ClassVar
from unittest.mock import MagicMock

import pytest
from conftest import update_package_json, write_jar

from desktop_publish.config.models import PublishConfig
from desktop_publish.exceptions import (
    ConfigurationError,
    NetworkError,
    PublishError,
    SigningError,
)
from desktop_publish.models import BundlerSettings
from desktop_publish.publishers.base import (
    DriverRegistry,
    OtpProvider,
    PublishDriver,
    PublishingContext,
    PublishResult,
    PublishStatus,
    md5_checksum,
    read_main_class,
)
from desktop_publish.publishers.github import GitHubPublishDriver
from desktop_publish.publishers.npm import NPMPublishDriver
from desktop_publish.targets import PublishTarget, PublishTargetType

NPM_TARGET = PublishTarget(PublishTargetType.NPM, "widget", "widget", is_default=True)
GITHUB_TARGET = PublishTarget(PublishTargetType.GITHUB, "github", "https://github.com/acme/widget")


class StubDriver(PublishDriver):
    """Driver whose channel metadata is supplied by the test."""

    target_type: ClassVar[PublishTargetType] = PublishTargetType.NPM
    display_name: ClassVar[str] = "stub"

    def __init__(self, info: Any = None, error: Exception | None = None) -> None:
        self.info = info
        self.error = error

    def publish(
        self, context: PublishingContext, target: PublishTarget, otp_provider: OtpProvider
    ) -> PublishResult:
        return PublishResult.success("ok")

    def fetch_package_info(
        self, context: PublishingContext, package_name: str, target: PublishTarget
    ) -> dict[str, Any]:
        if self.error:
            raise self.error
        return self.info


def staged(context: PublishingContext) -> dict[str, Any]:
    return json.loads(context.publish_package_json.read_text())


class TestPublishResult:
    """Tests for PublishResult factory methods."""

    def test_success(self) -> None:
        result = PublishResult.success("done", registry_url="r", package_url="p", version="1.0.0")
        assert result.status == PublishStatus.SUCCESS
        assert result.version == "1.0.0"

    def test_failed(self) -> None:
        result = PublishResult.failed("nope", details="because")
        assert result.status == PublishStatus.FAILED
        assert result.details == "because"

    def test_skipped(self) -> None:
        assert PublishResult.skipped("later").status == PublishStatus.SKIPPED


class TestPublishingContext:
    """Tests for PublishingContext defaults and paths."""

    def test_paths(self, context: PublishingContext, project_dir: Path) -> None:
        assert context.package_json_path == project_dir / "package.json"
        assert context.bundle_dir == project_dir / "jdeploy-bundle"
        assert context.publish_dir == project_dir / "jdeploy" / "publish"
        assert context.publish_bundle_dir == project_dir / "jdeploy" / "publish" / "jdeploy-bundle"
        assert context.github_release_files_dir == project_dir / "jdeploy" / "github-release-files"

    def test_defaults_from_config(self, project_dir: Path) -> None:
        config = PublishConfig(github={"token": "cfg-token"}, npm={"dist_tag": "next"})
        context = PublishingContext(directory=project_dir, config=config)
        assert context.github_token == "cfg-token"
        assert context.dist_tag == "next"
        assert context.npm is not None
        assert context.http is not None

    def test_missing_clients_raise_configuration_error(self, context: PublishingContext) -> None:
        context.npm = None
        context.http = None
        with pytest.raises(ConfigurationError, match="npm client"):
            context.npm_client
        with pytest.raises(ConfigurationError, match="HTTP transport"):
            context.http_transport

    def test_with_package_builder(self, context: PublishingContext) -> None:
        builder = MagicMock()
        copy = context.with_package_builder(builder)
        assert copy.package_builder is builder
        assert context.package_builder is None
        assert copy.directory == context.directory


class TestReadMainClass:
    """Tests for jar manifest parsing."""

    def test_main_class(self, temp_dir: Path) -> None:
        jar = write_jar(temp_dir / "app.jar", main_class="com.acme.Main")
        assert read_main_class(jar) == "com.acme.Main"

    def test_no_main_class(self, temp_dir: Path) -> None:
        jar = write_jar(temp_dir / "lib.jar", main_class=None)
        assert read_main_class(jar) is None

    def test_wrapped_manifest_line(self, temp_dir: Path) -> None:
        jar = temp_dir / "long.jar"
        with zipfile.ZipFile(jar, "w") as zf:
            zf.writestr(
                "META-INF/MANIFEST.MF",
                "Manifest-Version: 1.0\r\nMain-Class: com.acme.very.long.package.name.that.wr\r\n aps.Main\r\n\r\n",
            )
        assert read_main_class(jar) == "com.acme.very.long.package.name.that.wraps.Main"


class TestPrepare:
    """Tests for PublishDriver.prepare staging."""

    def test_stages_private_copy(self, context: PublishingContext, project_dir: Path) -> None:
        """The bundle and package.json are copied; the originals are untouched."""
        original = (project_dir / "package.json").read_text()

        StubDriver().prepare(context, NPM_TARGET, BundlerSettings())

        assert (context.publish_bundle_dir / "widget.jar").is_file()
        assert (context.publish_dir / "README.md").is_file()
        assert context.publish_package_json.is_file()
        assert (project_dir / "package.json").read_text() == original

    def test_previous_staging_removed(self, context: PublishingContext) -> None:
        context.publish_dir.mkdir(parents=True)
        (context.publish_dir / "stale.txt").write_text("old")

        StubDriver().prepare(context, NPM_TARGET, BundlerSettings())

        assert not (context.publish_dir / "stale.txt").exists()

    def test_missing_bundle(self, context: PublishingContext, project_dir: Path) -> None:
        shutil.rmtree(project_dir / "jdeploy-bundle")
        with pytest.raises(PublishError, match="Bundle directory not found"):
            StubDriver().prepare(context, NPM_TARGET, BundlerSettings())

    def test_checksums_of_images(self, context: PublishingContext, project_dir: Path) -> None:
        StubDriver().prepare(context, NPM_TARGET, BundlerSettings())

        checksums = staged(context)["jdeploy"]["checksums"]
        assert checksums == {
            "icon.png": md5_checksum(project_dir / "icon.png"),
            "installsplash.png": md5_checksum(project_dir / "installsplash.png"),
        }

    def test_checksums_always_written(self, context: PublishingContext, project_dir: Path) -> None:
        (project_dir / "icon.png").unlink()
        (project_dir / "installsplash.png").unlink()

        StubDriver().prepare(context, NPM_TARGET, BundlerSettings())

        assert staged(context)["jdeploy"]["checksums"] == {}

    def test_main_class_hint_added(self, context: PublishingContext) -> None:
        StubDriver().prepare(context, NPM_TARGET, BundlerSettings())
        assert staged(context)["jdeploy"]["mainClass"] == "com.acme.widget.Main"

    def test_existing_main_class_kept(self, context: PublishingContext, project_dir: Path) -> None:
        update_package_json(project_dir, jdeploy={"mainClass": "com.acme.Custom"})
        StubDriver().prepare(context, NPM_TARGET, BundlerSettings())
        assert staged(context)["jdeploy"]["mainClass"] == "com.acme.Custom"

    def test_npm_target_has_no_source(self, context: PublishingContext) -> None:
        StubDriver().prepare(context, NPM_TARGET, BundlerSettings())
        assert "source" not in staged(context)

    def test_github_target_sets_source(self, context: PublishingContext) -> None:
        StubDriver().prepare(context, GITHUB_TARGET, BundlerSettings())
        assert staged(context)["source"] == "https://github.com/acme/widget"

    def test_bundler_settings_source(self, context: PublishingContext) -> None:
        settings = BundlerSettings(source="https://example.com/widget")
        StubDriver().prepare(context, NPM_TARGET, settings)
        assert staged(context)["source"] == "https://example.com/widget"


class TestSigning:
    """Tests for the signing hook in prepare."""

    def test_certificate_hashes_recorded(self, context: PublishingContext, project_dir: Path) -> None:
        update_package_json(project_dir, commitHash="abc123")
        signer = MagicMock()
        signer.certificate_hashes.return_value = ["AA:BB"]
        context.signer = signer

        StubDriver().prepare(context, NPM_TARGET, BundlerSettings())

        signer.sign.assert_called_once_with("2.0.36#abc123", context.publish_bundle_dir)
        assert staged(context)["jdeploy"]["packageSignCertificateSignatures"] == ["AA:BB"]

    def test_signing_failure_wrapped(self, context: PublishingContext) -> None:
        signer = MagicMock()
        signer.sign.side_effect = RuntimeError("keystore locked")
        context.signer = signer

        with pytest.raises(SigningError) as exc_info:
            StubDriver().prepare(context, NPM_TARGET, BundlerSettings())
        assert exc_info.value.message == "Failed to sign package"
        assert exc_info.value.details == "keystore locked"


class TestIsVersionPublished:
    """Tests for PublishDriver.is_version_published."""

    def test_raw_version_found(self, context: PublishingContext) -> None:
        driver = StubDriver(info={"versions": {"2.0.36": {}}})
        assert driver.is_version_published(context, "widget", "2.0.36", NPM_TARGET) is True

    def test_cleaned_version_found(self, context: PublishingContext) -> None:
        driver = StubDriver(info={"versions": {"2.0.36": {}}})
        assert driver.is_version_published(context, "widget", "02.0.36", NPM_TARGET) is True

    def test_missing_version(self, context: PublishingContext) -> None:
        driver = StubDriver(info={"versions": {"1.0.0": {}}})
        assert driver.is_version_published(context, "widget", "2.0.36", NPM_TARGET) is False

    @pytest.mark.parametrize(
        "error",
        [
            NetworkError("unreachable"),
            ValueError("bad json"),
            OSError("reset"),
            http.client.BadStatusLine("garbage"),
            RuntimeError("unexpected"),
        ],
    )
    def test_failures_mean_not_published(
        self, context: PublishingContext, error: Exception
    ) -> None:
        driver = StubDriver(error=error)
        assert driver.is_version_published(context, "widget", "2.0.36", NPM_TARGET) is False

    def test_malformed_info(self, context: PublishingContext) -> None:
        driver = StubDriver(info={"versions": ["2.0.36"]})
        assert driver.is_version_published(context, "widget", "2.0.36", NPM_TARGET) is False

    def test_garbled_github_response(self, context: PublishingContext) -> None:
        """A transport failure outside OSError still reads as not published."""
        transport = MagicMock()
        transport.request.side_effect = http.client.BadStatusLine("garbage")
        context.http = transport
        target = PublishTarget(
            PublishTargetType.GITHUB, "github", "https://github.com/acme/widget"
        )
        driver = GitHubPublishDriver()

        assert driver.is_version_published(context, "widget", "2.0.36", target) is False


class TestDriverRegistry:
    """Tests for DriverRegistry."""

    def test_builtin_drivers_registered(self) -> None:
        assert DriverRegistry.get(PublishTargetType.NPM) is NPMPublishDriver
        assert DriverRegistry.get(PublishTargetType.GITHUB) is GitHubPublishDriver
        assert set(DriverRegistry.list_registered()) >= {
            PublishTargetType.NPM,
            PublishTargetType.GITHUB,
        }

    def test_create(self) -> None:
        assert isinstance(DriverRegistry.create(PublishTargetType.GITHUB), GitHubPublishDriver)

    def test_duplicate_registration_rejected(self) -> None:
        """StubDriver claims NPM, which NPMPublishDriver already handles."""
        with pytest.raises(ValueError, match="already handled"):
            DriverRegistry.register(StubDriver)

    def test_reregistering_same_class_allowed(self) -> None:
        assert DriverRegistry.register(NPMPublishDriver) is NPMPublishDriver

    def test_missing_attributes_rejected(self) -> None:
        class Incomplete(PublishDriver):
            def publish(self, context, target, otp_provider):  # type: ignore[no-untyped-def]
                raise NotImplementedError

            def fetch_package_info(self, context, package_name, target):  # type: ignore[no-untyped-def]
                raise NotImplementedError

        with pytest.raises(TypeError, match="missing required"):
            DriverRegistry.register(Incomplete)

    def test_create_unregistered(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(DriverRegistry, "_drivers", {})
        with pytest.raises(ConfigurationError):
            DriverRegistry.create(PublishTargetType.NPM)

