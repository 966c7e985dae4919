"""Unit tests for desktop_publish.targets module.

Tests cover:
- PublishTarget deserialization (explicit type, sniffed type, errors)
- Loading targets from package.json with the implicit npm default
- Platform identifiers and package.json property names
- ProjectSettings platform package lookup
"""

import pytest

from desktop_publish.exceptions import ConfigurationError
from desktop_publish.targets import (
    Platform,
    ProjectSettings,
    PublishTarget,
    PublishTargetType,
    load_publish_targets,
)


class TestPublishTarget:
    """Tests for PublishTarget.from_dict and helpers."""

    def test_explicit_github_type(self) -> None:
        target = PublishTarget.from_dict(
            {"name": "github", "type": "GITHUB", "url": "https://github.com/acme/widget/"}
        )
        assert target.type is PublishTargetType.GITHUB
        assert target.name == "github"
        assert target.url == "https://github.com/acme/widget"
        assert target.is_default is False

    def test_type_is_case_insensitive(self) -> None:
        target = PublishTarget.from_dict({"type": "npm", "url": "widget"})
        assert target.type is PublishTargetType.NPM

    def test_type_sniffed_from_url(self) -> None:
        """A target without a type is GitHub for github.com URLs, npm otherwise."""
        github = PublishTarget.from_dict({"url": "https://github.com/acme/widget"})
        npm = PublishTarget.from_dict({"url": "@acme/widget"})
        assert github.type is PublishTargetType.GITHUB
        assert npm.type is PublishTargetType.NPM
        assert npm.name == "@acme/widget"

    def test_missing_url_rejected(self) -> None:
        with pytest.raises(ValueError, match="missing a url"):
            PublishTarget.from_dict({"name": "nowhere", "type": "NPM"})

    def test_unknown_type_rejected(self) -> None:
        with pytest.raises(ValueError, match="Unsupported publish target type"):
            PublishTarget.from_dict({"type": "S3", "url": "s3://bucket"})

    def test_to_dict(self) -> None:
        target = PublishTarget(PublishTargetType.GITHUB, "gh", "https://github.com/acme/widget")
        assert PublishTarget.from_dict(target.to_dict()) == target

    def test_default_source(self) -> None:
        """Only npm packages resolve without an explicit source field."""
        assert PublishTargetType.NPM.is_default_source is True
        assert PublishTargetType.GITHUB.is_default_source is False


class TestLoadPublishTargets:
    """Tests for load_publish_targets()."""

    def test_default_npm_target(self) -> None:
        """With no configured targets a default npm target named after the package is used."""
        targets = load_publish_targets({"name": "widget", "jdeploy": {}})
        assert len(targets) == 1
        assert targets[0].type is PublishTargetType.NPM
        assert targets[0].url == "widget"
        assert targets[0].is_default is True

    def test_no_default_when_disabled(self) -> None:
        assert load_publish_targets({"name": "widget"}, include_default=False) == []

    def test_configured_targets_keep_order(self) -> None:
        package_json = {
            "name": "widget",
            "jdeploy": {
                "publishTargets": [
                    {"name": "github", "type": "GITHUB", "url": "https://github.com/acme/widget"},
                    {"name": "npm", "type": "NPM", "url": "widget"},
                ]
            },
        }
        targets = load_publish_targets(package_json)
        assert [t.name for t in targets] == ["github", "npm"]
        assert not any(t.is_default for t in targets)

    def test_invalid_entry_is_configuration_error(self) -> None:
        package_json = {"name": "widget", "jdeploy": {"publishTargets": [{"type": "FTP"}]}}
        with pytest.raises(ConfigurationError, match="publishTargets"):
            load_publish_targets(package_json)


class TestPlatform:
    """Tests for the Platform enum."""

    @pytest.mark.parametrize(
        ("platform", "property_name"),
        [
            (Platform.DEFAULT, "package"),
            (Platform.MAC_X64, "packageMacX64"),
            (Platform.MAC_ARM64, "packageMacArm64"),
            (Platform.WIN_X64, "packageWinX64"),
            (Platform.LINUX_ARM64, "packageLinuxArm64"),
        ],
    )
    def test_package_property_name(self, platform: Platform, property_name: str) -> None:
        assert platform.package_property_name == property_name

    def test_from_identifier(self) -> None:
        assert Platform.from_identifier("win-arm64") is Platform.WIN_ARM64
        assert Platform.from_identifier("solaris-sparc") is None
        assert Platform.from_identifier(None) is None


class TestProjectSettings:
    """Tests for ProjectSettings platform lookups."""

    def test_platform_bundles_disabled_by_default(self) -> None:
        settings = ProjectSettings.from_package_json({"name": "widget"})
        assert settings.platform_bundles_enabled is False
        assert settings.platforms_with_package_names() == []

    def test_platforms_with_package_names(self) -> None:
        settings = ProjectSettings.from_package_json(
            {
                "jdeploy": {
                    "platformBundlesEnabled": True,
                    "packageMacArm64": "widget-mac-arm64",
                    "packageWinX64": "widget-win-x64",
                    "packageLinuxX64": "",
                }
            }
        )
        assert settings.platform_bundles_enabled is True
        assert settings.platforms_with_package_names() == [Platform.MAC_ARM64, Platform.WIN_X64]
        assert settings.package_name(Platform.MAC_ARM64) == "widget-mac-arm64"
        assert settings.package_name(Platform.LINUX_X64) is None

    def test_default_platform_has_no_package_name(self) -> None:
        settings = ProjectSettings.from_package_json({"jdeploy": {"package": "widget"}})
        assert settings.package_name(Platform.DEFAULT) is None
        assert settings.package_name(None) is None
