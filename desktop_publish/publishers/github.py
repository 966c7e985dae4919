"""GitHub Releases publish driver.

Each publish creates a release tagged with the version, holding the
installers, icons and npm tarball. The shared ``jdeploy`` release holds the
version ledger (``package-info.json``) plus a backup copy
(``package-info-2.json``) that installers fall back to while the primary is
being replaced.

Ledger writes use optimistic concurrency:

1. Download the current ledger (the baseline). A missing release means
   first publish; a release without the ledger is a corrupted state.
2. Build the new ledger from that baseline.
3. First publish: atomically create the ``jdeploy`` release. If another
   process won that race, re-download its ledger and continue as an update.
4. Update: replace the ledger only if it is still the baseline asset,
   then overwrite the backup.
"""

import shutil
from pathlib import Path
from typing import Any, ClassVar

from desktop_publish.exceptions import (
    AssetNotFoundError,
    ConcurrentPublishError,
    ConfigurationError,
    NetworkError,
    PublishError,
    PublishingError,
    ReleaseAlreadyExistsError,
    ReleaseNotFoundError,
    ValidationError,
)
from desktop_publish.github.releases import AssetSnapshot, GitHubReleaseClient, ReleaseHandle
from desktop_publish.ledger import build_ledger
from desktop_publish.models import BundlerSettings, PackageMetadata
from desktop_publish.publishers.base import (
    DriverRegistry,
    OtpProvider,
    PublishDriver,
    PublishingContext,
    PublishResult,
)
from desktop_publish.targets import GITHUB_URL, PublishTarget, PublishTargetType

PACKAGE_INFO = "package-info.json"
PACKAGE_INFO_BACKUP = "package-info-2.json"
RELEASE_NOTES = "jdeploy-release-notes.md"
LEDGER_RELEASE_BODY = "Release metadata for jDeploy releases"
RELEASE_FILES = ("icon.png", "installsplash.png", "launcher-splash.html")


def create_release_notes(
    release_files_dir: Path,
    repository: str,
    ref_name: str,
    ref_type: str,
    app_name: str,
) -> str:
    """Markdown body for the version release, linking every installer."""
    lines = [f"## {app_name} {ref_name}", ""]
    installers = sorted(
        p.name
        for p in release_files_dir.iterdir()
        if p.is_file() and p.suffix.lower() in (".exe", ".dmg", ".deb", ".rpm", ".msi", ".gz", ".zip")
    )
    if installers:
        lines.extend(["### Installers", ""])
        for name in installers:
            lines.append(f"- [{name}]({GITHUB_URL}{repository}/releases/download/{ref_name}/{name})")
        lines.append("")
    if ref_type == "branch":
        lines.append(f"Built from branch `{ref_name}`.")
    return "\n".join(lines).rstrip() + "\n"


@DriverRegistry.register
class GitHubPublishDriver(PublishDriver):
    """Publisher for GitHub Releases with the shared ledger release."""

    target_type: ClassVar[PublishTargetType] = PublishTargetType.GITHUB
    display_name: ClassVar[str] = "GitHub Releases"

    def client_for(self, context: PublishingContext) -> GitHubReleaseClient:
        return GitHubReleaseClient(
            token=context.github_token or "",
            http=context.http,
            api_url=context.config.github.api_url,
            timeout=context.config.timeouts.http,
        )

    def _repository(self, context: PublishingContext, target: PublishTarget) -> str:
        return (
            context.github_repository
            or context.config.github.repository
            or target.url.replace(GITHUB_URL, "")
        )

    def prepare(
        self,
        context: PublishingContext,
        target: PublishTarget,
        bundler_settings: BundlerSettings,
    ) -> None:
        """Stage the bundle, then collect the files for the version release."""
        super().prepare(context, target, bundler_settings)

        release_dir = context.github_release_files_dir
        if release_dir.exists():
            shutil.rmtree(release_dir)
        release_dir.mkdir(parents=True)

        for name in RELEASE_FILES:
            source = context.directory / name
            if source.is_file():
                shutil.copy2(source, release_dir / name)
        shutil.copy2(context.publish_package_json, release_dir / "package.json")
        context.log(f"Release files collected in {release_dir}")

    def make_package(
        self,
        context: PublishingContext,
        target: PublishTarget,
        bundler_settings: BundlerSettings,
    ) -> None:
        """Build installers for this repository and pack the npm tarball.

        Raises:
            ConfigurationError: If the target is not a GitHub repository
            PublishError: If npm pack fails
        """
        if target.type is not PublishTargetType.GITHUB or not target.url.startswith(GITHUB_URL):
            raise ConfigurationError(
                f"GitHub publishing requires a GitHub repository URL, got {target.url!r}"
            )
        bundler_settings.source = target.url
        bundler_settings.compress_bundles = True
        bundler_settings.do_not_zip_exe_installer = True
        if context.package_builder is not None:
            context.package_builder.build(context, bundler_settings)

        release_dir = context.github_release_files_dir
        installers_dir = context.directory / "jdeploy" / "installers"
        if installers_dir.is_dir():
            for installer in sorted(installers_dir.iterdir()):
                if installer.is_file():
                    shutil.copy2(installer, release_dir / installer.name.replace(" ", "."))

        context.npm_client.pack(context.publish_dir, release_dir)

        metadata = PackageMetadata.load(context.publish_package_json)
        notes = create_release_notes(
            release_dir,
            self._repository(context, target),
            context.github_ref_name or context.config.github.ref_name or metadata.version,
            context.github_ref_type or context.config.github.ref_type or "tag",
            metadata.name,
        )
        (release_dir / RELEASE_NOTES).write_text(notes, encoding="utf-8")

    def publish(
        self,
        context: PublishingContext,
        target: PublishTarget,
        otp_provider: OtpProvider,
    ) -> PublishResult:
        """Create the version release and update the ledger.

        Raises:
            ValidationError: If no GitHub token is available
            AssetNotFoundError: If the ledger release exists without its ledger
            ConcurrentPublishError: If another process updated the ledger first
            NetworkError: If the baseline cannot be fetched
            PublishError: On any other API failure
        """
        if not context.github_token:
            raise ValidationError(
                "GitHub token is required for publishing to GitHub",
                fix_hint="Set GITHUB_TOKEN or github.token in publish.yml",
            )

        client = self.client_for(context)
        tag = context.config.github.release_tag
        metadata = PackageMetadata.load(context.publish_package_json)
        version = metadata.version
        release_dir = context.github_release_files_dir

        baseline = self._fetch_baseline(context, client, target, tag)
        ledger = self._write_ledger(context, baseline, metadata)

        self._publish_version_release(context, client, target, version)
        backup = release_dir / PACKAGE_INFO_BACKUP
        shutil.copy2(ledger, backup)

        if baseline is None:
            try:
                context.console.print(f"Creating {tag} release with {PACKAGE_INFO}...")
                client.create_release(target.url, tag, LEDGER_RELEASE_BODY, [ledger, backup])
            except ReleaseAlreadyExistsError:
                context.console.print(
                    f"[yellow]Warning:[/yellow] Another process created the {tag} release "
                    "during this publish; merging with its ledger"
                )
                baseline = self._fetch_raced_baseline(client, target, tag)
                self._write_ledger(context, baseline, metadata)
                shutil.copy2(ledger, backup)
                self._update_ledger(context, client, target, tag, baseline)
        else:
            self._update_ledger(context, client, target, tag, baseline)

        context.console.print("[green]GitHub publish completed successfully![/green]")
        return PublishResult.success(
            f"Published {metadata.name}@{version} to {target.url}",
            registry_url=target.url,
            package_url=f"{target.url}/releases/tag/{version}",
            version=version,
        )

    def _fetch_baseline(
        self,
        context: PublishingContext,
        client: GitHubReleaseClient,
        target: PublishTarget,
        tag: str,
    ) -> AssetSnapshot | None:
        try:
            baseline = client.download_asset(target.url, tag, PACKAGE_INFO)
        except ReleaseNotFoundError:
            if context.config.publishing.require_existing_tag:
                raise PublishError(
                    f"The {tag} release does not exist but publishing.require_existing_tag is set",
                    fix_hint="Unset require_existing_tag for the first release of this repository",
                ) from None
            context.console.print(f"No existing {tag} release found - this is the first publish")
            return None
        except AssetNotFoundError as e:
            raise AssetNotFoundError(
                f"The {tag} release exists but {PACKAGE_INFO} is missing",
                details="This indicates a corrupted or incomplete earlier publish",
                fix_hint=self._missing_ledger_hint(client, target, tag),
            ) from e
        context.log(f"Downloaded baseline {PACKAGE_INFO} (ETag: {baseline.etag})")
        return baseline

    def _missing_ledger_hint(
        self, client: GitHubReleaseClient, target: PublishTarget, tag: str
    ) -> str:
        try:
            release = client.fetch_release(target.url, tag)
        except PublishingError:
            release = None
        if release is not None and release.find_asset(PACKAGE_INFO_BACKUP) is not None:
            return client.restore_hint(target.url, tag, PACKAGE_INFO, PACKAGE_INFO_BACKUP)
        return (
            f"Go to {target.url}/releases, delete the '{tag}' release "
            "(not the tag), then publish again"
        )

    def _fetch_raced_baseline(
        self, client: GitHubReleaseClient, target: PublishTarget, tag: str
    ) -> AssetSnapshot:
        # The winner creates the release before uploading its ledger
        try:
            return client.download_asset(target.url, tag, PACKAGE_INFO)
        except (ReleaseNotFoundError, AssetNotFoundError) as e:
            raise ConcurrentPublishError(
                f"Concurrent publish detected while creating the {tag} release",
                details=str(e),
                fix_hint="Re-run the publish once the other publish has finished",
            ) from e

    def _write_ledger(
        self,
        context: PublishingContext,
        baseline: AssetSnapshot | None,
        metadata: PackageMetadata,
    ) -> Path:
        builder = build_ledger(
            baseline.content if baseline else None,
            metadata.version,
            metadata.to_dict(),
        )
        if not builder.has_version(metadata.version):
            raise PublishError(f"{PACKAGE_INFO} is missing the current version {metadata.version}")
        context.log(f"{PACKAGE_INFO} contains {len(builder.versions)} version(s)")
        return builder.save(context.github_release_files_dir / PACKAGE_INFO)

    def _publish_version_release(
        self,
        context: PublishingContext,
        client: GitHubReleaseClient,
        target: PublishTarget,
        version: str,
    ) -> ReleaseHandle:
        release_dir = context.github_release_files_dir
        artifacts = sorted(
            p for p in release_dir.iterdir() if p.is_file() and p.name != PACKAGE_INFO_BACKUP
        )
        notes_file = release_dir / RELEASE_NOTES
        notes = notes_file.read_text(encoding="utf-8") if notes_file.is_file() else ""
        try:
            release = client.create_release(target.url, version, notes, artifacts)
            context.console.print(f"Created version release {version}")
        except ReleaseAlreadyExistsError:
            context.console.print(
                f"[yellow]Warning:[/yellow] Release {version} already exists; replacing its assets"
            )
            release = client.fetch_release(target.url, version)
            for artifact in artifacts:
                client.upload_asset(release, artifact, overwrite=True)
        return release

    def _update_ledger(
        self,
        context: PublishingContext,
        client: GitHubReleaseClient,
        target: PublishTarget,
        tag: str,
        baseline: AssetSnapshot,
    ) -> None:
        release_dir = context.github_release_files_dir
        context.console.print(f"Updating {tag} release with new {PACKAGE_INFO}...")
        release = client.fetch_release(target.url, tag)
        client.upload_asset_conditional(
            target.url,
            release,
            release_dir / PACKAGE_INFO,
            baseline,
            backup_name=PACKAGE_INFO_BACKUP,
        )
        client.upload_asset(release, release_dir / PACKAGE_INFO_BACKUP, overwrite=True)

    def fetch_package_info(
        self,
        context: PublishingContext,
        package_name: str,
        target: PublishTarget,
    ) -> dict[str, Any]:
        tag = context.config.github.release_tag
        url = f"{target.url}/releases/download/{tag}/{PACKAGE_INFO}"
        response = context.http_transport.request("GET", url)
        if response.status != 200:
            raise NetworkError(
                f"Failed to fetch package info for package {package_name}",
                details=f"GET {url}: HTTP {response.status}",
            )
        return response.json()
