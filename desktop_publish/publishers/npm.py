"""npm registry publish driver.

Publishes the staged bundle with the npm CLI, then fans out to one extra
package per configured platform (``packageMacArm64`` and friends in the
jdeploy block) when platform bundles are enabled.

Every ``npm publish`` goes through the same OTP protocol: try without a
one-time password, and if the registry asks for one, ask the OTP provider
once and retry with it.
"""

import json
import shutil
import subprocess
import urllib.parse
from pathlib import Path
from typing import Any, ClassVar, Protocol

from desktop_publish.exceptions import (
    NetworkError,
    OtpNotProvidedError,
    OtpRequiredError,
    PublishError,
)
from desktop_publish.models import PackageMetadata, PlatformBundle
from desktop_publish.publishers.base import (
    DriverRegistry,
    OtpProvider,
    PublishDriver,
    PublishingContext,
    PublishResult,
)
from desktop_publish.targets import Platform, ProjectSettings, PublishTarget, PublishTargetType
from desktop_publish.utils.shell import ShellError, run

DEFAULT_REGISTRY = "https://registry.npmjs.org/"

# npm reports a missing second factor with code EOTP
OTP_MARKERS = ("eotp", "one-time password", "one-time pass")


def requires_otp(output: str) -> bool:
    lowered = output.lower()
    return any(marker in lowered for marker in OTP_MARKERS)


class NpmClient:
    """Wrapper around the npm CLI.

    Args:
        command: npm executable
        registry: Registry URL used for lookups (and passed to npm if non-default)
        timeout: Timeout for npm commands in seconds
    """

    def __init__(
        self,
        command: str = "npm",
        registry: str = DEFAULT_REGISTRY,
        timeout: int = 300,
    ) -> None:
        self.command = command
        self.registry = registry if registry.endswith("/") else registry + "/"
        self.timeout = timeout

    def _registry_args(self) -> list[str]:
        if self.registry == DEFAULT_REGISTRY:
            return []
        return ["--registry", self.registry]

    def publish(
        self,
        directory: Path,
        otp: str | None = None,
        dist_tag: str | None = None,
    ) -> str:
        """Run ``npm publish`` in a directory.

        Returns:
            npm's output

        Raises:
            OtpRequiredError: If the registry demands a one-time password
            PublishError: On any other failure
        """
        cmd = [self.command, "publish", *self._registry_args()]
        if otp:
            cmd.extend(["--otp", otp])
        if dist_tag:
            cmd.extend(["--tag", dist_tag])

        try:
            result = run(cmd, cwd=directory, timeout=self.timeout)
        except ShellError as e:
            if requires_otp(e.output):
                raise OtpRequiredError(
                    f"npm publish of {directory} requires a one-time password",
                    details=e.output,
                ) from e
            raise PublishError(
                f"npm publish failed in {directory}",
                details=f"Exit code: {e.returncode}\n{e.output}",
                fix_hint="Check that npm is installed and you are logged in (npm login)",
            ) from e
        except subprocess.TimeoutExpired as e:
            raise PublishError(
                f"npm publish timed out after {self.timeout}s in {directory}"
            ) from e
        return result.stdout

    def pack(self, directory: Path, destination: Path) -> Path | None:
        """Run ``npm pack`` and place the tarball in ``destination``.

        Returns:
            Path to the tarball, if npm reported its name

        Raises:
            PublishError: If npm pack fails
        """
        destination.mkdir(parents=True, exist_ok=True)
        cmd = [self.command, "pack", "--pack-destination", str(destination.resolve())]
        try:
            result = run(cmd, cwd=directory, timeout=self.timeout)
        except ShellError as e:
            raise PublishError(
                "npm pack failed",
                details=e.output,
                fix_hint="Ensure npm is installed and in your PATH",
            ) from e
        lines = [line.strip() for line in result.stdout.splitlines() if line.strip()]
        if lines and lines[-1].endswith(".tgz"):
            return destination / lines[-1]
        return None

    def is_logged_in(self) -> bool:
        """Check ``npm whoami``. Never raises."""
        try:
            result = run(
                [self.command, "whoami", *self._registry_args()],
                check=False,
                timeout=60,
            )
        except (ShellError, subprocess.TimeoutExpired):
            return False
        return result.returncode == 0

    def package_url(self, package_name: str) -> str:
        return self.registry + urllib.parse.quote(package_name, safe="@")


class PlatformBundleGenerator(Protocol):
    """Produces one bundle directory per platform from the staged publish dir."""

    def generate_platform_bundles(
        self,
        context: PublishingContext,
        platforms: list[Platform],
        source_dir: Path,
        destination_dir: Path,
    ) -> dict[Platform, Path]: ...


class CopyPlatformBundleGenerator:
    """Copies the staged publish directory once per platform without filtering."""

    def generate_platform_bundles(
        self,
        context: PublishingContext,
        platforms: list[Platform],
        source_dir: Path,
        destination_dir: Path,
    ) -> dict[Platform, Path]:
        bundles = {}
        for platform in platforms:
            target_dir = destination_dir / platform.identifier
            shutil.copytree(source_dir, target_dir)
            bundles[platform] = target_dir
        return bundles


def write_platform_package_json(bundle: PlatformBundle) -> dict[str, Any]:
    """Rewrite a platform bundle's package.json for its own npm package.

    Raises:
        PublishError: If the bundle has no package.json
    """
    package_json = bundle.directory / "package.json"
    if not package_json.is_file():
        raise PublishError(f"Platform bundle directory missing package.json: {bundle.directory}")

    data = json.loads(package_json.read_text(encoding="utf-8"))
    data["name"] = bundle.npm_package_name
    data["description"] = (
        f"{data.get('description', '')} ({bundle.platform.identifier} bundle)"
    )
    jdeploy = data.get("jdeploy")
    if not isinstance(jdeploy, dict):
        jdeploy = data["jdeploy"] = {}
    jdeploy["platformBundle"] = bundle.platform.identifier
    package_json.write_text(json.dumps(data, indent=2), encoding="utf-8")
    return data


@DriverRegistry.register
class NPMPublishDriver(PublishDriver):
    """Publisher for npm registries, with per-platform fan-out."""

    target_type: ClassVar[PublishTargetType] = PublishTargetType.NPM
    display_name: ClassVar[str] = "npm registry"

    def __init__(self, bundle_generator: PlatformBundleGenerator | None = None) -> None:
        self.bundle_generator = bundle_generator or CopyPlatformBundleGenerator()

    def publish(
        self,
        context: PublishingContext,
        target: PublishTarget,
        otp_provider: OtpProvider,
    ) -> PublishResult:
        """Publish the universal bundle, then each platform bundle.

        A platform whose bundle was not generated is skipped with a warning.
        Any other failure stops the remaining platforms.

        Raises:
            OtpNotProvidedError: If a one-time password was needed but none given
            PublishError: If any npm publish fails
        """
        metadata = PackageMetadata.load(context.publish_package_json)
        settings = ProjectSettings.from_package_json(metadata.data)

        self.publish_package(context, target, otp_provider, context.publish_dir, "universal bundle")
        published = [metadata.name]

        platforms = settings.platforms_with_package_names() if settings.platform_bundles_enabled else []
        if settings.platform_bundles_enabled and not platforms:
            context.console.print(
                "No platform-specific npm package names configured, "
                "skipping platform bundle publishing"
            )

        if platforms:
            published.extend(
                self._publish_platform_bundles(context, target, otp_provider, settings, platforms)
            )

        return PublishResult.success(
            f"Published {', '.join(published)}@{metadata.version} to npm",
            registry_url=context.npm_client.registry,
            package_url=context.npm_client.package_url(metadata.name),
            version=metadata.version,
        )

    def _publish_platform_bundles(
        self,
        context: PublishingContext,
        target: PublishTarget,
        otp_provider: OtpProvider,
        settings: ProjectSettings,
        platforms: list[Platform],
    ) -> list[str]:
        context.console.print(
            f"Publishing platform-specific bundles to {len(platforms)} additional npm packages..."
        )
        scratch = context.npm_platform_bundles_dir
        if scratch.exists():
            shutil.rmtree(scratch)
        scratch.mkdir(parents=True)

        published = []
        try:
            generated = self.bundle_generator.generate_platform_bundles(
                context, platforms, context.publish_dir, scratch
            )
            for platform in platforms:
                directory = generated.get(platform)
                if directory is None or not directory.is_dir():
                    context.console.print(
                        f"[yellow]Warning:[/yellow] Platform bundle not generated for "
                        f"{platform.identifier}, skipping npm publishing"
                    )
                    continue

                package_name = settings.package_name(platform)
                if package_name is None:
                    continue
                write_platform_package_json(PlatformBundle(platform, directory, package_name))
                self.publish_package(
                    context,
                    target,
                    otp_provider,
                    directory,
                    f"platform bundle for {platform.identifier} ({package_name})",
                )
                published.append(package_name)
        finally:
            if scratch.exists():
                shutil.rmtree(scratch)

        context.console.print("[green]All platform bundles published to npm.[/green]")
        return published

    def publish_package(
        self,
        context: PublishingContext,
        target: PublishTarget,
        otp_provider: OtpProvider,
        directory: Path,
        description: str,
    ) -> None:
        """Publish one directory, asking for an OTP at most once.

        Raises:
            OtpNotProvidedError: If the provider returns nothing
            PublishError: If the OTP is rejected or npm fails otherwise
        """
        context.console.print(f"Publishing {description}...")
        try:
            context.npm_client.publish(directory, dist_tag=context.dist_tag)
        except OtpRequiredError:
            otp = otp_provider.prompt_for_one_time_password(context, target)
            if not otp:
                raise OtpNotProvidedError(
                    f"Failed to publish {description} to npm. No OTP provided."
                ) from None
            try:
                context.npm_client.publish(directory, otp=otp, dist_tag=context.dist_tag)
            except OtpRequiredError as e:
                raise PublishError(
                    f"Failed to publish {description} to npm. Invalid OTP provided."
                ) from e
        context.console.print(f"[green]Successfully published {description} to npm.[/green]")

    def fetch_package_info(
        self,
        context: PublishingContext,
        package_name: str,
        target: PublishTarget,
    ) -> dict[str, Any]:
        response = context.http_transport.request("GET", context.npm_client.package_url(package_name))
        if response.status != 200:
            raise NetworkError(
                f"Failed to fetch package info for package {package_name}",
                details=f"HTTP {response.status}",
            )
        return response.json()
