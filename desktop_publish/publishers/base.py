"""Abstract base class for publish drivers.

A driver implements the publish protocol for one kind of target:
- npm registry (with per-platform fan-out)
- GitHub releases (with the shared ``jdeploy`` ledger release)

Every driver runs the same three steps for a target, in order:
``prepare`` (stage a private copy of the bundle), ``make_package``
(produce the transmittable artifact) and ``publish``.
"""

import hashlib
import shutil
import zipfile
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any, ClassVar, Protocol

from rich.console import Console

from desktop_publish.config.models import PublishConfig
from desktop_publish.exceptions import (
    ConfigurationError,
    PublishError,
    SigningError,
)
from desktop_publish.models import BundlerSettings, PackageMetadata
from desktop_publish.targets import PublishTarget, PublishTargetType
from desktop_publish.utils.http import HttpClient, HttpTransport
from desktop_publish.utils.version import clean_version, signing_version_string

if TYPE_CHECKING:
    from desktop_publish.publishers.npm import NpmClient

CHECKSUMMED_IMAGES = ("icon.png", "installsplash.png")


class PublishStatus(Enum):
    """Status of a publish operation."""

    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass
class PublishResult:
    """Result of a publish operation.

    Attributes:
        status: Overall status
        message: Brief description
        registry_url: URL of the channel the package went to
        package_url: Direct URL to the published package or release
        version: Version that was published
        details: Extended information
    """

    status: PublishStatus
    message: str
    registry_url: str | None = None
    package_url: str | None = None
    version: str | None = None
    details: str | None = None

    @classmethod
    def success(
        cls,
        message: str,
        registry_url: str | None = None,
        package_url: str | None = None,
        version: str | None = None,
    ) -> "PublishResult":
        """Create a successful publish result.

        Args:
            message: Success message
            registry_url: Registry URL
            package_url: Package URL
            version: Published version

        Returns:
            PublishResult with SUCCESS status
        """
        return cls(
            status=PublishStatus.SUCCESS,
            message=message,
            registry_url=registry_url,
            package_url=package_url,
            version=version,
        )

    @classmethod
    def failed(cls, message: str, details: str | None = None) -> "PublishResult":
        """Create a failed publish result."""
        return cls(status=PublishStatus.FAILED, message=message, details=details)

    @classmethod
    def skipped(cls, message: str) -> "PublishResult":
        """Create a skipped publish result."""
        return cls(status=PublishStatus.SKIPPED, message=message)


class PackageBuilder(Protocol):
    """Builds the ``jdeploy-bundle`` directory from the project sources."""

    def build(self, context: "PublishingContext", bundler_settings: BundlerSettings) -> None: ...


class PackageSigner(Protocol):
    """Signs a staged bundle and reports its certificate hashes."""

    def sign(self, version_string: str, bundle_dir: Path) -> None: ...

    def certificate_hashes(self) -> list[str]: ...


class OtpProvider(Protocol):
    """Obtains a one-time password when the registry asks for one.

    Returning None or an empty string aborts the publish.
    """

    def prompt_for_one_time_password(
        self, context: "PublishingContext", target: PublishTarget
    ) -> str | None: ...


@dataclass
class PublishingContext:
    """Everything one publish invocation needs, shared by all drivers.

    Created once per invocation. Targets are processed one at a time, so the
    context is never used by two drivers at once.
    """

    directory: Path
    config: PublishConfig = field(default_factory=PublishConfig)
    npm: "NpmClient | None" = None
    http: HttpTransport | None = None
    package_json_path: Path | None = None
    github_token: str | None = None
    github_repository: str | None = None
    github_ref_name: str | None = None
    github_ref_type: str | None = None
    dist_tag: str | None = None
    signer: PackageSigner | None = None
    package_builder: PackageBuilder | None = None
    console: Console = field(default_factory=Console)
    verbose: bool = False

    def __post_init__(self) -> None:
        self.directory = Path(self.directory)
        if self.package_json_path is None:
            self.package_json_path = self.directory / "package.json"
        if self.github_token is None:
            self.github_token = self.config.github.token
        if self.dist_tag is None:
            self.dist_tag = self.config.npm.dist_tag
        if self.http is None:
            self.http = HttpClient(timeout=self.config.timeouts.http)
        if self.npm is None:
            from desktop_publish.publishers.npm import NpmClient

            self.npm = NpmClient(
                command=self.config.npm.command,
                registry=self.config.npm.registry,
                timeout=self.config.timeouts.npm,
            )

    @property
    def bundle_dir(self) -> Path:
        """Build output. Read-only to the publish core."""
        return self.directory / "jdeploy-bundle"

    @property
    def publish_dir(self) -> Path:
        return self.directory / "jdeploy" / "publish"

    @property
    def publish_bundle_dir(self) -> Path:
        return self.publish_dir / "jdeploy-bundle"

    @property
    def publish_package_json(self) -> Path:
        return self.publish_dir / "package.json"

    @property
    def github_release_files_dir(self) -> Path:
        return self.directory / "jdeploy" / "github-release-files"

    @property
    def npm_platform_bundles_dir(self) -> Path:
        return self.directory / "jdeploy" / "npm-platform-bundles"

    @property
    def npm_client(self) -> "NpmClient":
        if self.npm is None:
            raise ConfigurationError("No npm client configured for this publish")
        return self.npm

    @property
    def http_transport(self) -> HttpTransport:
        if self.http is None:
            raise ConfigurationError("No HTTP transport configured for this publish")
        return self.http

    def load_package_json(self) -> PackageMetadata:
        return PackageMetadata.load(self.package_json_path or self.directory / "package.json")

    def with_package_builder(self, package_builder: PackageBuilder | None) -> "PublishingContext":
        return replace(self, package_builder=package_builder)

    def log(self, message: str) -> None:
        """Print a line only in verbose mode."""
        if self.verbose:
            self.console.print(f"[dim]{message}[/dim]")


def md5_checksum(path: Path) -> str:
    digest = hashlib.md5()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(65536), b""):
            digest.update(chunk)
    return digest.hexdigest()


def read_main_class(jar_path: Path) -> str | None:
    """Read ``Main-Class`` from a jar's manifest.

    Returns:
        The class name, or None if the jar has no manifest entry

    Raises:
        OSError: If the jar cannot be read
        zipfile.BadZipFile: If the file is not a zip archive
    """
    with zipfile.ZipFile(jar_path) as jar:
        try:
            raw = jar.read("META-INF/MANIFEST.MF").decode("utf-8", errors="replace")
        except KeyError:
            return None

    # Manifest lines wrap at 72 bytes; continuation lines start with a space
    attributes: dict[str, str] = {}
    last_key = None
    for line in raw.splitlines():
        if line.startswith(" ") and last_key:
            attributes[last_key] += line[1:]
        elif ":" in line:
            key, _, value = line.partition(":")
            last_key = key.strip()
            attributes[last_key] = value.strip()
    return attributes.get("Main-Class") or None


class PublishDriver(ABC):
    """Abstract base class for all publish drivers."""

    target_type: ClassVar[PublishTargetType]
    display_name: ClassVar[str]

    def prepare(
        self,
        context: PublishingContext,
        target: PublishTarget,
        bundler_settings: BundlerSettings,
    ) -> None:
        """Stage a private copy of the bundle and inject target-specific metadata.

        The project's own ``jdeploy-bundle`` and package.json are never
        modified; everything is written under ``jdeploy/publish``.

        Raises:
            PublishError: If the bundle has not been built
            SigningError: If signing is enabled and fails
            ConfigurationError: If package.json cannot be read
        """
        if not context.bundle_dir.is_dir():
            raise PublishError(
                f"Bundle directory not found: {context.bundle_dir}",
                fix_hint="Build the package before publishing",
            )

        if context.publish_dir.exists():
            shutil.rmtree(context.publish_dir)
        context.publish_dir.mkdir(parents=True)
        shutil.copytree(context.bundle_dir, context.publish_bundle_dir)
        for extra in ("README.md", "LICENSE"):
            source = context.directory / extra
            if source.is_file():
                shutil.copy2(source, context.publish_dir / extra)

        metadata = context.load_package_json()
        if bundler_settings.source:
            metadata.source = bundler_settings.source
        if not target.is_default_source and target.url:
            metadata.source = target.url

        jdeploy = metadata.jdeploy
        checksums: dict[str, str] = {}
        for image in CHECKSUMMED_IMAGES:
            image_path = context.directory / image
            if image_path.is_file():
                checksums[image] = md5_checksum(image_path)
        jdeploy["checksums"] = checksums

        if not jdeploy.get("mainClass"):
            main_class = self._find_main_class(context, metadata)
            if main_class:
                jdeploy["mainClass"] = main_class

        if context.signer is not None:
            jdeploy["packageSignCertificateSignatures"] = self._sign(
                context.signer, metadata, context.publish_bundle_dir
            )

        metadata.save(context.publish_package_json)
        context.log(f"Staged {metadata.name}@{metadata.version} in {context.publish_dir}")

    def _find_main_class(self, context: PublishingContext, metadata: PackageMetadata) -> str | None:
        jar = metadata.jdeploy.get("jar")
        if not jar:
            return None
        for candidate in (context.publish_bundle_dir / Path(jar).name, context.directory / jar):
            if candidate.is_file():
                try:
                    return read_main_class(candidate)
                except (OSError, zipfile.BadZipFile) as e:
                    context.console.print(
                        f"[yellow]Warning:[/yellow] Could not read manifest of {candidate}: {e}"
                    )
                    return None
        return None

    def _sign(
        self, signer: PackageSigner, metadata: PackageMetadata, bundle_dir: Path
    ) -> list[str]:
        try:
            signer.sign(signing_version_string(metadata.data), bundle_dir)
            return list(signer.certificate_hashes())
        except SigningError:
            raise
        except Exception as e:
            raise SigningError("Failed to sign package", details=str(e)) from e

    def make_package(
        self,
        context: PublishingContext,
        target: PublishTarget,
        bundler_settings: BundlerSettings,
    ) -> None:
        """Produce the transmittable artifact from the staged directory.

        npm packs the staged directory itself during publish, so the default
        does nothing.
        """
        context.log(f"Nothing to package for {target.name}")

    @abstractmethod
    def publish(
        self,
        context: PublishingContext,
        target: PublishTarget,
        otp_provider: OtpProvider,
    ) -> PublishResult:
        """Transmit the staged package.

        Raises:
            PublishingError: On any failure; drivers never report failure
                through the result alone
        """

    @abstractmethod
    def fetch_package_info(
        self,
        context: PublishingContext,
        package_name: str,
        target: PublishTarget,
    ) -> dict[str, Any]:
        """Read the channel's version metadata for a package.

        Raises:
            NetworkError: If the metadata cannot be fetched
        """

    def is_version_published(
        self,
        context: PublishingContext,
        package_name: str,
        version: str,
        target: PublishTarget,
    ) -> bool:
        """Check whether a version is visible on the channel. Never raises.

        Any fetch or parse failure counts as "not published". That is safe
        when polling for completion, where a false negative only means
        waiting longer. It is not a guarantee against double publishing:
        a false negative there lets a duplicate through to the registry,
        which has to reject it itself.
        """
        try:
            info = self.fetch_package_info(context, package_name, target)
        except Exception as e:
            context.log(f"Could not read package info for {package_name}: {e}")
            return False
        versions = info.get("versions") if isinstance(info, dict) else None
        if not isinstance(versions, dict):
            return False
        return version in versions or clean_version(version) in versions


class DriverRegistry:
    """Registry of driver implementations keyed by target type."""

    _drivers: dict[PublishTargetType, type[PublishDriver]] = {}

    @classmethod
    def register(cls, driver_class: type[PublishDriver]) -> type[PublishDriver]:
        """Register a driver class.

        Can be used as a decorator:
            @DriverRegistry.register
            class NPMPublishDriver(PublishDriver):
                ...

        Raises:
            TypeError: If driver_class is missing required attributes
            ValueError: If another driver is already registered for the type
        """
        missing = [
            attr for attr in ("target_type", "display_name") if not hasattr(driver_class, attr)
        ]
        if missing:
            raise TypeError(
                f"Driver class {driver_class.__name__} missing required "
                f"class attributes: {', '.join(missing)}"
            )
        if not isinstance(driver_class.target_type, PublishTargetType):
            raise TypeError(
                f"{driver_class.__name__}.target_type must be a PublishTargetType, "
                f"got {driver_class.target_type!r}"
            )

        existing = cls._drivers.get(driver_class.target_type)
        if existing is not None and existing is not driver_class:
            raise ValueError(
                f"Target type {driver_class.target_type.value} already handled by "
                f"{existing.__name__}. Cannot register {driver_class.__name__}."
            )
        cls._drivers[driver_class.target_type] = driver_class
        return driver_class

    @classmethod
    def get(cls, target_type: PublishTargetType) -> type[PublishDriver] | None:
        return cls._drivers.get(target_type)

    @classmethod
    def create(cls, target_type: PublishTargetType) -> PublishDriver:
        """Instantiate the driver for a target type.

        Raises:
            ConfigurationError: If no driver handles the type
        """
        driver_class = cls.get(target_type)
        if driver_class is None:
            raise ConfigurationError(f"No publish driver for target type {target_type.value}")
        return driver_class()

    @classmethod
    def list_registered(cls) -> list[PublishTargetType]:
        return list(cls._drivers.keys())
