"""Publish drivers for each kind of target."""

# Import drivers to trigger registration
from desktop_publish.publishers import (
    github,  # noqa: F401
    npm,  # noqa: F401
)
from desktop_publish.publishers.base import (
    DriverRegistry,
    OtpProvider,
    PackageBuilder,
    PackageSigner,
    PublishDriver,
    PublishingContext,
    PublishResult,
    PublishStatus,
)
from desktop_publish.publishers.github import GitHubPublishDriver
from desktop_publish.publishers.npm import (
    CopyPlatformBundleGenerator,
    NpmClient,
    NPMPublishDriver,
)

__all__ = [
    "CopyPlatformBundleGenerator",
    "DriverRegistry",
    "GitHubPublishDriver",
    "NpmClient",
    "NPMPublishDriver",
    "OtpProvider",
    "PackageBuilder",
    "PackageSigner",
    "PublishDriver",
    "PublishingContext",
    "PublishResult",
    "PublishStatus",
]
