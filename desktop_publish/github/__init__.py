"""GitHub release channel support."""

from desktop_publish.github.releases import (
    AssetSnapshot,
    GitHubReleaseClient,
    ReleaseAsset,
    ReleaseHandle,
    asset_names_match,
    normalize_asset_name,
)

__all__ = [
    "AssetSnapshot",
    "GitHubReleaseClient",
    "ReleaseAsset",
    "ReleaseHandle",
    "asset_names_match",
    "normalize_asset_name",
]
