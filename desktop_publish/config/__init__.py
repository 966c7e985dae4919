"""Configuration management for the publish tool."""

from desktop_publish.config.loader import load_config
from desktop_publish.config.models import (
    CompanionConfig,
    ConfirmationConfig,
    GitHubConfig,
    NPMConfig,
    PublishConfig,
    PublishingConfig,
    TimeoutsConfig,
)

__all__ = [
    "load_config",
    "PublishConfig",
    "GitHubConfig",
    "NPMConfig",
    "CompanionConfig",
    "ConfirmationConfig",
    "PublishingConfig",
    "TimeoutsConfig",
]
