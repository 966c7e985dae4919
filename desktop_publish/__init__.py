"""Desktop application package publishing to npm and GitHub Releases."""

__version__ = "0.1.0"

from desktop_publish.exceptions import (
    AssetNotFoundError,
    ConcurrentPublishError,
    ConfigurationError,
    NetworkError,
    OtpNotProvidedError,
    OtpRequiredError,
    PublishError,
    PublishingError,
    ReleaseAlreadyExistsError,
    ReleaseNotFoundError,
    SigningError,
    ValidationError,
)

__all__ = [
    "__version__",
    "PublishingError",
    "ConfigurationError",
    "ValidationError",
    "PublishError",
    "SigningError",
    "OtpRequiredError",
    "OtpNotProvidedError",
    "ReleaseAlreadyExistsError",
    "AssetNotFoundError",
    "ConcurrentPublishError",
    "NetworkError",
    "ReleaseNotFoundError",
]
