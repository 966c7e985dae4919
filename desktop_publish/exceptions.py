"""Custom exception hierarchy for the publish tool.

Exit codes follow Unix conventions:
- 1: General error
- 2: Configuration error
- 3: Validation error
- 5: Publish error
- 7: Network error
- 11: Concurrent publish detected
"""


class PublishingError(Exception):
    """Base exception for all publishing errors.

    All publish-related exceptions inherit from this class.
    Each subclass defines an exit_code for CLI error reporting.
    """

    exit_code: int = 1

    def __init__(
        self,
        message: str,
        details: str | None = None,
        fix_hint: str | None = None,
    ) -> None:
        """Initialize the exception.

        Args:
            message: Brief error message
            details: Detailed explanation of what went wrong
            fix_hint: Suggested command or action to fix the issue
        """
        super().__init__(message)
        self.message = message
        self.details = details
        self.fix_hint = fix_hint

    def __str__(self) -> str:
        parts = [self.message]
        if self.details:
            parts.append(f"\nDetails: {self.details}")
        if self.fix_hint:
            parts.append(f"\nFix: {self.fix_hint}")
        return "".join(parts)


class ConfigurationError(PublishingError):
    """Configuration file errors.

    Raised when:
    - Config file has invalid syntax (YAML/TOML)
    - Config values fail validation
    - package.json cannot be read
    """

    exit_code = 2


class ValidationError(PublishingError):
    """Pre-publish validation failures.

    Raised before any network call and never retried:
    - Required package.json fields are missing
    - The bundle jar is missing or not executable
    - The version is already published
    - A GitHub token is required but absent
    """

    exit_code = 3


class PublishError(PublishingError):
    """Publishing failures.

    Raised when:
    - npm publish fails
    - GitHub release creation or asset upload fails
    - Authentication fails with registries
    """

    exit_code = 5


class SigningError(PublishError):
    """Package signing failed while staging the publish directory."""


class OtpRequiredError(PublishError):
    """The registry asked for a one-time password."""


class OtpNotProvidedError(PublishError):
    """The OTP provider returned nothing. Terminal for this publish attempt."""


class ReleaseAlreadyExistsError(PublishError):
    """An atomic release create lost the race (HTTP 422).

    Recoverable: re-fetch the release and continue as if it pre-existed.
    """


class AssetNotFoundError(PublishError):
    """The release exists but the expected asset does not.

    Indicates a corrupted earlier publish. Requires operator cleanup.
    """


class ConcurrentPublishError(PublishError):
    """Another process modified the ledger between our fetch and our write.

    The caller decides whether to retry the full prepare/publish cycle.
    """

    exit_code = 11


class NetworkError(PublishingError):
    """Network/API failures.

    Raised when:
    - HTTP requests fail
    - DNS resolution fails
    - Connection timeouts
    - Unexpected status codes from read-only queries
    """

    exit_code = 7


class ReleaseNotFoundError(NetworkError):
    """The release (or tag) does not exist. Expected on a first publish."""
