"""Pydantic v2 configuration models for publish.yml.

These models provide:
- Type-safe configuration loading
- Automatic validation
- Default values
- Environment variable override support

Every section is optional; a project with no configuration file publishes
with the defaults below.
"""

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings


class GitHubConfig(BaseModel):
    """GitHub release channel configuration."""

    token: str | None = Field(
        default=None,
        description="Bearer token for the GitHub API (falls back to GITHUB_TOKEN)",
    )
    api_url: str = Field(
        default="https://api.github.com",
        description="GitHub REST API base URL",
    )
    release_tag: str = Field(
        default="jdeploy",
        description="Tag of the shared release that holds package-info.json",
    )
    repository: str | None = Field(
        default=None,
        description="owner/repo used in release notes (defaults to the target URL)",
    )
    ref_name: str | None = Field(
        default=None,
        description="Git ref name used in release notes (defaults to the version)",
    )
    ref_type: str | None = Field(
        default=None,
        description="Git ref type used in release notes (defaults to 'tag')",
    )

    @field_validator("api_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")


class NPMConfig(BaseModel):
    """npm registry configuration."""

    registry: str = Field(
        default="https://registry.npmjs.org/",
        description="npm registry URL used for version lookups",
    )
    command: str = Field(
        default="npm",
        description="npm executable",
    )
    dist_tag: str | None = Field(
        default=None,
        description="dist-tag passed to npm publish --tag",
    )
    otp: str | None = Field(
        default=None,
        description="Pre-shared one-time password for non-interactive publishing",
    )

    @field_validator("registry")
    @classmethod
    def ensure_trailing_slash(cls, v: str) -> str:
        return v if v.endswith("/") else v + "/"


class CompanionConfig(BaseModel):
    """Companion service that receives icon and splash uploads."""

    url: str = Field(
        default="https://www.jdeploy.com/",
        description="Base URL of the companion service",
    )
    enabled: bool = Field(
        default=True,
        description="Upload icon/splash resources after publishing",
    )

    @field_validator("url")
    @classmethod
    def ensure_trailing_slash(cls, v: str) -> str:
        return v if v.endswith("/") else v + "/"


class ConfirmationConfig(BaseModel):
    """Post-publish visibility polling."""

    timeout_seconds: float = Field(
        default=30,
        ge=0,
        description="How long to wait for a published version to become visible",
    )
    poll_interval_seconds: float = Field(
        default=1,
        gt=0,
        description="Delay between visibility checks",
    )
    fail_on_unconfirmed: bool = Field(
        default=False,
        description="Raise an error when a version is not visible before the timeout",
    )
    warn_on_unconfirmed: bool = Field(
        default=True,
        description="Print a warning when a version is not visible before the timeout",
    )


class PublishingConfig(BaseModel):
    """Publish orchestration settings."""

    always_package: bool = Field(
        default=True,
        description="Rebuild the bundle before publishing",
    )
    isolate_target_failures: bool = Field(
        default=False,
        description="Keep publishing remaining targets after one target fails",
    )
    concurrency_retries: int = Field(
        default=0,
        ge=0,
        le=10,
        description="Full prepare/publish retries after a concurrent publish is detected",
    )
    require_existing_tag: bool = Field(
        default=False,
        description="Refuse to create the shared release on GitHub (it must already exist)",
    )


class TimeoutsConfig(BaseModel):
    """Timeout configuration in seconds."""

    http: int = Field(
        default=30,
        ge=1,
        description="HTTP request timeout",
    )
    npm: int = Field(
        default=300,
        ge=10,
        description="npm publish/pack timeout",
    )


class PublishConfig(BaseSettings):
    """Root configuration model for publish.yml.

    Supports environment variable overrides with PUBLISH_ prefix.
    Example: PUBLISH_CONFIRMATION__TIMEOUT_SECONDS=60
    """

    github: GitHubConfig = Field(default_factory=GitHubConfig)
    npm: NPMConfig = Field(default_factory=NPMConfig)
    companion: CompanionConfig = Field(default_factory=CompanionConfig)
    confirmation: ConfirmationConfig = Field(default_factory=ConfirmationConfig)
    publishing: PublishingConfig = Field(default_factory=PublishingConfig)
    timeouts: TimeoutsConfig = Field(default_factory=TimeoutsConfig)

    model_config = {
        "env_prefix": "PUBLISH_",
        "env_nested_delimiter": "__",
    }
