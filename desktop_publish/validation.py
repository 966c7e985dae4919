"""Pre-publish validation.

Every check runs before any network write and reports a ValidationResult.
Failures are never retried: the user has to fix the project first.
"""

import zipfile
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from desktop_publish.exceptions import ValidationError
from desktop_publish.models import PackageMetadata
from desktop_publish.publishers.base import DriverRegistry, PublishDriver, PublishingContext, read_main_class
from desktop_publish.targets import PublishTarget, PublishTargetType
from desktop_publish.utils.version import clean_version

REQUIRED_FIELDS = ("name", "author", "description", "version")

EXECUTABLE_JAR_DOCS = "https://www.jdeploy.com/docs/manual/#_appendix_building_executable_jar_file"


class ValidationSeverity(Enum):
    """Severity level for validation results.

    - ERROR: Blocks publishing (must be fixed)
    - WARNING: Shown but doesn't block
    - INFO: Informational only
    """

    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


@dataclass
class ValidationResult:
    """Result of a validation check.

    Attributes:
        passed: Whether the check passed
        message: Brief description of the result
        severity: How serious the issue is
        details: Extended explanation
        fix_command: Suggested command to fix the issue
    """

    passed: bool
    message: str
    severity: ValidationSeverity = ValidationSeverity.ERROR
    details: str | None = None
    fix_command: str | None = None

    @classmethod
    def success(cls, message: str = "Validation passed") -> "ValidationResult":
        return cls(passed=True, message=message, severity=ValidationSeverity.INFO)

    @classmethod
    def error(
        cls,
        message: str,
        details: str | None = None,
        fix_command: str | None = None,
    ) -> "ValidationResult":
        return cls(
            passed=False,
            message=message,
            severity=ValidationSeverity.ERROR,
            details=details,
            fix_command=fix_command,
        )

    @classmethod
    def warning(cls, message: str, details: str | None = None) -> "ValidationResult":
        return cls(
            passed=True, message=message, severity=ValidationSeverity.WARNING, details=details
        )


def validate_required_fields(metadata: PackageMetadata) -> list[ValidationResult]:
    results = []
    for name in REQUIRED_FIELDS:
        value = metadata.data.get(name)
        if not value:
            results.append(ValidationResult.error(f"The {name} field is required for publishing."))
    if not results:
        results.append(ValidationResult.success("Required package.json fields present"))
    return results


def validate_jar(project_dir: Path, metadata: PackageMetadata) -> ValidationResult:
    """Check that ``jdeploy.jar`` names an existing executable jar."""
    if not isinstance(metadata.data.get("jdeploy"), dict):
        return ValidationResult.error(
            "This package.json is missing the jdeploy object which is required."
        )
    jar = metadata.data["jdeploy"].get("jar")
    if not jar:
        return ValidationResult.error("Please select a jar file before publishing.")
    if not str(jar).endswith(".jar"):
        return ValidationResult.error(
            "The selected jar file is not a jar file. Jar files must have the .jar extension"
        )

    jar_path = project_dir / jar
    if not jar_path.is_file():
        return ValidationResult.error(
            "The selected jar file does not exist. Please check the selected jar file and try again.",
            details=str(jar_path),
        )
    try:
        main_class = read_main_class(jar_path)
    except (OSError, zipfile.BadZipFile) as e:
        return ValidationResult.error("Failed to load jar file", details=str(e))
    if not main_class:
        return ValidationResult.error(
            "Selected jar file is not an executable Jar file.",
            details=f"See {EXECUTABLE_JAR_DOCS}",
        )
    return ValidationResult.success(f"Executable jar {jar} (Main-Class: {main_class})")


def validate_version_unpublished(
    context: PublishingContext,
    metadata: PackageMetadata,
    target: PublishTarget,
    driver: PublishDriver,
) -> ValidationResult:
    """Refuse to publish a version the target already has.

    This is best-effort: ``is_version_published`` reports False whenever the
    channel cannot be read, so an unreachable channel passes this check and
    the registry itself must reject the duplicate.
    """
    raw = metadata.version
    cleaned = clean_version(raw)
    for version in dict.fromkeys((cleaned, raw)):
        if driver.is_version_published(context, metadata.name, version, target):
            where = " on Github" if target.type is PublishTargetType.GITHUB else ""
            return ValidationResult.error(
                f"The package {metadata.name} already has a published version {cleaned}{where}.",
                fix_command="Increment the version number in package.json and publish again",
            )
    return ValidationResult.success(f"{metadata.name}@{cleaned} not yet published to {target.name}")


def validate_for_publishing(
    context: PublishingContext,
    targets: list[PublishTarget],
    drivers: dict[PublishTargetType, PublishDriver] | None = None,
) -> list[ValidationResult]:
    """Run every pre-publish check.

    Args:
        context: Publishing context
        targets: Targets about to be published to
        drivers: Driver per target type (defaults to the registered ones)

    Returns:
        All check results, in order
    """
    metadata = context.load_package_json()
    results = validate_required_fields(metadata)
    results.append(validate_jar(context.directory, metadata))
    if not all(r.passed for r in results):
        return results

    drivers = drivers or {}
    for target in targets:
        driver = drivers.get(target.type) or DriverRegistry.create(target.type)
        drivers[target.type] = driver
        results.append(validate_version_unpublished(context, metadata, target, driver))

    target_types = {t.type for t in targets}
    if PublishTargetType.NPM in target_types:
        if context.npm_client.is_logged_in():
            results.append(ValidationResult.success("Logged into npm"))
        else:
            results.append(
                ValidationResult.error(
                    "You must be logged into NPM in order to publish",
                    fix_command="npm login",
                )
            )
    if PublishTargetType.GITHUB in target_types and not context.github_token:
        results.append(
            ValidationResult.error(
                "GitHub token is required for publishing to GitHub",
                fix_command="export GITHUB_TOKEN=<token>",
            )
        )
    return results


def ensure_valid(results: list[ValidationResult]) -> None:
    """Raise for the first failed check.

    Raises:
        ValidationError: If any result did not pass
    """
    for result in results:
        if not result.passed:
            raise ValidationError(
                result.message, details=result.details, fix_hint=result.fix_command
            )
