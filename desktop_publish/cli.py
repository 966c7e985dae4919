"""Command-line interface for the publish tool.

Provides commands for:
- publish: Publish the built package to every configured target
- validate: Check publish prerequisites without publishing
- status: Check whether a version is visible on a target
- targets: List the configured publish targets
"""

from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from desktop_publish import __version__
from desktop_publish.config.loader import load_config
from desktop_publish.exceptions import PublishingError
from desktop_publish.otp import PromptOtpProvider, StaticOtpProvider
from desktop_publish.publishers import DriverRegistry, PublishingContext
from desktop_publish.targets import PublishTarget, PublishTargetType, load_publish_targets
from desktop_publish.validation import (
    ValidationResult,
    ValidationSeverity,
    ensure_valid,
    validate_for_publishing,
)
from desktop_publish.workflow import ConfirmationStatus, PublishWorkflow, WorkflowReport

app = typer.Typer(
    name="desktop-publish",
    help="Publish desktop application packages to npm and GitHub Releases",
    add_completion=False,
    no_args_is_help=True,
)

console = Console()


def version_callback(value: bool) -> None:
    """Show version and exit."""
    if value:
        console.print(f"desktop-publish version {__version__}")
        raise typer.Exit()


def build_context(
    project: Path,
    config: Path | None,
    github_token: str | None = None,
    dist_tag: str | None = None,
    verbose: bool = False,
) -> PublishingContext:
    """Load configuration and create the publishing context for a project."""
    cfg = load_config(config, project_root=project)
    return PublishingContext(
        directory=project,
        config=cfg,
        github_token=github_token or cfg.github.token,
        github_repository=cfg.github.repository,
        github_ref_name=cfg.github.ref_name,
        github_ref_type=cfg.github.ref_type,
        dist_tag=dist_tag or cfg.npm.dist_tag,
        console=console,
        verbose=verbose,
    )


def display_validation_results(results: list[ValidationResult]) -> bool:
    """Display validation results in a table.

    Returns:
        True if all checks passed
    """
    table = Table(title="Publish Checks")
    table.add_column("Status", style="bold", width=8)
    table.add_column("Message")

    for result in results:
        if not result.passed:
            status = "[red]FAIL[/red]"
        elif result.severity == ValidationSeverity.WARNING:
            status = "[yellow]WARN[/yellow]"
        else:
            status = "[green]PASS[/green]"
        table.add_row(status, result.message)

    console.print(table)

    for result in results:
        if not result.passed and (result.details or result.fix_command):
            if result.details:
                console.print(f"\n[red]Details:[/red] {result.details}")
            if result.fix_command:
                console.print(f"[yellow]Fix:[/yellow] {result.fix_command}")

    return all(r.passed for r in results)


def display_report(report: WorkflowReport) -> None:
    table = Table(title="Publish Summary")
    table.add_column("Target", style="cyan")
    table.add_column("Type")
    table.add_column("Result")
    table.add_column("Visible")

    for outcome in report.targets:
        if outcome.succeeded:
            result = "[green]published[/green]"
        else:
            result = f"[red]failed[/red] {outcome.error.message if outcome.error else ''}"
        if outcome.confirmation is ConfirmationStatus.CONFIRMED:
            visible = "[green]yes[/green]"
        elif outcome.confirmation is ConfirmationStatus.UNCONFIRMED:
            visible = "[yellow]not yet[/yellow]"
        else:
            visible = "-"
        table.add_row(outcome.target.name, outcome.target.type.value, result, visible)

    console.print(table)


@app.callback()
def main(
    version: bool = typer.Option(  # noqa: B008
        False,
        "--version",
        "-V",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit",
    ),
) -> None:
    """Publish desktop application packages.

    Publishes a built bundle to npm and/or GitHub Releases, keeping the
    GitHub version ledger in sync.
    """
    pass


@app.command()
def publish(
    project: Path = typer.Option(  # noqa: B008
        Path("."),
        "--project",
        "-p",
        help="Project directory containing package.json",
    ),
    config: Path | None = typer.Option(  # noqa: B008
        None,
        "--config",
        "-c",
        help="Path to configuration file (default: search publish.yml etc.)",
    ),
    otp: str | None = typer.Option(  # noqa: B008
        None,
        "--otp",
        help="npm one-time password (skips the interactive prompt)",
    ),
    dist_tag: str | None = typer.Option(  # noqa: B008
        None,
        "--dist-tag",
        help="npm dist-tag to publish under",
    ),
    no_package: bool = typer.Option(  # noqa: B008
        False,
        "--no-package",
        help="Publish the existing bundle without rebuilding it",
    ),
    github_token: str | None = typer.Option(  # noqa: B008
        None,
        "--github-token",
        envvar="GITHUB_TOKEN",
        help="GitHub token for publishing to GitHub Releases",
    ),
    skip_validation: bool = typer.Option(  # noqa: B008
        False,
        "--skip-validation",
        help="Skip pre-publish checks",
    ),
    verbose: bool = typer.Option(  # noqa: B008
        False,
        "--verbose",
        "-v",
        help="Show detailed output",
    ),
) -> None:
    """Publish the package to every configured target.

    Steps:
    - Validate package.json, the bundle jar and registry logins
    - Prepare, package and publish each target in order
    - Wait for the version to become visible
    - Upload the icon and splash image to the companion service
    """
    try:
        context = build_context(project, config, github_token, dist_tag, verbose)
        if no_package:
            context.config.publishing.always_package = False
        metadata = context.load_package_json()
        targets = load_publish_targets(metadata.data)

        if not skip_validation:
            results = validate_for_publishing(context, targets)
            if verbose or not all(r.passed for r in results):
                display_validation_results(results)
            ensure_valid(results)

        preset_otp = otp or context.config.npm.otp
        otp_provider = StaticOtpProvider(preset_otp) if preset_otp else PromptOtpProvider()
        report = PublishWorkflow(context, otp_provider, targets=targets).publish()

        display_report(report)
        if not report.success:
            console.print("\n[red]Some targets failed to publish.[/red]")
            raise typer.Exit(code=1)
        console.print(f"\n[green]Published {metadata.name}@{metadata.version}[/green]")

    except PublishingError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(code=e.exit_code) from None


@app.command()
def validate(
    project: Path = typer.Option(  # noqa: B008
        Path("."),
        "--project",
        "-p",
        help="Project directory containing package.json",
    ),
    config: Path | None = typer.Option(  # noqa: B008
        None,
        "--config",
        "-c",
        help="Path to configuration file",
    ),
    github_token: str | None = typer.Option(  # noqa: B008
        None,
        "--github-token",
        envvar="GITHUB_TOKEN",
        help="GitHub token (required when a GitHub target is configured)",
    ),
) -> None:
    """Check publish prerequisites without publishing.

    Checks:
    - Required package.json fields (name, author, description, version)
    - Executable jar referenced by jdeploy.jar
    - Version not already published on any target
    - npm login and GitHub token where needed
    """
    try:
        context = build_context(project, config, github_token)
        targets = load_publish_targets(context.load_package_json().data)
        if display_validation_results(validate_for_publishing(context, targets)):
            console.print("\n[green]Ready to publish.[/green]")
        else:
            console.print("\n[red]Some checks failed.[/red]")
            raise typer.Exit(code=1)

    except PublishingError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(code=e.exit_code) from None


@app.command()
def status(
    name: str = typer.Argument(..., help="Package name"),  # noqa: B008
    version: str = typer.Argument(..., help="Version to look for"),  # noqa: B008
    target_url: str | None = typer.Option(  # noqa: B008
        None,
        "--target-url",
        help="GitHub repository URL (default: the npm registry)",
    ),
    config: Path | None = typer.Option(  # noqa: B008
        None,
        "--config",
        "-c",
        help="Path to configuration file",
    ),
) -> None:
    """Show whether a version is visible on a target."""
    try:
        context = build_context(Path("."), config)
        target = PublishTarget.from_dict({"name": target_url or name, "url": target_url or name})
        driver = DriverRegistry.create(target.type)
        published = driver.is_version_published(context, name, version, target)

        table = Table(title="Publish Status")
        table.add_column("Property", style="cyan")
        table.add_column("Value", style="green")
        table.add_row("Package", name)
        table.add_row("Version", version)
        table.add_row("Target", f"{target.url} ({target.type.value})")
        table.add_row("Published", "yes" if published else "[yellow]no[/yellow]")
        console.print(table)

        if not published:
            raise typer.Exit(code=1)

    except PublishingError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(code=e.exit_code) from None


@app.command()
def targets(
    project: Path = typer.Option(  # noqa: B008
        Path("."),
        "--project",
        "-p",
        help="Project directory containing package.json",
    ),
) -> None:
    """List the publish targets configured in package.json."""
    try:
        context = build_context(project, None)
        configured = load_publish_targets(context.load_package_json().data)

        table = Table(title="Publish Targets")
        table.add_column("Name", style="cyan")
        table.add_column("Type")
        table.add_column("URL")
        for target in configured:
            label = f"{target.name} (default)" if target.is_default else target.name
            table.add_row(label, target.type.value, target.url)
        console.print(table)

        if any(t.type is PublishTargetType.GITHUB for t in configured) and not context.github_token:
            console.print("[yellow]Warning:[/yellow] GitHub target configured but no token set")

    except PublishingError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(code=e.exit_code) from None


if __name__ == "__main__":
    app()
