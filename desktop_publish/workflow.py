"""Publish workflow orchestration.

Coordinates one publish invocation:
1. Build the package (when ``publishing.always_package`` is set)
2. For each target, in configured order: prepare, make_package, publish
3. Poll each published target until the version is visible
4. Upload icon and splash images to the companion service

There is no cross-target transaction: a target published in step 2 stays
published even if a later target fails.
"""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable

from rich.console import Console
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn

from desktop_publish.exceptions import ConcurrentPublishError, PublishError, PublishingError
from desktop_publish.models import BundlerSettings
from desktop_publish.publishers.base import (
    DriverRegistry,
    OtpProvider,
    PublishDriver,
    PublishingContext,
    PublishResult,
)
from desktop_publish.targets import PublishTarget, PublishTargetType, load_publish_targets
from desktop_publish.uploader import ResourceUploader, UploadResult


class ConfirmationStatus(Enum):
    """Whether a published version became visible before the poll timed out."""

    CONFIRMED = "confirmed"
    UNCONFIRMED = "unconfirmed"


@dataclass
class TargetOutcome:
    """What happened to one target."""

    target: PublishTarget
    result: PublishResult | None = None
    error: PublishingError | None = None
    attempts: int = 0
    confirmation: ConfirmationStatus | None = None

    @property
    def succeeded(self) -> bool:
        return self.error is None and self.result is not None


@dataclass
class WorkflowReport:
    """Result of a publish invocation."""

    targets: list[TargetOutcome] = field(default_factory=list)
    upload: UploadResult | None = None

    @property
    def failed(self) -> list[TargetOutcome]:
        return [o for o in self.targets if not o.succeeded]

    @property
    def unconfirmed(self) -> list[TargetOutcome]:
        return [o for o in self.targets if o.confirmation is ConfirmationStatus.UNCONFIRMED]

    @property
    def success(self) -> bool:
        return bool(self.targets) and not self.failed


@dataclass
class PublishWorkflow:
    """Drives every configured target through the publish protocol.

    ``sleep`` and ``clock`` are injectable so the confirmation poll can be
    tested without waiting.
    """

    context: PublishingContext
    otp_provider: OtpProvider
    targets: list[PublishTarget] | None = None
    drivers: dict[PublishTargetType, PublishDriver] = field(default_factory=dict)
    uploader: ResourceUploader | None = None
    sleep: Callable[[float], None] = time.sleep
    clock: Callable[[], float] = time.monotonic

    @property
    def console(self) -> Console:
        return self.context.console

    def driver_for(self, target: PublishTarget) -> PublishDriver:
        if target.type not in self.drivers:
            self.drivers[target.type] = DriverRegistry.create(target.type)
        return self.drivers[target.type]

    def publish(self) -> WorkflowReport:
        """Run the whole workflow.

        Returns:
            WorkflowReport with one outcome per target

        Raises:
            PublishingError: If a target fails and failures are not isolated,
                or if a version stays unconfirmed and that is configured fatal
        """
        config = self.context.config
        metadata = self.context.load_package_json()
        targets = self.targets if self.targets is not None else load_publish_targets(metadata.data)

        if config.publishing.always_package and self.context.package_builder is not None:
            self.console.print("\n[bold cyan]>[/bold cyan] Packaging...")
            self.context.package_builder.build(self.context, BundlerSettings())

        report = WorkflowReport()
        for target in targets:
            self.console.print(
                f"\n[bold cyan]>[/bold cyan] Publishing to {target.name} ({target.type.value})..."
            )
            try:
                outcome = self.publish_target(target)
            except PublishingError as e:
                if not config.publishing.isolate_target_failures:
                    raise
                self.console.print(f"[red]  Error: {e.message}[/red]")
                if e.details:
                    self.console.print(f"[dim]  {e.details}[/dim]")
                outcome = TargetOutcome(target=target, error=e)
            report.targets.append(outcome)

        published = [o for o in report.targets if o.succeeded]
        if published:
            self.console.print(
                f"\n[bold cyan]>[/bold cyan] Waiting for {metadata.name}@{metadata.version} to appear..."
            )
        for outcome in published:
            outcome.confirmation = self.wait_for_confirmation(
                self.driver_for(outcome.target), metadata.name, metadata.version, outcome.target
            )

        if report.unconfirmed:
            names = ", ".join(o.target.name for o in report.unconfirmed)
            timeout = config.confirmation.timeout_seconds
            if config.confirmation.fail_on_unconfirmed:
                raise PublishError(
                    f"{metadata.name}@{metadata.version} not visible on {names} after {timeout}s",
                    fix_hint="Check the registry manually; the publish itself may have succeeded",
                )
            if config.confirmation.warn_on_unconfirmed:
                self.console.print(
                    f"[yellow]Warning:[/yellow] {metadata.name}@{metadata.version} was not yet "
                    f"visible on {names} after {timeout}s"
                )

        if published:
            report.upload = self.upload_resources()
        return report

    def publish_target(self, target: PublishTarget) -> TargetOutcome:
        """Run prepare, make_package and publish for one target.

        A lost ledger race restarts the whole cycle, up to
        ``publishing.concurrency_retries`` times, so the ledger is always
        rebuilt from a freshly fetched baseline.

        Raises:
            PublishingError: On failure
        """
        driver = self.driver_for(target)
        retries = self.context.config.publishing.concurrency_retries
        attempts = 0
        while True:
            attempts += 1
            try:
                settings = BundlerSettings()
                driver.prepare(self.context, target, settings)
                driver.make_package(self.context, target, settings)
                result = driver.publish(self.context, target, self.otp_provider)
            except ConcurrentPublishError as e:
                if attempts > retries:
                    raise
                self.console.print(
                    f"[yellow]Warning:[/yellow] {e.message}; retrying "
                    f"(attempt {attempts + 1} of {retries + 1})"
                )
                continue
            self.console.print(f"[green]  {result.message}[/green]")
            return TargetOutcome(target=target, result=result, attempts=attempts)

    def wait_for_confirmation(
        self,
        driver: PublishDriver,
        package_name: str,
        version: str,
        target: PublishTarget,
    ) -> ConfirmationStatus:
        """Poll until the version is visible or the timeout elapses."""
        confirmation = self.context.config.confirmation
        deadline = self.clock() + confirmation.timeout_seconds

        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            console=self.console,
            transient=True,
        ) as progress:
            progress.add_task(f"Waiting for {target.name}...", total=None)
            while True:
                if driver.is_version_published(self.context, package_name, version, target):
                    self.console.print(f"[green]  Confirmed on {target.name}[/green]")
                    return ConfirmationStatus.CONFIRMED
                if self.clock() >= deadline:
                    return ConfirmationStatus.UNCONFIRMED
                self.sleep(confirmation.poll_interval_seconds)

    def upload_resources(self) -> UploadResult:
        """Best-effort companion upload. Never raises for remote failures."""
        companion = self.context.config.companion
        if not companion.enabled:
            return UploadResult.skipped("Companion upload disabled")

        uploader = self.uploader or ResourceUploader(companion.url, http=self.context.http)
        result = uploader.upload_resources(self.context)
        if result.ok:
            self.console.print(Panel(result.message, title="Published", border_style="green"))
        else:
            self.console.print(f"[yellow]Warning:[/yellow] {result.message}")
            if result.error:
                self.console.print(f"[dim]  {result.error}[/dim]")
        return result
