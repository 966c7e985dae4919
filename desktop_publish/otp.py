"""One-time password providers for two-factor npm publishing.

The npm driver only knows the ``OtpProvider`` protocol, so headless runs can
supply a code up front while interactive runs ask the user.
"""

import typer

from desktop_publish.publishers.base import PublishingContext
from desktop_publish.targets import PublishTarget


class PromptOtpProvider:
    """Ask on the terminal. Blocks until the user answers."""

    def prompt_for_one_time_password(
        self, context: PublishingContext, target: PublishTarget
    ) -> str | None:
        context.console.print(
            f"[yellow]The registry requires a one-time password to publish to {target.name}.[/yellow]"
        )
        otp = typer.prompt("Enter OTP", default="", show_default=False)
        return otp.strip() or None


class StaticOtpProvider:
    """Return a pre-shared code (e.g. from ``--otp`` or ``PUBLISH_NPM__OTP``)."""

    def __init__(self, otp: str | None) -> None:
        self.otp = otp

    def prompt_for_one_time_password(
        self, context: PublishingContext, target: PublishTarget
    ) -> str | None:
        return self.otp or None


class NoOtpProvider:
    """Never supplies a code, so a 2FA-protected publish fails fast."""

    def prompt_for_one_time_password(
        self, context: PublishingContext, target: PublishTarget
    ) -> str | None:
        return None
