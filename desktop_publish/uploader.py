"""Upload of the app icon and install splash to the companion service.

The companion site generates native installers on demand. Sending the images
up front spares it from downloading and unpacking the whole package.
"""

import base64
import json
from dataclasses import dataclass
from enum import Enum

from desktop_publish.exceptions import NetworkError
from desktop_publish.models import PackageMetadata
from desktop_publish.publishers.base import PublishingContext
from desktop_publish.utils.http import HttpClient, HttpTransport

UPLOADED_IMAGES = ("icon.png", "installsplash.png")


class UploadStatus(Enum):
    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass
class UploadResult:
    """Outcome of the resource upload. Failures here never undo a publish."""

    status: UploadStatus
    message: str
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.status is not UploadStatus.FAILED

    @classmethod
    def success(cls, message: str) -> "UploadResult":
        return cls(status=UploadStatus.SUCCESS, message=message)

    @classmethod
    def failed(cls, message: str, error: str | None = None) -> "UploadResult":
        return cls(status=UploadStatus.FAILED, message=message, error=error)

    @classmethod
    def skipped(cls, message: str) -> "UploadResult":
        return cls(status=UploadStatus.SKIPPED, message=message)


class ResourceUploader:
    """Posts icon and splash images to ``{companion}publish.php``.

    Args:
        companion_url: Base URL of the companion service (trailing slash added)
        http: Transport (defaults to a urllib client)
    """

    def __init__(self, companion_url: str, http: HttpTransport | None = None) -> None:
        self.companion_url = companion_url if companion_url.endswith("/") else companion_url + "/"
        self.http = http or HttpClient()

    @property
    def endpoint(self) -> str:
        return self.companion_url + "publish.php"

    def upload_resources(self, context: PublishingContext) -> UploadResult:
        """Upload the images if the project has any.

        Returns:
            UploadResult; remote and transport failures are reported in it,
            never raised
        """
        metadata = PackageMetadata.load(context.publish_package_json)
        installers_url = f"{self.companion_url}~{metadata.name}"

        payload: dict[str, str] = {}
        for image in UPLOADED_IMAGES:
            path = context.directory / image
            if path.is_file():
                payload[image] = base64.b64encode(path.read_bytes()).decode("ascii")
        if not payload:
            return UploadResult.skipped(
                f"No icon or splash image to upload. Installers: {installers_url}"
            )

        payload["packageName"] = metadata.name
        payload["version"] = metadata.clean_version

        context.console.print(f"Uploading icon to {self.companion_url}...")
        try:
            response = self.http.request(
                "POST",
                self.endpoint,
                headers={"Content-Type": "application/json; charset=utf-8"},
                body=json.dumps(payload).encode("utf-8"),
            )
        except NetworkError as e:
            return UploadResult.failed(
                f"Failed to publish icon and splash image to {self.companion_url}",
                error=e.details or e.message,
            )

        if response.status != 200:
            return UploadResult.failed(
                f"Failed to publish icon and splash image to {self.companion_url}",
                error=f"HTTP {response.status}",
            )
        try:
            body = response.json()
        except ValueError:
            return UploadResult.failed(
                f"Unexpected response from {self.companion_url}",
                error=f"Expected JSON but found {response.text[:200]!r}",
            )

        if isinstance(body, dict) and body.get("code") == 200:
            return UploadResult.success(
                f"You can download native installers for your app at {installers_url}"
            )
        if isinstance(body, dict) and body.get("error"):
            error = str(body["error"])
        elif isinstance(body, dict) and "code" in body:
            error = f"Unexpected response code: {body['code']}"
        else:
            error = f"Unexpected server response: {body!r}"
        return UploadResult.failed(
            f"There was a problem publishing the icon to {self.companion_url}", error=error
        )
