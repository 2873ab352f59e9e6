"""Image storage for arrival and setup photos, backed by Cloudinary."""
import io
import logging
from dataclasses import dataclass
from typing import Protocol

import cloudinary
import cloudinary.exceptions
import cloudinary.uploader

from vendor_tracker.core.config import Settings

logger = logging.getLogger(__name__)

NOT_CONFIGURED_HINT = (
    "Set CLOUDINARY_CLOUD_NAME, CLOUDINARY_API_KEY and CLOUDINARY_API_SECRET "
    "in .env and restart the service."
)
INVALID_SIGNATURE_HINT = (
    "CLOUDINARY_API_SECRET (or the API key / cloud name) is incorrect. Copy the "
    "exact values from the Cloudinary dashboard into .env and restart the service."
)


@dataclass(frozen=True)
class ImageConstraints:
    """Size limit applied to stored images, preserving aspect ratio."""

    max_width: int = 1080
    max_height: int = 1080


@dataclass(frozen=True)
class UploadedImage:
    url: str
    public_id: str


class ImageUploadError(Exception):
    """Raised when an image could not be stored."""

    def __init__(self, message: str, misconfigured: bool = False, hint: str | None = None):
        super().__init__(message)
        self.message = message
        self.misconfigured = misconfigured
        self.hint = hint


class ImageStore(Protocol):
    def upload(
        self, payload: bytes, folder: str, constraints: ImageConstraints
    ) -> UploadedImage: ...


class CloudinaryImageStore:
    """Uploads images to Cloudinary.

    Credentials are applied to the SDK's global configuration when the store
    is constructed at startup; the store is then shared by all requests.
    """

    def __init__(
        self,
        cloud_name: str,
        api_key: str,
        api_secret: str,
        timeout_seconds: int = 30,
    ) -> None:
        self.configured = bool(cloud_name and api_key and api_secret)
        self.timeout_seconds = timeout_seconds
        if self.configured:
            cloudinary.config(
                cloud_name=cloud_name,
                api_key=api_key,
                api_secret=api_secret,
                secure=True,
            )
        else:
            logger.warning("Cloudinary credentials missing, image uploads will fail")

    @classmethod
    def from_settings(cls, settings: Settings) -> "CloudinaryImageStore":
        return cls(
            cloud_name=settings.cloudinary_cloud_name,
            api_key=settings.cloudinary_api_key,
            api_secret=settings.cloudinary_api_secret,
            timeout_seconds=settings.image_upload_timeout_seconds,
        )

    def upload(
        self, payload: bytes, folder: str, constraints: ImageConstraints
    ) -> UploadedImage:
        if not self.configured:
            raise ImageUploadError(
                "Image storage is not configured",
                misconfigured=True,
                hint=NOT_CONFIGURED_HINT,
            )

        try:
            result = cloudinary.uploader.upload(
                io.BytesIO(payload),
                folder=folder,
                resource_type="image",
                transformation=[
                    {
                        "width": constraints.max_width,
                        "height": constraints.max_height,
                        "crop": "limit",
                    }
                ],
                timeout=self.timeout_seconds,
            )
        except cloudinary.exceptions.Error as e:
            if "Invalid Signature" in str(e):
                raise ImageUploadError(
                    "Image upload failed (invalid signature)",
                    misconfigured=True,
                    hint=INVALID_SIGNATURE_HINT,
                ) from e
            raise ImageUploadError(f"Image upload failed: {e}") from e
        except OSError as e:
            raise ImageUploadError(f"Image upload failed: {e}") from e

        logger.debug(f"Uploaded image {result['public_id']} to {folder}")
        return UploadedImage(url=result["secure_url"], public_id=result["public_id"])
