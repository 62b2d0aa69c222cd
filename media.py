"""Image hosting. Base64 payloads are pushed to Cloudinary and replaced by their URL."""

import logging
import os

import cloudinary
import cloudinary.uploader

logger = logging.getLogger(__name__)

DEFAULT_FOLDER = "vendor-catalog"


class ImageUploadError(Exception):
    pass


def _configure():
    cloud_name = os.getenv("CLOUDINARY_CLOUD_NAME")
    if not cloud_name:
        raise ImageUploadError("Cloudinary is not configured")
    cloudinary.config(
        cloud_name=cloud_name,
        api_key=os.getenv("CLOUDINARY_API_KEY"),
        api_secret=os.getenv("CLOUDINARY_API_SECRET"),
        secure=True,
    )


def is_hosted_url(value: str) -> bool:
    return value.startswith("http://") or value.startswith("https://")


def upload_image(payload: str, folder: str = None) -> str:
    """Upload a base64 data URI and return the hosted https URL.

    Values that are already URLs are returned untouched.
    """
    if is_hosted_url(payload):
        return payload

    _configure()
    try:
        result = cloudinary.uploader.upload(
            payload,
            folder=folder or os.getenv("CLOUDINARY_FOLDER", DEFAULT_FOLDER),
            resource_type="image",
            transformation=[
                {"width": 800, "height": 800, "crop": "limit"},
                {"quality": "auto"},
            ],
        )
    except Exception as exc:
        logger.error("Image upload failed: %s", exc)
        raise ImageUploadError("Image upload failed") from exc
    return result["secure_url"]
