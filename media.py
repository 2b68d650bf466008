"""
Image hosting on Cloudinary.

Uploads are sent as base64 data URIs into a per-kind folder. Releasing
images is best-effort: failures are logged and never propagate.
"""
import base64
import logging
from typing import Iterable, Optional

import cloudinary
import cloudinary.uploader

from config import CLOUDINARY_CLOUD_NAME, CLOUDINARY_API_KEY, CLOUDINARY_API_SECRET

logger = logging.getLogger(__name__)

cloudinary.config(
    cloud_name=CLOUDINARY_CLOUD_NAME,
    api_key=CLOUDINARY_API_KEY,
    api_secret=CLOUDINARY_API_SECRET,
    secure=True,
)


def is_configured() -> bool:
    return bool(cloudinary.config().api_key)


def upload_image(data: bytes, content_type: Optional[str], folder: str) -> str:
    """Upload raw image bytes and return the hosted https URL."""
    mimetype = content_type or "application/octet-stream"
    data_uri = f"data:{mimetype};base64,{base64.b64encode(data).decode()}"
    response = cloudinary.uploader.upload(data_uri, folder=folder)
    return response["secure_url"]


def public_id_from_url(url: str, folder: str) -> str:
    # https://res.cloudinary.com/<cloud>/image/upload/v123/<folder>/<name>.jpg -> <folder>/<name>
    name = url.rsplit("/", 1)[-1].split(".")[0]
    return f"{folder}/{name}"


def destroy_image(url: str, folder: str):
    cloudinary.uploader.destroy(public_id_from_url(url, folder))


def release_images(urls: Iterable[str], folder: str) -> int:
    """Delete hosted images, returning how many could not be released."""
    failures = 0
    for url in urls:
        if not url:
            continue
        try:
            destroy_image(url, folder)
        except Exception:
            failures += 1
            logger.warning("could not release image %s", url, exc_info=True)
    return failures
