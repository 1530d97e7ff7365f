import os
import uuid
import logging
import mimetypes

from dotenv import load_dotenv
from supabase import Client

from app.utils.env_helper import env_int
from .schemas import ImageUploadResponseModel

load_dotenv()
logger = logging.getLogger(__name__)

LISTING_IMAGE_BUCKET = os.getenv("LISTING_IMAGE_BUCKET", "listings")
MAX_IMAGE_BYTES = env_int("MAX_IMAGE_BYTES", 5 * 1024 * 1024)


class InvalidImageError(ValueError):
    pass


def image_path(filename: str | None, content_type: str) -> str:
    """Random object path under `listings/`, keeping the upload's extension."""
    ext = None
    if filename and "." in filename:
        ext = filename.rsplit(".", 1)[-1].lower()
    if not ext:
        guessed = mimetypes.guess_extension(content_type) or ".bin"
        ext = guessed.lstrip(".")

    return f"listings/{uuid.uuid4().hex}.{ext}"


def validate_image(content_type: str | None, data: bytes) -> None:
    if not content_type or not content_type.startswith("image/"):
        raise InvalidImageError("Please upload an image file")
    if not data:
        raise InvalidImageError("Uploaded file is empty.")
    if len(data) > MAX_IMAGE_BYTES:
        raise InvalidImageError(
            f"Image is too large ({len(data)} bytes, limit {MAX_IMAGE_BYTES})."
        )


def upload_listing_image(
    db: Client, filename: str | None, content_type: str, data: bytes
) -> ImageUploadResponseModel:
    validate_image(content_type, data)

    path = image_path(filename, content_type)
    bucket = db.storage.from_(LISTING_IMAGE_BUCKET)

    bucket.upload(
        path=path,
        file=data,
        file_options={
            "content-type": content_type,
            "cache-control": "3600",
            "upsert": "false",
        },
    )
    url = bucket.get_public_url(path)

    logger.info(f"listing_image_uploaded path={path} bytes={len(data)}")
    return ImageUploadResponseModel(path=path, url=url)
