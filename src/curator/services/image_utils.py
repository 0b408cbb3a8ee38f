"""Validate uploaded images and prepare them for the vision model and playlist covers."""

import base64
import logging
from io import BytesIO
from typing import BinaryIO, Optional

from PIL import Image, UnidentifiedImageError

from .exceptions import InvalidInput
from .playlist_types import ProcessedImage

logger = logging.getLogger(__name__)

SUPPORTED_CONTENT_TYPES = ("image/jpeg", "image/jpg", "image/png", "image/webp")
SUPPORTED_EXTENSIONS = (".jpg", ".jpeg", ".png", ".webp")
MAX_FILE_SIZE = 10 * 1024 * 1024
COVER_IMAGE_SIZE = 640
JPEG_QUALITY = 80


def validate_image_file(name: str, content_type: Optional[str], size: int) -> Optional[str]:
    """Return a user-facing error message, or None when the upload is acceptable."""
    lowered = (name or "").lower()
    if (content_type or "").lower() not in SUPPORTED_CONTENT_TYPES and not lowered.endswith(
        SUPPORTED_EXTENSIONS
    ):
        return "Please upload a JPEG, PNG, or WebP image."
    if size > MAX_FILE_SIZE:
        return "Image must be smaller than 10MB."
    return None


def crop_to_square(image: Image.Image) -> Image.Image:
    """Centre-crop ``image`` to its shorter side."""
    width, height = image.size
    side = min(width, height)
    left = (width - side) // 2
    top = (height - side) // 2
    return image.crop((left, top, left + side, top + side))


def process_image_file(file_obj: BinaryIO, filename: str = "image.jpg") -> ProcessedImage:
    """
    Square-crop and resize an uploaded image, re-encoding it as JPEG.

    Args:
        file_obj: A file-like object with the raw upload.
        filename: Original name, kept for logging.

    Returns:
        ProcessedImage: base64 JPEG payload plus a ready-to-use data URL.
    """
    try:
        image = Image.open(file_obj)
        image.load()
    except (UnidentifiedImageError, OSError) as exc:
        raise InvalidInput("The uploaded file could not be read as an image.") from exc

    if image.mode != "RGB":
        image = image.convert("RGB")
    square = crop_to_square(image).resize((COVER_IMAGE_SIZE, COVER_IMAGE_SIZE), Image.LANCZOS)

    output = BytesIO()
    square.save(output, format="JPEG", quality=JPEG_QUALITY)
    encoded = base64.b64encode(output.getvalue()).decode("utf-8")
    logger.debug("Processed image %s (%d bytes as JPEG)", filename, output.tell())
    return ProcessedImage(
        base64=encoded,
        data_url=f"data:image/jpeg;base64,{encoded}",
        filename=filename,
    )
