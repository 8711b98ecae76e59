"""Image Normalization Stage - Prepare a photo for the vision model.

First stage of every extraction attempt. Uses Pillow (with pillow-heif for
iPhone HEIC/HEIF photos) to:
1. Decode the upload and apply its EXIF orientation
2. Downscale so the longest side is at most MAX_DIMENSION
3. Re-encode formats the model does not accept as JPEG

The result is written to a temporary file that the caller owns.
"""

import logging
import os
import tempfile
from contextlib import contextmanager
from typing import BinaryIO, Iterator, Optional, Union

import pillow_heif
from PIL import Image, ImageOps, UnidentifiedImageError

from medscan.config import settings
from medscan.errors import ImageDecodeError
from medscan.models import ProcessedImage

logger = logging.getLogger(__name__)

pillow_heif.register_heif_opener()

# Longest side accepted by the vision model without server-side resizing
MAX_DIMENSION = 1568

# Content types sent to the model as-is, with their Pillow format and extension
SUPPORTED_FORMATS = {
    "image/jpeg": ("JPEG", ".jpg"),
    "image/png": ("PNG", ".png"),
    "image/gif": ("GIF", ".gif"),
    "image/webp": ("WEBP", ".webp"),
}

# Camera-native formats that always need re-encoding
CONVERSION_CONTENT_TYPES = {"image/heic", "image/heif"}

CONVERTED_CONTENT_TYPE = "image/jpeg"


def requires_conversion(content_type: str) -> bool:
    """Check if a content type must be re-encoded before the model call."""
    content_type = (content_type or "").lower()
    return content_type in CONVERSION_CONTENT_TYPES or content_type not in SUPPORTED_FORMATS


def compute_target_size(width: int, height: int, max_dimension: int) -> tuple[int, int]:
    """Compute output dimensions that fit within max_dimension.

    The larger side becomes exactly max_dimension and the other side is
    scaled proportionally, rounding half up. Images already within bounds
    are returned unchanged (never upscaled).

    Args:
        width: Source width in pixels
        height: Source height in pixels
        max_dimension: Longest allowed side

    Returns:
        Tuple of (width, height)
    """
    longest = max(width, height)
    if longest <= max_dimension:
        return width, height

    scale = max_dimension / longest
    if width >= height:
        return max_dimension, max(1, int(height * scale + 0.5))
    return max(1, int(width * scale + 0.5)), max_dimension


class ImageNormalizer:
    """Decodes, resizes and re-encodes document photos.

    Stateless apart from its configuration; one instance can serve any
    number of extraction attempts.
    """

    def __init__(
        self,
        max_dimension: int = None,
        temp_dir: Optional[str] = None,
    ):
        """Initialize normalizer.

        Args:
            max_dimension: Longest output side (default from settings, typically 1568)
            temp_dir: Directory for processed files (default: system temp dir)
        """
        self.max_dimension = max_dimension or settings.max_image_dimension
        self.temp_dir = temp_dir

    def normalize(
        self,
        source: Union[str, os.PathLike, BinaryIO],
        content_type: str,
    ) -> ProcessedImage:
        """Normalize one image.

        Args:
            source: Path or binary stream of the uploaded image
            content_type: Declared content type of the upload

        Returns:
            ProcessedImage pointing at a new temporary file

        Raises:
            ImageDecodeError: If the source cannot be decoded or re-encoded
        """
        image = self._decode(source)
        try:
            image = ImageOps.exif_transpose(image)
            original_width, original_height = image.size

            target = compute_target_size(original_width, original_height, self.max_dimension)
            if target != (original_width, original_height):
                image = image.resize(target, Image.LANCZOS)
                logger.debug(
                    "Resized image %dx%d -> %dx%d",
                    original_width, original_height, target[0], target[1],
                )

            if requires_conversion(content_type):
                pil_format, extension = SUPPORTED_FORMATS[CONVERTED_CONTENT_TYPE]
                output_content_type = CONVERTED_CONTENT_TYPE
                if image.mode not in ("RGB", "L"):
                    image = image.convert("RGB")
            else:
                output_content_type = content_type.lower()
                pil_format, extension = SUPPORTED_FORMATS[output_content_type]
                if pil_format == "JPEG" and image.mode not in ("RGB", "L"):
                    image = image.convert("RGB")
                elif image.mode == "CMYK":
                    # Declared type can disagree with the bytes; only JPEG stores CMYK
                    image = image.convert("RGB")

            output_path = self._write(image, pil_format, extension)
            width, height = image.size
        except (OSError, ValueError) as e:
            raise ImageDecodeError(f"image could not be re-encoded: {e}") from e
        finally:
            image.close()

        return ProcessedImage(
            path=output_path,
            width=width,
            height=height,
            content_type=output_content_type,
        )

    @contextmanager
    def processed(
        self,
        source: Union[str, os.PathLike, BinaryIO],
        content_type: str,
    ) -> Iterator[ProcessedImage]:
        """Normalize an image and delete the temporary file afterwards."""
        processed_image = self.normalize(source, content_type)
        try:
            yield processed_image
        finally:
            cleanup(processed_image)

    def _decode(self, source: Union[str, os.PathLike, BinaryIO]) -> Image.Image:
        try:
            image = Image.open(source)
            image.load()
        except (UnidentifiedImageError, OSError, ValueError, Image.DecompressionBombError) as e:
            raise ImageDecodeError(f"image could not be decoded: {e}") from e
        return image

    def _write(self, image: Image.Image, pil_format: str, extension: str) -> str:
        fd, output_path = tempfile.mkstemp(
            prefix="processed_image_", suffix=extension, dir=self.temp_dir
        )
        try:
            with os.fdopen(fd, "wb") as handle:
                image.save(handle, format=pil_format)
        except Exception:
            if os.path.exists(output_path):
                os.remove(output_path)
            raise
        return output_path


def cleanup(processed_image: Optional[ProcessedImage]) -> None:
    """Remove the temporary file behind a processed image, if still present."""
    if processed_image is None:
        return
    try:
        os.remove(processed_image.path)
    except FileNotFoundError:
        pass
