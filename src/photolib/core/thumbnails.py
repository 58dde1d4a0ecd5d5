"""Thumbnail generation for stored originals.

The generator reads an original from disk, shrinks it so that neither side
exceeds a bound (never enlarging small images), encodes it, and atomically
writes the result to the thumbnail location.  It never touches metadata; the
upload orchestrator decides what a success or failure means for the photo
record.

Decoding and encoding happen entirely in memory so that the two failure
kinds stay distinct: problems reading or writing files surface as
:class:`~photolib.core.errors.StorageIOError`, problems with the image data
itself surface as :class:`~photolib.core.errors.ImageProcessingError`.
"""

from __future__ import annotations

import io
import logging
from pathlib import Path

from PIL import Image, ImageOps

from photolib.core.blob_store import atomic_output
from photolib.core.errors import ImageProcessingError, StorageIOError

logger = logging.getLogger(__name__)

DEFAULT_MAX_DIMENSION = 300


def fit_within(width: int, height: int, max_dimension: int) -> tuple[int, int]:
    """Return the size of ``(width, height)`` scaled to fit a square bound.

    Aspect ratio is preserved and images already inside the bound keep
    their size.  Each side is at least one pixel.

    Args:
        width: Source width in pixels.
        height: Source height in pixels.
        max_dimension: Largest allowed width or height.

    Returns:
        Target ``(width, height)``.
    """
    if max_dimension < 1:
        raise ValueError("max_dimension must be positive")
    longest = max(width, height)
    if longest <= max_dimension:
        return width, height
    scale = max_dimension / longest
    return max(1, round(width * scale)), max(1, round(height * scale))


def render_thumbnail(
    data: bytes,
    max_dimension: int,
    *,
    output_format: str = "JPEG",
    quality: int = 85,
) -> tuple[bytes, tuple[int, int]]:
    """Decode ``data``, shrink it, and encode it as ``output_format``.

    EXIF orientation is applied before resizing so portrait photos taken on
    phones come out upright.  Images with alpha or a palette are flattened
    to RGB when the output format cannot store them.

    Returns:
        Tuple of (encoded bytes, (width, height) of the thumbnail).

    Raises:
        ImageProcessingError: If the data is not a decodable image or
            encoding fails.
    """
    try:
        with Image.open(io.BytesIO(data)) as source:
            img = ImageOps.exif_transpose(source)
            img.load()
            size = fit_within(img.width, img.height, max_dimension)
            if size != img.size:
                img = img.resize(size, Image.Resampling.LANCZOS)

            if output_format == "JPEG" and img.mode not in ("RGB", "L"):
                img = img.convert("RGB")

            output = io.BytesIO()
            save_kwargs = {"optimize": True}
            if output_format in ("JPEG", "WEBP"):
                save_kwargs["quality"] = quality
            img.save(output, format=output_format, **save_kwargs)
    except (OSError, ValueError, SyntaxError, Image.DecompressionBombError) as e:
        # UnidentifiedImageError and truncated-file errors are OSError subclasses.
        raise ImageProcessingError(f"Could not create thumbnail: {e}") from e

    return output.getvalue(), size


class ThumbnailGenerator:
    """Derive bounded-size thumbnails from originals on disk.

    Args:
        output_format: Pillow format name for thumbnails.
        quality: Encoder quality for lossy formats.
    """

    def __init__(self, output_format: str = "JPEG", quality: int = 85) -> None:
        self.output_format = output_format
        self.quality = quality

    @classmethod
    def from_config(cls, config) -> ThumbnailGenerator:
        return cls(output_format=config.thumbnail_format, quality=config.thumbnail_quality)

    def generate(
        self,
        source_path: Path,
        dest_path: Path,
        max_dimension: int = DEFAULT_MAX_DIMENSION,
        *,
        photo_id: str | None = None,
    ) -> tuple[int, int]:
        """Create the thumbnail of ``source_path`` at ``dest_path``.

        Args:
            source_path: Original image file.
            dest_path: Thumbnail destination, overwritten atomically.
            max_dimension: Largest allowed thumbnail width or height.
            photo_id: Included in raised errors for context.

        Returns:
            ``(width, height)`` of the written thumbnail.

        Raises:
            StorageIOError: If the source cannot be read or the thumbnail
                cannot be written.
            ImageProcessingError: If the source is not a valid image.
        """
        try:
            data = source_path.read_bytes()
        except OSError as e:
            raise StorageIOError(
                f"Could not read original for thumbnailing: {e.strerror or e}",
                photo_id=photo_id,
            ) from e

        try:
            encoded, size = render_thumbnail(
                data,
                max_dimension,
                output_format=self.output_format,
                quality=self.quality,
            )
        except ImageProcessingError as e:
            e.photo_id = photo_id
            raise

        try:
            with atomic_output(dest_path) as handle:
                handle.write(encoded)
        except OSError as e:
            raise StorageIOError(
                f"Could not write thumbnail: {e.strerror or e}", photo_id=photo_id
            ) from e

        logger.info(f"Wrote {size[0]}x{size[1]} thumbnail to {dest_path}")
        return size
