"""
Thumbnail Generation using Pillow

DESIGN DECISION: Thumbnails are generated locally with Pillow because:
1. No network round trip for a preview
2. Predictable output (always JPEG, bounded size)
3. Pillow is already how we inspect images

Thumbnails are best-effort. A document Pillow cannot read (a PDF, a
truncated upload) simply has no thumbnail; ingestion carries on.
"""

from io import BytesIO
from typing import Optional

from PIL import Image, ImageOps, UnidentifiedImageError

from ahorro.config import IngestionSettings, get_settings


class ThumbnailError(Exception):
    """The document could not be turned into a thumbnail."""
    pass


class ThumbnailService:
    """
    Builds bounded JPEG previews for image attachments.

    Flow:
    1. Check the MIME type is an image
    2. Decode with Pillow, honouring EXIF orientation
    3. Shrink to fit inside max_px x max_px
    4. Re-encode as JPEG
    """

    def __init__(self, settings: Optional[IngestionSettings] = None):
        self._settings = settings or get_settings().ingestion

    @staticmethod
    def supports(mime_type: str) -> bool:
        """Only image/* documents get thumbnails."""
        return mime_type.lower().startswith("image")

    def generate(self, image_bytes: bytes) -> bytes:
        """
        Create a JPEG thumbnail for ``image_bytes``.

        Raises:
            ThumbnailError: If the bytes are not a decodable image
        """
        max_px = self._settings.thumbnail_max_px

        try:
            with Image.open(BytesIO(image_bytes)) as img:
                img = ImageOps.exif_transpose(img)
                if img.mode != "RGB":
                    img = img.convert("RGB")
                img.thumbnail((max_px, max_px))

                out = BytesIO()
                img.save(
                    out,
                    format="JPEG",
                    quality=self._settings.thumbnail_quality,
                    optimize=True,
                )
                return out.getvalue()
        except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as e:
            raise ThumbnailError(f"Could not build thumbnail: {e}") from e
