"""Image processing services package."""

from ahorro.services.image.thumbnails import ThumbnailError, ThumbnailService

__all__ = [
    "ThumbnailError",
    "ThumbnailService",
]
