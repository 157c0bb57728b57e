"""
Reference photo checks performed before anything is persisted.
"""

from __future__ import annotations

from dataclasses import dataclass
from io import BytesIO

from PIL import Image, UnidentifiedImageError

ALLOWED_FORMATS: dict[str, tuple[str, str]] = {
    "JPEG": ("jpg", "image/jpeg"),
    "PNG": ("png", "image/png"),
    "WEBP": ("webp", "image/webp"),
}

# Far above any phone camera, far below what would exhaust memory on decode.
MAX_PHOTO_PIXELS = 50_000_000


@dataclass(frozen=True)
class PhotoUpload:
    filename: str
    content_type: str | None
    data: bytes


@dataclass(frozen=True)
class InspectedPhoto:
    """A photo that passed validation, with its detected format."""

    data: bytes
    format: str
    width: int
    height: int

    @property
    def extension(self) -> str:
        return ALLOWED_FORMATS[self.format][0]

    @property
    def content_type(self) -> str:
        return ALLOWED_FORMATS[self.format][1]


def inspect_photo(photo: PhotoUpload | None, *, max_bytes: int) -> InspectedPhoto:
    """
    Confirm the upload is a well-formed raster image under the size ceiling.

    Raises ``ValueError`` with a short, user-facing reason otherwise.
    """
    if photo is None or not photo.data:
        raise ValueError("is required")

    if len(photo.data) > max_bytes:
        raise ValueError(f"must be at most {max_bytes // 1024} KiB")

    try:
        with Image.open(BytesIO(photo.data)) as header:
            image_format = header.format
            width, height = header.size
            header.verify()
    except Image.DecompressionBombError as exc:
        raise ValueError("has too many pixels") from exc
    except (UnidentifiedImageError, OSError, SyntaxError) as exc:
        raise ValueError("is not a readable image") from exc

    if width * height > MAX_PHOTO_PIXELS:
        raise ValueError("has too many pixels")

    # verify() only checks container structure; decoding catches truncated pixel data.
    try:
        with Image.open(BytesIO(photo.data)) as decoded:
            decoded.load()
    except (Image.DecompressionBombError, OSError, SyntaxError) as exc:
        raise ValueError("is not a readable image") from exc

    if image_format not in ALLOWED_FORMATS:
        allowed = ", ".join(sorted(ALLOWED_FORMATS))
        raise ValueError(f"must be one of {allowed}")

    if width < 1 or height < 1:
        raise ValueError("has no pixels")

    return InspectedPhoto(data=photo.data, format=image_format, width=width, height=height)
