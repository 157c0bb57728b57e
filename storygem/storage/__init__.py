"""
Blob storage for photos and rendered storybooks.
"""

from .object_storage import (
    PHOTO_BUCKET,
    STORYBOOK_BUCKET,
    LocalObjectStorage,
    ObjectStorage,
)

__all__ = ["LocalObjectStorage", "ObjectStorage", "PHOTO_BUCKET", "STORYBOOK_BUCKET"]
