"""
PDF rendering for finished storybooks.
"""

from .builder import (
    PAGE_SIZES,
    IllustratedPage,
    StorybookPDFBuilder,
    fetch_image_bytes,
)

__all__ = ["IllustratedPage", "PAGE_SIZES", "StorybookPDFBuilder", "fetch_image_bytes"]
