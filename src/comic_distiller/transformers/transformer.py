"""Base class for page transformers.

A transformer turns one SourceImage into the page records (and their encoded
bytes) that end up in the Page Store. Unsplit images yield a single page,
split spreads yield two or three.
"""

from abc import ABC, abstractmethod

from schemas.page import Page, SourceImage


class ImageTransformer(ABC):
    """Abstract base class for source-image-to-page transformers."""

    @abstractmethod
    def transform(self, source: SourceImage) -> list[tuple[Page, bytes]]:
        """Transform a source image into pages.

        Args:
            source: Raw image from the source loader

        Returns:
            List of (page, encoded image bytes) pairs ordered by part
        """
        pass
