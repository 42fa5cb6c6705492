"""Page Transformer for turning source images into processed pages.

Decodes a source image with Pillow, runs it through the filter pipeline and
encodes the result as JPEG. Landscape images are split into two halves when
auto-split is enabled; the unsplit spread is optionally kept as well.
"""

import io
import logging

from PIL import Image, UnidentifiedImageError

from comic_distiller.exceptions import PageProcessingError
from schemas.options import ImageOptions
from schemas.page import Page, SourceImage

from .image_filters import (
    FilterChain,
    build_filter_chain,
    build_split_chains,
    is_blank,
    is_landscape,
)
from .transformer import ImageTransformer

logger = logging.getLogger(__name__)


class PageTransformer(ImageTransformer):
    """Run the filter pipeline and the double-page splitter on source images.

    The PageTransformer:
    1. Decodes the source bytes into an RGB or grayscale image
    2. If auto-split is enabled and the image is landscape:
       a. Optionally keeps the whole spread through the full pipeline (part 0)
       b. Runs the two crop-only split pipelines (parts 1 and 2)
    3. Otherwise runs the full pipeline (part 0)
    4. Encodes every result as JPEG

    The filter chains are built once and shared by all pages, so a single
    instance can be used from several worker threads.

    Attributes:
        options: Image options of the run
        chain: Pipeline for unsplit pages
        split_chains: Pipelines for the first and second half of a spread
    """

    def __init__(self, options: ImageOptions) -> None:
        self.options = options
        self.chain: FilterChain = build_filter_chain(options)
        self.split_chains: tuple[FilterChain, FilterChain] = build_split_chains(options)

    def transform(self, source: SourceImage) -> list[tuple[Page, bytes]]:
        """Transform a source image into one or more pages.

        Args:
            source: Raw image from the source loader

        Returns:
            List of (page, JPEG bytes) pairs ordered by part

        Raises:
            PageProcessingError: If the image cannot be decoded or filtered
        """
        try:
            image = self._decode(source)
            landscape = is_landscape(image)

            if self.options.auto_split_double_page and landscape:
                results = []
                if self.options.keep_double_page_if_split:
                    results.append(self._render(source, 0, self.chain.apply(image), True))
                for part, chain in enumerate(self.split_chains, start=1):
                    results.append(self._render(source, part, chain.apply(image), True))
                logger.debug(f"Split page {source.id} ({source.name}) into {len(results)} pages")
                return results

            return [self._render(source, 0, self.chain.apply(image), landscape)]

        except PageProcessingError:
            raise
        except (UnidentifiedImageError, OSError, ValueError) as e:
            raise PageProcessingError(
                f"Failed to process page {source.id} ({source.path}/{source.name}): {e}",
                page_id=source.id,
            ) from e

    def _decode(self, source: SourceImage) -> Image.Image:
        """Open the source bytes and normalize the pixel mode."""
        image = Image.open(io.BytesIO(source.data))
        image.load()
        if image.mode not in ("L", "RGB"):
            image = image.convert("RGB")
        return image

    def _render(
        self, source: SourceImage, part: int, image: Image.Image, double_page: bool
    ) -> tuple[Page, bytes]:
        """Encode a processed image and build its page record."""
        buffer = io.BytesIO()
        image.save(buffer, format="JPEG", quality=self.options.quality)
        data = buffer.getvalue()

        page = Page(
            id=source.id,
            part=part,
            path=source.path,
            name=source.name,
            size=len(data),
            width=image.width,
            height=image.height,
            double_page=double_page,
            is_blank=is_blank(image),
        )
        return page, data


class MetadataTransformer(ImageTransformer):
    """Build page records without decoding any pixels.

    Used by dry runs, which only need the catalogue to render the table of
    contents. Sizes are unknown and reported as 0.
    """

    def transform(self, source: SourceImage) -> list[tuple[Page, bytes]]:
        page = Page(id=source.id, part=0, path=source.path, name=source.name)
        return [(page, b"")]
