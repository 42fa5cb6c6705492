"""Image filter operations for the page pipeline.

Each operation maps a Pillow image to a new image. A FilterChain is an ordered
list of operations built once from the ImageOptions and reused for every page:

    AutoCrop -> AutoRotate -> AutoContrast -> Contrast -> Brightness
        -> Resize -> Grayscale

Operations that depend on the page geometry (AutoCrop, AutoRotate) look at
the image they receive, so the same chain works for every page of a run.
"""

import logging
from abc import ABC, abstractmethod

import numpy as np
from PIL import Image, ImageOps

from schemas.options import CropRatios, GrayscaleMode, ImageOptions, ViewPort

logger = logging.getLogger(__name__)

# Gray levels treated as paper or ink when looking for empty margins
BLANK_LOW = 0x1F
BLANK_HIGH = 0xE0

# Max gray spread for a page to be considered blank
BLANK_PAGE_SPREAD = 8


class ImageFilter(ABC):
    """A single image operation."""

    @abstractmethod
    def apply(self, image: Image.Image) -> Image.Image:
        """Return the transformed image."""
        pass

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}()"


class AutoCrop(ImageFilter):
    """Trim near-uniform margins from each edge.

    A border line (row or column) is margin when at most ``ratio`` percent of
    its pixels are neither paper-white nor ink-black. Scanning stops at the
    first line with content, or after ``limit`` percent of the edge.
    """

    def __init__(self, ratios: CropRatios, limit: int = 0):
        self.ratios = ratios
        self.limit = limit

    def __repr__(self) -> str:
        return f"AutoCrop({self.ratios!r}, limit={self.limit})"

    def bounds(self, image: Image.Image) -> tuple[int, int, int, int]:
        """Compute the (left, upper, right, lower) box holding the content."""
        gray = np.asarray(image.convert("L"))
        content = (gray > BLANK_LOW) & (gray < BLANK_HIGH)
        height, width = content.shape

        per_column = content.sum(axis=0)
        per_row = content.sum(axis=1)

        max_x = width * self.limit // 100 if self.limit else width
        max_y = height * self.limit // 100 if self.limit else height

        left = _margin(per_column, height, self.ratios.left, max_x)
        right = _margin(per_column[::-1], height, self.ratios.right, max_x)
        up = _margin(per_row, width, self.ratios.up, max_y)
        bottom = _margin(per_row[::-1], width, self.ratios.bottom, max_y)

        if left + right >= width or up + bottom >= height:
            return (0, 0, width, height)
        return (left, up, width - right, height - bottom)

    def apply(self, image: Image.Image) -> Image.Image:
        box = self.bounds(image)
        if box == (0, 0, image.width, image.height):
            return image
        logger.debug(f"Cropping {image.size} to {box}")
        return image.crop(box)


def _margin(counts: np.ndarray, length: int, ratio: int, limit: int) -> int:
    """Count leading lines whose content stays under ``ratio`` percent."""
    allowed = length * ratio / 100
    over = np.flatnonzero(counts[:limit] > allowed)
    if over.size:
        return int(over[0])
    return min(limit, len(counts))


class AutoRotate(ImageFilter):
    """Rotate landscape images a quarter turn to portrait."""

    def apply(self, image: Image.Image) -> Image.Image:
        if image.width > image.height:
            return image.transpose(Image.Transpose.ROTATE_90)
        return image


class AutoContrast(ImageFilter):
    """Stretch the tones so the darkest pixel is black and the lightest white."""

    def apply(self, image: Image.Image) -> Image.Image:
        return ImageOps.autocontrast(image)


class Contrast(ImageFilter):
    """Stretch or flatten tones around mid-gray by a signed percentage.

    A negative delta scales the distance to mid-gray by ``1 + delta/100``,
    a positive one by ``1 / (1 - delta/100)``. At +100 every tone is pushed
    to black or white.
    """

    def __init__(self, delta: int):
        self.delta = delta

    def __repr__(self) -> str:
        return f"Contrast({self.delta})"

    def _curve(self, value: float) -> float:
        p = 1 + self.delta / 100
        if p <= 1:
            return 0.5 + (value - 0.5) * p
        if p < 2:
            return 0.5 + (value - 0.5) / (2 - p)
        return 0.0 if value < 0.5 else 1.0

    def apply(self, image: Image.Image) -> Image.Image:
        if self.delta == 0:
            return image
        table = [min(255, max(0, round(self._curve(v / 255) * 255))) for v in range(256)]
        return image.point(table * len(image.getbands()))


class Brightness(ImageFilter):
    """Shift every channel by a signed percentage of the full range."""

    def __init__(self, delta: int):
        self.delta = delta

    def __repr__(self) -> str:
        return f"Brightness({self.delta})"

    def apply(self, image: Image.Image) -> Image.Image:
        shift = round(255 * self.delta / 100)
        table = [min(255, max(0, v + shift)) for v in range(256)]
        return image.point(table * len(image.getbands()))


class Resize(ImageFilter):
    """Fit the image inside the viewport, keeping its aspect ratio."""

    def __init__(self, view: ViewPort, resample: Image.Resampling = Image.Resampling.LANCZOS):
        self.view = view
        self.resample = resample

    def __repr__(self) -> str:
        return f"Resize({self.view.width}x{self.view.height})"

    def apply(self, image: Image.Image) -> Image.Image:
        size = fit_size(image.width, image.height, self.view)
        if size == image.size:
            return image
        return image.resize(size, self.resample)


def fit_size(width: int, height: int, view: ViewPort) -> tuple[int, int]:
    """Largest size with the aspect ratio of ``width``x``height`` inside ``view``."""
    if width <= 0 or height <= 0:
        return (view.width, view.height)
    width_ratio = width / view.width
    height_ratio = height / view.height
    if width_ratio > height_ratio:
        return (view.width, max(1, round(height / width_ratio)))
    return (max(1, round(width / height_ratio)), view.height)


class Grayscale(ImageFilter):
    """Quantize the image to a single gray channel.

    Modes:
        normal: Pillow's ITU-R 601-2 luma conversion
        average: plain mean of the RGB channels
        luminance: ITU-R 709 weighted luminance
    """

    LUMINANCE_WEIGHTS = (0.2126, 0.7152, 0.0722)

    def __init__(self, mode: GrayscaleMode = "normal"):
        self.mode = mode

    def __repr__(self) -> str:
        return f"Grayscale({self.mode!r})"

    def apply(self, image: Image.Image) -> Image.Image:
        if image.mode == "L":
            return image
        if self.mode == "normal":
            return image.convert("L")

        rgb = np.asarray(image.convert("RGB"), dtype=np.float32)
        if self.mode == "average":
            gray = rgb.mean(axis=2)
        else:
            gray = rgb @ np.array(self.LUMINANCE_WEIGHTS, dtype=np.float32)
        return Image.fromarray(np.clip(gray.round(), 0, 255).astype(np.uint8), mode="L")


class CropHalf(ImageFilter):
    """Keep only the left or right half of a spread."""

    def __init__(self, right: bool):
        self.right = right

    def __repr__(self) -> str:
        return f"CropHalf(right={self.right})"

    def apply(self, image: Image.Image) -> Image.Image:
        middle = image.width // 2
        if self.right:
            return image.crop((middle, 0, image.width, image.height))
        return image.crop((0, 0, middle, image.height))


class FilterChain:
    """An ordered list of image operations applied one after another."""

    def __init__(self, filters: list[ImageFilter] | None = None):
        self.filters: list[ImageFilter] = list(filters or [])

    def __repr__(self) -> str:
        return f"FilterChain({self.filters!r})"

    def __len__(self) -> int:
        return len(self.filters)

    def add(self, image_filter: ImageFilter) -> "FilterChain":
        self.filters.append(image_filter)
        return self

    def apply(self, image: Image.Image) -> Image.Image:
        for image_filter in self.filters:
            image = image_filter.apply(image)
        return image


def _add_finishing(chain: FilterChain, options: ImageOptions) -> FilterChain:
    """Append the stages shared by the full and the split pipelines."""
    if options.contrast != 0:
        chain.add(Contrast(options.contrast))
    if options.brightness != 0:
        chain.add(Brightness(options.brightness))
    if not options.no_resize:
        chain.add(Resize(options.page_view))
    if options.grayscale:
        chain.add(Grayscale(options.grayscale_mode))
    return chain


def build_filter_chain(options: ImageOptions) -> FilterChain:
    """Build the pipeline applied to an unsplit page."""
    chain = FilterChain()
    if options.crop:
        chain.add(AutoCrop(options.crop_ratio, options.crop_limit))
    if options.auto_rotate:
        chain.add(AutoRotate())
    if options.auto_contrast:
        chain.add(AutoContrast())
    return _add_finishing(chain, options)


def build_split_chains(options: ImageOptions) -> tuple[FilterChain, FilterChain]:
    """Build the pipelines for the two halves of a spread, in reading order.

    In manga mode the right half is read first.
    """
    chains = []
    for right in (options.manga, not options.manga):
        chain = FilterChain([CropHalf(right=right)])
        if options.auto_contrast:
            chain.add(AutoContrast())
        chains.append(_add_finishing(chain, options))
    first, second = chains
    return first, second


def is_landscape(image: Image.Image) -> bool:
    return image.width > image.height


def is_blank(image: Image.Image) -> bool:
    """Whether the image is a single flat tone."""
    low, high = image.convert("L").getextrema()
    return high - low <= BLANK_PAGE_SPREAD
