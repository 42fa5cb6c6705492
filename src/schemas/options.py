"""Conversion options schemas.

Options are read-only for the duration of a run. They are built once (from
CLI flags layered over the persisted YAML defaults) and passed explicitly
into every component constructor.

Layout:
    ConverterOptions
    ├── input / output / title / author / workers / dry ...
    ├── limit_mb / strip_first_directory_from_toc / sort_path_mode
    └── image: ImageOptions
        ├── view: ViewPort        (resolved from the device profile)
        ├── crop_ratio: CropRatios
        └── contrast / brightness / auto_rotate / manga / ...
"""

import os
import re
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, field_validator, model_validator


class ViewPort(BaseModel):
    """Target page size in device pixels.

    Attributes:
        width: Page width in pixels
        height: Page height in pixels
    """

    width: int = Field(gt=0)
    height: int = Field(gt=0)

    model_config = {"frozen": True}

    def __str__(self) -> str:
        return f"width={self.width},height={self.height}"


class Profile(BaseModel):
    """A reading device profile."""

    code: str
    description: str
    view: ViewPort

    model_config = {"frozen": True}


PROFILES: dict[str, Profile] = {
    p.code: p
    for p in (
        Profile(code="K1", description="Kindle 1", view=ViewPort(width=600, height=670)),
        Profile(code="K11", description="Kindle 11", view=ViewPort(width=1072, height=1448)),
        Profile(code="KPW5", description="Kindle Paperwhite 5", view=ViewPort(width=1236, height=1648)),
        Profile(code="KO", description="Kindle Oasis", view=ViewPort(width=1264, height=1680)),
        Profile(code="KS", description="Kindle Scribe", view=ViewPort(width=1860, height=2480)),
        Profile(code="KoC", description="Kobo Clara HD", view=ViewPort(width=1072, height=1448)),
        Profile(code="KoL", description="Kobo Libra H2O", view=ViewPort(width=1264, height=1680)),
        Profile(code="KoE", description="Kobo Elipsa", view=ViewPort(width=1404, height=1872)),
        Profile(code="SR", description="Standard Resolution", view=ViewPort(width=1200, height=1920)),
        Profile(code="HR", description="High Resolution", view=ViewPort(width=2400, height=3840)),
    )
}

GrayscaleMode = Literal["normal", "average", "luminance"]
TitlePageMode = Literal["always", "never", "when_split"]
SortPathMode = Literal["alpha", "alphanumeric", "alphanumeric_files"]

HEX_COLOR = re.compile(r"[0-9A-Fa-f]{3}|[0-9A-Fa-f]{6}")


class CropRatios(BaseModel):
    """Per-edge crop tolerance.

    Each value is the percentage of non-blank pixels a border line may
    contain and still be considered margin.
    """

    left: int = Field(default=1, ge=0, le=100)
    up: int = Field(default=1, ge=0, le=100)
    right: int = Field(default=1, ge=0, le=100)
    bottom: int = Field(default=3, ge=0, le=100)

    model_config = {"frozen": True, "extra": "forbid"}


class ImageOptions(BaseModel):
    """Options for the per-page filter pipeline.

    Attributes:
        view: Target viewport for every page
        quality: JPEG quality of stored pages
        grayscale: Convert pages to grayscale
        grayscale_mode: Tone conversion used when grayscale is enabled
        crop: Enable auto-crop of uniform margins
        crop_ratio: Per-edge margin tolerance
        crop_limit: Max percent of an edge removable by auto-crop (0 = no limit)
        brightness: Brightness delta in [-100, 100]
        contrast: Contrast delta in [-100, 100]
        auto_rotate: Rotate landscape pages to portrait
        auto_split_double_page: Split landscape pages into two halves
        keep_double_page_if_split: Also keep the unsplit spread when splitting
        no_blank_image: Drop pages detected as blank
        manga: Right-to-left reading direction
        has_cover: The first page is the cover
        auto_contrast: Stretch the tones of each page to the full range
        no_resize: Keep the processed size instead of fitting the viewport
        aspect_ratio: Page height/width ratio (0 or -1 = device viewport)
        portrait_only: Display every page alone, never as part of a spread
        foreground_color: Hex color of text and ink (3 or 6 digits)
        background_color: Hex color of the page background (3 or 6 digits)
    """

    view: ViewPort = Field(default_factory=lambda: PROFILES["SR"].view)
    quality: int = Field(default=85, ge=1, le=100)
    grayscale: bool = True
    grayscale_mode: GrayscaleMode = "normal"
    crop: bool = True
    crop_ratio: CropRatios = Field(default_factory=CropRatios)
    crop_limit: int = Field(default=0, ge=0, le=100)
    brightness: int = 0
    contrast: int = 0
    auto_rotate: bool = False
    auto_split_double_page: bool = False
    keep_double_page_if_split: bool = True
    no_blank_image: bool = True
    manga: bool = False
    has_cover: bool = True
    auto_contrast: bool = False
    no_resize: bool = False
    aspect_ratio: float = 0
    portrait_only: bool = False
    foreground_color: str = "000"
    background_color: str = "FFF"

    model_config = {"frozen": True, "extra": "forbid"}

    @field_validator("brightness", "contrast")
    @classmethod
    def _check_delta(cls, value: int, info) -> int:
        if value < -100 or value > 100:
            raise ValueError(f"{info.field_name} should be between -100 and 100")
        return value

    @field_validator("aspect_ratio")
    @classmethod
    def _check_aspect_ratio(cls, value: float) -> float:
        if value != -1 and value < 0:
            raise ValueError("aspect_ratio should be -1, 0 or positive")
        return value

    @field_validator("foreground_color", "background_color")
    @classmethod
    def _check_color(cls, value: str, info) -> str:
        if not HEX_COLOR.fullmatch(value):
            raise ValueError(f"{info.field_name} should be 3 or 6 hex digits, got {value!r}")
        return value.upper()

    @property
    def page_view(self) -> ViewPort:
        """Viewport of every page, the device one unless a ratio is forced."""
        if self.aspect_ratio > 0:
            return ViewPort(
                width=self.view.width,
                height=max(1, round(self.view.width * self.aspect_ratio)),
            )
        return self.view


class ConverterOptions(BaseModel):
    """Options for a whole conversion run.

    Attributes:
        input: Source folder, archive or PDF
        output: Target .epub path (default: next to the input)
        title: Book title (default: input name)
        author: Book author
        profile: Device profile code
        workers: Size of the page processing pool
        limit_mb: Volume size ceiling in MiB (0 = unlimited, else >= 20)
        strip_first_directory_from_toc: Hide a single top-level folder in the TOC
        sort_path_mode: Ordering of source paths
        title_page: When to write the generated title page
        dry: Only print the TOC, write nothing
        dry_verbose: Also print cover and file listing in dry mode
        quiet: Disable progress bars
        image: Filter pipeline options
    """

    input: Path
    output: Path | None = None
    title: str | None = None
    author: str = "Comic Distiller"
    profile: str = "SR"
    workers: int = Field(default_factory=lambda: os.cpu_count() or 1, ge=1)
    limit_mb: int = 0
    strip_first_directory_from_toc: bool = False
    sort_path_mode: SortPathMode = "alphanumeric"
    title_page: TitlePageMode = "always"
    dry: bool = False
    dry_verbose: bool = False
    quiet: bool = False
    image: ImageOptions = Field(default_factory=ImageOptions)

    model_config = {"frozen": True, "extra": "forbid"}

    @field_validator("limit_mb")
    @classmethod
    def _check_limit(cls, value: int) -> int:
        if value != 0 and value < 20:
            raise ValueError("limit_mb should be 0 or >= 20")
        return value

    @field_validator("profile")
    @classmethod
    def _check_profile(cls, value: str) -> str:
        if value not in PROFILES:
            raise ValueError(f"profile {value!r} doesn't exist")
        return value

    @model_validator(mode="before")
    @classmethod
    def _fill_defaults(cls, data):
        """Derive output, title and viewport from input and profile."""
        if not isinstance(data, dict) or data.get("input") is None:
            return data
        data = dict(data)
        source = Path(data["input"])
        default_output = (
            Path(f"{source}.epub") if source.is_dir() else source.with_suffix(".epub")
        )
        output = data.get("output")
        if output is None:
            data["output"] = default_output
        elif Path(output).suffix != ".epub":
            data["output"] = Path(output) / default_output.name
        if not data.get("title"):
            data["title"] = default_output.stem

        profile = PROFILES.get(data.get("profile", "SR"))
        if profile is not None:
            image = data.get("image") or {}
            if isinstance(image, dict) and "view" not in image:
                data["image"] = {**image, "view": profile.view}
        return data

    @property
    def limit_bytes(self) -> int:
        return self.limit_mb * 1024 * 1024
