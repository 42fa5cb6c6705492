"""Schema definitions for Comic Distiller."""

from .options import (
    PROFILES,
    ConverterOptions,
    CropRatios,
    ImageOptions,
    Profile,
    ViewPort,
)
from .page import Page, PageKey, SourceImage
from .volume import Volume

__all__ = [
    "ConverterOptions",
    "CropRatios",
    "ImageOptions",
    "Page",
    "PageKey",
    "Profile",
    "PROFILES",
    "SourceImage",
    "ViewPort",
    "Volume",
]
