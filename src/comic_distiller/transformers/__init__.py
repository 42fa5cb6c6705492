"""Transformers for converting source images into processed pages."""

from .image_filters import FilterChain, build_filter_chain, build_split_chains
from .page_transformer import MetadataTransformer, PageTransformer
from .transformer import ImageTransformer

__all__ = [
    "ImageTransformer",
    "PageTransformer",
    "MetadataTransformer",
    "FilterChain",
    "build_filter_chain",
    "build_split_chains",
]
