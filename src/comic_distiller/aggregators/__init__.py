"""Aggregators for collecting source images and processed pages."""

from .page_store import PageStore
from .source_loader import SourceLoader

__all__ = ["PageStore", "SourceLoader"]
