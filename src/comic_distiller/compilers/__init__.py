"""Compilers for assembling final EPUB containers."""

from .compiler import Compiler
from .epub_compiler import EPUBCompiler
from .epub_writer import EPUBWriter
from .toc_tree import TocNode, TocTree
from .volume_partitioner import VolumePartitioner

__all__ = [
    "Compiler",
    "EPUBCompiler",
    "EPUBWriter",
    "TocNode",
    "TocTree",
    "VolumePartitioner",
]
