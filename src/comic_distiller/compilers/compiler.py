"""Base class for container compilers."""

from abc import ABC, abstractmethod
from pathlib import Path

from comic_distiller.aggregators.page_store import PageStore
from schemas.volume import Volume


class Compiler(ABC):
    """Abstract base class for container compilers.

    Compilers assemble the final output files from partitioned volumes and
    the processed page images.
    """

    @abstractmethod
    def compile(self, volumes: list[Volume], store: PageStore) -> list[Path]:
        """Write one output file per volume.

        Args:
            volumes: Partitioned volumes in order
            store: Page Store holding the processed images

        Returns:
            Paths of the written files
        """
        pass
