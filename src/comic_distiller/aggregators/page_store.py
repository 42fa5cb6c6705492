"""Page Store for processed page images.

Processed pages are written to a private temporary directory, one file per
(id, part) key, and indexed in memory. Workers insert concurrently; once the
processing stage is over the store is only read.
"""

import logging
import shutil
import tempfile
import threading
from pathlib import Path

from comic_distiller.exceptions import SizingError
from schemas.page import Page, PageKey

logger = logging.getLogger(__name__)


class PageStore:
    """Byte-addressable storage for processed pages.

    Example:
        with PageStore() as store:
            store.persist(page, data)
            size = store.size(page.key)
            data = store.get(page.key)
        # temporary files are gone here

    Attributes:
        directory: Temporary directory holding the page images
    """

    def __init__(self, parent: Path | None = None):
        """Initialize the page store.

        Args:
            parent: Directory in which to create the temporary storage
                    (default: the system temporary directory)
        """
        self.directory = Path(tempfile.mkdtemp(prefix="comic-distiller-", dir=parent))
        self._pages: dict[PageKey, Page] = {}
        self._lock = threading.Lock()
        logger.debug(f"Created page store at {self.directory}")

    def __enter__(self) -> "PageStore":
        """Enter context manager."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Exit context manager, removing the temporary storage."""
        self.close()

    def __len__(self) -> int:
        return len(self._pages)

    def __contains__(self, key: PageKey) -> bool:
        return key in self._pages

    def _file(self, key: PageKey) -> Path:
        return self.directory / f"{key[0]:06d}_{key[1]}.jpg"

    def persist(self, page: Page, data: bytes) -> None:
        """Store the encoded image of a page.

        Args:
            page: Page record, its key must not be stored yet
            data: Encoded image bytes

        Raises:
            ValueError: If a page with the same key was already stored
        """
        if page.key in self._pages:
            raise ValueError(f"Page {page.key} is already stored")
        self._file(page.key).write_bytes(data)
        with self._lock:
            self._pages[page.key] = page

    def update(self, page: Page) -> None:
        """Replace the record of an already stored page, keeping its bytes."""
        with self._lock:
            if page.key not in self._pages:
                raise KeyError(page.key)
            self._pages[page.key] = page

    def page(self, key: PageKey) -> Page:
        return self._pages[key]

    def pages(self) -> list[Page]:
        """All stored pages in canonical (id, part) order."""
        return [self._pages[key] for key in sorted(self._pages)]

    def size(self, key: PageKey) -> int:
        """Size in bytes of a stored page image.

        Raises:
            SizingError: If the page is unknown or its file is unreadable
        """
        if key not in self._pages:
            raise SizingError(f"Page {key} is not in the store", key=key)
        try:
            return self._file(key).stat().st_size
        except OSError as e:
            raise SizingError(f"Cannot determine size of page {key}: {e}", key=key) from e

    def get(self, key: PageKey) -> bytes:
        """Encoded image bytes of a stored page."""
        if key not in self._pages:
            raise KeyError(key)
        return self._file(key).read_bytes()

    @property
    def total_size(self) -> int:
        return sum(self.size(key) for key in self._pages)

    def close(self) -> None:
        """Remove the temporary storage."""
        if self.directory.exists():
            shutil.rmtree(self.directory, ignore_errors=True)
            logger.debug(f"Removed page store at {self.directory}")
