"""Sequential writer for EPUB containers.

Entries are appended in the order they are submitted. The archive is built
under a temporary ``.part`` name and only renamed to its final path when it
is closed successfully, so a failed volume never leaves a usable file behind.
"""

import logging
import zipfile
from pathlib import Path

from comic_distiller.exceptions import ContainerWriteError

logger = logging.getLogger(__name__)

MIMETYPE = b"application/epub+zip"


class EPUBWriter:
    """Append-only writer for one EPUB file.

    Example:
        with EPUBWriter(Path("book.epub")) as writer:
            writer.write_content("OEBPS/content.opf", opf_bytes)
            writer.write_raw("OEBPS/Images/p1.jpg", jpeg_bytes)
        # book.epub exists only if the block succeeded

    Attributes:
        path: Final location of the EPUB file
        partial_path: Location while the archive is being written
    """

    def __init__(self, path: Path):
        """Open the archive and write the mimetype entry.

        Raises:
            ContainerWriteError: If the archive cannot be created
        """
        self.path = path
        self.partial_path = path.with_name(f"{path.name}.part")
        self._names: set[str] = set()
        try:
            self._zip = zipfile.ZipFile(self.partial_path, "w")
            self._zip.writestr(
                zipfile.ZipInfo("mimetype"), MIMETYPE, compress_type=zipfile.ZIP_STORED
            )
        except OSError as e:
            raise ContainerWriteError(f"Cannot create {path}: {e}", path=path) from e

    def __enter__(self) -> "EPUBWriter":
        """Enter context manager."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Exit context manager, keeping the file only on success."""
        if exc_type is None:
            self.close()
        else:
            self.discard()

    @property
    def names(self) -> set[str]:
        return set(self._names)

    def _write(self, name: str, data: bytes, compress_type: int) -> None:
        if name in self._names:
            raise ValueError(f"Duplicate entry {name} in {self.path}")
        try:
            self._zip.writestr(name, data, compress_type=compress_type)
        except OSError as e:
            raise ContainerWriteError(f"Cannot write {name} to {self.path}: {e}", path=self.path) from e
        self._names.add(name)

    def write_content(self, name: str, content: str | bytes) -> None:
        """Write a text entry, compressed."""
        if isinstance(content, str):
            content = content.encode("utf-8")
        self._write(name, content, zipfile.ZIP_DEFLATED)

    def write_raw(self, name: str, data: bytes) -> None:
        """Write an already compressed entry (e.g. a JPEG) as is."""
        self._write(name, data, zipfile.ZIP_STORED)

    def close(self) -> None:
        """Finish the archive and move it to its final path.

        Raises:
            ContainerWriteError: If the archive cannot be finalized
        """
        try:
            self._zip.close()
            self.partial_path.replace(self.path)
        except OSError as e:
            self.partial_path.unlink(missing_ok=True)
            raise ContainerWriteError(f"Cannot finalize {self.path}: {e}", path=self.path) from e
        logger.debug(f"Wrote {len(self._names) + 1} entries to {self.path}")

    def discard(self) -> None:
        """Abandon the archive and remove the partial file."""
        try:
            self._zip.close()
        except OSError as e:
            logger.warning(f"Error closing partial container {self.partial_path}: {e}")
        finally:
            self.partial_path.unlink(missing_ok=True)
        logger.debug(f"Discarded partial container {self.partial_path}")
