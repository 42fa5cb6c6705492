"""Source loader for comic folders, archives and PDFs.

Lists the images of the input in reading order and hands them over one at a
time as SourceImage records. Supported inputs:

- a directory tree of images
- a .zip / .cbz archive
- a .pdf document, rasterized page by page with PyMuPDF
"""

import logging
import zipfile
from pathlib import Path, PurePosixPath
from typing import Iterator

import fitz  # PyMuPDF
from natsort import natsort_keygen, ns

from comic_distiller.exceptions import SourceError
from schemas.options import SortPathMode
from schemas.page import SourceImage

logger = logging.getLogger(__name__)

IMAGE_EXTENSIONS = {".jpg", ".jpeg", ".png", ".webp", ".gif"}
ARCHIVE_EXTENSIONS = {".zip", ".cbz"}
PDF_EXTENSIONS = {".pdf"}

# Digit runs compare as numbers, letters compare case-insensitively
natural_key = natsort_keygen(alg=ns.IGNORECASE)


def sort_entries(
    entries: list[tuple[str, str]], mode: SortPathMode = "alphanumeric"
) -> list[tuple[str, str]]:
    """Sort (directory, filename) pairs by directory, then filename.

    Modes:
        alpha: directories and filenames compare as plain text
        alphanumeric: digit runs in directory segments compare as numbers,
                      filenames compare as plain text
        alphanumeric_files: digit runs compare as numbers everywhere
    """
    if mode == "alpha":
        return sorted(entries, key=lambda e: (PurePosixPath(e[0]).parts, e[1]))

    def file_key(name: str):
        if mode == "alphanumeric_files":
            return (natural_key(name), name)
        return (name.lower(), name)

    return sorted(
        entries,
        key=lambda e: ([natural_key(p) for p in PurePosixPath(e[0]).parts], file_key(e[1])),
    )


def _is_visible(relative: PurePosixPath) -> bool:
    return not any(part.startswith(".") or part == "__MACOSX" for part in relative.parts)


def _is_image(relative: PurePosixPath) -> bool:
    return relative.suffix.lower() in IMAGE_EXTENSIONS and _is_visible(relative)


def _split(relative: PurePosixPath) -> tuple[str, str]:
    parent = str(relative.parent)
    return ("" if parent == "." else parent, relative.name)


class SourceLoader:
    """Load the images of a comic in reading order.

    Example:
        loader = SourceLoader(Path("./My Comic.cbz"))
        for source in loader:
            print(source.id, source.path, source.name)

    Attributes:
        input_path: Folder, archive or PDF to read
        sort_path_mode: Ordering of the image paths
        dpi: Rasterization resolution for PDF pages
    """

    def __init__(
        self,
        input_path: Path,
        sort_path_mode: SortPathMode = "alphanumeric",
        dpi: int = 150,
    ) -> None:
        """Initialize the source loader.

        Args:
            input_path: Folder, archive or PDF to read
            sort_path_mode: Ordering of the image paths
            dpi: Rasterization resolution for PDF pages (default: 150)

        Raises:
            SourceError: If the input does not exist or has an unsupported type
        """
        self.input_path = input_path
        self.sort_path_mode = sort_path_mode
        self.dpi = dpi

        if not input_path.exists():
            raise SourceError(f"Input not found: {input_path}")
        if input_path.is_dir():
            self.kind = "directory"
        elif input_path.suffix.lower() in ARCHIVE_EXTENSIONS:
            self.kind = "archive"
        elif input_path.suffix.lower() in PDF_EXTENSIONS:
            self.kind = "pdf"
        else:
            raise SourceError(f"Unsupported input type: {input_path}")

        self._entries: list[tuple[str, str]] | None = None

    def entries(self) -> list[tuple[str, str]]:
        """List (directory, filename) pairs of the images in reading order.

        Raises:
            SourceError: If the input holds no image
        """
        if self._entries is None:
            if self.kind == "directory":
                entries = self._list_directory()
            elif self.kind == "archive":
                entries = self._list_archive()
            else:
                entries = self._list_pdf()

            if not entries:
                raise SourceError(f"No images found in {self.input_path}")
            self._entries = entries
            logger.info(f"Found {len(entries)} images in {self.input_path}")
        return self._entries

    def __len__(self) -> int:
        return len(self.entries())

    def __iter__(self) -> Iterator[SourceImage]:
        if self.kind == "directory":
            yield from self._iter_directory()
        elif self.kind == "archive":
            yield from self._iter_archive()
        else:
            yield from self._iter_pdf()

    def placeholders(self) -> Iterator[SourceImage]:
        """Yield the source records in reading order without reading any bytes."""
        for n, (directory, name) in enumerate(self.entries()):
            yield SourceImage(id=n, path=directory, name=name, data=b"")

    def _list_directory(self) -> list[tuple[str, str]]:
        entries = []
        for path in self.input_path.rglob("*"):
            relative = PurePosixPath(path.relative_to(self.input_path).as_posix())
            if path.is_file() and _is_image(relative):
                entries.append(_split(relative))
        return sort_entries(entries, self.sort_path_mode)

    def _iter_directory(self) -> Iterator[SourceImage]:
        for n, (directory, name) in enumerate(self.entries()):
            data = (self.input_path / directory / name).read_bytes()
            yield SourceImage(id=n, path=directory, name=name, data=data)

    def _open_archive(self) -> zipfile.ZipFile:
        try:
            return zipfile.ZipFile(self.input_path)
        except zipfile.BadZipFile as e:
            raise SourceError(f"Cannot read archive {self.input_path}: {e}") from e

    def _list_archive(self) -> list[tuple[str, str]]:
        with self._open_archive() as archive:
            entries = [
                _split(PurePosixPath(info.filename))
                for info in archive.infolist()
                if not info.is_dir() and _is_image(PurePosixPath(info.filename))
            ]
        return sort_entries(entries, self.sort_path_mode)

    def _iter_archive(self) -> Iterator[SourceImage]:
        entries = self.entries()
        with self._open_archive() as archive:
            for n, (directory, name) in enumerate(entries):
                member = f"{directory}/{name}" if directory else name
                yield SourceImage(id=n, path=directory, name=name, data=archive.read(member))

    def _list_pdf(self) -> list[tuple[str, str]]:
        try:
            doc = fitz.open(str(self.input_path))
        except RuntimeError as e:
            raise SourceError(f"Cannot read PDF {self.input_path}: {e}") from e
        try:
            width = len(str(len(doc)))
            return [("", f"{n + 1:0{width}d}.png") for n in range(len(doc))]
        finally:
            doc.close()

    def _iter_pdf(self) -> Iterator[SourceImage]:
        entries = self.entries()
        scale = self.dpi / 72
        matrix = fitz.Matrix(scale, scale)
        doc = fitz.open(str(self.input_path))
        try:
            for n, (directory, name) in enumerate(entries):
                pix = doc[n].get_pixmap(matrix=matrix)
                yield SourceImage(id=n, path=directory, name=name, data=pix.tobytes("png"))
        finally:
            doc.close()
