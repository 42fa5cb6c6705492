"""Page domain objects."""

from dataclasses import dataclass, field
from pathlib import PurePosixPath

PageKey = tuple[int, int]


@dataclass(frozen=True)
class SourceImage:
    """A raw image handed over by the source loader.

    Attributes:
        id: Sequence number in source order
        path: Relative directory of the image inside the source
        name: File name of the image
        data: Encoded image bytes
    """

    id: int
    path: str
    name: str
    data: bytes = field(repr=False)


@dataclass(frozen=True)
class Page:
    """A processed page, ready to be packaged.

    Pages with the same ``id`` and a different ``part`` are siblings cut from
    one source image. Part 0 is an unsplit image, parts 1 and 2 are the two
    halves of a split spread in reading order.

    Attributes:
        id: Sequence number of the source image
        part: 0 for an unsplit image, 1/2 for the halves of a spread
        path: Relative directory of the source image
        name: File name of the source image
        size: Size in bytes of the processed image
        width: Width in pixels of the processed image
        height: Height in pixels of the processed image
        double_page: The page comes from (or is) a double-page spread
        is_cover: The page is the designated cover
        is_blank: The processed image has no visible content
    """

    id: int
    part: int
    path: str
    name: str
    size: int = 0
    width: int = 0
    height: int = 0
    double_page: bool = False
    is_cover: bool = False
    is_blank: bool = False

    @property
    def key(self) -> PageKey:
        return (self.id, self.part)

    @property
    def source_path(self) -> str:
        return str(PurePosixPath(self.path, self.name)) if self.path else self.name

    @property
    def slug(self) -> str:
        return f"img_{self.id}_p{self.part}"

    @property
    def page_path(self) -> str:
        """Location of the page markup inside OEBPS."""
        return f"Text/{self.slug}.xhtml"

    @property
    def image_path(self) -> str:
        """Location of the page image inside OEBPS."""
        return f"Images/{self.slug}.jpg"

    @property
    def space_path(self) -> str:
        """Location of the blank spacer page that may follow this page."""
        return f"Text/space_{self.id}_p{self.part}.xhtml"
