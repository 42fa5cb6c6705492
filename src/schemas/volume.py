"""Volume domain object."""

from dataclasses import dataclass, field

from .page import Page


@dataclass
class Volume:
    """A contiguous run of pages written to one output container.

    Attributes:
        cover: Cover page shared by every volume
        pages: Pages of this volume in reading order
    """

    cover: Page | None
    pages: list[Page] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.pages)

    @property
    def last_page(self) -> Page:
        return self.pages[-1]
