"""Volume Partitioner.

Groups the ordered page catalogue into volumes whose estimated container size
stays under a byte ceiling. The packing is a single greedy left-to-right pass:
no backtracking, no lookahead, no reordering.
"""

import logging
from typing import Callable

from comic_distiller.exceptions import EmptyPartitionError
from schemas.page import Page, PageKey
from schemas.volume import Volume

logger = logging.getLogger(__name__)

# Estimated size of the markup written for each page
PAGE_OVERHEAD = 1024

# Estimated size of the descriptor files of one container
BASE_OVERHEAD = 16 * 1024


class VolumePartitioner:
    """Split pages into size-bounded volumes.

    Every volume starts with the base overhead plus the cover image (used for
    the title page). When the book has a cover, the cover page itself is
    written in every volume and counted once more; without a cover, volumes
    after the first re-use the first page as their cover and count it then.

    A page larger than the ceiling on its own still gets a volume of its own,
    so the pass always terminates.

    Attributes:
        limit: Byte ceiling per volume (0 = unlimited)
        has_cover: The cover is not part of the page sequence
        page_overhead: Bytes added to every page
        base_overhead: Bytes added to every volume
    """

    def __init__(
        self,
        limit: int = 0,
        has_cover: bool = True,
        page_overhead: int = PAGE_OVERHEAD,
        base_overhead: int = BASE_OVERHEAD,
    ):
        self.limit = limit
        self.has_cover = has_cover
        self.page_overhead = page_overhead
        self.base_overhead = base_overhead

    def partition(
        self,
        pages: list[Page],
        cover: Page | None,
        size_of: Callable[[PageKey], int],
    ) -> list[Volume]:
        """Pack pages into volumes.

        Args:
            pages: Page sequence in canonical order
            cover: Cover page shared by every volume
            size_of: Byte size lookup by page key

        Returns:
            Volumes whose concatenated pages equal ``pages``

        Raises:
            EmptyPartitionError: If ``pages`` is empty
            SizingError: If a page size cannot be determined
        """
        if not pages:
            raise EmptyPartitionError()

        cover_size = size_of(cover.key) if cover is not None else 0
        base_size = self.base_overhead + cover_size
        if self.has_cover:
            base_size += cover_size

        volumes: list[Volume] = []
        current = Volume(cover=cover)
        current_size = base_size

        for page in pages:
            cost = size_of(page.key) + self.page_overhead
            if self.limit > 0 and current.pages and current_size + cost > self.limit:
                volumes.append(current)
                logger.debug(
                    f"Closed volume {len(volumes)} with {len(current)} pages "
                    f"({current_size} bytes)"
                )
                current = Volume(cover=cover)
                current_size = base_size
                if not self.has_cover:
                    current_size += cover_size
            current.pages.append(page)
            current_size += cost

        if current.pages:
            volumes.append(current)

        logger.info(f"Partitioned {len(pages)} pages into {len(volumes)} volume(s)")
        return volumes
