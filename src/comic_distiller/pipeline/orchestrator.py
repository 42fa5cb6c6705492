"""Pipeline orchestrator for end-to-end comic → EPUB conversion.

Wires the stages together and runs one input through them:

    SourceLoader → PageTransformer (worker pool) → PageStore
        → VolumePartitioner → EPUBCompiler

Page processing is the only parallel stage. Partitioning and compiling start
once every page is stored and run on the main thread.
"""

import dataclasses
import logging
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from itertools import islice
from pathlib import Path
from typing import Iterable

from tqdm import tqdm

from comic_distiller.aggregators.page_store import PageStore
from comic_distiller.aggregators.source_loader import SourceLoader
from comic_distiller.compilers.epub_compiler import EPUBCompiler
from comic_distiller.compilers.volume_partitioner import VolumePartitioner
from comic_distiller.exceptions import ConversionError, PageProcessingError
from comic_distiller.transformers.page_transformer import MetadataTransformer, PageTransformer
from comic_distiller.transformers.transformer import ImageTransformer
from schemas.options import ConverterOptions
from schemas.page import Page, SourceImage
from schemas.volume import Volume

logger = logging.getLogger(__name__)


class Orchestrator:
    """End-to-end conversion orchestrator.

    Example:
        options = ConverterOptions(input=Path("My Comic.cbz"), limit_mb=200)
        paths = Orchestrator(options).run()

    Attributes:
        options: Options of the run
        loader: Source loader for the input
        compiler: EPUB compiler writing the volumes
    """

    def __init__(self, options: ConverterOptions, work_dir: Path | None = None):
        """Initialize the orchestrator.

        Args:
            options: Options of the run
            work_dir: Parent directory of the temporary page storage
                      (default: the system temporary directory)

        Raises:
            SourceError: If the input does not exist or is not supported
        """
        self.options = options
        self.work_dir = work_dir
        self.loader = SourceLoader(options.input, sort_path_mode=options.sort_path_mode)
        self.compiler = EPUBCompiler(options)

    def run(self) -> list[Path]:
        """Convert the input into one or more EPUB files.

        Returns:
            Paths of the written EPUB files

        Raises:
            ConversionError: On the first fatal error of any stage; the
                             temporary page storage is removed either way
        """
        logger.info(f"Converting {self.options.input} to {self.options.output}")
        with PageStore(self.work_dir) as store:
            self.process(PageTransformer(self.options.image), store)
            volumes = self.volumes(store)

            self.options.output.parent.mkdir(parents=True, exist_ok=True)
            return self.compiler.compile(volumes, store)

    def dry_run(self) -> str:
        """Build the table of contents report without writing anything.

        Pixels are not decoded and sizes are treated as unknown, so the whole
        book lands in a single volume.

        Returns:
            The TOC report, with the cover and file listing when
            ``dry_verbose`` is set
        """
        logger.info(f"Dry run for {self.options.input}")
        with PageStore(self.work_dir) as store:
            self.process(MetadataTransformer(), store, sources=self.loader.placeholders())
            pages, cover = self.catalogue(store)
            volumes = VolumePartitioner(has_cover=self.options.image.has_cover).partition(
                pages, cover, lambda key: 0
            )
        return self.compiler.describe(volumes[0])

    def process(
        self,
        transformer: ImageTransformer,
        store: PageStore,
        sources: Iterable[SourceImage] | None = None,
    ) -> None:
        """Transform every source image in the worker pool and store the pages.

        At most ``2 * workers`` sources are read ahead of the workers. The
        first failure stops reading sources and cancels the tasks that have
        not started yet. Tasks already running are left to finish and the
        error is raised.

        Args:
            transformer: Transformer applied to each source image
            store: Page Store receiving the pages
            sources: Source images to process (default: the loader's images)

        Raises:
            PageProcessingError: If any page fails
        """
        total = len(self.loader)
        window = 2 * self.options.workers
        logger.info(f"Processing {total} images with {self.options.workers} worker(s)")

        def work(source: SourceImage) -> int:
            results = transformer.transform(source)
            for page, data in results:
                store.persist(page, data)
            return len(results)

        pending = iter(self.loader if sources is None else sources)
        with ThreadPoolExecutor(max_workers=self.options.workers) as executor, tqdm(
            total=total, desc="Processing pages", unit="page", disable=self.options.quiet
        ) as progress:
            futures: dict[Future, int] = {}

            def refill() -> None:
                for source in islice(pending, window - len(futures)):
                    futures[executor.submit(work, source)] = source.id

            refill()
            while futures:
                done, _ = wait(futures, return_when=FIRST_COMPLETED)
                for future in done:
                    page_id = futures.pop(future)
                    try:
                        future.result()
                    except Exception as e:
                        for queued in futures:
                            queued.cancel()
                        if isinstance(e, ConversionError):
                            raise
                        raise PageProcessingError(
                            f"Failed to process page {page_id}: {e}", page_id=page_id
                        ) from e
                    progress.update(1)
                refill()

        logger.info(f"Stored {len(store)} pages ({store.total_size} bytes)")

    def catalogue(self, store: PageStore) -> tuple[list[Page], Page | None]:
        """Order the stored pages and pick the cover.

        The cover is the first page in canonical order. It is flagged in the
        store and, when the book has a cover, removed from the page sequence.
        Blank pages are dropped when ``no_blank_image`` is set, except for the
        cover.

        Returns:
            (page sequence, cover)
        """
        pages = store.pages()
        if not pages:
            return [], None

        cover = dataclasses.replace(pages[0], is_cover=True)
        store.update(cover)
        pages[0] = cover

        if self.options.image.no_blank_image:
            kept = [pages[0]] + [p for p in pages[1:] if not p.is_blank]
            dropped = len(pages) - len(kept)
            if dropped:
                logger.info(f"Dropped {dropped} blank page(s)")
            pages = kept

        if self.options.image.has_cover:
            pages = pages[1:]

        return pages, cover

    def volumes(self, store: PageStore) -> list[Volume]:
        """Partition the stored pages using the configured ceiling."""
        pages, cover = self.catalogue(store)
        partitioner = VolumePartitioner(
            limit=self.options.limit_bytes,
            has_cover=self.options.image.has_cover,
        )
        return partitioner.partition(pages, cover, store.size)
