"""EPUB Compiler for assembling fixed-layout comic e-books.

Writes one EPUB 3 container per volume. Descriptor documents (OPF package,
navigation, NCX, container) are built with lxml; page markup and the
stylesheet are rendered from Jinja2 templates.
"""

import io
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

from jinja2 import Environment, FileSystemLoader
from lxml import etree
from PIL import Image, ImageDraw, ImageFont
from tqdm import tqdm

from comic_distiller.aggregators.page_store import PageStore
from schemas.options import ConverterOptions
from schemas.page import Page
from schemas.volume import Volume

from .compiler import Compiler
from .epub_writer import EPUBWriter
from .template_filters import FILTERS
from .toc_tree import TocNode, TocTree

logger = logging.getLogger(__name__)

TEMPLATES_DIR = Path(__file__).parent / "resources" / "templates"

OPF_NS = "http://www.idpf.org/2007/opf"
DC_NS = "http://purl.org/dc/elements/1.1/"
XHTML_NS = "http://www.w3.org/1999/xhtml"
EPUB_NS = "http://www.idpf.org/2007/ops"
NCX_NS = "http://www.daisy.org/z3986/2005/ncx/"
CONTAINER_NS = "urn:oasis:names:tc:opendocument:xmlns:container"

TITLE_IMAGE = "Images/title.jpg"
TITLE_PAGE = "Text/title.xhtml"
TITLE_SPACE = "Text/space_title.xhtml"

MEDIA_TYPES = {
    ".xhtml": "application/xhtml+xml",
    ".jpg": "image/jpeg",
    ".css": "text/css",
    ".ncx": "application/x-dtbncx+xml",
}


@dataclass
class Document:
    """A markup document of a volume, in spine order.

    Attributes:
        href: Path of the document inside OEBPS
        title: Document title
        image_href: Path of the displayed image inside OEBPS (None for blanks)
        image_size: Size of the displayed image in pixels
        page: Page whose stored image is displayed
        align: CSS pinning the image horizontally
    """

    href: str
    title: str
    image_href: str | None = None
    image_size: tuple[int, int] = (0, 0)
    page: Page | None = None
    align: str = ""


def volume_path(output: Path, index: int, total: int) -> Path:
    """Output path of a volume.

    A `` Part i of N`` suffix, zero padded to the width of N, is added when
    there is more than one volume.

    Examples:
        >>> volume_path(Path("out/Book.epub"), 3, 12)
        PosixPath('out/Book Part 03 of 12.epub')
    """
    if total <= 1:
        return output
    width = len(str(total))
    return output.with_name(f"{output.stem} Part {index:0{width}d} of {total:0{width}d}{output.suffix}")


def needs_spacer(page: Page, volume: Volume, total: int) -> bool:
    """Whether a blank page follows ``page``.

    A spacer follows every double page, and the last page of a book written
    as a single volume when that page is not a split half.
    """
    if page.double_page:
        return True
    return total == 1 and page.part == 0 and page is volume.last_page


def render_title_image(
    cover: bytes,
    title: str,
    grayscale: bool,
    quality: int,
    foreground: str = "000",
    background: str = "FFF",
) -> bytes:
    """Draw the title in a banner over the cover image.

    Args:
        cover: Encoded cover image
        title: Text of the banner
        grayscale: Encode the result as grayscale
        quality: JPEG quality
        foreground: Hex color of the text and outline
        background: Hex color of the banner

    Returns:
        Encoded JPEG title image
    """
    image = Image.open(io.BytesIO(cover)).convert("RGB")
    draw = ImageDraw.Draw(image)
    font = ImageFont.load_default(size=max(12, image.width // 20))

    left, upper, right, lower = draw.textbbox((0, 0), title, font=font)
    text_width, text_height = right - left, lower - upper
    padding = max(4, text_height // 2)
    band_top = image.height // 8
    band_bottom = band_top + text_height + 2 * padding

    draw.rectangle(
        (0, band_top, image.width, band_bottom),
        fill=f"#{background}",
        outline=f"#{foreground}",
        width=max(1, image.height // 400),
    )
    draw.text(
        ((image.width - text_width) / 2 - left, band_top + padding - upper),
        title,
        fill=f"#{foreground}",
        font=font,
    )

    if grayscale:
        image = image.convert("L")
    buffer = io.BytesIO()
    image.save(buffer, format="JPEG", quality=quality)
    return buffer.getvalue()


class EPUBCompiler(Compiler):
    """Compile volumes into EPUB files.

    The EPUBCompiler, for each volume:
    1. Plans the documents in reading order: title page, cover, pages and
       blank spacers
    2. Writes the container and Apple Books descriptors
    3. Writes content.opf (metadata, manifest, spine), toc.xhtml and toc.ncx
       built from the volume's TOC tree
    4. Writes the stylesheet, the markup of every document and the images

    Attributes:
        options: Options of the run
        uid: Identifier shared by all volumes of the book
        updated_at: Modification timestamp written to every volume
    """

    def __init__(self, options: ConverterOptions, templates_dir: Path | None = None):
        """Initialize the EPUB compiler.

        Args:
            options: Options of the run
            templates_dir: Directory containing templates (default: resources/templates)
        """
        self.options = options
        self.uid = str(uuid.uuid4())
        self.updated_at = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
        self.templates_dir = templates_dir or TEMPLATES_DIR

        self._env = Environment(
            loader=FileSystemLoader(str(self.templates_dir)),
            autoescape=True,
        )
        for name, func in FILTERS.items():
            self._env.filters[name] = func

    @property
    def view(self):
        return self.options.image.page_view

    def compile(self, volumes: list[Volume], store: PageStore) -> list[Path]:
        """Write every volume to its own EPUB file.

        Args:
            volumes: Partitioned volumes in order
            store: Page Store holding the processed images

        Returns:
            Paths of the written EPUB files

        Raises:
            ContainerWriteError: If a volume cannot be written; volumes
                                 written before stay on disk
        """
        total = len(volumes)
        written: list[Path] = []
        logger.info(f"Writing {total} volume(s) for {self.options.title}")

        for index, volume in enumerate(
            tqdm(volumes, desc="Writing volumes", unit="volume", disable=self.options.quiet),
            start=1,
        ):
            path = volume_path(self.options.output, index, total)
            self._write_volume(path, volume, index, total, store)
            written.append(path)
            logger.info(f"Wrote {path}")

        return written

    def volume_title(self, index: int, total: int) -> str:
        if total > 1:
            return f"{self.options.title} [{index}/{total}]"
        return self.options.title

    def has_title_page(self, total: int) -> bool:
        mode = self.options.title_page
        return mode == "always" or (mode == "when_split" and total > 1)

    def plan(self, volume: Volume, index: int, total: int) -> list[Document]:
        """List the documents of a volume in reading order."""
        documents: list[Document] = []
        cover = volume.cover
        title = self.volume_title(index, total)

        if cover is not None and self.has_title_page(total):
            align = "right:0" if self.options.image.manga else "left:0"
            documents.append(
                Document(TITLE_PAGE, title, TITLE_IMAGE, (cover.width, cover.height), align=align)
            )
            documents.append(Document(TITLE_SPACE, "Blank Page Title"))

        if cover is not None and (self.options.image.has_cover or index > 1):
            documents.append(self._page_document(cover))

        for page in volume.pages:
            documents.append(self._page_document(page))
            if needs_spacer(page, volume, total):
                documents.append(Document(page.space_path, f"Blank Page {page.id}"))

        return documents

    def _page_document(self, page: Page) -> Document:
        return Document(
            page.page_path,
            f"Image {page.id} Part {page.part}",
            page.image_path,
            (page.width, page.height),
            page=page,
        )

    def _write_volume(
        self, path: Path, volume: Volume, index: int, total: int, store: PageStore
    ) -> None:
        title = self.volume_title(index, total)
        documents = self.plan(volume, index, total)

        with EPUBWriter(path) as writer:
            writer.write_content("META-INF/container.xml", self.build_container())
            writer.write_content(
                "META-INF/com.apple.ibooks.display-options.xml", self.build_display_options()
            )
            writer.write_content("OEBPS/content.opf", self.build_package(volume, documents, index, total))
            writer.write_content("OEBPS/toc.xhtml", self.build_nav(volume, documents, title))
            writer.write_content("OEBPS/toc.ncx", self.build_ncx(volume, documents, title))
            writer.write_content(
                "OEBPS/Text/style.css",
                self._env.get_template("style.css.j2").render(
                    view=self.view,
                    foreground=self.options.image.foreground_color,
                    background=self.options.image.background_color,
                ),
            )

            for document in documents:
                writer.write_content(f"OEBPS/{document.href}", self.render_document(document))
                if document.image_href == TITLE_IMAGE:
                    writer.write_raw(
                        f"OEBPS/{TITLE_IMAGE}",
                        render_title_image(
                            store.get(volume.cover.key),
                            title,
                            self.options.image.grayscale,
                            self.options.image.quality,
                            foreground=self.options.image.foreground_color,
                            background=self.options.image.background_color,
                        ),
                    )
                elif document.page is not None:
                    writer.write_raw(f"OEBPS/{document.image_href}", store.get(document.page.key))

    def render_document(self, document: Document) -> str:
        """Render the XHTML markup of a page or blank document."""
        if document.image_href is None:
            return self._env.get_template("blank.xhtml.j2").render(
                title=document.title, view=self.view
            )
        return self._env.get_template("page.xhtml.j2").render(
            title=document.title,
            view=self.view,
            image_path=document.image_href,
            image_size=document.image_size,
            align=document.align,
        )

    def _to_bytes(self, root: etree._Element) -> bytes:
        return etree.tostring(root, xml_declaration=True, encoding="UTF-8", pretty_print=True)

    def build_container(self) -> bytes:
        """Build META-INF/container.xml pointing at the package document."""
        root = etree.Element(f"{{{CONTAINER_NS}}}container", nsmap={None: CONTAINER_NS})
        root.set("version", "1.0")
        rootfiles = etree.SubElement(root, f"{{{CONTAINER_NS}}}rootfiles")
        rootfile = etree.SubElement(rootfiles, f"{{{CONTAINER_NS}}}rootfile")
        rootfile.set("full-path", "OEBPS/content.opf")
        rootfile.set("media-type", "application/oebps-package+xml")
        return self._to_bytes(root)

    def build_display_options(self) -> bytes:
        """Build the Apple Books display options enabling fixed layout."""
        root = etree.Element("display_options")
        platform = etree.SubElement(root, "platform")
        platform.set("name", "*")
        for name, value in (("fixed-layout", "true"), ("open-to-spread", "false")):
            option = etree.SubElement(platform, "option")
            option.set("name", name)
            option.text = value
        return self._to_bytes(root)

    def build_package(
        self, volume: Volume, documents: list[Document], index: int, total: int
    ) -> bytes:
        """Build content.opf with metadata, manifest and spine."""
        image = self.options.image
        root = etree.Element(f"{{{OPF_NS}}}package", nsmap={None: OPF_NS})
        root.set("version", "3.0")
        root.set("unique-identifier", "bookid")
        root.set("prefix", "rendition: http://www.idpf.org/vocab/rendition/#")

        root.append(self._build_metadata(documents, index, total))

        manifest = etree.SubElement(root, f"{{{OPF_NS}}}manifest")
        self._add_item(manifest, "toc.xhtml", properties="nav")
        self._add_item(manifest, "toc.ncx")
        self._add_item(manifest, "Text/style.css")

        images_written: set[str] = set()
        for document in documents:
            self._add_item(manifest, document.href)
            if document.image_href and document.image_href not in images_written:
                images_written.add(document.image_href)
                properties = "cover-image" if document is documents[0] else None
                self._add_item(manifest, document.image_href, properties=properties)

        spine = etree.SubElement(root, f"{{{OPF_NS}}}spine")
        spine.set("toc", _item_id("toc.ncx"))
        if image.manga:
            spine.set("page-progression-direction", "rtl")

        sides = ("left", "right") if image.manga else ("right", "left")
        for n, document in enumerate(documents):
            itemref = etree.SubElement(spine, f"{{{OPF_NS}}}itemref")
            itemref.set("idref", _item_id(document.href))
            if image.portrait_only:
                itemref.set("properties", "rendition:page-spread-center")
            else:
                itemref.set("properties", f"page-spread-{sides[n % 2]}")

        return self._to_bytes(root)

    def _build_metadata(self, documents: list[Document], index: int, total: int) -> etree._Element:
        image = self.options.image
        metadata = etree.Element(f"{{{OPF_NS}}}metadata", nsmap={"dc": DC_NS})

        def dc(tag: str, text: str) -> etree._Element:
            el = etree.SubElement(metadata, f"{{{DC_NS}}}{tag}")
            el.text = text
            return el

        def meta(text: str, **attrs: str) -> etree._Element:
            el = etree.SubElement(metadata, f"{{{OPF_NS}}}meta")
            for key, value in attrs.items():
                el.set(key, value)
            if text:
                el.text = text
            return el

        dc("title", self.volume_title(index, total))
        dc("identifier", f"urn:uuid:{self.uid}").set("id", "bookid")
        dc("language", "en")
        dc("creator", self.options.author)
        dc("publisher", "Comic Distiller")
        dc("contributor", "Comic Distiller")
        dc("date", self.updated_at)

        meta(self.updated_at, property="dcterms:modified")
        meta("pre-paginated", property="rendition:layout")
        meta("none" if image.portrait_only else "auto", property="rendition:spread")
        meta("portrait", property="rendition:orientation")
        meta("", name="fixed-layout", content="true")
        meta("", name="book-type", content="comic")
        meta("", name="original-resolution", content=f"{self.view.width}x{self.view.height}")
        meta("", name="zero-gutter", content="true")
        meta("", name="zero-margin", content="true")
        meta("", name="primary-writing-mode", content="horizontal-rl" if image.manga else "horizontal-lr")

        for document in documents:
            if document.image_href:
                meta("", name="cover", content=_item_id(document.image_href))
                break

        if total > 1:
            meta(self.options.title, property="belongs-to-collection", id="collection")
            meta("series", refines="#collection", property="collection-type")
            meta(str(index), refines="#collection", property="group-position")

        return metadata

    def _add_item(self, manifest: etree._Element, href: str, properties: str | None = None) -> None:
        item = etree.SubElement(manifest, f"{{{OPF_NS}}}item")
        item.set("id", _item_id(href))
        item.set("href", href)
        item.set("media-type", MEDIA_TYPES[Path(href).suffix])
        if properties:
            item.set("properties", properties)

    def toc_tree(self, volume: Volume) -> TocTree:
        return TocTree.from_pages(
            volume.pages,
            skip_files=True,
            strip_first_directory=self.options.strip_first_directory_from_toc,
        )

    def build_nav(self, volume: Volume, documents: list[Document], title: str) -> bytes:
        """Build the EPUB 3 navigation document from the volume's TOC tree."""
        root = etree.Element(f"{{{XHTML_NS}}}html", nsmap={None: XHTML_NS, "epub": EPUB_NS})
        head = etree.SubElement(root, f"{{{XHTML_NS}}}head")
        etree.SubElement(head, f"{{{XHTML_NS}}}title").text = title
        body = etree.SubElement(root, f"{{{XHTML_NS}}}body")

        nav = etree.SubElement(body, f"{{{XHTML_NS}}}nav")
        nav.set(f"{{{EPUB_NS}}}type", "toc")
        nav.set("id", "toc")
        etree.SubElement(nav, f"{{{XHTML_NS}}}h2").text = title

        ol = etree.SubElement(nav, f"{{{XHTML_NS}}}ol")
        li = etree.SubElement(ol, f"{{{XHTML_NS}}}li")
        a = etree.SubElement(li, f"{{{XHTML_NS}}}a")
        a.set("href", documents[0].href)
        a.text = title
        self._nav_children(li, self.toc_tree(volume).top(skip_files=True))

        return self._to_bytes(root)

    def _nav_children(self, parent: etree._Element, node: TocNode) -> None:
        children = node.visible_children(skip_files=True)
        if not children:
            return
        ol = etree.SubElement(parent, f"{{{XHTML_NS}}}ol")
        for child in children:
            li = etree.SubElement(ol, f"{{{XHTML_NS}}}li")
            a = etree.SubElement(li, f"{{{XHTML_NS}}}a")
            a.set("href", child.link or "")
            a.text = child.name
            self._nav_children(li, child)

    def build_ncx(self, volume: Volume, documents: list[Document], title: str) -> bytes:
        """Build the EPUB 2 NCX mirroring the navigation document."""
        root = etree.Element(f"{{{NCX_NS}}}ncx", nsmap={None: NCX_NS})
        root.set("version", "2005-1")

        head = etree.SubElement(root, f"{{{NCX_NS}}}head")
        uid = etree.SubElement(head, f"{{{NCX_NS}}}meta")
        uid.set("name", "dtb:uid")
        uid.set("content", f"urn:uuid:{self.uid}")

        doc_title = etree.SubElement(root, f"{{{NCX_NS}}}docTitle")
        etree.SubElement(doc_title, f"{{{NCX_NS}}}text").text = title

        nav_map = etree.SubElement(root, f"{{{NCX_NS}}}navMap")
        counter = [0]
        top = self._nav_point(nav_map, title, documents[0].href, counter)
        self._ncx_children(top, self.toc_tree(volume).top(skip_files=True), counter)

        return self._to_bytes(root)

    def _nav_point(self, parent: etree._Element, label: str, href: str, counter: list[int]) -> etree._Element:
        counter[0] += 1
        point = etree.SubElement(parent, f"{{{NCX_NS}}}navPoint")
        point.set("id", f"navPoint-{counter[0]}")
        point.set("playOrder", str(counter[0]))
        nav_label = etree.SubElement(point, f"{{{NCX_NS}}}navLabel")
        etree.SubElement(nav_label, f"{{{NCX_NS}}}text").text = label
        etree.SubElement(point, f"{{{NCX_NS}}}content").set("src", href)
        return point

    def _ncx_children(self, parent: etree._Element, node: TocNode, counter: list[int]) -> None:
        for child in node.visible_children(skip_files=True):
            point = self._nav_point(parent, child.name, child.link or "", counter)
            self._ncx_children(point, child, counter)

    def describe(self, volume: Volume) -> str:
        """Text report of a dry run: TOC, and with dry_verbose the cover and files."""
        lines = ["TOC:", f"  - {self.options.title}"]
        tree = self.toc_tree(volume).render(skip_files=True, indent="    ")
        if tree:
            lines.append(tree)

        if self.options.dry_verbose:
            if self.options.image.has_cover and volume.cover is not None:
                lines.append("Cover:")
                lines.append(TocTree.from_pages([volume.cover]).render())
            lines.append("Files:")
            lines.append(TocTree.from_pages(volume.pages).render())

        return "\n".join(lines)


def _item_id(href: str) -> str:
    """Manifest id derived from an href.

    Examples:
        >>> _item_id("Text/img_1_p0.xhtml")
        'Text_img_1_p0_xhtml'
    """
    return href.replace("/", "_").replace(".", "_")
