"""Tests for the EPUB compiler."""

import io
import zipfile
from pathlib import Path

import pytest
from lxml import etree
from PIL import Image

from comic_distiller.aggregators import PageStore
from comic_distiller.compilers import EPUBCompiler
from comic_distiller.compilers.epub_compiler import (
    DC_NS,
    OPF_NS,
    XHTML_NS,
    needs_spacer,
    render_title_image,
    volume_path,
)
from conftest import encode, make_page_image
from schemas.options import ConverterOptions
from schemas.page import Page
from schemas.volume import Volume

NS = {"opf": OPF_NS, "dc": DC_NS, "x": XHTML_NS}


@pytest.fixture
def store(work_dir):
    with PageStore(work_dir) as store:
        yield store


def put(store, id, part=0, path="Chapter 1", name=None, double_page=False, size=(100, 160)):
    data = encode(make_page_image(*size), "JPEG")
    page = Page(
        id=id,
        part=part,
        path=path,
        name=name or f"p{id}.png",
        size=len(data),
        width=size[0],
        height=size[1],
        double_page=double_page,
    )
    store.persist(page, data)
    return page


def make_options(tmp_path, **kwargs) -> ConverterOptions:
    image = kwargs.pop("image", {})
    return ConverterOptions(
        input=tmp_path / "Comic",
        output=tmp_path / "Book.epub",
        title="Book",
        profile="K1",
        quiet=True,
        image=image,
        **kwargs,
    )


@pytest.fixture
def book(store):
    """A cover and two chapters of one page each."""
    cover = put(store, 0, path="", name="cover.png")
    pages = [put(store, 1, path="Chapter 1"), put(store, 2, path="Chapter 2")]
    return cover, pages


def read_opf(path: Path) -> etree._Element:
    with zipfile.ZipFile(path) as archive:
        return etree.fromstring(archive.read("OEBPS/content.opf"))


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class TestVolumePath:
    """Tests for volume output names."""

    def test_single_volume(self):
        assert volume_path(Path("out/Book.epub"), 1, 1) == Path("out/Book.epub")

    def test_zero_padded_suffix(self):
        assert volume_path(Path("out/Book.epub"), 3, 12) == Path("out/Book Part 03 of 12.epub")

    def test_single_digit(self):
        assert volume_path(Path("Book.epub"), 2, 2) == Path("Book Part 2 of 2.epub")


class TestNeedsSpacer:
    """Tests for the blank spacer rule."""

    def test_double_page(self):
        spread = Page(id=1, part=1, path="", name="a", double_page=True)
        volume = Volume(cover=None, pages=[spread, Page(id=2, part=0, path="", name="b")])

        assert needs_spacer(spread, volume, total=3)

    def test_last_page_of_single_volume(self):
        last = Page(id=2, part=0, path="", name="b")
        volume = Volume(cover=None, pages=[Page(id=1, part=0, path="", name="a"), last])

        assert needs_spacer(last, volume, total=1)
        assert not needs_spacer(volume.pages[0], volume, total=1)

    def test_last_page_of_multi_volume_book(self):
        last = Page(id=2, part=0, path="", name="b")
        volume = Volume(cover=None, pages=[last])

        assert not needs_spacer(last, volume, total=2)

    def test_last_page_split_half(self):
        last = Page(id=2, part=2, path="", name="b")
        volume = Volume(cover=None, pages=[last])

        assert not needs_spacer(last, volume, total=1)


class TestRenderTitleImage:
    """Tests for the generated title image."""

    def test_keeps_cover_size(self):
        cover = encode(make_page_image(200, 320), "JPEG")

        result = Image.open(io.BytesIO(render_title_image(cover, "Book", True, 85)))

        assert result.format == "JPEG"
        assert result.size == (200, 320)
        assert result.mode == "L"

    def test_color(self):
        cover = encode(make_page_image(200, 320), "JPEG")

        result = Image.open(io.BytesIO(render_title_image(cover, "Book", False, 85)))

        assert result.mode == "RGB"

    def test_banner_colors(self):
        cover = encode(make_page_image(200, 320), "JPEG")

        data = render_title_image(cover, "Book", False, 95, foreground="00F", background="F00")
        result = Image.open(io.BytesIO(data))

        red, green, blue = result.getpixel((10, 320 // 8 + 4))
        assert red > 200
        assert green < 60
        assert blue < 60


# ---------------------------------------------------------------------------
# Planning
# ---------------------------------------------------------------------------


class TestPlan:
    """Tests for the reading order of a volume."""

    def test_title_cover_pages_and_spacer(self, tmp_path, book):
        cover, pages = book
        compiler = EPUBCompiler(make_options(tmp_path))

        documents = compiler.plan(Volume(cover=cover, pages=pages), 1, 1)

        assert [d.href for d in documents] == [
            "Text/title.xhtml",
            "Text/space_title.xhtml",
            "Text/img_0_p0.xhtml",
            "Text/img_1_p0.xhtml",
            "Text/img_2_p0.xhtml",
            "Text/space_2_p0.xhtml",
        ]
        assert documents[0].align == "left:0"

    def test_manga_title_alignment(self, tmp_path, book):
        cover, pages = book
        compiler = EPUBCompiler(make_options(tmp_path, image={"manga": True}))

        documents = compiler.plan(Volume(cover=cover, pages=pages), 1, 1)

        assert documents[0].align == "right:0"

    def test_spacer_after_double_pages(self, tmp_path, store):
        cover = put(store, 0, path="")
        pages = [
            put(store, 1, part=1, double_page=True),
            put(store, 1, part=2, double_page=True),
            put(store, 2),
        ]
        compiler = EPUBCompiler(make_options(tmp_path, title_page="never"))

        documents = compiler.plan(Volume(cover=cover, pages=pages), 1, 2)

        assert [d.href for d in documents] == [
            "Text/img_0_p0.xhtml",
            "Text/img_1_p1.xhtml",
            "Text/space_1_p1.xhtml",
            "Text/img_1_p2.xhtml",
            "Text/space_1_p2.xhtml",
            "Text/img_2_p0.xhtml",
        ]

    @pytest.mark.parametrize(
        "mode,total,expected",
        [
            ("always", 1, True),
            ("always", 2, True),
            ("never", 1, False),
            ("never", 2, False),
            ("when_split", 1, False),
            ("when_split", 2, True),
        ],
    )
    def test_title_page_mode(self, tmp_path, book, mode, total, expected):
        cover, pages = book
        compiler = EPUBCompiler(make_options(tmp_path, title_page=mode))

        documents = compiler.plan(Volume(cover=cover, pages=pages), 1, total)

        assert (documents[0].href == "Text/title.xhtml") is expected

    def test_without_cover_first_volume(self, tmp_path, book):
        """Without a cover the first page is only written in its own place."""
        cover, pages = book
        compiler = EPUBCompiler(
            make_options(tmp_path, title_page="never", image={"has_cover": False})
        )

        first = compiler.plan(Volume(cover=cover, pages=[cover, pages[0]]), 1, 2)
        second = compiler.plan(Volume(cover=cover, pages=[pages[1]]), 2, 2)

        assert [d.href for d in first] == ["Text/img_0_p0.xhtml", "Text/img_1_p0.xhtml"]
        assert [d.href for d in second] == ["Text/img_0_p0.xhtml", "Text/img_2_p0.xhtml"]


# ---------------------------------------------------------------------------
# Compiling
# ---------------------------------------------------------------------------


class TestCompile:
    """Tests for writing EPUB files."""

    def test_single_volume(self, tmp_path, store, book):
        cover, pages = book
        compiler = EPUBCompiler(make_options(tmp_path))

        paths = compiler.compile([Volume(cover=cover, pages=pages)], store)

        assert paths == [tmp_path / "Book.epub"]
        with zipfile.ZipFile(paths[0]) as archive:
            names = archive.namelist()
            assert names[0] == "mimetype"
            for name in [
                "META-INF/container.xml",
                "META-INF/com.apple.ibooks.display-options.xml",
                "OEBPS/content.opf",
                "OEBPS/toc.xhtml",
                "OEBPS/toc.ncx",
                "OEBPS/Text/style.css",
                "OEBPS/Text/title.xhtml",
                "OEBPS/Images/title.jpg",
                "OEBPS/Text/img_0_p0.xhtml",
                "OEBPS/Images/img_0_p0.jpg",
                "OEBPS/Images/img_2_p0.jpg",
                "OEBPS/Text/space_2_p0.xhtml",
            ]:
                assert name in names
            assert archive.read("OEBPS/Images/img_1_p0.jpg") == store.get((1, 0))

            page_markup = archive.read("OEBPS/Text/img_1_p0.xhtml").decode()
            assert 'src="../Images/img_1_p0.jpg"' in page_markup
            assert "width=600,height=670" in page_markup

    def test_package_document(self, tmp_path, store, book):
        cover, pages = book
        compiler = EPUBCompiler(make_options(tmp_path, author="Someone"))

        [path] = compiler.compile([Volume(cover=cover, pages=pages)], store)
        opf = read_opf(path)

        assert opf.findtext("opf:metadata/dc:title", namespaces=NS) == "Book"
        assert opf.findtext("opf:metadata/dc:creator", namespaces=NS) == "Someone"
        assert opf.find("opf:metadata/opf:meta[@property='rendition:layout']", NS).text == "pre-paginated"

        itemrefs = opf.findall("opf:spine/opf:itemref", NS)
        assert len(itemrefs) == 6
        assert [i.get("properties") for i in itemrefs[:3]] == [
            "page-spread-right",
            "page-spread-left",
            "page-spread-right",
        ]
        assert opf.find("opf:spine", NS).get("page-progression-direction") is None

        hrefs = {i.get("href") for i in opf.findall("opf:manifest/opf:item", NS)}
        assert "Images/title.jpg" in hrefs
        assert "Text/space_2_p0.xhtml" in hrefs

        cover_item = opf.find("opf:manifest/opf:item[@properties='cover-image']", NS)
        assert cover_item.get("href") == "Images/title.jpg"

    def test_manga_direction(self, tmp_path, store, book):
        cover, pages = book
        compiler = EPUBCompiler(make_options(tmp_path, image={"manga": True}))

        [path] = compiler.compile([Volume(cover=cover, pages=pages)], store)
        opf = read_opf(path)

        assert opf.find("opf:spine", NS).get("page-progression-direction") == "rtl"
        first = opf.find("opf:spine/opf:itemref", NS)
        assert first.get("properties") == "page-spread-left"
        with zipfile.ZipFile(path) as archive:
            assert "right:0" in archive.read("OEBPS/Text/title.xhtml").decode()

    def test_portrait_only(self, tmp_path, store, book):
        cover, pages = book
        compiler = EPUBCompiler(make_options(tmp_path, image={"portrait_only": True}))

        [path] = compiler.compile([Volume(cover=cover, pages=pages)], store)
        opf = read_opf(path)

        spread = opf.find("opf:metadata/opf:meta[@property='rendition:spread']", NS)
        assert spread.text == "none"
        properties = {i.get("properties") for i in opf.findall("opf:spine/opf:itemref", NS)}
        assert properties == {"rendition:page-spread-center"}

    def test_default_spread_is_auto(self, tmp_path, store, book):
        cover, pages = book

        [path] = EPUBCompiler(make_options(tmp_path)).compile([Volume(cover=cover, pages=pages)], store)

        spread = read_opf(path).find("opf:metadata/opf:meta[@property='rendition:spread']", NS)
        assert spread.text == "auto"

    def test_aspect_ratio_sets_page_viewport(self, tmp_path, store, book):
        cover, pages = book
        compiler = EPUBCompiler(make_options(tmp_path, image={"aspect_ratio": 1.5}))

        [path] = compiler.compile([Volume(cover=cover, pages=pages)], store)

        resolution = read_opf(path).find("opf:metadata/opf:meta[@name='original-resolution']", NS)
        assert resolution.get("content") == "600x900"
        with zipfile.ZipFile(path) as archive:
            assert "width=600,height=900" in archive.read("OEBPS/Text/img_1_p0.xhtml").decode()
            assert "height: 900px" in archive.read("OEBPS/Text/style.css").decode()

    def test_colors_in_stylesheet(self, tmp_path, store, book):
        cover, pages = book
        options = make_options(tmp_path, image={"foreground_color": "eee", "background_color": "111111"})

        [path] = EPUBCompiler(options).compile([Volume(cover=cover, pages=pages)], store)

        with zipfile.ZipFile(path) as archive:
            style = archive.read("OEBPS/Text/style.css").decode()
            blank = archive.read("OEBPS/Text/space_2_p0.xhtml").decode()
        assert "color: #EEE;" in style
        assert "background: #111111;" in style
        assert 'href="style.css"' in blank

    def test_navigation(self, tmp_path, store, book):
        cover, pages = book
        compiler = EPUBCompiler(make_options(tmp_path))

        [path] = compiler.compile([Volume(cover=cover, pages=pages)], store)

        with zipfile.ZipFile(path) as archive:
            nav = etree.fromstring(archive.read("OEBPS/toc.xhtml"))
            ncx = archive.read("OEBPS/toc.ncx").decode()

        links = {a.text: a.get("href") for a in nav.iter(f"{{{XHTML_NS}}}a")}
        assert links == {
            "Book": "Text/title.xhtml",
            "Chapter 1": "Text/img_1_p0.xhtml",
            "Chapter 2": "Text/img_2_p0.xhtml",
        }
        assert "Chapter 2" in ncx
        assert compiler.uid in ncx

    def test_multiple_volumes(self, tmp_path, store, book):
        cover, pages = book
        compiler = EPUBCompiler(make_options(tmp_path))
        volumes = [Volume(cover=cover, pages=[pages[0]]), Volume(cover=cover, pages=[pages[1]])]

        paths = compiler.compile(volumes, store)

        assert paths == [tmp_path / "Book Part 1 of 2.epub", tmp_path / "Book Part 2 of 2.epub"]
        opf = read_opf(paths[1])
        assert opf.findtext("opf:metadata/dc:title", namespaces=NS) == "Book [2/2]"
        collection = opf.find("opf:metadata/opf:meta[@property='belongs-to-collection']", NS)
        assert collection.text == "Book"
        position = opf.find("opf:metadata/opf:meta[@property='group-position']", NS)
        assert position.text == "2"
        with zipfile.ZipFile(paths[1]) as archive:
            # no trailing spacer in a multi-volume book
            assert not any(n.startswith("OEBPS/Text/space_2") for n in archive.namelist())

    def test_failed_volume_keeps_previous(self, tmp_path, store, book):
        """A failing volume leaves no file; volumes already written stay."""
        cover, pages = book
        missing = Page(id=9, part=0, path="Chapter 3", name="p9.png", width=100, height=160)
        compiler = EPUBCompiler(make_options(tmp_path))
        volumes = [Volume(cover=cover, pages=pages), Volume(cover=cover, pages=[missing])]

        with pytest.raises(KeyError):
            compiler.compile(volumes, store)

        assert (tmp_path / "Book Part 1 of 2.epub").exists()
        assert not (tmp_path / "Book Part 2 of 2.epub").exists()
        assert not (tmp_path / "Book Part 2 of 2.epub.part").exists()


class TestDescribe:
    """Tests for the dry-run report."""

    def test_toc_only(self, tmp_path, book):
        cover, pages = book
        compiler = EPUBCompiler(make_options(tmp_path))

        report = compiler.describe(Volume(cover=cover, pages=pages))

        assert report == "TOC:\n  - Book\n    - Chapter 1\n    - Chapter 2"

    def test_verbose(self, tmp_path, book):
        cover, pages = book
        compiler = EPUBCompiler(make_options(tmp_path, dry_verbose=True))

        report = compiler.describe(Volume(cover=cover, pages=pages))

        assert "Cover:\n  - cover.png" in report
        assert "Files:\n  - Chapter 1\n    - p1.png\n  - Chapter 2\n    - p2.png" in report
