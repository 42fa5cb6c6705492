"""Pytest fixtures for Comic Distiller tests."""

import io
import zipfile

import pytest
from PIL import Image, ImageDraw

from schemas.options import ConverterOptions, ImageOptions, ViewPort


def make_page_image(
    width: int = 100,
    height: int = 160,
    mode: str = "RGB",
    background: str = "white",
    ink: str = "gray",
) -> Image.Image:
    """A white page with a gray block of content and a black panel inside it."""
    image = Image.new(mode, (width, height), background)
    draw = ImageDraw.Draw(image)
    draw.rectangle(
        (width // 5, height // 5, width * 4 // 5 - 1, height * 4 // 5 - 1),
        fill=ink,
    )
    draw.rectangle(
        (width * 2 // 5, height * 2 // 5, width * 3 // 5 - 1, height * 3 // 5 - 1),
        fill="black",
    )
    return image


def encode(image: Image.Image, fmt: str = "PNG") -> bytes:
    buffer = io.BytesIO()
    image.save(buffer, format=fmt)
    return buffer.getvalue()


def make_spread(width: int = 200, height: int = 100) -> Image.Image:
    """A landscape spread: red left half, blue right half."""
    image = Image.new("RGB", (width, height), (200, 30, 30))
    ImageDraw.Draw(image).rectangle((width // 2, 0, width - 1, height - 1), fill=(30, 30, 200))
    return image


@pytest.fixture
def small_view():
    """A small viewport to keep image work fast."""
    return ViewPort(width=100, height=160)


@pytest.fixture
def image_options(small_view):
    """Image options with every geometric/tonal stage disabled but resize."""
    return ImageOptions(view=small_view, crop=False, grayscale=False)


@pytest.fixture
def comic_dir(tmp_path):
    """A comic folder with a cover and two chapters.

    Layout:
        Comic/000 cover.png
        Comic/Chapter 1/p1.png
        Comic/Chapter 1/p2.png
        Comic/Chapter 2/p1.png
    """
    root = tmp_path / "Comic"
    (root / "Chapter 1").mkdir(parents=True)
    (root / "Chapter 2").mkdir(parents=True)

    make_page_image().save(root / "000 cover.png")
    make_page_image(ink="#606060").save(root / "Chapter 1" / "p1.png")
    make_page_image(ink="#707070").save(root / "Chapter 1" / "p2.png")
    make_page_image(ink="#808080").save(root / "Chapter 2" / "p1.png")
    return root


@pytest.fixture
def comic_cbz(tmp_path):
    """A .cbz archive with one top-level directory and three pages."""
    path = tmp_path / "Comic.cbz"
    with zipfile.ZipFile(path, "w") as archive:
        archive.writestr("Comic/", b"")
        archive.writestr("Comic/page10.png", encode(make_page_image()))
        archive.writestr("Comic/page2.png", encode(make_page_image()))
        archive.writestr("Comic/page1.png", encode(make_page_image()))
        archive.writestr("__MACOSX/Comic/._page1.png", b"junk")
        archive.writestr("Comic/notes.txt", b"not an image")
    return path


@pytest.fixture
def work_dir(tmp_path):
    """Parent directory for temporary page storage."""
    path = tmp_path / "work"
    path.mkdir()
    return path


@pytest.fixture
def converter_options(comic_dir, tmp_path):
    """Options converting comic_dir into tmp_path/out/Comic.epub."""
    return ConverterOptions(
        input=comic_dir,
        output=tmp_path / "out" / "Comic.epub",
        profile="K1",
        workers=2,
        quiet=True,
    )
