"""Tests for schema definitions."""

from dataclasses import FrozenInstanceError, replace

import pytest
from pydantic import ValidationError

from schemas import (
    PROFILES,
    ConverterOptions,
    CropRatios,
    ImageOptions,
    Page,
    SourceImage,
    ViewPort,
    Volume,
)


# --- Options ---


class TestConverterOptions:
    """Tests for ConverterOptions defaults and validation."""

    def test_output_next_to_archive(self, tmp_path):
        options = ConverterOptions(input=tmp_path / "My Comic.cbz")

        assert options.output == tmp_path / "My Comic.epub"
        assert options.title == "My Comic"

    def test_output_next_to_directory(self, comic_dir):
        options = ConverterOptions(input=comic_dir)

        assert options.output == comic_dir.parent / "Comic.epub"
        assert options.title == "Comic"

    def test_output_directory(self, tmp_path):
        options = ConverterOptions(input=tmp_path / "book.pdf", output=tmp_path / "out")

        assert options.output == tmp_path / "out" / "book.epub"

    def test_explicit_output_and_title(self, tmp_path):
        options = ConverterOptions(
            input=tmp_path / "book.cbz",
            output=tmp_path / "Other.epub",
            title="Volume One",
        )

        assert options.output == tmp_path / "Other.epub"
        assert options.title == "Volume One"

    def test_title_defaults_to_output_name(self, tmp_path):
        options = ConverterOptions(input=tmp_path / "book.cbz", output=tmp_path / "Other.epub")

        assert options.title == "Other"

    def test_view_from_profile(self, tmp_path):
        options = ConverterOptions(input=tmp_path / "a.cbz", profile="KS")

        assert options.image.view == ViewPort(width=1860, height=2480)

    def test_explicit_view_kept(self, tmp_path):
        options = ConverterOptions(
            input=tmp_path / "a.cbz",
            profile="KS",
            image={"view": {"width": 10, "height": 20}},
        )

        assert options.image.view.width == 10

    def test_unknown_profile(self, tmp_path):
        with pytest.raises(ValidationError, match="doesn't exist"):
            ConverterOptions(input=tmp_path / "a.cbz", profile="XYZ")

    @pytest.mark.parametrize("limit", [0, 20, 500])
    def test_valid_limit(self, tmp_path, limit):
        options = ConverterOptions(input=tmp_path / "a.cbz", limit_mb=limit)

        assert options.limit_bytes == limit * 1024 * 1024

    @pytest.mark.parametrize("limit", [1, 5, 19])
    def test_invalid_limit(self, tmp_path, limit):
        with pytest.raises(ValidationError, match="limit_mb"):
            ConverterOptions(input=tmp_path / "a.cbz", limit_mb=limit)

    def test_extra_fields_rejected(self, tmp_path):
        with pytest.raises(ValidationError):
            ConverterOptions(input=tmp_path / "a.cbz", colour="blue")

    def test_frozen(self, tmp_path):
        options = ConverterOptions(input=tmp_path / "a.cbz")

        with pytest.raises(ValidationError):
            options.title = "changed"


class TestImageOptions:
    """Tests for ImageOptions validation."""

    def test_defaults(self):
        options = ImageOptions()

        assert options.view == PROFILES["SR"].view
        assert options.quality == 85
        assert options.crop_ratio == CropRatios(left=1, up=1, right=1, bottom=3)
        assert options.has_cover is True
        assert options.manga is False

    @pytest.mark.parametrize("field", ["brightness", "contrast"])
    def test_delta_range(self, field):
        with pytest.raises(ValidationError, match="between -100 and 100"):
            ImageOptions(**{field: 101})

        assert getattr(ImageOptions(**{field: -100}), field) == -100

    def test_quality_range(self):
        with pytest.raises(ValidationError):
            ImageOptions(quality=0)

    def test_crop_ratio_range(self):
        with pytest.raises(ValidationError):
            CropRatios(left=101)

    def test_grayscale_mode(self):
        with pytest.raises(ValidationError):
            ImageOptions(grayscale_mode="sepia")

    @pytest.mark.parametrize("ratio", [0, -1, 1.5])
    def test_valid_aspect_ratio(self, ratio):
        assert ImageOptions(aspect_ratio=ratio).aspect_ratio == ratio

    def test_invalid_aspect_ratio(self):
        with pytest.raises(ValidationError, match="aspect_ratio"):
            ImageOptions(aspect_ratio=-0.5)

    @pytest.mark.parametrize("ratio", [0, -1])
    def test_page_view_defaults_to_device(self, ratio):
        view = ViewPort(width=1072, height=1448)

        assert ImageOptions(view=view, aspect_ratio=ratio).page_view == view

    def test_page_view_from_aspect_ratio(self):
        options = ImageOptions(view=ViewPort(width=1072, height=1448), aspect_ratio=1.5)

        assert options.page_view == ViewPort(width=1072, height=1608)

    def test_colors_uppercased(self):
        options = ImageOptions(foreground_color="1a2b3c", background_color="eee")

        assert options.foreground_color == "1A2B3C"
        assert options.background_color == "EEE"

    @pytest.mark.parametrize("color", ["", "12", "#FFF", "GGG", "12345"])
    def test_invalid_color(self, color):
        with pytest.raises(ValidationError, match="hex digits"):
            ImageOptions(background_color=color)


class TestProfiles:
    """Tests for the device profile table."""

    def test_codes_match_keys(self):
        assert all(code == profile.code for code, profile in PROFILES.items())

    def test_known_profile(self):
        assert PROFILES["KPW5"].view == ViewPort(width=1236, height=1648)
        assert str(PROFILES["K1"].view) == "width=600,height=670"


# --- Pages ---


class TestPage:
    """Tests for the Page value object."""

    def test_paths(self):
        page = Page(id=3, part=1, path="Chapter 1", name="p1.png")

        assert page.key == (3, 1)
        assert page.slug == "img_3_p1"
        assert page.page_path == "Text/img_3_p1.xhtml"
        assert page.image_path == "Images/img_3_p1.jpg"
        assert page.space_path == "Text/space_3_p1.xhtml"
        assert page.source_path == "Chapter 1/p1.png"

    def test_source_path_at_root(self):
        assert Page(id=0, part=0, path="", name="cover.png").source_path == "cover.png"

    def test_frozen(self):
        page = Page(id=0, part=0, path="", name="a.png")

        with pytest.raises(FrozenInstanceError):
            page.size = 10

        assert replace(page, is_cover=True).is_cover

    def test_source_image_repr_hides_data(self):
        image = SourceImage(id=0, path="", name="a.png", data=b"x" * 1000)

        assert "data" not in repr(image)


class TestVolume:
    """Tests for the Volume container."""

    def test_last_page(self):
        pages = [Page(id=i, part=0, path="", name=f"{i}.png") for i in range(3)]
        volume = Volume(cover=pages[0], pages=pages)

        assert len(volume) == 3
        assert volume.last_page is pages[2]

    def test_empty(self):
        volume = Volume(cover=None)

        assert len(volume) == 0
        with pytest.raises(IndexError):
            volume.last_page
