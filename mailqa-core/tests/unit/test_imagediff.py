"""Unit tests for the image differ."""

from __future__ import annotations

from pathlib import Path

import pytest
from PIL import Image

from mailqa_core.imagediff import (
    PAD_COLOR,
    DiffOptions,
    compose_side_by_side,
    diff_files,
    diff_images,
    pad_image,
)


def _solid(width: int, height: int, color: tuple[int, int, int, int]) -> Image.Image:
    return Image.new("RGBA", (width, height), color)


def _with_top_rows(
    width: int, height: int, rows: int, color: tuple[int, int, int, int]
) -> Image.Image:
    image = _solid(width, height, (255, 255, 255, 255))
    for y in range(rows):
        for x in range(width):
            image.putpixel((x, y), color)
    return image


class TestPadImage:
    """Tests for pad_image."""

    def test_pads_with_white_at_origin(self) -> None:
        image = _solid(2, 3, (0, 0, 0, 255))
        padded = pad_image(image, 5, 4)

        assert padded.size == (5, 4)
        assert padded.getpixel((0, 0)) == (0, 0, 0, 255)
        assert padded.getpixel((1, 2)) == (0, 0, 0, 255)
        assert padded.getpixel((4, 3)) == PAD_COLOR
        assert padded.getpixel((2, 0)) == PAD_COLOR

    def test_same_size_is_unchanged(self) -> None:
        image = _solid(4, 4, (10, 20, 30, 255))
        padded = pad_image(image, 4, 4)
        assert padded.tobytes() == image.tobytes()


class TestDiffImages:
    """Tests for diff_images."""

    def test_identical_images_have_zero_diff(self) -> None:
        image = _with_top_rows(10, 10, 3, (0, 0, 0, 255))
        result = diff_images(image, image.copy())
        assert result.diff_percentage == 0
        assert result.mismatched_pixels == 0

    def test_percentage_of_changed_rows(self) -> None:
        base = _solid(10, 10, (255, 255, 255, 255))
        compare = _with_top_rows(10, 10, 3, (0, 0, 0, 255))
        result = diff_images(base, compare)
        assert result.mismatched_pixels == 30
        assert result.diff_percentage == 30.0

    def test_percentage_is_symmetric(self) -> None:
        a = _solid(10, 10, (255, 255, 255, 255))
        b = _with_top_rows(10, 10, 4, (37, 99, 235, 255))
        assert diff_images(a, b).diff_percentage == diff_images(b, a).diff_percentage

    def test_different_sizes_use_max_canvas(self) -> None:
        a = _solid(6, 10, (255, 255, 255, 255))
        b = _solid(10, 4, (255, 255, 255, 255))
        result = diff_images(a, b)
        assert (result.width, result.height) == (10, 10)
        assert result.diff_image.size == (10, 10)
        # White padding matches the white content of the other image
        assert result.diff_percentage == 0

    def test_padding_region_counts_as_mismatch(self) -> None:
        a = _solid(10, 10, (0, 0, 0, 255))
        b = _solid(10, 5, (0, 0, 0, 255))
        result = diff_images(a, b)
        assert result.mismatched_pixels == 50
        assert result.diff_percentage == 50.0

    def test_mismatch_uses_highlight_color(self) -> None:
        base = _solid(10, 10, (255, 255, 255, 255))
        compare = _with_top_rows(10, 10, 3, (0, 0, 0, 255))
        result = diff_images(base, compare, DiffOptions(diff_color=(255, 0, 128)))
        assert result.diff_image.getpixel((0, 0))[:3] == (255, 0, 128)

    def test_deterministic(self) -> None:
        base = _solid(8, 8, (255, 255, 255, 255))
        compare = _with_top_rows(8, 8, 2, (22, 163, 74, 255))
        first = diff_images(base, compare)
        second = diff_images(base, compare)
        assert first.diff_percentage == second.diff_percentage
        assert first.diff_image.tobytes() == second.diff_image.tobytes()


class TestSideBySide:
    """Tests for compose_side_by_side."""

    def test_canvas_size(self) -> None:
        panels = tuple(_solid(20, 10, (0, 0, 0, 255)) for _ in range(3))
        canvas = compose_side_by_side(panels, 20, 10, padding=10)  # type: ignore[arg-type]
        assert canvas.size == (3 * 20 + 4 * 10, 10 + 2 * 10)

    def test_label_height_extends_canvas(self) -> None:
        panels = tuple(_solid(20, 10, (0, 0, 0, 255)) for _ in range(3))
        canvas = compose_side_by_side(panels, 20, 10, padding=10, label_height=30)  # type: ignore[arg-type]
        assert canvas.size == (100, 60)

    def test_oversized_panel_is_clipped(self) -> None:
        big = _solid(50, 50, (0, 0, 0, 255))
        small = _solid(20, 10, (0, 0, 0, 255))
        canvas = compose_side_by_side((big, small, small), 20, 10, padding=10)
        # The gap between panel 1 and panel 2 stays white
        assert canvas.getpixel((35, 15)) == PAD_COLOR
        assert canvas.getpixel((10, 10)) == (0, 0, 0, 255)


class TestDiffFiles:
    """Tests for diff_files."""

    def test_writes_outputs(self, tmp_path: Path) -> None:
        base_path = tmp_path / "base.png"
        compare_path = tmp_path / "compare.png"
        _solid(10, 10, (255, 255, 255, 255)).save(base_path)
        _with_top_rows(10, 10, 1, (0, 0, 0, 255)).save(compare_path)

        bundle = diff_files(
            base_path,
            compare_path,
            tmp_path / "out" / "diff.png",
            tmp_path / "out" / "comparison.png",
        )

        assert bundle.diff_percentage == pytest.approx(10.0)
        assert Path(bundle.diff).exists()
        assert Path(bundle.side_by_side).exists()
        assert bundle.to_dict()["diffPercentage"] == bundle.diff_percentage
