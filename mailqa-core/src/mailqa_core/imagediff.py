"""Pixel-level image comparison.

Two screenshots are padded to a common canvas, compared pixel by pixel with
an anti-aliasing tolerant matcher, and composed into a three-panel
(base | compare | diff) image.

Padding never scales or crops: the smaller image is extended with opaque
white, anchored at the top-left corner. The diff percentage is the share
of mismatched pixels over the whole canvas, rounded to two decimals.

Example:
    result = diff_images(Image.open("base.png"), Image.open("partner_a.png"))
    print(f"{result.diff_percentage}% of pixels differ")
    result.side_by_side.save("comparison-partner_a.png")
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from PIL import Image, ImageDraw
from pixelmatch.contrib.PIL import pixelmatch

from mailqa_core.types.assertion import ScreenshotBundle

logger = logging.getLogger(__name__)

PAD_COLOR = (255, 255, 255, 255)
DIFF_COLOR = (255, 0, 128)
AA_COLOR = (255, 255, 0)
PANEL_LABELS = ("Base", "Compare", "Diff")


@dataclass(frozen=True)
class DiffOptions:
    """Comparison and composition settings.

    Attributes:
        threshold: Per-pixel color distance (0..1) below which pixels match.
        include_aa: Count anti-aliased pixels as mismatches.
        alpha: Opacity of matched pixels drawn into the diff image.
        diff_color: Highlight for mismatched pixels.
        aa_color: Highlight for anti-aliased pixels.
        panel_padding: Gap around and between side-by-side panels.
        label_height: Height reserved above the panels for captions (0 for none).
    """

    threshold: float = 0.1
    include_aa: bool = False
    alpha: float = 0.1
    diff_color: tuple[int, int, int] = DIFF_COLOR
    aa_color: tuple[int, int, int] = AA_COLOR
    panel_padding: int = 10
    label_height: int = 0


@dataclass(frozen=True)
class ImageDiffResult:
    """Outcome of comparing two images.

    Attributes:
        diff_percentage: Mismatched pixels / canvas pixels * 100, 2 decimals.
        mismatched_pixels: Raw mismatch count.
        width: Canvas width.
        height: Canvas height.
        diff_image: Highlighted difference image (canvas size).
        side_by_side: Three-panel composition.
    """

    diff_percentage: float
    mismatched_pixels: int
    width: int
    height: int
    diff_image: Image.Image
    side_by_side: Image.Image


def pad_image(image: Image.Image, width: int, height: int) -> Image.Image:
    """Pad an image with opaque white to the given canvas size.

    The image is anchored at (0, 0). Images already at least the requested
    size are returned as RGBA copies cropped to the canvas.

    Args:
        image: Source image.
        width: Canvas width.
        height: Canvas height.

    Returns:
        RGBA image of exactly width x height.
    """
    rgba = image.convert("RGBA")
    if rgba.size == (width, height):
        return rgba
    canvas = Image.new("RGBA", (width, height), PAD_COLOR)
    canvas.paste(rgba.crop((0, 0, min(rgba.width, width), min(rgba.height, height))), (0, 0))
    return canvas


def compose_side_by_side(
    panels: tuple[Image.Image, Image.Image, Image.Image],
    width: int,
    height: int,
    padding: int = 10,
    label_height: int = 0,
) -> Image.Image:
    """Lay out three panels left to right on a white canvas.

    Each panel is clipped to width x height; pixels outside the canvas are
    dropped by the paste.

    Args:
        panels: Base, compare, and diff images.
        width: Panel width.
        height: Panel height.
        padding: Gap around and between panels.
        label_height: Caption strip height above the panels.

    Returns:
        RGBA image of (3 * width + 4 * padding) x (height + 2 * padding + label_height).
    """
    total_width = width * 3 + padding * 4
    total_height = height + padding * 2 + label_height
    canvas = Image.new("RGBA", (total_width, total_height), PAD_COLOR)
    draw = ImageDraw.Draw(canvas) if label_height > 0 else None

    for index, panel in enumerate(panels):
        x = padding + index * (width + padding)
        clipped = panel.convert("RGBA").crop((0, 0, width, height))
        canvas.paste(clipped, (x, padding + label_height))
        if draw is not None:
            draw.text((x, padding), PANEL_LABELS[index], fill=(51, 51, 51, 255))

    return canvas


def diff_images(
    base: Image.Image,
    compare: Image.Image,
    options: DiffOptions | None = None,
) -> ImageDiffResult:
    """Compare two images pixel by pixel.

    Args:
        base: Reference image.
        compare: Image compared against the reference.
        options: Comparison settings; defaults are used when omitted.

    Returns:
        ImageDiffResult with percentage, diff image, and composition.
    """
    opts = options or DiffOptions()
    width = max(base.width, compare.width)
    height = max(base.height, compare.height)

    padded_base = pad_image(base, width, height)
    padded_compare = pad_image(compare, width, height)
    diff = Image.new("RGBA", (width, height), PAD_COLOR)

    total = width * height
    if total == 0:
        mismatched = 0
    else:
        mismatched = pixelmatch(
            padded_base,
            padded_compare,
            diff,
            threshold=opts.threshold,
            includeAA=opts.include_aa,
            alpha=opts.alpha,
            aa_color=opts.aa_color,
            diff_color=opts.diff_color,
        )

    percentage = round(mismatched / total * 100, 2) if total else 0.0
    logger.debug("Compared %dx%d canvas: %d mismatched (%.2f%%)", width, height, mismatched, percentage)

    side_by_side = compose_side_by_side(
        (padded_base, padded_compare, diff),
        width,
        height,
        padding=opts.panel_padding,
        label_height=opts.label_height,
    )
    return ImageDiffResult(
        diff_percentage=percentage,
        mismatched_pixels=mismatched,
        width=width,
        height=height,
        diff_image=diff,
        side_by_side=side_by_side,
    )


def diff_files(
    base_path: Path,
    compare_path: Path,
    diff_path: Path,
    side_by_side_path: Path,
    options: DiffOptions | None = None,
) -> ScreenshotBundle:
    """Compare two PNG files and write the diff and composition images.

    Args:
        base_path: Base screenshot.
        compare_path: Compared screenshot.
        diff_path: Destination for the difference image.
        side_by_side_path: Destination for the three-panel image.
        options: Comparison settings.

    Returns:
        ScreenshotBundle referencing all four files.
    """
    with Image.open(base_path) as base, Image.open(compare_path) as compare:
        result = diff_images(base, compare, options)

    diff_path.parent.mkdir(parents=True, exist_ok=True)
    side_by_side_path.parent.mkdir(parents=True, exist_ok=True)
    result.diff_image.save(diff_path)
    result.side_by_side.save(side_by_side_path)

    return ScreenshotBundle(
        base=str(base_path),
        compare=str(compare_path),
        diff=str(diff_path),
        side_by_side=str(side_by_side_path),
        diff_percentage=result.diff_percentage,
    )
