"""Assertion result types.

An assertion is one pass/fail predicate over rendered template artifacts.
Results always carry a non-empty message; failed results state what was
expected and what was found.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class ScreenshotBundle:
    """Images produced by a visual comparison.

    Attributes:
        base: Path of the base template screenshot.
        compare: Path of the compared template screenshot.
        diff: Path of the per-pixel difference image.
        side_by_side: Path of the three-panel comparison image.
        diff_percentage: Mismatched pixel share, rounded to 2 decimals.
    """

    base: str
    compare: str
    diff: str
    side_by_side: str
    diff_percentage: float

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "base": self.base,
            "compare": self.compare,
            "diff": self.diff,
            "sideBySide": self.side_by_side,
            "diffPercentage": self.diff_percentage,
        }


@dataclass(frozen=True)
class AssertionResult:
    """Outcome of one predicate check.

    Attributes:
        name: Short description of the check.
        passed: True if the predicate held.
        message: Rationale; states expected vs. actual when failed.
        screenshots: Visual comparison images, for visual assertions.
    """

    name: str
    passed: bool
    message: str
    screenshots: ScreenshotBundle | None = None

    def __post_init__(self) -> None:
        if not self.message:
            raise ValueError("Assertion message must not be empty")

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        data: dict[str, Any] = {
            "name": self.name,
            "passed": self.passed,
            "message": self.message,
        }
        if self.screenshots is not None:
            data["screenshots"] = self.screenshots.to_dict()
        return data
