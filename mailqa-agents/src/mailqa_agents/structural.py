"""Deterministic structural diff between a base template and a variant.

This is the ground truth for comparison verdicts. It uses no AI:

- colors: tokens added to or removed from the variant
- content: word-level change hunks between the visible texts
- structure: per-field element count differences

The actual difference classification is NONE, STYLING (colors only),
CONTENT (text or structure only), or BOTH. In regression mode a comparison
passes only when the classification is NONE.
"""

from __future__ import annotations

import difflib
from dataclasses import dataclass, field
from typing import Any

from mailqa_core.markup import StructureSummary, analyze_structure, extract_colors, extract_text
from mailqa_core.types.common import DifferenceType
from mailqa_core.types.template import CompilationResult

MAX_CONTENT_SAMPLES = 5


@dataclass(frozen=True)
class TemplateSnapshot:
    """Facts extracted from one compiled template.

    Attributes:
        name: Template name.
        html: Compiled HTML.
        colors: Distinct color tokens.
        text: Visible text.
        structure: Element counts.
        error: Why the template could not be loaded, if it could not.
    """

    name: str
    html: str = ""
    colors: tuple[str, ...] = ()
    text: str = ""
    structure: StructureSummary = field(default_factory=StructureSummary)
    error: str | None = None

    @property
    def loaded(self) -> bool:
        """Return True if the template produced HTML."""
        return self.error is None

    @classmethod
    def from_html(cls, name: str, html: str) -> TemplateSnapshot:
        """Extract colors, text, and structure from compiled HTML."""
        return cls(
            name=name,
            html=html,
            colors=tuple(extract_colors(html)),
            text=extract_text(html),
            structure=analyze_structure(html),
        )

    @classmethod
    def from_compilation(cls, result: CompilationResult | None, name: str) -> TemplateSnapshot:
        """Build a snapshot, marking templates that did not compile as failed."""
        if result is None or not result.html:
            return cls(name=name, error=f"Template load failed: {name}")
        return cls.from_html(name, result.html)


@dataclass(frozen=True)
class ComparisonRecord:
    """Immutable diff of one base/variant pair.

    Attributes:
        base_template: Base template name.
        compare_template: Variant template name.
        added_colors: Colors present only in the variant.
        removed_colors: Colors present only in the base.
        text_changes: Number of word-level change hunks.
        content_samples: Up to five human-readable change samples.
        structural_differences: Per-field count differences.
        expected_difference: Declared difference (informational in regression mode).
        actual_difference: Derived classification.
        is_as_expected: Verdict under the active policy.
        error: Load failure, if either template could not be loaded.
    """

    base_template: str
    compare_template: str
    added_colors: tuple[str, ...] = ()
    removed_colors: tuple[str, ...] = ()
    text_changes: int = 0
    content_samples: tuple[str, ...] = ()
    structural_differences: tuple[dict[str, Any], ...] = ()
    expected_difference: DifferenceType = DifferenceType.NONE
    actual_difference: DifferenceType = DifferenceType.NONE
    is_as_expected: bool = True
    error: str | None = None

    @property
    def regression_status(self) -> str:
        """Return "PASS" if the comparison is as expected, else "FAIL"."""
        return "PASS" if self.is_as_expected else "FAIL"

    @property
    def has_color_changes(self) -> bool:
        """Return True if any color was added or removed."""
        return bool(self.added_colors or self.removed_colors)

    @property
    def has_content_changes(self) -> bool:
        """Return True if text or element counts changed."""
        return self.text_changes > 0 or bool(self.structural_differences)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        data: dict[str, Any] = {
            "baseTemplate": self.base_template,
            "compareTemplate": self.compare_template,
            "stylingDifferences": {
                "addedColors": list(self.added_colors),
                "removedColors": list(self.removed_colors),
                "hasChanges": self.has_color_changes,
            },
            "contentDifferences": {
                "textChanges": self.text_changes,
                "samples": list(self.content_samples),
                "hasChanges": self.text_changes > 0,
            },
            "structuralDifferences": list(self.structural_differences),
            "expectedDifferenceType": self.expected_difference.value,
            "actualDifferenceType": self.actual_difference.value,
            "isAsExpected": self.is_as_expected,
            "regressionStatus": self.regression_status,
        }
        if self.error is not None:
            data["error"] = self.error
        return data


def classify_difference(color_changed: bool, content_changed: bool) -> DifferenceType:
    """Combine the two difference dimensions into one classification."""
    if color_changed and content_changed:
        return DifferenceType.BOTH
    if color_changed:
        return DifferenceType.STYLING
    if content_changed:
        return DifferenceType.CONTENT
    return DifferenceType.NONE


def _allowed(expected: DifferenceType) -> set[DifferenceType]:
    if expected == DifferenceType.STRUCTURE:
        expected = DifferenceType.CONTENT
    return {DifferenceType.NONE, expected}


def word_changes(base_text: str, compare_text: str) -> tuple[int, list[str]]:
    """Count word-level change hunks between two texts.

    Args:
        base_text: Visible text of the base template.
        compare_text: Visible text of the variant.

    Returns:
        Number of hunks and up to five "-removed / +added" samples.
    """
    base_words = base_text.split()
    compare_words = compare_text.split()
    matcher = difflib.SequenceMatcher(a=base_words, b=compare_words, autojunk=False)
    hunks = 0
    samples: list[str] = []
    for tag, i1, i2, j1, j2 in matcher.get_opcodes():
        if tag == "equal":
            continue
        hunks += 1
        if len(samples) < MAX_CONTENT_SAMPLES:
            removed = " ".join(base_words[i1:i2])
            added = " ".join(compare_words[j1:j2])
            samples.append(f"-{removed!r} +{added!r}")
    return hunks, samples


def compare_templates(
    base: TemplateSnapshot,
    variant: TemplateSnapshot,
    expected: DifferenceType = DifferenceType.NONE,
    *,
    regression: bool = True,
) -> ComparisonRecord:
    """Compute the structural diff of a variant against the base.

    Args:
        base: Base template snapshot.
        variant: Variant template snapshot.
        expected: Declared difference of the variant.
        regression: Strict regression policy (any difference fails). When
            False, a difference matching the declared one is accepted.

    Returns:
        The comparison record.
    """
    if not base.loaded or not variant.loaded:
        return ComparisonRecord(
            base_template=base.name,
            compare_template=variant.name,
            expected_difference=expected,
            actual_difference=DifferenceType.UNKNOWN,
            is_as_expected=False,
            error=base.error or variant.error,
        )

    base_colors = set(base.colors)
    compare_colors = set(variant.colors)
    added = tuple(c for c in variant.colors if c not in base_colors)
    removed = tuple(c for c in base.colors if c not in compare_colors)

    text_changes, samples = word_changes(base.text, variant.text)
    structure_diffs = tuple(base.structure.differences(variant.structure))

    actual = classify_difference(
        bool(added or removed),
        text_changes > 0 or bool(structure_diffs),
    )
    if regression:
        as_expected = actual == DifferenceType.NONE
    else:
        as_expected = actual in _allowed(expected)

    return ComparisonRecord(
        base_template=base.name,
        compare_template=variant.name,
        added_colors=added,
        removed_colors=removed,
        text_changes=text_changes,
        content_samples=tuple(samples),
        structural_differences=structure_diffs,
        expected_difference=expected,
        actual_difference=actual,
        is_as_expected=as_expected,
    )
