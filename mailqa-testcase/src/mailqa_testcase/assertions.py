"""Deterministic assertion predicates.

Each predicate takes rendered artifacts plus a declarative expectation and
returns an AssertionResult. Predicates never raise for bad input; a missing
or empty artifact is simply a failed check.

Failure messages state the expected and actual condition. In regression
mode they carry a ``REGRESSION FAILURE:`` prefix; in expected-variation
mode (``regression=False``) they carry ``UNEXPECTED:`` so reports can tell
the two policies apart.

Example:
    text = extract_text(html)
    results = [
        content_contains(text, "Hello"),
        content_absent(text, "Greetings"),
        color_matches(html, "#2563eb"),
    ]
"""

from __future__ import annotations

from pathlib import Path
from typing import Iterable, Sequence

from mailqa_core.imagediff import DiffOptions, diff_files
from mailqa_core.markup import find_unresolved_tags
from mailqa_core.types.assertion import AssertionResult
from mailqa_core.types.template import CompilationIssue

REGRESSION_PREFIX = "REGRESSION FAILURE: "
VARIATION_PREFIX = "UNEXPECTED: "


def _fail(name: str, message: str, regression: bool) -> AssertionResult:
    prefix = REGRESSION_PREFIX if regression else VARIATION_PREFIX
    return AssertionResult(name=name, passed=False, message=f"{prefix}{message}")


def _ok(name: str, message: str) -> AssertionResult:
    return AssertionResult(name=name, passed=True, message=message)


def _issues_text(errors: Iterable[CompilationIssue]) -> str:
    parts = []
    for issue in errors:
        where = f" line {issue.line}" if issue.line is not None else ""
        parts.append(f"[{issue.phase}{where}] {issue.message}")
    return "; ".join(parts)


def html_exists(
    html: str,
    errors: Sequence[CompilationIssue] = (),
    *,
    regression: bool = True,
) -> AssertionResult:
    """Pass iff the compiled HTML is non-empty.

    Args:
        html: Compiled HTML.
        errors: Compilation issues, quoted in the failure message.
        regression: Use the regression failure prefix.
    """
    name = "HTML output exists"
    if html:
        return _ok(name, f"Compiled HTML present ({len(html.encode('utf-8'))} bytes)")
    detail = f" Compilation errors: {_issues_text(errors)}" if errors else ""
    return _fail(name, f"Expected compiled HTML, found empty output.{detail}", regression)


def _contains_tag(html: str, token: str, name: str, regression: bool) -> AssertionResult:
    if token in html.lower():
        return _ok(name, f"Found {token}")
    return _fail(name, f"Expected {token} in HTML, not found", regression)


def has_doctype(html: str, *, regression: bool = True) -> AssertionResult:
    """Pass iff the HTML declares a DOCTYPE (case-insensitive)."""
    return _contains_tag(html, "<!doctype", "Has DOCTYPE", regression)


def has_html_tag(html: str, *, regression: bool = True) -> AssertionResult:
    """Pass iff the HTML contains an ``<html`` tag (case-insensitive)."""
    return _contains_tag(html, "<html", "Has <html> tag", regression)


def has_body_tag(html: str, *, regression: bool = True) -> AssertionResult:
    """Pass iff the HTML contains a ``<body`` tag (case-insensitive)."""
    return _contains_tag(html, "<body", "Has <body> tag", regression)


def no_unresolved_template_tags(html: str, *, regression: bool = True) -> AssertionResult:
    """Fail if compiled output still contains ``<%`` or ``%>`` delimiters."""
    name = "No unresolved template tags"
    leftovers = find_unresolved_tags(html)
    if not leftovers:
        return _ok(name, "All template tags resolved")
    return _fail(
        name,
        f"Expected no template delimiters, found {len(leftovers)} unresolved "
        f"({', '.join(sorted(set(leftovers)))})",
        regression,
    )


def color_matches(html: str, expected: str, *, regression: bool = True) -> AssertionResult:
    """Pass iff the hex color token appears in the HTML (case-insensitive)."""
    name = f"Uses color {expected.lower()}"
    if expected.lower() in html.lower():
        return _ok(name, f"Found expected color {expected.lower()}")
    return _fail(name, f"Expected color {expected.lower()} in HTML, not found", regression)


def color_absent(html: str, forbidden: str, *, regression: bool = True) -> AssertionResult:
    """Pass iff the hex color token does not appear in the HTML (case-insensitive)."""
    name = f"Does not use color {forbidden.lower()}"
    if forbidden.lower() not in html.lower():
        return _ok(name, f"Color {forbidden.lower()} not present")
    return _fail(
        name, f"Expected color {forbidden.lower()} to be absent, found in HTML", regression
    )


def content_contains(text: str, expected: str, *, regression: bool = True) -> AssertionResult:
    """Pass iff the visible text contains the expected phrase (case-insensitive)."""
    name = f'Contains "{expected}"'
    if expected.lower() in text.lower():
        return _ok(name, f'Found "{expected}" in visible text')
    return _fail(name, f'Expected "{expected}" in visible text, not found', regression)


def content_absent(text: str, forbidden: str, *, regression: bool = True) -> AssertionResult:
    """Pass iff the visible text does not contain the phrase (case-insensitive)."""
    name = f'Does not contain "{forbidden}"'
    if forbidden.lower() not in text.lower():
        return _ok(name, f'"{forbidden}" not present in visible text')
    return _fail(
        name, f'Expected "{forbidden}" to be absent, found in visible text', regression
    )


def content_contains_any(
    text: str, candidates: Sequence[str], *, regression: bool = True
) -> AssertionResult:
    """Pass iff the visible text contains at least one candidate phrase."""
    name = "Personalization rendered"
    lowered = text.lower()
    found = [c for c in candidates if c.lower() in lowered]
    if found:
        return _ok(name, f'Found personalized value "{found[0]}"')
    options = ", ".join(f'"{c}"' for c in candidates)
    return _fail(name, f"Expected one of {options} in visible text, none found", regression)


def structure_valid(html: str, *, regression: bool = True) -> AssertionResult:
    """Pass iff DOCTYPE, ``<html>``, ``<head>``, and ``<body>`` are all present."""
    name = "Valid document structure"
    lowered = html.lower()
    required = ("<!doctype", "<html", "<head", "<body")
    missing = [token for token in required if token not in lowered]
    if not missing:
        return _ok(name, "DOCTYPE, <html>, <head>, and <body> present")
    return _fail(
        name,
        f"Expected DOCTYPE, <html>, <head>, and <body>; missing {', '.join(missing)}",
        regression,
    )


def size_under(html: str, limit_kb: float, *, regression: bool = True) -> AssertionResult:
    """Pass iff the UTF-8 size of the HTML is strictly under the limit in KB."""
    name = f"Size under {limit_kb:g}KB"
    size_kb = len(html.encode("utf-8")) / 1024
    if size_kb < limit_kb:
        return _ok(name, f"Size {size_kb:.1f}KB is under {limit_kb:g}KB")
    return _fail(name, f"Expected size under {limit_kb:g}KB, found {size_kb:.1f}KB", regression)


def visual_match(
    baseline: Path,
    candidate: Path,
    diff_path: Path,
    side_by_side_path: Path,
    threshold_percent: float,
    *,
    options: DiffOptions | None = None,
    regression: bool = True,
) -> AssertionResult:
    """Compare two screenshots; pass iff the diff percentage is within threshold.

    The boundary is inclusive: a diff of exactly ``threshold_percent`` passes.

    Args:
        baseline: Base template screenshot.
        candidate: Compared template screenshot.
        diff_path: Where to write the difference image.
        side_by_side_path: Where to write the three-panel image.
        threshold_percent: Maximum allowed mismatched-pixel percentage.
        options: Image comparison settings.
        regression: Use the regression failure prefix.

    Returns:
        AssertionResult carrying the screenshot bundle.
    """
    name = f"Visual match within {threshold_percent:g}%"
    bundle = diff_files(baseline, candidate, diff_path, side_by_side_path, options)
    if bundle.diff_percentage <= threshold_percent:
        return AssertionResult(
            name=name,
            passed=True,
            message=f"Visual diff {bundle.diff_percentage:.2f}% is within {threshold_percent:g}%",
            screenshots=bundle,
        )
    prefix = REGRESSION_PREFIX if regression else VARIATION_PREFIX
    return AssertionResult(
        name=name,
        passed=False,
        message=(
            f"{prefix}Expected visual diff <= {threshold_percent:g}%, "
            f"found {bundle.diff_percentage:.2f}%"
        ),
        screenshots=bundle,
    )
