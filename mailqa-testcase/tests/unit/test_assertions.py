"""Unit tests for assertion predicates."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import patch

import pytest

from mailqa_core.types.assertion import ScreenshotBundle
from mailqa_core.types.template import CompilationIssue

from mailqa_testcase import assertions

BASE_HTML = (
    "<!DOCTYPE html><html><head><style>a{color:#2563eb}</style></head>"
    '<body><h1 style="color:#1f2937">Hello there</h1>'
    '<a class="button" style="background:#2563EB">Get Started Now</a></body></html>'
)
PARTNER_A_HTML = BASE_HTML.replace("#2563eb", "#16a34a").replace("#2563EB", "#16A34A")


class TestDocumentChecks:
    """Tests for document-level predicates."""

    def test_html_exists(self) -> None:
        assert assertions.html_exists(BASE_HTML).passed

    def test_html_missing_quotes_compilation_errors(self) -> None:
        result = assertions.html_exists(
            "", (CompilationIssue(phase="template", message="Unclosed mj-section", line=12),)
        )
        assert not result.passed
        assert result.message.startswith("REGRESSION FAILURE:")
        assert "[template line 12] Unclosed mj-section" in result.message

    def test_tags_are_case_insensitive(self) -> None:
        assert assertions.has_doctype("<!doctype html>").passed
        assert assertions.has_html_tag("<HTML>").passed
        assert assertions.has_body_tag("<Body>").passed
        assert not assertions.has_body_tag("<html></html>").passed

    def test_unresolved_tags(self) -> None:
        assert assertions.no_unresolved_template_tags(BASE_HTML).passed
        result = assertions.no_unresolved_template_tags("<p><%= context.name %></p>")
        assert not result.passed
        assert "found 2 unresolved" in result.message

    def test_structure_valid(self) -> None:
        assert assertions.structure_valid(BASE_HTML).passed
        result = assertions.structure_valid("<html><body></body></html>")
        assert not result.passed
        assert "<!doctype" in result.message
        assert "<head" in result.message

    def test_size_under(self) -> None:
        assert assertions.size_under("x" * 1024, 2).passed
        result = assertions.size_under("x" * 2048, 2)
        assert not result.passed
        assert "found 2.0KB" in result.message

    def test_size_counts_utf8_bytes(self) -> None:
        # 600 two-byte characters are 1200 bytes, over a 1KB limit
        assert not assertions.size_under("é" * 600, 1).passed


class TestColorChecks:
    """Tests for color predicates."""

    def test_variant_with_different_primary_color_fails_both(self) -> None:
        matches = assertions.color_matches(PARTNER_A_HTML, "#2563eb")
        absent = assertions.color_absent(PARTNER_A_HTML, "#16a34a")
        assert not matches.passed
        assert not absent.passed
        assert "Expected color #2563eb" in matches.message
        assert "#16a34a to be absent" in absent.message

    def test_base_colors_pass(self) -> None:
        assert assertions.color_matches(BASE_HTML, "#2563EB").passed
        assert assertions.color_absent(BASE_HTML, "#16a34a").passed


class TestContentChecks:
    """Tests for content predicates."""

    def test_contains_and_absent(self) -> None:
        assert assertions.content_contains("Hello there", "Hello").passed
        assert assertions.content_absent("Hello there", "Greetings").passed

    def test_case_insensitive(self) -> None:
        assert assertions.content_contains("HELLO THERE", "hello").passed
        assert not assertions.content_absent("some greetings", "Greetings").passed

    def test_contains_any(self) -> None:
        assert assertions.content_contains_any("Welcome, Valued Visitor", ("John", "Valued Visitor")).passed
        result = assertions.content_contains_any("Welcome", ("John", "Carebox"))
        assert not result.passed
        assert '"John", "Carebox"' in result.message

    def test_expected_variation_prefix(self) -> None:
        result = assertions.content_contains("Greetings", "Hello", regression=False)
        assert result.message.startswith(assertions.VARIATION_PREFIX)


class TestVisualMatch:
    """Tests for visual_match threshold handling."""

    @staticmethod
    def _bundle(percentage: float) -> ScreenshotBundle:
        return ScreenshotBundle(
            base="b.png", compare="c.png", diff="d.png", side_by_side="s.png",
            diff_percentage=percentage,
        )

    @pytest.mark.parametrize(("percentage", "passed"), [(2.0, True), (2.01, False), (0.0, True)])
    def test_threshold_is_inclusive(self, percentage: float, passed: bool) -> None:
        with patch.object(assertions, "diff_files", return_value=self._bundle(percentage)):
            result = assertions.visual_match(
                Path("b.png"), Path("c.png"), Path("d.png"), Path("s.png"), 2
            )
        assert result.passed is passed
        assert result.screenshots is not None
        assert result.screenshots.diff_percentage == percentage

    def test_failure_message(self) -> None:
        with patch.object(assertions, "diff_files", return_value=self._bundle(7.5)):
            result = assertions.visual_match(
                Path("b.png"), Path("c.png"), Path("d.png"), Path("s.png"), 2
            )
        assert result.message == "REGRESSION FAILURE: Expected visual diff <= 2%, found 7.50%"
