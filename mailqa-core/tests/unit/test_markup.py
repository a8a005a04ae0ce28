"""Unit tests for HTML inspection helpers."""

from __future__ import annotations

from mailqa_core.markup import (
    StructureSummary,
    analyze_structure,
    extract_colors,
    extract_text,
    find_template_variables,
    find_unresolved_tags,
)

SAMPLE = """<!doctype html>
<html><head><style>.x { color: #FF0000; }</style>
<script>var greeting = "Greetings";</script></head>
<body>
  <!-- hidden comment -->
  <table role="presentation"><tr><td style="background:#2563EB">
    <h1>Hello&nbsp;there</h1>
    <p>Fish &amp; chips</p>
    <a href="https://example.com" class="cta-button">Get Started Now</a>
    <img src="logo.png">
  </td></tr></table>
</body></html>"""


class TestExtractText:
    """Tests for extract_text."""

    def test_strips_tags_styles_and_scripts(self) -> None:
        text = extract_text(SAMPLE)
        assert "Hello there" in text
        assert "Greetings" not in text
        assert "color" not in text
        assert "hidden comment" not in text

    def test_decodes_entities(self) -> None:
        assert "Fish & chips" in extract_text(SAMPLE)

    def test_collapses_whitespace(self) -> None:
        assert extract_text("<p>a\n\n   b</p>") == "a b"


class TestExtractColors:
    """Tests for extract_colors."""

    def test_hex_and_rgb(self) -> None:
        colors = extract_colors('<p style="color:#ABC;background:RGB(1, 2, 3)">#2563eb</p>')
        assert colors == ["#2563eb", "#abc", "rgb(1, 2, 3)"]

    def test_lowercases_and_dedupes(self) -> None:
        assert extract_colors("#16A34A #16a34a") == ["#16a34a"]


class TestAnalyzeStructure:
    """Tests for analyze_structure."""

    def test_counts(self) -> None:
        summary = analyze_structure(SAMPLE)
        assert summary.sections == 1
        assert summary.tables == 1
        assert summary.buttons == 1
        assert summary.links == 1
        assert summary.images == 1

    def test_differences(self) -> None:
        base = StructureSummary(sections=3, buttons=1)
        other = StructureSummary(sections=3, buttons=2)
        assert base.differences(other) == [{"element": "buttons", "base": 1, "compare": 2}]
        assert base.differences(base) == []


class TestTemplateTags:
    """Tests for template delimiter helpers."""

    def test_unresolved_tags(self) -> None:
        assert find_unresolved_tags("<p><%= context.name %></p>") == ["<%", "%>"]
        assert find_unresolved_tags("<p>ok</p>") == []

    def test_template_variables(self) -> None:
        source = "<%= context.visitorName %> <%- context.companyName %> <%= context.visitorName %>"
        assert find_template_variables(source) == ["visitorName", "companyName"]
