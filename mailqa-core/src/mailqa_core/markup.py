"""HTML inspection helpers shared by assertions and the structural diff.

These functions are deterministic and operate on compiled HTML strings:

- extract_text: visible text with tags, styles, and scripts removed
- extract_colors: hex and rgb() color tokens, lower-cased
- analyze_structure: element counts used for structural comparison
- find_unresolved_tags: leftover template delimiters
- find_template_variables: ``context.*`` placeholders in template source
"""

from __future__ import annotations

import html
import re
from dataclasses import dataclass
from typing import Any

_STYLE_RE = re.compile(r"<style[^>]*>.*?</style>", re.IGNORECASE | re.DOTALL)
_SCRIPT_RE = re.compile(r"<script[^>]*>.*?</script>", re.IGNORECASE | re.DOTALL)
_COMMENT_RE = re.compile(r"<!--.*?-->", re.DOTALL)
_TAG_RE = re.compile(r"<[^>]+>")
_WS_RE = re.compile(r"\s+")

_COLOR_PATTERNS = (
    re.compile(r"#[0-9a-fA-F]{6}\b"),
    re.compile(r"#[0-9a-fA-F]{3}\b"),
    re.compile(r"rgb\(\s*\d+\s*,\s*\d+\s*,\s*\d+\s*\)", re.IGNORECASE),
)

_UNRESOLVED_RE = re.compile(r"<%|%>")
_VARIABLE_RE = re.compile(r"<%[=-]\s*context\.(\w+)\s*%>")


def extract_text(markup: str) -> str:
    """Return the visible text of an HTML document.

    Styles, scripts, comments, and tags are removed, entities are decoded,
    and whitespace runs collapse to single spaces.

    Args:
        markup: HTML document.

    Returns:
        Normalized visible text.
    """
    text = _STYLE_RE.sub("", markup)
    text = _SCRIPT_RE.sub("", text)
    text = _COMMENT_RE.sub("", text)
    text = _TAG_RE.sub(" ", text)
    text = html.unescape(text).replace("\xa0", " ")
    return _WS_RE.sub(" ", text).strip()


def extract_colors(markup: str) -> list[str]:
    """Return the distinct color tokens in a document, in first-seen order.

    Args:
        markup: HTML document.

    Returns:
        Lower-cased hex (#rrggbb, #rgb) and rgb(...) tokens.
    """
    seen: dict[str, None] = {}
    for pattern in _COLOR_PATTERNS:
        for match in pattern.findall(markup):
            seen.setdefault(match.lower(), None)
    return list(seen)


@dataclass(frozen=True)
class StructureSummary:
    """Element counts of a compiled email.

    Attributes:
        sections: Number of ``<table`` elements (MJML sections compile to tables).
        buttons: Elements whose class mentions "button".
        images: Number of ``<img`` elements.
        links: Number of ``<a`` elements.
        tables: Number of ``<table`` elements with a role attribute of presentation.
    """

    sections: int = 0
    buttons: int = 0
    images: int = 0
    links: int = 0
    tables: int = 0

    def to_dict(self) -> dict[str, int]:
        """Convert to dictionary for serialization."""
        return {
            "sections": self.sections,
            "buttons": self.buttons,
            "images": self.images,
            "links": self.links,
            "tables": self.tables,
        }

    def differences(self, other: StructureSummary) -> list[dict[str, Any]]:
        """List the fields whose counts differ from another summary.

        Args:
            other: Summary of the compared document.

        Returns:
            One ``{"element", "base", "compare"}`` mapping per differing field.
        """
        mine = self.to_dict()
        theirs = other.to_dict()
        return [
            {"element": key, "base": value, "compare": theirs[key]}
            for key, value in mine.items()
            if theirs[key] != value
        ]


def analyze_structure(markup: str) -> StructureSummary:
    """Count the structural elements of a compiled email."""
    return StructureSummary(
        sections=len(re.findall(r"<table", markup, re.IGNORECASE)),
        buttons=len(re.findall(r'class="[^"]*button[^"]*"', markup, re.IGNORECASE)),
        images=len(re.findall(r"<img", markup, re.IGNORECASE)),
        links=len(re.findall(r"<a\s", markup, re.IGNORECASE)),
        tables=len(re.findall(r'<table[^>]*role="presentation"', markup, re.IGNORECASE)),
    )


def find_unresolved_tags(markup: str) -> list[str]:
    """Return leftover template delimiters ("<%" or "%>") in order of appearance."""
    return _UNRESOLVED_RE.findall(markup)


def find_template_variables(source: str) -> list[str]:
    """Return the distinct ``context.*`` variable names used by template source."""
    return list(dict.fromkeys(_VARIABLE_RE.findall(source)))
