"""Template and compilation types.

A template is a named MJML source unit with variable placeholders. The
compiler turns it into HTML and reports problems as data, never as
exceptions, so a broken template surfaces as failing assertions instead of
a crashed run.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from mailqa_core.types.common import DifferenceType, TemplateName


@dataclass(frozen=True)
class Template:
    """A named template known to the pipeline.

    Attributes:
        name: Stable identifier (file stem).
        path: Path to the MJML source file.
        is_base: True for the reference template all others are compared to.
        expected_difference: Declared difference relative to the base.
    """

    name: TemplateName
    path: Path
    is_base: bool = False
    expected_difference: DifferenceType = DifferenceType.NONE

    def read_source(self) -> str:
        """Return the raw MJML source."""
        return self.path.read_text(encoding="utf-8")


@dataclass(frozen=True)
class CompilationIssue:
    """A single compilation problem.

    Attributes:
        phase: "variables" for placeholder substitution, "template" for MJML.
        message: Human-readable description.
        line: Source line number, if known.
    """

    phase: str
    message: str
    line: int | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {"phase": self.phase, "line": self.line, "message": self.message}


@dataclass(frozen=True)
class CompilationResult:
    """Outcome of compiling one template.

    Attributes:
        template: Name of the compiled template.
        html: Compiled HTML (empty when compilation failed).
        errors: Issues reported by the compiler.
    """

    template: TemplateName
    html: str
    errors: tuple[CompilationIssue, ...] = field(default_factory=tuple)

    @property
    def success(self) -> bool:
        """Return True if HTML was produced without errors."""
        return bool(self.html) and not self.errors

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "template": self.template,
            "success": self.success,
            "size": len(self.html.encode("utf-8")),
            "errors": [e.to_dict() for e in self.errors],
        }
