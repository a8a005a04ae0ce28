"""Template compiler interface.

Protocols:
    TemplateCompiler: Turn template source plus variables into HTML.
"""

# pylint: disable=unnecessary-ellipsis  # Ellipsis required for Protocol method stubs

from __future__ import annotations

from typing import Any, Mapping, Protocol

from mailqa_core.types.common import TemplateName
from mailqa_core.types.template import CompilationResult


class TemplateCompiler(Protocol):
    """Protocol for template compilers.

    Implementations must never raise for bad template source. Problems are
    returned in CompilationResult.errors with an empty or partial HTML body.
    """

    def compile(
        self,
        name: TemplateName,
        source: str,
        variables: Mapping[str, Any],
    ) -> CompilationResult:
        """Compile a template.

        Args:
            name: Template name, used to label the result.
            source: Raw template source.
            variables: Variable context available to placeholders.

        Returns:
            The compilation result, including any errors as data.
        """
        ...
