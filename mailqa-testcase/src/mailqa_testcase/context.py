"""Test execution context.

The context gives test procedures read access to the compiled templates of
the run, plus cached visible text and screenshots produced through the
run's render session.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping

from mailqa_core.imagediff import DiffOptions
from mailqa_core.interfaces.renderer import RenderSession
from mailqa_core.markup import extract_text
from mailqa_core.types.template import CompilationIssue, CompilationResult

from mailqa_testcase.testcase import SkipCase

logger = logging.getLogger(__name__)


@dataclass
class TestContext:
    """Shared state for the test cases of one run.

    Attributes:
        compiled: Compilation results keyed by template name.
        screenshot_dir: Directory for screenshots and diff images.
        render: Open render session, or None when rendering is unavailable.
        regression: Failure messages use the regression policy wording.
        visual_threshold_percent: Maximum diff percentage for visual matches.
        size_limit_kb: HTML size limit for size checks.
        diff_options: Image comparison settings.
    """

    compiled: Mapping[str, CompilationResult]
    screenshot_dir: Path
    render: RenderSession | None = None
    regression: bool = True
    visual_threshold_percent: float = 2.0
    size_limit_kb: float = 102.0
    diff_options: DiffOptions = field(default_factory=DiffOptions)
    _text_cache: dict[str, str] = field(default_factory=dict, init=False, repr=False)
    _screenshot_cache: dict[str, Path] = field(default_factory=dict, init=False, repr=False)

    def html(self, template: str) -> str:
        """Return the compiled HTML of a template (empty if it did not compile)."""
        result = self.compiled.get(template)
        return result.html if result is not None else ""

    def errors(self, template: str) -> tuple[CompilationIssue, ...]:
        """Return the compilation issues of a template."""
        result = self.compiled.get(template)
        if result is None:
            return (CompilationIssue(phase="template", message=f"Template not compiled: {template}"),)
        return result.errors

    async def text(self, template: str) -> str:
        """Return the visible text of a template.

        Uses the render session when available, otherwise strips the markup.
        """
        if template not in self._text_cache:
            html = self.html(template)
            if self.render is not None and html:
                text = await self.render.visible_text(html)
            else:
                text = extract_text(html)
            self._text_cache[template] = text
        return self._text_cache[template]

    async def screenshot(self, template: str) -> Path:
        """Return a full-page screenshot of a template, rendering it once.

        Raises:
            SkipCase: If no render session is available.
        """
        if self.render is None:
            raise SkipCase("No render session available for screenshots")
        if template not in self._screenshot_cache:
            path = self.screenshot_dir / f"{template}.png"
            path.parent.mkdir(parents=True, exist_ok=True)
            logger.debug("Capturing screenshot of %s", template)
            self._screenshot_cache[template] = await self.render.screenshot(
                self.html(template), path
            )
        return self._screenshot_cache[template]

    def comparison_paths(self, variant: str) -> tuple[Path, Path]:
        """Return the diff and side-by-side image paths for a variant."""
        return (
            self.screenshot_dir / f"diff-{variant}.png",
            self.screenshot_dir / f"comparison-{variant}.png",
        )
