"""MJML template compiler.

Compilation has two phases:

1. variables: EJS-style output tags (``<%= path %>`` escaped, ``<%- path %>``
   raw) are replaced by values looked up in the render data.
2. template: the resulting MJML is compiled to HTML with ``mjml_to_html``.

Problems in either phase are returned as CompilationIssue data; compile()
never raises for bad template source.
"""

from __future__ import annotations

import html
import io
import json
import logging
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Mapping

from mjml import mjml_to_html

from mailqa_core.errors import CompilationError
from mailqa_core.interfaces.compiler import TemplateCompiler
from mailqa_core.types.common import TemplateName
from mailqa_core.types.template import CompilationIssue, CompilationResult

logger = logging.getLogger(__name__)

RESULTS_FILE = "compilation-results.json"

_OUTPUT_TAG_RE = re.compile(r"<%([=-])\s*(.*?)\s*%>", re.DOTALL)
_PATH_RE = re.compile(r"^[A-Za-z_]\w*(?:\.[A-Za-z_]\w*)*$")


def build_render_data(variables: Mapping[str, Any], year: int | None = None) -> dict[str, Any]:
    """Build the data visible to template tags.

    ``context`` holds the configured variables. The grouped ``company``,
    ``visitor`` and ``urls`` objects and ``currentYear`` are derived from
    them so shared partials can use either form.

    Args:
        variables: Configured template variables.
        year: Value of currentYear (defaults to the current UTC year).

    Returns:
        Render data mapping.
    """
    current_year = year if year is not None else datetime.now(timezone.utc).year
    context = {**variables, "currentYear": variables.get("currentYear", current_year)}
    return {
        "context": context,
        "company": {
            "name": context.get("companyName", ""),
            "address": context.get("companyAddress", ""),
            "logoUrl": context.get("logoUrl", ""),
            "supportEmail": context.get("supportEmail", ""),
        },
        "visitor": {"name": context.get("visitorName", "")},
        "urls": {
            "cta": context.get("ctaUrl", ""),
            "privacy": context.get("privacyUrl", ""),
            "terms": context.get("termsUrl", ""),
            "unsubscribe": context.get("unsubscribeUrl", ""),
        },
        "currentYear": context["currentYear"],
    }


def _line_of(source: str, offset: int) -> int:
    return source.count("\n", 0, offset) + 1


def _lookup(data: Mapping[str, Any], path: str) -> Any:
    value: Any = data
    for part in path.split("."):
        if not isinstance(value, Mapping) or part not in value:
            raise KeyError(path)
        value = value[part]
    return value


def render_variables(source: str, data: Mapping[str, Any]) -> str:
    """Substitute EJS output tags with values from the render data.

    Args:
        source: Template source.
        data: Render data from build_render_data().

    Returns:
        Source with every output tag replaced.

    Raises:
        CompilationError: If a tag uses an unsupported expression or an
            undefined variable.
    """

    def substitute(match: re.Match[str]) -> str:
        kind, expression = match.group(1), match.group(2)
        line = _line_of(source, match.start())
        if not _PATH_RE.match(expression):
            raise CompilationError("variables", f"Unsupported expression: {expression}", line)
        try:
            value = _lookup(data, expression)
        except KeyError:
            raise CompilationError("variables", f"{expression} is not defined", line) from None
        text = "" if value is None else str(value)
        return html.escape(text) if kind == "=" else text

    return _OUTPUT_TAG_RE.sub(substitute, source)


class MjmlCompiler:
    """TemplateCompiler backed by the ``mjml`` package.

    Args:
        year: Fixed currentYear value (mainly for tests).
    """

    def __init__(self, year: int | None = None) -> None:
        self._year = year

    def compile(
        self,
        name: TemplateName,
        source: str,
        variables: Mapping[str, Any],
    ) -> CompilationResult:
        """Compile one template, returning problems as data."""
        try:
            mjml_source = render_variables(source, build_render_data(variables, self._year))
        except CompilationError as exc:
            logger.warning("Variable error in %s (line %s): %s", name, exc.line, exc.message)
            return CompilationResult(
                template=name,
                html="",
                errors=(CompilationIssue(phase=exc.phase, message=exc.message, line=exc.line),),
            )

        try:
            result = mjml_to_html(io.StringIO(mjml_source))
        except Exception as exc:  # pylint: disable=broad-except
            logger.warning("MJML error in %s: %s", name, exc)
            return CompilationResult(
                template=name,
                html="",
                errors=(CompilationIssue(phase="template", message=f"MJML compilation error: {exc}"),),
            )

        for error in result.errors or ():
            logger.warning("MJML validation warning in %s: %s", name, error)
        if not result.html:
            return CompilationResult(
                template=name,
                html="",
                errors=(CompilationIssue(phase="template", message="MJML produced no HTML"),),
            )
        return CompilationResult(template=name, html=result.html)


def compile_all(
    compiler: TemplateCompiler,
    template_paths: Mapping[str, Path],
    variables: Mapping[str, Any],
    output_dir: Path,
) -> dict[str, CompilationResult]:
    """Compile templates and write their HTML and a results summary.

    A missing or undecodable source file, or a compiler that raises, becomes
    a template-phase issue for that template only; the other templates are
    still compiled.

    Args:
        compiler: Template compiler.
        template_paths: Source paths keyed by template name, in run order.
        variables: Template variable context.
        output_dir: Directory for ``<name>.html`` and the results JSON.

    Returns:
        Compilation results keyed by template name.
    """
    output_dir.mkdir(parents=True, exist_ok=True)
    results: dict[str, CompilationResult] = {}
    for name, path in template_paths.items():
        template = TemplateName(name)
        try:
            source = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            logger.warning("Cannot read template %s: %s", path, exc)
            results[name] = _failed(template, f"Cannot read {path.name}: {exc}")
            continue

        try:
            result = compiler.compile(template, source, variables)
        except Exception as exc:  # pylint: disable=broad-except
            logger.exception("Compiler error in %s", name)
            result = _failed(template, f"Compiler error: {exc}")
        results[name] = result
        if result.html:
            (output_dir / f"{name}.html").write_text(result.html, encoding="utf-8")
            logger.info("Compiled %s (%d bytes)", name, len(result.html.encode("utf-8")))

    summary = [r.to_dict() for r in results.values()]
    (output_dir / RESULTS_FILE).write_text(json.dumps(summary, indent=2), encoding="utf-8")
    failed = [name for name, r in results.items() if not r.success]
    if failed:
        logger.warning("Compilation failed for: %s", ", ".join(failed))
    return results


def _failed(template: TemplateName, message: str) -> CompilationResult:
    return CompilationResult(
        template=template,
        html="",
        errors=(CompilationIssue(phase="template", message=message),),
    )
