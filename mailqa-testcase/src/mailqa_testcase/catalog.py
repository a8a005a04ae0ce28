"""Regression test catalog.

The catalog is a static, ordered list of test case specifications built from
the configured base template and its variants. Six suites run one case for
the base template (except the comparison suite) and one case per variant:

    Template Compilation       critical   compiled output is well formed
    EJS Variable Rendering     critical   placeholders resolved, personalization shown
    Color Scheme Validation    critical   base primary color kept, variant colors absent
    Content Validation         high       base greeting and call-to-action kept
    Structure Validation       medium     document structure, size limit
    Cross-Template Comparison  critical   screenshots within the visual threshold

IDs (TC001, TC002, ...) are assigned over the full catalog, so filtering never
renumbers a case. In regression mode every variant must reproduce the base
template's primary color and core text exactly.

Example:
    catalog = build_catalog("site_visitor_welcome", ["site_visitor_welcome_partner_a"])
    selected = filter_catalog(catalog, {"site_visitor_welcome"})
"""

from __future__ import annotations

import asyncio
import functools
from dataclasses import dataclass
from typing import Collection, Sequence

from mailqa_core.types.assertion import AssertionResult
from mailqa_core.types.common import Category, Priority, TemplateName, TestCaseId

from mailqa_testcase import assertions
from mailqa_testcase.context import TestContext
from mailqa_testcase.testcase import Procedure, TestCaseSpec


@dataclass(frozen=True)
class CatalogExpectations:
    """Business expectations baked into the catalog.

    Attributes:
        primary_color: Base template primary color every template must keep.
        forbidden_colors: Colors no template may introduce.
        greeting: Greeting every template must show.
        call_to_action: Button text every template must show.
        forbidden_content: Phrases no template may show.
        personalization: Values of which at least one must be rendered.
    """

    primary_color: str = "#2563eb"
    forbidden_colors: tuple[str, ...] = ("#16a34a",)
    greeting: str = "Hello"
    call_to_action: str = "Get Started Now"
    forbidden_content: tuple[str, ...] = ("Greetings", "Begin Your Journey")
    personalization: tuple[str, ...] = ("John", "Valued Visitor", "Carebox")


def _compilation(template: str) -> Procedure:
    async def procedure(ctx: TestContext) -> list[AssertionResult]:
        html = ctx.html(template)
        regression = ctx.regression
        return [
            assertions.html_exists(html, ctx.errors(template), regression=regression),
            assertions.has_doctype(html, regression=regression),
            assertions.has_html_tag(html, regression=regression),
            assertions.has_body_tag(html, regression=regression),
            assertions.no_unresolved_template_tags(html, regression=regression),
        ]

    return procedure


def _variables(template: str, expect: CatalogExpectations) -> Procedure:
    async def procedure(ctx: TestContext) -> list[AssertionResult]:
        html = ctx.html(template)
        text = await ctx.text(template)
        return [
            assertions.html_exists(html, ctx.errors(template), regression=ctx.regression),
            assertions.no_unresolved_template_tags(html, regression=ctx.regression),
            assertions.content_contains_any(
                text, expect.personalization, regression=ctx.regression
            ),
        ]

    return procedure


def _colors(template: str, is_base: bool, expect: CatalogExpectations) -> Procedure:
    async def procedure(ctx: TestContext) -> list[AssertionResult]:
        html = ctx.html(template)
        results = [assertions.color_matches(html, expect.primary_color, regression=ctx.regression)]
        if not is_base:
            results.extend(
                assertions.color_absent(html, color, regression=ctx.regression)
                for color in expect.forbidden_colors
            )
        return results

    return procedure


def _content(template: str, is_base: bool, expect: CatalogExpectations) -> Procedure:
    async def procedure(ctx: TestContext) -> list[AssertionResult]:
        text = await ctx.text(template)
        results = [
            assertions.content_contains(text, expect.greeting, regression=ctx.regression),
            assertions.content_contains(text, expect.call_to_action, regression=ctx.regression),
        ]
        if not is_base:
            results.extend(
                assertions.content_absent(text, phrase, regression=ctx.regression)
                for phrase in expect.forbidden_content
            )
        return results

    return procedure


def _structure(template: str) -> Procedure:
    async def procedure(ctx: TestContext) -> list[AssertionResult]:
        html = ctx.html(template)
        return [
            assertions.structure_valid(html, regression=ctx.regression),
            assertions.size_under(html, ctx.size_limit_kb, regression=ctx.regression),
            assertions.no_unresolved_template_tags(html, regression=ctx.regression),
        ]

    return procedure


def _comparison(base: str, variant: str) -> Procedure:
    async def procedure(ctx: TestContext) -> list[AssertionResult]:
        base_shot = await ctx.screenshot(base)
        variant_shot = await ctx.screenshot(variant)
        diff_path, side_by_side_path = ctx.comparison_paths(variant)
        # Pixel comparison is CPU bound
        loop = asyncio.get_running_loop()
        visual = await loop.run_in_executor(
            None,
            functools.partial(
                assertions.visual_match,
                base_shot,
                variant_shot,
                diff_path,
                side_by_side_path,
                ctx.visual_threshold_percent,
                options=ctx.diff_options,
                regression=ctx.regression,
            ),
        )
        return [
            AssertionResult(
                name="Screenshots captured",
                passed=True,
                message=f"Captured {base_shot.name} and {variant_shot.name}",
            ),
            visual,
        ]

    return procedure


def build_catalog(
    base: str,
    variants: Sequence[str],
    expectations: CatalogExpectations | None = None,
) -> list[TestCaseSpec]:
    """Build the full, ordered regression catalog.

    Args:
        base: Name of the base template.
        variants: Names of the variant templates, in report order.
        expectations: Business expectations; defaults are used when omitted.

    Returns:
        Test case specs numbered TC001 upward in catalog order.
    """
    expect = expectations or CatalogExpectations()
    everyone = [base, *variants]
    cases: list[TestCaseSpec] = []

    def add(
        name: str,
        description: str,
        suite: str,
        priority: Priority,
        category: Category,
        templates: Sequence[str],
        procedure: Procedure,
    ) -> None:
        cases.append(
            TestCaseSpec(
                id=TestCaseId(f"TC{len(cases) + 1:03d}"),
                name=name,
                description=description,
                suite=suite,
                priority=priority,
                category=category,
                templates=tuple(TemplateName(t) for t in templates),
                procedure=procedure,
            )
        )

    suite = "Template Compilation"
    for template in everyone:
        add(
            f"Compile {template}",
            f"{template} compiles to a complete HTML document without template tags",
            suite,
            Priority.CRITICAL,
            Category.COMPILATION,
            [template],
            _compilation(template),
        )

    suite = "EJS Variable Rendering"
    for template in everyone:
        add(
            f"Render variables in {template}",
            f"{template} resolves every placeholder and shows personalized values",
            suite,
            Priority.CRITICAL,
            Category.RENDERING,
            [template],
            _variables(template, expect),
        )

    suite = "Color Scheme Validation"
    for template in everyone:
        is_base = template == base
        add(
            f"Color scheme of {template}",
            (
                f"{template} uses primary color {expect.primary_color}"
                if is_base
                else f"{template} keeps the base primary color and adds no variant colors"
            ),
            suite,
            Priority.CRITICAL,
            Category.STYLING,
            [template],
            _colors(template, is_base, expect),
        )

    suite = "Content Validation"
    for template in everyone:
        is_base = template == base
        add(
            f"Content of {template}",
            (
                f'{template} shows "{expect.greeting}" and "{expect.call_to_action}"'
                if is_base
                else f"{template} keeps the base greeting and call-to-action text"
            ),
            suite,
            Priority.HIGH,
            Category.CONTENT,
            [template] if is_base else [base, template],
            _content(template, is_base, expect),
        )

    suite = "Structure Validation"
    for template in everyone:
        add(
            f"Structure of {template}",
            f"{template} has a valid document structure within the size limit",
            suite,
            Priority.MEDIUM,
            Category.STRUCTURE,
            [template],
            _structure(template),
        )

    suite = "Cross-Template Comparison"
    for variant in variants:
        add(
            f"Visual comparison {base} vs {variant}",
            f"{variant} renders within the visual threshold of {base}",
            suite,
            Priority.CRITICAL,
            Category.COMPARISON,
            [base, variant],
            _comparison(base, variant),
        )

    return cases


def filter_catalog(
    catalog: Sequence[TestCaseSpec],
    selected: Collection[str] | None,
) -> list[TestCaseSpec]:
    """Select the cases whose referenced templates are all selected.

    Args:
        catalog: Full catalog, in order.
        selected: Selected template names, or None for all templates.

    Returns:
        Matching cases in catalog order, with their original IDs.
    """
    if selected is None:
        return list(catalog)
    chosen = frozenset(selected)
    return [case for case in catalog if case.applies_to(chosen)]


def catalog_templates(catalog: Sequence[TestCaseSpec]) -> list[str]:
    """Return every template referenced by the catalog, in first-seen order."""
    return list(dict.fromkeys(t for case in catalog for t in case.templates))
