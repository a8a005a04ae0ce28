"""Test planning agent.

Summarizes the templates under test and asks the completion service for a
test plan. The returned plan is validated; if it cannot be used, a plan
is synthesized from the regression catalog and flagged with parse_error.
The plan's created_at is always the run timestamp.
"""

from __future__ import annotations

import json
import re
from typing import Any, Mapping, Sequence

from mailqa_core.markup import extract_colors, find_template_variables
from mailqa_core.types.common import RunId
from mailqa_testcase.testcase import TestCaseSpec

from mailqa_agents.base import Agent
from mailqa_agents.result import Fallback
from mailqa_agents.schemas import PlannedSuite, PlannedTestCase, TestPlan

SYSTEM_PROMPT = """You are a QA test planner for MJML email templates. Given the templates, their
variables and colors, and the regression catalog, produce a test plan as one JSON object with the
keys testPlanId, createdAt, templateContext, testSuites (name, description, priority, testCases
with id, name, description, steps, expectedResult, acceptanceCriteria), riskAssessment
(highRiskAreas, mitigations), and summary. Reuse the catalog test case IDs."""

_MJML_ELEMENTS = ("mj-section", "mj-column", "mj-text", "mj-button", "mj-image")


def describe_template(name: str, source: str) -> dict[str, Any]:
    """Summarize a template source for the planner prompt.

    Args:
        name: Template name.
        source: Raw MJML source.

    Returns:
        Variables, colors, and MJML element counts.
    """
    return {
        "name": name,
        "variables": find_template_variables(source),
        "colors": extract_colors(source),
        "structure": {
            element.replace("mj-", ""): len(re.findall(rf"<{element}\b", source))
            for element in _MJML_ELEMENTS
        },
        "lines": source.count("\n") + 1 if source else 0,
    }


def plan_from_catalog(
    run_id: RunId,
    base: str,
    variants: Sequence[str],
    catalog: Sequence[TestCaseSpec],
    reason: str | None = None,
) -> TestPlan:
    """Build a deterministic plan that mirrors the catalog.

    Args:
        run_id: Run identifier.
        base: Base template name.
        variants: Variant template names.
        catalog: Cases selected for the run.
        reason: Why the AI plan was unusable, if it was.

    Returns:
        The synthesized plan.
    """
    suites: dict[str, PlannedSuite] = {}
    for case in catalog:
        suite = suites.setdefault(
            case.suite,
            PlannedSuite(name=case.suite, priority=case.priority.value),
        )
        suite.test_cases.append(
            PlannedTestCase(
                id=case.id,
                name=case.name,
                description=case.description,
                expected_result="All assertions pass",
            )
        )
    return TestPlan(
        test_plan_id=f"plan-{run_id}",
        created_at=run_id.isoformat(),
        template_context={"baseTemplate": base, "variations": list(variants)},
        test_suites=list(suites.values()),
        summary=f"{len(catalog)} regression test cases across {len(suites)} suites",
        parse_error=reason,
    )


class TestPlannerAgent(Agent):
    """Produces the test plan for a run."""

    name = "planner"
    system_prompt = SYSTEM_PROMPT

    async def create_plan(
        self,
        run_id: RunId,
        base: str,
        variants: Sequence[str],
        sources: Mapping[str, str],
        catalog: Sequence[TestCaseSpec],
    ) -> TestPlan:
        """Ask for a test plan, falling back to the catalog plan.

        Args:
            run_id: Run identifier; its timestamp becomes createdAt.
            base: Base template name.
            variants: Variant template names.
            sources: Raw template sources keyed by name.
            catalog: Cases selected for the run.

        Returns:
            The validated or synthesized plan.

        Raises:
            ProviderError: If the completion service fails.
        """
        templates = [describe_template(name, source) for name, source in sources.items()]
        prompt = (
            f"## Base template\n{base}\n\n"
            f"## Variations\n{json.dumps(list(variants))}\n\n"
            f"## Templates\n{json.dumps(templates, indent=2)}\n\n"
            f"## Regression catalog\n{json.dumps([c.to_dict() for c in catalog], indent=2)}\n\n"
            "Create the test plan in JSON format."
        )
        self.log("Planning tests for %d templates", len(templates))
        result = await self.ask_json(prompt, TestPlan)
        if isinstance(result, Fallback):
            return plan_from_catalog(run_id, base, variants, catalog, reason=result.reason)

        plan = result.value.model_copy(update={"created_at": run_id.isoformat()})
        self.log("Plan %s: %d suites, %d cases", plan.test_plan_id, len(plan.test_suites), plan.total_cases)
        return plan
