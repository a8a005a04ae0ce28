"""Report generation agent.

The report is assembled from facts computed upstream: counts, statuses,
and comparison verdicts are written verbatim by deterministic code, and
the completion service only contributes the narrative analysis section.
If the service returns nothing usable, a deterministic analysis is used.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

from mailqa_core.types.common import OverallStatus, RunId, Trigger
from mailqa_testcase.executor import ExecutionResult
from mailqa_testcase.testcase import TestStatus

from mailqa_agents.base import Agent
from mailqa_agents.diff_analyzer import DiffAnalysis
from mailqa_agents.schemas import ChangeAnalysis, TestPlan

SYSTEM_PROMPT = """You write QA reports for email template regression runs. You receive computed
results. Never restate or recompute counts; they are already in the report. Write a concise
markdown analysis with the sections "Key Findings", "Risks", and "Recommendations". Refer to test
cases by their IDs (e.g. TC009)."""

_STATUS_ICONS = {
    OverallStatus.PASSED: "PASSED",
    OverallStatus.WARNING: "WARNING",
    OverallStatus.FAILED: "FAILED",
    OverallStatus.ERROR: "ERROR",
}


@dataclass(frozen=True)
class ReportFacts:
    """Everything upstream phases computed, passed through verbatim.

    Attributes:
        run_id: Run identifier.
        trigger: What started the run.
        duration_seconds: Run duration up to report generation.
        status: Overall status computed by the orchestrator.
        execution: Test execution results.
        diff: Diff analysis.
        change: Change analysis, if the phase ran.
        plan: Test plan, if the phase ran.
    """

    run_id: RunId
    trigger: Trigger
    duration_seconds: float
    status: OverallStatus
    execution: ExecutionResult
    diff: DiffAnalysis
    change: ChangeAnalysis | None = None
    plan: TestPlan | None = None


@dataclass(frozen=True)
class ReportDraft:
    """Markdown report plus whether its analysis was synthesized locally."""

    markdown: str
    degraded: bool = False


def _status_label(facts: ReportFacts) -> str:
    return _STATUS_ICONS[facts.status]


def render_facts(facts: ReportFacts) -> str:
    """Render the deterministic part of the report as markdown.

    Args:
        facts: Upstream results.

    Returns:
        Markdown with the summary, results table, failures, and comparisons.
    """
    totals = facts.execution.totals
    lines = [
        "# Email Template QA Report",
        "",
        f"- **Run:** `{facts.run_id}`",
        f"- **Trigger:** {facts.trigger.value}",
        f"- **Mode:** {facts.execution.mode.value}",
        f"- **Status:** {_status_label(facts)}",
        f"- **Duration:** {facts.duration_seconds:.1f}s",
        "",
        "## Summary",
        "",
        "| Total | Passed | Failed | Warnings | Skipped | Pass Rate |",
        "|------:|-------:|-------:|---------:|--------:|----------:|",
        f"| {totals.total} | {totals.passed} | {totals.failed} | {totals.warnings} "
        f"| {totals.skipped} | {totals.pass_rate:.1f}% |",
        "",
        "## Test Results",
        "",
        "| ID | Test | Suite | Priority | Status |",
        "|----|------|-------|----------|--------|",
    ]
    for result in facts.execution.results:
        status = result.status.value.upper()
        if result.status == TestStatus.PASSED and result.has_warnings:
            status = f"PASSED ({result.warning_count} warnings)"
        lines.append(
            f"| {result.id} | {result.spec.name} | {result.spec.suite} "
            f"| {result.spec.priority.value} | {status} |"
        )

    problems = [
        (result, assertion)
        for result in facts.execution.results
        for assertion in result.assertions
        if not assertion.raw_passed
    ]
    if problems:
        lines += ["", "## Failures and Warnings", ""]
        for result, assertion in problems:
            label = "WARNING" if assertion.is_warning else "FAIL"
            lines.append(f"- **{result.id}** [{label}] {assertion.name}: {assertion.message}")
            if assertion.screenshots is not None:
                shots = assertion.screenshots
                lines.append(
                    f"  - Diff {shots.diff_percentage:.2f}%: "
                    f"[comparison]({shots.side_by_side}) / [diff]({shots.diff})"
                )

    lines += ["", "## Template Comparisons", ""]
    if not facts.diff.comparisons:
        lines.append("No variants compared.")
    for record in facts.diff.comparisons:
        detail = record.error or (
            f"colors +{len(record.added_colors)}/-{len(record.removed_colors)}, "
            f"{record.text_changes} text changes, "
            f"{len(record.structural_differences)} structural differences"
        )
        lines.append(
            f"- **{record.compare_template}** vs {record.base_template}: "
            f"{record.regression_status} ({record.actual_difference.value}; {detail})"
        )
    lines.append(f"\nDiff assessment: **{facts.diff.overall_assessment}**")
    if facts.diff.degraded:
        lines.append("\n> AI analysis degraded: comparison narrative synthesized from the structural diff.")

    if facts.change is not None:
        lines += [
            "",
            "## Change Analysis",
            "",
            f"- Change type: {facts.change.change_type}",
            f"- Affected templates: {', '.join(facts.change.affected_templates) or 'none'}",
            f"- Priority: {facts.change.priority}",
        ]
        lines += [f"- Warning: {w}" for w in facts.change.warnings]

    return "\n".join(lines) + "\n"


def fallback_analysis(facts: ReportFacts) -> str:
    """Return a deterministic analysis section."""
    failed = [r for r in facts.execution.results if r.failed]
    warned = [r for r in facts.execution.results if r.has_warnings]
    lines = ["## Analysis", "", "### Key Findings", ""]
    if not failed and not warned:
        lines.append("- All executed test cases passed.")
    if failed:
        lines.append(f"- Failed: {', '.join(r.id for r in failed)}")
    if warned:
        lines.append(f"- Passed with warnings: {', '.join(r.id for r in warned)}")
    lines += ["", "### Recommendations", ""]
    lines += [f"- {r}" for r in facts.diff.recommendations] or ["- None"]
    return "\n".join(lines) + "\n"


def facts_payload(facts: ReportFacts) -> dict[str, Any]:
    """Return the facts as a JSON-serializable mapping for the prompt."""
    return {
        "runId": str(facts.run_id),
        "trigger": facts.trigger.value,
        "status": facts.status.value,
        "testResults": facts.execution.to_dict(),
        "diffAnalysis": facts.diff.to_dict(),
        "changeAnalysis": facts.change.to_wire() if facts.change is not None else None,
        "testPlan": facts.plan.to_wire() if facts.plan is not None else None,
    }


class ReportGeneratorAgent(Agent):
    """Writes the markdown QA report."""

    name = "reporter"
    system_prompt = SYSTEM_PROMPT

    async def generate(self, facts: ReportFacts) -> ReportDraft:
        """Generate the report markdown.

        Args:
            facts: Upstream results, used verbatim.

        Returns:
            The report draft.

        Raises:
            ProviderError: If the completion service fails.
        """
        header = render_facts(facts)
        prompt = (
            "## Computed results\n"
            f"{json.dumps(facts_payload(facts), indent=2)}\n\n"
            "Write the analysis sections in markdown."
        )
        self.log("Generating report for run %s", facts.run_id)
        completion = await self.send(prompt)
        narrative = completion.text.strip()
        if not narrative:
            self.log("Empty report narrative; using deterministic analysis")
            return ReportDraft(markdown=header + "\n" + fallback_analysis(facts), degraded=True)
        if not narrative.startswith("## Analysis"):
            narrative = "## Analysis\n\n" + narrative
        return ReportDraft(markdown=header + "\n" + narrative + "\n")
