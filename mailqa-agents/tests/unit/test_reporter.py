"""Unit tests for the report generation agent."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from mailqa_core.types.assertion import AssertionResult
from mailqa_core.types.common import (
    Category,
    DifferenceType,
    OverallStatus,
    Priority,
    RunId,
    TestMode,
    Trigger,
)
from mailqa_core.types.completion import Completion
from mailqa_testcase.executor import ExecutionResult, classify
from mailqa_testcase.testcase import TestCaseSpec

from mailqa_agents.diff_analyzer import DiffAnalysis
from mailqa_agents.reporter import ReportFacts, ReportGeneratorAgent, render_facts
from mailqa_agents.structural import ComparisonRecord


def _spec(case_id: str) -> TestCaseSpec:
    return TestCaseSpec(
        id=case_id,  # type: ignore[arg-type]
        name=f"Case {case_id}",
        description="",
        suite="Colors",
        priority=Priority.HIGH,
        category=Category.STYLING,
        templates=("base",),  # type: ignore[arg-type]
        procedure=AsyncMock(),
    )


def _facts(mode: TestMode = TestMode.STRICT) -> ReportFacts:
    execution = ExecutionResult(mode=mode)
    for case_id, passed in (("TC001", True), ("TC002", False)):
        result = classify(
            _spec(case_id),
            [AssertionResult(name="Color check", passed=passed, message="Expected #2563eb, found none")],
            mode,
        )
        execution.results.append(result)
        execution.totals.record(result)
    diff = DiffAnalysis(
        comparisons=[
            ComparisonRecord(
                base_template="base",
                compare_template="green",
                added_colors=("#16a34a",),
                actual_difference=DifferenceType.STYLING,
                is_as_expected=False,
            )
        ],
        overall_assessment="fail",
        recommendations=["Investigate green"],
    )
    return ReportFacts(
        run_id=RunId("2025-01-15T10-30-00-123Z"),
        trigger=Trigger.CLI,
        duration_seconds=12.34,
        status=OverallStatus.FAILED,
        execution=execution,
        diff=diff,
    )


def _agent(text: str) -> ReportGeneratorAgent:
    client = MagicMock()
    client.complete = AsyncMock(return_value=Completion(text=text))
    return ReportGeneratorAgent(client)


class TestRenderFacts:
    """Tests for render_facts."""

    def test_counts_and_verdicts(self) -> None:
        markdown = render_facts(_facts())
        assert "| 2 | 1 | 1 | 0 | 0 | 50.0% |" in markdown
        assert "- **Status:** FAILED" in markdown
        assert "| TC002 | Case TC002 | Colors | high | FAILED |" in markdown
        assert "**TC002** [FAIL] Color check" in markdown
        assert "**green** vs base: FAIL (styling" in markdown

    def test_lenient_warnings(self) -> None:
        markdown = render_facts(_facts(TestMode.LENIENT))
        assert "PASSED (1 warnings)" in markdown
        assert "[WARNING] Color check" in markdown


class TestReportGeneratorAgent:
    """Tests for ReportGeneratorAgent."""

    @pytest.mark.asyncio
    async def test_narrative_appended_to_facts(self) -> None:
        agent = _agent("### Key Findings\n\n- TC002 failed")
        draft = await agent.generate(_facts())
        assert not draft.degraded
        assert draft.markdown.startswith("# Email Template QA Report")
        assert "## Analysis\n\n### Key Findings" in draft.markdown
        assert "| 2 | 1 | 1 | 0 | 0 | 50.0% |" in draft.markdown

    @pytest.mark.asyncio
    async def test_empty_reply_uses_deterministic_analysis(self) -> None:
        agent = _agent("   ")
        draft = await agent.generate(_facts())
        assert draft.degraded
        assert "- Failed: TC002" in draft.markdown
        assert "- Investigate green" in draft.markdown
