"""Unit tests for the diff analysis agent."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from mailqa_core.types.common import DifferenceType
from mailqa_core.types.completion import Completion
from mailqa_core.types.template import CompilationResult

from mailqa_agents.diff_analyzer import DiffAnalyzerAgent, merge_assessment
from mailqa_agents.schemas import DiffNarrative

BASE_HTML = '<html><body><p style="color:#2563eb">Hello John</p></body></html>'


def _compiled(**html: str) -> dict[str, CompilationResult]:
    return {name: CompilationResult(template=name, html=h) for name, h in html.items()}  # type: ignore[arg-type]


def _agent(text: str) -> tuple[DiffAnalyzerAgent, MagicMock]:
    client = MagicMock()
    client.complete = AsyncMock(return_value=Completion(text=text))
    return DiffAnalyzerAgent(client), client


class TestMergeAssessment:
    """Tests for merge_assessment."""

    def test_structural_failure_decides(self) -> None:
        narrative = DiffNarrative(overall_assessment="pass")
        assert merge_assessment(True, narrative) == "fail"
        assert merge_assessment(True, None) == "fail"

    def test_ai_can_only_warn(self) -> None:
        assert merge_assessment(False, DiffNarrative(overall_assessment="fail")) == "warning"
        assert merge_assessment(False, DiffNarrative(overall_assessment="warning")) == "warning"
        assert merge_assessment(False, DiffNarrative(overall_assessment="pass")) == "pass"
        assert merge_assessment(False, None) == "pass"


class TestDiffAnalyzerAgent:
    """Tests for DiffAnalyzerAgent."""

    @pytest.mark.asyncio
    async def test_no_variants_skips_completion(self) -> None:
        agent, client = _agent("{}")
        analysis = await agent.analyze("base", [], _compiled(base=BASE_HTML))
        assert analysis.comparisons == []
        assert analysis.overall_assessment == "pass"
        client.complete.assert_not_called()

    @pytest.mark.asyncio
    async def test_ai_pass_cannot_override_structural_fail(self) -> None:
        agent, _ = _agent('{"overallAssessment": "pass", "recommendations": ["ship it"]}')
        compiled = _compiled(base=BASE_HTML, green=BASE_HTML.replace("#2563eb", "#16a34a"))

        analysis = await agent.analyze("base", [("green", DifferenceType.STYLING)], compiled)

        assert analysis.overall_assessment == "fail"
        assert [c.regression_status for c in analysis.failed_comparisons] == ["FAIL"]
        assert analysis.recommendations == ["ship it"]
        assert not analysis.degraded
        assert analysis.to_dict()["narrative"]["overallAssessment"] == "pass"

    @pytest.mark.asyncio
    async def test_expected_variation_mode(self) -> None:
        agent, client = _agent('{"overallAssessment": "pass"}')
        compiled = _compiled(base=BASE_HTML, green=BASE_HTML.replace("#2563eb", "#16a34a"))

        analysis = await agent.analyze(
            "base", [("green", DifferenceType.STYLING)], compiled, regression=False
        )

        assert analysis.mode == "expected_variation"
        assert analysis.overall_assessment == "pass"
        prompt = client.complete.call_args.args[1][0].content
        assert "EXPECTED VARIATION MODE" in prompt

    @pytest.mark.asyncio
    async def test_unparseable_reply_degrades(self) -> None:
        agent, _ = _agent("The templates look fine to me.")
        compiled = _compiled(base=BASE_HTML, copy=BASE_HTML)

        analysis = await agent.analyze("base", [("copy", DifferenceType.NONE)], compiled)

        assert analysis.degraded
        assert analysis.overall_assessment == "pass"
        assert analysis.raw_response == "The templates look fine to me."
        assert analysis.recommendations == ["All templates match base template"]
        assert analysis.to_dict()["rawResponse"] == "The templates look fine to me."

    @pytest.mark.asyncio
    async def test_missing_variant_fails(self) -> None:
        agent, _ = _agent('{"overallAssessment": "pass"}')
        analysis = await agent.analyze(
            "base", [("gone", DifferenceType.NONE)], _compiled(base=BASE_HTML)
        )
        assert analysis.overall_assessment == "fail"
        assert analysis.comparisons[0].error == "Template load failed: gone"
