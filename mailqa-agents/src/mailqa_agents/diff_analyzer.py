"""Diff analysis agent.

Computes the structural diff of every variant against the base template
and asks the completion service to narrate it. The structural diff decides
pass/fail; the narrative can only add advisory warnings. If the AI reply
cannot be parsed, a deterministic summary is synthesized from the
structural diff and the analysis is marked degraded.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Mapping, Sequence

from mailqa_core.types.common import DifferenceType
from mailqa_core.types.template import CompilationResult

from mailqa_agents.base import Agent
from mailqa_agents.result import Fallback
from mailqa_agents.schemas import DiffNarrative
from mailqa_agents.structural import ComparisonRecord, TemplateSnapshot, compare_templates

SYSTEM_PROMPT = """You are a QA engineer reviewing email template variants against a base template.
You receive a deterministic structural diff for each variant. Describe the differences, classify
each comparison, and give an overall assessment. Respond with a single JSON object:
{
  "overallAssessment": "pass|warning|fail",
  "comparisons": [{"baseTemplate": "...", "compareTemplate": "...", "actualDifferenceType":
    "none|styling|content|both", "isAsExpected": true, "issues": [], "summary": "..."}],
  "recommendations": []
}"""


@dataclass
class DiffAnalysis:
    """Merged structural and narrative diff analysis for a run.

    Attributes:
        comparisons: Structural comparison records, one per variant.
        overall_assessment: "pass", "warning", or "fail".
        mode: "regression" or "expected_variation".
        recommendations: Follow-up suggestions.
        narrative: Validated AI narrative, if the reply was usable.
        degraded: True if the narrative was synthesized locally.
        raw_response: Raw AI text when degraded.
    """

    comparisons: list[ComparisonRecord] = field(default_factory=list)
    overall_assessment: str = "pass"
    mode: str = "regression"
    recommendations: list[str] = field(default_factory=list)
    narrative: DiffNarrative | None = None
    degraded: bool = False
    raw_response: str | None = None

    @property
    def failed_comparisons(self) -> list[ComparisonRecord]:
        """Return the comparisons that are not as expected."""
        return [c for c in self.comparisons if not c.is_as_expected]

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        data: dict[str, Any] = {
            "analysisComplete": True,
            "mode": self.mode,
            "overallAssessment": self.overall_assessment,
            "comparisons": [c.to_dict() for c in self.comparisons],
            "recommendations": list(self.recommendations),
            "degraded": self.degraded,
        }
        if self.narrative is not None:
            data["narrative"] = self.narrative.to_wire()
        if self.raw_response is not None:
            data["rawResponse"] = self.raw_response
        return data


def fallback_recommendations(comparisons: Sequence[ComparisonRecord]) -> list[str]:
    """Return canned recommendations derived from structural results."""
    if any(not c.is_as_expected for c in comparisons):
        return [
            "Templates have diverged from base - investigate differences",
            "All templates must match base in regression mode",
        ]
    return ["All templates match base template"]


def merge_assessment(structural_failed: bool, narrative: DiffNarrative | None) -> str:
    """Combine the structural verdict with the AI assessment.

    The structural diff alone decides "fail". An AI "warning" or "fail"
    on structurally clean comparisons becomes an advisory "warning".
    """
    if structural_failed:
        return "fail"
    if narrative is not None and narrative.overall_assessment in ("warning", "fail"):
        return "warning"
    return "pass"


class DiffAnalyzerAgent(Agent):
    """Compares every variant against the base template."""

    name = "diff-analyzer"
    system_prompt = SYSTEM_PROMPT

    async def analyze(
        self,
        base: str,
        variants: Sequence[tuple[str, DifferenceType]],
        compiled: Mapping[str, CompilationResult],
        *,
        regression: bool = True,
    ) -> DiffAnalysis:
        """Diff each variant against the base and narrate the result.

        Args:
            base: Base template name.
            variants: Variant names with their declared differences.
            compiled: Compilation results keyed by template name.
            regression: Strict regression policy.

        Returns:
            The merged diff analysis.

        Raises:
            ProviderError: If the completion service fails.
        """
        mode = "regression" if regression else "expected_variation"
        base_snapshot = TemplateSnapshot.from_compilation(compiled.get(base), base)
        comparisons = [
            compare_templates(
                base_snapshot,
                TemplateSnapshot.from_compilation(compiled.get(name), name),
                expected,
                regression=regression,
            )
            for name, expected in variants
        ]
        for record in comparisons:
            self.log(
                "%s vs %s: %s (%s)",
                record.base_template,
                record.compare_template,
                record.regression_status,
                record.actual_difference.value,
            )

        structural_failed = any(not c.is_as_expected for c in comparisons)
        if not comparisons:
            return DiffAnalysis(mode=mode, recommendations=["No variants selected for comparison"])

        result = await self.ask_json(self._prompt(comparisons, regression), DiffNarrative)
        if isinstance(result, Fallback):
            return DiffAnalysis(
                comparisons=comparisons,
                overall_assessment="fail" if structural_failed else "pass",
                mode=mode,
                recommendations=fallback_recommendations(comparisons),
                degraded=True,
                raw_response=result.raw_text,
            )

        narrative = result.value
        return DiffAnalysis(
            comparisons=comparisons,
            overall_assessment=merge_assessment(structural_failed, narrative),
            mode=mode,
            recommendations=narrative.recommendations or fallback_recommendations(comparisons),
            narrative=narrative,
        )

    @staticmethod
    def _prompt(comparisons: Sequence[ComparisonRecord], regression: bool) -> str:
        if regression:
            rules = (
                "REGRESSION MODE: every template must be identical to the base template. "
                "Any color, content, or structural difference is a failure."
            )
        else:
            rules = (
                "EXPECTED VARIATION MODE: a variant may differ from the base only in its "
                "declared dimension (expectedDifferenceType). Anything else is a failure."
            )
        payload = json.dumps([c.to_dict() for c in comparisons], indent=2)
        return f"{rules}\n\n## Comparisons\n{payload}\n\nRespond with your analysis in JSON format."
