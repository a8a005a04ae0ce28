"""Pydantic schemas for AI agent responses.

Fields use snake_case in Python and camelCase on the wire, matching the
JSON the agents are asked to produce and the artifacts written to disk.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class WireModel(BaseModel):
    """Base model accepting camelCase or snake_case keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    def to_wire(self) -> dict[str, Any]:
        """Dump with camelCase keys for JSON artifacts."""
        return self.model_dump(by_alias=True, mode="json")


class PlannedTestCase(WireModel):
    """A test case proposed by the planner."""

    id: str
    name: str
    description: str = ""
    steps: list[str] = Field(default_factory=list)
    expected_result: str = ""
    acceptance_criteria: list[str] = Field(default_factory=list)


class PlannedSuite(WireModel):
    """A group of proposed test cases."""

    name: str
    description: str = ""
    priority: str = "medium"
    test_cases: list[PlannedTestCase] = Field(default_factory=list)


class RiskAssessment(WireModel):
    """Risk areas identified by the planner."""

    high_risk_areas: list[str] = Field(default_factory=list)
    mitigations: list[str] = Field(default_factory=list)


class TestPlan(WireModel):
    """A test plan for one run.

    ``created_at`` is always the run timestamp, whatever the AI returned.
    ``parse_error`` marks a plan synthesized because the AI output was unusable.
    """

    test_plan_id: str
    created_at: str = ""
    template_context: dict[str, Any] = Field(default_factory=dict)
    test_suites: list[PlannedSuite] = Field(default_factory=list)
    risk_assessment: RiskAssessment = Field(default_factory=RiskAssessment)
    summary: str = ""
    parse_error: str | None = None

    @property
    def total_cases(self) -> int:
        """Return the number of planned test cases."""
        return sum(len(s.test_cases) for s in self.test_suites)


class ChangeAnalysis(WireModel):
    """Classification of template changes that triggered a run."""

    analysis_complete: bool = True
    affected_templates: list[str] = Field(default_factory=list)
    change_type: str = "unknown"
    testing_required: bool = True
    priority: str = "medium"
    recommendations: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    summary: str = ""
    degraded: bool = False


class ComparisonNarrative(WireModel):
    """AI commentary on one base/variant comparison."""

    base_template: str = ""
    compare_template: str = ""
    actual_difference_type: str | None = None
    is_as_expected: bool | None = None
    issues: list[Any] = Field(default_factory=list)
    summary: str = ""


class DiffNarrative(WireModel):
    """AI commentary on all comparisons of a run."""

    overall_assessment: Literal["pass", "warning", "fail"]
    comparisons: list[ComparisonNarrative] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)
