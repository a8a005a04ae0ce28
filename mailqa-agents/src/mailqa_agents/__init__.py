"""AI agents for the mailqa pipeline.

Each agent is a single-purpose conversation with a text-completion
service. Agent replies are validated against pydantic schemas and every
agent has a deterministic fallback, so a malformed reply degrades the
analysis rather than failing the run.
"""

from mailqa_agents.base import Agent, AgentSettings
from mailqa_agents.change_analyzer import ChangeAnalyzerAgent, ChangeEvent, ChangeKind
from mailqa_agents.client import DEFAULT_MODEL, AnthropicCompletion, classify_provider_error
from mailqa_agents.diff_analyzer import DiffAnalysis, DiffAnalyzerAgent
from mailqa_agents.planner import TestPlannerAgent, plan_from_catalog
from mailqa_agents.reporter import ReportDraft, ReportFacts, ReportGeneratorAgent
from mailqa_agents.result import Fallback, Parsed, parse_response
from mailqa_agents.schemas import ChangeAnalysis, DiffNarrative, TestPlan
from mailqa_agents.structural import ComparisonRecord, TemplateSnapshot, compare_templates

__all__ = [
    # Base
    "Agent",
    "AgentSettings",
    # Client
    "DEFAULT_MODEL",
    "AnthropicCompletion",
    "classify_provider_error",
    # Agents
    "ChangeAnalyzerAgent",
    "ChangeEvent",
    "ChangeKind",
    "DiffAnalysis",
    "DiffAnalyzerAgent",
    "ReportDraft",
    "ReportFacts",
    "ReportGeneratorAgent",
    "TestPlannerAgent",
    "plan_from_catalog",
    # Results
    "Fallback",
    "Parsed",
    "parse_response",
    # Schemas
    "ChangeAnalysis",
    "DiffNarrative",
    "TestPlan",
    # Structural diff
    "ComparisonRecord",
    "TemplateSnapshot",
    "compare_templates",
]
