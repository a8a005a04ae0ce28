"""Unit tests for the change analysis agent."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

from mailqa_core.types.completion import Completion

from mailqa_agents.change_analyzer import (
    ChangeAnalyzerAgent,
    ChangeEvent,
    ChangeKind,
    fallback_analysis,
    template_state,
)


def _agent(text: str) -> tuple[ChangeAnalyzerAgent, MagicMock]:
    client = MagicMock()
    client.complete = AsyncMock(return_value=Completion(text=text))
    return ChangeAnalyzerAgent(client), client


class TestTemplateState:
    """Tests for template_state."""

    def test_existing_file(self, tmp_path: Path) -> None:
        path = tmp_path / "base.mjml"
        path.write_text("<mjml>\n<%= context.firstName %>\n</mjml>", encoding="utf-8")
        state = template_state(path)
        assert state["exists"] is True
        assert state["name"] == "base"
        assert state["lineCount"] == 3
        assert state["hasEjsVars"] is True

    def test_missing_file(self, tmp_path: Path) -> None:
        state = template_state(tmp_path / "gone.mjml")
        assert state == {"name": "gone", "file": "gone.mjml", "exists": False}

    def test_invalid_utf8_is_replaced(self, tmp_path: Path) -> None:
        path = tmp_path / "broken.mjml"
        path.write_bytes(b"<mjml>\xff\xfe</mjml>")
        state = template_state(path)
        assert state["exists"] is True
        assert "�" in state["preview"]


class TestFallbackAnalysis:
    """Tests for fallback_analysis."""

    def test_requires_testing(self, tmp_path: Path) -> None:
        events = [
            ChangeEvent(ChangeKind.MODIFIED, "base", tmp_path / "base.mjml"),
            ChangeEvent(ChangeKind.MODIFIED, "base", tmp_path / "base.mjml"),
        ]
        analysis = fallback_analysis(events)
        assert analysis.testing_required
        assert analysis.degraded
        assert analysis.affected_templates == ["base"]


class TestChangeAnalyzerAgent:
    """Tests for ChangeAnalyzerAgent."""

    @pytest.mark.asyncio
    async def test_parsed_reply(self, tmp_path: Path) -> None:
        agent, client = _agent(
            '{"affectedTemplates": ["base"], "changeType": "styling", "priority": "high"}'
        )
        event = ChangeEvent(ChangeKind.MODIFIED, "base", tmp_path / "base.mjml")

        analysis = await agent.analyze([event], [tmp_path / "base.mjml"])

        assert analysis.change_type == "styling"
        assert analysis.priority == "high"
        assert not analysis.degraded
        prompt = client.complete.call_args.args[1][0].content
        assert '"type": "modified"' in prompt

    @pytest.mark.asyncio
    async def test_manual_run_without_events(self, tmp_path: Path) -> None:
        agent, client = _agent("nothing useful")

        analysis = await agent.analyze([], [])

        assert analysis.degraded
        assert analysis.warnings == ["Could not parse AI response"]
        prompt = client.complete.call_args.args[1][0].content
        assert "manual run" in prompt
