"""Change analysis agent.

Snapshots the current state of each template and asks the completion
service what the triggering changes mean for testing. Unusable replies
fall back to a conservative analysis that still requires testing.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Sequence

from mailqa_core.markup import find_template_variables

from mailqa_agents.base import Agent
from mailqa_agents.result import Fallback
from mailqa_agents.schemas import ChangeAnalysis

SYSTEM_PROMPT = """You analyze changes to MJML email templates and decide what needs testing.
Respond with a single JSON object with the keys analysisComplete, affectedTemplates, changeType
(content|styling|structure|new|deleted), testingRequired, priority (high|medium|low),
recommendations, warnings, and summary."""

PREVIEW_CHARS = 200


class ChangeKind(str, Enum):
    """Kind of file change seen by the watcher."""

    CREATED = "created"
    MODIFIED = "modified"
    DELETED = "deleted"


@dataclass(frozen=True)
class ChangeEvent:
    """A template file change.

    Attributes:
        kind: What happened to the file.
        template: Template name (file stem).
        path: Path of the changed file.
    """

    kind: ChangeKind
    template: str
    path: Path

    def to_dict(self) -> dict[str, str]:
        """Convert to dictionary for serialization."""
        return {"type": self.kind.value, "template": self.template, "path": str(self.path)}


def template_state(path: Path) -> dict[str, Any]:
    """Describe the current state of a template file.

    Args:
        path: Template source path.

    Returns:
        Name, size, modification time, line count, variable use, and a preview.
    """
    if not path.exists():
        return {"name": path.stem, "file": path.name, "exists": False}
    content = path.read_text(encoding="utf-8", errors="replace")
    stat = path.stat()
    return {
        "name": path.stem,
        "file": path.name,
        "exists": True,
        "size": stat.st_size,
        "modified": datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc).isoformat(),
        "lineCount": content.count("\n") + 1,
        "hasEjsVars": bool(find_template_variables(content)) or "<%" in content,
        "preview": content[:PREVIEW_CHARS],
    }


def fallback_analysis(events: Sequence[ChangeEvent]) -> ChangeAnalysis:
    """Return the conservative analysis used when the AI reply is unusable."""
    return ChangeAnalysis(
        affected_templates=list(dict.fromkeys(e.template for e in events)),
        change_type="unknown",
        testing_required=True,
        priority="medium",
        warnings=["Could not parse AI response"],
        summary="Change analysis unavailable; running the full regression catalog",
        degraded=True,
    )


class ChangeAnalyzerAgent(Agent):
    """Classifies the changes that triggered a run."""

    name = "change-analyzer"
    system_prompt = SYSTEM_PROMPT

    async def analyze(
        self,
        events: Sequence[ChangeEvent],
        template_paths: Sequence[Path],
    ) -> ChangeAnalysis:
        """Analyze template changes.

        Args:
            events: Change events from the trigger (empty for manual runs).
            template_paths: Current template source files.

        Returns:
            The validated or fallback analysis.

        Raises:
            ProviderError: If the completion service fails.
        """
        states = [template_state(p) for p in template_paths]
        if events:
            change_text = json.dumps([e.to_dict() for e in events], indent=2)
        else:
            change_text = "No file events: manual run over the current templates."
        prompt = (
            f"## Changes\n{change_text}\n\n"
            f"## Current templates\n{json.dumps(states, indent=2)}\n\n"
            "Analyze these changes in JSON format."
        )
        self.log("Analyzing %d change events over %d templates", len(events), len(states))
        result = await self.ask_json(prompt, ChangeAnalysis)
        if isinstance(result, Fallback):
            return fallback_analysis(events)
        return result.value
