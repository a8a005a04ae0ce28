"""Pydantic models for the mailqa-runner REST API.

This module defines request and response models for the pipeline web service.
Fields are snake_case in Python and camelCase on the wire.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from mailqa_core.types.common import TestMode


class ApiModel(BaseModel):
    """Base model serializing with camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class RunTestsRequest(ApiModel):
    """Request to start a pipeline run.

    Attributes:
        templates: Template subset to test; all templates when omitted.
        mode: Failure policy override.
        skip_planning: Skip the planning phase.
    """

    templates: list[str] | None = None
    mode: TestMode | None = None
    skip_planning: bool = False


class RunTestsResponse(ApiModel):
    """Response to a run request.

    Attributes:
        status: "started" or "busy".
        run_id: Identifier of the started run.
        message: Human-readable description.
    """

    status: str
    run_id: str | None = None
    message: str = ""


class TestStatusResponse(ApiModel):
    """Current pipeline status.

    Attributes:
        is_running: True while a run is active.
        current_test: Active run details (step, progress, templates).
        last_result: Result of the most recent finished run.
        logs: Most recent log records.
    """

    is_running: bool
    current_test: dict[str, Any] | None = None
    last_result: dict[str, Any] | None = None
    logs: list[dict[str, str]] = []


class ArtifactInfo(ApiModel):
    """A listed artifact.

    Attributes:
        id: Run identifier token.
        name: File name.
        size: Size in bytes.
        modified: ISO timestamp of the last modification.
        status: Overall status of the run, when known.
    """

    id: str
    name: str
    size: int
    modified: str
    status: str | None = None


class DeleteResponse(ApiModel):
    """Result of a cascading delete.

    Attributes:
        deleted: Deleted paths, relative to the output directory.
    """

    deleted: list[str]
