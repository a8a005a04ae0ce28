"""Pipeline runner for mailqa.

This package wires the agents, the test catalog and the collaborators
(MJML compiler, Playwright renderer, artifact store) into a single
pipeline, and exposes it through a CLI, a file watcher and a FastAPI
service with a browser dashboard.

Example:
    mailqa mailqa.yaml --templates site_visitor_welcome,site_visitor_welcome_copy
    mailqa mailqa.yaml --server --port 8000
"""

from mailqa_runner.artifacts import ArtifactStore
from mailqa_runner.compiler import MjmlCompiler, compile_all, render_variables
from mailqa_runner.config import (
    AiSettings,
    PipelineConfig,
    RenderSettings,
    VariantEntry,
    load_pipeline_config,
)
from mailqa_runner.coordinator import ActiveRun, LogBuffer, LogEntry, RunCoordinator
from mailqa_runner.models import RunTestsRequest, RunTestsResponse, TestStatusResponse
from mailqa_runner.orchestrator import Pipeline, PipelineResult
from mailqa_runner.renderer import PlaywrightRenderer, PlaywrightSession

__all__ = [
    # Config
    "AiSettings",
    "PipelineConfig",
    "RenderSettings",
    "VariantEntry",
    "load_pipeline_config",
    # Collaborators
    "ArtifactStore",
    "MjmlCompiler",
    "PlaywrightRenderer",
    "PlaywrightSession",
    "compile_all",
    "render_variables",
    # Coordination
    "ActiveRun",
    "LogBuffer",
    "LogEntry",
    "RunCoordinator",
    # Pipeline
    "Pipeline",
    "PipelineResult",
    # Models
    "RunTestsRequest",
    "RunTestsResponse",
    "TestStatusResponse",
]
