"""Tests for the pipeline orchestrator."""

from __future__ import annotations

import asyncio
import json
import logging
import threading
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator, Mapping
from unittest.mock import AsyncMock, MagicMock

import pytest
from PIL import Image

from mailqa_core.errors import ProviderError, ProviderErrorKind
from mailqa_core.types.common import OverallStatus, RunId, TestMode, Trigger
from mailqa_core.types.completion import Completion
from mailqa_core.types.template import CompilationResult
from mailqa_agents.change_analyzer import ChangeEvent, ChangeKind
from mailqa_runner.artifacts import ArtifactStore
from mailqa_runner.config import PipelineConfig
from mailqa_runner.coordinator import RunCoordinator
from mailqa_runner.orchestrator import Pipeline, PipelineResult

TEMPLATE_HTML = """<html><body style="background-color: #ffffff">
<h1 style="color: #2563eb">Welcome Valued Visitor</h1>
<p>Thanks for visiting Carebox.</p>
<a href="https://example.com/get-started">Get Started</a>
</body></html>"""


class FakeCompiler:
    """Compiler returning the same HTML for every template."""

    def __init__(self) -> None:
        self.compiled: list[str] = []

    def compile(self, name: str, source: str, variables: Mapping[str, Any]) -> CompilationResult:
        self.compiled.append(name)
        return CompilationResult(template=name, html=TEMPLATE_HTML)  # type: ignore[arg-type]


class FakeSession:
    """Render session writing a blank screenshot."""

    async def screenshot(self, html: str, path: Path) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        Image.new("RGB", (40, 30), "white").save(path)
        return path

    async def visible_text(self, html: str) -> str:
        return "Welcome Valued Visitor Thanks for visiting Carebox. Get Started"


class FakeRenderer:
    """Render service tracking session lifetime."""

    def __init__(self) -> None:
        self.opened = 0
        self.closed = 0

    @asynccontextmanager
    async def session(self) -> AsyncIterator[FakeSession]:
        self.opened += 1
        try:
            yield FakeSession()
        finally:
            self.closed += 1


@pytest.fixture
def config(tmp_path: Path) -> PipelineConfig:
    """Default configuration with every template present on disk."""
    config = PipelineConfig.default(tmp_path).with_overrides(mode=TestMode.STRICT)
    config.templates_dir.mkdir(parents=True)
    for name in config.template_names:
        config.template_path(name).write_text(f"<mjml><!-- {name} --></mjml>")
    return config


@pytest.fixture
def client() -> MagicMock:
    """Completion client whose replies are never valid JSON."""
    client = MagicMock()
    client.complete = AsyncMock(return_value=Completion(text="The templates look consistent."))
    return client


@pytest.fixture(autouse=True)
def runner_logging(caplog: pytest.LogCaptureFixture) -> None:
    """Emit INFO records from the runner."""
    caplog.set_level(logging.INFO, logger="mailqa_runner")


def _pipeline(config: PipelineConfig, client: MagicMock, **kwargs: Any) -> Pipeline:
    kwargs.setdefault("compiler", FakeCompiler())
    return Pipeline(config, client, **kwargs)


class TestPipelineRun:
    """Tests for Pipeline.run."""

    @pytest.mark.asyncio
    async def test_complete_run(self, config: PipelineConfig, client: MagicMock) -> None:
        pipeline = _pipeline(config, client, renderer=FakeRenderer())

        result = await pipeline.run(Trigger.CLI)

        assert result.status == "complete"
        assert result.succeeded
        assert result.trigger == Trigger.CLI
        assert isinstance(result.run_id, RunId)
        assert result.overall_status in set(OverallStatus)
        assert result.error is None

    @pytest.mark.asyncio
    async def test_single_run_id_for_all_artifacts(
        self, config: PipelineConfig, client: MagicMock
    ) -> None:
        pipeline = _pipeline(config, client, renderer=FakeRenderer())

        result = await pipeline.run(Trigger.CLI)

        token = result.run_id.token
        store = pipeline.store
        assert [r["id"] for r in store.list_reports()] == [token]
        assert [p["id"] for p in store.list_test_plans()] == [token]
        assert [log["name"] for log in store.list_logs()] == [f"test-{token}.log"]
        assert store.results_path(result.run_id).exists()
        assert store.report_html_path(result.run_id).exists()
        assert store.screenshots_dir(result.run_id).is_dir()

        manifest = store.read_manifest(result.run_id)
        assert manifest["status"] == result.overall_status.value
        for kind in ("test_plan", "results", "report", "report_html", "log", "screenshots"):
            assert kind in manifest["files"]

    @pytest.mark.asyncio
    async def test_summary_and_report(self, config: PipelineConfig, client: MagicMock) -> None:
        pipeline = _pipeline(config, client, renderer=FakeRenderer())

        result = await pipeline.run(Trigger.CLI)

        summary = json.loads((pipeline.store.reports_dir / "test-summary.json").read_text())
        assert summary["runId"] == result.run_id.token
        assert summary["status"] == result.overall_status.value
        assert summary["testResults"]["totalTests"] == 23
        assert summary["testPlan"]["parseError"]
        assert summary["changeAnalysis"]["degraded"] is True

        report = pipeline.store.latest_report()
        assert report.startswith("# Email Template QA Report")
        assert "## Analysis" in report
        html = pipeline.store.report_html_path(result.run_id).read_text()
        assert f'data-status="{result.overall_status.value}"' in html

    @pytest.mark.asyncio
    async def test_renderer_session_closed(self, config: PipelineConfig, client: MagicMock) -> None:
        renderer = FakeRenderer()
        pipeline = _pipeline(config, client, renderer=renderer)

        await pipeline.run(Trigger.CLI)

        assert renderer.opened == 1
        assert renderer.closed == 1

    @pytest.mark.asyncio
    async def test_without_renderer_visual_cases_skipped(
        self, config: PipelineConfig, client: MagicMock
    ) -> None:
        pipeline = _pipeline(config, client)

        result = await pipeline.run(Trigger.CLI)

        assert result.succeeded
        results = json.loads(pipeline.store.results_path(result.run_id).read_text())
        assert results["skipped"] > 0

    @pytest.mark.asyncio
    async def test_template_subset(self, config: PipelineConfig, client: MagicMock) -> None:
        compiler = FakeCompiler()
        pipeline = _pipeline(config, client, compiler=compiler)

        result = await pipeline.run(
            Trigger.WEB_API, templates=["site_visitor_welcome_partner_a"]
        )

        assert compiler.compiled == ["site_visitor_welcome_partner_a"]
        results = json.loads(pipeline.store.results_path(result.run_id).read_text())
        templates = {t for r in results["results"] for t in r["templates"]}
        assert templates == {"site_visitor_welcome_partner_a"}

    @pytest.mark.asyncio
    async def test_skip_planning(self, config: PipelineConfig, client: MagicMock) -> None:
        pipeline = _pipeline(config, client)

        result = await pipeline.run(Trigger.CLI, skip_planning=True)

        assert result.succeeded
        assert pipeline.store.list_test_plans() == []
        assert "testPlan" not in result.paths

    @pytest.mark.asyncio
    async def test_mode_override(self, config: PipelineConfig, client: MagicMock) -> None:
        pipeline = _pipeline(config, client)

        result = await pipeline.run(Trigger.CLI, mode=TestMode.LENIENT)

        results = json.loads(pipeline.store.results_path(result.run_id).read_text())
        assert results["mode"] == "lenient"

    @pytest.mark.asyncio
    async def test_change_events_forwarded(self, config: PipelineConfig, client: MagicMock) -> None:
        pipeline = _pipeline(config, client)
        event = ChangeEvent(
            ChangeKind.MODIFIED,
            "site_visitor_welcome",
            config.template_path("site_visitor_welcome"),
        )

        await pipeline.run(Trigger.FILE_WATCH, events=[event])

        prompts = [call.args[1][-1].content for call in client.complete.await_args_list]
        assert any("modified" in prompt for prompt in prompts)

    @pytest.mark.asyncio
    async def test_skipped_when_busy(self, config: PipelineConfig, client: MagicMock) -> None:
        coordinator = RunCoordinator()
        first_id = RunId.new()
        coordinator.try_acquire(first_id, Trigger.CLI)
        before = coordinator.active.to_dict()
        pipeline = _pipeline(config, client, coordinator=coordinator)

        result = await pipeline.run(Trigger.FILE_WATCH)

        assert result.status == "skipped"
        assert result.reason == "already_running"
        assert result.run_id is None
        assert not result.succeeded
        client.complete.assert_not_called()
        assert coordinator.is_running
        assert coordinator.active.run_id == first_id
        assert coordinator.active.trigger == Trigger.CLI
        assert coordinator.active.to_dict() == before
        coordinator.release({})

    @pytest.mark.asyncio
    async def test_compiler_exception_fails_only_that_template(
        self, config: PipelineConfig, client: MagicMock
    ) -> None:
        broken = "site_visitor_welcome_partner_b"

        class CrashingCompiler(FakeCompiler):
            def compile(
                self, name: str, source: str, variables: Mapping[str, Any]
            ) -> CompilationResult:
                if name == broken:
                    raise RuntimeError("compiler crashed")
                return super().compile(name, source, variables)

        pipeline = _pipeline(config, client, compiler=CrashingCompiler())

        result = await pipeline.run(Trigger.CLI)

        assert result.status == "complete"
        assert result.overall_status == OverallStatus.FAILED
        assert pipeline.store.report_html_path(result.run_id).exists()
        results = json.loads(pipeline.store.results_path(result.run_id).read_text())
        compilation = {
            tuple(r["templates"]): r["status"]
            for r in results["results"]
            if r["category"] == "compilation"
        }
        assert compilation[(broken,)] == "failed"

    @pytest.mark.asyncio
    async def test_undecodable_template_fails_only_that_template(
        self, config: PipelineConfig, client: MagicMock
    ) -> None:
        broken = "site_visitor_welcome_partner_b"
        config.template_path(broken).write_bytes(b"<mjml>\xff\xfe</mjml>")
        compiler = FakeCompiler()
        pipeline = _pipeline(config, client, compiler=compiler)

        result = await pipeline.run(Trigger.CLI)

        assert result.status == "complete"
        assert broken not in compiler.compiled
        compiled = json.loads(
            (pipeline.store.compiled_dir / "compilation-results.json").read_text()
        )
        assert [c["success"] for c in compiled if c["template"] == broken] == [False]
        results = json.loads(pipeline.store.results_path(result.run_id).read_text())
        statuses = [
            r["status"]
            for r in results["results"]
            if r["category"] == "compilation" and r["templates"] == [broken]
        ]
        assert statuses == ["failed"]

    @pytest.mark.asyncio
    async def test_compilation_runs_off_event_loop_thread(
        self, config: PipelineConfig, client: MagicMock
    ) -> None:
        threads: set[int] = set()

        class ThreadRecordingCompiler(FakeCompiler):
            def compile(
                self, name: str, source: str, variables: Mapping[str, Any]
            ) -> CompilationResult:
                threads.add(threading.get_ident())
                return super().compile(name, source, variables)

        pipeline = _pipeline(config, client, compiler=ThreadRecordingCompiler())

        result = await pipeline.run(Trigger.CLI)

        assert result.succeeded
        assert threads
        assert threading.get_ident() not in threads

    @pytest.mark.asyncio
    async def test_cancelled_run_releases_coordinator(
        self, config: PipelineConfig, client: MagicMock
    ) -> None:
        entered = asyncio.Event()

        async def hang(*args: Any, **kwargs: Any) -> Completion:
            entered.set()
            await asyncio.Event().wait()
            raise AssertionError("unreachable")

        client.complete = AsyncMock(side_effect=hang)
        pipeline = _pipeline(config, client)

        task = asyncio.create_task(pipeline.run(Trigger.FILE_WATCH))
        await entered.wait()
        assert pipeline.coordinator.is_running
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert not pipeline.coordinator.is_running
        last = pipeline.coordinator.last_result
        assert last["status"] == "error"
        assert last["error"] == "Run cancelled"
        assert [log["name"] for log in pipeline.store.list_logs()] == [
            f"test-{last['runId']}.log"
        ]

    @pytest.mark.asyncio
    async def test_provider_error_aborts_run(
        self, config: PipelineConfig, client: MagicMock
    ) -> None:
        client.complete = AsyncMock(
            side_effect=ProviderError(ProviderErrorKind.RATE_LIMITED, "slow down")
        )
        pipeline = _pipeline(config, client)

        result = await pipeline.run(Trigger.CLI)

        assert result.status == "error"
        assert result.error_kind == ProviderErrorKind.RATE_LIMITED
        assert result.agent == "planner"
        assert "slow down" in result.error
        assert "Traceback" in result.traceback
        assert not pipeline.coordinator.is_running

        last = pipeline.coordinator.last_result
        assert last["status"] == "error"
        assert last["errorKind"] == "rate_limited"
        assert last["agent"] == "planner"

    @pytest.mark.asyncio
    async def test_error_run_still_writes_log(
        self, config: PipelineConfig, client: MagicMock
    ) -> None:
        client.complete = AsyncMock(side_effect=RuntimeError("boom"))
        pipeline = _pipeline(config, client)

        result = await pipeline.run(Trigger.CLI)

        assert result.status == "error"
        log = Path(result.paths["log"]).read_text()
        assert "[STEP:compile]" in log
        assert "[STEP:planner]" in log
        assert "Run " in log and "failed" in log

    @pytest.mark.asyncio
    async def test_coordinator_released_and_result_recorded(
        self, config: PipelineConfig, client: MagicMock
    ) -> None:
        pipeline = _pipeline(config, client)

        result = await pipeline.run(Trigger.CLI)

        assert not pipeline.coordinator.is_running
        assert pipeline.coordinator.last_result == result.to_dict()


class TestPipelineStart:
    """Tests for Pipeline.start."""

    @pytest.mark.asyncio
    async def test_start_then_busy(self, config: PipelineConfig, client: MagicMock) -> None:
        pipeline = _pipeline(config, client)

        run_id = pipeline.start(Trigger.WEB_API)
        second = pipeline.start(Trigger.WEB_API)
        assert pipeline.coordinator.is_running
        await pipeline.wait()

        assert isinstance(run_id, RunId)
        assert second is None
        assert not pipeline.coordinator.is_running
        assert pipeline.coordinator.last_result["runId"] == run_id.token
        assert pipeline.coordinator.last_result["status"] == "complete"


class TestPipelineResult:
    """Tests for PipelineResult."""

    def test_skipped_to_dict(self) -> None:
        result = PipelineResult(status="skipped", trigger=Trigger.FILE_WATCH, reason="already_running")

        data = result.to_dict()
        assert data["status"] == "skipped"
        assert data["trigger"] == "file_watch"
        assert data["runId"] is None
        assert data["reason"] == "already_running"
        assert "error" not in data

    def test_error_to_dict(self) -> None:
        result = PipelineResult(
            status="error",
            trigger=Trigger.CLI,
            run_id=RunId("2026-03-01T09-00-00-000Z"),
            error="boom",
            traceback="Traceback ...",
            error_kind=ProviderErrorKind.UNAUTHORIZED,
            agent="reporter",
        )

        data = result.to_dict()
        assert data["runId"] == "2026-03-01T09-00-00-000Z"
        assert data["error"] == "boom"
        assert data["traceback"] == "Traceback ..."
        assert data["errorKind"] == "unauthorized"
        assert data["agent"] == "reporter"
