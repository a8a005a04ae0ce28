"""Pipeline orchestrator.

Runs the phases of one QA run strictly in order:

    compile -> plan -> analyze_changes -> analyze_diff -> run_tests -> generate_report

One RunId is minted at run start and used for every artifact the run
writes. A run requested while another is active is skipped, never queued.
Any phase exception aborts the run and is returned as an ``error`` result;
run() itself never raises.
"""

from __future__ import annotations

import asyncio
import logging
import time
import traceback
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Sequence

from mailqa_core.errors import ProviderError, ProviderErrorKind
from mailqa_core.interfaces.compiler import TemplateCompiler
from mailqa_core.interfaces.completion import TextCompletion
from mailqa_core.interfaces.renderer import RenderService, RenderSession
from mailqa_core.imagediff import DiffOptions
from mailqa_core.types.common import OverallStatus, RunId, TestMode, Trigger
from mailqa_core.types.template import CompilationResult
from mailqa_testcase.catalog import build_catalog, filter_catalog
from mailqa_testcase.context import TestContext
from mailqa_testcase.executor import ExecutionResult, TestRunExecutor
from mailqa_testcase.testcase import TestCaseSpec
from mailqa_agents.base import AgentSettings
from mailqa_agents.change_analyzer import ChangeAnalyzerAgent, ChangeEvent
from mailqa_agents.diff_analyzer import DiffAnalysis, DiffAnalyzerAgent
from mailqa_agents.planner import TestPlannerAgent
from mailqa_agents.reporter import ReportFacts, ReportGeneratorAgent
from mailqa_agents.schemas import ChangeAnalysis, TestPlan

from mailqa_runner.artifacts import ArtifactStore
from mailqa_runner.compiler import MjmlCompiler, compile_all
from mailqa_runner.config import PipelineConfig
from mailqa_runner.coordinator import RunCoordinator, step_marker
from mailqa_runner.report import build_summary, determine_overall_status, render_html_report

logger = logging.getLogger(__name__)


@dataclass
class PipelineResult:
    """Outcome of one pipeline invocation.

    Attributes:
        status: "complete", "error", or "skipped".
        trigger: What requested the run.
        run_id: Run identifier (None when skipped).
        overall_status: Report status of a complete run.
        duration_seconds: Wall time of the run.
        reason: Why the run was skipped.
        error: Error message of a failed run.
        traceback: Formatted stack of a failed run.
        error_kind: Provider error classification, if the AI service failed.
        agent: Agent that made the failing AI call, if known.
        paths: Artifact paths keyed by kind.
    """

    status: str
    trigger: Trigger
    run_id: RunId | None = None
    overall_status: OverallStatus | None = None
    duration_seconds: float = 0.0
    reason: str | None = None
    error: str | None = None
    traceback: str | None = None
    error_kind: ProviderErrorKind | None = None
    agent: str | None = None
    paths: dict[str, str] = field(default_factory=dict)
    completed_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def succeeded(self) -> bool:
        """Return True if the run completed."""
        return self.status == "complete"

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        data: dict[str, Any] = {
            "status": self.status,
            "trigger": self.trigger.value,
            "runId": self.run_id.token if self.run_id is not None else None,
            "completedAt": self.completed_at.isoformat(),
            "duration": round(self.duration_seconds, 2),
        }
        if self.overall_status is not None:
            data["overallStatus"] = self.overall_status.value
        if self.reason is not None:
            data["reason"] = self.reason
        if self.error is not None:
            data["error"] = self.error
            data["traceback"] = self.traceback
        if self.error_kind is not None:
            data["errorKind"] = self.error_kind.value
            data["agent"] = self.agent
        if self.paths:
            data["paths"] = dict(self.paths)
        return data


@dataclass
class _RunState:
    """Phase outputs accumulated during one run."""

    run_id: RunId
    trigger: Trigger
    config: PipelineConfig
    started: float
    compiled: dict[str, CompilationResult] = field(default_factory=dict)
    catalog: list[TestCaseSpec] = field(default_factory=list)
    plan: TestPlan | None = None
    change: ChangeAnalysis | None = None
    paths: dict[str, str] = field(default_factory=dict)


class Pipeline:
    """Sequences the phases of a QA run.

    Args:
        config: Pipeline configuration.
        client: Text-completion client shared by the per-run agents.
        coordinator: Single-run guard and log capture.
        renderer: Browser render service, or None to skip screenshots.
        compiler: Template compiler.
        store: Artifact store (defaults to one rooted at config.output_dir).
    """

    def __init__(
        self,
        config: PipelineConfig,
        client: TextCompletion,
        coordinator: RunCoordinator | None = None,
        renderer: RenderService | None = None,
        compiler: TemplateCompiler | None = None,
        store: ArtifactStore | None = None,
    ) -> None:
        self._config = config
        self._client = client
        self._coordinator = coordinator or RunCoordinator()
        self._renderer = renderer
        self._compiler = compiler or MjmlCompiler()
        self._store = store or ArtifactStore(config.output_dir)
        self._tasks: set[asyncio.Task[PipelineResult]] = set()

    @property
    def config(self) -> PipelineConfig:
        """Return the pipeline configuration."""
        return self._config

    @property
    def coordinator(self) -> RunCoordinator:
        """Return the run coordinator."""
        return self._coordinator

    @property
    def store(self) -> ArtifactStore:
        """Return the artifact store."""
        return self._store

    async def run(
        self,
        trigger: Trigger = Trigger.MANUAL,
        templates: Sequence[str] | None = None,
        events: Sequence[ChangeEvent] = (),
        mode: TestMode | None = None,
        skip_planning: bool = False,
    ) -> PipelineResult:
        """Run the pipeline once.

        Args:
            trigger: What requested the run.
            templates: Template subset, or None for the configured selection.
            events: File change events that triggered the run.
            mode: Failure policy override.
            skip_planning: Skip the planning phase.

        Returns:
            The run result. Never raises.
        """
        selected = list(templates) if templates is not None else None
        run_id = self._acquire(trigger, selected)
        if run_id is None:
            return PipelineResult(status="skipped", trigger=trigger, reason="already_running")
        return await self._run_acquired(run_id, trigger, selected, events, mode, skip_planning)

    def start(
        self,
        trigger: Trigger = Trigger.MANUAL,
        templates: Sequence[str] | None = None,
        events: Sequence[ChangeEvent] = (),
        mode: TestMode | None = None,
        skip_planning: bool = False,
    ) -> RunId | None:
        """Start a run in a background task.

        Must be called from a running event loop. The busy check happens
        before this returns, so two calls in a row never both start.

        Returns:
            The new run's RunId, or None if a run is already active.
        """
        selected = list(templates) if templates is not None else None
        run_id = self._acquire(trigger, selected)
        if run_id is None:
            return None
        task = asyncio.create_task(
            self._run_acquired(run_id, trigger, selected, events, mode, skip_planning)
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return run_id

    async def wait(self) -> None:
        """Wait for background runs to finish."""
        if self._tasks:
            await asyncio.gather(*self._tasks)

    def _acquire(self, trigger: Trigger, selected: list[str] | None) -> RunId | None:
        run_id = RunId.new()
        if self._coordinator.try_acquire(run_id, trigger, selected) is None:
            logger.warning("Run requested by %s skipped: a run is already active", trigger.value)
            return None
        return run_id

    async def _run_acquired(
        self,
        run_id: RunId,
        trigger: Trigger,
        selected: list[str] | None,
        events: Sequence[ChangeEvent],
        mode: TestMode | None,
        skip_planning: bool,
    ) -> PipelineResult:
        config = self._config.with_overrides(mode=mode, selected=selected)
        state = _RunState(run_id=run_id, trigger=trigger, config=config, started=time.monotonic())
        logger.info(
            "Starting run %s (trigger=%s, mode=%s, templates=%s)",
            run_id,
            trigger.value,
            config.mode.value,
            ", ".join(config.selected_templates()),
        )
        result: PipelineResult | None = None
        try:
            try:
                result = await self._execute(state, events, skip_planning)
            except Exception as exc:  # pylint: disable=broad-except
                logger.exception("Run %s failed", run_id)
                result = PipelineResult(
                    status="error",
                    trigger=trigger,
                    run_id=run_id,
                    duration_seconds=time.monotonic() - state.started,
                    error=str(exc),
                    traceback=traceback.format_exc(),
                    paths=state.paths,
                )
                if isinstance(exc, ProviderError):
                    result.error_kind = exc.kind
                    result.agent = exc.agent
        finally:
            if result is None:
                # Cancelled; the CancelledError propagates after cleanup
                logger.warning("Run %s cancelled", run_id)
                result = PipelineResult(
                    status="error",
                    trigger=trigger,
                    run_id=run_id,
                    duration_seconds=time.monotonic() - state.started,
                    error="Run cancelled",
                    paths=state.paths,
                )
            self._finish(run_id, result)
        return result

    def _finish(self, run_id: RunId, result: PipelineResult) -> None:
        try:
            log_path = self._store.write_log(run_id, self._coordinator.logs.lines())
            result.paths["log"] = str(log_path)
        except OSError as exc:
            logger.error("Cannot write log for run %s: %s", run_id, exc)
        finally:
            self._coordinator.release(result.to_dict())

    async def _execute(
        self,
        state: _RunState,
        events: Sequence[ChangeEvent],
        skip_planning: bool,
    ) -> PipelineResult:
        await self._compile(state)
        if skip_planning:
            logger.info("Planning skipped")
        else:
            await self._plan(state)
        await self._analyze_changes(state, events)
        diff = await self._analyze_diff(state)
        execution = await self._run_tests(state)
        overall = await self._generate_report(state, execution, diff)

        duration = time.monotonic() - state.started
        logger.info("Run %s complete: %s in %.1fs", state.run_id, overall.value, duration)
        return PipelineResult(
            status="complete",
            trigger=state.trigger,
            run_id=state.run_id,
            overall_status=overall,
            duration_seconds=duration,
            paths=state.paths,
        )

    def _settings(self, max_tokens: int | None = None) -> AgentSettings:
        ai = self._config.ai
        return AgentSettings(
            model=ai.model,
            max_tokens=max_tokens or ai.max_tokens,
            temperature=ai.temperature,
        )

    # -------------------------------------------------------------------------
    # Phases
    # -------------------------------------------------------------------------

    async def _compile(self, state: _RunState) -> None:
        logger.info("%s Compiling templates", step_marker("compile"))
        config = state.config
        selected = config.selected_templates()
        loop = asyncio.get_running_loop()
        state.compiled = await loop.run_in_executor(
            None,
            compile_all,
            self._compiler,
            {name: config.template_path(name) for name in selected},
            config.variables,
            self._store.compiled_dir,
        )
        state.paths["compiled"] = str(self._store.compiled_dir)
        state.catalog = filter_catalog(
            build_catalog(config.base_template, config.variant_names),
            selected,
        )
        logger.info("Selected %d of the catalog's test cases", len(state.catalog))

    async def _plan(self, state: _RunState) -> None:
        logger.info("%s Planning tests", step_marker("planner"))
        config = state.config
        sources = {}
        for name in config.selected_templates():
            path = config.template_path(name)
            try:
                sources[name] = path.read_text(encoding="utf-8", errors="replace")
            except OSError as exc:
                logger.warning("Planner skips unreadable template %s: %s", path, exc)
        planner = TestPlannerAgent(self._client, self._settings(config.ai.planner_max_tokens))
        state.plan = await planner.create_plan(
            state.run_id,
            config.base_template,
            [v for v in config.variant_names if v in sources],
            sources,
            state.catalog,
        )
        path = self._store.write_test_plan(state.run_id, state.plan.to_wire())
        state.paths["testPlan"] = str(path)

    async def _analyze_changes(self, state: _RunState, events: Sequence[ChangeEvent]) -> None:
        logger.info("%s Analyzing template changes", step_marker("analyzer"))
        config = state.config
        analyzer = ChangeAnalyzerAgent(self._client, self._settings())
        state.change = await analyzer.analyze(
            events,
            [config.template_path(name) for name in config.selected_templates()],
        )
        if state.change.degraded:
            logger.warning("AI analysis degraded: change analysis uses the fallback")

    async def _analyze_diff(self, state: _RunState) -> DiffAnalysis:
        logger.info("%s Comparing templates", step_marker("diff"))
        config = state.config
        selected = set(config.selected_templates())
        variants = []
        if config.base_template in selected:
            variants = [
                (v.name, v.expected_difference) for v in config.variants if v.name in selected
            ]
        analyzer = DiffAnalyzerAgent(self._client, self._settings())
        diff = await analyzer.analyze(
            config.base_template,
            variants,
            state.compiled,
            regression=config.regression,
        )
        logger.info("Diff assessment: %s", diff.overall_assessment)
        return diff

    async def _run_tests(self, state: _RunState) -> ExecutionResult:
        logger.info("%s Running %d test cases", step_marker("tests"), len(state.catalog))
        if self._renderer is None:
            logger.warning("No renderer configured; visual comparisons will be skipped")
            execution = await self._execute_catalog(state, None)
        else:
            async with self._renderer.session() as session:
                execution = await self._execute_catalog(state, session)

        self._store.record_screenshots(state.run_id)
        payload = {"runId": state.run_id.token, **execution.to_dict()}
        state.paths["results"] = str(self._store.write_results(state.run_id, payload))
        return execution

    async def _execute_catalog(
        self,
        state: _RunState,
        session: RenderSession | None,
    ) -> ExecutionResult:
        config = state.config
        ctx = TestContext(
            compiled=state.compiled,
            screenshot_dir=self._store.screenshots_dir(state.run_id),
            render=session,
            regression=config.regression,
            visual_threshold_percent=config.visual_threshold_percent,
            size_limit_kb=config.size_limit_kb,
            diff_options=DiffOptions(label_height=config.render.label_height),
        )
        executor = TestRunExecutor(state.catalog, config.mode)
        return await executor.run(ctx)

    async def _generate_report(
        self,
        state: _RunState,
        execution: ExecutionResult,
        diff: DiffAnalysis,
    ) -> OverallStatus:
        logger.info("%s Generating report", step_marker("reporter"))
        status = determine_overall_status(execution, diff)
        facts = ReportFacts(
            run_id=state.run_id,
            trigger=state.trigger,
            duration_seconds=time.monotonic() - state.started,
            status=status,
            execution=execution,
            diff=diff,
            change=state.change,
            plan=state.plan,
        )
        reporter = ReportGeneratorAgent(
            self._client, self._settings(state.config.ai.reporter_max_tokens)
        )
        draft = await reporter.generate(facts)
        html = render_html_report(draft.markdown, state.run_id, status)
        md_path, html_path = self._store.write_report(state.run_id, draft.markdown, html, status.value)
        state.paths["report"] = str(md_path)
        state.paths["reportHtml"] = str(html_path)

        summary = build_summary(
            state.run_id,
            state.trigger,
            facts.duration_seconds,
            status,
            execution,
            diff,
            state.change,
            state.plan,
            state.paths,
        )
        self._store.write_summary(state.run_id, summary)
        logger.info(
            "Report written: %d tests, pass rate %.1f%%, status %s",
            execution.totals.total,
            execution.totals.pass_rate,
            status.value,
        )
        return status
