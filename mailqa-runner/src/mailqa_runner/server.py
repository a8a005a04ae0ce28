"""FastAPI server for the mailqa pipeline.

Provides an HTML dashboard for triggering runs and following their
progress, plus REST endpoints for programmatic access.

Endpoints:
    GET    /                 : HTML dashboard (trigger, live status, logs)
    GET    /health           : Health check
    POST   /run-tests        : Start a run (202), or 409 if one is active
    GET    /test-status      : Active run, last result and recent logs
    GET    /latest-report    : Most recent markdown report
    GET    /reports          : List reports
    GET    /reports/{id}     : Read a report
    DELETE /reports/{id}     : Delete a report and its sibling artifacts
    GET    /test-plans       : List test plans
    GET    /test-plans/{id}  : Read a test plan
    DELETE /test-plans/{id}  : Delete a test plan and its sibling artifacts
    GET    /logs             : List run logs
    GET    /logs/{name}      : Read a run log
    DELETE /logs/{name}      : Delete a run log and its sibling artifacts
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncGenerator

from fastapi import FastAPI, HTTPException
from fastapi.responses import HTMLResponse, JSONResponse, PlainTextResponse

from mailqa_core.errors import ArtifactError
from mailqa_core.types.common import Trigger
from mailqa_agents.client import AnthropicCompletion

from mailqa_runner.config import PipelineConfig, load_pipeline_config
from mailqa_runner.coordinator import RunCoordinator
from mailqa_runner.models import (
    ArtifactInfo,
    DeleteResponse,
    RunTestsRequest,
    RunTestsResponse,
    TestStatusResponse,
)
from mailqa_runner.orchestrator import Pipeline
from mailqa_runner.renderer import PlaywrightRenderer

logger = logging.getLogger(__name__)

# Global state (set during lifespan)
_pipeline: Pipeline | None = None


def _get_pipeline() -> Pipeline:
    if _pipeline is None:
        raise RuntimeError("Pipeline not initialized")
    return _pipeline


def build_pipeline(config: PipelineConfig) -> Pipeline:
    """Build a pipeline with the production collaborators."""
    return Pipeline(
        config=config,
        client=AnthropicCompletion(),
        coordinator=RunCoordinator(),
        renderer=PlaywrightRenderer(config.render),
    )


def create_app(config_path: str | Path | None = None) -> FastAPI:
    """Create a FastAPI application.

    Args:
        config_path: Path to pipeline configuration YAML. Defaults are used
            when omitted.

    Returns:
        Configured FastAPI application.
    """
    app_state: dict[str, Any] = {"config_path": config_path}

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        global _pipeline  # pylint: disable=global-statement

        cfg_path = app_state.get("config_path")
        if cfg_path:
            logger.info("Loading pipeline configuration from %s", cfg_path)
            config = load_pipeline_config(cfg_path)
        else:
            config = PipelineConfig.default()
        _pipeline = build_pipeline(config)
        logger.info(
            "Pipeline ready: base %s, %d variants, output %s",
            config.base_template,
            len(config.variants),
            config.output_dir,
        )

        yield

        if _pipeline is not None:
            await _pipeline.wait()
        _pipeline = None

    app = FastAPI(
        title="mailqa",
        description="Email template QA pipeline",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.add_api_route("/", _dashboard, methods=["GET"], response_class=HTMLResponse)
    app.add_api_route("/health", _health, methods=["GET"])
    app.add_api_route(
        "/run-tests",
        _run_tests,
        methods=["POST"],
        status_code=202,
        response_model=RunTestsResponse,
        responses={409: {"model": RunTestsResponse}},
    )
    app.add_api_route(
        "/test-status", _test_status, methods=["GET"], response_model=TestStatusResponse
    )
    app.add_api_route(
        "/latest-report", _latest_report, methods=["GET"], response_class=PlainTextResponse
    )
    app.add_api_route("/reports", _list_reports, methods=["GET"], response_model=list[ArtifactInfo])
    app.add_api_route(
        "/reports/{report_id}", _read_report, methods=["GET"], response_class=PlainTextResponse
    )
    app.add_api_route(
        "/reports/{report_id}", _delete_report, methods=["DELETE"], response_model=DeleteResponse
    )
    app.add_api_route(
        "/test-plans", _list_test_plans, methods=["GET"], response_model=list[ArtifactInfo]
    )
    app.add_api_route("/test-plans/{plan_id}", _read_test_plan, methods=["GET"])
    app.add_api_route(
        "/test-plans/{plan_id}",
        _delete_test_plan,
        methods=["DELETE"],
        response_model=DeleteResponse,
    )
    app.add_api_route("/logs", _list_logs, methods=["GET"], response_model=list[ArtifactInfo])
    app.add_api_route("/logs/{name}", _read_log, methods=["GET"], response_class=PlainTextResponse)
    app.add_api_route(
        "/logs/{name}", _delete_log, methods=["DELETE"], response_model=DeleteResponse
    )

    return app


# =============================================================================
# Endpoints
# =============================================================================


async def _health() -> dict[str, Any]:
    pipeline = _get_pipeline()
    return {"status": "ok", "isRunning": pipeline.coordinator.is_running}


async def _run_tests(request: RunTestsRequest | None = None) -> Any:
    pipeline = _get_pipeline()
    request = request or RunTestsRequest()
    templates = request.templates or None
    run_id = pipeline.start(
        Trigger.WEB_API,
        templates=templates,
        mode=request.mode,
        skip_planning=request.skip_planning,
    )
    if run_id is None:
        busy = RunTestsResponse(status="busy", message="Test already in progress")
        return JSONResponse(status_code=409, content=busy.model_dump(by_alias=True))
    message = f"Testing {len(templates)} template(s)" if templates else "Testing all templates"
    return RunTestsResponse(status="started", run_id=run_id.token, message=message)


async def _test_status() -> TestStatusResponse:
    pipeline = _get_pipeline()
    return TestStatusResponse.model_validate(pipeline.coordinator.status())


async def _latest_report() -> PlainTextResponse:
    report = _get_pipeline().store.latest_report()
    if report is None:
        raise HTTPException(status_code=404, detail="No report available")
    return PlainTextResponse(report, media_type="text/markdown")


async def _list_reports() -> list[ArtifactInfo]:
    return [ArtifactInfo.model_validate(e) for e in _get_pipeline().store.list_reports()]


async def _read_report(report_id: str) -> PlainTextResponse:
    try:
        report = _get_pipeline().store.read_report(report_id)
    except ArtifactError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return PlainTextResponse(report, media_type="text/markdown")


async def _delete_report(report_id: str) -> DeleteResponse:
    try:
        deleted = _get_pipeline().store.delete_report(report_id)
    except ArtifactError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return DeleteResponse(deleted=deleted)


async def _list_test_plans() -> list[ArtifactInfo]:
    return [ArtifactInfo.model_validate(e) for e in _get_pipeline().store.list_test_plans()]


async def _read_test_plan(plan_id: str) -> dict[str, Any]:
    try:
        return _get_pipeline().store.read_test_plan(plan_id)
    except ArtifactError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


async def _delete_test_plan(plan_id: str) -> DeleteResponse:
    try:
        deleted = _get_pipeline().store.delete_test_plan(plan_id)
    except ArtifactError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return DeleteResponse(deleted=deleted)


async def _list_logs() -> list[ArtifactInfo]:
    return [ArtifactInfo.model_validate(e) for e in _get_pipeline().store.list_logs()]


async def _read_log(name: str) -> PlainTextResponse:
    try:
        return PlainTextResponse(_get_pipeline().store.read_log(name))
    except ArtifactError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


async def _delete_log(name: str) -> DeleteResponse:
    try:
        deleted = _get_pipeline().store.delete_log(name)
    except ArtifactError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return DeleteResponse(deleted=deleted)


# =============================================================================
# HTML Dashboard
# =============================================================================


async def _dashboard() -> HTMLResponse:
    pipeline = _get_pipeline()
    config = pipeline.config

    template_options = ""
    for name in config.template_names:
        role = "base" if name == config.base_template else config.expected_difference(name).value
        template_options += (
            f'<label><input type="checkbox" name="template" value="{name}" checked> '
            f"{name} <small>({role})</small></label>\n"
        )

    mode_options = ""
    for mode in ("strict", "lenient"):
        selected = " selected" if mode == config.mode.value else ""
        mode_options += f'<option value="{mode}"{selected}>{mode.upper()}</option>\n'

    html = f"""
    <!DOCTYPE html>
    <html>
    <head>
        <title>mailqa - Email Template QA</title>
        <style>
            body {{
                font-family: -apple-system, BlinkMacSystemFont, "Segoe UI", Roboto, sans-serif;
                margin: 0;
                padding: 20px;
                background: #f5f5f5;
            }}
            .container {{
                max-width: 900px;
                margin: 0 auto;
                background: white;
                border-radius: 8px;
                box-shadow: 0 2px 4px rgba(0,0,0,0.1);
                padding: 20px;
            }}
            h1 {{ margin-top: 0; color: #333; }}
            h2 {{ color: #555; margin-top: 24px; }}
            .controls {{
                padding: 15px;
                background: #f8f9fa;
                border-radius: 4px;
                margin-bottom: 20px;
            }}
            .controls label {{ display: block; margin: 4px 0; cursor: pointer; }}
            .controls select, .controls button {{
                padding: 8px 16px;
                font-size: 1em;
                border-radius: 4px;
                border: 1px solid #ccc;
                margin: 8px 8px 0 0;
            }}
            .btn-start {{
                cursor: pointer;
                color: white;
                border: none;
                background: #28a745;
            }}
            .btn-start:disabled {{
                background: #6c757d;
                cursor: not-allowed;
            }}
            .banner {{
                display: none;
                padding: 10px 15px;
                border-radius: 4px;
                margin-bottom: 15px;
                color: white;
            }}
            .banner.busy {{ display: block; background: #ffc107; color: #333; }}
            .banner.provider {{ display: block; background: #dc3545; }}
            .progress {{
                height: 12px;
                background: #e9ecef;
                border-radius: 6px;
                overflow: hidden;
                margin: 8px 0;
            }}
            .progress-bar {{
                height: 100%;
                width: 0%;
                background: #28a745;
                transition: width 0.3s;
            }}
            .status-grid {{
                display: grid;
                grid-template-columns: 1fr 2fr;
                gap: 8px;
            }}
            .status-grid .label {{ font-weight: 600; color: #555; }}
            .logs {{
                max-height: 300px;
                overflow-y: auto;
                padding: 10px;
                background: #212529;
                color: #f8f9fa;
                border-radius: 4px;
                font-family: monospace;
                font-size: 0.85em;
            }}
            .log-error {{ color: #ff6b6b; }}
            .log-warning {{ color: #ffd43b; }}
            .log-success {{ color: #69db7c; }}
            .log-step {{ color: #74c0fc; font-weight: bold; }}
            .api-links {{
                margin-top: 20px;
                padding-top: 20px;
                border-top: 1px solid #dee2e6;
            }}
            .api-links a {{ margin-right: 15px; color: #007bff; }}
        </style>
    </head>
    <body>
        <div class="container">
            <h1>mailqa</h1>

            <div class="banner" id="banner"></div>

            <h2>Run Tests</h2>
            <div class="controls">
                {template_options}
                <select id="mode">
                    {mode_options}
                </select>
                <button class="btn-start" id="btn-start" onclick="startRun()">Run Tests</button>
            </div>

            <h2>Status</h2>
            <div class="status-grid">
                <span class="label">State:</span>
                <span id="st-state">IDLE</span>

                <span class="label">Step:</span>
                <span id="st-step">-</span>

                <span class="label">Last Result:</span>
                <span id="st-last">-</span>
            </div>
            <div class="progress"><div class="progress-bar" id="st-progress"></div></div>

            <h2>Logs</h2>
            <div class="logs" id="logs"></div>

            <div class="api-links">
                <strong>API:</strong>
                <a href="/health">/health</a>
                <a href="/test-status">/test-status</a>
                <a href="/latest-report">/latest-report</a>
                <a href="/reports">/reports</a>
                <a href="/test-plans">/test-plans</a>
                <a href="/logs">/logs</a>
                <a href="/docs">/docs</a>
            </div>
        </div>

        <script>
            const providerMessages = {{
                rate_limited: 'The AI provider is rate limiting requests. Wait and retry.',
                insufficient_credit: 'The AI provider account has insufficient credit.',
                unauthorized: 'The AI provider rejected the API key. Check ANTHROPIC_API_KEY.'
            }};

            function showBanner(kind, text) {{
                const banner = document.getElementById('banner');
                banner.className = 'banner ' + kind;
                banner.textContent = text;
            }}

            function hideBanner() {{
                document.getElementById('banner').className = 'banner';
            }}

            async function startRun() {{
                const templates = Array.from(
                    document.querySelectorAll('input[name="template"]:checked')
                ).map(function(el) {{ return el.value; }});
                const mode = document.getElementById('mode').value;
                try {{
                    const resp = await fetch('/run-tests', {{
                        method: 'POST',
                        headers: {{'Content-Type': 'application/json'}},
                        body: JSON.stringify({{templates: templates, mode: mode}})
                    }});
                    if (resp.status === 409) {{
                        showBanner('busy', 'A test run is already in progress.');
                    }} else if (!resp.ok) {{
                        const err = await resp.json();
                        alert('Error: ' + (err.detail || resp.statusText));
                    }} else {{
                        hideBanner();
                    }}
                }} catch(e) {{
                    alert('Request failed: ' + e);
                }}
            }}

            function updateStatus(data) {{
                const el = function(id) {{ return document.getElementById(id); }};
                const current = data.currentTest;

                el('st-state').textContent = data.isRunning ? 'RUNNING' : 'IDLE';
                el('st-step').textContent = current ? current.stepDescription : '-';
                el('st-progress').style.width = (current ? current.progress : 0) + '%';
                el('btn-start').disabled = data.isRunning;

                const last = data.lastResult;
                if (last) {{
                    el('st-last').textContent = last.status.toUpperCase() +
                        (last.overallStatus ? ' (' + last.overallStatus + ')' : '') +
                        (last.runId ? ' - ' + last.runId : '');
                    if (last.errorKind && providerMessages[last.errorKind]) {{
                        showBanner('provider', providerMessages[last.errorKind]);
                    }}
                }}

                const logs = el('logs');
                logs.innerHTML = '';
                data.logs.forEach(function(entry) {{
                    const line = document.createElement('div');
                    line.className = 'log-' + entry.type;
                    line.textContent = entry.timestamp.substring(11, 19) + ' ' + entry.message;
                    logs.appendChild(line);
                }});
                logs.scrollTop = logs.scrollHeight;
            }}

            // Poll for status updates
            setInterval(async function() {{
                try {{
                    const resp = await fetch('/test-status');
                    if (resp.ok) {{
                        const data = await resp.json();
                        updateStatus(data);
                    }}
                }} catch(e) {{
                    // ignore fetch errors
                }}
            }}, 1000);
        </script>
    </body>
    </html>
    """
    return HTMLResponse(content=html)
