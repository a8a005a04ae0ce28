"""Report assembly: overall status, summary JSON and the HTML report."""

from __future__ import annotations

import html
from typing import Any, Mapping

import markdown

from mailqa_core.types.common import OverallStatus, RunId, Trigger
from mailqa_testcase.executor import ExecutionResult
from mailqa_agents.diff_analyzer import DiffAnalysis
from mailqa_agents.schemas import ChangeAnalysis, TestPlan

_STATUS_COLORS = {
    OverallStatus.PASSED: "#28a745",
    OverallStatus.WARNING: "#ffc107",
    OverallStatus.FAILED: "#dc3545",
    OverallStatus.ERROR: "#6c757d",
}


def determine_overall_status(execution: ExecutionResult, diff: DiffAnalysis) -> OverallStatus:
    """Derive the run's overall status from computed results.

    Failed if any case failed or the diff analysis failed; warning if
    cases passed with warnings or the diff assessment is advisory;
    passed otherwise.
    """
    if execution.any_failed or diff.overall_assessment == "fail":
        return OverallStatus.FAILED
    if execution.any_warnings or diff.overall_assessment == "warning":
        return OverallStatus.WARNING
    return OverallStatus.PASSED


def build_summary(
    run_id: RunId,
    trigger: Trigger,
    duration_seconds: float,
    status: OverallStatus,
    execution: ExecutionResult,
    diff: DiffAnalysis,
    change: ChangeAnalysis | None,
    plan: TestPlan | None,
    paths: Mapping[str, str],
) -> dict[str, Any]:
    """Build the ``test-summary.json`` payload.

    Args:
        run_id: Run identifier.
        trigger: What started the run.
        duration_seconds: Run duration.
        status: Overall status.
        execution: Test execution results.
        diff: Diff analysis.
        change: Change analysis, if the phase ran.
        plan: Test plan, if the phase ran.
        paths: Artifact paths keyed by kind.

    Returns:
        JSON-serializable summary.
    """
    totals = execution.totals.to_dict()
    return {
        "timestamp": run_id.isoformat(),
        "runId": run_id.token,
        "trigger": trigger.value,
        "duration": round(duration_seconds, 2),
        "status": status.value,
        "mode": execution.mode.value,
        "testPlan": (
            {
                "id": plan.test_plan_id,
                "suites": len(plan.test_suites),
                "totalCases": plan.total_cases,
                "parseError": plan.parse_error,
            }
            if plan is not None
            else None
        ),
        "testResults": {
            "totalTests": totals["totalTests"],
            "passed": totals["passed"],
            "failed": totals["failed"],
            "warnings": totals["warnings"],
            "skipped": totals["skipped"],
            "passRate": totals["passRate"],
        },
        "changeAnalysis": change.to_wire() if change is not None else None,
        "diffAnalysis": {
            "overallAssessment": diff.overall_assessment,
            "mode": diff.mode,
            "degraded": diff.degraded,
            "comparisons": [
                {
                    "compareTemplate": c.compare_template,
                    "regressionStatus": c.regression_status,
                    "actualDifferenceType": c.actual_difference.value,
                }
                for c in diff.comparisons
            ],
        },
        "paths": dict(paths),
    }


def render_html_report(report_markdown: str, run_id: RunId, status: OverallStatus) -> str:
    """Convert a markdown report to a standalone HTML page.

    The ``data-status`` attribute on ``<body>`` carries the overall status
    so report listings can read it without parsing the text.
    """
    body = markdown.markdown(report_markdown, extensions=["tables", "fenced_code"])
    color = _STATUS_COLORS[status]
    return f"""<!DOCTYPE html>
<html>
<head>
    <meta charset="utf-8">
    <title>QA Report {html.escape(run_id.token)}</title>
    <style>
        body {{
            font-family: -apple-system, BlinkMacSystemFont, "Segoe UI", Roboto, sans-serif;
            margin: 0;
            padding: 20px;
            background: #f5f5f5;
        }}
        .container {{
            max-width: 1000px;
            margin: 0 auto;
            background: white;
            border-radius: 8px;
            box-shadow: 0 2px 4px rgba(0,0,0,0.1);
            padding: 20px;
        }}
        .status {{
            display: inline-block;
            padding: 4px 12px;
            border-radius: 4px;
            color: white;
            font-weight: bold;
            background: {color};
        }}
        table {{ border-collapse: collapse; width: 100%; margin: 12px 0; }}
        th, td {{ border: 1px solid #dee2e6; padding: 6px 10px; text-align: left; }}
        th {{ background: #f8f9fa; }}
        code {{ background: #f8f9fa; padding: 1px 4px; border-radius: 3px; }}
    </style>
</head>
<body data-status="{status.value}" data-run-id="{html.escape(run_id.token)}">
    <div class="container">
        <span class="status">{status.value.upper()}</span>
        {body}
    </div>
</body>
</html>
"""
