"""Run artifact storage.

Every artifact a run writes is named with the run's RunId token and
recorded in a per-run manifest (``runs/<ts>.meta.json``). Siblings are
found through the manifest, so deleting one artifact of a run deletes
all of them without parsing file names.

Layout under the output directory:
    compiled/                  <name>.html, compilation-results.json
    screenshots/<ts>/          <name>.png, diff-<name>.png, comparison-<name>.png
    test-plans/                test-plan-<ts>.json, latest-test-plan.json
    reports/                   qa-report-<ts>.md, report-<ts>.html,
                               playwright-results-<ts>.json,
                               comparison-report.md, test-summary.json
    logs/                      test-<ts>.log
    runs/                      <ts>.meta.json
"""

from __future__ import annotations

import json
import logging
import re
import shutil
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from mailqa_core.errors import ArtifactError
from mailqa_core.types.common import RunId

logger = logging.getLogger(__name__)

LATEST_TEST_PLAN = "latest-test-plan.json"
LATEST_REPORT = "comparison-report.md"
SUMMARY_FILE = "test-summary.json"

_LOG_NAME_RE = re.compile(r"^test-(?P<token>[0-9TZ-]+)\.log$")


def _run_id(token: str) -> RunId:
    try:
        return RunId(token)
    except ValueError as exc:
        raise ArtifactError(f"Invalid artifact id: {token!r}") from exc


def _file_info(path: Path, run_id: RunId) -> dict[str, Any]:
    stat = path.stat()
    return {
        "id": run_id.token,
        "name": path.name,
        "size": stat.st_size,
        "modified": datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc).isoformat(),
    }


class ArtifactStore:
    """Reads, writes, lists and deletes run artifacts.

    Args:
        root: Output directory.
    """

    def __init__(self, root: Path) -> None:
        self._root = Path(root)

    @property
    def root(self) -> Path:
        """Return the output directory."""
        return self._root

    @property
    def compiled_dir(self) -> Path:
        """Return the compiled HTML directory."""
        return self._root / "compiled"

    @property
    def plans_dir(self) -> Path:
        """Return the test plan directory."""
        return self._root / "test-plans"

    @property
    def reports_dir(self) -> Path:
        """Return the report directory."""
        return self._root / "reports"

    @property
    def logs_dir(self) -> Path:
        """Return the log directory."""
        return self._root / "logs"

    @property
    def runs_dir(self) -> Path:
        """Return the manifest directory."""
        return self._root / "runs"

    def screenshots_dir(self, run_id: RunId) -> Path:
        """Return the screenshot directory of a run."""
        return self._root / "screenshots" / run_id.token

    def test_plan_path(self, run_id: RunId) -> Path:
        """Return the test plan path of a run."""
        return self.plans_dir / f"test-plan-{run_id}.json"

    def report_markdown_path(self, run_id: RunId) -> Path:
        """Return the markdown report path of a run."""
        return self.reports_dir / f"qa-report-{run_id}.md"

    def report_html_path(self, run_id: RunId) -> Path:
        """Return the HTML report path of a run."""
        return self.reports_dir / f"report-{run_id}.html"

    def results_path(self, run_id: RunId) -> Path:
        """Return the test results path of a run."""
        return self.reports_dir / f"playwright-results-{run_id}.json"

    def log_path(self, run_id: RunId) -> Path:
        """Return the log path of a run."""
        return self.logs_dir / f"test-{run_id}.log"

    def _manifest_path(self, run_id: RunId) -> Path:
        return self.runs_dir / f"{run_id}.meta.json"

    # -------------------------------------------------------------------------
    # Manifest
    # -------------------------------------------------------------------------

    def read_manifest(self, run_id: RunId) -> dict[str, Any]:
        """Return a run's manifest, or an empty one if none was written."""
        path = self._manifest_path(run_id)
        if not path.exists():
            return {"runId": run_id.token, "files": {}}
        return json.loads(path.read_text(encoding="utf-8"))

    def record(self, run_id: RunId, kind: str, path: Path, **extra: Any) -> None:
        """Record an artifact in the run manifest.

        Args:
            run_id: Owning run.
            kind: Artifact kind (e.g. "report", "test_plan", "log").
            path: Artifact path.
            **extra: Additional run metadata (e.g. status, trigger).
        """
        manifest = self.read_manifest(run_id)
        manifest["files"][kind] = str(path.relative_to(self._root))
        manifest.update(extra)
        self.runs_dir.mkdir(parents=True, exist_ok=True)
        self._manifest_path(run_id).write_text(json.dumps(manifest, indent=2), encoding="utf-8")

    def _write(self, run_id: RunId, kind: str, path: Path, content: str) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
        self.record(run_id, kind, path)
        logger.debug("Wrote %s artifact %s", kind, path)
        return path

    # -------------------------------------------------------------------------
    # Writers
    # -------------------------------------------------------------------------

    def write_test_plan(self, run_id: RunId, plan: dict[str, Any]) -> Path:
        """Write a test plan and update the latest pointer."""
        content = json.dumps(plan, indent=2)
        path = self._write(run_id, "test_plan", self.test_plan_path(run_id), content)
        (self.plans_dir / LATEST_TEST_PLAN).write_text(content, encoding="utf-8")
        return path

    def write_results(self, run_id: RunId, results: dict[str, Any]) -> Path:
        """Write the test execution results."""
        return self._write(run_id, "results", self.results_path(run_id), json.dumps(results, indent=2))

    def write_report(self, run_id: RunId, markdown: str, html: str, status: str) -> tuple[Path, Path]:
        """Write the markdown and HTML reports and update the latest pointer.

        Returns:
            Markdown and HTML report paths.
        """
        md_path = self._write(run_id, "report", self.report_markdown_path(run_id), markdown)
        html_path = self._write(run_id, "report_html", self.report_html_path(run_id), html)
        self.record(run_id, "report", md_path, status=status)
        (self.reports_dir / LATEST_REPORT).write_text(markdown, encoding="utf-8")
        return md_path, html_path

    def write_summary(self, run_id: RunId, summary: dict[str, Any]) -> Path:
        """Write the latest run summary."""
        self.reports_dir.mkdir(parents=True, exist_ok=True)
        path = self.reports_dir / SUMMARY_FILE
        path.write_text(json.dumps(summary, indent=2), encoding="utf-8")
        self.record(run_id, "summary", path)
        return path

    def write_log(self, run_id: RunId, lines: list[str]) -> Path:
        """Write a run's log."""
        return self._write(run_id, "log", self.log_path(run_id), "\n".join(lines) + "\n")

    def record_screenshots(self, run_id: RunId) -> None:
        """Record the run's screenshot directory in its manifest, if it exists."""
        directory = self.screenshots_dir(run_id)
        if directory.exists():
            self.record(run_id, "screenshots", directory)

    # -------------------------------------------------------------------------
    # Listing and reading
    # -------------------------------------------------------------------------

    def _list(self, directory: Path, pattern: str, prefix: str, suffix: str) -> list[dict[str, Any]]:
        if not directory.is_dir():
            return []
        entries = []
        for path in directory.glob(pattern):
            token = path.name[len(prefix) : -len(suffix)]
            try:
                run_id = RunId(token)
            except ValueError:
                continue
            info = _file_info(path, run_id)
            info["status"] = self.read_manifest(run_id).get("status")
            entries.append(info)
        return sorted(entries, key=lambda e: e["id"], reverse=True)

    def list_reports(self) -> list[dict[str, Any]]:
        """List markdown reports, newest first."""
        return self._list(self.reports_dir, "qa-report-*.md", "qa-report-", ".md")

    def list_test_plans(self) -> list[dict[str, Any]]:
        """List test plans, newest first."""
        return self._list(self.plans_dir, "test-plan-*.json", "test-plan-", ".json")

    def list_logs(self) -> list[dict[str, Any]]:
        """List run logs, newest first."""
        return self._list(self.logs_dir, "test-*.log", "test-", ".log")

    def read_report(self, report_id: str) -> str:
        """Return a markdown report.

        Raises:
            ArtifactError: If the id is invalid or the report does not exist.
        """
        path = self.report_markdown_path(_run_id(report_id))
        if not path.exists():
            raise ArtifactError(f"Report not found: {report_id}")
        return path.read_text(encoding="utf-8")

    def read_test_plan(self, plan_id: str) -> dict[str, Any]:
        """Return a test plan.

        Raises:
            ArtifactError: If the id is invalid or the plan does not exist.
        """
        path = self.test_plan_path(_run_id(plan_id))
        if not path.exists():
            raise ArtifactError(f"Test plan not found: {plan_id}")
        return json.loads(path.read_text(encoding="utf-8"))

    def read_log(self, name: str) -> str:
        """Return a log by file name.

        Raises:
            ArtifactError: If the name is invalid or the log does not exist.
        """
        path = self.log_path(self._log_run_id(name))
        if not path.exists():
            raise ArtifactError(f"Log not found: {name}")
        return path.read_text(encoding="utf-8")

    def latest_report(self) -> str | None:
        """Return the most recent markdown report, if any."""
        path = self.reports_dir / LATEST_REPORT
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    @staticmethod
    def _log_run_id(name: str) -> RunId:
        match = _LOG_NAME_RE.match(name)
        if match is None:
            raise ArtifactError(f"Invalid log name: {name!r}")
        return _run_id(match.group("token"))

    # -------------------------------------------------------------------------
    # Deletion
    # -------------------------------------------------------------------------

    def delete_run(self, run_id: RunId) -> list[str]:
        """Delete every artifact of a run and its manifest.

        Returns:
            Paths deleted, relative to the output directory.

        Raises:
            ArtifactError: If the run has no artifacts.
        """
        manifest = self.read_manifest(run_id)
        # Artifacts written before the manifest existed are still found by name
        candidates = {str(p.relative_to(self._root)) for p in self._named_paths(run_id) if p.exists()}
        candidates.update(manifest["files"].values())
        if not candidates:
            raise ArtifactError(f"No artifacts for run {run_id}")

        deleted = []
        for relative in sorted(candidates):
            path = self._root / relative
            if path.name in (SUMMARY_FILE, LATEST_REPORT, LATEST_TEST_PLAN):
                continue
            if path.is_dir():
                shutil.rmtree(path)
            elif path.exists():
                path.unlink()
            else:
                continue
            deleted.append(relative)
        self._manifest_path(run_id).unlink(missing_ok=True)
        self._refresh_pointers()
        logger.info("Deleted run %s: %s", run_id, ", ".join(deleted))
        return deleted

    def delete_report(self, report_id: str) -> list[str]:
        """Delete a report and its sibling artifacts."""
        run_id = _run_id(report_id)
        if not self.report_markdown_path(run_id).exists():
            raise ArtifactError(f"Report not found: {report_id}")
        return self.delete_run(run_id)

    def delete_test_plan(self, plan_id: str) -> list[str]:
        """Delete a test plan and its sibling artifacts."""
        run_id = _run_id(plan_id)
        if not self.test_plan_path(run_id).exists():
            raise ArtifactError(f"Test plan not found: {plan_id}")
        return self.delete_run(run_id)

    def delete_log(self, name: str) -> list[str]:
        """Delete a log and its sibling artifacts."""
        run_id = self._log_run_id(name)
        if not self.log_path(run_id).exists():
            raise ArtifactError(f"Log not found: {name}")
        return self.delete_run(run_id)

    def _named_paths(self, run_id: RunId) -> list[Path]:
        return [
            self.test_plan_path(run_id),
            self.report_markdown_path(run_id),
            self.report_html_path(run_id),
            self.results_path(run_id),
            self.log_path(run_id),
            self.screenshots_dir(run_id),
        ]

    def _refresh_pointers(self) -> None:
        reports = self.list_reports()
        latest_report = self.reports_dir / LATEST_REPORT
        if reports:
            newest = self.report_markdown_path(RunId(reports[0]["id"]))
            latest_report.write_text(newest.read_text(encoding="utf-8"), encoding="utf-8")
        else:
            latest_report.unlink(missing_ok=True)

        plans = self.list_test_plans()
        latest_plan = self.plans_dir / LATEST_TEST_PLAN
        if plans:
            newest = self.test_plan_path(RunId(plans[0]["id"]))
            latest_plan.write_text(newest.read_text(encoding="utf-8"), encoding="utf-8")
        else:
            latest_plan.unlink(missing_ok=True)
