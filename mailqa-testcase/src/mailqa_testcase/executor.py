"""Test run executor.

The executor drives the filtered catalog sequentially, in catalog order,
applies the strict or lenient failure policy, and aggregates totals as
results come in. A case that raises never stops the run: the exception
becomes a single failing "Test execution" assertion.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Sequence

from mailqa_core.types.assertion import AssertionResult
from mailqa_core.types.common import TestMode

from mailqa_testcase.context import TestContext
from mailqa_testcase.testcase import (
    RecordedAssertion,
    SkipCase,
    TestCaseResult,
    TestCaseSpec,
    TestStatus,
)

logger = logging.getLogger(__name__)

ResultCallback = Callable[[TestCaseResult], None]


@dataclass
class RunTotals:
    """Running totals for a test run."""

    total: int = 0
    passed: int = 0
    failed: int = 0
    warnings: int = 0
    skipped: int = 0

    def record(self, result: TestCaseResult) -> None:
        """Add one case result to the totals."""
        self.total += 1
        if result.status == TestStatus.PASSED:
            self.passed += 1
        elif result.status == TestStatus.FAILED:
            self.failed += 1
        elif result.status == TestStatus.SKIPPED:
            self.skipped += 1
        if result.has_warnings:
            self.warnings += 1

    @property
    def pass_rate(self) -> float:
        """Return passed / total as a percentage, or 0 when nothing ran."""
        if self.total == 0:
            return 0.0
        return self.passed / self.total * 100

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "totalTests": self.total,
            "passed": self.passed,
            "failed": self.failed,
            "warnings": self.warnings,
            "skipped": self.skipped,
            "passRate": f"{self.pass_rate:.1f}%",
        }


@dataclass
class ExecutionResult:
    """Ordered case results plus totals for one run."""

    mode: TestMode
    results: list[TestCaseResult] = field(default_factory=list)
    totals: RunTotals = field(default_factory=RunTotals)

    @property
    def any_failed(self) -> bool:
        """Return True if any case failed."""
        return self.totals.failed > 0

    @property
    def any_warnings(self) -> bool:
        """Return True if any case passed with warnings."""
        return self.totals.warnings > 0

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "mode": self.mode.value,
            **self.totals.to_dict(),
            "results": [r.to_dict() for r in self.results],
        }


def classify(
    spec: TestCaseSpec,
    raw: Sequence[AssertionResult],
    mode: TestMode,
    duration_seconds: float = 0.0,
    error: str | None = None,
) -> TestCaseResult:
    """Apply the failure policy to a case's raw assertion results.

    Strict mode fails the case if any assertion failed. Lenient mode
    passes it and records each failure as a warning.

    Args:
        spec: The executed case.
        raw: Predicate outputs in order.
        mode: Failure policy.
        duration_seconds: Wall time of the procedure.
        error: Error text if the procedure raised.

    Returns:
        The classified case result.
    """
    lenient = mode == TestMode.LENIENT
    recorded = tuple(RecordedAssertion.from_result(r, lenient) for r in raw)
    any_raw_failure = any(not r.raw_passed for r in recorded)
    status = TestStatus.FAILED if any_raw_failure and not lenient else TestStatus.PASSED
    return TestCaseResult(
        spec=spec,
        status=status,
        assertions=recorded,
        duration_seconds=duration_seconds,
        error=error,
    )


class TestRunExecutor:
    """Runs catalog cases one at a time, in order.

    Cases share one render session through the context, so they are never
    run concurrently.

    Example:
        executor = TestRunExecutor(filter_catalog(catalog, selected), TestMode.STRICT)
        outcome = await executor.run(context)
        print(outcome.totals.to_dict())
    """

    def __init__(
        self,
        cases: Sequence[TestCaseSpec],
        mode: TestMode = TestMode.STRICT,
        on_result: ResultCallback | None = None,
    ) -> None:
        """Initialize the executor.

        Args:
            cases: Cases to run, already filtered, in catalog order.
            mode: Failure policy.
            on_result: Optional callback called after each case completes.
        """
        self._cases = list(cases)
        self._mode = mode
        self._on_result = on_result
        self._statuses: dict[str, TestStatus] = {c.id: TestStatus.PENDING for c in self._cases}

    @property
    def mode(self) -> TestMode:
        """Return the failure policy."""
        return self._mode

    def status_of(self, case_id: str) -> TestStatus:
        """Return the current status of a case."""
        return self._statuses[case_id]

    async def run_case(self, spec: TestCaseSpec, ctx: TestContext) -> TestCaseResult:
        """Run one case, converting exceptions into a failing assertion.

        Args:
            spec: The case to run.
            ctx: Shared run context.

        Returns:
            The classified case result.
        """
        self._statuses[spec.id] = TestStatus.RUNNING
        logger.info("Running %s: %s", spec.id, spec.name)
        start = time.monotonic()

        try:
            raw = await spec.procedure(ctx)
        except SkipCase as exc:
            result = TestCaseResult(
                spec=spec,
                status=TestStatus.SKIPPED,
                duration_seconds=time.monotonic() - start,
                error=str(exc),
            )
        except Exception as exc:  # pylint: disable=broad-except
            logger.exception("Test %s raised", spec.id)
            # Execution errors always fail the case, regardless of mode
            failure = RecordedAssertion.from_result(
                AssertionResult(name="Test execution", passed=False, message=f"Error: {exc}"),
                lenient=False,
            )
            result = TestCaseResult(
                spec=spec,
                status=TestStatus.FAILED,
                assertions=(failure,),
                duration_seconds=time.monotonic() - start,
                error=str(exc),
            )
        else:
            result = classify(spec, raw, self._mode, time.monotonic() - start)

        self._statuses[spec.id] = result.status
        if result.failed:
            logger.error("  FAIL: %s", spec.id)
        elif result.status == TestStatus.SKIPPED:
            logger.warning("  SKIP: %s (%s)", spec.id, result.error)
        elif result.has_warnings:
            logger.warning("  PASS with %d warnings: %s", result.warning_count, spec.id)
        else:
            logger.info("  PASS: %s", spec.id)
        return result

    async def run(self, ctx: TestContext) -> ExecutionResult:
        """Run every case in order.

        Args:
            ctx: Shared run context.

        Returns:
            ExecutionResult with results in catalog order.
        """
        outcome = ExecutionResult(mode=self._mode)
        for spec in self._cases:
            result = await self.run_case(spec, ctx)
            outcome.results.append(result)
            outcome.totals.record(result)
            if self._on_result is not None:
                self._on_result(result)

        logger.info(
            "Executed %d tests: %d passed, %d failed, %d warnings, %d skipped",
            outcome.totals.total,
            outcome.totals.passed,
            outcome.totals.failed,
            outcome.totals.warnings,
            outcome.totals.skipped,
        )
        return outcome
