"""Test case specification and result types."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Awaitable, Callable

from mailqa_core.types.assertion import AssertionResult, ScreenshotBundle
from mailqa_core.types.common import Category, Priority, TemplateName, TestCaseId

if TYPE_CHECKING:
    from mailqa_testcase.context import TestContext

Procedure = Callable[["TestContext"], Awaitable[list[AssertionResult]]]


class TestStatus(Enum):
    """Test case status.

    A case moves from PENDING to RUNNING and ends as PASSED, FAILED, or
    SKIPPED.
    """

    PENDING = "pending"
    RUNNING = "running"
    PASSED = "passed"
    FAILED = "failed"
    SKIPPED = "skipped"


class AssertionOutcome(Enum):
    """Displayed outcome of an assertion after the failure policy is applied."""

    PASSED = "passed"
    FAILED = "failed"
    WARNING = "warning"


class SkipCase(Exception):
    """Raised by a procedure when the case cannot apply to this run."""


@dataclass(frozen=True)
class TestCaseSpec:
    """One addressable entry of the regression catalog.

    Attributes:
        id: Stable identifier (e.g. "TC001"); numbering belongs to the full catalog.
        name: Human-readable name.
        description: What the case verifies.
        suite: Suite the case belongs to.
        priority: Case priority.
        category: Case category.
        templates: Every template the case reads; used for filtering.
        procedure: Coroutine producing the case's assertion results.
    """

    id: TestCaseId
    name: str
    description: str
    suite: str
    priority: Priority
    category: Category
    templates: tuple[TemplateName, ...]
    procedure: Procedure = field(compare=False, repr=False)

    def applies_to(self, selected: frozenset[str]) -> bool:
        """Return True if every referenced template is in the selection."""
        return all(t in selected for t in self.templates)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization (procedure omitted)."""
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "suite": self.suite,
            "priority": self.priority.value,
            "category": self.category.value,
            "templates": list(self.templates),
        }


@dataclass(frozen=True)
class RecordedAssertion:
    """An assertion result after the failure policy has been applied.

    ``raw_passed`` is what the predicate decided. ``displayed_status`` is
    what the report shows: in lenient mode a failed predicate is displayed
    as WARNING so reports can still show what would have failed.
    """

    name: str
    raw_passed: bool
    displayed_status: AssertionOutcome
    message: str
    screenshots: ScreenshotBundle | None = None

    @property
    def is_warning(self) -> bool:
        """Return True if a failure was downgraded to a warning."""
        return self.displayed_status == AssertionOutcome.WARNING

    @classmethod
    def from_result(cls, result: AssertionResult, lenient: bool) -> RecordedAssertion:
        """Apply the failure policy to a raw assertion result.

        Args:
            result: Predicate output.
            lenient: Downgrade failures to warnings.

        Returns:
            The recorded assertion.
        """
        if result.passed:
            displayed = AssertionOutcome.PASSED
        elif lenient:
            displayed = AssertionOutcome.WARNING
        else:
            displayed = AssertionOutcome.FAILED
        return cls(
            name=result.name,
            raw_passed=result.passed,
            displayed_status=displayed,
            message=result.message,
            screenshots=result.screenshots,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        data: dict[str, Any] = {
            "name": self.name,
            "passed": self.displayed_status != AssertionOutcome.FAILED,
            "rawPassed": self.raw_passed,
            "displayedStatus": self.displayed_status.value,
            "isWarning": self.is_warning,
            "message": self.message,
        }
        if self.screenshots is not None:
            data["screenshots"] = self.screenshots.to_dict()
        return data


@dataclass(frozen=True)
class TestCaseResult:
    """Result of executing one test case."""

    spec: TestCaseSpec
    status: TestStatus
    assertions: tuple[RecordedAssertion, ...] = ()
    duration_seconds: float = 0.0
    error: str | None = None

    @property
    def id(self) -> TestCaseId:
        """Return the test case ID."""
        return self.spec.id

    @property
    def passed(self) -> bool:
        """Return True if the case passed (possibly with warnings)."""
        return self.status == TestStatus.PASSED

    @property
    def failed(self) -> bool:
        """Return True if the case failed."""
        return self.status == TestStatus.FAILED

    @property
    def has_warnings(self) -> bool:
        """Return True if any assertion was downgraded to a warning."""
        return any(a.is_warning for a in self.assertions)

    @property
    def warning_count(self) -> int:
        """Return the number of downgraded assertions."""
        return sum(1 for a in self.assertions if a.is_warning)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            **self.spec.to_dict(),
            "status": self.status.value,
            "hasWarnings": self.has_warnings,
            "assertions": [a.to_dict() for a in self.assertions],
            "duration": round(self.duration_seconds * 1000),
            "error": self.error,
        }
