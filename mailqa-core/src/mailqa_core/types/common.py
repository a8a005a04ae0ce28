"""Common types used across mailqa modules.

This module provides foundational types used throughout the pipeline,
including the run identifier that links every artifact of a run and the
enumerations shared by the catalog, executor, and analysis layers.

Type Aliases:
    TemplateName: Identifies a template (file stem without extension).
    TestCaseId: Stable catalog identifier such as "TC001".

Classes:
    RunId: Run-scoped key minted once per pipeline execution.
    Priority: Test case priority.
    Category: Test case category.
    DifferenceType: Classification of base/variant differences.
    Trigger: What started a run.
    TestMode: Strict regression or lenient (warning) policy.
    OverallStatus: Final status of a run's report.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import NewType

TemplateName = NewType("TemplateName", str)
"""Type alias for template identifiers (file stem, e.g. "site_visitor_welcome")."""

TestCaseId = NewType("TestCaseId", str)
"""Type alias for stable catalog identifiers (e.g. "TC001")."""

_TOKEN_RE = re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}-\d{2}-\d{2}-\d{3}Z$")


@dataclass(frozen=True, order=True)
class RunId:
    """Identifier shared by every artifact a run produces.

    The token is an ISO-8601 UTC timestamp with ':' and '.' replaced by '-',
    so it is safe to embed in file names and sorts chronologically.

    Attributes:
        token: Filename-safe timestamp token.
    """

    token: str

    def __post_init__(self) -> None:
        if not _TOKEN_RE.match(self.token):
            raise ValueError(f"Invalid run id token: {self.token!r}")

    @classmethod
    def from_datetime(cls, dt: datetime) -> RunId:
        """Create a RunId from an aware datetime.

        Args:
            dt: The run start time. Naive datetimes are treated as UTC.

        Returns:
            RunId for the given instant, with millisecond precision.
        """
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=timezone.utc)
        dt = dt.astimezone(timezone.utc)
        iso = dt.strftime("%Y-%m-%dT%H:%M:%S.") + f"{dt.microsecond // 1000:03d}Z"
        return cls(iso.replace(":", "-").replace(".", "-"))

    @classmethod
    def new(cls) -> RunId:
        """Mint a RunId for the current time."""
        return cls.from_datetime(datetime.now(timezone.utc))

    def to_datetime(self) -> datetime:
        """Convert back to an aware UTC datetime."""
        date_part, time_part = self.token.split("T")
        hh, mm, ss, ms = time_part.rstrip("Z").split("-")
        return datetime.fromisoformat(f"{date_part}T{hh}:{mm}:{ss}.{ms}+00:00")

    def isoformat(self) -> str:
        """Return the ISO-8601 form of the run start time."""
        return self.to_datetime().isoformat().replace("+00:00", "Z")

    def __str__(self) -> str:
        return self.token


class Priority(str, Enum):
    """Test case priority."""

    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class Category(str, Enum):
    """Test case category."""

    COMPILATION = "compilation"
    RENDERING = "rendering"
    STYLING = "styling"
    CONTENT = "content"
    STRUCTURE = "structure"
    COMPARISON = "comparison"


class DifferenceType(str, Enum):
    """Classification of how a variant differs from the base template.

    Expected differences are declared per template in configuration and may
    use STRUCTURE; the structural diff reports NONE, STYLING, CONTENT, or BOTH.
    """

    NONE = "none"
    STYLING = "styling"
    CONTENT = "content"
    STRUCTURE = "structure"
    BOTH = "both"
    UNKNOWN = "unknown"


class Trigger(str, Enum):
    """What started a pipeline run."""

    MANUAL = "manual"
    CLI = "cli"
    WEB_API = "web_api"
    FILE_WATCH = "file_watch"


class TestMode(str, Enum):
    """Failure policy for the test run.

    Attributes:
        STRICT: Any failing assertion fails its test case.
        LENIENT: Failing assertions are reported as warnings; cases pass.
    """

    STRICT = "strict"
    LENIENT = "lenient"


class OverallStatus(str, Enum):
    """Final status of a run as shown in the report."""

    PASSED = "passed"
    WARNING = "warning"
    FAILED = "failed"
    ERROR = "error"
