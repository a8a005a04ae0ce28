"""Exception types for mailqa-core.

This module defines the exception hierarchy used throughout the mailqa pipeline.
All mailqa exceptions inherit from MailqaError, allowing consumers to catch all
pipeline-specific errors with a single except clause.

Exception hierarchy:
    MailqaError (base)
    +-- ConfigError: Invalid or missing configuration
    +-- CompilationError: Template compilation failures (converted to data)
    +-- RenderError: Browser rendering failures
    +-- ProviderError: Text-completion service failures
    +-- AIResponseParseError: Unparseable AI responses (converted to fallbacks)
    +-- ArtifactError: Unknown or invalid run artifacts
    +-- RunBusyError: A run is already active
"""

from __future__ import annotations

from enum import Enum


class MailqaError(Exception):
    """Base exception for all mailqa errors.

    This is the root of the mailqa exception hierarchy. Catch this to handle
    any pipeline-specific error.
    """


class ConfigError(MailqaError, ValueError):
    """Raised when the pipeline configuration is invalid.

    This includes missing required fields, wrong value types, and unknown
    enumeration values such as an unsupported test mode.
    """


class CompilationError(MailqaError):
    """Raised when a template fails to compile.

    The compiler catches this internally and reports it as a compilation
    issue; it never propagates past the compile step.

    Args:
        phase: Compilation phase that failed ("variables" or "template").
        message: Human-readable error description.
        line: Source line number, if known.
    """

    def __init__(self, phase: str, message: str, line: int | None = None) -> None:
        super().__init__(message)
        self.phase = phase
        self.message = message
        self.line = line


class RenderError(MailqaError):
    """Raised when the browser renderer cannot produce a screenshot or text."""


class ProviderErrorKind(str, Enum):
    """Classification of text-completion service failures.

    Attributes:
        RATE_LIMITED: The provider throttled the request.
        INSUFFICIENT_CREDIT: The account has no remaining credit.
        UNAUTHORIZED: The API key is missing or rejected.
        UNKNOWN: Any other failure (network, timeout, server error).
    """

    RATE_LIMITED = "rate_limited"
    INSUFFICIENT_CREDIT = "insufficient_credit"
    UNAUTHORIZED = "unauthorized"
    UNKNOWN = "unknown"


class ProviderError(MailqaError):
    """Raised when the text-completion service fails.

    Args:
        kind: Structured classification of the failure.
        message: Provider error message.
        agent: Name of the agent that made the call, if known.
    """

    def __init__(
        self,
        kind: ProviderErrorKind,
        message: str,
        agent: str | None = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.agent = agent

    def __str__(self) -> str:
        prefix = f"[{self.agent}] " if self.agent else ""
        return f"{prefix}{self.kind.value}: {self.message}"


class AIResponseParseError(MailqaError):
    """Raised when an AI response contains no usable structured data.

    Agents convert this into a deterministic fallback result.
    """


class ArtifactError(MailqaError):
    """Raised for unknown artifacts or artifact names that are not allowed."""


class RunBusyError(MailqaError):
    """Raised when a run is requested while another run is active."""
