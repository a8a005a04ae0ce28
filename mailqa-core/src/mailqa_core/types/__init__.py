"""Core data types for mailqa.

Submodules:
    common: Identifiers and shared enumerations (RunId, Priority, TestMode, ...)
    template: Template and compilation result types
    completion: Text-completion messages and responses
    assertion: Assertion results and screenshot bundles

All types are exported from this package for convenience.
"""

from mailqa_core.types.assertion import AssertionResult, ScreenshotBundle
from mailqa_core.types.common import (
    Category,
    DifferenceType,
    OverallStatus,
    Priority,
    RunId,
    TemplateName,
    TestCaseId,
    TestMode,
    Trigger,
)
from mailqa_core.types.completion import ChatMessage, Completion, Usage
from mailqa_core.types.template import CompilationIssue, CompilationResult, Template

__all__ = [
    # Common
    "Category",
    "DifferenceType",
    "OverallStatus",
    "Priority",
    "RunId",
    "TemplateName",
    "TestCaseId",
    "TestMode",
    "Trigger",
    # Completion
    "ChatMessage",
    "Completion",
    "Usage",
    # Template
    "CompilationIssue",
    "CompilationResult",
    "Template",
    # Assertion
    "AssertionResult",
    "ScreenshotBundle",
]
