"""Regression test engine for mailqa.

This package provides the deterministic assertion predicates, the ordered
regression catalog, and the executor that applies the strict or lenient
failure policy to each case.
"""

from mailqa_testcase.catalog import (
    CatalogExpectations,
    build_catalog,
    catalog_templates,
    filter_catalog,
)
from mailqa_testcase.context import TestContext
from mailqa_testcase.executor import ExecutionResult, RunTotals, TestRunExecutor, classify
from mailqa_testcase.testcase import (
    AssertionOutcome,
    RecordedAssertion,
    SkipCase,
    TestCaseResult,
    TestCaseSpec,
    TestStatus,
)

__all__ = [
    # Catalog
    "CatalogExpectations",
    "build_catalog",
    "catalog_templates",
    "filter_catalog",
    # Context
    "TestContext",
    # Executor
    "ExecutionResult",
    "RunTotals",
    "TestRunExecutor",
    "classify",
    # Test case
    "AssertionOutcome",
    "RecordedAssertion",
    "SkipCase",
    "TestCaseResult",
    "TestCaseSpec",
    "TestStatus",
]
