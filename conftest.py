"""Root conftest.py for the mailqa monorepo.

Puts every package's ``src`` directory on the import path, registers the
shared markers, and marks tests that rely on mocks or fakes so they can be
selected with ``-m uses_mock`` (or excluded with ``-m "not uses_mock"``).
"""

from __future__ import annotations

import ast
import inspect
import sys
import textwrap
from functools import lru_cache
from pathlib import Path
from types import ModuleType
from typing import TYPE_CHECKING

import pytest

if TYPE_CHECKING:
    from _pytest.config import Config
    from _pytest.nodes import Item


# Add all package src directories to path for imports
PROJECT_ROOT = Path(__file__).parent
for pkg_dir in sorted(PROJECT_ROOT.glob("mailqa-*/src")):
    if str(pkg_dir) not in sys.path:
        sys.path.insert(0, str(pkg_dir))

# Names that mark a test as mock-based when they appear in its source
MOCK_NAMES = frozenset({
    "Mock",
    "MagicMock",
    "AsyncMock",
    "PropertyMock",
    "create_autospec",
    "patch",
    "mocker",
})

# Substrings that mark fixtures, helpers and test names as mock-based
MOCK_HINTS = ("mock", "fake", "stub")


def pytest_configure(config: Config) -> None:
    """Register custom markers.

    Args:
        config: pytest configuration object.
    """
    config.addinivalue_line(
        "markers",
        "uses_mock: Test uses mocks or fakes (auto-detected or manually marked)",
    )
    config.addinivalue_line(
        "markers",
        "integration: Integration test requiring Chromium or the Anthropic API",
    )
    config.addinivalue_line(
        "markers",
        "slow: Slow-running test",
    )


def _has_hint(name: str) -> bool:
    lowered = name.lower()
    return any(hint in lowered for hint in MOCK_HINTS)


@lru_cache(maxsize=None)
def _module_mock_names(module: ModuleType) -> frozenset[str]:
    """Return module-level names bound to mock objects or fake helpers."""
    names = set(MOCK_NAMES)
    for name, value in vars(module).items():
        if getattr(value, "__module__", "") == "unittest.mock" or _has_hint(name):
            names.add(name)
    return frozenset(names)


def _source_uses_mock(source: str, names: frozenset[str]) -> bool:
    try:
        tree = ast.parse(source)
    except SyntaxError:
        return False
    for node in ast.walk(tree):
        if isinstance(node, ast.Name) and node.id in names:
            return True
        if isinstance(node, ast.Attribute) and node.attr in MOCK_NAMES:
            return True
    return False


def _uses_mock(item: Item) -> bool:
    if _has_hint(item.name):
        return True
    if any(_has_hint(f) or f == "mocker" for f in getattr(item, "fixturenames", ())):
        return True

    func = getattr(item, "obj", None)
    module = getattr(item, "module", None)
    if func is None or module is None:
        return False
    try:
        source = inspect.getsource(func)
    except (OSError, TypeError):
        return False
    return _source_uses_mock(textwrap.dedent(source), _module_mock_names(module))


def pytest_collection_modifyitems(config: Config, items: list[Item]) -> None:
    """Mark tests that use mocks or fakes.

    Args:
        config: pytest configuration object.
        items: List of collected test items.
    """
    for item in items:
        if item.get_closest_marker("uses_mock"):
            continue
        if _uses_mock(item):
            item.add_marker(pytest.mark.uses_mock)


def pytest_report_header(config: Config) -> list[str]:
    """Add a suite banner to the pytest header.

    Args:
        config: pytest configuration object.

    Returns:
        List of header lines.
    """
    lines = ["mailqa monorepo test suite"]
    if getattr(config.option, "cov_source", None):
        lines.append("Coverage: enabled")
    return lines
