"""Shared pytest configuration and fixtures for pytest-tracecov tests."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Any

import pytest

from pytest_tracecov.config import ConfigStore
from pytest_tracecov.instrumentation.events import CallEvent, LineEvent, ReturnEvent
from pytest_tracecov.store.model import FunctionType


if TYPE_CHECKING:
    from collections.abc import Callable


# Register markers for test categories
def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers for test categorization."""
    config.addinivalue_line('markers', 'small: Fast, isolated unit tests (< 100ms)')
    config.addinivalue_line('markers', 'medium: Integration tests with real resources (< 10s)')


# Auto-mark tests based on directory
def pytest_collection_modifyitems(
    config: pytest.Config,  # noqa: ARG001
    items: list[pytest.Item],
) -> None:
    """Automatically apply markers based on test directory."""
    for item in items:
        path_parts = Path(str(item.fspath)).parts

        if 'small' in path_parts:
            item.add_marker(pytest.mark.small)
        elif 'medium' in path_parts:
            item.add_marker(pytest.mark.medium)


class FakeInstrumentation:
    """Instrumentation port that lets a test feed trace events by hand.

    Attributes:
        callback: The installed hook callback, or None when uninstalled.
        installs: Number of install calls.
        uninstalls: Values passed to uninstall, in order.
    """

    def __init__(self, previous: Any = 'previous-tracer') -> None:
        self.callback: Callable[[Any], bool] | None = None
        self.previous = previous
        self.installs = 0
        self.uninstalls: list[Any] = []

    def install(self, callback: Callable[[Any], bool]) -> Any:
        self.callback = callback
        self.installs += 1
        return self.previous

    def uninstall(self, previous: Any) -> None:
        self.callback = None
        self.uninstalls.append(previous)

    def call(
        self,
        file: str,
        name: str = 'func',
        start_line: int = 1,
        end_line: int = 1,
        kind: FunctionType | None = FunctionType.GLOBAL,
    ) -> bool:
        assert self.callback is not None, 'instrumentation is not installed'
        return self.callback(CallEvent(file, name, start_line, end_line, kind))

    def line(self, file: str, line: int) -> bool:
        assert self.callback is not None, 'instrumentation is not installed'
        return self.callback(LineEvent(file, line))

    def ret(self, file: str) -> bool:
        assert self.callback is not None, 'instrumentation is not installed'
        return self.callback(ReturnEvent(file))


@pytest.fixture
def fake_instrumentation() -> FakeInstrumentation:
    """Provide a synthetic instrumentation port."""
    return FakeInstrumentation()


@pytest.fixture
def sources() -> dict[str, str]:
    """In-memory source files keyed by path; add entries in a test."""
    return {}


@pytest.fixture
def source_reader(sources: dict[str, str]) -> Callable[[str], str]:
    """Source reader serving the ``sources`` fixture, raising OSError for anything else."""

    def _read(path: str) -> str:
        try:
            return sources[path]
        except KeyError:
            raise OSError(f'No such file: {path}') from None

    return _read


@pytest.fixture
def track_everything() -> ConfigStore:
    """Configuration store tracking every executed ``.py`` file."""
    return ConfigStore({'coverage': {'track_all_executed': True, 'include': ['**/*.py'], 'exclude': []}})
