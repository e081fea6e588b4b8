"""Fixtures shared by the reporter tests."""

from __future__ import annotations

import pytest

from pytest_tracecov.classifier import classify_run
from pytest_tracecov.store import operations
from pytest_tracecov.store.model import CoverageRun, FunctionType


APP_SOURCE = '''"""App module."""


def add(a, b):
    return a + b


def unused():
    return '<never>'
'''

UTIL_SOURCE = 'VALUE = 1\n'


@pytest.fixture
def coverage_run() -> CoverageRun:
    """A classified run with two files, one function never called."""
    run = operations.create()
    operations.initialize_file(run, '/project/src/pkg/util.py', UTIL_SOURCE)
    operations.initialize_file(run, '/project/src/app.py', APP_SOURCE)

    operations.mark_line_executed(run, '/project/src/app.py', 4)
    operations.mark_line_executed(run, '/project/src/app.py', 8)
    operations.register_function(run, '/project/src/app.py', 'add', 4, 5, FunctionType.GLOBAL)
    operations.register_function(run, '/project/src/app.py', 'unused', 8, 9, FunctionType.GLOBAL)
    operations.mark_function_executed(run, '/project/src/app.py', 'add:4-5')
    operations.mark_line_executed(run, '/project/src/app.py', 5)
    operations.mark_line_executed(run, '/project/src/app.py', 5)
    operations.mark_line_covered(run, '/project/src/app.py', 5)
    operations.mark_line_executed(run, '/project/src/pkg/util.py', 1)

    classify_run(run)
    operations.calculate_summary(run)
    return run
