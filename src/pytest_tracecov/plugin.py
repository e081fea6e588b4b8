"""pytest plugin for trace-based coverage.

This module provides the pytest plugin hooks that integrate coverage
tracking into the pytest test runner: tracking starts when pytest is
configured, each test opens a new assertion window, and reports are
written when the session finishes.
"""

from __future__ import annotations

from dataclasses import dataclass
import io
import logging
from pathlib import Path
from typing import TYPE_CHECKING

import pytest

from pytest_tracecov.api import CoverageTracker
from pytest_tracecov.config import ConfigStore, load_config, merge_configs
from pytest_tracecov.reporting.console import ConsoleReporter


if TYPE_CHECKING:
    from _pytest.terminal import TerminalReporter


logger = logging.getLogger(__name__)


@dataclass
class TracecovSession:
    """Per-session plugin state.

    Attributes:
        tracker: The coverage tracker of this session.
        store: Merged configuration.
        report_dir: Absolute directory reports are written to.
        report_error: Description of report formats that failed, if any.
        threshold_failed: True if coverage fell below ``coverage.fail_under``.
    """

    tracker: CoverageTracker
    store: ConfigStore
    report_dir: Path
    report_error: str | None = None
    threshold_failed: bool = False


_session_key = pytest.StashKey[TracecovSession]()


def pytest_addoption(parser: pytest.Parser) -> None:
    """Add command-line options for pytest-tracecov."""
    group = parser.getgroup('tracecov', 'trace-based coverage with assertion tracking')
    group.addoption(
        '--tracecov',
        action='store_true',
        default=False,
        dest='tracecov',
        help='Enable coverage tracking for this run',
    )
    group.addoption(
        '--tracecov-report',
        action='store',
        default=None,
        dest='tracecov_report',
        help='Comma-separated report formats: html, lcov, json, cobertura (default: html)',
    )
    group.addoption(
        '--tracecov-dir',
        action='store',
        default=None,
        dest='tracecov_dir',
        help='Directory to write reports to (default: coverage-reports)',
    )
    group.addoption(
        '--tracecov-include',
        action='store',
        default=None,
        dest='tracecov_include',
        help='Comma-separated glob patterns of files to track',
    )
    group.addoption(
        '--tracecov-exclude',
        action='store',
        default=None,
        dest='tracecov_exclude',
        help='Comma-separated glob patterns of files never to track',
    )
    group.addoption(
        '--tracecov-fail-under',
        action='store',
        type=float,
        default=None,
        dest='tracecov_fail_under',
        help='Fail the run if line coverage is below this percentage',
    )


def pytest_configure(config: pytest.Config) -> None:
    """Configure pytest-tracecov and start tracking."""
    if not config.option.tracecov:
        return

    rootdir = Path(config.rootpath)
    merged = merge_configs(
        load_config(rootdir),
        cli_formats=config.option.tracecov_report,
        cli_output_dir=config.option.tracecov_dir,
        cli_include=config.option.tracecov_include,
        cli_exclude=config.option.tracecov_exclude,
        cli_fail_under=config.option.tracecov_fail_under,
    )
    store = ConfigStore.from_config(merged)

    report_dir = Path(store.get('coverage.output_dir'))
    if not report_dir.is_absolute():
        report_dir = rootdir / report_dir

    if not config.getini('enable_assertion_pass_hook'):
        logger.info('enable_assertion_pass_hook is off, no lines will be marked as covered by assertions')

    tracker = CoverageTracker(store, root=rootdir)
    config.stash[_session_key] = TracecovSession(tracker=tracker, store=store, report_dir=report_dir)
    tracker.start()


@pytest.hookimpl(tryfirst=True)
def pytest_runtest_setup(item: pytest.Item) -> None:
    """Open a new assertion window before the test's fixtures run."""
    state = item.config.stash.get(_session_key, None)
    if state is not None:
        state.tracker.begin_test()


def pytest_assertion_pass(item: pytest.Item, lineno: int, orig: str, expl: str) -> None:
    """Mark the lines that ran since the test started as covered."""
    state = item.config.stash.get(_session_key, None)
    if state is not None:
        state.tracker.record_assertion_pass()


def pytest_sessionfinish(session: pytest.Session, exitstatus: int) -> None:
    """Stop tracking, write reports and apply the coverage threshold."""
    state = session.config.stash.get(_session_key, None)
    if state is None or not state.tracker.is_running():
        return

    tracker = state.tracker
    tracker.stop()
    if state.store.get('coverage.discover_uncovered', False):
        tracker.discover_uncovered([session.config.rootpath])

    _, state.report_error = tracker.generate_reports(state.report_dir, state.store.get('coverage.formats'))
    if state.report_error:
        logger.warning('Coverage reporting problem: %s', state.report_error)

    fail_under = state.store.get('coverage.fail_under')
    if fail_under is not None and not tracker.meets_threshold(fail_under):
        state.threshold_failed = True
        if session.exitstatus == pytest.ExitCode.OK:
            session.exitstatus = pytest.ExitCode.TESTS_FAILED


def pytest_terminal_summary(terminalreporter: TerminalReporter, exitstatus: int, config: pytest.Config) -> None:
    """Print the coverage table and where the reports went."""
    state = config.stash.get(_session_key, None)
    if state is None:
        return
    run = state.tracker.get_report_data()
    if run is None:
        return

    buffer = io.StringIO()
    ConsoleReporter(output=buffer, root=str(config.rootpath)).write_report(run)
    terminalreporter.write(buffer.getvalue())
    terminalreporter.write_line(f'Coverage reports written to {state.report_dir}')
    if state.report_error:
        terminalreporter.write_line(state.report_error, yellow=True)
    if state.threshold_failed:
        terminalreporter.write_line(
            f'FAIL Required line coverage of {state.store.get("coverage.fail_under")}% not reached. '
            f'Total coverage: {run.summary.line_coverage_percent:.1f}%',
            red=True,
        )


def pytest_unconfigure(config: pytest.Config) -> None:
    """Make sure the trace function is removed if the session never finished."""
    state = config.stash.get(_session_key, None)
    if state is not None and state.tracker.is_running():
        state.tracker.stop()
