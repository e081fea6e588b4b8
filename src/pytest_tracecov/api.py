"""Public coverage API.

CoverageTracker ties the pieces together: it starts and stops the
execution hook, classifies lines once tracking stops, validates the run
and generates reports. Entry points report failure through return values
instead of raising, so a test runner driving them never crashes mid-suite.

Example:
    >>> tracker = CoverageTracker()
    >>> tracker.is_running()
    False
    >>> tracker.stop()
    False
    >>> tracker.generate_reports('out', 'html')
    (False, 'formats must be a list of format names')
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import TYPE_CHECKING, Any

from pytest_tracecov.classifier import classify_file, classify_run
from pytest_tracecov.instrumentation.hook import ExecutionHook, read_source, register_source_functions
from pytest_tracecov.instrumentation.port import SysTraceInstrumentation
from pytest_tracecov.reporting.registry import default_registry
from pytest_tracecov.resolver import FileResolver, discover_files
from pytest_tracecov.store import operations
from pytest_tracecov.store.model import CoverageRun


if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

    from pytest_tracecov.config import ConfigStore
    from pytest_tracecov.instrumentation.port import Instrumentation
    from pytest_tracecov.reporting.registry import FormatterRegistry
    from pytest_tracecov.store.model import FileRecord, RunSummary


logger = logging.getLogger(__name__)

REPORT_BASENAME = 'coverage-report'


class CoverageTracker:
    """Start, stop and report on coverage tracking.

    Attributes:
        hook: The execution hook recording coverage.
        resolver: Decides which files are tracked.
        registry: Report formatters by name.
        last_error: Description of the last consistency problem found by
            ``stop``, or None.
    """

    def __init__(
        self,
        config_store: ConfigStore | None = None,
        root: str | os.PathLike[str] | None = None,
        instrumentation: Instrumentation | None = None,
        source_reader: Callable[[str], str] = read_source,
        registry: FormatterRegistry | None = None,
    ) -> None:
        """Create a tracker.

        Args:
            config_store: Configuration store holding ``coverage.*`` keys.
            root: Directory relative include/exclude patterns refer to.
            instrumentation: Port the hook installs into. Defaults to
                ``sys.settrace``.
            source_reader: Reads source files on first touch.
            registry: Report formatters. Defaults to the built-in formats.
        """
        self.resolver = FileResolver(config_store, root)
        if instrumentation is None:
            trace_threads = bool(config_store.get('coverage.trace_threads', False)) if config_store else False
            instrumentation = SysTraceInstrumentation(trace_threads=trace_threads)
        self.hook = ExecutionHook(self.resolver, instrumentation, source_reader)
        self.registry = registry if registry is not None else default_registry()
        self.last_error: str | None = None
        self._read_source = source_reader

    def start(self, initial_data: CoverageRun | None = None) -> bool:
        """Start coverage tracking.

        Args:
            initial_data: Existing run to continue adding to.

        Returns:
            True if tracking started.
        """
        if initial_data is not None and not isinstance(initial_data, CoverageRun):
            logger.warning('initial_data must be a CoverageRun, got %s', type(initial_data).__name__)
            return False
        logger.info('Starting coverage tracking')
        self.last_error = None
        if not self.hook.start(initial_data):
            logger.error('Failed to start coverage tracking')
            return False
        return True

    def stop(self) -> bool:
        """Stop tracking, classify every file and validate the run.

        A run that fails validation is kept and stays available through
        ``get_report_data``; the problem is stored in ``last_error``.

        Returns:
            True if tracking stopped and the data is consistent.
        """
        if not self.hook.is_running():
            logger.warning('Coverage tracking is not running')
            return False
        if not self.hook.stop():
            logger.error('Failed to stop coverage tracking')
            return False

        run = self.hook.get_coverage_data()
        if run is None:
            logger.error('No coverage data available after stopping tracking')
            return False

        classify_run(run)
        summary = operations.calculate_summary(run)
        valid, error = operations.validate(run)
        if not valid:
            self.last_error = error
            logger.error('Coverage data validation failed: %s', error)
            return False

        if summary is not None:
            logger.info(
                'Coverage tracking stopped: %d files, %d/%d lines executed (%.1f%%)',
                summary.total_files,
                summary.executed_lines,
                summary.executable_lines,
                summary.line_coverage_percent,
            )
        return True

    def reset(self) -> bool:
        """Discard collected data. Fails while tracking is running."""
        self.last_error = None
        return self.hook.reset()

    def is_running(self) -> bool:
        """Return True while tracking is active."""
        return self.hook.is_running()

    def get_report_data(self) -> CoverageRun | None:
        """Return the current run, or None if nothing was ever tracked."""
        return self.hook.get_coverage_data()

    def get_summary(self) -> RunSummary | None:
        """Return the run summary, or None if nothing was ever tracked."""
        run = self.get_report_data()
        if run is None:
            return None
        return run.summary

    def get_file_coverage(self, path: str | os.PathLike[str]) -> FileRecord | None:
        """Return the record of one file, or None if it was not tracked."""
        if not isinstance(path, (str, os.PathLike)):
            return None
        return operations.get_file(self.get_report_data(), os.fspath(path))

    def get_tracked_files(self) -> list[str]:
        """Return the normalized paths of all tracked files, sorted."""
        run = self.get_report_data()
        if run is None:
            return []
        return sorted(run.files)

    def available_formats(self) -> list[str]:
        """Return the names of the supported report formats."""
        return self.registry.available()

    def meets_threshold(self, threshold: float) -> bool:
        """Return True if line coverage is at least ``threshold`` percent."""
        summary = self.get_summary()
        if summary is None:
            return False
        return summary.line_coverage_percent >= threshold

    def begin_test(self) -> None:
        """Open a new assertion window, see ``record_assertion_pass``."""
        self.hook.begin_test()

    def record_assertion_pass(self) -> int:
        """Mark lines executed since the last window opened as covered."""
        return self.hook.record_assertion_pass()

    def discover_uncovered(self, roots: Iterable[str | os.PathLike[str]]) -> int:
        """Add tracked files that never ran to the run.

        Files are found below ``roots`` using the tracking configuration and
        added with no line or function executed. Only allowed once stopped.

        Returns:
            Number of files added.
        """
        if self.hook.is_running():
            logger.warning('Cannot discover uncovered files while tracking is running')
            return 0
        run = self.get_report_data()
        if run is None:
            return 0

        added = 0
        for path in discover_files(roots, self.resolver):
            if path in run.files:
                continue
            try:
                source = self._read_source(path)
            except Exception as exc:
                logger.warning('Failed to read source of %s, skipping it: %s', path, exc)
                continue
            record = operations.initialize_file(run, path, source)
            if record is None:
                continue
            record.discovered = True
            register_source_functions(run, record.path, source)
            classify_file(record)
            added += 1

        operations.calculate_summary(run)
        if added:
            logger.info('Added %d files that never ran', added)
        return added

    def merge(self, other: CoverageRun) -> bool:
        """Fold another run into this tracker's data.

        Returns:
            False while running or if ``other`` is not a CoverageRun.
        """
        if not isinstance(other, CoverageRun):
            logger.warning('Can only merge a CoverageRun, got %s', type(other).__name__)
            return False
        if self.hook.is_running():
            logger.warning('Cannot merge coverage data while tracking is running')
            return False
        run = self.get_report_data()
        if run is None:
            self.hook.reset()
            run = self.get_report_data()
        operations.merge(run, other)
        classify_run(run)
        operations.calculate_summary(run)
        return True

    def generate_reports(self, output_dir: Any, formats: Any) -> tuple[bool, str | None]:
        """Write reports named ``coverage-report.<format>`` into ``output_dir``.

        Unsupported format names are reported, the remaining formats are
        still generated.

        Args:
            output_dir: Directory for the reports; created if missing.
            formats: Format names, e.g. ``['html', 'lcov']``.

        Returns:
            ``(success, error)``: success is True if at least one report was
            written; error describes every format that failed.
        """
        if not isinstance(output_dir, (str, os.PathLike)) or not os.fspath(output_dir):
            return False, 'output_dir must be a path'
        if isinstance(formats, str) or not isinstance(formats, (list, tuple)):
            return False, 'formats must be a list of format names'
        if not formats:
            return False, 'no report formats requested'

        directory = Path(output_dir)
        try:
            directory.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            logger.warning('Failed to create report directory %s: %s', directory, exc)
            return False, f'Failed to create output directory: {exc}'

        run = self.get_report_data()
        if run is None:
            return False, 'No coverage data available'

        valid, problem = operations.validate(run)
        if not valid:
            logger.warning('Coverage data validation failed, generating reports anyway: %s', problem)

        successes: list[str] = []
        errors: list[str] = []
        for format_name in formats:
            formatter = self.registry.get(format_name) if isinstance(format_name, str) else None
            if formatter is None:
                errors.append(f'{format_name}: unsupported format')
                continue
            ok, error = formatter.generate(run, directory / f'{REPORT_BASENAME}.{formatter.name}')
            if ok:
                successes.append(formatter.name)
            else:
                errors.append(f'{format_name}: {error}')

        if successes:
            logger.info(
                'Generated coverage reports (%s) in %s, line coverage %.1f%%',
                ', '.join(successes),
                directory,
                run.summary.line_coverage_percent,
            )
        if errors:
            return bool(successes), 'Failed to generate some reports: ' + '; '.join(errors)
        return True, None
