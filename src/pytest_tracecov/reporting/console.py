"""Console reporter for coverage runs.

Produces human-readable output for terminal display with summary
statistics and the line ranges that never ran.
"""

from __future__ import annotations

import os
import sys
from typing import TYPE_CHECKING, TextIO

from pytest_tracecov.reporting.protocol import sorted_files
from pytest_tracecov.store.model import LineStatus


if TYPE_CHECKING:
    from pytest_tracecov.store.model import CoverageRun, FileRecord


def collapse_ranges(numbers: list[int]) -> str:
    """Collapse line numbers into a compact range string.

    Example:
        >>> collapse_ranges([1, 2, 3, 7, 9, 10])
        '1-3, 7, 9-10'
    """
    if not numbers:
        return ''
    ordered = sorted(set(numbers))
    ranges: list[str] = []
    start = prev = ordered[0]
    for number in ordered[1:]:
        if number == prev + 1:
            prev = number
            continue
        ranges.append(f'{start}-{prev}' if start != prev else str(start))
        start = prev = number
    ranges.append(f'{start}-{prev}' if start != prev else str(start))
    return ', '.join(ranges)


class ConsoleReporter:
    """Reporter that writes a coverage summary to the console.

    Produces output in the following format:

        ================== pytest-tracecov coverage report ==================
        File                              Lines   Exec   Cover  Missing
        src/app.py                           20     15   75.0%  4-6, 12, 18
        ---------------------------------------------------------------------
        TOTAL                                20     15   75.0%
        =====================================================================

    Attributes:
        output: The file-like object to write to.
    """

    BORDER_CHAR = '='
    BORDER_WIDTH = 70

    def __init__(self, output: TextIO | None = None, root: str | None = None) -> None:
        """Initialize the console reporter.

        Args:
            output: File-like object to write to. Defaults to sys.stdout.
            root: Directory file paths are shown relative to.
        """
        self.output = output or sys.stdout
        self.root = root

    def write_report(self, run: CoverageRun) -> None:
        """Write the coverage report to the output.

        Args:
            run: The coverage run to report on.
        """
        self._write_header()
        if not run.files:
            self._write_line('No files tracked.')
        else:
            self._write_line(f'{"File":<34}{"Lines":>6}{"Exec":>7}{"Cover":>8}  Missing')
            for record in sorted_files(run):
                self._write_file(record)
            self._write_line('-' * self.BORDER_WIDTH)
            summary = run.summary
            self._write_line(
                f'{"TOTAL":<34}{summary.executable_lines:>6}{summary.executed_lines:>7}'
                f'{summary.line_coverage_percent:>7.1f}%'
            )
        self._write_footer()

    def _display_path(self, path: str) -> str:
        if self.root:
            try:
                return os.path.relpath(path, self.root)
            except ValueError:
                return path
        return path

    def _write_file(self, record: FileRecord) -> None:
        summary = record.summary
        missing = [n for n, line in record.lines.items() if line.status is LineStatus.NOT_COVERED]
        self._write_line(
            f'{self._display_path(record.path):<34}{summary.executable_lines:>6}{summary.executed_lines:>7}'
            f'{summary.line_coverage_percent:>7.1f}%  {collapse_ranges(missing)}'
        )

    def _write_header(self) -> None:
        """Write the report header."""
        title = ' pytest-tracecov coverage report '
        border_len = (self.BORDER_WIDTH - len(title)) // 2
        header = f'{self.BORDER_CHAR * border_len}{title}{self.BORDER_CHAR * border_len}'
        self._write_line(header)

    def _write_footer(self) -> None:
        """Write the report footer."""
        self._write_line(self.BORDER_CHAR * self.BORDER_WIDTH)

    def _write_line(self, text: str) -> None:
        """Write a line of text followed by newline."""
        self.output.write(text + '\n')
