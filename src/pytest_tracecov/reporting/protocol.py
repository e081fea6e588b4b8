"""Protocol and shared helpers for coverage report formatters.

All formatters implement the CoverageFormatter protocol. Formatters only
read the run they are given; ordering helpers here keep their output
stable (files by path, lines and functions by position).
"""

from __future__ import annotations

import logging
from typing import (
    TYPE_CHECKING,
    Protocol,
    runtime_checkable,
)


if TYPE_CHECKING:
    from pathlib import Path

    from pytest_tracecov.store.model import CoverageRun, FileRecord, FunctionRecord, LineRecord


logger = logging.getLogger(__name__)


@runtime_checkable
class CoverageFormatter(Protocol):
    """Protocol for all report formatters.

    Attributes:
        name: Format name used on the command line (e.g., 'html', 'lcov').
    """

    @property
    def name(self) -> str:
        """Return the format name."""
        ...

    def render(self, run: CoverageRun) -> str:
        """Render a run as report text without touching the filesystem."""
        ...

    def generate(self, run: CoverageRun, output_path: Path) -> tuple[bool, str | None]:
        """Write the report to ``output_path``.

        Returns:
            ``(True, None)`` on success, otherwise ``False`` and an error message.
        """
        ...


def sorted_files(run: CoverageRun) -> list[FileRecord]:
    """Return the run's files ordered by path."""
    return [run.files[path] for path in sorted(run.files)]


def sorted_lines(record: FileRecord) -> list[LineRecord]:
    """Return a file's lines in ascending line order."""
    return [record.lines[number] for number in sorted(record.lines)]


def sorted_functions(record: FileRecord) -> list[FunctionRecord]:
    """Return a file's functions ordered by start line, then id."""
    return sorted(record.functions.values(), key=lambda f: (f.start_line, f.id))


def line_hits(line: LineRecord) -> int:
    """Hit count reported for a line; an executed line always has at least one."""
    if line.executed:
        return max(line.execution_count, 1)
    return 0


def write_report(format_name: str, text: str, output_path: Path) -> tuple[bool, str | None]:
    """Write report text to a file, creating its directory if needed."""
    try:
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_text(text, encoding='utf-8')
    except OSError as exc:
        logger.warning('Failed to write %s report to %s: %s', format_name, output_path, exc)
        return False, f'Failed to write {format_name} report: {exc}'
    logger.info('Generated %s coverage report at %s', format_name, output_path)
    return True, None
