"""LCOV tracefile reporter.

Produces the line-oriented tracefile format read by genhtml, Codecov and
most CI coverage integrations:

    TN:
    SF:/project/src/app.py
    FN:3,main:3-9
    FNDA:1,main:3-9
    FNF:1
    FNH:1
    DA:3,1
    DA:4,0
    LF:2
    LH:1
    end_of_record
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from pytest_tracecov.reporting.protocol import (
    line_hits,
    sorted_files,
    sorted_functions,
    sorted_lines,
    write_report,
)


if TYPE_CHECKING:
    from pathlib import Path

    from pytest_tracecov.store.model import CoverageRun, FileRecord


class LcovReporter:
    """Reporter that produces LCOV tracefiles.

    Functions are named by their composite id so that same-named functions
    (lambdas, redefinitions) stay distinct within a file.
    """

    name = 'lcov'

    def __init__(self, test_name: str = '') -> None:
        """Initialize the reporter.

        Args:
            test_name: Value written to the ``TN:`` record of every file.
        """
        self._test_name = test_name

    def render(self, run: CoverageRun) -> str:
        """Convert a coverage run to LCOV text.

        Args:
            run: The coverage run to convert.

        Returns:
            The LCOV tracefile contents.
        """
        return ''.join(self._render_file(record) for record in sorted_files(run))

    def generate(self, run: CoverageRun, output_path: Path) -> tuple[bool, str | None]:
        """Write the LCOV report to ``output_path``."""
        return write_report(self.name, self.render(run), output_path)

    def _render_file(self, record: FileRecord) -> str:
        out = [f'TN:{self._test_name}', f'SF:{record.path}']

        functions = sorted_functions(record)
        out.extend(f'FN:{function.start_line},{function.id}' for function in functions)
        for function in functions:
            count = max(function.execution_count, 1) if function.executed else 0
            out.append(f'FNDA:{count},{function.id}')
        out.append(f'FNF:{len(functions)}')
        out.append(f'FNH:{sum(1 for f in functions if f.executed)}')

        found = hit = 0
        for line in sorted_lines(record):
            if line.is_executable is False:
                continue
            hits = line_hits(line)
            found += 1
            if hits:
                hit += 1
            out.append(f'DA:{line.line_number},{hits}')
        out.append(f'LF:{found}')
        out.append(f'LH:{hit}')
        out.append('end_of_record')
        return '\n'.join(out) + '\n'
