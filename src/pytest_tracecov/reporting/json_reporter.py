"""JSON reporter for coverage runs.

Produces machine-readable JSON output for CI integration
and automated analysis of coverage results.
"""

from __future__ import annotations

from dataclasses import asdict
import json
from typing import TYPE_CHECKING, Any

from pytest_tracecov.reporting.protocol import sorted_files, sorted_functions, sorted_lines, write_report


if TYPE_CHECKING:
    from pathlib import Path

    from pytest_tracecov.store.model import CoverageRun, FileRecord, FunctionRecord, LineRecord


class JsonReporter:
    """Reporter that produces JSON output for CI integration.

    JSON structure:
        {
            "summary": {
                "total_files": 2,
                "executed_files": 2,
                "executable_lines": 40,
                "executed_lines": 30,
                "covered_lines": 12,
                "line_coverage_percent": 75.0,
                ...
            },
            "files": {
                "/project/src/app.py": {
                    "summary": {...},
                    "lines": [
                        {"line_number": 1, "status": "not_executable", "executed": false, ...},
                        ...
                    ],
                    "functions": [
                        {"id": "main:3-9", "name": "main", "type": "global", "executed": true, ...}
                    ]
                }
            }
        }
    """

    name = 'json'

    def __init__(self, max_content_length: int | None = None) -> None:
        """Initialize the reporter.

        Args:
            max_content_length: If set, line content longer than this is
                truncated with ``...``. By default content is kept exactly.
        """
        self._max_content_length = max_content_length

    def render(self, run: CoverageRun) -> str:
        """Convert a coverage run to a JSON string.

        Args:
            run: The coverage run to convert.

        Returns:
            Pretty-printed JSON string.
        """
        return json.dumps(self._build_report_data(run), indent=2, sort_keys=True)

    def generate(self, run: CoverageRun, output_path: Path) -> tuple[bool, str | None]:
        """Write the JSON report to ``output_path``."""
        return write_report(self.name, self.render(run), output_path)

    def _build_report_data(self, run: CoverageRun) -> dict[str, Any]:
        return {
            'summary': asdict(run.summary),
            'files': {record.path: self._build_file(record) for record in sorted_files(run)},
        }

    def _build_file(self, record: FileRecord) -> dict[str, Any]:
        return {
            'summary': asdict(record.summary),
            'discovered': record.discovered,
            'lines': [self._build_line(line) for line in sorted_lines(record)],
            'functions': [self._build_function(function) for function in sorted_functions(record)],
        }

    def _build_line(self, line: LineRecord) -> dict[str, Any]:
        content = line.content
        if self._max_content_length is not None and len(content) > self._max_content_length:
            content = content[: self._max_content_length] + '...'
        return {
            'line_number': line.line_number,
            'status': line.status.value,
            'executable': bool(line.is_executable),
            'executed': line.executed,
            'covered': line.covered,
            'execution_count': line.execution_count,
            'line_type': line.line_type,
            'content': content,
        }

    def _build_function(self, function: FunctionRecord) -> dict[str, Any]:
        return {
            'id': function.id,
            'name': function.name,
            'start_line': function.start_line,
            'end_line': function.end_line,
            'type': function.type.value,
            'executed': function.executed,
            'execution_count': function.execution_count,
        }
