"""Cobertura XML reporter.

Cobertura is the XML format understood by GitLab, Jenkins and Azure
DevOps coverage widgets. Files are grouped into packages by directory and
paths are written relative to a common source root.
"""

from __future__ import annotations

from collections import defaultdict
import os
from typing import TYPE_CHECKING
import xml.etree.ElementTree as ET

from pytest_tracecov import __version__
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


def _rate(part: int, whole: int) -> str:
    if whole == 0:
        return '0'
    return f'{part / whole:.4f}'


class CoberturaReporter:
    """Reporter that produces Cobertura XML.

    Example:
        >>> from pytest_tracecov.store.model import CoverageRun
        >>> '<coverage' in CoberturaReporter().render(CoverageRun())
        True
    """

    name = 'cobertura'

    def __init__(self, timestamp: int = 0) -> None:
        """Initialize the reporter.

        Args:
            timestamp: Value of the ``timestamp`` attribute. Fixed by default
                so identical runs produce identical reports.
        """
        self._timestamp = timestamp

    def render(self, run: CoverageRun) -> str:
        """Convert a coverage run to a Cobertura XML string."""
        records = sorted_files(run)
        source_root = self._source_root(records)
        summary = run.summary

        root = ET.Element(
            'coverage',
            {
                'line-rate': _rate(summary.executed_lines, summary.executable_lines),
                'branch-rate': '0',
                'lines-covered': str(summary.executed_lines),
                'lines-valid': str(summary.executable_lines),
                'branches-covered': '0',
                'branches-valid': '0',
                'complexity': '0',
                'version': __version__,
                'timestamp': str(self._timestamp),
            },
        )
        sources = ET.SubElement(root, 'sources')
        ET.SubElement(sources, 'source').text = source_root

        by_package: dict[str, list[FileRecord]] = defaultdict(list)
        for record in records:
            relative = self._relative(record.path, source_root)
            package = os.path.dirname(relative).replace('/', '.') or '.'
            by_package[package].append(record)

        packages = ET.SubElement(root, 'packages')
        for package_name in sorted(by_package):
            package_records = by_package[package_name]
            executable = sum(r.summary.executable_lines for r in package_records)
            executed = sum(r.summary.executed_lines for r in package_records)
            package = ET.SubElement(
                packages,
                'package',
                {'name': package_name, 'line-rate': _rate(executed, executable), 'branch-rate': '0', 'complexity': '0'},
            )
            classes = ET.SubElement(package, 'classes')
            for record in package_records:
                self._render_class(classes, record, source_root)

        ET.indent(root)
        return '<?xml version="1.0" ?>\n' + ET.tostring(root, encoding='unicode') + '\n'

    def generate(self, run: CoverageRun, output_path: Path) -> tuple[bool, str | None]:
        """Write the Cobertura report to ``output_path``."""
        return write_report(self.name, self.render(run), output_path)

    def _source_root(self, records: list[FileRecord]) -> str:
        if not records:
            return '.'
        directories = [os.path.dirname(record.path) for record in records]
        try:
            return os.path.commonpath(directories).replace('\\', '/')
        except ValueError:
            return '/'

    def _relative(self, path: str, source_root: str) -> str:
        prefix = source_root.rstrip('/') + '/'
        if path.startswith(prefix):
            return path[len(prefix) :]
        return path.lstrip('/')

    def _render_class(self, classes: ET.Element, record: FileRecord, source_root: str) -> None:
        filename = self._relative(record.path, source_root)
        summary = record.summary
        cls = ET.SubElement(
            classes,
            'class',
            {
                'name': os.path.splitext(os.path.basename(filename))[0],
                'filename': filename,
                'line-rate': _rate(summary.executed_lines, summary.executable_lines),
                'branch-rate': '0',
                'complexity': '0',
            },
        )

        methods = ET.SubElement(cls, 'methods')
        executable_lines = [line for line in sorted_lines(record) if line.is_executable is not False]
        for function in sorted_functions(record):
            body = [
                line for line in executable_lines if function.start_line <= line.line_number <= function.end_line
            ]
            hit = sum(1 for line in body if line.executed)
            method = ET.SubElement(
                methods,
                'method',
                {
                    'name': function.name,
                    'signature': '',
                    'line-rate': _rate(hit, len(body)),
                    'branch-rate': '0',
                    'complexity': '0',
                },
            )
            method_lines = ET.SubElement(method, 'lines')
            for line in body:
                ET.SubElement(method_lines, 'line', {'number': str(line.line_number), 'hits': str(line_hits(line))})

        lines = ET.SubElement(cls, 'lines')
        for line in executable_lines:
            ET.SubElement(lines, 'line', {'number': str(line.line_number), 'hits': str(line_hits(line))})
