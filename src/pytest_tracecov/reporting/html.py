"""HTML reporter for coverage runs.

Produces a standalone HTML report with a summary, a per-file table and
an annotated source listing for every file.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from pytest_tracecov.reporting.protocol import sorted_files, sorted_lines, write_report


if TYPE_CHECKING:
    from pathlib import Path

    from pytest_tracecov.store.model import CoverageRun, FileRecord, LineRecord, RunSummary


class HtmlReporter:
    """Reporter that produces standalone HTML reports.

    Generates a self-contained HTML file with embedded CSS for
    viewing coverage results in a browser.
    """

    name = 'html'

    def render(self, run: CoverageRun) -> str:
        """Convert a coverage run to an HTML string.

        Args:
            run: The coverage run to convert.

        Returns:
            Complete HTML document as a string.
        """
        return f"""<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>pytest-tracecov Coverage Report</title>
    <style>
        {self._get_styles()}
    </style>
</head>
<body>
    <div class="container">
        <h1>pytest-tracecov Coverage Report</h1>
        {self._render_summary(run.summary)}
        {self._render_files_table(run)}
        {self._render_sources(run)}
    </div>
</body>
</html>"""

    def generate(self, run: CoverageRun, output_path: Path) -> tuple[bool, str | None]:
        """Write the HTML report to ``output_path``."""
        return write_report(self.name, self.render(run), output_path)

    def _get_styles(self) -> str:
        """Get embedded CSS styles."""
        return """
        * { box-sizing: border-box; }
        body {
            font-family: -apple-system, BlinkMacSystemFont, "Segoe UI", Roboto, sans-serif;
            line-height: 1.6;
            color: #333;
            background: #f5f5f5;
            margin: 0;
            padding: 20px;
        }
        .container {
            max-width: 1200px;
            margin: 0 auto;
            background: white;
            padding: 30px;
            border-radius: 8px;
            box-shadow: 0 2px 4px rgba(0,0,0,0.1);
        }
        h1 { color: #2c3e50; margin-top: 0; }
        h2 { color: #2c3e50; font-size: 1.1em; margin-top: 40px; word-break: break-all; }
        .summary {
            display: grid;
            grid-template-columns: repeat(auto-fit, minmax(150px, 1fr));
            gap: 20px;
            margin-bottom: 30px;
        }
        .stat-card {
            background: #f8f9fa;
            padding: 20px;
            border-radius: 8px;
            text-align: center;
        }
        .stat-value { font-size: 2em; font-weight: bold; }
        .stat-label { color: #666; }
        table {
            width: 100%;
            border-collapse: collapse;
            margin-top: 20px;
        }
        th, td {
            padding: 8px 12px;
            text-align: left;
            border-bottom: 1px solid #eee;
        }
        th { background: #f8f9fa; font-weight: 600; }
        .source { font-family: "SFMono-Regular", Consolas, monospace; font-size: 0.85em; }
        .source td { padding: 0 8px; border: none; white-space: pre; }
        .source .lineno { color: #999; text-align: right; width: 1%; user-select: none; }
        .line-covered { background: #d4f4dd; }
        .line-executed { background: #fff3c4; }
        .line-not_covered { background: #fbd5d5; }
        .line-not_executable { color: #888; }
        .no-results { text-align: center; color: #666; padding: 40px; }
        """

    def _render_summary(self, summary: RunSummary) -> str:
        """Render the summary section."""
        return f"""
        <div class="summary">
            <div class="stat-card">
                <div class="stat-value">{summary.total_files}</div>
                <div class="stat-label">Files</div>
            </div>
            <div class="stat-card">
                <div class="stat-value">{summary.executed_lines}/{summary.executable_lines}</div>
                <div class="stat-label">Lines Executed</div>
            </div>
            <div class="stat-card">
                <div class="stat-value">{summary.line_coverage_percent:.1f}%</div>
                <div class="stat-label">Line Coverage</div>
            </div>
            <div class="stat-card">
                <div class="stat-value">{summary.assertion_coverage_percent:.1f}%</div>
                <div class="stat-label">Assertion Coverage</div>
            </div>
            <div class="stat-card">
                <div class="stat-value">{summary.function_coverage_percent:.1f}%</div>
                <div class="stat-label">Function Coverage</div>
            </div>
        </div>
        """

    def _render_files_table(self, run: CoverageRun) -> str:
        """Render the per-file table."""
        if not run.files:
            return '<div class="no-results">No files tracked.</div>'

        rows = '\n'.join(self._render_file_row(index, record) for index, record in enumerate(sorted_files(run)))
        return f"""
        <table>
            <thead>
                <tr>
                    <th>File</th>
                    <th>Executable</th>
                    <th>Executed</th>
                    <th>Covered</th>
                    <th>Functions</th>
                    <th>Line Coverage</th>
                </tr>
            </thead>
            <tbody>
                {rows}
            </tbody>
        </table>
        """

    def _render_file_row(self, index: int, record: FileRecord) -> str:
        """Render a single file row."""
        summary = record.summary
        return f'''
                <tr>
                    <td><a href="#file-{index}">{self._escape_html(record.path)}</a></td>
                    <td>{summary.executable_lines}</td>
                    <td>{summary.executed_lines}</td>
                    <td>{summary.covered_lines}</td>
                    <td>{summary.executed_functions}/{summary.total_functions}</td>
                    <td>{summary.line_coverage_percent:.1f}%</td>
                </tr>'''

    def _render_sources(self, run: CoverageRun) -> str:
        """Render an annotated listing for every file."""
        return '\n'.join(self._render_source(index, record) for index, record in enumerate(sorted_files(run)))

    def _render_source(self, index: int, record: FileRecord) -> str:
        rows = '\n'.join(self._render_source_line(line) for line in sorted_lines(record))
        return f"""
        <h2 id="file-{index}">{self._escape_html(record.path)}</h2>
        <table class="source">
            <tbody>
                {rows}
            </tbody>
        </table>
        """

    def _render_source_line(self, line: LineRecord) -> str:
        status = line.status.value
        return (
            f'<tr class="line-{status}" title="{status}">'
            f'<td class="lineno">{line.line_number}</td>'
            f'<td>{self._escape_html(line.content)}</td></tr>'
        )

    def _escape_html(self, text: str) -> str:
        """Escape HTML special characters."""
        return text.replace('&', '&amp;').replace('<', '&lt;').replace('>', '&gt;').replace('"', '&quot;')
