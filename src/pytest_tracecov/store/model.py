"""Data model for a coverage tracking run.

A CoverageRun holds one FileRecord per tracked source file. Each FileRecord
carries its source text split into LineRecords, the functions that were
entered while tracking, and a summary that is always derived from the line
and function data.

Example:
    >>> run = CoverageRun()
    >>> run.files
    {}
    >>> run.summary.line_coverage_percent
    0.0
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class LineStatus(Enum):
    """Final status of a source line after classification.

    Attributes:
        NOT_EXECUTABLE: Blank line, comment, docstring or pure syntax.
        NOT_COVERED: Executable line that never ran.
        EXECUTED: Line ran, but no passing assertion touched it.
        COVERED: Line ran and was touched by a passing assertion.
    """

    NOT_EXECUTABLE = 'not_executable'
    NOT_COVERED = 'not_covered'
    EXECUTED = 'executed'
    COVERED = 'covered'


class FunctionType(Enum):
    """Kind of a function, derived from how it was defined."""

    GLOBAL = 'global'
    LOCAL = 'local'
    METHOD = 'method'
    CLOSURE = 'closure'
    ANONYMOUS = 'anonymous'


@dataclass
class LineRecord:
    """Execution state of a single source line.

    Attributes:
        line_number: 1-based line number.
        content: Source text of the line, without the line terminator.
        executed: True once the runtime reported this line running.
        is_executable: Set by the line classifier; None until classified.
        covered: True when a passing assertion touched this line.
        execution_count: Number of line events seen for this line.
        status: Classifier-assigned status.
        line_type: Classifier-assigned lexical category (code, comment, ...).
    """

    line_number: int
    content: str
    executed: bool = False
    is_executable: bool | None = None
    covered: bool = False
    execution_count: int = 0
    status: LineStatus = LineStatus.NOT_EXECUTABLE
    line_type: str | None = None


@dataclass
class FunctionRecord:
    """A function seen while tracking, keyed by ``name:start-end``."""

    id: str
    name: str
    start_line: int
    end_line: int
    type: FunctionType
    executed: bool = False
    execution_count: int = 0


@dataclass
class FileSummary:
    """Per-file rollup, recomputed from the file's lines and functions."""

    total_lines: int = 0
    executable_lines: int = 0
    executed_lines: int = 0
    covered_lines: int = 0
    total_functions: int = 0
    executed_functions: int = 0
    line_coverage_percent: float = 0.0
    assertion_coverage_percent: float = 0.0
    function_coverage_percent: float = 0.0


@dataclass
class RunSummary:
    """Rollup across every file of a run."""

    total_files: int = 0
    executed_files: int = 0
    total_lines: int = 0
    executable_lines: int = 0
    executed_lines: int = 0
    covered_lines: int = 0
    total_functions: int = 0
    executed_functions: int = 0
    line_coverage_percent: float = 0.0
    assertion_coverage_percent: float = 0.0
    function_coverage_percent: float = 0.0


@dataclass
class FileRecord:
    """Coverage data for one source file.

    The source text is captured when the file is first touched and never
    replaced afterwards, so line numbers stay consistent for the whole run
    even if the file changes on disk.

    Attributes:
        path: Normalized absolute path.
        source: Full source text captured at first touch.
        lines: Mapping of 1-based line number to LineRecord.
        functions: Mapping of function id to FunctionRecord.
        summary: Derived per-file summary.
        discovered: True when the file was added by uncovered-file discovery
            rather than by execution.
    """

    path: str
    source: str
    lines: dict[int, LineRecord] = field(default_factory=dict)
    functions: dict[str, FunctionRecord] = field(default_factory=dict)
    summary: FileSummary = field(default_factory=FileSummary)
    discovered: bool = False


@dataclass
class CoverageRun:
    """All coverage data collected during one tracking session."""

    files: dict[str, FileRecord] = field(default_factory=dict)
    summary: RunSummary = field(default_factory=RunSummary)
