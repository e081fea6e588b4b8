"""Operations over the coverage data model.

Every function here may be called from inside the interpreter trace
callback, so none of them raise on bad input: a missing run, an unknown
path or an out-of-range line number is logged at debug level and the call
becomes a no-op returning ``None`` or ``False``.

Example:
    >>> run = create()
    >>> record = initialize_file(run, '/src/app.py', 'x = 1\\ny = 2\\n')
    >>> len(record.lines)
    2
    >>> mark_line_executed(run, '/src/app.py', 1)
    True
    >>> calculate_summary(run).executed_lines
    1
"""

from __future__ import annotations

import copy
import logging
import os
import re
from typing import TYPE_CHECKING

from pytest_tracecov.store.model import (
    CoverageRun,
    FileRecord,
    FileSummary,
    FunctionRecord,
    FunctionType,
    LineRecord,
    LineStatus,
    RunSummary,
)


if TYPE_CHECKING:
    from collections.abc import Iterable


logger = logging.getLogger(__name__)

FUNCTION_ID_PATTERN = re.compile(r'^.+:\d+-\d+$')
LINE_BREAK_PATTERN = re.compile(r'\r\n|\r|\n')


def create() -> CoverageRun:
    """Return an empty coverage run with a zeroed summary."""
    return CoverageRun()


def normalize_path(path: str | os.PathLike[str] | None) -> str | None:
    """Normalize a file path to a canonical absolute, forward-slash form.

    Paths that differ only by ``./`` segments, duplicate or trailing
    slashes, or backslash versus forward slash normalize identically.
    Normalizing an already normalized path returns it unchanged.

    Args:
        path: The path to normalize.

    Returns:
        The normalized path, or None for an empty or missing path.

    Example:
        >>> normalize_path('/src//pkg/./mod.py')
        '/src/pkg/mod.py'
        >>> normalize_path('\\\\src\\\\pkg\\\\')
        '/src/pkg'
    """
    if path is None:
        return None
    raw = os.fspath(path)
    if not raw:
        return None
    normalized = os.path.abspath(raw.replace('\\', '/')).replace('\\', '/')
    # POSIX keeps a leading double slash; collapse it so the form is unique.
    while normalized.startswith('//'):
        normalized = normalized[1:]
    return normalized


def function_id(name: str, start_line: int, end_line: int) -> str:
    """Build the composite function key ``name:start-end``."""
    return f'{name}:{start_line}-{end_line}'


def get_file(run: CoverageRun | None, path: str | None) -> FileRecord | None:
    """Look up the record for a file, or None if it is not tracked."""
    if run is None:
        return None
    normalized = normalize_path(path)
    if normalized is None:
        return None
    return run.files.get(normalized)


def split_lines(source: str) -> list[str]:
    """Split source text into lines without their terminators.

    Only ``\\n``, ``\\r\\n`` and ``\\r`` end a line, matching the interpreter's
    line numbering. A trailing newline does not produce an extra empty line.
    """
    lines = LINE_BREAK_PATTERN.split(source)
    if lines[-1] == '':
        lines.pop()
    return lines


def initialize_file(run: CoverageRun | None, path: str | None, source: str | None) -> FileRecord | None:
    """Create the record for a file on first touch.

    Calling this again for a file that already has a record returns the
    existing record untouched: its source and executed flags are kept.

    Args:
        run: The coverage run to add the file to.
        path: Path of the source file.
        source: Full source text of the file.

    Returns:
        The file record, or None if the input was unusable.
    """
    if run is None or source is None:
        return None
    normalized = normalize_path(path)
    if normalized is None:
        return None

    existing = run.files.get(normalized)
    if existing is not None:
        return existing

    record = FileRecord(path=normalized, source=source)
    for number, content in enumerate(split_lines(source), start=1):
        record.lines[number] = LineRecord(line_number=number, content=content)
    record.summary = summarize_file(record)
    run.files[normalized] = record
    return record


def mark_line_executed(run: CoverageRun | None, path: str | None, line_number: int) -> bool:
    """Record that a line ran.

    Returns:
        True if the line was found and marked, False otherwise.
    """
    record = get_file(run, path)
    if record is None:
        logger.debug('Line event for untracked file %s:%s', path, line_number)
        return False
    line = record.lines.get(line_number)
    if line is None:
        logger.debug('Line event outside captured source %s:%s', path, line_number)
        return False
    line.executed = True
    line.execution_count += 1
    return True


def mark_line_covered(run: CoverageRun | None, path: str | None, line_number: int) -> bool:
    """Record that a passing assertion touched a line.

    A verified line necessarily ran, so it is marked executed as well.

    Returns:
        True if the line was found and marked, False otherwise.
    """
    record = get_file(run, path)
    if record is None:
        return False
    line = record.lines.get(line_number)
    if line is None:
        return False
    line.covered = True
    if not line.executed:
        line.executed = True
        line.execution_count = max(line.execution_count, 1)
    return True


def register_function(
    run: CoverageRun | None,
    path: str | None,
    name: str,
    start_line: int,
    end_line: int,
    function_type: FunctionType,
) -> FunctionRecord | None:
    """Insert a function record, or return the existing one with the same id.

    Re-registering a function never resets its executed state, so closures
    defined inside a loop map onto a single record.
    """
    record = get_file(run, path)
    if record is None:
        return None
    key = function_id(name, start_line, end_line)
    existing = record.functions.get(key)
    if existing is not None:
        return existing
    function = FunctionRecord(
        id=key,
        name=name,
        start_line=start_line,
        end_line=end_line,
        type=function_type,
    )
    record.functions[key] = function
    return function


def mark_function_executed(run: CoverageRun | None, path: str | None, func_id: str) -> bool:
    """Record that a registered function was entered."""
    record = get_file(run, path)
    if record is None:
        return False
    function = record.functions.get(func_id)
    if function is None:
        logger.debug('Call event for unregistered function %s in %s', func_id, path)
        return False
    function.executed = True
    function.execution_count += 1
    return True


def _percent(part: int, whole: int) -> float:
    if whole == 0:
        return 0.0
    return round(part * 100 / whole, 1)


def summarize_file(record: FileRecord) -> FileSummary:
    """Compute a file summary from its lines and functions without storing it.

    Lines that have not been classified yet count as executable.
    """
    executable = executed = covered = 0
    for line in record.lines.values():
        if line.is_executable is False:
            continue
        executable += 1
        if line.executed:
            executed += 1
            if line.covered:
                covered += 1

    total_functions = len(record.functions)
    executed_functions = sum(1 for f in record.functions.values() if f.executed)

    return FileSummary(
        total_lines=len(record.lines),
        executable_lines=executable,
        executed_lines=executed,
        covered_lines=covered,
        total_functions=total_functions,
        executed_functions=executed_functions,
        line_coverage_percent=_percent(executed, executable),
        assertion_coverage_percent=_percent(covered, executable),
        function_coverage_percent=_percent(executed_functions, total_functions),
    )


def summarize_run(run: CoverageRun) -> RunSummary:
    """Compute a run summary from fresh per-file summaries without storing anything."""
    summary = RunSummary()
    for record in run.files.values():
        file_summary = summarize_file(record)
        summary.total_files += 1
        if file_summary.executed_lines > 0:
            summary.executed_files += 1
        summary.total_lines += file_summary.total_lines
        summary.executable_lines += file_summary.executable_lines
        summary.executed_lines += file_summary.executed_lines
        summary.covered_lines += file_summary.covered_lines
        summary.total_functions += file_summary.total_functions
        summary.executed_functions += file_summary.executed_functions

    summary.line_coverage_percent = _percent(summary.executed_lines, summary.executable_lines)
    summary.assertion_coverage_percent = _percent(summary.covered_lines, summary.executable_lines)
    summary.function_coverage_percent = _percent(summary.executed_functions, summary.total_functions)
    return summary


def calculate_summary(run: CoverageRun | None) -> RunSummary | None:
    """Recompute every file summary and the run summary.

    Safe to call at any point, including while tracking is running. Only
    the summary fields are written.

    Returns:
        The new run summary, or None when there is no run.
    """
    if run is None:
        return None
    for record in run.files.values():
        record.summary = summarize_file(record)
    run.summary = summarize_run(run)
    return run.summary


def _line_problem(line: LineRecord) -> str | None:
    status = line.status
    if status is LineStatus.COVERED:
        if not (line.executed and line.is_executable is True and line.covered):
            return 'covered line must be executable, executed and asserted'
    elif status is LineStatus.EXECUTED:
        if not (line.executed and line.is_executable is True):
            return 'executed line must be executable and executed'
    elif status is LineStatus.NOT_COVERED:
        if line.executed or line.is_executable is not True:
            return 'not-covered line must be executable and not executed'
    elif line.is_executable is True:
        return 'not-executable line is flagged executable'
    return None


def validate(run: CoverageRun | None) -> tuple[bool, str | None]:
    """Check a run for structural consistency.

    Verifies that every line status agrees with its flags, that function
    ids are well formed and match their keys, and that stored summaries
    match a fresh recomputation.

    Returns:
        ``(True, None)`` if the run is consistent, otherwise ``False`` and a
        description of the first problem found.
    """
    if run is None:
        return False, 'coverage run is missing'

    for key, record in run.files.items():
        if record.path != key:
            return False, f'file key {key} does not match record path {record.path}'
        for number, line in record.lines.items():
            if line.line_number != number:
                return False, f'{key}:{number} is stored under the wrong line number'
            problem = _line_problem(line)
            if problem is not None:
                return False, f'{key}:{number} has status {line.status.value}: {problem}'
        for func_key, function in record.functions.items():
            if not FUNCTION_ID_PATTERN.match(func_key):
                return False, f'malformed function id {func_key!r} in {key}'
            expected = function_id(function.name, function.start_line, function.end_line)
            if function.id != func_key or expected != func_key:
                return False, f'function id {func_key!r} in {key} does not match its record'
            if function.start_line > function.end_line:
                return False, f'function {func_key!r} in {key} ends before it starts'
        if record.summary != summarize_file(record):
            return False, f'summary for {key} is out of date'

    if run.summary != summarize_run(run):
        return False, 'run summary is out of date'
    return True, None


def merge(target: CoverageRun, other: CoverageRun) -> CoverageRun:
    """Fold the data of another run into ``target``.

    Files only present in ``other`` are copied over. For files present in
    both, the target's source is kept, executed and covered flags are
    combined and execution counts are added. Line statuses are left as they
    were; run the line classifier again to bring them up to date. Used to
    combine runs recorded by independent trackers, for example one per worker.

    Returns:
        The target run, with its summary recomputed.
    """
    for key, incoming in other.files.items():
        record = target.files.get(key)
        if record is None:
            target.files[key] = copy.deepcopy(incoming)
            continue
        _merge_lines(record, incoming.lines.values())
        for func_key, function in incoming.functions.items():
            existing = record.functions.get(func_key)
            if existing is None:
                record.functions[func_key] = copy.deepcopy(function)
                continue
            existing.executed = existing.executed or function.executed
            existing.execution_count += function.execution_count
        record.discovered = record.discovered and incoming.discovered

    calculate_summary(target)
    return target


def _merge_lines(record: FileRecord, lines: Iterable[LineRecord]) -> None:
    for line in lines:
        existing = record.lines.get(line.line_number)
        if existing is None:
            continue
        existing.executed = existing.executed or line.executed
        existing.covered = existing.covered or line.covered
        existing.execution_count += line.execution_count
