"""Tests for line classification."""

from __future__ import annotations

import pytest

from pytest_tracecov.classifier import LineType, classify_file, classify_lines, classify_run, classify_source
from pytest_tracecov.store import operations
from pytest_tracecov.store.model import LineStatus


MODULE = '''"""Module docstring."""

# a comment
import os


def greet(name):
    """Say hello.

    Longer text.
    """
    if name:
        return f'hello {name}'
    else:
        return os.sep


values = [
    1,
    2,
]
'''


@pytest.mark.small
class TestClassifySource:
    """Tests for the lexical scan."""

    @pytest.fixture
    def types(self):
        return classify_source(MODULE)

    @pytest.mark.parametrize(
        ('line', 'expected'),
        [
            (1, LineType.DOCSTRING),
            (2, LineType.BLANK),
            (3, LineType.COMMENT),
            (4, LineType.CODE),
            (7, LineType.CODE),
            (8, LineType.DOCSTRING),
            (9, LineType.DOCSTRING),
            (10, LineType.DOCSTRING),
            (11, LineType.DOCSTRING),
            (12, LineType.CODE),
            (13, LineType.CODE),
            (14, LineType.STRUCTURE),
            (15, LineType.CODE),
            (18, LineType.CODE),
            (19, LineType.CODE),
            (20, LineType.CODE),
            (21, LineType.STRUCTURE),
        ],
    )
    def test_line_types(self, types, line, expected):
        """Each line gets the expected lexical category."""
        assert types[line] is expected

    def test_try_and_finally_are_structure(self):
        """Bare try: and finally: lines are pure syntax."""
        types = classify_source('try:\n    x = 1\nfinally:\n    y = 2\n')

        assert types[1] is LineType.STRUCTURE
        assert types[3] is LineType.STRUCTURE

    def test_string_argument_is_code(self):
        """A string inside an expression is not a docstring."""
        types = classify_source('print(\n    "text"\n)\n')

        assert types[2] is LineType.CODE

    def test_trailing_comment_keeps_line_code(self):
        """Code followed by a comment is still code."""
        types = classify_source('x = 1  # set x\n')

        assert types[1] is LineType.CODE

    def test_form_feed_does_not_shift_lines(self):
        """A form feed line is blank and the statement after it keeps its number."""
        types = classify_source('a = 1\n\x0c\nb = 2\n')

        assert types == {1: LineType.CODE, 2: LineType.BLANK, 3: LineType.CODE}

    def test_carriage_return_line_endings(self):
        """Old Mac line endings are counted like the interpreter counts them."""
        types = classify_source('# note\rx = 1\r')

        assert types == {1: LineType.COMMENT, 2: LineType.CODE}

    def test_untokenizable_source_uses_pattern_fallback(self):
        """An unterminated bracket falls back to line patterns."""
        types = classify_source('# note\nx = (\n\n')

        assert types[1] is LineType.COMMENT
        assert types[2] is LineType.CODE
        assert types[3] is LineType.BLANK


@pytest.mark.small
class TestClassifyFile:
    """Tests for applying classification to a file record."""

    @pytest.fixture
    def run(self):
        run = operations.create()
        operations.initialize_file(run, '/project/app.py', MODULE)
        return run

    def test_statuses_follow_flags(self, run):
        """Unexecuted code is not covered, executed is executed, asserted is covered."""
        operations.mark_line_executed(run, '/project/app.py', 12)
        operations.mark_line_covered(run, '/project/app.py', 13)

        classify_lines(run, '/project/app.py')

        lines = run.files['/project/app.py'].lines
        assert lines[3].status is LineStatus.NOT_EXECUTABLE
        assert lines[4].status is LineStatus.NOT_COVERED
        assert lines[12].status is LineStatus.EXECUTED
        assert lines[13].status is LineStatus.COVERED
        assert lines[4].is_executable is True
        assert lines[3].is_executable is False
        assert lines[3].line_type == 'comment'

    def test_executed_line_is_always_executable(self, run):
        """The runtime's evidence overrides the lexical scan."""
        operations.mark_line_executed(run, '/project/app.py', 14)

        classify_lines(run, '/project/app.py')

        line = run.files['/project/app.py'].lines[14]
        assert line.is_executable is True
        assert line.status is LineStatus.EXECUTED

    def test_executed_module_docstring_stays_non_executable(self, run):
        """The __doc__ store on a docstring line is not counted as code."""
        operations.mark_line_executed(run, '/project/app.py', 1)

        classify_lines(run, '/project/app.py')

        line = run.files['/project/app.py'].lines[1]
        assert line.is_executable is False
        assert line.status is LineStatus.NOT_EXECUTABLE

    def test_classification_is_idempotent(self, run):
        """Classifying twice gives identical records."""
        operations.mark_line_executed(run, '/project/app.py', 12)
        record = run.files['/project/app.py']
        classify_file(record)
        first = {n: (line.status, line.is_executable, line.line_type) for n, line in record.lines.items()}

        classify_file(record)

        assert {n: (line.status, line.is_executable, line.line_type) for n, line in record.lines.items()} == first

    def test_classified_run_validates(self, run):
        """A classified run with a fresh summary is consistent."""
        operations.mark_line_executed(run, '/project/app.py', 12)
        operations.mark_line_covered(run, '/project/app.py', 13)

        classify_run(run)
        operations.calculate_summary(run)

        assert operations.validate(run) == (True, None)

    def test_unknown_file_is_reported(self, run, caplog):
        """Classifying a file that is not in the run fails."""
        assert classify_lines(run, '/project/missing.py') is False
        assert 'missing.py' in caplog.text

    def test_classify_run_counts_files(self, run):
        """Every file of the run is classified."""
        operations.initialize_file(run, '/project/other.py', 'x = 1\n')

        assert classify_run(run) == 2
        assert classify_run(None) == 0
