"""Line classification for tracked files.

After tracking stops, every line of every tracked file is given a final
status. Whether a line is executable is decided by a lexical scan of the
source with ``tokenize``, not by a full parse:

- blank lines, comment-only lines and docstrings are not executable
- lines holding only closing brackets, or only ``else:``/``try:``/``finally:``,
  are pure syntax and not executable
- everything else, including continuation lines of multi-line
  statements, is executable

The scan errs towards executable: a wrongly executable line shows up as
not covered, while a wrongly non-executable line would hide a real gap.
Any line the runtime reported as executed is executable, except docstrings:
the only bytecode on those lines stores ``__doc__``.

Example:
    >>> types = classify_source('# setup\\n\\nx = 1\\n')
    >>> [types[n].value for n in (1, 2, 3)]
    ['comment', 'blank', 'code']
"""

from __future__ import annotations

from enum import Enum
import io
import logging
import re
import tokenize
from typing import TYPE_CHECKING

from pytest_tracecov.store.model import LineStatus
from pytest_tracecov.store.operations import get_file, split_lines


if TYPE_CHECKING:
    from pytest_tracecov.store.model import CoverageRun, FileRecord, LineRecord


logger = logging.getLogger(__name__)


class LineType(Enum):
    """Lexical category of a source line."""

    CODE = 'code'
    COMMENT = 'comment'
    BLANK = 'blank'
    STRUCTURE = 'structure'
    DOCSTRING = 'docstring'


NON_EXECUTABLE = frozenset((LineType.COMMENT, LineType.BLANK, LineType.STRUCTURE, LineType.DOCSTRING))

_CLOSING_OPS = frozenset((')', ']', '}', ',', ':'))
_BARE_KEYWORDS = frozenset(('else', 'try', 'finally'))
_SKIPPED_TOKENS = frozenset((tokenize.NL, tokenize.ENCODING, tokenize.ENDMARKER))
_STATEMENT_START = frozenset((None, tokenize.NEWLINE, tokenize.INDENT, tokenize.DEDENT))

_COMMENT_LINE = re.compile(r'^\s*#')
_CLOSING_LINE = re.compile(r'^\s*[)\]}]+[,:]?\s*(#.*)?$')
_KEYWORD_LINE = re.compile(r'^\s*(else|try|finally)\s*:\s*(#.*)?$')


def _is_structure(tokens: list[tokenize.TokenInfo]) -> bool:
    if all(tok.type == tokenize.OP and tok.string in _CLOSING_OPS for tok in tokens):
        return any(tok.string in ')]}' for tok in tokens)
    return (
        len(tokens) == 2
        and tokens[0].type == tokenize.NAME
        and tokens[0].string in _BARE_KEYWORDS
        and tokens[1].string == ':'
    )


def _next_is_newline(tokens: list[tokenize.TokenInfo], index: int) -> bool:
    for tok in tokens[index + 1 :]:
        if tok.type == tokenize.COMMENT:
            continue
        return tok.type in (tokenize.NEWLINE, tokenize.ENDMARKER)
    return True


def _classify_by_pattern(lines: list[str]) -> dict[int, LineType]:
    """Line-by-line fallback used when the source does not tokenize."""
    types: dict[int, LineType] = {}
    for number, text in enumerate(lines, start=1):
        if not text.strip():
            types[number] = LineType.BLANK
        elif _COMMENT_LINE.match(text):
            types[number] = LineType.COMMENT
        elif _CLOSING_LINE.match(text) or _KEYWORD_LINE.match(text):
            types[number] = LineType.STRUCTURE
        else:
            types[number] = LineType.CODE
    return types


def classify_source(source: str) -> dict[int, LineType]:
    """Assign a lexical category to every line of a source text.

    Args:
        source: Full source text.

    Returns:
        Mapping of 1-based line number to LineType.
    """
    lines = split_lines(source)
    try:
        tokens = list(tokenize.generate_tokens(io.StringIO('\n'.join(lines) + '\n').readline))
    except (tokenize.TokenError, SyntaxError) as exc:
        logger.debug('Source does not tokenize, classifying by pattern: %s', exc)
        return _classify_by_pattern(lines)

    types = {number: (LineType.BLANK if not text.strip() else LineType.CODE) for number, text in enumerate(lines, 1)}
    significant: dict[int, list[tokenize.TokenInfo]] = {}
    comment_lines: set[int] = set()
    previous: int | None = None

    for index, tok in enumerate(tokens):
        if tok.type in _SKIPPED_TOKENS:
            continue
        if tok.type == tokenize.COMMENT:
            comment_lines.add(tok.start[0])
            continue
        if tok.type in (tokenize.NEWLINE, tokenize.INDENT, tokenize.DEDENT):
            previous = tok.type
            continue
        if tok.type == tokenize.STRING and previous in _STATEMENT_START and _next_is_newline(tokens, index):
            for number in range(tok.start[0], tok.end[0] + 1):
                types[number] = LineType.DOCSTRING
            previous = tok.type
            continue
        significant.setdefault(tok.start[0], []).append(tok)
        previous = tok.type

    for number, line_type in types.items():
        if line_type is not LineType.CODE:
            continue
        if number in significant:
            if _is_structure(significant[number]):
                types[number] = LineType.STRUCTURE
        elif number in comment_lines:
            types[number] = LineType.COMMENT
    return types


def _status(line: LineRecord) -> LineStatus:
    if not line.is_executable:
        return LineStatus.NOT_EXECUTABLE
    if not line.executed:
        return LineStatus.NOT_COVERED
    if line.covered:
        return LineStatus.COVERED
    return LineStatus.EXECUTED


def classify_file(record: FileRecord) -> bool:
    """Set ``is_executable``, ``line_type`` and ``status`` on every line of a file.

    Running this again on an unchanged record gives identical results.

    Returns:
        True once the file has been classified.
    """
    types = classify_source(record.source)
    for number, line in record.lines.items():
        line_type = types.get(number, LineType.CODE)
        if line.executed and line_type in NON_EXECUTABLE and line_type is not LineType.DOCSTRING:
            line_type = LineType.CODE
        line.line_type = line_type.value
        line.is_executable = line_type not in NON_EXECUTABLE
        line.status = _status(line)
    return True


def classify_lines(run: CoverageRun | None, path: str) -> bool:
    """Classify the lines of one tracked file.

    Returns:
        False if the file is not part of the run.
    """
    record = get_file(run, path)
    if record is None:
        logger.warning('Cannot classify lines for a file not in the coverage data: %s', path)
        return False
    return classify_file(record)


def classify_run(run: CoverageRun | None) -> int:
    """Classify every file of a run.

    Returns:
        Number of files classified.
    """
    if run is None:
        return 0
    return sum(1 for record in run.files.values() if classify_file(record))
