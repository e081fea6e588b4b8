"""Trace events delivered by an instrumentation port.

Events form a small discriminated union: a line started executing, a
function was entered, or a function returned.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING


if TYPE_CHECKING:
    from pytest_tracecov.store.model import FunctionType


@dataclass(frozen=True)
class LineEvent:
    """A line is about to execute.

    Attributes:
        file: Raw file path of the executing code.
        line: 1-based line number.
    """

    file: str
    line: int


@dataclass(frozen=True)
class CallEvent:
    """A code object was entered.

    Attributes:
        file: Raw file path of the called code.
        name: Qualified name of the function.
        start_line: First line of the definition.
        end_line: Last line of the definition.
        kind: Kind of function, or None for a module body.
    """

    file: str
    name: str
    start_line: int
    end_line: int
    kind: FunctionType | None


@dataclass(frozen=True)
class ReturnEvent:
    """A traced code object returned or yielded."""

    file: str


TraceEvent = LineEvent | CallEvent | ReturnEvent
