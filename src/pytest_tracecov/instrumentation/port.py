"""Instrumentation ports: the seam between the hook and the interpreter.

The execution hook never touches ``sys.settrace`` directly. It installs a
callback through an ``Instrumentation`` port, which turns the runtime's
trace facility into ``LineEvent``/``CallEvent``/``ReturnEvent`` values.
Tests use a synthetic port that feeds events by hand.

The production port, ``SysTraceInstrumentation``, works as follows:
1. ``install`` saves the current trace function and installs its own
2. On every new frame the saved trace function is called first
3. A ``CallEvent`` is sent to the callback; if the callback declines the
   frame, no local tracer is attached and the frame runs untraced
4. Otherwise a local tracer forwards line and return events, again
   chaining the saved tracer's local tracer first
5. ``uninstall`` puts the saved trace function back
"""

from __future__ import annotations

import inspect
import logging
import sys
import threading
import types
from typing import TYPE_CHECKING, Any, Protocol

from pytest_tracecov.instrumentation.events import CallEvent, LineEvent, ReturnEvent
from pytest_tracecov.store.model import FunctionType


if TYPE_CHECKING:
    from collections.abc import Callable

    from pytest_tracecov.instrumentation.events import TraceEvent

    EventCallback = Callable[[TraceEvent], bool]
    TraceFunction = Callable[[types.FrameType, str, Any], Any]


logger = logging.getLogger(__name__)

_GENERATED_FUNCTIONS = frozenset(('__annotate__',))


class Instrumentation(Protocol):
    """Protocol for installing an event callback into a runtime."""

    def install(self, callback: EventCallback) -> Any:
        """Install the callback and return whatever was installed before."""
        ...

    def uninstall(self, previous: Any) -> None:
        """Remove the callback and restore ``previous``."""
        ...


def has_real_file(filename: str) -> bool:
    """Return False for code compiled from strings, stdin or frozen modules."""
    return bool(filename) and not (filename.startswith('<') and filename.endswith('>'))


def function_kind(code: types.CodeType) -> FunctionType | None:
    """Derive the kind of function from its code object.

    Returns:
        The function kind, or None for module and class bodies and for
        functions the compiler generates, such as lazy annotations.
    """
    if not code.co_flags & inspect.CO_OPTIMIZED or code.co_name in _GENERATED_FUNCTIONS:
        return None
    name = code.co_name
    if name.startswith('<'):
        # <lambda>, <genexpr>, <listcomp> and friends
        return FunctionType.ANONYMOUS
    qualname = code.co_qualname
    if '<locals>' in qualname:
        return FunctionType.CLOSURE if code.co_freevars else FunctionType.LOCAL
    if '.' in qualname:
        return FunctionType.METHOD
    return FunctionType.GLOBAL


def last_line(code: types.CodeType) -> int:
    """Return the highest line number that has bytecode in ``code``."""
    lines = [line for _, _, line in code.co_lines() if line is not None]
    if not lines:
        return code.co_firstlineno
    return max(max(lines), code.co_firstlineno)


def source_functions(source: str, filename: str) -> list[tuple[str, int, int, FunctionType]]:
    """List every function defined in a source text, called or not.

    The source is compiled and its nested code objects walked. Names, line
    spans and kinds are derived exactly as for call events, so a function
    found here and the same function seen at runtime share one id.

    Returns:
        ``(qualname, start_line, end_line, kind)`` tuples ordered by start
        line, or an empty list when the source does not compile.
    """
    try:
        module = compile(source, filename, 'exec', dont_inherit=True)
    except (SyntaxError, ValueError) as exc:
        logger.debug('Cannot compile %s to list its functions: %s', filename, exc)
        return []

    found = []
    pending = [module]
    while pending:
        code = pending.pop()
        kind = function_kind(code)
        if kind is not None:
            found.append((code.co_qualname, code.co_firstlineno, last_line(code), kind))
        pending.extend(const for const in code.co_consts if isinstance(const, types.CodeType))
    found.sort(key=lambda function: (function[1], function[0]))
    return found


class _FrameTracer:
    """Local tracer for one traced frame."""

    __slots__ = ('_file', '_owner', '_previous')

    def __init__(self, owner: SysTraceInstrumentation, file: str, previous: TraceFunction | None) -> None:
        self._owner = owner
        self._file = file
        self._previous = previous

    def __call__(self, frame: types.FrameType, event: str, arg: Any) -> _FrameTracer:
        if self._previous is not None:
            local = self._owner.chain(self._previous, frame, event, arg)
            # None keeps the current local tracer, as the interpreter does
            if local is not None:
                self._previous = local

        callback = self._owner.callback
        if callback is not None:
            if event == 'line':
                self._owner.dispatch(callback, LineEvent(self._file, frame.f_lineno))
            elif event == 'return':
                self._owner.dispatch(callback, ReturnEvent(self._file))
        return self


class SysTraceInstrumentation:
    """Instrumentation port backed by ``sys.settrace``.

    Attributes:
        trace_threads: Also install the tracer for threads started after
            ``install`` via ``threading.settrace``.
    """

    def __init__(self, trace_threads: bool = False) -> None:
        """Create a port.

        Args:
            trace_threads: Trace threads started while installed.
        """
        self.trace_threads = trace_threads
        self.callback: EventCallback | None = None
        self._previous: TraceFunction | None = None
        self._thread_previous: TraceFunction | None = None
        self._end_lines: dict[types.CodeType, int] = {}

    def install(self, callback: EventCallback) -> TraceFunction | None:
        """Install ``callback`` and return the previously active trace function.

        The thread trace function active before ``install`` is kept separately
        and restored by ``uninstall``.
        """
        previous = sys.gettrace()
        self.callback = callback
        self._previous = previous
        sys.settrace(self._trace)
        if self.trace_threads:
            self._thread_previous = threading.gettrace()
            threading.settrace(self._trace_thread)
        return previous

    def uninstall(self, previous: TraceFunction | None) -> None:
        """Restore ``previous`` as the trace function, or clear tracing if None."""
        sys.settrace(previous)
        if self.trace_threads:
            threading.settrace(self._thread_previous)  # type: ignore[arg-type]
        self.callback = None
        self._previous = None
        self._thread_previous = None
        self._end_lines.clear()

    def chain(self, tracer: TraceFunction, frame: types.FrameType, event: str, arg: Any) -> TraceFunction | None:
        """Call another tool's tracer, keeping its errors away from the traced code."""
        try:
            return tracer(frame, event, arg)
        except Exception:
            logger.warning('Chained trace function failed on %s event', event, exc_info=True)
            return None

    def dispatch(self, callback: EventCallback, event: TraceEvent) -> bool:
        """Deliver one event, converting any error into a logged warning."""
        try:
            return bool(callback(event))
        except Exception:
            logger.warning('Coverage callback failed for %r', event, exc_info=True)
            return False

    def _end_line(self, code: types.CodeType) -> int:
        end = self._end_lines.get(code)
        if end is None:
            end = last_line(code)
            self._end_lines[code] = end
        return end

    def _trace(self, frame: types.FrameType, event: str, arg: Any) -> TraceFunction | None:
        return self._trace_frame(self._previous, frame, event, arg)

    def _trace_thread(self, frame: types.FrameType, event: str, arg: Any) -> TraceFunction | None:
        return self._trace_frame(self._thread_previous, frame, event, arg)

    def _trace_frame(
        self,
        previous: TraceFunction | None,
        frame: types.FrameType,
        event: str,
        arg: Any,
    ) -> TraceFunction | None:
        previous_local = None
        if previous is not None:
            previous_local = self.chain(previous, frame, event, arg)

        callback = self.callback
        if callback is None or event != 'call':
            return previous_local

        code = frame.f_code
        filename = code.co_filename
        if not has_real_file(filename):
            return previous_local

        call = CallEvent(
            file=filename,
            name=code.co_qualname,
            start_line=code.co_firstlineno,
            end_line=self._end_line(code),
            kind=function_kind(code),
        )
        if not self.dispatch(callback, call):
            return previous_local
        return _FrameTracer(self, filename, previous_local)
