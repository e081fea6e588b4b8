"""Execution hook: turns trace events into coverage data.

The hook is a small state machine (STOPPED -> RUNNING -> STOPPED). While
running it owns a CoverageRun and updates it on every event the
instrumentation port delivers:

- call: decide whether the file is tracked (the fast path for most
  frames), initialize the file and its defined functions on first touch,
  mark the called function executed and push it on the per-thread call stack
- line: mark the line executed
- return: pop the call stack

Nothing raised while handling an event escapes the hook; losing coverage
for one file is better than aborting the test run that hosts it.

Example:
    >>> hook = ExecutionHook()
    >>> hook.is_running()
    False
    >>> hook.stop()
    False
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
import logging
import threading
import tokenize
from typing import TYPE_CHECKING, Any

from pytest_tracecov.instrumentation.events import CallEvent, LineEvent, ReturnEvent
from pytest_tracecov.instrumentation.port import SysTraceInstrumentation, source_functions
from pytest_tracecov.resolver import FileResolver
from pytest_tracecov.store import operations


if TYPE_CHECKING:
    from collections.abc import Callable

    from pytest_tracecov.instrumentation.events import TraceEvent
    from pytest_tracecov.instrumentation.port import Instrumentation
    from pytest_tracecov.store.model import CoverageRun


logger = logging.getLogger(__name__)


class HookState(Enum):
    """Lifecycle state of an ExecutionHook."""

    STOPPED = 'stopped'
    RUNNING = 'running'


@dataclass(frozen=True)
class ActiveCall:
    """A traced function currently on the stack.

    Attributes:
        file: Normalized path of the function's file.
        function_id: Composite id of the function, or None for module bodies.
        depth: Position on the per-thread call stack, starting at 0.
    """

    file: str
    function_id: str | None
    depth: int


def read_source(path: str) -> str:
    """Read a Python source file, honouring its encoding declaration."""
    with tokenize.open(path) as f:
        return f.read()


def register_source_functions(run: CoverageRun | None, path: str, source: str) -> int:
    """Register every function defined in ``source``, executed or not.

    Returns:
        Number of functions registered.
    """
    registered = 0
    for name, start_line, end_line, kind in source_functions(source, path):
        if operations.register_function(run, path, name, start_line, end_line, kind) is not None:
            registered += 1
    return registered


class ExecutionHook:
    """Collects coverage data from an instrumentation port.

    Each instance owns its own run, source cache and call stacks, so
    several hooks can record independently and have their runs merged.

    Attributes:
        state: Current lifecycle state.
    """

    def __init__(
        self,
        resolver: FileResolver | None = None,
        instrumentation: Instrumentation | None = None,
        source_reader: Callable[[str], str] = read_source,
    ) -> None:
        """Create a stopped hook.

        Args:
            resolver: Decides which files are tracked. Defaults to a
                resolver with the built-in configuration.
            instrumentation: Port to install the callback into. Defaults
                to ``sys.settrace``.
            source_reader: Reads the source text of a file.
        """
        self.resolver = resolver if resolver is not None else FileResolver()
        self.instrumentation = instrumentation if instrumentation is not None else SysTraceInstrumentation()
        self.state = HookState.STOPPED
        self._read_source = source_reader
        self._lock = threading.RLock()
        self._run: CoverageRun | None = None
        self._previous: Any = None
        self._source_cache: dict[str, str] = {}
        self._failed_files: set[str] = set()
        self._paths: dict[str, str | None] = {}
        self._paths_generation = self.resolver.generation
        self._call_stacks: dict[int, list[ActiveCall]] = {}
        self._pending: set[tuple[str, int]] = set()
        self._errors_logged: set[tuple[str, type[BaseException]]] = set()

    def is_running(self) -> bool:
        """Return True while the hook is installed."""
        return self.state is HookState.RUNNING

    def start(self, initial_data: CoverageRun | None = None) -> bool:
        """Install the hook and start recording.

        Args:
            initial_data: An existing run to keep adding to. A fresh run is
                created when omitted.

        Returns:
            True if recording started, False if the hook was already running
            or could not be installed.
        """
        with self._lock:
            if self.state is HookState.RUNNING:
                logger.warning('Execution hook is already running')
                return False

            self._run = initial_data if initial_data is not None else operations.create()
            self._paths.clear()
            self._failed_files.clear()
            self._call_stacks.clear()
            self._pending.clear()
            try:
                self._previous = self.instrumentation.install(self.handle_event)
            except Exception:
                logger.warning('Failed to install execution hook', exc_info=True)
                return False
            self.state = HookState.RUNNING

        logger.info('Started coverage execution hook')
        return True

    def stop(self) -> bool:
        """Uninstall the hook and compute the run summary.

        Returns:
            True if recording stopped, False if the hook was not running.
        """
        with self._lock:
            if self.state is not HookState.RUNNING:
                logger.warning('Execution hook is not running')
                return False

            try:
                self.instrumentation.uninstall(self._previous)
            except Exception:
                logger.warning('Failed to restore previous trace function', exc_info=True)
            self._previous = None
            self.state = HookState.STOPPED
            self._call_stacks.clear()
            self._pending.clear()
            operations.calculate_summary(self._run)

        logger.info('Stopped coverage execution hook')
        return True

    def reset(self) -> bool:
        """Discard the current run and the source cache.

        Returns:
            False while running; the hook must be stopped first.
        """
        with self._lock:
            if self.state is HookState.RUNNING:
                logger.warning('Cannot reset coverage data while the execution hook is running')
                return False
            self._run = operations.create()
            self._source_cache.clear()
            self._failed_files.clear()
            self._paths.clear()
            self._errors_logged.clear()
            self.resolver.reset()

        logger.info('Reset coverage data')
        return True

    def get_coverage_data(self) -> CoverageRun | None:
        """Return the current run with a freshly computed summary."""
        with self._lock:
            if self._run is None:
                return None
            operations.calculate_summary(self._run)
            return self._run

    def call_stack(self, thread_id: int | None = None) -> list[ActiveCall]:
        """Return a copy of the active-call stack of a thread."""
        ident = thread_id if thread_id is not None else threading.get_ident()
        return list(self._call_stacks.get(ident, ()))

    def begin_test(self) -> None:
        """Start a new assertion window; lines seen so far are no longer pending."""
        with self._lock:
            self._pending.clear()

    def record_assertion_pass(self) -> int:
        """Mark every line executed since the window opened as covered.

        Returns:
            Number of lines marked.
        """
        with self._lock:
            if self._run is None:
                return 0
            marked = 0
            for path, line in self._pending:
                if operations.mark_line_covered(self._run, path, line):
                    marked += 1
            self._pending.clear()
            return marked

    def handle_event(self, event: TraceEvent) -> bool:
        """Instrumentation callback. Never raises.

        Returns:
            For call events, whether the frame should be traced further.
        """
        try:
            with self._lock:
                if self.state is not HookState.RUNNING:
                    return False
                if isinstance(event, LineEvent):
                    return self._on_line(event)
                if isinstance(event, CallEvent):
                    return self._on_call(event)
                if isinstance(event, ReturnEvent):
                    self._on_return()
                return True
        except Exception as exc:
            key = (getattr(event, 'file', ''), type(exc))
            if key not in self._errors_logged:
                self._errors_logged.add(key)
                logger.warning('Coverage hook error for %s', key[0], exc_info=True)
            return False

    def _tracked_path(self, raw_path: str) -> str | None:
        """Return the normalized path of a tracked, initialized file."""
        if self._paths_generation != self.resolver.generation:
            # tracking configuration changed, earlier decisions may be wrong
            self._paths.clear()
            self._paths_generation = self.resolver.generation
        if raw_path in self._paths:
            return self._paths[raw_path]

        path: str | None = None
        if self.resolver.should_track(raw_path):
            path = self._ensure_file(raw_path)
        self._paths[raw_path] = path
        return path

    def _ensure_file(self, raw_path: str) -> str | None:
        normalized = operations.normalize_path(raw_path)
        if normalized is None or normalized in self._failed_files:
            return None
        if operations.get_file(self._run, normalized) is not None:
            return normalized

        source = self._source_cache.get(normalized)
        if source is None:
            try:
                source = self._read_source(raw_path)
            except Exception as exc:
                self._failed_files.add(normalized)
                logger.warning('Failed to read source of %s, not tracking it: %s', normalized, exc)
                return None
            self._source_cache[normalized] = source

        operations.initialize_file(self._run, normalized, source)
        register_source_functions(self._run, normalized, source)
        logger.debug('Initialized coverage tracking for %s', normalized)
        return normalized

    def _on_line(self, event: LineEvent) -> bool:
        path = self._tracked_path(event.file)
        if path is None:
            return False
        if operations.mark_line_executed(self._run, path, event.line):
            self._pending.add((path, event.line))
        return True

    def _on_call(self, event: CallEvent) -> bool:
        path = self._tracked_path(event.file)
        if path is None:
            return False

        func_id = None
        if event.kind is not None:
            function = operations.register_function(
                self._run, path, event.name, event.start_line, event.end_line, event.kind
            )
            if function is not None:
                func_id = function.id
                operations.mark_function_executed(self._run, path, func_id)

        stack = self._call_stacks.setdefault(threading.get_ident(), [])
        stack.append(ActiveCall(file=path, function_id=func_id, depth=len(stack)))
        return True

    def _on_return(self) -> None:
        stack = self._call_stacks.get(threading.get_ident())
        if stack:
            stack.pop()
