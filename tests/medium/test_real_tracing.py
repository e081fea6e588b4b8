"""Integration tests running real code under sys.settrace."""

from __future__ import annotations

import importlib.util
import sys
import threading

import pytest

from pytest_tracecov.api import CoverageTracker
from pytest_tracecov.config import ConfigStore
from pytest_tracecov.store.model import FunctionType, LineStatus


MODULE_SOURCE = '''"""Sample module."""


def classify(n):
    if n > 0:
        return 'positive'
    return 'other'


class Counter:
    def bump(self, values):
        total = 0
        for value in values:
            total += value
        return total


def make_adder(k):
    def add(x):
        return x + k

    return add


def worker(results):
    results.append(classify(-1))
'''


def _load(path):
    spec = importlib.util.spec_from_file_location(path.stem, path)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


@pytest.fixture
def sample_path(tmp_path):
    path = tmp_path / 'src' / 'sample_mod.py'
    path.parent.mkdir()
    path.write_text(MODULE_SOURCE)
    return path


def _tracker(tmp_path, trace_threads=False):
    store = ConfigStore(
        {
            'coverage': {
                'track_all_executed': False,
                'include': ['src/**'],
                'exclude': [],
                'trace_threads': trace_threads,
            }
        }
    )
    return CoverageTracker(store, root=tmp_path)


@pytest.mark.medium
class TestRealTracing:
    """Tests using the production sys.settrace port."""

    def test_lines_and_functions_are_recorded(self, tmp_path, sample_path):
        """Executed lines, function kinds and call counts come from real frames."""
        tracker = _tracker(tmp_path)
        previous = sys.gettrace()

        tracker.start()
        try:
            module = _load(sample_path)
            module.classify(5)
            module.Counter().bump([1, 2, 3])
            adder = module.make_adder(1)
            adder(1)
            adder(2)
        finally:
            tracker.stop()

        assert sys.gettrace() is previous
        record = tracker.get_file_coverage(sample_path)
        lines = record.lines
        assert lines[5].status is LineStatus.EXECUTED
        assert lines[6].status is LineStatus.EXECUTED
        assert lines[7].status is LineStatus.NOT_COVERED
        assert lines[1].status is LineStatus.NOT_EXECUTABLE
        assert lines[14].execution_count == 3

        functions = {f.name: f for f in record.functions.values()}
        assert functions['classify'].type is FunctionType.GLOBAL
        assert functions['Counter.bump'].type is FunctionType.METHOD
        assert functions['make_adder.<locals>.add'].type is FunctionType.CLOSURE
        assert functions['make_adder.<locals>.add'].execution_count == 2
        assert functions['worker'].executed is False
        assert tracker.last_error is None

    def test_untracked_code_is_not_recorded(self, tmp_path, sample_path):
        """Only files matching the include patterns end up in the run."""
        other = tmp_path / 'lib' / 'other_mod.py'
        other.parent.mkdir()
        other.write_text('VALUE = 1\n')
        tracker = _tracker(tmp_path)

        tracker.start()
        try:
            _load(other)
            _load(sample_path)
        finally:
            tracker.stop()

        assert tracker.get_tracked_files() == [sample_path.as_posix()]

    def test_previous_trace_function_keeps_receiving_events(self, tmp_path, sample_path):
        """A tracer installed before tracking starts is chained, not replaced."""
        seen = []

        def outer_tracer(frame, event, arg):
            if frame.f_code.co_filename == str(sample_path):
                seen.append(event)
            return None

        tracker = _tracker(tmp_path)
        original = sys.gettrace()
        sys.settrace(outer_tracer)
        try:
            tracker.start()
            try:
                _load(sample_path).classify(1)
            finally:
                tracker.stop()
            assert sys.gettrace() is outer_tracer
        finally:
            sys.settrace(original)

        assert 'call' in seen
        assert tracker.get_file_coverage(sample_path).lines[6].executed is True

    def test_threads_started_while_tracking_are_traced(self, tmp_path, sample_path):
        """With trace_threads the worker thread's lines are recorded."""
        tracker = _tracker(tmp_path, trace_threads=True)
        module = _load(sample_path)
        results = []

        tracker.start()
        try:
            thread = threading.Thread(target=module.worker, args=(results,))
            thread.start()
            thread.join()
        finally:
            tracker.stop()

        assert results == ['other']
        record = tracker.get_file_coverage(sample_path)
        assert record.lines[26].executed is True
        assert record.lines[7].executed is True

    def test_chained_local_tracer_returning_none_stays_attached(self, tmp_path, sample_path):
        """A foreign local tracer that returns None keeps getting its frame's events."""
        seen = []

        def local_tracer(frame, event, arg):
            seen.append((event, frame.f_lineno))

        def outer_tracer(frame, event, arg):
            if frame.f_code.co_name == 'classify':
                return local_tracer
            return None

        module = _load(sample_path)
        tracker = _tracker(tmp_path)
        original = sys.gettrace()
        sys.settrace(outer_tracer)
        try:
            tracker.start()
            try:
                module.classify(1)
            finally:
                tracker.stop()
        finally:
            sys.settrace(original)

        assert seen == [('line', 5), ('line', 6), ('return', 6)]
        assert tracker.get_file_coverage(sample_path).lines[6].executed is True

    def test_thread_trace_function_is_chained_and_restored(self, tmp_path, sample_path):
        """New threads chain the thread tracer, which is put back on stop."""
        thread_calls = []

        def thread_tracer(frame, event, arg):
            if event == 'call' and frame.f_code.co_filename == str(sample_path):
                thread_calls.append(frame.f_code.co_name)

        module = _load(sample_path)
        tracker = _tracker(tmp_path, trace_threads=True)
        original_thread = threading.gettrace()
        threading.settrace(thread_tracer)
        try:
            tracker.start()
            try:
                thread = threading.Thread(target=module.worker, args=([],))
                thread.start()
                thread.join()
            finally:
                tracker.stop()
            assert threading.gettrace() is thread_tracer
        finally:
            threading.settrace(original_thread)

        assert thread_calls == ['worker', 'classify']
        assert tracker.get_file_coverage(sample_path).lines[26].executed is True
