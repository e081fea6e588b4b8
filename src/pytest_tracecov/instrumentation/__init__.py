"""Execution tracking through the interpreter's trace facility.

This package connects the coverage data store to running code:

1. An instrumentation port (``SysTraceInstrumentation``) installs a trace
   callback and converts frames into ``LineEvent``/``CallEvent``/``ReturnEvent``
2. The ``ExecutionHook`` receives those events and updates a CoverageRun
3. Stopping the hook restores whatever trace function was installed before

Exports:
    ExecutionHook: Start/stop state machine that records coverage
    SysTraceInstrumentation: Port backed by sys.settrace
    LineEvent, CallEvent, ReturnEvent: Trace events
"""

from __future__ import annotations

from pytest_tracecov.instrumentation.events import CallEvent, LineEvent, ReturnEvent
from pytest_tracecov.instrumentation.hook import ActiveCall, ExecutionHook, HookState
from pytest_tracecov.instrumentation.port import Instrumentation, SysTraceInstrumentation


__all__ = [
    'ActiveCall',
    'CallEvent',
    'ExecutionHook',
    'HookState',
    'Instrumentation',
    'LineEvent',
    'ReturnEvent',
    'SysTraceInstrumentation',
]
