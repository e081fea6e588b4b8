"""In-memory coverage data store.

The store is the single source of truth for a tracking run: which files
were touched, which of their lines and functions ran, and the summary
derived from that data.

Exports:
    CoverageRun: Top-level container for one tracking session
    FileRecord: Coverage data for one source file
    LineRecord: Execution state of one source line
    FunctionRecord: A function entered while tracking
    LineStatus: Final classification of a line
    FunctionType: Kind of a function
"""

from __future__ import annotations

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


__all__ = [
    'CoverageRun',
    'FileRecord',
    'FileSummary',
    'FunctionRecord',
    'FunctionType',
    'LineRecord',
    'LineStatus',
    'RunSummary',
]
