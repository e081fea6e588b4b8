"""Reporting module for pytest-tracecov coverage runs.

This module provides formatters that render a finalized CoverageRun in
various formats (HTML, LCOV, JSON, Cobertura) and a console summary.
Formatters never modify the run and order their output by file path and
line number, so identical runs give identical reports.
"""

from pytest_tracecov.reporting.cobertura import CoberturaReporter
from pytest_tracecov.reporting.console import ConsoleReporter
from pytest_tracecov.reporting.html import HtmlReporter
from pytest_tracecov.reporting.json_reporter import JsonReporter
from pytest_tracecov.reporting.lcov import LcovReporter
from pytest_tracecov.reporting.protocol import CoverageFormatter
from pytest_tracecov.reporting.registry import FormatterRegistry, default_registry


__all__ = [
    'CoberturaReporter',
    'ConsoleReporter',
    'CoverageFormatter',
    'FormatterRegistry',
    'HtmlReporter',
    'JsonReporter',
    'LcovReporter',
    'default_registry',
]
