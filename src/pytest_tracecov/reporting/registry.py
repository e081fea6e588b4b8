"""Central registry for coverage report formatters.

This module provides the FormatterRegistry class which maps format names
(as used on the command line) to formatter classes.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from pytest_tracecov.reporting.cobertura import CoberturaReporter
from pytest_tracecov.reporting.html import HtmlReporter
from pytest_tracecov.reporting.json_reporter import JsonReporter
from pytest_tracecov.reporting.lcov import LcovReporter


if TYPE_CHECKING:
    from collections.abc import Callable

    from pytest_tracecov.reporting.protocol import CoverageFormatter


class FormatterRegistry:
    """Central registry for report formatters.

    Example:
        >>> registry = FormatterRegistry()
        >>> registry.register(LcovReporter)
        >>> registry.available()
        ['lcov']
    """

    def __init__(self) -> None:
        """Initialize an empty registry."""
        self._formatters: dict[str, Callable[[], CoverageFormatter]] = {}

    def register(
        self,
        formatter_class: Callable[[], CoverageFormatter],
        name: str | None = None,
    ) -> None:
        """Register a formatter class.

        Args:
            formatter_class: The formatter class (or zero-argument factory).
            name: Optional name to register under. If not provided,
                  uses the formatter's name. Names are case-insensitive.
        """
        key = (name if name is not None else formatter_class().name).strip().lower()
        self._formatters[key] = formatter_class

    def get(self, name: str) -> CoverageFormatter | None:
        """Get a formatter instance by name, or None if the format is unknown."""
        factory = self._formatters.get(name.strip().lower())
        if factory is None:
            return None
        return factory()

    def available(self) -> list[str]:
        """List all registered format names in sorted order."""
        return sorted(self._formatters)


def default_registry() -> FormatterRegistry:
    """Return a registry holding the built-in formatters."""
    registry = FormatterRegistry()
    for formatter_class in (HtmlReporter, LcovReporter, JsonReporter, CoberturaReporter):
        registry.register(formatter_class)
    return registry
