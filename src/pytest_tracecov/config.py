"""Configuration loading for pytest-tracecov.

This module reads configuration from the pyproject.toml
[tool.pytest-tracecov] section, merges it with command-line options, and
exposes the result through a path-keyed ConfigStore that the tracking
engine reads from (``coverage.include``, ``coverage.exclude``, ...).
"""

from __future__ import annotations

from collections import defaultdict
import copy
from dataclasses import dataclass
import logging
import tomllib
from typing import TYPE_CHECKING, Any


if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path


logger = logging.getLogger(__name__)

DEFAULT_INCLUDE = ['**/*.py']
DEFAULT_FORMATS = ['html']
DEFAULT_OUTPUT_DIR = 'coverage-reports'


@dataclass
class TracecovConfig:
    """Configuration for pytest-tracecov.

    All fields are optional and default to None, meaning the plugin
    will use CLI defaults or built-in defaults.

    Attributes:
        track_all_executed: Track every executed source file, ignoring
            include and exclude patterns.
        include: Glob patterns of files to track.
        exclude: Glob patterns of files never to track.
        formats: Report formats to generate (html, lcov, json, cobertura).
        output_dir: Directory reports are written to.
        fail_under: Minimum line coverage percentage for a passing run.
        discover_uncovered: Add tracked-but-never-imported files to the report.
        trace_threads: Also trace threads started after tracking begins.
    """

    track_all_executed: bool | None = None
    include: list[str] | None = None
    exclude: list[str] | None = None
    formats: list[str] | None = None
    output_dir: str | None = None
    fail_under: float | None = None
    discover_uncovered: bool | None = None
    trace_threads: bool | None = None


def load_config(rootdir: Path) -> TracecovConfig:
    """Load configuration from pyproject.toml.

    Reads the [tool.pytest-tracecov] section from pyproject.toml in the
    given directory. Returns default configuration if the file or section
    does not exist.

    Args:
        rootdir: Directory containing pyproject.toml.

    Returns:
        TracecovConfig with values from pyproject.toml or defaults.
    """
    pyproject_path = rootdir / 'pyproject.toml'

    if not pyproject_path.exists():
        return TracecovConfig()

    with pyproject_path.open('rb') as f:
        data = tomllib.load(f)

    tool_config = data.get('tool', {}).get('pytest-tracecov', {})

    return TracecovConfig(
        track_all_executed=tool_config.get('track_all_executed'),
        include=tool_config.get('include'),
        exclude=tool_config.get('exclude'),
        formats=tool_config.get('formats'),
        output_dir=tool_config.get('output_dir'),
        fail_under=tool_config.get('fail_under'),
        discover_uncovered=tool_config.get('discover_uncovered'),
        trace_threads=tool_config.get('trace_threads'),
    )


def _split_csv(value: str | None) -> list[str] | None:
    if value and value.strip():
        return [item.strip() for item in value.split(',') if item.strip()]
    return None


def merge_configs(
    file_config: TracecovConfig,
    cli_formats: str | None = None,
    cli_output_dir: str | None = None,
    cli_include: str | None = None,
    cli_exclude: str | None = None,
    cli_fail_under: float | None = None,
) -> TracecovConfig:
    """Merge CLI arguments with file configuration.

    CLI arguments take precedence over pyproject.toml configuration.
    Empty strings are treated as not provided. Passing include patterns on
    the command line switches off ``track_all_executed`` so the patterns
    take effect.

    Args:
        file_config: Configuration loaded from pyproject.toml.
        cli_formats: Comma-separated report formats (--tracecov-report).
        cli_output_dir: Report directory (--tracecov-dir).
        cli_include: Comma-separated include globs (--tracecov-include).
        cli_exclude: Comma-separated exclude globs (--tracecov-exclude).
        cli_fail_under: Minimum coverage percentage (--tracecov-fail-under).

    Returns:
        TracecovConfig with CLI values overriding file config where provided.
    """
    include = _split_csv(cli_include)
    track_all_executed = file_config.track_all_executed
    if include is not None:
        track_all_executed = False
    else:
        include = file_config.include

    output_dir = cli_output_dir if cli_output_dir and cli_output_dir.strip() else file_config.output_dir

    return TracecovConfig(
        track_all_executed=track_all_executed,
        include=include,
        exclude=_split_csv(cli_exclude) or file_config.exclude,
        formats=_split_csv(cli_formats) or file_config.formats,
        output_dir=output_dir,
        fail_under=cli_fail_under if cli_fail_under is not None else file_config.fail_under,
        discover_uncovered=file_config.discover_uncovered,
        trace_threads=file_config.trace_threads,
    )


class ConfigStore:
    """Path-keyed configuration store with change listeners.

    Values are addressed by dotted paths such as ``coverage.include``.
    Mutable values are copied on the way in and on the way out, so callers
    can never alias the stored state.

    Example:
        >>> store = ConfigStore()
        >>> store.set('coverage.include', ['src/**'])
        >>> store.get('coverage.include')
        ['src/**']
        >>> store.get('coverage.exclude', [])
        []
    """

    def __init__(self, values: dict[str, Any] | None = None) -> None:
        """Create a store, optionally seeded with nested values."""
        self._values: dict[str, Any] = copy.deepcopy(values) if values else {}
        self._listeners: dict[str, list[Callable[[str, Any], None]]] = defaultdict(list)

    @classmethod
    def from_config(cls, config: TracecovConfig) -> ConfigStore:
        """Build a store holding the ``coverage.*`` keys of a TracecovConfig.

        Unset fields fall back to the built-in defaults.
        """
        coverage = {
            'track_all_executed': True if config.track_all_executed is None else config.track_all_executed,
            'include': list(config.include) if config.include is not None else list(DEFAULT_INCLUDE),
            'exclude': list(config.exclude) if config.exclude is not None else [],
            'formats': list(config.formats) if config.formats is not None else list(DEFAULT_FORMATS),
            'output_dir': config.output_dir or DEFAULT_OUTPUT_DIR,
            'fail_under': config.fail_under,
            'discover_uncovered': bool(config.discover_uncovered),
            'trace_threads': bool(config.trace_threads),
        }
        return cls({'coverage': coverage})

    def get(self, path: str, default: Any = None) -> Any:
        """Return the value at a dotted path, or ``default`` if it is absent."""
        node: Any = self._values
        for part in path.split('.'):
            if not isinstance(node, dict) or part not in node:
                return default
            node = node[part]
        if isinstance(node, (dict, list)):
            return copy.deepcopy(node)
        return node

    def set(self, path: str, value: Any) -> None:
        """Store a value at a dotted path and notify listeners.

        Listeners registered on the path itself or on any of its parents
        are called with the full path and the new value.
        """
        parts = path.split('.')
        node = self._values
        for part in parts[:-1]:
            child = node.get(part)
            if not isinstance(child, dict):
                child = {}
                node[part] = child
            node = child
        stored = copy.deepcopy(value) if isinstance(value, (dict, list)) else value
        node[parts[-1]] = stored

        for index in range(len(parts), 0, -1):
            prefix = '.'.join(parts[:index])
            for listener in list(self._listeners.get(prefix, ())):
                try:
                    listener(path, self.get(path))
                except Exception:
                    logger.warning('Config change listener for %s failed', prefix, exc_info=True)

    def on_change(self, path: str, listener: Callable[[str, Any], None]) -> None:
        """Register a listener called when ``path`` or anything below it changes."""
        self._listeners[path].append(listener)
