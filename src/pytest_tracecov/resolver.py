"""Decide which source files take part in coverage.

The trace callback asks ``FileResolver.should_track`` for every new code
object it sees, so decisions are cached per path and the configuration is
read once per run.

Some files are never tracked, whatever the configuration says: this
package itself, vendored and installed third-party code, the standard
library, and the installed pytest runner. Tracking them would only add framework
code that is executed in full by every run.

Example:
    >>> config = TrackingConfig(track_all_executed=False, include=['src/**'], root='/project')
    >>> should_track('/project/src/app.py', config)
    True
    >>> should_track('/project/lib/app.py', config)
    False
"""

from __future__ import annotations

from dataclasses import dataclass, field
import functools
import logging
import os
from pathlib import Path
import re
import sysconfig
from typing import TYPE_CHECKING, Any

import _pytest
import pluggy
import pytest

from pytest_tracecov.config import DEFAULT_INCLUDE
from pytest_tracecov.store.operations import normalize_path


if TYPE_CHECKING:
    from collections.abc import Iterable

    from pytest_tracecov.config import ConfigStore


logger = logging.getLogger(__name__)

SOURCE_SUFFIX = '.py'

HARD_EXCLUDED_PATTERNS = (
    '**/vendor/**',
    '**/_vendor/**',
    '**/site-packages/**',
    '**/dist-packages/**',
)

SKIPPED_DIRECTORIES = frozenset(('.git', '.hg', '.tox', '.nox', '.venv', 'venv', '__pycache__', 'node_modules'))


@functools.lru_cache(maxsize=512)
def glob_to_regex(pattern: str) -> re.Pattern[str]:
    """Translate a glob pattern into a compiled regular expression.

    ``**/`` matches zero or more directories, ``**`` matches anything
    including slashes, ``*`` matches within one path segment and ``?``
    matches a single non-slash character.

    Example:
        >>> bool(glob_to_regex('src/**').fullmatch('src/pkg/mod.py'))
        True
        >>> bool(glob_to_regex('src/*.py').fullmatch('src/pkg/mod.py'))
        False
        >>> bool(glob_to_regex('**/*.py').fullmatch('mod.py'))
        True
    """
    parts: list[str] = []
    index = 0
    length = len(pattern)
    while index < length:
        char = pattern[index]
        if pattern.startswith('**/', index):
            parts.append('(?:.*/)?')
            index += 3
        elif pattern.startswith('**', index):
            parts.append('.*')
            index += 2
        elif char == '*':
            parts.append('[^/]*')
            index += 1
        elif char == '?':
            parts.append('[^/]')
            index += 1
        else:
            parts.append(re.escape(char))
            index += 1
    return re.compile(''.join(parts))


def _package_dir() -> str:
    return normalize_path(Path(__file__).parent) or ''


def _stdlib_dirs() -> tuple[str, ...]:
    paths = sysconfig.get_paths()
    dirs = {normalize_path(paths[key]) for key in ('stdlib', 'platstdlib') if paths.get(key)}
    return tuple(sorted(d for d in dirs if d))


def _runner_dirs() -> tuple[str, ...]:
    dirs = {normalize_path(Path(module.__file__).parent) for module in (pytest, _pytest, pluggy)}
    return tuple(sorted(d for d in dirs if d))


_PACKAGE_DIR = _package_dir()
_STDLIB_DIRS = _stdlib_dirs()
_RUNNER_DIRS = _runner_dirs()


def _under(path: str, directory: str) -> bool:
    return path == directory or path.startswith(directory.rstrip('/') + '/')


def is_hard_excluded(path: str) -> bool:
    """Return True for files that are never tracked.

    Args:
        path: A normalized absolute path.
    """
    if _under(path, _PACKAGE_DIR):
        return True
    if any(_under(path, directory) for directory in _STDLIB_DIRS + _RUNNER_DIRS):
        return True
    return any(glob_to_regex(pattern).fullmatch(path) for pattern in HARD_EXCLUDED_PATTERNS)


@dataclass(frozen=True)
class TrackingConfig:
    """The subset of configuration the resolver needs.

    Attributes:
        track_all_executed: Track every executed ``.py`` file.
        include: Glob patterns; a file must match one to be tracked.
        exclude: Glob patterns; a file matching one is never tracked.
        root: Directory relative patterns are matched against.
    """

    track_all_executed: bool = True
    include: tuple[str, ...] = field(default_factory=lambda: tuple(DEFAULT_INCLUDE))
    exclude: tuple[str, ...] = ()
    root: str | None = None


DEFAULT_TRACKING_CONFIG = TrackingConfig()


def _candidates(path: str, root: str | None) -> list[str]:
    candidates = [path]
    if root and _under(path, root) and path != root:
        candidates.append(path[len(root.rstrip('/')) + 1 :])
    return candidates


def _matches_any(candidates: list[str], patterns: Iterable[str]) -> bool:
    for pattern in patterns:
        regex = glob_to_regex(pattern)
        if any(regex.fullmatch(candidate) for candidate in candidates):
            return True
    return False


def should_track(path: str | None, config: TrackingConfig) -> bool:
    """Decide whether a file participates in coverage.

    Patterns are matched against the normalized absolute path and, for
    files below ``config.root``, against the root-relative path as well.

    Args:
        path: Raw file path as reported by the interpreter.
        config: Tracking configuration.

    Returns:
        True if the file should be tracked.
    """
    normalized = normalize_path(path)
    if normalized is None or is_hard_excluded(normalized):
        return False

    if config.track_all_executed:
        return normalized.endswith(SOURCE_SUFFIX)

    root = normalize_path(config.root) if config.root else normalize_path(os.getcwd())
    candidates = _candidates(normalized, root)
    if not _matches_any(candidates, config.include):
        return False
    return not _matches_any(candidates, config.exclude)


def _as_patterns(value: Any) -> tuple[str, ...] | None:
    if isinstance(value, str):
        return (value,)
    if isinstance(value, (list, tuple)) and all(isinstance(item, str) for item in value):
        return tuple(value)
    return None


class FileResolver:
    """Cached, fallback-safe ``should_track`` over a ConfigStore.

    The store is read on first use. If it is missing or holds malformed
    values, the default configuration (every ``.py`` file outside the
    hard-excluded set) is used and the fallback is logged once.

    Attributes:
        root: Directory relative patterns are matched against.
        generation: Incremented whenever cached decisions are dropped, so
            callers holding their own per-path caches can tell they are stale.
    """

    def __init__(self, store: ConfigStore | None = None, root: str | os.PathLike[str] | None = None) -> None:
        """Create a resolver.

        Args:
            store: Configuration store to read ``coverage.*`` keys from.
            root: Directory relative patterns are matched against.
                Defaults to the current working directory at first use.
        """
        self._store = store
        self.root = normalize_path(root) if root is not None else None
        self._config: TrackingConfig | None = None
        self._decisions: dict[str, bool] = {}
        self._fallback_logged = False
        self.generation = 0
        if store is not None:
            store.on_change('coverage', self._on_config_change)

    @property
    def config(self) -> TrackingConfig:
        """The tracking configuration in effect, loading it if needed."""
        if self._config is None:
            self._config = self._load_config()
        return self._config

    def _load_config(self) -> TrackingConfig:
        root = self.root or normalize_path(os.getcwd())
        try:
            if self._store is None:
                raise LookupError('no configuration store available')
            track_all = self._store.get('coverage.track_all_executed', True)
            include = _as_patterns(self._store.get('coverage.include', list(DEFAULT_INCLUDE)))
            exclude = _as_patterns(self._store.get('coverage.exclude', []))
            if not isinstance(track_all, bool) or include is None or exclude is None:
                raise ValueError('malformed coverage configuration')
        except Exception as exc:
            if not self._fallback_logged:
                logger.warning('Coverage configuration unavailable, using defaults: %s', exc)
                self._fallback_logged = True
            return TrackingConfig(root=root)
        return TrackingConfig(track_all_executed=track_all, include=include, exclude=exclude, root=root)

    def _on_config_change(self, _path: str, _value: Any) -> None:
        self.reset()

    def should_track(self, path: str | None) -> bool:
        """Return the cached tracking decision for a raw file path."""
        if not path:
            return False
        decision = self._decisions.get(path)
        if decision is None:
            decision = should_track(path, self.config)
            self._decisions[path] = decision
        return decision

    def reset(self) -> None:
        """Drop the cached configuration and decisions."""
        self._config = None
        self._decisions.clear()
        self._fallback_logged = False
        self.generation += 1


def discover_files(roots: Iterable[str | os.PathLike[str]], resolver: FileResolver) -> list[str]:
    """Find source files below ``roots`` that the resolver would track.

    Used to report files that are tracked by configuration but were never
    imported during the run.

    Returns:
        Sorted list of normalized file paths.
    """
    found: set[str] = set()
    for root in roots:
        base = Path(root)
        if base.is_file():
            normalized = normalize_path(base)
            if normalized and resolver.should_track(normalized):
                found.add(normalized)
            continue
        for dirpath, dirnames, filenames in os.walk(base):
            dirnames[:] = sorted(d for d in dirnames if d not in SKIPPED_DIRECTORIES and not d.startswith('.'))
            for filename in filenames:
                if not filename.endswith(SOURCE_SUFFIX):
                    continue
                normalized = normalize_path(os.path.join(dirpath, filename))
                if normalized and resolver.should_track(normalized):
                    found.add(normalized)
    return sorted(found)
