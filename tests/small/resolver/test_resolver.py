"""Tests for deciding which files are tracked."""

from __future__ import annotations

import logging
import os
import sysconfig

import _pytest.main
import pluggy
import pytest

from pytest_tracecov.config import ConfigStore
from pytest_tracecov.resolver import (
    FileResolver,
    TrackingConfig,
    discover_files,
    glob_to_regex,
    is_hard_excluded,
    should_track,
)


@pytest.mark.small
class TestGlobToRegex:
    """Tests for glob pattern translation."""

    @pytest.mark.parametrize(
        ('pattern', 'path', 'expected'),
        [
            ('**/*.py', 'mod.py', True),
            ('**/*.py', 'a/b/mod.py', True),
            ('**/*.py', 'a/b/mod.txt', False),
            ('src/**', 'src/a/b.py', True),
            ('src/**', 'lib/a.py', False),
            ('src/*.py', 'src/a.py', True),
            ('src/*.py', 'src/pkg/a.py', False),
            ('src/?.py', 'src/a.py', True),
            ('src/?.py', 'src/ab.py', False),
            ('tests/**', 'tests/test_a.py', True),
            ('a+b/*.py', 'a+b/x.py', True),
        ],
    )
    def test_glob_matching(self, pattern, path, expected):
        """Globs follow the **, * and ? conventions."""
        assert bool(glob_to_regex(pattern).fullmatch(path)) is expected


@pytest.mark.small
class TestHardExcluded:
    """Tests for files that are never tracked."""

    @pytest.mark.parametrize(
        'path',
        [
            '/env/lib/site-packages/requests/api.py',
            '/project/vendor/lib.py',
            '/env/lib/dist-packages/six.py',
        ],
    )
    def test_third_party_paths_are_excluded(self, path):
        """Vendored code and installed packages are excluded."""
        assert is_hard_excluded(path) is True

    @pytest.mark.parametrize('module', [pytest, _pytest.main, pluggy])
    def test_installed_runner_is_excluded(self, module):
        """The running pytest and pluggy are excluded wherever they are installed."""
        assert is_hard_excluded(module.__file__.replace('\\', '/')) is True

    @pytest.mark.parametrize('path', ['/project/tests/pytest/helpers.py', '/project/src/pytest.py', '/project/pluggy/x.py'])
    def test_project_files_named_like_the_runner_are_not_excluded(self, path):
        """Only the installed runner is excluded, not project paths that share its name."""
        assert is_hard_excluded(path) is False

    def test_standard_library_is_excluded(self):
        """Modules of the interpreter's standard library are excluded."""
        stdlib = sysconfig.get_paths()['stdlib'].replace('\\', '/')

        assert is_hard_excluded(f'{stdlib}/json/decoder.py') is True

    def test_this_package_is_excluded(self):
        """The coverage engine never tracks itself."""
        import pytest_tracecov.resolver as module

        assert is_hard_excluded(module.__file__.replace('\\', '/')) is True

    def test_project_file_is_not_excluded(self):
        """Ordinary project files are candidates."""
        assert is_hard_excluded('/project/src/app.py') is False

    def test_hard_exclusion_beats_track_all(self):
        """Even track_all_executed cannot track an installed package."""
        config = TrackingConfig(track_all_executed=True)

        assert should_track('/env/lib/site-packages/requests/api.py', config) is False


@pytest.mark.small
class TestShouldTrack:
    """Tests for the tracking decision."""

    def test_track_all_accepts_any_python_file(self):
        """With track_all_executed every .py file is tracked."""
        config = TrackingConfig(track_all_executed=True, include=('nothing/**',), exclude=('**',))

        assert should_track('/project/src/app.py', config) is True

    def test_track_all_rejects_non_python_files(self):
        """Only source files can be tracked."""
        config = TrackingConfig(track_all_executed=True)

        assert should_track('/project/src/template.txt', config) is False

    def test_include_and_exclude_against_relative_paths(self):
        """src/** includes, src/vendor/** excludes."""
        config = TrackingConfig(
            track_all_executed=False,
            include=('src/**',),
            exclude=('src/vendor/**',),
            root='/project',
        )

        assert should_track('/project/src/app.py', config) is True
        assert should_track('/project/src/vendor/lib.py', config) is False
        assert should_track('/project/tests/test_app.py', config) is False

    def test_patterns_match_absolute_paths(self):
        """Absolute patterns are matched against the absolute path."""
        config = TrackingConfig(track_all_executed=False, include=('/project/src/**',), root='/elsewhere')

        assert should_track('/project/src/app.py', config) is True

    def test_root_defaults_to_working_directory(self, tmp_path, monkeypatch):
        """Relative patterns refer to the cwd when no root is given."""
        monkeypatch.chdir(tmp_path)
        config = TrackingConfig(track_all_executed=False, include=('src/**',))

        assert should_track(os.path.join(str(tmp_path), 'src', 'app.py'), config) is True

    @pytest.mark.parametrize('path', [None, ''])
    def test_missing_path_is_not_tracked(self, path):
        """Nothing without a path is tracked."""
        assert should_track(path, TrackingConfig()) is False


@pytest.mark.small
class TestFileResolver:
    """Tests for the cached resolver over a config store."""

    def test_reads_patterns_from_store(self):
        """Include and exclude come from the coverage.* keys."""
        store = ConfigStore(
            {'coverage': {'track_all_executed': False, 'include': ['src/**'], 'exclude': ['src/gen/**']}}
        )
        resolver = FileResolver(store, root='/project')

        assert resolver.should_track('/project/src/app.py') is True
        assert resolver.should_track('/project/src/gen/app.py') is False

    def test_missing_store_falls_back_to_defaults_and_logs_once(self, caplog):
        """Without configuration every .py file is tracked; the fallback is logged once."""
        resolver = FileResolver(None, root='/project')

        with caplog.at_level(logging.WARNING, logger='pytest_tracecov.resolver'):
            first = resolver.should_track('/project/a.py')
            second = resolver.should_track('/project/b.py')

        assert first is True
        assert second is True
        assert caplog.text.count('using defaults') == 1

    def test_malformed_store_values_fall_back(self, caplog):
        """A non-list include is rejected in favour of the defaults."""
        store = ConfigStore({'coverage': {'track_all_executed': False, 'include': 42}})
        resolver = FileResolver(store, root='/project')

        with caplog.at_level(logging.WARNING, logger='pytest_tracecov.resolver'):
            result = resolver.should_track('/project/lib/app.py')

        assert result is True
        assert 'malformed' in caplog.text

    def test_decisions_are_cached_until_config_changes(self):
        """Changing coverage.* keys drops cached decisions."""
        store = ConfigStore({'coverage': {'track_all_executed': False, 'include': ['src/**'], 'exclude': []}})
        resolver = FileResolver(store, root='/project')
        assert resolver.should_track('/project/lib/app.py') is False

        store.set('coverage.include', ['lib/**'])

        assert resolver.should_track('/project/lib/app.py') is True


@pytest.mark.small
class TestDiscoverFiles:
    """Tests for finding tracked files that never ran."""

    def test_finds_tracked_python_files(self, tmp_path):
        """Walks the tree and applies the resolver."""
        (tmp_path / 'src' / 'pkg').mkdir(parents=True)
        (tmp_path / 'src' / 'pkg' / 'mod.py').write_text('x = 1\n')
        (tmp_path / 'src' / 'notes.txt').write_text('hi\n')
        (tmp_path / 'tests').mkdir()
        (tmp_path / 'tests' / 'test_mod.py').write_text('x = 1\n')
        (tmp_path / '.venv').mkdir()
        (tmp_path / '.venv' / 'hidden.py').write_text('x = 1\n')
        store = ConfigStore({'coverage': {'track_all_executed': False, 'include': ['src/**'], 'exclude': []}})
        resolver = FileResolver(store, root=tmp_path)

        found = discover_files([tmp_path], resolver)

        assert found == [f'{tmp_path.as_posix()}/src/pkg/mod.py']

    def test_accepts_single_files(self, tmp_path):
        """A root that is a file is checked directly."""
        target = tmp_path / 'single.py'
        target.write_text('x = 1\n')

        found = discover_files([target], FileResolver(ConfigStore({'coverage': {}}), root=tmp_path))

        assert found == [target.as_posix()]
