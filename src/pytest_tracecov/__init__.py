"""pytest-tracecov: Line and function coverage for pytest.

pytest-tracecov hooks the interpreter's trace facility while your test suite
runs, records which lines and functions of your code executed, classifies
every source line, and renders HTML, LCOV, JSON and Cobertura reports.

Lines are reported in three states:

- covered: executed and verified by a passing assertion
- executed: ran during the suite, but no assertion checked it
- not covered: executable but never ran

Example:
    Track coverage for a test run::

        $ pytest --tracecov

    Write an HTML and an LCOV report into ``coverage/``::

        $ pytest --tracecov --tracecov-report=html,lcov --tracecov-dir=coverage

    Fail the run when line coverage drops below 80%::

        $ pytest --tracecov --tracecov-fail-under=80
"""

from __future__ import annotations


__version__ = '0.3.0'
__all__ = ['__version__']
