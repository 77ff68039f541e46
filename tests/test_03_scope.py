"""Pytest-based scope classification tests.

Cases live in 03_scope/*.tests files. Format:

    === test name
    julia source
    ---
    definitions: a b
    locals: x
    usages: a x y?
    ---

Each expected line lists the distinct names of one category; a category
that is left out must be empty. A trailing `?` marks a name that may or
may not appear.
"""

from pathlib import Path

import pytest

from casefile import discover
from src.scopestate import analyze

SCOPE_DIR = Path(__file__).parent / "03_scope"

CATEGORIES = ("definitions", "locals", "usages")


def _parse_expected(lines: list[str]) -> dict[str, list[str]]:
    expected: dict[str, list[str]] = {c: [] for c in CATEGORIES}
    for line in lines:
        line = line.strip()
        if not line:
            continue
        key, _, names = line.partition(":")
        if key not in expected:
            raise ValueError(f"unknown category {key!r}")
        expected[key] = names.split()
    return expected


def resolve_optionals(actual: set[str], expected: list[str]) -> set[str]:
    """Drop `name?` entries that are absent from actual; keep the rest."""
    resolved: set[str] = set()
    for name in expected:
        if name.endswith("?"):
            if name[:-1] in actual:
                resolved.add(name[:-1])
        else:
            resolved.add(name)
    return resolved


def pytest_generate_tests(metafunc):
    """Parametrize tests over scope test files."""
    if "scope_input" in metafunc.fixturenames:
        params = [
            pytest.param("\n".join(input_lines), _parse_expected(expected_lines), id=test_id)
            for test_id, input_lines, expected_lines in discover(SCOPE_DIR)
        ]
        metafunc.parametrize("scope_input,scope_expected", params)


def test_scope(scope_input: str, scope_expected: dict[str, list[str]]):
    """Verify the distinct names found in each category."""
    state = analyze(scope_input)
    actual = {
        "definitions": set(state.definitions.keys()),
        "locals": {l.name for l in state.locals},
        "usages": {u.name for u in state.usages},
    }
    for category in CATEGORIES:
        want = resolve_optionals(actual[category], scope_expected[category])
        assert actual[category] == want, (
            f"{category}: expected {sorted(want)}, got {sorted(actual[category])}"
        )


def test_analysis_is_repeatable():
    """Analyzing the same source twice gives equal results."""
    for _, input_lines, _ in discover(SCOPE_DIR):
        source = "\n".join(input_lines)
        assert analyze(source) == analyze(source)
