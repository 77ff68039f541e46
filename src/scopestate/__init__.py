"""Scope state of Julia cells — public API."""

from __future__ import annotations

from ..julia import parse
from .context import ScopeError as ScopeError
from .explore import explore_variable_usage as explore_variable_usage
from .field import ScopeStateField as ScopeStateField
from .state import (
    Definition as Definition,
    Local as Local,
    ScopeState as ScopeState,
    Usage as Usage,
)


def analyze(source: str, verbose: bool = False) -> ScopeState:
    """Parse Julia source and classify its variables."""
    tree = parse(source)
    return explore_variable_usage(tree, source, verbose)
