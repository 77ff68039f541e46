"""Incremental layer — keeps the scope state of the current tree."""

from __future__ import annotations

import logging

from ..julia.ast import JSource
from .explore import explore_variable_usage
from .state import ScopeState


logger = logging.getLogger(__name__)


class ScopeStateField:
    """Holds the ScopeState for the latest tree, recomputing only when the tree changes.

    Trees are compared by identity: an editor hands over a new tree object on
    every edit, and the same object when nothing changed. A failing analysis
    is logged and replaced by an empty state so that callers always get a value.
    """

    def __init__(self, verbose: bool = False):
        self.verbose: bool = verbose
        self.tree: JSource | None = None
        self.value: ScopeState = ScopeState.empty()

    def create(self, tree: JSource, source: str) -> ScopeState:
        self.tree = tree
        self.value = self._compute(tree, source)
        return self.value

    def update(self, tree: JSource, source: str) -> ScopeState:
        if tree is self.tree:
            return self.value
        return self.create(tree, source)

    def _compute(self, tree: JSource, source: str) -> ScopeState:
        try:
            return explore_variable_usage(tree, source, self.verbose)
        except Exception:
            logger.exception("Something went wrong while exploring variables")
            return ScopeState.empty()
