"""Walk state for one analysis run: scope stack, node marks and the binding registrar."""

from __future__ import annotations

import re

from ..julia.ast import JNode, Span
from .state import Definition, Local, ScopeState, Usage


_PLACEHOLDER = re.compile(r"^_+$")


def is_placeholder(name: str) -> bool:
    """`_`, `__`, ... discard a value; they are never variables."""
    return _PLACEHOLDER.match(name) is not None


def byte_offsets(source: str) -> list[int] | None:
    """UTF-8 byte offset of every str index of source, end included; None when they coincide."""
    if source.isascii():
        return None
    offsets = [0]
    for c in source:
        offsets.append(offsets[-1] + len(c.encode("utf-8", "surrogatepass")))
    return offsets


class ScopeError(Exception):
    """The walk left the scope stack or the walk path unbalanced."""

    def __init__(self, msg: str):
        self.msg: str = msg
        super().__init__(msg)


class ScopeStack:
    """Spans of the scopes enclosing the node being visited, innermost last."""

    def __init__(self):
        self.spans: list[Span] = []

    def push(self, span: Span) -> None:
        self.spans.append(span)

    def pop(self) -> Span:
        if not self.spans:
            raise ScopeError("scope stack underflow")
        return self.spans.pop()

    def top(self) -> Span | None:
        if not self.spans:
            return None
        return self.spans[-1]

    def is_empty(self) -> bool:
        return len(self.spans) == 0

    def __len__(self) -> int:
        return len(self.spans)


class NodeMarks:
    """Identity-keyed side table over syntax nodes.

    Marked nodes were already handled by a sub-explorer; the generic walk
    skips them. Checkpoints record where on the walk path an explorer started
    so it can be verified that it returned there.
    """

    def __init__(self):
        self._marks: dict[JNode, str] = {}

    def mark(self, node: JNode, reason: str = "handled") -> None:
        self._marks[node] = reason

    def is_marked(self, node: JNode) -> bool:
        return node in self._marks

    def reason(self, node: JNode) -> str | None:
        return self._marks.get(node)

    def checkpoint(self, path: list[JNode]) -> tuple[int, JNode | None]:
        return len(path), path[-1] if path else None

    def verify(self, path: list[JNode], checkpoint: tuple[int, JNode | None]) -> None:
        depth, node = checkpoint
        here = path[-1] if path else None
        if len(path) != depth or here is not node:
            where = type(node).__name__ if node is not None else "root"
            raise ScopeError("walk did not return to " + where + " at depth " + str(depth))


class ScopeContext:
    """Accumulators and bookkeeping for a single run over one tree."""

    def __init__(self, source: str):
        self.source: str = source
        self.scopes: ScopeStack = ScopeStack()
        self.marks: NodeMarks = NodeMarks()
        self.path: list[JNode] = []
        self.usages: list[Usage] = []
        self.definitions: dict[str, Definition] = {}
        self.locals: list[Local] = []
        # Pending bare `global x` / `local x` declarations: (name, scope)
        self.global_declared: list[tuple[str, Span]] = []
        self.local_declared: list[tuple[str, Span]] = []

    def text(self, span: Span) -> str:
        return self.source[span.start : span.end]

    def whole_source(self) -> Span:
        return Span(0, len(self.source))

    # ── Records ──────────────────────────────────────────────

    def find_local(self, name: str, span: Span) -> Local | None:
        """First local in discovery order with this name whose validity covers span."""
        for local in self.locals:
            if local.name == name and local.validity.contains(span):
                return local
        return None

    def add_definition(self, span: Span, name: str | None = None) -> None:
        name = self.text(span) if name is None else name
        if is_placeholder(name):
            return
        self.definitions[name] = Definition(name, span)

    def add_local(self, span: Span, validity: Span, name: str | None = None) -> None:
        name = self.text(span) if name is None else name
        if is_placeholder(name):
            return
        self.locals.append(Local(name, span, validity))

    def add_usage(self, span: Span, name: str | None = None, resolve: bool = True) -> None:
        name = self.text(span) if name is None else name
        if is_placeholder(name):
            return
        local = self.find_local(name, span) if resolve else None
        definition = local.definition if local is not None else None
        self.usages.append(Usage(name, span, definition))

    def declare_global(self, name: str, scope: Span) -> None:
        self.global_declared.append((name, scope))

    def declare_local(self, name: str, scope: Span) -> None:
        self.local_declared.append((name, scope))

    def register(self, span: Span, name: str | None = None) -> None:
        """Bind name at span according to pending declarations and the scope stack."""
        name = self.text(span) if name is None else name
        if is_placeholder(name):
            return
        for declared, scope in self.global_declared:
            if declared == name and scope.contains(span):
                self.add_definition(span, name)
                return
        for declared, scope in self.local_declared:
            if declared == name and scope.contains(span):
                self.add_local(span, scope, name)
                return
        top = self.scopes.top()
        if top is None:
            self.add_definition(span, name)
        else:
            self.add_local(span, top, name)

    # ── Completion ───────────────────────────────────────────

    def finish(self) -> ScopeState:
        if not self.scopes.is_empty():
            raise ScopeError("scope stack not empty after walk: " + str(len(self.scopes)) + " open")
        if self.path:
            raise ScopeError("walk path not empty after walk: " + str(len(self.path)) + " nodes")
        offsets = byte_offsets(self.source)
        if offsets is None:
            return ScopeState(self.usages, self.definitions, self.locals)

        def to_bytes(span: Span) -> Span:
            return Span(offsets[span.start], offsets[span.end])

        # records leave the walk in byte offsets
        usages = [
            Usage(u.name, to_bytes(u.usage), None if u.definition is None else to_bytes(u.definition))
            for u in self.usages
        ]
        definitions = {name: Definition(name, to_bytes(d.span)) for name, d in self.definitions.items()}
        locals_ = [Local(l.name, to_bytes(l.definition), to_bytes(l.validity)) for l in self.locals]
        return ScopeState(usages, definitions, locals_)
