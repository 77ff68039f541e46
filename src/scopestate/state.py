"""Scope state — the result of classifying the variables of one cell."""

from __future__ import annotations

from dataclasses import dataclass, field

from ..julia.ast import Span


@dataclass(frozen=True)
class Definition:
    """A name bound at cell (global) scope."""

    name: str
    span: Span


@dataclass(frozen=True)
class Local:
    """A name bound inside a scope; visible to usages within validity."""

    name: str
    definition: Span
    validity: Span


@dataclass(frozen=True)
class Usage:
    """A read of a name; definition is the binding local's span, or None if global."""

    name: str
    usage: Span
    definition: Span | None


@dataclass
class ScopeState:
    """Usages and locals in discovery order; definitions keyed by name (last write wins)."""

    usages: list[Usage] = field(default_factory=list)
    definitions: dict[str, Definition] = field(default_factory=dict)
    locals: list[Local] = field(default_factory=list)

    @classmethod
    def empty(cls) -> ScopeState:
        return cls()

    def global_usages(self) -> list[Usage]:
        """Usages that no local resolves; these reference cell-level names."""
        return [u for u in self.usages if u.definition is None]

    def local_usages(self) -> list[Usage]:
        return [u for u in self.usages if u.definition is not None]

    def to_dict(self) -> dict:
        """Plain data form, used for JSON output."""
        return {
            "usages": [
                {
                    "name": u.name,
                    "usage": _span_dict(u.usage),
                    "definition": None if u.definition is None else _span_dict(u.definition),
                }
                for u in self.usages
            ],
            "definitions": {
                name: {"name": d.name, "span": _span_dict(d.span)}
                for name, d in self.definitions.items()
            },
            "locals": [
                {
                    "name": l.name,
                    "definition": _span_dict(l.definition),
                    "validity": _span_dict(l.validity),
                }
                for l in self.locals
            ],
        }


def _span_dict(span: Span) -> dict[str, int]:
    return {"from": span.start, "to": span.end}
