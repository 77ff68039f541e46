"""Decomposition of assignment targets and parameter lists."""

from __future__ import annotations

from typing import Callable

from ..julia.ast import (
    JAssign,
    JCall,
    JCurly,
    JField,
    JIdent,
    JIndex,
    JKwArg,
    JLiteral,
    JMacroIdent,
    JNode,
    JOpenTuple,
    JOperator,
    JParen,
    JParenBlock,
    JPrefixedString,
    JQuote,
    JSplat,
    JSymbol,
    JTuple,
    JTyped,
    JVector,
    JWhere,
    iter_children,
)


def is_function_lhs(node: JNode) -> bool:
    """True if an assignment with this left-hand side defines a function.

    `f(x) = ...`, `f(x)::T = ...`, `f(x) where T = ...` and nestings thereof.
    """
    while isinstance(node, (JTyped, JWhere)):
        if isinstance(node, JTyped):
            if node.expr is None:
                return False
            node = node.expr
        else:
            node = node.expr
    return isinstance(node, JCall)


def collect_names(node: JNode) -> list[JIdent]:
    """Identifiers read by an expression, without walking it.

    Field names, symbols, quotes, macro names and keyword labels are not reads.
    """
    names: list[JIdent] = []
    _collect(node, names)
    return names


def _collect(node: JNode, names: list[JIdent]) -> None:
    if isinstance(node, JIdent):
        names.append(node)
    elif isinstance(node, JField):
        _collect(node.obj, names)
    elif isinstance(node, JKwArg):
        _collect(node.value, names)
    elif isinstance(node, JPrefixedString):
        names.append(node.prefix)
    elif isinstance(node, (JSymbol, JQuote, JMacroIdent, JLiteral, JOperator)):
        return
    else:
        for child in iter_children(node):
            _collect(child, names)


def split_targets(node: JNode) -> tuple[list[JNode], list[JIdent]]:
    """Split a value-assignment target into (bound names, names read).

    `x` and `+` are bound; `a[i]` and `a.b` only read; `x::T` binds x and
    reads T; `A{T}` binds A; tuples, parens, vectors and splats recurse.
    """
    bound: list[JNode] = []
    read: list[JIdent] = []
    _split(node, bound, read)
    return bound, read


def _split(node: JNode, bound: list[JNode], read: list[JIdent]) -> None:
    if isinstance(node, (JIdent, JOperator)):
        bound.append(node)
    elif isinstance(node, JTyped):
        if node.expr is not None:
            _split(node.expr, bound, read)
        read.extend(collect_names(node.type))
    elif isinstance(node, JWhere):
        _split(node.expr, bound, read)
        read.extend(collect_names(node.params))
    elif isinstance(node, JCurly):
        _split(node.obj, bound, read)
    elif isinstance(node, (JIndex, JField, JCall)):
        read.extend(collect_names(node))
    elif isinstance(node, JTuple):
        for item in node.items + node.kwitems:
            _split(item, bound, read)
    elif isinstance(node, (JOpenTuple, JVector)):
        for item in node.items:
            _split(item, bound, read)
    elif isinstance(node, JParen):
        _split(node.expr, bound, read)
    elif isinstance(node, JSplat):
        _split(node.expr, bound, read)
    # literals, braces and anything else bind nothing


def parameter_items(node: JNode) -> list[JNode]:
    """The individual parameters of an anonymous function's parameter node."""
    if isinstance(node, JTuple):
        return node.items + node.kwitems
    if isinstance(node, JParen):
        return [node.expr]
    if isinstance(node, JParenBlock):
        return node.body
    return [node]


def explore_parameters(items: list[JNode], visit: Callable[[JNode], None]) -> list[JNode]:
    """Return the names bound by a parameter list, walking defaults and types.

    Defaults and annotations are walked as they are met, before any parameter
    is registered, so `f(x; y=x)` reads an unresolved `x`.
    """
    bound: list[JNode] = []

    def explore(node: JNode) -> None:
        if isinstance(node, (JIdent, JOperator)):
            bound.append(node)
        elif isinstance(node, JKwArg):
            explore(node.name)
            visit(node.value)
        elif isinstance(node, JAssign) and node.op == "=":
            explore(node.lhs)
            visit(node.rhs)
        elif isinstance(node, JTyped):
            if node.expr is not None:
                explore(node.expr)
            visit(node.type)
        elif isinstance(node, JSplat):
            explore(node.expr)
        elif isinstance(node, JTuple):
            for item in node.items + node.kwitems:
                explore(item)
        elif isinstance(node, JParen):
            explore(node.expr)
        else:
            visit(node)

    for item in items:
        explore(item)
    return bound
