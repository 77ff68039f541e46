"""Scope exploration — classifies every identifier of a cell.

One forward walk over the tree. Each identifier occurrence becomes a global
definition, a local (with the span of the scope it is valid in), or a usage
linked to the local it resolves to.
"""

from __future__ import annotations

import logging

from ..julia.ast import (
    JAbstract,
    JArrow,
    JAssign,
    JBinary,
    JBraces,
    JCall,
    JCatch,
    JCurly,
    JDo,
    JField,
    JFor,
    JForBinding,
    JFunction,
    JGenerator,
    JGlobal,
    JIdent,
    JImport,
    JImportPath,
    JKwArg,
    JLet,
    JLiteral,
    JLocal,
    JMacro,
    JMacroCall,
    JMacroIdent,
    JModule,
    JNode,
    JOpenTuple,
    JOperator,
    JParen,
    JPrimitive,
    JQuote,
    JSelectedImport,
    JSource,
    JStruct,
    JSymbol,
    JTry,
    JTyped,
    JWhere,
    JWhile,
    Span,
    iter_children,
)
from .context import ScopeContext, ScopeError
from .state import ScopeState
from .targets import (
    explore_parameters,
    is_function_lhs,
    parameter_items,
    split_targets,
)


logger = logging.getLogger(__name__)

BIND_MACROS: set[str] = {"@bind", "@bindname"}

# Constructs that open a scope wherever they appear
SCOPE_NODES: tuple[type, ...] = (
    JWhile,
    JFor,
    JTry,
    JLet,
    JFunction,
    JMacro,
    JDo,
    JGenerator,
    JArrow,
)


def explore_variable_usage(tree: JSource, source: str, verbose: bool = False) -> ScopeState:
    """Classify the variables of one parsed cell.

    source is the text tree was parsed from; names are read from it by span.
    Raises ScopeError if the walk ends unbalanced.
    """
    walker = ScopeWalker(source, verbose)
    walker.visit(tree)
    return walker.ctx.finish()


def creates_scope(node: JNode) -> bool:
    """True if node opens a scope: the fixed constructs plus short-form function definitions."""
    if isinstance(node, SCOPE_NODES):
        return True
    return isinstance(node, JAssign) and is_function_lhs(node.lhs)


def _is_bind_macro(macro: JNode) -> bool:
    if isinstance(macro, JMacroIdent):
        return macro.name in BIND_MACROS
    if isinstance(macro, JField) and isinstance(macro.field, JMacroIdent):
        return macro.field.name in BIND_MACROS
    return False


def _declared_type_name(head: JNode) -> JNode | None:
    """The name declared by a type head: `A`, `A{T}`, `A <: B`, `A{T} <: B{T}`."""
    if isinstance(head, JIdent):
        return head
    if isinstance(head, JCurly) and isinstance(head.obj, JIdent):
        return head.obj
    if isinstance(head, JBinary) and head.op == "<:":
        return _declared_type_name(head.left)
    return None


# ============================================================
# WALKER
# ============================================================


class ScopeWalker:
    """Recursive visitor that feeds a ScopeContext."""

    def __init__(self, source: str, verbose: bool = False):
        self.ctx: ScopeContext = ScopeContext(source)
        self.verbose: bool = verbose
        # Set by `global`/`local` for the short-form definition they wrap:
        # ("global", None) or ("local", validity)
        self.forced: tuple[str, Span | None] | None = None

    def visit(self, node: JNode) -> None:
        ctx = self.ctx
        if ctx.marks.is_marked(node):
            return
        ctx.path.append(node)
        checkpoint = ctx.marks.checkpoint(ctx.path)
        if self.verbose:
            logger.debug(
                "%s%s %r",
                "  " * (len(ctx.path) - 1),
                type(node).__name__,
                ctx.text(node.span)[:40],
            )
        opens = creates_scope(node)
        if opens:
            ctx.scopes.push(node.span)
        self.dispatch(node)
        if opens:
            popped = ctx.scopes.pop()
            if popped != node.span:
                raise ScopeError(
                    "left scope " + str(popped) + " while leaving " + type(node).__name__
                )
        ctx.marks.verify(ctx.path, checkpoint)
        ctx.path.pop()

    def visit_all(self, nodes: list[JNode]) -> None:
        for node in nodes:
            self.visit(node)

    def dispatch(self, node: JNode) -> None:
        if isinstance(node, JIdent):
            self.visit_ident(node)
        elif isinstance(node, (JOperator, JLiteral, JSymbol, JQuote, JMacroIdent)):
            return
        elif isinstance(node, JField):
            self.visit(node.obj)
        elif isinstance(node, JKwArg):
            # the label of f(k = v) is neither read nor bound
            self.visit(node.value)
        elif isinstance(node, JAssign):
            self.visit_assign(node)
        elif isinstance(node, JForBinding):
            self.bind_targets(node.target)
            self.visit(node.iter)
        elif isinstance(node, JCatch):
            if node.var is not None:
                self.bind_targets(node.var)
            self.visit_all(node.body)
        elif isinstance(node, JLet):
            self.visit_let(node)
        elif isinstance(node, (JFunction, JMacro)):
            if node.signature is not None:
                self.explore_signature(node.signature, isinstance(node, JMacro))
            self.visit_all(node.body)
        elif isinstance(node, JArrow):
            self.bind_parameters(parameter_items(node.params))
            self.visit(node.body)
        elif isinstance(node, JDo):
            self.bind_parameters(node.params)
            self.visit_all(node.body)
        elif isinstance(node, JGenerator):
            # clauses bind before the head expression reads
            self.visit_all(node.clauses)
            self.visit(node.expr)
        elif isinstance(node, JGlobal):
            self.visit_global(node)
        elif isinstance(node, JLocal):
            self.visit_local(node)
        elif isinstance(node, JImport):
            self.visit_import(node)
        elif isinstance(node, (JStruct, JAbstract, JPrimitive)):
            name = _declared_type_name(node.head)
            if name is not None:
                self.ctx.add_definition(name.span)
        elif isinstance(node, JModule):
            self.ctx.add_definition(node.name.span)
        elif isinstance(node, JMacroCall):
            self.visit_macro_call(node)
        else:
            for child in iter_children(node):
                self.visit(child)

    # ── Identifiers ──────────────────────────────────────────

    def visit_ident(self, node: JIdent) -> None:
        ctx = self.ctx
        parent = ctx.path[-2] if len(ctx.path) > 1 else None
        in_braces = isinstance(parent, JBraces) or (
            isinstance(parent, JCurly) and node is not parent.obj
        )
        # T in AbstractArray{T} where T is a type parameter reference
        if in_braces and ctx.find_local(node.name, node.span) is not None:
            return
        ctx.add_usage(node.span, node.name)

    # ── Assignments ──────────────────────────────────────────

    def visit_assign(self, node: JAssign) -> None:
        ctx = self.ctx
        if is_function_lhs(node.lhs):
            forced, self.forced = self.forced, None
            self.explore_signature(node.lhs, False, forced)
            self.visit(node.rhs)
            return
        bound, read = split_targets(node.lhs)
        for ident in read:
            ctx.add_usage(ident.span, ident.name)
        if node.op.startswith("."):
            # a .= b mutates a
            for target in bound:
                ctx.add_usage(target.span)
        elif node.op != "=":
            # a += 1 reads a; it only binds at top level
            for target in bound:
                ctx.add_usage(target.span)
            if ctx.scopes.is_empty():
                for target in bound:
                    ctx.register(target.span)
        else:
            for target in bound:
                ctx.register(target.span)
        self.visit(node.rhs)

    def bind_targets(self, target: JNode) -> None:
        """Register a for-binding or catch target as a plain `=` assignment would."""
        bound, read = split_targets(target)
        for ident in read:
            self.ctx.add_usage(ident.span, ident.name)
        for name in bound:
            self.ctx.register(name.span)

    def visit_let(self, node: JLet) -> None:
        for binding in node.bindings:
            if isinstance(binding, JIdent):
                self.ctx.register(binding.span)
            else:
                self.visit(binding)
        self.visit_all(node.body)

    # ── Functions ────────────────────────────────────────────

    def bind_parameters(self, items: list[JNode]) -> None:
        for name in explore_parameters(items, self.visit):
            self.ctx.register(name.span)

    def explore_signature(
        self, sig: JNode, is_macro: bool, forced: tuple[str, Span | None] | None = None
    ) -> None:
        """Handle a function signature; the function's own scope is on top of the stack.

        forced overrides where the function name is bound, see register_function_name.
        """
        if isinstance(sig, JWhere):
            self.bind_type_parameters(sig.params)
            self.explore_signature(sig.expr, is_macro, forced)
            # constraints: the parameters themselves are marked and skipped
            self.visit(sig.params)
            return
        if isinstance(sig, JTyped) and sig.expr is not None:
            self.explore_signature(sig.expr, is_macro, forced)
            self.visit(sig.type)
            return
        if isinstance(sig, JCall):
            callee = sig.callee
            items = sig.args + sig.kwargs
            if isinstance(callee, JParen):
                # function (obj::T)(x) ... end
                items = [callee.expr] + items
            else:
                self.register_function_name(callee, is_macro, forced)
            self.bind_parameters(items)
            return
        if isinstance(sig, (JIdent, JOperator, JField)):
            # function g end
            self.register_function_name(sig, is_macro, forced)
            return
        # anonymous: function (a, b) ... end
        self.bind_parameters(parameter_items(sig))

    def register_function_name(
        self, callee: JNode, is_macro: bool, forced: tuple[str, Span | None] | None = None
    ) -> None:
        """Register the name in the scope enclosing the function.

        Under `global f(x) = ...` the name is always a definition; under
        `local f(x) = ...` it is always a local valid in the given span.
        """
        target = callee
        if isinstance(target, JCurly):
            for param in target.params:
                self.visit(param)
            target = target.obj
        if not isinstance(target, (JIdent, JOperator, JField)):
            self.visit(target)
            return
        name = self.ctx.text(target.span)
        if is_macro:
            name = "@" + name
        if forced is not None:
            kind, validity = forced
            if kind == "global":
                self.ctx.add_definition(target.span, name)
            else:
                self.ctx.add_local(target.span, validity, name)
            return
        own = self.ctx.scopes.pop()
        self.ctx.register(target.span, name)
        self.ctx.scopes.push(own)

    def bind_type_parameters(self, params: JNode) -> None:
        """Register `where` parameters and mark them so the constraint walk skips them."""
        items = params.items if isinstance(params, JBraces) else [params]
        for item in items:
            name = item
            if isinstance(item, JBinary) and item.op in ("<:", ">:"):
                name = item.left
            if isinstance(name, JIdent):
                self.ctx.register(name.span)
                self.ctx.marks.mark(name, "type parameter")

    # ── Scope overrides ──────────────────────────────────────

    def declaration_scope(self) -> Span:
        """Top of the scope stack, else the block holding the statement, else the whole cell."""
        top = self.ctx.scopes.top()
        if top is not None:
            return top
        if len(self.ctx.path) > 1:
            return self.ctx.path[-2].span
        return self.ctx.whole_source()

    def visit_global(self, node: JGlobal) -> None:
        ctx = self.ctx
        payload = node.payload
        if isinstance(payload, JAssign):
            if is_function_lhs(payload.lhs):
                self.forced = ("global", None)
                self.visit(payload)
                self.forced = None
                return
            bound, read = split_targets(payload.lhs)
            for ident in read:
                ctx.add_usage(ident.span, ident.name)
            if payload.op.startswith("."):
                for target in bound:
                    ctx.add_usage(target.span)
            else:
                if payload.op != "=":
                    for target in bound:
                        ctx.add_usage(target.span, resolve=False)
                for target in bound:
                    ctx.add_definition(target.span)
            self.visit(payload.rhs)
            return
        names = _declared_names(payload)
        if names is None:
            self.visit(payload)
            return
        scope = self.declaration_scope()
        for name in names:
            ctx.declare_global(name.name, scope)

    def visit_local(self, node: JLocal) -> None:
        ctx = self.ctx
        payload = node.payload
        if isinstance(payload, JAssign):
            validity = self.declaration_scope()
            if is_function_lhs(payload.lhs):
                self.forced = ("local", validity)
                self.visit(payload)
                self.forced = None
                return
            bound, read = split_targets(payload.lhs)
            for ident in read:
                ctx.add_usage(ident.span, ident.name)
            if payload.op.startswith("."):
                for target in bound:
                    ctx.add_usage(target.span)
            else:
                for target in bound:
                    ctx.add_local(target.span, validity)
            self.visit(payload.rhs)
            return
        names = _declared_names(payload)
        if names is None:
            self.visit(payload)
            return
        scope = self.declaration_scope()
        for name in names:
            ctx.declare_local(name.name, scope)

    # ── Imports ──────────────────────────────────────────────

    def visit_import(self, node: JImport) -> None:
        for item in node.items:
            if isinstance(item, JSelectedImport):
                for path in item.names:
                    self.bind_import(path)
            elif isinstance(item, JImportPath):
                self.bind_import(item)

    def bind_import(self, path: JImportPath) -> None:
        target = path.alias if path.alias is not None else path.names[-1]
        self.ctx.add_definition(target.span)

    # ── Macros ───────────────────────────────────────────────

    def visit_macro_call(self, node: JMacroCall) -> None:
        if _is_bind_macro(node.macro) and node.args and isinstance(node.args[0], JIdent):
            self.ctx.register(node.args[0].span)
            self.ctx.marks.mark(node.args[0], "bound by macro")
        self.visit_all(node.args)


def _declared_names(payload: JNode) -> list[JIdent] | None:
    """Names of a bare `global a` / `local a, b`; None for any other shape."""
    if isinstance(payload, JIdent):
        return [payload]
    if isinstance(payload, JOpenTuple) and all(isinstance(i, JIdent) for i in payload.items):
        return list(payload.items)
    return None
