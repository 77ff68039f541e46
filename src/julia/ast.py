"""Julia AST — syntax nodes produced by the parser."""

from __future__ import annotations

from dataclasses import dataclass, fields
from typing import Iterator


# ============================================================
# SPAN
# ============================================================


@dataclass(frozen=True)
class Span:
    """Half-open [start, end) range into the source.

    Syntax nodes index the Python str; scope records carry UTF-8 byte offsets.
    """

    start: int
    end: int

    def contains(self, other: Span) -> bool:
        return self.start <= other.start and other.end <= self.end


# ============================================================
# BASE
# ============================================================


@dataclass(eq=False)
class JNode:
    """Base for all syntax nodes. Nodes compare and hash by identity."""

    span: Span


@dataclass(eq=False)
class JSource(JNode):
    """Root of a parsed cell."""

    body: list[JNode]


# ============================================================
# ATOMS
# ============================================================


@dataclass(eq=False)
class JIdent(JNode):
    name: str


@dataclass(eq=False)
class JOperator(JNode):
    """An operator used as a value or function name: `+`, `map(*, xs)`."""

    op: str


@dataclass(eq=False)
class JLiteral(JNode):
    """int, float, char, bool, or `begin`/`end` inside an index."""

    kind: str
    text: str


@dataclass(eq=False)
class JString(JNode):
    """String literal; parts are the interpolated expressions."""

    parts: list[JNode]


@dataclass(eq=False)
class JCommand(JNode):
    """Backtick command literal; parts are the interpolated expressions."""

    parts: list[JNode]


@dataclass(eq=False)
class JPrefixedString(JNode):
    """Non-standard string literal: MIME"text/html", r"\\d+"."""

    prefix: JIdent
    text: str


@dataclass(eq=False)
class JSymbol(JNode):
    """:name"""

    name: str


@dataclass(eq=False)
class JQuote(JNode):
    """:( ... ) or quote ... end."""

    body: list[JNode]


@dataclass(eq=False)
class JMacroIdent(JNode):
    """@name"""

    name: str


# ============================================================
# ACCESS AND CALLS
# ============================================================


@dataclass(eq=False)
class JField(JNode):
    """obj.field"""

    obj: JNode
    field: JNode


@dataclass(eq=False)
class JIndex(JNode):
    """obj[indices...]"""

    obj: JNode
    indices: list[JNode]


@dataclass(eq=False)
class JCurly(JNode):
    """obj{params...}"""

    obj: JNode
    params: list[JNode]


@dataclass(eq=False)
class JBraces(JNode):
    """{items...} outside a type application."""

    items: list[JNode]


@dataclass(eq=False)
class JKwArg(JNode):
    """name = value inside a call, a signature or a named tuple."""

    name: JNode
    value: JNode


@dataclass(eq=False)
class JDo(JNode):
    """do params ... end attached to a call."""

    params: list[JNode]
    body: list[JNode]


@dataclass(eq=False)
class JCall(JNode):
    """callee(args...; kwargs...) with an optional do block; f.(x) is broadcast."""

    callee: JNode
    args: list[JNode]
    kwargs: list[JNode]
    do: JDo | None
    broadcast: bool


@dataclass(eq=False)
class JMacroCall(JNode):
    """@m args... or @m(args...); macro is a JMacroIdent or a JField."""

    macro: JNode
    args: list[JNode]


# ============================================================
# OPERATORS
# ============================================================


@dataclass(eq=False)
class JBinary(JNode):
    op: str
    left: JNode
    right: JNode


@dataclass(eq=False)
class JUnary(JNode):
    """Prefix operators, plus the postfix adjoint `x'`."""

    op: str
    operand: JNode


@dataclass(eq=False)
class JTyped(JNode):
    """expr::type, or ::type when the expression is omitted."""

    expr: JNode | None
    type: JNode


@dataclass(eq=False)
class JWhere(JNode):
    """expr where params"""

    expr: JNode
    params: JNode


@dataclass(eq=False)
class JSplat(JNode):
    """expr..."""

    expr: JNode


@dataclass(eq=False)
class JTernary(JNode):
    cond: JNode
    then_expr: JNode
    else_expr: JNode


@dataclass(eq=False)
class JArrow(JNode):
    """params -> body"""

    params: JNode
    body: JNode


# ============================================================
# CONTAINERS
# ============================================================


@dataclass(eq=False)
class JParen(JNode):
    """(expr)"""

    expr: JNode


@dataclass(eq=False)
class JParenBlock(JNode):
    """(a; b; c)"""

    body: list[JNode]


@dataclass(eq=False)
class JTuple(JNode):
    """(a, b), (; a, b), (a = 1, b = 2). Named fields are JKwArg items."""

    items: list[JNode]
    kwitems: list[JNode]


@dataclass(eq=False)
class JOpenTuple(JNode):
    """Unparenthesized a, b at statement level."""

    items: list[JNode]


@dataclass(eq=False)
class JVector(JNode):
    items: list[JNode]


@dataclass(eq=False)
class JMatrix(JNode):
    """[a b; c d]"""

    rows: list[list[JNode]]


@dataclass(eq=False)
class JForBinding(JNode):
    """target in iter, target = iter, target ∈ iter."""

    target: JNode
    op: str
    iter: JNode


@dataclass(eq=False)
class JForClause(JNode):
    bindings: list[JForBinding]


@dataclass(eq=False)
class JIfClause(JNode):
    cond: JNode


@dataclass(eq=False)
class JGenerator(JNode):
    """expr for ... if ... — clauses in source order."""

    expr: JNode
    clauses: list[JNode]


@dataclass(eq=False)
class JComprehension(JNode):
    """[generator]"""

    generator: JGenerator


# ============================================================
# ASSIGNMENT
# ============================================================


@dataclass(eq=False)
class JAssign(JNode):
    """lhs op rhs for `=`, update operators (`+=`) and broadcast (`.=`, `.+=`)."""

    lhs: JNode
    op: str
    rhs: JNode


# ============================================================
# BLOCKS
# ============================================================


@dataclass(eq=False)
class JBlock(JNode):
    """begin ... end"""

    body: list[JNode]


@dataclass(eq=False)
class JLet(JNode):
    bindings: list[JNode]
    body: list[JNode]


@dataclass(eq=False)
class JElseIf(JNode):
    cond: JNode
    body: list[JNode]


@dataclass(eq=False)
class JIf(JNode):
    cond: JNode
    body: list[JNode]
    elseifs: list[JElseIf]
    orelse: list[JNode]


@dataclass(eq=False)
class JWhile(JNode):
    cond: JNode
    body: list[JNode]


@dataclass(eq=False)
class JFor(JNode):
    bindings: list[JForBinding]
    body: list[JNode]


@dataclass(eq=False)
class JCatch(JNode):
    """catch [var] ... — var is only set when it shares the catch line."""

    var: JNode | None
    body: list[JNode]


@dataclass(eq=False)
class JTry(JNode):
    body: list[JNode]
    catch: JCatch | None
    else_body: list[JNode]
    finally_body: list[JNode]


@dataclass(eq=False)
class JFunction(JNode):
    """function signature ... end; signature is None only for malformed input."""

    signature: JNode | None
    body: list[JNode]


@dataclass(eq=False)
class JMacro(JNode):
    """macro signature ... end"""

    signature: JNode | None
    body: list[JNode]


@dataclass(eq=False)
class JReturn(JNode):
    value: JNode | None


@dataclass(eq=False)
class JBreak(JNode):
    pass


@dataclass(eq=False)
class JContinue(JNode):
    pass


# ============================================================
# STATEMENTS
# ============================================================


@dataclass(eq=False)
class JGlobal(JNode):
    """global payload — a name, an open tuple of names, or an assignment."""

    payload: JNode


@dataclass(eq=False)
class JLocal(JNode):
    """local payload — a name, an open tuple of names, or an assignment."""

    payload: JNode


@dataclass(eq=False)
class JConst(JNode):
    payload: JNode


@dataclass(eq=False)
class JImportPath(JNode):
    """..A.B.c [as d] — dots counts the leading relative dots."""

    dots: int
    names: list[JNode]
    alias: JNode | None


@dataclass(eq=False)
class JSelectedImport(JNode):
    """A.B: x, y as z"""

    path: JImportPath
    names: list[JImportPath]


@dataclass(eq=False)
class JImport(JNode):
    """import ... or using ...; keyword tells which."""

    keyword: str
    items: list[JNode]


@dataclass(eq=False)
class JExport(JNode):
    names: list[JNode]


# ============================================================
# DECLARATIONS
# ============================================================


@dataclass(eq=False)
class JStruct(JNode):
    mutable: bool
    head: JNode
    body: list[JNode]


@dataclass(eq=False)
class JAbstract(JNode):
    """abstract type head end"""

    head: JNode


@dataclass(eq=False)
class JPrimitive(JNode):
    """primitive type head bits end"""

    head: JNode
    bits: JNode


@dataclass(eq=False)
class JModule(JNode):
    """module name ... end, or baremodule when bare."""

    bare: bool
    name: JNode
    body: list[JNode]


# ============================================================
# TRAVERSAL
# ============================================================


def iter_children(node: JNode) -> Iterator[JNode]:
    """Yield the direct child nodes of node in source order."""
    for f in fields(node):
        if f.name == "span":
            continue
        value = getattr(node, f.name)
        if isinstance(value, JNode):
            yield value
        elif isinstance(value, list):
            for item in value:
                if isinstance(item, JNode):
                    yield item
                elif isinstance(item, list):
                    for inner in item:
                        if isinstance(inner, JNode):
                            yield inner


def walk(node: JNode) -> Iterator[JNode]:
    """Yield node and all its descendants, depth-first in source order."""
    yield node
    for child in iter_children(node):
        yield from walk(child)
