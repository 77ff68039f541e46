"""Julia parser — recursive descent, one method per grammar production."""

from __future__ import annotations

from .ast import (
    JAbstract,
    JArrow,
    JAssign,
    JBinary,
    JBlock,
    JBraces,
    JBreak,
    JCall,
    JCatch,
    JCommand,
    JComprehension,
    JConst,
    JContinue,
    JCurly,
    JDo,
    JElseIf,
    JExport,
    JField,
    JFor,
    JForBinding,
    JForClause,
    JFunction,
    JGenerator,
    JGlobal,
    JIdent,
    JIf,
    JIfClause,
    JImport,
    JImportPath,
    JIndex,
    JKwArg,
    JLet,
    JLiteral,
    JLocal,
    JMacro,
    JMacroCall,
    JMacroIdent,
    JMatrix,
    JModule,
    JNode,
    JOpenTuple,
    JOperator,
    JParen,
    JParenBlock,
    JPrefixedString,
    JPrimitive,
    JQuote,
    JReturn,
    JSelectedImport,
    JSource,
    JSplat,
    JString,
    JStruct,
    JSymbol,
    JTernary,
    JTry,
    JTuple,
    JTyped,
    JUnary,
    JVector,
    JWhere,
    JWhile,
    Span,
)
from .tokens import (
    KEYWORDS,
    TK_CHAR,
    TK_COMMAND,
    TK_EOF,
    TK_FLOAT,
    TK_IDENT,
    TK_INT,
    TK_MACRO,
    TK_NEWLINE,
    TK_OP,
    TK_STRING,
    Token,
    tokenize,
)


ASSIGN_OPS: set[str] = {
    "=",
    "+=",
    "-=",
    "*=",
    "/=",
    "//=",
    "\\=",
    "^=",
    "%=",
    "÷=",
    "&=",
    "|=",
    "⊻=",
    "<<=",
    ">>=",
    ">>>=",
    ".=",
    ".+=",
    ".-=",
    ".*=",
    "./=",
    ".//=",
    ".^=",
    ".%=",
    ".÷=",
    ".&=",
    ".|=",
}

COMPARE_OPS: set[str] = {
    "==",
    "!=",
    "===",
    "!==",
    "<",
    "<=",
    ">",
    ">=",
    "≤",
    "≥",
    "≠",
    "<:",
    ">:",
    "∈",
    "∉",
    "∋",
    "⊆",
    "⊂",
    "⊇",
    "⊃",
    "≈",
    "≡",
    ".==",
    ".!=",
    ".<",
    ".<=",
    ".>",
    ".>=",
    ".≤",
    ".≥",
    ".≠",
    ".∈",
}

# Comparison operators spelled as words; they lex as identifiers.
COMPARE_WORDS: set[str] = {"in", "isa"}

PIPE_OPS: set[str] = {"|>", "<|"}
RANGE_OPS: set[str] = {":", ".."}
SUM_OPS: set[str] = {"+", "-", "|", "⊻", "∪", "±", "∓", "⊕", ".+", ".-", ".|"}
PRODUCT_OPS: set[str] = {
    "*",
    "/",
    "%",
    "&",
    "\\",
    "÷",
    "∩",
    "⋅",
    "×",
    "∘",
    "⊗",
    ".*",
    "./",
    ".%",
    ".\\",
    ".÷",
    ".&",
}
RATIONAL_OPS: set[str] = {"//", ".//"}
SHIFT_OPS: set[str] = {"<<", ">>", ">>>"}
POWER_OPS: set[str] = {"^", ".^"}
UNARY_OPS: set[str] = {
    "+",
    "-",
    "!",
    "~",
    "√",
    "∛",
    "∜",
    "¬",
    "<:",
    ">:",
    "&",
    "$",
    ".+",
    ".-",
    ".!",
    "±",
}

# Operators that may stand alone as values: map(+, xs), function *(a, b) ... end
OPERATOR_VALUES: set[str] = (
    COMPARE_OPS
    | PIPE_OPS
    | SUM_OPS
    | PRODUCT_OPS
    | RATIONAL_OPS
    | SHIFT_OPS
    | POWER_OPS
    | {"!", "~", "√", "∛", "=>"}
)

# Keywords that begin an expression (as opposed to terminating a block)
EXPR_KEYWORDS: set[str] = {
    "begin",
    "break",
    "const",
    "continue",
    "for",
    "function",
    "global",
    "if",
    "import",
    "let",
    "local",
    "macro",
    "module",
    "baremodule",
    "quote",
    "return",
    "struct",
    "try",
    "using",
    "while",
    "export",
}


class ParseError(Exception):
    """Parse error with location info."""

    def __init__(self, msg: str, line: int, col: int):
        self.msg: str = msg
        self.line: int = line
        self.col: int = col
        super().__init__(msg + " at line " + str(line) + " col " + str(col))


class Parser:
    """Recursive descent parser for Julia."""

    def __init__(self, tokens: list[Token], source: str):
        self.tokens: list[Token] = tokens
        self.source: str = source
        self.pos: int = 0
        self.prev_end: int = tokens[0].start
        # Newlines end statements unless the innermost context is a bracket.
        self.newline_sensitive: list[bool] = [True]
        # Inside `a[...]`, `begin` and `end` are index values.
        self.index_depth: int = 0
        # Inside the then-branch of `?:`, a spaced `:` is the ternary colon.
        self.ternary_depth: int = 0
        # Inside `[...]`, `[a -b]` is two elements.
        self.in_matrix: bool = False

    # ── Helpers ──────────────────────────────────────────────

    def current(self) -> Token:
        if not self.newline_sensitive[-1]:
            while self.tokens[self.pos].type == TK_NEWLINE:
                self.pos += 1
        return self.tokens[self.pos]

    def peek(self, offset: int) -> Token:
        self.current()
        idx = self.pos + offset
        if idx >= len(self.tokens):
            return self.tokens[len(self.tokens) - 1]
        return self.tokens[idx]

    def advance(self) -> Token:
        tok = self.current()
        if tok.type != TK_EOF:
            self.pos += 1
        self.prev_end = tok.end
        return tok

    def at(self, value: str) -> bool:
        return self.current().value == value

    def at_type(self, type_: str) -> bool:
        return self.current().type == type_

    def at_op(self, ops: set[str]) -> bool:
        tok = self.current()
        return tok.type == TK_OP and tok.value in ops

    def expect(self, value: str) -> Token:
        tok = self.current()
        if tok.value != value:
            raise self.error("expected '" + value + "', got " + _describe(tok))
        return self.advance()

    def expect_ident(self) -> Token:
        tok = self.current()
        if tok.type != TK_IDENT:
            raise self.error("expected identifier, got '" + tok.value + "'")
        return self.advance()

    def error(self, msg: str) -> ParseError:
        tok = self.current()
        return ParseError(msg, tok.line, tok.col)

    def span_from(self, start: int) -> Span:
        return Span(start, self.prev_end)

    def skip_newlines(self) -> None:
        while self.tokens[self.pos].type == TK_NEWLINE:
            self.pos += 1

    def at_stmt_end(self) -> bool:
        tok = self.current()
        return tok.type in (TK_NEWLINE, TK_EOF) or tok.value in (";", "end")

    def _open(self, sensitive: bool, block: bool = False) -> tuple[int, int, bool]:
        """Enter a bracket (sensitive=False) or block context."""
        saved = (self.index_depth, self.ternary_depth, self.in_matrix)
        self.newline_sensitive.append(sensitive)
        if block:
            self.index_depth = 0
        self.ternary_depth = 0
        self.in_matrix = False
        return saved

    def _close(self, saved: tuple[int, int, bool]) -> None:
        self.newline_sensitive.pop()
        self.index_depth, self.ternary_depth, self.in_matrix = saved

    def _at_expr_start(self) -> bool:
        """Check if current token can start an expression."""
        tok = self.current()
        if tok.type in (
            TK_INT,
            TK_FLOAT,
            TK_CHAR,
            TK_STRING,
            TK_COMMAND,
            TK_IDENT,
            TK_MACRO,
        ):
            return True
        if tok.type == TK_OP:
            return tok.value in ("(", "[", "{", ":", "::") or tok.value in UNARY_OPS
        return tok.type in EXPR_KEYWORDS

    # ── Top Level ────────────────────────────────────────────

    def parse_program(self) -> JSource:
        body = self.parse_block(())
        if not self.at_type(TK_EOF):
            raise self.error("unexpected " + _describe(self.current()))
        return JSource(Span(0, len(self.source)), body)

    def parse_interpolation(self) -> JNode:
        """Parse the source of one `$name` or `$(...)` string interpolation."""
        saved = self._open(False)
        node = self.parse_expr_stmt()
        if not self.at_type(TK_EOF):
            raise self.error("unexpected " + _describe(self.current()) + " in interpolation")
        self._close(saved)
        return node

    def parse_block(self, terminators: tuple[str, ...]) -> list[JNode]:
        """Block = ( Stmt ( NEWLINE | ';' ) )* — stops before a terminator keyword."""
        saved = self._open(True, block=True)
        body: list[JNode] = []
        while True:
            tok = self.current()
            if tok.type == TK_NEWLINE or tok.value == ";":
                self.advance()
                continue
            if tok.type == TK_EOF or (tok.type in KEYWORDS and tok.value in terminators):
                break
            body.append(self.parse_stmt())
            tok = self.current()
            if tok.type in (TK_NEWLINE, TK_EOF) or tok.value == ";":
                continue
            if tok.type in KEYWORDS and tok.value in terminators:
                continue
            raise self.error("expected newline or ';' before " + _describe(tok))
        self._close(saved)
        return body

    # ── Statements ───────────────────────────────────────────

    def parse_stmt(self) -> JNode:
        tok = self.current()
        if tok.type == "global":
            return self.parse_scope_decl(JGlobal)
        if tok.type == "local":
            return self.parse_scope_decl(JLocal)
        if tok.type == "const":
            return self.parse_scope_decl(JConst)
        if tok.type == "import" or tok.type == "using":
            return self.parse_import()
        if tok.type == "export":
            return self.parse_export()
        if tok.type == "struct":
            return self.parse_struct(False)
        if tok.type == "module" or tok.type == "baremodule":
            return self.parse_module()
        if tok.type == TK_IDENT:
            nxt = self.peek(1)
            if tok.value == "mutable" and nxt.type == "struct":
                return self.parse_struct(True)
            if tok.value == "abstract" and nxt.type == TK_IDENT and nxt.value == "type":
                return self.parse_abstract()
            if tok.value == "primitive" and nxt.type == TK_IDENT and nxt.value == "type":
                return self.parse_primitive()
        return self.parse_expr_stmt()

    def parse_scope_decl(self, cls: type) -> JNode:
        """ScopeDecl = ( 'global' | 'local' | 'const' ) ExprStmt"""
        start = self.advance().start
        payload = self.parse_expr_stmt()
        return cls(self.span_from(start), payload)

    def parse_import(self) -> JImport:
        """Import = ( 'import' | 'using' ) Path ( ',' Path )* | Path ':' Path ( ',' Path )*"""
        kw = self.advance()
        items: list[JNode] = []
        while True:
            path = self.parse_import_path()
            if self.at(":"):
                self.advance()
                names = [self.parse_import_path()]
                while self.at(","):
                    self.advance()
                    names.append(self.parse_import_path())
                items.append(JSelectedImport(Span(path.span.start, self.prev_end), path, names))
                break
            items.append(path)
            if not self.at(","):
                break
            self.advance()
        return JImport(self.span_from(kw.start), kw.value, items)

    def parse_import_path(self) -> JImportPath:
        """Path = '.'* Name ( '.' Name )* ( 'as' Name )?"""
        start = self.current().start
        dots = 0
        while self.at(".") or self.at("..") or self.at("..."):
            dots += len(self.advance().value)
        names = [self.parse_import_name()]
        while self.at(".") and not self.peek(1).space_before:
            self.advance()
            names.append(self.parse_import_name())
        alias = None
        if self.at_type(TK_IDENT) and self.at("as"):
            self.advance()
            alias = self.parse_import_name()
        return JImportPath(self.span_from(start), dots, names, alias)

    def parse_import_name(self) -> JNode:
        tok = self.current()
        if tok.type == TK_IDENT:
            self.advance()
            return JIdent(Span(tok.start, tok.end), tok.value)
        if tok.type == TK_MACRO:
            self.advance()
            return JMacroIdent(Span(tok.start, tok.end), tok.value)
        if tok.type == TK_OP and tok.value in OPERATOR_VALUES:
            self.advance()
            return JOperator(Span(tok.start, tok.end), tok.value)
        raise self.error("expected module or binding name, got '" + tok.value + "'")

    def parse_export(self) -> JExport:
        start = self.advance().start
        names = [self.parse_import_name()]
        while self.at(","):
            self.advance()
            names.append(self.parse_import_name())
        return JExport(self.span_from(start), names)

    def parse_struct(self, mutable: bool) -> JStruct:
        """Struct = 'mutable'? 'struct' TypeHead Block 'end'"""
        start = self.current().start
        saved = self._open(True, block=True)
        if mutable:
            self.advance()
        self.expect("struct")
        head = self.parse_compare()
        body = self.parse_block(("end",))
        self.expect("end")
        self._close(saved)
        return JStruct(self.span_from(start), mutable, head, body)

    def parse_abstract(self) -> JAbstract:
        """Abstract = 'abstract' 'type' TypeHead 'end'"""
        start = self.current().start
        saved = self._open(True, block=True)
        self.advance()
        self.advance()
        head = self.parse_compare()
        self.skip_newlines()
        self.expect("end")
        self._close(saved)
        return JAbstract(self.span_from(start), head)

    def parse_primitive(self) -> JPrimitive:
        """Primitive = 'primitive' 'type' TypeHead Bits 'end'"""
        start = self.current().start
        saved = self._open(True, block=True)
        self.advance()
        self.advance()
        head = self.parse_compare()
        bits = self.parse_expr()
        self.skip_newlines()
        self.expect("end")
        self._close(saved)
        return JPrimitive(self.span_from(start), head, bits)

    def parse_module(self) -> JModule:
        """Module = ( 'module' | 'baremodule' ) Name Block 'end'"""
        start = self.current().start
        saved = self._open(True, block=True)
        kw = self.advance()
        tok = self.expect_ident()
        name = JIdent(Span(tok.start, tok.end), tok.value)
        body = self.parse_block(("end",))
        self.expect("end")
        self._close(saved)
        return JModule(self.span_from(start), kw.value == "baremodule", name, body)

    def parse_expr_stmt(self) -> JNode:
        """ExprStmt = Expr ( ',' Expr )* ( AssignOp ExprStmt )?"""
        start = self.current().start
        expr = self.parse_expr()
        if self.at(","):
            items = [expr]
            while self.at(","):
                self.advance()
                if self.at_stmt_end() or self.at_op(ASSIGN_OPS):
                    break
                items.append(self.parse_expr())
            expr = JOpenTuple(self.span_from(start), items)
        if self.at_op(ASSIGN_OPS):
            op = self.advance().value
            self.skip_newlines()
            value = self.parse_expr_stmt()
            return JAssign(self.span_from(start), expr, op, value)
        return expr

    def parse_assignment(self) -> JNode:
        """Assignment = Expr ( AssignOp Assignment )?"""
        start = self.current().start
        expr = self.parse_expr()
        if self.at_op(ASSIGN_OPS):
            op = self.advance().value
            self.skip_newlines()
            value = self.parse_assignment()
            return JAssign(self.span_from(start), expr, op, value)
        return expr

    # ── Expressions ──────────────────────────────────────────

    def parse_expr(self) -> JNode:
        return self.parse_arrow()

    def parse_arrow(self) -> JNode:
        """Arrow = Where ( '->' Arrow )?"""
        start = self.current().start
        left = self.parse_where()
        if self.at("->"):
            self.advance()
            self.skip_newlines()
            body = self.parse_arrow()
            return JArrow(self.span_from(start), left, body)
        return left

    def parse_where(self) -> JNode:
        """Where = Ternary ( 'where' Compare )*"""
        start = self.current().start
        left = self.parse_ternary()
        while self.at("where"):
            self.advance()
            params = self.parse_compare()
            left = JWhere(self.span_from(start), left, params)
        return left

    def parse_ternary(self) -> JNode:
        """Ternary = Pair ( '?' Ternary ':' Ternary )?"""
        start = self.current().start
        cond = self.parse_pair()
        if self.at("?"):
            self.advance()
            self.skip_newlines()
            self.ternary_depth += 1
            then_expr = self.parse_ternary()
            self.ternary_depth -= 1
            self.skip_newlines()
            self.expect(":")
            self.skip_newlines()
            else_expr = self.parse_ternary()
            return JTernary(self.span_from(start), cond, then_expr, else_expr)
        return cond

    def parse_pair(self) -> JNode:
        """Pair = Or ( '=>' Pair )?"""
        left = self.parse_or()
        if self.at_op({"=>"}):
            self.advance()
            self.skip_newlines()
            right = self.parse_pair()
            return JBinary(self.span_from(left.span.start), "=>", left, right)
        return left

    def parse_or(self) -> JNode:
        """Or = And ( '||' And )*"""
        left = self.parse_and()
        while self.at_op({"||"}):
            self.advance()
            self.skip_newlines()
            right = self.parse_and()
            left = JBinary(self.span_from(left.span.start), "||", left, right)
        return left

    def parse_and(self) -> JNode:
        """And = Compare ( '&&' Compare )*"""
        left = self.parse_compare()
        while self.at_op({"&&"}):
            self.advance()
            self.skip_newlines()
            right = self.parse_compare()
            left = JBinary(self.span_from(left.span.start), "&&", left, right)
        return left

    def parse_compare(self) -> JNode:
        """Compare = Pipe ( CompOp Pipe )*"""
        left = self.parse_pipe()
        while True:
            tok = self.current()
            if not (
                (tok.type == TK_OP and tok.value in COMPARE_OPS)
                or (tok.type == TK_IDENT and tok.value in COMPARE_WORDS)
            ):
                break
            op = self.advance().value
            self.skip_newlines()
            right = self.parse_pipe()
            left = JBinary(self.span_from(left.span.start), op, left, right)
        return left

    def parse_pipe(self) -> JNode:
        """Pipe = Range ( ( '|>' | '<|' ) Range )*"""
        left = self.parse_range()
        while self.at_op(PIPE_OPS):
            op = self.advance().value
            self.skip_newlines()
            right = self.parse_range()
            left = JBinary(self.span_from(left.span.start), op, left, right)
        return left

    def parse_range(self) -> JNode:
        """Range = Sum ( ( ':' | '..' ) Sum )*"""
        left = self.parse_sum()
        while self.at_op(RANGE_OPS):
            tok = self.current()
            if tok.value == ":" and self.ternary_depth > 0 and tok.space_before:
                break
            self.advance()
            right = self.parse_sum()
            left = JBinary(self.span_from(left.span.start), tok.value, left, right)
        return left

    def parse_sum(self) -> JNode:
        """Sum = Product ( SumOp Product )*"""
        left = self.parse_product()
        while self.at_op(SUM_OPS):
            tok = self.current()
            # [a -b] is two elements, [a - b] one
            if self.in_matrix and tok.space_before and not self.peek(1).space_before:
                break
            self.advance()
            self.skip_newlines()
            right = self.parse_product()
            left = JBinary(self.span_from(left.span.start), tok.value, left, right)
        return left

    def parse_product(self) -> JNode:
        """Product = Rational ( ProductOp Rational )*"""
        left = self.parse_rational()
        while self.at_op(PRODUCT_OPS):
            op = self.advance().value
            self.skip_newlines()
            right = self.parse_rational()
            left = JBinary(self.span_from(left.span.start), op, left, right)
        return left

    def parse_rational(self) -> JNode:
        """Rational = Shift ( '//' Shift )*"""
        left = self.parse_shift()
        while self.at_op(RATIONAL_OPS):
            op = self.advance().value
            self.skip_newlines()
            right = self.parse_shift()
            left = JBinary(self.span_from(left.span.start), op, left, right)
        return left

    def parse_shift(self) -> JNode:
        """Shift = Unary ( ( '<<' | '>>' | '>>>' ) Unary )*"""
        left = self.parse_unary()
        while self.at_op(SHIFT_OPS):
            op = self.advance().value
            self.skip_newlines()
            right = self.parse_unary()
            left = JBinary(self.span_from(left.span.start), op, left, right)
        return left

    def parse_unary(self) -> JNode:
        """Unary = '::' TypeOperand | UnaryOp Unary | Power"""
        tok = self.current()
        if tok.type == TK_OP and tok.value == "::":
            self.advance()
            type_ = self.parse_type_operand()
            return JTyped(self.span_from(tok.start), None, type_)
        if tok.type == TK_OP and tok.value in UNARY_OPS:
            nxt = self.peek(1)
            if nxt.value == "(" and not nxt.space_before and tok.value != "$":
                # +(a, b) calls the operator
                self.advance()
                op = JOperator(Span(tok.start, tok.end), tok.value)
                return self.parse_postfix_ops(op, tok.start)
            if nxt.type in (TK_NEWLINE, TK_EOF) or nxt.value in (",", ")", "]", ";"):
                self.advance()
                return JOperator(Span(tok.start, tok.end), tok.value)
            self.advance()
            operand = self.parse_unary()
            return JUnary(self.span_from(tok.start), tok.value, operand)
        return self.parse_power()

    def parse_power(self) -> JNode:
        """Power = Postfix ( '^' Unary )?"""
        base = self.parse_postfix()
        if self.at_op(POWER_OPS):
            op = self.advance().value
            self.skip_newlines()
            exponent = self.parse_unary()
            return JBinary(self.span_from(base.span.start), op, base, exponent)
        return base

    def parse_postfix(self) -> JNode:
        """Postfix = Primary ( Suffix )*"""
        start = self.current().start
        expr = self.parse_primary()
        return self.parse_postfix_ops(expr, start)

    def parse_postfix_ops(self, expr: JNode, start: int) -> JNode:
        """Calls, indexing, curlies and fields bind only without a space before them."""
        while True:
            tok = self.current()
            adjacent = not tok.space_before
            if tok.type == TK_OP and tok.value == "(" and adjacent:
                expr = self.parse_call(expr, start, False)
            elif tok.type == TK_OP and tok.value == "[" and adjacent:
                expr = self.parse_index(expr, start)
            elif tok.type == TK_OP and tok.value == "{" and adjacent:
                expr = self.parse_curly(expr, start)
            elif tok.type == TK_OP and tok.value == "." and adjacent:
                nxt = self.peek(1)
                if nxt.space_before:
                    break
                if nxt.value == "(":
                    self.advance()
                    expr = self.parse_call(expr, start, True)
                elif nxt.type == TK_IDENT:
                    self.advance()
                    self.advance()
                    field = JIdent(Span(nxt.start, nxt.end), nxt.value)
                    expr = JField(self.span_from(start), expr, field)
                elif nxt.type == TK_MACRO:
                    self.advance()
                    self.advance()
                    field = JMacroIdent(Span(nxt.start, nxt.end), nxt.value)
                    macro = JField(self.span_from(start), expr, field)
                    return self.parse_macro_args(macro, start)
                elif nxt.value == ":":
                    self.advance()
                    field = self.parse_colon()
                    expr = JField(self.span_from(start), expr, field)
                else:
                    break
            elif tok.type == TK_OP and tok.value == "'" and adjacent:
                self.advance()
                expr = JUnary(self.span_from(start), "'", expr)
            elif tok.type == TK_OP and tok.value == "::":
                self.advance()
                type_ = self.parse_type_operand()
                expr = JTyped(self.span_from(start), expr, type_)
            elif tok.type == TK_OP and tok.value == "...":
                self.advance()
                expr = JSplat(self.span_from(start), expr)
            elif (
                adjacent
                and isinstance(expr, JLiteral)
                and expr.kind in ("int", "float")
                and (tok.type == TK_IDENT or tok.value == "(")
            ):
                # 2x, 3(a + b)
                factor = self.parse_power()
                expr = JBinary(self.span_from(start), "*", expr, factor)
            else:
                break
        return expr

    def parse_type_operand(self) -> JNode:
        """TypeOperand = Primary ( '{' ... '}' | '.' Name | '(' Args ')' )*"""
        start = self.current().start
        expr = self.parse_primary()
        while True:
            tok = self.current()
            if tok.space_before or tok.type != TK_OP:
                break
            if tok.value == "{":
                expr = self.parse_curly(expr, start)
            elif tok.value == "(":
                expr = self.parse_call(expr, start, False)
            elif tok.value == "[":
                expr = self.parse_index(expr, start)
            elif tok.value == "." and self.peek(1).type == TK_IDENT:
                self.advance()
                name = self.advance()
                field = JIdent(Span(name.start, name.end), name.value)
                expr = JField(self.span_from(start), expr, field)
            else:
                break
        return expr

    def parse_call(self, callee: JNode, start: int, broadcast: bool) -> JCall:
        """Call = '(' Args ( ';' Args )? ')' DoBlock?"""
        self.expect("(")
        saved = self._open(False)
        args, kwargs = self.parse_arguments(")")
        self.expect(")")
        self._close(saved)
        do = None
        if self.at("do"):
            do = self.parse_do()
        return JCall(self.span_from(start), callee, args, kwargs, do, broadcast)

    def parse_arguments(self, closer: str) -> tuple[list[JNode], list[JNode]]:
        """Args = ( Arg ( ',' Arg )* )? — items after ';' are keyword arguments."""
        args: list[JNode] = []
        kwargs: list[JNode] = []
        target = args
        while not self.at(closer):
            if self.at(";"):
                self.advance()
                target = kwargs
                continue
            item = self.parse_argument()
            if self.at("for"):
                item = self.parse_generator(item)
            target.append(item)
            if self.at(","):
                self.advance()
                continue
            if not self.at(";") and not self.at(closer):
                raise self.error("expected ',' or '" + closer + "'")
        return args, kwargs

    def parse_argument(self) -> JNode:
        """Arg = Expr ( '=' Expr )?"""
        start = self.current().start
        expr = self.parse_expr()
        if self.at_op({"="}):
            self.advance()
            value = self.parse_expr()
            return JKwArg(self.span_from(start), expr, value)
        return expr

    def parse_index(self, obj: JNode, start: int) -> JIndex:
        """Index = '[' ( Expr ( ',' Expr )* )? ']'"""
        self.expect("[")
        saved = self._open(False)
        self.index_depth += 1
        indices: list[JNode] = []
        while not self.at("]"):
            item = self.parse_expr()
            if self.at("for"):
                # Int[x for x in xs]
                item = self.parse_generator(item)
            indices.append(item)
            if self.at(",") or self.at(";"):
                self.advance()
                continue
            if not self.at("]"):
                raise self.error("expected ',' or ']'")
        self.expect("]")
        self._close(saved)
        return JIndex(self.span_from(start), obj, indices)

    def parse_curly(self, obj: JNode, start: int) -> JCurly:
        """Curly = '{' ( Expr ( ',' Expr )* )? '}'"""
        params = self.parse_brace_items()
        return JCurly(self.span_from(start), obj, params)

    def parse_brace_items(self) -> list[JNode]:
        self.expect("{")
        saved = self._open(False)
        items: list[JNode] = []
        while not self.at("}"):
            items.append(self.parse_expr())
            if self.at(","):
                self.advance()
                continue
            if not self.at("}"):
                raise self.error("expected ',' or '}'")
        self.expect("}")
        self._close(saved)
        return items

    def parse_generator(self, head: JNode) -> JGenerator:
        """Generator = Expr ( 'for' ForBinding ( ',' ForBinding )* | 'if' Expr )+"""
        clauses: list[JNode] = []
        while True:
            if self.at("for"):
                start = self.advance().start
                bindings = [self.parse_for_binding()]
                while self.at(","):
                    self.advance()
                    bindings.append(self.parse_for_binding())
                clauses.append(JForClause(self.span_from(start), bindings))
            elif self.at("if"):
                start = self.advance().start
                cond = self.parse_expr()
                clauses.append(JIfClause(self.span_from(start), cond))
            else:
                break
        return JGenerator(self.span_from(head.span.start), head, clauses)

    def parse_for_binding(self) -> JForBinding:
        """ForBinding = Range ( 'in' | '=' | '∈' ) Expr"""
        start = self.current().start
        target = self.parse_range()
        tok = self.current()
        if tok.value not in ("in", "=", "∈"):
            raise self.error("expected 'in', '=' or '∈' in for binding")
        self.advance()
        self.skip_newlines()
        iterable = self.parse_expr()
        return JForBinding(self.span_from(start), target, tok.value, iterable)

    # ── Primaries ────────────────────────────────────────────

    def parse_primary(self) -> JNode:
        tok = self.current()
        span = Span(tok.start, tok.end)
        if tok.type == TK_INT:
            self.advance()
            return JLiteral(span, "int", tok.value)
        if tok.type == TK_FLOAT:
            self.advance()
            return JLiteral(span, "float", tok.value)
        if tok.type == TK_CHAR:
            self.advance()
            return JLiteral(span, "char", tok.value)
        if tok.type == TK_STRING:
            self.advance()
            return JString(span, self.parse_interpolations(tok))
        if tok.type == TK_COMMAND:
            self.advance()
            return JCommand(span, self.parse_interpolations(tok))
        if tok.type == TK_IDENT:
            self.advance()
            if tok.value == "true" or tok.value == "false":
                return JLiteral(span, "bool", tok.value)
            nxt = self.tokens[self.pos]
            if nxt.type in (TK_STRING, TK_COMMAND) and not nxt.space_before:
                # MIME"text/html", r"\d+": the body is opaque
                self.advance()
                prefix = JIdent(span, tok.value)
                return JPrefixedString(self.span_from(tok.start), prefix, nxt.value)
            return JIdent(span, tok.value)
        if tok.type == TK_MACRO:
            self.advance()
            return self.parse_macro_args(JMacroIdent(span, tok.value), tok.start)
        if tok.type == TK_OP:
            if tok.value == "(":
                return self.parse_paren()
            if tok.value == "[":
                return self.parse_bracket()
            if tok.value == "{":
                items = self.parse_brace_items()
                return JBraces(self.span_from(tok.start), items)
            if tok.value == ":":
                return self.parse_colon()
            if tok.value in OPERATOR_VALUES:
                self.advance()
                return JOperator(span, tok.value)
        if self.index_depth > 0 and (tok.type == "end" or tok.type == "begin"):
            self.advance()
            return JLiteral(span, "index", tok.value)
        if tok.type == "function":
            return self.parse_function(JFunction)
        if tok.type == "macro":
            return self.parse_function(JMacro)
        if tok.type == "let":
            return self.parse_let()
        if tok.type == "begin":
            return self.parse_begin()
        if tok.type == "if":
            return self.parse_if()
        if tok.type == "for":
            return self.parse_for()
        if tok.type == "while":
            return self.parse_while()
        if tok.type == "try":
            return self.parse_try()
        if tok.type == "quote":
            return self.parse_quote()
        if tok.type == "return":
            return self.parse_return()
        if tok.type == "break":
            self.advance()
            return JBreak(span)
        if tok.type == "continue":
            self.advance()
            return JContinue(span)
        if tok.type in EXPR_KEYWORDS:
            # `@everywhere using Foo`, `@eval const x = 1`
            return self.parse_stmt()
        raise self.error("unexpected " + _describe(tok))

    def parse_interpolations(self, tok: Token) -> list[JNode]:
        parts: list[JNode] = []
        for start, stop in tok.interpolations:
            sub = Parser(tokenize(self.source, start, stop), self.source)
            parts.append(sub.parse_interpolation())
        return parts

    def parse_colon(self) -> JNode:
        """Colon = ':' Name | ':' '(' Expr ')' | ':'"""
        tok = self.advance()
        nxt = self.current()
        if not nxt.space_before:
            if nxt.type == TK_OP and nxt.value == "(":
                inner = self.parse_paren()
                return JQuote(self.span_from(tok.start), [inner])
            if nxt.type == TK_IDENT or nxt.type in KEYWORDS:
                self.advance()
                return JSymbol(self.span_from(tok.start), nxt.value)
            if nxt.type == TK_OP and nxt.value in OPERATOR_VALUES:
                self.advance()
                return JSymbol(self.span_from(tok.start), nxt.value)
        # a[:, 1]
        return JOperator(Span(tok.start, tok.end), ":")

    def parse_paren(self) -> JNode:
        """Paren = '(' ')' | '(' ';' Items ')' | '(' Generator ')' | Tuple | ParenBlock | '(' Expr ')'"""
        start = self.expect("(").start
        saved = self._open(False)
        if self.at(")"):
            self.advance()
            self._close(saved)
            return JTuple(self.span_from(start), [], [])
        if self.at(";"):
            self.advance()
            kwitems = self.parse_tuple_items()
            self.expect(")")
            self._close(saved)
            return JTuple(self.span_from(start), [], kwitems)
        first = self.parse_assignment()
        if self.at("for"):
            gen = self.parse_generator(first)
            self.expect(")")
            self._close(saved)
            return gen
        if self.at(","):
            items = [_named_field(first)]
            while self.at(","):
                self.advance()
                if self.at(")") or self.at(";"):
                    break
                items.append(_named_field(self.parse_assignment()))
            kwitems: list[JNode] = []
            if self.at(";"):
                self.advance()
                kwitems = self.parse_tuple_items()
            self.expect(")")
            self._close(saved)
            return JTuple(self.span_from(start), items, kwitems)
        if self.at(";"):
            body = [first]
            while self.at(";"):
                self.advance()
                if self.at(")"):
                    break
                body.append(self.parse_assignment())
            self.expect(")")
            self._close(saved)
            return JParenBlock(self.span_from(start), body)
        self.expect(")")
        self._close(saved)
        return JParen(self.span_from(start), first)

    def parse_tuple_items(self) -> list[JNode]:
        items: list[JNode] = []
        while not self.at(")"):
            items.append(_named_field(self.parse_assignment()))
            if not self.at(","):
                break
            self.advance()
        return items

    def parse_bracket(self) -> JNode:
        """Bracket = '[' ']' | '[' Generator ']' | '[' Expr ( ',' Expr )* ']' | Matrix"""
        start = self.expect("[").start
        saved = self._open(False)
        self.in_matrix = True
        if self.at("]"):
            self.advance()
            self._close(saved)
            return JVector(self.span_from(start), [])
        first = self.parse_expr()
        if self.at("for"):
            gen = self.parse_generator(first)
            self.expect("]")
            self._close(saved)
            return JComprehension(self.span_from(start), gen)
        if self.at(","):
            items = [first]
            while self.at(","):
                self.advance()
                if self.at("]"):
                    break
                items.append(self.parse_expr())
            self.expect("]")
            self._close(saved)
            return JVector(self.span_from(start), items)
        rows: list[list[JNode]] = []
        row = [first]
        while not self.at("]"):
            if self.at(";"):
                self.advance()
                if row:
                    rows.append(row)
                row = []
                continue
            if not self._at_expr_start():
                raise self.error("expected ',', ';' or ']'")
            row.append(self.parse_expr())
        if row:
            rows.append(row)
        self.expect("]")
        self._close(saved)
        if len(rows) == 1 and len(rows[0]) == 1:
            return JVector(self.span_from(start), rows[0])
        return JMatrix(self.span_from(start), rows)

    def parse_macro_args(self, macro: JNode, start: int) -> JMacroCall:
        """MacroArgs = '(' Args ')' | ( ExprStmt )* up to the end of the line"""
        tok = self.tokens[self.pos]
        if tok.type == TK_OP and tok.value == "(" and not tok.space_before:
            self.advance()
            saved = self._open(False)
            args, kwargs = self.parse_arguments(")")
            self.expect(")")
            self._close(saved)
            return JMacroCall(self.span_from(start), macro, args + kwargs)
        args = []
        while self._at_expr_start():
            if self.newline_sensitive[-1]:
                args.append(self.parse_expr_stmt())
            else:
                args.append(self.parse_assignment())
        return JMacroCall(self.span_from(start), macro, args)

    # ── Blocks ───────────────────────────────────────────────

    def parse_function(self, cls: type) -> JNode:
        """Function = ( 'function' | 'macro' ) Signature? Block 'end'"""
        start = self.current().start
        saved = self._open(True, block=True)
        self.advance()
        signature = None
        if not self.at_stmt_end():
            signature = self.parse_expr()
        body = self.parse_block(("end",))
        self.expect("end")
        self._close(saved)
        return cls(self.span_from(start), signature, body)

    def parse_let(self) -> JLet:
        """Let = 'let' ( Assignment ( ',' Assignment )* )? Block 'end'"""
        start = self.current().start
        saved = self._open(True, block=True)
        self.advance()
        bindings: list[JNode] = []
        if not self.at_stmt_end():
            bindings.append(self.parse_assignment())
            while self.at(","):
                self.advance()
                bindings.append(self.parse_assignment())
        body = self.parse_block(("end",))
        self.expect("end")
        self._close(saved)
        return JLet(self.span_from(start), bindings, body)

    def parse_begin(self) -> JBlock:
        start = self.current().start
        saved = self._open(True, block=True)
        self.advance()
        body = self.parse_block(("end",))
        self.expect("end")
        self._close(saved)
        return JBlock(self.span_from(start), body)

    def parse_quote(self) -> JQuote:
        start = self.current().start
        saved = self._open(True, block=True)
        self.advance()
        body = self.parse_block(("end",))
        self.expect("end")
        self._close(saved)
        return JQuote(self.span_from(start), body)

    def parse_if(self) -> JIf:
        """If = 'if' Expr Block ( 'elseif' Expr Block )* ( 'else' Block )? 'end'"""
        start = self.current().start
        saved = self._open(True, block=True)
        self.advance()
        cond = self.parse_expr()
        body = self.parse_block(("elseif", "else", "end"))
        elseifs: list[JElseIf] = []
        while self.at("elseif"):
            branch_start = self.advance().start
            branch_cond = self.parse_expr()
            branch_body = self.parse_block(("elseif", "else", "end"))
            elseifs.append(JElseIf(self.span_from(branch_start), branch_cond, branch_body))
        orelse: list[JNode] = []
        if self.at("else"):
            self.advance()
            orelse = self.parse_block(("end",))
        self.expect("end")
        self._close(saved)
        return JIf(self.span_from(start), cond, body, elseifs, orelse)

    def parse_for(self) -> JFor:
        """For = 'for' ForBinding ( ',' ForBinding )* Block 'end'"""
        start = self.current().start
        saved = self._open(True, block=True)
        self.advance()
        bindings = [self.parse_for_binding()]
        while self.at(","):
            self.advance()
            bindings.append(self.parse_for_binding())
        body = self.parse_block(("end",))
        self.expect("end")
        self._close(saved)
        return JFor(self.span_from(start), bindings, body)

    def parse_while(self) -> JWhile:
        start = self.current().start
        saved = self._open(True, block=True)
        self.advance()
        cond = self.parse_expr()
        body = self.parse_block(("end",))
        self.expect("end")
        self._close(saved)
        return JWhile(self.span_from(start), cond, body)

    def parse_try(self) -> JTry:
        """Try = 'try' Block ( 'catch' Name? Block )? ( 'else' Block )? ( 'finally' Block )? 'end'"""
        start = self.current().start
        saved = self._open(True, block=True)
        self.advance()
        body = self.parse_block(("catch", "finally", "else", "end"))
        catch = None
        if self.at("catch"):
            catch_start = self.advance().start
            var = None
            # `catch e` binds e only when it is on the catch line
            if self.at_type(TK_IDENT):
                name = self.advance()
                var = JIdent(Span(name.start, name.end), name.value)
            catch_body = self.parse_block(("finally", "else", "end"))
            catch = JCatch(self.span_from(catch_start), var, catch_body)
        else_body: list[JNode] = []
        if self.at("else"):
            self.advance()
            else_body = self.parse_block(("finally", "end"))
        finally_body: list[JNode] = []
        if self.at("finally"):
            self.advance()
            finally_body = self.parse_block(("end",))
        self.expect("end")
        self._close(saved)
        return JTry(self.span_from(start), body, catch, else_body, finally_body)

    def parse_return(self) -> JReturn:
        start = self.advance().start
        value = None
        if not self.at_stmt_end() and self._at_expr_start():
            value = self.parse_expr_stmt()
        return JReturn(self.span_from(start), value)

    def parse_do(self) -> JDo:
        """Do = 'do' ( Expr ( ',' Expr )* )? Block 'end'"""
        start = self.current().start
        saved = self._open(True, block=True)
        self.advance()
        params: list[JNode] = []
        if not self.at_stmt_end():
            params.append(self.parse_expr())
            while self.at(","):
                self.advance()
                params.append(self.parse_expr())
        body = self.parse_block(("end",))
        self.expect("end")
        self._close(saved)
        return JDo(self.span_from(start), params, body)


def _describe(tok: Token) -> str:
    if tok.type == TK_EOF:
        return "end of input"
    if tok.type == TK_NEWLINE:
        return "newline"
    return "'" + tok.value + "'"


def _named_field(node: JNode) -> JNode:
    """In a tuple, `name = value` is a named field rather than an assignment."""
    if isinstance(node, JAssign) and node.op == "=":
        return JKwArg(node.span, node.lhs, node.rhs)
    return node
