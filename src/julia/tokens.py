"""Julia tokenizer — lexes source into a flat token list."""

from __future__ import annotations

import unicodedata
from bisect import bisect_right


# Token type constants. Keyword tokens use the keyword itself as their type.
TK_INT = "INT"
TK_FLOAT = "FLOAT"
TK_CHAR = "CHAR"
TK_STRING = "STRING"
TK_COMMAND = "COMMAND"
TK_IDENT = "IDENT"
TK_MACRO = "MACRO"
TK_OP = "OP"
TK_NEWLINE = "NEWLINE"
TK_EOF = "EOF"

KEYWORDS: set[str] = {
    "baremodule",
    "begin",
    "break",
    "catch",
    "const",
    "continue",
    "do",
    "else",
    "elseif",
    "end",
    "export",
    "finally",
    "for",
    "function",
    "global",
    "if",
    "import",
    "let",
    "local",
    "macro",
    "module",
    "quote",
    "return",
    "struct",
    "try",
    "using",
    "where",
    "while",
}

# Multi-character operators, sorted by length descending for greedy matching
MULTI_OPS: list[str] = [
    ">>>=",
    ".//=",
    "...",
    ">>>",
    "===",
    "!==",
    "<<=",
    ">>=",
    "//=",
    ".+=",
    ".-=",
    ".*=",
    "./=",
    ".^=",
    ".%=",
    ".÷=",
    ".&=",
    ".|=",
    ".==",
    ".!=",
    ".<=",
    ".>=",
    ".//",
    "->",
    "=>",
    "==",
    "!=",
    "<=",
    ">=",
    "&&",
    "||",
    "<<",
    ">>",
    "+=",
    "-=",
    "*=",
    "/=",
    "^=",
    "%=",
    "&=",
    "|=",
    "÷=",
    "⊻=",
    "\\=",
    "//",
    "::",
    "<:",
    ">:",
    "|>",
    "<|",
    "..",
    ".=",
    ".+",
    ".-",
    ".*",
    "./",
    ".^",
    ".%",
    ".÷",
    ".\\",
    ".&",
    ".|",
    ".!",
    ".<",
    ".>",
    ".≤",
    ".≥",
    ".≠",
    ".∈",
]

SINGLE_OPS: set[str] = {
    "+",
    "-",
    "*",
    "/",
    "\\",
    "^",
    "%",
    "&",
    "|",
    "~",
    "!",
    "<",
    ">",
    "=",
    "(",
    ")",
    "[",
    "]",
    "{",
    "}",
    ",",
    ";",
    ":",
    ".",
    "?",
    "$",
    "'",
    "@",
}

# Tokens after which a `'` is the adjoint operator rather than a character literal
_VALUE_TYPES: set[str] = {TK_IDENT, TK_INT, TK_FLOAT, TK_CHAR, TK_STRING, TK_COMMAND}
_VALUE_CLOSERS: set[str] = {")", "]", "}", "'", "end"}


class TokenizeError(Exception):
    """Error during tokenization."""

    def __init__(self, msg: str, line: int, col: int):
        self.msg: str = msg
        self.line: int = line
        self.col: int = col
        super().__init__(msg + " at line " + str(line) + " col " + str(col))


class Token:
    """A token with type, raw source text, offsets and position."""

    def __init__(
        self, type_: str, value: str, start: int, end: int, line: int, col: int
    ):
        self.type: str = type_
        self.value: str = value
        self.start: int = start
        self.end: int = end
        self.line: int = line
        self.col: int = col
        # True when whitespace, a newline, a comment or the start of input precedes it.
        self.space_before: bool = False
        # Absolute (start, end) offsets of `$name` / `$(expr)` sources in strings.
        self.interpolations: list[tuple[int, int]] = []

    def __repr__(self) -> str:
        return f"Token({self.type}, {self.value!r}, {self.start}, {self.end})"


# Math symbols (category Sm) that Julia accepts in identifiers: `∂`, `∇`, `∑`, `∞`, `∫`, ...
_SM_IDENT_RANGES: tuple[tuple[int, int], ...] = (
    (0x2140, 0x2144),
    (0x2202, 0x2202),
    (0x2205, 0x2207),
    (0x220E, 0x2211),
    (0x221E, 0x221F),
    (0x2220, 0x2222),
    (0x222B, 0x2233),
    (0x223F, 0x223F),
    (0x22A4, 0x22A5),
    (0x22BE, 0x22BF),
    (0x22C0, 0x22C3),
    (0x25F8, 0x25FF),
    (0x266F, 0x266F),
    (0x27C0, 0x27C1),
    (0x27D8, 0x27D9),
    (0x299B, 0x29B4),
    (0x2A00, 0x2A06),
    (0x2A09, 0x2A16),
    (0x2A1B, 0x2A1C),
    (0x207A, 0x207E),
    (0x208A, 0x208E),
    (0x1D7CE, 0x1D7E1),
)

# Nabla and partial variants in the mathematical alphanumeric block
_SM_IDENT_CODES: frozenset[int] = frozenset(
    {0x1D6C1, 0x1D6DB, 0x1D6FB, 0x1D715, 0x1D735, 0x1D74F, 0x1D76F, 0x1D789, 0x1D7A9, 0x1D7C3}
    | {0x2118, 0x212E, 0x309B, 0x309C}
)


def _is_symbol_ident(c: str) -> bool:
    """Non-letter characters that may start an identifier (whitelisted math, emoji, currency)."""
    cp = ord(c)
    if cp < 128:
        return False
    cat = unicodedata.category(c)
    if cat == "Sc":
        return True
    if cat == "So":
        # arrows and replacement characters stay operators or errors
        return not (0x2190 <= cp <= 0x21FF) and cp not in (0xFFFC, 0xFFFD, 0x233F, 0x00A6)
    if cp in _SM_IDENT_CODES:
        return True
    return any(lo <= cp <= hi for lo, hi in _SM_IDENT_RANGES)


def _is_ident_start(c: str) -> bool:
    if c == "":
        return False
    if c == "_" or c.isalpha():
        return True
    return unicodedata.category(c) == "Nl" or _is_symbol_ident(c)


def _is_ident_char(c: str) -> bool:
    if c == "":
        return False
    if c == "_" or c == "!" or c.isalnum() or c in "′″‴":
        return True
    if ord(c) > 127 and unicodedata.category(c) in ("Mn", "Mc", "Me", "Pc", "Sk", "Nl"):
        return True
    return _is_symbol_ident(c)


def _is_operator_symbol(c: str) -> bool:
    """Unicode math and other symbols (`∈`, `√`, `⊻`, `≤`) lex as operators."""
    return ord(c) > 127 and unicodedata.category(c) in ("Sm", "So")


def _line_starts(source: str) -> list[int]:
    starts = [0]
    idx = source.find("\n")
    while idx != -1:
        starts.append(idx + 1)
        idx = source.find("\n", idx + 1)
    return starts


class Lexer:
    """Single-pass lexer over a window of the source."""

    def __init__(self, source: str, start: int, stop: int):
        self.src: str = source
        self.pos: int = start
        self.stop: int = stop
        self.tokens: list[Token] = []
        self.space: bool = True
        self.line_starts: list[int] = _line_starts(source)

    def position(self, offset: int) -> tuple[int, int]:
        line = bisect_right(self.line_starts, offset)
        return line, offset - self.line_starts[line - 1] + 1

    def error(self, msg: str, offset: int) -> TokenizeError:
        line, col = self.position(offset)
        return TokenizeError(msg, line, col)

    def peek(self, offset: int) -> str:
        idx = self.pos + offset
        if idx >= self.stop:
            return ""
        return self.src[idx]

    def emit(self, type_: str, start: int) -> Token:
        line, col = self.position(start)
        tok = Token(type_, self.src[start : self.pos], start, self.pos, line, col)
        tok.space_before = self.space
        self.space = False
        self.tokens.append(tok)
        return tok

    def after_value(self) -> bool:
        if not self.tokens:
            return False
        last = self.tokens[-1]
        return last.type in _VALUE_TYPES or last.value in _VALUE_CLOSERS

    def scan_ident(self, pos: int) -> int:
        """Return the end offset of the identifier starting at `pos`."""
        while pos < self.stop and _is_ident_char(self.src[pos]):
            # `a!=b` is `a != b`
            if self.src[pos] == "!" and pos + 1 < self.stop and self.src[pos + 1] == "=":
                break
            pos += 1
        return pos

    def run(self) -> list[Token]:
        while self.pos < self.stop:
            c = self.src[self.pos]

            if c == "\n":
                start = self.pos
                self.pos += 1
                if self.tokens and self.tokens[-1].type != TK_NEWLINE:
                    self.emit(TK_NEWLINE, start)
                self.space = True
                continue

            if c == " " or c == "\t" or c == "\r":
                self.pos += 1
                self.space = True
                continue

            if c == "#":
                if self.peek(1) == "=":
                    self.block_comment()
                else:
                    while self.pos < self.stop and self.src[self.pos] != "\n":
                        self.pos += 1
                self.space = True
                continue

            start = self.pos

            if c.isdigit() or (
                c == "." and self.peek(1).isdigit() and not self.after_value()
            ):
                self.number(start)
                continue

            if c == '"':
                self.string(start, '"', TK_STRING)
                continue

            if c == "`":
                self.string(start, "`", TK_COMMAND)
                continue

            if c == "'":
                if self.after_value() and not self.space:
                    self.pos += 1
                    self.emit(TK_OP, start)
                else:
                    self.char(start)
                continue

            if c == "@":
                if _is_ident_start(self.peek(1)):
                    self.pos = self.scan_ident(self.pos + 1)
                    self.emit(TK_MACRO, start)
                    continue
                if self.peek(1) == ".":
                    self.pos += 2
                    self.emit(TK_MACRO, start)
                    continue

            if _is_ident_start(c):
                self.pos = self.scan_ident(self.pos)
                word = self.src[start : self.pos]
                self.emit(word if word in KEYWORDS else TK_IDENT, start)
                continue

            matched = False
            for op in MULTI_OPS:
                if self.src.startswith(op, self.pos) and self.pos + len(op) <= self.stop:
                    self.pos += len(op)
                    self.emit(TK_OP, start)
                    matched = True
                    break
            if matched:
                continue

            if c in SINGLE_OPS or _is_operator_symbol(c):
                self.pos += 1
                self.emit(TK_OP, start)
                continue

            raise self.error("unexpected character: " + repr(c), start)

        self.emit(TK_EOF, self.stop)
        return self.tokens

    def block_comment(self) -> None:
        """Skip a nestable `#= ... =#` comment."""
        start = self.pos
        self.pos += 2
        depth = 1
        while depth > 0:
            if self.pos >= self.stop:
                raise self.error("unterminated block comment", start)
            if self.src.startswith("#=", self.pos):
                depth += 1
                self.pos += 2
            elif self.src.startswith("=#", self.pos):
                depth -= 1
                self.pos += 2
            else:
                self.pos += 1

    def number(self, start: int) -> None:
        src = self.src
        if src[self.pos] == "0" and self.peek(1) in ("x", "o", "b") and self.peek(2).isalnum():
            self.pos += 2
            while self.pos < self.stop and (src[self.pos].isalnum() or src[self.pos] == "_"):
                self.pos += 1
            self.emit(TK_INT, start)
            return
        is_float = False
        self.digits()
        if self.peek(0) == "." and self.peek(1).isdigit():
            is_float = True
            self.pos += 1
            self.digits()
        exp = self.peek(0)
        if exp in ("e", "E", "f") and (
            self.peek(1).isdigit() or (self.peek(1) in ("+", "-") and self.peek(2).isdigit())
        ):
            is_float = True
            self.pos += 2
            self.digits()
        self.emit(TK_FLOAT if is_float else TK_INT, start)

    def digits(self) -> None:
        while self.pos < self.stop:
            c = self.src[self.pos]
            if c.isdigit() or (c == "_" and self.peek(1).isdigit()):
                self.pos += 1
            else:
                break

    def string(self, start: int, quote: str, type_: str) -> None:
        """Lex a string or command literal, recording its interpolations."""
        delim = quote * 3 if self.src.startswith(quote * 3, self.pos) else quote
        self.pos += len(delim)
        interps: list[tuple[int, int]] = []
        while True:
            if self.pos >= self.stop:
                raise self.error("unterminated string literal", start)
            c = self.src[self.pos]
            if c == "\\":
                self.pos += 2
                continue
            if self.src.startswith(delim, self.pos):
                self.pos += len(delim)
                break
            if c == "$":
                nxt = self.peek(1)
                if nxt == "(":
                    close = self.matching_paren(self.pos + 1)
                    interps.append((self.pos + 2, close))
                    self.pos = close + 1
                    continue
                if _is_ident_start(nxt):
                    name_start = self.pos + 1
                    self.pos = self.scan_ident(name_start)
                    interps.append((name_start, self.pos))
                    continue
            self.pos += 1
        tok = self.emit(type_, start)
        tok.interpolations = interps

    def matching_paren(self, open_pos: int) -> int:
        """Offset of the `)` closing the `(` at `open_pos`."""
        depth = 0
        i = open_pos
        while i < self.stop:
            c = self.src[i]
            if c == "(":
                depth += 1
            elif c == ")":
                depth -= 1
                if depth == 0:
                    return i
            elif c == '"':
                i += 1
                while i < self.stop and self.src[i] != '"':
                    i += 2 if self.src[i] == "\\" else 1
            i += 1
        raise self.error("unterminated string interpolation", open_pos)

    def char(self, start: int) -> None:
        self.pos += 1
        if self.pos >= self.stop or self.src[self.pos] == "\n":
            raise self.error("unterminated character literal", start)
        if self.src[self.pos] == "\\":
            self.pos += 2
            while self.pos < self.stop and self.src[self.pos] not in ("'", "\n"):
                self.pos += 1
        else:
            self.pos += 1
        if self.pos >= self.stop or self.src[self.pos] != "'":
            raise self.error("unterminated character literal", start)
        self.pos += 1
        self.emit(TK_CHAR, start)


def tokenize(source: str, start: int = 0, stop: int | None = None) -> list[Token]:
    """Tokenize Julia source into a flat list ending with TK_EOF.

    `start`/`stop` restrict lexing to a window of `source` (string
    interpolations are lexed this way); token offsets stay absolute.
    """
    end = len(source) if stop is None else stop
    return Lexer(source, start, end).run()
