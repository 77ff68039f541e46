"""Pytest-based parser and tokenizer tests.

Cases in 02_parse/*.tests expect either `ok` or `error: <message>`; the
message must appear in the raised ParseError or TokenizeError.
"""

import signal
from pathlib import Path

import pytest

from casefile import discover
from src.julia import ParseError, TokenizeError, parse
from src.julia.ast import (
    JAssign,
    JCall,
    JFunction,
    JGenerator,
    JIdent,
    JKwArg,
    JMacroCall,
    JOpenTuple,
    JString,
    JTry,
    JTuple,
    JTyped,
    walk,
)
from src.julia.tokens import (
    TK_CHAR,
    TK_EOF,
    TK_FLOAT,
    TK_IDENT,
    TK_INT,
    TK_MACRO,
    TK_NEWLINE,
    TK_OP,
    tokenize,
)

PARSE_TIMEOUT = 5


def _timeout_handler(signum, frame):
    raise TimeoutError("parse() timed out")


signal.signal(signal.SIGALRM, _timeout_handler)

PARSE_DIR = Path(__file__).parent / "02_parse"


def pytest_generate_tests(metafunc):
    """Parametrize tests over parse test files."""
    if "parse_input" in metafunc.fixturenames:
        params = [
            pytest.param("\n".join(input_lines), "\n".join(expected_lines).strip(), id=test_id)
            for test_id, input_lines, expected_lines in discover(PARSE_DIR)
        ]
        metafunc.parametrize("parse_input,parse_expected", params)


def test_parse(parse_input: str, parse_expected: str):
    """Verify parser produces expected result."""
    parse_error = None
    try:
        signal.alarm(PARSE_TIMEOUT)
        parse(parse_input)
    except (ParseError, TokenizeError) as e:
        parse_error = e
    finally:
        signal.alarm(0)

    if parse_expected == "ok":
        if parse_error is not None:
            pytest.fail(f"Expected ok, got parse error: {parse_error}")
    elif parse_expected.startswith("error:"):
        expected_msg = parse_expected[6:].strip()
        if parse_error is None:
            pytest.fail(f"Expected error containing '{expected_msg}', but parsing succeeded")
        assert expected_msg in str(parse_error), (
            f"expected error containing {expected_msg!r}, got {str(parse_error)!r}"
        )
    else:
        pytest.fail(f"Unknown expected format: {parse_expected}")


# ── Tokenizer ──


def _kinds(source: str) -> list[tuple[str, str]]:
    return [(t.type, t.value) for t in tokenize(source)]


def test_tokens_carry_absolute_offsets():
    toks = tokenize("ab + cd")
    assert [(t.start, t.end) for t in toks] == [(0, 2), (3, 4), (5, 7), (7, 7)]
    assert toks[-1].type == TK_EOF


def test_newlines_collapse():
    assert _kinds("a\n\n\nb") == [
        (TK_IDENT, "a"),
        (TK_NEWLINE, "\n"),
        (TK_IDENT, "b"),
        (TK_EOF, ""),
    ]


def test_line_and_column():
    toks = tokenize("a\n  bc")
    assert (toks[2].line, toks[2].col) == (2, 3)


def test_keywords_use_their_own_type():
    assert tokenize("function")[0].type == "function"
    assert tokenize("where")[0].type == "where"
    assert tokenize("in")[0].type == TK_IDENT


def test_interpolation_spans():
    tok = tokenize('"x $y $(z)"')[0]
    assert tok.interpolations == [(4, 5), (8, 9)]


def test_escaped_dollar_is_not_interpolated():
    tok = tokenize('"\\$y"')[0]
    assert tok.interpolations == []


def test_adjoint_versus_char():
    assert _kinds("a'")[:2] == [(TK_IDENT, "a"), (TK_OP, "'")]
    assert tokenize("'a'")[0].type == TK_CHAR
    assert tokenize("f('\\n')")[2].type == TK_CHAR


def test_bang_in_identifiers():
    assert _kinds("push!(x)")[0] == (TK_IDENT, "push!")
    assert _kinds("a!=b")[:3] == [(TK_IDENT, "a"), (TK_OP, "!="), (TK_IDENT, "b")]


def test_macro_tokens():
    assert _kinds("@bind x")[0] == (TK_MACRO, "@bind")
    assert _kinds("@. x")[0] == (TK_MACRO, "@.")


def test_number_forms():
    assert tokenize("0x1F")[0].type == TK_INT
    assert tokenize("1_000")[0].type == TK_INT
    assert tokenize("1.5e-3")[0].type == TK_FLOAT
    assert tokenize(".5")[0].type == TK_FLOAT


def test_operators_are_greedy():
    assert _kinds("a >>>= 1")[1] == (TK_OP, ">>>=")
    assert _kinds("a .+= 1")[1] == (TK_OP, ".+=")


def test_unicode_symbols_are_operators():
    assert _kinds("a ∈ b")[1] == (TK_OP, "∈")


def test_math_symbols_in_identifiers():
    assert _kinds("∇f = ∂g")[:3] == [(TK_IDENT, "∇f"), (TK_OP, "="), (TK_IDENT, "∂g")]
    assert _kinds("∑")[0] == (TK_IDENT, "∑")
    assert _kinds("x∞")[0] == (TK_IDENT, "x∞")


def test_emoji_identifiers():
    assert _kinds("🍕 = 1")[0] == (TK_IDENT, "🍕")


def test_operator_symbols_stay_operators():
    assert _kinds("√x")[0] == (TK_OP, "√")
    assert _kinds("a → b")[1] == (TK_OP, "→")
    assert _kinds("a^2")[:3] == [(TK_IDENT, "a"), (TK_OP, "^"), (TK_INT, "2")]


def test_space_before():
    toks = tokenize("f (x)")
    assert toks[1].space_before
    assert not tokenize("f(x)")[1].space_before


def test_tokenize_window():
    toks = tokenize("abc + def", 6, 9)
    assert [(t.type, t.start, t.end) for t in toks] == [(TK_IDENT, 6, 9), (TK_EOF, 9, 9)]


def test_tokenize_error_position():
    with pytest.raises(TokenizeError) as info:
        tokenize('x = "abc')
    assert (info.value.line, info.value.col) == (1, 5)
    assert str(info.value) == "unterminated string literal at line 1 col 5"


# ── Tree shape ──


def test_spans_cover_source_text():
    source = "x = f(a, b)"
    tree = parse(source)
    stmt = tree.body[0]
    assert isinstance(stmt, JAssign)
    assert source[stmt.span.start : stmt.span.end] == source
    assert source[stmt.rhs.span.start : stmt.rhs.span.end] == "f(a, b)"


def test_open_tuple_assignment():
    stmt = parse("a, b = 1, 2").body[0]
    assert isinstance(stmt, JAssign)
    assert isinstance(stmt.lhs, JOpenTuple)
    assert isinstance(stmt.rhs, JOpenTuple)


def test_assignment_is_right_associative():
    stmt = parse("x = y = 1").body[0]
    assert isinstance(stmt.rhs, JAssign)


def test_keyword_arguments():
    call = parse("f(a, b=1; c=2)").body[0]
    assert isinstance(call, JCall)
    assert isinstance(call.args[1], JKwArg)
    assert isinstance(call.kwargs[0], JKwArg)


def test_named_tuple_fields():
    tup = parse("(a = 1, b = 2)").body[0]
    assert isinstance(tup, JTuple)
    assert all(isinstance(item, JKwArg) for item in tup.items)


def test_typed_signature():
    fn = parse("function f(x)::Int\nend").body[0]
    assert isinstance(fn, JFunction)
    assert isinstance(fn.signature, JTyped)
    assert isinstance(fn.signature.expr, JCall)


def test_catch_variable_on_catch_line_only():
    with_var = parse("try\n a\ncatch e\nend").body[0]
    without = parse("try\n a\ncatch\n e\nend").body[0]
    assert isinstance(with_var, JTry) and isinstance(without, JTry)
    assert isinstance(with_var.catch.var, JIdent)
    assert without.catch.var is None
    assert isinstance(without.catch.body[0], JIdent)


def test_macro_arguments_stop_at_newline():
    tree = parse("@time a = 1\nb")
    assert isinstance(tree.body[0], JMacroCall)
    assert len(tree.body[0].args) == 1
    assert isinstance(tree.body[1], JIdent)


def test_generator_in_call():
    call = parse("sum(x for x in xs)").body[0]
    assert isinstance(call.args[0], JGenerator)


def test_string_interpolations_are_parsed():
    s = parse('"a $(b + c) $d"').body[0]
    assert isinstance(s, JString)
    names = [n.name for part in s.parts for n in walk(part) if isinstance(n, JIdent)]
    assert names == ["b", "c", "d"]


def test_parse_error_position():
    with pytest.raises(ParseError) as info:
        parse("a = 1\nb c")
    assert (info.value.line, info.value.col) == (2, 3)
