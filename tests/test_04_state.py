"""Tests for scope state records, resolution order and walk bookkeeping."""

import logging

import pytest

from src.julia import parse
from src.julia.ast import JIdent, Span
from src.scopestate import (
    Definition,
    Local,
    ScopeError,
    ScopeState,
    Usage,
    analyze,
    explore_variable_usage,
)
from src.scopestate.context import (
    NodeMarks,
    ScopeContext,
    ScopeStack,
    byte_offsets,
    is_placeholder,
)
from src.scopestate.explore import creates_scope


# ── Spans and records ──


def test_definition_span():
    state = analyze("x = 3")
    assert state.definitions == {"x": Definition("x", Span(0, 1))}
    assert state.usages == []
    assert state.locals == []


def test_usage_without_local_is_global():
    state = analyze("x = y + 1")
    assert state.usages == [Usage("y", Span(4, 5), None)]


def test_local_validity_is_enclosing_scope():
    source = "for i in xs\n i\nend"
    state = analyze(source)
    assert state.locals == [Local("i", Span(4, 5), Span(0, len(source)))]
    assert state.usages == [
        Usage("xs", Span(9, 11), None),
        Usage("i", Span(13, 14), Span(4, 5)),
    ]


def test_offsets_are_utf8_bytes():
    source = "α = β"
    raw = source.encode("utf-8")
    state = analyze(source)
    d = state.definitions["α"].span
    u = state.usages[0].usage
    assert (d, u) == (Span(0, 2), Span(5, 7))
    assert raw[d.start : d.end].decode("utf-8") == "α"
    assert raw[u.start : u.end].decode("utf-8") == "β"


def test_local_spans_are_utf8_bytes():
    source = "let π = 1\n π\nend"
    state = analyze(source)
    size = len(source.encode("utf-8"))
    assert state.locals == [Local("π", Span(4, 6), Span(0, size))]
    assert state.usages == [Usage("π", Span(12, 14), Span(4, 6))]


def test_byte_offsets_table():
    assert byte_offsets("abc") is None
    assert byte_offsets("aβc") == [0, 1, 3, 4]


def test_usages_in_discovery_order():
    state = analyze("a + b * c")
    assert [u.name for u in state.usages] == ["a", "b", "c"]


def test_function_name_binds_outside_its_scope():
    source = "function f(x)\n x\nend"
    state = analyze(source)
    assert state.definitions["f"].span == Span(9, 10)
    assert state.locals[0].validity == Span(0, len(source))


# ── Resolution order ──


def test_last_definition_wins():
    state = analyze("x = 1\nx = 2")
    assert list(state.definitions) == ["x"]
    assert state.definitions["x"].span == Span(6, 7)


def test_first_enclosing_local_in_discovery_order_wins():
    source = "let a = 1\n let a = 2\n  a\n end\nend"
    state = analyze(source)
    assert [l.definition for l in state.locals] == [Span(4, 5), Span(15, 16)]
    assert state.usages == [Usage("a", Span(23, 24), Span(4, 5))]


def test_default_reads_before_parameters_bind():
    state = analyze("function f(x; y=x)\n x\nend")
    reads = [u for u in state.usages if u.name == "x"]
    assert reads[0].definition is None
    assert reads[1].definition == Span(11, 12)


def test_local_out_of_validity_is_global():
    state = analyze("let a = 1\nend\na")
    assert state.usages[-1] == Usage("a", Span(14, 15), None)


def test_global_and_local_usages_partition():
    state = analyze("let a = 1\n a + b\nend")
    assert [u.name for u in state.local_usages()] == ["a"]
    assert [u.name for u in state.global_usages()] == ["b"]


def test_global_short_function_is_definition_inside_scope():
    state = analyze("let\n global f(x) = x\nend")
    assert state.definitions == {"f": Definition("f", Span(12, 13))}
    assert [l.name for l in state.locals] == ["x"]


def test_local_short_function_is_local_at_top_level():
    source = "local f(x) = x\nf(1)"
    state = analyze(source)
    assert state.definitions == {}
    assert state.locals[0] == Local("f", Span(6, 7), Span(0, len(source)))
    assert state.usages[-1] == Usage("f", Span(15, 16), Span(6, 7))


def test_override_does_not_leak_into_nested_definitions():
    state = analyze("let\n global f(x) = (g(y) = y)\nend")
    assert list(state.definitions) == ["f"]
    assert "g" in [l.name for l in state.locals]


def test_broadcast_assignment_reads_target():
    state = analyze("a .= b")
    assert state.definitions == {}
    assert [u.name for u in state.usages] == ["a", "b"]


# ── Placeholders ──


@pytest.mark.parametrize("name", ["_", "__", "___"])
def test_underscore_names_are_placeholders(name: str):
    assert is_placeholder(name)


@pytest.mark.parametrize("name", ["_x", "x_", "a", "_1"])
def test_other_names_are_not_placeholders(name: str):
    assert not is_placeholder(name)


def test_placeholders_never_recorded():
    state = analyze("_ = 1\n__ = _\nf(_) = _\n_x = 3")
    names = set(state.definitions) | {l.name for l in state.locals} | {u.name for u in state.usages}
    assert names == {"_x", "f"}


# ── Idempotence and empty input ──


def test_same_tree_twice_gives_equal_states():
    source = "function f(x)\n global g = x + y\nend"
    tree = parse(source)
    assert explore_variable_usage(tree, source) == explore_variable_usage(tree, source)


def test_empty_source():
    assert analyze("") == ScopeState.empty()


def test_to_dict():
    assert analyze("x = y").to_dict() == {
        "usages": [{"name": "y", "usage": {"from": 4, "to": 5}, "definition": None}],
        "definitions": {"x": {"name": "x", "span": {"from": 0, "to": 1}}},
        "locals": [],
    }


def test_to_dict_local():
    d = analyze("let a = 1\nend").to_dict()
    assert d["locals"] == [
        {"name": "a", "definition": {"from": 4, "to": 5}, "validity": {"from": 0, "to": 13}}
    ]


# ── Scope predicate ──


@pytest.mark.parametrize(
    "source,expected",
    [
        ("f(x) = x", True),
        ("f(x)::Int = x", True),
        ("x -> x", True),
        ("let\nend", True),
        ("x = 1", False),
        ("begin\nend", False),
        ("if a\nend", False),
    ],
)
def test_creates_scope(source: str, expected: bool):
    assert creates_scope(parse(source).body[0]) is expected


# ── Bookkeeping ──


def test_scope_stack_underflow():
    stack = ScopeStack()
    with pytest.raises(ScopeError):
        stack.pop()


def test_scope_stack_order():
    stack = ScopeStack()
    stack.push(Span(0, 10))
    stack.push(Span(2, 5))
    assert stack.top() == Span(2, 5)
    assert len(stack) == 2
    assert stack.pop() == Span(2, 5)
    assert not stack.is_empty()


def test_marks_are_by_identity():
    a = JIdent(Span(0, 1), "a")
    twin = JIdent(Span(0, 1), "a")
    marks = NodeMarks()
    marks.mark(a, "type parameter")
    assert marks.is_marked(a)
    assert not marks.is_marked(twin)
    assert marks.reason(a) == "type parameter"
    assert marks.reason(twin) is None


def test_checkpoint_verify():
    a = JIdent(Span(0, 1), "a")
    b = JIdent(Span(2, 3), "b")
    marks = NodeMarks()
    path = [a]
    checkpoint = marks.checkpoint(path)
    marks.verify(path, checkpoint)
    path.append(b)
    with pytest.raises(ScopeError) as info:
        marks.verify(path, checkpoint)
    assert "JIdent at depth 1" in str(info.value)


def test_finish_rejects_open_scope():
    ctx = ScopeContext("x")
    ctx.scopes.push(Span(0, 1))
    with pytest.raises(ScopeError) as info:
        ctx.finish()
    assert "1 open" in str(info.value)


def test_declared_global_wins_over_scope():
    ctx = ScopeContext("k = 1")
    ctx.scopes.push(Span(0, 5))
    ctx.declare_global("k", Span(0, 5))
    ctx.register(Span(0, 1))
    assert ctx.definitions == {"k": Definition("k", Span(0, 1))}
    assert ctx.locals == []


def test_verbose_walk_logs(caplog):
    with caplog.at_level(logging.DEBUG, logger="src.scopestate.explore"):
        analyze("a + 1", verbose=True)
    messages = [r.getMessage() for r in caplog.records]
    assert any("JSource" in m for m in messages)
    assert any("JIdent 'a'" in m for m in messages)


def test_quiet_walk_does_not_log(caplog):
    with caplog.at_level(logging.DEBUG, logger="src.scopestate.explore"):
        analyze("a + 1")
    assert caplog.records == []
