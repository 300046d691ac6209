from __future__ import annotations

import pytest

from pegcraft.peg import engine as E
from pegcraft.peg.ast import CharRange
from pegcraft.peg.errors import DepthLimitError, LeftRecursionError, UndefinedRuleError


def run(m, text, pos=0, ctx=None):
    state = E.ParseState(text)
    return state, m(state, pos, {} if ctx is None else ctx)


def test_literal_matches_without_producing_values():
    _, out = run(E.literal("ab"), "abc")
    assert (out.ok, out.pos, out.values) == (True, 2, [])


def test_literal_text_is_kept_inside_extraction():
    _, out = run(E.extract(E.literal("ab")), "abc")
    assert (out.ok, out.pos, out.values) == (True, 2, ["ab"])


def test_failure_keeps_start_position_and_context():
    ctx = {"k": 1}
    state, out = run(E.sequence([E.literal("a"), E.literal("b")]), "ax", ctx=ctx)
    assert not out.ok
    assert out.pos == 0
    assert out.context is ctx
    assert state.fail_at == 1
    assert state.error_message() == "expected string 'b', found 'x'"


def test_char_class_and_negation():
    digits = E.char_class([CharRange("0", "9")])
    not_lower = E.char_class([CharRange("a", "z")], negated=True)
    assert run(digits, "7")[1].values == ["7"]
    assert not run(digits, "x")[1].ok
    assert run(not_lower, "A")[1].ok
    assert not run(not_lower, "a")[1].ok
    assert not run(not_lower, "")[1].ok


def test_any_char_is_one_code_point():
    _, out = run(E.any_char(), "😀x")
    assert out.values == ["😀"]
    assert out.pos == 1


def test_ordered_choice_commits_to_first_success():
    m = E.choice([E.literal("a"), E.literal("ab")])
    _, out = run(m, "ab")
    assert out.ok
    assert out.pos == 1


def test_repetition_is_greedy_and_never_backtracks():
    a = E.literal("a")
    _, out = run(E.sequence([E.repeat(a), a]), "aaa")
    assert not out.ok


def test_times_requires_minimum():
    m = E.times(E.literal("a"), minimum=2)
    assert not run(m, "a")[1].ok
    assert run(m, "aaa")[1].pos == 3
    assert run(E.extract(m), "aaa")[1].values == ["aaa"]


def test_repeat_stops_on_empty_match():
    _, out = run(E.repeat(E.optional(E.literal("x"))), "y")
    assert out.ok
    assert out.pos == 0


def test_lookaheads_consume_nothing():
    _, out = run(E.sequence([E.lookahead(E.literal("a")), E.any_char()]), "a")
    assert out.values == ["a"]

    _, out = run(E.sequence([E.lookahead_not(E.literal("b"), "'b'"), E.any_char()]), "a")
    assert out.values == ["a"]

    state, out = run(E.lookahead_not(E.literal("a"), "'a'"), "a")
    assert not out.ok
    assert state.error_message() == "expected not 'a', found 'a'"


def test_negative_lookahead_does_not_report_inner_failures():
    m = E.sequence([E.lookahead_not(E.literal("zz"), "'zz'"), E.literal("q")])
    state, out = run(m, "z")
    assert not out.ok
    assert state.expected == ["string 'q'"]


def test_extract_joins_text_and_drops_other_values():
    tok = E.Token("T")

    def token(state, pos, ctx):
        return E.Outcome(True, pos, [tok], ctx)

    m = E.extract(E.sequence([E.literal("a"), token, E.char_class([CharRange("0", "9")])]))
    _, out = run(m, "a5")
    assert out.values == ["a5"]
    assert E.is_text(out.values[0])


def test_token_is_not_text():
    t = E.Token("kw")
    assert t == "kw"
    assert not E.is_text(t)
    assert E.is_text("kw")
    assert repr(t) == "Token('kw')"


def test_line_col_is_one_based():
    state = E.ParseState("ab\ncd\n")
    assert state.line_col(0) == (1, 1)
    assert state.line_col(2) == (1, 3)
    assert state.line_col(3) == (2, 1)
    assert state.line_col(6) == (3, 1)
    assert state.position(4) == E.Position(2, 2, 4)


def test_rule_is_memoized_per_position_and_context():
    calls = []

    def body(state, pos, ctx):
        calls.append(pos)
        return E.literal("a")(state, pos, ctx)

    r = E.rule("r", body)
    state = E.ParseState("a")
    ctx = {}
    first = r(state, 0, ctx)
    second = r(state, 0, ctx)
    assert first is second
    assert calls == [0]

    r(state, 0, {})
    assert calls == [0, 0]


def test_rule_reentry_at_same_offset_raises():
    slot = E.RuleSlot("a")
    a = E.rule("a", E.choice([E.sequence([slot, E.literal("x")]), E.literal("y")]))
    slot.bind(a)
    with pytest.raises(LeftRecursionError) as e:
        run(a, "yx")
    assert e.value.cycle == ("a", "a")
    assert "offset 0" in str(e.value)


def test_recursion_after_consuming_input_is_fine():
    slot = E.RuleSlot("p")
    p = E.rule("p", E.choice([
        E.sequence([E.literal("("), slot, E.literal(")")]),
        E.literal("x"),
    ]))
    slot.bind(p)
    _, out = run(p, "((x))")
    assert out.pos == 5
    assert out.values == []
    _, out = run(E.extract(p), "((x))")
    assert out.values == ["((x))"]


def test_unbound_slot_raises():
    with pytest.raises(UndefinedRuleError):
        run(E.RuleSlot("missing"), "")


@pytest.mark.parametrize(
    "text, offset, expected",
    [
        ("a\rb\r\nc", 2, (2, 1)),
        ("a\rb\r\nc", 5, (3, 1)),
        ("a\rb\r\nc", 4, (2, 3)),
        ("\r\r", 2, (3, 1)),
        ("a\r\n", 3, (2, 1)),
    ],
)
def test_line_col_accepts_cr_and_crlf(text, offset, expected):
    assert E.ParseState(text).line_col(offset) == expected


def nested_parens():
    slot = E.RuleSlot("p")
    p = E.rule("p", E.choice([
        E.sequence([E.literal("("), slot, E.literal(")")]),
        E.literal("x"),
    ]))
    slot.bind(p)
    return p


def test_max_depth_stops_deep_nesting():
    p = nested_parens()
    text = "(" * 10 + "x" + ")" * 10

    state = E.ParseState(text, max_depth=5)
    with pytest.raises(DepthLimitError) as e:
        p(state, 0, {})
    assert e.value.limit == 5
    assert e.value.offset == 5
    assert state.depth == 0

    out = p(E.ParseState(text, max_depth=11), 0, {})
    assert out.ok and out.pos == 21
