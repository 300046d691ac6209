# pegcraft/peg/engine.py
"""Matcher combinators.

A matcher is a plain callable

    matcher(state: ParseState, pos: int, context: dict) -> Outcome

On success it returns the new position, the values it produced (input
order) and the context to thread onward. On failure it returns the position
it started at, no values and the context it was given, so a caller can try
the next alternative without undoing anything. Why a match failed is not
part of the Outcome: leaves record their expectation on the ParseState and
only the furthest failure is kept for the final error message.

Matchers hold no mutable state, so one compiled grammar can serve any
number of concurrent parses; everything that changes during a parse lives
in its own ParseState.

Literals only produce a value inside a `< ... >` region, where their text
is part of what gets joined; elsewhere they just match.

Rule applications (`rule`) are memoized per (rule, pos) like a Packrat
parser. A memo entry is only reused for the very same context object, since
post-traverse hooks may produce a different context. Re-entering a rule at
the offset it is already being tried at is left recursion and raises.
Nesting deeper than `max_depth` rule applications raises DepthLimitError.
"""

from __future__ import annotations
from bisect import bisect_right
import regex as re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, Set, Tuple, Union

from .ast import CharRange, format_class
from .errors import DepthLimitError, LeftRecursionError, UndefinedRuleError

_EOL_RE = re.compile(r"\r\n|\n|\r")


# ---- values ----

@dataclass(frozen=True)
class Position:
    line: int    # 1-based
    column: int  # 1-based
    offset: int  # 0-based


class Token(str):
    """A token value. Compares equal to its text, but is never treated as text."""
    __slots__ = ()

    def __repr__(self) -> str:
        return f"Token({str.__repr__(self)})"


def is_text(value: Any) -> bool:
    return type(value) is str


@dataclass
class Outcome:
    ok: bool
    pos: int
    values: List[Any] = field(default_factory=list)
    context: Dict[str, Any] = field(default_factory=dict)


# ---- per-call state ----

class ParseState:
    def __init__(self, text: str, max_depth: Optional[int] = None):
        self.text = text
        self.n = len(text)
        # (rule, pos, quiet, extracting) -> (context given, outcome)
        self.memo: Dict[Tuple[str, int, bool, bool], Tuple[Dict[str, Any], Outcome]] = {}
        self.active: Set[Tuple[str, int]] = set()
        self.stack: List[Tuple[str, int]] = []
        # furthest failure
        self.fail_at = -1
        self.expected: List[str] = []
        self.quiet = 0  # > 0 inside negative lookahead
        self.extracting = 0  # > 0 inside < ... >
        self.max_depth = max_depth
        self.depth = 0
        self.reached = 0  # furthest offset a rule was entered at
        self._line_starts: Optional[List[int]] = None

    def expect(self, pos: int, what: str) -> None:
        if self.quiet:
            return
        if pos > self.fail_at:
            self.fail_at = pos
            self.expected = [what]
        elif pos == self.fail_at and what not in self.expected:
            self.expected.append(what)

    def line_col(self, offset: int) -> Tuple[int, int]:
        if self._line_starts is None:
            # \r\n, \n and a lone \r all end a line
            self._line_starts = [0] + [m.end() for m in _EOL_RE.finditer(self.text)]
        line = bisect_right(self._line_starts, offset)
        return line, offset - self._line_starts[line - 1] + 1

    def position(self, offset: int) -> Position:
        line, col = self.line_col(offset)
        return Position(line, col, offset)

    def error_message(self) -> str:
        if not self.expected:
            return "no match"
        if len(self.expected) == 1:
            what = self.expected[0]
        else:
            what = ", ".join(self.expected[:-1]) + " or " + self.expected[-1]
        at = self.fail_at
        found = "end of input" if at >= self.n else repr(self.text[at])
        return f"expected {what}, found {found}"


Matcher = Callable[[ParseState, int, Dict[str, Any]], Outcome]


def _fail(pos: int, ctx: Dict[str, Any]) -> Outcome:
    return Outcome(False, pos, [], ctx)


# ---- leaves ----

def literal(text: str) -> Matcher:
    desc = f"string {text!r}"
    size = len(text)

    def match(state: ParseState, pos: int, ctx: Dict[str, Any]) -> Outcome:
        if state.text.startswith(text, pos):
            return Outcome(True, pos + size, [text] if state.extracting else [], ctx)
        state.expect(pos, desc)
        return _fail(pos, ctx)
    return match


def class_match(members: Sequence[Union[str, CharRange]], negated: bool, ch: str) -> bool:
    ok = False
    for m in members:
        if isinstance(m, CharRange):
            if ch in m:
                ok = True
                break
        elif ch == m:
            ok = True
            break
    return (not ok) if negated else ok


def char_class(members: Sequence[Union[str, CharRange]], negated: bool = False) -> Matcher:
    members = tuple(members)
    desc = "character in " + format_class(members, negated)

    def match(state: ParseState, pos: int, ctx: Dict[str, Any]) -> Outcome:
        if pos < state.n:
            c = state.text[pos]
            if class_match(members, negated, c):
                return Outcome(True, pos + 1, [c], ctx)
        state.expect(pos, desc)
        return _fail(pos, ctx)
    return match


def any_char() -> Matcher:
    def match(state: ParseState, pos: int, ctx: Dict[str, Any]) -> Outcome:
        # Python strings index by code point
        if pos < state.n:
            return Outcome(True, pos + 1, [state.text[pos]], ctx)
        state.expect(pos, "any character")
        return _fail(pos, ctx)
    return match


def empty() -> Matcher:
    def match(state: ParseState, pos: int, ctx: Dict[str, Any]) -> Outcome:
        return Outcome(True, pos, [], ctx)
    return match


# ---- composition ----

def sequence(matchers: Sequence[Matcher]) -> Matcher:
    ms = tuple(matchers)
    if not ms:
        return empty()
    if len(ms) == 1:
        return ms[0]

    def match(state: ParseState, pos: int, ctx: Dict[str, Any]) -> Outcome:
        cur = pos
        c = ctx
        values: List[Any] = []
        for m in ms:
            out = m(state, cur, c)
            if not out.ok:
                return _fail(pos, ctx)
            cur = out.pos
            c = out.context
            values.extend(out.values)
        return Outcome(True, cur, values, c)
    return match


def choice(matchers: Sequence[Matcher]) -> Matcher:
    ms = tuple(matchers)

    def match(state: ParseState, pos: int, ctx: Dict[str, Any]) -> Outcome:
        for m in ms:
            out = m(state, pos, ctx)
            if out.ok:
                return out
        return _fail(pos, ctx)
    return match


def optional(m: Matcher) -> Matcher:
    def match(state: ParseState, pos: int, ctx: Dict[str, Any]) -> Outcome:
        out = m(state, pos, ctx)
        if out.ok:
            return out
        return Outcome(True, pos, [], ctx)
    return match


def repeat(m: Matcher, minimum: int = 0) -> Matcher:
    """Greedy repetition; never gives input back."""
    def match(state: ParseState, pos: int, ctx: Dict[str, Any]) -> Outcome:
        cur = pos
        c = ctx
        values: List[Any] = []
        count = 0
        while True:
            out = m(state, cur, c)
            if not out.ok:
                break
            count += 1
            c = out.context
            values.extend(out.values)
            if out.pos == cur:
                break  # no progress
            cur = out.pos
        if count < minimum:
            return _fail(pos, ctx)
        return Outcome(True, cur, values, c)
    return match


def times(m: Matcher, minimum: int = 1) -> Matcher:
    return repeat(m, minimum=minimum)


def lookahead(m: Matcher) -> Matcher:
    def match(state: ParseState, pos: int, ctx: Dict[str, Any]) -> Outcome:
        out = m(state, pos, ctx)
        if out.ok:
            return Outcome(True, pos, [], ctx)
        return _fail(pos, ctx)
    return match


def lookahead_not(m: Matcher, desc: str = "something else") -> Matcher:
    def match(state: ParseState, pos: int, ctx: Dict[str, Any]) -> Outcome:
        state.quiet += 1
        try:
            out = m(state, pos, ctx)
        finally:
            state.quiet -= 1
        if out.ok:
            state.expect(pos, f"not {desc}")
            return _fail(pos, ctx)
        return Outcome(True, pos, [], ctx)
    return match


def extract(m: Matcher) -> Matcher:
    """Join the textual values of m into one string; other values are dropped."""
    def match(state: ParseState, pos: int, ctx: Dict[str, Any]) -> Outcome:
        state.extracting += 1
        try:
            out = m(state, pos, ctx)
        finally:
            state.extracting -= 1
        if not out.ok:
            return out
        text = "".join(v for v in out.values if is_text(v))
        return Outcome(True, out.pos, [text], out.context)
    return match


# ---- rules ----

class RuleSlot:
    """Late-bound reference to a rule's matcher, so rules may refer to
    rules that are compiled after them (or to themselves)."""
    __slots__ = ("name", "matcher")

    def __init__(self, name: str):
        self.name = name
        self.matcher: Optional[Matcher] = None

    def bind(self, matcher: Matcher) -> None:
        self.matcher = matcher

    def __call__(self, state: ParseState, pos: int, ctx: Dict[str, Any]) -> Outcome:
        if self.matcher is None:
            raise UndefinedRuleError(self.name)
        return self.matcher(state, pos, ctx)

    def __repr__(self) -> str:
        return f"RuleSlot({self.name!r})"


def rule(name: str, body: Matcher) -> Matcher:
    """Memoized, left-recursion-guarded application of a named rule."""
    def match(state: ParseState, pos: int, ctx: Dict[str, Any]) -> Outcome:
        key = (name, pos, state.quiet > 0, state.extracting > 0)
        hit = state.memo.get(key)
        if hit is not None and hit[0] is ctx:
            return hit[1]

        here = (name, pos)
        if here in state.active:
            start = state.stack.index(here)
            cycle = [n for n, _ in state.stack[start:]] + [name]
            raise LeftRecursionError(cycle, offset=pos)
        if pos > state.reached:
            state.reached = pos
        if state.max_depth is not None and state.depth >= state.max_depth:
            raise DepthLimitError(state.max_depth, name, pos)

        state.active.add(here)
        state.stack.append(here)
        state.depth += 1
        try:
            out = body(state, pos, ctx)
        finally:
            state.depth -= 1
            state.stack.pop()
            state.active.discard(here)
        state.memo[key] = (ctx, out)
        return out
    return match
