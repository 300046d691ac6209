# pegcraft/peg/parser.py
from __future__ import annotations
from typing import Callable, Dict, List, Optional, TypeVar

from .ast import (
    Literal, CharClass, Any, Ref, And, Not, Repeat, Seq, Choice, Group,
    Extract, RuleDef, PegGrammar, Node, REPEAT_KINDS,
)
from .lexical import _Cursor

# Grammar of the PEG notation accepted here:
#   Grammar    <- Spacing Definition+ EndOfFile
#   Definition <- Identifier LEFTARROW Expression
#   Expression <- Sequence ( SLASH Sequence )*
#   Sequence   <- Prefix*
#   Prefix     <- ( AND / NOT )? Suffix
#   Suffix     <- Primary ( QUERY / STAR / PLUS )?
#   Primary    <- Identifier !LEFTARROW
#               / OPEN Expression CLOSE
#               / Literal
#               / Class
#               / DOT
#               / BEGIN Expression END
#   Literal    <- ['] ( !['] Char )* ['] Spacing
#               / ["] ( !["] Char )* ["] Spacing
#   Class      <- '[' '^'? ( !']' Range )* ']' Spacing
#
# Tokens (LEFTARROW '<-', SLASH '/', AND '&', ...) swallow trailing Spacing.
# Action blocks `{ ... }` are rejected outright.

T = TypeVar("T")


class _PegParser(_Cursor):

    def _literal(self) -> Optional[Literal]:
        q = self._peek()
        if q not in ("'", '"'):
            return None
        start = self.i
        self._bump(1)
        out: List[str] = []
        while self._peek() != q:
            if self._eof():
                self._expect(f"closing {q}")
                self.i = start
                return None
            c = self._char()
            if c is None:
                self.i = start
                return None
            out.append(c)
        self._bump(1)
        self._skip_ws()
        return Literal("".join(out))

    def _class(self) -> Optional[CharClass]:
        if self._peek() != "[":
            return None
        start = self.i
        self._bump(1)
        negated = False
        if self._peek() == "^":
            self._bump(1)
            negated = True
        members = []
        while self._peek() != "]":
            m = self._range()
            if m is None:
                if self._eof():
                    self._expect("']'")
                self.i = start
                return None
            members.append(m)
        self._bump(1)
        self._skip_ws()
        return CharClass(tuple(members), negated)

    def _primary(self) -> Optional[Node]:
        start = self.i
        if self._peek() == "{":
            raise self._err("action blocks are not supported")

        name = self._ident()
        if name is not None:
            if not self._starts("<-"):
                return Ref(name, start)
            # start of the next definition
            self.i = start

        if self._try_eat("("):
            inner = self._expression()
            if self._eat(")"):
                return Group(inner)
            self.i = start

        lit = self._literal()
        if lit is not None:
            return lit

        cls = self._class()
        if cls is not None:
            return cls

        if self._try_eat("."):
            return Any()

        if not self._starts("<-") and self._try_eat("<"):
            inner = self._expression()
            if self._eat(">"):
                return Extract(inner)
            self.i = start

        return self._expect("expression")

    def _suffix(self) -> Optional[Node]:
        node = self._primary()
        if node is None:
            return None
        for kind in REPEAT_KINDS:
            if self._try_eat(kind):
                return Repeat(node, kind)
        return node

    def _prefix(self) -> Optional[Node]:
        start = self.i
        wrap = None
        if self._try_eat("&"):
            wrap = And
        elif self._try_eat("!"):
            wrap = Not
        node = self._suffix()
        if node is None:
            self.i = start
            return None
        return wrap(node) if wrap else node

    def _sequence(self) -> Node:
        items: List[Node] = []
        while True:
            item = self._prefix()
            if item is None:
                break
            items.append(item)
        if len(items) == 1:
            return items[0]
        return Seq(tuple(items))

    def _expression(self) -> Node:
        alts = [self._sequence()]
        while self._try_eat("/"):
            alts.append(self._sequence())
        if len(alts) == 1:
            return alts[0]
        return Choice(tuple(alts))

    def _definition(self) -> Optional[RuleDef]:
        start = self.i
        name = self._ident()
        if name is None:
            return self._expect("rule name")
        if not self._eat("<-"):
            self.i = start
            return None
        expr = self._expression()
        return RuleDef(name, expr, start)

    def parse_grammar(self) -> PegGrammar:
        self._skip_ws()
        rules: Dict[str, RuleDef] = {}
        while True:
            rd = self._definition()
            if rd is None:
                break
            if rd.name in rules:
                raise self._err(f"duplicate rule '{rd.name}'", rd.pos)
            rules[rd.name] = rd
        if not rules:
            raise self._failure()
        if not self._eof():
            self._expect("end of input")
            raise self._failure()
        return PegGrammar(rules=rules, start=next(iter(rules)))


def parse_peg_grammar(src: str) -> PegGrammar:
    """Parse PEG source text into a PegGrammar (rules in source order)."""
    return _PegParser(src).parse_grammar()


# ---- single components, for tooling and tests ----

def _parse_whole(src: str, what: str, produce: Callable[[_PegParser], Optional[T]]) -> T:
    p = _PegParser(src)
    result = produce(p)
    if result is None:
        p._expect(what, 0)
        raise p._failure()
    if not p._eof():
        p._expect("end of input")
        raise p._failure()
    return result


def parse_literal(src: str) -> Literal:
    return _parse_whole(src, "literal", lambda p: p._literal())


def parse_class(src: str) -> CharClass:
    return _parse_whole(src, "character class", lambda p: p._class())


def parse_identifier(src: str) -> str:
    return _parse_whole(src, "identifier", lambda p: p._ident())


def parse_primary(src: str) -> Node:
    return _parse_whole(src, "expression", lambda p: p._primary())


def parse_sequence(src: str) -> Node:
    return _parse_whole(src, "sequence", lambda p: p._sequence())


def parse_expression(src: str) -> Node:
    """Parse one (choice) expression, leading spacing allowed."""
    def produce(p: _PegParser) -> Node:
        p._skip_ws()
        return p._expression()
    return _parse_whole(src, "expression", produce)
