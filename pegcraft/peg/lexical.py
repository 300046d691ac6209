# pegcraft/peg/lexical.py
r"""Lexical layer of the PEG grammar parser.

The pieces below are themselves written in PEG:

    Range      <- Char '-' Char / Char
    Char       <- '\\' [abefnrtv'"\[\]\-\\]
                / '\\' [0-3][0-7][0-7]
                / '\\' [0-7][0-7]?
                / !'\\' .
    Spacing    <- ( Space / Comment )*
    Comment    <- '#' ( !EndOfLine . )* ( EndOfLine / EndOfFile )
    Space      <- ' ' / '\t' / EndOfLine
    EndOfLine  <- '\r\n' / '\n' / '\r'
    Identifier <- [a-zA-Z_] [a-zA-Z_0-9]* Spacing

Every `_Cursor` method either returns what it parsed, or returns None with
the position unchanged, which is how ordered choice backtracks here.
Failures that are worth reporting are recorded with `_expect`; only the
furthest position survives.
"""

from __future__ import annotations
import regex as re
from typing import List, Optional, Tuple, Union

from .ast import CharRange
from .errors import GrammarSyntaxError

_IDENT_RE = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")
_SPACING_RE = re.compile(r"(?:[ \t]|\r\n|\n|\r|#[^\r\n]*(?:\r\n|\n|\r|\Z))*")
# alternation is ordered, same as the PEG above
_OCTAL_RE = re.compile(r"[0-3][0-7][0-7]|[0-7][0-7]?")

ESCAPES = {
    "a": "\a",
    "b": "\b",
    "e": "\x1b",
    "f": "\f",
    "n": "\n",
    "r": "\r",
    "t": "\t",
    "v": "\v",
    "'": "'",
    '"': '"',
    "[": "[",
    "]": "]",
    "-": "-",
    "\\": "\\",
}


class _Cursor:
    def __init__(self, src: str):
        self.s = src
        self.i = 0
        self.n = len(src)
        # furthest failure
        self.fail_at = -1
        self.expected: List[str] = []

    def _peek(self, k: int = 0) -> Optional[str]:
        j = self.i + k
        if j >= self.n:
            return None
        return self.s[j]

    def _starts(self, lit: str) -> bool:
        return self.s.startswith(lit, self.i)

    def _bump(self, n: int = 1) -> None:
        self.i += n

    def _eof(self) -> bool:
        return self.i >= self.n

    # ---- failure bookkeeping ----

    def _expect(self, what: str, pos: Optional[int] = None) -> None:
        p = self.i if pos is None else pos
        if p > self.fail_at:
            self.fail_at = p
            self.expected = [what]
        elif p == self.fail_at and what not in self.expected:
            self.expected.append(what)
        return None

    def _err(self, msg: str, pos: Optional[int] = None) -> GrammarSyntaxError:
        return GrammarSyntaxError(msg, self.s, self.i if pos is None else pos)

    def _failure(self) -> GrammarSyntaxError:
        """Error describing the furthest failure seen so far."""
        if not self.expected:
            return self._err("invalid PEG grammar")
        at = self.fail_at
        found = "end of input" if at >= self.n else repr(self.s[at])
        if len(self.expected) == 1:
            what = self.expected[0]
        else:
            what = ", ".join(self.expected[:-1]) + " or " + self.expected[-1]
        return self._err(f"expected {what}, found {found}", at)

    # ---- tokens ----

    def _skip_ws(self) -> None:
        m = _SPACING_RE.match(self.s, self.i)
        if m is not None:
            self.i = m.end()

    def _try_eat(self, lit: str) -> bool:
        """Token <- lit Spacing, without recording a failure."""
        if self._starts(lit):
            self._bump(len(lit))
            self._skip_ws()
            return True
        return False

    def _eat(self, lit: str) -> bool:
        if self._try_eat(lit):
            return True
        self._expect(repr(lit))
        return False

    # ---- Char / Range / Identifier ----

    def _char(self) -> Optional[str]:
        c = self._peek()
        if c is None:
            return self._expect("character")
        if c != "\\":
            self._bump(1)
            return c
        nxt = self._peek(1)
        if nxt is not None and nxt in ESCAPES:
            self._bump(2)
            return ESCAPES[nxt]
        m = _OCTAL_RE.match(self.s, self.i + 1)
        if m is not None:
            self.i = m.end()
            return chr(int(m.group(0), 8))
        return self._expect("valid escape sequence")

    def _class_char(self) -> Optional[str]:
        # !']' Char
        if self._peek() == "]":
            return None
        return self._char()

    def _range(self) -> Optional[Union[str, CharRange]]:
        lo = self._class_char()
        if lo is None:
            return None
        after_lo = self.i
        if self._peek() == "-":
            self._bump(1)
            hi = self._class_char()
            if hi is not None and ord(lo) < ord(hi):
                return CharRange(lo, hi)
            # not a range: keep the left char only
            self.i = after_lo
        return lo

    def _ident(self) -> Optional[str]:
        m = _IDENT_RE.match(self.s, self.i)
        if m is None:
            return None
        self.i = m.end()
        self._skip_ws()
        return m.group(0)


# ---- standalone helpers ----

def decode_char(src: str, pos: int = 0) -> Optional[Tuple[str, int]]:
    """Decode one (possibly escaped) char at pos -> (char, end) or None."""
    cur = _Cursor(src)
    cur.i = pos
    ch = cur._char()
    if ch is None:
        return None
    return ch, cur.i


def parse_range(src: str, pos: int = 0) -> Optional[Tuple[Union[str, CharRange], int]]:
    cur = _Cursor(src)
    cur.i = pos
    r = cur._range()
    if r is None:
        return None
    return r, cur.i


def skip_spacing(src: str, pos: int = 0) -> int:
    """End position of the Spacing run that starts at pos."""
    cur = _Cursor(src)
    cur.i = pos
    cur._skip_ws()
    return cur.i
