# pegcraft/peg/errors.py
"""Compile-time and fatal match-time errors.

Every error is a `SyntaxError` so callers that only care about "the grammar
is bad" can catch one type, the way the CLI does.
"""

from __future__ import annotations
from typing import Optional, Tuple


def line_bounds(src: str, pos: int) -> Tuple[int, int]:
    """[start, end) of the line that contains pos"""
    start = src.rfind("\n", 0, pos)
    if start == -1:
        start = 0
    else:
        start += 1
    end = src.find("\n", pos)
    if end == -1:
        end = len(src)
    return start, end


def line_col(src: str, pos: int) -> Tuple[int, int]:
    """1-based (line, column) of pos"""
    line = src.count("\n", 0, pos) + 1
    start, _ = line_bounds(src, pos)
    return line, pos - start + 1


def snippet_caret_at_pos(src: str, pos: int) -> str:
    start, end = line_bounds(src, pos)
    line_text = src[start:end].rstrip("\r")
    caret = " " * (pos - start) + "^"
    return f"{line_text}\n{caret}"


class PegError(SyntaxError):
    """Base class for everything that aborts compilation."""


class GrammarSyntaxError(PegError):
    """Malformed PEG source text."""

    def __init__(self, msg: str, src: Optional[str] = None, pos: Optional[int] = None):
        self.pos = pos
        self.line: Optional[int] = None
        self.col: Optional[int] = None
        if src is not None and pos is not None:
            self.line, self.col = line_col(src, pos)
            msg = f"{msg} at {self.line}:{self.col}\n{snippet_caret_at_pos(src, pos)}"
        super().__init__(msg)


class UndefinedRuleError(PegError):
    def __init__(self, name: str, referrer: Optional[str] = None):
        self.name = name
        self.referrer = referrer
        where = f" (referenced from '{referrer}')" if referrer else ""
        super().__init__(f"PEG: undefined rule '{name}'{where}")


class OptionError(PegError):
    """Rule options that are malformed or contradict each other."""

    def __init__(self, rule: Optional[str], msg: str):
        self.rule = rule
        prefix = f"rule '{rule}': " if rule else ""
        super().__init__(prefix + msg)


class LeftRecursionError(PegError):
    """A rule can re-enter itself without consuming input."""

    def __init__(self, cycle, offset: Optional[int] = None):
        self.cycle = tuple(cycle)
        path = " -> ".join(self.cycle)
        if offset is None:
            msg = f"left recursion: {path}"
        else:
            msg = f"left recursion at offset {offset}: {path}"
        super().__init__(msg)


class DepthLimitError(PegError):
    """Rule applications nested deeper than the parse allows."""

    def __init__(self, limit: Optional[int], rule: Optional[str] = None, offset: Optional[int] = None):
        self.limit = limit
        self.rule = rule
        self.offset = offset
        where = f" entering '{rule}' at offset {offset}" if rule is not None else ""
        bound = f" (limit {limit})" if limit is not None else ""
        super().__init__(f"input nested too deeply{bound}{where}")
