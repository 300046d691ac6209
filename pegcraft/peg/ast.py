# pegcraft/peg/ast.py
from __future__ import annotations
from dataclasses import dataclass, field
from typing import Dict, Iterator, Optional, Tuple, Union

from .errors import UndefinedRuleError

# ---- PEG AST node definitions ----

@dataclass(frozen=True)
class Literal:
    text: str  # unescaped text

@dataclass(frozen=True)
class CharRange:
    lo: str
    hi: str  # inclusive, ord(lo) < ord(hi)

    def __contains__(self, ch: str) -> bool:
        return ord(self.lo) <= ord(ch) <= ord(self.hi)

@dataclass(frozen=True)
class CharClass:
    # single chars (str of length 1) and ranges, in source order
    members: Tuple[Union[str, CharRange], ...] = ()
    negated: bool = False

@dataclass(frozen=True)
class Any:
    pass

@dataclass(frozen=True)
class Ref:
    name: str
    pos: Optional[int] = field(default=None, compare=False)

@dataclass(frozen=True)
class And:
    node: "Node"  # positive lookahead (&)

@dataclass(frozen=True)
class Not:
    node: "Node"  # negative lookahead (!)

@dataclass(frozen=True)
class Repeat:
    node: "Node"
    kind: str  # '?', '*', '+'

@dataclass(frozen=True)
class Seq:
    items: Tuple["Node", ...] = ()

@dataclass(frozen=True)
class Choice:
    alts: Tuple["Node", ...]

@dataclass(frozen=True)
class Group:
    node: "Node"  # ( ... ), values pass through

@dataclass(frozen=True)
class Extract:
    node: "Node"  # < ... >, text is joined into one value

Node = Union[Literal, CharClass, Any, Ref, And, Not, Repeat, Seq, Choice, Group, Extract]

REPEAT_KINDS = ("?", "*", "+")


def children(node: Node) -> Tuple[Node, ...]:
    if isinstance(node, Seq):
        return node.items
    if isinstance(node, Choice):
        return node.alts
    if isinstance(node, (And, Not, Repeat, Group, Extract)):
        return (node.node,)
    return ()


def walk(node: Node) -> Iterator[Node]:
    """Pre-order traversal, children left to right."""
    yield node
    for c in children(node):
        yield from walk(c)


@dataclass(frozen=True)
class RuleDef:
    name: str
    expr: Node
    pos: Optional[int] = field(default=None, compare=False)

@dataclass
class PegGrammar:
    rules: Dict[str, RuleDef]  # source order
    start: str

    def require_rule(self, name: str) -> RuleDef:
        try:
            return self.rules[name]
        except KeyError:
            raise UndefinedRuleError(name) from None

    def names(self) -> Tuple[str, ...]:
        return tuple(self.rules)

    def references(self) -> Iterator[Tuple[str, Ref]]:
        """(rule name, Ref) for every reference, in source order."""
        for name, rd in self.rules.items():
            for n in walk(rd.expr):
                if isinstance(n, Ref):
                    yield name, n


# ---- back to PEG text (diagnostics, CLI dumps) ----

_UNESCAPES = {
    "\a": "\\a", "\b": "\\b", "\x1b": "\\e", "\f": "\\f", "\n": "\\n",
    "\r": "\\r", "\t": "\\t", "\v": "\\v", "\\": "\\\\",
}


def _show_char(ch: str, special: str) -> str:
    if ch in _UNESCAPES:
        return _UNESCAPES[ch]
    if ch in special:
        return "\\" + ch
    if not ch.isprintable() and ord(ch) < 256:
        return "\\%03o" % ord(ch)
    return ch


def format_class(members, negated: bool = False) -> str:
    out = []
    for m in members:
        if isinstance(m, CharRange):
            out.append(_show_class_char(m.lo) + "-" + _show_class_char(m.hi))
        else:
            out.append(_show_class_char(m))
    return "[" + ("^" if negated else "") + "".join(out) + "]"


def _show_class_char(ch: str) -> str:
    if ch == "^":
        return "\\136"  # no letter escape for '^'
    return _show_char(ch, "]-")


def _atom(node: Node) -> str:
    text = to_peg(node)
    if isinstance(node, Choice) or (isinstance(node, Seq) and len(node.items) != 1):
        return f"({text})"
    return text


def to_peg(node: Node) -> str:
    """Render a node as PEG source."""
    if isinstance(node, Literal):
        return "'" + "".join(_show_char(c, "'") for c in node.text) + "'"
    if isinstance(node, CharClass):
        return format_class(node.members, node.negated)
    if isinstance(node, Any):
        return "."
    if isinstance(node, Ref):
        return node.name
    if isinstance(node, And):
        return "&" + _atom(node.node)
    if isinstance(node, Not):
        return "!" + _atom(node.node)
    if isinstance(node, Repeat):
        return _atom(node.node) + node.kind
    if isinstance(node, Seq):
        return " ".join(_atom(i) if isinstance(i, Choice) else to_peg(i) for i in node.items)
    if isinstance(node, Choice):
        return " / ".join(to_peg(a) for a in node.alts)
    if isinstance(node, Group):
        return f"({to_peg(node.node)})"
    if isinstance(node, Extract):
        return f"< {to_peg(node.node)} >"
    raise AssertionError(f"unknown node: {node!r}")


def format_grammar(g: PegGrammar) -> str:
    return "\n".join(f"{rd.name} <- {to_peg(rd.expr)}" for rd in g.rules.values())
