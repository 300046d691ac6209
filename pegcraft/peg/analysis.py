# pegcraft/peg/analysis.py
"""Compile-time checks over a parsed grammar.

- every reference names a defined rule
- no rule can reach itself without consuming input (left recursion)
- `collect` is only used where the values to join are text
"""

from __future__ import annotations
from typing import AbstractSet, Dict, List, Mapping, Optional, Set

from .ast import (
    Literal, CharClass, Any, Ref, And, Not, Repeat, Seq, Choice, Group,
    Extract, PegGrammar, Node,
)
from .errors import LeftRecursionError, OptionError, UndefinedRuleError
from .options import RuleOptions


def check_references(g: PegGrammar, skip: AbstractSet[str] = frozenset()) -> None:
    """Raise UndefinedRuleError for the first unresolved reference (source order)."""
    for rule, ref in g.references():
        if rule in skip:
            continue
        if ref.name not in g.rules:
            raise UndefinedRuleError(ref.name, rule)


# ---- nullable / left calls ----

def nullable_node(node: Node, nullable: AbstractSet[str]) -> bool:
    """True if node can succeed without consuming input."""
    if isinstance(node, Literal):
        return node.text == ""
    if isinstance(node, (CharClass, Any)):
        return False
    if isinstance(node, Ref):
        return node.name in nullable
    if isinstance(node, (And, Not)):
        return True
    if isinstance(node, Repeat):
        return node.kind != "+" or nullable_node(node.node, nullable)
    if isinstance(node, Seq):
        return all(nullable_node(i, nullable) for i in node.items)
    if isinstance(node, Choice):
        return any(nullable_node(a, nullable) for a in node.alts)
    if isinstance(node, (Group, Extract)):
        return nullable_node(node.node, nullable)
    raise AssertionError(f"unknown node: {node!r}")


def compute_nullable(g: PegGrammar, opaque: AbstractSet[str] = frozenset()) -> Set[str]:
    """
    compute_nullable
    ================
    Rules that can match the empty string, as a fixpoint:
    start from nothing, add every rule whose body is nullable given the
    current set, repeat until nothing changes.

    Rules in `opaque` (replaced by external matchers) are assumed to consume.
    """
    nullable: Set[str] = set()
    changed = True
    while changed:
        changed = False
        for name, rd in g.rules.items():
            if name in nullable or name in opaque:
                continue
            if nullable_node(rd.expr, nullable):
                nullable.add(name)
                changed = True
    return nullable


def left_calls(node: Node, nullable: AbstractSet[str]) -> List[str]:
    """Rules that node may invoke at its own start offset, in order."""
    out: List[str] = []

    def visit(n: Node) -> None:
        if isinstance(n, Ref):
            if n.name not in out:
                out.append(n.name)
        elif isinstance(n, (And, Not, Repeat, Group, Extract)):
            visit(n.node)
        elif isinstance(n, Seq):
            for item in n.items:
                visit(item)
                if not nullable_node(item, nullable):
                    break
        elif isinstance(n, Choice):
            for a in n.alts:
                visit(a)

    visit(node)
    return out


def find_left_recursion(g: PegGrammar, opaque: AbstractSet[str] = frozenset()) -> Optional[List[str]]:
    """First left-recursive cycle (as a rule path ending where it began), or None."""
    nullable = compute_nullable(g, opaque)
    edges: Dict[str, List[str]] = {
        name: ([] if name in opaque else [c for c in left_calls(rd.expr, nullable) if c in g.rules])
        for name, rd in g.rules.items()
    }

    done: Set[str] = set()
    path: List[str] = []
    on_path: Set[str] = set()

    def dfs(name: str) -> Optional[List[str]]:
        path.append(name)
        on_path.add(name)
        for nxt in edges[name]:
            if nxt in on_path:
                return path[path.index(nxt):] + [nxt]
            if nxt not in done:
                found = dfs(nxt)
                if found:
                    return found
        path.pop()
        on_path.discard(name)
        done.add(name)
        return None

    for name in g.rules:
        if name not in done:
            found = dfs(name)
            if found:
                return found
    return None


def check_left_recursion(g: PegGrammar, opaque: AbstractSet[str] = frozenset()) -> None:
    cycle = find_left_recursion(g, opaque)
    if cycle:
        raise LeftRecursionError(cycle)


# ---- collect contracts ----

def _emits_structure(opts: RuleOptions, body_culprit: Optional[str]) -> bool:
    """Whether the rule's own output may hold non-text values.

    Output of hooks and aliases is unknown here; collect checks it when it
    arrives instead.
    """
    if opts.alias is not None or opts.post_traverse is not None or opts.ignore:
        return False
    if opts.token is not None or opts.tag is not None:
        return True
    if opts.collect:
        return False
    return opts.start_position or body_culprit is not None


def structure_source(node: Node, structured: AbstractSet[str]) -> Optional[str]:
    """Name of a referenced rule that feeds non-text values into node's output."""
    if isinstance(node, Ref):
        return node.name if node.name in structured else None
    if isinstance(node, (Extract, And, Not)):
        return None
    if isinstance(node, (Repeat, Group)):
        return structure_source(node.node, structured)
    if isinstance(node, (Seq, Choice)):
        for c in (node.items if isinstance(node, Seq) else node.alts):
            found = structure_source(c, structured)
            if found:
                return found
    return None


def structured_rules(g: PegGrammar, table: Mapping[str, RuleOptions]) -> Set[str]:
    structured: Set[str] = set()
    changed = True
    while changed:
        changed = False
        for name, rd in g.rules.items():
            if name in structured:
                continue
            culprit = structure_source(rd.expr, structured)
            if _emits_structure(table[name], culprit):
                structured.add(name)
                changed = True
    return structured


def check_collect(g: PegGrammar, table: Mapping[str, RuleOptions]) -> None:
    structured = structured_rules(g, table)
    for name, rd in g.rules.items():
        opts = table[name]
        if not opts.collect or opts.alias is not None:
            continue
        if opts.start_position:
            raise OptionError(name, "collect cannot join the position record added by start_position")
        culprit = structure_source(rd.expr, structured)
        if culprit:
            raise OptionError(name, f"collect over non-text values produced by rule '{culprit}'")
