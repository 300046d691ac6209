# pegcraft/peg/translate.py
"""Lower grammar AST nodes into matchers (see engine.py for the contract)."""

from __future__ import annotations
from typing import Dict

from . import engine as E
from .ast import (
    Literal, CharClass, Any, Ref, And, Not, Repeat, Seq, Choice, Group,
    Extract, RuleDef, Node, to_peg,
)
from .errors import UndefinedRuleError
from .options import RuleOptions, build_stages, with_pipeline


def lower(node: Node, slots: Dict[str, E.RuleSlot]) -> E.Matcher:
    if isinstance(node, Literal):
        return E.literal(node.text)

    if isinstance(node, CharClass):
        return E.char_class(node.members, node.negated)

    if isinstance(node, Any):
        return E.any_char()

    if isinstance(node, Ref):
        try:
            return slots[node.name]
        except KeyError:
            raise UndefinedRuleError(node.name) from None

    if isinstance(node, And):
        return E.lookahead(lower(node.node, slots))

    if isinstance(node, Not):
        return E.lookahead_not(lower(node.node, slots), to_peg(node.node))

    if isinstance(node, Repeat):
        inner = lower(node.node, slots)
        if node.kind == "?":
            return E.optional(inner)
        if node.kind == "*":
            return E.repeat(inner)
        if node.kind == "+":
            return E.times(inner, minimum=1)
        raise AssertionError(f"unknown repeat kind {node.kind!r}")

    if isinstance(node, Seq):
        return E.sequence([lower(i, slots) for i in node.items])

    if isinstance(node, Choice):
        return E.choice([lower(a, slots) for a in node.alts])

    if isinstance(node, Group):
        # parentheses only group; values flow through unchanged
        return lower(node.node, slots)

    if isinstance(node, Extract):
        return E.extract(lower(node.node, slots))

    raise AssertionError(f"unknown node: {node!r}")


def lower_rule(rd: RuleDef, opts: RuleOptions, slots: Dict[str, E.RuleSlot]) -> E.Matcher:
    """The full matcher of one rule: body, option pipeline, memo/guard."""
    if opts.alias is not None:
        body = opts.alias
    else:
        body = with_pipeline(lower(rd.expr, slots), build_stages(rd.name, opts))
    return E.rule(rd.name, body)
