# pegcraft/peg/options.py
"""Per-rule options and the output pipeline.

Recognized keys (anything else is an error):

    parser          True, or a str to expose the rule under another name
    export          True to make the rule visible to other grammars
    collect         join the rule's values into one str
    token           replace the values with one token (True: the rule name)
    tag             wrap the values as (tag, values) (True: the rule name)
    ignore          drop the values
    post_traverse   hook name, callable, or (hook, [extra args])
    start_position  prepend a Position record of where the match began
    alias           external matcher (name or callable) used instead of
                    the grammar's definition

Pipeline
========
After a rule's body matched, its outcome goes through these stages, in this
order. Each stage only sees what the previous one produced.

    1. start_position
    2. (`< ... >` groups were already joined while matching)
    3. collect
    4. token
    5. tag
    6. post_traverse
    7. ignore

`alias` replaces the rule's matcher altogether, so none of the stages run.

A post_traverse hook is called as

    hook(rest, values, context, line, offset, *extra)

with `values` most recent first and `context` a private copy, and returns
`(values, context)`, values again most recent first. The returned context
is threaded on to the rest of the parse.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple, Union

from .ast import PegGrammar
from .engine import Matcher, Outcome, ParseState, Token, is_text
from .errors import OptionError

KNOWN_OPTIONS = (
    "parser", "export", "collect", "token", "tag", "ignore",
    "post_traverse", "start_position", "alias",
)
_FLAGS = ("export", "collect", "ignore", "start_position")

Hook = Callable[..., Tuple[List[Any], Dict[str, Any]]]
Stage = Callable[[ParseState, int, Outcome], Outcome]


@dataclass(frozen=True)
class RuleOptions:
    parser: Union[bool, str] = False
    export: bool = False
    collect: bool = False
    token: Any = None  # None: off
    tag: Optional[str] = None
    ignore: bool = False
    post_traverse: Optional[Tuple[Hook, Tuple[Any, ...]]] = None
    start_position: bool = False
    alias: Optional[Matcher] = None


def _resolve(rule: str, key: str, ref: Any, registry: Mapping[str, Any]) -> Any:
    if isinstance(ref, str):
        try:
            return registry[ref]
        except KeyError:
            raise OptionError(rule, f"{key}: unknown name '{ref}'") from None
    if callable(ref):
        return ref
    raise OptionError(rule, f"{key}: expected a name or a callable, got {ref!r}")


def normalize_options(
    rule: str,
    raw: Optional[Mapping[str, Any]],
    hooks: Mapping[str, Hook],
    externals: Mapping[str, Matcher],
) -> RuleOptions:
    """Validate one rule's raw option mapping and resolve names."""
    if raw is None:
        return RuleOptions()
    if not isinstance(raw, Mapping):
        raise OptionError(rule, f"options must be a mapping, got {type(raw).__name__}")
    for key in raw:
        if key not in KNOWN_OPTIONS:
            raise OptionError(rule, f"unknown option '{key}'")

    kw: Dict[str, Any] = {}
    for key in _FLAGS:
        if key in raw:
            if not isinstance(raw[key], bool):
                raise OptionError(rule, f"{key} must be true or false, got {raw[key]!r}")
            kw[key] = raw[key]

    parser = raw.get("parser", False)
    if isinstance(parser, str):
        if not parser.isidentifier():
            raise OptionError(rule, f"parser name {parser!r} is not a valid identifier")
    elif not isinstance(parser, bool):
        raise OptionError(rule, f"parser must be a bool or a name, got {parser!r}")
    kw["parser"] = parser

    token = raw.get("token")
    if token is True:
        kw["token"] = Token(rule)
    elif token is not None and token is not False:
        kw["token"] = Token(token) if isinstance(token, str) else token

    tag = raw.get("tag")
    if tag is True:
        kw["tag"] = rule
    elif isinstance(tag, str):
        kw["tag"] = tag
    elif tag is not None and tag is not False:
        raise OptionError(rule, f"tag must be a bool or a name, got {tag!r}")

    pt = raw.get("post_traverse")
    if pt is not None:
        if isinstance(pt, (tuple, list)):
            if len(pt) != 2 or not isinstance(pt[1], (tuple, list)):
                raise OptionError(rule, "post_traverse must be (hook, [args])")
            kw["post_traverse"] = (_resolve(rule, "post_traverse", pt[0], hooks), tuple(pt[1]))
        else:
            kw["post_traverse"] = (_resolve(rule, "post_traverse", pt, hooks), ())

    alias = raw.get("alias")
    if alias is not None:
        kw["alias"] = _resolve(rule, "alias", alias, externals)

    return RuleOptions(**kw)


def normalize_table(
    g: PegGrammar,
    table: Optional[Mapping[str, Mapping[str, Any]]] = None,
    hooks: Optional[Mapping[str, Hook]] = None,
    externals: Optional[Mapping[str, Matcher]] = None,
) -> Dict[str, RuleOptions]:
    """RuleOptions for every rule of g, in grammar order."""
    table = table or {}
    for name in table:
        if name not in g.rules:
            raise OptionError(name, "options given for a rule that is not defined")
    hooks = hooks or {}
    externals = externals or {}
    return {
        name: normalize_options(name, table.get(name), hooks, externals)
        for name in g.rules
    }


# ---- stages ----

def start_position_stage() -> Stage:
    def stage(state: ParseState, start: int, out: Outcome) -> Outcome:
        return Outcome(True, out.pos, [state.position(start)] + out.values, out.context)
    return stage


def collect_stage(rule: str) -> Stage:
    def stage(state: ParseState, start: int, out: Outcome) -> Outcome:
        for v in out.values:
            if not is_text(v):
                raise OptionError(rule, f"collect reached a non-text value {v!r}")
        return Outcome(True, out.pos, ["".join(out.values)], out.context)
    return stage


def token_stage(value: Any) -> Stage:
    def stage(state: ParseState, start: int, out: Outcome) -> Outcome:
        return Outcome(True, out.pos, [value], out.context)
    return stage


def tag_stage(tag: str) -> Stage:
    def stage(state: ParseState, start: int, out: Outcome) -> Outcome:
        return Outcome(True, out.pos, [(tag, list(out.values))], out.context)
    return stage


def post_traverse_stage(hook: Hook, args: Tuple[Any, ...]) -> Stage:
    def stage(state: ParseState, start: int, out: Outcome) -> Outcome:
        result = hook(
            state.text[out.pos:],
            out.values[::-1],
            dict(out.context),
            state.line_col(out.pos),
            out.pos,
            *args,
        )
        try:
            values, context = result
        except (TypeError, ValueError):
            raise TypeError(
                f"post_traverse hook {getattr(hook, '__name__', hook)!r} must return "
                f"(values, context), got {result!r}"
            ) from None
        return Outcome(True, out.pos, list(values)[::-1], context)
    return stage


def ignore_stage() -> Stage:
    def stage(state: ParseState, start: int, out: Outcome) -> Outcome:
        return Outcome(True, out.pos, [], out.context)
    return stage


def build_stages(rule: str, opts: RuleOptions) -> List[Stage]:
    stages: List[Stage] = []
    if opts.start_position:
        stages.append(start_position_stage())
    if opts.collect:
        stages.append(collect_stage(rule))
    if opts.token is not None:
        stages.append(token_stage(opts.token))
    if opts.tag is not None:
        stages.append(tag_stage(opts.tag))
    if opts.post_traverse is not None:
        stages.append(post_traverse_stage(*opts.post_traverse))
    if opts.ignore:
        stages.append(ignore_stage())
    return stages


def with_pipeline(body: Matcher, stages: List[Stage]) -> Matcher:
    if not stages:
        return body

    def match(state: ParseState, pos: int, ctx: Dict[str, Any]) -> Outcome:
        out = body(state, pos, ctx)
        if not out.ok:
            return out
        for stage in stages:
            out = stage(state, pos, out)
        return out
    return match
