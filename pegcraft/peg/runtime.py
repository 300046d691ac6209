# pegcraft/peg/runtime.py
from __future__ import annotations
from dataclasses import dataclass, field
from functools import partial
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional, Tuple, Union

from .analysis import check_collect, check_left_recursion, check_references
from .ast import PegGrammar
from .engine import Matcher, ParseState, RuleSlot
from .errors import DepthLimitError, OptionError
from .options import Hook, RuleOptions, normalize_table
from .parser import parse_peg_grammar
from .translate import lower_rule


class Exposure:
    PRIVATE_INTERNAL = "private_internal"  # only other rules can use it
    PUBLIC_INTERNAL = "public_internal"    # export
    PRIVATE_ENTRY = "private_entry"        # parser
    PUBLIC_ENTRY = "public_entry"          # parser + export


def classify(name: str, opts: RuleOptions) -> Tuple[str, Optional[str]]:
    """(exposure, entry-point name or None) for one rule."""
    if opts.parser is False:
        return (Exposure.PUBLIC_INTERNAL if opts.export else Exposure.PRIVATE_INTERNAL), None
    entry = name if opts.parser is True else opts.parser
    return (Exposure.PUBLIC_ENTRY if opts.export else Exposure.PRIVATE_ENTRY), entry


@dataclass(frozen=True)
class CompiledRule:
    name: str
    matcher: Matcher
    exposure: str
    entry_name: Optional[str]
    options: RuleOptions = field(default_factory=RuleOptions, repr=False)


@dataclass(frozen=True)
class ParseResult:
    """Result of one entry-point call.

    Unpacks as the six-part shape
    ("ok", values, rest, context, (line, column), offset) or
    ("error", message, rest, context, (line, column), offset).
    On failure the position is the furthest point the parse reached.

    `offset` counts UTF-8 bytes; `char_offset` is the same point as an
    index into the decoded text. `rest` has the type of the input.
    """
    ok: bool
    values: List[Any]
    rest: Union[str, bytes]
    context: Dict[str, Any]
    line: Tuple[int, int]
    offset: int
    error: Optional[str] = None
    char_offset: int = 0

    def __iter__(self) -> Iterator[Any]:
        yield "ok" if self.ok else "error"
        yield self.values if self.ok else self.error
        yield self.rest
        yield self.context
        yield self.line
        yield self.offset


@dataclass
class PegProgram:
    """Compiled PEG program."""
    grammar: PegGrammar
    rules: Dict[str, CompiledRule]

    @classmethod
    def from_source(
        cls,
        src: Union[str, PegGrammar],
        options: Optional[Mapping[str, Mapping[str, Any]]] = None,
        hooks: Optional[Mapping[str, Hook]] = None,
        externals: Optional[Mapping[str, Matcher]] = None,
    ) -> "PegProgram":
        return compile_grammar(src, options, hooks, externals)

    def entry_rule(self, entry: str) -> CompiledRule:
        for r in self.rules.values():
            if r.entry_name == entry:
                return r
        raise KeyError(f"'{entry}' is not an entry point")

    def entry_points(self) -> Dict[str, Callable[..., ParseResult]]:
        return {
            r.entry_name: partial(self.parse, r.entry_name)
            for r in self.rules.values() if r.entry_name is not None
        }

    def exports(self) -> Dict[str, Matcher]:
        public = (Exposure.PUBLIC_INTERNAL, Exposure.PUBLIC_ENTRY)
        return {r.name: r.matcher for r in self.rules.values() if r.exposure in public}

    def parse(
        self,
        entry: str,
        text: Union[str, bytes],
        context: Optional[Mapping[str, Any]] = None,
        max_depth: Optional[int] = None,
    ) -> ParseResult:
        return PegRunner(self).run(entry, text, context=context, max_depth=max_depth)


class PegRunner:
    """Execute an entry point of a PEG program on input text.

    `pos` is a character index into the (decoded) text. With `max_depth`
    set, nesting rule applications deeper than that fails the parse; without
    it the interpreter's recursion limit is the bound. Either way the result
    is an ordinary error result.
    """
    def __init__(self, program: PegProgram):
        self.program = program

    def run(
        self,
        entry: str,
        text: Union[str, bytes],
        pos: int = 0,
        context: Optional[Mapping[str, Any]] = None,
        max_depth: Optional[int] = None,
    ) -> ParseResult:
        rule = self.program.entry_rule(entry)
        raw: Optional[bytes] = None
        if isinstance(text, (bytes, bytearray)):
            raw = bytes(text)
            text = raw.decode("utf-8")
        ctx: Dict[str, Any] = {} if context is None else dict(context)
        state = ParseState(text, max_depth=max_depth)

        def result(ok: bool, at: int, **kw: Any) -> ParseResult:
            nbytes = len(text[:at].encode("utf-8", "surrogatepass"))
            return ParseResult(
                ok=ok,
                rest=raw[nbytes:] if raw is not None else text[at:],
                line=state.line_col(at),
                offset=nbytes,
                char_offset=at,
                **kw,
            )

        try:
            out = rule.matcher(state, pos, ctx)
        except DepthLimitError as e:
            return result(False, state.reached, values=[], context=ctx, error=str(e))
        except RecursionError:
            err = DepthLimitError(max_depth)
            return result(False, state.reached, values=[], context=ctx, error=str(err))

        if out.ok:
            return result(True, out.pos, values=list(out.values), context=out.context)
        at = max(state.fail_at, out.pos)
        return result(False, at, values=[], context=out.context, error=state.error_message())


def _check_entry_names(rules: Mapping[str, CompiledRule]) -> None:
    seen: Dict[str, str] = {}
    for r in rules.values():
        if r.entry_name is None:
            continue
        other = seen.get(r.entry_name)
        if other is not None:
            raise OptionError(r.name, f"entry point '{r.entry_name}' is already used by rule '{other}'")
        seen[r.entry_name] = r.name


def compile_grammar(
    src: Union[str, PegGrammar],
    options: Optional[Mapping[str, Mapping[str, Any]]] = None,
    hooks: Optional[Mapping[str, Hook]] = None,
    externals: Optional[Mapping[str, Matcher]] = None,
) -> PegProgram:
    """
    compile_grammar
    ===============
    PEG source (or an already parsed grammar) + rule options -> PegProgram.

    1) parse the grammar text
    2) validate options, resolve hook and alias names
    3) check references, left recursion and collect contracts
    4) lower every rule; references go through RuleSlots bound at the end,
       so rules may refer to rules defined later
    5) classify each rule's exposure

    Any error aborts; nothing partial is returned.
    """
    g = src if isinstance(src, PegGrammar) else parse_peg_grammar(src)
    table = normalize_table(g, options, hooks, externals)

    aliased = {name for name, o in table.items() if o.alias is not None}
    check_references(g, skip=aliased)
    check_left_recursion(g, opaque=aliased)
    check_collect(g, table)

    slots = {name: RuleSlot(name) for name in g.rules}
    rules: Dict[str, CompiledRule] = {}
    for name, rd in g.rules.items():
        opts = table[name]
        matcher = lower_rule(rd, opts, slots)
        exposure, entry = classify(name, opts)
        rules[name] = CompiledRule(name, matcher, exposure, entry, opts)
    for name, slot in slots.items():
        slot.bind(rules[name].matcher)

    _check_entry_names(rules)
    return PegProgram(grammar=g, rules=rules)
