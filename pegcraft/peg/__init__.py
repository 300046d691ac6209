# pegcraft/peg/__init__.py
"""PEG grammar compiler.

This package provides:
- AST nodes for PEG grammars (with `< >` extraction groups)
- A PEG grammar parser (the grammar of PEG is written out in parser.py)
- Matcher combinators with Packrat-style memoization
- Per-rule options (collect, token, tag, ignore, hooks, ...) and the
  compiler that ties everything into a PegProgram
"""

from .ast import (
    Literal, CharRange, CharClass, Any, Seq, Choice, Repeat, And, Not, Ref,
    Group, Extract, RuleDef, PegGrammar, to_peg, format_grammar,
)
from .engine import Position, Token, ParseState, Outcome
from .errors import (
    PegError, GrammarSyntaxError, UndefinedRuleError, OptionError,
    LeftRecursionError, DepthLimitError,
)
from .options import RuleOptions, KNOWN_OPTIONS
from .parser import parse_peg_grammar
from .runtime import (
    Exposure, CompiledRule, ParseResult, PegProgram, PegRunner,
    classify, compile_grammar,
)
