# pegcraft/loader.py
"""Grammar and rule-option file loaders."""

from __future__ import annotations
import json
from pathlib import Path
from typing import Any, Dict

from .peg.errors import OptionError


def load_grammar_text(path: str) -> str:
    """
    Load Grammar Text
    """
    text = Path(path).read_text(encoding="utf-8")
    return text.replace("\r\n", "\n").replace("\r", "\n")


def load_rule_options(path: str) -> Dict[str, Dict[str, Any]]:
    """
    Load a JSON options table: {"rule": {"option": value, ...}, ...}

    Hooks and aliases can only be given by name here; they are resolved
    against the registries passed to compile_grammar.
    """
    try:
        table = json.loads(Path(path).read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise OptionError(None, f"{path}: invalid JSON ({e})") from None
    if not isinstance(table, dict):
        raise OptionError(None, f"{path}: top level must be an object of rule -> options")
    for rule, opts in table.items():
        if not isinstance(opts, dict):
            raise OptionError(rule, f"{path}: options must be an object")
    return table
