from __future__ import annotations

import json
from pathlib import Path

import pytest

from pegcraft.loader import load_grammar_text, load_rule_options
from pegcraft.peg.errors import OptionError
from pegcraft.pegcraftc import main

GRAMMARS = Path(__file__).parent / "grammars"
CSV = str(GRAMMARS / "csv.peg")
CSV_OPTIONS = str(GRAMMARS / "csv.json")


def test_load_grammar_text_normalizes_newlines(tmp_path):
    p = tmp_path / "g.peg"
    p.write_bytes(b"a <- 'x'\r\nb <- 'y'\r")
    assert load_grammar_text(str(p)) == "a <- 'x'\nb <- 'y'\n"


def test_load_rule_options():
    table = load_rule_options(CSV_OPTIONS)
    assert table["num"] == {"collect": True, "export": True}


@pytest.mark.parametrize("content", ["[1, 2]", '{"a": 3}', "{not json"])
def test_load_rule_options_rejects_bad_files(tmp_path, content):
    p = tmp_path / "opts.json"
    p.write_text(content, encoding="utf-8")
    with pytest.raises(OptionError):
        load_rule_options(str(p))


def test_check(capsys):
    assert main(["check", CSV, "--options", CSV_OPTIONS]) == 0
    out = capsys.readouterr().out
    assert out.strip() == "[CHECK OK] rules=3 entry_points=1"


def test_check_debug_dumps_ast_and_rules(capsys):
    assert main(["check", CSV, "--options", CSV_OPTIONS, "-D"]) == 0
    err = capsys.readouterr().err
    assert "[DEBUG] AST ready | rules=3 start=line" in err
    assert "[AST]" in err
    assert "num <- [0-9]+" in err
    assert "line  private_entry  -> line" in err


def test_check_reports_syntax_errors(tmp_path, capsys):
    p = tmp_path / "bad.peg"
    p.write_text("a <- 'x' )\n", encoding="utf-8")
    assert main(["check", str(p)]) == 2
    err = capsys.readouterr().err
    assert err.startswith("[SYNTAX ERROR]")
    assert "found ')'" in err


def test_check_reports_undefined_rules(tmp_path, capsys):
    p = tmp_path / "bad.peg"
    p.write_text("a <- b\n", encoding="utf-8")
    assert main(["check", str(p)]) == 2
    assert "undefined rule 'b'" in capsys.readouterr().err


def test_parse(capsys):
    assert main(["parse", CSV, "--options", CSV_OPTIONS, "--entry", "line", "--text", "1, 22,3"]) == 0
    out = capsys.readouterr().out.splitlines()
    assert out[0] == "[PARSE OK] 1:8 offset=7"
    assert out[1:] == ["000: '1'", "001: '22'", "002: '3'"]


def test_parse_promotes_rule_to_entry_point(tmp_path, capsys):
    src = tmp_path / "in.txt"
    src.write_text("42", encoding="utf-8")
    assert main(["parse", CSV, "--entry", "num", "--input", str(src)]) == 0
    out = capsys.readouterr().out.splitlines()
    assert out[1:] == ["000: '4'", "001: '2'"]


def test_parse_failure_exit_code(capsys):
    assert main(["parse", CSV, "--options", CSV_OPTIONS, "--entry", "line", "--text", "1,x"]) == 1
    err = capsys.readouterr().err
    assert err.startswith("[PARSE FAIL] 1:3 (offset 2)")


def test_parse_max_depth(capsys):
    args = ["parse", CSV, "--options", CSV_OPTIONS, "--entry", "line", "--text", "1,2"]
    assert main(args + ["--max-depth", "1"]) == 1
    err = capsys.readouterr().err
    assert err.startswith("[PARSE FAIL] 1:1 (offset 0) input nested too deeply (limit 1)")
    assert main(args + ["--max-depth", "2"]) == 0


def test_parse_reports_byte_offset(tmp_path, capsys):
    g = tmp_path / "any.peg"
    g.write_text("r <- .+\n", encoding="utf-8")
    assert main(["parse", str(g), "--entry", "r", "--text", "é€"]) == 0
    assert capsys.readouterr().out.splitlines()[0] == "[PARSE OK] 1:3 offset=5"


def test_rules(tmp_path, capsys):
    opts = tmp_path / "o.json"
    opts.write_text(json.dumps({"line": {"parser": "csv_line"}, "num": {"export": True}}), encoding="utf-8")
    assert main(["rules", CSV, "--options", str(opts)]) == 0
    assert capsys.readouterr().out.splitlines() == [
        "line  private_entry  -> csv_line",
        "num   public_internal",
        "sep   private_internal",
    ]
