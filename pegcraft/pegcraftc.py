# pegcraft/pegcraftc.py
"""pegcraftc – pegcraft CLI

사용 예)
    $ python -m pegcraft.pegcraftc check tests/grammars/csv.peg -D
    $ python -m pegcraft.pegcraftc parse tests/grammars/csv.peg --entry line --text "1,2,3"
    $ python -m pegcraft.pegcraftc rules tests/grammars/csv.peg --options tests/grammars/csv.json

기능
----
- check : PEG 문법(+ 규칙 옵션)을 컴파일하여 검증 및 요약 출력
- parse : 지정한 규칙을 진입점으로 입력 텍스트를 파싱하고 결과 출력
- rules : 규칙별 공개 범위(exposure)와 진입점 이름 출력

디버그 모드(-D/--debug)를 켜면 단계별 진행 상황과 AST/규칙 표를 출력합니다.
"""

from __future__ import annotations
import argparse
import sys
from typing import Any, Dict, Optional

# ------------------------------
# 헬퍼
# ------------------------------

def _eprint(*args, **kw) -> None:
    print(*args, file=sys.stderr, **kw)

# ------------------------------
# 파이프라인 로딩
# ------------------------------

def _load_options(path: Optional[str], debug: bool) -> Dict[str, Dict[str, Any]]:
    if not path:
        return {}
    from .loader import load_rule_options
    table = load_rule_options(path)
    if debug: _eprint("[DEBUG] options loaded | rules=%d" % len(table))
    return table


def _load_program(grammar_path: str, options: Dict[str, Dict[str, Any]], debug: bool):
    """
    .peg 파일을 읽어 AST → 옵션 검증 → 정적 검사 → matcher 생성까지 수행.
    """
    from .loader import load_grammar_text
    from .peg.parser import parse_peg_grammar
    from .peg.runtime import compile_grammar

    src = load_grammar_text(grammar_path)
    g = parse_peg_grammar(src)
    if debug: _eprint("[DEBUG] AST ready | rules=%d start=%s" % (len(g.rules), g.start))

    prog = compile_grammar(g, options)
    if debug: _eprint("[DEBUG] program compiled | rules=%d entry_points=%d exports=%d" %
                      (len(prog.rules), len(prog.entry_points()), len(prog.exports())))
    return prog

# ------------------------------
# 디버그 출력 헬퍼
# ------------------------------

def _print_ast(g) -> None:
    from .peg.ast import format_grammar
    _eprint("\n[AST]\n" + format_grammar(g))


def _rule_table(prog) -> str:
    width = max((len(n) for n in prog.rules), default=0)
    lines = []
    for name, r in prog.rules.items():
        entry = f"  -> {r.entry_name}" if r.entry_name else ""
        lines.append(f"{name:<{width}}  {r.exposure}{entry}")
    return "\n".join(lines)

# ------------------------------
# 커맨드 구현
# ------------------------------

def cmd_check(args) -> int:
    try:
        options = _load_options(args.options, args.debug)
        prog = _load_program(args.file, options, debug=args.debug)
    except SyntaxError as e:
        _eprint("[SYNTAX ERROR]")
        _eprint(str(e))
        return 2
    except Exception as e:
        _eprint("[ERROR]", type(e).__name__, str(e))
        return 2

    if args.debug:
        _print_ast(prog.grammar)
        _eprint("\n[Rules]")
        _eprint(_rule_table(prog))

    print(f"[CHECK OK] rules={len(prog.rules)} entry_points={len(prog.entry_points())}")
    return 0


def cmd_parse(args) -> int:
    try:
        options = _load_options(args.options, args.debug)
        prog = _load_program(args.file, options, debug=args.debug)
        if args.entry not in prog.entry_points():
            # 진입점이 아닌 규칙이면 parser 옵션을 붙여 다시 컴파일
            opts = dict(options.get(args.entry, {}))
            opts["parser"] = True
            options = {**options, args.entry: opts}
            prog = _load_program(args.file, options, debug=args.debug)
            if args.debug: _eprint(f"[DEBUG] '{args.entry}' promoted to entry point")

        if args.text is not None:
            text = args.text
        else:
            with open(args.input, "r", encoding="utf-8") as f:
                text = f.read()
        res = prog.parse(args.entry, text, max_depth=args.max_depth)
    except SyntaxError as e:
        _eprint("[SYNTAX ERROR]")
        _eprint(str(e))
        return 2
    except Exception as e:
        _eprint("[ERROR]", type(e).__name__, str(e))
        return 2

    line, col = res.line
    if not res.ok:
        _eprint(f"[PARSE FAIL] {line}:{col} (offset {res.offset}) {res.error}")
        return 1

    print(f"[PARSE OK] {line}:{col} offset={res.offset}")
    for i, v in enumerate(res.values):
        print(f"{i:03d}: {v!r}")
    if res.rest:
        print(f"rest: {res.rest!r}")
    if args.debug and res.context:
        _eprint(f"[DEBUG] context={res.context!r}")
    return 0


def cmd_rules(args) -> int:
    try:
        options = _load_options(args.options, False)
        prog = _load_program(args.file, options, debug=False)
    except SyntaxError as e:
        _eprint("[SYNTAX ERROR]")
        _eprint(str(e))
        return 2
    except Exception as e:
        _eprint("[ERROR]", type(e).__name__, str(e))
        return 2

    print(_rule_table(prog))
    return 0


# ------------------------------
# 엔트리포인트
# ------------------------------

def main(argv: Optional[list[str]] = None) -> int:
    ap = argparse.ArgumentParser(prog="pegcraftc", description="pegcraft PEG compiler CLI")
    sub = ap.add_subparsers(dest="cmd", required=True)

    p_check = sub.add_parser("check", help="문법을 컴파일하여 오류 유무를 확인합니다")
    p_check.add_argument("file", help=".peg 문법 파일")
    p_check.add_argument("--options", help="규칙 옵션 JSON 파일")
    p_check.add_argument("-D", "--debug", action="store_true", help="디버그 정보를 상세 출력")
    p_check.set_defaults(func=cmd_check)

    p_parse = sub.add_parser("parse", help="문법으로 입력 텍스트를 파싱합니다")
    p_parse.add_argument("file", help=".peg 문법 파일")
    p_parse.add_argument("--entry", required=True, help="진입 규칙(또는 진입점 이름)")
    p_parse.add_argument("--options", help="규칙 옵션 JSON 파일")
    src_group = p_parse.add_mutually_exclusive_group(required=True)
    src_group.add_argument("--text", help="직접 입력 텍스트")
    src_group.add_argument("--input", help="입력 텍스트 파일 경로")
    p_parse.add_argument("-D", "--debug", action="store_true", help="디버그 정보를 상세 출력")
    p_parse.add_argument("--max-depth", type=int, default=None, help="규칙 중첩 깊이 상한 (기본: 제한 없음)")
    p_parse.set_defaults(func=cmd_parse)

    p_rules = sub.add_parser("rules", help="규칙별 공개 범위와 진입점을 출력합니다")
    p_rules.add_argument("file", help=".peg 문법 파일")
    p_rules.add_argument("--options", help="규칙 옵션 JSON 파일")
    p_rules.set_defaults(func=cmd_rules)

    args = ap.parse_args(argv)
    return int(args.func(args))

if __name__ == "__main__":
    sys.exit(main())
