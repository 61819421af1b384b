"""
SymCore: command-line entry point.

    python main.py simplify "2x + 3x"
    python main.py solve "x^2 = 9"
    python main.py eval "x^2 + y" --set x=3 --set y=pi
    python main.py system "x + y = 3" "x - y = 1" --json
    python main.py limit "sin(x)/x" --at 0
    python main.py area "sin(x)" --from 0 --to pi

Settings (tolerance, complex mode, log level, ...) come from the persisted
settings store; ``--log-level`` overrides the stored level.
"""

import argparse
import json
import logging
import sys

import algebra
from algebra import numeric, storage
from algebra.config import load_config

COMMANDS = ("eval", "simplify", "expand", "diff", "integrate", "solve", "system", "limit", "area")


def _render(value) -> str:
    if isinstance(value, list):
        return "[" + ", ".join(_render(v) for v in value) + "]"
    if isinstance(value, dict):
        return ", ".join(f"{k} = {_render(v)}" for k, v in value.items())
    if value is None:
        return "null"
    if numeric.is_number(value) or isinstance(value, bool):
        return numeric.format_number(value)
    return str(value)


def _jsonable(value):
    if isinstance(value, list):
        return [_jsonable(v) for v in value]
    if isinstance(value, dict):
        return {k: _jsonable(v) for k, v in value.items()}
    if isinstance(value, (bool, int, float, str)) or value is None:
        return value
    return _render(value)


def _bindings(pairs, config) -> dict:
    bindings = {}
    for pair in pairs or []:
        name, sep, text = pair.partition("=")
        if not sep or not name.strip():
            raise argparse.ArgumentTypeError(f"--set expects name=value, got '{pair}'")
        bindings[name.strip()] = algebra.parse(text, config).evaluate(config=config)
    return bindings


def run(args, config):
    """Execute one command and return its (unrendered) result."""
    text = " ".join(args.expression)
    if args.command == "system":
        return algebra.solve_system(args.expression, [args.var] if args.var else None, config)
    if args.command == "solve":
        return algebra.solve(text, args.var, config)
    tree = algebra.parse(text, config)
    if args.command == "eval":
        return tree.evaluate(_bindings(args.set, config), config=config)
    if args.command == "simplify":
        return tree.simplify(config)
    if args.command == "expand":
        return tree.expand(collect=True, config=config)
    if args.command == "diff":
        return algebra.differentiate(tree, args.var, config)
    if args.command == "limit":
        return algebra.limit(tree, args.var, _number(args.at, config), args.side, config)
    if args.command == "area":
        return algebra.definite_integral(tree, args.var, _number(args.lower, config),
                                         _number(args.upper, config), config=config)
    return algebra.integrate(tree, args.var, config)


def _number(text: str, config):
    """A bound or limit point: a number, ``inf``/``-inf`` or constant text like ``2pi``."""
    if text.strip().lstrip("+-") in ("inf", "oo"):
        return float("-inf") if text.strip().startswith("-") else float("inf")
    return algebra.parse(text, config).evaluate(config=config)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="symcore", description="Symbolic expression engine")
    parser.add_argument("command", choices=COMMANDS)
    parser.add_argument("expression", nargs="+",
                        help="expression text (one equation per argument for 'system')")
    parser.add_argument("--var", help="variable to differentiate, integrate or solve for")
    parser.add_argument("--set", action="append", metavar="NAME=VALUE",
                        help="bind a variable for 'eval' (repeatable)")
    parser.add_argument("--at", default="0", help="point a 'limit' approaches (inf allowed)")
    parser.add_argument("--side", choices=["both", "left", "right"], default="both",
                        help="direction of a 'limit'")
    parser.add_argument("--from", dest="lower", default="0", help="lower bound for 'area'")
    parser.add_argument("--to", dest="upper", default="1", help="upper bound for 'area'")
    parser.add_argument("--json", action="store_true", help="print the result as JSON")
    parser.add_argument("--log-level", choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    parser.add_argument("--save", action="store_true", help="record the result in the history")
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    config = load_config()
    logging.basicConfig(level=args.log_level or config.log_level,
                        format="%(levelname)s %(name)s: %(message)s")

    try:
        result = run(args, config)
    except (algebra.EngineError, argparse.ArgumentTypeError) as e:
        if args.json:
            payload = e.to_dict() if isinstance(e, algebra.EngineError) else {"code": "P100", "message": str(e)}
            print(json.dumps({"error": payload}))
        else:
            code = getattr(e, "code", "P100")
            print(f"error {code}: {e}", file=sys.stderr)
        return 1

    rendered = _render(result)
    if args.save:
        storage.add_history(args.command, " ; ".join(args.expression), rendered)
    if args.json:
        print(json.dumps({"command": args.command, "input": args.expression,
                          "result": _jsonable(result)}))
    else:
        print(rendered)
    return 0


if __name__ == "__main__":
    sys.exit(main())
