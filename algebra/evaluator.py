"""Numeric and symbolic evaluation of expression trees."""

"""
``evaluate(expr, bindings)`` substitutes the bound variables and computes
whatever it can.  When every free variable is bound the result is a plain
Python value (a tower number, bool, str, list, dict or None).  When some
variable stays free the node is rebuilt from its evaluated operands and
returned simplified instead of failing; pass ``strict=True`` to get an
``EvaluationError`` in that case.
"""

import math
from collections.abc import Mapping
from functools import singledispatch
from typing import Optional

from algebra import grammar, numeric
from algebra.config import EngineConfig, resolve
from algebra.errors import EvaluationError, UnsupportedOperationError
from algebra.nodes import (
    Add, ArrayLiteral, BinaryOperation, Call, Conditional, Divide, Expression,
    Group, Index, Literal, MapLiteral, Member, Modulo, Multiply, Pow,
    Relational, Subtract, Unary, Variable, lift,
)


class _Env:
    __slots__ = ("bindings", "config")

    def __init__(self, bindings: dict, config: EngineConfig):
        self.bindings = bindings
        self.config = config


def _normalize_bindings(bindings) -> dict:
    if not bindings:
        return {}
    if not isinstance(bindings, Mapping):
        raise TypeError("bindings must be a mapping of variable names to values")
    return {(k.name if isinstance(k, Variable) else k): v for k, v in bindings.items()}


def is_determinate(value) -> bool:
    return not isinstance(value, Expression)


def evaluate(expr: Expression, bindings=None, *, config: Optional[EngineConfig] = None,
             strict: bool = False):
    """Evaluate *expr* under *bindings* (names or ``Variable`` nodes to values)."""
    env = _Env(_normalize_bindings(bindings), resolve(config))
    result = _eval(expr, env)
    if strict and isinstance(result, Expression):
        free = sorted(result.variables())
        raise EvaluationError(
            f"Unbound variable{'s' if len(free) != 1 else ''}: {', '.join(free) or str(result)}",
            "E201")
    return result


def evaluate_number(expr: Expression, bindings=None, config: Optional[EngineConfig] = None):
    """Evaluate and insist on a tower number."""
    value = evaluate(expr, bindings, config=config, strict=True)
    if not numeric.is_number(value):
        raise EvaluationError(f"Expected a number, got {value!r}", "E204")
    return value


def _symbolic(node: Expression, config: EngineConfig) -> Expression:
    from algebra.simplifier import simplify
    return simplify(node, config)


@singledispatch
def _eval(node, env: _Env):
    raise UnsupportedOperationError(f"Cannot evaluate {type(node).__name__}", "U300")


@_eval.register
def _(node: Literal, env: _Env):
    return node.value


@_eval.register
def _(node: Variable, env: _Env):
    if node.name in env.bindings:
        value = env.bindings[node.name]
        if isinstance(value, Expression):
            # bound to another expression: evaluate it without this binding
            inner = {k: v for k, v in env.bindings.items() if k != node.name}
            return _eval(value, _Env(inner, env.config))
        return value
    if env.config.use_constants and node.name in grammar.CONSTANTS:
        return grammar.CONSTANTS[node.name]
    return node


@_eval.register
def _(node: Group, env: _Env):
    return _eval(node.inner, env)


# ── Arithmetic ──────────────────────────────────────────────────────────

def _arith_add(a, b):
    if numeric.is_zero(b) and numeric.generality(b) <= numeric.generality(a):
        return a
    return numeric.add(a, b)


def _arith_multiply(a, b):
    if numeric.is_zero(a) or numeric.is_zero(b):
        return numeric.multiply(a, b)
    if b == 1 and numeric.generality(b) <= numeric.generality(a):
        return a
    return numeric.multiply(a, b)


_ARITHMETIC = {
    Add: _arith_add,
    Subtract: numeric.subtract,
    Multiply: _arith_multiply,
    Divide: numeric.divide,
    Modulo: numeric.modulo,
    Pow: numeric.power,
}


def _require_numbers(node, a, b):
    for value in (a, b):
        if not numeric.is_number(value):
            raise EvaluationError(
                f"'{node.symbol}' needs numbers, got {type(value).__name__}", "E204")


@_eval.register
def _(node: BinaryOperation, env: _Env):
    left = _eval(node.left, env)
    right = _eval(node.right, env)
    if isinstance(node, Divide) and numeric.is_zero(right):
        raise EvaluationError("Division by zero.", "E202")
    if isinstance(node, Modulo) and numeric.is_zero(right):
        raise EvaluationError("Modulo by zero.", "E202")
    if is_determinate(left) and is_determinate(right):
        if isinstance(node, Add) and isinstance(left, str) and isinstance(right, str):
            return left + right
        _require_numbers(node, left, right)
        return _ARITHMETIC[type(node)](left, right)
    return _symbolic(node.rebuild(lift(left), lift(right)), env.config)


@_eval.register
def _(node: Unary, env: _Env):
    value = _eval(node.operand, env)
    if not is_determinate(value):
        return _symbolic(node.rebuild(value), env.config)
    op = node.op
    if op in ("-", "%") or not node.prefix:
        if not numeric.is_number(value):
            raise EvaluationError(f"'{op}' needs a number, got {value!r}", "E204")
    if not node.prefix:
        if op == "!":
            return numeric.factorial(value)
        if op == "%":
            return numeric.divide(value, 100)
    elif op == "-":
        return -value
    elif op == "+":
        return value
    elif op == "!":
        return not value
    elif op == "~":
        if isinstance(value, int) and not isinstance(value, bool):
            return ~value
        raise EvaluationError("'~' needs an integer.", "E204")
    raise EvaluationError(f"Unknown unary operator '{op}'", "E204")


# ── Relational and logical operators ────────────────────────────────────

def _int_operands(op, a, b):
    if not (isinstance(a, int) and isinstance(b, int)):
        raise EvaluationError(f"'{op}' needs integers.", "E204")
    return a, b


def _combinatoric(op, a, b):
    n, k = _int_operands(op, a, b)
    if n < 0 or k < 0:
        raise EvaluationError(f"'{op}' needs non-negative integers.", "E204")
    return math.perm(n, k) if op == "P" else math.comb(n, k)


def _compare(op, a, b):
    if op in ("==", "="):
        return a == b
    if op == "!=":
        return a != b
    if numeric.is_number(a) and numeric.is_number(b):
        c = numeric.compare(a, b)
    elif isinstance(a, str) and isinstance(b, str):
        c = (a > b) - (a < b)
    else:
        raise EvaluationError(f"Cannot compare {a!r} and {b!r}.", "E207")
    return {"<": c < 0, "<=": c <= 0, ">": c > 0, ">=": c >= 0}[op]


def _bitwise(op, a, b):
    a, b = _int_operands(op, a, b)
    if op == "&":
        return a & b
    if op == "|":
        return a | b
    if op == "^":
        return a ^ b
    if b < 0:
        raise EvaluationError("Negative shift count.", "E204")
    return a << b if op == "<<" else a >> b


@_eval.register
def _(node: Relational, env: _Env):
    op = node.op
    left = _eval(node.left, env)
    if op in ("&&", "and", "||", "or") and is_determinate(left):
        # short circuit once the left side decides the result
        if op in ("&&", "and") and not left:
            return False
        if op in ("||", "or") and left:
            return True
    if op == "??" and is_determinate(left) and left is not None:
        return left
    right = _eval(node.right, env)
    if not (is_determinate(left) and is_determinate(right)):
        return Relational(op, lift(left), lift(right))
    if op in ("&&", "and", "||", "or"):
        return bool(right)
    if op == "??":
        return right
    if op in ("==", "=", "!=", "<", "<=", ">", ">="):
        return _compare(op, left, right)
    if op in ("&", "|", "^", "<<", ">>"):
        return _bitwise(op, left, right)
    if op == "~/":
        return numeric.floor_divide(left, right)
    if op in ("P", "C"):
        return _combinatoric(op, left, right)
    raise EvaluationError(f"Unknown operator '{op}'", "E204")


# ── Functions ───────────────────────────────────────────────────────────

def _reciprocal(name, fn):
    def apply(x, allow_complex):
        denominator = numeric.cmath_or_math(fn, x, allow_complex)
        if denominator == 0:
            raise EvaluationError(f"{name} is undefined at {numeric.format_number(x)}.", "E204")
        return 1 / denominator
    return apply


def _log(x, allow_complex, base=10):
    if numeric.is_zero(x):
        raise EvaluationError("Logarithm of zero.", "E204")
    numerator = numeric.cmath_or_math("log", x, allow_complex)
    denominator = numeric.cmath_or_math("log", base, allow_complex)
    if denominator == 0:
        raise EvaluationError("Logarithm base must not be 1.", "E204")
    return numerator / denominator


def _ln(x, allow_complex):
    if numeric.is_zero(x):
        raise EvaluationError("Logarithm of zero.", "E204")
    return numeric.cmath_or_math("log", x, allow_complex)


_BUILTINS = {
    "sin": lambda x, c: numeric.cmath_or_math("sin", x, c),
    "cos": lambda x, c: numeric.cmath_or_math("cos", x, c),
    "tan": lambda x, c: numeric.cmath_or_math("tan", x, c),
    "asin": lambda x, c: numeric.cmath_or_math("asin", x, c),
    "acos": lambda x, c: numeric.cmath_or_math("acos", x, c),
    "atan": lambda x, c: numeric.cmath_or_math("atan", x, c),
    "sinh": lambda x, c: numeric.cmath_or_math("sinh", x, c),
    "cosh": lambda x, c: numeric.cmath_or_math("cosh", x, c),
    "tanh": lambda x, c: numeric.cmath_or_math("tanh", x, c),
    "sec": _reciprocal("sec", "cos"),
    "csc": _reciprocal("csc", "sin"),
    "cot": _reciprocal("cot", "tan"),
    "exp": lambda x, c: numeric.cmath_or_math("exp", x, c),
    "ln": _ln,
    "log": _log,
    "sqrt": lambda x, c: numeric.cmath_or_math("sqrt", x, c),
    "abs": lambda x, c: abs(x),
}


def call_function(name: str, args: list, config: EngineConfig):
    """Apply the built-in or configured function *name* to numeric *args*."""
    if name in config.functions:
        try:
            return config.functions[name](*args)
        except (ValueError, ArithmeticError, TypeError) as e:
            raise EvaluationError(f"{name}() failed: {e}", "E204")
    if name not in _BUILTINS:
        raise EvaluationError(f"Unknown function '{name}'.", "E205")
    for arg in args:
        if not numeric.is_number(arg):
            raise EvaluationError(f"{name}() needs numeric arguments.", "E204")
    if name == "sqrt" and numeric.generality(args[0]) == numeric.INTEGER and args[0] >= 0:
        root = math.isqrt(args[0])
        if root * root == args[0]:
            return root
    return _BUILTINS[name](*args[:1], config.complex_mode, *args[1:])


@_eval.register
def _(node: Call, env: _Env):
    args = [_eval(a, env) for a in node.args]
    if all(is_determinate(a) for a in args):
        return call_function(node.name, args, env.config)
    return _symbolic(Call(node.name, tuple(lift(a) for a in args)), env.config)


# ── Structure ───────────────────────────────────────────────────────────

@_eval.register
def _(node: Conditional, env: _Env):
    test = _eval(node.test, env)
    if is_determinate(test):
        return _eval(node.if_true if test else node.if_false, env)
    return Conditional(lift(test), lift(_eval(node.if_true, env)), lift(_eval(node.if_false, env)))


@_eval.register
def _(node: Member, env: _Env):
    obj = _eval(node.obj, env)
    if not is_determinate(obj):
        return Member(obj, node.field)
    if isinstance(obj, Mapping):
        if node.field in obj:
            return obj[node.field]
        raise EvaluationError(f"No key '{node.field}'.", "E206")
    if node.field.startswith("_") or not hasattr(obj, node.field):
        raise EvaluationError(f"No member '{node.field}' on {type(obj).__name__}.", "E206")
    value = getattr(obj, node.field)
    if not callable(value):
        return value
    try:
        return value()
    except TypeError as e:
        raise EvaluationError(f"Member '{node.field}' needs arguments: {e}", "E206")


@_eval.register
def _(node: Index, env: _Env):
    obj = _eval(node.obj, env)
    key = _eval(node.key, env)
    if not (is_determinate(obj) and is_determinate(key)):
        return Index(lift(obj), lift(key))
    try:
        if isinstance(key, float) and key.is_integer():
            key = int(key)
        return obj[key]
    except (KeyError, IndexError, TypeError) as e:
        raise EvaluationError(f"Lookup failed: {e}", "E206")


@_eval.register
def _(node: ArrayLiteral, env: _Env):
    items = [_eval(i, env) for i in node.items]
    if all(is_determinate(i) for i in items):
        return items
    return ArrayLiteral(tuple(lift(i) for i in items))


@_eval.register
def _(node: MapLiteral, env: _Env):
    entries = [(_eval(k, env), _eval(v, env)) for k, v in node.entries]
    if all(is_determinate(k) and is_determinate(v) for k, v in entries):
        try:
            return {k: v for k, v in entries}
        except TypeError as e:
            raise EvaluationError(f"Invalid map key: {e}", "E206")
    return MapLiteral(tuple((lift(k), lift(v)) for k, v in entries))
