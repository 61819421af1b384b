"""Conversion of expression trees to SymPy, used to cross-check results."""

from decimal import Decimal
from fractions import Fraction
from functools import singledispatch
from typing import Optional

import sympy

from algebra import grammar, numeric
from algebra.config import EngineConfig, resolve
from algebra.errors import UnsupportedOperationError
from algebra.nodes import (
    Add, ArrayLiteral, Call, Conditional, Divide, Group, Index, Literal,
    MapLiteral, Member, Modulo, Multiply, Pow, Relational, Subtract, Unary,
    Variable,
)
from algebra.polynomial import Polynomial

_FUNCTIONS = {
    "sin": sympy.sin, "cos": sympy.cos, "tan": sympy.tan,
    "asin": sympy.asin, "acos": sympy.acos, "atan": sympy.atan,
    "sinh": sympy.sinh, "cosh": sympy.cosh, "tanh": sympy.tanh,
    "sec": sympy.sec, "csc": sympy.csc, "cot": sympy.cot,
    "exp": sympy.exp, "ln": sympy.log, "sqrt": sympy.sqrt, "abs": sympy.Abs,
}

_RELATIONS = {
    "=": sympy.Eq, "==": sympy.Eq, "!=": sympy.Ne,
    "<": sympy.Lt, "<=": sympy.Le, ">": sympy.Gt, ">=": sympy.Ge,
    "&&": sympy.And, "and": sympy.And, "||": sympy.Or, "or": sympy.Or,
    "C": sympy.binomial, "P": sympy.ff,
}


def to_sympy(expr, config: Optional[EngineConfig] = None):
    """Return the SymPy object equivalent to *expr*.

    Raises ``UnsupportedOperationError`` (U304) for nodes SymPy has no
    counterpart for: strings, member access, indexing, collections,
    bitwise operators and user functions.
    """
    return _to_sympy(expr, resolve(config))


def _unsupported(node) -> UnsupportedOperationError:
    return UnsupportedOperationError(f"No SymPy equivalent for {node}", "U304")


def _number(value):
    if isinstance(value, Decimal):
        return sympy.Float(str(value), max(15, len(value.as_tuple().digits)))
    if isinstance(value, complex):
        return sympy.Float(value.real) + sympy.I * sympy.Float(value.imag)
    if isinstance(value, float):
        return sympy.Float(value)
    if isinstance(value, Fraction):
        return sympy.Rational(value.numerator, value.denominator)
    return sympy.Integer(value)


@singledispatch
def _to_sympy(node, config: EngineConfig):
    raise UnsupportedOperationError(f"No SymPy equivalent for {type(node).__name__}", "U304")


@_to_sympy.register
def _(node: Literal, config: EngineConfig):
    if isinstance(node.value, bool):
        return sympy.true if node.value else sympy.false
    if numeric.is_number(node.value):
        return _number(node.value)
    raise _unsupported(node)


@_to_sympy.register
def _(node: Variable, config: EngineConfig):
    if config.use_constants and node.name in grammar.CONSTANTS:
        return sympy.pi if node.name == "pi" else sympy.E
    return sympy.Symbol(node.name)


@_to_sympy.register
def _(node: Add, config: EngineConfig):
    return _to_sympy(node.left, config) + _to_sympy(node.right, config)


@_to_sympy.register
def _(node: Subtract, config: EngineConfig):
    return _to_sympy(node.left, config) - _to_sympy(node.right, config)


@_to_sympy.register
def _(node: Multiply, config: EngineConfig):
    return _to_sympy(node.left, config) * _to_sympy(node.right, config)


@_to_sympy.register
def _(node: Divide, config: EngineConfig):
    return _to_sympy(node.left, config) / _to_sympy(node.right, config)


@_to_sympy.register
def _(node: Modulo, config: EngineConfig):
    return sympy.Mod(_to_sympy(node.left, config), _to_sympy(node.right, config))


@_to_sympy.register
def _(node: Pow, config: EngineConfig):
    return _to_sympy(node.left, config) ** _to_sympy(node.right, config)


@_to_sympy.register
def _(node: Unary, config: EngineConfig):
    operand = _to_sympy(node.operand, config)
    if node.prefix:
        if node.op == "-":
            return -operand
        if node.op == "+":
            return operand
        if node.op == "!":
            return sympy.Not(operand)
    elif node.op == "%":
        return operand / 100
    elif node.op == "!":
        return sympy.factorial(operand)
    raise _unsupported(node)


@_to_sympy.register
def _(node: Relational, config: EngineConfig):
    build = _RELATIONS.get(node.op)
    if build is None:
        raise _unsupported(node)
    return build(_to_sympy(node.left, config), _to_sympy(node.right, config))


@_to_sympy.register
def _(node: Call, config: EngineConfig):
    args = [_to_sympy(a, config) for a in node.args]
    if node.name == "log":
        return sympy.log(args[0], args[1] if len(args) == 2 else 10)
    build = _FUNCTIONS.get(node.name)
    if build is None:
        raise _unsupported(node)
    return build(*args)


@_to_sympy.register
def _(node: Group, config: EngineConfig):
    return _to_sympy(node.inner, config)


@_to_sympy.register
def _(node: Conditional, config: EngineConfig):
    return sympy.Piecewise(
        (_to_sympy(node.if_true, config), _to_sympy(node.test, config)),
        (_to_sympy(node.if_false, config), True),
    )


@_to_sympy.register
def _(node: Polynomial, config: EngineConfig):
    x = sympy.Symbol(node.variable)
    return sympy.Add(*(_number(c) * x ** (node.degree - i) for i, c in enumerate(node.coefficients)))


@_to_sympy.register(Member)
@_to_sympy.register(Index)
@_to_sympy.register(ArrayLiteral)
@_to_sympy.register(MapLiteral)
def _(node, config: EngineConfig):
    raise _unsupported(node)
