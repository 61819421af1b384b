"""Symbolic differentiation and integration."""

"""
``differentiate`` is complete over the arithmetic part of the grammar and
the built-in functions; anything else raises ``UnsupportedOperationError``.

``integrate`` is a set of heuristics, tried in a fixed order:

1. variable-free integrands give ``c * x``;
2. polynomials are integrated coefficient-wise (coefficients stay exact);
3. otherwise the node kind decides: sums term by term, products by pulling
   out constant factors and then by parts, quotients by log-derivative,
   long division and partial fractions, and powers/functions of a linear
   argument by their table antiderivatives.

When no heuristic applies the integrand is returned unchanged.  Callers
that need to know use ``try_integrate`` (``None`` on failure) or pass
``strict=True``.
"""

import logging
import math
from fractions import Fraction
from functools import singledispatch
from typing import Optional

from algebra import grammar, numeric
from algebra.config import EngineConfig, resolve
from algebra.errors import EvaluationError, SolverFailure, UnsupportedOperationError
from algebra.evaluator import evaluate_number
from algebra.nodes import (
    Add, ArrayLiteral, Call, Conditional, Divide, Expression, Group, Index,
    Literal, MapLiteral, Member, Modulo, Multiply, ONE, Pow, Relational,
    Subtract, Unary, Variable, ZERO, as_variable_name, is_number_literal,
)
from algebra.polynomial import Polynomial, as_polynomial
from algebra.simplifier import simplify, split_coefficient

logger = logging.getLogger(__name__)


def choose_variable(expr: Expression, variable=None,
                    config: Optional[EngineConfig] = None) -> str:
    """The variable a transform works on when the caller did not name one.

    The sole free variable (``pi`` and ``e`` excluded while constants are on)
    is used; with none, ``x``; with several, ``x`` if present.
    """
    if variable is not None:
        return as_variable_name(variable)
    config = resolve(config)
    names = expr.variables()
    if config.use_constants:
        names -= set(grammar.CONSTANTS)
    if len(names) == 1:
        return names.pop()
    if not names or "x" in names:
        return "x"
    raise UnsupportedOperationError(
        f"Several variables ({', '.join(sorted(names))}); say which one to use.", "U303")


def _call(name: str, *args) -> Call:
    return Call(name, tuple(args))


def _fold_add(items: list) -> Expression:
    if not items:
        return ZERO
    result = items[0]
    for item in items[1:]:
        result = Add(result, item)
    return result


# ── Differentiation ──────────────────────────────────────────────────────

def differentiate(expr: Expression, variable=None,
                  config: Optional[EngineConfig] = None) -> Expression:
    """Return the simplified derivative of *expr*."""
    config = resolve(config)
    name = choose_variable(expr, variable, config)
    return simplify(_derive(expr, name), config)


def _no_rule(node) -> UnsupportedOperationError:
    return UnsupportedOperationError(f"Cannot differentiate {node}", "U301")


@singledispatch
def _derive(node, name: str):
    raise UnsupportedOperationError(f"Cannot differentiate {type(node).__name__}", "U301")


@_derive.register
def _(node: Literal, name: str):
    if not numeric.is_number(node.value):
        raise _no_rule(node)
    return ZERO


@_derive.register
def _(node: Variable, name: str):
    return ONE if node.name == name else ZERO


@_derive.register
def _(node: Add, name: str):
    return Add(_derive(node.left, name), _derive(node.right, name))


@_derive.register
def _(node: Subtract, name: str):
    return Subtract(_derive(node.left, name), _derive(node.right, name))


@_derive.register
def _(node: Multiply, name: str):
    f, g = node.left, node.right
    if not f.contains(name):
        return Multiply(f, _derive(g, name))
    if not g.contains(name):
        return Multiply(_derive(f, name), g)
    return Add(Multiply(_derive(f, name), g), Multiply(f, _derive(g, name)))


@_derive.register
def _(node: Divide, name: str):
    f, g = node.left, node.right
    if not g.contains(name):
        return Divide(_derive(f, name), g)
    return Divide(Subtract(Multiply(_derive(f, name), g), Multiply(f, _derive(g, name))),
                  Pow(g, Literal(2)))


@_derive.register
def _(node: Modulo, name: str):
    # a % c has slope 1 in a between the jumps
    if node.right.contains(name):
        raise _no_rule(node)
    return _derive(node.left, name)


@_derive.register
def _(node: Pow, name: str):
    f, g = node.left, node.right
    if not g.contains(name):
        if is_number_literal(g):
            lowered = Literal(numeric.subtract(g.value, 1))
        else:
            lowered = Subtract(g, ONE)
        return Multiply(Multiply(g, Pow(f, lowered)), _derive(f, name))
    if not f.contains(name):
        return Multiply(Multiply(node, _call("ln", f)), _derive(g, name))
    return Multiply(node, Add(Multiply(_derive(g, name), _call("ln", f)),
                              Divide(Multiply(g, _derive(f, name)), f)))


@_derive.register
def _(node: Unary, name: str):
    if node.prefix and node.op == "-":
        return Unary("-", _derive(node.operand, name))
    if node.prefix and node.op == "+":
        return _derive(node.operand, name)
    if not node.prefix and node.op == "%":
        return Divide(_derive(node.operand, name), Literal(100))
    raise _no_rule(node)


@_derive.register
def _(node: Group, name: str):
    return _derive(node.inner, name)


@_derive.register
def _(node: Conditional, name: str):
    return Conditional(node.test, _derive(node.if_true, name), _derive(node.if_false, name))


def _square(u):
    return Pow(u, Literal(2))


# d/du of each built-in function, as a function of its argument u
_OUTER_DERIVATIVES = {
    "sin": lambda u: _call("cos", u),
    "cos": lambda u: Unary("-", _call("sin", u)),
    "tan": lambda u: Divide(ONE, _square(_call("cos", u))),
    "asin": lambda u: Divide(ONE, _call("sqrt", Subtract(ONE, _square(u)))),
    "acos": lambda u: Unary("-", Divide(ONE, _call("sqrt", Subtract(ONE, _square(u))))),
    "atan": lambda u: Divide(ONE, Add(ONE, _square(u))),
    "sinh": lambda u: _call("cosh", u),
    "cosh": lambda u: _call("sinh", u),
    "tanh": lambda u: Divide(ONE, _square(_call("cosh", u))),
    "sec": lambda u: Multiply(_call("sec", u), _call("tan", u)),
    "csc": lambda u: Unary("-", Multiply(_call("csc", u), _call("cot", u))),
    "cot": lambda u: Unary("-", Divide(ONE, _square(_call("sin", u)))),
    "exp": lambda u: _call("exp", u),
    "ln": lambda u: Divide(ONE, u),
    "log": lambda u: Divide(ONE, Multiply(u, _call("ln", Literal(10)))),
    "sqrt": lambda u: Divide(ONE, Multiply(Literal(2), _call("sqrt", u))),
    "abs": lambda u: Divide(u, _call("abs", u)),
}


@_derive.register
def _(node: Call, name: str):
    if node.name == "log" and len(node.args) == 2:
        u, base = node.args
        return _derive(Divide(_call("ln", u), _call("ln", base)), name)
    outer = _OUTER_DERIVATIVES.get(node.name)
    if outer is None or len(node.args) != 1:
        raise UnsupportedOperationError(f"No derivative known for {node.name}()", "U301")
    u = node.args[0]
    return Multiply(outer(u), _derive(u, name))


@_derive.register
def _(node: Polynomial, name: str):
    if node.variable != name:
        return ZERO
    return node.derivative()


@_derive.register(Relational)
@_derive.register(Member)
@_derive.register(Index)
@_derive.register(ArrayLiteral)
@_derive.register(MapLiteral)
def _(node, name: str):
    raise _no_rule(node)


# ── Integration ──────────────────────────────────────────────────────────

class _Integrator:
    __slots__ = ("name", "config", "depth")

    def __init__(self, name: str, config: EngineConfig, depth: int = 0):
        self.name = name
        self.config = config
        self.depth = depth

    @property
    def x(self) -> Variable:
        return Variable(self.name)

    def deeper(self) -> "_Integrator":
        return _Integrator(self.name, self.config, self.depth + 1)

    def is_constant(self, node: Expression) -> bool:
        """True for numeric expressions that do not involve the variable."""
        if node.contains(self.name):
            return False
        for n in node.walk():
            if isinstance(n, (Relational, Member, Index, ArrayLiteral, MapLiteral)):
                return False
            if isinstance(n, Literal) and not numeric.is_number(n.value):
                return False
        return True

    def linear(self, node: Expression):
        """``(a, b)`` when *node* is ``a*x + b`` with ``a != 0``, else ``None``."""
        poly = as_polynomial(node, self.name, self.config)
        if poly is None or poly.degree != 1:
            return None
        a, b = poly.coefficients
        return a, b

    def integral(self, node: Expression) -> Optional[Expression]:
        if self.is_constant(node):
            return Multiply(node, self.x)
        poly = as_polynomial(node, self.name, self.config, exact=True)
        if poly is not None:
            return _polynomial_integral(poly, self.x)
        return _antiderivative(node, self)


def try_integrate(expr: Expression, variable=None,
                  config: Optional[EngineConfig] = None) -> Optional[Expression]:
    """Simplified antiderivative of *expr*, or ``None`` when no rule applies."""
    config = resolve(config)
    name = choose_variable(expr, variable, config)
    result = _Integrator(name, config).integral(expr)
    if result is None:
        return None
    return simplify(result, config)


def integrate(expr: Expression, variable=None, config: Optional[EngineConfig] = None,
              strict: bool = False) -> Expression:
    """Return an antiderivative of *expr* (without the constant).

    Integration is partial: when no rule applies the input comes back
    unchanged, or ``UnsupportedOperationError`` (U302) is raised if
    *strict* is set.
    """
    result = try_integrate(expr, variable, config)
    if result is None:
        if strict:
            raise UnsupportedOperationError(f"No integration rule for {expr}", "U302")
        logger.debug("No integration rule for %s; returning it unchanged", expr)
        return expr
    return result


def _polynomial_integral(poly: Polynomial, x: Variable) -> Expression:
    # c*x^(k+1)/(k+1) keeps integer coefficients exact through simplify
    terms = []
    for power in range(poly.degree, -1, -1):
        c = poly.coefficient(power)
        if c == 0:
            continue
        divisor = power + 1
        if isinstance(c, Fraction):
            c, divisor = c.numerator, c.denominator * divisor
        terms.append(Divide(Multiply(Literal(c), Pow(x, Literal(power + 1))), Literal(divisor)))
    return _fold_add(terms)


@singledispatch
def _antiderivative(node, ctx: _Integrator):
    raise UnsupportedOperationError(f"Cannot integrate {type(node).__name__}", "U302")


@_antiderivative.register
def _(node: Literal, ctx: _Integrator):
    # numeric literals never get here: they are constants
    return None


@_antiderivative.register
def _(node: Variable, ctx: _Integrator):
    if node.name == ctx.name:
        return Divide(Pow(node, Literal(2)), Literal(2))
    return Multiply(node, ctx.x)


def _both(ctx: _Integrator, left: Expression, right: Expression, kind):
    a = ctx.integral(left)
    if a is None:
        return None
    b = ctx.integral(right)
    if b is None:
        return None
    return kind(a, b)


@_antiderivative.register
def _(node: Add, ctx: _Integrator):
    return _both(ctx, node.left, node.right, Add)


@_antiderivative.register
def _(node: Subtract, ctx: _Integrator):
    return _both(ctx, node.left, node.right, Subtract)


def _factors(node: Expression) -> list:
    if isinstance(node, Group):
        return _factors(node.inner)
    if isinstance(node, Multiply):
        return _factors(node.left) + _factors(node.right)
    return [node]


def _product(items: list) -> Expression:
    result = items[0]
    for item in items[1:]:
        result = Multiply(result, item)
    return result


@_antiderivative.register
def _(node: Multiply, ctx: _Integrator):
    coefficient, rest = split_coefficient(node, ctx.config)
    if coefficient != 1 and rest != node:
        inner = ctx.integral(rest)
        return None if inner is None else Multiply(Literal(coefficient), inner)
    factors = _factors(node)
    constant = [f for f in factors if ctx.is_constant(f)]
    varying = [f for f in factors if not ctx.is_constant(f)]
    if constant and varying:
        inner = ctx.integral(_product(varying))
        return None if inner is None else Multiply(_product(constant), inner)
    if len(varying) < 2:
        return None
    return _by_parts(varying, ctx)


def _by_parts(factors: list, ctx: _Integrator) -> Optional[Expression]:
    """∫u dv = u*v - ∫v du, first with u the leftmost factor, then the rightmost."""
    if ctx.depth >= ctx.config.max_parts_depth:
        logger.debug("Integration by parts gave up at depth %d", ctx.depth)
        return None
    inner = ctx.deeper()
    for u, dv in ((factors[0], factors[1:]), (factors[-1], factors[:-1])):
        v = inner.integral(_product(dv))
        if v is None:
            continue
        v = simplify(v, ctx.config)
        try:
            du = _derive(u, ctx.name)
        except UnsupportedOperationError:
            continue
        rest = inner.integral(simplify(Multiply(v, du), ctx.config))
        if rest is None:
            continue
        logger.debug("Integrated %s by parts with u = %s", _product(factors), u)
        return Subtract(Multiply(u, v), rest)
    return None


@_antiderivative.register
def _(node: Divide, ctx: _Integrator):
    numerator, denominator = node.left, node.right
    if ctx.is_constant(denominator):
        inner = ctx.integral(numerator)
        return None if inner is None else Divide(inner, denominator)

    slope = simplify(_safe_derive(denominator, ctx.name), ctx.config)
    if slope is not None and not is_number_literal(slope, 0):
        ratio = simplify(Divide(numerator, slope), ctx.config)
        if ctx.is_constant(ratio):
            return Multiply(ratio, _call("ln", denominator))

    top = as_polynomial(numerator, ctx.name, ctx.config)
    bottom = as_polynomial(denominator, ctx.name, ctx.config)
    if top is not None and bottom is not None:
        return _rational_integral(top, bottom, ctx)

    if ctx.is_constant(numerator):
        reciprocal = _reciprocal(denominator)
        if reciprocal is not None:
            inner = ctx.integral(reciprocal)
            return None if inner is None else Multiply(numerator, inner)
    return None


def _safe_derive(node: Expression, name: str):
    try:
        return _derive(node, name)
    except UnsupportedOperationError:
        return ZERO


def _reciprocal(node: Expression) -> Optional[Expression]:
    """``node^-1`` written as a power, for denominators like ``sqrt(u)`` or ``u^n``."""
    if isinstance(node, Group):
        return _reciprocal(node.inner)
    if isinstance(node, Pow):
        if is_number_literal(node.right):
            return Pow(node.left, Literal(-node.right.value))
        return Pow(node.left, Unary("-", node.right))
    if isinstance(node, Call) and node.name == "sqrt" and len(node.args) == 1:
        return Pow(node.args[0], Literal(-0.5))
    if isinstance(node, Call) and node.name == "exp" and len(node.args) == 1:
        return _call("exp", Unary("-", node.args[0]))
    return None


def _shifted(x: Variable, root) -> Expression:
    """``x - root`` for a real root."""
    if root == 0:
        return x
    if numeric.is_negative(root):
        return Add(x, Literal(-root))
    return Subtract(x, Literal(root))


def _exact_sqrt(value):
    if isinstance(value, int) and value >= 0 and math.isqrt(value) ** 2 == value:
        return math.isqrt(value)
    return math.sqrt(value)


def _rational_integral(top: Polynomial, bottom: Polynomial, ctx: _Integrator):
    if bottom.is_zero:
        return None
    parts = []
    if top.degree >= bottom.degree:
        try:
            quotient, top = top.divmod(bottom, ctx.config)
        except EvaluationError:
            return None
        parts.append(_polynomial_integral(quotient, ctx.x))
        if top.is_zero:
            return _fold_add(parts)
    rest = _partial_fractions(top, bottom, ctx)
    if rest is None:
        return None
    return _fold_add(parts + [rest])


def _partial_fractions(top: Polynomial, bottom: Polynomial, ctx: _Integrator):
    x = ctx.x
    if bottom.degree == 2 and top.degree <= 1:
        a, b, c = bottom.coefficients
        discriminant = numeric.subtract(numeric.multiply(b, b), numeric.multiply(4, numeric.multiply(a, c)))
        if numeric.is_real(discriminant) and discriminant < 0:
            return _irreducible_quadratic(top, bottom, ctx)
    try:
        roots = bottom.roots(ctx.config)
    except SolverFailure:
        return None
    if any(isinstance(r, complex) for r in roots):
        logger.debug("Partial fractions over complex roots of %s are not supported", bottom)
        return None

    distinct = []
    for r in roots:
        if not any(numeric.is_near(r, d, ctx.config.tolerance) for d in distinct):
            distinct.append(r)

    if len(distinct) == len(roots):
        slope = bottom.derivative()
        terms = []
        for r in distinct:
            weight = numeric.tidy(numeric.divide(top.evaluate_at(r), slope.evaluate_at(r)),
                                  ctx.config.tolerance)
            if weight != 0:
                terms.append(Multiply(Literal(weight), _call("ln", _shifted(x, r))))
        return _fold_add(terms)

    if len(distinct) == 1:
        # p(x) / (c (x - r)^n) with p expanded around r
        r, n = distinct[0], bottom.degree
        shifted = _shifted(x, r)
        terms = []
        derivative, factorial = top, 1
        for j in range(top.degree + 1):
            if j:
                derivative = derivative.derivative()
                factorial *= j
            weight = numeric.divide(derivative.evaluate_at(r), numeric.multiply(factorial, bottom.leading))
            weight = numeric.tidy(weight, ctx.config.tolerance)
            if weight == 0:
                continue
            power = j - n + 1
            if power == 0:
                terms.append(Multiply(Literal(weight), _call("ln", shifted)))
            else:
                terms.append(Divide(Multiply(Literal(weight), Pow(shifted, Literal(power))),
                                    Literal(power)))
        return _fold_add(terms)
    return None


def _irreducible_quadratic(top: Polynomial, bottom: Polynomial, ctx: _Integrator):
    """∫(p1*x + p0)/(a*x^2 + b*x + c): a log part and an atan part."""
    a, b, c = bottom.coefficients
    p1 = top.coefficient(1) or 0
    p0 = top.coefficient(0) or 0
    alpha = numeric.divide(p1, numeric.multiply(2, a))
    beta = numeric.subtract(p0, numeric.multiply(alpha, b))
    root = _exact_sqrt(numeric.subtract(numeric.multiply(4, numeric.multiply(a, c)), numeric.multiply(b, b)))
    terms = []
    if alpha != 0:
        terms.append(Multiply(Literal(alpha), _call("ln", bottom.to_expression())))
    if beta != 0:
        argument = Divide(Add(Multiply(Literal(numeric.multiply(2, a)), ctx.x), Literal(b)), Literal(root))
        terms.append(Multiply(Divide(Literal(numeric.multiply(2, beta)), Literal(root)),
                              _call("atan", argument)))
    return _fold_add(terms)


def _scale_by_slope(result: Expression, slope) -> Expression:
    return result if slope == 1 else Divide(result, Literal(slope))


@_antiderivative.register
def _(node: Pow, ctx: _Integrator):
    base, exponent = node.left, node.right
    if ctx.is_constant(exponent):
        line = ctx.linear(base)
        if line is None:
            return None
        slope = line[0]
        try:
            n = evaluate_number(exponent, config=ctx.config)
        except EvaluationError:
            n = None
        if n is not None and n == -1:
            return _scale_by_slope(_call("ln", base), slope)
        raised = Literal(numeric.add(n, 1)) if n is not None else Add(exponent, ONE)
        return _scale_by_slope(Divide(Pow(base, raised), raised), slope)
    if ctx.is_constant(base):
        line = ctx.linear(exponent)
        if line is None:
            return None
        slope = line[0]
        if base == Variable("e") and ctx.config.use_constants:
            return _scale_by_slope(node, slope)
        return Divide(node, Multiply(Literal(slope), _call("ln", base)))
    return None


@_antiderivative.register
def _(node: Unary, ctx: _Integrator):
    if not (node.op in ("-", "+") and node.prefix) and not (node.op == "%" and not node.prefix):
        return None
    inner = ctx.integral(node.operand)
    if inner is None:
        return None
    if node.op == "-":
        return Unary("-", inner)
    if node.op == "%":
        return Divide(inner, Literal(100))
    return inner


@_antiderivative.register
def _(node: Group, ctx: _Integrator):
    return ctx.integral(node.inner)


# antiderivative of f(u) with respect to u
_TABLE_INTEGRALS = {
    "sin": lambda u: Unary("-", _call("cos", u)),
    "cos": lambda u: _call("sin", u),
    "tan": lambda u: Unary("-", _call("ln", _call("cos", u))),
    "exp": lambda u: _call("exp", u),
    "ln": lambda u: Subtract(Multiply(u, _call("ln", u)), u),
    "log": lambda u: Divide(Subtract(Multiply(u, _call("ln", u)), u), _call("ln", Literal(10))),
    "sqrt": lambda u: Divide(Multiply(Literal(2), Pow(u, Literal(1.5))), Literal(3)),
    "sinh": lambda u: _call("cosh", u),
    "cosh": lambda u: _call("sinh", u),
}


@_antiderivative.register
def _(node: Call, ctx: _Integrator):
    table = _TABLE_INTEGRALS.get(node.name)
    if table is None or len(node.args) != 1:
        return None
    u = node.args[0]
    line = ctx.linear(u)
    if line is None:
        return None
    return _scale_by_slope(table(u), line[0])


@_antiderivative.register
def _(node: Conditional, ctx: _Integrator):
    if node.test.contains(ctx.name):
        return None
    return _both(ctx, node.if_true, node.if_false,
                 lambda a, b: Conditional(node.test, a, b))


@_antiderivative.register
def _(node: Polynomial, ctx: _Integrator):
    if node.variable != ctx.name and node.degree > 0:
        return Multiply(node, ctx.x)
    return _polynomial_integral(node, ctx.x)


@_antiderivative.register(Modulo)
@_antiderivative.register(Relational)
@_antiderivative.register(Member)
@_antiderivative.register(Index)
@_antiderivative.register(ArrayLiteral)
@_antiderivative.register(MapLiteral)
def _(node, ctx: _Integrator):
    return None
