"""Dense univariate polynomials: the root-finding collaborator."""

"""
``Polynomial`` is an expression node (it renders, evaluates and substitutes
like any other node) and the numeric workhorse behind equation solving and
rational integration.  Coefficients are tower numbers stored from the
highest degree down, so ``Polynomial((1, 0, -9))`` is ``x^2 - 9``.

``as_polynomial(expr, "x")`` recognises expressions that are polynomials in
one variable with numeric coefficients and returns ``None`` for anything
else (other free variables included).  With ``exact=True`` a division of
integer coefficients by an integer keeps a ``Fraction``, so ``x^2/3`` has
the coefficient ``1/3`` rather than ``0.333...``; such coefficients render
as ``n * x^k / d`` and evaluate back to tower numbers.
"""

import cmath
import logging
import math
from dataclasses import dataclass
from decimal import Decimal
from fractions import Fraction
from functools import reduce
from typing import Optional

import numpy as np

from algebra import numeric
from algebra.config import EngineConfig, resolve
from algebra.errors import EvaluationError, SolverFailure, UnsupportedOperationError
from algebra.evaluator import _eval, _Env, _symbolic, evaluate_number, is_determinate
from algebra.nodes import (
    Add, Divide, Expression, Group, Literal, Multiply, Pow, Subtract, Unary,
    Variable, as_variable_name, precedence, render,
)
from algebra.transforms import _substitute, substitute

logger = logging.getLogger(__name__)

# (p)^n is multiplied out by as_polynomial only up to this exponent
MAX_POWER = 64


def _strip(coefficients) -> tuple:
    coefficients = tuple(coefficients)
    start = 0
    while start < len(coefficients) - 1 and coefficients[start] == 0:
        start += 1
    return coefficients[start:] or (0,)


def _is_coefficient(value) -> bool:
    return numeric.is_number(value) or isinstance(value, Fraction)


def _settle(value):
    """A ``Fraction`` back into the tower: an int when whole, else a float."""
    if isinstance(value, Fraction):
        return value.numerator if value.denominator == 1 else float(value)
    return value


def _exact_divide(a, b):
    if isinstance(a, (int, Fraction)) and isinstance(b, (int, Fraction)) and b != 0:
        quotient = Fraction(a) / Fraction(b)
        return quotient.numerator if quotient.denominator == 1 else quotient
    return numeric.divide(a, b)


@dataclass(frozen=True)
class Polynomial(Expression):
    coefficients: tuple = (0,)
    variable: str = "x"

    def __post_init__(self):
        for c in self.coefficients:
            if not _is_coefficient(c) or isinstance(c, bool):
                raise TypeError(f"Polynomial coefficients must be numbers, got {c!r}")
        whole = (c.numerator if isinstance(c, Fraction) and c.denominator == 1 else c
                 for c in self.coefficients)
        object.__setattr__(self, "coefficients", _strip(whole))

    @classmethod
    def from_coefficients(cls, coefficients, variable: str = "x") -> "Polynomial":
        """Build from coefficients in descending order of degree."""
        return cls(tuple(coefficients), variable)

    @classmethod
    def parse(cls, text: str, variable: Optional[str] = None,
              config: Optional[EngineConfig] = None) -> "Polynomial":
        """Parse *text* (``"3x^2 - 2x + 1"``) into a polynomial."""
        from algebra.parser import parse
        expr = parse(text, config)
        if variable is None:
            names = sorted(expr.variables())
            variable = names[0] if len(names) == 1 else "x"
        poly = as_polynomial(expr, variable, config)
        if poly is None:
            raise UnsupportedOperationError(f"'{text}' is not a polynomial in {variable}.", "U305")
        return poly

    # ── Properties ───────────────────────────────────────────────────────

    @property
    def degree(self) -> int:
        return len(self.coefficients) - 1

    @property
    def leading(self):
        return self.coefficients[0]

    @property
    def is_zero(self) -> bool:
        return self.coefficients == (0,) or all(c == 0 for c in self.coefficients)

    def coefficient(self, power: int):
        """Coefficient of ``x^power``; ``None`` outside ``0..degree``."""
        if power < 0 or power > self.degree:
            return None
        return self.coefficients[self.degree - power]

    def free_names(self) -> tuple:
        return (self.variable,) if self.degree > 0 else ()

    @property
    def render_precedence(self) -> float:
        return precedence(self.to_expression())

    def evaluate_at(self, value):
        """Horner evaluation at a number."""
        coefficients = self.coefficients
        if not isinstance(value, (int, Fraction)):
            coefficients = tuple(_settle(c) for c in coefficients)
        result = 0
        for c in coefficients:
            result = numeric.add(numeric.multiply(result, value), c)
        return _settle(result)

    def _horner(self, value: complex) -> complex:
        result = 0j
        for c in self.coefficients:
            result = result * value + complex(c)
        return result

    # ── Arithmetic ───────────────────────────────────────────────────────

    def _coerce(self, other) -> Optional["Polynomial"]:
        if isinstance(other, Polynomial):
            if other.variable == self.variable or other.degree == 0 or self.degree == 0:
                return other
            return None
        if numeric.is_number(other):
            return Polynomial((other,), self.variable)
        return None

    def _variable_with(self, other: "Polynomial") -> str:
        return self.variable if self.degree > 0 or other.degree == 0 else other.variable

    def __add__(self, other):
        poly = self._coerce(other)
        if poly is None:
            return Expression.__add__(self, other)
        a, b = self.coefficients, poly.coefficients
        width = max(len(a), len(b))
        a = (0,) * (width - len(a)) + a
        b = (0,) * (width - len(b)) + b
        return Polynomial(tuple(numeric.add(x, y) for x, y in zip(a, b)), self._variable_with(poly))

    def __radd__(self, other):
        return self.__add__(other) if self._coerce(other) is not None else Expression.__radd__(self, other)

    def __neg__(self):
        return Polynomial(tuple(-c for c in self.coefficients), self.variable)

    def __sub__(self, other):
        poly = self._coerce(other)
        if poly is None:
            return Expression.__sub__(self, other)
        return self + (-poly)

    def __rsub__(self, other):
        poly = self._coerce(other)
        if poly is None:
            return Expression.__rsub__(self, other)
        return poly + (-self)

    def __mul__(self, other):
        poly = self._coerce(other)
        if poly is None:
            return Expression.__mul__(self, other)
        out = [0] * (len(self.coefficients) + len(poly.coefficients) - 1)
        for i, a in enumerate(self.coefficients):
            for j, b in enumerate(poly.coefficients):
                out[i + j] = numeric.add(out[i + j], numeric.multiply(a, b))
        return Polynomial(tuple(out), self._variable_with(poly))

    def __rmul__(self, other):
        return self.__mul__(other) if self._coerce(other) is not None else Expression.__rmul__(self, other)

    def divmod(self, other, config: Optional[EngineConfig] = None):
        """Long division: ``(quotient, remainder)`` with ``deg r < deg other``."""
        config = resolve(config)
        divisor = self._coerce(other)
        if divisor is None:
            raise TypeError(f"Cannot divide a polynomial in {self.variable} by {other!r}")
        divisor = divisor.cleaned(config.tolerance)
        if divisor.is_zero:
            raise EvaluationError("Polynomial division by zero.", "E202")
        variable = self._variable_with(divisor)
        remainder = list(self.coefficients)
        d = divisor.coefficients
        if len(remainder) < len(d):
            return Polynomial((0,), variable), self
        quotient = []
        for i in range(len(remainder) - len(d) + 1):
            factor = numeric.divide(remainder[i], d[0])
            quotient.append(factor)
            for j, c in enumerate(d):
                remainder[i + j] = numeric.subtract(remainder[i + j], numeric.multiply(factor, c))
        rest = Polynomial(tuple(remainder[len(quotient):]) or (0,), variable)
        return Polynomial(tuple(quotient), variable), rest.cleaned(config.tolerance)

    def cleaned(self, tolerance: float) -> "Polynomial":
        """Drop float/complex coefficients smaller than *tolerance*."""
        scale = max((abs(complex(c)) for c in self.coefficients), default=0.0) or 1.0
        out = []
        for c in self.coefficients:
            if isinstance(c, (float, complex)) and abs(c) <= tolerance * max(1.0, scale):
                c = 0
            elif isinstance(c, complex) and abs(c.imag) <= tolerance * max(1.0, scale):
                c = c.real
            out.append(c)
        return Polynomial(tuple(out), self.variable)

    # ── Calculus ─────────────────────────────────────────────────────────

    def derivative(self) -> "Polynomial":
        n = self.degree
        if n == 0:
            return Polynomial((0,), self.variable)
        return Polynomial(tuple(numeric.multiply(c, n - i) for i, c in enumerate(self.coefficients[:-1])),
                          self.variable)

    def antiderivative(self) -> "Polynomial":
        """The antiderivative whose constant term is zero."""
        n = self.degree
        out = [_exact_divide(c, n - i + 1) for i, c in enumerate(self.coefficients)]
        return Polynomial(tuple(out) + (0,), self.variable)

    def integrate_between(self, start, end):
        """Definite integral from *start* to *end*."""
        anti = self.antiderivative()
        return numeric.subtract(anti.evaluate_at(end), anti.evaluate_at(start))

    # ── Roots and factors ────────────────────────────────────────────────

    def roots(self, config: Optional[EngineConfig] = None) -> list:
        """All roots, repeated ones included.

        Degrees 1 and 2 use the closed forms (exact for integer coefficients
        with a perfect-square discriminant).  Higher degrees use
        ``numpy.roots`` followed by Newton polishing.  Near-integral values
        are returned as ints and negligible imaginary parts are dropped.
        """
        config = resolve(config)
        poly = self.cleaned(config.tolerance)
        if poly.is_zero:
            raise SolverFailure("The zero polynomial vanishes everywhere.", "S402")
        coefficients = tuple(float(c) if isinstance(c, (Decimal, Fraction)) else c for c in poly.coefficients)
        if poly.degree == 0:
            return []
        if poly.degree == 1:
            a, b = coefficients
            found = [numeric.divide(-b, a)]
        elif poly.degree == 2:
            found = _quadratic_roots(*coefficients)
        else:
            found = poly._numeric_roots(config)
        return sorted((numeric.tidy(r, config.tolerance) for r in found), key=_root_order)

    def _numeric_roots(self, config: EngineConfig) -> list:
        try:
            found = np.roots(np.array([complex(c) for c in self.coefficients], dtype=complex))
        except np.linalg.LinAlgError as e:
            raise SolverFailure(f"Root finding failed: {e}", "S401")
        if not np.all(np.isfinite(found)):
            raise SolverFailure("Root finding produced non-finite values.", "S401")
        derivative = self.derivative()
        return [self._polish(complex(r), derivative, config) for r in found]

    def _polish(self, root: complex, derivative: "Polynomial", config: EngineConfig) -> complex:
        best, best_error = root, abs(self._horner(root))
        for _ in range(config.max_iterations):
            slope = derivative._horner(root)
            if slope == 0:
                break
            step = self._horner(root) / slope
            root -= step
            error = abs(self._horner(root))
            if error < best_error:
                best, best_error = root, error
            if abs(step) <= config.tolerance * max(1.0, abs(root)):
                break
        else:
            logger.debug("Newton polishing hit %d iterations near %s", config.max_iterations, root)
        return best

    def factorize(self, config: Optional[EngineConfig] = None) -> list:
        """``[leading constant, linear and real quadratic factors...]``.

        Conjugate complex root pairs combine into one real quadratic factor.
        """
        config = resolve(config)
        factors = [Polynomial((self.leading,), self.variable)]
        pending = list(self.roots(config))
        while pending:
            r = pending.pop(0)
            if isinstance(r, complex):
                conjugate = _take_near(pending, r.conjugate(), config.tolerance)
                if conjugate is not None:
                    factors.append(Polynomial(
                        (1, numeric.tidy(-2 * r.real, config.tolerance),
                         numeric.tidy(abs(r) ** 2, config.tolerance)), self.variable))
                    continue
            factors.append(Polynomial((1, -r), self.variable))
        return factors

    def monic(self) -> "Polynomial":
        if self.is_zero:
            return self
        lead = self.leading
        return Polynomial(tuple(numeric.divide(c, lead) for c in self.coefficients), self.variable)

    def gcd(self, other, config: Optional[EngineConfig] = None) -> "Polynomial":
        """Monic greatest common divisor (Euclid with a tolerance)."""
        config = resolve(config)
        a = self.cleaned(config.tolerance)
        b = self._coerce(other).cleaned(config.tolerance)
        while not b.is_zero:
            a, b = b, a.divmod(b, config)[1]
        return a.monic()

    def lcm(self, other, config: Optional[EngineConfig] = None) -> "Polynomial":
        config = resolve(config)
        other = self._coerce(other)
        if self.is_zero or other.is_zero:
            return Polynomial((0,), self.variable)
        quotient, _ = (self * other).divmod(self.gcd(other, config), config)
        return quotient.monic()

    def primitive(self) -> "Polynomial":
        """Divide integer coefficients by their common gcd."""
        if not all(isinstance(c, int) and not isinstance(c, bool) for c in self.coefficients):
            return self
        common = reduce(math.gcd, (abs(c) for c in self.coefficients))
        if common in (0, 1):
            return self
        return Polynomial(tuple(c // common for c in self.coefficients), self.variable)

    # ── Conversion ───────────────────────────────────────────────────────

    def to_expression(self) -> Expression:
        """The equivalent Add/Multiply/Pow tree, highest degree first."""
        x = Variable(self.variable)
        n = self.degree
        result = None
        for i, c in enumerate(self.coefficients):
            power = n - i
            if c == 0 and (result is not None or power > 0):
                continue
            negative = _settle(c) < 0 if isinstance(c, Fraction) else numeric.is_negative(c)
            negative = negative and result is not None
            term = _monomial(-c if negative else c, x, power)
            if result is None:
                result = term
            else:
                result = Subtract(result, term) if negative else Add(result, term)
        return result if result is not None else Literal(0)


def _monomial(c, x: Variable, power: int) -> Expression:
    if isinstance(c, Fraction):
        # n * x^k / d
        return Divide(_monomial(c.numerator, x, power), Literal(c.denominator))
    if power == 0:
        return Literal(c)
    body = x if power == 1 else Pow(x, Literal(power))
    if c == 1:
        return body
    if c == -1:
        return Unary("-", body)
    return Multiply(Literal(c), body)


def _root_order(value):
    if isinstance(value, complex):
        return (value.real, value.imag)
    return (float(value), 0.0)


def _take_near(values: list, target: complex, tolerance: float):
    for i, v in enumerate(values):
        if numeric.is_near(v, target, tolerance):
            return values.pop(i)
    return None


def _quadratic_roots(a, b, c) -> list:
    disc = numeric.subtract(numeric.multiply(b, b), numeric.multiply(4, numeric.multiply(a, c)))
    if all(isinstance(v, int) for v in (a, b, c)) and disc >= 0 and math.isqrt(disc) ** 2 == disc:
        s = math.isqrt(disc)
        return [numeric.divide(-b - s, 2 * a), numeric.divide(-b + s, 2 * a)]
    if numeric.is_real(disc) and disc >= 0:
        s = math.sqrt(disc)
    else:
        s = cmath.sqrt(disc)
    # the numerically stable form avoids cancelling -b against s
    if numeric.is_real(b) and numeric.is_real(s):
        q = -0.5 * (b + math.copysign(s, b) if b != 0 else s)
    else:
        q = -0.5 * (b + s)
    if q == 0:
        return [0.0, 0.0]
    return [q / a, c / q]


# ── Extraction from expression trees ─────────────────────────────────────

class _NotPolynomial(Exception):
    pass


def as_polynomial(expr: Expression, variable="x", config: Optional[EngineConfig] = None,
                  exact: bool = False) -> Optional[Polynomial]:
    """Return *expr* as a ``Polynomial`` in *variable*, or ``None``.

    *exact* keeps integer quotients as ``Fraction`` coefficients.
    """
    name = as_variable_name(variable) or "x"
    divide = _exact_divide if exact else numeric.divide
    try:
        return _extract(expr, name, resolve(config), divide)
    except _NotPolynomial:
        return None


def _constant(expr: Expression, name: str, config: EngineConfig) -> Polynomial:
    try:
        value = evaluate_number(expr, config=config)
    except EvaluationError:
        raise _NotPolynomial()
    if isinstance(value, float) and not math.isfinite(value):
        raise _NotPolynomial()
    return Polynomial((value,), name)


def _extract(expr: Expression, name: str, config: EngineConfig, divide) -> Polynomial:
    if isinstance(expr, Polynomial):
        if expr.variable == name or expr.degree == 0:
            return expr
        raise _NotPolynomial()
    if isinstance(expr, Group):
        return _extract(expr.inner, name, config, divide)
    if isinstance(expr, Variable) and expr.name == name:
        return Polynomial((1, 0), name)
    if not expr.contains(name):
        return _constant(expr, name, config)
    if isinstance(expr, Add):
        return _extract(expr.left, name, config, divide) + _extract(expr.right, name, config, divide)
    if isinstance(expr, Subtract):
        return _extract(expr.left, name, config, divide) - _extract(expr.right, name, config, divide)
    if isinstance(expr, Multiply):
        return _extract(expr.left, name, config, divide) * _extract(expr.right, name, config, divide)
    if isinstance(expr, Divide) and not expr.right.contains(name):
        divisor = _constant(expr.right, name, config).leading
        if divisor == 0:
            raise _NotPolynomial()
        top = _extract(expr.left, name, config, divide)
        return Polynomial(tuple(divide(c, divisor) for c in top.coefficients), name)
    if isinstance(expr, Pow) and not expr.right.contains(name):
        n = _constant(expr.right, name, config).leading
        if not numeric.is_integral(n) or not 0 <= n <= MAX_POWER:
            raise _NotPolynomial()
        base = _extract(expr.left, name, config, divide)
        result = Polynomial((1,), name)
        for _ in range(int(n)):
            result = result * base
        return result
    if isinstance(expr, Unary) and expr.prefix and expr.op in ("-", "+"):
        inner = _extract(expr.operand, name, config, divide)
        return -inner if expr.op == "-" else inner
    raise _NotPolynomial()


# ── Dispatch registrations ───────────────────────────────────────────────

@render.register
def _(node: Polynomial) -> str:
    return render(node.to_expression())


@_eval.register
def _(node: Polynomial, env: _Env):
    if node.degree == 0:
        return _settle(node.leading)
    value = _eval(Variable(node.variable), env)
    if is_determinate(value):
        if not numeric.is_number(value):
            raise EvaluationError(f"Cannot evaluate a polynomial at {value!r}", "E204")
        return node.evaluate_at(value)
    if value == Variable(node.variable):
        return node
    return _symbolic(substitute(node.to_expression(), node.variable, value), env.config)


@_substitute.register
def _(node: Polynomial, target, replacement):
    if node == target:
        return replacement
    if target == Variable(node.variable) and node.degree > 0:
        return _substitute(node.to_expression(), target, replacement)
    return node
