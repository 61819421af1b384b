"""Promotion rules and guarded arithmetic over the numeric value tower."""

"""
The tower itself is Python's own numbers: ``int``, ``float``, ``complex``
and ``decimal.Decimal``.  This module only decides which kind a mixed
operation produces and turns arithmetic faults into ``EvaluationError``.

Generality order (a result is never less general than its inputs):

    INTEGER < DOUBLE < IMAGINARY < COMPLEX < PRECISE
"""

import cmath
import math
from decimal import Decimal, InvalidOperation, localcontext

from algebra.errors import EvaluationError

INTEGER = 0
DOUBLE = 1
IMAGINARY = 2
COMPLEX = 3
PRECISE = 4


def is_number(value) -> bool:
    """True for tower values.  Booleans are not numbers here."""
    return isinstance(value, (int, float, complex, Decimal)) and not isinstance(value, bool)


def generality(value) -> int:
    if isinstance(value, Decimal):
        return PRECISE
    if isinstance(value, complex):
        return IMAGINARY if value.real == 0 and value.imag != 0 else COMPLEX
    if isinstance(value, float):
        return DOUBLE
    return INTEGER


def _as_kind(value, kind: int):
    if kind == PRECISE:
        if isinstance(value, complex):
            if value.imag != 0:
                raise EvaluationError(
                    "Precise values cannot carry an imaginary part.", "E204")
            value = value.real
        return value if isinstance(value, Decimal) else Decimal(repr(value) if isinstance(value, float) else value)
    if kind >= IMAGINARY:
        return complex(value)
    if kind == DOUBLE:
        return float(value)
    return value


def promote(a, b):
    """Return *a* and *b* converted to the more general of their two kinds."""
    kind = max(generality(a), generality(b))
    return _as_kind(a, kind), _as_kind(b, kind)


def is_zero(value) -> bool:
    return is_number(value) and value == 0


def is_real(value) -> bool:
    return is_number(value) and not isinstance(value, complex)


def is_integral(value) -> bool:
    """True for ints and for real values with no fractional part."""
    if isinstance(value, bool) or not is_real(value):
        return False
    if isinstance(value, int):
        return True
    try:
        return math.isfinite(value) and value == int(value)
    except (OverflowError, ValueError):
        return False


def is_negative(value) -> bool:
    return is_real(value) and value < 0


def is_near(a, b, tolerance: float) -> bool:
    return abs(complex(a) - complex(b)) <= tolerance * max(1.0, abs(complex(b)))


def negate(value):
    return -value


# ── Arithmetic ───────────────────────────────────────────────────────────

def add(a, b):
    a, b = promote(a, b)
    return a + b


def subtract(a, b):
    a, b = promote(a, b)
    return a - b


def multiply(a, b):
    a, b = promote(a, b)
    return a * b


def divide(a, b):
    """Divide *a* by *b*.  Two ints that divide exactly stay an int."""
    if is_zero(b):
        raise EvaluationError("Division by zero.", "E202")
    if generality(a) == INTEGER and generality(b) == INTEGER and a % b == 0:
        return a // b
    a, b = promote(a, b)
    return a / b


def floor_divide(a, b):
    if is_zero(b):
        raise EvaluationError("Division by zero.", "E202")
    a, b = promote(a, b)
    if isinstance(a, complex):
        raise EvaluationError("Integer division is not defined for complex values.", "E204")
    return a // b


def modulo(a, b):
    if is_zero(b):
        raise EvaluationError("Modulo by zero.", "E202")
    a, b = promote(a, b)
    if isinstance(a, complex):
        raise EvaluationError("Modulo is not defined for complex values.", "E204")
    return a % b


def power(base, exponent):
    """Raise *base* to *exponent*.

    ``0`` to a non-positive power is an error, as is any overflow.  A
    negative real base with a fractional exponent gives the principal
    complex value.
    """
    if is_zero(base) and is_real(exponent) and exponent <= 0:
        raise EvaluationError("Zero cannot be raised to a non-positive power.", "E203")
    if is_zero(base) and isinstance(exponent, complex) and exponent.real <= 0:
        raise EvaluationError("Zero cannot be raised to a non-positive power.", "E203")
    base, exponent = promote(base, exponent)
    try:
        if isinstance(base, int) and exponent < 0:
            return float(base) ** exponent
        if isinstance(base, float) and base < 0 and not float(exponent).is_integer():
            return complex(base) ** exponent
        if isinstance(base, Decimal) and base < 0 and exponent != exponent.to_integral_value():
            raise EvaluationError(
                "Precise values cannot take a fractional power of a negative base.", "E204")
        return base ** exponent
    except OverflowError:
        raise EvaluationError("Numeric overflow in power.", "E204")
    except (ZeroDivisionError, InvalidOperation) as e:
        raise EvaluationError(f"Invalid power: {e}", "E204")


def compare(a, b) -> int:
    """Three-way comparison of two real values."""
    if isinstance(a, complex) or isinstance(b, complex):
        raise EvaluationError("Complex numbers cannot be ordered.", "E207")
    a, b = promote(a, b)
    return (a > b) - (a < b)


def factorial(value):
    if not is_real(value):
        raise EvaluationError("Factorial is not defined for complex values.", "E204")
    if is_integral(value):
        n = int(value)
        if n < 0:
            raise EvaluationError("Factorial of a negative integer.", "E204")
        return math.factorial(n)
    # non-integral reals go through the gamma function
    try:
        return math.gamma(float(value) + 1)
    except (ValueError, OverflowError) as e:
        raise EvaluationError(f"Factorial failed: {e}", "E204")


def to_decimal(value, precision: int) -> Decimal:
    with localcontext() as ctx:
        ctx.prec = precision
        return +Decimal(value)


def tidy(value, tolerance: float):
    """Return a cleaner equivalent of a computed root or solution.

    Drops a negligible imaginary part and turns near-integral floats into
    ints.  Used for presenting solutions, never inside arithmetic.
    """
    if isinstance(value, complex):
        if abs(value.imag) <= tolerance:
            value = value.real
        else:
            real = value.real if abs(value.real) > tolerance else 0.0
            return complex(real, value.imag)
    if isinstance(value, float) and math.isfinite(value):
        nearest = round(value)
        if abs(value - nearest) <= tolerance:
            return int(nearest)
    return value


def cmath_or_math(name: str, value, allow_complex: bool):
    """Apply the elementary function *name* to *value*.

    Real inputs use :mod:`math`; complex inputs (or real inputs outside the
    real domain when *allow_complex* is set) use :mod:`cmath`.
    """
    if isinstance(value, Decimal):
        value = float(value)
    try:
        if isinstance(value, complex):
            return getattr(cmath, name)(value)
        return getattr(math, name)(value)
    except ValueError:
        pass
    except OverflowError:
        raise EvaluationError(f"{name}({format_number(value)}) overflows.", "E204")
    if allow_complex and hasattr(cmath, name):
        try:
            return getattr(cmath, name)(complex(value))
        except (ValueError, OverflowError):
            pass
    raise EvaluationError(f"{name}({format_number(value)}) is outside the real domain.", "E204")


# ── Formatting ───────────────────────────────────────────────────────────

def format_number(value) -> str:
    """Canonical text for a number; the parser reads it back to the same kind."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, complex):
        if value.real == 0:
            return f"{_format_real(value.imag)}j"
        sign = "-" if value.imag < 0 else "+"
        return f"({_format_real(value.real)} {sign} {_format_real(abs(value.imag))}j)"
    return _format_real(value)


def _format_real(value) -> str:
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, float):
        return repr(value)
    return str(value)
