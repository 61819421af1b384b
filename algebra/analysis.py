"""Limits and numeric calculus over the evaluator."""

"""
``limit`` substitutes the point first.  A quotient that comes out as
``0/0`` or ``inf/inf`` is handed to L'Hopital's rule, and anything still
undecided is estimated by evaluating ever closer to the point.  The point
may be ``math.inf`` or ``-math.inf``.

``numeric_derivative`` and ``definite_integral`` evaluate the tree at
sample points.  ``cross_check`` sets them against ``differentiate`` and
``integrate`` so a symbolic result can be validated numerically.
"""

import logging
import math
from typing import Optional

import numpy as np

from algebra import numeric
from algebra.calculus import choose_variable, differentiate, try_integrate
from algebra.config import EngineConfig, resolve
from algebra.errors import EngineError, EvaluationError, UnsupportedOperationError
from algebra.evaluator import evaluate_number
from algebra.nodes import Divide, Expression, unwrap
from algebra.simplifier import simplify

logger = logging.getLogger(__name__)

DIRECTIONS = ("both", "left", "right")

# L'Hopital's rule is applied at most this many times in a row
MAX_LHOPITAL = 6

# distances (or magnitudes, for an infinite point) used to approach a point
_STEPS = tuple(10.0 ** -k for k in range(2, 9))


def _value_at(expr: Expression, name: str, point, config: EngineConfig):
    """The value at *point*, or ``None`` where the tree is undefined."""
    try:
        value = evaluate_number(expr, {name: point}, config)
    except EvaluationError:
        return None
    if isinstance(value, float) and math.isnan(value):
        return None
    return value


def _approach(expr: Expression, name: str, point, side: int, config: EngineConfig) -> list:
    """Values at points closing in on *point* from one *side* (-1 or +1)."""
    values = []
    for step in _STEPS:
        if math.isinf(point):
            x = math.copysign(1.0 / step, point)
        else:
            x = point + side * step * max(1.0, abs(point))
        value = _value_at(expr, name, x, config)
        if value is not None:
            values.append(value)
    return values


def _unbounded(values: list, config: EngineConfig) -> bool:
    if len(values) < 3 or any(isinstance(v, complex) for v in values[-3:]):
        return False
    a, b, c = (abs(v) for v in values[-3:])
    return a < b < c and c > 1 / math.sqrt(config.tolerance)


def _point(value) -> float:
    if isinstance(value, str):
        value = float(value.strip())
    if not numeric.is_real(value):
        raise UnsupportedOperationError(f"A limit point must be a real number, got {value!r}", "U300")
    return value


# ── Classification ───────────────────────────────────────────────────────

def is_infinity(expr: Expression, variable=None, point=0,
                config: Optional[EngineConfig] = None) -> bool:
    """True when ``|expr|`` grows without bound as *variable* nears *point*."""
    config = resolve(config)
    name = choose_variable(expr, variable, config)
    point = _point(point)
    if not math.isinf(point):
        value = _value_at(expr, name, point, config)
        if value is not None:
            return isinstance(value, float) and math.isinf(value)
    return any(_unbounded(_approach(expr, name, point, side, config), config) for side in (-1, 1))


def _is_zero_at(expr: Expression, name: str, point, config: EngineConfig) -> bool:
    if math.isinf(point):
        values = _approach(expr, name, point, 1, config)
        return bool(values) and abs(complex(values[-1])) <= math.sqrt(config.tolerance)
    value = _value_at(expr, name, point, config)
    return value is not None and abs(complex(value)) <= config.tolerance


def is_indeterminate(expr: Expression, variable=None, point=0,
                     config: Optional[EngineConfig] = None) -> bool:
    """True for a quotient of the form ``0/0`` or ``inf/inf`` at *point*."""
    config = resolve(config)
    expr = unwrap(expr)
    if not isinstance(expr, Divide):
        return False
    name = choose_variable(expr, variable, config)
    point = _point(point)
    top, bottom = expr.left, expr.right
    if _is_zero_at(top, name, point, config) and _is_zero_at(bottom, name, point, config):
        return True
    return is_infinity(top, name, point, config) and is_infinity(bottom, name, point, config)


# ── Limits ───────────────────────────────────────────────────────────────

def limit(expr: Expression, variable=None, point=0, direction: str = "both",
          config: Optional[EngineConfig] = None):
    """The limit of *expr* as *variable* approaches *point*.

    *direction* is ``"both"``, ``"left"`` or ``"right"``.  Returns a number,
    ``math.inf`` or ``-math.inf``.  Raises ``EvaluationError`` (E208) when
    the one-sided limits differ or the values do not settle.
    """
    config = resolve(config)
    if direction not in DIRECTIONS:
        raise ValueError(f"direction must be one of {', '.join(DIRECTIONS)}, got {direction!r}")
    name = choose_variable(expr, variable, config)
    point = _point(point)
    if math.isinf(point):
        direction = "left" if point > 0 else "right"
    return _limit(simplify(expr, config), name, point, direction, config, 0)


def _limit(expr: Expression, name: str, point, direction: str, config: EngineConfig, depth: int):
    if not math.isinf(point):
        value = _value_at(expr, name, point, config)
        if value is not None and not (isinstance(value, float) and math.isinf(value)):
            return numeric.tidy(value, config.tolerance)
    if depth < MAX_LHOPITAL and is_indeterminate(expr, name, point, config):
        quotient = unwrap(expr)
        try:
            top = differentiate(quotient.left, name, config)
            bottom = differentiate(quotient.right, name, config)
        except UnsupportedOperationError as e:
            logger.debug("L'Hopital's rule unavailable for %s: %s", expr, e.message)
        else:
            logger.debug("L'Hopital's rule: %s -> (%s) / (%s)", expr, top, bottom)
            return _limit(simplify(Divide(top, bottom), config), name, point, direction,
                          config, depth + 1)
    return _numeric_limit(expr, name, point, direction, config)


def _side_limit(expr: Expression, name: str, point, side: int, config: EngineConfig):
    values = _approach(expr, name, point, side, config)
    if len(values) < 2:
        raise EvaluationError(f"{expr} is undefined near {name} = {point}", "E208")
    if _unbounded(values, config):
        return math.copysign(math.inf, values[-1])
    loose = math.sqrt(config.tolerance)
    if not numeric.is_near(values[-1], values[-2], loose):
        raise EvaluationError(f"{expr} does not settle as {name} approaches {point}", "E208")
    return numeric.tidy(values[-1], loose)


def _numeric_limit(expr: Expression, name: str, point, direction: str, config: EngineConfig):
    if direction == "left":
        return _side_limit(expr, name, point, -1, config)
    if direction == "right":
        return _side_limit(expr, name, point, 1, config)
    left = _side_limit(expr, name, point, -1, config)
    right = _side_limit(expr, name, point, 1, config)
    if left == right or (not math.isinf(left) and not math.isinf(right)
                         and numeric.is_near(left, right, math.sqrt(config.tolerance))):
        return left
    raise EvaluationError(
        f"The limit of {expr} at {name} = {point} does not exist: "
        f"{numeric.format_number(left)} from the left, {numeric.format_number(right)} from the right",
        "E208")


# ── Numeric calculus ─────────────────────────────────────────────────────

def numeric_derivative(expr: Expression, variable=None, at=0, step: Optional[float] = None,
                       config: Optional[EngineConfig] = None):
    """Five-point central difference of *expr* at *at*."""
    config = resolve(config)
    name = choose_variable(expr, variable, config)
    h = step or 1e-3 * max(1.0, abs(at))
    f = [evaluate_number(expr, {name: at + k * h}, config) for k in (-2, -1, 1, 2)]
    slope = (f[0] - 8 * f[1] + 8 * f[2] - f[3]) / (12 * h)
    return numeric.tidy(slope, math.sqrt(config.tolerance))


def simpson(expr: Expression, variable=None, lower=0, upper=1, intervals: int = 1000,
            config: Optional[EngineConfig] = None):
    """Composite Simpson's rule over *intervals* panels (rounded up to even)."""
    config = resolve(config)
    name = choose_variable(expr, variable, config)
    if intervals <= 0:
        raise ValueError("intervals must be positive")
    intervals += intervals % 2
    xs = np.linspace(float(lower), float(upper), intervals + 1)
    ys = np.array([evaluate_number(expr, {name: float(x)}, config) for x in xs])
    weights = np.ones(intervals + 1)
    weights[1:-1:2] = 4
    weights[2:-1:2] = 2
    total = (xs[1] - xs[0]) / 3 * np.dot(weights, ys)
    return complex(total) if np.iscomplexobj(total) else float(total)


def definite_integral(expr: Expression, variable=None, lower=0, upper=1, method: str = "auto",
                      config: Optional[EngineConfig] = None):
    """The integral of *expr* from *lower* to *upper*.

    ``method="symbolic"`` evaluates an antiderivative at the bounds,
    ``"numeric"`` uses Simpson's rule and ``"auto"`` tries the first and
    falls back to the second.
    """
    config = resolve(config)
    if method not in ("auto", "symbolic", "numeric"):
        raise ValueError(f"method must be auto, symbolic or numeric, got {method!r}")
    name = choose_variable(expr, variable, config)
    if method != "numeric":
        antiderivative = try_integrate(expr, name, config)
        if antiderivative is not None:
            try:
                area = numeric.subtract(evaluate_number(antiderivative, {name: upper}, config),
                                        evaluate_number(antiderivative, {name: lower}, config))
                return numeric.tidy(area, config.tolerance)
            except EvaluationError as e:
                if method == "symbolic":
                    raise
                logger.debug("Antiderivative %s failed at the bounds: %s", antiderivative, e.message)
        elif method == "symbolic":
            raise UnsupportedOperationError(f"No integration rule for {expr}", "U302")
    return numeric.tidy(simpson(expr, name, lower, upper, config=config), math.sqrt(config.tolerance))


def cross_check(expr: Expression, variable=None, at=0, lower=0, upper=1,
                config: Optional[EngineConfig] = None) -> dict:
    """Symbolic against numeric derivative (at *at*) and integral (over the bounds).

    Each part maps ``symbolic``, ``numeric`` and ``error``; a symbolic value
    is ``None`` where no rule applied.
    """
    config = resolve(config)
    name = choose_variable(expr, variable, config)
    report = {}

    try:
        symbolic = evaluate_number(differentiate(expr, name, config), {name: at}, config)
    except EngineError as e:
        logger.info("No symbolic derivative of %s at %s: %s", expr, at, e.message)
        symbolic = None
    report["derivative"] = _compare(symbolic, numeric_derivative(expr, name, at, config=config))

    try:
        symbolic = definite_integral(expr, name, lower, upper, "symbolic", config)
    except EngineError as e:
        logger.info("No symbolic integral of %s: %s", expr, e.message)
        symbolic = None
    report["integral"] = _compare(symbolic, definite_integral(expr, name, lower, upper, "numeric", config))
    return report


def _compare(symbolic, approximate) -> dict:
    error = None if symbolic is None else abs(complex(symbolic) - complex(approximate))
    return {"symbolic": symbolic, "numeric": approximate, "error": error}
