"""Engine calls wrapped into JSON-ready result dicts for the HTTP API."""

"""
Every function takes plain strings, runs one engine operation and returns a
dict carrying the input, the result (rendered canonically) and a
``summary`` block::

    {"runtime_ms": 0.42, "timestamp": "2024-05-01 12:00:00",
     "engine": "SymCore 1.0.0 / NumPy 1.26.4"}

Engine errors propagate unchanged; ``main`` maps them to status codes.
"""

import logging
import time
from datetime import datetime
from decimal import Decimal
from typing import Optional

import numpy as np

import algebra
from algebra import numeric
from algebra.calculus import choose_variable, try_integrate
from algebra.config import EngineConfig, resolve

logger = logging.getLogger(__name__)


def _summary(t_start: float) -> dict:
    return {
        "runtime_ms": round((time.perf_counter() - t_start) * 1000, 2),
        "timestamp": datetime.now().strftime("%Y-%m-%d %H:%M:%S"),
        "engine": f"SymCore {algebra.__version__} / NumPy {np.__version__}",
    }


def to_jsonable(value):
    """Numbers stay numbers where JSON allows it; everything else is rendered."""
    if isinstance(value, bool) or value is None or isinstance(value, str):
        return value
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return value if np.isfinite(value) else numeric.format_number(value)
    if isinstance(value, (complex, Decimal)):
        return numeric.format_number(value)
    if isinstance(value, (list, tuple)):
        return [to_jsonable(v) for v in value]
    if isinstance(value, dict):
        return {str(k): to_jsonable(v) for k, v in value.items()}
    return str(value)


def _render(value) -> str:
    if value is None:
        return "null"
    if numeric.is_number(value) or isinstance(value, bool):
        return numeric.format_number(value)
    return str(value)


def _parse_bindings(bindings: Optional[dict], config: EngineConfig) -> dict:
    parsed = {}
    for name, raw in (bindings or {}).items():
        if isinstance(raw, str):
            node = algebra.parse(raw, config)
            parsed[name] = node.evaluate(config=config)
        else:
            parsed[name] = raw
    return parsed


def simplify_expression(expression: str, config: Optional[EngineConfig] = None) -> dict:
    t_start = time.perf_counter()
    config = resolve(config)
    result = algebra.parse(expression, config).simplify(config)
    return {"expression": expression, "result": str(result), "summary": _summary(t_start)}


def expand_expression(expression: str, config: Optional[EngineConfig] = None) -> dict:
    t_start = time.perf_counter()
    config = resolve(config)
    result = algebra.parse(expression, config).expand(collect=True, config=config)
    return {"expression": expression, "result": str(result), "summary": _summary(t_start)}


def evaluate_expression(expression: str, bindings: Optional[dict] = None,
                        config: Optional[EngineConfig] = None) -> dict:
    """Evaluate; bindings may be numbers or expression strings like ``"2pi"``."""
    t_start = time.perf_counter()
    config = resolve(config)
    tree = algebra.parse(expression, config)
    value = tree.evaluate(_parse_bindings(bindings, config), config=config)
    return {
        "expression": expression,
        "result": _render(value),
        "value": to_jsonable(value),
        "symbolic": isinstance(value, algebra.Expression),
        "summary": _summary(t_start),
    }


def differentiate_expression(expression: str, variable: Optional[str] = None,
                             config: Optional[EngineConfig] = None) -> dict:
    t_start = time.perf_counter()
    config = resolve(config)
    tree = algebra.parse(expression, config)
    name = choose_variable(tree, variable or None, config)
    result = algebra.differentiate(tree, name, config)
    return {"expression": expression, "variable": name, "result": str(result),
            "summary": _summary(t_start)}


def integrate_expression(expression: str, variable: Optional[str] = None,
                         config: Optional[EngineConfig] = None) -> dict:
    """``integrated`` is false when no rule applied and the input came back unchanged."""
    t_start = time.perf_counter()
    config = resolve(config)
    tree = algebra.parse(expression, config)
    name = choose_variable(tree, variable or None, config)
    result = try_integrate(tree, name, config)
    if result is None:
        logger.info("No integration rule for %s", expression)
    return {
        "expression": expression,
        "variable": name,
        "result": str(tree if result is None else result),
        "integrated": result is not None,
        "summary": _summary(t_start),
    }


def _bound(raw, config: EngineConfig):
    if isinstance(raw, str):
        text = raw.strip()
        if text.lstrip("+-") in ("inf", "oo"):
            return float("-inf") if text.startswith("-") else float("inf")
        return algebra.parse(text, config).evaluate(config=config)
    return raw


def limit_expression(expression: str, point="0", variable: Optional[str] = None,
                     direction: str = "both", config: Optional[EngineConfig] = None) -> dict:
    """*point* may be a number, ``"inf"`` or constant text like ``"pi/2"``."""
    t_start = time.perf_counter()
    config = resolve(config)
    tree = algebra.parse(expression, config)
    name = choose_variable(tree, variable or None, config)
    value = algebra.limit(tree, name, _bound(point, config), direction, config)
    return {
        "expression": expression,
        "variable": name,
        "result": _render(value),
        "value": to_jsonable(value),
        "summary": _summary(t_start),
    }


def definite_integral_expression(expression: str, lower="0", upper="1",
                                 variable: Optional[str] = None, method: str = "auto",
                                 config: Optional[EngineConfig] = None) -> dict:
    t_start = time.perf_counter()
    config = resolve(config)
    tree = algebra.parse(expression, config)
    name = choose_variable(tree, variable or None, config)
    value = algebra.definite_integral(tree, name, _bound(lower, config), _bound(upper, config),
                                      method, config)
    return {
        "expression": expression,
        "variable": name,
        "result": _render(value),
        "value": to_jsonable(value),
        "summary": _summary(t_start),
    }


def solve_equation(equation: str, variable: Optional[str] = None,
                   config: Optional[EngineConfig] = None) -> dict:
    t_start = time.perf_counter()
    config = resolve(config)
    tree = algebra.parse(equation, config)
    name = choose_variable(tree, variable or None, config)
    solutions = algebra.solve(tree, name, config)
    return {
        "equation": equation,
        "variable": name,
        "solutions": [to_jsonable(s) for s in solutions],
        "summary": _summary(t_start),
    }


def solve_equations(equations: list, variables: Optional[list] = None,
                    config: Optional[EngineConfig] = None) -> dict:
    t_start = time.perf_counter()
    config = resolve(config)
    trees = [algebra.parse(e, config) for e in equations]
    solution = algebra.solve_system(trees, variables or None, config)
    return {
        "equations": equations,
        "solution": None if solution is None else to_jsonable(solution),
        "consistent": solution is not None,
        "summary": _summary(t_start),
    }
