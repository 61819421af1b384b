"""Equation solving: isolation, polynomial roots and simultaneous systems."""

"""
``solve(equation, variable)`` treats the equation as ``lhs = 0`` and tries,
in order:

1. factored forms: ``A * B = 0`` splits into ``A = 0`` and ``B = 0``, and
   ``A^n = 0`` reduces to ``A = 0``;
2. polynomial reduction: ``simplify(expand(lhs))`` is handed to
   ``Polynomial.roots`` when it is a polynomial in the variable;
3. isolation: the operators around the variable are inverted one at a
   time until the variable stands alone.

Numeric solutions are tidied (``2.0000000001`` becomes ``2``), deduplicated
and checked against the original equation; candidates that make it raise
(a zero denominator, say) are discarded.  Complex solutions are dropped
unless ``config.complex_mode`` is on.
"""

import logging
import math
from typing import Optional

from algebra import grammar, numeric
from algebra.calculus import choose_variable
from algebra.config import EngineConfig, resolve
from algebra.errors import EngineError, EvaluationError, SolverFailure
from algebra.evaluator import evaluate
from algebra.nodes import (
    Add, Call, Divide, Expression, Literal, Multiply, Pow, Relational,
    Subtract, Unary, Variable, ZERO, is_number_literal, lift, unwrap,
)
from algebra.parser import parse
from algebra.polynomial import as_polynomial
from algebra.simplifier import simplify
from algebra.transforms import expand, substitute

logger = logging.getLogger(__name__)


def as_zero_form(equation, config: Optional[EngineConfig] = None) -> Expression:
    """``lhs - rhs`` for an equation; any other expression is taken as ``= 0``."""
    if isinstance(equation, str):
        equation = parse(equation, config)
    equation = unwrap(lift(equation))
    if isinstance(equation, Relational):
        if equation.op != "=":
            raise SolverFailure(f"'{equation}' is not an equation.", "S403")
        if is_number_literal(unwrap(equation.right), 0):
            return unwrap(equation.left)
        return Subtract(equation.left, equation.right)
    return equation


class _Isolator:
    """Solves ``expr = 0`` for one variable.  Results are raw candidates."""

    def __init__(self, name: str, config: EngineConfig):
        self.name = name
        self.config = config

    def contains(self, node: Expression) -> bool:
        return node.contains(self.name)

    def solve_zero(self, expr: Expression) -> list:
        expr = unwrap(expr)

        if isinstance(expr, Multiply):
            factors = [f for f in _factors(expr) if self.contains(f)]
            if len(factors) > 1:
                found = self._union(factors)
                if found is not None:
                    logger.debug("Split %s into %d factors", expr, len(factors))
                    return found

        if (isinstance(expr, Pow) and self.contains(expr.left) and is_number_literal(expr.right)
                and numeric.is_real(expr.right.value) and expr.right.value > 0):
            return self.solve_zero(expr.left)

        if isinstance(expr, Divide) and self.contains(expr.left) and self.contains(expr.right):
            # candidates that also zero the denominator are dropped when cleaning
            return self.solve_zero(expr.left)

        roots = self.polynomial_roots(expr)
        if roots is not None:
            return roots
        return self.isolate(expr, ZERO)

    def _union(self, factors: list) -> Optional[list]:
        found = []
        for factor in factors:
            try:
                found.extend(self.solve_zero(factor))
            except SolverFailure as e:
                logger.debug("Factor %s could not be solved: %s", factor, e.message)
                return None
        return found

    def polynomial_roots(self, expr: Expression) -> Optional[list]:
        try:
            reduced = simplify(expand(expr, config=self.config), self.config)
        except EngineError as e:
            logger.debug("Could not reduce %s: %s", expr, e.message)
            return None
        poly = as_polynomial(reduced, self.name, self.config)
        if poly is None:
            return None
        if poly.degree == 0:
            if poly.is_zero:
                raise SolverFailure(f"Every value of {self.name} solves {expr} = 0.", "S402")
            return []
        try:
            roots = poly.roots(self.config)
        except SolverFailure as e:
            logger.debug("Root finding failed for %s: %s", poly, e.message)
            return None
        logger.debug("Solved %s as a degree %d polynomial", reduced, poly.degree)
        return roots

    # ── Isolation ───────────────────────────────────────────────────────

    def _settle(self, node: Expression):
        return simplify(node, self.config)

    def isolate(self, lhs: Expression, target: Expression) -> list:
        """Solve ``lhs = target`` by peeling operators off *lhs*."""
        lhs = unwrap(lhs)
        if lhs == Variable(self.name):
            return [target]
        if not self.contains(lhs):
            raise SolverFailure(f"{self.name} does not occur in {lhs}.", "S400")
        try:
            return self._peel(lhs, target)
        except EvaluationError as e:
            # e.g. asin(2): this branch has no solutions
            logger.debug("No solutions where %s = %s: %s", lhs, target, e.message)
            return []

    def _fallback(self, lhs: Expression, target: Expression) -> list:
        roots = self.polynomial_roots(Subtract(lhs, target))
        if roots is not None:
            return roots
        if is_number_literal(target, 0) and isinstance(lhs, Multiply):
            found = self._union([f for f in _factors(lhs) if self.contains(f)])
            if found is not None:
                return found
        raise SolverFailure(f"Cannot isolate {self.name} in {lhs} = {target}.", "S400")

    def _peel(self, lhs: Expression, target: Expression) -> list:
        settle = self._settle
        if isinstance(lhs, (Add, Subtract, Multiply, Divide)):
            left_has, right_has = self.contains(lhs.left), self.contains(lhs.right)
            if left_has and right_has:
                return self._fallback(lhs, target)
            a, b = lhs.left, lhs.right
            if isinstance(lhs, Add):
                return self.isolate(a, settle(Subtract(target, b))) if left_has \
                    else self.isolate(b, settle(Subtract(target, a)))
            if isinstance(lhs, Subtract):
                return self.isolate(a, settle(Add(target, b))) if left_has \
                    else self.isolate(b, settle(Subtract(a, target)))
            if isinstance(lhs, Multiply):
                constant = b if left_has else a
                if is_number_literal(settle(constant), 0):
                    return self._degenerate(target)
                return self.isolate(a if left_has else b, settle(Divide(target, constant)))
            if left_has:
                return self.isolate(a, settle(Multiply(target, b)))
            if is_number_literal(target, 0):
                return []
            return self.isolate(b, settle(Divide(a, target)))

        if isinstance(lhs, Unary):
            if lhs.prefix and lhs.op == "-":
                return self.isolate(lhs.operand, settle(Unary("-", target)))
            if lhs.prefix and lhs.op == "+":
                return self.isolate(lhs.operand, target)
            if not lhs.prefix and lhs.op == "%":
                return self.isolate(lhs.operand, settle(Multiply(target, Literal(100))))

        if isinstance(lhs, Pow):
            return self._peel_power(lhs, target)

        if isinstance(lhs, Call):
            return self._peel_call(lhs, target)

        return self._fallback(lhs, target)

    def _degenerate(self, target: Expression) -> list:
        # 0 * f(x) = target
        if is_number_literal(target, 0):
            raise SolverFailure(f"Every value of {self.name} is a solution.", "S402")
        return []

    def _peel_power(self, lhs: Pow, target: Expression) -> list:
        settle = self._settle
        base, exponent = lhs.left, lhs.right
        if self.contains(base) and self.contains(exponent):
            return self._fallback(lhs, target)
        if self.contains(base):
            n = settle(exponent)
            root = settle(Pow(target, Divide(Literal(1), n)))
            if (is_number_literal(n) and numeric.is_integral(n.value)
                    and int(n.value) % 2 == 0):
                return self.isolate(base, root) + self.isolate(base, settle(Unary("-", root)))
            return self.isolate(base, root)
        if base == Variable("e") and self.config.use_constants:
            return self.isolate(exponent, settle(Call("ln", (target,))))
        return self.isolate(exponent, settle(Divide(Call("ln", (target,)), Call("ln", (base,)))))

    def _peel_call(self, lhs: Call, target: Expression) -> list:
        settle = self._settle
        if lhs.name == "log" and len(lhs.args) == 2:
            u, base = lhs.args
            if self.contains(base):
                return self._fallback(lhs, target)
            return self.isolate(u, settle(Pow(base, target)))
        if len(lhs.args) != 1 or lhs.name not in _INVERSES:
            return self._fallback(lhs, target)
        return self.isolate(lhs.args[0], settle(_INVERSES[lhs.name](target)))


_INVERSES = {
    "sin": lambda t: Call("asin", (t,)),
    "cos": lambda t: Call("acos", (t,)),
    "tan": lambda t: Call("atan", (t,)),
    "exp": lambda t: Call("ln", (t,)),
    "ln": lambda t: Call("exp", (t,)),
    "log": lambda t: Pow(Literal(10), t),
    "sqrt": lambda t: Pow(t, Literal(2)),
}


def _factors(node: Expression) -> list:
    node = unwrap(node)
    if isinstance(node, Multiply):
        return _factors(node.left) + _factors(node.right)
    return [node]


# ── Cleaning ─────────────────────────────────────────────────────────────

def _as_value(candidate, config: EngineConfig):
    """A tower number when *candidate* is numeric, else the simplified expression."""
    if isinstance(candidate, Expression):
        candidate = simplify(candidate, config)
        free = candidate.variables()
        if config.use_constants:
            free -= set(grammar.CONSTANTS)
        if free:
            return candidate
        value = evaluate(candidate, config=config)
        if not numeric.is_number(value):
            return candidate
        candidate = value
    return numeric.tidy(candidate, config.tolerance)


def _order(value):
    if isinstance(value, Expression):
        return (1, 0.0, 0.0, str(value))
    c = complex(value)
    return (0, c.real, c.imag, "")


def _residual_vanishes(residual, value, config: EngineConfig) -> bool:
    """Loose zero test for ``expr`` evaluated at a candidate *value*."""
    if not numeric.is_number(residual):
        return True
    scale = max(1.0, abs(complex(value)))
    return abs(complex(residual)) <= math.sqrt(config.tolerance) * scale


def _clean(candidates: list, expr: Expression, name: str, config: EngineConfig) -> list:
    kept = []
    for candidate in candidates:
        try:
            value = _as_value(candidate, config)
        except EvaluationError as e:
            logger.debug("Dropped candidate %s: %s", candidate, e.message)
            continue
        if isinstance(value, complex) and not config.complex_mode:
            continue
        if not isinstance(value, Expression):
            try:
                residual = evaluate(expr, {name: value}, config=config)
            except EvaluationError as e:
                logger.debug("Dropped %s = %s: %s", name, value, e.message)
                continue
            if not _residual_vanishes(residual, value, config):
                # squaring or an even power let in an extraneous root
                logger.debug("Dropped %s = %s: residual %s", name, value, residual)
                continue
        if not any(_same(k, value, config.tolerance) for k in kept):
            kept.append(value)
    return sorted(kept, key=_order)


def _same(a, b, tolerance: float) -> bool:
    if isinstance(a, Expression) or isinstance(b, Expression):
        return a == b
    return numeric.is_near(a, b, tolerance)


# ── Public API ───────────────────────────────────────────────────────────

def solve(equation, variable=None, config: Optional[EngineConfig] = None) -> list:
    """Solve *equation* for *variable*.

    *equation* is an Expression (``= 0`` is implied), a ``Relational('=')``
    or a string.  Returns a sorted list of numbers and, where other
    variables remain, simplified Expressions.  Raises ``SolverFailure``
    when no strategy applies.
    """
    config = resolve(config)
    expr = as_zero_form(equation, config)
    name = choose_variable(expr, variable, config)
    if not expr.contains(name):
        residual = simplify(expr, config)
        if is_number_literal(residual, 0):
            raise SolverFailure(f"Every value of {name} is a solution.", "S402")
        return []
    candidates = _Isolator(name, config).solve_zero(expr)
    return _clean(candidates, expr, name, config)


def _consistent(expr: Expression, config: EngineConfig) -> bool:
    try:
        value = evaluate(expr, config=config, strict=True)
    except EvaluationError:
        return False
    if not numeric.is_number(value):
        return False
    # loose check: the value went through several rounded substitutions
    return abs(complex(value)) <= math.sqrt(config.tolerance)


def _free(expr: Expression, config: EngineConfig) -> set:
    names = expr.variables()
    if config.use_constants:
        names -= set(grammar.CONSTANTS)
    return names


def _search(equations: list, unknowns: set, config: EngineConfig) -> Optional[dict]:
    if not equations:
        return {}
    if not unknowns:
        return {} if all(_consistent(e, config) for e in equations) else None
    for i, equation in enumerate(equations):
        others = equations[:i] + equations[i + 1:]
        for name in sorted(unknowns & _free(equation, config)):
            try:
                candidates = _Isolator(name, config).solve_zero(equation)
            except EngineError as e:
                logger.debug("Cannot isolate %s in %s: %s", name, equation, e.message)
                continue
            for candidate in candidates:
                try:
                    value = _as_value(candidate, config)
                except EvaluationError:
                    continue
                if isinstance(value, complex) and not config.complex_mode:
                    continue
                reduced, ok = [], True
                for other in others:
                    try:
                        rest = simplify(substitute(other, name, value), config)
                    except EvaluationError:
                        ok = False
                        break
                    if _free(rest, config):
                        reduced.append(rest)
                    elif not _consistent(rest, config):
                        ok = False
                        break
                if not ok:
                    continue
                solution = _search(reduced, unknowns - {name}, config)
                if solution is None:
                    continue
                if isinstance(value, Expression):
                    for known, known_value in solution.items():
                        value = substitute(value, known, known_value)
                    try:
                        value = _as_value(value, config)
                    except EvaluationError:
                        continue
                solution[name] = value
                return solution
    return None


def solve_system(equations, variables=None, config: Optional[EngineConfig] = None) -> Optional[dict]:
    """Solve simultaneous equations by substitution.

    Each equation is anything ``solve`` accepts.  Returns ``{name: value}``
    sorted by name, or ``None`` when no consistent assignment exists.  An
    underdetermined system leaves some unknowns free: they map to their own
    ``Variable`` and the other values are given in terms of them.
    """
    config = resolve(config)
    system = [as_zero_form(e, config) for e in equations]
    if variables is None:
        unknowns = set()
        for e in system:
            unknowns |= _free(e, config)
    else:
        unknowns = {v.name if isinstance(v, Variable) else v for v in variables}
    solution = _search(system, unknowns, config)
    if solution is None:
        logger.debug("No consistent assignment for %d equations", len(system))
        return None
    for name in unknowns - set(solution):
        logger.debug("%s is free in the solution", name)
        solution[name] = Variable(name)
    return dict(sorted(solution.items()))
