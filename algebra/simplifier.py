"""Rule-registry simplifier with sum and product normal forms."""

"""
``simplify(expr)`` makes a bottom-up pass over the tree: children first,
then the rule registry at the node.  A rule that changes a node hands the
new node back to the pass, so every rewrite is itself fully simplified.
Whole passes repeat until one changes nothing (capped by
``config.max_passes``).

Rules live in ``RULES`` in the order they are tried.  Each one is an
independent matcher/rewriter pair and can be exercised alone through
``Rule.apply``.  The last two rules compute the normal forms:

* a product becomes ``c * f1^e1 * f2^e2 ... / (g1^d1 * ...)`` with the
  factors sorted by their canonical text, like bases sharing one exponent;
* a sum becomes its constant followed by one term per like-term key,
  ordered by degree and then by key.  Negative terms are subtracted.

Coefficients are kept exact while they are built: integer division inside
a product yields a ``Fraction`` that is printed back as ``n * x / d``.
"""

import logging
import math
from dataclasses import dataclass
from decimal import Decimal
from fractions import Fraction
from itertools import combinations
from typing import Callable, Optional

from algebra import grammar, numeric
from algebra.config import EngineConfig, resolve
from algebra.errors import EvaluationError
from algebra.evaluator import evaluate
from algebra.nodes import (
    Add, ArrayLiteral, Call, Conditional, Divide, Expression, Group, Literal,
    MapLiteral, Modulo, Multiply, ONE, Pow, Relational, Subtract, Unary, ZERO,
    is_number_literal, unwrap,
)

logger = logging.getLogger(__name__)


# ── Driver ──────────────────────────────────────────────────────────────

def simplify(expr: Expression, config: Optional[EngineConfig] = None) -> Expression:
    """Return the normal form of *expr*.

    Always terminates and is idempotent: ``simplify(simplify(e)) == simplify(e)``.
    Evaluation errors raised while folding constant subtrees (``1/0``)
    propagate.
    """
    config = resolve(config)
    current = expr
    for _ in range(config.max_passes):
        result = _pass(current, config, 0)
        if result == current:
            return result
        current = result
    logger.warning("Simplifier stopped after %d passes on %s", config.max_passes, expr)
    return current


def _pass(node: Expression, config: EngineConfig, hops: int) -> Expression:
    node = node.map_children(lambda child: _pass(child, config, hops))
    for r in RULES:
        if not r.applies(node, config):
            continue
        result = r.rewriter(node, config)
        if result is None or result == node:
            continue
        logger.debug("%s: %s -> %s", r.name, node, result)
        if hops >= config.max_passes:
            logger.warning("Rewrite chain too long at %s", result)
            return result
        return _pass(result, config, hops + 1)
    return node


# ── Registry ────────────────────────────────────────────────────────────

def _always(node, config) -> bool:
    return True


@dataclass(frozen=True)
class Rule:
    name: str
    kinds: tuple
    matcher: Callable
    rewriter: Callable

    def applies(self, node: Expression, config: EngineConfig) -> bool:
        return isinstance(node, self.kinds) and self.matcher(node, config)

    def apply(self, node: Expression, config: Optional[EngineConfig] = None):
        """Run this rule alone on *node*.  Returns ``None`` if it does not fire."""
        config = resolve(config)
        if not self.applies(node, config):
            return None
        return self.rewriter(node, config)


RULES: list = []


def rule(name: str, kinds, matcher: Optional[Callable] = None):
    """Register the decorated rewriter as the next rule in ``RULES``.

    The rewriter receives ``(node, config)`` and returns the replacement,
    or ``None`` when closer inspection shows the rule does not apply.
    """
    if not isinstance(kinds, tuple):
        kinds = (kinds,)

    def register(rewriter):
        RULES.append(Rule(name, kinds, matcher or _always, rewriter))
        return rewriter
    return register


def get_rule(name: str) -> Rule:
    for r in RULES:
        if r.name == name:
            return r
    raise KeyError(name)


# ── Exact coefficient arithmetic ─────────────────────────────────────────

def _exact(value) -> bool:
    return isinstance(value, (int, Fraction)) and not isinstance(value, bool)


def _loosen(value, other):
    if isinstance(value, Fraction):
        if isinstance(other, Decimal):
            return Decimal(value.numerator) / Decimal(value.denominator)
        return float(value)
    return value


def _settle(value):
    if isinstance(value, Fraction) and value.denominator == 1:
        return value.numerator
    return value


def _mul(a, b):
    if _exact(a) and _exact(b):
        return _settle(Fraction(a) * b)
    return numeric.multiply(_loosen(a, b), _loosen(b, a))


def _add(a, b):
    if _exact(a) and _exact(b):
        return _settle(Fraction(a) + b)
    return numeric.add(_loosen(a, b), _loosen(b, a))


def _raise(value, n: int):
    if _exact(value):
        return _settle(Fraction(value) ** n)
    return numeric.power(value, n)


def _is_negative(value) -> bool:
    return not isinstance(value, complex) and value < 0


def _near(a, b, config) -> bool:
    if _exact(a) and _exact(b):
        return a == b
    return numeric.is_near(_loosen(a, 0.0), _loosen(b, 0.0), config.tolerance)


def _negligible(value, config) -> bool:
    if isinstance(value, (float, complex)):
        return abs(value) <= config.tolerance
    return value == 0


def number_literal(value) -> Literal:
    """A ``Literal`` for a coefficient; fractions become floats."""
    if isinstance(value, Fraction):
        value = _settle(value)
        if isinstance(value, Fraction):
            value = float(value)
    return Literal(value)


def _tidy_exponent(value):
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value


def _fold(kind, items):
    result = items[0]
    for item in items[1:]:
        result = kind(result, item)
    return result


# ── Product normal form ──────────────────────────────────────────────────

def _distributes(base: Expression) -> bool:
    base = unwrap(base)
    if isinstance(base, Unary):
        return base.op == "-" and base.prefix
    return isinstance(base, (Multiply, Divide, Pow)) or is_number_literal(base)


class _Product:
    """A flattened product: one coefficient and ``key -> [base, exponent]``."""

    def __init__(self, config: EngineConfig):
        self.config = config
        self.coefficient = 1
        self.factors = {}

    @classmethod
    def of(cls, node: Expression, config: EngineConfig) -> "_Product":
        product = cls(config)
        product.absorb(node)
        return product

    def copy(self) -> "_Product":
        other = _Product(self.config)
        other.coefficient = self.coefficient
        other.factors = {k: list(v) for k, v in self.factors.items()}
        return other

    def absorb(self, node: Expression, power: int = 1) -> None:
        node = unwrap(node)
        if isinstance(node, Multiply):
            self.absorb(node.left, power)
            self.absorb(node.right, power)
        elif isinstance(node, Divide):
            self.absorb(node.left, power)
            self.absorb(node.right, -power)
        elif isinstance(node, Unary) and node.op == "-" and node.prefix:
            self.coefficient = _mul(self.coefficient, _raise(-1, power))
            self.absorb(node.operand, power)
        elif is_number_literal(node):
            if numeric.is_zero(node.value) and power < 0:
                raise EvaluationError("Division by zero.", "E202")
            self.coefficient = _mul(self.coefficient, _raise(node.value, power))
        elif isinstance(node, Pow):
            exponent = unwrap(node.right)
            if (is_number_literal(exponent) and isinstance(exponent.value, int)
                    and _distributes(node.left)):
                self.absorb(node.left, power * exponent.value)
            elif is_number_literal(exponent):
                self.add_factor(node.left, _tidy_exponent(numeric.multiply(exponent.value, power)))
            elif power == 1:
                self.add_factor(node.left, exponent)
            else:
                self.add_factor(node.left, Multiply(Literal(power), exponent))
        else:
            self.add_factor(node, power)

    def add_factor(self, base: Expression, exponent) -> None:
        base = unwrap(base)
        key = str(base)
        entry = self.factors.get(key)
        if entry is None:
            self.factors[key] = [base, exponent]
            return
        old = entry[1]
        if numeric.is_number(old) and numeric.is_number(exponent):
            entry[1] = _tidy_exponent(numeric.add(old, exponent))
        else:
            total = simplify(Add(_as_node(old), _as_node(exponent)), self.config)
            entry[1] = _tidy_exponent(total.value) if is_number_literal(total) else total

    def _exponent(self, exponent):
        if isinstance(exponent, Expression):
            exponent = simplify(exponent, self.config)
            if is_number_literal(exponent):
                return _tidy_exponent(exponent.value)
        return exponent

    def _negative(self, exponent) -> bool:
        if isinstance(exponent, Expression):
            return _is_negative_real(_Product.of(exponent, self.config).coefficient)
        return _is_negative_real(exponent)

    def powers(self) -> list:
        """``(key, base, exponent)`` for the surviving factors, sorted by key."""
        out = []
        for key in sorted(self.factors):
            base, exponent = self.factors[key]
            exponent = self._exponent(exponent)
            if numeric.is_number(exponent) and exponent == 0:
                continue
            out.append((key, base, exponent))
        return out

    def degree(self):
        return sum(e for _, _, e in self.powers() if numeric.is_real(e))

    def single_sum(self) -> Optional[Expression]:
        powers = self.powers()
        if len(powers) == 1:
            _, base, exponent = powers[0]
            if isinstance(base, (Add, Subtract)) and numeric.is_number(exponent) and exponent == 1:
                return base
        return None

    def split(self):
        """Numerator and denominator factor lists of the product."""
        numer, denom = [], []
        for _, base, exponent in self.powers():
            if self._negative(exponent):
                denom.append(_power(base, _negated(exponent, self.config)))
            else:
                numer.append(_power(base, exponent))
        return numer, denom

    def build(self) -> Expression:
        coefficient = self.coefficient
        if coefficient == 0:
            return ZERO
        numer, denom = self.split()
        top, bottom = coefficient, 1
        if isinstance(coefficient, Fraction):
            top, bottom = coefficient.numerator, coefficient.denominator
        if bottom != 1:
            denom.insert(0, Literal(bottom))
        top_node = _with_coefficient(top, numer)
        if not denom:
            return top_node
        return Divide(top_node, _fold(Multiply, denom))


def _is_negative_real(value) -> bool:
    if isinstance(value, Fraction):
        return value < 0
    return numeric.is_real(value) and value < 0


def _as_node(value) -> Expression:
    return value if isinstance(value, Expression) else number_literal(value)


def _negated(exponent, config):
    if isinstance(exponent, Expression):
        return simplify(Unary("-", exponent), config)
    return -exponent


def _power(base: Expression, exponent) -> Expression:
    if numeric.is_number(exponent) and exponent == 1:
        return base
    return Pow(base, _as_node(exponent))


def _with_coefficient(coefficient, factors: list) -> Expression:
    if not factors:
        return number_literal(coefficient)
    if coefficient == 1:
        return _fold(Multiply, factors)
    if coefficient == -1:
        return _fold(Multiply, [Unary("-", factors[0])] + factors[1:])
    return _fold(Multiply, [number_literal(coefficient)] + factors)


# ── Sum normal form (the term map) ───────────────────────────────────────

class _Term:
    __slots__ = ("coefficient", "product", "key", "degree")

    def __init__(self, coefficient, product: _Product, key: str):
        self.coefficient = coefficient
        self.product = product
        self.key = key
        self.degree = product.degree()

    def build(self, coefficient=None) -> Expression:
        product = self.product.copy()
        product.coefficient = self.coefficient if coefficient is None else coefficient
        return product.build()


class _Sum:
    """Constant plus an ordered ``key -> _Term`` map of like terms."""

    def __init__(self, config: EngineConfig):
        self.config = config
        self.constant = 0
        self.terms = {}

    @classmethod
    def of(cls, node: Expression, config: EngineConfig) -> "_Sum":
        total = cls(config)
        total.absorb(node)
        return total

    def absorb(self, node: Expression, scale=1) -> None:
        node = unwrap(node)
        if isinstance(node, Add):
            self.absorb(node.left, scale)
            self.absorb(node.right, scale)
        elif isinstance(node, Subtract):
            self.absorb(node.left, scale)
            self.absorb(node.right, _mul(scale, -1))
        elif is_number_literal(node):
            self.constant = _add(self.constant, _mul(scale, node.value))
        else:
            product = _Product.of(node, self.config)
            self.add_product(product, scale)

    def add_product(self, product: _Product, scale=1) -> None:
        coefficient = _mul(scale, product.coefficient)
        if coefficient == 0:
            return
        inner = product.single_sum()
        if inner is not None:
            self.absorb(inner, coefficient)
            return
        product = product.copy()
        product.coefficient = 1
        body = product.build()
        if is_number_literal(body):
            self.constant = _add(self.constant, _mul(coefficient, body.value))
            return
        key = str(body)
        term = self.terms.get(key)
        if term is None:
            self.terms[key] = _Term(coefficient, product, key)
        else:
            term.coefficient = _add(term.coefficient, coefficient)

    def parts(self) -> list:
        """``(key, coefficient, term_or_None)`` for every nonzero part."""
        out = []
        if not _negligible(self.constant, self.config):
            out.append(("", self.constant, None))
        for key, term in self.terms.items():
            if not _negligible(term.coefficient, self.config):
                out.append((key, term.coefficient, term))
        return out

    def build(self) -> Expression:
        result = None
        if not _negligible(self.constant, self.config):
            result = number_literal(self.constant)
        ordered = sorted(
            (t for t in self.terms.values() if not _negligible(t.coefficient, self.config)),
            key=lambda t: (t.degree, t.key))
        for term in ordered:
            if result is not None and _is_negative(term.coefficient):
                result = Subtract(result, term.build(_mul(term.coefficient, -1)))
            else:
                piece = term.build()
                result = piece if result is None else Add(result, piece)
        return ZERO if result is None else result


def _part_expression(coefficient, term: Optional[_Term]) -> Expression:
    if term is None:
        return number_literal(coefficient)
    return term.build(coefficient)


def _product_key(factors: list, coefficient, config):
    """Coefficient and like-term key of ``coefficient * factors``."""
    product = _Product(config)
    for factor in factors:
        product.absorb(factor)
    product.coefficient = _mul(product.coefficient, coefficient)
    found = product.coefficient
    product.coefficient = 1
    return found, str(product.build())


def _lookup(total: _Sum, key: str):
    if key == "1":
        return total.constant
    term = total.terms.get(key)
    return None if term is None else term.coefficient


def _remove(total: _Sum, key: str) -> None:
    if key in ("", "1"):
        total.constant = 0
    else:
        del total.terms[key]


def _sum_plus(total: _Sum, extra: Expression) -> Expression:
    rest = total.build()
    if rest == ZERO:
        return extra
    return Add(rest, extra)


# ── Rules, in the order they are tried ───────────────────────────────────

@rule("unwrap_group", Group)
def _unwrap_group(node, config):
    return node.inner


def _zero_denominator(node, config) -> bool:
    if isinstance(node, Divide):
        return is_number_literal(unwrap(node.right), 0)
    base, exponent = unwrap(node.left), unwrap(node.right)
    return (is_number_literal(base, 0) and is_number_literal(exponent)
            and _is_negative_real(exponent.value))


@rule("zero_denominator", (Divide, Pow), _zero_denominator)
def _reject_zero_denominator(node, config):
    # x/0 and 0^-n are both a division by a literal zero
    raise EvaluationError("Division by zero.", "E202")


def _foldable(node, config) -> bool:
    if isinstance(node, (Literal, ArrayLiteral, MapLiteral)):
        return False
    for n in node.walk():
        if n.free_names():
            return False
        if isinstance(n, Call) and n.name not in grammar.FUNCTIONS and n.name not in config.functions:
            return False
        if isinstance(n, Relational) and n.op == "=":
            return False
    return True


@rule("fold_constants", Expression, _foldable)
def _fold_constants(node, config):
    value = evaluate(node, config=config)
    if isinstance(value, (Expression, list, dict)):
        return None
    return Literal(value)


@rule("unary_plus", Unary, lambda node, config: node.op == "+" and node.prefix)
def _unary_plus(node, config):
    return node.operand


@rule("percent", Unary, lambda node, config: node.op == "%" and not node.prefix)
def _percent(node, config):
    return Divide(node.operand, Literal(100))


@rule("power_identities", Pow)
def _power_identities(node, config):
    base, exponent = node.left, node.right
    if is_number_literal(exponent, 0):
        return ONE
    if is_number_literal(exponent, 1):
        return base
    if is_number_literal(base, 1):
        return ONE
    if (is_number_literal(base, 0) and is_number_literal(exponent)
            and numeric.is_real(exponent.value) and exponent.value > 0):
        return ZERO
    return None


@rule("power_of_power", Pow, lambda node, config: isinstance(unwrap(node.left), Pow))
def _power_of_power(node, config):
    inner = unwrap(node.left)
    a, b = inner.right, node.right
    if is_number_literal(a) and is_number_literal(b):
        return Pow(inner.left, Literal(numeric.multiply(a.value, b.value)))
    if is_number_literal(b) and numeric.is_integral(b.value):
        return Pow(inner.left, Multiply(a, b))
    return None


def _single_call(node, name):
    if isinstance(node, Call) and node.name == name and len(node.args) == 1:
        return node.args[0]
    return None


@rule("log_exp_inverse", Call, lambda node, config: node.name in ("ln", "exp"))
def _log_exp_inverse(node, config):
    other = "exp" if node.name == "ln" else "ln"
    inner = _single_call(unwrap(node.args[0]), other) if len(node.args) == 1 else None
    return inner


@rule("conditional_literal_test", Conditional,
      lambda node, config: isinstance(unwrap(node.test), Literal))
def _conditional_literal_test(node, config):
    return node.if_true if unwrap(node.test).value else node.if_false


@rule("modulo_zero", Modulo,
      lambda node, config: is_number_literal(node.left, 0) and not is_number_literal(node.right))
def _modulo_zero(node, config):
    return ZERO


def _binomial_parts(node, config):
    total = _Sum.of(node, config)
    parts = total.parts()
    return {key: (coefficient, term) for key, coefficient, term in parts} if len(parts) == 2 else None


def _difference_of_squares(p, q, config) -> Optional[Expression]:
    left, right = _binomial_parts(p, config), _binomial_parts(q, config)
    if left is None or right is None or set(left) != set(right):
        return None
    first, second = sorted(left)
    for same, opposite in ((first, second), (second, first)):
        c_same, term_same = left[same]
        c_opp, term_opp = left[opposite]
        if _near(c_same, right[same][0], config) and _near(c_opp, _mul(right[opposite][0], -1), config):
            a = _part_expression(c_same, term_same)
            b = _part_expression(c_opp, term_opp)
            return Subtract(Pow(a, Literal(2)), Pow(b, Literal(2)))
    return None


@rule("difference_of_squares", Multiply)
def _difference_of_squares_rule(node, config):
    product = _Product.of(node, config)
    sums = [(key, base) for key, base, exponent in product.powers()
            if isinstance(base, (Add, Subtract)) and numeric.is_number(exponent) and exponent == 1]
    for (k1, b1), (k2, b2) in combinations(sums, 2):
        square = _difference_of_squares(b1, b2, config)
        if square is not None:
            del product.factors[k1]
            del product.factors[k2]
            return Multiply(product.build(), square)
    return None


def _squared_call_argument(term: _Term, name: str):
    powers = term.product.powers()
    if len(powers) != 1:
        return None
    _, base, exponent = powers[0]
    if not (numeric.is_number(exponent) and exponent == 2):
        return None
    return _single_call(base, name)


@rule("pythagorean", (Add, Subtract))
def _pythagorean(node, config):
    total = _Sum.of(node, config)
    for key, term in list(total.terms.items()):
        argument = _squared_call_argument(term, "sin")
        if argument is None:
            continue
        partner = total.terms.get(str(Pow(Call("cos", (argument,)), Literal(2))))
        if partner is None or not _near(partner.coefficient, term.coefficient, config):
            continue
        coefficient = term.coefficient
        del total.terms[key]
        del total.terms[partner.key]
        total.constant = _add(total.constant, coefficient)
        return total.build()
    return None


@rule("square_binomial_recombination", (Add, Subtract))
def _square_binomial_recombination(node, config):
    total = _Sum.of(node, config)
    for key, term in list(total.terms.items()):
        powers = term.product.powers()
        if len(powers) != 1:
            continue
        _, base, exponent = powers[0]
        if not (isinstance(base, (Add, Subtract)) and numeric.is_number(exponent) and exponent == 2):
            continue
        inner = _Sum.of(base, config).parts()
        if len(inner) != 2:
            continue
        p = _part_expression(inner[0][1], inner[0][2])
        q = _part_expression(inner[1][1], inner[1][2])
        k = term.coefficient
        wanted, cross_key = _product_key([p, q], _mul(-4, k), config)
        found = _lookup(total, cross_key)
        if found is None or cross_key == key or not _near(found, wanted, config):
            continue
        del total.terms[key]
        _remove(total, cross_key)
        square = _Product(config)
        square.add_factor(Subtract(p, q), 2)
        square.coefficient = k
        return _sum_plus(total, square.build())
    return None


def _square_root(coefficient, term: Optional[_Term], config):
    """``sqrt(|c|) * factors^(1/2)`` when that is exact, else ``None``."""
    if not _exact(coefficient):
        return None
    value = Fraction(abs(coefficient))
    num, den = math.isqrt(value.numerator), math.isqrt(value.denominator)
    if num * num != value.numerator or den * den != value.denominator:
        return None
    root = _Product(config)
    root.coefficient = _settle(Fraction(num, den))
    if term is not None:
        for _, base, exponent in term.product.powers():
            if not (isinstance(exponent, int) and exponent > 0 and exponent % 2 == 0):
                return None
            root.add_factor(base, exponent // 2)
    return root.build()


@rule("perfect_square_trinomial", (Add, Subtract))
def _perfect_square_trinomial(node, config):
    parts = _Sum.of(node, config).parts()
    if len(parts) != 3:
        return None
    for i, j in combinations(range(3), 2):
        (_, ci, ti), (_, cj, tj) = parts[i], parts[j]
        k_key, ck, _ = parts[3 - i - j]
        if not (_exact(ci) and _exact(cj)) or (ci < 0) != (cj < 0):
            continue
        sign = -1 if ci < 0 else 1
        ri, rj = _square_root(ci, ti, config), _square_root(cj, tj, config)
        if ri is None or rj is None:
            continue
        cross, cross_key = _product_key([ri, rj], 2 * sign, config)
        if cross_key != (k_key or "1"):
            continue
        if _near(ck, cross, config):
            inner = Add(ri, rj)
        elif _near(ck, _mul(cross, -1), config):
            inner = Subtract(ri, rj)
        else:
            continue
        square = _Product(config)
        square.add_factor(inner, 2)
        square.coefficient = sign
        return square.build()
    return None


@rule("common_denominator", (Add, Subtract))
def _common_denominator(node, config):
    total = _Sum.of(node, config)
    groups = {}
    for key, term in total.terms.items():
        numer, denom = term.product.split()
        if denom:
            denominator = _fold(Multiply, denom)
            groups.setdefault(str(denominator), (denominator, []))[1].append((term, numer))
    for denominator, members in groups.values():
        if len(members) < 2:
            continue
        numerator = _Sum(config)
        for term, numer in members:
            numerator.absorb(_with_coefficient(1, numer) if numer else ONE, term.coefficient)
            del total.terms[term.key]
        return _sum_plus(total, Divide(numerator.build(), denominator))
    return None


@rule("collect_factors", (Multiply, Divide, Unary, Pow),
      lambda node, config: not isinstance(node, Unary) or (node.op == "-" and node.prefix))
def _collect_factors(node, config):
    product = _Product.of(node, config)
    inner = product.single_sum()
    if inner is not None and product.coefficient != 1:
        total = _Sum(config)
        total.absorb(inner, product.coefficient)
        return total.build()
    return product.build()


@rule("collect_terms", (Add, Subtract))
def _collect_terms(node, config):
    return _Sum.of(node, config).build()


# ── Helpers other modules use ─────────────────────────────────────────────

def split_coefficient(expr: Expression, config: Optional[EngineConfig] = None):
    """Return ``(coefficient, rest)`` with ``expr == coefficient * rest``.

    *rest* is ``Literal(1)`` for a pure number.
    """
    config = resolve(config)
    if is_number_literal(expr):
        return expr.value, ONE
    product = _Product.of(expr, config)
    coefficient = product.coefficient
    product.coefficient = 1
    return number_literal(coefficient).value, product.build()


def terms_of(expr: Expression, config: Optional[EngineConfig] = None) -> list:
    """The like terms of *expr* as a list of expressions (constant first)."""
    config = resolve(config)
    total = _Sum.of(expr, config)
    return [_part_expression(c, t) for _, c, t in total.parts()]


def collect_like_terms(expr: Expression, config: Optional[EngineConfig] = None) -> Expression:
    """Gather like terms and factors of *expr* without the pattern rules."""
    return _Sum.of(expr, resolve(config)).build()
