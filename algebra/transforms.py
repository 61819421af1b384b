"""Structural transforms: ``expand`` and ``substitute``."""

"""
``expand`` distributes products over sums without applying any of the
simplifier's identities, so ``(x+1)^2`` becomes ``x * x + x * 1 + 1 * x +
1 * 1``.  Pass ``collect=True`` to gather like terms afterwards (this uses
the sum normal form only, never the pattern rules, so a perfect square
stays expanded).
"""

from functools import singledispatch
from typing import Optional

from algebra.config import EngineConfig, resolve
from algebra.errors import UnsupportedOperationError
from algebra.nodes import (
    Add, Divide, Expression, Group, Literal, Multiply, Pow, Subtract, Unary,
    Variable, as_variable_name, lift, unwrap,
)

# (a + b)^n is multiplied out only up to this exponent
MAX_EXPAND_POWER = 12


# ── Expand ──────────────────────────────────────────────────────────────

def expand(expr: Expression, collect: bool = False,
           config: Optional[EngineConfig] = None) -> Expression:
    result = _expand(expr)
    if collect:
        from algebra.simplifier import collect_like_terms
        result = collect_like_terms(result, resolve(config))
    return result


def _signed_terms(node: Expression) -> list:
    """Flatten a sum into ``[(sign, term), ...]``."""
    node = unwrap(node)
    if isinstance(node, Add):
        return _signed_terms(node.left) + _signed_terms(node.right)
    if isinstance(node, Subtract):
        return _signed_terms(node.left) + [(-s, t) for s, t in _signed_terms(node.right)]
    return [(1, node)]


def _join(terms: list) -> Expression:
    sign, first = terms[0]
    result = first if sign > 0 else Unary("-", first)
    for sign, term in terms[1:]:
        result = Add(result, term) if sign > 0 else Subtract(result, term)
    return result


def _distribute(left: list, right: list) -> list:
    return [(sa * sb, Multiply(a, b)) for sa, a in left for sb, b in right]


@singledispatch
def _expand(node):
    raise UnsupportedOperationError(f"Cannot expand {type(node).__name__}", "U300")


@_expand.register
def _(node: Expression):
    return node.map_children(_expand)


@_expand.register
def _(node: Group):
    return _expand(node.inner)


@_expand.register
def _(node: Multiply):
    left, right = _signed_terms(_expand(node.left)), _signed_terms(_expand(node.right))
    return _join(_distribute(left, right))


@_expand.register
def _(node: Divide):
    numerator = _signed_terms(_expand(node.left))
    denominator = _expand(node.right)
    return _join([(s, Divide(t, denominator)) for s, t in numerator])


@_expand.register
def _(node: Unary):
    operand = _expand(node.operand)
    if node.op == "-" and node.prefix:
        terms = _signed_terms(operand)
        if len(terms) > 1:
            return _join([(-s, t) for s, t in terms])
    return node.rebuild(operand)


@_expand.register
def _(node: Pow):
    base, exponent = _expand(node.left), _expand(node.right)
    n = exponent.value if isinstance(exponent, Literal) else None
    terms = _signed_terms(base)
    if (len(terms) > 1 and isinstance(n, int) and not isinstance(n, bool)
            and 1 < n <= MAX_EXPAND_POWER):
        product = terms
        for _ in range(n - 1):
            product = _distribute(product, terms)
        return _join(product)
    return Pow(base, exponent)


# ── Substitute ───────────────────────────────────────────────────────────

def substitute(expr: Expression, target, replacement) -> Expression:
    """Replace every occurrence of *target* in *expr* by *replacement*.

    *target* is a variable name, a ``Variable`` or any subtree (matched by
    structural equality).  *replacement* may be a raw number.
    """
    replacement = lift(replacement)
    if isinstance(target, (str, Variable)):
        target = Variable(as_variable_name(target))
    return _substitute(expr, target, replacement)


@singledispatch
def _substitute(node, target, replacement):
    raise UnsupportedOperationError(f"Cannot substitute into {type(node).__name__}", "U300")


@_substitute.register
def _(node: Expression, target, replacement):
    if node == target and type(node) is type(target):
        return replacement
    return node.map_children(lambda child: _substitute(child, target, replacement))
