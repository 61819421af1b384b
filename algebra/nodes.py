"""The closed family of expression tree nodes."""

"""
Every node is a frozen dataclass: trees are immutable, ``==`` is structural
equality and nodes can be used as dict keys.  Transforms never mutate a
node; they build new trees (``rebuild`` / ``map_children``).

``str(node)`` is the canonical rendering.  It is precedence aware, prints
only the parentheses a re-parse needs, and doubles as the key the
simplifier uses to recognise like terms.
"""

from dataclasses import dataclass
from functools import singledispatch
from typing import Iterator, Optional

from algebra import grammar, numeric
from algebra.errors import UnsupportedOperationError


class Expression:
    """Base class of every node.  Operators build nodes, lifting raw numbers."""

    def children(self) -> tuple:
        return ()

    def rebuild(self, *children) -> "Expression":
        return self

    def map_children(self, fn) -> "Expression":
        kids = self.children()
        if not kids:
            return self
        return self.rebuild(*(fn(c) for c in kids))

    # ── Structural queries ───────────────────────────────────────────────

    def walk(self) -> Iterator["Expression"]:
        """Yield every node, parents before children, without recursion."""
        stack = [self]
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(node.children()))

    def free_names(self) -> tuple:
        """Names this node itself introduces (not its children)."""
        return ()

    def variables(self) -> set:
        return {name for n in self.walk() for name in n.free_names()}

    def contains(self, name: str) -> bool:
        return any(name in n.free_names() for n in self.walk())

    def depth(self) -> int:
        deepest = 0
        stack = [(self, 1)]
        while stack:
            node, d = stack.pop()
            deepest = max(deepest, d)
            stack.extend((c, d + 1) for c in node.children())
        return deepest

    def size(self) -> int:
        return sum(1 for _ in self.walk())

    # ── Operations (implemented in their own modules) ─────────────────────

    def evaluate(self, bindings=None, *, config=None, strict=False):
        from algebra.evaluator import evaluate
        return evaluate(self, bindings, config=config, strict=strict)

    def simplify(self, config=None) -> "Expression":
        from algebra.simplifier import simplify
        return simplify(self, config)

    def expand(self, collect=False, config=None) -> "Expression":
        from algebra.transforms import expand
        return expand(self, collect, config)

    def substitute(self, target, replacement) -> "Expression":
        from algebra.transforms import substitute
        return substitute(self, target, replacement)

    def differentiate(self, variable=None, config=None) -> "Expression":
        from algebra.calculus import differentiate
        return differentiate(self, variable, config)

    def integrate(self, variable=None, config=None, strict=False) -> "Expression":
        from algebra.calculus import integrate
        return integrate(self, variable, config, strict=strict)

    def __str__(self) -> str:
        return render(self)

    # ── Python operators ─────────────────────────────────────────────────

    def __add__(self, other):
        return Add(self, lift(other))

    def __radd__(self, other):
        return Add(lift(other), self)

    def __sub__(self, other):
        return Subtract(self, lift(other))

    def __rsub__(self, other):
        return Subtract(lift(other), self)

    def __mul__(self, other):
        return Multiply(self, lift(other))

    def __rmul__(self, other):
        return Multiply(lift(other), self)

    def __truediv__(self, other):
        return Divide(self, lift(other))

    def __rtruediv__(self, other):
        return Divide(lift(other), self)

    def __mod__(self, other):
        return Modulo(self, lift(other))

    def __pow__(self, other):
        return Pow(self, lift(other))

    def __rpow__(self, other):
        return Pow(lift(other), self)

    def __neg__(self):
        return Unary("-", self)

    def __pos__(self):
        return Unary("+", self)


def lift(value) -> Expression:
    """Wrap a raw value as a ``Literal``; expressions pass through."""
    if isinstance(value, Expression):
        return value
    if isinstance(value, (list, tuple)):
        return ArrayLiteral(tuple(lift(v) for v in value))
    if isinstance(value, dict):
        return MapLiteral(tuple((lift(k), lift(v)) for k, v in value.items()))
    if numeric.is_number(value) or isinstance(value, (bool, str)) or value is None:
        return Literal(value)
    raise TypeError(f"Cannot use {type(value).__name__} as an expression")


# ── Leaves ──────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Literal(Expression):
    value: object


@dataclass(frozen=True)
class Variable(Expression):
    name: str

    def free_names(self) -> tuple:
        return (self.name,)


# ── Arithmetic ──────────────────────────────────────────────────────────

@dataclass(frozen=True)
class BinaryOperation(Expression):
    left: Expression
    right: Expression

    symbol = "?"
    precedence = 0

    def children(self) -> tuple:
        return (self.left, self.right)

    def rebuild(self, left, right) -> Expression:
        return type(self)(left, right)


@dataclass(frozen=True)
class Add(BinaryOperation):
    symbol = "+"
    precedence = grammar.ADDITIVE_PRECEDENCE


@dataclass(frozen=True)
class Subtract(BinaryOperation):
    symbol = "-"
    precedence = grammar.ADDITIVE_PRECEDENCE


@dataclass(frozen=True)
class Multiply(BinaryOperation):
    symbol = "*"
    precedence = grammar.MULTIPLICATIVE_PRECEDENCE


@dataclass(frozen=True)
class Divide(BinaryOperation):
    symbol = "/"
    precedence = grammar.MULTIPLICATIVE_PRECEDENCE


@dataclass(frozen=True)
class Modulo(BinaryOperation):
    symbol = "%"
    precedence = grammar.MULTIPLICATIVE_PRECEDENCE


@dataclass(frozen=True)
class Pow(BinaryOperation):
    symbol = "^"
    precedence = grammar.POWER_PRECEDENCE


ARITHMETIC = {"+": Add, "-": Subtract, "*": Multiply, "/": Divide, "%": Modulo,
              "^": Pow, "**": Pow}


@dataclass(frozen=True)
class Unary(Expression):
    op: str
    operand: Expression
    prefix: bool = True

    def children(self) -> tuple:
        return (self.operand,)

    def rebuild(self, operand) -> Expression:
        return Unary(self.op, operand, self.prefix)


# ── Everything else the grammar produces ─────────────────────────────────

@dataclass(frozen=True)
class Relational(Expression):
    """Comparison, logical, bitwise, shift, ``~/``, ``??``, ``P``, ``C`` or ``=``."""

    op: str
    left: Expression
    right: Expression

    def children(self) -> tuple:
        return (self.left, self.right)

    def rebuild(self, left, right) -> Expression:
        return Relational(self.op, left, right)


@dataclass(frozen=True)
class Call(Expression):
    name: str
    args: tuple = ()

    def children(self) -> tuple:
        return self.args

    def rebuild(self, *args) -> Expression:
        return Call(self.name, tuple(args))


@dataclass(frozen=True)
class Group(Expression):
    inner: Expression

    def children(self) -> tuple:
        return (self.inner,)

    def rebuild(self, inner) -> Expression:
        return Group(inner)


@dataclass(frozen=True)
class Conditional(Expression):
    test: Expression
    if_true: Expression
    if_false: Expression

    def children(self) -> tuple:
        return (self.test, self.if_true, self.if_false)

    def rebuild(self, test, if_true, if_false) -> Expression:
        return Conditional(test, if_true, if_false)


@dataclass(frozen=True)
class Member(Expression):
    obj: Expression
    field: str

    def children(self) -> tuple:
        return (self.obj,)

    def rebuild(self, obj) -> Expression:
        return Member(obj, self.field)


@dataclass(frozen=True)
class Index(Expression):
    obj: Expression
    key: Expression

    def children(self) -> tuple:
        return (self.obj, self.key)

    def rebuild(self, obj, key) -> Expression:
        return Index(obj, key)


@dataclass(frozen=True)
class ArrayLiteral(Expression):
    items: tuple = ()

    def children(self) -> tuple:
        return self.items

    def rebuild(self, *items) -> Expression:
        return ArrayLiteral(tuple(items))


@dataclass(frozen=True)
class MapLiteral(Expression):
    entries: tuple = ()   # ((key, value), ...)

    def children(self) -> tuple:
        return tuple(part for pair in self.entries for part in pair)

    def rebuild(self, *parts) -> Expression:
        return MapLiteral(tuple(zip(parts[0::2], parts[1::2])))


# Polynomial lives in algebra.polynomial with the algorithms that use it.
NODE_TYPES = (
    Literal, Variable, Add, Subtract, Multiply, Divide, Modulo, Pow, Unary,
    Relational, Call, Group, Conditional, Member, Index, ArrayLiteral, MapLiteral,
)

ZERO = Literal(0)
ONE = Literal(1)
MINUS_ONE = Literal(-1)


def var(name: str) -> Variable:
    return Variable(name)


def negate(expr: Expression) -> Expression:
    if isinstance(expr, Literal) and numeric.is_number(expr.value):
        return Literal(-expr.value)
    return Unary("-", expr)


def is_number_literal(expr, value=None) -> bool:
    if not isinstance(expr, Literal) or not numeric.is_number(expr.value):
        return False
    return value is None or expr.value == value


def unwrap(expr: Expression) -> Expression:
    while isinstance(expr, Group):
        expr = expr.inner
    return expr


def as_variable_name(target) -> Optional[str]:
    if target is None:
        return None
    if isinstance(target, Variable):
        return target.name
    if isinstance(target, str):
        return target
    raise TypeError(f"Expected a variable name, got {target!r}")


# ── Canonical rendering ──────────────────────────────────────────────────

def precedence(node: Expression) -> float:
    if isinstance(node, BinaryOperation):
        return node.precedence
    if isinstance(node, Literal):
        if numeric.is_number(node.value) and format_literal(node).startswith("-"):
            return grammar.UNARY_PRECEDENCE
        return grammar.ATOM_PRECEDENCE
    if isinstance(node, Unary):
        return grammar.UNARY_PRECEDENCE if node.prefix else grammar.POSTFIX_PRECEDENCE
    if isinstance(node, Relational):
        return _relational_precedence(node.op)
    if isinstance(node, Conditional):
        return -2
    custom = getattr(node, "render_precedence", None)
    if custom is not None:
        return custom
    return grammar.ATOM_PRECEDENCE


def _relational_precedence(op: str) -> float:
    if op == "^":
        return grammar.XOR_PRECEDENCE
    return grammar.BINARY_PRECEDENCE[op]


def _wrap(node: Expression, needs_parens: bool) -> str:
    text = render(node)
    return f"({text})" if needs_parens else text


def _binary_text(symbol: str, prec: float, left, right, right_assoc: bool = False) -> str:
    left_prec, right_prec = precedence(left), precedence(right)
    if right_assoc:
        left_text = _wrap(left, left_prec <= prec)
        right_text = _wrap(right, right_prec < prec)
        return f"{left_text}^{right_text}"
    left_text = _wrap(left, left_prec < prec)
    right_text = _wrap(right, right_prec <= prec)
    return f"{left_text} {symbol} {right_text}"


def format_literal(node: Literal) -> str:
    value = node.value
    if value is None:
        return "null"
    if isinstance(value, str):
        escaped = value.replace("\\", "\\\\").replace('"', '\\"')
        for char, code in (("\n", "n"), ("\r", "r"), ("\t", "t"),
                           ("\b", "b"), ("\f", "f"), ("\v", "v")):
            escaped = escaped.replace(char, "\\" + code)
        return f'"{escaped}"'
    return numeric.format_number(value)


@singledispatch
def render(node) -> str:
    raise UnsupportedOperationError(f"Cannot render {type(node).__name__}", "U300")


@render.register
def _(node: Literal) -> str:
    return format_literal(node)


@render.register
def _(node: Variable) -> str:
    return node.name


@render.register
def _(node: BinaryOperation) -> str:
    return _binary_text(node.symbol, node.precedence, node.left, node.right,
                        right_assoc=isinstance(node, Pow))


@render.register
def _(node: Unary) -> str:
    if node.prefix:
        return node.op + _wrap(node.operand, precedence(node.operand) < grammar.UNARY_PRECEDENCE)
    return _wrap(node.operand, precedence(node.operand) < grammar.POSTFIX_PRECEDENCE) + node.op


@render.register
def _(node: Relational) -> str:
    return _binary_text(node.op, _relational_precedence(node.op), node.left, node.right)


@render.register
def _(node: Call) -> str:
    return f"{node.name}({', '.join(render(a) for a in node.args)})"


@render.register
def _(node: Group) -> str:
    return f"({render(node.inner)})"


@render.register
def _(node: Conditional) -> str:
    parts = [_wrap(c, isinstance(c, Conditional)) for c in node.children()]
    return f"{parts[0]} ? {parts[1]} : {parts[2]}"


_POSTFIX_TARGETS = (Variable, Call, Member, Index, Group, ArrayLiteral, MapLiteral)


@render.register
def _(node: Member) -> str:
    return f"{_wrap(node.obj, not isinstance(node.obj, _POSTFIX_TARGETS))}.{node.field}"


@render.register
def _(node: Index) -> str:
    return f"{_wrap(node.obj, not isinstance(node.obj, _POSTFIX_TARGETS))}[{render(node.key)}]"


@render.register
def _(node: ArrayLiteral) -> str:
    return "[" + ", ".join(render(i) for i in node.items) + "]"


@render.register
def _(node: MapLiteral) -> str:
    return "{" + ", ".join(f"{render(k)}: {render(v)}" for k, v in node.entries) + "}"
