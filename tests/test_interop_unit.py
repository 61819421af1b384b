from decimal import Decimal

import pytest
import sympy

from algebra import (
    EngineConfig, Literal, Polynomial, UnsupportedOperationError, parse,
)
from algebra.config import DEFAULT_CONFIG
from algebra.interop import to_sympy

x, a, n = sympy.symbols("x a n")


def test_numbers() -> None:
    assert to_sympy(parse("3")) == sympy.Integer(3)
    assert isinstance(to_sympy(parse("0.5")), sympy.Float)
    value = to_sympy(Literal(Decimal("0.10")))
    assert isinstance(value, sympy.Float)
    assert float(value) == pytest.approx(0.1)
    z = to_sympy(Literal(complex(1, 2)))
    assert float(sympy.re(z)) == pytest.approx(1.0)
    assert float(sympy.im(z)) == pytest.approx(2.0)
    assert to_sympy(parse("true")) is sympy.true


def test_constants_follow_the_config() -> None:
    assert to_sympy(parse("pi")) is sympy.pi
    assert to_sympy(parse("e")) is sympy.E
    off = DEFAULT_CONFIG.with_options(use_constants=False)
    assert to_sympy(parse("pi"), off) == sympy.Symbol("pi")


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("x^2 + 2x - 1", x ** 2 + 2 * x - 1),
        ("x / 2", x / 2),
        ("x % 3", sympy.Mod(x, 3)),
        ("n!", sympy.factorial(n)),
        ("50%", sympy.Rational(1, 2)),
        ("x = 1", sympy.Eq(x, 1)),
        ("x < 1", sympy.Lt(x, 1)),
        ("5 C 2", 10),
        ("log(x)", sympy.log(x, 10)),
        ("log(x, 2)", sympy.log(x, 2)),
        ("ln(x)", sympy.log(x)),
        ("abs(x)", sympy.Abs(x)),
        ("sqrt(x)", sympy.sqrt(x)),
        ("a > 0 ? 1 : 2", sympy.Piecewise((1, a > 0), (2, True))),
    ],
)
def test_operators_and_functions(text: str, expected) -> None:
    assert to_sympy(parse(text)) == expected


def test_polynomial() -> None:
    p = Polynomial.from_coefficients((1, 0, -4))
    assert to_sympy(p) == x ** 2 - 4


def test_result_can_be_cross_checked() -> None:
    tree = parse("(x + 1)^2")
    assert sympy.expand(to_sympy(tree.simplify()) - to_sympy(tree)) == 0


@pytest.mark.parametrize(
    "text",
    ['"text"', "x.re", "[1, 2][0]", "[1, 2]", '{"a": 1}', "6 & 3", "null"],
)
def test_nodes_without_a_counterpart(text: str) -> None:
    with pytest.raises(UnsupportedOperationError) as exc:
        to_sympy(parse(text))
    assert exc.value.code == "U304"


def test_user_functions_have_no_counterpart() -> None:
    config = EngineConfig(functions={"double": lambda v: 2 * v})
    with pytest.raises(UnsupportedOperationError) as exc:
        to_sympy(parse("double(x)", config), config)
    assert exc.value.code == "U304"
