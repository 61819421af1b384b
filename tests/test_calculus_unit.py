import logging
import math

import pytest
import sympy

from algebra import (
    EngineConfig, Polynomial, UnsupportedOperationError, differentiate,
    integrate, parse, simplify,
)
from algebra.calculus import choose_variable, try_integrate
from algebra.interop import to_sympy

POINTS = (1.7, 2.3, 3.1)


def _numeric_slope(tree, point: float, h: float = 1e-6) -> float:
    return (tree.evaluate({"x": point + h}) - tree.evaluate({"x": point - h})) / (2 * h)


# ── Choosing the variable ────────────────────────────────────────────────

@pytest.mark.parametrize(
    ("text", "name"),
    [("t^2 + 1", "t"), ("2 + 3", "x"), ("x * y", "x"), ("pi * r^2", "r")],
)
def test_choose_variable(text: str, name: str) -> None:
    assert choose_variable(parse(text)) == name


def test_choose_variable_needs_a_hint_for_several_names() -> None:
    with pytest.raises(UnsupportedOperationError) as exc:
        choose_variable(parse("a * b"))
    assert exc.value.code == "U303"
    assert choose_variable(parse("a * b"), "b") == "b"


# ── Differentiation ──────────────────────────────────────────────────────

def test_power_rule() -> None:
    derivative = differentiate(parse("x^3"))
    assert derivative.evaluate({"x": 2}) == 12
    assert derivative == parse("x^3").differentiate()


def test_other_variables_are_constants() -> None:
    assert differentiate(parse("y^2"), "x") == parse("0")
    assert differentiate(parse("a * x^2"), "x").evaluate({"a": 3, "x": 2}) == 12


@pytest.mark.parametrize(
    "text",
    ["sin(x) * x^2", "exp(2x) / x", "ln(x^2 + 1)", "sqrt(x)", "x^x", "tan(x)",
     "atan(x)", "cosh(x)", "log(x)", "log(x, 2)", "2^x", "(3x + 1)^4 - 7x",
     "abs(x - 2)", "x % 3", "5%"],
)
def test_derivative_matches_finite_difference(text: str) -> None:
    tree = parse(text)
    derivative = differentiate(tree, "x")
    for point in POINTS:
        assert derivative.evaluate({"x": point}) == pytest.approx(_numeric_slope(tree, point), rel=1e-5)


@pytest.mark.parametrize("text", ["x!", "x < 1", "5 % x", "[x, 1]"])
def test_no_derivative_rule(text: str) -> None:
    with pytest.raises(UnsupportedOperationError) as exc:
        differentiate(parse(text), "x")
    assert exc.value.code == "U301"


def test_user_functions_have_no_derivative() -> None:
    config = EngineConfig(functions={"double": lambda v: 2 * v})
    with pytest.raises(UnsupportedOperationError) as exc:
        differentiate(parse("double(x)", config), "x", config)
    assert exc.value.code == "U301"


def test_conditional_derivative_keeps_the_test() -> None:
    derivative = differentiate(parse("a > 0 ? x^2 : x"), "x")
    assert derivative.evaluate({"a": 1, "x": 3}) == 6
    assert derivative.evaluate({"a": -1, "x": 3}) == 1


def test_polynomial_derivative() -> None:
    p = Polynomial.from_coefficients((1, 0, 5))
    assert differentiate(p) == Polynomial.from_coefficients((2, 0))


# ── Integration ──────────────────────────────────────────────────────────

def test_integrate_constant() -> None:
    assert integrate(parse("3")) == simplify(parse("3x"))


def test_integrate_polynomial() -> None:
    assert integrate(parse("3x^2 + 2x + 1")) == simplify(parse("x^3 + x^2 + x"))


def test_derivative_of_integral_gives_back_the_polynomial() -> None:
    p = parse("4x^3 - x/2 + 7")
    result = differentiate(integrate(p))
    for point in POINTS:
        assert result.evaluate({"x": point}) == pytest.approx(p.evaluate({"x": point}))


@pytest.mark.parametrize(
    "text",
    ["x^2/3", "x^2/3 + 5", "x^2/3 + 1/2", "x^2/3 - 4x/7 + 2", "5x^4/6 - x", "3x^2 + 2x + 1"],
)
def test_derivative_of_integral_simplifies_back(text: str) -> None:
    e = parse(text)
    assert differentiate(integrate(e)) == simplify(e)


def test_fractional_coefficients_stay_exact() -> None:
    assert integrate(parse("x^2/3")) == simplify(parse("x^3/9"))
    assert str(integrate(parse("x^2/3"))) == "x^3 / 9"


def test_unexpanded_powers_round_trip_by_value() -> None:
    # the normal form keeps (x + 1)^3 folded, the derivative comes back expanded
    e = parse("(x + 1)^3")
    result = differentiate(integrate(e))
    for point in POINTS:
        assert result.evaluate({"x": point}) == pytest.approx(e.evaluate({"x": point}))


@pytest.mark.parametrize(
    "text",
    ["sin(x)", "cos(3x)", "exp(2x + 1)", "1/x", "x * exp(x)", "x * sin(x)",
     "1/(x^2 - 1)", "1/(x^2 + 1)", "2x/(x^2 + 1)", "(x^2 + 1)/(x + 1)",
     "1/(x - 2)^2", "sqrt(x)", "2^x", "ln(x)", "1/sqrt(x)", "sinh(x)", "tan(x)",
     "(3x + 1)^0.5", "-cos(x)", "5 * exp(x)"],
)
def test_antiderivative_checked_by_sympy(text: str) -> None:
    integrand = parse(text)
    antiderivative = integrate(integrand, "x", strict=True)
    x = sympy.Symbol("x")
    slope = sympy.diff(to_sympy(antiderivative), x)
    for point in POINTS:
        expected = integrand.evaluate({"x": point})
        assert complex(slope.subs(x, point).evalf()) == pytest.approx(complex(expected), rel=1e-6)


def test_conditional_integrand() -> None:
    result = integrate(parse("a > 0 ? 2x : 1"), "x")
    assert result.evaluate({"a": 1, "x": 3}) == pytest.approx(9)
    assert result.evaluate({"a": -1, "x": 3}) == pytest.approx(3)


def test_polynomial_node_integrates() -> None:
    p = Polynomial.from_coefficients((3, 0, 0))
    assert integrate(p).evaluate({"x": 2}) == pytest.approx(8)


def test_unintegrable_input_comes_back_unchanged(caplog) -> None:
    tree = parse("sin(x^2)")
    with caplog.at_level(logging.DEBUG, logger="algebra.calculus"):
        assert integrate(tree) == tree
    assert "No integration rule" in caplog.text
    assert try_integrate(tree) is None


def test_strict_integration_raises() -> None:
    with pytest.raises(UnsupportedOperationError) as exc:
        integrate(parse("sin(x^2)"), strict=True)
    assert exc.value.code == "U302"


def test_integration_by_parts_respects_the_depth_limit() -> None:
    shallow = EngineConfig(max_parts_depth=0)
    assert try_integrate(parse("x * exp(x)"), "x", shallow) is None
    assert try_integrate(parse("x * exp(x)"), "x") is not None


def test_integral_value_over_an_interval() -> None:
    antiderivative = integrate(parse("sin(x)"))
    area = antiderivative.evaluate({"x": math.pi}) - antiderivative.evaluate({"x": 0})
    assert area == pytest.approx(2)
