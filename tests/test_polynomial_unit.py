from fractions import Fraction

import pytest

from algebra import (
    EngineConfig, EvaluationError, Polynomial, SolverFailure,
    UnsupportedOperationError, Variable, as_polynomial, differentiate, parse,
)


def _poly(*coefficients) -> Polynomial:
    return Polynomial.from_coefficients(coefficients)


def _product(factors: list) -> Polynomial:
    result = _poly(1)
    for f in factors:
        result = result * f
    return result


# ── Construction ─────────────────────────────────────────────────────────

def test_leading_zeros_are_stripped() -> None:
    p = Polynomial((0, 0, 1, 2))
    assert p.coefficients == (1, 2)
    assert p.degree == 1
    assert p.leading == 1
    assert p.coefficient(0) == 2
    assert p.coefficient(5) is None


def test_zero_polynomial() -> None:
    zero = Polynomial()
    assert zero.is_zero
    assert zero.degree == 0
    assert _poly(0, 0) == zero


def test_coefficients_must_be_numbers() -> None:
    with pytest.raises(TypeError):
        Polynomial(("a", 1))
    with pytest.raises(TypeError):
        Polynomial((True, 1))


def test_parse_and_render() -> None:
    p = Polynomial.parse("3x^2 - 2x + 1")
    assert p == _poly(3, -2, 1)
    assert str(p) == "3 * x^2 - 2 * x + 1"
    assert str(_poly(1, 0, -4)) == "x^2 - 4"
    assert str(_poly(-1, 1)) == "-x + 1"
    assert str(Polynomial()) == "0"
    assert Polynomial.parse("t^3 + t").variable == "t"
    with pytest.raises(UnsupportedOperationError) as exc:
        Polynomial.parse("sin(x)")
    assert exc.value.code == "U305"


# ── Arithmetic ───────────────────────────────────────────────────────────

def test_arithmetic() -> None:
    p, q = _poly(1, 1), _poly(1, -1)
    assert p + q == _poly(2, 0)
    assert p - q == _poly(2)
    assert p * q == _poly(1, 0, -1)
    assert p + 1 == _poly(1, 2)
    assert 2 * p == _poly(2, 2)
    assert -p == _poly(-1, -1)


def test_arithmetic_with_other_expressions_builds_nodes() -> None:
    p = _poly(1, 0)
    result = p + Variable("y")
    assert not isinstance(result, Polynomial)
    assert result.evaluate({"x": 2, "y": 3}) == 5


def test_divmod() -> None:
    quotient, remainder = _poly(1, 0, 0, -1).divmod(_poly(1, -1))
    assert quotient == _poly(1, 1, 1)
    assert remainder.is_zero

    quotient, remainder = _poly(1, 0, 1).divmod(_poly(1, 1))
    assert quotient == _poly(1, -1)
    assert remainder == _poly(2)

    with pytest.raises(EvaluationError) as exc:
        _poly(1, 2).divmod(Polynomial())
    assert exc.value.code == "E202"


def test_gcd_lcm_and_primitive() -> None:
    a = _poly(1, -3, 2)        # (x - 1)(x - 2)
    b = _poly(1, 2, -3)        # (x - 1)(x + 3)
    assert a.gcd(b) == _poly(1, -1)
    assert list(a.lcm(b).coefficients) == pytest.approx([1, 0, -7, 6])
    assert _poly(2, 4, 6).primitive() == _poly(1, 2, 3)
    assert _poly(0.5, 1).primitive() == _poly(0.5, 1)
    assert _poly(2, 4).monic() == _poly(1, 2)


# ── Calculus ─────────────────────────────────────────────────────────────

def test_evaluate_derivative_and_antiderivative() -> None:
    p = _poly(3, 2, 1)
    assert p.evaluate_at(2) == 17
    assert p.derivative() == _poly(6, 2)
    assert p.antiderivative() == _poly(1, 1, 1, 0)
    assert _poly(3, 0, 0).integrate_between(0, 1) == 1


def test_polynomial_as_expression_node() -> None:
    p = _poly(1, 0, -9)
    assert p.evaluate({"x": 3}) == 0
    assert p.evaluate() == p
    assert p.variables() == {"x"}
    assert differentiate(_poly(1, 0, 0)) == _poly(2, 0)
    assert differentiate(_poly(1, 0, 0), "y") == parse("0")


# ── Roots and factors ────────────────────────────────────────────────────

@pytest.mark.parametrize(
    ("coefficients", "expected"),
    [
        ((2, -4), [2]),
        ((1, 0, -9), [-3, 3]),
        ((1, -2, 1), [1, 1]),
        ((1, -6, 11, -6), [1, 2, 3]),
        ((1, 0, -5, 0, 4), [-2, -1, 1, 2]),
        ((5,), []),
    ],
)
def test_real_roots(coefficients, expected) -> None:
    assert _poly(*coefficients).roots() == expected


def test_exact_roots_are_ints() -> None:
    roots = _poly(1, -6, 11, -6).roots()
    assert all(isinstance(r, int) for r in roots)


def test_irrational_roots_are_accurate() -> None:
    roots = _poly(1, 0, -2).roots()
    assert roots == pytest.approx([-(2 ** 0.5), 2 ** 0.5])


def test_complex_roots() -> None:
    roots = _poly(1, 0, 1).roots()
    assert roots == [complex(0, -1), complex(0, 1)]

    cubic = _poly(1, -1, 1, -1).roots()   # (x - 1)(x^2 + 1)
    assert cubic[-1] == 1
    assert sum(1 for r in cubic if isinstance(r, complex)) == 2


def test_roots_of_zero_polynomial_fail() -> None:
    with pytest.raises(SolverFailure) as exc:
        Polynomial().roots()
    assert exc.value.code == "S402"


def test_roots_satisfy_the_polynomial() -> None:
    p = _poly(2, -3, -11, 6, 1)
    for r in p.roots(EngineConfig(tolerance=1e-12)):
        assert abs(p.evaluate_at(r)) < 1e-8


def test_factorize_real_roots() -> None:
    factors = _poly(1, 0, -1).factorize()
    assert factors == [_poly(1), _poly(1, 1), _poly(1, -1)]


def test_factorize_combines_conjugate_pairs() -> None:
    p = _poly(2, 0, 2, 0)                  # 2x(x^2 + 1)
    factors = p.factorize()
    assert factors[0] == _poly(2)
    assert _poly(1, 0, 1) in factors
    assert list(_product(factors).coefficients) == pytest.approx([2, 0, 2, 0])


# ── Extraction ───────────────────────────────────────────────────────────

@pytest.mark.parametrize(
    ("text", "coefficients"),
    [
        ("3x^2 - 2x + 1", (3, -2, 1)),
        ("(x + 1)^2", (1, 2, 1)),
        ("x/2", (0.5, 0)),
        ("-(x - 4) * 2", (-2, 8)),
        ("2 * 3", (6,)),
        ("x^2 * pi", (3.141592653589793, 0, 0)),
    ],
)
def test_as_polynomial(text: str, coefficients) -> None:
    assert as_polynomial(parse(text)).coefficients == pytest.approx(coefficients)


def test_exact_extraction_keeps_fractions() -> None:
    p = as_polynomial(parse("x^2/3 - x/2 + 4"), "x", exact=True)
    assert p.coefficients == (Fraction(1, 3), Fraction(-1, 2), 4)
    assert str(p) == "x^2 / 3 - x / 2 + 4"
    assert p.evaluate_at(3) == pytest.approx(5.5)
    assert p.evaluate({"x": 6}) == 13
    assert as_polynomial(parse("4x/2"), "x", exact=True).coefficients == (2, 0)
    assert as_polynomial(parse("x/3")).coefficients == pytest.approx((1 / 3, 0))


def test_antiderivative_is_exact() -> None:
    assert _poly(1, 0, 0).antiderivative().coefficients == (Fraction(1, 3), 0, 0, 0)


@pytest.mark.parametrize("text", ["x * y", "sin(x)", "1 / x", "x^0.5", "x^y", "2^x"])
def test_as_polynomial_rejects_non_polynomials(text: str) -> None:
    assert as_polynomial(parse(text), "x") is None


def test_as_polynomial_in_another_variable() -> None:
    p = as_polynomial(parse("a*t^2 + t"), "t")
    assert p is None
    p = as_polynomial(parse("3t^2 + t"), Variable("t"))
    assert p == Polynomial((3, 1, 0), "t")
