import itertools
import logging

import pytest

from algebra import (
    Call, Conditional, Divide, EngineConfig, EvaluationError, Group, Literal,
    Modulo, Multiply, Pow, Unary, Variable, parse, simplify,
)
from algebra.simplifier import RULES, get_rule, split_coefficient, terms_of

x, a, b = Variable("x"), Variable("a"), Variable("b")


def _same_values(left, right, names=("x",)) -> None:
    for point in (0.3, 1.7, 2.9):
        bindings = {n: point + i for i, n in enumerate(names)}
        assert left.evaluate(bindings) == pytest.approx(right.evaluate(bindings))


# ── Whole-driver scenarios ───────────────────────────────────────────────

def test_opposite_terms_cancel_to_zero() -> None:
    assert simplify(x + Multiply(Literal(-1), x)) == Literal(0)
    assert simplify(Multiply(Literal(0), x)) == Literal(0)


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("2x + 3x", "5 * x"),
        ("3 + x + 2x - 1", "2 + 3 * x"),
        ("x - 3x", "-2 * x"),
        ("5 - x", "5 - x"),
        ("x * x", "x^2"),
        ("x * x^2 * y / x", "x^2 * y"),
        ("x/2 + x/2", "x"),
        ("x / 2", "x / 2"),
        ("3x / 2", "3 * x / 2"),
        ("x^0", "1"),
        ("(x^2)^3", "x^6"),
        ("2 * 3 + 4", "10"),
        ("ln(exp(x))", "x"),
        ("sin(x)^2 + cos(x)^2", "1"),
        ("3sin(x)^2 + 3cos(x)^2 + 1", "4"),
        ("+x", "x"),
        ("((x))", "x"),
        ("true ? a : b", "a"),
        ("0 % x", "0"),
    ],
)
def test_simplify_normal_forms(text: str, expected: str) -> None:
    assert str(simplify(parse(text))) == expected


@pytest.mark.parametrize(
    ("text", "equivalent"),
    [
        ("(x + 1)(x - 1)", "x^2 - 1"),
        ("x^2 + 2x + 1", "(x + 1)^2"),
        ("(a - b)^2 + 4a*b", "(a + b)^2"),
        ("a/c + b/c", "(a + b)/c"),
        ("2(x + 3)", "6 + 2x"),
    ],
)
def test_pattern_rules_reach_the_same_normal_form(text: str, equivalent: str) -> None:
    assert simplify(parse(text)) == simplify(parse(equivalent))


@pytest.mark.parametrize(
    "text",
    ["x^2 + 3x - 2 + y", "(x + 1)(x - 1)", "a/c + b/c", "sin(x)^2 + cos(x)^2 + x",
     "2x * 3y / (6x)", "x^2 + 2x + 1", "-(x - 4) * 2", "exp(ln(x)) + x % 3",
     "(a - b)^2 + 4a*b", "x^(1/2) * x^(1/2)"],
)
def test_simplify_is_idempotent(text: str) -> None:
    once = simplify(parse(text))
    assert simplify(once) == once


def test_result_does_not_depend_on_term_order() -> None:
    terms = ["x^2", "3x", "(-2)", "y", "x*y"]
    results = {simplify(parse(" + ".join(p))) for p in itertools.permutations(terms)}
    assert len(results) == 1


def test_result_does_not_depend_on_factor_order() -> None:
    factors = ["2", "x", "y^2", "sin(x)"]
    results = {simplify(parse(" * ".join(p))) for p in itertools.permutations(factors)}
    assert len(results) == 1


def test_simplify_preserves_value() -> None:
    for text in ["(x + 1)^2 - (x - 1)^2", "x / (2x) + 3", "(x^2 - 1) / (x + 1) * 2",
                 "sqrt(x)^2 + 4x^3 / x"]:
        _same_values(simplify(parse(text)), parse(text))


def test_fold_errors_propagate() -> None:
    with pytest.raises(EvaluationError) as exc:
        simplify(parse("x + 1/0"))
    assert exc.value.code == "E202"


@pytest.mark.parametrize(
    "text", ["x/(x-x)", "(y-y)^-1 * x", "x / 0", "3x * (2 - 2)^-2", "1/0"],
)
def test_literal_zero_denominators_are_division_by_zero(text: str) -> None:
    with pytest.raises(EvaluationError) as exc:
        simplify(parse(text))
    assert exc.value.code == "E202"


def test_pass_limit_logs_a_warning(caplog) -> None:
    with caplog.at_level(logging.WARNING, logger="algebra.simplifier"):
        simplify(parse("x + x + x"), EngineConfig(max_passes=1))
    assert "Simplifier stopped" in caplog.text


# ── Rules in isolation ───────────────────────────────────────────────────

def test_rule_order() -> None:
    names = [r.name for r in RULES]
    assert names[:3] == ["unwrap_group", "zero_denominator", "fold_constants"]
    assert names[-2:] == ["collect_factors", "collect_terms"]
    assert names.index("difference_of_squares") < names.index("collect_factors")


def test_basic_rules() -> None:
    assert get_rule("unwrap_group").apply(Group(x)) == x
    assert get_rule("fold_constants").apply(parse("2 + 3")) == Literal(5)
    assert get_rule("fold_constants").apply(parse("x + 1")) is None
    assert get_rule("unary_plus").apply(Unary("+", x)) == x
    assert get_rule("percent").apply(Unary("%", x, prefix=False)) == Divide(x, Literal(100))
    assert get_rule("modulo_zero").apply(Modulo(Literal(0), x)) == Literal(0)
    assert get_rule("conditional_literal_test").apply(
        Conditional(Literal(False), a, b)) == b


def test_power_rules() -> None:
    identities = get_rule("power_identities")
    assert identities.apply(Pow(x, Literal(0))) == Literal(1)
    assert identities.apply(Pow(x, Literal(1))) == x
    assert identities.apply(Pow(Literal(1), x)) == Literal(1)
    assert identities.apply(Pow(Literal(0), Literal(3))) == Literal(0)
    assert identities.apply(Pow(Literal(0), x)) is None

    nested = get_rule("power_of_power")
    assert nested.apply(Pow(Pow(x, Literal(2)), Literal(3))) == Pow(x, Literal(6))
    assert nested.apply(Pow(Pow(x, a), Literal(2))) == Pow(x, Multiply(a, Literal(2)))
    assert nested.apply(Pow(Pow(x, a), b)) is None


def test_log_exp_inverse_rule() -> None:
    inverse = get_rule("log_exp_inverse")
    assert inverse.apply(Call("ln", (Call("exp", (x,)),))) == x
    assert inverse.apply(Call("exp", (Call("ln", (x,)),))) == x
    assert inverse.apply(Call("ln", (x,))) is None
    assert inverse.apply(Call("sin", (x,))) is None


def test_difference_of_squares_rule() -> None:
    result = get_rule("difference_of_squares").apply(parse("(x + 1)*(x - 1)"))
    assert result is not None
    assert simplify(result) == simplify(parse("x^2 - 1"))
    assert get_rule("difference_of_squares").apply(parse("(x + 1)*(x + 2)")) is None


def test_pythagorean_rule() -> None:
    result = get_rule("pythagorean").apply(parse("sin(x)^2 + cos(x)^2"))
    assert result == Literal(1)
    assert get_rule("pythagorean").apply(parse("sin(x)^2 + cos(y)^2")) is None


def test_collect_rules() -> None:
    assert str(get_rule("collect_terms").apply(parse("x + 2 + x"))) == "2 + 2 * x"
    assert str(get_rule("collect_factors").apply(parse("x * 2 * x"))) == "2 * x^2"
    assert str(get_rule("collect_factors").apply(parse("-x * y"))) == "-x * y"


# ── Helpers ──────────────────────────────────────────────────────────────

def test_split_coefficient() -> None:
    assert split_coefficient(parse("6x*y")) == (6, simplify(parse("x*y")))
    assert split_coefficient(Literal(4)) == (4, Literal(1))
    coefficient, rest = split_coefficient(parse("x/4"))
    assert coefficient == 0.25
    assert rest == x


def test_terms_of() -> None:
    terms = terms_of(parse("3 + 2x - y + 1"))
    assert [str(t) for t in terms] == ["4", "2 * x", "-y"]
