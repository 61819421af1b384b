import math
from decimal import Decimal

import pytest

from algebra import (
    EngineConfig, EvaluationError, Expression, Variable, evaluate, parse, simplify,
)
from algebra.config import DEFAULT_CONFIG
from algebra.evaluator import call_function, evaluate_number


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("2 + 3 * 4", 14),
        ("7 / 2", 3.5),
        ("6 / 3", 2),
        ("2^10", 1024),
        ("2^-1", 0.5),
        ("7 % 3", 1),
        ("5 ~/ 2", 2),
        ("50%", 0.5),
        ("5!", 120),
        ("sqrt(16)", 4),
        ("abs(-3)", 3),
        ("log(100)", 2.0),
        ("log(8, 2)", 3.0),
        ("6 & 3", 2),
        ("6 | 3", 7),
        ("1 << 4", 16),
        ("5 C 2", 10),
        ("5 P 2", 20),
        ("3 < 4", True),
        ("3 >= 4", False),
        ("1 == 1.0", True),
        ("true && false", False),
        ("false || 1", True),
        ("null ?? 4", 4),
        ("true ? 1 : 2", 1),
        ("[1, 2, 3][1]", 2),
        ('{"a": 1}.a', 1),
        ('"ab" + "cd"', "abcd"),
        ("~5", -6),
    ],
)
def test_evaluate_numeric(text: str, expected) -> None:
    result = parse(text).evaluate()
    assert result == pytest.approx(expected) if isinstance(expected, float) else result == expected


def test_integer_results_stay_integers() -> None:
    assert isinstance(parse("6 / 3").evaluate(), int)
    assert isinstance(parse("sqrt(16)").evaluate(), int)
    assert isinstance(parse("sqrt(2)").evaluate(), float)


def test_bindings_by_name_and_by_variable() -> None:
    tree = parse("x^2 + 1")
    assert tree.evaluate({"x": 3}) == 10
    assert evaluate(tree, {Variable("x"): 3}) == 10
    # a binding may itself be an expression
    assert tree.evaluate({"x": parse("y + 1"), "y": 2}) == 10


def test_constants() -> None:
    assert parse("pi").evaluate() == pytest.approx(math.pi)
    assert parse("2e").evaluate() == pytest.approx(2 * math.e)
    assert parse("pi").evaluate({"pi": 3}) == 3
    off = DEFAULT_CONFIG.with_options(use_constants=False)
    assert parse("pi").evaluate(config=off) == Variable("pi")


def test_unbound_variables_give_a_simplified_expression() -> None:
    result = parse("x + 1 + 2").evaluate()
    assert isinstance(result, Expression)
    assert result == simplify(parse("3 + x"))

    partial = parse("x * y").evaluate({"y": 2})
    assert partial == simplify(parse("2x"))


def test_strict_mode_rejects_free_variables() -> None:
    with pytest.raises(EvaluationError) as exc:
        parse("x + y").evaluate(strict=True)
    assert exc.value.code == "E201"
    assert "x, y" in exc.value.message


@pytest.mark.parametrize(
    ("text", "code"),
    [
        ("1 / 0", "E202"),
        ("x / 0", "E202"),
        ("5 % 0", "E202"),
        ("0^0", "E203"),
        ("0^-1", "E203"),
        ("(-3)!", "E204"),
        ("sqrt(-4)", "E204"),
        ("ln(0)", "E204"),
        ("log(8, 1)", "E204"),
        ("asin(2)", "E204"),
        ("2j < 1", "E207"),
        ('"a" < 1', "E207"),
        ("[1, 2][5]", "E206"),
        ('{"a": 1}.b', "E206"),
        ('"a" * 2', "E204"),
        ("1.5 & 1", "E204"),
    ],
)
def test_evaluation_errors(text: str, code: str) -> None:
    with pytest.raises(EvaluationError) as exc:
        parse(text).evaluate()
    assert exc.value.code == code


def test_complex_mode_opens_the_complex_domain() -> None:
    config = EngineConfig(complex_mode=True)
    assert parse("sqrt(-4)").evaluate(config=config) == 2j
    assert parse("ln(-1)").evaluate(config=config) == pytest.approx(complex(0, math.pi))
    assert parse("2j * 2j").evaluate() == -4


def test_precise_decimals_evaluate_exactly() -> None:
    config = EngineConfig(precise_decimals=True)
    assert parse("0.1 + 0.2", config).evaluate(config=config) == Decimal("0.3")
    assert parse("0.1 + 0.2").evaluate() != 0.3


def test_call_function_unknown_and_configured() -> None:
    with pytest.raises(EvaluationError) as exc:
        call_function("foo", [1], DEFAULT_CONFIG)
    assert exc.value.code == "E205"

    config = EngineConfig(functions={"double": lambda v: 2 * v})
    assert parse("double(4) + 1", config).evaluate(config=config) == 9


def test_short_circuit_skips_the_right_side() -> None:
    assert parse("false && 1 / 0").evaluate() is False
    assert parse("true || 1 / 0").evaluate() is True


def test_conditional_with_symbolic_test_stays_symbolic() -> None:
    result = parse("a > 0 ? 1 : 2").evaluate()
    assert isinstance(result, Expression)
    assert result.evaluate({"a": 1}) == 1


def test_evaluate_number() -> None:
    assert evaluate_number(parse("2 * pi")) == pytest.approx(2 * math.pi)
    with pytest.raises(EvaluationError) as exc:
        evaluate_number(parse('"text"'))
    assert exc.value.code == "E204"
    with pytest.raises(EvaluationError):
        evaluate_number(parse("x"))
