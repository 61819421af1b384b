from decimal import Decimal

import pytest

from algebra import (
    ArrayLiteral, Call, Conditional, EngineConfig, Group, Index, Literal,
    MapLiteral, Member, Modulo, Multiply, ParseError, Pow, Relational,
    Subtract, Unary, Variable, parse, parse_equation,
)
from algebra.parser import tokenize

x, y = Variable("x"), Variable("y")


def test_operator_precedence_builds_expected_tree() -> None:
    assert parse("2*x+3") == Multiply(Literal(2), x) + 3
    assert parse("2 + 3 * 4") == Literal(2) + Multiply(Literal(3), Literal(4))
    assert parse("2 - 3 - 4") == Subtract(Subtract(Literal(2), Literal(3)), Literal(4))


def test_power_is_right_associative_and_binds_tighter_than_minus() -> None:
    assert parse("2^3^2") == Pow(Literal(2), Pow(Literal(3), Literal(2)))
    assert parse("-x^2") == Unary("-", Pow(x, Literal(2)))
    assert parse("2^-1") == Pow(Literal(2), Unary("-", Literal(1)))


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("2x", Multiply(Literal(2), x)),
        ("2x^2", Multiply(Literal(2), Pow(x, Literal(2)))),
        ("x y", Multiply(x, y)),
        ("2(x)", Multiply(Literal(2), Group(x))),
        ("x(y)", Multiply(x, Group(y))),
        ("(x)(y)", Multiply(Group(x), Group(y))),
    ],
)
def test_implicit_multiplication(text: str, expected) -> None:
    assert parse(text) == expected


def test_functions_with_and_without_parentheses() -> None:
    assert parse("sin(x)") == Call("sin", (x,))
    assert parse("sin x") == Call("sin", (x,))
    assert parse("sin 2x") == Call("sin", (Multiply(Literal(2), x),))
    assert parse("log(8, 2)") == Call("log", (Literal(8), Literal(2)))
    # a bare function name is a variable
    assert parse("sin") == Variable("sin")


def test_function_arity_is_checked() -> None:
    with pytest.raises(ParseError) as exc:
        parse("sin(1, 2)")
    assert exc.value.code == "P102"
    assert exc.value.position == 0


def test_configured_functions_parse_as_calls() -> None:
    config = EngineConfig(functions={"double": lambda v: 2 * v})
    assert parse("double(4)", config) == Call("double", (Literal(4),))
    assert parse("double(4)") == Multiply(Variable("double"), Group(Literal(4)))


def test_percent_versus_modulo() -> None:
    assert parse("50%") == Unary("%", Literal(50), prefix=False)
    assert parse("7 % 3") == Modulo(Literal(7), Literal(3))
    assert parse("5!") == Unary("!", Literal(5), prefix=False)


@pytest.mark.parametrize(
    ("text", "value"),
    [
        ("0x1F", 31),
        ("0o17", 15),
        ("0b101", 5),
        ("1.5e3", 1500.0),
        (".5", 0.5),
        ("2j", 2j),
        ("true", True),
        ("null", None),
        ('"a\\tb"', "a\tb"),
        ("'it\\'s'", "it's"),
    ],
)
def test_literals(text: str, value) -> None:
    node = parse(text)
    assert isinstance(node, Literal)
    assert node.value == value
    assert type(node.value) is type(value)


def test_precise_decimals() -> None:
    config = EngineConfig(precise_decimals=True)
    assert parse("0.1", config) == Literal(Decimal("0.1"))
    assert isinstance(parse("0.1").value, float)


def test_relational_logical_and_conditional() -> None:
    assert parse("a < b ? 1 : 2") == Conditional(
        Relational("<", Variable("a"), Variable("b")), Literal(1), Literal(2))
    assert parse("n C k") == Relational("C", Variable("n"), Variable("k"))
    assert parse("a and b") == Relational("and", Variable("a"), Variable("b"))
    assert parse("a ?? 1") == Relational("??", Variable("a"), Literal(1))


def test_caret_as_xor() -> None:
    config = EngineConfig(caret_is_xor=True)
    assert parse("2 ^ 3", config) == Relational("^", Literal(2), Literal(3))
    assert parse("2 ** 3", config) == Pow(Literal(2), Literal(3))


def test_collections_member_and_index() -> None:
    assert parse("[1, 2][0]") == Index(ArrayLiteral((Literal(1), Literal(2))), Literal(0))
    assert parse('{"a": 1}.a') == Member(MapLiteral(((Literal("a"), Literal(1)),)), "a")
    assert parse("[]") == ArrayLiteral(())


def test_equals_only_at_top_level() -> None:
    assert parse("x^2 = 9") == Relational("=", Pow(x, Literal(2)), Literal(9))
    with pytest.raises(ParseError):
        parse("(x = 3)")


def test_parse_equation() -> None:
    assert parse_equation("x + 1 = 3") == Subtract(x + 1, Literal(3))
    with pytest.raises(ParseError) as exc:
        parse_equation("x + 1")
    assert exc.value.code == "P108"


@pytest.mark.parametrize(
    ("text", "code", "position"),
    [
        ("2 # 3", "P101", 2),
        ("1 +", "P102", 3),
        ("1 2 )", "P102", 4),
        ("(1 + 2", "P103", 6),
        ('"abc', "P104", 0),
        ('"a\\q"', "P105", 2),
        ("", "P106", 0),
        ("   ", "P106", 0),
    ],
)
def test_parse_errors_report_code_and_position(text: str, code: str, position: int) -> None:
    with pytest.raises(ParseError) as exc:
        parse(text)
    assert exc.value.code == code
    assert exc.value.position == position
    assert f"(at position {position})" in str(exc.value)


def test_nesting_limit() -> None:
    text = "(" * 150 + "1" + ")" * 150
    with pytest.raises(ParseError) as exc:
        parse(text)
    assert exc.value.code == "P107"

    assert parse("((1))", EngineConfig(max_depth=5)) == Group(Group(Literal(1)))


@pytest.mark.parametrize("op", ["^", "**"])
def test_long_power_chains_hit_the_nesting_limit(op: str) -> None:
    with pytest.raises(ParseError) as exc:
        parse(op.join(["2"] * 1500))
    assert exc.value.code == "P107"


def test_long_flat_sums_are_not_nesting() -> None:
    text = " + ".join(["x"] * 50)
    assert parse(text).size() == 99


def test_tokenize_positions() -> None:
    tokens = tokenize("ab <= 3")
    assert [t.text for t in tokens] == ["ab", "<=", "3", ""]
    assert [t.pos for t in tokens] == [0, 3, 6, 7]


def test_parse_rejects_non_strings() -> None:
    with pytest.raises(TypeError):
        parse(42)
