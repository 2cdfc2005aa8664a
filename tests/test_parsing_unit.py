from dataclasses import replace

import pytest

from symcalc.config import ParserConfig
from symcalc.errors import AlgebraError, ParseError
from symcalc.expressions import (
    Binary,
    BinaryOp,
    Equation,
    EquationSystem,
    Function,
    Number,
    Unary,
    Variable,
)
from symcalc.parsing import InfixParser, TokenType, parse

x, y = Variable("x"), Variable("y")


def test_tokenize_marks_unary_and_implicit_products() -> None:
    tokens = InfixParser().tokenize("-2x")
    assert [t.type for t in tokens] == [
        TokenType.UNARY,
        TokenType.NUMBER,
        TokenType.OPERATOR,
        TokenType.VARIABLE,
    ]
    assert tokens[2].text == "*"


def test_superscript_becomes_power() -> None:
    assert parse("x²") == Binary(x, Number(2), BinaryOp.POWER)
    assert parse("x⁻¹") == Binary(x, Unary(Number(1)), BinaryOp.POWER)


@pytest.mark.parametrize(
    "text,expected",
    [
        ("2x", Binary(Number(2), x, BinaryOp.MULTIPLY)),
        ("2(x)", Binary(Number(2), x, BinaryOp.MULTIPLY)),
        ("x y", Binary(x, y, BinaryOp.MULTIPLY)),
        ("(x)(y)", Binary(x, y, BinaryOp.MULTIPLY)),
        ("x - y - 1", Binary(Binary(x, y, BinaryOp.SUBTRACT), Number(1), BinaryOp.SUBTRACT)),
        ("-x^2", Unary(Binary(x, Number(2), BinaryOp.POWER))),
        ("+x", x),
        ("x = 3", Equation(x, Number(3))),
        ("x >= y", Binary(x, y, BinaryOp.GREATER_EQUAL)),
    ],
)
def test_parse_structure(text: str, expected) -> None:
    assert parse(text) == expected


def test_power_is_right_associative() -> None:
    expr = parse("2^3^2")
    assert expr == Binary(Number(2), Binary(Number(3), Number(2), BinaryOp.POWER), BinaryOp.POWER)


def test_unary_binds_between_product_and_power() -> None:
    assert parse("-x * y") == Binary(Unary(x), y, BinaryOp.MULTIPLY)
    assert parse("2 * -x") == Binary(Number(2), Unary(x), BinaryOp.MULTIPLY)


def test_constants_and_functions() -> None:
    assert parse("2 * pi").evaluate() == pytest.approx(6.283185307179586)
    expr = parse("max(1, x, sqrt(y))")
    assert isinstance(expr, Function)
    assert expr.name == "max"
    assert len(expr.args) == 3
    assert parse("atan2(1, 1)").evaluate() == pytest.approx(0.7853981633974483)


def test_scientific_numbers() -> None:
    assert parse("1.5e3").evaluate() == 1500.0
    assert parse(".5").evaluate() == 0.5


class TestSystems:
    def test_semicolon_separated(self) -> None:
        system = parse("x + y = 10; x - y = 2")
        assert isinstance(system, EquationSystem)
        assert len(system.equations) == 2

    def test_top_level_comma_separated(self) -> None:
        system = parse("x + y = 10, max(x, y) = 6")
        assert isinstance(system, EquationSystem)
        assert system.equations[1].left == Function("max", (x, y))

    def test_trailing_separator_ignored(self) -> None:
        assert isinstance(parse("x = 1; y = 2;"), EquationSystem)

    def test_parts_must_be_equations(self) -> None:
        with pytest.raises(ParseError, match="must all be equations"):
            parse("x + 1; y = 2")


class TestErrors:
    @pytest.mark.parametrize(
        "text,message",
        [
            ("", "empty"),
            ("(x + 1", "Unmatched '\\('"),
            ("x + 1)", "Unmatched"),
            ("x +", "Missing operand"),
            ("sin x", "needs parentheses"),
            ("max()", "at least one argument"),
            ("pow(1)", "expects 2 argument"),
            ("sin(1, 2)", "expects 1 argument"),
            ("()", "Empty parentheses"),
            ("x = 1 = 2", "Only one '='"),
            ("x ; ; y", "Empty expression"),
        ],
    )
    def test_malformed_input(self, text: str, message: str) -> None:
        with pytest.raises(ParseError, match=message):
            parse(text)

    def test_unexpected_character_has_position(self) -> None:
        with pytest.raises(ParseError) as info:
            parse("x $ 1")
        assert info.value.position == 2
        assert info.value.to_dict()["code"] == "parse_error"
        assert info.value.to_dict()["details"]["position"] == 2

    def test_parse_error_is_value_error(self) -> None:
        with pytest.raises(ValueError):
            parse("x +")
        assert issubclass(ParseError, AlgebraError)


class TestConfig:
    def test_without_implicit_multiplication(self) -> None:
        parser = InfixParser(replace(ParserConfig(), implicit_multiplication=False))
        with pytest.raises(ParseError):
            parser.parse("2x")
        assert parser.parse("2*x") == Binary(Number(2), x, BinaryOp.MULTIPLY)

    def test_function_tables_are_per_instance(self) -> None:
        custom = InfixParser(ParserConfig().without_function("sin"))
        default = InfixParser()
        assert isinstance(default.parse("sin(x)"), Function)
        assert custom.parse("sin(x)") == Binary(Variable("sin"), x, BinaryOp.MULTIPLY)
        assert isinstance(InfixParser().parse("sin(x)"), Function)

    def test_with_function_registers_arity(self) -> None:
        parser = InfixParser(ParserConfig().with_function("hyp", 2))
        expr = parser.parse("hyp(3, 4)")
        assert expr == Function("hyp", (Number(3), Number(4)))
        with pytest.raises(ParseError):
            parser.parse("hyp(3)")

    def test_without_operator(self) -> None:
        parser = InfixParser(ParserConfig().without_operator("%"))
        with pytest.raises(ParseError):
            parser.parse("x % 2")

    def test_with_constant(self) -> None:
        parser = InfixParser(ParserConfig().with_constant("g", 9.81))
        assert parser.parse("2g").evaluate() == pytest.approx(19.62)
