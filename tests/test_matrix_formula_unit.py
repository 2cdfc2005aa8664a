import re

import pytest

from symcalc.config import FormatterConfig
from symcalc.errors import InvalidFormulaEditError, InvalidOperandError
from symcalc.expressions import Matrix
from symcalc.matrix_formula import (
    MatrixConverter,
    MatrixElementType,
    MatrixFormatter,
)
from symcalc.matrix_solver import (
    MatrixOperation,
    MatrixOperationItem,
    OperandSource,
    describe_operations,
)

A = Matrix(((1, 2), (3, 4)), "A")
B = Matrix(((0, 1), (1, 0)), "B")
C = Matrix(((2, 0), (0, 2)), "C")


@pytest.fixture
def formatter() -> MatrixFormatter:
    return MatrixFormatter()


def _type_in(formatter: MatrixFormatter, *tokens: str) -> str:
    formula = ""
    for token in tokens:
        result = formatter.add_and_format(formula, token)
        assert result.success, result.error
        formula = result.formatted
    return formula


class TestTokenizer:
    def test_element_types(self, formatter: MatrixFormatter) -> None:
        elements = formatter.parse_elements("Inverse(A) + 2 × M27")
        assert [e.type for e in elements] == [
            MatrixElementType.FUNCTION,
            MatrixElementType.LEFT_PAREN,
            MatrixElementType.VARIABLE,
            MatrixElementType.RIGHT_PAREN,
            MatrixElementType.OPERATOR,
            MatrixElementType.NUMBER,
            MatrixElementType.OPERATOR,
            MatrixElementType.VARIABLE,
        ]
        assert elements[0].value == "inverse"

    def test_function_name_needs_word_boundary(self, formatter: MatrixFormatter) -> None:
        assert formatter.parse_elements("transpose")[0].type is MatrixElementType.VARIABLE

    def test_unexpected_character(self, formatter: MatrixFormatter) -> None:
        with pytest.raises(InvalidFormulaEditError, match="Unexpected character"):
            formatter.parse_elements("A $ B")


class TestAdding:
    def test_builds_spaced_formula(self, formatter: MatrixFormatter) -> None:
        assert _type_in(formatter, "A", "+", "B") == "A + B"

    def test_function_wraps_last_operand(self, formatter: MatrixFormatter) -> None:
        assert _type_in(formatter, "A", "+", "B", "inverse") == "A + inverse(B"
        assert _type_in(formatter, "trans", "A", ")") == "trans(A)"

    def test_scalar_is_grouped_with_last_operand(self, formatter: MatrixFormatter) -> None:
        assert formatter.add_and_format("A + B", "× 2").formatted == "A + (2 × B)"
        assert formatter.add_and_format("A", "× 2").formatted == "A × 2"

    @pytest.mark.parametrize(
        "formula,token,message",
        [
            ("", "+", "cannot start with an operator"),
            ("(", "+", "cannot follow '\\('"),
            ("A +", "×", "Two operators"),
            ("A", "B", "cannot follow another variable"),
            ("A", ")", "no matching"),
            ("inverse(", "2", "cannot take the number '2'"),
            ("A × 2", "inverse", "cannot be applied to the number '2'"),
            ("A", "+ 2", "Matrix 'A' cannot be combined with the number '2' using '\\+'"),
            ("A", "$", "Unexpected character"),
        ],
    )
    def test_rejected_additions(self, formatter: MatrixFormatter, formula: str,
                                token: str, message: str) -> None:
        result = formatter.add_and_format(formula, token)
        assert not result.success
        assert result.formatted == formula
        assert result.error is not None
        assert re.search(message, result.error)

    def test_empty_token_is_a_no_op(self, formatter: MatrixFormatter) -> None:
        result = formatter.add_and_format("A + B", "  ")
        assert result.success and result.formatted == "A + B"


class TestRemoving:
    @pytest.mark.parametrize(
        "formula,expected",
        [
            ("A + B", "A +"),
            ("A + inverse(B)", "A +"),
            ("A + (2 × B)", "A +"),
            ("inverse(", ""),
            ("(", ""),
        ],
    )
    def test_remove_last_element(self, formatter: MatrixFormatter, formula: str,
                                 expected: str) -> None:
        result = formatter.remove_last_element(formula)
        assert result.success
        assert result.formatted == expected

    def test_remove_from_empty(self, formatter: MatrixFormatter) -> None:
        result = formatter.remove_last_element("")
        assert result.success
        assert result.error == "The formula is empty."


class TestQueries:
    def test_last_element_info(self, formatter: MatrixFormatter) -> None:
        assert formatter.last_element_info("A + inverse(") == (
            True, "(", MatrixElementType.LEFT_PAREN, "")
        success, _, kind, message = formatter.last_element_info("")
        assert not success and kind is MatrixElementType.UNKNOWN and message

    def test_find_last_operand_spans_function_group(self, formatter: MatrixFormatter) -> None:
        elements = formatter.parse_elements("A + inverse(B)")
        assert formatter.find_last_operand(elements) == (2, 4)
        assert formatter.find_last_operand([]) == (-1, 0)
        assert formatter.find_last_operator_index(elements) == 1

    @pytest.mark.parametrize(
        "formula,message",
        [
            ("A +", "The formula ends with an operator."),
            ("A + inverse(", "The argument of 'inverse' is unfinished."),
            ("A + (", "The formula ends with an open '('."),
            ("(A + B", "Parentheses do not match."),
        ],
    )
    def test_incomplete_formulas(self, formatter: MatrixFormatter, formula: str,
                                 message: str) -> None:
        result = formatter.validate_completeness(formula)
        assert not result.success
        assert result.error == message

    def test_complete_formula(self, formatter: MatrixFormatter) -> None:
        assert formatter.validate_completeness("A + inverse(B)").success
        assert formatter.validate_expression("A × 2").success
        assert not formatter.validate_expression("trans(3)").success
        assert not formatter.validate_expression("A - 1").success


class TestConfig:
    def test_custom_function_and_operator(self) -> None:
        config = FormatterConfig().with_function("adj").without_operator("⊙")
        formatter = MatrixFormatter(config)
        assert formatter.parse_elements("adj(A)")[0].type is MatrixElementType.FUNCTION
        with pytest.raises(InvalidFormulaEditError):
            formatter.parse_elements("A ⊙ B")
        assert MatrixFormatter().parse_elements("adj")[0].type is MatrixElementType.VARIABLE


class TestConverter:
    def test_operations_carry_operand_provenance(self) -> None:
        converter = MatrixConverter({"A": A, "B": B, "C": C})
        expressions, operations = converter.convert("A + B ^ 2 - (2 × inverse(C))")
        assert [m.name for m in expressions] == ["A", "B", "C"]
        assert operations == [
            MatrixOperationItem(MatrixOperation.POWER, power=2, left=OperandSource.expression(1)),
            MatrixOperationItem(MatrixOperation.ADD, left=OperandSource.expression(0),
                                right=OperandSource.result(0)),
            MatrixOperationItem(MatrixOperation.INVERSE, left=OperandSource.expression(2)),
            MatrixOperationItem(MatrixOperation.SCALAR_MULTIPLY, scalar=2.0,
                                left=OperandSource.result(2)),
            MatrixOperationItem(MatrixOperation.SUBTRACT, left=OperandSource.result(1),
                                right=OperandSource.result(3)),
        ]
        assert describe_operations(operations) == [
            "0: power(Expression[1]) power=2",
            "1: add(Expression[0], Result[0])",
            "2: inverse(Expression[2])",
            "3: scalar_multiply(Result[2]) scalar=2",
            "4: subtract(Result[1], Result[3])",
        ]

    def test_repeated_matrix_is_one_expression(self) -> None:
        expressions, operations = MatrixConverter({"A": A}).convert("A × A")
        assert len(expressions) == 1
        assert operations[0].left == operations[0].right == OperandSource.expression(0)

    def test_matrix_text_is_parsed(self) -> None:
        expressions, _ = MatrixConverter({"A": "1 2\n3 4"}).convert("trans(A)")
        assert expressions == [A]

    def test_precedence_orders_operations(self) -> None:
        _, operations = MatrixConverter({"A": A, "B": B}).convert("A + A × B")
        assert [item.operation for item in operations] == [
            MatrixOperation.MULTIPLY,
            MatrixOperation.ADD,
        ]

    @pytest.mark.parametrize(
        "formula,message",
        [
            ("A + D", "Unknown matrix 'D'"),
            ("A ^ B", "number exponent"),
            ("A ^ 1.5", "whole numbers"),
            ("2 × 3", "two matrix operands"),
        ],
    )
    def test_invalid_operands(self, formula: str, message: str) -> None:
        with pytest.raises(InvalidOperandError, match=message):
            MatrixConverter({"A": A, "B": B}).convert(formula)

    @pytest.mark.parametrize("formula", ["", "A +", "inverse(", "(A + B"])
    def test_incomplete_formula_is_rejected(self, formula: str) -> None:
        with pytest.raises(InvalidFormulaEditError):
            MatrixConverter({"A": A, "B": B}).convert(formula)
