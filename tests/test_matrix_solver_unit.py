import numpy as np
import pytest

from symcalc.errors import InvalidOperandError, SingularError
from symcalc.expressions import Matrix, Number
from symcalc.matrix_formula import MatrixConverter
from symcalc.matrix_solver import (
    MatrixOperation,
    MatrixOperationItem,
    MatrixSolver,
    OperandSource,
    apply_operation,
)

A = Matrix(((1, 2), (3, 4)), "A")
B = Matrix(((0, 1), (1, 0)), "B")
C = Matrix(((2, 0), (0, 2)), "C")


class TestSingleOperation:
    def test_determinant(self) -> None:
        result = MatrixSolver.single(MatrixOperation.DETERMINANT).process(A)
        assert result.final == Number(-2)
        assert [step.description for step in result.steps] == [
            "original matrix",
            "determinant: det(A) = -2",
        ]
        assert result.steps[0].display().startswith("// original matrix\n")

    @pytest.mark.parametrize(
        "operation,expected",
        [
            (MatrixOperation.TRACE, Number(5)),
            (MatrixOperation.RANK, Number(2)),
        ],
    )
    def test_scalar_operations(self, operation: MatrixOperation, expected: Number) -> None:
        assert MatrixSolver.single(operation).process(A).final == expected

    def test_power_and_scalar_arguments(self) -> None:
        cubed = MatrixSolver.single(MatrixOperation.POWER, power=3).process(A).final
        assert cubed.name == "A ^ 3"
        np.testing.assert_allclose(cubed.to_array(), np.linalg.matrix_power(A.to_array(), 3))
        scaled = MatrixSolver.single(MatrixOperation.SCALAR_MULTIPLY, scalar=0.5).process(A).final
        assert scaled.values == ((0.5, 1), (1.5, 2))

    def test_binary_operation_needs_two_matrices(self) -> None:
        with pytest.raises(InvalidOperandError, match="two matrices"):
            MatrixSolver.single(MatrixOperation.ADD).process(A)

    def test_input_must_be_a_matrix(self) -> None:
        with pytest.raises(InvalidOperandError):
            MatrixSolver.single(MatrixOperation.TRACE).process(Number(1))

    def test_singular_inverse_propagates(self) -> None:
        with pytest.raises(SingularError):
            MatrixSolver.single(MatrixOperation.INVERSE).process(Matrix(((1, 1), (1, 1)), "S"))


class TestFormula:
    def test_compiled_formula_matches_numpy(self) -> None:
        expressions, operations = MatrixConverter({"A": A, "B": B, "C": C}).convert(
            "A + B ^ 2 - (2 × inverse(C))")
        result = MatrixSolver(operations, expressions).process()
        a, b, c = A.to_array(), B.to_array(), C.to_array()
        np.testing.assert_allclose(result.final.to_array(), a + b @ b - 2 * np.linalg.inv(c))
        assert result.final.name == "(A + (B ^ 2)) - (2 × Inverse(C))"

        descriptions = [step.description for step in result.steps]
        assert descriptions[:3] == ["matrix A", "matrix B", "matrix C"]
        assert descriptions[3] == "power: B ^ 2"
        assert descriptions[5] == "inverse: C⁻¹"
        assert len(result.steps) == 3 + len(operations)

    def test_operand_out_of_range(self) -> None:
        item = MatrixOperationItem(MatrixOperation.TRANSPOSE, left=OperandSource.result(0))
        with pytest.raises(InvalidOperandError, match="out of range"):
            MatrixSolver([item], [A]).process()

    def test_no_matrices(self) -> None:
        with pytest.raises(InvalidOperandError, match="No matrices"):
            MatrixSolver([]).process()


def test_apply_operation_checks_operands() -> None:
    with pytest.raises(InvalidOperandError):
        apply_operation(MatrixOperationItem(MatrixOperation.ADD), A)
    with pytest.raises(InvalidOperandError, match="scalar"):
        apply_operation(MatrixOperationItem(MatrixOperation.SCALAR_MULTIPLY), A)
    transposed = apply_operation(MatrixOperationItem(MatrixOperation.TRANSPOSE), A)
    assert transposed.values == ((1, 3), (2, 4))
