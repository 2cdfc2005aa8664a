import numpy as np
import pytest

from symcalc import matrix_ops
from symcalc.errors import (
    DimensionMismatchError,
    ParseError,
    SingularError,
    UnsupportedOperationError,
)
from symcalc.expressions import Matrix

A = Matrix(((1, 2), (3, 4)), "A")
B = Matrix(((0, 1), (1, 0)), "B")
C = Matrix(((2, 0), (0, 2)), "C")
WIDE = Matrix(((1, 2, 3), (4, 5, 6)), "W")


class TestScalarResults:
    @pytest.mark.parametrize(
        "values",
        [
            ((4,),),
            ((1, 2), (3, 4)),
            ((2, -1, 0), (1, 3, 2), (0, 5, -4)),
            ((1, 0, 2, -1), (3, 0, 0, 5), (2, 1, 4, -3), (1, 0, 5, 0)),
        ],
    )
    def test_determinant_matches_numpy(self, values) -> None:
        matrix = Matrix(values, "M")
        assert matrix_ops.determinant(matrix) == pytest.approx(np.linalg.det(matrix.to_array()))

    def test_determinant_order_limit(self) -> None:
        assert matrix_ops.determinant(Matrix.from_array(2 * np.eye(8), "D")) == pytest.approx(256)
        with pytest.raises(UnsupportedOperationError, match="limited"):
            matrix_ops.determinant(Matrix.from_array(np.eye(9), "I"))

    def test_singular_matrix(self) -> None:
        singular = Matrix(((1, 2, 3), (4, 5, 6), (7, 8, 9)), "S")
        assert matrix_ops.determinant(singular) == pytest.approx(0)
        assert matrix_ops.rank(singular) == 2

    def test_trace_and_rank(self) -> None:
        assert matrix_ops.trace(A) == 5
        assert matrix_ops.rank(A) == 2
        assert matrix_ops.rank(Matrix(((1, 2), (2, 4)), "S")) == 1
        assert matrix_ops.rank(WIDE) == np.linalg.matrix_rank(WIDE.to_array())

    def test_non_square_is_rejected(self) -> None:
        for operation in (matrix_ops.determinant, matrix_ops.trace, matrix_ops.inverse):
            with pytest.raises(UnsupportedOperationError, match="square"):
                operation(WIDE)


class TestMatrixResults:
    def test_transpose(self) -> None:
        result = matrix_ops.transpose(WIDE)
        assert result.name == "Trans(W)"
        assert result.values == ((1, 4), (2, 5), (3, 6))

    def test_inverse_matches_numpy(self) -> None:
        result = matrix_ops.inverse(A)
        assert result.name == "Inverse(A)"
        np.testing.assert_allclose(result.to_array(), np.linalg.inv(A.to_array()))

    def test_inverse_times_matrix_is_identity(self) -> None:
        matrix = Matrix(((2, -1, 0), (1, 3, 2), (0, 5, -4)), "M")
        product = matrix_ops.multiply(matrix, matrix_ops.inverse(matrix))
        np.testing.assert_allclose(product.to_array(), np.eye(3), atol=1e-12)

    def test_singular_inverse(self) -> None:
        with pytest.raises(SingularError, match="not invertible"):
            matrix_ops.inverse(Matrix(((1, 2), (2, 4)), "S"))

    def test_power(self) -> None:
        result = matrix_ops.power(A, 2)
        assert result.name == "A ^ 2"
        np.testing.assert_allclose(result.to_array(), np.linalg.matrix_power(A.to_array(), 2))
        assert matrix_ops.power(A, 0).values == ((1, 0), (0, 1))
        with pytest.raises(UnsupportedOperationError):
            matrix_ops.power(A, -1)

    def test_arithmetic_names_nest(self) -> None:
        result = matrix_ops.add(matrix_ops.add(A, B), C)
        assert result.name == "(A + B) + C"
        np.testing.assert_allclose(result.to_array(), A.to_array() + B.to_array() + C.to_array())
        assert matrix_ops.subtract(A, B).name == "A - B"
        assert matrix_ops.hadamard(A, C).values == ((2, 0), (0, 8))

    def test_multiply(self) -> None:
        result = matrix_ops.multiply(A, WIDE)
        assert result.name == "A × W"
        np.testing.assert_allclose(result.to_array(), A.to_array() @ WIDE.to_array())
        with pytest.raises(DimensionMismatchError, match="inner dimensions"):
            matrix_ops.multiply(WIDE, A)

    def test_scalar_multiply(self) -> None:
        result = matrix_ops.scalar_multiply(A, 2)
        assert result.name == "2 × A"
        assert result.values == ((2, 4), (6, 8))

    def test_shape_mismatch(self) -> None:
        with pytest.raises(DimensionMismatchError, match="same size"):
            matrix_ops.add(A, WIDE)

    def test_identity(self) -> None:
        assert matrix_ops.identity(2).values == ((1, 0), (0, 1))


class TestMatrixText:
    def test_parse_and_format(self) -> None:
        rows = matrix_ops.parse_matrix_text("1 2\n3, 4.5\n\n")
        assert rows == [[1.0, 2.0], [3.0, 4.5]]
        assert matrix_ops.to_matrix_text(rows) == "1    2\n3    4.5"
        assert matrix_ops.matrix_from_text("1 2\n3 4", "A") == A

    def test_ragged_rows(self) -> None:
        with pytest.raises(DimensionMismatchError, match="Row 2"):
            matrix_ops.parse_matrix_text("1 2\n3")

    def test_non_numeric_value(self) -> None:
        with pytest.raises(ParseError, match="'x' on line 1"):
            matrix_ops.parse_matrix_text("1 x")

    def test_empty_text(self) -> None:
        with pytest.raises(DimensionMismatchError, match="empty"):
            matrix_ops.parse_matrix_text("  ")

    def test_generated_text(self) -> None:
        assert matrix_ops.generate_matrix_text(2, 2) == "0    0\n0    0"
        assert matrix_ops.generate_sample_matrix_text(2, 3) == "1    2    3\n4    5    6"

    @pytest.mark.parametrize("index,name", [(0, "A"), (25, "Z"), (26, "M27")])
    def test_matrix_name_for_index(self, index: int, name: str) -> None:
        assert matrix_ops.matrix_name_for_index(index) == name
