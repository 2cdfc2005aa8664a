"""Dense matrix algebra over :class:`~symcalc.expressions.Matrix` nodes.

All functions are pure: they take matrices and return a new matrix (or a
number) whose display name records how it was produced, e.g.
``Inverse(A) × B``.  The grid work itself is done with NumPy.
"""

import logging

import numpy as np

from symcalc.config import EPSILON, MAX_DETERMINANT_ORDER
from symcalc.errors import (
    DimensionMismatchError,
    ParseError,
    SingularError,
    UnsupportedOperationError,
)
from symcalc.expressions import Matrix, format_number

logger = logging.getLogger(__name__)


def _operand_name(matrix: Matrix) -> str:
    name = matrix.name or "M"
    return f"({name})" if " " in name.strip() else name.strip()


def _require_square(matrix: Matrix, what: str) -> None:
    if not matrix.is_square:
        raise UnsupportedOperationError(
            f"{what} needs a square matrix, got {matrix.rows}×{matrix.columns}.")


def _require_same_shape(a: Matrix, b: Matrix, what: str) -> None:
    if (a.rows, a.columns) != (b.rows, b.columns):
        raise DimensionMismatchError(
            f"{what} needs matrices of the same size, got "
            f"{a.rows}×{a.columns} and {b.rows}×{b.columns}.")


def identity(order: int, name: str = "I") -> Matrix:
    return Matrix.from_array(np.eye(order), name)


# ── Scalar results ──────────────────────────────────────────────────────

def _cofactor_determinant(grid: np.ndarray) -> float:
    n = grid.shape[0]
    if n == 1:
        return float(grid[0, 0])
    if n == 2:
        return float(grid[0, 0] * grid[1, 1] - grid[0, 1] * grid[1, 0])
    total = 0.0
    for col in range(n):
        if grid[0, col] == 0:
            continue
        minor = np.delete(np.delete(grid, 0, axis=0), col, axis=1)
        sign = -1.0 if col % 2 else 1.0
        total += sign * grid[0, col] * _cofactor_determinant(minor)
    return total


def determinant(matrix: Matrix) -> float:
    """Determinant by cofactor expansion along the first row."""
    _require_square(matrix, "The determinant")
    if matrix.rows > MAX_DETERMINANT_ORDER:
        raise UnsupportedOperationError(
            f"Determinants are limited to {MAX_DETERMINANT_ORDER}×{MAX_DETERMINANT_ORDER} "
            f"matrices.")
    return _cofactor_determinant(matrix.to_array())


def trace(matrix: Matrix) -> float:
    _require_square(matrix, "The trace")
    return float(np.trace(matrix.to_array()))


def rank(matrix: Matrix) -> int:
    """Count the non-zero pivots of a row echelon form."""
    grid = matrix.to_array()
    rows, columns = grid.shape
    result = 0
    for col in range(columns):
        if result >= rows:
            break
        pivot_row = result + int(np.argmax(np.abs(grid[result:, col])))
        if abs(grid[pivot_row, col]) < EPSILON:
            continue
        grid[[result, pivot_row]] = grid[[pivot_row, result]]
        for row in range(result + 1, rows):
            grid[row] -= grid[row, col] / grid[result, col] * grid[result]
        result += 1
    return result


# ── Matrix results ──────────────────────────────────────────────────────

def transpose(matrix: Matrix) -> Matrix:
    return Matrix.from_array(matrix.to_array().T, f"Trans({matrix.name})")


def inverse(matrix: Matrix) -> Matrix:
    """Gauss-Jordan elimination on ``[A | I]``."""
    _require_square(matrix, "The inverse")
    n = matrix.rows
    augmented = np.hstack([matrix.to_array(), np.eye(n)])
    for col in range(n):
        pivot_row = col + int(np.argmax(np.abs(augmented[col:, col])))
        if abs(augmented[pivot_row, col]) < EPSILON:
            label = f" {matrix.name}" if matrix.name else ""
            raise SingularError(f"Matrix{label} is not invertible.")
        augmented[[col, pivot_row]] = augmented[[pivot_row, col]]
        augmented[col] /= augmented[col, col]
        for row in range(n):
            if row != col:
                augmented[row] -= augmented[row, col] * augmented[col]
    return Matrix.from_array(augmented[:, n:], f"Inverse({matrix.name})")


def power(matrix: Matrix, exponent: int) -> Matrix:
    _require_square(matrix, "A matrix power")
    if exponent < 0:
        raise UnsupportedOperationError("Matrix powers must be non-negative integers.")
    result = np.eye(matrix.rows)
    grid = matrix.to_array()
    for _ in range(exponent):
        result = result @ grid
    return Matrix.from_array(result, f"{_operand_name(matrix)} ^ {exponent}")


def add(a: Matrix, b: Matrix) -> Matrix:
    _require_same_shape(a, b, "Addition")
    return Matrix.from_array(a.to_array() + b.to_array(),
                             f"{_operand_name(a)} + {_operand_name(b)}")


def subtract(a: Matrix, b: Matrix) -> Matrix:
    _require_same_shape(a, b, "Subtraction")
    return Matrix.from_array(a.to_array() - b.to_array(),
                             f"{_operand_name(a)} - {_operand_name(b)}")


def hadamard(a: Matrix, b: Matrix) -> Matrix:
    _require_same_shape(a, b, "The Hadamard product")
    return Matrix.from_array(a.to_array() * b.to_array(),
                             f"{_operand_name(a)} ⊙ {_operand_name(b)}")


def multiply(a: Matrix, b: Matrix) -> Matrix:
    if a.columns != b.rows:
        raise DimensionMismatchError(
            f"Cannot multiply {a.rows}×{a.columns} by {b.rows}×{b.columns}: "
            f"inner dimensions differ.")
    return Matrix.from_array(a.to_array() @ b.to_array(),
                             f"{_operand_name(a)} × {_operand_name(b)}")


def scalar_multiply(matrix: Matrix, scalar: float) -> Matrix:
    return Matrix.from_array(matrix.to_array() * scalar,
                             f"{format_number(float(scalar))} × {_operand_name(matrix)}")


# ── Matrix text ─────────────────────────────────────────────────────────

def parse_matrix_text(text: str) -> list:
    """Parse one row per line, values separated by whitespace."""
    if text is None or not text.strip():
        raise DimensionMismatchError("Matrix text is empty.")
    rows = []
    for line_number, line in enumerate(text.splitlines(), start=1):
        if not line.strip():
            continue
        row = []
        for token in line.replace(",", " ").split():
            try:
                row.append(float(token))
            except ValueError:
                raise ParseError(
                    f"'{token}' on line {line_number} is not a number.") from None
        rows.append(row)
    width = len(rows[0])
    for i, row in enumerate(rows, start=1):
        if len(row) != width:
            raise DimensionMismatchError(
                f"Row {i} has {len(row)} values, expected {width}.")
    return rows


def to_matrix_text(values) -> str:
    if isinstance(values, Matrix):
        values = values.values
    return "\n".join("    ".join(format_number(float(v)) for v in row) for row in values)


def matrix_from_text(text: str, name: str = "") -> Matrix:
    return Matrix(tuple(tuple(row) for row in parse_matrix_text(text)), name)


def generate_matrix_text(rows: int, columns: int, fill: float = 0) -> str:
    return to_matrix_text([[fill] * columns for _ in range(rows)])


def generate_sample_matrix_text(rows: int, columns: int, start: int = 1) -> str:
    values = np.arange(start, start + rows * columns).reshape(rows, columns)
    return to_matrix_text(values)


def matrix_name_for_index(index: int) -> str:
    """``A`` .. ``Z`` for the first 26 matrices, then ``M27``, ``M28``, ..."""
    if index < 26:
        return chr(ord("A") + index)
    return f"M{index + 1}"
