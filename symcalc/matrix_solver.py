"""Replay a flat list of matrix operations and record each result.

An operation never holds its operands directly.  It points at them with an
:class:`OperandSource`, either into the list of original matrices or into
the list of results produced by earlier operations, so a formula such as
``A + B ^ 2`` becomes::

    [Power(2) of Expression[1], Add of Expression[0] and Result[0]]
"""

import logging
from dataclasses import dataclass
from enum import Enum

from symcalc import matrix_ops
from symcalc.errors import InvalidOperandError, UnsupportedOperationError
from symcalc.expressions import Matrix, Number, format_number
from symcalc.results import CalculationResult, StepRecorder
from symcalc.terms import SortOrder

logger = logging.getLogger(__name__)


class MatrixOperation(Enum):
    DETERMINANT = "determinant"
    TRANSPOSE = "transpose"
    TRACE = "trace"
    RANK = "rank"
    INVERSE = "inverse"
    POWER = "power"
    ADD = "add"
    SUBTRACT = "subtract"
    MULTIPLY = "multiply"
    HADAMARD = "hadamard"
    SCALAR_MULTIPLY = "scalar_multiply"

    @property
    def is_binary(self) -> bool:
        return self in _BINARY_OPERATIONS


_BINARY_OPERATIONS = frozenset({
    MatrixOperation.ADD,
    MatrixOperation.SUBTRACT,
    MatrixOperation.MULTIPLY,
    MatrixOperation.HADAMARD,
})

OPERATOR_OPERATIONS = {
    "+": MatrixOperation.ADD,
    "-": MatrixOperation.SUBTRACT,
    "×": MatrixOperation.MULTIPLY,
    "⊙": MatrixOperation.HADAMARD,
    "^": MatrixOperation.POWER,
}

FUNCTION_OPERATIONS = {
    "inverse": MatrixOperation.INVERSE,
    "trans": MatrixOperation.TRANSPOSE,
}


class OperandSourceType(Enum):
    EXPRESSION = "expression"
    RESULT = "result"


@dataclass(frozen=True)
class OperandSource:
    type: OperandSourceType
    index: int

    @classmethod
    def expression(cls, index: int) -> "OperandSource":
        return cls(OperandSourceType.EXPRESSION, index)

    @classmethod
    def result(cls, index: int) -> "OperandSource":
        return cls(OperandSourceType.RESULT, index)

    def __str__(self) -> str:
        kind = "Expression" if self.type is OperandSourceType.EXPRESSION else "Result"
        return f"{kind}[{self.index}]"


@dataclass(frozen=True)
class MatrixOperationItem:
    operation: MatrixOperation
    scalar: float | None = None
    power: int | None = None
    left: OperandSource | None = None
    right: OperandSource | None = None


def _describe(item: MatrixOperationItem, operand, result) -> str:
    name = operand.name if isinstance(operand, Matrix) else str(operand)
    op = item.operation
    if op is MatrixOperation.DETERMINANT:
        return f"determinant: det({name}) = {result}"
    if op is MatrixOperation.TRACE:
        return f"trace: tr({name}) = {result}"
    if op is MatrixOperation.RANK:
        return f"rank: rank({name}) = {result}"
    if op is MatrixOperation.TRANSPOSE:
        return f"transpose: {name}ᵀ"
    if op is MatrixOperation.INVERSE:
        return f"inverse: {name}⁻¹"
    if op is MatrixOperation.POWER:
        return f"power: {result.name}"
    if op is MatrixOperation.SCALAR_MULTIPLY:
        return f"scalar multiplication: {result.name}"
    if op is MatrixOperation.ADD:
        return f"addition: {result.name}"
    if op is MatrixOperation.SUBTRACT:
        return f"subtraction: {result.name}"
    if op is MatrixOperation.MULTIPLY:
        return f"multiplication: {result.name}"
    return f"Hadamard product: {result.name}"


def apply_operation(item: MatrixOperationItem, left, right=None):
    """Run one operation on already-resolved operands."""
    if not isinstance(left, Matrix):
        raise InvalidOperandError(f"{item.operation.value} needs a matrix operand.")
    op = item.operation
    if op.is_binary and not isinstance(right, Matrix):
        raise InvalidOperandError(f"{op.value} needs two matrix operands.")

    if op is MatrixOperation.DETERMINANT:
        return Number(matrix_ops.determinant(left))
    if op is MatrixOperation.TRACE:
        return Number(matrix_ops.trace(left))
    if op is MatrixOperation.RANK:
        return Number(matrix_ops.rank(left))
    if op is MatrixOperation.TRANSPOSE:
        return matrix_ops.transpose(left)
    if op is MatrixOperation.INVERSE:
        return matrix_ops.inverse(left)
    if op is MatrixOperation.POWER:
        return matrix_ops.power(left, 2 if item.power is None else item.power)
    if op is MatrixOperation.SCALAR_MULTIPLY:
        if item.scalar is None:
            raise InvalidOperandError("Scalar multiplication needs a scalar.")
        return matrix_ops.scalar_multiply(left, item.scalar)
    if op is MatrixOperation.ADD:
        return matrix_ops.add(left, right)
    if op is MatrixOperation.SUBTRACT:
        return matrix_ops.subtract(left, right)
    if op is MatrixOperation.MULTIPLY:
        return matrix_ops.multiply(left, right)
    if op is MatrixOperation.HADAMARD:
        return matrix_ops.hadamard(left, right)
    raise UnsupportedOperationError(f"Unknown matrix operation {op!r}.")


class MatrixSolver:
    """Runs either one operation on one matrix or a compiled formula."""

    def __init__(self, operations, expressions=None):
        self.operations = list(operations)
        self.expressions = list(expressions or [])
        self.single_operation = False

    @classmethod
    def single(cls, operation: MatrixOperation, power: int = 2,
               scalar: float | None = None) -> "MatrixSolver":
        solver = cls([MatrixOperationItem(operation, scalar=scalar, power=power)])
        solver.single_operation = True
        return solver

    def process(self, expression=None, sort_order: SortOrder = SortOrder.NORMAL) -> CalculationResult:
        if self.single_operation:
            return self._process_single(expression)
        return self._process_operations()

    def _process_single(self, matrix) -> CalculationResult:
        if not isinstance(matrix, Matrix):
            raise InvalidOperandError("A single matrix operation needs a matrix.")
        item = self.operations[0]
        if item.operation.is_binary:
            raise InvalidOperandError(f"{item.operation.value} needs two matrices.")
        recorder = StepRecorder()
        recorder.add(matrix, "original matrix", description_behind=False)
        result = apply_operation(item, matrix)
        recorder.add(result, _describe(item, matrix, result), description_behind=False)
        return CalculationResult(matrix, result, recorder.steps)

    def _process_operations(self) -> CalculationResult:
        if not self.expressions:
            raise InvalidOperandError("No matrices were provided.")
        recorder = StepRecorder()
        for i, matrix in enumerate(self.expressions):
            label = matrix.name if isinstance(matrix, Matrix) and matrix.name else str(i + 1)
            recorder.add(matrix, f"matrix {label}", description_behind=False)

        results = []
        for item in self.operations:
            left = self._operand(item.left, results)
            right = self._operand(item.right, results) if item.right is not None else None
            logger.debug("applying %s to %s, %s", item.operation.value, item.left, item.right)
            result = apply_operation(item, left, right)
            results.append(result)
            recorder.add(result, _describe(item, left, result), description_behind=False)

        final = results[-1] if results else self.expressions[0]
        return CalculationResult(self.expressions[0], final, recorder.steps)

    def _operand(self, source: OperandSource | None, results: list):
        if source is None:
            raise InvalidOperandError("Operation is missing an operand.")
        pool = self.expressions if source.type is OperandSourceType.EXPRESSION else results
        if not 0 <= source.index < len(pool):
            raise InvalidOperandError(f"Operand {source} is out of range.")
        return pool[source.index]


def describe_operations(operations) -> list:
    """One readable line per operation, for logs and API payloads."""
    lines = []
    for i, item in enumerate(operations):
        extra = ""
        if item.scalar is not None:
            extra = f" scalar={format_number(item.scalar)}"
        elif item.operation is MatrixOperation.POWER and item.power is not None:
            extra = f" power={item.power}"
        operands = ", ".join(str(s) for s in (item.left, item.right) if s is not None)
        lines.append(f"{i}: {item.operation.value}({operands}){extra}")
    return lines
