"""Matrix formula editing and compilation.

:class:`MatrixFormatter` validates a formula one token at a time, the way
a keypad-driven UI builds it (``A``, ``+``, ``B``, ``× 2`` ...), and keeps
the text correctly grouped.  :class:`MatrixConverter` turns a finished
formula into the flat operation list run by
:class:`~symcalc.matrix_solver.MatrixSolver`.
"""

import logging
import re
from dataclasses import dataclass
from enum import Enum

from symcalc.config import FormatterConfig
from symcalc.errors import InvalidFormulaEditError, InvalidOperandError
from symcalc.expressions import Matrix
from symcalc.matrix_ops import matrix_from_text
from symcalc.matrix_solver import (
    FUNCTION_OPERATIONS,
    OPERATOR_OPERATIONS,
    MatrixOperation,
    MatrixOperationItem,
    OperandSource,
)

logger = logging.getLogger(__name__)


class MatrixElementType(Enum):
    VARIABLE = "variable"
    NUMBER = "number"
    OPERATOR = "operator"
    FUNCTION = "function"
    LEFT_PAREN = "("
    RIGHT_PAREN = ")"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class MatrixExpressionElement:
    value: str
    type: MatrixElementType

    def __str__(self) -> str:
        return f"{self.value}({self.type.value})"


@dataclass(frozen=True)
class FormatResult:
    success: bool
    formatted: str
    error: str | None = None


_OPERANDS = (MatrixElementType.VARIABLE, MatrixElementType.NUMBER)
_NUMBER = re.compile(r"\d+(?:\.\d+)?")


def _element(value: str, kind: MatrixElementType) -> MatrixExpressionElement:
    return MatrixExpressionElement(value, kind)


LEFT_PAREN = _element("(", MatrixElementType.LEFT_PAREN)
RIGHT_PAREN = _element(")", MatrixElementType.RIGHT_PAREN)


def _should_add_space(current: MatrixExpressionElement, following: MatrixExpressionElement) -> bool:
    if current.type is MatrixElementType.LEFT_PAREN:
        return False
    if following.type is MatrixElementType.RIGHT_PAREN:
        return False
    if current.type is MatrixElementType.FUNCTION and following.type is MatrixElementType.LEFT_PAREN:
        return False
    if MatrixElementType.OPERATOR in (current.type, following.type):
        return True
    if following.type is MatrixElementType.FUNCTION:
        return True
    return current.type in _OPERANDS and following.type in _OPERANDS


def format_elements(elements) -> str:
    parts = []
    for i, element in enumerate(elements):
        parts.append(element.value)
        if i + 1 < len(elements) and _should_add_space(element, elements[i + 1]):
            parts.append(" ")
    return "".join(parts)


def _unmatched_left_parens(elements) -> int:
    depth = 0
    for element in elements:
        if element.type is MatrixElementType.LEFT_PAREN:
            depth += 1
        elif element.type is MatrixElementType.RIGHT_PAREN:
            depth -= 1
    return depth


def _parentheses_balanced(elements) -> bool:
    depth = 0
    for element in elements:
        if element.type is MatrixElementType.LEFT_PAREN:
            depth += 1
        elif element.type is MatrixElementType.RIGHT_PAREN:
            depth -= 1
            if depth < 0:
                return False
    return depth == 0


class MatrixFormatter:
    """Incremental editor for matrix formulas bound to one config."""

    def __init__(self, config: FormatterConfig | None = None):
        self.config = config or FormatterConfig()
        self._pattern = self._build_pattern()

    def _build_pattern(self):
        parts = []
        if self.config.functions:
            names = sorted(self.config.functions, key=len, reverse=True)
            parts.append("(?P<function>(?i:" + "|".join(re.escape(n) for n in names)
                         + r")(?![A-Za-z0-9]))")
        if self.config.operators:
            symbols = sorted(self.config.operators, key=len, reverse=True)
            parts.append("(?P<operator>" + "|".join(re.escape(s) for s in symbols) + ")")
        parts += [
            r"(?P<variable>[A-Za-z][A-Za-z0-9]*)",
            r"(?P<number>\d+(?:\.\d+)?)",
            r"(?P<lparen>\()",
            r"(?P<rparen>\))",
            r"(?P<space>\s+)",
        ]
        return re.compile("|".join(parts))

    # ── Tokenizer ───────────────────────────────────────────────────────

    def parse_elements(self, formula: str) -> list:
        """Split *formula* into typed elements."""
        elements = []
        if not formula:
            return elements
        pos = 0
        while pos < len(formula):
            match = self._pattern.match(formula, pos)
            if match is None:
                raise InvalidFormulaEditError(
                    f"Unexpected character '{formula[pos]}' in matrix formula.", position=pos)
            kind, value = match.lastgroup, match.group()
            pos = match.end()
            if kind == "function":
                elements.append(_element(value.lower(), MatrixElementType.FUNCTION))
            elif kind == "operator":
                elements.append(_element(value, MatrixElementType.OPERATOR))
            elif kind == "variable":
                elements.append(_element(value, MatrixElementType.VARIABLE))
            elif kind == "number":
                elements.append(_element(value, MatrixElementType.NUMBER))
            elif kind == "lparen":
                elements.append(LEFT_PAREN)
            elif kind == "rparen":
                elements.append(RIGHT_PAREN)
        return elements

    # ── Adding ──────────────────────────────────────────────────────────

    def add_and_format(self, formula: str, token: str) -> FormatResult:
        """Append *token* to *formula* if the result stays well formed."""
        formula = (formula or "").strip()
        token = (token or "").strip()
        if not token:
            return FormatResult(True, formula)
        try:
            original = self.parse_elements(formula)
            new = self.parse_elements(token)
            self._validate_addition(original, new)
            combined = self._combine(original, new)
        except InvalidFormulaEditError as exc:
            logger.debug("rejected %r + %r: %s", formula, token, exc.message)
            return FormatResult(False, formula, exc.message)
        return FormatResult(True, format_elements(combined))

    def _validate_addition(self, original: list, new: list) -> None:
        if not new:
            return
        last = original[-1] if original else None
        first = new[0]
        last_type = last.type if last is not None else None

        if first.type is MatrixElementType.OPERATOR:
            if last is None:
                raise InvalidFormulaEditError("A formula cannot start with an operator.")
            if last_type is MatrixElementType.LEFT_PAREN:
                raise InvalidFormulaEditError("An operator cannot follow '('.")
            if last_type is MatrixElementType.OPERATOR:
                raise InvalidFormulaEditError("Two operators cannot follow each other.")

        if len(new) == 1:
            kind = first.type
            if kind is MatrixElementType.VARIABLE and last_type is MatrixElementType.VARIABLE:
                raise InvalidFormulaEditError(
                    "A variable cannot follow another variable; add an operator first.")
            if kind is MatrixElementType.OPERATOR or kind is MatrixElementType.LEFT_PAREN:
                return
            if kind is MatrixElementType.RIGHT_PAREN:
                if _unmatched_left_parens(original) <= 0:
                    raise InvalidFormulaEditError("')' has no matching '('.")
                if last_type in (MatrixElementType.LEFT_PAREN, MatrixElementType.OPERATOR):
                    raise InvalidFormulaEditError("')' needs an operand before it.")
                return

        self._validate_function_arguments(original, new)
        self._validate_number_operations(original, new)

    def _validate_function_arguments(self, original: list, new: list) -> None:
        if (len(original) >= 2 and original[-1].type is MatrixElementType.LEFT_PAREN
                and original[-2].type is MatrixElementType.FUNCTION
                and new[0].type is MatrixElementType.NUMBER):
            raise InvalidFormulaEditError(
                f"Function '{original[-2].value}' cannot take the number '{new[0].value}'; "
                f"use a matrix.")

        if len(new) == 1 and new[0].type is MatrixElementType.FUNCTION and original:
            start, length = self.find_last_operand(original)
            candidate = original[-1]
            if length == 1 and start >= 0:
                candidate = original[start]
            if candidate.type is MatrixElementType.NUMBER:
                raise InvalidFormulaEditError(
                    f"Function '{new[0].value}' cannot be applied to the number "
                    f"'{candidate.value}'; use a matrix.")

    def _validate_number_operations(self, original: list, new: list) -> None:
        deny = self.config.number_deny_list
        if original and original[-1].type is MatrixElementType.NUMBER:
            first = new[0]
            if first.type is MatrixElementType.OPERATOR and first.value in deny:
                raise InvalidFormulaEditError(
                    f"The number '{original[-1].value}' cannot be used with '{first.value}'.")

        for i in range(len(new) - 1):
            current, following = new[i], new[i + 1]
            if (current.type is MatrixElementType.OPERATOR and current.value in deny
                    and following.type is MatrixElementType.NUMBER):
                before = new[i - 1] if i > 0 else (original[-1] if original else None)
                if before is not None and before.type is MatrixElementType.VARIABLE:
                    raise InvalidFormulaEditError(
                        f"Matrix '{before.value}' cannot be combined with the number "
                        f"'{following.value}' using '{current.value}'.")

        self._check_number_operations(original + new)

    def _check_number_operations(self, elements: list) -> None:
        deny = self.config.number_deny_list
        for i in range(1, len(elements) - 1):
            before, current, after = elements[i - 1], elements[i], elements[i + 1]
            if (before.type is MatrixElementType.VARIABLE
                    and current.type is MatrixElementType.OPERATOR and current.value in deny
                    and after.type is MatrixElementType.NUMBER):
                raise InvalidFormulaEditError(
                    f"Matrix '{before.value}' cannot be combined with the number "
                    f"'{after.value}' using '{current.value}'.")

    def _combine(self, original: list, new: list) -> list:
        if len(new) == 1:
            element = new[0]
            if element.type is MatrixElementType.FUNCTION:
                return self._add_function(original, element)
            return original + new

        operator_index = next(
            (i for i, e in enumerate(new) if e.type is MatrixElementType.OPERATOR), -1)
        if (operator_index == 0 and len(new) > 1 and original
                and new[0].value in self.config.swap_operators):
            return self._add_operator_operand(original, new[0].value, new[1:])
        return original + new

    def _add_function(self, original: list, function: MatrixExpressionElement) -> list:
        last = original[-1] if original else None
        if last is not None and (last.type in _OPERANDS
                                 or last.type is MatrixElementType.RIGHT_PAREN):
            start, length = self.find_last_operand(original)
            if start >= 0 and length > 0:
                operand = original[start:start + length]
                return original[:start] + [function, LEFT_PAREN] + operand
        return original + [function, LEFT_PAREN]

    def _add_operator_operand(self, original: list, operator: str, operand: list) -> list:
        """``A + B`` + ``× 2`` becomes ``A + (2 × B)``."""
        last_operator = self.find_last_operator_index(original)
        if last_operator >= 0:
            new_precedence = self.config.precedence(operator)
            last_precedence = self.config.precedence(original[last_operator].value)
            if new_precedence > last_precedence:
                start, length = self.find_last_operand(original)
                if start >= 0 and length > 0:
                    previous = original[start:start + length]
                    grouped = ([LEFT_PAREN] + operand
                               + [_element(operator, MatrixElementType.OPERATOR)]
                               + previous + [RIGHT_PAREN])
                    return original[:start] + grouped
        return original + [_element(operator, MatrixElementType.OPERATOR)] + operand

    # ── Removing ────────────────────────────────────────────────────────

    def remove_last_element(self, formula: str) -> FormatResult:
        """Undo the most recent element of *formula*."""
        if not formula or not formula.strip():
            return FormatResult(True, "", "The formula is empty.")
        try:
            elements = self.parse_elements(formula)
        except InvalidFormulaEditError as exc:
            return FormatResult(False, formula, exc.message)
        if not elements:
            return FormatResult(True, "", "The formula is empty.")

        last = elements[-1]
        if last.type is MatrixElementType.RIGHT_PAREN:
            elements = self._remove_parenthesized(elements)
        elif last.type is MatrixElementType.LEFT_PAREN:
            drop = 2 if len(elements) >= 2 and elements[-2].type is MatrixElementType.FUNCTION else 1
            elements = elements[:-drop]
        else:
            elements = elements[:-1]
        return FormatResult(True, format_elements(elements))

    @staticmethod
    def _remove_parenthesized(elements: list) -> list:
        depth = 0
        for i in range(len(elements) - 1, -1, -1):
            kind = elements[i].type
            if kind is MatrixElementType.RIGHT_PAREN:
                depth += 1
            elif kind is MatrixElementType.LEFT_PAREN:
                depth -= 1
                if depth == 0:
                    if i > 0 and elements[i - 1].type is MatrixElementType.FUNCTION:
                        i -= 1
                    return elements[:i]
        return elements[:-1]

    # ── Queries ─────────────────────────────────────────────────────────

    def last_element_info(self, formula: str):
        """``(success, value, type, message)`` for the final element."""
        if not formula:
            return False, "", MatrixElementType.UNKNOWN, "The formula is empty."
        try:
            elements = self.parse_elements(formula)
        except InvalidFormulaEditError as exc:
            return False, "", MatrixElementType.UNKNOWN, exc.message
        if not elements:
            return False, "", MatrixElementType.UNKNOWN, "The formula is empty."
        last = elements[-1]
        return True, last.value, last.type, ""

    @staticmethod
    def find_last_operand(elements: list):
        """``(start, length)`` of the trailing operand, ``(-1, 0)`` when empty.

        A parenthesised group counts as one operand, together with the
        function name in front of it.
        """
        if not elements:
            return -1, 0
        end = len(elements) - 1
        start = end
        depth = 0
        for i in range(end, -1, -1):
            kind = elements[i].type
            if kind is MatrixElementType.RIGHT_PAREN:
                depth += 1
            elif kind is MatrixElementType.LEFT_PAREN:
                depth -= 1
                if depth == 0:
                    start = i
                    if i > 0 and elements[i - 1].type is MatrixElementType.FUNCTION:
                        start = i - 1
                    break
                if depth < 0:
                    start = i + 1
                    break
            elif depth == 0:
                if kind is MatrixElementType.OPERATOR:
                    start = i + 1
                    break
                start = i
        return start, max(0, end - start + 1)

    @staticmethod
    def find_last_operator_index(elements: list) -> int:
        for i in range(len(elements) - 1, -1, -1):
            if elements[i].type is MatrixElementType.OPERATOR:
                return i
        return -1

    # ── Validation ──────────────────────────────────────────────────────

    def validate_completeness(self, formula: str) -> FormatResult:
        try:
            elements = self.parse_elements(formula)
        except InvalidFormulaEditError as exc:
            return FormatResult(False, formula, exc.message)
        if not elements:
            return FormatResult(True, formula or "")
        last = elements[-1]
        if last.type is MatrixElementType.OPERATOR:
            return FormatResult(False, formula, "The formula ends with an operator.")
        if last.type is MatrixElementType.LEFT_PAREN:
            for element in reversed(elements[:-1]):
                if element.type is MatrixElementType.FUNCTION:
                    return FormatResult(
                        False, formula, f"The argument of '{element.value}' is unfinished.")
                if element.type is MatrixElementType.OPERATOR:
                    break
            return FormatResult(False, formula, "The formula ends with an open '('.")
        if not _parentheses_balanced(elements):
            return FormatResult(False, formula, "Parentheses do not match.")
        return FormatResult(True, formula)

    def validate_expression(self, formula: str) -> FormatResult:
        """Check a whole formula against the function and number rules."""
        try:
            elements = self.parse_elements(formula)
            for i in range(len(elements) - 2):
                if (elements[i].type is MatrixElementType.FUNCTION
                        and elements[i + 1].type is MatrixElementType.LEFT_PAREN
                        and elements[i + 2].type is MatrixElementType.NUMBER):
                    raise InvalidFormulaEditError(
                        f"Function '{elements[i].value}' cannot take the number "
                        f"'{elements[i + 2].value}'; use a matrix.")
            self._check_number_operations(elements)
        except InvalidFormulaEditError as exc:
            return FormatResult(False, formula, exc.message)
        if not _parentheses_balanced(elements):
            return FormatResult(False, formula, "Parentheses do not match.")
        return FormatResult(True, formula)


# ── Compiler ────────────────────────────────────────────────────────────

class _StackKind(Enum):
    MATRIX = "matrix"
    SCALAR = "scalar"
    RESULT = "result"


@dataclass(frozen=True)
class _StackItem:
    kind: _StackKind
    source: OperandSource | None = None
    scalar: float = 0.0


class MatrixConverter:
    """Compile a matrix formula into operations with operand provenance.

    *matrices* maps a name to either a :class:`Matrix` or its text form.
    """

    def __init__(self, matrices: dict, formatter: MatrixFormatter | None = None):
        self.matrices = dict(matrices)
        self.formatter = formatter or MatrixFormatter()

    def convert(self, formula: str):
        """Return ``(expressions, operations)`` for *formula*."""
        for check in (self.formatter.validate_completeness, self.formatter.validate_expression):
            verdict = check(formula)
            if not verdict.success:
                raise InvalidFormulaEditError(verdict.error)
        elements = self.formatter.parse_elements(formula)
        if not elements:
            raise InvalidFormulaEditError("The formula is empty.")
        postfix = self.to_postfix(elements)
        logger.debug("postfix: %s", " ".join(e.value for e in postfix))
        return self._build(postfix)

    def to_postfix(self, elements: list) -> list:
        output = []
        stack = []
        precedence = self.formatter.config.precedence
        for element in elements:
            kind = element.type
            if kind in _OPERANDS:
                output.append(element)
            elif kind in (MatrixElementType.FUNCTION, MatrixElementType.LEFT_PAREN):
                stack.append(element)
            elif kind is MatrixElementType.OPERATOR:
                while (stack and stack[-1].type is MatrixElementType.OPERATOR
                       and precedence(stack[-1].value) >= precedence(element.value)):
                    output.append(stack.pop())
                stack.append(element)
            elif kind is MatrixElementType.RIGHT_PAREN:
                while stack and stack[-1].type is not MatrixElementType.LEFT_PAREN:
                    output.append(stack.pop())
                if stack:
                    stack.pop()
                if stack and stack[-1].type is MatrixElementType.FUNCTION:
                    output.append(stack.pop())
        while stack:
            output.append(stack.pop())
        return output

    def _matrix(self, name: str) -> Matrix:
        if name not in self.matrices:
            raise InvalidOperandError(f"Unknown matrix '{name}'.")
        value = self.matrices[name]
        if isinstance(value, Matrix):
            return value if value.name == name else value.renamed(name)
        return matrix_from_text(value, name)

    def _build(self, postfix: list):
        expressions = []
        operations = []
        indices = {}
        stack = []

        def push_result():
            stack.append(_StackItem(_StackKind.RESULT,
                                    OperandSource.result(len(operations) - 1)))

        for element in postfix:
            kind = element.type
            if kind is MatrixElementType.VARIABLE:
                if element.value not in indices:
                    expressions.append(self._matrix(element.value))
                    indices[element.value] = len(expressions) - 1
                stack.append(_StackItem(_StackKind.MATRIX,
                                        OperandSource.expression(indices[element.value])))
            elif kind is MatrixElementType.NUMBER:
                stack.append(_StackItem(_StackKind.SCALAR, scalar=float(element.value)))
            elif kind is MatrixElementType.OPERATOR:
                if len(stack) < 2:
                    raise InvalidOperandError(f"Operator '{element.value}' needs two operands.")
                right = stack.pop()
                left = stack.pop()
                operations.append(self._binary_operation(element.value, left, right))
                push_result()
            elif kind is MatrixElementType.FUNCTION:
                if not stack:
                    raise InvalidOperandError(f"Function '{element.value}' needs an argument.")
                operand = stack.pop()
                if operand.kind is _StackKind.SCALAR:
                    raise InvalidOperandError(
                        f"Function '{element.value}' needs a matrix argument.")
                if element.value not in FUNCTION_OPERATIONS:
                    raise InvalidOperandError(f"Unsupported function '{element.value}'.")
                operations.append(MatrixOperationItem(FUNCTION_OPERATIONS[element.value],
                                                      left=operand.source))
                push_result()

        if len(stack) != 1 or stack[0].kind is _StackKind.SCALAR:
            raise InvalidOperandError("The formula does not reduce to a single matrix.")
        return expressions, operations

    @staticmethod
    def _binary_operation(symbol: str, left: _StackItem, right: _StackItem) -> MatrixOperationItem:
        left_scalar = left.kind is _StackKind.SCALAR
        right_scalar = right.kind is _StackKind.SCALAR
        if symbol == "×" and left_scalar != right_scalar:
            scalar, matrix = (left, right) if left_scalar else (right, left)
            return MatrixOperationItem(MatrixOperation.SCALAR_MULTIPLY,
                                       scalar=scalar.scalar, left=matrix.source)
        if symbol == "^":
            if not right_scalar or left_scalar:
                raise InvalidOperandError("'^' needs a matrix base and a number exponent.")
            if not float(right.scalar).is_integer():
                raise InvalidOperandError("Matrix powers must be whole numbers.")
            return MatrixOperationItem(MatrixOperation.POWER, power=int(right.scalar),
                                       left=left.source)
        if left_scalar or right_scalar:
            raise InvalidOperandError(f"Operator '{symbol}' needs two matrix operands.")
        if symbol not in OPERATOR_OPERATIONS:
            raise InvalidOperandError(f"Unsupported operator '{symbol}'.")
        return MatrixOperationItem(OPERATOR_OPERATIONS[symbol],
                                   left=left.source, right=right.source)
