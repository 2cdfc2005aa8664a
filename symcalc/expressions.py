"""Immutable expression tree and the visitor contract.

Every node is a frozen dataclass.  Nodes know how to evaluate themselves
numerically, how to render as plain text and LaTeX, and which precedence
they carry for parenthesisation.  Every other algorithm (variable
detection, substitution, term collection, ...) is written as an
:class:`ExpressionVisitor` in :mod:`symcalc.visitors`.
"""

import math
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum

import numpy as np

from symcalc.config import UNARY_PRECEDENCE
from symcalc.errors import (
    DimensionMismatchError,
    UnboundVariableError,
    UnsupportedOperationError,
)

ATOM_PRECEDENCE = 100
EQUATION_PRECEDENCE = -1
SYSTEM_PRECEDENCE = -2


# ── Number formatting helpers ───────────────────────────────────────────

_SUPERSCRIPT = str.maketrans("0123456789-", "⁰¹²³⁴⁵⁶⁷⁸⁹⁻")


def to_superscript(text: str) -> str:
    """Convert an integer string into Unicode superscript.

    Anything that is not a digit or a minus sign falls back to ``^(text)``.
    """
    if not text or any(ch not in "0123456789-" for ch in text):
        return f"^({text})"
    return text.translate(_SUPERSCRIPT)


def format_number(value: float) -> str:
    """Format a float the way it appears in expressions and step text.

    Integers print without a decimal point (``7`` not ``7.0``); everything
    else uses the shortest representation that reads back to the same float.
    """
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "∞" if value > 0 else "-∞"
    if value.is_integer() and abs(value) < 1e16:
        return str(int(value))
    return repr(value)


def _wrap(text: str, needed: bool) -> str:
    return f"({text})" if needed else text


# ── Operator tables ─────────────────────────────────────────────────────

class BinaryOp(Enum):
    ADD = "+"
    SUBTRACT = "-"
    MULTIPLY = "*"
    DIVIDE = "/"
    POWER = "^"
    MODULO = "%"
    GREATER_THAN = ">"
    LESS_THAN = "<"
    GREATER_EQUAL = ">="
    LESS_EQUAL = "<="
    EQUAL = "=="
    NOT_EQUAL = "!="

    @property
    def symbol(self) -> str:
        return self.value

    @property
    def precedence(self) -> int:
        return _BINARY_PRECEDENCE[self]

    @property
    def is_additive(self) -> bool:
        return self in (BinaryOp.ADD, BinaryOp.SUBTRACT)

    @classmethod
    def from_symbol(cls, symbol: str) -> "BinaryOp":
        return cls(symbol)


_BINARY_PRECEDENCE = {
    BinaryOp.ADD: 1,
    BinaryOp.SUBTRACT: 1,
    BinaryOp.MULTIPLY: 2,
    BinaryOp.DIVIDE: 2,
    BinaryOp.MODULO: 2,
    BinaryOp.POWER: 4,
    BinaryOp.GREATER_THAN: 0,
    BinaryOp.LESS_THAN: 0,
    BinaryOp.GREATER_EQUAL: 0,
    BinaryOp.LESS_EQUAL: 0,
    BinaryOp.EQUAL: 0,
    BinaryOp.NOT_EQUAL: 0,
}

_BINARY_LATEX = {
    BinaryOp.ADD: "+",
    BinaryOp.SUBTRACT: "-",
    BinaryOp.MULTIPLY: "\\cdot",
    BinaryOp.MODULO: "\\%",
    BinaryOp.GREATER_THAN: ">",
    BinaryOp.LESS_THAN: "<",
    BinaryOp.GREATER_EQUAL: "\\ge",
    BinaryOp.LESS_EQUAL: "\\le",
    BinaryOp.EQUAL: "=",
    BinaryOp.NOT_EQUAL: "\\ne",
}


class UnaryOp(Enum):
    NEGATE = "-"


def _binary_value(op: BinaryOp, a: float, b: float) -> float:
    if op is BinaryOp.ADD:
        return a + b
    if op is BinaryOp.SUBTRACT:
        return a - b
    if op is BinaryOp.MULTIPLY:
        return a * b
    if op is BinaryOp.DIVIDE:
        return math.nan if b == 0 else a / b
    if op is BinaryOp.MODULO:
        if b == 0:
            return math.nan
        with np.errstate(all="ignore"):
            return float(np.fmod(a, b))
    if op is BinaryOp.POWER:
        with np.errstate(all="ignore"):
            return float(np.power(a, b))
    if op is BinaryOp.GREATER_THAN:
        return 1.0 if a > b else 0.0
    if op is BinaryOp.LESS_THAN:
        return 1.0 if a < b else 0.0
    if op is BinaryOp.GREATER_EQUAL:
        return 1.0 if a >= b else 0.0
    if op is BinaryOp.LESS_EQUAL:
        return 1.0 if a <= b else 0.0
    if op is BinaryOp.EQUAL:
        return 1.0 if a == b else 0.0
    return 1.0 if a != b else 0.0


# ── Function evaluators ─────────────────────────────────────────────────

def _sample_variance(values: np.ndarray) -> float:
    if values.size < 2:
        return 0.0
    return float(np.var(values, ddof=1))


_FUNCTIONS = {
    "sin": lambda a: np.sin(a[0]),
    "cos": lambda a: np.cos(a[0]),
    "tan": lambda a: np.tan(a[0]),
    "asin": lambda a: np.arcsin(a[0]),
    "acos": lambda a: np.arccos(a[0]),
    "atan": lambda a: np.arctan(a[0]),
    "atan2": lambda a: np.arctan2(a[0], a[1]),
    "sinh": lambda a: np.sinh(a[0]),
    "cosh": lambda a: np.cosh(a[0]),
    "tanh": lambda a: np.tanh(a[0]),
    "sqrt": lambda a: np.sqrt(a[0]),
    "log": lambda a: np.log(a[0]),
    "log10": lambda a: np.log10(a[0]),
    "pow": lambda a: np.power(a[0], a[1]),
    "abs": lambda a: np.abs(a[0]),
    "ceiling": lambda a: np.ceil(a[0]),
    "floor": lambda a: np.floor(a[0]),
    "round": lambda a: np.round(a[0]),
    "sign": lambda a: np.sign(a[0]),
    "exp": lambda a: np.exp(a[0]),
    "max": np.max,
    "min": np.min,
    "trunc": lambda a: np.trunc(a[0]),
    "truncate": lambda a: np.trunc(a[0]),
    "frac": lambda a: a[0] - np.trunc(a[0]),
    "mean": np.mean,
    "sum": np.sum,
    "product": np.prod,
    "variance": _sample_variance,
    "stddev": lambda a: math.sqrt(_sample_variance(a)),
}


def evaluate_function(name: str, values: list) -> float:
    """Apply a named scalar function; domain errors yield NaN."""
    evaluator = _FUNCTIONS.get(name.lower())
    if evaluator is None:
        raise UnsupportedOperationError(f"Function '{name}' cannot be evaluated.")
    if not values:
        raise UnsupportedOperationError(f"Function '{name}' needs at least one argument.")
    with np.errstate(all="ignore"):
        return float(evaluator(np.asarray(values, dtype=float)))


# ── Expression nodes ────────────────────────────────────────────────────

class Expression(ABC):
    """Base class of every node in the expression tree."""

    @property
    def precedence(self) -> int:
        return ATOM_PRECEDENCE

    @abstractmethod
    def accept(self, visitor: "ExpressionVisitor"):
        ...

    @abstractmethod
    def evaluate(self, bindings: dict | None = None) -> float:
        """Evaluate numerically, resolving variables from *bindings*."""

    @abstractmethod
    def to_latex(self) -> str:
        ...

    @abstractmethod
    def to_display_text(self) -> str:
        ...

    def __str__(self) -> str:
        return self.to_display_text()


@dataclass(frozen=True)
class Number(Expression):
    value: float

    def __post_init__(self):
        object.__setattr__(self, "value", float(self.value))

    @property
    def precedence(self) -> int:
        # Negative literals read back as a negation.
        return UNARY_PRECEDENCE if self.value < 0 else ATOM_PRECEDENCE

    def accept(self, visitor):
        return visitor.visit_number(self)

    def evaluate(self, bindings: dict | None = None) -> float:
        return self.value

    def to_latex(self) -> str:
        return format_number(self.value)

    def to_display_text(self) -> str:
        return format_number(self.value)


@dataclass(frozen=True)
class Variable(Expression):
    name: str

    def accept(self, visitor):
        return visitor.visit_variable(self)

    def evaluate(self, bindings: dict | None = None) -> float:
        if bindings is None or self.name not in bindings:
            raise UnboundVariableError(self.name)
        return float(bindings[self.name])

    def to_latex(self) -> str:
        return self.name

    def to_display_text(self) -> str:
        return self.name


@dataclass(frozen=True)
class Unary(Expression):
    operand: Expression
    op: UnaryOp = UnaryOp.NEGATE

    @property
    def precedence(self) -> int:
        return UNARY_PRECEDENCE

    def accept(self, visitor):
        return visitor.visit_unary(self)

    def evaluate(self, bindings: dict | None = None) -> float:
        return -self.operand.evaluate(bindings)

    def to_latex(self) -> str:
        needed = self.operand.precedence < UNARY_PRECEDENCE
        return f"-{_wrap(self.operand.to_latex(), needed)}"

    def to_display_text(self) -> str:
        needed = self.operand.precedence < UNARY_PRECEDENCE
        return f"-{_wrap(self.operand.to_display_text(), needed)}"


@dataclass(frozen=True)
class Binary(Expression):
    left: Expression
    right: Expression
    op: BinaryOp

    @property
    def precedence(self) -> int:
        return self.op.precedence

    def accept(self, visitor):
        return visitor.visit_binary(self)

    def evaluate(self, bindings: dict | None = None) -> float:
        return _binary_value(self.op, self.left.evaluate(bindings),
                             self.right.evaluate(bindings))

    def _parens_needed(self) -> tuple[bool, bool]:
        own = self.precedence
        is_power = self.op is BinaryOp.POWER
        left_needed = self.left.precedence < own or (
            is_power and self.left.precedence <= own)
        return left_needed, self.right.precedence <= own

    def to_latex(self) -> str:
        if self.op is BinaryOp.DIVIDE:
            return f"\\frac{{{self.left.to_latex()}}}{{{self.right.to_latex()}}}"
        left_needed, right_needed = self._parens_needed()
        left = _wrap(self.left.to_latex(), left_needed)
        if self.op is BinaryOp.POWER:
            return f"{left}^{{{self.right.to_latex()}}}"
        right = _wrap(self.right.to_latex(), right_needed)
        return f"{left} {_BINARY_LATEX[self.op]} {right}"

    def to_display_text(self) -> str:
        left_needed, right_needed = self._parens_needed()
        is_power = self.op is BinaryOp.POWER
        left = _wrap(self.left.to_display_text(), left_needed)
        if (is_power and isinstance(self.right, Number)
                and not math.isinf(self.right.value)
                and float(self.right.value).is_integer()):
            return f"{left}{to_superscript(format_number(self.right.value))}"
        right = _wrap(self.right.to_display_text(), right_needed)
        return f"{left} {self.op.symbol} {right}"


@dataclass(frozen=True)
class Function(Expression):
    name: str
    args: tuple = ()

    def __post_init__(self):
        object.__setattr__(self, "args", tuple(self.args))

    @property
    def lower_name(self) -> str:
        return self.name.lower()

    def accept(self, visitor):
        return visitor.visit_function(self)

    def evaluate(self, bindings: dict | None = None) -> float:
        return evaluate_function(self.name, [a.evaluate(bindings) for a in self.args])

    def to_latex(self) -> str:
        args = ", ".join(a.to_latex() for a in self.args)
        if self.lower_name == "sqrt":
            return f"\\sqrt{{{args}}}"
        return f"\\mathrm{{{self.lower_name}}}({args})"

    def to_display_text(self) -> str:
        args = ", ".join(a.to_display_text() for a in self.args)
        return f"{self.lower_name}({args})"


@dataclass(frozen=True)
class Equation(Binary):
    """``left = right``; a Binary fixed to equality."""

    op: BinaryOp = field(default=BinaryOp.EQUAL, init=False, repr=False)

    @property
    def precedence(self) -> int:
        return EQUATION_PRECEDENCE

    def accept(self, visitor):
        return visitor.visit_equation(self)

    def evaluate(self, bindings: dict | None = None) -> float:
        raise UnsupportedOperationError("An equation cannot be evaluated to a number.")

    def to_latex(self) -> str:
        return f"{self.left.to_latex()} = {self.right.to_latex()}"

    def to_display_text(self) -> str:
        return f"{self.left.to_display_text()} = {self.right.to_display_text()}"


@dataclass(frozen=True)
class EquationSystem(Expression):
    equations: tuple = ()

    def __post_init__(self):
        object.__setattr__(self, "equations", tuple(self.equations))

    @property
    def precedence(self) -> int:
        return SYSTEM_PRECEDENCE

    def accept(self, visitor):
        return visitor.visit_equation_system(self)

    def evaluate(self, bindings: dict | None = None) -> float:
        raise UnsupportedOperationError("An equation system cannot be evaluated to a number.")

    def to_latex(self) -> str:
        if not self.equations:
            return ""
        body = " \\\\\n".join(f"  {eq.to_latex()}" for eq in self.equations)
        return "\\left\\{ \\begin{array}{l}\n" + body + "\n\\end{array} \\right."

    def to_display_text(self) -> str:
        return "; ".join(eq.to_display_text() for eq in self.equations)


@dataclass(frozen=True)
class Matrix(Expression):
    """Dense row-major grid with a display name."""

    values: tuple
    name: str = ""

    def __post_init__(self):
        rows = tuple(tuple(float(v) for v in row) for row in self.values)
        if not rows or not rows[0]:
            raise DimensionMismatchError("A matrix needs at least one row and one column.")
        width = len(rows[0])
        for i, row in enumerate(rows):
            if len(row) != width:
                raise DimensionMismatchError(
                    f"Row {i + 1} has {len(row)} values, expected {width}.")
        object.__setattr__(self, "values", rows)

    @classmethod
    def from_array(cls, array, name: str = "") -> "Matrix":
        return cls(tuple(tuple(row) for row in np.asarray(array, dtype=float)), name)

    @property
    def rows(self) -> int:
        return len(self.values)

    @property
    def columns(self) -> int:
        return len(self.values[0])

    @property
    def is_square(self) -> bool:
        return self.rows == self.columns

    def to_array(self) -> np.ndarray:
        return np.array(self.values, dtype=float)

    def renamed(self, name: str) -> "Matrix":
        return Matrix(self.values, name)

    def accept(self, visitor):
        return visitor.visit_matrix(self)

    def evaluate(self, bindings: dict | None = None) -> float:
        raise UnsupportedOperationError("A matrix cannot be evaluated to a number.")

    def to_latex(self) -> str:
        rows = " \\\\ ".join(
            " & ".join(format_number(v) for v in row) for row in self.values)
        return f"\\begin{{pmatrix}}{rows}\\end{{pmatrix}}"

    def to_display_text(self) -> str:
        lines = [
            "  [" + ", ".join(f"{v:8.3f}" for v in row) + "]"
            for row in self.values
        ]
        return "[\n" + ",\n".join(lines) + "\n]"


# ── Visitor contract ────────────────────────────────────────────────────

class ExpressionVisitor(ABC):
    """One method per expression variant; ``node.accept(v)`` dispatches."""

    @abstractmethod
    def visit_number(self, node: Number):
        ...

    @abstractmethod
    def visit_variable(self, node: Variable):
        ...

    @abstractmethod
    def visit_unary(self, node: Unary):
        ...

    @abstractmethod
    def visit_binary(self, node: Binary):
        ...

    @abstractmethod
    def visit_function(self, node: Function):
        ...

    @abstractmethod
    def visit_equation(self, node: Equation):
        ...

    @abstractmethod
    def visit_equation_system(self, node: EquationSystem):
        ...

    @abstractmethod
    def visit_matrix(self, node: Matrix):
        ...


# ── Construction helpers ────────────────────────────────────────────────

def negate(expr: Expression) -> Unary:
    return Unary(expr, UnaryOp.NEGATE)


def add(left: Expression, right: Expression) -> Binary:
    return Binary(left, right, BinaryOp.ADD)


def subtract(left: Expression, right: Expression) -> Binary:
    return Binary(left, right, BinaryOp.SUBTRACT)


def multiply(left: Expression, right: Expression) -> Binary:
    return Binary(left, right, BinaryOp.MULTIPLY)


def power(base: Expression, exponent: Expression) -> Binary:
    return Binary(base, exponent, BinaryOp.POWER)


def is_negation(expr: Expression) -> bool:
    return isinstance(expr, Unary) and expr.op is UnaryOp.NEGATE


def is_additive(expr: Expression) -> bool:
    return type(expr) is Binary and expr.op.is_additive

