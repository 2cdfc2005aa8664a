"""Solver dispatch and presentation helpers.

This is the single entry point used by outer layers: pick a solver for
the parsed input, run it, and turn the :class:`CalculationResult` into
text, LaTeX or a JSON friendly dict.
"""

import logging
import re
import time
from datetime import datetime
from enum import Enum

from symcalc.errors import ParseError, UnsupportedOperationError
from symcalc.equations import EquationSolver
from symcalc.expressions import Equation, EquationSystem, Matrix
from symcalc.latex import parse_latex
from symcalc.matrix_formula import MatrixConverter
from symcalc.matrix_ops import matrix_from_text
from symcalc.matrix_solver import MatrixOperation, MatrixSolver, describe_operations
from symcalc.parsing import parse
from symcalc.results import DisplayPattern
from symcalc.simplify import SimplificationSolver
from symcalc.systems import EquationSystemSolver
from symcalc.terms import SortOrder
from symcalc.visitors import collect_variables

logger = logging.getLogger(__name__)


class CalculateType(Enum):
    AUTO_DETECT = "auto"
    SIMPLIFY = "simplify"
    SOLVE_EQUATION = "equation"
    SOLVE_SYSTEM = "system"
    MATRIX = "matrix"


def choose_solver(expression, calculate_type: CalculateType = CalculateType.AUTO_DETECT,
                  variable: str | None = None):
    """Return the solver for *expression*, or raise when there is none."""
    if calculate_type is CalculateType.MATRIX:
        raise UnsupportedOperationError(
            "Matrix formulas are calculated with calculate_matrix().")
    if not isinstance(calculate_type, CalculateType):
        raise UnsupportedOperationError(f"Unknown calculate type {calculate_type!r}.")

    auto = calculate_type is CalculateType.AUTO_DETECT
    if calculate_type is CalculateType.SOLVE_SYSTEM or (auto and isinstance(expression, EquationSystem)):
        if not isinstance(expression, EquationSystem):
            raise UnsupportedOperationError("Solving a system needs two or more equations.")
        return EquationSystemSolver()
    if calculate_type is CalculateType.SOLVE_EQUATION or (auto and isinstance(expression, Equation)):
        if not isinstance(expression, Equation):
            raise UnsupportedOperationError("Solving needs an equation containing '='.")
        return EquationSolver(variable)
    if isinstance(expression, (EquationSystem, Matrix)):
        raise UnsupportedOperationError(
            f"{type(expression).__name__} cannot be simplified as an expression.")
    return SimplificationSolver()


def calculate(text: str, calculate_type: CalculateType = CalculateType.AUTO_DETECT,
              sort_order: SortOrder = SortOrder.NORMAL, variable: str | None = None,
              latex: bool = False):
    """Parse *text* (infix, or LaTeX when *latex* is set) and solve it."""
    expression = parse_latex(text) if latex else parse(text)
    solver = choose_solver(expression, calculate_type, variable)
    logger.debug("dispatching %s to %s", expression, type(solver).__name__)
    return solver.process(expression, sort_order)


def calculate_matrix(formula: str, matrices: dict, formatter=None):
    """Compile and run a matrix formula such as ``A + B ^ 2``."""
    expressions, operations = MatrixConverter(matrices, formatter).convert(formula)
    logger.debug("compiled %r: %s", formula, describe_operations(operations))
    return MatrixSolver(operations, expressions).process()


def apply_matrix_operation(matrix, operation: MatrixOperation, power: int = 2,
                           scalar: float | None = None, name: str = "A"):
    """Run one operation on one matrix given as a :class:`Matrix` or text."""
    if not isinstance(matrix, Matrix):
        matrix = matrix_from_text(matrix, name)
    return MatrixSolver.single(operation, power=power, scalar=scalar).process(matrix)


# ── Numeric substitution ────────────────────────────────────────────────

_NAME = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")


def parse_values(values_str: str) -> dict:
    """Parse a user-supplied values string like ``x = 3, y = 4``.

    Values may be any constant expression (``pi / 2``, ``sqrt(2)``).
    """
    assignments = re.split(r"\s*[,;]\s*", (values_str or "").strip())
    result = {}
    for assignment in assignments:
        assignment = assignment.strip()
        if not assignment:
            continue
        if "=" not in assignment:
            raise ParseError(
                f"Invalid value format: '{assignment}'. "
                f"Expected format: variable = value (e.g. x = 3)")
        name, value = (part.strip() for part in assignment.split("=", 1))
        if not name or not value:
            raise ParseError(
                f"Invalid value format: '{assignment}'. "
                f"Both variable name and value are required.")
        if not _NAME.fullmatch(name):
            raise ParseError(f"'{name}' is not a valid variable name.")
        result[name] = parse(value).evaluate()
    if not result:
        raise ParseError("No values provided. Enter values like: x = 3  or  x = 3, y = 4")
    return result


def variables_to_substitute(result) -> list:
    """Variables left in a result, in order of appearance."""
    return collect_variables(result.final)


def evaluate_with_values(expression, values) -> float:
    """Evaluate an expression (usually a result's final) numerically.

    *values* is a mapping or a string accepted by :func:`parse_values`.
    """
    if isinstance(values, str):
        values = parse_values(values)
    return expression.evaluate(dict(values))


# ── Text / LaTeX sync ───────────────────────────────────────────────────

def sync_to_latex(text: str) -> str:
    if not text or not text.strip():
        return ""
    return parse(text).to_latex()


def sync_from_latex(latex: str) -> str:
    if not latex or not latex.strip():
        return ""
    return parse_latex(latex).to_display_text()


# ── Presentation ────────────────────────────────────────────────────────

def render_steps(result, pattern: DisplayPattern = DisplayPattern.TEXT) -> str:
    return "\n".join(step.display(pattern) for step in result.steps)


def _expression_dict(expression) -> dict:
    return {"text": expression.to_display_text(), "latex": expression.to_latex()}


def result_to_dict(result, runtime_ms: float | None = None) -> dict:
    """Trail-format dict with the original, the final answer and the steps."""
    return {
        "original": _expression_dict(result.original),
        "final": _expression_dict(result.final),
        "final_answer": result.answer_text,
        "solutions": [_expression_dict(s) for s in result.solutions],
        "steps": [step.to_dict() for step in result.steps],
        "summary": {
            "runtime_ms": runtime_ms,
            "total_steps": len(result.steps),
            "timestamp": datetime.now().strftime("%Y-%m-%d %H:%M:%S"),
        },
    }


def solve_to_dict(text: str, calculate_type: CalculateType = CalculateType.AUTO_DETECT,
                  sort_order: SortOrder = SortOrder.NORMAL, variable: str | None = None,
                  latex: bool = False) -> dict:
    t_start = time.perf_counter()
    result = calculate(text, calculate_type, sort_order, variable, latex)
    runtime_ms = round((time.perf_counter() - t_start) * 1000, 2)
    return result_to_dict(result, runtime_ms)
