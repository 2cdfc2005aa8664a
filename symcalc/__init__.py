"""Symbolic algebra engine with step-by-step derivations."""

from symcalc.config import EPSILON, FormatterConfig, ParserConfig
from symcalc.engine import (
    CalculateType,
    apply_matrix_operation,
    calculate,
    calculate_matrix,
    choose_solver,
    evaluate_with_values,
    render_steps,
    result_to_dict,
    sync_from_latex,
    sync_to_latex,
)
from symcalc.equations import EquationSolver
from symcalc.errors import AlgebraError
from symcalc.latex import LatexParser, parse_latex
from symcalc.matrix_formula import MatrixConverter, MatrixFormatter
from symcalc.matrix_ops import matrix_from_text, parse_matrix_text, to_matrix_text
from symcalc.matrix_solver import MatrixOperation, MatrixSolver
from symcalc.parsing import InfixParser, parse
from symcalc.results import CalculationResult, CalculationStep, DisplayPattern
from symcalc.simplify import SimplificationSolver, simplify
from symcalc.systems import EquationSystemSolver
from symcalc.terms import SortOrder

__version__ = "1.0.0"

__all__ = [
    "EPSILON",
    "AlgebraError",
    "CalculateType",
    "CalculationResult",
    "CalculationStep",
    "DisplayPattern",
    "EquationSolver",
    "EquationSystemSolver",
    "FormatterConfig",
    "InfixParser",
    "LatexParser",
    "MatrixConverter",
    "MatrixFormatter",
    "MatrixOperation",
    "MatrixSolver",
    "ParserConfig",
    "SimplificationSolver",
    "SortOrder",
    "apply_matrix_operation",
    "calculate",
    "calculate_matrix",
    "choose_solver",
    "evaluate_with_values",
    "matrix_from_text",
    "parse",
    "parse_latex",
    "parse_matrix_text",
    "render_steps",
    "result_to_dict",
    "simplify",
    "sync_from_latex",
    "sync_to_latex",
    "to_matrix_text",
]
