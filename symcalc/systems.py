"""Linear equation systems solved by Gaussian elimination.

Each equation is moved to ``left - right = 0``, simplified and split into
terms; the terms give one row of the augmented matrix ``[A | b]``.  The
elimination runs on a NumPy array with partial pivoting, and after every
row operation the current matrix is rendered back as an equation system
so the trace reads like working on paper.
"""

import logging

import numpy as np

from symcalc.config import EPSILON
from symcalc.errors import InconsistentSystemError, UnsupportedOperationError
from symcalc.expressions import (
    Equation,
    EquationSystem,
    Number,
    Variable,
    format_number,
    subtract,
)
from symcalc.results import CalculationResult, StepRecorder
from symcalc.simplify import Simplifier
from symcalc.terms import Factor, SortOrder, Term, decompose_expression, reconstruct_terms
from symcalc.visitors import collect_variables

logger = logging.getLogger(__name__)


def _variable_term(coefficient: float, name: str) -> Term:
    return Term(coefficient, [Factor(Variable(name), Number(1))])


def _clean(value: float) -> float:
    # Elimination round-off: 1.9999999999999996 reads as 2, -1e-17 as 0.
    nearest = float(np.rint(value)) + 0.0
    return nearest if abs(value - nearest) < EPSILON else float(value)


def system_from_augmented(augmented: np.ndarray, variables: list) -> EquationSystem:
    """Render ``[A | b]`` as the equivalent equation system."""
    equations = []
    for row in augmented:
        terms = [
            _variable_term(_clean(coefficient), name)
            for coefficient, name in zip(row[:-1], variables)
            if abs(coefficient) > EPSILON
        ]
        left = reconstruct_terms(terms) if terms else Number(0)
        equations.append(Equation(left, Number(_clean(row[-1]))))
    return EquationSystem(tuple(equations))


class EquationSystemSolver:
    """Solve a system of linear equations in any number of unknowns."""

    def __init__(self):
        self._recorder = StepRecorder()
        self._sort_order = SortOrder.NORMAL

    def process(self, expression, sort_order: SortOrder = SortOrder.NORMAL) -> CalculationResult:
        if not isinstance(expression, EquationSystem):
            raise UnsupportedOperationError("Expression must be an equation system.")
        self._recorder = StepRecorder()
        self._sort_order = sort_order
        self._recorder.add(expression, "original system")

        variables = sorted(collect_variables(expression))
        if not expression.equations or not variables:
            raise UnsupportedOperationError("The system has no equations or no unknowns.")
        augmented = self.extract_linear_system(expression, variables)
        self._recorder.add(system_from_augmented(augmented, variables),
                           "move the unknowns left and the constants right")

        rank, pivot_columns = self._eliminate(augmented, variables)
        final = self._analyze(augmented, variables, rank, pivot_columns)
        return CalculationResult(expression, final, self._recorder.steps,
                                 solutions=list(final.equations))

    # ── Extraction ──────────────────────────────────────────────────────

    def extract_linear_system(self, system: EquationSystem, variables: list) -> np.ndarray:
        """Build the augmented matrix, refusing any non-linear term."""
        augmented = np.zeros((len(system.equations), len(variables) + 1), dtype=float)
        for i, equation in enumerate(system.equations):
            standardized = subtract(equation.left, equation.right)
            simplified = Simplifier(system, self._sort_order).simplify(standardized)
            for term in decompose_expression(simplified):
                if term.is_constant:
                    augmented[i, -1] -= term.coefficient
                    continue
                if (term.degree != 1 or len(term.variables) != 1
                        or next(iter(term.variables)) not in variables
                        or not isinstance(term.factors[0].base, Variable)):
                    raise UnsupportedOperationError(
                        f"Only linear systems are supported; '{term.to_expression()}' "
                        f"in equation {i + 1} is not linear.")
                name = next(iter(term.variables))
                augmented[i, variables.index(name)] += term.coefficient
        logger.debug("augmented matrix:\n%s", augmented)
        return augmented

    # ── Elimination ─────────────────────────────────────────────────────

    def _record(self, augmented: np.ndarray, variables: list, description: str) -> None:
        self._recorder.add(system_from_augmented(augmented, variables), description)

    def _eliminate(self, augmented: np.ndarray, variables: list):
        rows, columns = augmented.shape[0], augmented.shape[1] - 1
        rank = 0
        pivot_columns = []
        for col in range(columns):
            if rank >= rows:
                break
            pivot_row = rank + int(np.argmax(np.abs(augmented[rank:, col])))
            if abs(augmented[pivot_row, col]) < EPSILON:
                continue
            logger.debug("pivot %g at row %d column %d", augmented[pivot_row, col],
                         pivot_row, col)

            if pivot_row != rank:
                augmented[[rank, pivot_row]] = augmented[[pivot_row, rank]]
                self._record(augmented, variables,
                             f"swap row {rank + 1} and row {pivot_row + 1}")

            pivot = augmented[rank, col]
            if abs(pivot - 1) > EPSILON:
                augmented[rank] = augmented[rank] / pivot
                self._record(augmented, variables,
                             f"divide row {rank + 1} by {format_number(round(pivot, 3))}")

            eliminated = False
            for row in range(rows):
                factor = augmented[row, col]
                if row != rank and abs(factor) > EPSILON:
                    augmented[row] = augmented[row] - factor * augmented[rank]
                    eliminated = True
            augmented[np.abs(augmented) < EPSILON] = 0.0
            if eliminated:
                self._record(augmented, variables,
                             f"eliminate {variables[col]} from the other rows")

            pivot_columns.append(col)
            rank += 1
        return rank, pivot_columns

    # ── Classification ──────────────────────────────────────────────────

    def _analyze(self, augmented: np.ndarray, variables: list, rank: int,
                 pivot_columns: list) -> EquationSystem:
        columns = len(variables)
        for row in augmented[rank:]:
            if np.all(np.abs(row[:-1]) < EPSILON) and abs(row[-1]) > EPSILON:
                raise InconsistentSystemError(
                    f"The system is inconsistent: 0 = {format_number(row[-1])}.")

        if rank == columns:
            solution = EquationSystem(tuple(
                Equation(Variable(name), Number(_clean(augmented[i, -1])))
                for i, name in enumerate(variables)
            ))
            self._recorder.add(solution, "unique solution")
            return solution

        free = [name for col, name in enumerate(variables) if col not in pivot_columns]
        expressions = {}
        for row, col in enumerate(pivot_columns):
            terms = []
            if abs(augmented[row, -1]) > EPSILON:
                terms.append(Term(augmented[row, -1]))
            for other in range(col + 1, columns):
                coefficient = augmented[row, other]
                if abs(coefficient) > EPSILON:
                    terms.append(_variable_term(-coefficient, variables[other]))
            expressions[variables[col]] = reconstruct_terms(terms)
        for name in free:
            expressions[name] = Variable(name)

        general = EquationSystem(tuple(
            Equation(Variable(name), expressions[name]) for name in variables))
        self._recorder.add(
            general,
            f"infinitely many solutions (rank {rank} < {columns} unknowns), "
            f"free: {', '.join(free)}")
        return general


def solve_system(expression) -> CalculationResult:
    return EquationSystemSolver().process(expression)
