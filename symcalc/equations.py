"""Single-variable equation solver.

Handles linear and quadratic polynomial equations in one unknown, plus
equations with one isolated square-root group.  Every algebraic move is
recorded as a step, e.g. for ``x^2 - 5x + 6 = 0``::

    x² - 5 * x + 6 = 0
        => Δ = 1          // discriminant Δ = b² - 4ac = (-5)² - 4×1×6 = 1
        => x₁ = 3         // quadratic formula: x₁ = (-b + √Δ) / (2a) = 3
        => x₂ = 2         // quadratic formula: x₂ = (-b - √Δ) / (2a) = 2
"""

import logging
import math

from symcalc.config import EPSILON
from symcalc.errors import (
    NoSolutionError,
    SingularError,
    UnsupportedOperationError,
)
from symcalc.expressions import (
    Binary,
    BinaryOp,
    Equation,
    Number,
    Variable,
    format_number,
    negate,
    power,
    subtract,
)
from symcalc.results import CalculationResult, StepRecorder
from symcalc.simplify import Simplifier
from symcalc.terms import SortOrder, decompose_expression, reconstruct_terms
from symcalc.visitors import (
    collect_radical_terms,
    collect_variables,
    contains_radical,
    first_variable,
    radicals_in_domain,
    substitute,
)

logger = logging.getLogger(__name__)

_SUBSCRIPTS = ("₁", "₂")


def _signed_number(value: float) -> str:
    """Wrap negative numbers in parentheses for use inside a formula."""
    text = format_number(value)
    return f"({text})" if value < 0 else text


def _from_radical_terms(terms) -> object:
    if not terms:
        return Number(0)
    result = terms[0].expression if terms[0].positive else negate(terms[0].expression)
    for term in terms[1:]:
        op = BinaryOp.ADD if term.positive else BinaryOp.SUBTRACT
        result = Binary(result, term.expression, op)
    return result


class EquationSolver:
    """Solve one equation for one unknown.

    The unknown is *variable* when given, otherwise the first variable met
    in a pre-order walk of the equation.
    """

    def __init__(self, variable: str | None = None):
        self.variable = variable
        self._recorder = StepRecorder()
        self._sort_order = SortOrder.NORMAL

    def process(self, expression, sort_order: SortOrder = SortOrder.NORMAL) -> CalculationResult:
        if not isinstance(expression, Equation):
            raise UnsupportedOperationError("Expression must be an equation.")
        variable = self.variable or first_variable(expression)
        if not variable:
            raise UnsupportedOperationError("The equation contains no variable to solve for.")
        logger.debug("solving %s for %s", expression, variable)

        self._recorder = StepRecorder()
        self._sort_order = sort_order
        self._recorder.add(expression, "original equation")
        solutions = self._solve(expression, variable)
        return CalculationResult(expression, solutions[0], self._recorder.steps,
                                 solutions=solutions)

    # ── Dispatch ────────────────────────────────────────────────────────

    def _solve(self, equation: Equation, variable: str) -> list:
        if contains_radical(equation):
            return self._solve_radical(equation, variable)

        standardized = equation
        if not (isinstance(equation.right, Number) and equation.right.value == 0):
            standardized = Equation(subtract(equation.left, equation.right), Number(0))
            self._recorder.add(standardized, "move all terms to the left side")

        simplifier = Simplifier(equation, self._sort_order,
                                start_index=self._recorder.next_index)
        left = simplifier.simplify(standardized.left)
        for step in simplifier.steps:
            self._recorder.add(Equation(step.expression, Number(0)), step.description)
        standardized = Equation(left, Number(0))

        coefficients = self._polynomial_coefficients(left, variable)
        degree = max(coefficients) if coefficients else 0
        logger.debug("polynomial degree %d in %s", degree, variable)
        if degree == 1:
            return [self._solve_linear(standardized, variable, coefficients)]
        if degree == 2:
            return self._solve_quadratic(standardized, variable, coefficients)
        if degree == 0:
            raise UnsupportedOperationError(
                f"The equation does not depend on '{variable}' after simplification.")
        raise UnsupportedOperationError(
            f"Equations of degree {degree} are not supported; only degree 1 and 2.")

    def _polynomial_coefficients(self, expr, variable: str) -> dict:
        """Map exponent -> summed coefficient of ``variable^exponent``."""
        coefficients = {}
        for term in decompose_expression(expr):
            exponent = 0
            for factor in term.factors:
                if str(factor.base) == variable and isinstance(factor.base, Variable):
                    value = factor.exponent.value if isinstance(factor.exponent, Number) else None
                    if value is None or value < 0 or not float(value).is_integer():
                        raise UnsupportedOperationError(
                            f"'{factor.to_expression()}' is not a polynomial term in '{variable}'.")
                    exponent = int(value)
                    continue
                names = collect_variables(factor.to_expression())
                if variable in names:
                    raise UnsupportedOperationError(
                        f"'{factor.to_expression()}' is not a polynomial term in '{variable}'.")
                if names:
                    raise UnsupportedOperationError(
                        f"The equation contains another unknown: '{factor.base}'.")
            coefficients[exponent] = coefficients.get(exponent, 0.0) + term.coefficient
        return coefficients

    # ── Polynomial cases ────────────────────────────────────────────────

    def _solve_linear(self, equation: Equation, variable: str, coefficients: dict) -> Equation:
        a = coefficients.get(1, 0.0)
        b = coefficients.get(0, 0.0)
        if abs(a) < EPSILON:
            raise SingularError("The equation has no solution or infinitely many solutions.")

        terms = [t for t in decompose_expression(equation.left) if not t.is_constant]
        if abs(b) > EPSILON:
            self._recorder.add(Equation(reconstruct_terms(terms), Number(-b)),
                               "move the constant term to the right side")
        solution = Equation(Variable(variable), Number(-b / a))
        self._recorder.add(solution, f"divide both sides by {format_number(a)}")
        return solution

    def _solve_quadratic(self, equation: Equation, variable: str, coefficients: dict) -> list:
        a = coefficients.get(2, 0.0)
        b = coefficients.get(1, 0.0)
        c = coefficients.get(0, 0.0)
        if abs(a) < EPSILON:
            return [self._solve_linear(equation, variable, coefficients)]

        self._recorder.add(
            equation,
            f"standard form: a = {format_number(a)}, b = {format_number(b)}, c = {format_number(c)}")
        discriminant = b * b - 4 * a * c
        self._recorder.add(
            Equation(Variable("Δ"), Number(discriminant)),
            f"discriminant Δ = b² - 4ac = {_signed_number(b)}² - 4×{_signed_number(a)}"
            f"×{_signed_number(c)} = {format_number(discriminant)}")

        if discriminant < -EPSILON:
            raise NoSolutionError(
                f"Δ = {format_number(discriminant)} < 0, the equation has no real solution.")
        if abs(discriminant) < EPSILON:
            root = -b / (2 * a)
            solution = Equation(Variable(variable), Number(root))
            self._recorder.add(solution,
                               f"one repeated root: {variable} = -b / (2a) = {format_number(root)}")
            return [solution]

        sqrt_d = math.sqrt(discriminant)
        roots = ((-b + sqrt_d) / (2 * a), (-b - sqrt_d) / (2 * a))
        solutions = []
        for subscript, sign, root in zip(_SUBSCRIPTS, "+-", roots):
            solution = Equation(Variable(variable + subscript), Number(root))
            self._recorder.add(
                solution,
                f"quadratic formula: {variable}{subscript} = (-b {sign} √Δ) / (2a) = "
                f"{format_number(root)}")
            solutions.append(solution)
        return solutions

    # ── Radical equations ───────────────────────────────────────────────

    def _solve_radical(self, equation: Equation, variable: str) -> list:
        terms = collect_radical_terms(equation.left)
        terms += [t.flipped() for t in collect_radical_terms(equation.right)]
        radicals = [t for t in terms if t.radical]
        others = [t for t in terms if not t.radical]
        if len(radicals) != 1:
            raise UnsupportedOperationError(
                "Only equations with a single square-root term can be solved.")

        radical = radicals[0]
        moved = [t.flipped() for t in others] if radical.positive else others
        isolated = Equation(radical.expression, _from_radical_terms(moved))
        self._recorder.add(isolated, "isolate the square root term")

        squared = Equation(power(isolated.left, Number(2)), power(isolated.right, Number(2)))
        self._recorder.add(squared, "square both sides")

        simplifier = Simplifier(equation, self._sort_order)
        simplified = Equation(simplifier.simplify(squared.left),
                              simplifier.simplify(squared.right))
        self._recorder.add(simplified, "simplify both sides")
        if contains_radical(simplified):
            raise UnsupportedOperationError(
                "The square root could not be removed by squaring once.")

        candidates = self._solve(simplified, variable)
        self._recorder.add(equation, "check the candidates against the original equation")
        valid = []
        for candidate in candidates:
            value = candidate.right.value
            accepted = Equation(Variable(variable), Number(value))
            if self._satisfies(equation, variable, value):
                self._recorder.add(accepted, f"{variable} = {format_number(value)} is a valid solution")
                valid.append(accepted)
            else:
                self._recorder.add(
                    Equation(Variable(variable), Number(value)),
                    f"{variable} = {format_number(value)} is extraneous and rejected")
        if not valid:
            raise NoSolutionError("No candidate satisfies the original equation.")
        return valid

    @staticmethod
    def _satisfies(equation: Equation, variable: str, value: float) -> bool:
        bindings = {variable: value}
        if not radicals_in_domain(equation, bindings):
            return False
        substituted = substitute(equation, bindings)
        left = substituted.left.evaluate()
        right = substituted.right.evaluate()
        return math.isclose(left, right, rel_tol=1e-9, abs_tol=1e-9)


def solve_equation(expression, variable: str | None = None) -> CalculationResult:
    return EquationSolver(variable).process(expression)
