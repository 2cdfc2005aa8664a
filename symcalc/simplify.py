"""Three pass simplifier: expand, combine like terms, canonical sort.

Every pass that changes the textual form of the expression records one
step, so the trace reads as a short derivation::

    2 * x + 3 * y + x * (x + y) - 3 * x
        => 2 * x + 3 * y + (x * x + x * y) - 3 * x   // apply the distributive law
        => -x + 3 * y + x² + x * y                   // combine like terms (merged 2 terms)
        => x² + x * y - x + 3 * y                    // sort terms
"""

import logging

from symcalc.config import EPSILON
from symcalc.errors import UnsupportedOperationError
from symcalc.expressions import (
    Binary,
    BinaryOp,
    Equation,
    Function,
    Number,
    Unary,
    format_number,
    is_additive,
    is_negation,
    multiply,
    negate,
    power,
)
from symcalc.results import CalculationResult, StepRecorder
from symcalc.terms import (
    SortOrder,
    TermComparer,
    combine_terms,
    decompose_expression,
    reconstruct_terms,
)
from symcalc.visitors import collect_variables

logger = logging.getLogger(__name__)

# Rule identifiers recorded while expanding.
CONSTANT_FOLDING = "constant_folding"
DISTRIBUTION = "distribution"
NEGATIVE_MULTIPLICATION = "negative_multiplication"
POWER_RULE = "power_rule"
UNARY_NEGATION = "unary_negation"
FUNCTION_EVALUATION = "function_evaluation"
SQUARE_ROOT_SQUARE = "square_root_square"
NEGATIVE_SQUARE = "negative_square"
EXPAND_SQUARE = "expand_square"
CONSTANT_DIVISION = "constant_division"
NEGATION_DISTRIBUTION = "negation_distribution"

_FOLDING_NAMES = {
    BinaryOp.ADD: ("addition", "+"),
    BinaryOp.SUBTRACT: ("subtraction", "-"),
    BinaryOp.MULTIPLY: ("multiplication", "×"),
    BinaryOp.DIVIDE: ("division", "÷"),
    BinaryOp.POWER: ("power", "^"),
}


# ── Step descriptions ───────────────────────────────────────────────────

def describe_rule(original, result, rule: str) -> str:
    """Human description of one expansion rewrite."""
    if rule == CONSTANT_FOLDING:
        if original.op in _FOLDING_NAMES:
            name, symbol = _FOLDING_NAMES[original.op]
            left = format_number(original.left.value)
            right = format_number(original.right.value)
            joiner = symbol if symbol == "^" else f" {symbol} "
            return f"constant {name}: {left}{joiner}{right} = {result}"
        return "constant operation"
    if rule == DISTRIBUTION:
        return "apply the distributive law"
    if rule == POWER_RULE:
        exponent = original.right.value
        if exponent == 0:
            return f"power rule: {original.left}^0 = 1"
        if exponent == 1:
            return f"power rule: {original.left}^1 = {original.left}"
        return "power rule"
    if rule == UNARY_NEGATION:
        return f"negate constant: -({original.operand}) = {result}"
    if rule == FUNCTION_EVALUATION:
        return f"evaluate function: {original} = {result}"
    if rule == SQUARE_ROOT_SQUARE:
        return "square of a square root"
    if rule == NEGATIVE_SQUARE:
        return "square of a negation"
    if rule == EXPAND_SQUARE:
        return "expand the square"
    if rule == CONSTANT_DIVISION:
        return f"divide by a constant: ÷ {original.right} = × {result.left}"
    if rule == NEGATION_DISTRIBUTION:
        return "distribute the negation"
    return "expand expression"


def combine_description(original_count: int, combined_count: int) -> str:
    merged = original_count - combined_count
    if merged > 0:
        return f"combine like terms (merged {merged} terms)"
    return "combine like terms"


def sort_description(sort_order: SortOrder) -> str:
    if sort_order is SortOrder.NORMAL:
        return "sort terms"
    return "sort terms in reverse order"


# ── Expansion helpers ───────────────────────────────────────────────────

def _addition_terms(expr, negative: bool = False, out=None) -> list:
    """Signed summands of an Add/Subtract/Negate chain."""
    if out is None:
        out = []
    if type(expr) is Binary and expr.op is BinaryOp.ADD:
        _addition_terms(expr.left, negative, out)
        _addition_terms(expr.right, negative, out)
    elif type(expr) is Binary and expr.op is BinaryOp.SUBTRACT:
        _addition_terms(expr.left, negative, out)
        _addition_terms(expr.right, not negative, out)
    elif is_negation(expr):
        _addition_terms(expr.operand, not negative, out)
    else:
        out.append((expr, negative))
    return out


def _from_signed_terms(terms):
    if not terms:
        return Number(0)
    first, negative = terms[0]
    result = negate(first) if negative else first
    for expr, negative in terms[1:]:
        op = BinaryOp.SUBTRACT if negative else BinaryOp.ADD
        result = Binary(result, expr, op)
    return result


def _expand_multiplication(left, right):
    left_terms = _addition_terms(left)
    right_terms = _addition_terms(right)
    if len(left_terms) == 1 and len(right_terms) == 1:
        return multiply(left, right)
    products = [
        (multiply(l_expr, r_expr), l_neg != r_neg)
        for l_expr, l_neg in left_terms
        for r_expr, r_neg in right_terms
    ]
    return _from_signed_terms(products)


def _expand_square_of_sum(expr):
    a, b = expr.left, expr.right
    two_ab = multiply(Number(2), multiply(a, b))
    head = Binary(power(a, Number(2)), two_ab, expr.op)
    return Binary(head, power(b, Number(2)), BinaryOp.ADD)


# ── Simplifier ──────────────────────────────────────────────────────────

class Simplifier:
    """Runs the expand/combine/sort pipeline and records its steps.

    The variable appearance order used for sorting is taken from
    *original*, so sub-expressions simplified on behalf of a larger
    expression keep the caller's ordering.
    """

    def __init__(self, original, sort_order: SortOrder = SortOrder.NORMAL,
                 start_index: int = 0):
        self.sort_order = sort_order
        self.variable_order = collect_variables(original)
        self._recorder = StepRecorder(start_index)
        self._pending = []

    @property
    def steps(self) -> list:
        return list(self._recorder.steps)

    def simplify(self, expr):
        if isinstance(expr, Equation):
            left = self._run(expr.left, lambda side: Equation(side, expr.right))
            right = self._run(expr.right, lambda side: Equation(left, side))
            return Equation(left, right)
        return self._run(expr, lambda side: side)

    def _run(self, expr, wrap):
        current = expr
        while True:
            previous = current
            self._pending = []
            current = self._expand(current)
            if str(current) == str(previous):
                break
            logger.debug("expand pass: %s -> %s", previous, current)
            self._recorder.add(wrap(current), self._expand_description())

        terms = decompose_expression(current)
        combined = combine_terms(terms)
        unsorted = reconstruct_terms(combined)
        if str(unsorted) != str(current):
            self._recorder.add(wrap(unsorted),
                               combine_description(len(terms), len(combined)))
            current = unsorted

        ordered = TermComparer(self.variable_order, self.sort_order).sort(combined)
        result = reconstruct_terms(ordered)
        if str(result) != str(current):
            self._recorder.add(wrap(result), sort_description(self.sort_order))
        return result

    def _expand_description(self) -> str:
        if not self._pending:
            return "expand expression"
        original, result, rule = self._pending[0]
        rules = {r for _, _, r in self._pending}
        if len(rules) == 1:
            return describe_rule(original, result, rule)
        return "expand and simplify"

    def _note(self, original, result, rule: str) -> None:
        self._pending.append((original, result, rule))

    def _expand(self, expr):
        if isinstance(expr, Equation):
            return Equation(self._expand(expr.left), self._expand(expr.right))
        if isinstance(expr, Binary):
            return self._expand_binary(expr)
        if isinstance(expr, Unary):
            operand = self._expand(expr.operand)
            if isinstance(operand, Number):
                result = Number(-operand.value)
                self._note(Unary(operand, expr.op), result, UNARY_NEGATION)
                return result
            if is_additive(operand):
                result = _from_signed_terms(_addition_terms(operand, negative=True))
                self._note(Unary(operand, expr.op), result, NEGATION_DISTRIBUTION)
                return result
            return Unary(operand, expr.op)
        if isinstance(expr, Function):
            return self._expand_function(expr)
        return expr

    def _expand_function(self, expr):
        args = tuple(self._expand(a) for a in expr.args)
        folded = Function(expr.name, args)
        if args and all(isinstance(a, Number) for a in args):
            try:
                result = Number(folded.evaluate())
            except UnsupportedOperationError:
                return folded
            self._note(folded, result, FUNCTION_EVALUATION)
            return result
        return folded

    def _expand_binary(self, expr):
        left = self._expand(expr.left)
        right = self._expand(expr.right)
        op = expr.op

        if isinstance(left, Number) and isinstance(right, Number):
            folded_input = Binary(left, right, op)
            result = Number(folded_input.evaluate())
            self._note(folded_input, result, CONSTANT_FOLDING)
            return result

        if op is BinaryOp.MULTIPLY:
            return self._expand_product(expr, left, right)
        if (op is BinaryOp.DIVIDE and isinstance(right, Number)
                and abs(right.value) > EPSILON):
            result = multiply(Number(1 / right.value), left)
            self._note(Binary(left, right, op), result, CONSTANT_DIVISION)
            return result
        if op is BinaryOp.POWER and isinstance(right, Number):
            return self._expand_power(expr, left, right)
        return Binary(left, right, op)

    def _expand_product(self, expr, left, right):
        if is_negation(left) and is_negation(right):
            positive = multiply(left.operand, right.operand)
            self._note(expr, positive, NEGATIVE_MULTIPLICATION)
            return self._expand(positive)
        if is_negation(left):
            result = negate(self._expand(multiply(left.operand, right)))
            self._note(expr, result, NEGATIVE_MULTIPLICATION)
            return result
        if is_negation(right):
            result = negate(self._expand(multiply(left, right.operand)))
            self._note(expr, result, NEGATIVE_MULTIPLICATION)
            return result
        expanded = _expand_multiplication(left, right)
        if str(expanded) != str(multiply(left, right)):
            self._note(expr, expanded, DISTRIBUTION)
        return expanded

    def _expand_power(self, expr, base, exponent):
        rewritten = power(base, exponent)
        if exponent.value == 0:
            result = Number(1)
            self._note(rewritten, result, POWER_RULE)
            return result
        if exponent.value == 1:
            self._note(rewritten, base, POWER_RULE)
            return base
        if abs(exponent.value - 2) < EPSILON:
            if (isinstance(base, Function) and base.lower_name == "sqrt"
                    and len(base.args) == 1):
                inner = self._expand(base.args[0])
                self._note(expr, inner, SQUARE_ROOT_SQUARE)
                return inner
            if is_negation(base):
                result = self._expand(power(base.operand, Number(2)))
                self._note(expr, result, NEGATIVE_SQUARE)
                return result
            if type(base) is Binary and base.op.is_additive:
                result = _expand_square_of_sum(base)
                self._note(expr, result, EXPAND_SQUARE)
                return result
        return rewritten


class SimplificationSolver:
    """Simplify an expression (or both sides of an equation)."""

    def process(self, expression, sort_order: SortOrder = SortOrder.NORMAL) -> CalculationResult:
        logger.debug("simplifying %s", expression)
        recorder = StepRecorder()
        recorder.add(expression)
        simplifier = Simplifier(expression, sort_order, start_index=1)
        final = simplifier.simplify(expression)
        recorder.extend(simplifier.steps)
        if str(recorder.last.expression) != str(final):
            recorder.add(final)
        return CalculationResult(expression, final, recorder.steps)


def simplify(expression, sort_order: SortOrder = SortOrder.NORMAL):
    """Shortcut returning only the simplified expression."""
    return Simplifier(expression, sort_order).simplify(expression)
