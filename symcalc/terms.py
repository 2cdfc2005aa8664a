"""Canonical monomials used for like-term collection and ordering.

A :class:`Term` is ``coefficient * base1^exp1 * base2^exp2 ...`` with its
factors sorted by the text of their base, so two terms are like terms
exactly when their :attr:`Term.canonical_variable_part` strings match.
"""

from dataclasses import dataclass
from enum import Enum
from functools import cmp_to_key

from symcalc.expressions import (
    Binary,
    BinaryOp,
    Number,
    add,
    is_negation,
    multiply,
    negate,
    power,
)
from symcalc.visitors import collect_variables


class SortOrder(Enum):
    NORMAL = "normal"
    REVERSED = "reversed"


@dataclass(frozen=True)
class Factor:
    base: object
    exponent: object

    @property
    def is_linear(self) -> bool:
        return isinstance(self.exponent, Number) and self.exponent.value == 1

    def to_expression(self):
        return self.base if self.is_linear else power(self.base, self.exponent)

    def __str__(self) -> str:
        if self.is_linear:
            return str(self.base)
        return f"{self.base}^{self.exponent}"


def _merge_exponents(first, second):
    if isinstance(first, Number) and isinstance(second, Number):
        return Number(first.value + second.value)
    # Symbolic exponents go through the full simplifier.
    from symcalc.simplify import Simplifier

    total = add(first, second)
    return Simplifier(total).simplify(total)


class Term:
    """Immutable monomial; build new terms instead of editing one."""

    __slots__ = ("coefficient", "factors", "canonical_variable_part", "degree", "variables")

    def __init__(self, coefficient: float, factors=()):
        self.coefficient = float(coefficient)
        self.factors = tuple(sorted(factors, key=lambda f: str(f.base)))
        self.canonical_variable_part = "*".join(str(f) for f in self.factors)
        self.degree = sum(
            f.exponent.value if isinstance(f.exponent, Number) else 1
            for f in self.factors
        )
        self.variables = frozenset(
            name for f in self.factors for name in collect_variables(f.to_expression()))

    @property
    def is_constant(self) -> bool:
        return not self.factors

    def negated(self) -> "Term":
        return Term(-self.coefficient, self.factors)

    def with_coefficient(self, coefficient: float) -> "Term":
        return Term(coefficient, self.factors)

    def power_of(self, variable: str) -> float:
        """Numeric exponent of *variable* in this term, 0 when absent."""
        for f in self.factors:
            if str(f.base) == variable:
                return f.exponent.value if isinstance(f.exponent, Number) else 0
        return 0

    @classmethod
    def from_expression(cls, expr) -> "Term":
        if isinstance(expr, Number):
            return cls(expr.value)
        if is_negation(expr):
            return cls.from_expression(expr.operand).negated()

        factors = {}
        coefficient = 1.0
        stack = [expr]
        while stack:
            current = stack.pop()
            if type(current) is Binary and current.op is BinaryOp.MULTIPLY:
                stack.append(current.left)
                stack.append(current.right)
            elif isinstance(current, Number):
                coefficient *= current.value
            elif is_negation(current):
                coefficient = -coefficient
                stack.append(current.operand)
            else:
                base, exponent = current, Number(1)
                if type(current) is Binary and current.op is BinaryOp.POWER:
                    base, exponent = current.left, current.right
                key = str(base)
                if key in factors:
                    exponent = _merge_exponents(factors[key].exponent, exponent)
                factors[key] = Factor(base, exponent)
        return cls(coefficient, factors.values())

    def to_expression(self):
        if self.is_constant:
            return Number(self.coefficient)
        chain = None
        for f in self.factors:
            part = f.to_expression()
            chain = part if chain is None else multiply(chain, part)
        if self.coefficient == 1:
            return chain
        if self.coefficient == -1:
            return negate(chain)
        return multiply(Number(self.coefficient), chain)

    def __eq__(self, other) -> bool:
        if not isinstance(other, Term):
            return NotImplemented
        return (self.coefficient == other.coefficient
                and self.canonical_variable_part == other.canonical_variable_part)

    def __hash__(self) -> int:
        return hash((self.coefficient, self.canonical_variable_part))

    def __repr__(self) -> str:
        return f"Term({self.coefficient!r}, {self.canonical_variable_part!r})"


def decompose_expression(expr) -> list:
    """Flatten a top-level Add/Subtract chain into a list of terms."""
    if type(expr) is Binary and expr.op.is_additive:
        terms = decompose_expression(expr.left)
        right = decompose_expression(expr.right)
        if expr.op is BinaryOp.SUBTRACT:
            right = [t.negated() for t in right]
        return terms + right
    return [Term.from_expression(expr)]


def combine_terms(terms) -> list:
    """Group like terms in first-seen order, summing coefficients.

    Groups whose coefficients cancel are dropped.
    """
    groups = {}
    for term in terms:
        key = term.canonical_variable_part
        if key in groups:
            groups[key] = groups[key].with_coefficient(groups[key].coefficient + term.coefficient)
        else:
            groups[key] = term
    return [t for t in groups.values() if t.coefficient != 0]


def reconstruct_terms(terms):
    """Rebuild an expression, writing negative trailing terms as subtraction."""
    if not terms:
        return Number(0)
    result = terms[0].to_expression()
    for term in terms[1:]:
        if term.coefficient < 0:
            result = Binary(result, term.negated().to_expression(), BinaryOp.SUBTRACT)
        else:
            result = add(result, term.to_expression())
    return result


def _compare(a, b) -> int:
    return (a > b) - (a < b)


class TermComparer:
    """Ordering for display: variables in appearance order, constants last."""

    def __init__(self, variable_order, sort_order: SortOrder = SortOrder.NORMAL):
        self.variable_order = list(variable_order)
        self.sort_order = sort_order

    def _primary_variable(self, term: Term) -> str:
        for name in self.variable_order:
            if name in term.variables:
                return name
        return ""

    def _index(self, name: str) -> int:
        return self.variable_order.index(name) if name in self.variable_order else -1

    def compare(self, x: Term, y: Term) -> int:
        if x.is_constant and y.is_constant:
            return 0
        if x.is_constant:
            return 1
        if y.is_constant:
            return -1

        normal = self.sort_order is SortOrder.NORMAL
        x_primary = self._primary_variable(x)
        y_primary = self._primary_variable(y)
        if x_primary != y_primary:
            order = _compare(self._index(x_primary), self._index(y_primary))
            return order if normal else -order

        if x.degree != y.degree:
            order = _compare(y.degree, x.degree)
            return order if normal else -order

        for name in self.variable_order:
            x_power, y_power = x.power_of(name), y.power_of(name)
            if x_power != y_power:
                order = _compare(y_power, x_power)
                return order if normal else -order
        return 0

    def sort(self, terms) -> list:
        return sorted(terms, key=cmp_to_key(self.compare))
