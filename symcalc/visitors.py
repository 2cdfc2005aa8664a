"""Traversal algorithms over the expression tree, one visitor each."""

from dataclasses import dataclass

from symcalc.config import EPSILON
from symcalc.errors import AlgebraError, UnsupportedOperationError
from symcalc.expressions import (
    Binary,
    Equation,
    EquationSystem,
    ExpressionVisitor,
    Function,
    Number,
    Unary,
)


class TreeWalker(ExpressionVisitor):
    """Pre-order walk that visits every child and returns nothing.

    Subclasses override only the variants they care about.
    """

    def visit_number(self, node):
        return None

    def visit_variable(self, node):
        return None

    def visit_unary(self, node):
        node.operand.accept(self)

    def visit_binary(self, node):
        node.left.accept(self)
        node.right.accept(self)

    def visit_function(self, node):
        for arg in node.args:
            arg.accept(self)

    def visit_equation(self, node):
        self.visit_binary(node)

    def visit_equation_system(self, node):
        for eq in node.equations:
            eq.accept(self)

    def visit_matrix(self, node):
        raise UnsupportedOperationError("Matrices cannot appear inside algebraic expressions.")


class VariableCollector(TreeWalker):
    """Variable names in first-appearance (pre-order) order, de-duplicated."""

    def __init__(self):
        self.names = []

    def visit_variable(self, node):
        if node.name not in self.names:
            self.names.append(node.name)


class RadicalDetector(TreeWalker):
    def __init__(self):
        self.found = False

    def visit_function(self, node):
        if node.lower_name == "sqrt":
            self.found = True
        super().visit_function(node)


class VariableSubstitution(ExpressionVisitor):
    """Rebuild a tree with bound variables replaced by numbers."""

    def __init__(self, values: dict):
        self.values = values

    def visit_number(self, node):
        return node

    def visit_variable(self, node):
        if node.name in self.values:
            return Number(self.values[node.name])
        return node

    def visit_unary(self, node):
        return Unary(node.operand.accept(self), node.op)

    def visit_binary(self, node):
        return Binary(node.left.accept(self), node.right.accept(self), node.op)

    def visit_function(self, node):
        return Function(node.name, tuple(a.accept(self) for a in node.args))

    def visit_equation(self, node):
        return Equation(node.left.accept(self), node.right.accept(self))

    def visit_equation_system(self, node):
        return EquationSystem(tuple(eq.accept(self) for eq in node.equations))

    def visit_matrix(self, node):
        return node


@dataclass(frozen=True)
class RadicalTerm:
    """One signed additive term of an equation side."""

    expression: object
    positive: bool = True
    radical: bool = False

    def flipped(self) -> "RadicalTerm":
        return RadicalTerm(self.expression, not self.positive, self.radical)


class RadicalTermCollector(ExpressionVisitor):
    """Split an additive chain into signed terms tagged radical / plain."""

    def visit_number(self, node):
        return [RadicalTerm(node)]

    def visit_variable(self, node):
        return [RadicalTerm(node)]

    def visit_unary(self, node):
        return [term.flipped() for term in node.operand.accept(self)]

    def visit_binary(self, node):
        if not node.op.is_additive:
            return [RadicalTerm(node, radical=contains_radical(node))]
        terms = node.left.accept(self)
        right = node.right.accept(self)
        if node.op.symbol == "-":
            right = [term.flipped() for term in right]
        return terms + right

    def visit_function(self, node):
        return [RadicalTerm(node, radical=node.lower_name == "sqrt")]

    def visit_equation(self, node):
        raise UnsupportedOperationError("Collect terms from each side of the equation separately.")

    def visit_equation_system(self, node):
        raise UnsupportedOperationError("Cannot collect radical terms from an equation system.")

    def visit_matrix(self, node):
        raise UnsupportedOperationError("Cannot collect radical terms from a matrix.")


class RadicalDomainChecker(TreeWalker):
    """Checks every ``sqrt`` argument is non-negative under *values*."""

    def __init__(self, values: dict):
        self.values = values
        self.valid = True

    def visit_function(self, node):
        if node.lower_name == "sqrt" and node.args:
            try:
                value = node.args[0].evaluate(self.values)
            except AlgebraError:
                self.valid = False
            else:
                # NaN fails the comparison below as well
                if not value >= -EPSILON:
                    self.valid = False
        super().visit_function(node)


# ── Convenience wrappers ────────────────────────────────────────────────

def collect_variables(expr) -> list:
    collector = VariableCollector()
    expr.accept(collector)
    return collector.names


def first_variable(expr) -> str | None:
    names = collect_variables(expr)
    return names[0] if names else None


def contains_radical(expr) -> bool:
    detector = RadicalDetector()
    expr.accept(detector)
    return detector.found


def substitute(expr, values: dict):
    return expr.accept(VariableSubstitution(values))


def collect_radical_terms(expr) -> list:
    return expr.accept(RadicalTermCollector())


def radicals_in_domain(expr, values: dict) -> bool:
    checker = RadicalDomainChecker(values)
    expr.accept(checker)
    return checker.valid
