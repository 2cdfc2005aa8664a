"""Tolerances and per-instance operator/function tables.

Parsers and formatters each own one of the config objects below.  The
``with_*``/``without_*`` helpers return a modified copy, so two parser
instances never see each other's registrations.
"""

from dataclasses import dataclass, field, replace

EPSILON = 1e-10

# Cofactor expansion is factorial time; larger matrices are refused.
MAX_DETERMINANT_ORDER = 8

UNARY_PRECEDENCE = 3

VARIADIC = -1


def _default_operators() -> dict:
    # symbol -> (precedence, right associative)
    return {
        "=": (-1, False),
        "==": (0, False),
        "!=": (0, False),
        ">": (0, False),
        "<": (0, False),
        ">=": (0, False),
        "<=": (0, False),
        "+": (1, False),
        "-": (1, False),
        "*": (2, False),
        "/": (2, False),
        "%": (2, False),
        "^": (4, True),
    }


def _default_functions() -> dict:
    arities = {name: 1 for name in (
        "sin", "cos", "tan", "asin", "acos", "atan", "sinh", "cosh", "tanh",
        "sqrt", "log", "log10", "abs", "ceiling", "floor", "round", "sign",
        "trunc", "truncate", "frac", "exp",
    )}
    arities.update({"pow": 2, "atan2": 2})
    arities.update({name: VARIADIC for name in (
        "max", "min", "sum", "mean", "product", "variance", "stddev",
    )})
    return arities


def _default_constants() -> dict:
    return {"pi": 3.141592653589793, "e": 2.718281828459045}


@dataclass(frozen=True)
class ParserConfig:
    """Operator, function and constant tables for one infix parser."""

    operators: dict = field(default_factory=_default_operators)
    functions: dict = field(default_factory=_default_functions)
    constants: dict = field(default_factory=_default_constants)
    implicit_multiplication: bool = True

    def with_operator(self, symbol: str, precedence: int,
                      right_associative: bool = False) -> "ParserConfig":
        operators = dict(self.operators)
        operators[symbol] = (precedence, right_associative)
        return replace(self, operators=operators)

    def without_operator(self, symbol: str) -> "ParserConfig":
        operators = {k: v for k, v in self.operators.items() if k != symbol}
        return replace(self, operators=operators)

    def with_function(self, name: str, arity: int) -> "ParserConfig":
        functions = dict(self.functions)
        functions[name.lower()] = arity
        return replace(self, functions=functions)

    def without_function(self, name: str) -> "ParserConfig":
        functions = {k: v for k, v in self.functions.items() if k != name.lower()}
        return replace(self, functions=functions)

    def with_constant(self, name: str, value: float) -> "ParserConfig":
        constants = dict(self.constants)
        constants[name] = value
        return replace(self, constants=constants)


def _default_matrix_operators() -> dict:
    return {"+": 1, "-": 1, "⊙": 2, "×": 2, "^": 3}


@dataclass(frozen=True)
class FormatterConfig:
    """Tables for one matrix formula formatter/converter pair."""

    operators: dict = field(default_factory=_default_matrix_operators)
    swap_operators: frozenset = frozenset({"×"})
    functions: frozenset = frozenset({"inverse", "trans"})
    number_deny_list: frozenset = frozenset({"+", "-", "⊙"})

    def precedence(self, symbol: str) -> int:
        return self.operators.get(symbol, 0)

    def is_function(self, name: str) -> bool:
        return name.lower() in self.functions

    def with_operator(self, symbol: str, precedence: int) -> "FormatterConfig":
        operators = dict(self.operators)
        operators[symbol] = precedence
        return replace(self, operators=operators)

    def without_operator(self, symbol: str) -> "FormatterConfig":
        operators = {k: v for k, v in self.operators.items() if k != symbol}
        return replace(self, operators=operators)

    def with_function(self, name: str) -> "FormatterConfig":
        return replace(self, functions=self.functions | {name.lower()})

    def without_function(self, name: str) -> "FormatterConfig":
        return replace(self, functions=self.functions - {name.lower()})
