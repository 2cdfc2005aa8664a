"""Error types raised by the algebra engine.

Every error derives from :class:`AlgebraError`, itself a ``ValueError`` so
callers that already guard solver calls with ``except ValueError`` keep
working.  Each class carries a stable ``code`` used in JSON payloads.
"""

from typing import Any


class AlgebraError(ValueError):
    """Base error with a JSON friendly payload."""

    code = "algebra_error"

    def __init__(self, message: str, **details: Any):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        return {
            "code": self.code,
            "message": self.message,
            "details": dict(self.details),
        }


class ParseError(AlgebraError):
    """Malformed token stream, mismatched brackets, unknown operator."""

    code = "parse_error"

    def __init__(self, message: str, position: int | None = None, **details: Any):
        if position is not None:
            details["position"] = position
        super().__init__(message, **details)
        self.position = position


class FormatError(ParseError):
    """Malformed LaTeX input."""

    code = "format_error"


class UnboundVariableError(AlgebraError):
    code = "unbound_variable"

    def __init__(self, name: str):
        super().__init__(f"No value bound to variable '{name}'.", name=name)
        self.name = name


class UnsupportedOperationError(AlgebraError):
    code = "unsupported_operation"


class DimensionMismatchError(AlgebraError):
    code = "dimension_mismatch"


class SingularError(AlgebraError):
    """Matrix not invertible or a vanishing leading coefficient."""

    code = "singular"


class NoSolutionError(AlgebraError):
    code = "no_solution"


class InconsistentSystemError(NoSolutionError):
    code = "inconsistent_system"


class InvalidFormulaEditError(AlgebraError):
    code = "invalid_formula_edit"


class InvalidOperandError(AlgebraError):
    """Matrix operand missing, of the wrong kind, or out of range."""

    code = "invalid_operand"


__all__ = [
    "AlgebraError",
    "ParseError",
    "FormatError",
    "UnboundVariableError",
    "UnsupportedOperationError",
    "DimensionMismatchError",
    "SingularError",
    "NoSolutionError",
    "InconsistentSystemError",
    "InvalidFormulaEditError",
    "InvalidOperandError",
]
