"""Recursive descent parser for the LaTeX subset produced by ``to_latex``.

Grammar, loosely::

    equation   := comparison ('=' comparison)?
    comparison := expression (('<' | '>' | '\\le' | '\\ge' | '\\ne') expression)*
    expression := term (('+' | '-') term)*
    term       := factor (('*' | '/' | '\\%' | implicit) factor)*
    factor     := ('-' | '+') factor | primary ('^' group)?
    primary    := number | letter subscript? | '(' comparison ')' | group | command
"""

import logging
import math
import re

from symcalc.config import ParserConfig
from symcalc.errors import FormatError
from symcalc.expressions import (
    Binary,
    BinaryOp,
    Equation,
    EquationSystem,
    Function,
    Number,
    Unary,
    Variable,
)

logger = logging.getLogger(__name__)

_NUMBER = re.compile(r"(?:\d+\.?\d*|\.\d+)(?:[eE][-+]?\d+)?")
_COMMAND = re.compile(r"\\([A-Za-z]+)")
_SUBSCRIPT = re.compile(r"_(?:\{([A-Za-z0-9]+)\}|([A-Za-z0-9]))")

_SYSTEM_ENVIRONMENTS = (
    ("\\left\\{\\begin{array}{l}", "\\end{array}\\right."),
    ("\\begin{cases}", "\\end{cases}"),
)

_COMPARISON_COMMANDS = {
    "ge": BinaryOp.GREATER_EQUAL,
    "geq": BinaryOp.GREATER_EQUAL,
    "le": BinaryOp.LESS_EQUAL,
    "leq": BinaryOp.LESS_EQUAL,
    "ne": BinaryOp.NOT_EQUAL,
    "neq": BinaryOp.NOT_EQUAL,
}

_COMPARISON_SYMBOLS = (
    (">=", BinaryOp.GREATER_EQUAL),
    ("<=", BinaryOp.LESS_EQUAL),
    ("!=", BinaryOp.NOT_EQUAL),
    (">", BinaryOp.GREATER_THAN),
    ("<", BinaryOp.LESS_THAN),
)

_MODULO_COMMANDS = ("bmod", "mod")


_SPACES = re.compile(r"(\\[A-Za-z]+)?\s+")


def _strip_spaces(latex: str) -> str:
    """Drop whitespace, keeping one space where a command meets a letter."""

    def replace(match):
        command = match.group(1)
        if command is None:
            return ""
        following = latex[match.end():match.end() + 1]
        return command + (" " if following.isalpha() else "")

    return _SPACES.sub(replace, latex)


def _normalize(latex: str) -> str:
    text = latex
    for old, new in (("\\cdot", "*"), ("\\times", "*"), ("\\div", "/"),
                     ("\\left(", "("), ("\\right)", ")"),
                     ("\\left[", "("), ("\\right]", ")")):
        text = text.replace(old, new)
    return _strip_spaces(text)


class LatexParser:
    def __init__(self, config: ParserConfig | None = None):
        self.config = config or ParserConfig()
        self._text = ""
        self._pos = 0

    def parse(self, latex: str):
        if latex is None or not latex.strip():
            raise FormatError("LaTeX input is empty", position=0)
        text = _strip_spaces(latex)
        for opening, closing in _SYSTEM_ENVIRONMENTS:
            if text.startswith(opening) and text.endswith(closing):
                body = text[len(opening):len(text) - len(closing)]
                return self._parse_system(body)
        return self._parse_single(_normalize(text))

    def _parse_system(self, body: str):
        rows = [row for row in body.split("\\\\") if row]
        if not rows:
            raise FormatError("Equation system has no rows")
        equations = []
        for row in rows:
            eq = self._parse_single(_normalize(row))
            if not isinstance(eq, Equation):
                raise FormatError(f"System row '{row}' is not an equation")
            equations.append(eq)
        return EquationSystem(tuple(equations))

    def _parse_single(self, text: str):
        self._text = text
        self._pos = 0
        logger.debug("parsing latex %r", text)
        expr = self._parse_equation()
        if self._pos < len(self._text):
            raise FormatError(f"Unexpected '{self._text[self._pos:]}' in LaTeX",
                              position=self._pos)
        return expr

    # ── Cursor helpers ──────────────────────────────────────────────────

    def _peek(self, offset: int = 0) -> str:
        index = self._pos + offset
        return self._text[index] if index < len(self._text) else ""

    def _startswith(self, literal: str) -> bool:
        return self._text.startswith(literal, self._pos)

    def _expect(self, char: str, what: str) -> None:
        if self._peek() != char:
            raise FormatError(f"Mismatched {what} in LaTeX", position=self._pos)
        self._pos += 1

    def _peek_command(self) -> str | None:
        match = _COMMAND.match(self._text, self._pos)
        return match.group(1) if match else None

    def _skip_command(self, command: str) -> None:
        self._pos += len(command) + 1
        if self._peek() == " ":
            self._pos += 1

    # ── Grammar levels ──────────────────────────────────────────────────

    def _parse_equation(self):
        left = self._parse_comparison()
        if self._peek() == "=":
            self._pos += 1
            right = self._parse_comparison()
            return Equation(left, right)
        return left

    def _parse_comparison(self):
        expr = self._parse_expression()
        while True:
            op = self._comparison_operator()
            if op is None:
                return expr
            expr = Binary(expr, self._parse_expression(), op)

    def _comparison_operator(self):
        command = self._peek_command()
        if command in _COMPARISON_COMMANDS:
            self._skip_command(command)
            return _COMPARISON_COMMANDS[command]
        for symbol, op in _COMPARISON_SYMBOLS:
            if self._startswith(symbol):
                self._pos += len(symbol)
                return op
        return None

    def _parse_expression(self):
        expr = self._parse_term()
        while self._peek() in ("+", "-"):
            op = BinaryOp.ADD if self._peek() == "+" else BinaryOp.SUBTRACT
            self._pos += 1
            expr = Binary(expr, self._parse_term(), op)
        return expr

    def _parse_term(self):
        expr = self._parse_factor()
        while True:
            char = self._peek()
            command = self._peek_command()
            if char == "*":
                self._pos += 1
                expr = Binary(expr, self._parse_factor(), BinaryOp.MULTIPLY)
            elif char == "/":
                self._pos += 1
                expr = Binary(expr, self._parse_factor(), BinaryOp.DIVIDE)
            elif self._startswith("\\%"):
                self._pos += 2
                expr = Binary(expr, self._parse_factor(), BinaryOp.MODULO)
            elif command in _MODULO_COMMANDS:
                self._skip_command(command)
                expr = Binary(expr, self._parse_factor(), BinaryOp.MODULO)
            elif self._starts_factor():
                expr = Binary(expr, self._parse_factor(), BinaryOp.MULTIPLY)
            else:
                return expr

    def _starts_factor(self) -> bool:
        char = self._peek()
        if not char:
            return False
        if char.isalnum() or char in "({.":
            return True
        command = self._peek_command()
        return command is not None and self._is_value_command(command)

    def _is_value_command(self, command: str) -> bool:
        return (command in ("frac", "sqrt", "mathrm", "operatorname", "pi")
                or command.lower() in self.config.functions)

    def _parse_factor(self):
        if self._peek() == "-":
            self._pos += 1
            return Unary(self._parse_factor())
        if self._peek() == "+":
            self._pos += 1
            return self._parse_factor()
        base = self._parse_primary()
        if self._peek() == "^":
            self._pos += 1
            exponent = self._parse_exponent()
            return Binary(base, exponent, BinaryOp.POWER)
        return base

    def _parse_exponent(self):
        if self._peek() == "{":
            return self._parse_group()
        if self._peek() == "-":
            self._pos += 1
            return Unary(self._parse_primary())
        return self._parse_primary()

    def _parse_group(self):
        if self._peek() != "{":
            raise FormatError("Expected '{' in LaTeX", position=self._pos)
        self._pos += 1
        expr = self._parse_comparison()
        self._expect("}", "braces")
        return expr

    def _parse_primary(self):
        char = self._peek()
        if not char:
            raise FormatError("Unexpected end of LaTeX input", position=self._pos)
        if char == "(":
            self._pos += 1
            expr = self._parse_comparison()
            self._expect(")", "parentheses")
            return expr
        if char == "{":
            return self._parse_group()
        if char == "\\":
            return self._parse_command()
        match = _NUMBER.match(self._text, self._pos)
        if match:
            self._pos = match.end()
            return Number(float(match.group()))
        if char.isalpha():
            self._pos += 1
            name = char
            sub = _SUBSCRIPT.match(self._text, self._pos)
            if sub:
                self._pos = sub.end()
                name = f"{char}_{sub.group(1) or sub.group(2)}"
            return Variable(name)
        raise FormatError(f"Unexpected '{char}' in LaTeX", position=self._pos)

    def _parse_command(self):
        start = self._pos
        command = self._peek_command()
        if command is None:
            raise FormatError("Invalid LaTeX command", position=start)
        self._skip_command(command)

        if command == "frac":
            numerator = self._parse_group()
            denominator = self._parse_group()
            return Binary(numerator, denominator, BinaryOp.DIVIDE)
        if command == "sqrt":
            return Function("sqrt", (self._parse_group(),))
        if command == "pi":
            return Number(math.pi)
        if command in ("mathrm", "operatorname"):
            self._expect("{", "braces")
            end = self._text.find("}", self._pos)
            if end < 0:
                raise FormatError("Mismatched braces in LaTeX", position=self._pos)
            name = self._text[self._pos:end]
            self._pos = end + 1
            return self._parse_call(name, start)
        if command.lower() in self.config.functions:
            return self._parse_call(command, start)
        raise FormatError(f"Unknown LaTeX command '\\{command}'", position=start)

    def _parse_call(self, name: str, start: int):
        name = name.lower()
        if name not in self.config.functions:
            raise FormatError(f"Unknown function '{name}'", position=start)
        if self._peek() == "{":
            return Function(name, (self._parse_group(),))
        if self._peek() != "(":
            return Function(name, (self._parse_factor(),))
        self._pos += 1
        args = [self._parse_comparison()]
        while self._peek() == ",":
            self._pos += 1
            args.append(self._parse_comparison())
        self._expect(")", "parentheses")
        return Function(name, tuple(args))


def parse_latex(latex: str, config: ParserConfig | None = None):
    """Parse LaTeX markup into an expression tree."""
    return LatexParser(config).parse(latex)


__all__ = ["LatexParser", "parse_latex"]
