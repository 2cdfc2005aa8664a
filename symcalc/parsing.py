"""Infix notation parser.

Text is tokenized with a regex built from the parser's own config, then
converted to postfix with the shunting-yard algorithm and folded back into
an expression tree on a stack.  Examples of accepted input::

    2*x + 3*y + x*(x+y) - 3*x
    2x² - 5x + 6 = 0
    2x + 3y - z = 5; x - y + 2z = 5; 3x + y + z = 8
    max(1, x, sqrt(y))
"""

import logging
import re
from dataclasses import dataclass
from enum import Enum

from symcalc.config import UNARY_PRECEDENCE, VARIADIC, ParserConfig
from symcalc.errors import ParseError
from symcalc.expressions import (
    Binary,
    BinaryOp,
    Equation,
    EquationSystem,
    Function,
    Number,
    Unary,
    UnaryOp,
    Variable,
)

logger = logging.getLogger(__name__)

_SUPERSCRIPT_DIGITS = str.maketrans("⁰¹²³⁴⁵⁶⁷⁸⁹", "0123456789")


class TokenType(Enum):
    NUMBER = "number"
    VARIABLE = "variable"
    CONSTANT = "constant"
    FUNCTION = "function"
    OPERATOR = "operator"
    UNARY = "unary"
    LEFT_PAREN = "("
    RIGHT_PAREN = ")"
    COMMA = ","
    SEPARATOR = ";"


@dataclass(frozen=True)
class Token:
    type: TokenType
    text: str
    position: int
    arity: int = 0


_OPERANDS = (TokenType.NUMBER, TokenType.VARIABLE, TokenType.CONSTANT)
_ENDS_OPERAND = _OPERANDS + (TokenType.RIGHT_PAREN,)
_STARTS_OPERAND = (TokenType.VARIABLE, TokenType.CONSTANT, TokenType.FUNCTION,
                   TokenType.LEFT_PAREN, TokenType.NUMBER)


class InfixParser:
    """Parser bound to one :class:`ParserConfig`."""

    def __init__(self, config: ParserConfig | None = None):
        self.config = config or ParserConfig()
        self._pattern = self._build_pattern()

    def _build_pattern(self):
        operators = sorted(self.config.operators, key=len, reverse=True)
        parts = [
            r"(?P<number>(?:\d+\.?\d*|\.\d+)(?:[eE][-+]?\d+)?)",
            r"(?P<identifier>[A-Za-z_][A-Za-z0-9_]*)",
            r"(?P<superscript>⁻?[⁰¹²³⁴⁵⁶⁷⁸⁹]+)",
        ]
        if operators:
            parts.append("(?P<operator>" + "|".join(re.escape(op) for op in operators) + ")")
        parts += [
            r"(?P<lparen>\()",
            r"(?P<rparen>\))",
            r"(?P<comma>,)",
            r"(?P<separator>;)",
            r"(?P<space>\s+)",
        ]
        return re.compile("|".join(parts))

    # ── Tokenizer ───────────────────────────────────────────────────────

    def tokenize(self, text: str) -> list:
        tokens = []
        pos = 0
        while pos < len(text):
            match = self._pattern.match(text, pos)
            if match is None:
                raise ParseError(f"Unexpected character '{text[pos]}'", position=pos)
            kind, value = match.lastgroup, match.group()
            if kind == "number":
                tokens.append(Token(TokenType.NUMBER, value, pos))
            elif kind == "identifier":
                tokens.append(Token(TokenType.VARIABLE, value, pos))
            elif kind == "superscript":
                tokens.extend(self._superscript_tokens(value, pos))
            elif kind == "operator":
                tokens.append(Token(TokenType.OPERATOR, value, pos))
            elif kind == "lparen":
                tokens.append(Token(TokenType.LEFT_PAREN, value, pos))
            elif kind == "rparen":
                tokens.append(Token(TokenType.RIGHT_PAREN, value, pos))
            elif kind == "comma":
                tokens.append(Token(TokenType.COMMA, value, pos))
            elif kind == "separator":
                tokens.append(Token(TokenType.SEPARATOR, value, pos))
            pos = match.end()
        return self._classify(tokens)

    def _superscript_tokens(self, value: str, pos: int) -> list:
        if "^" not in self.config.operators:
            raise ParseError("Superscript exponents need the '^' operator", position=pos)
        tokens = [Token(TokenType.OPERATOR, "^", pos)]
        if value.startswith("⁻"):
            tokens.append(Token(TokenType.OPERATOR, "-", pos))
            value = value[1:]
        tokens.append(Token(TokenType.NUMBER, value.translate(_SUPERSCRIPT_DIGITS), pos))
        return tokens

    def _classify(self, tokens: list) -> list:
        """Resolve identifiers, mark unary minus, insert implicit products."""
        result = []
        for i, tok in enumerate(tokens):
            if tok.type is TokenType.VARIABLE:
                following = tokens[i + 1] if i + 1 < len(tokens) else None
                is_call = following is not None and following.type is TokenType.LEFT_PAREN
                if tok.text.lower() in self.config.functions and is_call:
                    tok = Token(TokenType.FUNCTION, tok.text.lower(), tok.position)
                elif tok.text in self.config.constants:
                    tok = Token(TokenType.CONSTANT, tok.text, tok.position)
                elif tok.text.lower() in self.config.functions:
                    raise ParseError(f"Function '{tok.text}' needs parentheses",
                                     position=tok.position)

            previous = result[-1] if result else None
            if tok.type is TokenType.OPERATOR and tok.text in ("-", "+"):
                if previous is None or previous.type in (
                        TokenType.OPERATOR, TokenType.UNARY, TokenType.LEFT_PAREN,
                        TokenType.COMMA, TokenType.SEPARATOR):
                    if tok.text == "+":
                        continue
                    tok = Token(TokenType.UNARY, "-", tok.position)

            if (self.config.implicit_multiplication and previous is not None
                    and previous.type in _ENDS_OPERAND and tok.type in _STARTS_OPERAND
                    and not (previous.type is TokenType.NUMBER and tok.type is TokenType.NUMBER)):
                if "*" not in self.config.operators:
                    raise ParseError("Implicit multiplication needs the '*' operator",
                                     position=tok.position)
                result.append(Token(TokenType.OPERATOR, "*", tok.position))
            result.append(tok)
        return result

    # ── Top level ───────────────────────────────────────────────────────

    def parse(self, text: str):
        if text is None or not text.strip():
            raise ParseError("Expression is empty", position=0)
        tokens = self.tokenize(text)
        logger.debug("tokenized %r into %d tokens", text, len(tokens))
        parts = _split_top_level(tokens)
        if len(parts) > 1:
            if not all(any(t.text == "=" and t.type is TokenType.OPERATOR for t in part)
                       for part in parts):
                raise ParseError("Separated expressions must all be equations",
                                 position=parts[1][0].position)
            equations = [self._parse_tokens(part) for part in parts]
            for eq in equations:
                if not isinstance(eq, Equation):
                    raise ParseError("Each part of a system must be a single equation")
            return EquationSystem(tuple(equations))
        return self._parse_tokens(parts[0])

    def _parse_tokens(self, tokens: list):
        if not tokens:
            raise ParseError("Expression is empty", position=0)
        return self._build(self._to_postfix(tokens))

    # ── Shunting-yard ───────────────────────────────────────────────────

    def _precedence(self, tok: Token) -> int:
        if tok.type is TokenType.UNARY:
            return UNARY_PRECEDENCE
        return self.config.operators[tok.text][0]

    def _to_postfix(self, tokens: list) -> list:
        output = []
        stack = []
        # per open parenthesis: [function token or None, comma count]
        frames = []
        previous = None
        for tok in tokens:
            if tok.type in _OPERANDS:
                output.append(tok)
            elif tok.type in (TokenType.FUNCTION, TokenType.UNARY):
                stack.append(tok)
            elif tok.type is TokenType.OPERATOR:
                precedence, right_assoc = self.config.operators[tok.text]
                while stack and stack[-1].type in (TokenType.OPERATOR, TokenType.UNARY):
                    top = self._precedence(stack[-1])
                    if top > precedence or (top == precedence and not right_assoc):
                        output.append(stack.pop())
                    else:
                        break
                stack.append(tok)
            elif tok.type is TokenType.LEFT_PAREN:
                function = stack[-1] if stack and stack[-1].type is TokenType.FUNCTION else None
                frames.append([function, 0])
                stack.append(tok)
            elif tok.type is TokenType.COMMA:
                if not frames or frames[-1][0] is None:
                    raise ParseError("Unexpected ','", position=tok.position)
                if previous is None or previous.type in (TokenType.LEFT_PAREN, TokenType.COMMA):
                    raise ParseError("Missing function argument", position=tok.position)
                self._pop_to_paren(stack, output, tok)
                frames[-1][1] += 1
            elif tok.type is TokenType.RIGHT_PAREN:
                self._pop_to_paren(stack, output, tok)
                stack.pop()
                function, commas = frames.pop()
                empty = previous is not None and previous.type is TokenType.LEFT_PAREN
                if previous is not None and previous.type is TokenType.COMMA:
                    raise ParseError("Missing function argument", position=tok.position)
                if function is None:
                    if empty:
                        raise ParseError("Empty parentheses", position=tok.position)
                else:
                    stack.pop()
                    arity = 0 if empty else commas + 1
                    self._check_arity(function, arity)
                    output.append(Token(TokenType.FUNCTION, function.text,
                                        function.position, arity))
            previous = tok

        while stack:
            tok = stack.pop()
            if tok.type is TokenType.LEFT_PAREN:
                raise ParseError("Unmatched '('", position=tok.position)
            output.append(tok)
        return output

    @staticmethod
    def _pop_to_paren(stack: list, output: list, tok: Token) -> None:
        while stack and stack[-1].type is not TokenType.LEFT_PAREN:
            output.append(stack.pop())
        if not stack:
            raise ParseError(f"Unmatched '{tok.text}'", position=tok.position)

    def _check_arity(self, function: Token, arity: int) -> None:
        expected = self.config.functions[function.text]
        if expected == VARIADIC:
            if arity == 0:
                raise ParseError(f"Function '{function.text}' needs at least one argument",
                                 position=function.position)
        elif arity != expected:
            raise ParseError(
                f"Function '{function.text}' expects {expected} argument(s), got {arity}",
                position=function.position)

    # ── Tree builder ────────────────────────────────────────────────────

    def _build(self, postfix: list):
        stack = []
        for tok in postfix:
            if tok.type is TokenType.NUMBER:
                stack.append(Number(float(tok.text)))
            elif tok.type is TokenType.CONSTANT:
                stack.append(Number(self.config.constants[tok.text]))
            elif tok.type is TokenType.VARIABLE:
                stack.append(Variable(tok.text))
            elif tok.type is TokenType.UNARY:
                if not stack:
                    raise ParseError("Missing operand for '-'", position=tok.position)
                stack.append(Unary(stack.pop(), UnaryOp.NEGATE))
            elif tok.type is TokenType.FUNCTION:
                if len(stack) < tok.arity:
                    raise ParseError(f"Missing arguments for '{tok.text}'", position=tok.position)
                args = stack[len(stack) - tok.arity:] if tok.arity else []
                del stack[len(stack) - tok.arity:]
                stack.append(Function(tok.text, tuple(args)))
            else:
                if len(stack) < 2:
                    raise ParseError(f"Missing operand for '{tok.text}'", position=tok.position)
                right = stack.pop()
                left = stack.pop()
                stack.append(self._binary(tok, left, right))
        if len(stack) != 1:
            raise ParseError("Malformed expression: missing operator between operands")
        return stack[0]

    @staticmethod
    def _binary(tok: Token, left, right):
        if tok.text == "=":
            if isinstance(left, Equation) or isinstance(right, Equation):
                raise ParseError("Only one '=' is allowed per equation", position=tok.position)
            return Equation(left, right)
        try:
            op = BinaryOp.from_symbol(tok.text)
        except ValueError:
            raise ParseError(f"Operator '{tok.text}' has no meaning here",
                             position=tok.position) from None
        return Binary(left, right, op)


def _split_top_level(tokens: list) -> list:
    """Split on ';' and on ',' outside parentheses."""
    parts = [[]]
    depth = 0
    for tok in tokens:
        if tok.type is TokenType.LEFT_PAREN:
            depth += 1
        elif tok.type is TokenType.RIGHT_PAREN:
            depth -= 1
        if tok.type is TokenType.SEPARATOR or (tok.type is TokenType.COMMA and depth == 0):
            parts.append([])
            continue
        parts[-1].append(tok)
    if len(parts) > 1 and any(not part for part in parts):
        empty = next(i for i, part in enumerate(parts) if not part)
        if empty == len(parts) - 1:
            parts.pop()
        else:
            raise ParseError("Empty expression between separators")
    return parts


def parse(text: str, config: ParserConfig | None = None):
    """Parse infix *text* into an expression tree."""
    return InfixParser(config).parse(text)


__all__ = ["InfixParser", "Token", "TokenType", "parse"]
