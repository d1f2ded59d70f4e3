"""
Tokenizer for dice expressions.

Converts an expression string into a sequence of typed tokens. At each
position the longest form is tried first: reroll modifiers, conditional
operators (two-character before one-character), dice notation, integers,
arithmetic operators, and parentheses.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import StrEnum, auto

from dicelang.core.config import TokenizerConfig
from dicelang.core.errors import TokenizationError
from dicelang.core.ir.expressions import BinaryOp, ComparisonOp, RerollMode


class TokenKind(StrEnum):
    """Token types for dice expressions."""

    NUMBER = auto()
    DICE = auto()
    OPERATOR = auto()
    LPAREN = auto()
    RPAREN = auto()
    CONDITIONAL = auto()
    REROLL = auto()

    # End of input
    EOF = auto()


class Token:
    """A single token from the expression tokenizer."""

    __slots__ = ("kind", "value", "pos", "length")

    def __init__(self, kind: TokenKind, value: str, pos: int) -> None:
        self.kind = kind
        self.value = value
        self.pos = pos
        self.length = len(value)

    @property
    def end(self) -> int:
        return self.pos + self.length

    def __repr__(self) -> str:
        return f"Token({self.kind}, {self.value!r}, pos={self.pos})"


class NumberToken(Token):
    __slots__ = ("number",)

    def __init__(self, value: str, pos: int) -> None:
        super().__init__(TokenKind.NUMBER, value, pos)
        self.number = int(value)


class DiceToken(Token):
    __slots__ = ("count", "sides")

    def __init__(self, value: str, pos: int, count: int, sides: int) -> None:
        super().__init__(TokenKind.DICE, value, pos)
        self.count = count
        self.sides = sides


class OperatorToken(Token):
    __slots__ = ("op",)

    def __init__(self, value: str, pos: int) -> None:
        super().__init__(TokenKind.OPERATOR, value, pos)
        self.op = BinaryOp(value)


class ConditionalToken(Token):
    __slots__ = ("op", "threshold")

    def __init__(self, value: str, pos: int, op: ComparisonOp, threshold: int) -> None:
        super().__init__(TokenKind.CONDITIONAL, value, pos)
        self.op = op
        self.threshold = threshold


class RerollToken(Token):
    """Reroll modifier; ``threshold`` is None for exploding-on-max."""

    __slots__ = ("mode", "op", "threshold")

    def __init__(
        self,
        value: str,
        pos: int,
        mode: RerollMode,
        op: ComparisonOp,
        threshold: int | None,
    ) -> None:
        super().__init__(TokenKind.REROLL, value, pos)
        self.mode = mode
        self.op = op
        self.threshold = threshold


@dataclass
class TokenizationResult:
    """Tokens plus the text they came from."""

    tokens: list[Token]
    original_expression: str
    cleaned_expression: str = field(default="")

    def values(self) -> list[str]:
        """Raw text of every token except EOF."""
        return [t.value for t in self.tokens if t.kind != TokenKind.EOF]


_REROLL_CODES: dict[str, RerollMode] = {
    "ro": RerollMode.ONCE,
    "rr": RerollMode.RECURSIVE,
    "r": RerollMode.RECURSIVE,
    "e": RerollMode.EXPLODING,
    "!": RerollMode.EXPLODING,
}

# Codes that must carry an explicit threshold
_THRESHOLD_REQUIRED = {"ro", "rr", "r"}

_COMPARISON = r"(<=|>=|==|<|>|=)"
_REROLL_PATTERN = rf"(ro|rr|r|e|!){_COMPARISON}?(\d+)?"
_DICE_PATTERN = r"(\d*)d(\d+)"

_REROLL_RE = re.compile(_REROLL_PATTERN)
_REROLL_RE_I = re.compile(_REROLL_PATTERN, re.IGNORECASE)
_DICE_RE = re.compile(_DICE_PATTERN)
_DICE_RE_I = re.compile(_DICE_PATTERN, re.IGNORECASE)
_BARE_DIE_RE = re.compile(r"\d*d", re.IGNORECASE)
_COMPARISON_RE = re.compile(_COMPARISON)
_THRESHOLD_RE = re.compile(r"\s*(\d+)")
_INT_RE = re.compile(r"\d+")

_SINGLE_MAP: dict[str, TokenKind] = {
    "+": TokenKind.OPERATOR,
    "-": TokenKind.OPERATOR,
    "*": TokenKind.OPERATOR,
    "/": TokenKind.OPERATOR,
    "(": TokenKind.LPAREN,
    ")": TokenKind.RPAREN,
}


def tokenize(source: str, config: TokenizerConfig | None = None) -> TokenizationResult:
    """Tokenize a dice expression.

    Args:
        source: Expression text (e.g., "4d6 + 2", "5d10>=7", "1d6!").
        config: Lexical limits and allowed operators. Defaults apply when omitted.

    Returns:
        TokenizationResult whose token list ends with an EOF token.

    Raises:
        TokenizationError: At the first offending character. Nothing is
            returned for a partially tokenized expression.
    """
    cfg = config or TokenizerConfig()
    n = len(source)

    if n > cfg.max_expression_length:
        raise TokenizationError(
            f"Expression too long (maximum {cfg.max_expression_length} characters)",
            cfg.max_expression_length,
            source,
        )

    reroll_re = _REROLL_RE if cfg.case_sensitive else _REROLL_RE_I
    dice_re = _DICE_RE if cfg.case_sensitive else _DICE_RE_I

    tokens: list[Token] = []
    i = 0

    while i < n:
        c = source[i]

        # Skip whitespace
        if c.isspace():
            i += 1
            continue

        # Reroll modifiers: r1, ro<2, rr1, e>=9, !
        m = reroll_re.match(source, i)
        if m:
            tokens.append(_read_reroll(source, m, cfg))
            i = m.end()
            continue

        # Conditionals: >=7, <3, ==1
        m = _COMPARISON_RE.match(source, i)
        if m:
            tok = _read_conditional(source, m, cfg)
            tokens.append(tok)
            i = tok.end
            continue

        # Dice notation: 3d6, d20
        m = dice_re.match(source, i)
        if m:
            count = int(m.group(1)) if m.group(1) else 1
            tokens.append(DiceToken(m.group(0), i, count=count, sides=int(m.group(2))))
            i = m.end()
            continue

        bare = _BARE_DIE_RE.match(source, i)
        if bare and (not cfg.case_sensitive or source[bare.end() - 1] == "d"):
            raise TokenizationError("Dice notation requires a number of sides", bare.end(), source)

        # Integers
        m = _INT_RE.match(source, i)
        if m:
            tokens.append(NumberToken(m.group(0), i))
            i = m.end()
            continue

        # Operators and parentheses
        kind = _SINGLE_MAP.get(c)
        if kind is not None:
            if kind == TokenKind.OPERATOR:
                if c not in cfg.allowed_operators:
                    raise TokenizationError(f"Operator not allowed: {c!r}", i, source)
                tokens.append(OperatorToken(c, i))
            else:
                tokens.append(Token(kind, c, i))
            i += 1
            continue

        raise TokenizationError(f"Unexpected character: {c!r}", i, source)

    tokens.append(Token(TokenKind.EOF, "", n))
    return TokenizationResult(
        tokens=tokens,
        original_expression=source,
        cleaned_expression="".join(source.split()),
    )


def _read_reroll(source: str, m: re.Match[str], cfg: TokenizerConfig) -> RerollToken:
    """Build a reroll token from a match of the reroll pattern."""
    code = m.group(1).lower()
    op_text = m.group(2)
    threshold_text = m.group(3)

    if op_text is not None and op_text not in cfg.allowed_conditionals:
        raise TokenizationError(f"Conditional not allowed: {op_text!r}", m.start(2), source)
    if threshold_text is None and (code in _THRESHOLD_REQUIRED or op_text is not None):
        raise TokenizationError(
            f"Reroll modifier {m.group(0)!r} requires a threshold", m.end(), source
        )

    op = ComparisonOp.from_text(op_text) if op_text else ComparisonOp.EQ
    threshold = int(threshold_text) if threshold_text is not None else None
    return RerollToken(m.group(0), m.start(), _REROLL_CODES[code], op, threshold)


def _read_conditional(source: str, m: re.Match[str], cfg: TokenizerConfig) -> ConditionalToken:
    """Build a conditional token; the threshold may follow after whitespace."""
    op_text = m.group(1)
    if op_text not in cfg.allowed_conditionals:
        raise TokenizationError(f"Conditional not allowed: {op_text!r}", m.start(), source)

    t = _THRESHOLD_RE.match(source, m.end())
    if t is None:
        raise TokenizationError(
            f"Conditional {op_text!r} requires an integer threshold",
            _skip_space(source, m.end()),
            source,
        )
    return ConditionalToken(
        source[m.start() : t.end()],
        m.start(),
        op=ComparisonOp.from_text(op_text),
        threshold=int(t.group(1)),
    )


def _skip_space(source: str, i: int) -> int:
    while i < len(source) and source[i].isspace():
        i += 1
    return i
