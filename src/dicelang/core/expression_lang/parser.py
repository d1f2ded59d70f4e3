"""
Recursive descent parser for dice expressions.

Grammar (precedence low to high):
    expr      → term (("+" | "-") term)*
    term      → unary (("*" | "/") unary)*
    unary     → "-" unary | primary
    primary   → NUMBER | dice_term | "(" expr ")"
    dice_term → DICE (CONDITIONAL | REROLL)?

A conditional or reroll modifier applies to each die of the dice term it
directly follows. The two kinds of modifier cannot be combined on one term.
"""

from __future__ import annotations

from dicelang.core.config import TokenizerConfig
from dicelang.core.errors import ParseError, attach_expression
from dicelang.core.expression_lang.tokenizer import (
    ConditionalToken,
    DiceToken,
    NumberToken,
    OperatorToken,
    RerollToken,
    Token,
    TokenizationResult,
    TokenKind,
    tokenize,
)
from dicelang.core.ir.expressions import (
    BinaryNode,
    BinaryOp,
    ConditionalDiceNode,
    DiceNode,
    Expr,
    GroupNode,
    NegateNode,
    NumberNode,
    RerollDiceNode,
)

_VALUE_START = (TokenKind.NUMBER, TokenKind.DICE, TokenKind.LPAREN)
_MODIFIERS = (TokenKind.CONDITIONAL, TokenKind.REROLL)


class _Parser:
    """Recursive descent parser over a token list ending in EOF."""

    def __init__(self, tokens: list[Token]) -> None:
        if not tokens or tokens[-1].kind != TokenKind.EOF:
            end = tokens[-1].end if tokens else 0
            tokens = [*tokens, Token(TokenKind.EOF, "", end)]
        self.tokens = tokens
        self.pos = 0

    @property
    def current(self) -> Token:
        return self.tokens[self.pos]

    def advance(self) -> Token:
        tok = self.tokens[self.pos]
        if self.pos < len(self.tokens) - 1:
            self.pos += 1
        return tok

    def at_op(self, *ops: BinaryOp) -> bool:
        tok = self.current
        return isinstance(tok, OperatorToken) and tok.op in ops

    # -- Grammar rules --

    def parse_root(self) -> Expr:
        if self.current.kind == TokenKind.EOF:
            raise ParseError("Empty expression", self.current.pos)
        expr = self.parse_expr()
        self._expect_end(TokenKind.EOF)
        return expr

    def parse_expr(self) -> Expr:
        """term (('+' | '-') term)*"""
        left = self.parse_term()
        while self.at_op(BinaryOp.ADD, BinaryOp.SUB):
            op_tok = self.advance()
            right = self.parse_term()
            left = BinaryNode(
                op=BinaryOp(op_tok.value), left=left, right=right, position=op_tok.pos
            )
        return left

    def parse_term(self) -> Expr:
        """unary (('*' | '/') unary)*"""
        left = self.parse_unary()
        while self.at_op(BinaryOp.MUL, BinaryOp.DIV):
            op_tok = self.advance()
            right = self.parse_unary()
            left = BinaryNode(
                op=BinaryOp(op_tok.value), left=left, right=right, position=op_tok.pos
            )
        return left

    def parse_unary(self) -> Expr:
        """'-' unary | primary"""
        if self.at_op(BinaryOp.SUB):
            tok = self.advance()
            return NegateNode(operand=self.parse_unary(), position=tok.pos)
        return self.parse_primary()

    def parse_primary(self) -> Expr:
        """NUMBER | dice_term | '(' expr ')'"""
        tok = self.current

        if tok.kind == TokenKind.LPAREN:
            self.advance()
            if self.current.kind == TokenKind.RPAREN:
                raise ParseError("Empty parentheses", self.current.pos, self.current.value)
            inner = self.parse_expr()
            self._expect_end(TokenKind.RPAREN, opened_at=tok)
            self.advance()
            node = GroupNode(expression=inner, position=tok.pos)
            self._reject_modifier("parenthesized expression")
            return node

        if isinstance(tok, NumberToken):
            self.advance()
            self._reject_modifier("number")
            return NumberNode(value=tok.number, position=tok.pos)

        if isinstance(tok, DiceToken):
            return self._parse_dice_term(tok)

        if tok.kind == TokenKind.EOF:
            raise ParseError("Unexpected end of expression", tok.pos)

        if tok.kind == TokenKind.RPAREN:
            raise ParseError("Unmatched closing parenthesis", tok.pos, tok.value)

        if tok.kind in _MODIFIERS:
            raise ParseError(
                f"{_modifier_name(tok)} modifier must follow a dice term", tok.pos, tok.value
            )

        raise ParseError(f"Unexpected operator {tok.value!r}", tok.pos, tok.value)

    def _parse_dice_term(self, dice_tok: DiceToken) -> Expr:
        """DICE (CONDITIONAL | REROLL)?"""
        self.advance()
        dice = DiceNode(count=dice_tok.count, sides=dice_tok.sides, position=dice_tok.pos)

        modifier = self.current
        node: Expr
        if isinstance(modifier, ConditionalToken):
            self.advance()
            node = ConditionalDiceNode(
                dice=dice, op=modifier.op, threshold=modifier.threshold, position=dice_tok.pos
            )
        elif isinstance(modifier, RerollToken):
            self.advance()
            node = RerollDiceNode(
                dice=dice,
                mode=modifier.mode,
                op=modifier.op,
                threshold=modifier.threshold,
                position=dice_tok.pos,
            )
        else:
            return dice

        second = self.current
        if second.kind in _MODIFIERS:
            raise ParseError(
                f"Cannot combine {_modifier_name(modifier).lower()} and "
                f"{_modifier_name(second).lower()} modifiers on one dice term",
                second.pos,
                second.value,
            )
        return node

    # -- Helpers --

    def _reject_modifier(self, what: str) -> None:
        tok = self.current
        if tok.kind in _MODIFIERS:
            raise ParseError(
                f"{_modifier_name(tok)} modifier cannot follow a {what}; "
                "it must follow a dice term",
                tok.pos,
                tok.value,
            )

    def _expect_end(self, kind: TokenKind, opened_at: Token | None = None) -> None:
        """Require ``kind`` next, explaining the common ways it goes missing."""
        tok = self.current
        if tok.kind == kind:
            return
        if tok.kind in _VALUE_START:
            raise ParseError(f"Missing operator before {tok.value!r}", tok.pos, tok.value)
        if tok.kind in _MODIFIERS:
            raise ParseError(
                f"Unexpected {_modifier_name(tok).lower()} modifier", tok.pos, tok.value
            )
        if kind == TokenKind.RPAREN:
            raise ParseError(
                f"Expected ')' to close '(' at position {opened_at.pos if opened_at else 0}",
                tok.pos,
                tok.value or None,
            )
        if tok.kind == TokenKind.RPAREN:
            raise ParseError("Unmatched closing parenthesis", tok.pos, tok.value)
        raise ParseError(f"Unexpected token after expression: {tok.value!r}", tok.pos, tok.value)


def _modifier_name(tok: Token) -> str:
    return "Reroll" if tok.kind == TokenKind.REROLL else "Conditional"


def parse(tokens: TokenizationResult | list[Token]) -> Expr:
    """Parse a token sequence into an expression tree.

    Args:
        tokens: Output of ``tokenize`` or a plain token list.

    Returns:
        Root node of the expression tree.

    Raises:
        ParseError: At the offending token, or at the end-of-input
            position when a trailing token is missing.
    """
    if isinstance(tokens, TokenizationResult):
        try:
            return _Parser(tokens.tokens).parse_root()
        except ParseError as e:
            raise attach_expression(e, tokens.original_expression) from None
    return _Parser(tokens).parse_root()


def parse_expr(source: str, config: TokenizerConfig | None = None) -> Expr:
    """Tokenize and parse an expression string.

    Raises:
        TokenizationError: If tokenization fails.
        ParseError: If the token sequence is not a valid expression.
    """
    return parse(tokenize(source, config))
