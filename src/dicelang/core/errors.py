"""
Error types for dicelang tokenizing, parsing, and evaluation.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from dicelang.core.ir.expressions import Expr


class ErrorKind(StrEnum):
    """Closed set of failure kinds surfaced by the engine."""

    LEXICAL = "lexical"
    SYNTAX = "syntax"
    EVALUATION = "evaluation"
    TIMEOUT = "timeout"
    MAX_REROLLS = "max_rerolls"
    CONFIG = "config"


@dataclass
class ErrorContext:
    """
    Source location of an error inside a dice expression.

    Attributes:
        expression: The expression text being processed
        position: 0-indexed character offset of the offending input
    """

    expression: str
    position: int

    def format(self) -> str:
        """
        Format error context as a human-readable string.

        Returns:
            Location line followed by the expression and a marker, e.g.::

                at position 4
                  2d6 ^ 1
                      ^
        """
        location = f"at position {self.position}"
        if not self.expression:
            return location
        return f"{location}\n{self._format_snippet()}"

    def _format_snippet(self) -> str:
        """Format the expression with a marker under the error column."""
        marker_pos = min(self.position, len(self.expression))
        return f"  {self.expression}\n  {' ' * marker_pos}^"


class DicelangError(Exception):
    """Base exception for all dicelang errors."""

    kind: ErrorKind = ErrorKind.EVALUATION

    def __init__(self, message: str, context: ErrorContext | None = None):
        self.message = message
        self.context = context
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        """Format error message with context if available."""
        if self.context:
            return f"{self.message} {self.context.format()}"
        return self.message

    @property
    def position(self) -> int | None:
        return self.context.position if self.context else None


class TokenizationError(DicelangError):
    """
    Raised when an expression cannot be split into tokens.

    Examples:
    - Unrecognized character
    - Operator or conditional not allowed by configuration
    - Expression longer than the configured maximum
    """

    kind = ErrorKind.LEXICAL

    def __init__(self, message: str, position: int, expression: str):
        self.expression = expression
        super().__init__(message, ErrorContext(expression=expression, position=position))


class ParseError(DicelangError):
    """
    Raised when a token sequence is not a valid expression.

    Examples:
    - Empty expression
    - Unbalanced parentheses
    - Trailing operator or missing operand
    - Reroll and conditional modifiers stacked on one dice term
    """

    kind = ErrorKind.SYNTAX

    def __init__(
        self,
        message: str,
        position: int,
        token: str | None = None,
        expression: str | None = None,
    ):
        self.token = token
        self.expression = expression
        if token:
            message = f"{message} (token: {token!r})"
        super().__init__(message, ErrorContext(expression=expression or "", position=position))


class EvaluationError(DicelangError):
    """
    Raised when a parsed expression cannot be evaluated.

    Carries the offending node, an optional label describing where the
    failure happened, and the offending value when there is one.
    """

    kind = ErrorKind.EVALUATION

    def __init__(
        self,
        message: str,
        node: Expr | None = None,
        context_label: str | None = None,
        value: Any = None,
    ):
        self.node = node
        self.context_label = context_label
        self.value = value
        if context_label:
            message = f"{message} in {context_label}"
        if value is not None:
            message = f"{message} (value: {value})"
        position = getattr(node, "position", None)
        context = ErrorContext(expression="", position=position) if position is not None else None
        super().__init__(message, context)


class EvaluationTimeoutError(EvaluationError):
    """Raised when evaluation runs past its wall-clock budget."""

    kind = ErrorKind.TIMEOUT

    def __init__(self, time_limit: float, actual_time: float, node: Expr | None = None):
        self.time_limit = time_limit
        self.actual_time = actual_time
        super().__init__(
            f"Evaluation timed out after {actual_time:.1f}ms (limit: {time_limit:g}ms)",
            node=node,
        )


class MaxRerollsExceededError(EvaluationError):
    """Raised on reroll budget exhaustion when configured as fatal."""

    kind = ErrorKind.MAX_REROLLS

    def __init__(self, max_rerolls: int, node: Expr | None = None):
        self.max_rerolls = max_rerolls
        super().__init__(
            f"Maximum rerolls exceeded ({max_rerolls})",
            node=node,
            context_label="reroll evaluation",
        )


class ConfigurationError(DicelangError):
    """Raised when configuration values are out of range or malformed."""

    kind = ErrorKind.CONFIG


def attach_expression(error: DicelangError, expression: str) -> DicelangError:
    """
    Fill in the source expression on an error raised without one.

    The parser and evaluator work on tokens and nodes; the entry points
    know the original text and call this before re-raising so messages
    can show the offending column.
    """
    if error.context is not None and not error.context.expression:
        error.context.expression = expression
        error.args = (error._format_message(),)
    if isinstance(error, ParseError) and error.expression is None:
        error.expression = expression
    return error
