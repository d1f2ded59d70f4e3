"""
dicelang - tabletop dice expressions with explanations.

Tokenizes, parses, and evaluates expressions such as "4d6+2", "3d6r1",
"5d10>=7", and "1d6!", returning the value, every roll made, and an
optional step-by-step explanation.
"""

from __future__ import annotations

from ._version import get_version

# Re-export commonly used types for convenience
from .core import ir
from .core.engine import DiceExpressionSystem, evaluate_expression, explain_expression
from .core.errors import (
    DicelangError,
    EvaluationError,
    ParseError,
    TokenizationError,
)

__version__ = get_version()

__all__ = [
    "__version__",
    "ir",
    "DiceExpressionSystem",
    "evaluate_expression",
    "explain_expression",
    "DicelangError",
    "EvaluationError",
    "ParseError",
    "TokenizationError",
]
