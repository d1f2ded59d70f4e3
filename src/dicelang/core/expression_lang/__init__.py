"""
Dice expression language.

Tokenizer, parser, evaluator, explanation, and static analysis for
tabletop dice expressions.

Usage:
    from dicelang.core.expression_lang import EvaluationContext, evaluate, parse_expr

    expr = parse_expr("3d6r1 + 2")
    total = evaluate(expr, EvaluationContext.for_testing(seed=7))
"""

from dicelang.core.expression_lang.analysis import expression_range, is_deterministic
from dicelang.core.expression_lang.context import EvaluationContext
from dicelang.core.expression_lang.evaluator import evaluate
from dicelang.core.expression_lang.explanation import (
    build_explanation,
    render_markdown,
    render_text,
)
from dicelang.core.expression_lang.parser import parse, parse_expr
from dicelang.core.expression_lang.tokenizer import tokenize

__all__ = [
    "EvaluationContext",
    "build_explanation",
    "evaluate",
    "expression_range",
    "is_deterministic",
    "parse",
    "parse_expr",
    "render_markdown",
    "render_text",
    "tokenize",
]
