"""
dicelang intermediate representation.

Expression tree nodes and the result/explanation models produced by
evaluating them. All types are re-exported from this package.
"""

from .expressions import (
    DICE_NODE_TYPES,
    BinaryNode,
    BinaryOp,
    ComparisonOp,
    ConditionalDiceNode,
    DiceNode,
    Expr,
    GroupNode,
    NegateNode,
    NumberNode,
    RerollDiceNode,
    RerollMode,
)
from .results import (
    AnyDiceResult,
    ConditionalDiceResult,
    DetailedEvaluationResult,
    DiceRollResult,
    EvaluationExplanation,
    EvaluationMetrics,
    EvaluationOutcome,
    EvaluationResult,
    EvaluationStep,
    ExpressionRange,
    RerollDiceResult,
    StepType,
    merge_metrics,
)

__all__ = [
    # Expressions
    "DICE_NODE_TYPES",
    "BinaryNode",
    "BinaryOp",
    "ComparisonOp",
    "ConditionalDiceNode",
    "DiceNode",
    "Expr",
    "GroupNode",
    "NegateNode",
    "NumberNode",
    "RerollDiceNode",
    "RerollMode",
    # Results
    "AnyDiceResult",
    "ConditionalDiceResult",
    "DetailedEvaluationResult",
    "DiceRollResult",
    "EvaluationExplanation",
    "EvaluationMetrics",
    "EvaluationOutcome",
    "EvaluationResult",
    "EvaluationStep",
    "ExpressionRange",
    "RerollDiceResult",
    "StepType",
    "merge_metrics",
]
