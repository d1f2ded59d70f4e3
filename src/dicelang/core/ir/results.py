"""
Result, explanation, and metrics types for dice expression evaluation.
"""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field

from dicelang.core.ir.expressions import ComparisonOp, Expr, RerollMode

# ---------------------------------------------------------------------------
# Dice results
# ---------------------------------------------------------------------------


class DiceRollResult(BaseModel):
    """Outcome of rolling one dice term. ``total`` is always ``sum(rolls)``."""

    rolls: list[int] = Field(default_factory=list)
    total: int = 0
    count: int
    sides: int

    model_config = ConfigDict(frozen=True)


class ConditionalDiceResult(DiceRollResult):
    """
    Outcome of a conditional dice term.

    ``successful_rolls`` and ``failed_rolls`` partition ``rolls``; the
    term's value is ``successes``, not ``total``.
    """

    successes: int = 0
    threshold: int
    condition_operator: ComparisonOp
    successful_rolls: list[int] = Field(default_factory=list)
    failed_rolls: list[int] = Field(default_factory=list)


class RerollDiceResult(DiceRollResult):
    """
    Outcome of a reroll dice term.

    ``all_rolls`` lists every face produced, in order. ``final_rolls``
    holds the values that make up the total: each die's terminal value
    for once/recursive, every produced roll for exploding.
    """

    reroll_count: int = 0
    max_rerolls_reached: bool = False
    reroll_mode: RerollMode
    condition: str
    all_rolls: list[int] = Field(default_factory=list)
    final_rolls: list[int] = Field(default_factory=list)


AnyDiceResult = RerollDiceResult | ConditionalDiceResult | DiceRollResult


# ---------------------------------------------------------------------------
# Explanation
# ---------------------------------------------------------------------------


class StepType(StrEnum):
    """Categories of explanation steps."""

    NUMBER = "number"
    DICE_ROLL = "dice_roll"
    CONDITIONAL = "conditional"
    REROLL = "reroll"
    OPERATION = "operation"
    NEGATION = "negation"
    PARENTHESES = "parentheses"


class EvaluationStep(BaseModel):
    """One recorded step of an evaluation trace."""

    step: int = Field(description="Sequence number, starting at 1")
    operation: StepType
    description: str
    value: int
    details: str | None = None
    rolls: list[int] | None = None
    node: Expr | None = None

    model_config = ConfigDict(frozen=True)


class EvaluationExplanation(BaseModel):
    """Complete explanation of one evaluation."""

    original_expression: str
    tokenization: list[str] = Field(default_factory=list)
    parsing: str = ""
    steps: list[EvaluationStep] = Field(default_factory=list)
    final_result: int = 0
    execution_time: float | None = None

    model_config = ConfigDict(frozen=True)


# ---------------------------------------------------------------------------
# Metrics and results
# ---------------------------------------------------------------------------


class EvaluationMetrics(BaseModel):
    """Counters accumulated while evaluating one expression."""

    execution_time: float = 0.0
    nodes_evaluated: int = 0
    dice_rolled: int = 0
    rerolls_performed: int = 0
    cache_hit: bool = False


def merge_metrics(metrics: list[EvaluationMetrics]) -> EvaluationMetrics:
    """Sum a list of metrics into one."""
    merged = EvaluationMetrics()
    for m in metrics:
        merged.execution_time += m.execution_time
        merged.nodes_evaluated += m.nodes_evaluated
        merged.dice_rolled += m.dice_rolled
        merged.rerolls_performed += m.rerolls_performed
    return merged


class ExpressionRange(BaseModel):
    """Statically computed bounds of an expression."""

    minimum: int
    maximum: int
    average: float

    model_config = ConfigDict(frozen=True)

    def __contains__(self, value: object) -> bool:
        return isinstance(value, int | float) and self.minimum <= value <= self.maximum


class EvaluationResult(BaseModel):
    """Value of an evaluated expression."""

    value: int
    original_expression: str

    model_config = ConfigDict(frozen=True)


class DetailedEvaluationResult(EvaluationResult):
    """Value plus every roll made and the expression's static bounds."""

    rolls: list[int] = Field(default_factory=list)
    min_value: int
    max_value: int
    execution_time: float = 0.0
    dice: list[AnyDiceResult] = Field(default_factory=list)
    max_rerolls_reached: bool = False

    def summary(self) -> EvaluationResult:
        return EvaluationResult(value=self.value, original_expression=self.original_expression)


class EvaluationOutcome(BaseModel):
    """Everything returned by the evaluation entry points."""

    result: EvaluationResult
    explanation: EvaluationExplanation | None = None
    metrics: EvaluationMetrics | None = None

    @property
    def value(self) -> int:
        return self.result.value
