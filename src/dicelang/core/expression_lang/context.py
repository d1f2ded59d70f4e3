"""
Per-evaluation state for the dice expression evaluator.

An ``EvaluationContext`` carries the random source, the reroll and time
budgets, the explanation trace, and metrics for exactly one evaluation.
It is passed explicitly through every evaluator call; nothing here is
module-global, so concurrent evaluations never share state.
"""

from __future__ import annotations

import logging
import math
import random
import time
from collections.abc import Callable
from typing import Any

from dicelang.core.config import (
    DEFAULT_MAX_EXECUTION_TIME,
    DEFAULT_MAX_REROLLS,
    EvaluatorConfig,
)
from dicelang.core.errors import EvaluationError, EvaluationTimeoutError
from dicelang.core.ir.expressions import Expr
from dicelang.core.ir.results import (
    AnyDiceResult,
    EvaluationMetrics,
    EvaluationStep,
    StepType,
)

logger = logging.getLogger(__name__)

RandomSource = Callable[[], float]
Clock = Callable[[], float]


def default_random_source() -> RandomSource:
    """Uniform floats in [0, 1) from system entropy."""
    return random.SystemRandom().random


def seeded_random_source(seed: int) -> RandomSource:
    """Reproducible uniform floats in [0, 1) for replay and tests."""
    return random.Random(seed).random


class EvaluationContext:
    """
    Mutable state scoped to a single evaluation.

    Args:
        random_source: Callable returning floats in [0, 1).
        max_rerolls: Rerolls allowed across the whole evaluation.
        max_execution_time: Wall-clock budget in milliseconds.
        enable_explanation: Record an explanation step per visited node.
        fail_on_max_rerolls: Raise instead of freezing dice when the
            reroll budget runs out.
        clock: Callable returning seconds; ``time.perf_counter`` by default.
        debug: Log every node, roll, and reroll at DEBUG level.
    """

    def __init__(
        self,
        random_source: RandomSource | None = None,
        *,
        max_rerolls: int = DEFAULT_MAX_REROLLS,
        max_execution_time: float = DEFAULT_MAX_EXECUTION_TIME,
        enable_explanation: bool = False,
        fail_on_max_rerolls: bool = False,
        clock: Clock | None = None,
        debug: bool = False,
    ) -> None:
        self.random_source = random_source or default_random_source()
        self.max_rerolls = max_rerolls
        self.max_execution_time = max_execution_time
        self.enable_explanation = enable_explanation
        self.fail_on_max_rerolls = fail_on_max_rerolls
        self.clock = clock or time.perf_counter
        self.debug = debug
        self.reset()

    @classmethod
    def from_config(
        cls,
        config: EvaluatorConfig,
        enable_explanation: bool = False,
        clock: Clock | None = None,
    ) -> EvaluationContext:
        """Build a fresh context from evaluator configuration."""
        source = config.random_source
        if source is None and config.random_seed is not None:
            source = seeded_random_source(config.random_seed)
        return cls(
            source,
            max_rerolls=config.max_rerolls,
            max_execution_time=config.max_execution_time,
            enable_explanation=enable_explanation,
            fail_on_max_rerolls=config.fail_on_max_rerolls,
            clock=clock,
            debug=config.debug,
        )

    @classmethod
    def for_testing(cls, seed: int, **overrides: Any) -> EvaluationContext:
        """Seeded context with explanations on, for reproducible runs."""
        overrides.setdefault("enable_explanation", True)
        return cls(seeded_random_source(seed), **overrides)

    def reset(self) -> None:
        """Restart the clock and clear counters, trace, and rolls."""
        self.started_at = self.clock()
        self.remaining_rerolls = self.max_rerolls
        self.max_rerolls_reached = False
        self.step_counter = 0
        self.metrics = EvaluationMetrics()
        self.trace: list[EvaluationStep] = []
        self.rolls: list[int] = []
        self.dice_results: list[AnyDiceResult] = []

    # -- Budgets --

    def elapsed_ms(self) -> float:
        return (self.clock() - self.started_at) * 1000.0

    def check_timeout(self, node: Expr | None = None) -> None:
        """Abort the evaluation once the time budget is spent."""
        elapsed = self.elapsed_ms()
        if elapsed > self.max_execution_time:
            raise EvaluationTimeoutError(self.max_execution_time, elapsed, node)

    def consume_reroll(self) -> bool:
        """Take one reroll from the budget; False when none remain."""
        if self.remaining_rerolls <= 0:
            return False
        self.remaining_rerolls -= 1
        self.metrics.rerolls_performed += 1
        if self.debug:
            logger.debug("Reroll performed (%d remaining)", self.remaining_rerolls)
        return True

    # -- Randomness --

    def roll_die(self, sides: int, node: Expr | None = None) -> int:
        """Roll one die: ``floor(random() * sides) + 1``."""
        self.check_timeout(node)
        r = self.random_source()
        if not 0.0 <= r < 1.0:
            raise EvaluationError(
                "Random source returned a value outside [0, 1)", node, "dice roll", r
            )
        value = math.floor(r * sides) + 1
        self.rolls.append(value)
        return value

    # -- Recording --

    def record_node(self, node: Expr) -> None:
        self.metrics.nodes_evaluated += 1
        if self.debug:
            logger.debug(
                "Evaluated node %s (%d so far)", type(node).__name__, self.metrics.nodes_evaluated
            )

    def record_dice(self, count: int) -> None:
        self.metrics.dice_rolled += count
        if self.debug:
            logger.debug("Rolled %d dice (total: %d)", count, self.metrics.dice_rolled)

    def next_step(self) -> int:
        self.step_counter += 1
        return self.step_counter

    def record_step(
        self,
        operation: StepType,
        description: str,
        value: int,
        *,
        details: str | None = None,
        rolls: list[int] | None = None,
        node: Expr | None = None,
    ) -> None:
        """Append a numbered step to the trace when explanations are on."""
        if not self.enable_explanation:
            return
        self.trace.append(
            EvaluationStep(
                step=self.next_step(),
                operation=operation,
                description=description,
                value=value,
                details=details,
                rolls=rolls,
                node=node,
            )
        )

    def finalize_metrics(self) -> EvaluationMetrics:
        """Stamp elapsed time onto the metrics and return them."""
        self.metrics.execution_time = self.elapsed_ms()
        return self.metrics

    def summary(self) -> dict[str, Any]:
        """Snapshot of configuration, counters, and timing."""
        elapsed = self.elapsed_ms()
        return {
            "max_rerolls": self.max_rerolls,
            "remaining_rerolls": self.remaining_rerolls,
            "max_execution_time": self.max_execution_time,
            "enable_explanation": self.enable_explanation,
            "step_counter": self.step_counter,
            "metrics": self.metrics.model_dump(),
            "execution_time": elapsed,
            "timed_out": elapsed > self.max_execution_time,
        }
