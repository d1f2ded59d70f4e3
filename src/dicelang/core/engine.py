"""
Evaluation entry points for dice expressions.

``evaluate_expression`` runs the whole pipeline for one expression:
cache lookup, tokenize, parse, evaluate, explain, and cache store.
``DiceExpressionSystem`` wraps it with a parse cache, an optional result
cache, and running statistics.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import Counter
from dataclasses import dataclass, field, replace
from typing import cast

from pydantic import BaseModel, ConfigDict, Field

from dicelang.core.cache import CachePolicy, CacheStats, ResultCache, normalize_key
from dicelang.core.config import DicelangConfig, EvaluatorConfig, TokenizerConfig
from dicelang.core.errors import (
    DicelangError,
    ParseError,
    TokenizationError,
    attach_expression,
)
from dicelang.core.expression_lang.analysis import expression_range, is_deterministic
from dicelang.core.expression_lang.context import Clock, EvaluationContext, seeded_random_source
from dicelang.core.expression_lang.evaluator import evaluate
from dicelang.core.expression_lang.explanation import (
    build_explanation,
    render_markdown,
    render_text,
)
from dicelang.core.expression_lang.parser import parse
from dicelang.core.expression_lang.tokenizer import TokenizationResult, tokenize
from dicelang.core.ir.expressions import Expr
from dicelang.core.ir.results import (
    DetailedEvaluationResult,
    EvaluationExplanation,
    EvaluationMetrics,
    EvaluationOutcome,
    EvaluationResult,
    ExpressionRange,
)

logger = logging.getLogger(__name__)

Compiled = tuple[TokenizationResult, Expr]


def evaluate_expression(
    expression: str,
    config: EvaluatorConfig | None = None,
    *,
    detailed: bool = False,
    explain: bool = False,
    cache: ResultCache | None = None,
    tokenizer_config: TokenizerConfig | None = None,
    clock: Clock | None = None,
) -> EvaluationOutcome:
    """
    Evaluate a dice expression string.

    Args:
        expression: Expression text, e.g. "4d6+2".
        config: Evaluation limits and policies.
        detailed: Return a DetailedEvaluationResult (rolls, bounds, dice).
        explain: Record and return a step-by-step explanation.
        cache: Result cache to consult and fill. What gets stored follows
            ``config.cache_policy``. Explained evaluations skip the lookup.
        tokenizer_config: Lexical limits.
        clock: Seconds clock for the time budget; ``time.perf_counter``
            by default.

    Returns:
        EvaluationOutcome. ``metrics`` is None when metrics are disabled.

    Raises:
        DicelangError: The first failure in source order. Nothing is
            cached for a failed evaluation.
    """
    outcome, _ = _run(
        expression,
        config or EvaluatorConfig(),
        tokenizer_config or TokenizerConfig(),
        detailed=detailed,
        explain=explain,
        cache=cache,
        clock=clock,
    )
    return outcome


def explain_expression(
    expression: str,
    config: EvaluatorConfig | None = None,
    *,
    cache: ResultCache | None = None,
    tokenizer_config: TokenizerConfig | None = None,
    clock: Clock | None = None,
) -> EvaluationOutcome:
    """Detailed evaluation with an explanation."""
    return evaluate_expression(
        expression,
        config,
        detailed=True,
        explain=True,
        cache=cache,
        tokenizer_config=tokenizer_config,
        clock=clock,
    )


def compile_expression(expression: str, config: TokenizerConfig | None = None) -> Compiled:
    """Tokenize and parse, attaching the source text to any error."""
    tokens = tokenize_expression(expression, config)
    try:
        return tokens, parse(tokens)
    except DicelangError as e:
        raise attach_expression(e, expression) from None


def tokenize_expression(
    expression: str, config: TokenizerConfig | None = None
) -> TokenizationResult:
    try:
        return tokenize(expression, config)
    except DicelangError as e:
        raise attach_expression(e, expression) from None


def _run(
    expression: str,
    config: EvaluatorConfig,
    tokenizer_config: TokenizerConfig,
    *,
    detailed: bool,
    explain: bool,
    cache: ResultCache | None,
    clock: Clock | None,
    compiled: Compiled | None = None,
) -> tuple[EvaluationOutcome, EvaluationMetrics]:
    """Run one evaluation; also returns metrics even when they are disabled."""
    now = clock or time.perf_counter
    started = now()
    try:
        tokens, tree = compiled or compile_expression(expression, tokenizer_config)
    except DicelangError as e:
        logger.debug("Compiling %r failed: %s", expression, e.message)
        raise
    key = normalize_key(tokens.values(), tokenizer_config.case_sensitive)

    if cache is not None and not explain:
        entry = cache.get(key)
        if entry is not None:
            stored: DetailedEvaluationResult = entry.stored_result
            metrics = EvaluationMetrics(execution_time=(now() - started) * 1000.0, cache_hit=True)
            result = stored if detailed else stored.summary()
            outcome = EvaluationOutcome(
                result=result, metrics=metrics if config.enable_metrics else None
            )
            return outcome, metrics

    logger.debug("Evaluating %r", expression)
    try:
        ctx = EvaluationContext.from_config(config, enable_explanation=explain, clock=clock)
        value = evaluate(tree, ctx)
        bounds = expression_range(tree, config.max_rerolls)
        ctx.check_timeout(tree)
    except DicelangError as e:
        logger.debug("Evaluation of %r failed: %s", expression, e.message)
        raise attach_expression(e, expression) from None

    metrics = ctx.finalize_metrics()
    full = DetailedEvaluationResult(
        value=value,
        original_expression=expression,
        rolls=ctx.rolls,
        min_value=bounds.minimum,
        max_value=bounds.maximum,
        execution_time=metrics.execution_time,
        dice=ctx.dice_results,
        max_rerolls_reached=ctx.max_rerolls_reached,
    )

    if cache is not None and (config.cache_policy is CachePolicy.REPLAY or is_deterministic(tree)):
        cache.set(key, full)

    explanation = None
    if explain:
        explanation = build_explanation(
            expression, tokens, tree, ctx.trace, value, metrics.execution_time
        )

    logger.debug("Evaluated %r = %d in %.2fms", expression, value, metrics.execution_time)
    outcome = EvaluationOutcome(
        result=full if detailed else full.summary(),
        explanation=explanation,
        metrics=metrics if config.enable_metrics else None,
    )
    return outcome, metrics


# =============================================================================
# Facade
# =============================================================================


class EvaluationStatistics(BaseModel):
    """Aggregate figures over every evaluation run through a system."""

    total_evaluations: int = 0
    error_count: int = 0
    error_rate: float = 0.0
    average_execution_time: float = 0.0
    average_dice_rolled: float = 0.0
    cache_hit_rate: float = 0.0
    most_common_expressions: list[tuple[str, int]] = Field(default_factory=list)

    model_config = ConfigDict(frozen=True)


@dataclass
class _StatisticsRecorder:
    _evaluations: int = 0
    _errors: int = 0
    _execution_time: float = 0.0
    _dice_rolled: int = 0
    _expressions: Counter[str] = field(default_factory=Counter)
    _lock: threading.Lock = field(default_factory=threading.Lock)

    def record(self, key: str, metrics: EvaluationMetrics | None) -> None:
        with self._lock:
            self._evaluations += 1
            self._expressions[key] += 1
            if metrics is None:
                self._errors += 1
            else:
                self._execution_time += metrics.execution_time
                self._dice_rolled += metrics.dice_rolled

    def snapshot(self, cache_hit_rate: float, top: int = 5) -> EvaluationStatistics:
        with self._lock:
            n = self._evaluations
            return EvaluationStatistics(
                total_evaluations=n,
                error_count=self._errors,
                error_rate=self._errors / n if n else 0.0,
                average_execution_time=self._execution_time / n if n else 0.0,
                average_dice_rolled=self._dice_rolled / n if n else 0.0,
                cache_hit_rate=cache_hit_rate,
                most_common_expressions=self._expressions.most_common(top),
            )

    def reset(self) -> None:
        with self._lock:
            self._evaluations = 0
            self._errors = 0
            self._execution_time = 0.0
            self._dice_rolled = 0
            self._expressions.clear()


class DiceExpressionSystem:
    """
    Long-lived front end for evaluating many expressions.

    Parsed trees are memoized by normalized expression text. A result
    cache is created only when ``config.evaluator.enable_caching`` is set;
    what it stores follows ``config.evaluator.cache_policy``.

    Example:
        system = DiceExpressionSystem()
        system.evaluate("4d6+2").value
        print(system.explain("3d6r1", fmt="markdown"))
    """

    def __init__(self, config: DicelangConfig | None = None, clock: Clock | None = None) -> None:
        config = config or DicelangConfig()
        evaluator = config.evaluator
        # One seeded stream for the system's lifetime, not a replay per call
        if evaluator.random_source is None and evaluator.random_seed is not None:
            evaluator = replace(
                evaluator, random_source=seeded_random_source(evaluator.random_seed)
            )
            config = replace(config, evaluator=evaluator)
        self.config = config
        self._clock = clock
        self._parse_cache = ResultCache(evaluator.cache_size)
        self._result_cache = ResultCache(evaluator.cache_size) if evaluator.enable_caching else None
        self._stats = _StatisticsRecorder()

    # -- Evaluation --

    def evaluate(self, expression: str) -> EvaluationResult:
        return self._evaluate(expression, detailed=False, explain=False).result

    def evaluate_detailed(self, expression: str) -> DetailedEvaluationResult:
        result = self._evaluate(expression, detailed=True, explain=False).result
        return cast(DetailedEvaluationResult, result)

    def evaluate_with_explanation(self, expression: str) -> EvaluationOutcome:
        return self._evaluate(expression, detailed=True, explain=True)

    def explain(self, expression: str, fmt: str = "text") -> str:
        """Evaluate and render the explanation as "text" or "markdown"."""
        if fmt not in ("text", "markdown"):
            raise ValueError(f"Unknown explanation format: {fmt!r}")
        explanation = cast(
            EvaluationExplanation, self.evaluate_with_explanation(expression).explanation
        )
        if fmt == "markdown":
            return render_markdown(explanation, self.config.explanation)
        return render_text(explanation, self.config.explanation)

    def _evaluate(self, expression: str, *, detailed: bool, explain: bool) -> EvaluationOutcome:
        key = expression.strip()
        try:
            key, compiled = self._compile(expression)
            outcome, metrics = _run(
                expression,
                self.config.evaluator,
                self.config.tokenizer,
                detailed=detailed,
                explain=explain,
                cache=self._result_cache,
                clock=self._clock,
                compiled=compiled,
            )
        except DicelangError:
            self._stats.record(key, None)
            raise
        self._stats.record(key, metrics)
        return outcome

    # -- Parsing and validation --

    def parse(self, expression: str) -> Expr:
        """Parse an expression, reusing a memoized tree when possible."""
        return self._compile(expression)[1][1]

    def _compile(self, expression: str) -> tuple[str, Compiled]:
        """Tokenize, then parse unless a tree for the same tokens is memoized."""
        tokens = tokenize_expression(expression, self.config.tokenizer)
        key = normalize_key(tokens.values(), self.config.tokenizer.case_sensitive)
        entry = self._parse_cache.get(key)
        if entry is not None:
            return key, (tokens, entry.stored_result)
        try:
            tree = parse(tokens)
        except DicelangError as e:
            raise attach_expression(e, expression) from None
        self._parse_cache.set(key, tree)
        return key, (tokens, tree)

    def validate(self, expression: str) -> bool:
        return not self.get_validation_errors(expression)

    def get_validation_errors(self, expression: str) -> list[str]:
        """Lexical and syntax errors for an expression; empty when valid."""
        try:
            self.parse(expression)
        except (TokenizationError, ParseError) as e:
            return [str(e)]
        return []

    def expression_range(self, expression: str) -> ExpressionRange:
        return expression_range(self.parse(expression), self.config.evaluator.max_rerolls)

    # -- Caches and statistics --

    def cache_stats(self) -> CacheStats | None:
        """Result cache statistics, or None when caching is off."""
        return self._result_cache.get_stats() if self._result_cache else None

    def clear_cache(self) -> None:
        self._parse_cache.clear()
        if self._result_cache is not None:
            self._result_cache.clear()

    def statistics(self) -> EvaluationStatistics:
        stats = self.cache_stats()
        return self._stats.snapshot(stats.hit_rate if stats else 0.0)

    def reset_statistics(self) -> None:
        self._stats.reset()
