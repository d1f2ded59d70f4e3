"""Tests for the evaluation entry points and DiceExpressionSystem."""

from __future__ import annotations

import pytest

from dicelang.core.cache import CachePolicy, ResultCache
from dicelang.core.config import DicelangConfig, EvaluatorConfig, ExplanationOptions
from dicelang.core.engine import (
    DiceExpressionSystem,
    evaluate_expression,
    explain_expression,
)
from dicelang.core.errors import EvaluationError, ParseError, TokenizationError
from dicelang.core.ir.results import DetailedEvaluationResult, EvaluationResult, RerollDiceResult


class TestEvaluateExpression:
    def test_plain_result(self, faces) -> None:
        outcome = evaluate_expression("2d6+3", EvaluatorConfig(random_source=faces(4, 5)))
        assert type(outcome.result) is EvaluationResult
        assert outcome.value == 12
        assert outcome.result.original_expression == "2d6+3"
        assert outcome.explanation is None

    def test_detailed_result(self, faces) -> None:
        config = EvaluatorConfig(random_source=faces(1, 4, 1, 2, 5))
        outcome = evaluate_expression("3d6r1", config, detailed=True)
        result = outcome.result
        assert isinstance(result, DetailedEvaluationResult)
        assert result.value == 11
        assert result.rolls == [1, 4, 1, 2, 5]
        assert (result.min_value, result.max_value) == (3, 18)
        assert isinstance(result.dice[0], RerollDiceResult)
        assert result.dice[0].final_rolls == [4, 2, 5]
        assert result.max_rerolls_reached is False

    def test_metrics(self, faces) -> None:
        outcome = evaluate_expression("2d6+3", EvaluatorConfig(random_source=faces(4, 5)))
        assert outcome.metrics is not None
        assert outcome.metrics.nodes_evaluated == 3
        assert outcome.metrics.dice_rolled == 2
        assert outcome.metrics.cache_hit is False

    def test_metrics_disabled(self) -> None:
        outcome = evaluate_expression("1+1", EvaluatorConfig(enable_metrics=False))
        assert outcome.metrics is None

    def test_explain(self, faces) -> None:
        outcome = explain_expression("1d6!", EvaluatorConfig(random_source=faces(6, 6, 3)))
        assert outcome.value == 15
        assert outcome.explanation is not None
        assert outcome.explanation.final_result == 15
        assert isinstance(outcome.result, DetailedEvaluationResult)

    def test_division_by_zero_carries_expression(self) -> None:
        with pytest.raises(EvaluationError, match="Division by zero") as exc:
            evaluate_expression("1/0")
        assert exc.value.value == 0
        assert exc.value.position == 1
        assert "  1/0\n   ^" in str(exc.value)

    def test_lexical_error_position(self) -> None:
        with pytest.raises(TokenizationError) as exc:
            evaluate_expression("2d6 $")
        assert exc.value.position == 4

    def test_syntax_error(self) -> None:
        with pytest.raises(ParseError, match="Unexpected end of expression"):
            evaluate_expression("2d6 *")

    def test_huge_side_count_finishes_within_budget(self, faces) -> None:
        sides = 300_000_000
        config = EvaluatorConfig(max_execution_time=50, random_source=faces(17, sides=sides))
        outcome = evaluate_expression(f"1d{sides}>=5", config, detailed=True)
        assert outcome.value == 1
        assert isinstance(outcome.result, DetailedEvaluationResult)
        assert (outcome.result.min_value, outcome.result.max_value) == (0, 1)


class TestCaching:
    def test_replay_returns_first_rolls(self, faces) -> None:
        cache = ResultCache()
        config = EvaluatorConfig(cache_policy=CachePolicy.REPLAY)
        first = evaluate_expression(
            "2d6", config.with_overrides(random_source=faces(4, 5)), detailed=True, cache=cache
        )
        second = evaluate_expression(
            "2d6 ", config.with_overrides(random_source=faces(1, 1)), detailed=True, cache=cache
        )
        assert isinstance(first.result, DetailedEvaluationResult)
        assert isinstance(second.result, DetailedEvaluationResult)
        assert second.result.rolls == first.result.rolls == [4, 5]
        assert cache.get_stats().hits == 1
        assert second.metrics is not None
        assert second.metrics.cache_hit is True

    def test_replay_hit_returns_plain_result_when_not_detailed(self, faces) -> None:
        cache = ResultCache()
        config = EvaluatorConfig(cache_policy=CachePolicy.REPLAY, random_source=faces(4, 5))
        evaluate_expression("2d6", config, cache=cache)
        outcome = evaluate_expression("2d6", config, cache=cache)
        assert type(outcome.result) is EvaluationResult
        assert outcome.value == 9

    def test_deterministic_policy_skips_dice(self, faces) -> None:
        cache = ResultCache()
        config = EvaluatorConfig(random_source=faces(4, 5))
        evaluate_expression("2d6", config, cache=cache)
        assert len(cache) == 0
        evaluate_expression("(1+2)*3", config, cache=cache)
        assert "( 1 + 2 ) * 3" in cache

    def test_whitespace_between_tokens_shares_entry(self) -> None:
        cache = ResultCache()
        evaluate_expression("1+2", cache=cache)
        assert evaluate_expression(" 1 +  2 ", cache=cache).value == 3
        assert cache.get_stats().hits == 1

    def test_whitespace_that_splits_a_token_is_not_a_hit(self) -> None:
        cache = ResultCache()
        config = EvaluatorConfig(cache_policy=CachePolicy.REPLAY)
        assert evaluate_expression("12", config, cache=cache).value == 12
        with pytest.raises(ParseError, match="Missing operator"):
            evaluate_expression("1 2", config, cache=cache)
        assert cache.get_stats().hits == 0

    def test_lexical_error_is_never_served_from_cache(self) -> None:
        cache = ResultCache()
        evaluate_expression("1+2", cache=cache)
        with pytest.raises(TokenizationError):
            evaluate_expression("1+2$", cache=cache)

    def test_explanation_bypasses_lookup(self) -> None:
        cache = ResultCache()
        evaluate_expression("1+2", cache=cache)
        outcome = explain_expression("1+2", cache=cache)
        assert outcome.explanation is not None
        assert cache.get_stats().hits == 0

    def test_failures_are_not_cached(self) -> None:
        cache = ResultCache()
        config = EvaluatorConfig(cache_policy=CachePolicy.REPLAY)
        with pytest.raises(EvaluationError):
            evaluate_expression("1/0", config, cache=cache)
        assert len(cache) == 0


class TestDiceExpressionSystem:
    def make(self, faces_source=None, **evaluator) -> DiceExpressionSystem:
        if faces_source is not None:
            evaluator["random_source"] = faces_source
        return DiceExpressionSystem(DicelangConfig(evaluator=EvaluatorConfig(**evaluator)))

    def test_evaluate(self, faces) -> None:
        system = self.make(faces(4, 5))
        assert system.evaluate("2d6+3").value == 12

    def test_evaluate_detailed(self, faces) -> None:
        result = self.make(faces(6, 6, 3)).evaluate_detailed("1d6!")
        assert result.value == 15
        assert result.rolls == [6, 6, 3]

    def test_explain_formats(self, faces) -> None:
        system = self.make(faces(4, 5, 4, 5))
        assert system.explain("2d6").startswith("Expression: 2d6")
        assert system.explain("2d6", fmt="markdown").startswith("## Dice expression: `2d6`")

    def test_explain_unknown_format(self) -> None:
        with pytest.raises(ValueError, match="Unknown explanation format"):
            self.make().explain("1", fmt="html")

    def test_explain_uses_configured_options(self) -> None:
        config = DicelangConfig(explanation=ExplanationOptions(include_tokenization=False))
        text = DiceExpressionSystem(config).explain("1+2")
        assert "Tokens:" not in text

    def test_parse_is_memoized(self) -> None:
        system = self.make()
        assert system.parse("2d6 + 1") is system.parse("2D6+1")

    def test_split_number_is_not_served_from_caches(self) -> None:
        system = self.make(enable_caching=True, cache_policy=CachePolicy.REPLAY)
        assert system.evaluate("12").value == 12
        with pytest.raises(ParseError, match="Missing operator"):
            system.evaluate("1 2")
        with pytest.raises(ParseError):
            system.parse("1 2")
        assert system.validate("1 2") is False

    def test_validate(self) -> None:
        system = self.make()
        assert system.validate("4d6r1 + 2") is True
        assert system.validate("2d6+") is False
        [message] = system.get_validation_errors("2d6+")
        assert "Unexpected end of expression" in message
        assert system.get_validation_errors("1d20") == []

    def test_expression_range(self) -> None:
        r = self.make().expression_range("2d6+3")
        assert (r.minimum, r.maximum) == (5, 15)

    def test_no_result_cache_by_default(self) -> None:
        assert self.make().cache_stats() is None

    def test_result_cache(self) -> None:
        system = self.make(enable_caching=True, cache_policy=CachePolicy.REPLAY)
        first = system.evaluate("3d6").value
        assert system.evaluate("3d6").value == first
        stats = system.cache_stats()
        assert stats is not None
        assert stats.hits == 1
        system.clear_cache()
        stats = system.cache_stats()
        assert stats is not None
        assert stats.entries == 0

    def test_seeded_systems_agree(self) -> None:
        a = self.make(random_seed=11)
        b = self.make(random_seed=11)
        assert [a.evaluate("1d20").value for _ in range(5)] == [
            b.evaluate("1d20").value for _ in range(5)
        ]

    def test_statistics(self, faces) -> None:
        system = self.make(faces(4, 5))
        system.evaluate("1+2")
        system.evaluate("1 + 2")
        system.evaluate("2d6")
        with pytest.raises(EvaluationError):
            system.evaluate("1/0")
        stats = system.statistics()
        assert stats.total_evaluations == 4
        assert stats.error_count == 1
        assert stats.error_rate == pytest.approx(0.25)
        assert stats.average_dice_rolled == pytest.approx(0.5)
        assert stats.most_common_expressions[0] == ("1 + 2", 2)
        assert stats.cache_hit_rate == 0.0

    def test_reset_statistics(self) -> None:
        system = self.make()
        system.evaluate("1")
        system.reset_statistics()
        assert system.statistics().total_evaluations == 0
