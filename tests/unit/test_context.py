"""Tests for EvaluationContext."""

from __future__ import annotations

import pytest

from dicelang.core.config import EvaluatorConfig
from dicelang.core.errors import EvaluationTimeoutError
from dicelang.core.expression_lang.context import EvaluationContext, seeded_random_source
from dicelang.core.ir.results import StepType


class TestRolling:
    def test_face_mapping(self) -> None:
        ctx = EvaluationContext(lambda: 0.0)
        assert ctx.roll_die(6) == 1
        ctx = EvaluationContext(lambda: 0.9999)
        assert ctx.roll_die(6) == 6

    def test_rolls_are_recorded(self, faces) -> None:
        ctx = EvaluationContext(faces(2, 5))
        ctx.roll_die(6)
        ctx.roll_die(6)
        assert ctx.rolls == [2, 5]

    def test_seeded_contexts_agree(self) -> None:
        a = EvaluationContext.for_testing(seed=42)
        b = EvaluationContext.for_testing(seed=42)
        assert [a.roll_die(20) for _ in range(10)] == [b.roll_die(20) for _ in range(10)]
        assert a.enable_explanation is True

    def test_seeded_source_range(self) -> None:
        source = seeded_random_source(1)
        assert all(0.0 <= source() < 1.0 for _ in range(100))


class TestFromConfig:
    def test_limits_copied(self) -> None:
        config = EvaluatorConfig(max_rerolls=7, max_execution_time=250, fail_on_max_rerolls=True)
        ctx = EvaluationContext.from_config(config)
        assert ctx.max_rerolls == 7
        assert ctx.remaining_rerolls == 7
        assert ctx.max_execution_time == 250
        assert ctx.fail_on_max_rerolls is True
        assert ctx.enable_explanation is False

    def test_random_source_wins_over_seed(self) -> None:
        config = EvaluatorConfig(random_source=lambda: 0.0, random_seed=3)
        ctx = EvaluationContext.from_config(config)
        assert ctx.roll_die(6) == 1

    def test_seed_is_reproducible(self) -> None:
        config = EvaluatorConfig(random_seed=9)
        a = EvaluationContext.from_config(config)
        b = EvaluationContext.from_config(config)
        assert [a.roll_die(6) for _ in range(5)] == [b.roll_die(6) for _ in range(5)]


class TestBudgets:
    def test_consume_reroll(self) -> None:
        ctx = EvaluationContext(max_rerolls=2)
        assert ctx.consume_reroll() is True
        assert ctx.consume_reroll() is True
        assert ctx.consume_reroll() is False
        assert ctx.metrics.rerolls_performed == 2

    def test_check_timeout(self, clock) -> None:
        ctx = EvaluationContext(max_execution_time=10, clock=clock)
        clock.advance_ms(10)
        ctx.check_timeout()
        clock.advance_ms(1)
        with pytest.raises(EvaluationTimeoutError, match=r"limit: 10ms"):
            ctx.check_timeout()

    def test_reset(self, clock, faces) -> None:
        ctx = EvaluationContext(faces(3), max_rerolls=1, clock=clock, enable_explanation=True)
        ctx.roll_die(6)
        ctx.consume_reroll()
        ctx.record_step(StepType.NUMBER, "Number literal: 1", 1)
        clock.advance_ms(100)
        ctx.reset()
        assert ctx.rolls == []
        assert ctx.remaining_rerolls == 1
        assert ctx.trace == []
        assert ctx.step_counter == 0
        assert ctx.elapsed_ms() == 0

    def test_summary(self, clock) -> None:
        ctx = EvaluationContext(max_rerolls=5, max_execution_time=100, clock=clock)
        ctx.consume_reroll()
        clock.advance_ms(150)
        summary = ctx.summary()
        assert summary["remaining_rerolls"] == 4
        assert summary["metrics"]["rerolls_performed"] == 1
        assert summary["timed_out"] is True

    def test_finalize_metrics_stamps_time(self, clock) -> None:
        ctx = EvaluationContext(clock=clock)
        clock.advance_ms(12)
        assert ctx.finalize_metrics().execution_time == pytest.approx(12)
