"""Tests for static analysis of expression trees."""

from __future__ import annotations

import pytest

from dicelang.core.errors import EvaluationError
from dicelang.core.expression_lang.analysis import (
    count_nodes,
    dice_count,
    expression_range,
    is_deterministic,
    tree_depth,
)
from dicelang.core.expression_lang.context import EvaluationContext
from dicelang.core.expression_lang.evaluator import evaluate
from dicelang.core.expression_lang.parser import parse_expr


def bounds(source: str, max_rerolls: int = 100) -> tuple[int, int, float]:
    r = expression_range(parse_expr(source), max_rerolls)
    return r.minimum, r.maximum, r.average


class TestExpressionRange:
    @pytest.mark.parametrize(
        ("source", "expected"),
        [
            ("7", (7, 7, 7.0)),
            ("2d6+3", (5, 15, 10.0)),
            ("1d6-1d4", (-3, 5, 1.0)),
            ("-1d6", (-6, -1, -3.5)),
            ("1d6*2", (2, 12, 7.0)),
            ("(1d4)", (1, 4, 2.5)),
            ("5d10>=7", (0, 5, 2.0)),
            ("0d6", (0, 0, 0.0)),
        ],
    )
    def test_linear_expressions(self, source: str, expected: tuple[int, int, float]) -> None:
        assert bounds(source) == expected

    def test_reroll_uses_midpoint(self) -> None:
        assert bounds("3d6r1") == (3, 18, 10.5)

    def test_exploding_bounded_by_budget(self) -> None:
        assert bounds("1d6!", max_rerolls=2) == (1, 18, 9.5)

    def test_division(self) -> None:
        minimum, maximum, _ = bounds("10/1d2")
        assert (minimum, maximum) == (5, 10)

    def test_division_with_divisor_spanning_zero(self) -> None:
        minimum, maximum, _ = bounds("1d6/(1d3-2)")
        assert (minimum, maximum) == (-6, 6)

    def test_division_by_constant_zero(self) -> None:
        with pytest.raises(EvaluationError, match="Division by zero"):
            bounds("1/0")

    def test_contains(self) -> None:
        r = expression_range(parse_expr("2d6"))
        assert 7 in r
        assert 13 not in r

    def test_invalid_dice(self) -> None:
        with pytest.raises(EvaluationError, match="at least one side"):
            bounds("2d0")

    @pytest.mark.parametrize(
        ("source", "hits"),
        [
            ("6d6>4", 2),
            ("6d6>=4", 3),
            ("6d6<4", 3),
            ("6d6<=4", 4),
            ("6d6=4", 1),
            ("6d6>9", 0),
            ("6d6>=0", 6),
            ("6d6<=9", 6),
            ("6d6=7", 0),
        ],
    )
    def test_conditional_hits_per_operator(self, source: str, hits: int) -> None:
        assert bounds(source) == (0, 6, 6 * hits / 6)

    def test_conditional_with_huge_side_count(self) -> None:
        sides = 300_000_000
        assert bounds(f"1d{sides}>=5") == (0, 1, (sides - 4) / sides)

    def test_evaluation_stays_in_range(self) -> None:
        tree = parse_expr("4d6r1 - 2d8>=5 * 3 + 1d10!")
        r = expression_range(tree)
        for seed in range(50):
            assert evaluate(tree, EvaluationContext.for_testing(seed)) in r


class TestTreeMeasures:
    def test_is_deterministic(self) -> None:
        assert is_deterministic(parse_expr("(1+2)*3")) is True
        assert is_deterministic(parse_expr("1+d6")) is False
        assert is_deterministic(parse_expr("-(2d6>=4)")) is False

    def test_count_nodes(self) -> None:
        assert count_nodes(parse_expr("2d6+3")) == 3
        assert count_nodes(parse_expr("(1+2)*3")) == 6
        assert count_nodes(parse_expr("3d6r1")) == 1

    def test_count_nodes_matches_evaluation(self) -> None:
        tree = parse_expr("-(1d6 + 2) * 3d6>4")
        ctx = EvaluationContext.for_testing(seed=5)
        evaluate(tree, ctx)
        assert count_nodes(tree) == ctx.metrics.nodes_evaluated

    def test_tree_depth(self) -> None:
        assert tree_depth(parse_expr("4")) == 1
        assert tree_depth(parse_expr("(1+2)*3")) == 4

    def test_dice_count(self) -> None:
        assert dice_count(parse_expr("2d6+3d6r1")) == 5
        assert dice_count(parse_expr("5d10>=7 - 1")) == 5
        assert dice_count(parse_expr("12")) == 0
