"""Tests for building and rendering evaluation explanations."""

from __future__ import annotations

import pytest

from dicelang.core.config import EvaluatorConfig, ExplanationOptions
from dicelang.core.engine import explain_expression
from dicelang.core.expression_lang.explanation import (
    build_explanation,
    format_step,
    render_markdown,
    render_text,
)
from dicelang.core.expression_lang.parser import parse
from dicelang.core.expression_lang.tokenizer import tokenize
from dicelang.core.ir.results import EvaluationExplanation, EvaluationStep, StepType


@pytest.fixture
def explanation(faces) -> EvaluationExplanation:
    outcome = explain_expression("2d6+3", EvaluatorConfig(random_source=faces(4, 5)))
    assert outcome.explanation is not None
    return outcome.explanation


class TestBuildExplanation:
    def test_tokenization_excludes_eof(self, explanation: EvaluationExplanation) -> None:
        assert explanation.tokenization == ["2d6", "+", "3"]

    def test_parsing_describes_tree(self, explanation: EvaluationExplanation) -> None:
        assert explanation.parsing == "(2d6 + 3) (nodes: 3, depth: 2)"

    def test_steps(self, explanation: EvaluationExplanation) -> None:
        assert [s.step for s in explanation.steps] == [1, 2, 3]
        assert [s.description for s in explanation.steps] == [
            "Rolled 2d6: 4, 5 (total: 9)",
            "Number literal: 3",
            "9 + 3 = 12",
        ]
        assert explanation.final_result == 12
        assert explanation.original_expression == "2d6+3"

    def test_steps_are_renumbered(self) -> None:
        tokens = tokenize("1+2")
        steps = [
            EvaluationStep(
                step=4, operation=StepType.NUMBER, description="Number literal: 1", value=1
            ),
            EvaluationStep(
                step=9, operation=StepType.NUMBER, description="Number literal: 2", value=2
            ),
        ]
        explanation = build_explanation("1+2", tokens, parse(tokens), steps, 3)
        assert [s.step for s in explanation.steps] == [1, 2]
        assert explanation.execution_time is None

    def test_format_step(self) -> None:
        step = EvaluationStep(
            step=2, operation=StepType.OPERATION, description="1 + 2 = 3", value=3
        )
        assert format_step(step) == "2. 1 + 2 = 3"


class TestRenderText:
    def test_default_sections(self, explanation: EvaluationExplanation) -> None:
        text = render_text(explanation)
        assert text.splitlines()[0] == "Expression: 2d6+3"
        assert "Tokens: 2d6, +, 3" in text
        assert "Parsed: (2d6 + 3)" in text
        assert "  1. Rolled 2d6: 4, 5 (total: 9)" in text
        assert text.splitlines()[-1] == "Result: 12"
        assert "Individual rolls" not in text

    def test_sections_can_be_omitted(self, explanation: EvaluationExplanation) -> None:
        options = ExplanationOptions(include_tokenization=False, include_parsing=False)
        text = render_text(explanation, options)
        assert "Tokens:" not in text
        assert "Parsed:" not in text

    def test_verbose_includes_details(self, explanation: EvaluationExplanation) -> None:
        text = render_text(explanation, ExplanationOptions(verbose=True))
        assert "Individual rolls: [die 1: 4, die 2: 5]" in text

    def test_timestamps(self, explanation: EvaluationExplanation) -> None:
        text = render_text(explanation, ExplanationOptions(include_timestamps=True))
        assert text.splitlines()[-1].startswith("Execution time: ")


class TestRenderMarkdown:
    def test_structure(self, explanation: EvaluationExplanation) -> None:
        md = render_markdown(explanation)
        assert md.startswith("## Dice expression: `2d6+3`")
        assert "**Tokens:** `2d6` `+` `3`" in md
        assert "### Steps" in md
        assert "3. 9 + 3 = 12" in md
        assert md.splitlines()[-1] == "**Result:** 12"

    def test_verbose_details_are_nested(self, explanation: EvaluationExplanation) -> None:
        md = render_markdown(explanation, ExplanationOptions(verbose=True))
        assert "   - Addition: combining 9 and 3 to get 12" in md
