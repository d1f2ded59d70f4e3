"""
Explanations of dice expression evaluations.

``build_explanation`` assembles the steps recorded by the evaluator into
an ``EvaluationExplanation``; the ``render_*`` functions format one for
people to read.
"""

from __future__ import annotations

from dicelang.core.config import ExplanationOptions
from dicelang.core.expression_lang.analysis import count_nodes, tree_depth
from dicelang.core.expression_lang.tokenizer import TokenizationResult
from dicelang.core.ir.expressions import Expr
from dicelang.core.ir.results import EvaluationExplanation, EvaluationStep


def build_explanation(
    expression: str,
    tokens: TokenizationResult,
    tree: Expr,
    steps: list[EvaluationStep],
    final_result: int,
    execution_time: float | None = None,
) -> EvaluationExplanation:
    """Project recorded steps into an explanation, numbering them from 1."""
    numbered = [
        step if step.step == i else step.model_copy(update={"step": i})
        for i, step in enumerate(steps, start=1)
    ]
    return EvaluationExplanation(
        original_expression=expression,
        tokenization=tokens.values(),
        parsing=describe_tree(tree),
        steps=numbered,
        final_result=final_result,
        execution_time=execution_time,
    )


def describe_tree(tree: Expr) -> str:
    return f"{tree} (nodes: {count_nodes(tree)}, depth: {tree_depth(tree)})"


def format_step(step: EvaluationStep) -> str:
    return f"{step.step}. {step.description}"


def render_text(
    explanation: EvaluationExplanation, options: ExplanationOptions | None = None
) -> str:
    """Plain-text rendering, one line per step."""
    opts = options or ExplanationOptions()
    lines = [f"Expression: {explanation.original_expression}"]

    if opts.include_tokenization:
        lines.append(f"Tokens: {', '.join(explanation.tokenization)}")
    if opts.include_parsing:
        lines.append(f"Parsed: {explanation.parsing}")

    lines.append("Steps:")
    for step in explanation.steps:
        lines.append(f"  {format_step(step)}")
        if opts.verbose and step.details:
            lines.append(f"     {step.details}")

    lines.append(f"Result: {explanation.final_result}")
    if opts.include_timestamps and explanation.execution_time is not None:
        lines.append(f"Execution time: {explanation.execution_time:.2f}ms")
    return "\n".join(lines)


def render_markdown(
    explanation: EvaluationExplanation, options: ExplanationOptions | None = None
) -> str:
    """Markdown rendering with a numbered step list."""
    opts = options or ExplanationOptions()
    lines = [f"## Dice expression: `{explanation.original_expression}`", ""]

    if opts.include_tokenization:
        tokens = " ".join(f"`{t}`" for t in explanation.tokenization)
        lines.append(f"**Tokens:** {tokens}")
    if opts.include_parsing:
        lines.append(f"**Parsed:** `{explanation.parsing}`")
    if opts.include_tokenization or opts.include_parsing:
        lines.append("")

    lines.append("### Steps")
    lines.append("")
    for step in explanation.steps:
        lines.append(format_step(step))
        if opts.verbose and step.details:
            lines.append(f"   - {step.details}")
    lines.append("")

    lines.append(f"**Result:** {explanation.final_result}")
    if opts.include_timestamps and explanation.execution_time is not None:
        lines.append("")
        lines.append(f"_Evaluated in {explanation.execution_time:.2f} ms_")
    return "\n".join(lines)
