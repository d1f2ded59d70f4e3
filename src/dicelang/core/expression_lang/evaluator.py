"""
Expression evaluator for dice expressions.

Walks an expression tree left to right, rolling dice through the random
source held by the ``EvaluationContext``. The context also carries the
reroll and time budgets and receives the explanation trace and metrics.
Any failure propagates immediately; no partial value is ever returned.
"""

from __future__ import annotations

import logging

from dicelang.core import sequences
from dicelang.core.errors import EvaluationError, MaxRerollsExceededError
from dicelang.core.expression_lang.context import EvaluationContext
from dicelang.core.ir.expressions import (
    BinaryNode,
    BinaryOp,
    ConditionalDiceNode,
    DiceNode,
    Expr,
    GroupNode,
    NegateNode,
    NumberNode,
    RerollDiceNode,
    RerollMode,
)
from dicelang.core.ir.results import (
    ConditionalDiceResult,
    DiceRollResult,
    RerollDiceResult,
    StepType,
)

logger = logging.getLogger(__name__)


def evaluate(expr: Expr, context: EvaluationContext) -> int:
    """Evaluate an expression tree.

    Args:
        expr: Parsed expression tree.
        context: State for this evaluation: random source, budgets,
            trace, and metrics.

    Returns:
        The integer value. Conditional dice contribute their success
        count; division rounds toward negative infinity.

    Raises:
        EvaluationError: Invalid dice, division by zero, or a bad
            random value.
        EvaluationTimeoutError: The time budget ran out.
        MaxRerollsExceededError: The reroll budget ran out and the
            context treats that as fatal.
    """
    return _interpret(expr, context)


def _interpret(expr: Expr, ctx: EvaluationContext) -> int:
    """Dispatch evaluation to the appropriate handler."""
    ctx.check_timeout(expr)
    ctx.record_node(expr)

    if isinstance(expr, NumberNode):
        ctx.record_step(StepType.NUMBER, f"Number literal: {expr.value}", expr.value, node=expr)
        return expr.value

    if isinstance(expr, DiceNode):
        return _interpret_dice(expr, ctx)

    if isinstance(expr, ConditionalDiceNode):
        return _interpret_conditional(expr, ctx)

    if isinstance(expr, RerollDiceNode):
        return _interpret_reroll(expr, ctx)

    if isinstance(expr, BinaryNode):
        return _interpret_binary(expr, ctx)

    if isinstance(expr, NegateNode):
        return _interpret_negate(expr, ctx)

    if isinstance(expr, GroupNode):
        value = _interpret(expr.expression, ctx)
        ctx.record_step(
            StepType.PARENTHESES,
            f"Evaluated parenthetical expression {expr}: {value}",
            value,
            node=expr,
        )
        return value

    raise EvaluationError(f"Unknown expression type: {type(expr).__name__}", expr)


# ---------------------------------------------------------------------------
# Dice
# ---------------------------------------------------------------------------


def _validate_dice(dice: DiceNode, owner: Expr) -> None:
    """Reject impossible dice before any roll happens."""
    if dice.count < 0:
        raise EvaluationError("Dice count cannot be negative", owner, "dice roll", dice.count)
    if dice.sides < 1:
        raise EvaluationError("Dice must have at least one side", owner, "dice roll", dice.sides)


def _roll_pool(dice: DiceNode, owner: Expr, ctx: EvaluationContext) -> list[int]:
    _validate_dice(dice, owner)
    ctx.record_dice(dice.count)
    return [ctx.roll_die(dice.sides, owner) for _ in range(dice.count)]


def _describe_rolls(rolls: list[int]) -> str:
    listed = ", ".join(f"die {i}: {r}" for i, r in enumerate(rolls, start=1))
    if not rolls:
        return "No dice rolled"
    return (
        f"Individual rolls: [{listed}] | highest {sequences.max_value(rolls)}, "
        f"lowest {sequences.min_value(rolls)}"
    )


def _join(values: list[int]) -> str:
    return ", ".join(str(v) for v in values)


def _interpret_dice(node: DiceNode, ctx: EvaluationContext) -> int:
    """Sum of ``count`` independent rolls."""
    rolls = _roll_pool(node, node, ctx)
    result = DiceRollResult(rolls=rolls, total=sum(rolls), count=node.count, sides=node.sides)
    ctx.dice_results.append(result)
    ctx.record_step(
        StepType.DICE_ROLL,
        f"Rolled {node}: {_join(rolls) or 'no dice'} (total: {result.total})",
        result.total,
        details=_describe_rolls(rolls),
        rolls=rolls,
        node=node,
    )
    return result.total


def _interpret_conditional(node: ConditionalDiceNode, ctx: EvaluationContext) -> int:
    """Number of dice whose face meets the threshold."""
    rolls = _roll_pool(node.dice, node, ctx)
    successful = [r for r in rolls if node.op.test(r, node.threshold)]
    failed = [r for r in rolls if not node.op.test(r, node.threshold)]

    result = ConditionalDiceResult(
        rolls=rolls,
        total=sum(rolls),
        count=node.dice.count,
        sides=node.dice.sides,
        successes=len(successful),
        threshold=node.threshold,
        condition_operator=node.op,
        successful_rolls=successful,
        failed_rolls=failed,
    )
    ctx.dice_results.append(result)
    ctx.record_step(
        StepType.CONDITIONAL,
        f"Evaluated {node.dice} with condition {node.op.value}{node.threshold}: "
        f"{result.successes} successes",
        result.successes,
        details=(
            f"Rolls: {_join(rolls)} | Successes: [{_join(successful)}] "
            f"| Failures: [{_join(failed)}]"
        ),
        rolls=rolls,
        node=node,
    )
    return result.successes


def _interpret_reroll(node: RerollDiceNode, ctx: EvaluationContext) -> int:
    """
    Roll each die, rerolling while it meets the condition.

    once: at most one reroll per die. recursive: reroll until the
    condition fails; only the last face counts. exploding: same trigger
    as recursive, but every face rolled for the die is added up.

    All dice of the evaluation share ``ctx.remaining_rerolls``. When it
    runs out the current die keeps its last face and the result is
    flagged, unless the context treats exhaustion as fatal.
    """
    dice = node.dice
    _validate_dice(dice, node)
    ctx.record_dice(dice.count)
    threshold = node.effective_threshold

    all_rolls: list[int] = []
    final_rolls: list[int] = []
    reroll_count = 0
    exhausted = False

    for _ in range(dice.count):
        value = ctx.roll_die(dice.sides, node)
        all_rolls.append(value)
        kept = [value]
        rerolled = 0

        while node.op.test(value, threshold):
            if node.mode is RerollMode.ONCE and rerolled >= 1:
                break
            if not ctx.consume_reroll():
                exhausted = True
                ctx.max_rerolls_reached = True
                if ctx.fail_on_max_rerolls:
                    raise MaxRerollsExceededError(ctx.max_rerolls, node)
                logger.debug("Reroll budget exhausted at %s; keeping %d", node, value)
                break
            value = ctx.roll_die(dice.sides, node)
            all_rolls.append(value)
            rerolled += 1
            reroll_count += 1
            if node.mode is RerollMode.EXPLODING:
                kept.append(value)
            else:
                kept = [value]

        final_rolls.extend(kept)

    result = RerollDiceResult(
        rolls=final_rolls,
        total=sum(final_rolls),
        count=dice.count,
        sides=dice.sides,
        reroll_count=reroll_count,
        max_rerolls_reached=exhausted,
        reroll_mode=node.mode,
        condition=node.condition,
        all_rolls=all_rolls,
        final_rolls=final_rolls,
    )
    ctx.dice_results.append(result)

    details = (
        f"All rolls: [{_join(all_rolls)}] | Final values: [{_join(final_rolls)}] "
        f"| Reroll mode: {node.mode.value}"
    )
    if exhausted:
        details += " | reroll limit reached"
    ctx.record_step(
        StepType.REROLL,
        f"Rolled {dice} with {node.mode.value} rerolls on {node.condition}: "
        f"{result.total} ({reroll_count} rerolls)",
        result.total,
        details=details,
        rolls=final_rolls,
        node=node,
    )
    return result.total


# ---------------------------------------------------------------------------
# Arithmetic
# ---------------------------------------------------------------------------


def _interpret_binary(expr: BinaryNode, ctx: EvaluationContext) -> int:
    """Evaluate a binary expression, left operand first."""
    left = _interpret(expr.left, ctx)
    right = _interpret(expr.right, ctx)
    ctx.check_timeout(expr)

    if expr.op == BinaryOp.ADD:
        result = left + right
    elif expr.op == BinaryOp.SUB:
        result = left - right
    elif expr.op == BinaryOp.MUL:
        result = left * right
    elif expr.op == BinaryOp.DIV:
        if right == 0:
            raise EvaluationError("Division by zero", expr, "division", right)
        result = left // right
    else:
        raise EvaluationError(f"Unknown binary op: {expr.op}", expr)

    ctx.record_step(
        StepType.OPERATION,
        f"{left} {expr.op.value} {right} = {result}",
        result,
        details=_operation_details(expr.op, left, right, result),
        node=expr,
    )
    return result


def _operation_details(op: BinaryOp, left: int, right: int, result: int) -> str:
    if op == BinaryOp.ADD:
        return f"Addition: combining {left} and {right} to get {result}"
    if op == BinaryOp.SUB:
        return f"Subtraction: removing {right} from {left} to get {result}"
    if op == BinaryOp.MUL:
        return f"Multiplication: {left} times {right} equals {result}"
    return f"Division: {left} divided by {right} equals {result} (rounded down)"


def _interpret_negate(expr: NegateNode, ctx: EvaluationContext) -> int:
    value = _interpret(expr.operand, ctx)
    result = -value
    ctx.record_step(StepType.NEGATION, f"Negated {value} = {result}", result, node=expr)
    return result
