"""
Static analysis of dice expression trees.

Everything here works on the tree alone: no dice are rolled and no
context is needed. Bounds use interval arithmetic, so they are exact for
sums of dice and conservative where dice combine through ``*`` or ``/``.
"""

from __future__ import annotations

from collections.abc import Iterator

from dicelang.core.config import DEFAULT_MAX_REROLLS
from dicelang.core.errors import EvaluationError
from dicelang.core.ir.expressions import (
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
from dicelang.core.ir.results import ExpressionRange


def children(node: Expr) -> Iterator[Expr]:
    """Direct sub-expressions evaluated for ``node``.

    Dice wrappers are leaves: their inner ``DiceNode`` is rolled by the
    wrapper, never evaluated on its own.
    """
    if isinstance(node, BinaryNode):
        yield node.left
        yield node.right
    elif isinstance(node, NegateNode):
        yield node.operand
    elif isinstance(node, GroupNode):
        yield node.expression


def walk(node: Expr) -> Iterator[Expr]:
    """Pre-order traversal."""
    yield node
    for child in children(node):
        yield from walk(child)


def count_nodes(node: Expr) -> int:
    """Number of nodes the evaluator visits."""
    return sum(1 for _ in walk(node))


def tree_depth(node: Expr) -> int:
    """Depth of the tree; a single leaf has depth 1."""
    return 1 + max((tree_depth(c) for c in children(node)), default=0)


def dice_count(node: Expr) -> int:
    """Dice rolled before any reroll or explosion."""
    total = 0
    for n in walk(node):
        if isinstance(n, DiceNode):
            total += n.count
        elif isinstance(n, ConditionalDiceNode | RerollDiceNode):
            total += n.dice.count
    return total


def is_deterministic(node: Expr) -> bool:
    """True when the expression contains no dice."""
    return not any(isinstance(n, DICE_NODE_TYPES) for n in walk(node))


# ---------------------------------------------------------------------------
# Range
# ---------------------------------------------------------------------------


def expression_range(node: Expr, max_rerolls: int = DEFAULT_MAX_REROLLS) -> ExpressionRange:
    """
    Compute the minimum, maximum, and average value of an expression.

    Args:
        node: Expression tree.
        max_rerolls: Reroll budget; bounds how far exploding dice can go.

    Returns:
        ExpressionRange. The average is the expected value for plain and
        conditional dice combined through ``+``, ``-``, ``*``, and unary
        minus, and the midpoint of the bounds otherwise.

    Raises:
        EvaluationError: Invalid dice, or a divisor that can only be zero.
    """
    if isinstance(node, NumberNode):
        return ExpressionRange(minimum=node.value, maximum=node.value, average=node.value)

    if isinstance(node, DiceNode):
        _check_dice(node, node)
        return ExpressionRange(
            minimum=node.count,
            maximum=node.count * node.sides,
            average=node.count * (node.sides + 1) / 2,
        )

    if isinstance(node, ConditionalDiceNode):
        _check_dice(node.dice, node)
        hits = _hit_count(node.op, node.threshold, node.dice.sides)
        return ExpressionRange(
            minimum=0,
            maximum=node.dice.count,
            average=node.dice.count * hits / node.dice.sides,
        )

    if isinstance(node, RerollDiceNode):
        _check_dice(node.dice, node)
        low = node.dice.count
        high = node.dice.count * node.dice.sides
        if node.mode is RerollMode.EXPLODING:
            high += max(max_rerolls, 0) * node.dice.sides
        return _midpoint(low, high)

    if isinstance(node, GroupNode):
        return expression_range(node.expression, max_rerolls)

    if isinstance(node, NegateNode):
        inner = expression_range(node.operand, max_rerolls)
        return ExpressionRange(
            minimum=-inner.maximum, maximum=-inner.minimum, average=-inner.average
        )

    if isinstance(node, BinaryNode):
        left = expression_range(node.left, max_rerolls)
        right = expression_range(node.right, max_rerolls)
        return _combine(node, left, right)

    raise EvaluationError(f"Unknown expression type: {type(node).__name__}", node)


def _check_dice(dice: DiceNode, owner: Expr) -> None:
    if dice.count < 0:
        raise EvaluationError("Dice count cannot be negative", owner, "range analysis", dice.count)
    if dice.sides < 1:
        raise EvaluationError(
            "Dice must have at least one side", owner, "range analysis", dice.sides
        )


def _hit_count(op: ComparisonOp, threshold: int, sides: int) -> int:
    """Faces in 1..sides that satisfy ``face <op> threshold``."""
    if op is ComparisonOp.GT:
        hits = sides - threshold
    elif op is ComparisonOp.GE:
        hits = sides - threshold + 1
    elif op is ComparisonOp.LT:
        hits = threshold - 1
    elif op is ComparisonOp.LE:
        hits = threshold
    else:
        return 1 if 1 <= threshold <= sides else 0
    return min(max(hits, 0), sides)


def _midpoint(low: int, high: int) -> ExpressionRange:
    return ExpressionRange(minimum=low, maximum=high, average=(low + high) / 2)


def _combine(node: BinaryNode, left: ExpressionRange, right: ExpressionRange) -> ExpressionRange:
    if node.op == BinaryOp.ADD:
        return ExpressionRange(
            minimum=left.minimum + right.minimum,
            maximum=left.maximum + right.maximum,
            average=left.average + right.average,
        )

    if node.op == BinaryOp.SUB:
        return ExpressionRange(
            minimum=left.minimum - right.maximum,
            maximum=left.maximum - right.minimum,
            average=left.average - right.average,
        )

    if node.op == BinaryOp.MUL:
        products = [
            a * b for a in (left.minimum, left.maximum) for b in (right.minimum, right.maximum)
        ]
        return ExpressionRange(
            minimum=min(products),
            maximum=max(products),
            average=left.average * right.average,
        )

    # Floor division; a zero divisor is skipped unless it is the only value
    divisors = [d for d in (right.minimum, right.maximum) if d != 0]
    if right.minimum < 0 < right.maximum:
        divisors += [-1, 1]
    elif right.minimum == 0 and right.maximum > 0:
        divisors.append(1)
    elif right.maximum == 0 and right.minimum < 0:
        divisors.append(-1)
    if not divisors:
        raise EvaluationError("Division by zero", node, "range analysis", 0)
    quotients = [a // d for a in (left.minimum, left.maximum) for d in divisors]
    return _midpoint(min(quotients), max(quotients))
