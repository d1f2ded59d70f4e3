"""
Expression tree types for dice expressions.

Supports:
- Integer literals: 3, 42
- Dice: 3d6, d20 (count defaults to 1)
- Arithmetic: +, -, *, / (floor division), unary minus
- Grouping: (2d6 + 1) * 2
- Conditional dice: 5d10>=7 counts dice meeting the threshold
- Reroll dice: 3d6r1 (recursive), 4d6ro<2 (once), 1d6! / 2d10e>=9 (exploding)

Nodes are frozen; a tree exclusively owns its children.
"""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field

# ---------------------------------------------------------------------------
# Operators
# ---------------------------------------------------------------------------


class BinaryOp(StrEnum):
    """Arithmetic operators."""

    ADD = "+"
    SUB = "-"
    MUL = "*"
    DIV = "/"

    @property
    def verb(self) -> str:
        return _OP_NAMES[self]


_OP_NAMES = {
    BinaryOp.ADD: "addition",
    BinaryOp.SUB: "subtraction",
    BinaryOp.MUL: "multiplication",
    BinaryOp.DIV: "division",
}


class ComparisonOp(StrEnum):
    """Comparison operators used by conditional and reroll modifiers.

    ``==`` in source text is normalized to ``EQ``.
    """

    GT = ">"
    GE = ">="
    LT = "<"
    LE = "<="
    EQ = "="

    @classmethod
    def from_text(cls, text: str) -> ComparisonOp:
        if text == "==":
            return cls.EQ
        return cls(text)

    def test(self, value: int, threshold: int) -> bool:
        """Return True when ``value <op> threshold`` holds."""
        if self is ComparisonOp.GT:
            return value > threshold
        if self is ComparisonOp.GE:
            return value >= threshold
        if self is ComparisonOp.LT:
            return value < threshold
        if self is ComparisonOp.LE:
            return value <= threshold
        return value == threshold


class RerollMode(StrEnum):
    """How a die that meets its reroll condition is rerolled."""

    ONCE = "once"  # at most one reroll per die
    RECURSIVE = "recursive"  # reroll until the condition no longer holds
    EXPLODING = "exploding"  # like recursive, but every roll adds to the total


_MODE_CODES = {
    RerollMode.ONCE: "ro",
    RerollMode.RECURSIVE: "r",
    RerollMode.EXPLODING: "!",
}


# ---------------------------------------------------------------------------
# Tree nodes
# ---------------------------------------------------------------------------


class NumberNode(BaseModel):
    """An integer literal."""

    value: int = Field(description="The literal value")
    position: int = Field(default=0, description="Source offset")

    model_config = ConfigDict(frozen=True)

    def __str__(self) -> str:
        return str(self.value)


class DiceNode(BaseModel):
    """
    A plain dice roll: ``count`` dice with ``sides`` faces each.

    Bounds are checked at evaluation time, not here, so a tree built by
    hand can still describe an invalid roll and fail cleanly.
    """

    count: int = Field(description="Number of dice")
    sides: int = Field(description="Faces per die")
    position: int = Field(default=0, description="Source offset")

    model_config = ConfigDict(frozen=True)

    def __str__(self) -> str:
        return f"{self.count}d{self.sides}"


class BinaryNode(BaseModel):
    """Binary operation: left op right."""

    op: BinaryOp
    left: Expr
    right: Expr
    position: int = Field(default=0, description="Offset of the operator")

    model_config = ConfigDict(frozen=True)

    def __str__(self) -> str:
        return f"({self.left} {self.op.value} {self.right})"


class NegateNode(BaseModel):
    """Unary minus."""

    operand: Expr
    position: int = Field(default=0, description="Source offset")

    model_config = ConfigDict(frozen=True)

    def __str__(self) -> str:
        return f"-{self.operand}"


class GroupNode(BaseModel):
    """Parenthesized sub-expression."""

    expression: Expr
    position: int = Field(default=0, description="Offset of the opening parenthesis")

    model_config = ConfigDict(frozen=True)

    def __str__(self) -> str:
        text = str(self.expression)
        # Binary nodes already render their own parentheses
        if isinstance(self.expression, BinaryNode):
            return text
        return f"({text})"


class ConditionalDiceNode(BaseModel):
    """
    Dice whose value is the number of individual dice meeting a threshold.

    ``5d10>=7`` evaluates to how many of the five dice showed 7 or more,
    never to the sum of the dice.
    """

    dice: DiceNode
    op: ComparisonOp
    threshold: int
    position: int = Field(default=0, description="Source offset")

    model_config = ConfigDict(frozen=True)

    def __str__(self) -> str:
        return f"{self.dice}{self.op.value}{self.threshold}"


class RerollDiceNode(BaseModel):
    """
    Dice rerolled while each die meets ``op threshold``.

    ``threshold`` of None means "the maximum face" and is only produced
    for exploding dice written without a threshold (``1d6!``).
    """

    dice: DiceNode
    mode: RerollMode
    op: ComparisonOp = ComparisonOp.EQ
    threshold: int | None = None
    position: int = Field(default=0, description="Source offset")

    model_config = ConfigDict(frozen=True)

    @property
    def effective_threshold(self) -> int:
        return self.dice.sides if self.threshold is None else self.threshold

    @property
    def condition(self) -> str:
        """Condition text such as ``=1`` or ``>=5``."""
        return f"{self.op.value}{self.effective_threshold}"

    def __str__(self) -> str:
        code = _MODE_CODES[self.mode]
        if self.threshold is None:
            return f"{self.dice}{code}"
        op = "" if self.op is ComparisonOp.EQ else self.op.value
        return f"{self.dice}{code}{op}{self.threshold}"


# ---------------------------------------------------------------------------
# Union type
# ---------------------------------------------------------------------------

Expr = (
    NumberNode
    | DiceNode
    | BinaryNode
    | NegateNode
    | GroupNode
    | ConditionalDiceNode
    | RerollDiceNode
)

DICE_NODE_TYPES = (DiceNode, ConditionalDiceNode, RerollDiceNode)

# Rebuild models for recursive forward references
BinaryNode.model_rebuild()
NegateNode.model_rebuild()
GroupNode.model_rebuild()
