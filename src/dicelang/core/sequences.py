"""
Pure helpers over sequences of numbers.

Nothing here holds state. Functions that need randomness take a
``random_source`` returning floats in [0, 1), defaulting to
``random.random``, so callers can replay results.
"""

from __future__ import annotations

import math
import random
from collections import Counter
from collections.abc import Callable, Hashable, Iterable, Sequence
from dataclasses import dataclass
from typing import TypeVar

T = TypeVar("T")
H = TypeVar("H", bound=Hashable)

RandomSource = Callable[[], float]


def max_value(numbers: Sequence[int]) -> int:
    """Largest value, or 0 for an empty sequence."""
    return max(numbers) if numbers else 0


def min_value(numbers: Sequence[int]) -> int:
    """Smallest value, or 0 for an empty sequence."""
    return min(numbers) if numbers else 0


def sort_numbers(numbers: Iterable[int], ascending: bool = True) -> list[int]:
    return sorted(numbers, reverse=not ascending)


def unique(items: Iterable[H]) -> list[H]:
    """Distinct items in first-seen order."""
    return list(dict.fromkeys(items))


def count_occurrences(items: Iterable[H]) -> dict[H, int]:
    return dict(Counter(items))


def top_n(numbers: Sequence[int], n: int) -> list[int]:
    """The ``n`` largest values, largest first."""
    return sort_numbers(numbers, ascending=False)[: max(n, 0)]


def bottom_n(numbers: Sequence[int], n: int) -> list[int]:
    """The ``n`` smallest values, smallest first."""
    return sort_numbers(numbers)[: max(n, 0)]


def drop_highest(numbers: Sequence[int], n: int = 1) -> list[int]:
    """Ascending values without the ``n`` highest."""
    if n <= 0:
        return sort_numbers(numbers)
    if n >= len(numbers):
        return []
    return sort_numbers(numbers)[: len(numbers) - n]


def drop_lowest(numbers: Sequence[int], n: int = 1) -> list[int]:
    """Ascending values without the ``n`` lowest."""
    if n >= len(numbers):
        return []
    return sort_numbers(numbers)[max(n, 0) :]


def keep_middle(numbers: Sequence[int], keep: int) -> list[int]:
    """
    Keep ``keep`` values from the middle of the sorted sequence.

    When an odd number must go, the extra one is dropped from the top.
    """
    if keep >= len(numbers):
        return list(numbers)
    ordered = sort_numbers(numbers)
    to_drop = len(ordered) - max(keep, 0)
    drop_low = to_drop // 2
    drop_high = to_drop - drop_low
    return ordered[drop_low : len(ordered) - drop_high]


def shuffle(items: Sequence[T], random_source: RandomSource = random.random) -> list[T]:
    """Fisher-Yates shuffle into a new list."""
    result = list(items)
    for i in range(len(result) - 1, 0, -1):
        j = math.floor(random_source() * (i + 1))
        result[i], result[j] = result[j], result[i]
    return result


def random_sample(
    items: Sequence[T], n: int, random_source: RandomSource = random.random
) -> list[T]:
    """``n`` distinct positions drawn without replacement."""
    if n >= len(items):
        return list(items)
    return shuffle(items, random_source)[: max(n, 0)]


def random_element(items: Sequence[T], random_source: RandomSource = random.random) -> T | None:
    if not items:
        return None
    return items[math.floor(random_source() * len(items))]


@dataclass(frozen=True)
class SampleSummary:
    minimum: int
    maximum: int
    mean: float
    median: float
    most_common: list[tuple[int, int]]


def summarize(numbers: Sequence[int], common: int = 5) -> SampleSummary:
    """Basic statistics over sampled values."""
    if not numbers:
        return SampleSummary(minimum=0, maximum=0, mean=0.0, median=0.0, most_common=[])
    middle = keep_middle(numbers, 1 if len(numbers) % 2 else 2)
    counts = count_occurrences(numbers)
    ranked = sorted(counts.items(), key=lambda item: (-item[1], item[0]))
    return SampleSummary(
        minimum=min_value(numbers),
        maximum=max_value(numbers),
        mean=sum(numbers) / len(numbers),
        median=sum(middle) / len(middle),
        most_common=ranked[:common],
    )
