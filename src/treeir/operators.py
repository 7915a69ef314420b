"""Comparison operators used by test nodes."""

from __future__ import annotations

import operator
from collections.abc import Callable
from enum import StrEnum


class Operator(StrEnum):
    """Comparison applied as ``feature_value <op> threshold``.

    Members compare equal to their symbol, so ``Operator("<=")`` and
    ``Operator.LE`` are interchangeable.

    Examples:
        >>> Operator("<") is Operator.LT
        True
        >>> Operator.LE.apply(0.5, 0.5)
        True
    """

    EQ = "=="
    LT = "<"
    LE = "<="
    GT = ">"
    GE = ">="

    def apply(self, value: float, threshold: float) -> bool:
        """Evaluate ``value <op> threshold``.

        Args:
            value (float): The feature value.
            threshold (float): The test threshold.

        Returns:
            bool: Result of the comparison.
        """
        return _COMPARISONS[self](value, threshold)


_COMPARISONS: dict[Operator, Callable[[float, float], bool]] = {
    Operator.EQ: operator.eq,
    Operator.LT: operator.lt,
    Operator.LE: operator.le,
    Operator.GT: operator.gt,
    Operator.GE: operator.ge,
}
