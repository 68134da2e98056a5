"""
Condition Evaluator: threshold comparisons used by optimization strategies.

Pure functions: a metric value, a comparison operator and a threshold go
in, a boolean comes out.  Unknown operators fail closed (False).
"""

import logging
from enum import Enum
from typing import Any, Callable, Iterable

logger = logging.getLogger("mindvault.conditions")


class Operator(Enum):
    GT = "gt"
    LT = "lt"
    EQ = "eq"
    GTE = "gte"
    LTE = "lte"


_COMPARATORS: dict[Operator, Callable[[float, float], bool]] = {
    Operator.GT: lambda v, t: v > t,
    Operator.LT: lambda v, t: v < t,
    Operator.EQ: lambda v, t: v == t,
    Operator.GTE: lambda v, t: v >= t,
    Operator.LTE: lambda v, t: v <= t,
}


def evaluate_condition(value: float, operator: Operator | str, threshold: float) -> bool:
    """Compare ``value`` to ``threshold`` with ``operator``.

    >>> evaluate_condition(5, "gt", 3)
    True
    >>> evaluate_condition(5, "unknown-op", 3)
    False
    """
    if not isinstance(operator, Operator):
        try:
            operator = Operator(operator)
        except ValueError:
            logger.debug("Unknown operator %r, condition evaluates to False", operator)
            return False
    return _COMPARATORS[operator](value, threshold)


def all_conditions_hold(
    conditions: Iterable[Any],
    resolve: Callable[[str], float],
) -> bool:
    """True when every condition holds (short-circuits on the first False).

    Each condition needs ``metric``, ``operator`` and ``value`` attributes;
    ``resolve(metric)`` supplies the current reading.
    """
    for condition in conditions:
        current = resolve(condition.metric)
        if not evaluate_condition(current, condition.operator, condition.value):
            return False
    return True
