"""Threshold comparison between an observed value and a rule threshold."""

import math
import operator as op

from src.automation.domain.models import ComparisonOperator

OPERATORS = {
    ComparisonOperator.GT: op.gt,
    ComparisonOperator.GTE: op.ge,
    ComparisonOperator.LT: op.lt,
    ComparisonOperator.LTE: op.le,
    ComparisonOperator.EQ: op.eq,
    ComparisonOperator.NEQ: op.ne,
}


def evaluate(operator: ComparisonOperator, threshold: float, observed: float) -> bool:
    """
    Evaluate ``observed <operator> threshold``.

    Equality is exact, not epsilon-tolerant. NaN on either side fails every
    comparison, ``neq`` included, so a faulty reading never fires a rule.
    """
    if math.isnan(observed) or math.isnan(threshold):
        return False
    return OPERATORS[operator](observed, threshold)
