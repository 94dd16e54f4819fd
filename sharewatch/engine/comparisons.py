"""Operator application for condition thresholds."""

import operator as operator_module
from numbers import Real
from typing import Any

from sharewatch.models.rule import Operator

_ORDERING = {
    Operator.GT: operator_module.gt,
    Operator.GTE: operator_module.ge,
    Operator.LT: operator_module.lt,
    Operator.LTE: operator_module.le,
}


def _is_number(value: Any) -> bool:
    return isinstance(value, Real) and not isinstance(value, bool)


def _equals(actual: Any, expected: Any) -> bool:
    if isinstance(actual, str) and isinstance(expected, str):
        return actual.casefold() == expected.casefold()
    if isinstance(actual, bool) or isinstance(expected, bool):
        # Keep True from equalling 1
        return type(actual) is type(expected) and actual == expected
    return actual == expected


def compare(actual: Any, operator: Operator | str, expected: Any) -> bool:
    """Apply ``operator`` to an observed value and a threshold.

    Strings compare case-insensitively. Ordering operators only apply to
    real numbers and membership operators require a list threshold; any
    other combination does not match.
    """
    try:
        operator = Operator(operator)
    except ValueError:
        return False

    if operator == Operator.EQ:
        return _equals(actual, expected)
    if operator == Operator.NEQ:
        return not _equals(actual, expected)

    if operator in _ORDERING:
        if not (_is_number(actual) and _is_number(expected)):
            return False
        return _ORDERING[operator](actual, expected)

    # Membership: in / not_in
    if not isinstance(expected, (list, tuple)):
        return False
    found = any(_equals(actual, item) for item in expected)
    return found if operator == Operator.IN else not found
