"""Tests for comparison primitives."""

import math

import pytest

from sharewatch.engine.comparisons import compare
from sharewatch.models.rule import Operator


@pytest.mark.parametrize(
    ("actual", "operator", "expected", "result"),
    [
        (3, Operator.GT, 2, True),
        (2, Operator.GT, 2, False),
        (2, Operator.GTE, 2, True),
        (1.5, Operator.LT, 2, True),
        (2, Operator.LTE, 1, False),
        (math.inf, Operator.GT, 500, True),
    ],
)
def test_numeric_ordering(actual, operator, expected, result) -> None:
    assert compare(actual, operator, expected) is result


def test_ordering_requires_numbers_on_both_sides() -> None:
    assert compare("10", Operator.GT, 2) is False
    assert compare(10, Operator.GT, "2") is False
    assert compare(True, Operator.GT, 0) is False


def test_string_equality_ignores_case() -> None:
    assert compare("US", Operator.EQ, "us") is True
    assert compare("US", Operator.NEQ, "ca") is True
    assert compare("Plex Web", Operator.NEQ, "plex web") is False


def test_booleans_do_not_equal_numbers() -> None:
    assert compare(True, Operator.EQ, True) is True
    assert compare(True, Operator.EQ, 1) is False
    assert compare(False, Operator.NEQ, 0) is True


def test_membership_operators() -> None:
    assert compare("tv", Operator.IN, ["tv", "mobile"]) is True
    assert compare("desktop", Operator.IN, ["tv", "mobile"]) is False
    assert compare("DE", Operator.NOT_IN, ["us", "ca"]) is True
    assert compare("US", Operator.NOT_IN, ["us", "ca"]) is False


def test_membership_requires_list_threshold() -> None:
    assert compare("tv", Operator.IN, "tv") is False
    assert compare("tv", Operator.NOT_IN, "mobile") is False


def test_plain_string_operator_and_unknown_operator() -> None:
    assert compare(5, "gte", 5) is True
    assert compare(5, "between", [1, 10]) is False
