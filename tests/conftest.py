"""Pytest configuration and fixtures."""

import pytest

from factories import make_context, make_session
from sharewatch.engine.rules import RuleEngine
from sharewatch.engine.types import EvaluationContext
from sharewatch.models.session import Session


@pytest.fixture
def engine() -> RuleEngine:
    """Engine bound to the built-in evaluator registry."""
    return RuleEngine()


@pytest.fixture
def current_session() -> Session:
    return make_session()


@pytest.fixture
def base_context(current_session: Session) -> EvaluationContext:
    """Context around a single active session with no rule attached."""
    return make_context(session=current_session)
