"""Engine input and evaluator contracts."""

from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Protocol

from sharewatch.engine.geo import is_private_ip
from sharewatch.models.rule import Condition, Rule
from sharewatch.models.session import Server, ServerUser, Session, ensure_utc


@dataclass(frozen=True)
class EvaluationContext:
    """Everything one rule evaluation may look at.

    Built by the caller per evaluation and never mutated by the engine.
    ``rule`` is unset on the base context handed to rule-set evaluation and
    attached per rule with :meth:`with_rule`.
    """

    session: Session
    server_user: ServerUser
    server: Server
    active_sessions: Sequence[Session] = ()
    recent_sessions: Sequence[Session] = ()
    rule: Rule | None = None
    is_private_ip: Callable[[str], bool] = is_private_ip
    now: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __post_init__(self) -> None:
        object.__setattr__(self, "now", ensure_utc(self.now))

    def with_rule(self, rule: Rule) -> "EvaluationContext":
        """Return a copy of this context bound to ``rule``."""
        return replace(self, rule=rule)

    @property
    def rule_id(self) -> str | None:
        return self.rule.id if self.rule else None


@dataclass
class EvaluatorResult:
    """Raw outcome of one field evaluator."""

    matched: bool
    actual: Any
    related_session_ids: list[str] | None = None
    details: dict[str, Any] | None = None


class ConditionEvaluator(Protocol):
    """Field evaluator signature.

    Evaluators are pure. An evaluator may return an awaitable, which only
    the asynchronous evaluation path resolves.
    """

    def __call__(
        self, context: EvaluationContext, condition: Condition
    ) -> EvaluatorResult | Awaitable[EvaluatorResult]: ...
