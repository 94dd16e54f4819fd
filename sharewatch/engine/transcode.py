"""Rule re-evaluation when a session's transcode decision changes."""

from collections.abc import Iterable

from sharewatch.core.logging import get_logger
from sharewatch.engine.rules import RuleEngine, get_rule_engine, has_transcode_conditions
from sharewatch.engine.types import EvaluationContext
from sharewatch.models.evaluation import EvaluationResult
from sharewatch.models.rule import Rule
from sharewatch.models.session import Session

logger = get_logger(__name__)


def transcode_state_changed(previous: Session, current: Session) -> bool:
    """Check if the video or audio transcode decision differs between snapshots."""
    return (
        previous.video_decision != current.video_decision
        or previous.audio_decision != current.audio_decision
    )


def select_transcode_rules(rules: Iterable[Rule]) -> list[Rule]:
    """Rules whose outcome can change on a transcode decision flip."""
    return [rule for rule in rules if has_transcode_conditions(rule)]


async def reevaluate_on_transcode_change(
    base_context: EvaluationContext,
    rules: Iterable[Rule],
    previous_session: Session,
    engine: RuleEngine | None = None,
) -> list[EvaluationResult]:
    """Re-check transcode-sensitive rules after a mid-stream transcode change.

    Args:
        base_context: Context built around the updated session
        rules: Candidate rules, typically every active rule
        previous_session: Snapshot of the session before the update
        engine: Engine to use, the singleton by default

    Returns:
        Matching results, empty when the transcode state did not change
    """
    session = base_context.session
    if not transcode_state_changed(previous_session, session):
        return []

    candidates = select_transcode_rules(rules)
    logger.info(
        "Transcode state changed, re-evaluating rules",
        session_id=session.id,
        video_decision=session.video_decision,
        audio_decision=session.audio_decision,
        rule_count=len(candidates),
    )
    if not candidates:
        return []

    engine = engine or get_rule_engine()
    return await engine.evaluate_rules_async(base_context, candidates)
