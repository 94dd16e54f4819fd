"""Builders for sessions, users, rules and contexts used across tests."""

from datetime import datetime, timedelta, timezone
from typing import Any

from sharewatch.engine.types import EvaluationContext
from sharewatch.models.rule import Action, Condition, ConditionGroup, Rule, RuleConditions
from sharewatch.models.session import Server, ServerUser, Session, VideoDetails

NOW = datetime(2026, 1, 10, 14, 30, tzinfo=timezone.utc)

# Reference coordinates
NEW_YORK = (40.7128, -74.0060)
LOS_ANGELES = (34.0522, -118.2437)
LONDON = (51.5074, -0.1278)
PARIS = (48.8566, 2.3522)


def make_user(**overrides: Any) -> ServerUser:
    data: dict[str, Any] = {
        "id": "user_1",
        "username": "alice",
        "trust_score": 100,
        "created_at": NOW - timedelta(days=400),
        "last_activity_at": NOW - timedelta(hours=2),
    }
    data.update(overrides)
    return ServerUser(**data)


def make_server(**overrides: Any) -> Server:
    data: dict[str, Any] = {"id": "srv_1", "name": "Home Plex", "type": "plex"}
    data.update(overrides)
    return Server(**data)


def make_session(session_id: str = "sess_current", **overrides: Any) -> Session:
    lat, lon = overrides.pop("location", NEW_YORK)
    data: dict[str, Any] = {
        "id": session_id,
        "server_id": "srv_1",
        "server_user_id": "user_1",
        "started_at": NOW,
        "ip_address": "203.0.113.10",
        "geo_lat": lat,
        "geo_lon": lon,
        "geo_city": "New York",
        "geo_country": "US",
        "device_id": f"dev_{session_id}",
        "player_name": "Living Room",
        "product": "Plex for Roku",
        "device": "Roku Ultra",
        "platform": "Roku",
        "media_type": "movie",
        "is_transcode": False,
        "video_decision": "directplay",
        "audio_decision": "directplay",
        "bitrate": 20_000_000,
        "source_video_width": 1920,
        "source_video_height": 1080,
        "stream_video_details": VideoDetails(width=1920, height=1080, bitrate=20_000_000),
    }
    data.update(overrides)
    return Session(**data)


def cond(field: str, operator: str, value: Any = None, **params: Any) -> Condition:
    return Condition(field=field, operator=operator, value=value, params=params)


def make_rule(*groups: list[Condition], **overrides: Any) -> Rule:
    data: dict[str, Any] = {
        "id": "rule_1",
        "name": "Test Rule",
        "conditions": RuleConditions(
            groups=[ConditionGroup(conditions=list(conditions)) for conditions in groups]
        ),
        "actions": [Action(type="create_violation", config={"severity": "warning"})],
    }
    data.update(overrides)
    return Rule(**data)


def make_context(
    session: Session | None = None,
    active_sessions: list[Session] | None = None,
    recent_sessions: list[Session] | None = None,
    rule: Rule | None = None,
    **overrides: Any,
) -> EvaluationContext:
    session = session or make_session()
    data: dict[str, Any] = {
        "session": session,
        "server_user": make_user(),
        "server": make_server(),
        "active_sessions": active_sessions if active_sessions is not None else [session],
        "recent_sessions": recent_sessions or [],
        "rule": rule,
        "now": NOW,
    }
    data.update(overrides)
    return EvaluationContext(**data)
