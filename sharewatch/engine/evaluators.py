"""Field evaluators and the registry that maps condition fields to them.

Every evaluator is a pure function of ``(EvaluationContext, Condition)``
returning an :class:`EvaluatorResult`. Numeric observations are rounded to
two decimals in ``actual`` and ``details``; matching always uses the
unrounded value.
"""

from collections.abc import Iterable, Mapping
from datetime import datetime, timedelta
from types import MappingProxyType
from typing import Any

from sharewatch.core.config import get_settings
from sharewatch.engine.classify import (
    client_name,
    get_resolution,
    normalize_device_type,
    normalize_platform,
    resolution_to_number,
)
from sharewatch.engine.comparisons import compare
from sharewatch.engine.geo import calculate_distance_km, is_ip_in_cidr, parse_ipv4
from sharewatch.engine.types import ConditionEvaluator, EvaluationContext, EvaluatorResult
from sharewatch.models.rule import Condition, ConditionField, Operator, TranscodingValue
from sharewatch.models.session import Session


# ============================================================================
# Helpers
# ============================================================================


def _round2(value: float) -> float:
    return round(value, 2)


def _same_device(a: Session, b: Session) -> bool:
    return bool(a.device_id and b.device_id and a.device_id == b.device_id)


def _peer_sessions(
    context: EvaluationContext,
    sessions: Iterable[Session],
    condition: Condition,
) -> list[Session]:
    """Other sessions of the evaluated user.

    The current session is excluded by identity. With
    ``params.exclude_same_device`` sessions sharing the current device id are
    dropped too.
    """
    session = context.session
    peers = [
        s for s in sessions
        if s.server_user_id == context.server_user.id and s is not session
    ]
    if condition.params.get("exclude_same_device", False):
        peers = [s for s in peers if not _same_device(session, s)]
    return peers


def _window_sessions(context: EvaluationContext, condition: Condition) -> tuple[list[Session], float]:
    """Recent sessions of the user started within the trailing window."""
    window_hours = condition.params.get("window_hours")
    if window_hours is None:
        window_hours = get_settings().default_window_hours
    cutoff = context.session.started_at - timedelta(hours=window_hours)
    sessions = [
        s for s in context.recent_sessions
        if s.server_user_id == context.server_user.id and s.started_at >= cutoff
    ]
    return sessions, window_hours


def _days_since(moment: datetime, now: datetime) -> int:
    # timedelta.days floors, matching whole elapsed days
    return (now - moment).days


def _location(session: Session) -> dict[str, Any]:
    return {
        "lat": session.geo_lat,
        "lon": session.geo_lon,
        "city": session.geo_city,
        "country": session.geo_country,
    }


def _compare_resolution(resolution: str, condition: Condition) -> EvaluatorResult:
    """Compare a resolution tier against a condition.

    Membership operators compare tier names; every other operator compares
    tier ordinals.
    """
    if condition.operator in (Operator.IN, Operator.NOT_IN):
        return EvaluatorResult(
            matched=compare(resolution, condition.operator, condition.value),
            actual=resolution,
        )

    target = condition.value
    if isinstance(target, str):
        target = resolution_to_number(target)

    return EvaluatorResult(
        matched=compare(resolution_to_number(resolution), condition.operator, target),
        actual=resolution,
    )


# ============================================================================
# Session behavior
# ============================================================================


def evaluate_concurrent_streams(context: EvaluationContext, condition: Condition) -> EvaluatorResult:
    peers = _peer_sessions(context, context.active_sessions, condition)
    count = len(peers) + 1

    return EvaluatorResult(
        matched=compare(count, condition.operator, condition.value),
        actual=count,
        related_session_ids=[s.id for s in peers],
    )


def evaluate_active_session_distance_km(
    context: EvaluationContext, condition: Condition
) -> EvaluatorResult:
    session = context.session
    peers = _peer_sessions(context, context.active_sessions, condition)

    if not peers:
        return EvaluatorResult(
            matched=compare(0, condition.operator, condition.value),
            actual=0,
            related_session_ids=[],
        )

    max_distance = 0.0
    distances: dict[str, float] = {}
    for other in peers:
        distance = calculate_distance_km(session.geo_lat, session.geo_lon, other.geo_lat, other.geo_lon)
        if distance is None:
            continue
        distances[other.id] = _round2(distance)
        max_distance = max(max_distance, distance)

    return EvaluatorResult(
        matched=compare(max_distance, condition.operator, condition.value),
        actual=_round2(max_distance),
        related_session_ids=[s.id for s in peers],
        details={"distances": distances},
    )


def evaluate_travel_speed_kmh(context: EvaluationContext, condition: Condition) -> EvaluatorResult:
    """Speed needed to get from the user's previous session to this one."""
    session = context.session
    previous_sessions = sorted(
        _peer_sessions(context, context.recent_sessions, condition),
        key=lambda s: s.started_at,
        reverse=True,
    )

    if not previous_sessions:
        return EvaluatorResult(matched=compare(0, condition.operator, condition.value), actual=0)

    previous = previous_sessions[0]
    distance = calculate_distance_km(
        session.geo_lat, session.geo_lon, previous.geo_lat, previous.geo_lon
    )
    if distance is None:
        return EvaluatorResult(
            matched=compare(0, condition.operator, condition.value),
            actual=0,
            related_session_ids=[previous.id],
        )

    delta_hours = (session.started_at - previous.started_at).total_seconds() / 3600
    if delta_hours <= 0:
        # Simultaneous sessions in different places cannot be travelled between
        speed_kmh = float("inf") if distance > 0 else 0.0
    else:
        speed_kmh = distance / delta_hours

    return EvaluatorResult(
        matched=compare(speed_kmh, condition.operator, condition.value),
        actual=_round2(speed_kmh),
        related_session_ids=[previous.id],
        details={
            "distance": _round2(distance),
            "time_delta_hours": _round2(delta_hours),
            "previous_location": _location(previous),
            "current_location": _location(session),
        },
    )


def evaluate_unique_ips_in_window(context: EvaluationContext, condition: Condition) -> EvaluatorResult:
    sessions, window_hours = _window_sessions(context, condition)

    ips = [context.session.ip_address]
    for s in sessions:
        if s.ip_address not in ips:
            ips.append(s.ip_address)

    return EvaluatorResult(
        matched=compare(len(ips), condition.operator, condition.value),
        actual=len(ips),
        details={"ips": ips, "window_hours": window_hours},
    )


def evaluate_unique_devices_in_window(
    context: EvaluationContext, condition: Condition
) -> EvaluatorResult:
    sessions, window_hours = _window_sessions(context, condition)

    devices: list[str] = []
    for s in [context.session, *sessions]:
        identifier = s.device_id if s.device_id is not None else s.player_name
        if identifier is None:
            identifier = "unknown"
        if identifier not in devices:
            devices.append(identifier)

    return EvaluatorResult(
        matched=compare(len(devices), condition.operator, condition.value),
        actual=len(devices),
        details={"devices": devices, "window_hours": window_hours},
    )


def evaluate_inactive_days(context: EvaluationContext, condition: Condition) -> EvaluatorResult:
    user = context.server_user
    # Never active counts from account creation
    since = user.last_activity_at or user.created_at
    inactive_days = _days_since(since, context.now)

    return EvaluatorResult(
        matched=compare(inactive_days, condition.operator, condition.value),
        actual=inactive_days,
        details={
            "last_activity_at": user.last_activity_at.isoformat() if user.last_activity_at else None,
        },
    )


# ============================================================================
# Stream quality
# ============================================================================


def evaluate_source_resolution(context: EvaluationContext, condition: Condition) -> EvaluatorResult:
    session = context.session
    return _compare_resolution(
        get_resolution(session.source_video_width, session.source_video_height), condition
    )


def evaluate_output_resolution(context: EvaluationContext, condition: Condition) -> EvaluatorResult:
    stream = context.session.stream_video_details
    width = stream.width if stream else None
    height = stream.height if stream else None
    return _compare_resolution(get_resolution(width, height), condition)


def evaluate_is_transcoding(context: EvaluationContext, condition: Condition) -> EvaluatorResult:
    """Match per-track transcode decisions.

    String values select which track must be transcoded. Boolean values are
    the older form and compare against the session-level transcode flag.
    """
    session = context.session
    details = {
        "video_decision": session.video_decision,
        "audio_decision": session.audio_decision,
    }
    value = condition.value

    if isinstance(value, str):
        overall = "transcoding" if session.is_transcode else "direct"
        if value == TranscodingValue.VIDEO:
            matched = session.video_decision == "transcode"
            actual = session.video_decision or "unknown"
        elif value == TranscodingValue.AUDIO:
            matched = session.audio_decision == "transcode"
            actual = session.audio_decision or "unknown"
        elif value == TranscodingValue.VIDEO_OR_AUDIO:
            matched = session.is_transcode
            actual = overall
        elif value == TranscodingValue.NEITHER:
            matched = not session.is_transcode
            actual = overall
        else:
            matched = False
            actual = "unknown"
        return EvaluatorResult(matched=matched, actual=actual, details=details)

    return EvaluatorResult(
        matched=compare(session.is_transcode, condition.operator, value),
        actual=session.is_transcode,
        details=details,
    )


def evaluate_is_transcode_downgrade(context: EvaluationContext, condition: Condition) -> EvaluatorResult:
    session = context.session

    if not session.is_transcode:
        return EvaluatorResult(matched=compare(False, condition.operator, condition.value), actual=False)

    source = get_resolution(session.source_video_width, session.source_video_height)
    stream = session.stream_video_details
    output = get_resolution(stream.width if stream else None, stream.height if stream else None)
    is_downgrade = resolution_to_number(source) > resolution_to_number(output)

    return EvaluatorResult(
        matched=compare(is_downgrade, condition.operator, condition.value),
        actual=is_downgrade,
        details={"source_resolution": source, "output_resolution": output},
    )


def evaluate_source_bitrate_mbps(context: EvaluationContext, condition: Condition) -> EvaluatorResult:
    session = context.session
    source = session.source_video_details
    # Prefer the source track bitrate over the session-level figure
    bitrate_bps = source.bitrate if source and source.bitrate is not None else session.bitrate
    bitrate_mbps = (bitrate_bps or 0) / 1_000_000

    return EvaluatorResult(
        matched=compare(bitrate_mbps, condition.operator, condition.value),
        actual=_round2(bitrate_mbps),
    )


# ============================================================================
# User attributes
# ============================================================================


def evaluate_user_id(context: EvaluationContext, condition: Condition) -> EvaluatorResult:
    user_id = context.server_user.id
    return EvaluatorResult(matched=compare(user_id, condition.operator, condition.value), actual=user_id)


def evaluate_trust_score(context: EvaluationContext, condition: Condition) -> EvaluatorResult:
    score = context.server_user.trust_score
    return EvaluatorResult(matched=compare(score, condition.operator, condition.value), actual=score)


def evaluate_account_age_days(context: EvaluationContext, condition: Condition) -> EvaluatorResult:
    age_days = _days_since(context.server_user.created_at, context.now)
    return EvaluatorResult(matched=compare(age_days, condition.operator, condition.value), actual=age_days)


# ============================================================================
# Device / client
# ============================================================================


def evaluate_device_type(context: EvaluationContext, condition: Condition) -> EvaluatorResult:
    device_type = normalize_device_type(context.session.device, context.session.platform)
    return EvaluatorResult(
        matched=compare(device_type, condition.operator, condition.value),
        actual=device_type,
    )


def evaluate_client_name(context: EvaluationContext, condition: Condition) -> EvaluatorResult:
    name = client_name(context.session.product, context.session.player_name)
    return EvaluatorResult(matched=compare(name, condition.operator, condition.value), actual=name)


def evaluate_platform(context: EvaluationContext, condition: Condition) -> EvaluatorResult:
    platform = normalize_platform(context.session.platform)
    return EvaluatorResult(
        matched=compare(platform, condition.operator, condition.value),
        actual=platform,
    )


# ============================================================================
# Network / location
# ============================================================================


def evaluate_is_local_network(context: EvaluationContext, condition: Condition) -> EvaluatorResult:
    is_local = bool(context.is_private_ip(context.session.ip_address))
    return EvaluatorResult(
        matched=compare(is_local, condition.operator, condition.value),
        actual=is_local,
    )


def evaluate_country(context: EvaluationContext, condition: Condition) -> EvaluatorResult:
    country = context.session.geo_country or ""
    return EvaluatorResult(matched=compare(country, condition.operator, condition.value), actual=country)


def evaluate_ip_in_range(context: EvaluationContext, condition: Condition) -> EvaluatorResult:
    """Match the session IP against one CIDR (eq/neq) or a list (in/not_in).

    IPv4 only: any other address, or an operator/value shape outside the
    two supported forms, never matches.
    """
    ip = context.session.ip_address
    if not ip:
        return EvaluatorResult(matched=False, actual=None)
    if parse_ipv4(ip) is None:
        return EvaluatorResult(matched=False, actual=ip)

    operator, value = condition.operator, condition.value

    if operator in (Operator.IN, Operator.NOT_IN):
        if not isinstance(value, list):
            return EvaluatorResult(matched=False, actual=ip)
        in_range = any(isinstance(cidr, str) and is_ip_in_cidr(ip, cidr) for cidr in value)
        return EvaluatorResult(matched=in_range if operator == Operator.IN else not in_range, actual=ip)

    if operator in (Operator.EQ, Operator.NEQ) and isinstance(value, str):
        in_range = is_ip_in_cidr(ip, value)
        return EvaluatorResult(matched=in_range if operator == Operator.EQ else not in_range, actual=ip)

    return EvaluatorResult(matched=False, actual=ip)


# ============================================================================
# Scope
# ============================================================================


def evaluate_server_id(context: EvaluationContext, condition: Condition) -> EvaluatorResult:
    server_id = context.server.id
    return EvaluatorResult(matched=compare(server_id, condition.operator, condition.value), actual=server_id)


def evaluate_library_id(context: EvaluationContext, condition: Condition) -> EvaluatorResult:
    # TODO: sessions carry no library id yet; add one to Session and compare
    # it here. Until then every session reports an empty library.
    return EvaluatorResult(matched=compare("", condition.operator, condition.value), actual="")


def evaluate_media_type(context: EvaluationContext, condition: Condition) -> EvaluatorResult:
    media_type = context.session.media_type
    return EvaluatorResult(
        matched=compare(media_type, condition.operator, condition.value),
        actual=media_type,
    )


# ============================================================================
# Registry
# ============================================================================

EVALUATOR_REGISTRY: Mapping[ConditionField, ConditionEvaluator] = MappingProxyType({
    # Session behavior
    ConditionField.CONCURRENT_STREAMS: evaluate_concurrent_streams,
    ConditionField.ACTIVE_SESSION_DISTANCE_KM: evaluate_active_session_distance_km,
    ConditionField.TRAVEL_SPEED_KMH: evaluate_travel_speed_kmh,
    ConditionField.UNIQUE_IPS_IN_WINDOW: evaluate_unique_ips_in_window,
    ConditionField.UNIQUE_DEVICES_IN_WINDOW: evaluate_unique_devices_in_window,
    ConditionField.INACTIVE_DAYS: evaluate_inactive_days,
    # Stream quality
    ConditionField.SOURCE_RESOLUTION: evaluate_source_resolution,
    ConditionField.OUTPUT_RESOLUTION: evaluate_output_resolution,
    ConditionField.IS_TRANSCODING: evaluate_is_transcoding,
    ConditionField.IS_TRANSCODE_DOWNGRADE: evaluate_is_transcode_downgrade,
    ConditionField.SOURCE_BITRATE_MBPS: evaluate_source_bitrate_mbps,
    # User attributes
    ConditionField.USER_ID: evaluate_user_id,
    ConditionField.TRUST_SCORE: evaluate_trust_score,
    ConditionField.ACCOUNT_AGE_DAYS: evaluate_account_age_days,
    # Device/client
    ConditionField.DEVICE_TYPE: evaluate_device_type,
    ConditionField.CLIENT_NAME: evaluate_client_name,
    ConditionField.PLATFORM: evaluate_platform,
    # Network/location
    ConditionField.IS_LOCAL_NETWORK: evaluate_is_local_network,
    ConditionField.COUNTRY: evaluate_country,
    ConditionField.IP_IN_RANGE: evaluate_ip_in_range,
    # Scope
    ConditionField.SERVER_ID: evaluate_server_id,
    ConditionField.LIBRARY_ID: evaluate_library_id,
    ConditionField.MEDIA_TYPE: evaluate_media_type,
})


def get_evaluator(
    field: ConditionField | str,
    registry: Mapping[ConditionField, ConditionEvaluator] = EVALUATOR_REGISTRY,
) -> ConditionEvaluator | None:
    """Look up the evaluator for a field, None if the field is unknown."""
    known = ConditionField.lookup(field)
    if known is None:
        return None
    return registry.get(known)
