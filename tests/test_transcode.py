"""Tests for transcode-triggered rule re-evaluation."""

import pytest

from factories import cond, make_context, make_rule, make_session
from sharewatch.engine.transcode import (
    reevaluate_on_transcode_change,
    select_transcode_rules,
    transcode_state_changed,
)
from sharewatch.models.session import VideoDetails


def direct_play():
    return make_session(
        source_video_width=3840,
        source_video_height=2160,
        stream_video_details=VideoDetails(width=3840, height=2160),
    )


def transcoding():
    return make_session(
        is_transcode=True,
        video_decision="transcode",
        source_video_width=3840,
        source_video_height=2160,
        stream_video_details=VideoDetails(width=1920, height=1080),
    )


def test_state_change_detection() -> None:
    assert transcode_state_changed(direct_play(), transcoding()) is True
    assert transcode_state_changed(direct_play(), direct_play()) is False
    assert transcode_state_changed(make_session(), make_session(audio_decision="transcode")) is True


def test_select_transcode_rules() -> None:
    concurrent = make_rule([cond("concurrent_streams", "gt", 2)], id="concurrent")
    downgrade = make_rule([cond("is_transcode_downgrade", "eq", True)], id="downgrade")

    assert [r.id for r in select_transcode_rules([concurrent, downgrade])] == ["downgrade"]


@pytest.mark.asyncio
async def test_reevaluates_only_transcode_rules_on_change() -> None:
    current = transcoding()
    peers = [make_session("sess_a"), make_session("sess_b")]
    context = make_context(session=current, active_sessions=[current, *peers])
    rules = [
        make_rule([cond("concurrent_streams", "gt", 2)], id="concurrent"),
        make_rule([cond("is_transcode_downgrade", "eq", True)], id="downgrade"),
        make_rule([cond("output_resolution", "lt", "4K")], id="inactive", is_active=False),
    ]

    results = await reevaluate_on_transcode_change(context, rules, previous_session=direct_play())

    assert [r.rule_id for r in results] == ["downgrade"]
    assert results[0].evidence[0].conditions[0].details == {
        "source_resolution": "4K",
        "output_resolution": "1080p",
    }


@pytest.mark.asyncio
async def test_no_change_skips_evaluation() -> None:
    current = transcoding()
    rules = [make_rule([cond("is_transcoding", "eq", "video")])]

    results = await reevaluate_on_transcode_change(
        make_context(session=current), rules, previous_session=transcoding()
    )

    assert results == []


@pytest.mark.asyncio
async def test_change_without_transcode_rules() -> None:
    rules = [make_rule([cond("concurrent_streams", "gt", 0)])]

    results = await reevaluate_on_transcode_change(
        make_context(session=transcoding()), rules, previous_session=direct_play()
    )

    assert results == []
