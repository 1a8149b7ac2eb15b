"""Tests for the Supabase/Redis leaderboard repository."""

import json
from unittest.mock import MagicMock, patch

import pytest

from fitboard.core.cache import DummyRedis
from fitboard.services.leaderboard_repository import (
    SupabaseLeaderboardRepository,
    _decode_message,
    checkin_channel,
    publish_checkin_change,
)
from fitboard.services.leaderboard_service import LeaderboardService
from tests.conftest import requires_supabase


def _query(data):
    """PostgREST query builder mock whose filters chain back to itself."""
    query = MagicMock()
    for method in ("select", "eq", "order", "maybe_single", "limit"):
        getattr(query, method).return_value = query
    query.execute.return_value = MagicMock(data=data)
    return query


def _supabase(data):
    supabase = MagicMock()
    supabase.table.return_value = _query(data)
    return supabase


def test_find_challenge_maps_row():
    repo = SupabaseLeaderboardRepository(
        supabase=_supabase(
            {
                "id": "c1",
                "name": "Spring Steps",
                "status": "published",
                "start_date": "2024-03-01",
                "end_date": "2024-03-31",
                "scoring": None,
            }
        )
    )

    challenge = repo.find_challenge("c1")
    assert challenge.name == "Spring Steps"
    assert challenge.scoring.checkin_points == 0
    repo.supabase.table.assert_called_with("challenges")


def test_find_challenge_missing():
    repo = SupabaseLeaderboardRepository(supabase=_supabase(None))
    assert repo.find_challenge("nope") is None


def test_find_enrolments_filters_paid():
    supabase = _supabase(
        [{"id": "e1", "user_id": "u1", "challenge_id": "c1",
          "payment_status": "paid", "total_score": None}]
    )
    repo = SupabaseLeaderboardRepository(supabase=supabase)

    enrolments = repo.find_enrolments("c1")
    assert [(e.id, e.total_score) for e in enrolments] == [("e1", 0)]
    supabase.table.return_value.eq.assert_any_call("payment_status", "paid")


def test_find_enrolment_checkins_newest_first():
    supabase = _supabase(
        [{"id": "k1", "enrolment_id": "e1", "challenge_id": "c1", "user_id": "u1",
          "date": "2024-03-02", "auto_score": 12, "steps": 9000}]
    )
    repo = SupabaseLeaderboardRepository(supabase=supabase)

    checkins = repo.find_enrolment_checkins("e1")
    assert checkins[0].auto_score == 12
    assert checkins[0].steps == 9000
    supabase.table.return_value.order.assert_called_with("date", desc=True)


@pytest.mark.parametrize(
    "row, expected",
    [
        ({"name": "Ada", "username": "ada", "email": "a@x.io"}, "Ada"),
        ({"name": None, "username": "ada", "email": "a@x.io"}, "ada"),
        ({"name": "", "username": None, "email": "a@x.io"}, "a@x.io"),
        ({}, "Anonymous"),
    ],
)
def test_find_user_identity_display_name(row, expected):
    repo = SupabaseLeaderboardRepository(supabase=_supabase({"id": "u1", **row}))
    assert repo.find_user_identity("u1").display_name == expected


def test_find_user_identity_avatar():
    repo = SupabaseLeaderboardRepository(
        supabase=_supabase({"id": "u1", "name": "Ada", "profile_picture_url": "a.png"})
    )
    assert repo.find_user_identity("u1").avatar_url == "a.png"


def test_subscribe_without_pubsub_sends_snapshot_only():
    repo = SupabaseLeaderboardRepository(supabase=MagicMock(), redis_client=DummyRedis())
    events, errors = [], []

    unsubscribe = repo.subscribe_checkin_changes("c1", events.append, errors.append)
    assert events == [None]
    assert errors == []
    unsubscribe()


def test_subscribe_with_redis_pubsub():
    redis = MagicMock()
    pubsub = redis.pubsub.return_value
    thread = pubsub.run_in_thread.return_value
    repo = SupabaseLeaderboardRepository(supabase=MagicMock(), redis_client=redis)
    events, errors = [], []

    unsubscribe = repo.subscribe_checkin_changes("c1", events.append, errors.append)
    assert events == [None]

    handlers = pubsub.subscribe.call_args.kwargs
    handler = handlers[checkin_channel("c1")]
    handler({"data": json.dumps({"type": "upsert", "checkin_id": "k1"}).encode()})
    assert events[1] == {"type": "upsert", "checkin_id": "k1"}

    exception_handler = pubsub.run_in_thread.call_args.kwargs["exception_handler"]
    exception_handler(ConnectionError("lost"), pubsub, thread)
    assert isinstance(errors[0], ConnectionError)

    unsubscribe()
    pubsub.close.assert_called_once()


def test_subscribe_failure_reports_error():
    redis = MagicMock()
    redis.pubsub.side_effect = ConnectionError("refused")
    repo = SupabaseLeaderboardRepository(supabase=MagicMock(), redis_client=redis)
    events, errors = [], []

    repo.subscribe_checkin_changes("c1", events.append, errors.append)
    assert events == []
    assert str(errors[0]) == "refused"


def test_checkin_channel():
    assert checkin_channel("c1") == "leaderboard:checkins:c1"


@patch("fitboard.services.leaderboard_repository.get_redis_client")
def test_publish_checkin_change(mock_get_redis):
    redis = MagicMock()
    mock_get_redis.return_value = redis

    assert publish_checkin_change("c1", "k1") is True
    channel, payload = redis.publish.call_args.args
    assert channel == "leaderboard:checkins:c1"
    assert json.loads(payload) == {
        "type": "upsert",
        "challenge_id": "c1",
        "checkin_id": "k1",
    }


@patch("fitboard.services.leaderboard_repository.get_redis_client")
def test_publish_checkin_change_without_redis(mock_get_redis):
    mock_get_redis.return_value = None
    assert publish_checkin_change("c1") is False

    mock_get_redis.return_value = MagicMock(publish=MagicMock(side_effect=OSError))
    assert publish_checkin_change("c1") is False


@pytest.mark.parametrize(
    "data, expected",
    [
        (b'{"type": "delete"}', {"type": "delete"}),
        ('{"type": "upsert"}', {"type": "upsert"}),
        ("not json", None),
        ("[1, 2]", None),
        (1, None),
    ],
)
def test_decode_message(data, expected):
    assert _decode_message(data) == expected


@requires_supabase
@pytest.mark.asyncio
async def test_global_leaderboard_against_supabase():
    """Global leaderboard builds against a real project and is ranked."""
    entries = await LeaderboardService(SupabaseLeaderboardRepository()).get_global_leaderboard(10)
    ranks = [e.rank for e in entries]
    assert ranks == sorted(ranks)


def _supabase_tables(tables):
    supabase = MagicMock()
    supabase.table.side_effect = lambda name: _query(tables[name])
    return supabase


def test_stored_checkin_metrics_are_not_range_checked():
    supabase = _supabase(
        [{"id": "k1", "enrolment_id": "e1", "challenge_id": "c1", "user_id": "u1",
          "date": "2024-03-02", "auto_score": 12, "sleep_hours": 25,
          "nutrition_score": 14, "steps": -5}]
    )
    checkin = SupabaseLeaderboardRepository(supabase=supabase).find_challenge_checkins("c1")[0]
    assert (checkin.sleep_hours, checkin.nutrition_score, checkin.steps) == (25, 14, -5)


@pytest.mark.asyncio
async def test_leaderboard_counts_checkin_with_out_of_range_metrics():
    supabase = _supabase_tables(
        {
            "challenges": {"id": "c1", "name": "Spring Steps", "status": "published",
                           "start_date": "2024-03-01", "end_date": "2024-03-31",
                           "scoring": {}},
            "enrolments": [{"id": "e1", "user_id": "u1", "challenge_id": "c1",
                            "payment_status": "paid", "total_score": 0}],
            "checkins": [{"id": "k1", "enrolment_id": "e1", "challenge_id": "c1",
                          "user_id": "u1", "date": "2024-03-02", "auto_score": 12,
                          "sleep_hours": 25, "water_intake": -1}],
            "users": {"id": "u1", "name": "Ada"},
        }
    )
    service = LeaderboardService(SupabaseLeaderboardRepository(supabase=supabase))

    leaderboard = await service.get_challenge_leaderboard("c1")
    assert leaderboard is not None
    participant = leaderboard.participants[0]
    assert (participant.display_name, participant.total_score) == ("Ada", 12)
