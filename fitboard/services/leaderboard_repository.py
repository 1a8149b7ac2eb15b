"""
Leaderboard Repository

Read-only access to the records leaderboards are built from, plus the
check-in change feed used by live leaderboards.

LeaderboardRepository is the abstract interface the builders depend on.
SupabaseLeaderboardRepository reads from Supabase (PostgREST) tables and
listens for check-in changes on Redis pub/sub. The check-in write path calls
publish_checkin_change() after inserting or updating a check-in.
"""

import json
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional

from fitboard.core.cache import get_redis_client, supports_pubsub
from fitboard.core.config import settings
from fitboard.core.database import get_supabase_client
from fitboard.models.leaderboard import (
    Challenge,
    Checkin,
    Enrolment,
    UserIdentity,
)
from fitboard.services.logger import logger

CheckinEventHandler = Callable[[Optional[Dict[str, Any]]], None]
ErrorHandler = Callable[[Exception], None]
Unsubscribe = Callable[[], None]


class LeaderboardRepository(ABC):
    """Queries the leaderboard engine needs from the persistence layer."""

    @abstractmethod
    def find_challenge(self, challenge_id: str) -> Optional[Challenge]:
        ...

    @abstractmethod
    def find_challenges(self, status: str) -> List[Challenge]:
        ...

    @abstractmethod
    def find_enrolments(
        self, challenge_id: str, payment_status: str = "paid"
    ) -> List[Enrolment]:
        ...

    @abstractmethod
    def find_enrolment_checkins(self, enrolment_id: str) -> List[Checkin]:
        """Check-ins of one enrolment, most recent date first."""

    @abstractmethod
    def find_challenge_checkins(self, challenge_id: str) -> List[Checkin]:
        """All check-ins of a challenge, oldest date first."""

    @abstractmethod
    def find_user_identity(self, user_id: str) -> Optional[UserIdentity]:
        ...

    @abstractmethod
    def subscribe_checkin_changes(
        self,
        challenge_id: str,
        on_event: CheckinEventHandler,
        on_error: ErrorHandler,
    ) -> Unsubscribe:
        """
        Listen for check-in changes on a challenge.

        on_event is invoked once with None right after subscribing (the
        initial snapshot), then once per change with the change payload.
        on_error is invoked if the feed fails. Handlers may be called from a
        background thread.
        """


def checkin_channel(challenge_id: str) -> str:
    """Return Redis channel name for a challenge's check-in changes."""
    return f"{settings.LEADERBOARD_CHANNEL_PREFIX}{challenge_id}"


def publish_checkin_change(
    challenge_id: str, checkin_id: Optional[str] = None, event: str = "upsert"
) -> bool:
    """Announce a check-in change to live leaderboards. Returns True if published."""
    try:
        redis = get_redis_client()
        if not redis or not hasattr(redis, "publish"):
            return False
        payload = json.dumps(
            {"type": event, "challenge_id": challenge_id, "checkin_id": checkin_id}
        )
        redis.publish(checkin_channel(challenge_id), payload)
        return True
    except Exception as e:
        logger.warning(f"[Leaderboard] Failed to publish check-in change: {e}")
        return False


def _decode_message(data: Any) -> Optional[Dict[str, Any]]:
    if isinstance(data, bytes):
        data = data.decode("utf-8")
    if not isinstance(data, str):
        return None
    try:
        decoded = json.loads(data)
    except ValueError:
        return None
    return decoded if isinstance(decoded, dict) else None


class SupabaseLeaderboardRepository(LeaderboardRepository):
    """Supabase tables + Redis pub/sub."""

    def __init__(self, supabase=None, redis_client=None):
        self._supabase = supabase
        self._redis = redis_client

    @property
    def supabase(self):
        if self._supabase is None:
            self._supabase = get_supabase_client()
        return self._supabase

    def find_challenge(self, challenge_id: str) -> Optional[Challenge]:
        result = (
            self.supabase.table("challenges")
            .select("id, name, status, start_date, end_date, scoring")
            .eq("id", challenge_id)
            .maybe_single()
            .execute()
        )
        if not result or not result.data:
            return None
        return self._to_challenge(result.data)

    def find_challenges(self, status: str) -> List[Challenge]:
        result = (
            self.supabase.table("challenges")
            .select("id, name, status, start_date, end_date, scoring")
            .eq("status", status)
            .execute()
        )
        return [self._to_challenge(row) for row in result.data or []]

    def find_enrolments(
        self, challenge_id: str, payment_status: str = "paid"
    ) -> List[Enrolment]:
        result = (
            self.supabase.table("enrolments")
            .select("id, user_id, challenge_id, payment_status, total_score")
            .eq("challenge_id", challenge_id)
            .eq("payment_status", payment_status)
            .execute()
        )
        return [
            Enrolment(
                **{**row, "total_score": row.get("total_score") or 0},
            )
            for row in result.data or []
        ]

    def find_enrolment_checkins(self, enrolment_id: str) -> List[Checkin]:
        result = (
            self.supabase.table("checkins")
            .select("*")
            .eq("enrolment_id", enrolment_id)
            .order("date", desc=True)
            .execute()
        )
        return [Checkin.model_validate(row) for row in result.data or []]

    def find_challenge_checkins(self, challenge_id: str) -> List[Checkin]:
        result = (
            self.supabase.table("checkins")
            .select("*")
            .eq("challenge_id", challenge_id)
            .order("date")
            .execute()
        )
        return [Checkin.model_validate(row) for row in result.data or []]

    def find_user_identity(self, user_id: str) -> Optional[UserIdentity]:
        result = (
            self.supabase.table("users")
            .select("id, name, username, email, profile_picture_url")
            .eq("id", user_id)
            .maybe_single()
            .execute()
        )
        if not result or not result.data:
            return None

        user = result.data
        return UserIdentity(
            user_id=user_id,
            display_name=user.get("name")
            or user.get("username")
            or user.get("email")
            or "Anonymous",
            avatar_url=user.get("profile_picture_url"),
        )

    def subscribe_checkin_changes(
        self,
        challenge_id: str,
        on_event: CheckinEventHandler,
        on_error: ErrorHandler,
    ) -> Unsubscribe:
        redis = self._redis or get_redis_client()
        channel = checkin_channel(challenge_id)

        if not supports_pubsub(redis):
            logger.warning(
                "Redis pub/sub unavailable, live leaderboard will not refresh",
                {"challenge_id": challenge_id},
            )
            on_event(None)
            return lambda: None

        def _handle_message(message: Dict[str, Any]) -> None:
            on_event(_decode_message(message.get("data")))

        def _handle_error(exc: BaseException, pubsub, thread) -> None:
            thread.stop()
            on_error(exc if isinstance(exc, Exception) else Exception(str(exc)))

        try:
            pubsub = redis.pubsub(ignore_subscribe_messages=True)
            pubsub.subscribe(**{channel: _handle_message})
            thread = pubsub.run_in_thread(
                sleep_time=0.1, daemon=True, exception_handler=_handle_error
            )
        except Exception as e:
            logger.error(
                f"Failed to subscribe to check-in changes for challenge {challenge_id}",
                {"error": str(e), "challenge_id": challenge_id},
            )
            on_error(e)
            return lambda: None

        on_event(None)

        def unsubscribe() -> None:
            try:
                thread.stop()
                pubsub.close()
            except Exception as e:
                logger.warning(
                    f"[Leaderboard] Error closing check-in subscription: {e}",
                    {"challenge_id": challenge_id},
                )

        return unsubscribe

    @staticmethod
    def _to_challenge(row: Dict[str, Any]) -> Challenge:
        return Challenge(**{**row, "scoring": row.get("scoring") or {}})
