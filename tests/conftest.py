"""
Pytest configuration and fixtures for Fitboard API tests.

Most tests run against InMemoryLeaderboardRepository. Integration tests that
need a real Supabase project (SUPABASE_URL, SUPABASE_SERVICE_KEY) are skipped
when it is not configured.
"""

import asyncio
import os
from collections import defaultdict
from typing import Callable, Dict, Generator, List, Optional, Set

import pytest
from fastapi.testclient import TestClient

from fitboard.api.v1.endpoints.leaderboards import get_leaderboard_service
from fitboard.models.leaderboard import (
    Challenge,
    Checkin,
    Enrolment,
    ScoringConfig,
    UserIdentity,
)
from fitboard.services.leaderboard_repository import LeaderboardRepository
from fitboard.services.leaderboard_service import LeaderboardService
from main import app


def _supabase_configured() -> bool:
    """Check if Supabase is configured for integration tests."""
    return bool(os.getenv("SUPABASE_URL") and os.getenv("SUPABASE_SERVICE_KEY"))


requires_supabase = pytest.mark.skipif(
    not _supabase_configured(),
    reason="SUPABASE_URL and SUPABASE_SERVICE_KEY required for integration tests",
)


class InMemoryLeaderboardRepository(LeaderboardRepository):
    """LeaderboardRepository backed by lists, with a synchronous change feed."""

    def __init__(self):
        self.challenges: Dict[str, Challenge] = {}
        self.enrolments: List[Enrolment] = []
        self.checkins: List[Checkin] = []
        self.users: Dict[str, UserIdentity] = {}
        self.broken_challenges: Set[str] = set()
        self.identity_lookups: List[str] = []
        self.identity_failures: Dict[str, int] = {}
        self._subscribers: Dict[str, list] = defaultdict(list)

    def find_challenge(self, challenge_id: str) -> Optional[Challenge]:
        return self.challenges.get(challenge_id)

    def find_challenges(self, status: str) -> List[Challenge]:
        return [c for c in self.challenges.values() if c.status == status]

    def find_enrolments(
        self, challenge_id: str, payment_status: str = "paid"
    ) -> List[Enrolment]:
        if challenge_id in self.broken_challenges:
            raise ConnectionError(f"enrolments query failed for {challenge_id}")
        return [
            e
            for e in self.enrolments
            if e.challenge_id == challenge_id and e.payment_status == payment_status
        ]

    def find_enrolment_checkins(self, enrolment_id: str) -> List[Checkin]:
        rows = [c for c in self.checkins if c.enrolment_id == enrolment_id]
        return sorted(rows, key=lambda c: c.date or "", reverse=True)

    def find_challenge_checkins(self, challenge_id: str) -> List[Checkin]:
        rows = [c for c in self.checkins if c.challenge_id == challenge_id]
        return sorted(rows, key=lambda c: c.date or "")

    def find_user_identity(self, user_id: str) -> Optional[UserIdentity]:
        self.identity_lookups.append(user_id)
        if self.identity_failures.get(user_id):
            self.identity_failures[user_id] -= 1
            raise ConnectionError(f"users query failed for {user_id}")
        return self.users.get(user_id)

    def subscribe_checkin_changes(self, challenge_id, on_event, on_error):
        handlers = (on_event, on_error)
        self._subscribers[challenge_id].append(handlers)
        on_event(None)

        def unsubscribe() -> None:
            if handlers in self._subscribers[challenge_id]:
                self._subscribers[challenge_id].remove(handlers)

        return unsubscribe

    # Test helpers

    def add_checkin(self, checkin: Checkin) -> None:
        self.checkins.append(checkin)
        for on_event, _ in list(self._subscribers[checkin.challenge_id]):
            on_event({"type": "upsert", "checkin_id": checkin.id})

    def fail_stream(self, challenge_id: str, error: Exception) -> None:
        for _, on_error in list(self._subscribers[challenge_id]):
            on_error(error)

    def subscriber_count(self, challenge_id: str) -> int:
        return len(self._subscribers[challenge_id])


def make_checkin(
    checkin_id: str,
    enrolment_id: str,
    challenge_id: str,
    user_id: str,
    date: str,
    auto_score: Optional[int],
) -> Checkin:
    return Checkin(
        id=checkin_id,
        enrolment_id=enrolment_id,
        challenge_id=challenge_id,
        user_id=user_id,
        date=date,
        auto_score=auto_score,
    )


def seed_repository(repository: InMemoryLeaderboardRepository) -> None:
    """
    c1 (published): u1 30 pts / 3-day streak, u2 30 pts, u3 15 pts, u4 unpaid
    c2 (published): u1 12 pts, u3 45 pts
    c3 (draft):     u2 999 pts, ignored by the global leaderboard
    empty (published): no paid enrolments
    """
    scoring = ScoringConfig(
        checkin_points=10, workout_points=5, nutrition_points=3,
        steps_buckets=[5000, 8000, 10000],
    )
    for challenge_id, status in (
        ("c1", "published"),
        ("c2", "published"),
        ("c3", "draft"),
        ("empty", "published"),
    ):
        repository.challenges[challenge_id] = Challenge(
            id=challenge_id,
            name=f"Challenge {challenge_id}",
            status=status,
            start_date="2024-03-01",
            end_date="2024-03-31",
            scoring=scoring,
        )

    repository.enrolments = [
        Enrolment(id="e1", user_id="u1", challenge_id="c1", payment_status="paid"),
        Enrolment(id="e2", user_id="u2", challenge_id="c1", payment_status="paid"),
        Enrolment(id="e3", user_id="u3", challenge_id="c1", payment_status="paid"),
        Enrolment(id="e4", user_id="u4", challenge_id="c1", payment_status="pending"),
        Enrolment(id="e5", user_id="u1", challenge_id="c2", payment_status="paid"),
        Enrolment(id="e6", user_id="u3", challenge_id="c2", payment_status="paid"),
        Enrolment(id="e7", user_id="u2", challenge_id="c3", payment_status="paid"),
        Enrolment(id="e8", user_id="u1", challenge_id="empty", payment_status="refunded"),
    ]

    repository.checkins = [
        make_checkin("k1", "e1", "c1", "u1", "2024-03-01", 10),
        make_checkin("k2", "e1", "c1", "u1", "2024-03-02", 10),
        make_checkin("k3", "e1", "c1", "u1", "2024-03-03", 10),
        make_checkin("k4", "e2", "c1", "u2", "2024-03-01", 20),
        make_checkin("k5", "e2", "c1", "u2", "2024-03-03", 10),
        make_checkin("k6", "e3", "c1", "u3", "2024-03-02", 15),
        make_checkin("k7", "e4", "c1", "u4", "2024-03-03", 100),
        make_checkin("k8", "e5", "c2", "u1", "2024-03-05", 12),
        make_checkin("k9", "e6", "c2", "u3", "2024-03-04", 40),
        make_checkin("k10", "e6", "c2", "u3", "2024-03-05", 5),
        make_checkin("k11", "e7", "c3", "u2", "2024-03-01", 999),
    ]

    repository.users = {
        "u1": UserIdentity(user_id="u1", display_name="Ada", avatar_url="ada.png"),
        "u2": UserIdentity(user_id="u2", display_name="Ben"),
    }


async def wait_until(predicate: Callable[[], bool], timeout: float = 1.0) -> None:
    """Yield to the event loop until predicate() holds or fail after timeout."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(0.01)


@pytest.fixture
def repository() -> InMemoryLeaderboardRepository:
    repo = InMemoryLeaderboardRepository()
    seed_repository(repo)
    return repo


@pytest.fixture
def service(repository: InMemoryLeaderboardRepository) -> LeaderboardService:
    return LeaderboardService(repository)


@pytest.fixture
def client(service: LeaderboardService) -> Generator[TestClient, None, None]:
    """Test client for the FastAPI app, wired to the in-memory repository."""
    app.dependency_overrides[get_leaderboard_service] = lambda: service
    with TestClient(app, base_url="http://test") as c:
        yield c
    app.dependency_overrides.pop(get_leaderboard_service, None)


@pytest.fixture
def api_base() -> str:
    """Base path for API v1 endpoints."""
    return "/api/v1"
