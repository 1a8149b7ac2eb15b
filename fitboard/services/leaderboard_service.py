"""
Leaderboard Service

Builds challenge and global leaderboards from check-in records.

Leaderboards are always recomputed from the check-ins as they exist at build
time; the running total stored on an enrolment is never used. Nothing is
written back: ranks and totals only live in the returned objects.
"""

from datetime import datetime
from typing import Dict, Iterable, List, Optional

from fitboard.core.config import settings
from fitboard.models.leaderboard import (
    ChallengeLeaderboard,
    GlobalLeaderboardEntry,
    LeaderboardParticipant,
    LeaderboardStats,
    UserIdentity,
)
from fitboard.services.leaderboard_analytics import (
    participation_trend,
    score_distribution,
)
from fitboard.services.leaderboard_repository import (
    LeaderboardRepository,
    SupabaseLeaderboardRepository,
    Unsubscribe,
)
from fitboard.services.live_leaderboard import (
    LeaderboardCallback,
    LiveLeaderboardSubscription,
)
from fitboard.services.logger import logger
from fitboard.services.ranking import assign_ranks
from fitboard.services.scoring import get_progress_percentage, round_half_up
from fitboard.services.streaks import compute_streak

PAID = "paid"
PUBLISHED = "published"
ANONYMOUS = "Anonymous"


def _resolve_identities(
    repository: LeaderboardRepository, user_ids: Iterable[str]
) -> Dict[str, UserIdentity]:
    """Fetch display identity once per unique user. Lookup failures are skipped."""
    identities: Dict[str, UserIdentity] = {}
    for user_id in dict.fromkeys(user_ids):
        try:
            identity = repository.find_user_identity(user_id)
        except Exception as e:
            logger.warning(
                f"Failed to fetch user details for {user_id}",
                {"error": str(e), "user_id": user_id},
            )
            continue
        if identity:
            identities[user_id] = identity
    return identities


class ChallengeLeaderboardBuilder:
    """Ranks the paid participants of one challenge."""

    def __init__(self, repository: LeaderboardRepository):
        self.repository = repository

    async def build(self, challenge_id: str) -> Optional[ChallengeLeaderboard]:
        """
        Build a challenge leaderboard.

        Returns None if the challenge does not exist. I/O errors propagate to
        the caller.
        """
        challenge = self.repository.find_challenge(challenge_id)
        if not challenge:
            logger.warning(
                f"Challenge not found: {challenge_id}",
                {"challenge_id": challenge_id},
            )
            return None

        enrolments = self.repository.find_enrolments(challenge_id, PAID)
        if not enrolments:
            return ChallengeLeaderboard(challenge=challenge)

        participants: List[LeaderboardParticipant] = []
        for enrolment in enrolments:
            checkins = self.repository.find_enrolment_checkins(enrolment.id)
            dates = [c.date for c in checkins if c.date]
            streak = compute_streak(dates)

            participants.append(
                LeaderboardParticipant(
                    user_id=enrolment.user_id,
                    enrolment_id=enrolment.id,
                    challenge_id=challenge_id,
                    total_score=sum(c.auto_score or 0 for c in checkins),
                    checkins_count=len(checkins),
                    last_checkin=streak.last_checkin_date,
                    streak=streak.current_streak,
                    longest_streak=streak.longest_streak,
                )
            )

        ranked = assign_ranks(participants)

        identities = _resolve_identities(
            self.repository, (p.user_id for p in ranked)
        )
        for participant in ranked:
            identity = identities.get(participant.user_id)
            participant.display_name = (
                identity.display_name if identity else ANONYMOUS
            )
            participant.avatar_url = identity.avatar_url if identity else None

        scores = [p.total_score for p in ranked]
        return ChallengeLeaderboard(
            challenge=challenge,
            participants=ranked,
            total_participants=len(ranked),
            average_score=round_half_up(sum(scores) / len(scores)),
            top_score=max(scores),
        )


class GlobalLeaderboardBuilder:
    """Folds every published challenge's leaderboard into per-user totals."""

    def __init__(
        self,
        repository: LeaderboardRepository,
        challenge_builder: Optional[ChallengeLeaderboardBuilder] = None,
        skip_failed_challenges: Optional[bool] = None,
    ):
        self.repository = repository
        self.challenge_builder = challenge_builder or ChallengeLeaderboardBuilder(
            repository
        )
        self.skip_failed_challenges = (
            settings.GLOBAL_LEADERBOARD_SKIP_FAILED_CHALLENGES
            if skip_failed_challenges is None
            else skip_failed_challenges
        )

    async def _build_challenge(
        self, challenge_id: str
    ) -> Optional[ChallengeLeaderboard]:
        if not self.skip_failed_challenges:
            return await self.challenge_builder.build(challenge_id)

        try:
            return await self.challenge_builder.build(challenge_id)
        except Exception as e:
            logger.error(
                f"Skipping challenge {challenge_id} in global leaderboard",
                {"error": str(e), "challenge_id": challenge_id},
            )
            return None

    async def build(self, limit: int) -> List[GlobalLeaderboardEntry]:
        challenges = self.repository.find_challenges(PUBLISHED)

        totals: Dict[str, GlobalLeaderboardEntry] = {}
        for challenge in challenges:
            leaderboard = await self._build_challenge(challenge.id)
            if not leaderboard:
                continue

            for participant in leaderboard.participants:
                entry = totals.get(participant.user_id)
                if entry is None:
                    # Identity was already resolved by the challenge build
                    entry = GlobalLeaderboardEntry(
                        user_id=participant.user_id,
                        display_name=participant.display_name,
                        avatar_url=participant.avatar_url,
                    )
                    totals[participant.user_id] = entry
                elif (
                    entry.display_name == ANONYMOUS
                    and participant.display_name != ANONYMOUS
                ):
                    # Lookup failed in an earlier challenge but succeeded here
                    entry.display_name = participant.display_name
                    entry.avatar_url = participant.avatar_url

                entry.total_score += participant.total_score
                entry.challenges_count += 1
                entry.total_checkins += participant.checkins_count
                if participant.last_checkin and (
                    not entry.last_activity
                    or participant.last_checkin > entry.last_activity
                ):
                    entry.last_activity = participant.last_checkin

        for entry in totals.values():
            entry.average_score = round_half_up(
                entry.total_score / entry.challenges_count
            )

        ordered = sorted(totals.values(), key=lambda e: e.total_score, reverse=True)
        return assign_ranks(ordered[: max(limit, 0)])


class LeaderboardService:
    """
    Public leaderboard operations.

    Every method absorbs failures: None for single lookups, empty collections
    for lists.
    """

    def __init__(self, repository: Optional[LeaderboardRepository] = None):
        self.repository = repository or SupabaseLeaderboardRepository()
        self.challenge_builder = ChallengeLeaderboardBuilder(self.repository)

    def _global_builder(self) -> GlobalLeaderboardBuilder:
        return GlobalLeaderboardBuilder(self.repository, self.challenge_builder)

    async def get_challenge_leaderboard(
        self, challenge_id: str
    ) -> Optional[ChallengeLeaderboard]:
        """
        Get a challenge leaderboard.

        Args:
            challenge_id: Challenge ID

        Returns:
            Ranked leaderboard (empty when nobody has paid), or None if the
            challenge is unknown or the build failed
        """
        try:
            return await self.challenge_builder.build(challenge_id)
        except Exception as e:
            logger.error(
                f"Failed to get leaderboard for challenge {challenge_id}",
                {"error": str(e), "challenge_id": challenge_id},
            )
            return None

    async def get_global_leaderboard(
        self, limit: Optional[int] = None
    ) -> List[GlobalLeaderboardEntry]:
        """
        Get the cross-challenge leaderboard.

        Args:
            limit: Maximum number of entries (defaults to
                GLOBAL_LEADERBOARD_DEFAULT_LIMIT)

        Returns:
            Ranked entries, empty on failure
        """
        if limit is None:
            limit = settings.GLOBAL_LEADERBOARD_DEFAULT_LIMIT

        try:
            return await self._global_builder().build(limit)
        except Exception as e:
            logger.error(
                "Failed to get global leaderboard",
                {"error": str(e), "limit": limit},
            )
            return []

    async def get_user_challenge_rank(
        self, user_id: str, challenge_id: str
    ) -> Optional[int]:
        leaderboard = await self.get_challenge_leaderboard(challenge_id)
        if not leaderboard:
            return None

        for participant in leaderboard.participants:
            if participant.user_id == user_id:
                return participant.rank
        return None

    async def get_user_global_rank(self, user_id: str) -> Optional[int]:
        entries = await self.get_global_leaderboard(
            settings.USER_GLOBAL_RANK_SEARCH_WIDTH
        )
        for entry in entries:
            if entry.user_id == user_id:
                return entry.rank
        return None

    async def get_challenge_leaderboard_stats(
        self, challenge_id: str
    ) -> Optional[LeaderboardStats]:
        """Summary statistics, score histogram and daily participation."""
        leaderboard = await self.get_challenge_leaderboard(challenge_id)
        if not leaderboard:
            return None

        try:
            trend = participation_trend(self.repository, challenge_id)
        except Exception as e:
            logger.error(
                f"Failed to get participation trend for challenge {challenge_id}",
                {"error": str(e), "challenge_id": challenge_id},
            )
            trend = {}

        return LeaderboardStats(
            total_participants=leaderboard.total_participants,
            average_score=leaderboard.average_score,
            top_score=leaderboard.top_score,
            score_distribution=score_distribution(leaderboard.participants),
            participation_trend=trend,
        )

    async def get_challenge_progress(
        self, challenge_id: str, now: Optional[datetime] = None
    ) -> Optional[int]:
        """Percentage of the challenge window elapsed, None without dates."""
        try:
            challenge = self.repository.find_challenge(challenge_id)
        except Exception as e:
            logger.error(
                f"Failed to get challenge {challenge_id}",
                {"error": str(e), "challenge_id": challenge_id},
            )
            return None

        if not challenge or not challenge.start_date or not challenge.end_date:
            return None

        try:
            return get_progress_percentage(
                challenge.start_date, challenge.end_date, now
            )
        except ValueError as e:
            logger.error(
                f"Invalid dates on challenge {challenge_id}",
                {
                    "error": str(e),
                    "challenge_id": challenge_id,
                    "start_date": challenge.start_date,
                    "end_date": challenge.end_date,
                },
            )
            return None

    def subscribe_to_challenge_leaderboard(
        self,
        challenge_id: str,
        callback: LeaderboardCallback,
        debounce_seconds: Optional[float] = None,
    ) -> Unsubscribe:
        """
        Push a freshly built leaderboard to `callback` on every check-in change.

        Must be called from within a running event loop. Returns a function
        that stops further deliveries.
        """
        subscription = LiveLeaderboardSubscription(
            repository=self.repository,
            builder=self.challenge_builder,
            challenge_id=challenge_id,
            callback=callback,
            debounce_seconds=debounce_seconds,
        )
        subscription.start()
        return subscription.stop


# Global instance
leaderboard_service = LeaderboardService()
