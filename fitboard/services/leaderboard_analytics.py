"""
Leaderboard analytics: score histogram and daily participation.
"""

from typing import Dict, List, Sequence

from fitboard.models.leaderboard import LeaderboardParticipant, ScoreBucket
from fitboard.services.leaderboard_repository import LeaderboardRepository
from fitboard.services.scoring import round_half_up

DISTRIBUTION_BUCKETS = 5


def score_distribution(
    participants: Sequence[LeaderboardParticipant],
) -> List[ScoreBucket]:
    """
    Split [min, max] of the participants' scores into 5 equal-width buckets.

    Buckets are half-open [start, end) except the last, which also counts the
    top score. When every score is equal there is no width to split, so a
    single bucket holds everyone.
    """
    if not participants:
        return []

    scores = [p.total_score for p in participants]
    low = min(scores)
    high = max(scores)
    score_range = high - low

    if score_range == 0:
        return [
            ScoreBucket(label=f"{low}-{high}", start=low, end=high, count=len(scores))
        ]

    bucket_size = score_range / DISTRIBUTION_BUCKETS
    buckets: List[ScoreBucket] = []
    for i in range(DISTRIBUTION_BUCKETS):
        start = low + i * bucket_size
        is_last = i == DISTRIBUTION_BUCKETS - 1
        end = high if is_last else low + (i + 1) * bucket_size

        count = len(
            [s for s in scores if start <= s < end or (is_last and s == end)]
        )
        buckets.append(
            ScoreBucket(
                label=f"{round_half_up(start)}-{round_half_up(end)}",
                start=start,
                end=end,
                count=count,
            )
        )

    return buckets


def participation_trend(
    repository: LeaderboardRepository, challenge_id: str
) -> Dict[str, int]:
    """Number of check-ins per day, oldest day first."""
    daily_checkins: Dict[str, int] = {}
    for checkin in repository.find_challenge_checkins(challenge_id):
        day = checkin.date or "unknown"
        daily_checkins[day] = daily_checkins.get(day, 0) + 1
    return daily_checkins
