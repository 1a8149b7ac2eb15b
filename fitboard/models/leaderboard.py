from __future__ import annotations

from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field


ChallengeStatus = Literal["draft", "published", "archived", "completed"]
PaymentStatus = Literal["pending", "paid", "refunded"]


class ScoringConfig(BaseModel):
    checkin_points: int = Field(0, description="Base points for submitting a check-in")
    workout_points: int = Field(0, description="Points per workout (max 2 per day)")
    nutrition_points: int = Field(
        0, description="Points awarded for a perfect 10/10 nutrition score"
    )
    steps_buckets: List[int] = Field(
        default_factory=list,
        description="Ascending step thresholds, e.g. [5000, 8000, 10000]",
    )
    consistency_bonus: Optional[int] = Field(
        None, description="Flat bonus added to every check-in"
    )
    streak_multiplier: Optional[float] = Field(
        None, description="Applied last while the participant has an active streak"
    )


class Challenge(BaseModel):
    id: str
    name: Optional[str] = None
    status: ChallengeStatus = "draft"
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    scoring: ScoringConfig = Field(default_factory=ScoringConfig)


class Enrolment(BaseModel):
    id: str
    user_id: str
    challenge_id: str
    payment_status: PaymentStatus = "pending"
    # Maintained by the check-in write path; leaderboards recompute instead.
    total_score: int = 0


class CheckinMetrics(BaseModel):
    steps: Optional[int] = Field(None, ge=0)
    workouts: Optional[int] = Field(None, ge=0)
    nutrition_score: Optional[float] = Field(None, ge=0, le=10)
    sleep_hours: Optional[float] = Field(None, ge=0, le=24)
    water_intake: Optional[float] = Field(None, ge=0, description="Liters")
    meditation_minutes: Optional[int] = Field(None, ge=0)


class Checkin(BaseModel):
    """
    A stored check-in row.

    Metrics are not range-checked here: historical rows are read as they are
    and only `auto_score` feeds the leaderboards.
    """

    id: str
    enrolment_id: str
    challenge_id: str
    user_id: str
    date: Optional[str] = Field(None, description="YYYY-MM-DD in challenge timezone")
    auto_score: Optional[int] = None
    steps: Optional[float] = None
    workouts: Optional[float] = None
    nutrition_score: Optional[float] = None
    sleep_hours: Optional[float] = None
    water_intake: Optional[float] = None
    meditation_minutes: Optional[float] = None


class UserIdentity(BaseModel):
    user_id: str
    display_name: str = "Anonymous"
    avatar_url: Optional[str] = None


class StreakInfo(BaseModel):
    current_streak: int = 0
    longest_streak: int = 0
    last_checkin_date: Optional[str] = None


class ScoreBreakdown(BaseModel):
    checkin: int = 0
    workouts: int = 0
    nutrition: int = 0
    steps: int = 0
    sleep: int = 0
    water: int = 0
    meditation: int = 0
    consistency: int = 0
    subtotal: int = 0
    streak_multiplier: Optional[float] = None
    total: int = 0
    notes: List[str] = Field(default_factory=list)


class LeaderboardParticipant(BaseModel):
    user_id: str
    enrolment_id: str
    challenge_id: str
    display_name: Optional[str] = None
    avatar_url: Optional[str] = None
    total_score: int = 0
    checkins_count: int = 0
    last_checkin: Optional[str] = None
    streak: int = 0
    longest_streak: int = 0
    rank: int = 0


class ChallengeLeaderboard(BaseModel):
    challenge: Challenge
    participants: List[LeaderboardParticipant] = Field(default_factory=list)
    total_participants: int = 0
    average_score: int = 0
    top_score: int = 0


class GlobalLeaderboardEntry(BaseModel):
    user_id: str
    display_name: Optional[str] = None
    avatar_url: Optional[str] = None
    total_score: int = 0
    challenges_count: int = 0
    total_checkins: int = 0
    average_score: int = 0
    last_activity: Optional[str] = None
    rank: int = 0


class ScoreBucket(BaseModel):
    label: str
    start: float
    end: float
    count: int = 0


class LeaderboardStats(BaseModel):
    total_participants: int = 0
    average_score: int = 0
    top_score: int = 0
    score_distribution: List[ScoreBucket] = Field(default_factory=list)
    participation_trend: Dict[str, int] = Field(default_factory=dict)
