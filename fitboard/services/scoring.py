"""
Scoring Service

Converts one day's self-reported metrics into a point score using a
challenge's scoring configuration.

Factors (applied in order):
- base check-in points
- workouts, capped at 2 per day
- nutrition score (0-10) scaled to the configured nutrition points
- 2 points per steps threshold met
- sleep, water and meditation bonuses
- flat consistency bonus
- streak multiplier, applied last to the running total

All functions here are pure: no I/O, deterministic for identical input.
"""

import math
from datetime import date, datetime, timezone
from typing import List, Optional, Sequence, Union

from fitboard.models.leaderboard import CheckinMetrics, ScoreBreakdown, ScoringConfig

MAX_WORKOUTS_PER_DAY = 2
POINTS_PER_STEPS_BUCKET = 2
WATER_BONUS_LITERS = 2
MEDITATION_BONUS_MINUTES = 10
SUSPICIOUS_STEP_COUNT = 50000

LITERS_PER_UNIT = {
    "l": 1.0,
    "liter": 1.0,
    "liters": 1.0,
    "ml": 0.001,
    "oz": 0.0295735,
}


def round_half_up(value: float) -> int:
    """Round .5 away from zero for non-negative values (Python's round() is banker's)."""
    return int(math.floor(value + 0.5))


def normalize_water_intake(value: float, unit: str = "l") -> float:
    """Convert a water intake reading to liters."""
    factor = LITERS_PER_UNIT.get(unit.lower())
    if factor is None:
        raise ValueError(f"Unsupported water unit '{unit}'")
    return value * factor


def _sleep_bonus(sleep_hours: Optional[float]) -> int:
    if sleep_hours is None:
        return 0
    if 7 <= sleep_hours <= 9:
        return 2
    if 6 <= sleep_hours <= 10:
        return 1
    return 0


def compute_score_breakdown(
    config: ScoringConfig,
    metrics: CheckinMetrics,
    current_streak: int = 0,
) -> ScoreBreakdown:
    """
    Score a check-in and report each factor's contribution.

    Args:
        config: Challenge scoring configuration
        metrics: Raw daily metrics (water already in liters)
        current_streak: Participant's current streak length

    Returns:
        ScoreBreakdown whose `total` is the check-in's point value
    """
    breakdown = ScoreBreakdown(checkin=config.checkin_points)

    if metrics.workouts is not None:
        counted = min(metrics.workouts, MAX_WORKOUTS_PER_DAY)
        breakdown.workouts = counted * config.workout_points
        if metrics.workouts > MAX_WORKOUTS_PER_DAY:
            breakdown.notes.append(
                f"Workouts capped at {MAX_WORKOUTS_PER_DAY} per day"
            )

    if metrics.nutrition_score is not None:
        breakdown.nutrition = round_half_up(
            metrics.nutrition_score / 10 * config.nutrition_points
        )

    if metrics.steps is not None:
        buckets_met = len([b for b in config.steps_buckets if metrics.steps >= b])
        breakdown.steps = buckets_met * POINTS_PER_STEPS_BUCKET

    breakdown.sleep = _sleep_bonus(metrics.sleep_hours)

    if metrics.water_intake is not None and metrics.water_intake >= WATER_BONUS_LITERS:
        breakdown.water = 1

    if (
        metrics.meditation_minutes is not None
        and metrics.meditation_minutes >= MEDITATION_BONUS_MINUTES
    ):
        breakdown.meditation = 1

    if config.consistency_bonus and config.consistency_bonus > 0:
        breakdown.consistency = config.consistency_bonus

    subtotal = (
        breakdown.checkin
        + breakdown.workouts
        + breakdown.nutrition
        + breakdown.steps
        + breakdown.sleep
        + breakdown.water
        + breakdown.meditation
        + breakdown.consistency
    )
    breakdown.subtotal = subtotal

    total = subtotal
    multiplier = config.streak_multiplier or 1
    if multiplier > 1 and current_streak > 0:
        total = round_half_up(subtotal * multiplier)
        breakdown.streak_multiplier = multiplier

    breakdown.total = max(total, 0)
    return breakdown


def compute_score(
    config: ScoringConfig,
    metrics: CheckinMetrics,
    current_streak: int = 0,
) -> int:
    """Point value of a single check-in."""
    return compute_score_breakdown(config, metrics, current_streak).total


def detect_anomalies(
    metrics: CheckinMetrics, previous: Sequence[CheckinMetrics]
) -> List[str]:
    """
    Flag check-in values worth a coach review.

    Flags are informational only and never change the score.
    """
    flags: List[str] = []

    if metrics.steps is not None:
        if metrics.steps > SUSPICIOUS_STEP_COUNT:
            flags.append("Unusually high step count")
        if metrics.steps > 0 and any(p.steps == metrics.steps for p in previous):
            flags.append("Step count matches previous check-ins")

    if metrics.nutrition_score == 10 and previous:
        average = sum(p.nutrition_score or 0 for p in previous) / len(previous)
        if average < 6:
            flags.append("Nutrition score significantly higher than average")

    return flags


def _parse_moment(value: Union[str, date, datetime]) -> datetime:
    if isinstance(value, datetime):
        moment = value
    elif isinstance(value, date):
        moment = datetime(value.year, value.month, value.day)
    else:
        moment = datetime.fromisoformat(value.replace("Z", "+00:00"))

    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment


def get_progress_percentage(
    start_date: Union[str, date, datetime],
    end_date: Union[str, date, datetime],
    now: Optional[datetime] = None,
) -> int:
    """
    How far `now` is through a challenge window, as an integer 0-100.

    Naive dates and datetimes are treated as UTC.
    """
    start = _parse_moment(start_date)
    end = _parse_moment(end_date)
    current = _parse_moment(now) if now is not None else datetime.now(timezone.utc)

    if current < start:
        return 0
    if current > end:
        return 100

    total_seconds = (end - start).total_seconds()
    if total_seconds <= 0:
        return 100

    elapsed = (current - start).total_seconds()
    return round_half_up(elapsed / total_seconds * 100)
