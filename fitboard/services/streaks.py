"""Consecutive-day streaks from check-in dates."""

from datetime import date, timedelta
from typing import Iterable, List, Union

from fitboard.models.leaderboard import StreakInfo


def _to_date(value: Union[str, date]) -> date:
    if isinstance(value, date):
        return value
    # Accept full ISO timestamps as well as plain YYYY-MM-DD
    return date.fromisoformat(str(value)[:10])


def compute_streak(dates: Iterable[Union[str, date]]) -> StreakInfo:
    """
    Current and longest streak for one participant.

    The current streak is anchored at the most recent check-in date (not
    today) and extends backwards while each earlier day is exactly one day
    before the previous one. Several check-ins on the same day count once.
    """
    unique_days: List[date] = sorted(
        {_to_date(d) for d in dates if d}, reverse=True
    )

    if not unique_days:
        return StreakInfo()

    one_day = timedelta(days=1)

    current_streak = 1
    for newer, older in zip(unique_days, unique_days[1:]):
        if newer - older != one_day:
            break
        current_streak += 1

    longest_streak = 1
    run = 1
    for newer, older in zip(unique_days, unique_days[1:]):
        if newer - older == one_day:
            run += 1
        else:
            run = 1
        longest_streak = max(longest_streak, run)

    return StreakInfo(
        current_streak=current_streak,
        longest_streak=longest_streak,
        last_checkin_date=unique_days[0].isoformat(),
    )
