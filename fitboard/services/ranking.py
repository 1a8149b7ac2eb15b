"""
Leaderboard ranking.

Competition ranking where tied scores share a rank and the next lower score
takes its 1-based position: [100, 100, 90] -> [1, 1, 3].
"""

from typing import Any, List, Mapping, Sequence, TypeVar

from pydantic import BaseModel

T = TypeVar("T")


def _score_of(entry: Any, score_key: str) -> float:
    if isinstance(entry, Mapping):
        return entry.get(score_key) or 0
    return getattr(entry, score_key, 0) or 0


def _with_rank(entry: T, rank: int) -> T:
    if isinstance(entry, BaseModel):
        return entry.model_copy(update={"rank": rank})
    if isinstance(entry, Mapping):
        return {**entry, "rank": rank}
    raise TypeError(f"Cannot rank entry of type {type(entry).__name__}")


def assign_ranks(entries: Sequence[T], score_key: str = "total_score") -> List[T]:
    """
    Sort entries by score (descending) and attach a `rank`.

    Entries may be dicts or pydantic models. Equal scores keep their input
    order. Inputs are not mutated; ranked copies are returned.
    """
    ordered = sorted(entries, key=lambda e: _score_of(e, score_key), reverse=True)

    ranked: List[T] = []
    current_rank = 1
    previous_score = None
    for position, entry in enumerate(ordered, start=1):
        score = _score_of(entry, score_key)
        if previous_score is not None and score < previous_score:
            current_rank = position
        previous_score = score
        ranked.append(_with_rank(entry, current_rank))

    return ranked
