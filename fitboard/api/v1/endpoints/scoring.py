"""
Scoring API endpoints

Stateless previews of the scoring formula and streak calculation, used by
challenge authoring screens to show what a check-in would be worth.
"""

from typing import List, Literal

from fastapi import APIRouter, HTTPException, status
from pydantic import BaseModel, Field

from fitboard.models.leaderboard import (
    CheckinMetrics,
    ScoreBreakdown,
    ScoringConfig,
    StreakInfo,
)
from fitboard.services.scoring import (
    compute_score_breakdown,
    detect_anomalies,
    normalize_water_intake,
)
from fitboard.services.streaks import compute_streak

router = APIRouter(redirect_slashes=False)


class ScorePreviewRequest(BaseModel):
    scoring: ScoringConfig
    metrics: CheckinMetrics
    current_streak: int = Field(0, ge=0)
    water_unit: Literal["l", "ml", "oz"] = "l"
    previous_metrics: List[CheckinMetrics] = Field(
        default_factory=list,
        description="Earlier check-ins of the participant, used for review flags",
    )


class ScorePreviewResponse(BaseModel):
    breakdown: ScoreBreakdown
    anomalies: List[str] = Field(default_factory=list)


class StreakRequest(BaseModel):
    dates: List[str] = Field(..., description="Check-in dates (YYYY-MM-DD)")


@router.post("/preview", response_model=ScorePreviewResponse)
async def preview_score(request: ScorePreviewRequest):
    """Score a hypothetical check-in against a scoring configuration."""
    metrics = request.metrics
    if metrics.water_intake is not None and request.water_unit != "l":
        metrics = metrics.model_copy(
            update={
                "water_intake": normalize_water_intake(
                    metrics.water_intake, request.water_unit
                )
            }
        )

    return ScorePreviewResponse(
        breakdown=compute_score_breakdown(
            request.scoring, metrics, request.current_streak
        ),
        anomalies=detect_anomalies(metrics, request.previous_metrics),
    )


@router.post("/streak", response_model=StreakInfo)
async def preview_streak(request: StreakRequest):
    try:
        return compute_streak(request.dates)
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid date: {e}",
        )
