"""
Leaderboards API endpoints
"""

import asyncio
import json
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.responses import StreamingResponse
from pydantic import BaseModel

from fitboard.models.leaderboard import (
    ChallengeLeaderboard,
    GlobalLeaderboardEntry,
    LeaderboardStats,
)
from fitboard.services.leaderboard_service import (
    LeaderboardService,
    leaderboard_service,
)
from fitboard.core.analytics import track_leaderboard_viewed
from fitboard.services.logger import logger

router = APIRouter(redirect_slashes=False)

# Seconds between keep-alive comments on idle SSE streams
STREAM_KEEPALIVE_SECONDS = 15


def get_leaderboard_service() -> LeaderboardService:
    return leaderboard_service


class RankResponse(BaseModel):
    user_id: str
    rank: Optional[int] = None


class ProgressResponse(BaseModel):
    challenge_id: str
    progress_percentage: int


@router.get("/global", response_model=List[GlobalLeaderboardEntry])
async def get_global_leaderboard(
    limit: Optional[int] = Query(None, ge=1, le=1000),
    service: LeaderboardService = Depends(get_leaderboard_service),
):
    """Cross-challenge leaderboard over every published challenge."""
    return await service.get_global_leaderboard(limit)


@router.get("/challenges/{challenge_id}", response_model=ChallengeLeaderboard)
async def get_challenge_leaderboard(
    challenge_id: str,
    service: LeaderboardService = Depends(get_leaderboard_service),
):
    leaderboard = await service.get_challenge_leaderboard(challenge_id)
    if not leaderboard:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Challenge not found"
        )
    return leaderboard


@router.get("/challenges/{challenge_id}/stats", response_model=LeaderboardStats)
async def get_challenge_leaderboard_stats(
    challenge_id: str,
    service: LeaderboardService = Depends(get_leaderboard_service),
):
    stats = await service.get_challenge_leaderboard_stats(challenge_id)
    if not stats:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Challenge not found"
        )
    return stats


@router.get("/challenges/{challenge_id}/progress", response_model=ProgressResponse)
async def get_challenge_progress(
    challenge_id: str,
    service: LeaderboardService = Depends(get_leaderboard_service),
):
    """How far the challenge window has elapsed (0-100)."""
    progress = await service.get_challenge_progress(challenge_id)
    if progress is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Challenge not found or has no start/end date",
        )
    return ProgressResponse(challenge_id=challenge_id, progress_percentage=progress)


@router.get(
    "/challenges/{challenge_id}/users/{user_id}/rank", response_model=RankResponse
)
async def get_user_challenge_rank(
    challenge_id: str,
    user_id: str,
    service: LeaderboardService = Depends(get_leaderboard_service),
):
    rank = await service.get_user_challenge_rank(user_id, challenge_id)
    track_leaderboard_viewed(user_id, "challenge", {"challenge_id": challenge_id})
    return RankResponse(user_id=user_id, rank=rank)


@router.get("/users/{user_id}/global-rank", response_model=RankResponse)
async def get_user_global_rank(
    user_id: str,
    service: LeaderboardService = Depends(get_leaderboard_service),
):
    rank = await service.get_user_global_rank(user_id)
    track_leaderboard_viewed(user_id, "global")
    return RankResponse(user_id=user_id, rank=rank)


@router.get("/challenges/{challenge_id}/stream")
async def stream_challenge_leaderboard(
    challenge_id: str,
    request: Request,
    service: LeaderboardService = Depends(get_leaderboard_service),
):
    """
    Live leaderboard over Server-Sent Events.

    Returns an SSE stream with:
    - {"type": "snapshot", "leaderboard": {...}} on subscribe and after every check-in change
    - {"type": "error", "message": str} when the leaderboard could not be built
    """
    queue: "asyncio.Queue[Optional[ChallengeLeaderboard]]" = asyncio.Queue()

    async def generate():
        unsubscribe = service.subscribe_to_challenge_leaderboard(
            challenge_id, queue.put
        )
        try:
            while True:
                if await request.is_disconnected():
                    break
                try:
                    leaderboard = await asyncio.wait_for(
                        queue.get(), timeout=STREAM_KEEPALIVE_SECONDS
                    )
                except asyncio.TimeoutError:
                    yield ": keep-alive\n\n"
                    continue

                if leaderboard is None:
                    event = {
                        "type": "error",
                        "message": "Leaderboard unavailable",
                    }
                else:
                    event = {
                        "type": "snapshot",
                        "leaderboard": leaderboard.model_dump(mode="json"),
                    }
                yield f"data: {json.dumps(event)}\n\n"
        except Exception as e:
            logger.error(
                f"[Leaderboard] Stream error for challenge {challenge_id}: {e}",
                exc_info=True,
            )
            yield f"data: {json.dumps({'type': 'error', 'message': str(e)})}\n\n"
        finally:
            unsubscribe()

    return StreamingResponse(
        generate(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",  # Disable nginx buffering
        },
    )
