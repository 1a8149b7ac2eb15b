from fastapi import APIRouter
from fitboard.api.v1.endpoints import (
    leaderboards,
    scoring,
)

# Create main API router
api_router = APIRouter(redirect_slashes=False)

# Include all endpoint routers
api_router.include_router(
    leaderboards.router, prefix="/leaderboards", tags=["Leaderboards"]
)
api_router.include_router(scoring.router, prefix="/scoring", tags=["Scoring"])
