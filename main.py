from contextlib import asynccontextmanager

from fastapi import FastAPI, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import uvicorn
from dotenv import load_dotenv

from fitboard.core.config import settings
from fitboard.core.analytics import initialize_posthog, shutdown_posthog
from fitboard.api.v1.router import api_router
from fitboard.core.health import build_health_report, HealthStatus
from fitboard.services.logger import logger

load_dotenv()


@asynccontextmanager
async def lifespan(app: FastAPI):
    if settings.POSTHOG_API_KEY and initialize_posthog():
        logger.info("PostHog analytics active")

    logger.info(
        "Fitboard API started",
        {"environment": settings.ENVIRONMENT, "version": app.version},
    )

    yield

    if settings.POSTHOG_API_KEY:
        shutdown_posthog()
    logger.info("Fitboard API shutting down")


app = FastAPI(
    title="Fitboard API",
    description="Fitness challenge scoring, streaks and leaderboards",
    version="1.0.0",
    docs_url="/docs" if settings.ENVIRONMENT == "development" else None,
    redoc_url="/redoc" if settings.ENVIRONMENT == "development" else None,
    redirect_slashes=False,
    lifespan=lifespan,
)

# Leaderboards are public read-only data, so no credentials are needed
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins_list,
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)

app.include_router(api_router, prefix="/api/v1")


@app.get("/health")
async def health_check():
    """Component health; 503 only when leaderboards cannot be served at all."""
    report = await build_health_report(api_version=app.version)
    status_code = (
        status.HTTP_503_SERVICE_UNAVAILABLE
        if report.status == HealthStatus.CRITICAL
        else status.HTTP_200_OK
    )
    return JSONResponse(content=report.model_dump(mode="json"), status_code=status_code)


if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=int(settings.PORT),
        reload=settings.ENVIRONMENT == "development",
    )
