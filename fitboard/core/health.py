"""
Health report for the Fitboard API.

Leaderboards need Supabase to be served at all (CRITICAL when it fails). The
Redis feed only drives live refresh, so its failure is DEGRADED.
"""

from __future__ import annotations

import asyncio
import time
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional

import redis
from pydantic import BaseModel, Field

from fitboard.core.config import settings
from fitboard.core.database import get_supabase_client

REDIS_TIMEOUT_SECONDS = 2


class HealthStatus(str, Enum):
    OK = "ok"
    DEGRADED = "degraded"
    CRITICAL = "critical"
    NOT_CONFIGURED = "not_configured"


class HealthCheckResult(BaseModel):
    component: str
    status: HealthStatus
    details: str = ""
    latency_ms: Optional[float] = Field(default=None, ge=0)
    metadata: Dict[str, Any] = Field(default_factory=dict)


class HealthReport(BaseModel):
    status: HealthStatus
    version: str
    environment: str
    timestamp: datetime
    checks: List[HealthCheckResult]


def _elapsed_ms(start: float) -> float:
    return round((time.perf_counter() - start) * 1000, 2)


def _count_published_challenges() -> Optional[int]:
    response = (
        get_supabase_client()
        .table("challenges")
        .select("id", count="exact")
        .eq("status", "published")
        .limit(1)
        .execute()
    )
    return getattr(response, "count", None)


async def check_leaderboard_store() -> HealthCheckResult:
    if not settings.SUPABASE_URL or not settings.SUPABASE_SERVICE_KEY:
        return HealthCheckResult(
            component="supabase",
            status=HealthStatus.NOT_CONFIGURED,
            details="Supabase credentials are not set",
        )

    start = time.perf_counter()
    try:
        published = await asyncio.to_thread(_count_published_challenges)
    except Exception as exc:
        return HealthCheckResult(
            component="supabase",
            status=HealthStatus.CRITICAL,
            details=f"Leaderboard tables unreachable: {exc}",
            latency_ms=_elapsed_ms(start),
        )

    return HealthCheckResult(
        component="supabase",
        status=HealthStatus.OK,
        details="Leaderboard tables reachable",
        latency_ms=_elapsed_ms(start),
        metadata={"published_challenges": published},
    )


async def check_checkin_feed() -> HealthCheckResult:
    if not settings.REDIS_URL:
        return HealthCheckResult(
            component="redis",
            status=HealthStatus.NOT_CONFIGURED,
            details="REDIS_URL is not set, live leaderboards are disabled",
        )

    start = time.perf_counter()
    try:
        client = redis.from_url(
            settings.REDIS_URL,
            socket_connect_timeout=REDIS_TIMEOUT_SECONDS,
            socket_timeout=REDIS_TIMEOUT_SECONDS,
        )
        await asyncio.to_thread(client.ping)
    except Exception as exc:
        return HealthCheckResult(
            component="redis",
            status=HealthStatus.DEGRADED,
            details=f"Check-in feed unreachable, live leaderboards will not refresh: {exc}",
            latency_ms=_elapsed_ms(start),
        )

    return HealthCheckResult(
        component="redis",
        status=HealthStatus.OK,
        details="Check-in feed reachable",
        latency_ms=_elapsed_ms(start),
        metadata={"channel_prefix": settings.LEADERBOARD_CHANNEL_PREFIX},
    )


async def check_environment() -> HealthCheckResult:
    return HealthCheckResult(
        component="environment",
        status=HealthStatus.OK,
        details="Settings loaded",
        metadata={
            "environment": settings.ENVIRONMENT,
            "debug": settings.DEBUG,
            "skip_failed_challenges": settings.GLOBAL_LEADERBOARD_SKIP_FAILED_CHALLENGES,
        },
    )


HEALTH_CHECKS: List[Callable[[], Awaitable[HealthCheckResult]]] = [
    check_environment,
    check_leaderboard_store,
    check_checkin_feed,
]


def aggregate_status(checks: List[HealthCheckResult]) -> HealthStatus:
    statuses = {check.status for check in checks}
    if HealthStatus.CRITICAL in statuses:
        return HealthStatus.CRITICAL
    if HealthStatus.DEGRADED in statuses:
        return HealthStatus.DEGRADED
    if statuses == {HealthStatus.NOT_CONFIGURED}:
        return HealthStatus.NOT_CONFIGURED
    return HealthStatus.OK


async def build_health_report(api_version: str) -> HealthReport:
    checks = list(await asyncio.gather(*(check() for check in HEALTH_CHECKS)))

    return HealthReport(
        status=aggregate_status(checks),
        version=api_version,
        environment=settings.ENVIRONMENT,
        timestamp=datetime.now(timezone.utc),
        checks=checks,
    )
