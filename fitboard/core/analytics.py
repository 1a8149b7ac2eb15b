"""
PostHog Analytics

Leaderboard view tracking and error reporting. Every helper is a no-op when
POSTHOG_API_KEY is not configured.
"""

import logging
from typing import Any, Dict, Optional

from posthog import Posthog

from fitboard.core.config import settings

logger = logging.getLogger(__name__)

posthog: Optional[Posthog] = None


def initialize_posthog() -> Optional[Posthog]:
    global posthog

    if not settings.POSTHOG_API_KEY:
        logger.warning("PostHog API key not found, analytics disabled")
        return None

    try:
        posthog = Posthog(
            project_api_key=settings.POSTHOG_API_KEY,
            host=settings.POSTHOG_HOST,
            enable_exception_autocapture=settings.POSTHOG_ENABLE_EXCEPTION_AUTOCAPTURE,
        )
    except Exception as e:
        logger.error(f"Failed to initialize PostHog: {e}")
        return None

    return posthog


def get_posthog() -> Optional[Posthog]:
    if posthog is None and settings.POSTHOG_API_KEY:
        return initialize_posthog()
    return posthog


def track_event(
    user_id: str, event_name: str, properties: Optional[Dict[str, Any]] = None
) -> None:
    client = get_posthog()
    if not client:
        return

    try:
        client.capture(
            distinct_id=user_id, event=event_name, properties=properties or {}
        )
    except Exception as e:
        logger.error(f"Failed to track event {event_name}: {e}")


def track_leaderboard_viewed(
    user_id: str, leaderboard: str, properties: Optional[Dict[str, Any]] = None
) -> None:
    """leaderboard is "challenge" or "global"."""
    track_event(
        user_id,
        "leaderboard_viewed",
        {"leaderboard": leaderboard, **(properties or {})},
    )


def capture_exception(
    error: Exception,
    user_id: Optional[str] = None,
    properties: Optional[Dict[str, Any]] = None,
) -> None:
    client = get_posthog()
    if not client:
        return

    try:
        client.capture_exception(
            error, distinct_id=user_id or "server", properties=properties or {}
        )
    except Exception as e:
        logger.error(f"Failed to capture exception: {e}")


def shutdown_posthog() -> None:
    """Flush queued events and drop the client."""
    global posthog
    if not posthog:
        return

    try:
        posthog.shutdown()
    except Exception as e:
        logger.error(f"Failed to shutdown PostHog: {e}")
    finally:
        posthog = None
