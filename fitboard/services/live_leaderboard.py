"""
Live challenge leaderboards.

Each check-in change notification triggers a full leaderboard rebuild; there
is no incremental update. Bursts of changes are rebuilt one by one unless
LIVE_LEADERBOARD_DEBOUNCE_SECONDS is set, in which case changes arriving
within the window collapse into one rebuild.
"""

import asyncio
import inspect
from typing import Any, Awaitable, Callable, Dict, Optional, Set, Union

from fitboard.core.config import settings
from fitboard.models.leaderboard import ChallengeLeaderboard
from fitboard.services.leaderboard_repository import LeaderboardRepository, Unsubscribe
from fitboard.services.logger import logger

LeaderboardCallback = Callable[
    [Optional[ChallengeLeaderboard]], Union[None, Awaitable[None]]
]


class LiveLeaderboardSubscription:
    """
    Delivers a rebuilt leaderboard to `callback` after every check-in change.

    start() must run inside the event loop that rebuilds and callbacks should
    use; change handlers coming from other threads are marshalled onto it.
    stop() prevents further deliveries. A rebuild already running is left to
    finish, but its result is discarded.
    """

    def __init__(
        self,
        repository: LeaderboardRepository,
        builder,
        challenge_id: str,
        callback: LeaderboardCallback,
        debounce_seconds: Optional[float] = None,
    ):
        self.repository = repository
        self.builder = builder
        self.challenge_id = challenge_id
        self.callback = callback
        self.debounce_seconds = float(
            settings.LIVE_LEADERBOARD_DEBOUNCE_SECONDS
            if debounce_seconds is None
            else debounce_seconds
        )

        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._unsubscribe: Optional[Unsubscribe] = None
        self._stopped = False
        self._pending: Optional[asyncio.TimerHandle] = None
        self._tasks: Set[asyncio.Task] = set()

    @property
    def active(self) -> bool:
        return self._loop is not None and not self._stopped

    def start(self) -> "LiveLeaderboardSubscription":
        if self._loop is not None:
            raise RuntimeError("Subscription already started")

        self._loop = asyncio.get_running_loop()
        self._unsubscribe = self.repository.subscribe_checkin_changes(
            self.challenge_id, self._on_event, self._on_error
        )
        logger.info(
            f"Live leaderboard subscribed for challenge {self.challenge_id}",
            {"challenge_id": self.challenge_id},
        )
        return self

    def stop(self) -> None:
        if self._stopped:
            return
        self._stopped = True

        if self._pending is not None:
            self._pending.cancel()
            self._pending = None

        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

        logger.info(
            f"Live leaderboard unsubscribed for challenge {self.challenge_id}",
            {"challenge_id": self.challenge_id},
        )

    def _call_on_loop(self, fn: Callable[[], Any]) -> None:
        try:
            self._loop.call_soon_threadsafe(fn)
        except RuntimeError:
            # Event loop already closed
            self.stop()

    def _on_event(self, payload: Optional[Dict[str, Any]]) -> None:
        # Payload is ignored: every change means a full rebuild
        if self._stopped:
            return
        self._call_on_loop(self._schedule_refresh)

    def _on_error(self, error: Exception) -> None:
        logger.error(
            f"Error in leaderboard subscription for challenge {self.challenge_id}",
            {"error": str(error), "challenge_id": self.challenge_id},
        )
        if self._stopped:
            return
        self._call_on_loop(lambda: self._spawn(self._deliver(None)))

    def _schedule_refresh(self) -> None:
        if self._stopped:
            return

        if self.debounce_seconds <= 0:
            self._start_refresh()
            return

        if self._pending is not None:
            self._pending.cancel()
        self._pending = self._loop.call_later(
            self.debounce_seconds, self._start_refresh
        )

    def _start_refresh(self) -> None:
        self._pending = None
        if self._stopped:
            return
        self._spawn(self._refresh())

    def _spawn(self, coro) -> None:
        task = self._loop.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _refresh(self) -> None:
        try:
            leaderboard = await self.builder.build(self.challenge_id)
        except Exception as e:
            logger.error(
                f"Failed to rebuild live leaderboard for challenge {self.challenge_id}",
                {"error": str(e), "challenge_id": self.challenge_id},
            )
            leaderboard = None

        await self._deliver(leaderboard)

    async def _deliver(self, leaderboard: Optional[ChallengeLeaderboard]) -> None:
        if self._stopped:
            return

        try:
            result = self.callback(leaderboard)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.error(
                f"Leaderboard subscriber callback failed for challenge {self.challenge_id}",
                {"error": str(e), "challenge_id": self.challenge_id},
            )
