"""
Idle-aware lesson activity tracking with high-water-mark syncing.

Mirrors what a lesson player does on the client: sample activity once a
second, count only active seconds, and periodically flush the unsynced delta
to the progress accumulator. Deltas are computed against the last
successfully synced total, so repeated or failed syncs never double-count.
"""

import logging
from collections.abc import Awaitable, Callable

from app.db.models import ProgressStatus

logger = logging.getLogger(__name__)

SyncCallback = Callable[[int, ProgressStatus], Awaitable[object]]


class ActivityTracker:
    """Counts active seconds for one lesson and syncs them as deltas."""

    def __init__(
        self,
        *,
        idle_seconds: float = 60.0,
        completion_seconds: int = 6000,
        started_at: float = 0.0,
    ):
        self.idle_seconds = idle_seconds
        self.completion_seconds = completion_seconds
        self.last_activity_at = started_at
        self.visible = True
        self.active_seconds = 0
        self.synced_seconds = 0

    def record_activity(self, now: float) -> None:
        """Pointer or keyboard activity."""
        self.last_activity_at = now

    def set_visible(self, visible: bool, now: float) -> None:
        """Page visibility change; becoming visible counts as activity."""
        self.visible = visible
        if visible:
            self.record_activity(now)

    def is_idle(self, now: float) -> bool:
        return not self.visible or now - self.last_activity_at > self.idle_seconds

    def tick(self, now: float) -> bool:
        """One-second sample. Returns True if the second counted as active."""
        if self.is_idle(now):
            return False
        self.active_seconds += 1
        return True

    @property
    def pending_seconds(self) -> int:
        return max(0, self.active_seconds - self.synced_seconds)

    @property
    def status(self) -> ProgressStatus:
        if self.active_seconds >= self.completion_seconds:
            return ProgressStatus.COMPLETED
        return ProgressStatus.IN_PROGRESS

    async def sync(self, send: SyncCallback) -> int:
        """
        Flush the unsynced delta through `send(delta, status)`.

        Failures are logged and swallowed; the next sync retries with the
        accumulated, larger delta. Returns the number of seconds synced.
        """
        delta = self.pending_seconds
        if delta == 0:
            return 0
        snapshot = self.active_seconds
        try:
            await send(delta, self.status)
        except Exception:
            logger.warning("Progress sync of %d seconds failed; will retry on next tick", delta, exc_info=True)
            return 0
        self.synced_seconds = snapshot
        return delta
