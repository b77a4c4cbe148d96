"""
Refresh token cleanup
Deletes expired rows from user_refresh_tokens once at startup and then on a
fixed interval, so the table does not grow without bound.
"""

import asyncio
import logging
import os
from contextlib import suppress
from datetime import datetime
from typing import Optional

from sqlalchemy import delete
from sqlalchemy.engine import Engine

from models import UserRefreshToken

logger = logging.getLogger(__name__)

CLEANUP_INTERVAL_SECONDS = int(float(os.getenv("TOKEN_CLEANUP_INTERVAL_HOURS", "24")) * 3600)
MIN_CLEANUP_INTERVAL_SECONDS = 60


def cleanup_expired_tokens(engine: Engine, now: Optional[datetime] = None) -> int:
    """
    Delete refresh tokens whose expiry is strictly before now.

    Returns the number of deleted rows. Errors are logged and reported as 0
    so a failed sweep never takes the server down; the next tick retries.
    """
    now = now or datetime.now()
    try:
        with engine.begin() as connection:
            result = connection.execute(
                delete(UserRefreshToken).where(UserRefreshToken.expires_at < now)
            )
        deleted_count = result.rowcount or 0
        if deleted_count > 0:
            logger.info(f"[Token Cleanup] Deleted {deleted_count} expired refresh token(s)")
        return deleted_count
    except Exception as e:
        logger.error(f"[Token Cleanup] Error during cleanup: {e}")
        return 0


class TokenCleanupScheduler:
    """Runs cleanup_expired_tokens as a background task on the server's event loop"""

    def __init__(self, engine: Engine, interval_seconds: int = CLEANUP_INTERVAL_SECONDS):
        self.engine = engine
        if interval_seconds < MIN_CLEANUP_INTERVAL_SECONDS:
            logger.warning(
                f"[Token Cleanup Scheduler] Interval of {interval_seconds} seconds is too short, "
                f"using {MIN_CLEANUP_INTERVAL_SECONDS}"
            )
            interval_seconds = MIN_CLEANUP_INTERVAL_SECONDS
        self.interval_seconds = interval_seconds
        self._task: Optional[asyncio.Task] = None
        self.last_run_at: Optional[datetime] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self):
        if self.running:
            return
        logger.info(
            f"[Token Cleanup Scheduler] Starting scheduled cleanup (runs every {self.interval_seconds} seconds)"
        )
        self._task = asyncio.get_running_loop().create_task(self._run())

    async def stop(self):
        if self._task is None:
            return
        self._task.cancel()
        with suppress(asyncio.CancelledError):
            await self._task
        self._task = None
        logger.info("[Token Cleanup Scheduler] Stopped")

    async def run_once(self) -> int:
        # The delete is blocking; keep it off the event loop
        return await asyncio.to_thread(cleanup_expired_tokens, self.engine)

    async def _run(self):
        while True:
            await self.run_once()
            self.last_run_at = datetime.now()
            await asyncio.sleep(self.interval_seconds)
