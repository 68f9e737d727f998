import asyncio
import logging
from typing import Optional

from .config import Settings
from .database import get_database
from .services.auth import AuthService

logger = logging.getLogger(__name__)


class TokenCleanupJob:
    """Deletes expired and revoked refresh tokens on a fixed interval.

    A failed sweep is logged and the loop waits for the next tick.
    """

    def __init__(self, settings: Settings):
        self.settings = settings
        self._task: Optional[asyncio.Task] = None

    async def run_once(self) -> int:
        removed = await AuthService(get_database(), self.settings).cleanup_expired_tokens()
        logger.info("Token cleanup removed %d refresh tokens", removed)
        return removed

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self.settings.token_cleanup_interval_seconds)
            try:
                await self.run_once()
            except Exception:
                logger.exception("Token cleanup failed")

    def start(self) -> None:
        if self._task is None:
            self._task = asyncio.create_task(self._loop())
            logger.info(
                "Token cleanup scheduled every %d seconds", self.settings.token_cleanup_interval_seconds
            )

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
