"""Token cleanup worker — periodically sweeps expired refresh tokens.

Learn: Expired rows are already useless (refresh purges them on touch),
so this is pure housekeeping to keep the ledger small. It runs as a
background task in the FastAPI lifespan; `medconnect clean-tokens`
does the same sweep once from the command line.

The sweep only removes rows that are already past expiry, so it can run
concurrently with login/refresh on any number of instances.
"""

import asyncio
from typing import Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from medconnect.services.auth_service import AuthService

logger = structlog.get_logger()


class TokenCleanupWorker:
    """Background loop calling AuthService.clean_expired_tokens().

    Usage:
        worker = TokenCleanupWorker(async_session_factory, interval=3600)
        asyncio.create_task(worker.run_loop())
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        interval: float = 3600.0,
    ):
        self.session_factory = session_factory
        self.interval = interval
        self._running = False
        self._wakeup: Optional[asyncio.Event] = None
        self.last_deleted = 0

    async def run_loop(self) -> None:
        """Sweep, sleep, repeat until stop() is called."""
        self._running = True
        self._wakeup = asyncio.Event()
        logger.info("token_cleanup.started", interval=self.interval)

        while self._running:
            try:
                await self.run_once()
            except Exception:
                logger.exception("token_cleanup.error")
            try:
                await asyncio.wait_for(self._wakeup.wait(), timeout=self.interval)
            except asyncio.TimeoutError:
                pass

    async def run_once(self) -> int:
        async with self.session_factory() as db:
            self.last_deleted = await AuthService(db).clean_expired_tokens()
        return self.last_deleted

    def stop(self) -> None:
        """Signal the worker to stop (wakes it if sleeping)."""
        self._running = False
        if self._wakeup is not None:
            self._wakeup.set()
        logger.info("token_cleanup.stopping")
