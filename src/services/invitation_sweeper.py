"""Background task that periodically expires stale invitations."""

from __future__ import annotations

import asyncio
import logging

from src.core.config import get_settings
from src.services.invitation_service import InvitationService

logger = logging.getLogger(__name__)


class InvitationExpirySweeper:
    """Runs :meth:`InvitationService.mark_expired` on a fixed interval."""

    def __init__(self, interval_seconds: int, service: InvitationService | None = None) -> None:
        self.interval_seconds = interval_seconds
        self._service = service
        self._task: asyncio.Task | None = None

    @property
    def service(self) -> InvitationService:
        if self._service is None:
            self._service = InvitationService()
        return self._service

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        """Start background sweep task."""
        if self._task is None:
            self._task = asyncio.create_task(self._sweep_loop())
            logger.info("Invitation expiry sweeper started (every %ds)", self.interval_seconds)

    async def stop(self) -> None:
        """Stop background sweep task."""
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
            logger.info("Invitation expiry sweeper stopped")

    async def sweep_once(self) -> int:
        result = await self.service.mark_expired()
        return result.expired_count

    async def _sweep_loop(self) -> None:
        while True:
            try:
                count = await self.sweep_once()
                if count > 0:
                    logger.info("Expiry sweep expired %d invitation(s)", count)
            except Exception as e:
                # The loop must survive a failed sweep; the next one retries
                logger.error("Invitation expiry sweep failed: %s", str(e))
            await asyncio.sleep(self.interval_seconds)


# Global singleton instance
_sweeper: InvitationExpirySweeper | None = None


async def init_invitation_sweeper() -> InvitationExpirySweeper | None:
    """Start the sweeper if enabled. Call at app startup."""
    global _sweeper
    settings = get_settings()
    if not settings.invitation_sweep_enabled:
        logger.info("Invitation expiry sweeper disabled")
        return None

    if _sweeper is None:
        _sweeper = InvitationExpirySweeper(settings.invitation_sweep_interval_seconds)
    await _sweeper.start()
    return _sweeper


async def shutdown_invitation_sweeper() -> None:
    """Stop the sweeper task. Call at app shutdown."""
    global _sweeper
    if _sweeper:
        await _sweeper.stop()
        _sweeper = None
