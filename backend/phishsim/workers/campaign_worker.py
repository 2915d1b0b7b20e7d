"""
Campaign Worker
Background worker that promotes queued campaigns once their launch date
arrives

Run as separate process:
    python -m phishsim.workers.campaign_worker
"""
import asyncio
import logging
import signal
from datetime import datetime
from typing import Optional

from dotenv import load_dotenv
from sqlalchemy.orm import sessionmaker

from phishsim.core.config import ConfigManager, get_config_manager
from phishsim.domain.services.campaign_service import CampaignService
from phishsim.domain.services.rate_limiter import RateLimitCalculator
from phishsim.infrastructure.storage.database import get_session_factory

# Load environment variables
load_dotenv()

logger = logging.getLogger(__name__)


class CampaignWorker:
    """
    Polls for Queued campaigns whose launch date has passed and moves them to
    In progress. Recipient batches were already handed to the engine when the
    campaign was created, so the worker never dispatches.
    """

    # Worker configuration
    POLL_INTERVAL = 60.0  # Engine sends on minute boundaries
    MAX_CONSECUTIVE_ERRORS = 10

    def __init__(
        self,
        session_factory: Optional[sessionmaker] = None,
        config: Optional[ConfigManager] = None
    ):
        self.session_factory = session_factory
        self.config = config or get_config_manager()

        self.running = False

        # Stats
        self._polls = 0
        self._campaigns_launched = 0
        self._last_poll: Optional[datetime] = None

    def _build_service(self, session) -> CampaignService:
        # Promotion never dispatches
        return CampaignService(
            session=session,
            rate_limiter=RateLimitCalculator(self.config.rate_limit_config()),
        )

    def poll_once(self, now: Optional[datetime] = None) -> int:
        """Run one promotion pass. Returns the number of launched campaigns."""
        if self.session_factory is None:
            self.session_factory = get_session_factory()

        session = self.session_factory()
        try:
            launched = self._build_service(session).launch_queued_campaigns(now)
        finally:
            session.close()

        self._polls += 1
        self._campaigns_launched += launched
        self._last_poll = datetime.utcnow()
        if launched:
            logger.info(f"Launched {launched} queued campaign(s)")
        return launched

    async def run(self) -> None:
        """
        Main worker loop.

        Polls every POLL_INTERVAL seconds and backs off on consecutive errors.
        """
        self.running = True
        consecutive_errors = 0

        logger.info("Campaign Worker started - watching for queued campaigns")

        while self.running:
            try:
                await asyncio.to_thread(self.poll_once)
                consecutive_errors = 0
                await asyncio.sleep(self.POLL_INTERVAL)

            except asyncio.CancelledError:
                logger.info("Worker received cancellation signal")
                break
            except Exception as e:
                consecutive_errors += 1
                logger.error(f"Worker error ({consecutive_errors}): {e}", exc_info=True)

                if consecutive_errors >= self.MAX_CONSECUTIVE_ERRORS:
                    logger.critical("Too many consecutive errors, stopping worker")
                    break

                await asyncio.sleep(min(5 * consecutive_errors, 60))

        await self.shutdown()

    async def shutdown(self) -> None:
        """Graceful shutdown."""
        logger.info("Shutting down Campaign Worker...")
        self.running = False
        logger.info(
            f"Campaign Worker shutdown complete. "
            f"Polls: {self._polls}, Campaigns launched: {self._campaigns_launched}"
        )

    def get_stats(self) -> dict:
        """Get worker statistics."""
        return {
            "running": self.running,
            "polls": self._polls,
            "campaigns_launched": self._campaigns_launched,
            "last_poll": self._last_poll.isoformat() if self._last_poll else None,
        }


async def main():
    """Entry point for running the campaign worker as separate process."""
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    worker = CampaignWorker()

    # Handle shutdown signals
    loop = asyncio.get_running_loop()

    def signal_handler():
        logger.info("Received shutdown signal")
        worker.running = False

    for sig in (signal.SIGTERM, signal.SIGINT):
        try:
            loop.add_signal_handler(sig, signal_handler)
        except NotImplementedError:
            # Windows doesn't support add_signal_handler
            pass

    try:
        await worker.run()
    except KeyboardInterrupt:
        logger.info("Worker interrupted by user")
    finally:
        await worker.shutdown()


if __name__ == "__main__":
    asyncio.run(main())
