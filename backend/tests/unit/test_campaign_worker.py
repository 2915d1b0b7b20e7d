"""
Tests for the Campaign Worker
"""
import asyncio
import pytest
from datetime import datetime, timedelta
from unittest.mock import AsyncMock, MagicMock, patch

from phishsim.infrastructure.storage.models import Campaign, Result
from phishsim.workers.campaign_worker import CampaignWorker


@pytest.fixture
def queued_campaign(db, seeded):
    launch = datetime.utcnow() - timedelta(minutes=5)
    campaign = Campaign(user_id=seeded["user"].id, name="Queued", status="Queued", launch_date=launch)
    db.add(campaign)
    db.flush()
    db.add(Result(
        r_id="Due0001", campaign_id=campaign.id, user_id=seeded["user"].id,
        email="alice@example.com", status="Scheduled", send_date=launch,
    ))
    db.add(Result(
        r_id="Later01", campaign_id=campaign.id, user_id=seeded["user"].id,
        email="bob@example.com", status="Scheduled", send_date=launch + timedelta(days=1),
    ))
    db.commit()
    return campaign


@pytest.fixture
def worker(session_factory):
    return CampaignWorker(session_factory=session_factory, config=MagicMock())


class TestCampaignWorker:
    """Tests for the promotion loop"""

    def test_poll_once_promotes(self, worker, queued_campaign, session_factory):
        """Due queued campaigns are launched and due results start sending"""
        launched = worker.poll_once()

        session = session_factory()
        campaign = session.get(Campaign, queued_campaign.id)
        statuses = {r.r_id: r.status for r in session.query(Result).all()}
        session.close()

        assert launched == 1
        assert campaign.status == "In progress"
        assert statuses == {"Due0001": "Sending", "Later01": "Scheduled"}
        assert worker.get_stats()["campaigns_launched"] == 1

    def test_service_has_no_dispatcher(self, worker, db):
        """Promotion builds no token issuer or dispatch coordinator"""
        service = worker._build_service(db)

        assert service.dispatcher is None
        worker.config.token_config.assert_not_called()
        worker.config.dispatch_config.assert_not_called()

    def test_poll_once_nothing_due(self, worker, seeded):
        assert worker.poll_once() == 0
        assert worker.get_stats()["polls"] == 1

    @pytest.mark.asyncio
    async def test_run_stops_after_shutdown_signal(self, worker):
        """Clearing running ends the loop after the current poll"""
        def poll_and_stop(now=None):
            worker.running = False
            return 0

        with patch.object(worker, "poll_once", side_effect=poll_and_stop), \
                patch("phishsim.workers.campaign_worker.asyncio.sleep", new=AsyncMock()):
            await asyncio.wait_for(worker.run(), timeout=5)

        assert worker.running is False

    @pytest.mark.asyncio
    async def test_run_gives_up_after_repeated_errors(self, worker):
        """Consecutive failures stop the worker"""
        worker.MAX_CONSECUTIVE_ERRORS = 3

        with patch.object(worker, "poll_once", side_effect=RuntimeError("db down")) as mock_poll, \
                patch("phishsim.workers.campaign_worker.asyncio.sleep", new=AsyncMock()):
            await asyncio.wait_for(worker.run(), timeout=5)

        assert mock_poll.call_count == 3
