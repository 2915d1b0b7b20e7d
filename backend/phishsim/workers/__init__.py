"""
Workers Package
Background workers for campaign promotion
"""
from phishsim.workers.campaign_worker import CampaignWorker

__all__ = [
    "CampaignWorker",
]
