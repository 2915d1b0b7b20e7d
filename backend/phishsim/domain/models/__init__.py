"""Domain models"""

# Campaign models
from .campaign import (
    CampaignStatus,
    CampaignCreateRequest,
    CampaignResponse,
    CampaignResults,
    CampaignStats,
    CampaignSummary,
    CampaignSummaries,
    RateLimitCheckRequest,
    RateLimitCheckResponse,
    RateLimitWarning,
    Reference,
    SenderReference,
)

# Result models
from .result import (
    ResultStatus,
    EventMessage,
    Result,
    TimelineEvent,
    can_transition,
    allowed_predecessors,
)

__all__ = [
    "CampaignStatus",
    "CampaignCreateRequest",
    "CampaignResponse",
    "CampaignResults",
    "CampaignStats",
    "CampaignSummary",
    "CampaignSummaries",
    "RateLimitCheckRequest",
    "RateLimitCheckResponse",
    "RateLimitWarning",
    "Reference",
    "SenderReference",
    "ResultStatus",
    "EventMessage",
    "Result",
    "TimelineEvent",
    "can_transition",
    "allowed_predecessors",
]
