"""
Campaign Domain Models
"""
from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Any, List, Optional
from datetime import datetime, timezone
from enum import Enum

from phishsim.domain.models.result import Result, TimelineEvent


class CampaignStatus(str, Enum):
    """Campaign status. Only ever advances Queued -> In progress -> Completed."""
    QUEUED = "Queued"
    IN_PROGRESS = "In progress"
    COMPLETED = "Completed"


CAMPAIGN_STATUS_ORDER = [CampaignStatus.QUEUED, CampaignStatus.IN_PROGRESS, CampaignStatus.COMPLETED]


def can_advance_campaign(current: CampaignStatus, new: CampaignStatus) -> bool:
    return CAMPAIGN_STATUS_ORDER.index(CampaignStatus(new)) >= CAMPAIGN_STATUS_ORDER.index(CampaignStatus(current))


def to_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Normalize an aware datetime to naive UTC; naive values are taken as UTC."""
    if value is None:
        return None
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def _blank_date(value: Any) -> Any:
    # Clients send "" or Go's zero time for "not set"
    if value in ("", None):
        return None
    if isinstance(value, str) and value.startswith("0001-01-01"):
        return None
    return value


class Reference(BaseModel):
    """Reference to a template, page or group by id or name"""
    id: Optional[int] = None
    name: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return not self.id and not (self.name or "").strip()


class SenderReference(BaseModel):
    """Reference to an email account by id or address"""
    id: Optional[int] = None
    email: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return not self.id and not (self.email or "").strip()


class CampaignCreateRequest(BaseModel):
    """Request body for creating a campaign"""
    name: str = ""
    template: Reference = Field(default_factory=Reference)
    page: Reference = Field(default_factory=Reference)
    email_account: SenderReference = Field(default_factory=SenderReference)
    email_type: Optional[str] = Field(None, description="Resolve the sender by logical email type")
    groups: List[Reference] = Field(default_factory=list)
    launch_date: Optional[datetime] = None
    send_by_date: Optional[datetime] = None
    url: str = ""

    @field_validator("launch_date", "send_by_date", mode="before")
    @classmethod
    def parse_optional_date(cls, v):
        return _blank_date(v)

    @field_validator("launch_date", "send_by_date")
    @classmethod
    def normalize_date(cls, v):
        return to_naive_utc(v)


class RateLimitCheckRequest(BaseModel):
    """Request body for the rate-limit pre-check"""
    launch_date: Optional[datetime] = None
    send_by_date: Optional[datetime] = None
    group_ids: List[int] = Field(default_factory=list)

    @field_validator("launch_date", "send_by_date", mode="before")
    @classmethod
    def parse_optional_date(cls, v):
        return _blank_date(v)

    @field_validator("launch_date", "send_by_date")
    @classmethod
    def normalize_date(cls, v):
        return to_naive_utc(v)


class RateLimitWarning(BaseModel):
    """Diagnostic for a send-by date that spreads sends too tightly"""
    is_aggressive: bool = True
    provided_send_by_date: datetime
    minimum_send_by_date: datetime
    provided_interval_seconds: float
    minimum_interval_seconds: float
    total_recipients: int
    recommended_duration: str
    warning_message: str


class RateLimitCheckResponse(BaseModel):
    success: bool
    warning: Optional[RateLimitWarning] = None
    message: Optional[str] = None


class CampaignStats(BaseModel):
    """Roll-up counts; deeper engagement is included in shallower counts"""
    total: int = 0
    sent: int = 0
    opened: int = 0
    clicked: int = 0
    submitted_data: int = 0
    email_reported: int = 0
    error: int = 0


class CampaignSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    created_date: Optional[datetime] = None
    launch_date: Optional[datetime] = None
    send_by_date: Optional[datetime] = None
    completed_date: Optional[datetime] = None
    status: str
    stats: CampaignStats = Field(default_factory=CampaignStats)


class CampaignSummaries(BaseModel):
    total: int
    campaigns: List[CampaignSummary]


class CampaignResults(BaseModel):
    id: int
    name: str
    status: str
    results: List[Result] = Field(default_factory=list)
    timeline: List[TimelineEvent] = Field(default_factory=list)


class CampaignResponse(BaseModel):
    """Full campaign as returned by the API"""
    id: int
    name: str
    created_date: Optional[datetime] = None
    launch_date: Optional[datetime] = None
    send_by_date: Optional[datetime] = None
    completed_date: Optional[datetime] = None
    status: str
    url: str = ""
    template: Optional[str] = None
    page: Optional[str] = None
    email_account: Optional[str] = None
    email_type: Optional[str] = None
    results: List[Result] = Field(default_factory=list)
    timeline: List[TimelineEvent] = Field(default_factory=list)


class ApiResponse(BaseModel):
    """Generic success/failure envelope"""
    success: bool
    message: str
