"""
Result Domain Models
Per-recipient status with an explicit engagement-depth ordering
"""
from pydantic import BaseModel, ConfigDict
from typing import Dict, List, Optional
from datetime import datetime
from enum import Enum


class ResultStatus(str, Enum):
    """Status of a single recipient within a campaign"""
    SCHEDULED = "Scheduled"
    SENDING = "Sending"
    SENT = "Email Sent"
    OPENED = "Email Opened"
    CLICKED = "Clicked Link"
    SUBMITTED_DATA = "Submitted Data"
    ERROR = "Error"

    @property
    def depth(self) -> int:
        return ENGAGEMENT_DEPTH[self]


class EventMessage(str, Enum):
    """Timeline messages written for campaign and recipient events"""
    CAMPAIGN_CREATED = "Campaign Created"
    CAMPAIGN_COMPLETED = "Campaign Completed"
    EMAIL_SENT = "Email Sent"
    SENDING_ERROR = "Error Sending Email"
    EMAIL_OPENED = "Email Opened"
    CLICKED_LINK = "Clicked Link"
    SUBMITTED_DATA = "Submitted Data"
    EMAIL_REPORTED = "Email Reported"


# Sent < Opened < Clicked < Submitted Data. Error sits outside the ladder.
ENGAGEMENT_DEPTH: Dict[ResultStatus, int] = {
    ResultStatus.SCHEDULED: 0,
    ResultStatus.SENDING: 1,
    ResultStatus.SENT: 2,
    ResultStatus.OPENED: 3,
    ResultStatus.CLICKED: 4,
    ResultStatus.SUBMITTED_DATA: 5,
    ResultStatus.ERROR: -1,
}


def can_transition(current: ResultStatus, new: ResultStatus) -> bool:
    """
    Single rule for every status change.

    - Nothing leaves Error.
    - Error is reachable from any status except Submitted Data.
    - Otherwise the new status must be at equal or greater engagement depth.
    """
    current = ResultStatus(current)
    new = ResultStatus(new)
    if current == ResultStatus.ERROR:
        return False
    if new == ResultStatus.ERROR:
        return current != ResultStatus.SUBMITTED_DATA
    return new.depth >= current.depth


def allowed_predecessors(new: ResultStatus) -> List[ResultStatus]:
    """Statuses from which `new` may be applied (used as the UPDATE guard)."""
    return [status for status in ResultStatus if can_transition(status, new)]


class Result(BaseModel):
    """Recipient result as returned by the API"""
    model_config = ConfigDict(from_attributes=True)

    id: int
    r_id: str
    campaign_id: int
    email: str
    first_name: str = ""
    last_name: str = ""
    position: str = ""
    status: str
    ip: str = ""
    send_date: Optional[datetime] = None
    reported: bool = False
    modified_date: Optional[datetime] = None


class TimelineEvent(BaseModel):
    """Campaign timeline entry"""
    model_config = ConfigDict(from_attributes=True)

    campaign_id: int
    email: str = ""
    time: datetime
    message: str
    details: str = ""
