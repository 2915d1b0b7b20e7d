"""
Result State Machine
Authoritative per-recipient status changes and campaign roll-up statistics.

Every status change goes through one guarded single-row UPDATE:

    UPDATE results SET status = :new
    WHERE r_id = :rid AND status IN (<statuses allowed to move to :new>)

so concurrent or out-of-order callbacks can never regress a recipient.
"""
import json
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from phishsim.domain.models.campaign import CampaignStats
from phishsim.domain.models.result import (
    EventMessage,
    ResultStatus,
    allowed_predecessors,
)
from phishsim.infrastructure.storage.models import Event, Result

logger = logging.getLogger(__name__)


class ResultNotFoundError(Exception):
    """Raised when no result exists for a given r_id"""

    def __init__(self, r_id: str):
        self.r_id = r_id
        super().__init__(f"Result not found for RId {r_id}")


@dataclass
class TransitionOutcome:
    """What a transition did to the stored result"""
    result: Result
    applied: bool
    previous_status: str


class ResultStateMachine:
    """
    Applies recipient events to results.

    A transition that would lower engagement depth still appends its timeline
    event (the audit trail keeps everything) but leaves the status untouched.
    """

    def __init__(self, session: Session):
        self.session = session

    def get_result(self, r_id: str) -> Result:
        result = self.session.query(Result).filter(Result.r_id == r_id).one_or_none()
        if result is None:
            raise ResultNotFoundError(r_id)
        return result

    def _add_event(self, result: Result, message: EventMessage, details: Optional[Dict[str, Any]], when: datetime) -> Event:
        event = Event(
            campaign_id=result.campaign_id,
            email=result.email,
            time=when,
            message=message.value,
            details=json.dumps(details or {}, default=str),
        )
        self.session.add(event)
        return event

    def _advance(
        self,
        r_id: str,
        new_status: ResultStatus,
        message: EventMessage,
        details: Optional[Dict[str, Any]] = None
    ) -> TransitionOutcome:
        result = self.get_result(r_id)
        previous_status = result.status
        now = datetime.utcnow()

        guard = [status.value for status in allowed_predecessors(new_status)]
        try:
            updated = (
                self.session.query(Result)
                .filter(Result.r_id == r_id, Result.status.in_(guard))
                .update(
                    {Result.status: new_status.value, Result.modified_date: now},
                    synchronize_session=False,
                )
            )
            self._add_event(result, message, details, now)
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise

        self.session.refresh(result)
        applied = updated == 1
        if applied:
            logger.info(f"Result {r_id}: {previous_status} -> {new_status.value}")
        else:
            logger.info(
                f"Result {r_id}: kept {result.status}, ignored {new_status.value} "
                f"(event '{message.value}' recorded)"
            )
        return TransitionOutcome(result=result, applied=applied, previous_status=previous_status)

    def handle_email_sent(self, r_id: str, details: Optional[Dict[str, Any]] = None) -> TransitionOutcome:
        return self._advance(r_id, ResultStatus.SENT, EventMessage.EMAIL_SENT, details)

    def handle_email_error(self, r_id: str, error: str, details: Optional[Dict[str, Any]] = None) -> TransitionOutcome:
        payload = dict(details or {})
        payload["error"] = error
        return self._advance(r_id, ResultStatus.ERROR, EventMessage.SENDING_ERROR, payload)

    def handle_email_opened(self, r_id: str, details: Optional[Dict[str, Any]] = None) -> TransitionOutcome:
        return self._advance(r_id, ResultStatus.OPENED, EventMessage.EMAIL_OPENED, details)

    def handle_clicked_link(self, r_id: str, details: Optional[Dict[str, Any]] = None) -> TransitionOutcome:
        return self._advance(r_id, ResultStatus.CLICKED, EventMessage.CLICKED_LINK, details)

    def handle_data_submit(self, r_id: str, details: Optional[Dict[str, Any]] = None) -> TransitionOutcome:
        return self._advance(r_id, ResultStatus.SUBMITTED_DATA, EventMessage.SUBMITTED_DATA, details)

    def handle_email_reported(self, r_id: str, details: Optional[Dict[str, Any]] = None) -> TransitionOutcome:
        """Set the reported flag; status is independent and left alone."""
        result = self.get_result(r_id)
        now = datetime.utcnow()
        try:
            updated = (
                self.session.query(Result)
                .filter(Result.r_id == r_id, Result.reported.is_(False))
                .update({Result.reported: True, Result.modified_date: now}, synchronize_session=False)
            )
            self._add_event(result, EventMessage.EMAIL_REPORTED, details, now)
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise
        self.session.refresh(result)
        return TransitionOutcome(result=result, applied=updated == 1, previous_status=result.status)

    def mark_due_as_sending(self, campaign_id: int, now: datetime) -> int:
        """Move scheduled results whose send date has arrived to Sending."""
        guard = [status.value for status in allowed_predecessors(ResultStatus.SENDING)]
        count = (
            self.session.query(Result)
            .filter(
                Result.campaign_id == campaign_id,
                Result.status.in_(guard),
                Result.send_date <= now,
            )
            .update(
                {Result.status: ResultStatus.SENDING.value, Result.modified_date: now},
                synchronize_session="fetch",
            )
        )
        return count


def compute_campaign_stats(session: Session, campaign_id: int) -> CampaignStats:
    """
    Roll up result statuses for a campaign.

    Deeper engagement implies shallower: submitted data counts as clicked,
    clicked as opened, opened as sent.
    """
    rows = (
        session.query(Result.status, func.count(Result.id))
        .filter(Result.campaign_id == campaign_id)
        .group_by(Result.status)
        .all()
    )
    by_status = {status: count for status, count in rows}
    reported = (
        session.query(func.count(Result.id))
        .filter(Result.campaign_id == campaign_id, Result.reported.is_(True))
        .scalar()
    ) or 0

    stats = CampaignStats(
        total=sum(by_status.values()),
        submitted_data=by_status.get(ResultStatus.SUBMITTED_DATA.value, 0),
        email_reported=reported,
        error=by_status.get(ResultStatus.ERROR.value, 0),
    )
    stats.clicked = by_status.get(ResultStatus.CLICKED.value, 0) + stats.submitted_data
    stats.opened = by_status.get(ResultStatus.OPENED.value, 0) + stats.clicked
    stats.sent = by_status.get(ResultStatus.SENT.value, 0) + stats.opened
    return stats
