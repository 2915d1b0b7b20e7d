"""
Campaign Service
Campaign lifecycle: creation as one unit of work gated on dispatch, owner
scoped reads, rate-limit pre-check, completion, deletion and promotion of
queued campaigns.
"""
import asyncio
import json
import logging
import secrets
import string
from datetime import datetime
from typing import Dict, List, Optional, Sequence

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from phishsim.domain.models.campaign import (
    CampaignCreateRequest,
    CampaignResponse,
    CampaignResults,
    CampaignStatus,
    CampaignSummaries,
    CampaignSummary,
    RateLimitCheckRequest,
    RateLimitCheckResponse,
    can_advance_campaign,
    to_naive_utc,
)
from phishsim.domain.models.result import EventMessage, ResultStatus, TimelineEvent
from phishsim.domain.models.result import Result as ResultModel
from phishsim.domain.services.rate_limiter import RateLimitCalculator
from phishsim.domain.services.recipient_scheduler import RecipientScheduler
from phishsim.domain.services.result_state_machine import ResultStateMachine, compute_campaign_stats
from phishsim.infrastructure.dispatch.dispatcher import DispatchCoordinator, DispatchError
from phishsim.infrastructure.storage.models import (
    Campaign,
    EmailAccount,
    Event,
    Group,
    MailLog,
    Page,
    Result,
    Target,
    Template,
)

logger = logging.getLogger(__name__)

R_ID_LENGTH = 7
R_ID_ALPHABET = string.ascii_letters + string.digits


class CampaignValidationError(Exception):
    """Raised when a campaign request fails validation"""
    pass


class ReferenceNotFoundError(Exception):
    """Raised when a named template, page, group or email account does not exist"""

    def __init__(self, entity: str, reference: str = ""):
        self.entity = entity
        self.reference = reference
        message = f"{entity} not found"
        if reference:
            message = f"{entity} '{reference}' not found"
        super().__init__(message)


class CampaignNotFoundError(Exception):
    """Raised when a campaign does not exist for the caller"""

    def __init__(self, campaign_id: int):
        self.campaign_id = campaign_id
        super().__init__(f"Campaign {campaign_id} not found")


def generate_r_id() -> str:
    return "".join(secrets.choice(R_ID_ALPHABET) for _ in range(R_ID_LENGTH))


def check_send_window(launch_date: datetime, send_by_date: Optional[datetime]) -> None:
    if send_by_date is not None and send_by_date < launch_date:
        raise CampaignValidationError("send by date must be after launch date")


def dedupe_recipients(groups: Sequence[Group]) -> List[Target]:
    """Unique targets by email (case-insensitive) across groups, first seen wins."""
    seen = set()
    recipients = []
    for group in groups:
        for target in group.targets:
            key = (target.email or "").strip().lower()
            if not key or key in seen:
                continue
            seen.add(key)
            recipients.append(target)
    return recipients


class CampaignService:
    """
    Campaign lifecycle manager.

    Works on a request-scoped SQLAlchemy session. Creation stages everything,
    hands the batch to the dispatch coordinator and commits only if the engine
    accepted it.

    Without a dispatcher only the read, completion and promotion paths work.
    """

    def __init__(
        self,
        session: Session,
        rate_limiter: RateLimitCalculator,
        dispatcher: Optional[DispatchCoordinator] = None,
        scheduler: Optional[RecipientScheduler] = None
    ):
        self.session = session
        self.rate_limiter = rate_limiter
        self.dispatcher = dispatcher
        self.scheduler = scheduler or RecipientScheduler()

    # =========================================================================
    # Creation
    # =========================================================================

    def validate_request(self, request: CampaignCreateRequest, now: Optional[datetime] = None) -> None:
        """
        Fail fast before anything is persisted.

        A missing launch date means "now", and the send-by date is checked
        against that resolved value.
        """
        if not request.name.strip():
            raise CampaignValidationError("campaign name not specified")
        if not request.groups:
            raise CampaignValidationError("no groups specified")
        if request.template.is_empty:
            raise CampaignValidationError("template not specified")
        if request.page.is_empty:
            raise CampaignValidationError("landing page not specified")
        if request.email_account.is_empty and not (request.email_type or "").strip():
            raise CampaignValidationError("email account not specified")
        launch_date = to_naive_utc(request.launch_date) or now or datetime.utcnow()
        check_send_window(launch_date, to_naive_utc(request.send_by_date))

    def _resolve_template(self, request: CampaignCreateRequest, user_id: int) -> Template:
        query = self.session.query(Template).filter(Template.user_id == user_id)
        ref = request.template
        template = (
            query.filter(Template.id == ref.id).first() if ref.id
            else query.filter(Template.name == ref.name).first()
        )
        if template is None:
            raise ReferenceNotFoundError("template", ref.name or str(ref.id))
        return template

    def _resolve_page(self, request: CampaignCreateRequest, user_id: int) -> Page:
        query = self.session.query(Page).filter(Page.user_id == user_id)
        ref = request.page
        page = (
            query.filter(Page.id == ref.id).first() if ref.id
            else query.filter(Page.name == ref.name).first()
        )
        if page is None:
            raise ReferenceNotFoundError("page", ref.name or str(ref.id))
        return page

    def _resolve_groups(self, request: CampaignCreateRequest, user_id: int) -> List[Group]:
        groups = []
        for ref in request.groups:
            query = self.session.query(Group).filter(Group.user_id == user_id)
            group = (
                query.filter(Group.id == ref.id).first() if ref.id
                else query.filter(Group.name == ref.name).first()
            )
            if group is None:
                raise ReferenceNotFoundError("group", ref.name or str(ref.id))
            groups.append(group)
        return groups

    def _resolve_email_account(self, request: CampaignCreateRequest) -> EmailAccount:
        ref = request.email_account
        query = self.session.query(EmailAccount).filter(EmailAccount.is_active.is_(True))
        account = None
        if ref.id:
            account = query.filter(EmailAccount.id == ref.id).first()
        elif (ref.email or "").strip():
            account = query.filter(EmailAccount.email == ref.email.strip()).first()
        elif (request.email_type or "").strip():
            account = (
                query.filter(EmailAccount.email_type == request.email_type.strip())
                .order_by(EmailAccount.id)
                .first()
            )
        if account is None:
            raise ReferenceNotFoundError("email account", ref.email or request.email_type or str(ref.id or ""))
        return account

    def _new_r_id(self, taken: set) -> str:
        while True:
            r_id = generate_r_id()
            if r_id in taken:
                continue
            if self.session.query(Result.id).filter(Result.r_id == r_id).first() is None:
                taken.add(r_id)
                return r_id

    def _record_event(self, campaign_id: int, message: EventMessage, email: str = "", details: Optional[Dict] = None) -> None:
        """Append a timeline event inside a savepoint; failures are logged only."""
        try:
            with self.session.begin_nested():
                self.session.add(Event(
                    campaign_id=campaign_id,
                    email=email,
                    time=datetime.utcnow(),
                    message=message.value,
                    details=json.dumps(details or {}, default=str),
                ))
        except SQLAlchemyError as e:
            logger.warning(f"Failed to record '{message.value}' event for campaign {campaign_id}: {e}")

    def _stage_campaign(self, request: CampaignCreateRequest, user_id: int, now: datetime):
        """Resolve references and flush the campaign with its results, uncommitted."""
        launch_date = to_naive_utc(request.launch_date) or now
        send_by_date = to_naive_utc(request.send_by_date)

        groups = self._resolve_groups(request, user_id)
        template = self._resolve_template(request, user_id)
        page = self._resolve_page(request, user_id)
        email_account = self._resolve_email_account(request)

        recipients = dedupe_recipients(groups)
        if not recipients:
            raise CampaignValidationError("no recipients found in the selected groups")

        if send_by_date is None:
            send_by_date = self.rate_limiter.calculate_minimum_send_by_date(launch_date, len(recipients))
            logger.info(
                f"Auto-calculated send-by date {send_by_date.isoformat()} "
                f"for {len(recipients)} recipients"
            )
        else:
            warning = self.rate_limiter.validate(launch_date, send_by_date, len(recipients))
            if warning is not None:
                logger.warning(
                    f"Campaign '{request.name}' uses an aggressive window: "
                    f"{warning.provided_interval_seconds:.1f}s per recipient "
                    f"(minimum {warning.minimum_interval_seconds:.0f}s)"
                )

        status = CampaignStatus.IN_PROGRESS if launch_date <= now else CampaignStatus.QUEUED

        campaign = Campaign(
            user_id=user_id,
            name=request.name.strip(),
            created_date=now,
            launch_date=launch_date,
            send_by_date=send_by_date,
            template_id=template.id,
            page_id=page.id,
            email_account_id=email_account.id,
            status=status.value,
            url=request.url or "",
        )
        self.session.add(campaign)
        self.session.flush()

        self._record_event(campaign.id, EventMessage.CAMPAIGN_CREATED)

        taken = set()
        results = []
        for target, send_date in self.scheduler.schedule(recipients, launch_date, send_by_date):
            result_status = ResultStatus.SENDING if send_date <= now else ResultStatus.SCHEDULED
            result = Result(
                r_id=self._new_r_id(taken),
                campaign_id=campaign.id,
                user_id=user_id,
                email=target.email.strip(),
                first_name=target.first_name or "",
                last_name=target.last_name or "",
                position=target.position or "",
                status=result_status.value,
                send_date=send_date,
                reported=False,
                modified_date=now,
            )
            self.session.add(result)
            results.append(result)
        self.session.flush()

        return campaign, results, template, email_account

    def _finish_creation(self, campaign: Campaign, results: Sequence[Result],
                         email_account: EmailAccount, now: datetime) -> CampaignResponse:
        logger.info(
            f"Campaign {campaign.id} '{campaign.name}' created: {len(results)} recipients, "
            f"status={campaign.status}, send-by {campaign.send_by_date.isoformat()}"
        )
        self._touch_email_account(email_account, now)
        return self._to_response(campaign)

    async def create_campaign(self, request: CampaignCreateRequest, user_id: int) -> CampaignResponse:
        """
        Create a campaign and hand its recipient batch to the engine.

        Database work runs in worker threads so the event loop stays free for
        callbacks while the engine is answering.

        Raises:
            CampaignValidationError: Invalid request or no recipients
            ReferenceNotFoundError: Unknown template, page, group or email account
            DispatchError: Engine rejected the batch; nothing was persisted
        """
        if self.dispatcher is None:
            raise RuntimeError("campaign creation needs a dispatch coordinator")

        now = datetime.utcnow()
        self.validate_request(request, now)

        try:
            campaign, results, template, email_account = await asyncio.to_thread(
                self._stage_campaign, request, user_id, now
            )
            await self.dispatcher.dispatch(campaign, results, template, email_account)
            await asyncio.to_thread(self.session.commit)
        except DispatchError as e:
            await asyncio.to_thread(self.session.rollback)
            logger.error(f"Campaign '{request.name}' rolled back, dispatch failed: {e.message}")
            raise
        except Exception:
            await asyncio.to_thread(self.session.rollback)
            raise

        return await asyncio.to_thread(self._finish_creation, campaign, results, email_account, now)

    def _touch_email_account(self, email_account: EmailAccount, when: datetime) -> None:
        try:
            email_account.usage_count = (email_account.usage_count or 0) + 1
            email_account.last_used = when
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.warning(f"Failed to update usage for email account {email_account.email}: {e}")

    # =========================================================================
    # Reads
    # =========================================================================

    def _get_owned(self, campaign_id: int, user_id: int) -> Campaign:
        campaign = (
            self.session.query(Campaign)
            .filter(Campaign.id == campaign_id, Campaign.user_id == user_id)
            .first()
        )
        if campaign is None:
            raise CampaignNotFoundError(campaign_id)
        return campaign

    def _results_for(self, campaign_id: int) -> List[ResultModel]:
        rows = (
            self.session.query(Result)
            .filter(Result.campaign_id == campaign_id)
            .order_by(Result.id)
            .all()
        )
        return [ResultModel.model_validate(row) for row in rows]

    def _timeline_for(self, campaign_id: int) -> List[TimelineEvent]:
        rows = (
            self.session.query(Event)
            .filter(Event.campaign_id == campaign_id)
            .order_by(Event.time, Event.id)
            .all()
        )
        return [TimelineEvent.model_validate(row) for row in rows]

    def _to_response(self, campaign: Campaign) -> CampaignResponse:
        account = campaign.email_account
        return CampaignResponse(
            id=campaign.id,
            name=campaign.name,
            created_date=campaign.created_date,
            launch_date=campaign.launch_date,
            send_by_date=campaign.send_by_date,
            completed_date=campaign.completed_date,
            status=campaign.status,
            url=campaign.url or "",
            template=campaign.template.name if campaign.template else None,
            page=campaign.page.name if campaign.page else None,
            email_account=account.email if account else None,
            email_type=account.email_type if account else None,
            results=self._results_for(campaign.id),
            timeline=self._timeline_for(campaign.id),
        )

    def _to_summary(self, campaign: Campaign) -> CampaignSummary:
        summary = CampaignSummary.model_validate(campaign)
        summary.stats = compute_campaign_stats(self.session, campaign.id)
        return summary

    def get_campaign(self, campaign_id: int, user_id: int) -> CampaignResponse:
        return self._to_response(self._get_owned(campaign_id, user_id))

    def list_campaigns(self, user_id: int) -> List[CampaignResponse]:
        campaigns = (
            self.session.query(Campaign)
            .filter(Campaign.user_id == user_id)
            .order_by(Campaign.created_date.desc(), Campaign.id.desc())
            .all()
        )
        return [self._to_response(campaign) for campaign in campaigns]

    def get_campaign_results(self, campaign_id: int, user_id: int) -> CampaignResults:
        campaign = self._get_owned(campaign_id, user_id)
        return CampaignResults(
            id=campaign.id,
            name=campaign.name,
            status=campaign.status,
            results=self._results_for(campaign.id),
            timeline=self._timeline_for(campaign.id),
        )

    def get_campaign_summary(self, campaign_id: int, user_id: int) -> CampaignSummary:
        return self._to_summary(self._get_owned(campaign_id, user_id))

    def get_campaign_summaries(self, user_id: int) -> CampaignSummaries:
        campaigns = (
            self.session.query(Campaign)
            .filter(Campaign.user_id == user_id)
            .order_by(Campaign.id)
            .all()
        )
        summaries = [self._to_summary(campaign) for campaign in campaigns]
        return CampaignSummaries(total=len(summaries), campaigns=summaries)

    # =========================================================================
    # Rate-limit pre-check
    # =========================================================================

    def check_rate_limit(self, request: RateLimitCheckRequest, user_id: int) -> RateLimitCheckResponse:
        """
        Diagnose a proposed window before the campaign is submitted.

        Recipients are counted per group, duplicates across groups included.
        """
        if request.launch_date is None:
            raise CampaignValidationError("Launch date is required")
        if not request.group_ids:
            raise CampaignValidationError("At least one group is required")
        check_send_window(to_naive_utc(request.launch_date), to_naive_utc(request.send_by_date))

        total_recipients = 0
        for group_id in request.group_ids:
            group = (
                self.session.query(Group)
                .filter(Group.id == group_id, Group.user_id == user_id)
                .first()
            )
            if group is None:
                raise ReferenceNotFoundError("group", str(group_id))
            total_recipients += len(group.targets)

        if total_recipients == 0:
            return RateLimitCheckResponse(success=True, message="No recipients found in selected groups")

        warning = self.rate_limiter.validate(request.launch_date, request.send_by_date, total_recipients)
        if warning is not None:
            return RateLimitCheckResponse(
                success=False,
                warning=warning,
                message="Campaign sending rate is too aggressive",
            )
        return RateLimitCheckResponse(success=True, message="Campaign rate limit is acceptable")

    # =========================================================================
    # Completion, deletion, promotion
    # =========================================================================

    def _advance_campaign(self, campaign: Campaign, new_status: CampaignStatus) -> bool:
        if not can_advance_campaign(campaign.status, new_status):
            logger.warning(f"Campaign {campaign.id}: refusing {campaign.status} -> {new_status.value}")
            return False
        campaign.status = new_status.value
        return True

    def complete_campaign(self, campaign_id: int, user_id: int) -> CampaignResponse:
        """Mark a campaign Completed. Calling it again changes nothing."""
        campaign = self._get_owned(campaign_id, user_id)
        try:
            self.session.query(MailLog).filter(MailLog.campaign_id == campaign.id).delete(synchronize_session=False)
            if campaign.status != CampaignStatus.COMPLETED.value:
                self._advance_campaign(campaign, CampaignStatus.COMPLETED)
                campaign.completed_date = datetime.utcnow()
                self._record_event(campaign.id, EventMessage.CAMPAIGN_COMPLETED)
                logger.info(f"Campaign {campaign.id} completed")
            self.session.commit()
        except SQLAlchemyError:
            self.session.rollback()
            raise
        return self._to_response(campaign)

    def delete_campaign(self, campaign_id: int, user_id: int) -> None:
        """Delete a campaign with its results, events and mail logs."""
        campaign = self._get_owned(campaign_id, user_id)
        try:
            self.session.query(Result).filter(Result.campaign_id == campaign.id).delete(synchronize_session=False)
            self.session.query(Event).filter(Event.campaign_id == campaign.id).delete(synchronize_session=False)
            self.session.query(MailLog).filter(MailLog.campaign_id == campaign.id).delete(synchronize_session=False)
            self.session.delete(campaign)
            self.session.commit()
        except SQLAlchemyError:
            self.session.rollback()
            raise
        logger.info(f"Deleted campaign {campaign_id}")

    def launch_queued_campaigns(self, now: Optional[datetime] = None) -> int:
        """
        Promote Queued campaigns whose launch date has arrived.

        The batch already sits with the engine, so nothing is re-dispatched;
        only local status catches up. Returns the number of promoted campaigns.
        """
        now = now or datetime.utcnow()
        campaigns = (
            self.session.query(Campaign)
            .filter(Campaign.status == CampaignStatus.QUEUED.value, Campaign.launch_date <= now)
            .order_by(Campaign.id)
            .all()
        )
        if not campaigns:
            return 0

        state_machine = ResultStateMachine(self.session)
        try:
            for campaign in campaigns:
                self._advance_campaign(campaign, CampaignStatus.IN_PROGRESS)
                moved = state_machine.mark_due_as_sending(campaign.id, now)
                logger.info(f"Campaign {campaign.id} launched ({moved} results now sending)")
            self.session.commit()
        except SQLAlchemyError:
            self.session.rollback()
            raise
        return len(campaigns)
