"""
Tests for the Result State Machine
"""
import json
import pytest
from datetime import datetime, timedelta

from phishsim.domain.models.result import (
    ResultStatus,
    allowed_predecessors,
    can_transition,
)
from phishsim.domain.services.result_state_machine import (
    ResultNotFoundError,
    ResultStateMachine,
    compute_campaign_stats,
)
from phishsim.infrastructure.storage.models import Campaign, Event, Result


def make_campaign(db, user_id, statuses):
    """Campaign with one result per status, r_ids r0, r1, ..."""
    campaign = Campaign(user_id=user_id, name="Q1 Awareness", status="In progress")
    db.add(campaign)
    db.flush()
    for idx, status in enumerate(statuses):
        db.add(Result(
            r_id=f"r{idx}",
            campaign_id=campaign.id,
            user_id=user_id,
            email=f"user{idx}@example.com",
            status=status.value,
            send_date=datetime(2026, 3, 2, 9, 0) + timedelta(minutes=idx),
        ))
    db.commit()
    return campaign


class TestTransitionRule:
    """Tests for can_transition / allowed_predecessors"""

    def test_forward_moves_allowed(self):
        """Deeper engagement always applies"""
        assert can_transition(ResultStatus.SCHEDULED, ResultStatus.SENDING)
        assert can_transition(ResultStatus.SENT, ResultStatus.OPENED)
        assert can_transition(ResultStatus.SCHEDULED, ResultStatus.SUBMITTED_DATA)

    def test_same_status_allowed(self):
        """Repeated events are idempotent"""
        assert can_transition(ResultStatus.OPENED, ResultStatus.OPENED)

    def test_regression_blocked(self):
        """A late 'sent' after 'opened' does nothing"""
        assert not can_transition(ResultStatus.OPENED, ResultStatus.SENT)
        assert not can_transition(ResultStatus.SUBMITTED_DATA, ResultStatus.CLICKED)

    def test_error_is_terminal(self):
        """Nothing leaves Error"""
        for status in ResultStatus:
            if status != ResultStatus.ERROR:
                assert not can_transition(ResultStatus.ERROR, status)

    def test_error_reachable_except_from_submitted(self):
        """Error applies from every status but Submitted Data"""
        assert can_transition(ResultStatus.CLICKED, ResultStatus.ERROR)
        assert can_transition(ResultStatus.SCHEDULED, ResultStatus.ERROR)
        assert not can_transition(ResultStatus.SUBMITTED_DATA, ResultStatus.ERROR)

    def test_predecessors_of_sent(self):
        """Guard for Sent covers the statuses below it"""
        assert set(allowed_predecessors(ResultStatus.SENT)) == {
            ResultStatus.SCHEDULED,
            ResultStatus.SENDING,
            ResultStatus.SENT,
        }


class TestResultStateMachine:
    """Tests for applying events to stored results"""

    def test_sent_from_sending(self, db, seeded):
        """Sending -> Email Sent with a timeline event"""
        campaign = make_campaign(db, seeded["user"].id, [ResultStatus.SENDING])
        machine = ResultStateMachine(db)

        outcome = machine.handle_email_sent("r0", {"message_id": "abc"})

        assert outcome.applied is True
        assert outcome.previous_status == "Sending"
        assert outcome.result.status == "Email Sent"
        event = db.query(Event).filter(Event.campaign_id == campaign.id).one()
        assert event.message == "Email Sent"
        assert event.email == "user0@example.com"
        assert json.loads(event.details) == {"message_id": "abc"}

    def test_late_sent_does_not_regress(self, db, seeded):
        """Opened stays Opened, but the event is still recorded"""
        campaign = make_campaign(db, seeded["user"].id, [ResultStatus.OPENED])
        machine = ResultStateMachine(db)

        outcome = machine.handle_email_sent("r0")

        assert outcome.applied is False
        assert outcome.result.status == "Email Opened"
        assert db.query(Event).filter(Event.campaign_id == campaign.id).count() == 1

    def test_error_is_sticky(self, db, seeded):
        """A click after an error leaves the result in Error"""
        make_campaign(db, seeded["user"].id, [ResultStatus.SENDING])
        machine = ResultStateMachine(db)

        machine.handle_email_error("r0", "mailbox unavailable")
        outcome = machine.handle_clicked_link("r0", {"browser": {"address": "10.0.0.1"}})

        assert outcome.applied is False
        assert outcome.result.status == "Error"

    def test_error_details_carry_message(self, db, seeded):
        """Error text is stored in the event details"""
        campaign = make_campaign(db, seeded["user"].id, [ResultStatus.SENDING])
        ResultStateMachine(db).handle_email_error("r0", "550 no such user", {"code": 550})

        event = db.query(Event).filter(Event.campaign_id == campaign.id).one()
        assert event.message == "Error Sending Email"
        assert json.loads(event.details) == {"code": 550, "error": "550 no such user"}

    def test_submitted_data_from_scheduled(self, db, seeded):
        """Data submission jumps straight from Scheduled"""
        make_campaign(db, seeded["user"].id, [ResultStatus.SCHEDULED])
        outcome = ResultStateMachine(db).handle_data_submit("r0", {"payload": {"username": ["alice"]}})
        assert outcome.applied is True
        assert outcome.result.status == "Submitted Data"

    def test_error_after_submitted_is_ignored(self, db, seeded):
        """Submitted Data is kept over a late bounce"""
        make_campaign(db, seeded["user"].id, [ResultStatus.SUBMITTED_DATA])
        outcome = ResultStateMachine(db).handle_email_error("r0", "bounced")
        assert outcome.applied is False
        assert outcome.result.status == "Submitted Data"

    def test_reported_flag_is_independent(self, db, seeded):
        """Reporting keeps the status and sets the flag once"""
        make_campaign(db, seeded["user"].id, [ResultStatus.CLICKED])
        machine = ResultStateMachine(db)

        first = machine.handle_email_reported("r0")
        second = machine.handle_email_reported("r0")

        assert first.applied is True
        assert second.applied is False
        assert first.result.reported is True
        assert first.result.status == "Clicked Link"

    def test_unknown_rid(self, db, seeded):
        """Missing results raise ResultNotFoundError"""
        with pytest.raises(ResultNotFoundError):
            ResultStateMachine(db).handle_email_opened("nope")

    def test_mark_due_as_sending(self, db, seeded):
        """Only scheduled results that are due move to Sending"""
        campaign = make_campaign(
            db, seeded["user"].id,
            [ResultStatus.SCHEDULED, ResultStatus.SCHEDULED, ResultStatus.OPENED],
        )
        machine = ResultStateMachine(db)

        moved = machine.mark_due_as_sending(campaign.id, datetime(2026, 3, 2, 9, 0, 30))
        db.commit()

        statuses = {r.r_id: r.status for r in db.query(Result).all()}
        assert moved == 1
        assert statuses == {"r0": "Sending", "r1": "Scheduled", "r2": "Email Opened"}


class TestCampaignStats:
    """Tests for compute_campaign_stats roll-up"""

    def test_roll_up(self, db, seeded):
        """Deeper engagement counts toward every shallower bucket"""
        campaign = make_campaign(db, seeded["user"].id, [
            ResultStatus.SCHEDULED,
            ResultStatus.SENT,
            ResultStatus.OPENED,
            ResultStatus.CLICKED,
            ResultStatus.SUBMITTED_DATA,
            ResultStatus.ERROR,
        ])
        ResultStateMachine(db).handle_email_reported("r3")

        stats = compute_campaign_stats(db, campaign.id)

        assert stats.total == 6
        assert stats.submitted_data == 1
        assert stats.clicked == 2
        assert stats.opened == 3
        assert stats.sent == 4
        assert stats.error == 1
        assert stats.email_reported == 1

    def test_submitted_from_scheduled_counts_as_opened(self, db, seeded):
        """A submission without open/click events still counts as opened and clicked"""
        campaign = make_campaign(db, seeded["user"].id, [ResultStatus.SCHEDULED])
        ResultStateMachine(db).handle_data_submit("r0")

        stats = compute_campaign_stats(db, campaign.id)

        assert stats.opened == 1
        assert stats.clicked == 1
        assert stats.sent == 1

    def test_empty_campaign(self, db, seeded):
        campaign = make_campaign(db, seeded["user"].id, [])
        stats = compute_campaign_stats(db, campaign.id)
        assert stats.total == 0
        assert stats.sent == 0
