"""
Tests for the Callback Ingestor
"""
import json
import time
import pytest

from phishsim.core.config import TokenConfig
from phishsim.domain.models.result import ResultStatus
from phishsim.domain.services.callback_ingestor import (
    CallbackError,
    CallbackIngestor,
    CallbackPayload,
    error_message_from,
)
from phishsim.domain.services.result_state_machine import ResultStateMachine
from phishsim.infrastructure.security.token_issuer import SecurityTokenIssuer
from phishsim.infrastructure.storage.models import Campaign, Event, Result


@pytest.fixture
def campaign(db, seeded):
    campaign = Campaign(user_id=seeded["user"].id, name="Q1 Awareness", status="In progress")
    db.add(campaign)
    db.flush()
    db.add(Result(
        r_id="AbC1234",
        campaign_id=campaign.id,
        user_id=seeded["user"].id,
        email="alice@example.com",
        status=ResultStatus.SENDING.value,
    ))
    db.commit()
    return campaign


@pytest.fixture
def ingestor(db, token_issuer):
    return CallbackIngestor(token_issuer=token_issuer, state_machine=ResultStateMachine(db))


@pytest.fixture
def auth(token_issuer):
    return f"Bearer {token_issuer.issue(subject='n8n')}"


def status_of(db, rid="AbC1234"):
    db.expire_all()
    return db.query(Result).filter(Result.r_id == rid).one().status


class TestCallbackPayload:
    """Tests for body parsing"""

    @pytest.mark.parametrize("raw,expected", [(7, 7), ("7", 7), ("", 0), (None, 0)])
    def test_campaign_id_forms(self, raw, expected):
        """campaign_id accepts numbers and numeric strings"""
        payload = CallbackPayload.model_validate({"rid": "x", "event": "sent", "campaign_id": raw})
        assert payload.campaign_id == expected

    def test_non_numeric_campaign_id(self):
        with pytest.raises(ValueError):
            CallbackPayload.model_validate({"rid": "x", "event": "sent", "campaign_id": "abc"})

    def test_null_details(self):
        payload = CallbackPayload.model_validate({"rid": "x", "event": "sent", "details": None})
        assert payload.details == {}


class TestErrorMessage:
    """Tests for error text selection"""

    def test_top_level_error_wins(self):
        payload = CallbackPayload(rid="x", event="bounce", error="550 rejected", details={"error": "other"})
        assert error_message_from(payload) == "550 rejected"

    def test_details_error(self):
        payload = CallbackPayload(rid="x", event="bounce", details={"error": "mailbox full"})
        assert error_message_from(payload) == "mailbox full"

    def test_details_message(self):
        payload = CallbackPayload(rid="x", event="failed", details={"message": "smtp down"})
        assert error_message_from(payload) == "smtp down"

    def test_fallback(self):
        assert error_message_from(CallbackPayload(rid="x", event="bounce")) == "Email bounce"


class TestIngest:
    """Tests for the gate order and event routing"""

    def test_sent(self, ingestor, campaign, auth, db):
        outcome = ingestor.ingest(auth, {"rid": "AbC1234", "campaign_id": campaign.id, "event": "sent"})

        assert outcome.applied is True
        assert outcome.status == "Email Sent"
        assert outcome.message == "Status updated for RId AbC1234"
        assert status_of(db) == "Email Sent"

    def test_campaign_id_as_string(self, ingestor, campaign, auth, db):
        ingestor.ingest(auth, {"rid": "AbC1234", "campaign_id": str(campaign.id), "event": "opened"})
        assert status_of(db) == "Email Opened"

    def test_bounce_records_error(self, ingestor, campaign, auth, db):
        ingestor.ingest(auth, {
            "rid": "AbC1234",
            "campaign_id": campaign.id,
            "event": "bounce",
            "details": {"message": "mailbox does not exist"},
        })

        assert status_of(db) == "Error"
        event = db.query(Event).filter(Event.campaign_id == campaign.id).one()
        assert event.message == "Error Sending Email"
        assert json.loads(event.details)["error"] == "mailbox does not exist"

    def test_late_sent_after_opened(self, ingestor, campaign, auth, db):
        """Out-of-order delivery never regresses the status"""
        ingestor.ingest(auth, {"rid": "AbC1234", "event": "opened"})
        outcome = ingestor.ingest(auth, {"rid": "AbC1234", "event": "sent"})

        assert outcome.applied is False
        assert status_of(db) == "Email Opened"
        assert db.query(Event).filter(Event.campaign_id == campaign.id).count() == 2

    def test_submitted_and_reported(self, ingestor, campaign, auth, db):
        ingestor.ingest(auth, {"rid": "AbC1234", "event": "submitted_data"})
        ingestor.ingest(auth, {"rid": "AbC1234", "event": "reported"})

        db.expire_all()
        result = db.query(Result).filter(Result.r_id == "AbC1234").one()
        assert result.status == "Submitted Data"
        assert result.reported is True

    def test_event_name_case_insensitive(self, ingestor, campaign, auth, db):
        ingestor.ingest(auth, {"rid": "AbC1234", "event": "CLICKED"})
        assert status_of(db) == "Clicked Link"

    @pytest.mark.parametrize("header", [None, "Bearer garbage", "Token abc"])
    def test_bad_token(self, ingestor, campaign, header):
        with pytest.raises(CallbackError) as exc_info:
            ingestor.ingest(header, {"rid": "AbC1234", "event": "sent"})
        assert exc_info.value.status_code == 401

    def test_expired_token(self, ingestor, campaign, token_issuer, db):
        """A token issued ten minutes ago is rejected"""
        stale = token_issuer.issue(subject="n8n", now=time.time() - 600)
        with pytest.raises(CallbackError) as exc_info:
            ingestor.ingest(f"Bearer {stale}", {"rid": "AbC1234", "event": "sent"})
        assert exc_info.value.status_code == 401
        assert status_of(db) == "Sending"

    def test_unaccepted_subject(self, ingestor, campaign, token_issuer):
        token = token_issuer.issue(subject="someone")
        with pytest.raises(CallbackError) as exc_info:
            ingestor.ingest(f"Bearer {token}", {"rid": "AbC1234", "event": "sent"})
        assert exc_info.value.status_code == 401

    def test_other_secret(self, ingestor, campaign):
        forged = SecurityTokenIssuer(TokenConfig(secret="forged-secret-0123456789abcdefghij")).issue(subject="n8n")
        with pytest.raises(CallbackError) as exc_info:
            ingestor.ingest(f"Bearer {forged}", {"rid": "AbC1234", "event": "sent"})
        assert exc_info.value.status_code == 401

    def test_token_checked_before_body(self, ingestor):
        """Unauthenticated callers get 401 even for a broken body"""
        with pytest.raises(CallbackError) as exc_info:
            ingestor.ingest(None, {"campaign_id": "abc"})
        assert exc_info.value.status_code == 401

    @pytest.mark.parametrize("body", [{"event": "sent"}, {"rid": "AbC1234"}, None, {"rid": "AbC1234", "event": "sent", "campaign_id": "abc"}])
    def test_bad_body(self, ingestor, campaign, auth, body):
        with pytest.raises(CallbackError) as exc_info:
            ingestor.ingest(auth, body)
        assert exc_info.value.status_code == 400

    def test_unknown_rid(self, ingestor, campaign, auth):
        with pytest.raises(CallbackError) as exc_info:
            ingestor.ingest(auth, {"rid": "missing", "event": "sent"})
        assert exc_info.value.status_code == 404

    def test_campaign_mismatch(self, ingestor, campaign, auth, db):
        """Mismatched campaign is rejected with no state change"""
        with pytest.raises(CallbackError) as exc_info:
            ingestor.ingest(auth, {"rid": "AbC1234", "campaign_id": campaign.id + 1, "event": "clicked"})

        assert exc_info.value.status_code == 400
        assert status_of(db) == "Sending"
        assert db.query(Event).count() == 0

    def test_unknown_event(self, ingestor, campaign, auth, db):
        with pytest.raises(CallbackError) as exc_info:
            ingestor.ingest(auth, {"rid": "AbC1234", "event": "teleported"})
        assert exc_info.value.status_code == 400
        assert status_of(db) == "Sending"

    def test_unexpected_failure_is_500(self, ingestor, campaign, auth, monkeypatch):
        def explode(*args, **kwargs):
            raise RuntimeError("database went away")

        monkeypatch.setattr(ingestor.state_machine, "handle_email_sent", explode)
        with pytest.raises(CallbackError) as exc_info:
            ingestor.ingest(auth, {"rid": "AbC1234", "event": "sent"})
        assert exc_info.value.status_code == 500
