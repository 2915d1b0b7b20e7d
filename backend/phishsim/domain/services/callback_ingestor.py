"""
Callback Ingestor
Authenticates delivery and engagement callbacks from the dispatch engine and
routes them into the result state machine.
"""
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, Optional, Union

from pydantic import BaseModel, Field, ValidationError, field_validator

from phishsim.domain.services.result_state_machine import (
    ResultNotFoundError,
    ResultStateMachine,
    TransitionOutcome,
)
from phishsim.infrastructure.security.token_issuer import (
    SecurityTokenError,
    SecurityTokenIssuer,
    extract_bearer,
)

logger = logging.getLogger(__name__)

ERROR_EVENTS = ("error", "bounce", "failed")


class CallbackPayload(BaseModel):
    """Body posted by the engine for one recipient event"""
    rid: str = ""
    campaign_id: int = 0
    event: str = ""
    timestamp: Optional[str] = None
    details: Dict[str, Any] = Field(default_factory=dict)
    error: Optional[str] = None

    @field_validator("campaign_id", mode="before")
    @classmethod
    def parse_campaign_id(cls, v: Union[int, str, None]) -> int:
        # The engine sends the id either as a number or a numeric string
        if v is None or v == "":
            return 0
        if isinstance(v, bool):
            raise ValueError("campaign_id must be a number")
        if isinstance(v, int):
            return v
        if isinstance(v, float) and v.is_integer():
            return int(v)
        if isinstance(v, str) and v.strip().lstrip("-").isdigit():
            return int(v.strip())
        raise ValueError(f"invalid campaign_id: {v!r}")

    @field_validator("details", mode="before")
    @classmethod
    def default_details(cls, v):
        return v or {}


class CallbackError(Exception):
    """Rejection carrying the HTTP status returned to the engine"""

    def __init__(self, status_code: int, message: str):
        self.status_code = status_code
        self.message = message
        super().__init__(message)


@dataclass
class CallbackOutcome:
    rid: str
    event: str
    status: str
    applied: bool

    @property
    def message(self) -> str:
        return f"Status updated for RId {self.rid}"


def error_message_from(payload: CallbackPayload) -> str:
    """Pick the most specific failure text the engine supplied."""
    if payload.error:
        return payload.error
    for key in ("error", "message"):
        value = payload.details.get(key)
        if isinstance(value, str) and value:
            return value
    return f"Email {payload.event}"


class CallbackIngestor:
    """
    Gates, in order: token, required fields, result lookup, campaign binding.
    Then the event is applied through the state machine.
    """

    def __init__(
        self,
        token_issuer: SecurityTokenIssuer,
        state_machine: ResultStateMachine,
        accepted_subjects: Optional[Iterable[str]] = None
    ):
        self.token_issuer = token_issuer
        self.state_machine = state_machine
        self.accepted_subjects = tuple(accepted_subjects or token_issuer.config.accepted_subjects)

    def authenticate(self, authorization: Optional[str]) -> Dict[str, Any]:
        try:
            token = extract_bearer(authorization)
            return self.token_issuer.verify(token, expected_subject=self.accepted_subjects)
        except SecurityTokenError as e:
            logger.warning(f"Rejected callback: {e}")
            raise CallbackError(401, f"Invalid token: {e}")

    def _handler_for(self, event: str) -> Optional[Callable[[str, CallbackPayload], TransitionOutcome]]:
        machine = self.state_machine
        if event == "sent":
            return lambda rid, p: machine.handle_email_sent(rid, p.details)
        if event in ERROR_EVENTS:
            return lambda rid, p: machine.handle_email_error(rid, error_message_from(p), p.details)
        if event == "opened":
            return lambda rid, p: machine.handle_email_opened(rid, p.details)
        if event == "clicked":
            return lambda rid, p: machine.handle_clicked_link(rid, p.details)
        if event == "submitted_data":
            return lambda rid, p: machine.handle_data_submit(rid, p.details)
        if event == "reported":
            return lambda rid, p: machine.handle_email_reported(rid, p.details)
        return None

    def ingest(self, authorization: Optional[str], payload: Union[CallbackPayload, Dict[str, Any]]) -> CallbackOutcome:
        """
        Apply one callback. A raw body is validated only after the token passed.

        Raises:
            CallbackError: With the status code to return (401, 400, 404 or 500)
        """
        self.authenticate(authorization)

        if not isinstance(payload, CallbackPayload):
            try:
                payload = CallbackPayload.model_validate(payload or {})
            except ValidationError as e:
                raise CallbackError(400, f"Invalid request body: {e.errors()[0].get('msg', 'invalid')}")

        if not payload.rid:
            raise CallbackError(400, "rid is required")
        if not payload.event:
            raise CallbackError(400, "event is required")

        try:
            result = self.state_machine.get_result(payload.rid)
        except ResultNotFoundError:
            logger.warning(f"Callback for unknown RId {payload.rid}")
            raise CallbackError(404, "Result not found")

        if payload.campaign_id and payload.campaign_id != result.campaign_id:
            logger.warning(
                f"SECURITY: campaign mismatch for RId {payload.rid}: "
                f"callback says {payload.campaign_id}, result belongs to {result.campaign_id}"
            )
            raise CallbackError(400, "Campaign ID mismatch")

        event = payload.event.lower()
        handler = self._handler_for(event)
        if handler is None:
            logger.warning(f"Unknown callback event '{payload.event}' for RId {payload.rid}")
            raise CallbackError(400, f"Unknown event type: {payload.event}")

        try:
            outcome = handler(payload.rid, payload)
        except ResultNotFoundError:
            raise CallbackError(404, "Result not found")
        except Exception as e:
            logger.error(f"Failed to process '{event}' for RId {payload.rid}: {e}", exc_info=True)
            raise CallbackError(500, "Failed to update result")

        logger.info(f"Callback '{event}' processed for RId {payload.rid} (status {outcome.result.status})")
        return CallbackOutcome(
            rid=payload.rid,
            event=event,
            status=outcome.result.status,
            applied=outcome.applied,
        )
