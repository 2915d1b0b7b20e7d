"""
Dispatch Coordinator
Hands a campaign's full recipient batch to the external email engine in one
authenticated request.

The engine owns per-recipient timing (each recipient carries its send_at) and
reports delivery and engagement back through the callback webhook.
"""
import json
import logging
from dataclasses import dataclass
from typing import Optional, Sequence

import httpx

from phishsim.core.config import DispatchConfig, TrackingConfig
from phishsim.domain.services.template_renderer import PassthroughRenderer, TemplateRenderer
from phishsim.infrastructure.security.token_issuer import SecurityTokenError, SecurityTokenIssuer
from phishsim.utils.tracking_urls import (
    get_phishing_url,
    get_public_base_url,
    get_tracking_pixel_url,
    is_localhost,
)

logger = logging.getLogger(__name__)


class DispatchError(Exception):
    """Raised when the batch could not be handed to the engine"""

    def __init__(self, message: str, status_code: Optional[int] = None, response_body: Optional[str] = None):
        self.message = message
        self.status_code = status_code
        self.response_body = response_body
        super().__init__(self.message)


@dataclass
class DispatchReceipt:
    """Acknowledgement from the engine"""
    status_code: int
    recipients: int
    response_body: str = ""


def _isoformat(value) -> Optional[str]:
    return value.isoformat() + "Z" if value is not None else None


class DispatchCoordinator:
    """
    Builds and submits one batch request per campaign.

    Any transport error, timeout or non-2xx response raises DispatchError.
    There is no retry here; the caller decides.
    """

    def __init__(
        self,
        config: DispatchConfig,
        token_issuer: SecurityTokenIssuer,
        tracking: Optional[TrackingConfig] = None,
        renderer: Optional[TemplateRenderer] = None,
        http_client: Optional[httpx.AsyncClient] = None
    ):
        self.config = config
        self.token_issuer = token_issuer
        self.tracking = tracking or TrackingConfig()
        self.renderer = renderer or PassthroughRenderer()
        self._http_client = http_client

    def build_payload(self, campaign, results: Sequence, template, email_account) -> dict:
        """
        Build the outbound request body.

        Args:
            campaign: Campaign row (id, url, launch/send-by dates)
            results: Result rows in send order
            template: Template row handed to the renderer
            email_account: Sender identity

        Returns:
            JSON-serializable payload
        """
        rendered = self.renderer.render(template, campaign)
        if not rendered.subject:
            raise DispatchError("no subject found in message")

        base_url = get_public_base_url(self.tracking, campaign.url)
        if is_localhost(base_url):
            logger.warning(f"Campaign {campaign.id} tracking links point at a local address: {base_url}")

        recipient_details = [
            {
                "email": result.email,
                "first_name": result.first_name or "",
                "last_name": result.last_name or "",
                "position": result.position or "",
                "rid": result.r_id,
                "send_at": _isoformat(result.send_date),
                "phishing_url": get_phishing_url(self.tracking, campaign.url, result.r_id),
                "tracking_url": get_tracking_pixel_url(self.tracking, campaign.url, result.r_id),
            }
            for result in results
        ]

        return {
            "sender_identity": email_account.email,
            "recipients": [detail["email"] for detail in recipient_details],
            "subject": rendered.subject,
            "body": rendered.body,
            "email_type": email_account.email_type,
            "credential_id": email_account.credential_id or "",
            "credential_name": email_account.credential_name or "",
            "campaign_id": campaign.id,
            "campaign_url": base_url,
            "launch_date": _isoformat(campaign.launch_date),
            "send_by_date": _isoformat(campaign.send_by_date),
            "total_recipients": len(recipient_details),
            "recipient_details": recipient_details,
        }

    async def dispatch(self, campaign, results: Sequence, template, email_account) -> DispatchReceipt:
        """
        Submit the batch for a campaign.

        Raises:
            DispatchError: On configuration, transport or engine failure
        """
        if not self.config.webhook_url:
            raise DispatchError("dispatch webhook URL not configured")
        if email_account is None:
            raise DispatchError("campaign has no email account")
        if not (email_account.credential_id or email_account.credential_name):
            raise DispatchError(f"email account {email_account.email} has no delivery credential binding")
        if not email_account.email_type:
            raise DispatchError("email type not specified in email account")
        if not results:
            raise DispatchError(f"no recipients found for campaign {campaign.id}")

        payload = self.build_payload(campaign, results, template, email_account)

        try:
            token = self.token_issuer.issue()
        except SecurityTokenError as e:
            raise DispatchError(f"failed to generate token: {e}")

        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {token}",
        }

        logger.info(
            f"Dispatching campaign {campaign.id} batch: {len(results)} recipients, "
            f"type={email_account.email_type}"
        )
        logger.debug(f"Dispatch payload: {json.dumps(payload)}")

        try:
            if self._http_client is not None:
                response = await self._http_client.post(
                    self.config.webhook_url,
                    content=json.dumps(payload),
                    headers=headers,
                    timeout=self.config.timeout_seconds,
                )
            else:
                async with httpx.AsyncClient(timeout=self.config.timeout_seconds) as client:
                    response = await client.post(
                        self.config.webhook_url,
                        content=json.dumps(payload),
                        headers=headers,
                    )
        except httpx.TimeoutException as e:
            logger.error(f"Dispatch timed out for campaign {campaign.id}: {e}")
            raise DispatchError(f"dispatch engine timed out after {self.config.timeout_seconds}s")
        except httpx.HTTPError as e:
            logger.error(f"Dispatch transport error for campaign {campaign.id}: {e}")
            raise DispatchError(f"failed to send request: {e}")

        if not response.is_success:
            logger.error(
                f"Dispatch engine rejected campaign {campaign.id} "
                f"(status {response.status_code}): {response.text}"
            )
            raise DispatchError(
                f"dispatch engine returned error (status {response.status_code}): {response.text}",
                status_code=response.status_code,
                response_body=response.text,
            )

        logger.info(f"Dispatched campaign {campaign.id} batch to engine ({len(results)} recipients)")
        return DispatchReceipt(
            status_code=response.status_code,
            recipients=len(results),
            response_body=response.text,
        )
