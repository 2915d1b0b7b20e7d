"""
Webhooks API Endpoints
Handles delivery and engagement callbacks from the email engine
"""
import json
import logging
from typing import Any, Optional

from fastapi import APIRouter, Request, Depends, Header
from fastapi.responses import JSONResponse

from phishsim.api.v1.dependencies import get_callback_ingestor
from phishsim.domain.services.callback_ingestor import CallbackError, CallbackIngestor

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


async def read_json_body(request: Request) -> Optional[Any]:
    """Raw JSON body, or None when it does not parse. The ingestor rejects it after the token check."""
    try:
        return await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return None


def _reply(status_code: int, success: bool, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": success, "message": message})


@router.post("/n8n/status")
def n8n_status(
    body: Optional[Any] = Depends(read_json_body),
    authorization: Optional[str] = Header(None, alias="Authorization"),
    ingestor: CallbackIngestor = Depends(get_callback_ingestor)
):
    """
    Handle a recipient status callback from the email engine.

    Runs in the threadpool, so a callback waiting on the database never holds
    up the event loop.

    Expected body:
        {"rid": "...", "campaign_id": 1, "event": "sent|error|bounce|failed|opened|clicked|...",
         "timestamp": "...", "details": {...}, "error": "..."}
    """
    try:
        outcome = ingestor.ingest(authorization, body)
    except CallbackError as e:
        return _reply(e.status_code, False, e.message)
    except Exception as e:
        logger.error(f"Unhandled error processing callback: {e}", exc_info=True)
        return _reply(500, False, "Internal server error")

    return _reply(200, True, outcome.message)
