"""
Email Accounts Endpoints
CRUD operations for the sender identities campaigns send from
"""
import logging
from typing import List

from fastapi import APIRouter, HTTPException, Depends, status

from phishsim.api.v1.dependencies import CurrentUser, get_current_user, get_sender_service
from phishsim.domain.models.campaign import ApiResponse
from phishsim.domain.models.sender import EmailAccountCreate, EmailAccountResponse, EmailAccountUpdate
from phishsim.domain.services.sender_service import (
    SenderConflictError,
    SenderNotFoundError,
    SenderService,
    SenderValidationError,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/email-accounts", tags=["email-accounts"])


@router.get("/", response_model=List[EmailAccountResponse])
def list_email_accounts(
    current_user: CurrentUser = Depends(get_current_user),
    service: SenderService = Depends(get_sender_service)
):
    """List all email accounts, newest first"""
    try:
        return service.list_email_accounts()
    except Exception as e:
        logger.error(f"Failed to list email accounts: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error fetching email accounts")


@router.post("/", response_model=EmailAccountResponse, status_code=status.HTTP_201_CREATED)
def create_email_account(
    request: EmailAccountCreate,
    current_user: CurrentUser = Depends(get_current_user),
    service: SenderService = Depends(get_sender_service)
):
    """
    Register a sender.

    The credential name is generated per type ("notification-1",
    "notification-2", ...). The type must exist and be active.
    """
    try:
        return service.create_email_account(request)
    except SenderValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except SenderConflictError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to create email account: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to create email account")


@router.get("/type/{email_type}", response_model=EmailAccountResponse)
def get_email_account_by_type(
    email_type: str,
    current_user: CurrentUser = Depends(get_current_user),
    service: SenderService = Depends(get_sender_service)
):
    """First active account of a type"""
    try:
        return service.get_email_account_by_type(email_type)
    except SenderNotFoundError:
        raise HTTPException(status_code=404, detail=f"No active email account found for type: {email_type}")


@router.get("/{account_id}", response_model=EmailAccountResponse)
def get_email_account(
    account_id: int,
    current_user: CurrentUser = Depends(get_current_user),
    service: SenderService = Depends(get_sender_service)
):
    try:
        return service.get_email_account(account_id)
    except SenderNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.put("/{account_id}", response_model=EmailAccountResponse)
def update_email_account(
    account_id: int,
    request: EmailAccountUpdate,
    current_user: CurrentUser = Depends(get_current_user),
    service: SenderService = Depends(get_sender_service)
):
    try:
        return service.update_email_account(account_id, request)
    except SenderNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except SenderValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except SenderConflictError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to update email account {account_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error updating email account")


@router.delete("/{account_id}", response_model=ApiResponse)
def delete_email_account(
    account_id: int,
    current_user: CurrentUser = Depends(get_current_user),
    service: SenderService = Depends(get_sender_service)
):
    """Delete a sender no campaign refers to"""
    try:
        service.delete_email_account(account_id)
        return ApiResponse(success=True, message="Email account deleted successfully")
    except SenderNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except SenderConflictError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to delete email account {account_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error deleting email account")
