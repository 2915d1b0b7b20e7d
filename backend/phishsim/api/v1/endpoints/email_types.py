"""
Email Types Endpoints
CRUD operations for logical sender categories
"""
import logging
from typing import List

from fastapi import APIRouter, HTTPException, Depends, status

from phishsim.api.v1.dependencies import CurrentUser, get_current_user, get_sender_service
from phishsim.domain.models.campaign import ApiResponse
from phishsim.domain.models.sender import EmailTypeCreate, EmailTypeResponse, EmailTypeUpdate
from phishsim.domain.services.sender_service import (
    SenderConflictError,
    SenderNotFoundError,
    SenderService,
    SenderValidationError,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/email-types", tags=["email-types"])


@router.get("/", response_model=List[EmailTypeResponse])
def list_email_types(
    current_user: CurrentUser = Depends(get_current_user),
    service: SenderService = Depends(get_sender_service)
):
    """Active types in display order"""
    try:
        return service.list_email_types()
    except Exception as e:
        logger.error(f"Failed to list email types: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error fetching email types")


@router.get("/all", response_model=List[EmailTypeResponse])
def list_all_email_types(
    current_user: CurrentUser = Depends(get_current_user),
    service: SenderService = Depends(get_sender_service)
):
    """All types, inactive included"""
    try:
        return service.list_email_types(include_inactive=True)
    except Exception as e:
        logger.error(f"Failed to list email types: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error fetching email types")


@router.post("/", response_model=EmailTypeResponse, status_code=status.HTTP_201_CREATED)
def create_email_type(
    request: EmailTypeCreate,
    current_user: CurrentUser = Depends(get_current_user),
    service: SenderService = Depends(get_sender_service)
):
    try:
        return service.create_email_type(request)
    except SenderValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except SenderConflictError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to create email type: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to create email type")


@router.get("/{type_id}", response_model=EmailTypeResponse)
def get_email_type(
    type_id: int,
    current_user: CurrentUser = Depends(get_current_user),
    service: SenderService = Depends(get_sender_service)
):
    try:
        return service.get_email_type(type_id)
    except SenderNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.put("/{type_id}", response_model=EmailTypeResponse)
def update_email_type(
    type_id: int,
    request: EmailTypeUpdate,
    current_user: CurrentUser = Depends(get_current_user),
    service: SenderService = Depends(get_sender_service)
):
    try:
        return service.update_email_type(type_id, request)
    except SenderNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except SenderValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except SenderConflictError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to update email type {type_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error updating email type")


@router.delete("/{type_id}", response_model=ApiResponse)
def delete_email_type(
    type_id: int,
    current_user: CurrentUser = Depends(get_current_user),
    service: SenderService = Depends(get_sender_service)
):
    """Delete a type no email account uses"""
    try:
        service.delete_email_type(type_id)
        return ApiResponse(success=True, message="Email type deleted successfully")
    except SenderNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except SenderConflictError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to delete email type {type_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error deleting email type")
