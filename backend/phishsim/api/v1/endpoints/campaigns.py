"""
Campaigns API
Campaign creation, owner-scoped reads, rate-limit pre-check, completion and
deletion
"""
import logging
from typing import List

from fastapi import APIRouter, HTTPException, Depends, status

from phishsim.api.v1.dependencies import CurrentUser, get_campaign_service, get_current_user
from phishsim.domain.models.campaign import (
    ApiResponse,
    CampaignCreateRequest,
    CampaignResponse,
    CampaignResults,
    CampaignSummaries,
    CampaignSummary,
    RateLimitCheckRequest,
    RateLimitCheckResponse,
)
from phishsim.domain.services.campaign_service import (
    CampaignNotFoundError,
    CampaignService,
    CampaignValidationError,
    ReferenceNotFoundError,
)
from phishsim.infrastructure.dispatch.dispatcher import DispatchError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/campaigns", tags=["campaigns"])


@router.get("/", response_model=List[CampaignResponse])
def list_campaigns(
    current_user: CurrentUser = Depends(get_current_user),
    service: CampaignService = Depends(get_campaign_service)
):
    """List the caller's campaigns"""
    try:
        return service.list_campaigns(current_user.id)
    except Exception as e:
        logger.error(f"Failed to list campaigns: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to list campaigns")


@router.post("/", response_model=CampaignResponse, status_code=status.HTTP_201_CREATED)
async def create_campaign(
    request: CampaignCreateRequest,
    current_user: CurrentUser = Depends(get_current_user),
    service: CampaignService = Depends(get_campaign_service)
):
    """
    Create a campaign.

    The recipient batch is handed to the email engine before anything is
    committed. If the engine refuses it, nothing is stored and 502 is returned
    with the engine's answer so the operator can retry.
    """
    try:
        return await service.create_campaign(request, current_user.id)
    except CampaignValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except ReferenceNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except DispatchError as e:
        raise HTTPException(status_code=502, detail=f"Failed to dispatch campaign: {e.message}")
    except Exception as e:
        logger.error(f"Failed to create campaign: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to create campaign")


@router.post("/validate-rate-limit", response_model=RateLimitCheckResponse)
def validate_rate_limit(
    request: RateLimitCheckRequest,
    current_user: CurrentUser = Depends(get_current_user),
    service: CampaignService = Depends(get_campaign_service)
):
    """Check whether a proposed send-by date spaces recipients safely"""
    try:
        return service.check_rate_limit(request, current_user.id)
    except CampaignValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except ReferenceNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        logger.error(f"Rate limit check failed: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to retrieve group information")


@router.get("/summary", response_model=CampaignSummaries)
def get_campaign_summaries(
    current_user: CurrentUser = Depends(get_current_user),
    service: CampaignService = Depends(get_campaign_service)
):
    """Summaries with statistics for all of the caller's campaigns"""
    try:
        return service.get_campaign_summaries(current_user.id)
    except Exception as e:
        logger.error(f"Failed to build campaign summaries: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to load campaign summaries")


@router.get("/{campaign_id}", response_model=CampaignResponse)
def get_campaign(
    campaign_id: int,
    current_user: CurrentUser = Depends(get_current_user),
    service: CampaignService = Depends(get_campaign_service)
):
    try:
        return service.get_campaign(campaign_id, current_user.id)
    except CampaignNotFoundError:
        raise HTTPException(status_code=404, detail="Campaign not found")


@router.delete("/{campaign_id}", response_model=ApiResponse)
def delete_campaign(
    campaign_id: int,
    current_user: CurrentUser = Depends(get_current_user),
    service: CampaignService = Depends(get_campaign_service)
):
    """Delete a campaign together with its results, events and mail logs"""
    try:
        service.delete_campaign(campaign_id, current_user.id)
        return ApiResponse(success=True, message="Campaign deleted successfully!")
    except CampaignNotFoundError:
        raise HTTPException(status_code=404, detail="Campaign not found")
    except Exception as e:
        logger.error(f"Failed to delete campaign {campaign_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error deleting campaign")


@router.get("/{campaign_id}/results", response_model=CampaignResults)
def get_campaign_results(
    campaign_id: int,
    current_user: CurrentUser = Depends(get_current_user),
    service: CampaignService = Depends(get_campaign_service)
):
    try:
        return service.get_campaign_results(campaign_id, current_user.id)
    except CampaignNotFoundError:
        raise HTTPException(status_code=404, detail="Campaign not found")


@router.get("/{campaign_id}/summary", response_model=CampaignSummary)
def get_campaign_summary(
    campaign_id: int,
    current_user: CurrentUser = Depends(get_current_user),
    service: CampaignService = Depends(get_campaign_service)
):
    try:
        return service.get_campaign_summary(campaign_id, current_user.id)
    except CampaignNotFoundError:
        raise HTTPException(status_code=404, detail="Campaign not found")


@router.get("/{campaign_id}/complete", response_model=ApiResponse)
def complete_campaign(
    campaign_id: int,
    current_user: CurrentUser = Depends(get_current_user),
    service: CampaignService = Depends(get_campaign_service)
):
    """Mark a campaign as completed (safe to call repeatedly)"""
    try:
        service.complete_campaign(campaign_id, current_user.id)
        return ApiResponse(success=True, message="Campaign completed successfully!")
    except CampaignNotFoundError:
        raise HTTPException(status_code=404, detail="Campaign not found")
    except Exception as e:
        logger.error(f"Failed to complete campaign {campaign_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Error completing campaign")
