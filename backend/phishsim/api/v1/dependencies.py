"""
API Dependencies
Shared dependencies for database access, API-key authentication and the
services built from configuration
"""
from typing import Optional

from fastapi import Depends, HTTPException, status, Header
from pydantic import BaseModel
from sqlalchemy.orm import Session

from phishsim.core.config import ConfigManager, get_config_manager
from phishsim.domain.services.callback_ingestor import CallbackIngestor
from phishsim.domain.services.campaign_service import CampaignService
from phishsim.domain.services.rate_limiter import RateLimitCalculator
from phishsim.domain.services.result_state_machine import ResultStateMachine
from phishsim.domain.services.sender_service import SenderService
from phishsim.infrastructure.dispatch.dispatcher import DispatchCoordinator
from phishsim.infrastructure.security.token_issuer import SecurityTokenIssuer
from phishsim.infrastructure.storage.database import get_db_session
from phishsim.infrastructure.storage.models import User


class CurrentUser(BaseModel):
    """Current authenticated user model"""
    id: int
    username: str


def get_config() -> ConfigManager:
    return get_config_manager()


def get_token_issuer(config: ConfigManager = Depends(get_config)) -> SecurityTokenIssuer:
    return SecurityTokenIssuer(config.token_config())


def get_dispatcher(
    config: ConfigManager = Depends(get_config),
    token_issuer: SecurityTokenIssuer = Depends(get_token_issuer)
) -> DispatchCoordinator:
    return DispatchCoordinator(
        config=config.dispatch_config(),
        token_issuer=token_issuer,
        tracking=config.tracking_config(),
    )


def get_campaign_service(
    db: Session = Depends(get_db_session),
    config: ConfigManager = Depends(get_config),
    dispatcher: DispatchCoordinator = Depends(get_dispatcher)
) -> CampaignService:
    return CampaignService(
        session=db,
        rate_limiter=RateLimitCalculator(config.rate_limit_config()),
        dispatcher=dispatcher,
    )


def get_sender_service(db: Session = Depends(get_db_session)) -> SenderService:
    return SenderService(db)


def get_callback_ingestor(
    db: Session = Depends(get_db_session),
    token_issuer: SecurityTokenIssuer = Depends(get_token_issuer)
) -> CallbackIngestor:
    return CallbackIngestor(
        token_issuer=token_issuer,
        state_machine=ResultStateMachine(db),
    )


def get_current_user(
    authorization: Optional[str] = Header(None, alias="Authorization"),
    db: Session = Depends(get_db_session)
) -> CurrentUser:
    """
    Dependency to get the current user from an API key.

    Args:
        authorization: "Bearer <api_key>" header
        db: Database session

    Returns:
        CurrentUser for the key owner

    Raises:
        HTTPException: If the header is missing, malformed or the key is unknown
    """
    if not authorization:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authorization header missing",
            headers={"WWW-Authenticate": "Bearer"},
        )

    # Extract key from "Bearer <api_key>"
    parts = authorization.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authorization header format. Use: Bearer <api_key>",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user = db.query(User).filter(User.api_key == parts[1]).first()
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid API key",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return CurrentUser(id=user.id, username=user.username)
