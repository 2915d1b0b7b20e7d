"""
API Router
Combines all endpoint routers
"""
from fastapi import APIRouter
from phishsim.api.v1.endpoints import (
    campaigns,
    email_accounts,
    email_types,
    webhooks,
)

api_router = APIRouter()

api_router.include_router(campaigns.router)

# Sender identities
api_router.include_router(email_accounts.router)
api_router.include_router(email_types.router)

# Inbound callbacks from the email engine
api_router.include_router(webhooks.router)
