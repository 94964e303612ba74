"""
Quota Gate API package initialization.

This package contains FastAPI router modules:
- quotas: quota validation, screening regeneration, conversion, persistence
- vendors: vendor question classification and allocation checks
- respondents: respondent qualification flow keyed by share token
- surveys: survey publication and last-survey hand-off
"""

from fastapi import APIRouter

# Import router modules
from quotagate.api.quotas import router as quotas_router
from quotagate.api.vendors import router as vendors_router
from quotagate.api.respondents import router as respondents_router
from quotagate.api.surveys import router as surveys_router

# Create main API router
api_router = APIRouter()

# Include all sub-routers
api_router.include_router(quotas_router, prefix="/quotas", tags=["quotas"])
api_router.include_router(vendors_router, prefix="/vendors", tags=["vendors"])
api_router.include_router(respondents_router, prefix="/respondents", tags=["respondents"])
api_router.include_router(surveys_router, prefix="/surveys", tags=["surveys"])

# Export all routers for selective imports
__all__ = [
    "api_router",
    "quotas_router",
    "vendors_router",
    "respondents_router",
    "surveys_router",
]
