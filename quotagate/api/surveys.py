"""
FastAPI router module for survey publication.

Endpoints:
- POST /surveys/{survey_id}/publish: obtain the public link, mark the vendor
  job published, and record the survey as the last published one
- GET  /surveys/last: consume the last published survey (read once)
"""

import logging

from fastapi import APIRouter, HTTPException

from quotagate.core.dependencies import OracleDep, SettingsDep, StoreDep
from quotagate.models.schemas import LastSurveySnapshot, PublicationResult, PublishSurveyRequest
from quotagate.services.publication import publish_survey, read_last_survey


logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/last", response_model=LastSurveySnapshot)
async def last_survey(store: StoreDep) -> LastSurveySnapshot:
    """
    Raises:
        HTTPException(404) if nothing was published since the last read
    """
    snapshot = read_last_survey(store)
    if snapshot is None:
        raise HTTPException(status_code=404, detail="No published survey to read")
    return snapshot


@router.post("/{survey_id}/publish", response_model=PublicationResult)
async def publish(
    survey_id: str,
    request: PublishSurveyRequest,
    oracle: OracleDep,
    store: StoreDep,
    settings: SettingsDep,
) -> PublicationResult:
    try:
        return await publish_survey(
            oracle,
            store,
            settings,
            survey_id,
            request.surveyData,
            title=request.title,
            audience=request.audience,
            vendor_id=request.vendorId,
        )

    except Exception as e:
        logger.exception(f"Error publishing survey {survey_id}")
        raise HTTPException(
            status_code=500,
            detail=f"Failed to publish survey: {str(e)}"
        )
