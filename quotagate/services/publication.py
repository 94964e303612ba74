"""
Survey Publication Service

Publishing a survey obtains its public link, tells the vendor (if the survey
is distributed through one) that the job is live, and hands the published
survey to the next screen through the key-value store.

Best-effort steps:
- Public link generation falls back to a locally built link
- The vendor job status update is logged on failure

Neither failure blocks publication. The last-survey keys are written once
per publication and consumed (read and cleared) by `read_last_survey`.
"""

import logging
from typing import Any, Dict, Optional

from quotagate.core.config import Settings
from quotagate.core.storage import (
    LAST_SURVEY_AUDIENCE_KEY,
    LAST_SURVEY_DATA_KEY,
    LAST_SURVEY_TITLE_KEY,
    KeyValueStore,
)
from quotagate.models.enums import VendorJobStatus
from quotagate.models.schemas import LastSurveySnapshot, PublicationResult
from quotagate.services.quota_oracle import OracleError, QuotaOracleClient

logger = logging.getLogger(__name__)


def local_survey_link(settings: Settings, survey_id: str) -> str:
    return f"{settings.public_survey_base_url.rstrip('/')}/{survey_id}"


async def publish_survey(
    oracle: QuotaOracleClient,
    store: KeyValueStore,
    settings: Settings,
    survey_id: str,
    survey_data: Dict[str, Any],
    title: Optional[str] = None,
    audience: Optional[int] = None,
    vendor_id: Optional[str] = None,
) -> PublicationResult:
    """
    Publish a survey.

    Args:
        oracle: Remote survey API client
        store: Key-value store receiving the last-survey keys
        settings: Application settings (local link base URL)
        survey_id: Survey being published
        survey_data: JSON-serializable survey definition
        title: Survey title
        audience: Requested audience size
        vendor_id: Vendor distributing the survey, if any

    Returns:
        PublicationResult with the link and which best-effort steps succeeded
    """
    used_fallback = False
    try:
        public_url = await oracle.generate_public_link(survey_id)
    except OracleError as e:
        logger.warning(f"Public link generation failed for survey {survey_id}, using local link: {e}")
        public_url = local_survey_link(settings, survey_id)
        used_fallback = True

    vendor_updated = False
    if vendor_id:
        try:
            await oracle.update_vendor_job_status(vendor_id, survey_id, VendorJobStatus.PUBLISHED)
            vendor_updated = True
        except OracleError as e:
            logger.warning(f"Vendor {vendor_id} job status update failed for survey {survey_id}: {e}")

    store.set(LAST_SURVEY_DATA_KEY, survey_data)
    store.set(LAST_SURVEY_AUDIENCE_KEY, audience)
    store.set(LAST_SURVEY_TITLE_KEY, title)

    logger.info(f"Published survey {survey_id} at {public_url}")
    return PublicationResult(
        surveyId=survey_id,
        publicUrl=public_url,
        usedFallbackLink=used_fallback,
        vendorStatusUpdated=vendor_updated,
    )


def read_last_survey(store: KeyValueStore) -> Optional[LastSurveySnapshot]:
    """Read the last published survey once; the keys are cleared afterwards."""
    data = store.get(LAST_SURVEY_DATA_KEY)
    if data is None:
        return None
    snapshot = LastSurveySnapshot(
        surveyData=data,
        audience=store.get(LAST_SURVEY_AUDIENCE_KEY),
        title=store.get(LAST_SURVEY_TITLE_KEY),
    )
    for key in (LAST_SURVEY_DATA_KEY, LAST_SURVEY_AUDIENCE_KEY, LAST_SURVEY_TITLE_KEY):
        store.delete(key)
    return snapshot
