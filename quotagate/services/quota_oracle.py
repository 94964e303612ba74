"""
Quota Oracle Client

Gateway to the remote survey API, which owns surveys, share tokens, quota
counters and responses. This core never mutates quota counters itself; it
asks the oracle for verdicts and reports completions.

Endpoints used:
- GET  /api/share/validate/{token}                          share token -> survey
- GET  /api/surveys/{id}/screening-questions                screening questions
- POST /api/quota/check                                     qualification verdict
- POST /api/responses/submit-token                          answers keyed by token
- POST /api/quota/{surveyId}/respondents/{id}/complete      mark completed
- GET  {vendor_redirect_base}/vendors/redirect              vendor beacon
- POST /api/vendors/{vendorId}/jobs/{surveyId}/status       vendor job status
- GET  /api/vendors/{vendorId}/questions                    vendor questions
- GET  /api/categories                                      category catalog
- GET/PUT /api/surveys/{id}/quota                           persisted quota
- POST /api/surveys/{id}/generate-link                      public link

Every call uses the shared client's timeout as a hard cutoff and is never
retried. Transport failures, timeouts and non-2xx statuses raise OracleError;
bodies that do not match the expected shape raise OracleResponseError. The
vendor beacon is the exception: it is fire-and-forget and only logs.
"""

import logging
from typing import Any, Dict, List, Optional

import httpx
from pydantic import ValidationError

from quotagate.core.config import Settings
from quotagate.models.enums import VendorJobStatus
from quotagate.models.schemas import (
    PersistedQuota,
    QualificationRequest,
    QualificationResponse,
    ScreeningQuestion,
    ShareTokenResolution,
    SubmissionReceipt,
    SurveyAnswer,
    SurveyCategory,
    VendorQuestion,
)

logger = logging.getLogger(__name__)


# =============================================================================
# Exceptions
# =============================================================================

class OracleError(Exception):
    """A remote call failed (transport error, timeout or error status)."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class OracleResponseError(OracleError):
    """A remote call succeeded but returned an unexpected body."""


# =============================================================================
# Client
# =============================================================================

_ENVELOPE_KEYS = {"data", "message", "success", "status"}


def _unwrap(payload: Any) -> Any:
    """Strip a `{"data": ...}` envelope when the API adds one."""
    if isinstance(payload, dict) and "data" in payload and set(payload) <= _ENVELOPE_KEYS:
        return payload["data"]
    return payload


class QuotaOracleClient:
    """
    Async client for the remote survey API.

    Args:
        client: Shared httpx.AsyncClient (base URL and timeout preconfigured)
        settings: Application settings
    """

    def __init__(self, client: httpx.AsyncClient, settings: Settings):
        self._client = client
        self._settings = settings

    async def _request(self, method: str, url: str, **kwargs: Any) -> Any:
        try:
            response = await self._client.request(method, url, **kwargs)
        except httpx.TimeoutException as e:
            raise OracleError(f"Request timeout: {method} {url}") from e
        except httpx.HTTPError as e:
            raise OracleError(f"Request failed: {method} {url}: {e}") from e

        if response.is_error:
            message = f"HTTP {response.status_code}: {response.reason_phrase}"
            try:
                body = response.json()
            except ValueError:
                body = None
            if isinstance(body, dict) and body.get("message"):
                message = str(body["message"])
            raise OracleError(message, status_code=response.status_code)

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise OracleResponseError(f"Invalid JSON from {method} {url}") from e

    # -------------------------------------------------------------------------
    # Respondent flow
    # -------------------------------------------------------------------------

    async def resolve_share_token(self, token: str) -> ShareTokenResolution:
        """Validate a share token and return the survey it grants access to."""
        payload = await self._request("GET", f"/api/share/validate/{token}")
        try:
            return ShareTokenResolution.model_validate(_unwrap(payload))
        except ValidationError as e:
            raise OracleResponseError(f"Malformed share token response: {e}") from e

    async def fetch_screening_questions(self, survey_id: str) -> List[ScreeningQuestion]:
        """Fetch a survey's screening questions; an empty list is legitimate."""
        payload = _unwrap(await self._request("GET", f"/api/surveys/{survey_id}/screening-questions"))
        if payload is None:
            return []
        if not isinstance(payload, list):
            raise OracleResponseError("Screening questions response is not a list")
        try:
            return [ScreeningQuestion.model_validate(q) for q in payload]
        except ValidationError as e:
            raise OracleResponseError(f"Malformed screening question: {e}") from e

    async def check_qualification(self, request: QualificationRequest) -> QualificationResponse:
        """
        Ask the oracle whether a respondent may take the survey.

        Raises:
            OracleError: On transport failure, timeout or error status
            OracleResponseError: When the verdict is missing or ambiguous
        """
        payload = await self._request("POST", "/api/quota/check", json=request.model_dump(mode="json"))
        try:
            return QualificationResponse.model_validate(_unwrap(payload))
        except ValidationError as e:
            raise OracleResponseError(f"Malformed qualification response: {e}") from e

    async def submit_response(self, token: str, answers: List[SurveyAnswer]) -> SubmissionReceipt:
        """Submit answers keyed by the share token (the oracle's replay key)."""
        body = {
            "token": token,
            "answers": [a.model_dump(mode="json") for a in answers],
        }
        payload = await self._request("POST", "/api/responses/submit-token", json=body)
        try:
            return SubmissionReceipt.model_validate(_unwrap(payload))
        except ValidationError as e:
            raise OracleResponseError(f"Malformed submission response: {e}") from e

    async def mark_respondent_completed(self, survey_id: str, respondent_id: str, response_id: str) -> None:
        await self._request(
            "POST",
            f"/api/quota/{survey_id}/respondents/{respondent_id}/complete",
            json={"responseId": response_id},
        )

    async def send_vendor_redirect(self, token: str, is_completed: bool) -> None:
        """
        Fire the vendor redirect beacon.

        The same endpoint signals both completion and abandonment, told apart
        by `isCompleted`. Failures are logged and never raised.
        """
        url = f"{self._settings.vendor_redirect_base_url.rstrip('/')}/vendors/redirect"
        params = {"shareTokenId": token, "isCompleted": "true" if is_completed else "false"}
        try:
            await self._client.get(url, params=params)
        except httpx.HTTPError as e:
            logger.warning(f"Vendor redirect beacon failed for token {token}: {e}")

    # -------------------------------------------------------------------------
    # Operator flow
    # -------------------------------------------------------------------------

    async def update_vendor_job_status(
        self,
        vendor_id: str,
        survey_id: str,
        status_code: VendorJobStatus,
    ) -> None:
        await self._request(
            "POST",
            f"/api/vendors/{vendor_id}/jobs/{survey_id}/status",
            json={"statusCode": VendorJobStatus(status_code).value},
        )

    async def fetch_vendor_questions(
        self,
        vendor_id: str,
        country_code: Optional[str] = None,
        language: Optional[str] = None,
    ) -> List[VendorQuestion]:
        params: Dict[str, str] = {}
        if country_code:
            params["countryCode"] = country_code
        if language:
            params["language"] = language
        payload = _unwrap(await self._request("GET", f"/api/vendors/{vendor_id}/questions", params=params))
        if not isinstance(payload, list):
            raise OracleResponseError("Vendor questions response is not a list")
        try:
            return [VendorQuestion.model_validate(q) for q in payload]
        except ValidationError as e:
            raise OracleResponseError(f"Malformed vendor question: {e}") from e

    async def fetch_categories(self) -> List[SurveyCategory]:
        """Fetch the category catalog offered by the category dimension."""
        payload = _unwrap(await self._request("GET", "/api/categories"))
        if isinstance(payload, dict):
            payload = payload.get("categories")
        if not isinstance(payload, list):
            raise OracleResponseError("Categories response has no category list")
        try:
            return [SurveyCategory.model_validate(c) for c in payload]
        except ValidationError as e:
            raise OracleResponseError(f"Malformed category: {e}") from e

    async def save_quota(self, survey_id: str, persisted: PersistedQuota) -> None:
        await self._request(
            "PUT",
            f"/api/surveys/{survey_id}/quota",
            json=persisted.model_dump(mode="json", exclude_none=True),
        )

    async def load_quota(self, survey_id: str) -> Optional[PersistedQuota]:
        """Return the stored quota document, or None when the survey has none."""
        try:
            payload = _unwrap(await self._request("GET", f"/api/surveys/{survey_id}/quota"))
        except OracleError as e:
            if e.status_code == 404:
                return None
            raise
        if payload is None:
            return None
        try:
            return PersistedQuota.model_validate(payload)
        except ValidationError as e:
            raise OracleResponseError(f"Malformed quota document: {e}") from e

    async def generate_public_link(self, survey_id: str) -> str:
        payload = _unwrap(await self._request("POST", f"/api/surveys/{survey_id}/generate-link"))
        if not isinstance(payload, dict) or not payload.get("publicUrl"):
            raise OracleResponseError("Public link response has no publicUrl")
        return str(payload["publicUrl"])
