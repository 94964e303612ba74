"""
FastAPI router module for vendor-sourced audiences.

Endpoints:
- POST /vendors/classify: classify a vendor question (RANGE / OPEN_TEXT / OPTION_BASED)
- POST /vendors/allocation: desired vs. allocated completes for one question
- POST /vendors/validate: first blocking error for a vendor audience, if any
- POST /vendors/groups: group vendor questions by primary category
- GET  /vendors/{vendor_id}/questions: fetch a vendor's questions, grouped
"""

import logging
from typing import Dict, List, Optional

from fastapi import APIRouter, HTTPException, Query

from quotagate.core.dependencies import OracleDep
from quotagate.models.enums import VendorQuestionKind
from quotagate.models.schemas import (
    VendorAllocation,
    VendorAllocationRequest,
    VendorQuestion,
    VendorQuestionGroup,
    VendorValidationRequest,
    VendorValidationResponse,
)
from quotagate.services.quota_oracle import OracleError
from quotagate.services.vendor_allocation import (
    allocation,
    blocking_error,
    classify_vendor_question,
    group_questions_by_category,
)


logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/classify")
async def classify_question(question: VendorQuestion) -> Dict[str, VendorQuestionKind]:
    return {"kind": classify_vendor_question(question)}


@router.post("/allocation", response_model=VendorAllocation)
async def question_allocation(request: VendorAllocationRequest) -> VendorAllocation:
    return allocation(request.question, request.criteria)


@router.post("/validate", response_model=VendorValidationResponse)
async def validate_vendor_audience(request: VendorValidationRequest) -> VendorValidationResponse:
    """Return the first blocking error; `valid=true` when nothing blocks."""
    error = blocking_error(request.vendorId, request.criteria, request.questions)
    return VendorValidationResponse(valid=error is None, error=error)


@router.post("/groups", response_model=List[VendorQuestionGroup])
async def group_questions(questions: List[VendorQuestion]) -> List[VendorQuestionGroup]:
    return group_questions_by_category(questions)


@router.get("/{vendor_id}/questions", response_model=List[VendorQuestionGroup])
async def vendor_questions(
    vendor_id: str,
    oracle: OracleDep,
    countryCode: Optional[str] = Query(default=None, description="Market country code"),
    language: Optional[str] = Query(default=None, description="Market language"),
) -> List[VendorQuestionGroup]:
    """
    Fetch a vendor's screening questions, grouped by primary category.

    Raises:
        HTTPException(502) if the survey API fails
    """
    try:
        questions = await oracle.fetch_vendor_questions(vendor_id, countryCode, language)
        logger.info(f"Fetched {len(questions)} questions for vendor {vendor_id}")
        return group_questions_by_category(questions)

    except OracleError as e:
        logger.warning(f"Survey API failed fetching questions for vendor {vendor_id}: {e}")
        raise HTTPException(status_code=502, detail=e.message)
    except Exception as e:
        logger.exception(f"Error fetching questions for vendor {vendor_id}")
        raise HTTPException(
            status_code=500,
            detail=f"Failed to fetch vendor questions: {str(e)}"
        )
