"""
FastAPI router module for quota configuration.

Implements the operator-side quota endpoints:
- POST /quotas/validate: validate a quota model
- POST /quotas/screening: regenerate screening questions (fixed-point aware)
- POST /quotas/convert: switch a dimension between COUNT and PERCENTAGE
- POST /quotas/new: fresh model with the configured default total target
- POST /quotas/toggle: switch one bucket on (configured default target) or off
- POST /quotas/normalize: re-normalize a model against canonical buckets
- POST /quotas/persisted: encode a model as the persisted quota document
- POST /quotas/persisted/decode: decode a persisted document into a model
- POST /quotas/payload: build the snake_case quota update payload
- GET  /quotas/{survey_id}: load a survey's stored quota with the category catalog
- PUT  /quotas/{survey_id}: validate and store a survey's quota

Configuration errors are values, not failures: /validate answers 200 with
`valid=false`. Saving an invalid model is refused with 400.
"""

import logging
from typing import Any, Dict

from fastapi import APIRouter, HTTPException

from quotagate.core.dependencies import OracleDep, SettingsDep
from quotagate.models.schemas import (
    ConvertQuotaTypeRequest,
    DecodePersistedRequest,
    NewQuotaRequest,
    PersistedQuota,
    QuotaModel,
    ScreeningRequest,
    ScreeningResponse,
    ToggleItemRequest,
    ValidationResult,
)
from quotagate.services.quota_oracle import OracleError
from quotagate.services.quota_payload import build_quota_update_payload, from_persisted, to_persisted
from quotagate.services.quota_validation import (
    convert_dimension_quota_type,
    empty_quota_model,
    normalize_quota_model,
    toggle_item,
    validate,
)
from quotagate.services.screening import apply_quota_edit, reconcile_screening


logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/validate", response_model=ValidationResult)
async def validate_quota(quota: QuotaModel) -> ValidationResult:
    errors = validate(quota)
    return ValidationResult(valid=not errors, errors=errors)


@router.post("/screening", response_model=ScreeningResponse)
async def regenerate_screening(request: ScreeningRequest) -> ScreeningResponse:
    """
    Recompute screening questions for a quota model.

    Returns `changed=false` with the current questions when regeneration
    produced a structurally identical list.
    """
    try:
        updated = reconcile_screening(request.quota, request.categories)
        if updated is None:
            return ScreeningResponse(changed=False, screeningQuestions=request.quota.screeningQuestions)
        return ScreeningResponse(changed=True, screeningQuestions=updated.screeningQuestions)

    except Exception as e:
        logger.exception("Error regenerating screening questions")
        raise HTTPException(
            status_code=500,
            detail=f"Failed to regenerate screening questions: {str(e)}"
        )


@router.post("/convert", response_model=QuotaModel)
async def convert_quota_type(request: ConvertQuotaTypeRequest) -> QuotaModel:
    """
    Convert one dimension's targets to another quota type.

    Raises:
        HTTPException(400) if the total target is not positive
    """
    try:
        return apply_quota_edit(
            request.quota,
            request.categories,
            lambda m: convert_dimension_quota_type(m, request.dimension, request.quotaType),
        )

    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.exception(f"Error converting {request.dimension.value} quotas")
        raise HTTPException(
            status_code=500,
            detail=f"Failed to convert quota type: {str(e)}"
        )


@router.post("/new", response_model=QuotaModel)
async def new_quota(request: NewQuotaRequest, settings: SettingsDep) -> QuotaModel:
    """Fresh model with every canonical bucket present and untargeted."""
    total = request.totalTarget if request.totalTarget is not None else settings.default_total_target
    return empty_quota_model(total, request.categories)


@router.post("/toggle", response_model=QuotaModel)
async def toggle_quota_item(request: ToggleItemRequest, settings: SettingsDep) -> QuotaModel:
    """
    Switch one bucket on (configured default target) or off (cleared).

    Raises:
        HTTPException(400) if the index does not address an item
    """
    try:
        return apply_quota_edit(
            request.quota,
            request.categories,
            lambda m: toggle_item(m, request.dimension, request.index, settings.default_item_target),
        )
    except IndexError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.post("/normalize", response_model=QuotaModel)
async def normalize_quota(request: ScreeningRequest) -> QuotaModel:
    normalized = normalize_quota_model(request.quota, request.categories)
    return reconcile_screening(normalized, request.categories) or normalized


@router.post("/persisted", response_model=PersistedQuota, response_model_exclude_none=True)
async def encode_persisted(quota: QuotaModel) -> PersistedQuota:
    return to_persisted(quota)


@router.post("/persisted/decode", response_model=QuotaModel)
async def decode_persisted(request: DecodePersistedRequest) -> QuotaModel:
    try:
        return from_persisted(request.persisted, request.categories)

    except Exception as e:
        logger.exception("Error decoding persisted quota document")
        raise HTTPException(
            status_code=500,
            detail=f"Failed to decode quota document: {str(e)}"
        )


@router.post("/payload")
async def quota_update_payload(quota: QuotaModel) -> Dict[str, Any]:
    return build_quota_update_payload(quota)


@router.get("/{survey_id}", response_model=QuotaModel)
async def load_quota(survey_id: str, oracle: OracleDep) -> QuotaModel:
    """
    Load a survey's stored quota, normalized against the category catalog.

    Raises:
        HTTPException(404) if the survey has no stored quota
        HTTPException(502) if the survey API fails
    """
    try:
        persisted = await oracle.load_quota(survey_id)
        if persisted is None:
            raise HTTPException(
                status_code=404,
                detail=f"No quota stored for survey {survey_id}"
            )
        categories = await oracle.fetch_categories()
        model = from_persisted(persisted, categories)
        logger.info(f"Loaded quota for survey {survey_id}")
        return model

    except HTTPException:
        raise
    except OracleError as e:
        logger.warning(f"Survey API failed loading quota for {survey_id}: {e}")
        raise HTTPException(status_code=502, detail=e.message)
    except Exception as e:
        logger.exception(f"Error loading quota for survey {survey_id}")
        raise HTTPException(
            status_code=500,
            detail=f"Failed to load quota: {str(e)}"
        )


@router.put("/{survey_id}", response_model=ValidationResult)
async def save_quota(survey_id: str, request: ScreeningRequest, oracle: OracleDep) -> ValidationResult:
    """
    Validate and store a survey's quota.

    Screening questions are regenerated before storing, so the stored
    document always matches the targets.

    Raises:
        HTTPException(400) if the model does not validate
        HTTPException(502) if the survey API fails
    """
    try:
        errors = validate(request.quota)
        if errors:
            raise HTTPException(
                status_code=400,
                detail={"errors": [e.model_dump(mode="json") for e in errors]}
            )

        model = reconcile_screening(request.quota, request.categories) or request.quota
        await oracle.save_quota(survey_id, to_persisted(model))
        logger.info(f"Saved quota for survey {survey_id}")
        return ValidationResult(valid=True)

    except HTTPException:
        raise
    except OracleError as e:
        logger.warning(f"Survey API failed saving quota for {survey_id}: {e}")
        raise HTTPException(status_code=502, detail=e.message)
    except Exception as e:
        logger.exception(f"Error saving quota for survey {survey_id}")
        raise HTTPException(
            status_code=500,
            detail=f"Failed to save quota: {str(e)}"
        )
