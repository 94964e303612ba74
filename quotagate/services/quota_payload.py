"""
Quota Payload Translation Service

This module translates between the in-memory QuotaModel and the two shapes
the remote survey API understands:

1. The persisted quota document (`PersistedQuota`), read back on every load:

    {
      "totaltarget": 100,
      "screeningquestions": [
        {"questionId": "screening_age", "questionText": "...",
         "buckets": [{"label": "18-24", "operator": "BETWEEN",
                      "value": {"min": 18, "max": 24}, "target": 40,
                      "quotaType": "COUNT"}]},
        {"questionId": "screening_gender",
         "optionTargets": [{"optionId": "MALE", "target": 50, "quotaType": "COUNT"}]}
      ],
      "enabled": true, "completedUrl": "...", ...
    }

   Age rows become BETWEEN buckets, location rows become EQ buckets holding
   the {country, state, city} triple, gender and category targets become
   option targets keyed by the bucket identity.

2. The snake_case quota update payload, which carries only active quotas.

Loading always re-normalizes against the canonical bucket lists and
regenerates screening options, so a stored document missing untargeted
buckets still yields a complete model.
"""

import logging
from typing import Any, Dict, List, Optional, Sequence

from quotagate.models.enums import BucketOperator, Gender, QuotaDimensionName, QuotaType
from quotagate.models.schemas import (
    AgeQuota,
    CategoryQuota,
    GenderQuota,
    LocationQuota,
    OptionTarget,
    PersistedBucket,
    PersistedQuota,
    PersistedScreeningQuestion,
    QuotaDimensions,
    QuotaItem,
    QuotaModel,
    ScreeningQuestion,
    SurveyCategory,
)
from quotagate.services.quota_validation import normalize_quota_model
from quotagate.services.screening import reconcile_screening, screening_question_id

logger = logging.getLogger(__name__)


def _target_fields(item: QuotaItem) -> Dict[str, Any]:
    return {"target": item.target.amount, "quotaType": item.quota_type}


def _flat_target(quota_type: QuotaType, value: Any) -> Dict[str, Any]:
    if quota_type == QuotaType.PERCENTAGE:
        return {"quota_type": QuotaType.PERCENTAGE.value, "target_percentage": value}
    return {"quota_type": QuotaType.COUNT.value, "target_count": value}


# =============================================================================
# QuotaModel -> persisted document
# =============================================================================

def to_persisted(model: QuotaModel) -> PersistedQuota:
    """
    Build the persisted quota document for a model.

    Only active buckets are stored for the fixed taxonomies (they are
    re-created on load). Location rows are stored as configured, since they
    have no canonical universe to rebuild them from.
    """
    texts = {q.id: q.question_text for q in model.screeningQuestions}
    entries: List[PersistedScreeningQuestion] = []

    for dimension in QuotaDimensionName:
        items = model.dimensions.items(dimension)
        if dimension != QuotaDimensionName.LOCATION:
            items = [item for item in items if item.is_active]
        if not items:
            continue

        question_id = screening_question_id(dimension)
        entry = PersistedScreeningQuestion(questionId=question_id, questionText=texts.get(question_id))

        if dimension == QuotaDimensionName.AGE:
            entry.buckets = [
                PersistedBucket(
                    label=item.label,
                    operator=BucketOperator.BETWEEN,
                    value={"min": item.min_age, "max": item.max_age},
                    **_target_fields(item),
                )
                for item in items
            ]
        elif dimension == QuotaDimensionName.LOCATION:
            buckets = []
            for item in items:
                value: Dict[str, Any] = dict(item.location_triple)
                if item.postal_code:
                    value["postal_code"] = item.postal_code
                buckets.append(PersistedBucket(
                    label=item.label,
                    operator=BucketOperator.EQ,
                    value=value,
                    **_target_fields(item),
                ))
            entry.buckets = buckets
        else:
            entry.optionTargets = [
                OptionTarget(optionId=item.bucket_key, **_target_fields(item))
                for item in items
            ]
        entries.append(entry)

    return PersistedQuota(
        totaltarget=model.totalTarget,
        screeningquestions=entries,
        vendorId=model.vendorId,
        countryCode=model.countryCode,
        language=model.language,
        enabled=model.enabled,
        completedUrl=model.completedUrl,
        terminatedUrl=model.terminatedUrl,
        quotaFullUrl=model.quotaFullUrl,
    )


# =============================================================================
# Persisted document -> QuotaModel
# =============================================================================

def _dimension_for(question_id: str) -> Optional[QuotaDimensionName]:
    for dimension in QuotaDimensionName:
        if question_id == screening_question_id(dimension):
            return dimension
    return None


def _age_items(entry: PersistedScreeningQuestion) -> List[AgeQuota]:
    items = []
    for bucket in entry.buckets:
        if bucket.operator != BucketOperator.BETWEEN:
            logger.warning(f"Skipping age bucket with operator {bucket.operator.value}")
            continue
        items.append(AgeQuota(
            min_age=int(bucket.value["min"]),
            max_age=int(bucket.value["max"]),
            **_flat_target(bucket.quotaType, bucket.target),
        ))
    return items


def _location_items(entry: PersistedScreeningQuestion) -> List[LocationQuota]:
    items = []
    for bucket in entry.buckets:
        if bucket.operator != BucketOperator.EQ or not isinstance(bucket.value, dict):
            logger.warning(f"Skipping location bucket with operator {bucket.operator.value}")
            continue
        items.append(LocationQuota(
            country=bucket.value.get("country") or "",
            state=bucket.value.get("state") or "",
            city=bucket.value.get("city") or "",
            postal_code=bucket.value.get("postal_code"),
            **_flat_target(bucket.quotaType, bucket.target),
        ))
    return items


def _gender_items(entry: PersistedScreeningQuestion) -> List[GenderQuota]:
    items = []
    valid = {g.value for g in Gender}
    for target in entry.optionTargets:
        if target.optionId not in valid:
            logger.warning(f"Skipping unknown gender option {target.optionId}")
            continue
        items.append(GenderQuota(
            gender=Gender(target.optionId),
            **_flat_target(target.quotaType, target.target),
        ))
    return items


def _category_items(entry: PersistedScreeningQuestion, names: Dict[str, str]) -> List[CategoryQuota]:
    return [
        CategoryQuota(
            surveyCategoryId=target.optionId,
            categoryName=names.get(target.optionId, ""),
            **_flat_target(target.quotaType, target.target),
        )
        for target in entry.optionTargets
    ]


def from_persisted(
    payload: PersistedQuota,
    categories: Optional[Sequence[SurveyCategory]] = None,
) -> QuotaModel:
    """
    Rebuild a QuotaModel from its persisted document.

    Entries that do not belong to a quota dimension (vendor screening
    questions stored alongside) are ignored. The result is normalized and its
    screening questions regenerated, keeping stored question wording.

    Args:
        payload: Stored quota document
        categories: Category catalog used for normalization and option labels

    Returns:
        Normalized quota model
    """
    categories = list(categories or [])
    names = {c.id: c.name for c in categories}
    dimensions = QuotaDimensions()
    questions: List[ScreeningQuestion] = []

    for entry in payload.screeningquestions:
        dimension = _dimension_for(entry.questionId)
        if dimension is None:
            logger.debug(f"Ignoring non-dimension screening entry {entry.questionId}")
            continue

        if dimension == QuotaDimensionName.AGE:
            dimensions.age = _age_items(entry)
        elif dimension == QuotaDimensionName.GENDER:
            dimensions.gender = _gender_items(entry)
        elif dimension == QuotaDimensionName.LOCATION:
            dimensions.location = _location_items(entry)
        else:
            dimensions.category = _category_items(entry, names)

        if entry.questionText:
            questions.append(ScreeningQuestion(
                id=entry.questionId,
                dimension=dimension,
                question_text=entry.questionText,
            ))

    total = payload.totaltarget or 0
    model = QuotaModel(
        enabled=payload.enabled if payload.enabled is not None else total > 0,
        totalTarget=total,
        dimensions=dimensions,
        screeningQuestions=questions,
        completedUrl=payload.completedUrl,
        terminatedUrl=payload.terminatedUrl,
        quotaFullUrl=payload.quotaFullUrl,
        vendorId=payload.vendorId,
        countryCode=payload.countryCode,
        language=payload.language,
    )
    model = normalize_quota_model(model, categories)
    return reconcile_screening(model, categories) or model


# =============================================================================
# Backend quota update payload
# =============================================================================

def _update_item(item: QuotaItem, **identity: Any) -> Dict[str, Any]:
    entry = dict(identity)
    entry.update(_flat_target(item.quota_type, item.target.amount))
    return entry


def build_quota_update_payload(model: QuotaModel) -> Dict[str, Any]:
    """
    Build the snake_case quota update payload.

    Only active quotas are sent, and each item carries only the target field
    matching its quota type.
    """
    dims = model.dimensions
    return {
        "total_target": model.totalTarget,
        "completed_url": model.completedUrl or "",
        "terminated_url": model.terminatedUrl or "",
        "quota_full_url": model.quotaFullUrl or "",
        "is_active": model.enabled,
        "age_quotas": [
            _update_item(q, min_age=q.min_age, max_age=q.max_age)
            for q in dims.age if q.is_active
        ],
        "gender_quotas": [
            _update_item(q, gender=q.gender.value)
            for q in dims.gender if q.is_active
        ],
        "location_quotas": [
            _update_item(q, country=q.country, state=q.state, city=q.city, postal_code=q.postal_code)
            for q in dims.location if q.is_active
        ],
        "category_quotas": [
            _update_item(q, surveyCategoryId=q.surveyCategoryId, categoryName=q.categoryName)
            for q in dims.category if q.is_active
        ],
        "screening_questions": [q.model_dump(mode="json") for q in model.screeningQuestions],
    }
