"""
Vendor Allocation Reconciler Service

This module reconciles desired vs. allocated completes for audiences sourced
from a third-party panel vendor. It is independent of the QuotaModel but
structurally analogous: per vendor screening question, the operator states a
desired number of completes and splits it across options, typed text values
or numeric ranges.

Question Classification (heuristic over vendor metadata):
- RANGE: question text matches /age/i or question key matches /AGE/i
- OPEN_TEXT: question type matches /open|text|verbatim/i
- OPTION_BASED: everything else

RANGE is checked first, so an open-text "age" question is targeted by ranges.

Blocking Check Order (first failure wins, one message at a time):
1. No vendor selected
2. No question has any selected item
3. Per question with desiredCompletes set: no items, a missing quota, or an
   allocation that does not equal desiredCompletes

Questions without desiredCompletes are never validated.
"""

import logging
import re
import uuid
from typing import Any, Dict, List, Mapping, Optional, Sequence

from quotagate.models.enums import VendorQuestionKind
from quotagate.models.schemas import (
    RangeQuota,
    TextValueQuota,
    VendorAllocation,
    VendorQuestion,
    VendorQuestionGroup,
    VendorScreeningCriteria,
)

logger = logging.getLogger(__name__)


_OPEN_TEXT_PATTERN = re.compile(r"open|text|verbatim", re.IGNORECASE)
_AGE_PATTERN = re.compile(r"age", re.IGNORECASE)

UNGROUPED_CATEGORY = "Other"


# =============================================================================
# Classification
# =============================================================================

def classify_vendor_question(question: VendorQuestion) -> VendorQuestionKind:
    """
    Classify a vendor question by how it is targeted.

    Args:
        question: Vendor-supplied question metadata

    Returns:
        VendorQuestionKind (RANGE, OPEN_TEXT or OPTION_BASED)
    """
    if _AGE_PATTERN.search(question.questionText or "") or _AGE_PATTERN.search(question.questionKey or ""):
        return VendorQuestionKind.RANGE
    if _OPEN_TEXT_PATTERN.search(question.questionType or ""):
        return VendorQuestionKind.OPEN_TEXT
    return VendorQuestionKind.OPTION_BASED


# =============================================================================
# Allocation
# =============================================================================

def _item_quotas(kind: VendorQuestionKind, criteria: VendorScreeningCriteria) -> List[Optional[int]]:
    if kind == VendorQuestionKind.OPEN_TEXT:
        return [v.quota for v in criteria.textValues]
    if kind == VendorQuestionKind.RANGE:
        return [r.quota for r in criteria.ranges]
    return [criteria.optionQuotas.get(option_id) for option_id in criteria.selectedOptionIds]


def allocation(question: VendorQuestion, criteria: VendorScreeningCriteria) -> VendorAllocation:
    """
    Summarize desired vs. allocated completes for one question.

    `allocated` is None while no item is configured; items without a quota
    count as zero in the sum but set `missingQuota`.
    """
    kind = classify_vendor_question(question)
    quotas = _item_quotas(kind, criteria)
    has_items = bool(quotas)

    return VendorAllocation(
        kind=kind,
        target=criteria.desiredCompletes,
        allocated=sum(q or 0 for q in quotas) if has_items else None,
        hasItems=has_items,
        missingQuota=any(q is None for q in quotas),
    )


def _has_selection(criteria: VendorScreeningCriteria) -> bool:
    return bool(criteria.selectedOptionIds or criteria.textValues or criteria.ranges)


def blocking_error(
    vendor_id: Optional[str],
    all_answers: Mapping[str, VendorScreeningCriteria],
    questions: Sequence[VendorQuestion],
) -> Optional[str]:
    """
    Return the first reason the vendor audience cannot be saved, if any.

    Args:
        vendor_id: Selected vendor, None or empty when nothing is selected
        all_answers: Criteria keyed by vendor question id
        questions: Vendor questions the criteria refer to

    Returns:
        A single user-facing message, or None when nothing blocks
    """
    if not vendor_id:
        return "Please select a vendor."

    if not any(_has_selection(c) for c in all_answers.values()):
        return "Please select at least one screening question."

    by_id = {q.id: q for q in questions}
    for question_id, criteria in all_answers.items():
        if criteria.desiredCompletes is None:
            continue
        question = by_id.get(question_id)
        if question is None:
            logger.warning(f"Criteria for unknown vendor question {question_id} skipped")
            continue

        summary = allocation(question, criteria)
        text = question.questionText or question.questionKey or question.id
        if not summary.hasItems:
            return f'Please add at least one item for "{text}".'
        if summary.missingQuota:
            return f'Please enter a quota for every item in "{text}".'
        if summary.allocated != criteria.desiredCompletes:
            delta = criteria.desiredCompletes - summary.allocated
            return (
                f'Allocated completes for "{text}" ({summary.allocated}) must equal '
                f"desired completes ({criteria.desiredCompletes}). Difference: {delta}."
            )

    return None


# =============================================================================
# Criteria Edits
# =============================================================================

def _replace(criteria: VendorScreeningCriteria, **changes: Any) -> VendorScreeningCriteria:
    data = criteria.model_dump()
    data.update(changes)
    return VendorScreeningCriteria.model_validate(data)


def toggle_option(criteria: VendorScreeningCriteria, option_id: str, checked: bool) -> VendorScreeningCriteria:
    """Select or deselect an option; deselecting also drops its quota."""
    selected = [o for o in criteria.selectedOptionIds if o != option_id]
    quotas = dict(criteria.optionQuotas)
    if checked:
        selected.append(option_id)
    else:
        quotas.pop(option_id, None)
    return _replace(criteria, selectedOptionIds=selected, optionQuotas=quotas)


def set_option_quota(
    criteria: VendorScreeningCriteria,
    option_id: str,
    quota: Optional[int],
) -> VendorScreeningCriteria:
    quotas = dict(criteria.optionQuotas)
    quotas[option_id] = quota
    return _replace(criteria, optionQuotas=quotas)


def add_text_value(criteria: VendorScreeningCriteria, raw: str) -> VendorScreeningCriteria:
    """Add a typed value; blanks and case-insensitive duplicates are ignored."""
    value = (raw or "").strip()
    if not value:
        return criteria
    if any(v.value.lower() == value.lower() for v in criteria.textValues):
        return criteria
    values = [v.model_dump() for v in criteria.textValues]
    values.append({"value": value, "quota": None})
    return _replace(criteria, textValues=values)


def remove_text_value(criteria: VendorScreeningCriteria, value: str) -> VendorScreeningCriteria:
    values = [v.model_dump() for v in criteria.textValues if v.value != value]
    return _replace(criteria, textValues=values)


def set_text_value_quota(
    criteria: VendorScreeningCriteria,
    value: str,
    quota: Optional[int],
) -> VendorScreeningCriteria:
    values = [
        TextValueQuota(value=v.value, quota=quota if v.value == value else v.quota).model_dump()
        for v in criteria.textValues
    ]
    return _replace(criteria, textValues=values)


def add_range(
    criteria: VendorScreeningCriteria,
    min_value: Optional[float] = None,
    max_value: Optional[float] = None,
    quota: Optional[int] = None,
) -> VendorScreeningCriteria:
    ranges = [r.model_dump() for r in criteria.ranges]
    ranges.append(RangeQuota(
        id=uuid.uuid4().hex[:8],
        min=min_value,
        max=max_value,
        quota=quota,
    ).model_dump())
    return _replace(criteria, ranges=ranges)


def remove_range(criteria: VendorScreeningCriteria, range_id: str) -> VendorScreeningCriteria:
    return _replace(criteria, ranges=[r.model_dump() for r in criteria.ranges if r.id != range_id])


def set_range_quota(
    criteria: VendorScreeningCriteria,
    range_id: str,
    quota: Optional[int],
) -> VendorScreeningCriteria:
    if not any(r.id == range_id for r in criteria.ranges):
        raise ValueError(f"Unknown range: {range_id}")
    ranges = []
    for r in criteria.ranges:
        data = r.model_dump()
        if r.id == range_id:
            data["quota"] = quota
        ranges.append(data)
    return _replace(criteria, ranges=ranges)


# =============================================================================
# Grouping
# =============================================================================

def group_questions_by_category(questions: Sequence[VendorQuestion]) -> List[VendorQuestionGroup]:
    """
    Group vendor questions by primary category, largest group first.

    Questions without a primary category land in "Other". Ties keep the
    order in which groups were first seen.
    """
    groups: Dict[str, List[VendorQuestion]] = {}
    for question in questions:
        name = question.primaryCategoryName or UNGROUPED_CATEGORY
        groups.setdefault(name, []).append(question)

    result = [
        VendorQuestionGroup(groupName=name, questionCount=len(items), questions=items)
        for name, items in groups.items()
    ]
    result.sort(key=lambda g: g.questionCount, reverse=True)
    return result
