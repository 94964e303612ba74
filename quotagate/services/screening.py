"""
Screening Questionnaire Synthesizer

This module derives the screening questionnaire from a quota model. Each
active dimension yields one required single-choice question whose options
enumerate EVERY canonical bucket of that dimension, not only the targeted
ones. A respondent must be able to answer into a non-qualifying bucket,
otherwise screening cannot discriminate.

Bucket universes:
- Age: the 6 canonical brackets (plus any custom ranges configured)
- Gender: the 4 canonical values
- Location: exactly the configured rows (location has no fixed universe)
- Category: the full category catalog

Regeneration is explicit: callers run `reconcile_screening` after an edit
(or use `apply_quota_edit`, which does so exactly once). Operator-edited
question text survives regeneration because merging is keyed by question id;
options are always replaced. When the merged list is structurally equal to
the current one, nothing is emitted, so regeneration converges in one pass.
"""

import logging
from typing import Callable, Dict, List, Optional, Sequence

from quotagate.models.enums import Gender, QuotaDimensionName
from quotagate.models.schemas import (
    AgeQuota,
    QuotaModel,
    ScreeningOption,
    ScreeningQuestion,
    SurveyCategory,
)
from quotagate.services.quota_validation import CANONICAL_AGE_BRACKETS, CANONICAL_GENDERS

logger = logging.getLogger(__name__)


DEFAULT_QUESTION_TEXT: Dict[QuotaDimensionName, str] = {
    QuotaDimensionName.AGE: "What is your age group?",
    QuotaDimensionName.GENDER: "What is your gender?",
    QuotaDimensionName.LOCATION: "Where are you located?",
    QuotaDimensionName.CATEGORY: "Which of the following categories apply to you?",
}

GENDER_LABELS: Dict[Gender, str] = {
    Gender.MALE: "Male",
    Gender.FEMALE: "Female",
    Gender.OTHER: "Non-binary / Other",
    Gender.PREFER_NOT_TO_SAY: "Prefer not to say",
}

QuotaEdit = Callable[[QuotaModel], QuotaModel]


def screening_question_id(dimension: QuotaDimensionName) -> str:
    return f"screening_{QuotaDimensionName(dimension).value}"


# =============================================================================
# Option Builders
# =============================================================================

def _age_options(model: QuotaModel) -> List[ScreeningOption]:
    brackets = [AgeQuota(min_age=lo, max_age=hi) for lo, hi in CANONICAL_AGE_BRACKETS]
    canonical_keys = {b.bucket_key for b in brackets}
    for item in model.dimensions.age:
        if item.bucket_key not in canonical_keys:
            canonical_keys.add(item.bucket_key)
            brackets.append(item)
    return [
        ScreeningOption(id=f"age_{b.bucket_key}", label=b.label, value=b.bucket_key)
        for b in brackets
    ]


def _gender_options(model: QuotaModel) -> List[ScreeningOption]:
    return [
        ScreeningOption(id=f"gender_{g.value}", label=GENDER_LABELS[g], value=g.value)
        for g in CANONICAL_GENDERS
    ]


def _location_options(model: QuotaModel) -> List[ScreeningOption]:
    return [
        ScreeningOption(id=f"location_{idx}", label=item.label, value=item.bucket_key)
        for idx, item in enumerate(model.dimensions.location)
    ]


def _category_options(model: QuotaModel, categories: Sequence[SurveyCategory]) -> List[ScreeningOption]:
    options: List[ScreeningOption] = []
    seen = set()
    for category in categories:
        if category.id in seen:
            continue
        seen.add(category.id)
        options.append(ScreeningOption(
            id=f"category_{category.id}",
            label=category.name or category.id,
            value=category.id,
        ))
    # A targeted category must stay answerable even if the catalog dropped it
    for item in model.dimensions.category:
        if item.is_active and item.surveyCategoryId not in seen:
            seen.add(item.surveyCategoryId)
            options.append(ScreeningOption(
                id=f"category_{item.surveyCategoryId}",
                label=item.label,
                value=item.surveyCategoryId,
            ))
    return options


# =============================================================================
# Synthesis
# =============================================================================

def generate_screening_questions(
    model: QuotaModel,
    categories: Sequence[SurveyCategory] = (),
) -> List[ScreeningQuestion]:
    """
    Build fresh screening questions for every active dimension.

    Questions use the default wording and are ordered age, gender, location,
    category.
    """
    builders = {
        QuotaDimensionName.AGE: lambda: _age_options(model),
        QuotaDimensionName.GENDER: lambda: _gender_options(model),
        QuotaDimensionName.LOCATION: lambda: _location_options(model),
        QuotaDimensionName.CATEGORY: lambda: _category_options(model, categories),
    }

    questions: List[ScreeningQuestion] = []
    for dimension in QuotaDimensionName:
        if not model.dimensions.is_active(dimension):
            continue
        questions.append(ScreeningQuestion(
            id=screening_question_id(dimension),
            dimension=dimension,
            question_text=DEFAULT_QUESTION_TEXT[dimension],
            options=builders[dimension](),
            required=True,
        ))
    return questions


def synthesize(
    model: QuotaModel,
    categories: Sequence[SurveyCategory] = (),
) -> List[ScreeningQuestion]:
    """
    Generate screening questions and merge them with the model's current ones.

    For a question id already present, the existing question_text is kept
    and the options are replaced. Questions of dimensions that became
    inactive are dropped.

    Args:
        model: Quota model whose dimensions drive the questionnaire
        categories: Category catalog for the category dimension

    Returns:
        The merged question list
    """
    existing = {q.id: q for q in model.screeningQuestions}
    merged: List[ScreeningQuestion] = []
    for question in generate_screening_questions(model, categories):
        previous = existing.get(question.id)
        if previous is not None:
            question = question.model_copy(update={"question_text": previous.question_text})
        merged.append(question)
    return merged


def reconcile_screening(
    model: QuotaModel,
    categories: Sequence[SurveyCategory] = (),
) -> Optional[QuotaModel]:
    """
    Recompute the screening questions of a model.

    Returns:
        An updated copy of the model, or None when the merged questions are
        structurally equal to the current ones (no update to emit)
    """
    merged = synthesize(model, categories)
    if merged == list(model.screeningQuestions):
        return None
    logger.debug(
        f"Screening questions changed: {[q.id for q in model.screeningQuestions]} -> {[q.id for q in merged]}"
    )
    return model.model_copy(update={"screeningQuestions": merged})


def apply_quota_edit(
    model: QuotaModel,
    categories: Sequence[SurveyCategory],
    edit: QuotaEdit,
) -> QuotaModel:
    """Run one edit, then recompute screening questions exactly once."""
    edited = edit(model)
    return reconcile_screening(edited, categories) or edited


def set_screening_question_text(model: QuotaModel, question_id: str, text: str) -> QuotaModel:
    """
    Change the wording of one screening question; options are untouched.

    Raises:
        ValueError: If no screening question has the given id
    """
    if not any(q.id == question_id for q in model.screeningQuestions):
        raise ValueError(f"Unknown screening question: {question_id}")
    questions = [
        q.model_copy(update={"question_text": text}) if q.id == question_id else q
        for q in model.screeningQuestions
    ]
    return model.model_copy(update={"screeningQuestions": questions})
