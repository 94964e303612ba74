"""
Pydantic request/response models for the Quota Gate backend.

This module provides type-safe data validation and serialization for:
- the quota configuration model (targets, dimensions, screening questions)
- vendor screening criteria and allocation summaries
- the persisted (server-stored) quota payload
- the quota oracle wire contract (qualification check, submission)
- the respondent protocol snapshot exposed by the API

Field casing follows the wire contracts these models mirror: quota items use
snake_case (`quota_type`, `target_count`), container models use camelCase
(`totalTarget`, `screeningQuestions`), and the persisted payload uses the
lower-case keys the remote store expects (`totaltarget`, `screeningquestions`).

All models use Pydantic v2 syntax with proper field validation and examples.
"""

import json
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, model_validator

from quotagate.models.enums import (
    BucketOperator,
    Gender,
    ProtocolState,
    QuotaDimensionName,
    QuotaType,
    TerminationReason,
    VendorQuestionKind,
)


# =============================================================================
# Quota Targets (tagged Count | Percentage variant)
# =============================================================================


class ConversionOrigin(BaseModel):
    """
    Authoritative value a converted target was derived from.

    Converting COUNT <-> PERCENTAGE rounds, so repeated conversions can drift.
    A converted target remembers the value it came from and the total target
    used as the basis; converting back while both are unchanged restores the
    original value exactly instead of rounding again.
    """
    quota_type: QuotaType
    value: Union[int, float]
    basis_total: int


class CountTarget(BaseModel):
    """Absolute number of completes for one bucket."""
    quota_type: Literal["COUNT"] = "COUNT"
    target_count: int = Field(
        default=0,
        ge=0,
        description="Number of completes wanted for this bucket"
    )
    origin: Optional[ConversionOrigin] = Field(
        default=None,
        description="Set only when this target was produced by a type conversion"
    )

    @property
    def amount(self) -> int:
        return self.target_count


class PercentageTarget(BaseModel):
    """Share of the survey total (0-100) for one bucket."""
    quota_type: Literal["PERCENTAGE"] = "PERCENTAGE"
    target_percentage: float = Field(
        default=0,
        ge=0,
        le=100,
        description="Percentage of the total target wanted for this bucket"
    )
    origin: Optional[ConversionOrigin] = Field(
        default=None,
        description="Set only when this target was produced by a type conversion"
    )

    @property
    def amount(self) -> float:
        return self.target_percentage


QuotaTarget = Annotated[
    Union[CountTarget, PercentageTarget],
    Field(discriminator="quota_type"),
]


# =============================================================================
# Quota Items (one per bucket)
# =============================================================================


class QuotaItem(BaseModel):
    """
    Base class for a single quota bucket.

    The target is a tagged variant, so exactly one of count/percentage exists.
    For convenience the flat wire shape is also accepted on input:

        {"min_age": 18, "max_age": 24, "quota_type": "PERCENTAGE", "target_percentage": 40}

    is lifted into `target`; the value that does not match `quota_type` is
    dropped rather than kept around.
    """
    target: QuotaTarget = Field(
        default_factory=CountTarget,
        description="Count or percentage target for this bucket"
    )
    current_count: Optional[int] = Field(
        default=None,
        ge=0,
        description="Completes already collected, when known"
    )

    @model_validator(mode="before")
    @classmethod
    def _lift_flat_target(cls, data: Any) -> Any:
        if not isinstance(data, dict) or "target" in data:
            return data
        if not any(k in data for k in ("quota_type", "target_count", "target_percentage")):
            return data
        data = dict(data)
        quota_type = data.pop("quota_type", QuotaType.COUNT.value)
        count = data.pop("target_count", None)
        percentage = data.pop("target_percentage", None)
        if QuotaType(quota_type) == QuotaType.PERCENTAGE:
            data["target"] = {"quota_type": "PERCENTAGE", "target_percentage": percentage or 0}
        else:
            data["target"] = {"quota_type": "COUNT", "target_count": count or 0}
        return data

    @property
    def quota_type(self) -> QuotaType:
        return QuotaType(self.target.quota_type)

    @property
    def target_count(self) -> Optional[int]:
        return self.target.target_count if isinstance(self.target, CountTarget) else None

    @property
    def target_percentage(self) -> Optional[float]:
        return self.target.target_percentage if isinstance(self.target, PercentageTarget) else None

    @property
    def is_active(self) -> bool:
        """A bucket is active when its target is positive."""
        return self.target.amount > 0

    @property
    def bucket_key(self) -> str:
        raise NotImplementedError

    @property
    def label(self) -> str:
        return self.bucket_key


class AgeQuota(QuotaItem):
    """Age bucket covering [min_age, max_age]."""
    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "min_age": 25,
                "max_age": 34,
                "target": {"quota_type": "COUNT", "target_count": 40}
            }
        }
    )

    min_age: int = Field(..., ge=0)
    max_age: int = Field(..., ge=0)

    @model_validator(mode="after")
    def _check_range(self) -> "AgeQuota":
        if self.min_age > self.max_age:
            raise ValueError(f"min_age ({self.min_age}) must not exceed max_age ({self.max_age})")
        return self

    @property
    def bucket_key(self) -> str:
        return f"{self.min_age}-{self.max_age}"

    @property
    def label(self) -> str:
        if self.max_age >= 100:
            return f"{self.min_age}+"
        return f"{self.min_age}-{self.max_age}"


class GenderQuota(QuotaItem):
    gender: Gender

    @property
    def bucket_key(self) -> str:
        return self.gender.value


class LocationQuota(QuotaItem):
    """
    Location bucket identified by its (country, state, city) triple.

    Location has no fixed universe; the configured rows are the buckets.
    """
    country: str = ""
    state: str = ""
    city: str = ""
    postal_code: Optional[str] = None

    @property
    def location_triple(self) -> Dict[str, str]:
        return {"country": self.country, "state": self.state, "city": self.city}

    @property
    def bucket_key(self) -> str:
        return json.dumps(self.location_triple, separators=(",", ":"))

    @property
    def label(self) -> str:
        return ", ".join(p for p in (self.city, self.state, self.country) if p) or "Unknown"


class CategoryQuota(QuotaItem):
    surveyCategoryId: str = Field(..., min_length=1)
    categoryName: str = ""

    @property
    def bucket_key(self) -> str:
        return self.surveyCategoryId

    @property
    def label(self) -> str:
        return self.categoryName or self.surveyCategoryId


class QuotaDimensions(BaseModel):
    """The four independent quota dimensions of a survey."""
    age: List[AgeQuota] = Field(default_factory=list)
    gender: List[GenderQuota] = Field(default_factory=list)
    location: List[LocationQuota] = Field(default_factory=list)
    category: List[CategoryQuota] = Field(default_factory=list)

    def items(self, dimension: QuotaDimensionName) -> List[QuotaItem]:
        return list(getattr(self, QuotaDimensionName(dimension).value))

    def is_active(self, dimension: QuotaDimensionName) -> bool:
        return any(item.is_active for item in self.items(dimension))


class SurveyCategory(BaseModel):
    """Entry of the category catalog offered by the category dimension."""
    id: str = Field(..., min_length=1)
    name: str = ""


# =============================================================================
# Screening Questions
# =============================================================================


class ScreeningOption(BaseModel):
    """
    One answer option of a screening question.

    `value` encodes the bucket identity (e.g. "25-34", "FEMALE", or a
    serialized location triple); it is how an answer is matched back to a
    quota bucket.
    """
    id: str
    label: str
    value: str


class ScreeningQuestion(BaseModel):
    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "id": "screening_age",
                "dimension": "age",
                "question_text": "What is your age group?",
                "options": [
                    {"id": "age_18-24", "label": "18-24", "value": "18-24"},
                    {"id": "age_65-100", "label": "65+", "value": "65-100"}
                ],
                "required": True
            }
        }
    )

    id: str = Field(..., description="Deterministic per dimension, e.g. 'screening_age'")
    dimension: Optional[QuotaDimensionName] = Field(
        default=None,
        validation_alias=AliasChoices("dimension", "type"),
    )
    question_text: str = Field(..., description="Operator-editable question wording")
    options: List[ScreeningOption] = Field(default_factory=list)
    required: bool = True


# =============================================================================
# Quota Model
# =============================================================================


class QuotaModel(BaseModel):
    """
    In-memory quota configuration for one survey.

    Created empty when an operator opens quota setup, mutated by every edit,
    persisted on explicit save and re-normalized against the canonical bucket
    lists on every load.
    """
    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "enabled": True,
                "totalTarget": 100,
                "dimensions": {
                    "gender": [
                        {"gender": "MALE", "target": {"quota_type": "COUNT", "target_count": 50}},
                        {"gender": "FEMALE", "target": {"quota_type": "COUNT", "target_count": 50}}
                    ]
                },
                "screeningQuestions": []
            }
        }
    )

    enabled: bool = Field(default=False, description="Whether quotas are enforced")
    totalTarget: int = Field(default=0, description="Total completes wanted")
    dimensions: QuotaDimensions = Field(default_factory=QuotaDimensions)
    screeningQuestions: List[ScreeningQuestion] = Field(default_factory=list)

    completedUrl: Optional[str] = Field(default=None, description="Redirect after completion")
    terminatedUrl: Optional[str] = Field(default=None, description="Redirect when not qualified")
    quotaFullUrl: Optional[str] = Field(default=None, description="Redirect when quota is full")

    vendorId: Optional[str] = None
    countryCode: Optional[str] = None
    language: Optional[str] = None


class QuotaValidationError(BaseModel):
    """One violated quota invariant."""
    code: str = Field(..., description="Stable machine-readable code")
    dimension: Optional[QuotaDimensionName] = None
    message: str


class ValidationResult(BaseModel):
    valid: bool
    errors: List[QuotaValidationError] = Field(default_factory=list)


# =============================================================================
# Vendor Screening Criteria & Allocation
# =============================================================================


class VendorQuestionOption(BaseModel):
    id: str
    option_text: str = ""
    vendor_option_id: Optional[str] = None
    order_index: int = 0


class VendorQuestion(BaseModel):
    """
    Screening question supplied by a third-party panel vendor.

    Vendor feeds use snake_case (`question_key`, `question_text`, ...) and
    carry categories as a list with an `is_primary` flag; both the feed shape
    and the camelCase shape are accepted.
    """
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str
    questionKey: str = Field(default="", validation_alias=AliasChoices("questionKey", "question_key"))
    questionText: str = Field(default="", validation_alias=AliasChoices("questionText", "question_text"))
    questionType: str = Field(default="", validation_alias=AliasChoices("questionType", "question_type"))
    options: List[VendorQuestionOption] = Field(default_factory=list)
    primaryCategoryName: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("primaryCategoryName", "primary_vendor_category_name"),
    )

    @model_validator(mode="before")
    @classmethod
    def _primary_category_from_list(cls, data: Any) -> Any:
        if not isinstance(data, dict) or not isinstance(data.get("category"), list):
            return data
        if data.get("primaryCategoryName") or data.get("primary_vendor_category_name"):
            return data
        primary = next(
            (c for c in data["category"] if isinstance(c, dict) and c.get("is_primary")),
            None,
        )
        if primary is not None:
            data = dict(data)
            data["primaryCategoryName"] = primary.get("category_name")
        return data


class TextValueQuota(BaseModel):
    value: str = Field(..., min_length=1)
    quota: Optional[int] = Field(default=None, ge=0)


class RangeQuota(BaseModel):
    id: str
    min: Optional[float] = None
    max: Optional[float] = None
    quota: Optional[int] = Field(default=None, ge=0)

    @model_validator(mode="after")
    def _check_bounds(self) -> "RangeQuota":
        if self.min is not None and self.max is not None and self.min > self.max:
            raise ValueError(f"range {self.id} has min > max")
        return self


class VendorScreeningCriteria(BaseModel):
    """
    Targeting for one vendor question.

    `desiredCompletes` opts the question into allocation checks. Exactly one
    targeting group is used, chosen by the question's kind:
    - option-based: selectedOptionIds + optionQuotas
    - open text: textValues
    - range: ranges
    """
    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "desiredCompletes": 20,
                "selectedOptionIds": ["opt-1", "opt-2"],
                "optionQuotas": {"opt-1": 12, "opt-2": 8}
            }
        }
    )

    desiredCompletes: Optional[int] = Field(default=None, ge=0)
    selectedOptionIds: List[str] = Field(default_factory=list)
    optionQuotas: Dict[str, Optional[int]] = Field(default_factory=dict)
    textValues: List[TextValueQuota] = Field(default_factory=list)
    ranges: List[RangeQuota] = Field(default_factory=list)

    @model_validator(mode="after")
    def _single_targeting_group(self) -> "VendorScreeningCriteria":
        groups = [
            bool(self.selectedOptionIds or self.optionQuotas),
            bool(self.textValues),
            bool(self.ranges),
        ]
        if sum(groups) > 1:
            raise ValueError(
                "criteria must use only one of option, text value or range targeting"
            )
        return self


class VendorAllocation(BaseModel):
    """Desired vs. allocated completes for one vendor question."""
    kind: VendorQuestionKind
    target: Optional[int] = None
    allocated: Optional[int] = Field(
        default=None,
        description="Sum of item quotas; null while no item is configured"
    )
    hasItems: bool = False
    missingQuota: bool = False


class VendorQuestionGroup(BaseModel):
    groupName: str
    questionCount: int
    questions: List[VendorQuestion] = Field(default_factory=list)


# =============================================================================
# Persisted Quota Payload (server-stored shape)
# =============================================================================


class OptionTarget(BaseModel):
    optionId: str
    target: Union[int, float] = 0
    quotaType: QuotaType = QuotaType.COUNT


class PersistedBucket(BaseModel):
    label: Optional[str] = None
    operator: BucketOperator
    value: Any = None
    target: Union[int, float] = 0
    quotaType: QuotaType = QuotaType.COUNT

    @model_validator(mode="after")
    def _check_operator_value(self) -> "PersistedBucket":
        name = self.label or ""
        if self.operator == BucketOperator.BETWEEN:
            bounds = self.value if isinstance(self.value, dict) else {}
            low, high = bounds.get("min"), bounds.get("max")
            if not isinstance(low, (int, float)) or not isinstance(high, (int, float)):
                raise ValueError(f'Bucket "{name}" must have numeric min/max')
            if low > high:
                raise ValueError(f'Bucket "{name}" has min > max')
        elif self.operator in (BucketOperator.IN, BucketOperator.INTERSECTS):
            if not isinstance(self.value, list) or not self.value:
                raise ValueError(f'Bucket "{name}" must have at least one value')
        return self


class PersistedScreeningQuestion(BaseModel):
    questionId: str
    questionText: Optional[str] = None
    vendorQuestionId: Optional[str] = None
    optionTargets: List[OptionTarget] = Field(default_factory=list)
    buckets: List[PersistedBucket] = Field(default_factory=list)


class PersistedQuota(BaseModel):
    """
    Quota configuration as stored by the remote survey API.

    Note the lower-case `totaltarget` / `screeningquestions` keys; they are
    translated to and from the camel-case in-memory model on save and load.
    """
    model_config = ConfigDict(extra="ignore")

    totaltarget: Optional[int] = None
    screeningquestions: List[PersistedScreeningQuestion] = Field(default_factory=list)
    vendorId: Optional[str] = None
    countryCode: Optional[str] = None
    language: Optional[str] = None
    enabled: Optional[bool] = None
    completedUrl: Optional[str] = None
    terminatedUrl: Optional[str] = None
    quotaFullUrl: Optional[str] = None


# =============================================================================
# Quota Oracle Contract
# =============================================================================


class ScreeningAnswer(BaseModel):
    screeningQuestionId: str
    screeningOptionId: str
    answerValue: str


class QualificationRequest(BaseModel):
    vendor_respondent_id: str = Field(..., description="The respondent's share token")
    screeningAnswers: List[ScreeningAnswer] = Field(default_factory=list)


class QualificationResponse(BaseModel):
    """
    Oracle verdict.

    `qualified` is strict: anything other than a real boolean is a malformed
    response and is treated as not qualified by the caller.
    """
    model_config = ConfigDict(extra="ignore")

    qualified: bool = Field(..., strict=True)
    respondent_id: Optional[str] = None
    status: Optional[str] = None


class SurveySettings(BaseModel):
    """Public survey settings relevant to the respondent flow."""
    model_config = ConfigDict(extra="ignore")

    showProgressBar: Optional[bool] = None
    autoRestart: bool = False
    autoRestartDelaySeconds: Optional[float] = Field(default=None, ge=0)


class SurveyQuestion(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    question_text: str = ""
    question_type: str = "TEXT"
    options: List[Any] = Field(default_factory=list)
    required: bool = False
    order_index: int = 0


class SurveyDefinition(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    title: str = ""
    description: Optional[str] = None
    status: Optional[str] = None
    settings: SurveySettings = Field(default_factory=SurveySettings)
    questions: List[SurveyQuestion] = Field(default_factory=list)


class QuotaRedirects(BaseModel):
    model_config = ConfigDict(extra="ignore")

    completedUrl: Optional[str] = None
    terminatedUrl: Optional[str] = None
    quotaFullUrl: Optional[str] = None


class ShareTokenResolution(BaseModel):
    """Result of validating a share token: the survey it grants access to."""
    model_config = ConfigDict(extra="ignore")

    surveyId: str
    survey: SurveyDefinition
    used: bool = False
    quota: Optional[QuotaRedirects] = None


class SurveyAnswer(BaseModel):
    questionId: str
    answer_type: str = "TEXT"
    answer_value: Any = None


class SubmissionReceipt(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    surveyId: Optional[str] = None


# =============================================================================
# Respondent Protocol
# =============================================================================


class Respondent(BaseModel):
    """Runtime respondent record; only `completed=True` is ever made durable."""
    vendor_respondent_id: str
    screeningAnswers: Dict[str, str] = Field(default_factory=dict)
    qualified: Optional[bool] = None
    respondentId: Optional[str] = None
    completed: bool = False


class ProtocolSnapshot(BaseModel):
    """Observable state of one respondent's qualification flow."""
    state: ProtocolState
    surveyId: Optional[str] = None
    surveyTitle: Optional[str] = None
    currentScreeningIndex: int = 0
    screeningQuestionCount: int = 0
    currentScreeningQuestion: Optional[ScreeningQuestion] = None
    canGoBack: bool = False
    canGoNext: bool = False
    surveyQuestions: List[SurveyQuestion] = Field(default_factory=list)
    respondent: Respondent
    terminationReason: Optional[TerminationReason] = None
    terminationMessage: Optional[str] = None
    redirectUrl: Optional[str] = None
    error: Optional[str] = None


# =============================================================================
# Publication
# =============================================================================


class PublicationResult(BaseModel):
    surveyId: str
    publicUrl: str
    usedFallbackLink: bool = False
    vendorStatusUpdated: bool = False


class LastSurveySnapshot(BaseModel):
    surveyData: Dict[str, Any] = Field(default_factory=dict)
    audience: Optional[int] = None
    title: Optional[str] = None


# =============================================================================
# API Request / Response Bodies
# =============================================================================


class ScreeningRequest(BaseModel):
    quota: QuotaModel
    categories: List[SurveyCategory] = Field(default_factory=list)


class ScreeningResponse(BaseModel):
    changed: bool
    screeningQuestions: List[ScreeningQuestion] = Field(default_factory=list)


class ConvertQuotaTypeRequest(BaseModel):
    quota: QuotaModel
    dimension: QuotaDimensionName
    quotaType: QuotaType
    categories: List[SurveyCategory] = Field(default_factory=list)


class ToggleItemRequest(BaseModel):
    quota: QuotaModel
    dimension: QuotaDimensionName
    index: int = Field(..., ge=0)
    categories: List[SurveyCategory] = Field(default_factory=list)


class NewQuotaRequest(BaseModel):
    totalTarget: Optional[int] = Field(default=None, ge=0, description="Defaults to the configured total target")
    categories: List[SurveyCategory] = Field(default_factory=list)


class PublishSurveyRequest(BaseModel):
    surveyData: Dict[str, Any] = Field(default_factory=dict)
    title: Optional[str] = None
    audience: Optional[int] = Field(default=None, ge=0)
    vendorId: Optional[str] = None


class DecodePersistedRequest(BaseModel):
    persisted: PersistedQuota
    categories: List[SurveyCategory] = Field(default_factory=list)


class VendorAllocationRequest(BaseModel):
    question: VendorQuestion
    criteria: VendorScreeningCriteria = Field(default_factory=VendorScreeningCriteria)


class VendorValidationRequest(BaseModel):
    vendorId: Optional[str] = None
    questions: List[VendorQuestion] = Field(default_factory=list)
    criteria: Dict[str, VendorScreeningCriteria] = Field(default_factory=dict)


class VendorValidationResponse(BaseModel):
    valid: bool
    error: Optional[str] = None


class ScreeningAnswerRequest(BaseModel):
    questionId: str
    optionId: str


class SurveyAnswerRequest(BaseModel):
    questionId: str
    value: Any = None
