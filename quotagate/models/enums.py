"""
Enumeration definitions for the Quota Gate backend.

All enums inherit from both `str` and `Enum` to ensure JSON serialization compatibility
with Pydantic models, enabling automatic serialization/deserialization in API responses.

Groups:
- Quota configuration: QuotaType, QuotaDimensionName, Gender
- Vendor targeting: VendorQuestionKind, VendorJobStatus
- Persisted payload: BucketOperator
- Respondent protocol: ProtocolState, TerminationReason, QualificationStatus
"""

from enum import Enum


class QuotaType(str, Enum):
    """
    How a quota item's target is expressed.

    - COUNT: absolute number of completes
    - PERCENTAGE: share of the survey's total target (0-100)
    """
    COUNT = "COUNT"
    PERCENTAGE = "PERCENTAGE"


class QuotaDimensionName(str, Enum):
    """
    Independent audience axes a quota can be defined on.

    Each dimension has its own bucket taxonomy, its own screening question
    and its own sum-to-target check. Dimensions are never cross-tabulated.
    """
    AGE = "age"
    GENDER = "gender"
    LOCATION = "location"
    CATEGORY = "category"

    @property
    def label(self) -> str:
        return self.value.capitalize()


class Gender(str, Enum):
    """
    Fixed gender taxonomy used by the gender dimension.

    All four values are always offered as screening options, even when only
    some of them carry a target.
    """
    MALE = "MALE"
    FEMALE = "FEMALE"
    OTHER = "OTHER"
    PREFER_NOT_TO_SAY = "PREFER_NOT_TO_SAY"


class VendorQuestionKind(str, Enum):
    """
    Classification of a vendor-supplied screening question.

    Vendors are third parties, so their question types are not a controlled
    vocabulary. The kind is derived heuristically from question metadata:
    - RANGE: age-like questions, targeted with numeric min/max ranges
    - OPEN_TEXT: free text / verbatim questions, targeted with typed values
    - OPTION_BASED: everything else, targeted per answer option
    """
    RANGE = "RANGE"
    OPEN_TEXT = "OPEN_TEXT"
    OPTION_BASED = "OPTION_BASED"


class VendorJobStatus(str, Enum):
    """Status codes sent to a vendor for a survey distributed through them."""
    PUBLISHED = "PUBLISHED"
    PAUSED = "PAUSED"
    CLOSED = "CLOSED"


class BucketOperator(str, Enum):
    """
    Match operators used by persisted quota buckets.

    - BETWEEN: value is {"min": x, "max": y}
    - IN / INTERSECTS: value is a non-empty list
    - EQ: value is a scalar or an exact structured value
    - GTE / LTE: value is a number
    """
    BETWEEN = "BETWEEN"
    IN = "IN"
    EQ = "EQ"
    GTE = "GTE"
    LTE = "LTE"
    INTERSECTS = "INTERSECTS"


class QualificationStatus(str, Enum):
    """Explicit status values the quota oracle may attach to a verdict."""
    QUOTA_FULL = "QUOTA_FULL"


class ProtocolState(str, Enum):
    """
    States of the respondent qualification protocol.

    Happy path:
        LOADING -> SCREENING -> CHECKING -> QUALIFIED -> TAKING_SURVEY
        -> SUBMITTING -> SUBMITTED -> COMPLETION_MARKED

    Terminal outcomes of CHECKING: NOT_QUALIFIED, QUOTA_FULL.
    Terminal outcomes of LOADING: ALREADY_SUBMITTED, LOAD_ERROR.
    """
    LOADING = "LOADING"
    SCREENING = "SCREENING"
    CHECKING = "CHECKING"
    QUALIFIED = "QUALIFIED"
    NOT_QUALIFIED = "NOT_QUALIFIED"
    QUOTA_FULL = "QUOTA_FULL"
    TAKING_SURVEY = "TAKING_SURVEY"
    SUBMITTING = "SUBMITTING"
    SUBMITTED = "SUBMITTED"
    COMPLETION_MARKED = "COMPLETION_MARKED"
    ALREADY_SUBMITTED = "ALREADY_SUBMITTED"
    LOAD_ERROR = "LOAD_ERROR"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATES


TERMINAL_STATES = frozenset({
    ProtocolState.NOT_QUALIFIED,
    ProtocolState.QUOTA_FULL,
    ProtocolState.COMPLETION_MARKED,
    ProtocolState.ALREADY_SUBMITTED,
    ProtocolState.LOAD_ERROR,
})


class TerminationReason(str, Enum):
    """
    Why a respondent was stopped before (or instead of) taking the survey.

    - not_qualified: oracle rejected the respondent, or the check failed
    - quota_full: the respondent's bucket (or the whole survey) is full
    - survey_closed: the survey no longer accepts responses
    - generic: any other reason
    """
    NOT_QUALIFIED = "not_qualified"
    QUOTA_FULL = "quota_full"
    SURVEY_CLOSED = "survey_closed"
    GENERIC = "generic"

    @property
    def default_message(self) -> str:
        return TERMINATION_MESSAGES[self]


TERMINATION_MESSAGES = {
    TerminationReason.NOT_QUALIFIED: (
        "Unfortunately, you don't qualify for this survey based on the screening "
        "criteria. We appreciate your time and interest."
    ),
    TerminationReason.QUOTA_FULL: (
        "We've already received enough responses for your demographic group. "
        "Thank you for your interest in participating."
    ),
    TerminationReason.SURVEY_CLOSED: (
        "This survey is no longer accepting responses. Thank you for your interest."
    ),
    TerminationReason.GENERIC: (
        "We're sorry, but you cannot continue with this survey at this time."
    ),
}
