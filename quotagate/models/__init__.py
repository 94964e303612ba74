"""
Package initialization file for Quota Gate models.

This module exports the Pydantic schemas and enumerations from schemas.py and
enums.py, so other modules can import data models without knowing the
internal module structure.

Usage:
    from quotagate.models import (
        QuotaModel,
        AgeQuota,
        QuotaType,
        ProtocolState,
        # ... etc
    )
"""

# =============================================================================
# Enums - Import and re-export all enumerations from enums.py
# =============================================================================

from quotagate.models.enums import (
    # Quota configuration
    QuotaType,
    QuotaDimensionName,
    Gender,
    # Vendor targeting
    VendorQuestionKind,
    VendorJobStatus,
    # Persisted payload
    BucketOperator,
    # Respondent protocol
    QualificationStatus,
    ProtocolState,
    TerminationReason,
    TERMINAL_STATES,
    TERMINATION_MESSAGES,
)

# =============================================================================
# Schemas - Import and re-export all Pydantic models from schemas.py
# =============================================================================

from quotagate.models.schemas import (
    # -------------------------------------------------------------------------
    # Quota targets and items
    # -------------------------------------------------------------------------
    ConversionOrigin,
    CountTarget,
    PercentageTarget,
    QuotaTarget,
    QuotaItem,
    AgeQuota,
    GenderQuota,
    LocationQuota,
    CategoryQuota,
    QuotaDimensions,
    SurveyCategory,
    # -------------------------------------------------------------------------
    # Quota model and screening
    # -------------------------------------------------------------------------
    ScreeningOption,
    ScreeningQuestion,
    QuotaModel,
    QuotaValidationError,
    ValidationResult,
    # -------------------------------------------------------------------------
    # Vendor targeting
    # -------------------------------------------------------------------------
    VendorQuestionOption,
    VendorQuestion,
    TextValueQuota,
    RangeQuota,
    VendorScreeningCriteria,
    VendorAllocation,
    VendorQuestionGroup,
    # -------------------------------------------------------------------------
    # Persisted quota document
    # -------------------------------------------------------------------------
    OptionTarget,
    PersistedBucket,
    PersistedScreeningQuestion,
    PersistedQuota,
    # -------------------------------------------------------------------------
    # Quota oracle contract
    # -------------------------------------------------------------------------
    ScreeningAnswer,
    QualificationRequest,
    QualificationResponse,
    SurveySettings,
    SurveyQuestion,
    SurveyDefinition,
    QuotaRedirects,
    ShareTokenResolution,
    SurveyAnswer,
    SubmissionReceipt,
    # -------------------------------------------------------------------------
    # Respondent protocol and publication
    # -------------------------------------------------------------------------
    Respondent,
    ProtocolSnapshot,
    PublicationResult,
    LastSurveySnapshot,
)

__all__ = [
    # Enums
    "QuotaType",
    "QuotaDimensionName",
    "Gender",
    "VendorQuestionKind",
    "VendorJobStatus",
    "BucketOperator",
    "QualificationStatus",
    "ProtocolState",
    "TerminationReason",
    "TERMINAL_STATES",
    "TERMINATION_MESSAGES",
    # Quota targets and items
    "ConversionOrigin",
    "CountTarget",
    "PercentageTarget",
    "QuotaTarget",
    "QuotaItem",
    "AgeQuota",
    "GenderQuota",
    "LocationQuota",
    "CategoryQuota",
    "QuotaDimensions",
    "SurveyCategory",
    # Quota model and screening
    "ScreeningOption",
    "ScreeningQuestion",
    "QuotaModel",
    "QuotaValidationError",
    "ValidationResult",
    # Vendor targeting
    "VendorQuestionOption",
    "VendorQuestion",
    "TextValueQuota",
    "RangeQuota",
    "VendorScreeningCriteria",
    "VendorAllocation",
    "VendorQuestionGroup",
    # Persisted quota document
    "OptionTarget",
    "PersistedBucket",
    "PersistedScreeningQuestion",
    "PersistedQuota",
    # Quota oracle contract
    "ScreeningAnswer",
    "QualificationRequest",
    "QualificationResponse",
    "SurveySettings",
    "SurveyQuestion",
    "SurveyDefinition",
    "QuotaRedirects",
    "ShareTokenResolution",
    "SurveyAnswer",
    "SubmissionReceipt",
    # Respondent protocol and publication
    "Respondent",
    "ProtocolSnapshot",
    "PublicationResult",
    "LastSurveySnapshot",
]
