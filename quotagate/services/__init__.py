"""
Quota Gate Services Module

This module contains the business logic of the Quota Gate backend. Pure
services take models in and return models out; the oracle client and the
qualification protocol are the only ones that talk to the remote survey API.

Services:
- quota_validation: Quota model validator, quota-type conversion, edit helpers
- screening: Screening questionnaire synthesis with fixed-point merge
- quota_payload: Persisted quota document and quota update payload translation
- vendor_allocation: Vendor question classification and allocation checks
- quota_oracle: Async client for the remote survey API
- qualification: Respondent qualification protocol (state machine)
- publication: Survey publication and last-survey hand-off

All services are designed to be consumed by the API layer (quotagate/api/).
"""

# =============================================================================
# Quota Validation Service Exports
# =============================================================================

from quotagate.services.quota_validation import (
    validate,
    can_proceed,
    convert_dimension_quota_type,
    set_item_target,
    toggle_item,
    add_location_quota,
    remove_location_quota,
    set_total_target,
    normalize_quota_model,
    empty_quota_model,
    round_half_up,
    CANONICAL_AGE_BRACKETS,
    CANONICAL_GENDERS,
)

# =============================================================================
# Screening Synthesizer Exports
# =============================================================================

from quotagate.services.screening import (
    synthesize,
    generate_screening_questions,
    reconcile_screening,
    apply_quota_edit,
    set_screening_question_text,
    screening_question_id,
)

# =============================================================================
# Quota Payload Exports
# =============================================================================

from quotagate.services.quota_payload import (
    to_persisted,
    from_persisted,
    build_quota_update_payload,
)

# =============================================================================
# Vendor Allocation Exports
# =============================================================================

from quotagate.services.vendor_allocation import (
    classify_vendor_question,
    allocation,
    blocking_error,
    toggle_option,
    set_option_quota,
    add_text_value,
    remove_text_value,
    set_text_value_quota,
    add_range,
    remove_range,
    set_range_quota,
    group_questions_by_category,
)

# =============================================================================
# Remote API and Protocol Exports
# =============================================================================

from quotagate.services.quota_oracle import (
    QuotaOracleClient,
    OracleError,
    OracleResponseError,
)

from quotagate.services.qualification import (
    QualificationProtocol,
    ProtocolRegistry,
    ProtocolError,
    IncompleteAnswersError,
)

from quotagate.services.publication import (
    publish_survey,
    read_last_survey,
)

__all__ = [
    # Quota validation
    "validate",
    "can_proceed",
    "convert_dimension_quota_type",
    "set_item_target",
    "toggle_item",
    "add_location_quota",
    "remove_location_quota",
    "set_total_target",
    "normalize_quota_model",
    "empty_quota_model",
    "round_half_up",
    "CANONICAL_AGE_BRACKETS",
    "CANONICAL_GENDERS",
    # Screening
    "synthesize",
    "generate_screening_questions",
    "reconcile_screening",
    "apply_quota_edit",
    "set_screening_question_text",
    "screening_question_id",
    # Quota payload
    "to_persisted",
    "from_persisted",
    "build_quota_update_payload",
    # Vendor allocation
    "classify_vendor_question",
    "allocation",
    "blocking_error",
    "toggle_option",
    "set_option_quota",
    "add_text_value",
    "remove_text_value",
    "set_text_value_quota",
    "add_range",
    "remove_range",
    "set_range_quota",
    "group_questions_by_category",
    # Remote API and protocol
    "QuotaOracleClient",
    "OracleError",
    "OracleResponseError",
    "QualificationProtocol",
    "ProtocolRegistry",
    "ProtocolError",
    "IncompleteAnswersError",
    "publish_survey",
    "read_last_survey",
]
