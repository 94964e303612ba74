"""
Quota Model Validation Service

This module keeps a survey's quota configuration internally consistent. It
provides the side-effect-free validator that blocks saving an inconsistent
model, the COUNT <-> PERCENTAGE conversion applied when an operator switches a
whole dimension, and the small edit helpers the quota setup UI performs.

Validation Rules:
- If quotas are enabled, the total target must be positive
- Per dimension, the sum of active COUNT targets must equal the total target
- Per dimension, the sum of active PERCENTAGE targets must equal 100
- Inactive buckets (target <= 0) never contribute and never block

Dimensions are evaluated independently; no cross-tabulated quotas exist.

Conversion Rules:
- percentage = round_half_up(count / totalTarget * 100)
- count = round_half_up(percentage / 100 * totalTarget)

Rounding makes conversions lossy. To stop drift from accumulating, a converted
target remembers the value it was derived from (see ConversionOrigin). A later
conversion back to that type restores the remembered value exactly, provided
the total target is unchanged and the remembered value still converts to the
current target. An edited target is recomputed from its new value.

Every edit helper returns a new QuotaModel; the input is never mutated.
"""

import logging
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, List, Optional, Sequence, Tuple, Union

from quotagate.models.enums import Gender, QuotaDimensionName, QuotaType
from quotagate.models.schemas import (
    AgeQuota,
    CategoryQuota,
    ConversionOrigin,
    CountTarget,
    GenderQuota,
    LocationQuota,
    PercentageTarget,
    QuotaItem,
    QuotaModel,
    QuotaValidationError,
    SurveyCategory,
)

logger = logging.getLogger(__name__)


# =============================================================================
# Canonical Bucket Taxonomies
# =============================================================================

# Upper bound 100 is rendered as "65+"
CANONICAL_AGE_BRACKETS: List[Tuple[int, int]] = [
    (18, 24),
    (25, 34),
    (35, 44),
    (45, 54),
    (55, 64),
    (65, 100),
]

CANONICAL_GENDERS: List[Gender] = [
    Gender.MALE,
    Gender.FEMALE,
    Gender.OTHER,
    Gender.PREFER_NOT_TO_SAY,
]

# Validation error codes
TOTAL_TARGET_REQUIRED = "TOTAL_TARGET_REQUIRED"
COUNT_SUM_MISMATCH = "COUNT_SUM_MISMATCH"
PERCENTAGE_SUM_MISMATCH = "PERCENTAGE_SUM_MISMATCH"

Number = Union[int, float]


# =============================================================================
# Helpers
# =============================================================================

def round_half_up(value: Union[Number, Decimal]) -> int:
    """
    Round to the nearest integer, halves away from zero.

    Python's built-in round() uses banker's rounding (round(2.5) == 2), which
    is not what operators expect when converting targets.
    """
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _decimal_sum(values: Sequence[Number]) -> Decimal:
    return sum((Decimal(str(v)) for v in values), Decimal("0"))


def _format_number(value: Union[Number, Decimal]) -> str:
    value = Decimal(str(value))
    if value == value.to_integral_value():
        return str(int(value))
    return format(value.normalize(), "f")


def _make_target(quota_type: QuotaType, value: Number, origin: Optional[ConversionOrigin] = None):
    if QuotaType(quota_type) == QuotaType.PERCENTAGE:
        return PercentageTarget(target_percentage=value, origin=origin)
    return CountTarget(target_count=value, origin=origin)


def _dimension_field(dimension: Union[QuotaDimensionName, str]) -> str:
    return QuotaDimensionName(dimension).value


def _with_items(model: QuotaModel, dimension: QuotaDimensionName, items: List[QuotaItem]) -> QuotaModel:
    dimensions = model.dimensions.model_copy(update={_dimension_field(dimension): items})
    return model.model_copy(update={"dimensions": dimensions})


def _copied_items(model: QuotaModel, dimension: QuotaDimensionName) -> List[QuotaItem]:
    return [item.model_copy(deep=True) for item in model.dimensions.items(dimension)]


# =============================================================================
# Validator
# =============================================================================

def validate(model: QuotaModel) -> List[QuotaValidationError]:
    """
    Validate a quota model.

    This function never mutates the model and never raises for an
    inconsistent configuration; violations are returned as values so the UI
    can surface them inline.

    Args:
        model: The quota model to check

    Returns:
        List of violations, empty when the model may be saved
    """
    errors: List[QuotaValidationError] = []

    if model.enabled and model.totalTarget <= 0:
        errors.append(QuotaValidationError(
            code=TOTAL_TARGET_REQUIRED,
            dimension=None,
            message="Total target required",
        ))

    for dimension in QuotaDimensionName:
        active = [item for item in model.dimensions.items(dimension) if item.is_active]

        # Category is only validated once something in it is targeted
        if dimension == QuotaDimensionName.CATEGORY and not active:
            continue

        count_sum = _decimal_sum([
            item.target.amount for item in active if item.quota_type == QuotaType.COUNT
        ])
        percentage_sum = _decimal_sum([
            item.target.amount for item in active if item.quota_type == QuotaType.PERCENTAGE
        ])

        if count_sum != 0 and count_sum != model.totalTarget:
            errors.append(QuotaValidationError(
                code=COUNT_SUM_MISMATCH,
                dimension=dimension,
                message=(
                    f"{dimension.label} count sum ({_format_number(count_sum)}) "
                    f"must equal total ({model.totalTarget})"
                ),
            ))

        if percentage_sum != 0 and percentage_sum != 100:
            errors.append(QuotaValidationError(
                code=PERCENTAGE_SUM_MISMATCH,
                dimension=dimension,
                message=(
                    f"{dimension.label} percentage sum ({_format_number(percentage_sum)}%) "
                    f"must equal 100%"
                ),
            ))

    return errors


def can_proceed(model: QuotaModel) -> bool:
    """True when the model has no violations and may be saved."""
    return not validate(model)


# =============================================================================
# Quota-Type Conversion
# =============================================================================

def _converted_amount(amount: Number, to: QuotaType, total: int) -> int:
    amount = Decimal(str(amount))
    if to == QuotaType.PERCENTAGE:
        return min(round_half_up(amount / Decimal(total) * 100), 100)
    return round_half_up(amount / 100 * Decimal(total))


def _origin_still_holds(origin: ConversionOrigin, current: Number, total: int) -> bool:
    # An edited target no longer matches what its origin converts to
    if origin.basis_total != total:
        return False
    forward = QuotaType.COUNT if origin.quota_type == QuotaType.PERCENTAGE else QuotaType.PERCENTAGE
    return Decimal(_converted_amount(origin.value, forward, total)) == Decimal(str(current))


def _convert_target(item: QuotaItem, to: QuotaType, total: int):
    target = item.target
    if item.quota_type == to:
        return target

    origin = target.origin
    if origin is not None and origin.quota_type == to and _origin_still_holds(origin, target.amount, total):
        return _make_target(to, origin.value)

    source = ConversionOrigin(
        quota_type=item.quota_type,
        value=target.amount,
        basis_total=total,
    )
    return _make_target(to, _converted_amount(target.amount, to, total), origin=source)


def convert_dimension_quota_type(
    model: QuotaModel,
    dimension: QuotaDimensionName,
    to: QuotaType,
) -> QuotaModel:
    """
    Switch every item of one dimension to the given quota type.

    Args:
        model: The quota model
        dimension: Dimension to convert
        to: Target quota type

    Returns:
        Updated copy of the model

    Raises:
        ValueError: If the total target is not positive (no conversion basis)
    """
    dimension = QuotaDimensionName(dimension)
    to = QuotaType(to)
    if model.totalTarget <= 0:
        raise ValueError("Total target must be positive to convert quota types")

    items = _copied_items(model, dimension)
    for item in items:
        item.target = _convert_target(item, to, model.totalTarget)

    logger.debug(f"Converted {dimension.value} quotas to {to.value} (basis {model.totalTarget})")
    return _with_items(model, dimension, items)


# =============================================================================
# Edit Helpers
# =============================================================================

def set_item_target(
    model: QuotaModel,
    dimension: QuotaDimensionName,
    index: int,
    value: Number,
    quota_type: Optional[QuotaType] = None,
) -> QuotaModel:
    """
    Replace one item's target.

    The item keeps its quota type unless `quota_type` is given. The new target
    carries no conversion origin, since the operator's value is now authoritative.

    Raises:
        IndexError: If the index does not address an item of the dimension
    """
    items = _copied_items(model, dimension)
    if not 0 <= index < len(items):
        raise IndexError(f"No {QuotaDimensionName(dimension).value} quota at index {index}")
    item = items[index]
    item.target = _make_target(quota_type or item.quota_type, value)
    return _with_items(model, dimension, items)


def toggle_item(
    model: QuotaModel,
    dimension: QuotaDimensionName,
    index: int,
    default_target: int = 10,
) -> QuotaModel:
    """Clear an active item's target, or give an inactive item the default target."""
    items = _copied_items(model, dimension)
    if not 0 <= index < len(items):
        raise IndexError(f"No {QuotaDimensionName(dimension).value} quota at index {index}")
    item = items[index]
    if item.is_active:
        item.target = _make_target(item.quota_type, 0)
    else:
        item.target = _make_target(item.quota_type, default_target)
    return _with_items(model, dimension, items)


def add_location_quota(model: QuotaModel, location: LocationQuota) -> QuotaModel:
    """Add a location row, replacing an existing row with the same country/state/city."""
    items = _copied_items(model, QuotaDimensionName.LOCATION)
    for idx, existing in enumerate(items):
        if existing.bucket_key == location.bucket_key:
            items[idx] = location.model_copy(deep=True)
            break
    else:
        items.append(location.model_copy(deep=True))
    return _with_items(model, QuotaDimensionName.LOCATION, items)


def remove_location_quota(model: QuotaModel, index: int) -> QuotaModel:
    items = _copied_items(model, QuotaDimensionName.LOCATION)
    if not 0 <= index < len(items):
        raise IndexError(f"No location quota at index {index}")
    del items[index]
    return _with_items(model, QuotaDimensionName.LOCATION, items)


def set_total_target(model: QuotaModel, total: int) -> QuotaModel:
    return model.model_copy(update={"totalTarget": total})


# =============================================================================
# Normalization
# =============================================================================

def _index_by_key(items: Sequence[QuotaItem]) -> Dict[str, QuotaItem]:
    indexed: Dict[str, QuotaItem] = {}
    for item in items:
        indexed.setdefault(item.bucket_key, item)
    return indexed


def normalize_quota_model(
    model: QuotaModel,
    categories: Optional[Sequence[SurveyCategory]] = None,
) -> QuotaModel:
    """
    Re-normalize a loaded model against the canonical bucket lists.

    Age exposes the 6 canonical brackets followed by any custom ranges, gender
    exposes all 4 values and category exposes the full catalog followed by any
    targeted categories missing from it. Existing targets are kept; missing
    buckets get an empty COUNT target. Location rows are kept as configured.

    Args:
        model: Model as loaded from storage
        categories: Current category catalog

    Returns:
        Normalized copy of the model
    """
    categories = list(categories or [])

    ages = _index_by_key(model.dimensions.age)
    canonical_age_keys = set()
    age_items: List[AgeQuota] = []
    for min_age, max_age in CANONICAL_AGE_BRACKETS:
        key = f"{min_age}-{max_age}"
        canonical_age_keys.add(key)
        existing = ages.get(key)
        age_items.append(
            existing.model_copy(deep=True) if existing else AgeQuota(min_age=min_age, max_age=max_age)
        )
    age_items.extend(
        item.model_copy(deep=True) for key, item in ages.items() if key not in canonical_age_keys
    )

    genders = _index_by_key(model.dimensions.gender)
    gender_items = [
        genders[g.value].model_copy(deep=True) if g.value in genders else GenderQuota(gender=g)
        for g in CANONICAL_GENDERS
    ]

    existing_categories = _index_by_key(model.dimensions.category)
    category_items: List[CategoryQuota] = []
    seen = set()
    for category in categories:
        if category.id in seen:
            continue
        seen.add(category.id)
        existing = existing_categories.get(category.id)
        if existing:
            item = existing.model_copy(deep=True)
            item.categoryName = item.categoryName or category.name
        else:
            item = CategoryQuota(surveyCategoryId=category.id, categoryName=category.name)
        category_items.append(item)
    for key, item in existing_categories.items():
        if key not in seen and item.is_active:
            logger.warning(f"Targeted category {key} is not in the category catalog")
            category_items.append(item.model_copy(deep=True))

    dimensions = model.dimensions.model_copy(update={
        "age": age_items,
        "gender": gender_items,
        "location": [item.model_copy(deep=True) for item in model.dimensions.location],
        "category": category_items,
    })
    return model.model_copy(update={"dimensions": dimensions})


def empty_quota_model(total_target: int = 0, categories: Optional[Sequence[SurveyCategory]] = None) -> QuotaModel:
    """Fresh model with every canonical bucket present and untargeted."""
    return normalize_quota_model(QuotaModel(totalTarget=total_target), categories)
