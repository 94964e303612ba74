"""
Pytest test module for quota model validation and conversion.

Test Classes:
- TestValidate: sum-to-target rules per dimension
- TestValidateProperties: count sums over generated splits
- TestRoundHalfUp: rounding used by conversions
- TestConvertDimensionQuotaType: COUNT <-> PERCENTAGE conversion and round trips
- TestEditHelpers: per-item edits, toggles, location rows
- TestNormalize: canonical bucket lists on load
- TestQuotaItemShapes: flat target lifting and item validation
"""

import random
from typing import List

import pytest
from pydantic import ValidationError

from quotagate.models.enums import Gender, QuotaDimensionName, QuotaType
from quotagate.models.schemas import (
    AgeQuota,
    CategoryQuota,
    GenderQuota,
    LocationQuota,
    QuotaDimensions,
    QuotaModel,
    SurveyCategory,
)
from quotagate.services.quota_validation import (
    CANONICAL_AGE_BRACKETS,
    COUNT_SUM_MISMATCH,
    PERCENTAGE_SUM_MISMATCH,
    TOTAL_TARGET_REQUIRED,
    add_location_quota,
    can_proceed,
    convert_dimension_quota_type,
    empty_quota_model,
    normalize_quota_model,
    remove_location_quota,
    round_half_up,
    set_item_target,
    set_total_target,
    toggle_item,
    validate,
)


def _gender_counts(total: int, counts: List[int]) -> QuotaModel:
    genders = list(Gender)
    return QuotaModel(
        enabled=True,
        totalTarget=total,
        dimensions=QuotaDimensions(
            gender=[GenderQuota(gender=genders[i], target_count=c) for i, c in enumerate(counts)],
        ),
    )


def _gender_percentages(total: int, percentages: List[float]) -> QuotaModel:
    genders = list(Gender)
    return QuotaModel(
        enabled=True,
        totalTarget=total,
        dimensions=QuotaDimensions(
            gender=[
                GenderQuota(gender=genders[i], quota_type="PERCENTAGE", target_percentage=p)
                for i, p in enumerate(percentages)
            ],
        ),
    )


# =============================================================================
# Test Class: TestValidate
# =============================================================================

class TestValidate:
    """Validation returns violations as values and never mutates the model."""

    def test_empty_disabled_model_is_valid(self) -> None:
        assert validate(QuotaModel()) == []
        assert can_proceed(QuotaModel())

    def test_enabled_without_total_requires_total(self) -> None:
        errors = validate(QuotaModel(enabled=True, totalTarget=0))

        assert [e.code for e in errors] == [TOTAL_TARGET_REQUIRED]
        assert errors[0].message == "Total target required"
        assert errors[0].dimension is None

    def test_balanced_counts_are_valid(self, gender_split_model: QuotaModel) -> None:
        assert validate(gender_split_model) == []

    def test_count_mismatch_names_dimension_and_sums(self) -> None:
        errors = validate(_gender_counts(100, [60, 50]))

        assert len(errors) == 1
        assert errors[0].code == COUNT_SUM_MISMATCH
        assert errors[0].dimension == QuotaDimensionName.GENDER
        assert errors[0].message == "Gender count sum (110) must equal total (100)"

    def test_percentage_mismatch(self) -> None:
        errors = validate(_gender_percentages(100, [40, 50]))

        assert len(errors) == 1
        assert errors[0].code == PERCENTAGE_SUM_MISMATCH
        assert errors[0].message == "Gender percentage sum (90%) must equal 100%"

    def test_fractional_percentages_sum_exactly(self) -> None:
        assert validate(_gender_percentages(100, [33.3, 33.3, 33.4])) == []

    def test_dimensions_are_independent(self, age_gender_model: QuotaModel) -> None:
        assert validate(age_gender_model) == []

        broken = set_item_target(age_gender_model, QuotaDimensionName.AGE, 0, 70)
        errors = validate(broken)

        assert [(e.code, e.dimension) for e in errors] == [
            (COUNT_SUM_MISMATCH, QuotaDimensionName.AGE)
        ]

    def test_inactive_buckets_do_not_contribute(self, gender_split_model: QuotaModel) -> None:
        model = gender_split_model.model_copy(deep=True)
        model.dimensions.gender.append(GenderQuota(gender=Gender.OTHER, target_count=0))

        assert validate(model) == []

    def test_untargeted_category_is_not_validated(self) -> None:
        model = QuotaModel(
            enabled=True,
            totalTarget=100,
            dimensions=QuotaDimensions(
                category=[CategoryQuota(surveyCategoryId="cat-auto", target_count=0)],
            ),
        )
        assert validate(model) == []

    def test_targeted_category_must_sum_to_total(self) -> None:
        model = QuotaModel(
            enabled=True,
            totalTarget=100,
            dimensions=QuotaDimensions(
                category=[
                    CategoryQuota(surveyCategoryId="cat-auto", target_count=30),
                    CategoryQuota(surveyCategoryId="cat-travel", target_count=30),
                ],
            ),
        )
        errors = validate(model)

        assert [e.dimension for e in errors] == [QuotaDimensionName.CATEGORY]
        assert errors[0].message == "Category count sum (60) must equal total (100)"

    def test_validate_does_not_mutate(self) -> None:
        model = _gender_counts(100, [60, 50])
        before = model.model_dump()

        validate(model)

        assert model.model_dump() == before


# =============================================================================
# Test Class: TestValidateProperties
# =============================================================================

@pytest.mark.property
class TestValidateProperties:
    """A count split passes exactly when its active targets sum to the total."""

    def test_exact_splits_pass_and_perturbed_splits_fail(self) -> None:
        rng = random.Random(1229)
        for _ in range(200):
            total = rng.randint(1, 5000)
            cut = rng.randint(0, total)
            counts = [cut, total - cut]
            model = _gender_counts(total, counts)

            assert validate(model) == [], f"{counts} should sum to {total}"

            bump = rng.randint(1, 50)
            skewed = _gender_counts(total, [counts[0] + bump, counts[1]])
            codes = [e.code for e in validate(skewed)]

            assert codes == [COUNT_SUM_MISMATCH]


# =============================================================================
# Test Class: TestRoundHalfUp
# =============================================================================

class TestRoundHalfUp:

    @pytest.mark.parametrize("value,expected", [
        (0.5, 1),
        (1.5, 2),
        (2.5, 3),
        (12.5, 13),
        (47.142857, 47),
        (32.9, 33),
        (7, 7),
    ])
    def test_halves_round_up(self, value: float, expected: int) -> None:
        assert round_half_up(value) == expected


# =============================================================================
# Test Class: TestConvertDimensionQuotaType
# =============================================================================

class TestConvertDimensionQuotaType:
    """Conversion rounds half-up and remembers where it came from."""

    def test_count_to_percentage(self, gender_split_model: QuotaModel) -> None:
        converted = convert_dimension_quota_type(
            gender_split_model, QuotaDimensionName.GENDER, QuotaType.PERCENTAGE
        )

        assert [g.quota_type for g in converted.dimensions.gender] == [QuotaType.PERCENTAGE] * 2
        assert [g.target_percentage for g in converted.dimensions.gender] == [50, 50]
        assert validate(converted) == []

    def test_round_trip_of_even_split_is_exact(self, gender_split_model: QuotaModel) -> None:
        there = convert_dimension_quota_type(
            gender_split_model, QuotaDimensionName.GENDER, QuotaType.PERCENTAGE
        )
        back = convert_dimension_quota_type(there, QuotaDimensionName.GENDER, QuotaType.COUNT)

        assert [g.target_count for g in back.dimensions.gender] == [50, 50]

    def test_round_trip_restores_uneven_count(self) -> None:
        model = _gender_counts(70, [33, 37])

        there = convert_dimension_quota_type(model, QuotaDimensionName.GENDER, QuotaType.PERCENTAGE)
        assert [g.target_percentage for g in there.dimensions.gender] == [47, 53]

        back = convert_dimension_quota_type(there, QuotaDimensionName.GENDER, QuotaType.COUNT)
        assert [g.target_count for g in back.dimensions.gender] == [33, 37]

    def test_repeated_round_trips_do_not_drift(self) -> None:
        model = _gender_counts(70, [33, 37])
        for _ in range(10):
            model = convert_dimension_quota_type(model, QuotaDimensionName.GENDER, QuotaType.PERCENTAGE)
            model = convert_dimension_quota_type(model, QuotaDimensionName.GENDER, QuotaType.COUNT)

        assert [g.target_count for g in model.dimensions.gender] == [33, 37]

    def test_edited_percentage_converts_within_one(self) -> None:
        model = _gender_counts(70, [33, 37])
        there = convert_dimension_quota_type(model, QuotaDimensionName.GENDER, QuotaType.PERCENTAGE)
        # Re-entering the same value drops the remembered origin
        edited = set_item_target(there, QuotaDimensionName.GENDER, 0, 47)

        back = convert_dimension_quota_type(edited, QuotaDimensionName.GENDER, QuotaType.COUNT)

        assert abs(back.dimensions.gender[0].target_count - 33) <= 1

    def test_target_edited_in_place_ignores_stale_origin(self) -> None:
        stale = {"quota_type": "COUNT", "value": 50, "basis_total": 100}
        model = QuotaModel.model_validate({
            "enabled": True,
            "totalTarget": 100,
            "dimensions": {"gender": [
                {"gender": "MALE", "target": {"quota_type": "PERCENTAGE", "target_percentage": 70, "origin": stale}},
                {"gender": "FEMALE", "target": {"quota_type": "PERCENTAGE", "target_percentage": 30, "origin": stale}},
            ]},
        })

        back = convert_dimension_quota_type(model, QuotaDimensionName.GENDER, QuotaType.COUNT)

        assert [g.target_count for g in back.dimensions.gender] == [70, 30]
        assert back.dimensions.gender[0].target.origin.value == 70

    def test_changed_total_recomputes_from_new_basis(self) -> None:
        model = _gender_counts(100, [33, 67])
        there = convert_dimension_quota_type(model, QuotaDimensionName.GENDER, QuotaType.PERCENTAGE)
        there = set_total_target(there, 200)

        back = convert_dimension_quota_type(there, QuotaDimensionName.GENDER, QuotaType.COUNT)

        assert [g.target_count for g in back.dimensions.gender] == [66, 134]

    def test_percentage_is_clamped_to_100(self) -> None:
        model = _gender_counts(100, [150])

        converted = convert_dimension_quota_type(model, QuotaDimensionName.GENDER, QuotaType.PERCENTAGE)

        assert converted.dimensions.gender[0].target_percentage == 100

    def test_same_type_is_a_no_op(self, gender_split_model: QuotaModel) -> None:
        converted = convert_dimension_quota_type(
            gender_split_model, QuotaDimensionName.GENDER, QuotaType.COUNT
        )
        assert converted.dimensions.gender == gender_split_model.dimensions.gender

    def test_requires_positive_total(self) -> None:
        model = _gender_counts(0, [0, 0])

        with pytest.raises(ValueError, match="Total target must be positive"):
            convert_dimension_quota_type(model, QuotaDimensionName.GENDER, QuotaType.PERCENTAGE)

    def test_other_dimensions_untouched(self, age_gender_model: QuotaModel) -> None:
        converted = convert_dimension_quota_type(
            age_gender_model, QuotaDimensionName.GENDER, QuotaType.COUNT
        )

        assert [g.target_count for g in converted.dimensions.gender] == [80, 120]
        assert converted.dimensions.age == age_gender_model.dimensions.age
        assert age_gender_model.dimensions.gender[0].quota_type == QuotaType.PERCENTAGE


# =============================================================================
# Test Class: TestEditHelpers
# =============================================================================

class TestEditHelpers:

    def test_set_item_target_keeps_type(self, age_gender_model: QuotaModel) -> None:
        updated = set_item_target(age_gender_model, QuotaDimensionName.GENDER, 1, 55)

        assert updated.dimensions.gender[1].quota_type == QuotaType.PERCENTAGE
        assert updated.dimensions.gender[1].target_percentage == 55
        assert age_gender_model.dimensions.gender[1].target_percentage == 60

    def test_set_item_target_out_of_range(self, gender_split_model: QuotaModel) -> None:
        with pytest.raises(IndexError):
            set_item_target(gender_split_model, QuotaDimensionName.GENDER, 5, 10)

    def test_toggle_item_on_and_off(self) -> None:
        model = _gender_counts(100, [0])

        on = toggle_item(model, QuotaDimensionName.GENDER, 0)
        assert on.dimensions.gender[0].target_count == 10

        off = toggle_item(on, QuotaDimensionName.GENDER, 0)
        assert off.dimensions.gender[0].target_count == 0
        assert not off.dimensions.gender[0].is_active

    def test_add_location_replaces_same_triple(self) -> None:
        model = QuotaModel(totalTarget=100)
        first = LocationQuota(country="US", state="CA", city="Fresno", target_count=40)
        second = LocationQuota(country="US", state="CA", city="Fresno", postal_code="93650", target_count=60)

        model = add_location_quota(model, first)
        model = add_location_quota(model, LocationQuota(country="US", state="NY", target_count=10))
        model = add_location_quota(model, second)

        assert len(model.dimensions.location) == 2
        assert model.dimensions.location[0].target_count == 60
        assert model.dimensions.location[0].postal_code == "93650"

    def test_remove_location(self) -> None:
        model = add_location_quota(QuotaModel(), LocationQuota(country="US", target_count=5))

        assert remove_location_quota(model, 0).dimensions.location == []
        with pytest.raises(IndexError):
            remove_location_quota(model, 3)


# =============================================================================
# Test Class: TestNormalize
# =============================================================================

class TestNormalize:

    def test_empty_model_exposes_canonical_buckets(self, categories: List[SurveyCategory]) -> None:
        model = empty_quota_model(100, categories)

        assert [(a.min_age, a.max_age) for a in model.dimensions.age] == CANONICAL_AGE_BRACKETS
        assert [g.gender for g in model.dimensions.gender] == list(Gender)
        assert [c.surveyCategoryId for c in model.dimensions.category] == [c.id for c in categories]
        assert not any(
            model.dimensions.is_active(d) for d in QuotaDimensionName
        )

    def test_existing_targets_and_custom_ranges_survive(self) -> None:
        model = QuotaModel(
            totalTarget=100,
            dimensions=QuotaDimensions(
                age=[
                    AgeQuota(min_age=30, max_age=40, target_count=25),
                    AgeQuota(min_age=25, max_age=34, target_count=75),
                ],
            ),
        )

        normalized = normalize_quota_model(model)
        keys = [a.bucket_key for a in normalized.dimensions.age]

        assert keys[:6] == [f"{lo}-{hi}" for lo, hi in CANONICAL_AGE_BRACKETS]
        assert keys[6:] == ["30-40"]
        assert normalized.dimensions.age[1].target_count == 75
        assert normalized.dimensions.age[6].target_count == 25

    def test_targeted_category_missing_from_catalog_is_kept(self, categories: List[SurveyCategory]) -> None:
        model = QuotaModel(
            totalTarget=100,
            dimensions=QuotaDimensions(
                category=[
                    CategoryQuota(surveyCategoryId="cat-retired", categoryName="Retired", target_count=100),
                    CategoryQuota(surveyCategoryId="cat-gone", target_count=0),
                ],
            ),
        )

        normalized = normalize_quota_model(model, categories)
        ids = [c.surveyCategoryId for c in normalized.dimensions.category]

        assert ids == ["cat-auto", "cat-travel", "cat-food", "cat-retired"]

    def test_location_rows_are_kept_as_configured(self) -> None:
        model = add_location_quota(QuotaModel(), LocationQuota(country="US", state="TX", target_count=5))

        normalized = normalize_quota_model(model)

        assert normalized.dimensions.location == model.dimensions.location


# =============================================================================
# Test Class: TestQuotaItemShapes
# =============================================================================

class TestQuotaItemShapes:

    def test_flat_target_is_lifted_and_other_value_dropped(self) -> None:
        item = AgeQuota(
            min_age=18,
            max_age=24,
            quota_type="PERCENTAGE",
            target_percentage=40,
            target_count=12,
        )

        assert item.quota_type == QuotaType.PERCENTAGE
        assert item.target_percentage == 40
        assert item.target_count is None

    def test_age_range_must_be_ordered(self) -> None:
        with pytest.raises(ValidationError):
            AgeQuota(min_age=40, max_age=30)

    def test_percentage_above_100_is_rejected(self) -> None:
        with pytest.raises(ValidationError):
            GenderQuota(gender="MALE", quota_type="PERCENTAGE", target_percentage=120)

    def test_labels(self) -> None:
        assert AgeQuota(min_age=65, max_age=100).label == "65+"
        assert AgeQuota(min_age=18, max_age=24).label == "18-24"
        assert LocationQuota(country="US", city="Austin").label == "Austin, US"
        assert LocationQuota().label == "Unknown"
