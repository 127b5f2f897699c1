"""
Per-kind validation rules and advisory warnings for configuration candidates.
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from payroll_kernel.domain.dtos import ConfigurationCandidate
from payroll_kernel.domain.validation import (
    ValidationLimits,
    advisory_warnings,
    validate_candidate,
)
from payroll_kernel.domain.values import PaymentKind

SUBJECT = uuid4()
EFFECTIVE = date(2024, 6, 1)


def _codes(result):
    return [e.code for e in result.errors]


class TestPercentage:
    def test_valid_split(self):
        candidate = ConfigurationCandidate.percentage(SUBJECT, 70, 20, 10, EFFECTIVE)
        result = validate_candidate(candidate)
        assert result
        assert result.errors == ()

    def test_missing_field(self):
        candidate = ConfigurationCandidate(
            SUBJECT,
            PaymentKind.PERCENTAGE,
            EFFECTIVE,
            driver_percent=70,
            company_percent=20,
        )
        result = validate_candidate(candidate)
        assert not result
        assert _codes(result) == ["FIELD_REQUIRED"]
        assert result.errors[0].field == "service_fee_percent"

    @pytest.mark.parametrize("value", ["-0.01", "100.01"])
    def test_out_of_range(self, value):
        candidate = ConfigurationCandidate.percentage(SUBJECT, value, 20, 10, EFFECTIVE)
        assert _codes(validate_candidate(candidate)) == ["PERCENT_OUT_OF_RANGE"]

    def test_bounds_inclusive(self):
        candidate = ConfigurationCandidate.percentage(SUBJECT, 100, 0, 0, EFFECTIVE)
        assert validate_candidate(candidate)

    def test_sum_is_advisory_only(self):
        candidate = ConfigurationCandidate.percentage(SUBJECT, 70, 20, 5, EFFECTIVE)
        assert validate_candidate(candidate)
        warnings = advisory_warnings(candidate, EFFECTIVE)
        assert warnings == ("Percentages total 95%, not 100%",)

    def test_sum_within_tolerance(self):
        candidate = ConfigurationCandidate.percentage(
            SUBJECT, "70.005", 20, 10, EFFECTIVE
        )
        assert advisory_warnings(candidate, EFFECTIVE) == ()


class TestFlatRate:
    def test_valid(self):
        candidate = ConfigurationCandidate.flat_rate(SUBJECT, "500", EFFECTIVE)
        assert validate_candidate(candidate)

    @pytest.mark.parametrize("amount", ["0", "-5"])
    def test_must_be_positive(self, amount):
        candidate = ConfigurationCandidate.flat_rate(SUBJECT, amount, EFFECTIVE)
        assert _codes(validate_candidate(candidate)) == ["RATE_NOT_POSITIVE"]

    def test_cap_is_configurable(self):
        candidate = ConfigurationCandidate.flat_rate(SUBJECT, "2500", EFFECTIVE)
        assert validate_candidate(candidate)
        limits = ValidationLimits(max_flat_rate=Decimal("2000"))
        result = validate_candidate(candidate, limits)
        assert _codes(result) == ["RATE_ABOVE_MAXIMUM"]
        assert result.errors[0].details == {"maximum": "2000"}

    def test_percent_fields_not_applicable(self):
        candidate = ConfigurationCandidate(
            SUBJECT,
            PaymentKind.FLAT_RATE,
            EFFECTIVE,
            flat_rate_amount=500,
            driver_percent=70,
        )
        result = validate_candidate(candidate)
        assert _codes(result) == ["FIELD_NOT_APPLICABLE"]
        assert result.errors[0].field == "driver_percent"


class TestPerMile:
    def test_float_input_keeps_decimal_text(self):
        candidate = ConfigurationCandidate.per_mile(SUBJECT, 0.55, EFFECTIVE)
        assert candidate.per_mile_rate == Decimal("0.55")
        assert validate_candidate(candidate)

    def test_above_default_maximum(self):
        candidate = ConfigurationCandidate.per_mile(SUBJECT, "10.01", EFFECTIVE)
        assert _codes(validate_candidate(candidate)) == ["RATE_ABOVE_MAXIMUM"]


class TestNumericForm:
    @pytest.mark.parametrize("value", [float("nan"), "sNaN", float("inf"), "-Infinity"])
    def test_non_finite_percent(self, value):
        candidate = ConfigurationCandidate.percentage(SUBJECT, value, 20, 10, EFFECTIVE)
        result = validate_candidate(candidate)
        assert _codes(result) == ["NOT_A_NUMBER"]
        assert result.errors[0].field == "driver_percent"

    def test_non_finite_rate(self):
        candidate = ConfigurationCandidate.per_mile(SUBJECT, float("nan"), EFFECTIVE)
        assert _codes(validate_candidate(candidate)) == ["NOT_A_NUMBER"]

    def test_more_than_four_places_rejected(self):
        candidate = ConfigurationCandidate.percentage(
            SUBJECT, "33.33333", "33.33333", "33.33334", EFFECTIVE
        )
        result = validate_candidate(candidate)
        assert _codes(result) == ["PRECISION_EXCEEDED"] * 3
        assert result.errors[0].details == {"max_decimal_places": 4}

    def test_four_places_and_trailing_zeros_accepted(self):
        candidate = ConfigurationCandidate.percentage(
            SUBJECT, "33.3333", "33.333300", "33.3334", EFFECTIVE
        )
        assert validate_candidate(candidate)

    def test_rate_precision(self):
        candidate = ConfigurationCandidate.flat_rate(SUBJECT, "500.00001", EFFECTIVE)
        assert _codes(validate_candidate(candidate)) == ["PRECISION_EXCEEDED"]


class TestCommonRules:
    def test_missing_everything_reports_each(self):
        candidate = ConfigurationCandidate(None, None, None)
        codes = _codes(validate_candidate(candidate))
        assert codes == ["SUBJECT_REQUIRED", "EFFECTIVE_DATE_REQUIRED", "KIND_REQUIRED"]

    def test_end_before_effective(self):
        candidate = ConfigurationCandidate.flat_rate(
            SUBJECT, 500, EFFECTIVE, end_date=date(2024, 5, 31)
        )
        assert _codes(validate_candidate(candidate)) == ["END_BEFORE_EFFECTIVE"]

    def test_single_day_range_allowed(self):
        candidate = ConfigurationCandidate.flat_rate(
            SUBJECT, 500, EFFECTIVE, end_date=EFFECTIVE
        )
        assert validate_candidate(candidate)

    def test_unknown_kind_string_rejected_at_construction(self):
        with pytest.raises(ValueError):
            ConfigurationCandidate(SUBJECT, "HOURLY", EFFECTIVE)


class TestDateWarnings:
    def test_far_past(self):
        candidate = ConfigurationCandidate.flat_rate(SUBJECT, 500, date(2024, 1, 1))
        assert advisory_warnings(candidate, date(2024, 6, 15)) == (
            "Effective date is more than 30 days in the past",
        )

    def test_far_future(self):
        candidate = ConfigurationCandidate.flat_rate(SUBJECT, 500, date(2025, 1, 1))
        assert advisory_warnings(candidate, date(2024, 6, 15)) == (
            "Effective date is more than 90 days in the future",
        )

    def test_near_dates_are_quiet(self):
        candidate = ConfigurationCandidate.flat_rate(SUBJECT, 500, date(2024, 7, 1))
        assert advisory_warnings(candidate, date(2024, 6, 15)) == ()

    def test_date_checks_can_be_skipped(self):
        candidate = ConfigurationCandidate.flat_rate(SUBJECT, 500, date(2020, 1, 1))
        assert advisory_warnings(candidate, date(2024, 6, 15), check_dates=False) == ()
