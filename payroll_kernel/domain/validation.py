"""
Validation -- per-kind rules for configuration candidates.

Responsibility:
    Decides whether a ConfigurationCandidate may be committed (hard errors)
    and what a clerk should be told about it anyway (advisory warnings).

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.  Limits arrive as a
    ValidationLimits value built by the caller (payroll_config provides one
    from settings); "today" arrives as a date, never from the system clock.

Rules (hard):
    - subject, kind and effective date are required
    - end_date, when present, is not before effective_date
    - PERCENTAGE: driver, company and service fee present, each in [0, 100]
    - FLAT_RATE:  amount present, 0 < amount <= max_flat_rate
    - PER_MILE:   rate present, 0 < rate <= max_per_mile_rate
    - fields belonging to a different kind must be empty
    - every present term is a finite number with at most
      MAX_DECIMAL_PLACES fractional digits (the stored precision)

Rules (advisory):
    - percentages should sum to 100 (within percent_sum_tolerance)
    - effective dates far in the past or future are unusual
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any

from payroll_kernel.domain.dtos import ConfigurationCandidate
from payroll_kernel.domain.values import KIND_FIELDS, ConfigField, PaymentKind

_HUNDRED = Decimal("100")

# Terms are stored as Numeric(18, 4); finer input would not survive a round trip
MAX_DECIMAL_PLACES = 4
_STORED_QUANTUM = Decimal("0.0001")


@dataclass(frozen=True)
class ValidationLimits:
    """Numeric bounds applied by validate_candidate / advisory_warnings."""

    max_flat_rate: Decimal = Decimal("10000")
    max_per_mile_rate: Decimal = Decimal("10")
    percent_sum_tolerance: Decimal = Decimal("0.01")
    past_warning_days: int = 30
    future_warning_days: int = 90


@dataclass(frozen=True)
class ValidationError:
    """A single validation error: machine code, message, offending field."""

    code: str
    message: str
    field: str | None = None
    details: dict[str, Any] | None = None


@dataclass(frozen=True)
class ValidationResult:
    """
    Result of validation.

    Guarantees:
        - errors is always a tuple (never None)
        - bool(result) == result.is_valid
    """

    is_valid: bool
    errors: tuple[ValidationError, ...] = ()

    @classmethod
    def success(cls) -> ValidationResult:
        return cls(is_valid=True, errors=())

    @classmethod
    def failure(cls, *errors: ValidationError) -> ValidationResult:
        return cls(is_valid=False, errors=tuple(errors))

    def __bool__(self) -> bool:
        return self.is_valid


def _check_positive_capped(
    value: Decimal, attribute: str, label: str, maximum: Decimal
) -> list[ValidationError]:
    if value <= 0:
        return [
            ValidationError(
                code="RATE_NOT_POSITIVE",
                message=f"{label} must be greater than zero",
                field=attribute,
            )
        ]
    if value > maximum:
        return [
            ValidationError(
                code="RATE_ABOVE_MAXIMUM",
                message=f"{label} cannot exceed {maximum}",
                field=attribute,
                details={"maximum": str(maximum)},
            )
        ]
    return []


def _check_kind_fields(
    candidate: ConfigurationCandidate, limits: ValidationLimits
) -> list[ValidationError]:
    errors: list[ValidationError] = []
    kind = candidate.kind

    for config_field in ConfigField:
        value = getattr(candidate, config_field.attribute)
        required = config_field in KIND_FIELDS[kind]
        if required and value is None:
            errors.append(
                ValidationError(
                    code="FIELD_REQUIRED",
                    message=f"{config_field.attribute} is required for {kind.value}",
                    field=config_field.attribute,
                )
            )
        elif not required and value is not None:
            errors.append(
                ValidationError(
                    code="FIELD_NOT_APPLICABLE",
                    message=f"{config_field.attribute} does not apply to {kind.value}",
                    field=config_field.attribute,
                )
            )
    if errors:
        return errors

    for config_field in KIND_FIELDS[kind]:
        if not getattr(candidate, config_field.attribute).is_finite():
            errors.append(
                ValidationError(
                    code="NOT_A_NUMBER",
                    message=f"{config_field.attribute} must be a finite number",
                    field=config_field.attribute,
                )
            )
    if errors:
        return errors

    errors.extend(_check_ranges(candidate, limits))
    if errors:
        return errors

    for config_field in KIND_FIELDS[kind]:
        value = getattr(candidate, config_field.attribute)
        if value != value.quantize(_STORED_QUANTUM):
            errors.append(
                ValidationError(
                    code="PRECISION_EXCEEDED",
                    message=(
                        f"{config_field.attribute} allows at most "
                        f"{MAX_DECIMAL_PLACES} decimal places"
                    ),
                    field=config_field.attribute,
                    details={"max_decimal_places": MAX_DECIMAL_PLACES},
                )
            )
    return errors


def _check_ranges(
    candidate: ConfigurationCandidate, limits: ValidationLimits
) -> list[ValidationError]:
    errors: list[ValidationError] = []
    kind = candidate.kind

    if kind == PaymentKind.PERCENTAGE:
        for config_field in KIND_FIELDS[kind]:
            value = getattr(candidate, config_field.attribute)
            if value < 0 or value > _HUNDRED:
                errors.append(
                    ValidationError(
                        code="PERCENT_OUT_OF_RANGE",
                        message=f"{config_field.attribute} must be between 0 and 100",
                        field=config_field.attribute,
                    )
                )
    elif kind == PaymentKind.FLAT_RATE:
        errors.extend(
            _check_positive_capped(
                candidate.flat_rate_amount,
                "flat_rate_amount",
                "Flat rate amount",
                limits.max_flat_rate,
            )
        )
    elif kind == PaymentKind.PER_MILE:
        errors.extend(
            _check_positive_capped(
                candidate.per_mile_rate,
                "per_mile_rate",
                "Per mile rate",
                limits.max_per_mile_rate,
            )
        )
    return errors


def validate_candidate(
    candidate: ConfigurationCandidate, limits: ValidationLimits | None = None
) -> ValidationResult:
    """Apply the hard rules.  Never raises; returns every error found."""
    limits = limits or ValidationLimits()
    errors: list[ValidationError] = []

    if candidate.subject_id is None:
        errors.append(
            ValidationError("SUBJECT_REQUIRED", "Employee is required", "subject_id")
        )
    if candidate.effective_date is None:
        errors.append(
            ValidationError(
                "EFFECTIVE_DATE_REQUIRED", "Effective date is required", "effective_date"
            )
        )
    elif candidate.end_date is not None and candidate.end_date < candidate.effective_date:
        errors.append(
            ValidationError(
                "END_BEFORE_EFFECTIVE",
                "End date cannot be before effective date",
                "end_date",
            )
        )

    if candidate.kind is None:
        errors.append(ValidationError("KIND_REQUIRED", "Payment kind is required", "kind"))
    else:
        errors.extend(_check_kind_fields(candidate, limits))

    if errors:
        return ValidationResult.failure(*errors)
    return ValidationResult.success()


def advisory_warnings(
    candidate: ConfigurationCandidate,
    today: date,
    limits: ValidationLimits | None = None,
    check_dates: bool = True,
) -> tuple[str, ...]:
    """Things worth telling the user that do not block the change."""
    limits = limits or ValidationLimits()
    warnings: list[str] = []

    if candidate.kind == PaymentKind.PERCENTAGE:
        total = (
            candidate.driver_percent
            + candidate.company_percent
            + candidate.service_fee_percent
        )
        if abs(total - _HUNDRED) > limits.percent_sum_tolerance:
            warnings.append(f"Percentages total {total}%, not 100%")

    if not check_dates:
        return tuple(warnings)

    days_from_today = (candidate.effective_date - today).days
    if days_from_today < -limits.past_warning_days:
        warnings.append(
            f"Effective date is more than {limits.past_warning_days} days in the past"
        )
    elif days_from_today > limits.future_warning_days:
        warnings.append(
            f"Effective date is more than {limits.future_warning_days} days in the future"
        )

    return tuple(warnings)
