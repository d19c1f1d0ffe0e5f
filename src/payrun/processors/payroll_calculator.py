from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from payrun.exceptions import CalculationError
from payrun.models.payroll import Deductions, PayCalculation, PayInputs
from payrun.utils.formatters import as_decimal
from payrun.utils.validators import validate_percentage

HUNDRED = Decimal(100)

AMOUNT_FIELDS = (
    'base_pay', 'hourly_rate', 'overtime_rate', 'bonus', 'commission', 'allowances',
    'other_earnings', 'health_insurance_deduction', 'other_deductions',
)
HOUR_FIELDS = ('hours_worked', 'overtime_hours')
PERCENT_FIELDS = (
    'federal_tax_pct', 'state_tax_pct', 'social_security_pct', 'medicare_pct',
    'retirement_contribution_pct',
)


def round_cents(value: Decimal) -> int:
    """Round half up to a whole number of cents"""
    return int(value.quantize(Decimal('1'), rounding=ROUND_HALF_UP))


def percentage_of(amount: int, pct: Decimal) -> int:
    return round_cents(Decimal(amount) * pct / HUNDRED)


def _checked_decimal(inputs: PayInputs, name: str) -> Decimal:
    value = getattr(inputs, name)
    try:
        number = as_decimal(value)
    except (InvalidOperation, TypeError, ValueError):
        raise CalculationError(f"{name} is not a number: {value!r}", field=name) from None
    if not number.is_finite():
        raise CalculationError(f"{name} is not a finite number: {value!r}", field=name)
    return number


def validate_inputs(inputs: PayInputs):
    for name in AMOUNT_FIELDS:
        value = getattr(inputs, name)
        if not isinstance(value, int) or isinstance(value, bool):
            raise CalculationError(f"{name} must be a whole number of cents, got {value!r}", field=name)
        if value < 0:
            raise CalculationError(f"{name} must not be negative, got {value}", field=name)
    for name in HOUR_FIELDS:
        if _checked_decimal(inputs, name) < 0:
            raise CalculationError(f"{name} must not be negative", field=name)
    for name in PERCENT_FIELDS:
        if not validate_percentage(_checked_decimal(inputs, name)):
            raise CalculationError(
                f"{name} must be between 0 and 100, got {getattr(inputs, name)}", field=name
            )


def calculate(inputs: PayInputs) -> PayCalculation:
    """Gross-to-net for one pay period.

    Each percentage deduction is rounded half up on its own, so the line
    items always add up to ``total_deductions``. Negative net pay is
    returned as-is for the caller to flag.
    """
    validate_inputs(inputs)

    hourly_pay = round_cents(as_decimal(inputs.hours_worked) * inputs.hourly_rate)
    overtime_pay = round_cents(as_decimal(inputs.overtime_hours) * inputs.overtime_rate)

    gross_pay = (
        inputs.base_pay
        + hourly_pay
        + overtime_pay
        + inputs.bonus
        + inputs.commission
        + inputs.allowances
        + inputs.other_earnings
    )

    deductions = Deductions(
        federal_tax=percentage_of(gross_pay, as_decimal(inputs.federal_tax_pct)),
        state_tax=percentage_of(gross_pay, as_decimal(inputs.state_tax_pct)),
        social_security=percentage_of(gross_pay, as_decimal(inputs.social_security_pct)),
        medicare=percentage_of(gross_pay, as_decimal(inputs.medicare_pct)),
        health_insurance=inputs.health_insurance_deduction,
        retirement_contribution=percentage_of(gross_pay, as_decimal(inputs.retirement_contribution_pct)),
        other_deductions=inputs.other_deductions,
    )

    return PayCalculation(
        base_pay=inputs.base_pay,
        hourly_pay=hourly_pay,
        overtime_pay=overtime_pay,
        bonus=inputs.bonus,
        commission=inputs.commission,
        allowances=inputs.allowances,
        other_earnings=inputs.other_earnings,
        gross_pay=gross_pay,
        deductions=deductions,
        net_pay=gross_pay - deductions.total,
    )
