from datetime import date
from decimal import Decimal
from typing import Mapping

from payrun.exceptions import ValidationError


def validate_percentage(rate: Decimal) -> bool:
    """Validate rate is within 0-100"""
    return Decimal('0') <= rate <= Decimal('100')


def validate_routing_number(routing_number: str) -> bool:
    """ABA routing number: nine digits with a valid 3-7-1 checksum"""
    if not routing_number or len(routing_number) != 9 or not routing_number.isdigit():
        return False
    digits = [int(c) for c in routing_number]
    checksum = sum(w * d for w, d in zip([3, 7, 1] * 3, digits))
    return checksum % 10 == 0


def validate_run_dates(pay_period_start: date, pay_period_end: date, pay_date: date):
    """Raise ValidationError unless start <= end <= pay date"""
    if pay_period_start > pay_period_end:
        raise ValidationError(
            f"Pay period start {pay_period_start} is after pay period end {pay_period_end}"
        )
    if pay_period_end > pay_date:
        raise ValidationError(
            f"Pay date {pay_date} is before pay period end {pay_period_end}"
        )


def validate_earnings(earnings):
    """Raise ValidationError unless earnings maps employee ids to mappings of adjustments"""
    if earnings is None:
        return
    if not isinstance(earnings, Mapping):
        raise ValidationError(f"earnings must map employee ids to adjustments, got {type(earnings).__name__}")
    for employee_id, adjustments in earnings.items():
        if not isinstance(adjustments, Mapping):
            raise ValidationError(
                f"earnings for {employee_id} must be a mapping, got {type(adjustments).__name__}",
                employee_id=employee_id,
            )
