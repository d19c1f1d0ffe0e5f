from decimal import Decimal
from datetime import date


def as_decimal(value) -> Decimal:
    """Decimal from int, str, float or Decimal without binary float noise"""
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def cents_to_decimal(cents: int) -> Decimal:
    """Convert integer cents to a two-place Decimal"""
    return (Decimal(cents) / Decimal(100)).quantize(Decimal("0.01"))


def format_amount(cents: int) -> str:
    """Plain decimal string with exactly two fraction digits, e.g. 3367.50"""
    sign = "-" if cents < 0 else ""
    whole, frac = divmod(abs(cents), 100)
    return f"{sign}{whole}.{frac:02d}"


def format_currency(cents: int, symbol: str = "$") -> str:
    """Format currency amount"""
    return f"{symbol}{cents_to_decimal(cents):,.2f}"


def format_date_iso(d: date) -> str:
    return d.strftime("%Y-%m-%d")


def format_date_ach(d: date) -> str:
    """YYMMDD as used in fixed-width bank files"""
    return d.strftime("%y%m%d")


def mask_account_number(account_number: str) -> str:
    """Show only the last four digits"""
    if not account_number:
        return "N/A"
    return f"****{account_number[-4:]}"
