from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Optional


@dataclass
class BankDetails:
    """Where an employee's net pay is sent"""
    account_number: str = ""
    routing_number: str = ""
    bank_name: str = ""

    @property
    def is_complete(self) -> bool:
        return bool(self.account_number.strip()) and bool(self.routing_number.strip())


@dataclass
class CompensationRecord:
    """Effective-dated salary and withholding configuration.

    Amounts are integer cents for one pay period; percentages are Decimal
    values in [0, 100]. A rate left as None falls back to the configured
    statutory default when the calculator inputs are built.
    """
    employee_id: str
    effective_date: date
    base_pay: int
    federal_tax_pct: Decimal = Decimal("0")
    state_tax_pct: Decimal = Decimal("0")
    social_security_pct: Optional[Decimal] = None
    medicare_pct: Optional[Decimal] = None
    health_insurance_deduction: int = 0
    retirement_contribution_pct: Decimal = Decimal("0")
    hourly_rate: int = 0
    bank_account_number: str = ""
    bank_routing_number: str = ""
    bank_name: str = ""
    id: Optional[int] = None

    @property
    def bank_details(self) -> BankDetails:
        return BankDetails(
            account_number=self.bank_account_number or "",
            routing_number=self.bank_routing_number or "",
            bank_name=self.bank_name or "",
        )
