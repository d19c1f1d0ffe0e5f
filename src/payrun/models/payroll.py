from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from payrun.config.settings import DEFAULT_MEDICARE_PCT, DEFAULT_SOCIAL_SECURITY_PCT
from payrun.models.compensation import CompensationRecord
from payrun.utils.formatters import as_decimal


class RunStatus(str, Enum):
    DRAFT = "draft"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (RunStatus.COMPLETED, RunStatus.FAILED)


@dataclass
class PayInputs:
    """Calculator inputs for one employee and one pay period (cents / percent)"""
    base_pay: int = 0
    hours_worked: Decimal = Decimal("0")
    hourly_rate: int = 0
    overtime_hours: Decimal = Decimal("0")
    overtime_rate: int = 0
    bonus: int = 0
    commission: int = 0
    allowances: int = 0
    other_earnings: int = 0
    federal_tax_pct: Decimal = Decimal("0")
    state_tax_pct: Decimal = Decimal("0")
    social_security_pct: Decimal = DEFAULT_SOCIAL_SECURITY_PCT
    medicare_pct: Decimal = DEFAULT_MEDICARE_PCT
    health_insurance_deduction: int = 0
    retirement_contribution_pct: Decimal = Decimal("0")
    other_deductions: int = 0

    @classmethod
    def from_compensation(cls, record: CompensationRecord, **earnings) -> "PayInputs":
        """Build inputs from a compensation record; extra earnings are keyword overrides"""
        social_security = record.social_security_pct
        medicare = record.medicare_pct
        return cls(
            base_pay=record.base_pay,
            hourly_rate=record.hourly_rate or 0,
            federal_tax_pct=as_decimal(record.federal_tax_pct or 0),
            state_tax_pct=as_decimal(record.state_tax_pct or 0),
            social_security_pct=DEFAULT_SOCIAL_SECURITY_PCT if social_security is None else as_decimal(social_security),
            medicare_pct=DEFAULT_MEDICARE_PCT if medicare is None else as_decimal(medicare),
            health_insurance_deduction=record.health_insurance_deduction or 0,
            retirement_contribution_pct=as_decimal(record.retirement_contribution_pct or 0),
            **earnings,
        )


@dataclass(frozen=True)
class Deductions:
    """Itemized deductions in cents"""
    federal_tax: int
    state_tax: int
    social_security: int
    medicare: int
    health_insurance: int
    retirement_contribution: int
    other_deductions: int

    @property
    def total(self) -> int:
        return (self.federal_tax + self.state_tax + self.social_security + self.medicare
                + self.health_insurance + self.retirement_contribution + self.other_deductions)


@dataclass(frozen=True)
class PayCalculation:
    """Gross-to-net result for one employee"""
    base_pay: int
    hourly_pay: int
    overtime_pay: int
    bonus: int
    commission: int
    allowances: int
    other_earnings: int
    gross_pay: int
    deductions: Deductions
    net_pay: int

    @property
    def total_deductions(self) -> int:
        return self.deductions.total

    @property
    def negative_net_pay(self) -> bool:
        return self.net_pay < 0


@dataclass(frozen=True)
class YTDTotals:
    gross_pay: int = 0
    deductions: int = 0
    net_pay: int = 0


@dataclass
class RunConfig:
    """Parameters for starting a payroll run"""
    run_number: str
    pay_period_start: date
    pay_period_end: date
    pay_date: date
    department: Optional[str] = None


@dataclass
class RunException:
    """A per-employee outcome that did not produce a normal payslip"""
    employee_id: str
    kind: str  # 'skipped', 'error', 'warning'
    reason: str
    detail: str = ""

    def to_dict(self) -> dict:
        return {
            "employee_id": self.employee_id,
            "kind": self.kind,
            "reason": self.reason,
            "detail": self.detail,
        }


@dataclass
class PayrollRun:
    """One execution producing payslips for a pay period"""
    run_number: str
    pay_period_start: date
    pay_period_end: date
    pay_date: date
    status: RunStatus = RunStatus.DRAFT
    department: Optional[str] = None
    total_employees: int = 0
    total_gross_pay: int = 0
    total_deductions: int = 0
    total_net_pay: int = 0
    processed_at: Optional[datetime] = None
    exceptions: List[RunException] = field(default_factory=list)
    id: Optional[int] = None

    @property
    def skipped(self) -> List[RunException]:
        return [e for e in self.exceptions if e.kind == "skipped"]

    @property
    def errors(self) -> List[RunException]:
        return [e for e in self.exceptions if e.kind == "error"]

    @property
    def warnings(self) -> List[RunException]:
        return [e for e in self.exceptions if e.kind == "warning"]


@dataclass
class RunTotals:
    total_employees: int = 0
    total_gross_pay: int = 0
    total_deductions: int = 0
    total_net_pay: int = 0


@dataclass
class Payslip:
    """Immutable record of one employee's pay in one run"""
    payroll_run_id: int
    employee_id: str
    employee_name: str
    employee_email: str
    pay_period_start: date
    pay_period_end: date
    pay_date: date
    base_pay: int
    gross_pay: int
    federal_tax: int
    state_tax: int
    social_security: int
    medicare: int
    health_insurance: int
    retirement_contribution: int
    total_deductions: int
    net_pay: int
    ytd_gross_pay: int
    ytd_deductions: int
    ytd_net_pay: int
    hours_worked: Decimal = Decimal("0")
    hourly_pay: int = 0
    overtime_pay: int = 0
    bonus: int = 0
    commission: int = 0
    allowances: int = 0
    other_earnings: int = 0
    other_deductions: int = 0
    id: Optional[int] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_calculation(cls, run: PayrollRun, employee, calculation: PayCalculation,
                         ytd: YTDTotals, hours_worked: Decimal = Decimal("0")) -> "Payslip":
        d = calculation.deductions
        return cls(
            payroll_run_id=run.id,
            employee_id=employee.employee_id,
            employee_name=employee.name,
            employee_email=employee.email,
            pay_period_start=run.pay_period_start,
            pay_period_end=run.pay_period_end,
            pay_date=run.pay_date,
            base_pay=calculation.base_pay,
            hours_worked=hours_worked,
            hourly_pay=calculation.hourly_pay,
            overtime_pay=calculation.overtime_pay,
            bonus=calculation.bonus,
            commission=calculation.commission,
            allowances=calculation.allowances,
            other_earnings=calculation.other_earnings,
            gross_pay=calculation.gross_pay,
            federal_tax=d.federal_tax,
            state_tax=d.state_tax,
            social_security=d.social_security,
            medicare=d.medicare,
            health_insurance=d.health_insurance,
            retirement_contribution=d.retirement_contribution,
            other_deductions=d.other_deductions,
            total_deductions=calculation.total_deductions,
            net_pay=calculation.net_pay,
            ytd_gross_pay=ytd.gross_pay,
            ytd_deductions=ytd.deductions,
            ytd_net_pay=ytd.net_pay,
        )
