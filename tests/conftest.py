from datetime import date
from decimal import Decimal

import pytest

from payrun.database import configure_engine, init_db, repository_scope
from payrun.models.compensation import CompensationRecord
from payrun.models.employee import Employee, EmployeeStatus
from payrun.models.payroll import RunConfig

# Compensation that yields gross 5000.00 / net 3367.50
STANDARD_COMPENSATION = dict(
    base_pay=500000,
    federal_tax_pct=Decimal("15"),
    state_tax_pct=Decimal("5"),
    health_insurance_deduction=10000,
    retirement_contribution_pct=Decimal("3"),
    bank_account_number="000123456789",
    bank_routing_number="021000021",
    bank_name="Chase",
)
STANDARD_NET_PAY = 336750


@pytest.fixture
def database_url(tmp_path):
    return f"sqlite:///{tmp_path / 'payroll.db'}"


@pytest.fixture
def database(database_url):
    engine = configure_engine(database_url)
    init_db()
    yield engine
    engine.dispose()


@pytest.fixture
def output_dir(tmp_path):
    return tmp_path / "output"


@pytest.fixture
def add_employee(database):
    """Create an employee, with one compensation record unless told otherwise"""

    def _add(employee_id, name=None, department="Engineering", status=EmployeeStatus.ACTIVE,
             effective_date=date(2025, 1, 1), with_compensation=True, **compensation):
        with repository_scope() as repo:
            employee = repo.save_employee(Employee(
                employee_id=employee_id,
                name=name or f"Employee {employee_id}",
                email=f"{employee_id.lower()}@example.com",
                department=department,
                status=status,
            ))
            if with_compensation:
                fields = dict(STANDARD_COMPENSATION, **compensation)
                repo.save_compensation(CompensationRecord(
                    employee_id=employee_id, effective_date=effective_date, **fields
                ))
        return employee

    return _add


@pytest.fixture
def january_config():
    return RunConfig(
        run_number="PR-2025-01-001",
        pay_period_start=date(2025, 1, 1),
        pay_period_end=date(2025, 1, 31),
        pay_date=date(2025, 1, 31),
    )
