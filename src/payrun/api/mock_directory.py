from datetime import date
from decimal import Decimal
from typing import Dict, List
from payrun.models.compensation import CompensationRecord
from payrun.models.employee import Employee, EmployeeStatus

class MockDirectoryAPI:
    """Mock employee directory and HR compensation feed"""

    # Sample employee data
    MOCK_EMPLOYEES = [
        {
            "employee_id": "EMP-001",
            "name": "Sam Sample",
            "email": "sam.sample@example.com",
            "department": "Engineering",
            "status": "Active"
        },
        {
            "employee_id": "EMP-002",
            "name": "Maria Makinen",
            "email": "maria.makinen@example.com",
            "department": "Engineering",
            "status": "Active"
        },
        {
            "employee_id": "EMP-003",
            "name": "Jukka Virtanen",
            "email": "jukka.virtanen@example.com",
            "department": "Operations",
            "status": "Active"
        },
        {
            "employee_id": "EMP-004",
            "name": "Ada Hourly",
            "email": "ada.hourly@example.com",
            "department": "Operations",
            "status": "Active"
        },
        {
            "employee_id": "EMP-005",
            "name": "Former Worker",
            "email": "former.worker@example.com",
            "department": "Operations",
            "status": "Inactive"
        }
    ]

    # Effective-dated compensation; amounts in cents, rates in percent
    MOCK_COMPENSATION = [
        {
            "employee_id": "EMP-001",
            "effective_date": date(2024, 1, 1),
            "base_pay": 500000,
            "federal_tax_pct": "12",
            "state_tax_pct": "5",
            "health_insurance_deduction": 15000,
            "retirement_contribution_pct": "4",
            "bank_account_number": "000123456789",
            "bank_routing_number": "021000021",
            "bank_name": "Chase"
        },
        {
            "employee_id": "EMP-001",
            "effective_date": date(2025, 1, 1),
            "base_pay": 550000,
            "federal_tax_pct": "12",
            "state_tax_pct": "5",
            "health_insurance_deduction": 15000,
            "retirement_contribution_pct": "5",
            "bank_account_number": "000123456789",
            "bank_routing_number": "021000021",
            "bank_name": "Chase"
        },
        {
            "employee_id": "EMP-002",
            "effective_date": date(2024, 6, 1),
            "base_pay": 620000,
            "federal_tax_pct": "22",
            "state_tax_pct": "6.5",
            "health_insurance_deduction": 20000,
            "retirement_contribution_pct": "6",
            "bank_account_number": "987654321",
            "bank_routing_number": "026009593",
            "bank_name": "Bank of America"
        },
        {
            # No bank details on file: paid, but left out of bank exports
            "employee_id": "EMP-003",
            "effective_date": date(2024, 1, 1),
            "base_pay": 410000,
            "federal_tax_pct": "10",
            "state_tax_pct": "4",
            "health_insurance_deduction": 0,
            "retirement_contribution_pct": "0"
        },
        {
            "employee_id": "EMP-004",
            "effective_date": date(2024, 1, 1),
            "base_pay": 0,
            "hourly_rate": 2500,
            "federal_tax_pct": "10",
            "state_tax_pct": "3",
            "health_insurance_deduction": 0,
            "retirement_contribution_pct": "2",
            "bank_account_number": "55501234",
            "bank_routing_number": "011000015",
            "bank_name": "Federal Reserve Bank"
        },
        {
            "employee_id": "EMP-005",
            "effective_date": date(2023, 1, 1),
            "base_pay": 300000,
            "federal_tax_pct": "10",
            "state_tax_pct": "3",
            "bank_account_number": "11112222",
            "bank_routing_number": "021000021",
            "bank_name": "Chase"
        }
    ]

    def get_all_employees(self) -> List[Dict[str, str]]:
        """Get list of all employees"""
        return [dict(emp) for emp in self.MOCK_EMPLOYEES]

    def get_employees(self) -> List[Employee]:
        return [
            Employee(
                employee_id=emp['employee_id'],
                name=emp['name'],
                email=emp['email'],
                department=emp['department'],
                status=EmployeeStatus(emp['status'])
            )
            for emp in self.MOCK_EMPLOYEES
        ]

    def get_compensation_records(self, employee_id: str = None) -> List[CompensationRecord]:
        """Get compensation records, optionally for one employee"""
        records = []

        for comp in self.MOCK_COMPENSATION:
            if employee_id and comp['employee_id'] != employee_id:
                continue
            records.append(CompensationRecord(
                employee_id=comp['employee_id'],
                effective_date=comp['effective_date'],
                base_pay=comp['base_pay'],
                hourly_rate=comp.get('hourly_rate', 0),
                federal_tax_pct=Decimal(comp['federal_tax_pct']),
                state_tax_pct=Decimal(comp['state_tax_pct']),
                health_insurance_deduction=comp.get('health_insurance_deduction', 0),
                retirement_contribution_pct=Decimal(comp.get('retirement_contribution_pct', '0')),
                bank_account_number=comp.get('bank_account_number', ''),
                bank_routing_number=comp.get('bank_routing_number', ''),
                bank_name=comp.get('bank_name', '')
            ))

        return records

    def seed(self, repo) -> Dict[str, int]:
        """Write the sample directory into a repository"""
        employees = self.get_employees()
        for employee in employees:
            repo.save_employee(employee)

        # Employees that already have compensation on file are left alone
        seeded = {e.employee_id for e in employees if repo.list_compensation_for_employee(e.employee_id)}
        records = [r for r in self.get_compensation_records() if r.employee_id not in seeded]
        for record in records:
            repo.save_compensation(record)

        return {"employees": len(employees), "compensation_records": len(records)}
