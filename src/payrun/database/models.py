from sqlalchemy import (
    BigInteger, Column, Date, DateTime, ForeignKey, Integer, Numeric, String, Text, UniqueConstraint
)
from sqlalchemy.orm import relationship
from datetime import datetime
from .db import Base


class EmployeeDB(Base):
    """Employee directory entry"""
    __tablename__ = "employees"

    id = Column(String, primary_key=True)
    name = Column(String, nullable=False)
    email = Column(String, nullable=False)
    department = Column(String, index=True)
    status = Column(String(20), nullable=False, default="Active", index=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    compensation_records = relationship("CompensationRecordDB", back_populates="employee")

    def __repr__(self):
        return f"<Employee(id={self.id}, name={self.name})>"


class CompensationRecordDB(Base):
    """Effective-dated compensation; amounts in cents"""
    __tablename__ = "compensation_records"

    id = Column(Integer, primary_key=True, autoincrement=True)
    employee_id = Column(String, ForeignKey('employees.id'), nullable=False, index=True)
    effective_date = Column(Date, nullable=False)

    # Earnings
    base_pay = Column(BigInteger, nullable=False)
    hourly_rate = Column(BigInteger, default=0)

    # Withholding
    federal_tax_pct = Column(Numeric(7, 4), default=0)
    state_tax_pct = Column(Numeric(7, 4), default=0)
    social_security_pct = Column(Numeric(7, 4))
    medicare_pct = Column(Numeric(7, 4))
    health_insurance_deduction = Column(BigInteger, default=0)
    retirement_contribution_pct = Column(Numeric(7, 4), default=0)

    # Bank
    bank_account_number = Column(String(34))
    bank_routing_number = Column(String(20))
    bank_name = Column(String(255))

    created_at = Column(DateTime, default=datetime.utcnow)

    employee = relationship("EmployeeDB", back_populates="compensation_records")

    def __repr__(self):
        return f"<CompensationRecord(employee={self.employee_id}, effective={self.effective_date})>"


class PayrollRunDB(Base):
    """Payroll run; totals are written once with the terminal status"""
    __tablename__ = "payroll_runs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    run_number = Column(String(50), nullable=False, unique=True)

    pay_period_start = Column(Date, nullable=False)
    pay_period_end = Column(Date, nullable=False)
    pay_date = Column(Date, nullable=False, index=True)
    department = Column(String(100))

    status = Column(String(20), nullable=False, default="draft", index=True)

    total_employees = Column(Integer, default=0)
    total_gross_pay = Column(BigInteger, default=0)
    total_deductions = Column(BigInteger, default=0)
    total_net_pay = Column(BigInteger, default=0)
    processed_at = Column(DateTime)

    # Skips, errors and warnings stored as JSON
    exceptions_json = Column(Text, nullable=False, default="[]")

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    payslips = relationship("PayslipDB", back_populates="payroll_run")
    bank_exports = relationship("BankExportDB", back_populates="payroll_run")

    def __repr__(self):
        return f"<PayrollRun(id={self.id}, run_number={self.run_number}, status={self.status})>"


class PayslipDB(Base):
    """Append-only payslip; one per (run, employee)"""
    __tablename__ = "payslips"
    __table_args__ = (
        UniqueConstraint('payroll_run_id', 'employee_id', name='uq_payslip_run_employee'),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    payroll_run_id = Column(Integer, ForeignKey('payroll_runs.id'), nullable=False, index=True)
    employee_id = Column(String, ForeignKey('employees.id'), nullable=False, index=True)

    # Snapshot taken at calculation time
    employee_name = Column(String, nullable=False)
    employee_email = Column(String, nullable=False)

    # Period information
    pay_period_start = Column(Date, nullable=False)
    pay_period_end = Column(Date, nullable=False)
    pay_date = Column(Date, nullable=False, index=True)

    # Earnings
    base_pay = Column(BigInteger, nullable=False)
    hours_worked = Column(Numeric(8, 2), default=0)
    hourly_pay = Column(BigInteger, default=0)
    overtime_pay = Column(BigInteger, default=0)
    bonus = Column(BigInteger, default=0)
    commission = Column(BigInteger, default=0)
    allowances = Column(BigInteger, default=0)
    other_earnings = Column(BigInteger, default=0)
    gross_pay = Column(BigInteger, nullable=False)

    # Deductions
    federal_tax = Column(BigInteger, default=0)
    state_tax = Column(BigInteger, default=0)
    social_security = Column(BigInteger, default=0)
    medicare = Column(BigInteger, default=0)
    health_insurance = Column(BigInteger, default=0)
    retirement_contribution = Column(BigInteger, default=0)
    other_deductions = Column(BigInteger, default=0)
    total_deductions = Column(BigInteger, nullable=False)

    net_pay = Column(BigInteger, nullable=False)

    # Year-to-date tracking
    ytd_gross_pay = Column(BigInteger, default=0)
    ytd_deductions = Column(BigInteger, default=0)
    ytd_net_pay = Column(BigInteger, default=0)

    created_at = Column(DateTime, default=datetime.utcnow)

    payroll_run = relationship("PayrollRunDB", back_populates="payslips")

    def __repr__(self):
        return f"<Payslip(id={self.id}, run={self.payroll_run_id}, employee={self.employee_id})>"


class BankExportDB(Base):
    """Record of a generated bank payment file"""
    __tablename__ = "bank_exports"

    id = Column(Integer, primary_key=True, autoincrement=True)
    payroll_run_id = Column(Integer, ForeignKey('payroll_runs.id'), nullable=False, index=True)

    export_type = Column(String(10), nullable=False)  # 'ACH', 'CSV'
    file_name = Column(String(255), nullable=False)
    total_amount = Column(BigInteger, nullable=False)
    total_transactions = Column(Integer, nullable=False)
    export_date = Column(Date, nullable=False)
    status = Column(String(20), default='generated')

    skipped_json = Column(Text, nullable=False, default="[]")

    created_at = Column(DateTime, default=datetime.utcnow)

    payroll_run = relationship("PayrollRunDB", back_populates="bank_exports")

    def __repr__(self):
        return f"<BankExport(id={self.id}, type={self.export_type}, total={self.total_amount})>"
