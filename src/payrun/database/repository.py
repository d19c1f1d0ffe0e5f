import functools
import json
import logging
from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import and_, extract, func, update
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session

from payrun.exceptions import DuplicatePayslip, DuplicateRunNumber, PersistenceError
from payrun.models.compensation import CompensationRecord
from payrun.models.employee import Employee, EmployeeStatus
from payrun.models.export import BankExportBatch, ExportType
from payrun.models.payroll import PayrollRun, Payslip, RunException, RunStatus, RunTotals
from .models import BankExportDB, CompensationRecordDB, EmployeeDB, PayrollRunDB, PayslipDB

logger = logging.getLogger(__name__)


def _store_operation(method):
    """Translate SQLAlchemy failures into PersistenceError"""

    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
        try:
            return method(self, *args, **kwargs)
        except OperationalError as e:
            self.db.rollback()
            raise PersistenceError(f"Store unavailable during {method.__name__}: {e.orig}",
                                   transient=True) from e
        except SQLAlchemyError as e:
            self.db.rollback()
            raise PersistenceError(f"Store error during {method.__name__}: {e}",
                                   transient=False) from e

    return wrapper


class PayrollRepository:
    """Repository for payroll data operations"""

    def __init__(self, db_session: Session):
        self.db = db_session

    # ========== Employee Operations ==========

    @_store_operation
    def save_employee(self, employee: Employee) -> Employee:
        """Save or update employee"""
        db_employee = self.db.query(EmployeeDB).filter_by(id=employee.employee_id).first()
        if not db_employee:
            db_employee = EmployeeDB(id=employee.employee_id)
            self.db.add(db_employee)
        db_employee.name = employee.name
        db_employee.email = employee.email
        db_employee.department = employee.department
        db_employee.status = EmployeeStatus(employee.status).value
        self.db.commit()
        return self._to_employee(db_employee)

    @_store_operation
    def list_employees(self, department: Optional[str] = None) -> List[Employee]:
        query = self.db.query(EmployeeDB)
        if department:
            query = query.filter_by(department=department)
        return [self._to_employee(e) for e in query.order_by(EmployeeDB.id).all()]

    @_store_operation
    def list_active_employees(self, department: Optional[str] = None) -> List[Employee]:
        query = self.db.query(EmployeeDB).filter_by(status=EmployeeStatus.ACTIVE.value)
        if department:
            query = query.filter_by(department=department)
        return [self._to_employee(e) for e in query.order_by(EmployeeDB.id).all()]

    # ========== Compensation Operations ==========

    @_store_operation
    def save_compensation(self, record: CompensationRecord) -> CompensationRecord:
        db_record = CompensationRecordDB(
            employee_id=record.employee_id,
            effective_date=record.effective_date,
            base_pay=record.base_pay,
            hourly_rate=record.hourly_rate,
            federal_tax_pct=record.federal_tax_pct,
            state_tax_pct=record.state_tax_pct,
            social_security_pct=record.social_security_pct,
            medicare_pct=record.medicare_pct,
            health_insurance_deduction=record.health_insurance_deduction,
            retirement_contribution_pct=record.retirement_contribution_pct,
            bank_account_number=record.bank_account_number,
            bank_routing_number=record.bank_routing_number,
            bank_name=record.bank_name,
        )
        self.db.add(db_record)
        self.db.commit()
        return self._to_compensation(db_record)

    @_store_operation
    def list_compensation_for_employee(self, employee_id: str) -> List[CompensationRecord]:
        records = self.db.query(CompensationRecordDB).filter_by(employee_id=employee_id).order_by(
            CompensationRecordDB.effective_date, CompensationRecordDB.id
        ).all()
        return [self._to_compensation(r) for r in records]

    # ========== Payroll Run Operations ==========

    @_store_operation
    def create_run(self, run: PayrollRun) -> PayrollRun:
        """Insert a new run; the unique run_number makes this the duplicate check"""
        db_run = PayrollRunDB(
            run_number=run.run_number,
            pay_period_start=run.pay_period_start,
            pay_period_end=run.pay_period_end,
            pay_date=run.pay_date,
            department=run.department,
            status=RunStatus(run.status).value,
            exceptions_json="[]",
        )
        self.db.add(db_run)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise DuplicateRunNumber(run.run_number)
        return self._to_run(db_run)

    @_store_operation
    def get_run(self, run_id: int) -> Optional[PayrollRun]:
        db_run = self.db.get(PayrollRunDB, run_id)
        if db_run is None:
            return None
        self.db.refresh(db_run)
        return self._to_run(db_run)

    @_store_operation
    def get_run_by_number(self, run_number: str) -> Optional[PayrollRun]:
        db_run = self.db.query(PayrollRunDB).filter_by(run_number=run_number).first()
        return self._to_run(db_run) if db_run else None

    @_store_operation
    def list_runs(self, status: Optional[RunStatus] = None) -> List[PayrollRun]:
        query = self.db.query(PayrollRunDB)
        if status:
            query = query.filter_by(status=RunStatus(status).value)
        return [self._to_run(r) for r in query.order_by(PayrollRunDB.id.desc()).all()]

    @_store_operation
    def count_runs(self) -> int:
        return self.db.query(func.count(PayrollRunDB.id)).scalar() or 0

    @_store_operation
    def has_run_in_status(self, status: RunStatus, exclude_run_id: Optional[int] = None) -> bool:
        query = self.db.query(PayrollRunDB.id).filter_by(status=RunStatus(status).value)
        if exclude_run_id is not None:
            query = query.filter(PayrollRunDB.id != exclude_run_id)
        return query.first() is not None

    @_store_operation
    def transition_run(self, run_id: int, from_status: RunStatus, to_status: RunStatus,
                       totals: Optional[RunTotals] = None,
                       exceptions: Optional[List[RunException]] = None) -> bool:
        """Conditionally move a run between states.

        The UPDATE only matches while the run is still in ``from_status``, so
        of several writers racing for the same transition exactly one wins.
        Totals, processed_at and exceptions are written in the same statement.
        """
        values = {"status": RunStatus(to_status).value, "updated_at": datetime.utcnow()}
        if totals is not None:
            values.update(
                total_employees=totals.total_employees,
                total_gross_pay=totals.total_gross_pay,
                total_deductions=totals.total_deductions,
                total_net_pay=totals.total_net_pay,
            )
        if RunStatus(to_status).is_terminal:
            values["processed_at"] = datetime.utcnow()
        if exceptions is not None:
            values["exceptions_json"] = json.dumps([e.to_dict() for e in exceptions])

        result = self.db.execute(
            update(PayrollRunDB)
            .where(and_(PayrollRunDB.id == run_id,
                        PayrollRunDB.status == RunStatus(from_status).value))
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        self.db.commit()
        return result.rowcount == 1

    # ========== Payslip Operations ==========

    @_store_operation
    def insert_payslip(self, payslip: Payslip) -> Payslip:
        """Insert a payslip; at most one exists per (run, employee).

        Raises DuplicatePayslip when the unique constraint rejects the row.
        The existing payslip is left untouched.
        """
        db_payslip = PayslipDB(
            payroll_run_id=payslip.payroll_run_id,
            employee_id=payslip.employee_id,
            employee_name=payslip.employee_name,
            employee_email=payslip.employee_email,
            pay_period_start=payslip.pay_period_start,
            pay_period_end=payslip.pay_period_end,
            pay_date=payslip.pay_date,
            base_pay=payslip.base_pay,
            hours_worked=payslip.hours_worked,
            hourly_pay=payslip.hourly_pay,
            overtime_pay=payslip.overtime_pay,
            bonus=payslip.bonus,
            commission=payslip.commission,
            allowances=payslip.allowances,
            other_earnings=payslip.other_earnings,
            gross_pay=payslip.gross_pay,
            federal_tax=payslip.federal_tax,
            state_tax=payslip.state_tax,
            social_security=payslip.social_security,
            medicare=payslip.medicare,
            health_insurance=payslip.health_insurance,
            retirement_contribution=payslip.retirement_contribution,
            other_deductions=payslip.other_deductions,
            total_deductions=payslip.total_deductions,
            net_pay=payslip.net_pay,
            ytd_gross_pay=payslip.ytd_gross_pay,
            ytd_deductions=payslip.ytd_deductions,
            ytd_net_pay=payslip.ytd_net_pay,
        )
        self.db.add(db_payslip)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise DuplicatePayslip("Payslip already exists", run_id=payslip.payroll_run_id,
                                   employee_id=payslip.employee_id) from None
        payslip.id = db_payslip.id
        payslip.created_at = db_payslip.created_at
        return payslip

    @_store_operation
    def get_payslip(self, payslip_id: int) -> Optional[Payslip]:
        db_payslip = self.db.get(PayslipDB, payslip_id)
        return self._to_payslip(db_payslip) if db_payslip else None

    @_store_operation
    def list_payslips_for_run(self, run_id: int) -> List[Payslip]:
        payslips = self.db.query(PayslipDB).filter_by(payroll_run_id=run_id).order_by(
            PayslipDB.employee_id
        ).all()
        return [self._to_payslip(p) for p in payslips]

    @_store_operation
    def list_payslips_for_employee_in_year(self, employee_id: str, year: int,
                                           up_to: Optional[date] = None,
                                           exclude_run_id: Optional[int] = None,
                                           completed_only: bool = True) -> List[Payslip]:
        """Payslips paid to an employee within a calendar year"""
        query = self.db.query(PayslipDB).join(PayrollRunDB).filter(
            and_(
                PayslipDB.employee_id == employee_id,
                extract('year', PayslipDB.pay_date) == year,
            )
        )
        if up_to is not None:
            query = query.filter(PayslipDB.pay_date <= up_to)
        if exclude_run_id is not None:
            query = query.filter(PayslipDB.payroll_run_id != exclude_run_id)
        if completed_only:
            query = query.filter(PayrollRunDB.status == RunStatus.COMPLETED.value)
        return [self._to_payslip(p) for p in query.all()]

    @_store_operation
    def sum_payslips_for_run(self, run_id: int) -> RunTotals:
        count, gross, deductions, net = self.db.query(
            func.count(PayslipDB.id),
            func.coalesce(func.sum(PayslipDB.gross_pay), 0),
            func.coalesce(func.sum(PayslipDB.total_deductions), 0),
            func.coalesce(func.sum(PayslipDB.net_pay), 0),
        ).filter(PayslipDB.payroll_run_id == run_id).one()
        return RunTotals(
            total_employees=int(count),
            total_gross_pay=int(gross),
            total_deductions=int(deductions),
            total_net_pay=int(net),
        )

    # ========== Bank Export Operations ==========

    @_store_operation
    def save_bank_export(self, batch: BankExportBatch) -> BankExportBatch:
        db_export = BankExportDB(
            payroll_run_id=batch.payroll_run_id,
            export_type=ExportType(batch.export_type).value,
            file_name=batch.file_name,
            total_amount=batch.total_amount,
            total_transactions=batch.total_transactions,
            export_date=batch.export_date,
            status=batch.status,
            skipped_json=json.dumps(batch.skipped_for_export),
        )
        self.db.add(db_export)
        self.db.commit()
        batch.id = db_export.id
        return batch

    @_store_operation
    def list_bank_exports(self, run_id: int) -> List[BankExportBatch]:
        exports = self.db.query(BankExportDB).filter_by(payroll_run_id=run_id).order_by(
            BankExportDB.id
        ).all()
        return [self._to_bank_export(e) for e in exports]

    # ========== Helper Methods ==========

    def _to_employee(self, db_employee: EmployeeDB) -> Employee:
        return Employee(
            employee_id=db_employee.id,
            name=db_employee.name,
            email=db_employee.email,
            department=db_employee.department,
            status=EmployeeStatus(db_employee.status),
        )

    def _to_compensation(self, r: CompensationRecordDB) -> CompensationRecord:
        return CompensationRecord(
            id=r.id,
            employee_id=r.employee_id,
            effective_date=r.effective_date,
            base_pay=int(r.base_pay),
            hourly_rate=int(r.hourly_rate or 0),
            federal_tax_pct=self._pct(r.federal_tax_pct),
            state_tax_pct=self._pct(r.state_tax_pct),
            social_security_pct=None if r.social_security_pct is None else self._pct(r.social_security_pct),
            medicare_pct=None if r.medicare_pct is None else self._pct(r.medicare_pct),
            health_insurance_deduction=int(r.health_insurance_deduction or 0),
            retirement_contribution_pct=self._pct(r.retirement_contribution_pct),
            bank_account_number=r.bank_account_number or "",
            bank_routing_number=r.bank_routing_number or "",
            bank_name=r.bank_name or "",
        )

    def _to_run(self, r: PayrollRunDB) -> PayrollRun:
        return PayrollRun(
            id=r.id,
            run_number=r.run_number,
            pay_period_start=r.pay_period_start,
            pay_period_end=r.pay_period_end,
            pay_date=r.pay_date,
            department=r.department,
            status=RunStatus(r.status),
            total_employees=r.total_employees or 0,
            total_gross_pay=int(r.total_gross_pay or 0),
            total_deductions=int(r.total_deductions or 0),
            total_net_pay=int(r.total_net_pay or 0),
            processed_at=r.processed_at,
            exceptions=[RunException(**e) for e in json.loads(r.exceptions_json or "[]")],
        )

    def _to_payslip(self, p: PayslipDB) -> Payslip:
        return Payslip(
            id=p.id,
            payroll_run_id=p.payroll_run_id,
            employee_id=p.employee_id,
            employee_name=p.employee_name,
            employee_email=p.employee_email,
            pay_period_start=p.pay_period_start,
            pay_period_end=p.pay_period_end,
            pay_date=p.pay_date,
            base_pay=int(p.base_pay),
            hours_worked=Decimal(p.hours_worked or 0),
            hourly_pay=int(p.hourly_pay or 0),
            overtime_pay=int(p.overtime_pay or 0),
            bonus=int(p.bonus or 0),
            commission=int(p.commission or 0),
            allowances=int(p.allowances or 0),
            other_earnings=int(p.other_earnings or 0),
            gross_pay=int(p.gross_pay),
            federal_tax=int(p.federal_tax or 0),
            state_tax=int(p.state_tax or 0),
            social_security=int(p.social_security or 0),
            medicare=int(p.medicare or 0),
            health_insurance=int(p.health_insurance or 0),
            retirement_contribution=int(p.retirement_contribution or 0),
            other_deductions=int(p.other_deductions or 0),
            total_deductions=int(p.total_deductions),
            net_pay=int(p.net_pay),
            ytd_gross_pay=int(p.ytd_gross_pay or 0),
            ytd_deductions=int(p.ytd_deductions or 0),
            ytd_net_pay=int(p.ytd_net_pay or 0),
            created_at=p.created_at,
        )

    def _to_bank_export(self, e: BankExportDB) -> BankExportBatch:
        return BankExportBatch(
            id=e.id,
            payroll_run_id=e.payroll_run_id,
            export_type=ExportType(e.export_type),
            file_name=e.file_name,
            total_amount=int(e.total_amount),
            total_transactions=e.total_transactions,
            export_date=e.export_date,
            status=e.status,
            skipped_for_export=json.loads(e.skipped_json or "[]"),
        )

    @staticmethod
    def _pct(value) -> Decimal:
        if value is None:
            return Decimal("0")
        return Decimal(str(value)).normalize()
