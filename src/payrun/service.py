import logging
from dataclasses import dataclass, field
from datetime import date
from pathlib import Path
from typing import Dict, List, Mapping, Optional

from payrun.config.settings import ALLOW_CONCURRENT_RUNS, OUTPUT_DIR
from payrun.database.db import repository_scope as default_repository_scope
from payrun.exceptions import (
    CalculationError, CompensationNotFound, NotFoundError, RunNotFound, ValidationError
)
from payrun.models.compensation import BankDetails
from payrun.models.export import BankExportBatch, ExportFile, ExportType
from payrun.models.payroll import PayInputs, PayrollRun, Payslip, RunConfig, RunException, RunStatus
from payrun.processors import (
    AnnualSummaryGenerator,
    BankExportGenerator,
    CompensationResolver,
    PayrollRunEngine,
    PayslipGenerator,
    RunRegisterGenerator,
    calculate,
)
from payrun.utils.validators import validate_earnings

logger = logging.getLogger(__name__)


@dataclass
class PayrollPreview:
    """Dry-run totals over the compensation in effect on a pay date"""
    pay_date: date
    total_employees: int = 0
    total_gross_pay: int = 0
    total_deductions: int = 0
    total_net_pay: int = 0
    exceptions: List[RunException] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "pay_date": self.pay_date.isoformat(),
            "total_employees": self.total_employees,
            "total_gross_pay": self.total_gross_pay,
            "total_deductions": self.total_deductions,
            "total_net_pay": self.total_net_pay,
            "exceptions": [e.to_dict() for e in self.exceptions],
        }


class PayrollService:
    """Entry point for callers: runs, exports, previews and reports"""

    def __init__(self, repository_scope=default_repository_scope, engine: Optional[PayrollRunEngine] = None,
                 output_dir: Optional[Path] = None, allow_concurrent_runs: bool = ALLOW_CONCURRENT_RUNS):
        self.repository_scope = repository_scope
        self.engine = engine or PayrollRunEngine(repository_scope=repository_scope)
        self.output_dir = Path(output_dir or OUTPUT_DIR)
        self.allow_concurrent_runs = allow_concurrent_runs

    # ========== Payroll Runs ==========

    def next_run_number(self, today: Optional[date] = None) -> str:
        """PR-YYYY-MM-NNN, NNN being one more than the number of runs so far"""
        today = today or date.today()
        with self.repository_scope() as repo:
            count = repo.count_runs()
        return f"PR-{today:%Y}-{today:%m}-{count + 1:03d}"

    def start_payroll_run(self, pay_period_start: date, pay_period_end: date, pay_date: date,
                          run_number: Optional[str] = None, department: Optional[str] = None,
                          earnings: Optional[Mapping[str, Mapping]] = None) -> PayrollRun:
        """Create a run for every active employee (optionally one department) and process it"""
        validate_earnings(earnings)
        with self.repository_scope() as repo:
            if not self.allow_concurrent_runs and repo.has_run_in_status(RunStatus.PROCESSING):
                raise ValidationError("Another payroll run is still processing")
            employees = repo.list_active_employees(department)

        config = RunConfig(
            run_number=run_number or self.next_run_number(),
            pay_period_start=pay_period_start,
            pay_period_end=pay_period_end,
            pay_date=pay_date,
            department=department,
        )
        logger.info("Starting payroll run %s for %d employees", config.run_number, len(employees))
        return self.engine.start(config, employees, earnings)

    def resume_payroll_run(self, run_id: int, earnings: Optional[Mapping[str, Mapping]] = None) -> PayrollRun:
        """Process a run left in draft or processing; completed runs are returned as they are"""
        validate_earnings(earnings)
        with self.repository_scope() as repo:
            run = self._get_run(repo, run_id)
            employees = repo.list_active_employees(run.department)
        logger.info("Resuming payroll run %s", run.run_number)
        return self.engine.process(run.id, employees, earnings)

    def get_run(self, run_id: int) -> PayrollRun:
        with self.repository_scope() as repo:
            return self._get_run(repo, run_id)

    def list_runs(self, status: Optional[str] = None) -> List[PayrollRun]:
        with self.repository_scope() as repo:
            return repo.list_runs(RunStatus(status) if status else None)

    def list_payslips(self, run_id: int) -> List[Payslip]:
        with self.repository_scope() as repo:
            self._get_run(repo, run_id)
            return repo.list_payslips_for_run(run_id)

    def list_employees(self, department: Optional[str] = None):
        with self.repository_scope() as repo:
            return repo.list_employees(department)

    # ========== Bank Export ==========

    def generate_bank_export(self, run_id: int, export_type, created_on: Optional[date] = None) -> ExportFile:
        """Build the payment file for a completed run, record the batch and write it to disk"""
        export_type = ExportType.parse(export_type)
        created_on = created_on or date.today()

        with self.repository_scope() as repo:
            run = self._get_run(repo, run_id)
            payslips = repo.list_payslips_for_run(run_id)
            bank_details = self._bank_details(repo, payslips, run.pay_date)

            export = BankExportGenerator().generate(run, payslips, bank_details, export_type,
                                                    created_on=created_on)

            batch = repo.save_bank_export(BankExportBatch(
                payroll_run_id=run.id,
                export_type=export.export_type,
                file_name=export.file_name,
                total_amount=export.total_amount,
                total_transactions=export.total_transactions,
                export_date=created_on,
                skipped_for_export=export.skipped_for_export,
            ))
        export.batch_id = batch.id

        export_dir = self.output_dir / "bank_exports"
        export_dir.mkdir(parents=True, exist_ok=True)
        (export_dir / export.file_name).write_bytes(export.content)
        logger.info("Bank export batch %s written to %s", batch.id, export_dir / export.file_name)
        return export

    @staticmethod
    def _bank_details(repo, payslips: List[Payslip], as_of: date) -> Dict[str, BankDetails]:
        resolver = CompensationResolver(repo)
        details = {}
        for payslip in payslips:
            try:
                details[payslip.employee_id] = resolver.resolve(payslip.employee_id, as_of).bank_details
            except CompensationNotFound:
                continue
        return details

    # ========== Preview ==========

    def preview_payroll(self, pay_date: Optional[date] = None,
                        department: Optional[str] = None) -> PayrollPreview:
        """Gross-to-net totals for the current compensation, nothing is stored"""
        preview = PayrollPreview(pay_date=pay_date or date.today())
        with self.repository_scope() as repo:
            resolver = CompensationResolver(repo)
            for employee in repo.list_active_employees(department):
                try:
                    compensation = resolver.resolve(employee.employee_id, preview.pay_date)
                    calculation = calculate(PayInputs.from_compensation(compensation))
                except CompensationNotFound as e:
                    preview.exceptions.append(
                        RunException(employee.employee_id, "skipped", "no_compensation", e.message))
                    continue
                except CalculationError as e:
                    preview.exceptions.append(
                        RunException(employee.employee_id, "error", "calculation_error", e.message))
                    continue
                preview.total_employees += 1
                preview.total_gross_pay += calculation.gross_pay
                preview.total_deductions += calculation.total_deductions
                preview.total_net_pay += calculation.net_pay
        return preview

    # ========== Reports ==========

    def generate_register(self, run_id: int) -> str:
        with self.repository_scope() as repo:
            run = self._get_run(repo, run_id)
            payslips = repo.list_payslips_for_run(run_id)
        return RunRegisterGenerator(self.output_dir).generate(run, payslips)

    def generate_payslip_workbook(self, payslip_id: int) -> str:
        with self.repository_scope() as repo:
            payslip = repo.get_payslip(payslip_id)
            if payslip is None:
                raise NotFoundError("Payslip not found", payslip_id=payslip_id)
            run = repo.get_run(payslip.payroll_run_id)
        return PayslipGenerator(self.output_dir).generate(payslip, run.run_number)

    def generate_annual_summary(self, year: int) -> str:
        with self.repository_scope() as repo:
            return AnnualSummaryGenerator(repo, self.output_dir).generate_all_workers_annual_summary(year)

    @staticmethod
    def _get_run(repo, run_id: int) -> PayrollRun:
        run = repo.get_run(run_id)
        if run is None:
            raise RunNotFound("Payroll run not found", run_id=run_id)
        return run
