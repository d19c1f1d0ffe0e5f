import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Callable, ContextManager, Dict, Iterable, List, Mapping, Optional

from payrun.config.settings import PAYROLL_MAX_WORKERS
from payrun.database.db import repository_scope as default_repository_scope
from payrun.database.repository import PayrollRepository
from payrun.exceptions import (
    CalculationError, CompensationNotFound, DuplicatePayslip, InvalidRunState, PayrollError, PersistenceError,
    RunNotFound
)
from payrun.models.employee import Employee
from payrun.models.payroll import PayInputs, PayrollRun, Payslip, RunConfig, RunException, RunStatus
from payrun.utils.formatters import as_decimal
from payrun.utils.validators import validate_earnings, validate_run_dates
from .compensation_resolver import CompensationResolver
from .payroll_calculator import calculate
from .ytd_aggregator import accumulate

logger = logging.getLogger(__name__)

RepositoryScope = Callable[[], ContextManager[PayrollRepository]]


class PayrollRunEngine:
    """Process a payroll run: draft -> processing -> completed | failed.

    Employees are calculated on a bounded thread pool, each task with its
    own repository session. A payslip that already exists is left as it
    is, so a run left in ``processing`` can be processed again without
    double counting. Any error that escapes the pool marks the run failed.
    Totals are summed from the stored payslips only after every task has
    finished, and the terminal status is written with a conditional update.
    """

    def __init__(self, repository_scope: RepositoryScope = default_repository_scope,
                 max_workers: int = PAYROLL_MAX_WORKERS):
        if max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        self.repository_scope = repository_scope
        self.max_workers = max_workers

    def start(self, config: RunConfig, employees: Iterable[Employee],
              earnings: Optional[Mapping[str, Mapping]] = None) -> PayrollRun:
        """Create a run in draft and process it"""
        validate_run_dates(config.pay_period_start, config.pay_period_end, config.pay_date)
        validate_earnings(earnings)
        with self.repository_scope() as repo:
            run = repo.create_run(PayrollRun(
                run_number=config.run_number,
                pay_period_start=config.pay_period_start,
                pay_period_end=config.pay_period_end,
                pay_date=config.pay_date,
                department=config.department,
                status=RunStatus.DRAFT,
            ))
        logger.info("Created payroll run %s (id=%s)", run.run_number, run.id)
        return self.process(run.id, employees, earnings)

    def process(self, run_id: int, employees: Iterable[Employee],
                earnings: Optional[Mapping[str, Mapping]] = None) -> PayrollRun:
        run = self._begin(run_id)
        if run.status == RunStatus.COMPLETED:
            logger.info("Payroll run %s already completed; nothing to do", run.run_number)
            return run

        exceptions: List[RunException] = []
        failure: Optional[Exception] = None
        failed_employee: Optional[str] = None

        try:
            earnings = earnings or {}
            with ThreadPoolExecutor(max_workers=self.max_workers,
                                    thread_name_prefix=f"payroll-{run_id}") as pool:
                futures = {
                    pool.submit(self._process_employee, run, employee,
                                earnings.get(employee.employee_id, {})): employee
                    for employee in employees
                }
                for future in as_completed(futures):
                    employee = futures[future]
                    try:
                        exceptions.extend(future.result())
                    except Exception as e:
                        logger.error("Payroll run %s: employee %s failed: %s",
                                     run.run_number, employee.employee_id, e)
                        if failure is None:
                            failure, failed_employee = e, employee.employee_id
        except Exception as e:
            logger.exception("Payroll run %s: processing aborted", run.run_number)
            failure = failure or e

        if failure is None:
            try:
                with self.repository_scope() as repo:
                    totals = repo.sum_payslips_for_run(run_id)
            except PersistenceError as e:
                failure = e

        if failure is not None:
            self._fail(run, exceptions, failure, failed_employee)

        exceptions.sort(key=lambda e: (e.employee_id, e.kind))
        with self.repository_scope() as repo:
            won = repo.transition_run(run_id, RunStatus.PROCESSING, RunStatus.COMPLETED,
                                      totals=totals, exceptions=exceptions)
            final = repo.get_run(run_id)
        if won:
            logger.info(
                "Payroll run %s completed: %d payslips, net %d cents, %d skipped, %d errors",
                final.run_number, final.total_employees, final.total_net_pay,
                len(final.skipped), len(final.errors),
            )
        else:
            logger.warning("Payroll run %s was finalised by another writer (status=%s)",
                           final.run_number, final.status.value)
        return final

    def _begin(self, run_id: int) -> PayrollRun:
        """Load the run and make sure it is in processing before any work"""
        with self.repository_scope() as repo:
            run = repo.get_run(run_id)
            if run is None:
                raise RunNotFound("Payroll run not found", run_id=run_id)
            if run.status == RunStatus.FAILED:
                raise InvalidRunState("Failed payroll runs cannot be reprocessed; start a new run",
                                      run_id=run_id)
            if run.status == RunStatus.DRAFT:
                if repo.transition_run(run_id, RunStatus.DRAFT, RunStatus.PROCESSING):
                    logger.info("Payroll run %s is processing", run.run_number)
                run = repo.get_run(run_id)
                if run.status == RunStatus.FAILED:
                    raise InvalidRunState("Payroll run failed while starting", run_id=run_id)
            elif run.status == RunStatus.PROCESSING:
                logger.info("Resuming payroll run %s", run.run_number)
        return run

    def _process_employee(self, run: PayrollRun, employee: Employee,
                          earnings: Dict) -> List[RunException]:
        """Calculate and store one payslip; returns skip/error/warning entries"""
        employee_id = employee.employee_id
        if not employee.is_active:
            return [RunException(employee_id, "skipped", "inactive")]

        with self.repository_scope() as repo:
            try:
                compensation = CompensationResolver(repo).resolve(employee_id, run.pay_date)
            except CompensationNotFound as e:
                logger.info("Payroll run %s: skipping %s, %s", run.run_number, employee_id, e.message)
                return [RunException(employee_id, "skipped", "no_compensation", e.message)]

            try:
                try:
                    inputs = PayInputs.from_compensation(compensation, **earnings)
                except TypeError as e:
                    raise CalculationError(f"Unsupported earnings adjustment: {e}") from None
                calculation = calculate(inputs)
            except CalculationError as e:
                logger.warning("Payroll run %s: cannot calculate pay for %s: %s",
                               run.run_number, employee_id, e.message)
                return [RunException(employee_id, "error", "calculation_error", e.message)]

            outcome = []
            if calculation.negative_net_pay:
                logger.warning("Payroll run %s: negative net pay %d for %s",
                               run.run_number, calculation.net_pay, employee_id)
                outcome.append(RunException(employee_id, "warning", "negative_net_pay",
                                            str(calculation.net_pay)))

            previous = repo.list_payslips_for_employee_in_year(
                employee_id, run.pay_date.year, up_to=run.pay_date, exclude_run_id=run.id
            )
            ytd = accumulate(previous, calculation)
            payslip = Payslip.from_calculation(run, employee, calculation, ytd,
                                               hours_worked=as_decimal(inputs.hours_worked))
            try:
                repo.insert_payslip(payslip)
            except DuplicatePayslip:
                logger.debug("Payroll run %s: payslip for %s already exists",
                             run.run_number, employee_id)
        return outcome

    def _fail(self, run: PayrollRun, exceptions: List[RunException], error: Exception,
              employee_id: Optional[str]):
        """Mark the run failed, keep stored payslips, and re-raise"""
        detail = error.message if isinstance(error, PayrollError) else repr(error)
        exceptions = exceptions + [RunException(employee_id or "", "error", "run_aborted", detail)]
        try:
            with self.repository_scope() as repo:
                repo.transition_run(run.id, RunStatus.PROCESSING, RunStatus.FAILED,
                                    exceptions=exceptions)
            logger.error("Payroll run %s failed: %s", run.run_number, detail)
        except PersistenceError:
            logger.exception("Payroll run %s could not be marked failed; it stays in processing",
                             run.run_number)
        if isinstance(error, PayrollError):
            error.run_id = run.id
            if error.employee_id is None:
                error.employee_id = employee_id
        raise error
