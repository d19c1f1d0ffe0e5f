from contextlib import contextmanager
from datetime import date

import pytest

from payrun.database import repository_scope
from payrun.exceptions import DuplicateRunNumber, InvalidRunState, PersistenceError, RunNotFound, ValidationError
from payrun.models.employee import EmployeeStatus
from payrun.models.payroll import PayrollRun, RunConfig, RunStatus
from payrun.processors.payroll_run_engine import PayrollRunEngine

from conftest import STANDARD_NET_PAY


def _payslips(run_id):
    with repository_scope() as repo:
        return repo.list_payslips_for_run(run_id)


def test_scenario_c_missing_compensation_is_skipped(add_employee, january_config):
    employees = [
        add_employee("E1"),
        add_employee("E2"),
        add_employee("E3", with_compensation=False),
    ]

    run = PayrollRunEngine().start(january_config, employees)

    assert run.status == RunStatus.COMPLETED
    assert run.total_employees == 2
    assert run.total_net_pay == 2 * STANDARD_NET_PAY
    assert run.total_gross_pay == 2 * 500000
    assert run.processed_at is not None
    assert [(e.employee_id, e.reason) for e in run.skipped] == [("E3", "no_compensation")]
    assert [p.employee_id for p in _payslips(run.id)] == ["E1", "E2"]


def test_run_totals_equal_sum_of_payslips(add_employee, january_config):
    employees = [add_employee(f"E{i}", base_pay=400000 + i * 1111) for i in range(1, 8)]

    run = PayrollRunEngine(max_workers=4).start(january_config, employees)
    payslips = _payslips(run.id)

    assert len(payslips) == 7
    assert run.total_gross_pay == sum(p.gross_pay for p in payslips)
    assert run.total_deductions == sum(p.total_deductions for p in payslips)
    assert run.total_net_pay == sum(p.net_pay for p in payslips)
    for p in payslips:
        assert p.net_pay == p.gross_pay - p.total_deductions


def test_inactive_employee_is_skipped(add_employee, january_config):
    employees = [add_employee("E1"), add_employee("E2", status=EmployeeStatus.INACTIVE)]

    run = PayrollRunEngine().start(january_config, employees)

    assert run.total_employees == 1
    assert [(e.employee_id, e.reason) for e in run.skipped] == [("E2", "inactive")]


def test_negative_net_pay_is_a_warning(add_employee, january_config):
    employees = [add_employee("E1", base_pay=10000, health_insurance_deduction=20000)]

    run = PayrollRunEngine().start(january_config, employees)

    assert run.status == RunStatus.COMPLETED
    assert run.total_employees == 1
    assert run.total_net_pay < 0
    assert [e.reason for e in run.warnings] == ["negative_net_pay"]


def test_calculation_error_is_recorded_per_employee(add_employee, january_config):
    employees = [add_employee("E1"), add_employee("E2")]

    run = PayrollRunEngine().start(january_config, employees, earnings={"E2": {"bonus": -100}})

    assert run.status == RunStatus.COMPLETED
    assert run.total_employees == 1
    assert [(e.employee_id, e.reason) for e in run.errors] == [("E2", "calculation_error")]


def test_earnings_adjustments_are_added_to_gross(add_employee, january_config):
    employees = [add_employee("E1", hourly_rate=2500)]

    run = PayrollRunEngine().start(january_config, employees,
                                   earnings={"E1": {"bonus": 50000, "hours_worked": 8}})
    payslip = _payslips(run.id)[0]

    assert payslip.bonus == 50000
    assert payslip.hourly_pay == 20000
    assert payslip.gross_pay == 500000 + 50000 + 20000


def test_ytd_accumulates_across_runs_in_the_same_year(add_employee, january_config):
    employees = [add_employee("E1")]
    engine = PayrollRunEngine()

    engine.start(january_config, employees)
    february = engine.start(RunConfig("PR-2025-02-001", date(2025, 2, 1), date(2025, 2, 28),
                                      date(2025, 2, 28)), employees)
    march = engine.start(RunConfig("PR-2025-03-001", date(2025, 3, 1), date(2025, 3, 31),
                                   date(2025, 3, 31)), employees)

    assert _payslips(february.id)[0].ytd_net_pay == 2 * STANDARD_NET_PAY
    payslip = _payslips(march.id)[0]
    assert payslip.ytd_net_pay == 3 * STANDARD_NET_PAY
    assert payslip.ytd_gross_pay == 3 * 500000


def test_ytd_restarts_in_a_new_year(add_employee):
    employees = [add_employee("E1", effective_date=date(2024, 1, 1))]
    engine = PayrollRunEngine()

    engine.start(RunConfig("PR-2024-12-001", date(2024, 12, 1), date(2024, 12, 31), date(2024, 12, 31)),
                 employees)
    january = engine.start(RunConfig("PR-2025-01-001", date(2025, 1, 1), date(2025, 1, 31),
                                     date(2025, 1, 31)), employees)

    assert _payslips(january.id)[0].ytd_net_pay == STANDARD_NET_PAY


def test_invalid_dates_are_rejected_before_any_run_exists(add_employee):
    employees = [add_employee("E1")]
    config = RunConfig("PR-BAD", date(2025, 1, 1), date(2025, 1, 31), date(2025, 1, 30))

    with pytest.raises(ValidationError):
        PayrollRunEngine().start(config, employees)

    with repository_scope() as repo:
        assert repo.count_runs() == 0


def test_duplicate_run_number_is_rejected(add_employee, january_config):
    employees = [add_employee("E1")]
    engine = PayrollRunEngine()
    engine.start(january_config, employees)

    with pytest.raises(DuplicateRunNumber):
        engine.start(january_config, employees)


def test_completed_run_is_not_reprocessed(add_employee, january_config):
    employees = [add_employee("E1"), add_employee("E2")]
    engine = PayrollRunEngine()
    run = engine.start(january_config, employees)

    again = engine.process(run.id, employees + [add_employee("E3")])

    assert again.status == RunStatus.COMPLETED
    assert again.total_employees == 2
    assert len(_payslips(run.id)) == 2


def test_resuming_a_processing_run_creates_no_duplicate_payslips(add_employee, january_config):
    employees = [add_employee("E1"), add_employee("E2")]
    engine = PayrollRunEngine()

    # A worker finished E1 before the process died
    with repository_scope() as repo:
        run = repo.create_run(PayrollRun(
            run_number=january_config.run_number,
            pay_period_start=january_config.pay_period_start,
            pay_period_end=january_config.pay_period_end,
            pay_date=january_config.pay_date,
        ))
        assert repo.transition_run(run.id, RunStatus.DRAFT, RunStatus.PROCESSING)
        run = repo.get_run(run.id)
    engine._process_employee(run, employees[0], {})

    resumed = engine.process(run.id, employees)

    assert resumed.status == RunStatus.COMPLETED
    assert resumed.total_employees == 2
    assert resumed.total_net_pay == 2 * STANDARD_NET_PAY
    assert [p.employee_id for p in _payslips(run.id)] == ["E1", "E2"]


def test_unknown_run_raises_not_found():
    with pytest.raises(RunNotFound):
        PayrollRunEngine().process(999, [])


def test_persistence_failure_marks_run_failed(add_employee, january_config):
    employees = [add_employee("E1"), add_employee("E2")]

    @contextmanager
    def flaky_scope():
        with repository_scope() as repo:
            insert = repo.insert_payslip

            def insert_or_fail(payslip):
                if payslip.employee_id == "E2":
                    raise PersistenceError("database is locked")
                return insert(payslip)

            repo.insert_payslip = insert_or_fail
            yield repo

    engine = PayrollRunEngine(repository_scope=flaky_scope, max_workers=1)
    with pytest.raises(PersistenceError) as exc_info:
        engine.start(january_config, employees)
    assert exc_info.value.employee_id == "E2"

    with repository_scope() as repo:
        run = repo.get_run_by_number(january_config.run_number)
    assert run.status == RunStatus.FAILED
    assert run.total_employees == 0
    assert [e.reason for e in run.errors] == ["run_aborted"]
    # Payslips already written are kept
    assert [p.employee_id for p in _payslips(run.id)] == ["E1"]

    with pytest.raises(InvalidRunState):
        PayrollRunEngine().process(run.id, employees)


def test_max_workers_must_be_positive():
    with pytest.raises(ValueError):
        PayrollRunEngine(max_workers=0)


def test_malformed_earnings_are_rejected_before_any_run_exists(add_employee, january_config):
    employees = [add_employee("E1")]

    with pytest.raises(ValidationError):
        PayrollRunEngine().start(january_config, employees, earnings=["not", "a", "mapping"])
    with pytest.raises(ValidationError):
        PayrollRunEngine().start(january_config, employees, earnings={"E1": 5})

    with repository_scope() as repo:
        assert repo.count_runs() == 0


def test_unexpected_error_marks_run_failed(add_employee, january_config):
    employees = [add_employee("E1")]
    with repository_scope() as repo:
        run = repo.create_run(PayrollRun(
            run_number=january_config.run_number,
            pay_period_start=january_config.pay_period_start,
            pay_period_end=january_config.pay_period_end,
            pay_date=january_config.pay_date,
        ))

    with pytest.raises(AttributeError):
        PayrollRunEngine().process(run.id, employees, earnings=["not", "a", "mapping"])

    with repository_scope() as repo:
        failed = repo.get_run(run.id)
        assert not repo.has_run_in_status(RunStatus.PROCESSING)
    assert failed.status == RunStatus.FAILED
    assert [e.reason for e in failed.errors] == ["run_aborted"]
    assert "AttributeError" in failed.errors[0].detail


def test_unexpected_worker_error_marks_run_failed(add_employee, january_config):
    employees = [add_employee("E1"), add_employee("E2")]

    @contextmanager
    def broken_scope():
        with repository_scope() as repo:
            insert = repo.insert_payslip

            def insert_or_break(payslip):
                if payslip.employee_id == "E2":
                    raise RuntimeError("disk full")
                return insert(payslip)

            repo.insert_payslip = insert_or_break
            yield repo

    with pytest.raises(RuntimeError):
        PayrollRunEngine(repository_scope=broken_scope, max_workers=1).start(january_config, employees)

    with repository_scope() as repo:
        run = repo.get_run_by_number(january_config.run_number)
    assert run.status == RunStatus.FAILED
    assert [(e.employee_id, e.reason) for e in run.errors] == [("E2", "run_aborted")]
    assert [p.employee_id for p in _payslips(run.id)] == ["E1"]
