from datetime import date

import pytest

from payrun.database import repository_scope
from payrun.exceptions import InvalidRunState, RunNotFound, ValidationError
from payrun.models.employee import EmployeeStatus
from payrun.models.payroll import PayrollRun, RunStatus
from payrun.service import PayrollService

from conftest import STANDARD_NET_PAY

PERIOD = (date(2025, 1, 1), date(2025, 1, 31), date(2025, 1, 31))


@pytest.fixture
def service(database, output_dir):
    return PayrollService(output_dir=output_dir)


def test_next_run_number_counts_existing_runs(service, add_employee):
    assert service.next_run_number(date(2025, 3, 15)) == "PR-2025-03-001"
    add_employee("E1")
    service.start_payroll_run(*PERIOD)
    assert service.next_run_number(date(2025, 3, 15)) == "PR-2025-03-002"


def test_start_pays_only_active_employees_in_department(service, add_employee):
    add_employee("E1", department="Engineering")
    add_employee("E2", department="Operations")
    add_employee("E3", department="Engineering", status=EmployeeStatus.INACTIVE)

    run = service.start_payroll_run(*PERIOD, run_number="PR-ENG", department="Engineering")

    assert run.status == RunStatus.COMPLETED
    assert run.department == "Engineering"
    assert [p.employee_id for p in service.list_payslips(run.id)] == ["E1"]


def test_refuses_to_start_while_another_run_is_processing(service, add_employee):
    add_employee("E1")
    with repository_scope() as repo:
        stuck = repo.create_run(PayrollRun("PR-STUCK", *PERIOD))
        repo.transition_run(stuck.id, RunStatus.DRAFT, RunStatus.PROCESSING)

    with pytest.raises(ValidationError):
        service.start_payroll_run(*PERIOD)

    concurrent = PayrollService(output_dir=service.output_dir, allow_concurrent_runs=True)
    assert concurrent.start_payroll_run(*PERIOD, run_number="PR-OTHER").status == RunStatus.COMPLETED

    resumed = service.resume_payroll_run(stuck.id)
    assert resumed.status == RunStatus.COMPLETED
    assert resumed.total_employees == 1


def test_resume_unknown_run(service):
    with pytest.raises(RunNotFound):
        service.resume_payroll_run(42)


def test_bank_export_is_recorded_and_written(service, add_employee):
    add_employee("E1")
    add_employee("E2", bank_routing_number="")
    run = service.start_payroll_run(*PERIOD)

    export = service.generate_bank_export(run.id, "csv", created_on=date(2025, 2, 1))

    assert export.total_transactions == 1
    assert export.total_amount == STANDARD_NET_PAY
    assert export.skipped_for_export == ["E2"]
    assert export.batch_id is not None
    written = service.output_dir / "bank_exports" / export.file_name
    assert written.read_bytes() == export.content

    with repository_scope() as repo:
        batches = repo.list_bank_exports(run.id)
    assert [(b.id, b.total_amount, b.skipped_for_export) for b in batches] == [
        (export.batch_id, STANDARD_NET_PAY, ["E2"])]


def test_bank_export_uses_compensation_in_effect_on_pay_date(service, add_employee):
    add_employee("E1")
    # A later record with new bank details does not apply to January
    add_employee("E1", effective_date=date(2025, 6, 1), bank_account_number="111122223333")
    run = service.start_payroll_run(*PERIOD)

    export = service.generate_bank_export(run.id, "ACH")

    assert b"000123456789" in export.content
    assert b"111122223333" not in export.content


def test_bank_export_requires_completed_run(service, add_employee):
    with repository_scope() as repo:
        draft = repo.create_run(PayrollRun("PR-DRAFT", *PERIOD))

    with pytest.raises(InvalidRunState):
        service.generate_bank_export(draft.id, "ACH")


def test_preview_does_not_store_anything(service, add_employee):
    add_employee("E1")
    add_employee("E2")
    add_employee("E3", with_compensation=False)

    preview = service.preview_payroll(date(2025, 1, 31))

    assert preview.total_employees == 2
    assert preview.total_net_pay == 2 * STANDARD_NET_PAY
    assert [(e.employee_id, e.reason) for e in preview.exceptions] == [("E3", "no_compensation")]
    assert preview.to_dict()["pay_date"] == "2025-01-31"
    with repository_scope() as repo:
        assert repo.count_runs() == 0


@pytest.mark.parametrize("earnings", [["E1"], "E1", {"E1": ["bonus", 100]}])
def test_malformed_earnings_do_not_leave_a_run_behind(service, add_employee, earnings):
    add_employee("E1")

    with pytest.raises(ValidationError):
        service.start_payroll_run(*PERIOD, earnings=earnings)

    with repository_scope() as repo:
        assert repo.count_runs() == 0
    assert service.start_payroll_run(*PERIOD).status == RunStatus.COMPLETED


def test_resume_rejects_malformed_earnings(service, add_employee):
    add_employee("E1")
    with repository_scope() as repo:
        stuck = repo.create_run(PayrollRun("PR-STUCK", *PERIOD))
        repo.transition_run(stuck.id, RunStatus.DRAFT, RunStatus.PROCESSING)

    with pytest.raises(ValidationError):
        service.resume_payroll_run(stuck.id, earnings=["E1"])

    assert service.get_run(stuck.id).status == RunStatus.PROCESSING
    assert service.resume_payroll_run(stuck.id).status == RunStatus.COMPLETED
