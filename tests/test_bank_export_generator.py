import csv
import io
from datetime import date

import pytest

from payrun.exceptions import InvalidRunState, InvariantViolation, ValidationError
from payrun.models.compensation import BankDetails
from payrun.models.export import ExportType
from payrun.models.payroll import PayrollRun, Payslip, RunStatus
from payrun.processors.bank_export_generator import RECORD_LENGTH, BankExportGenerator

CREATED_ON = date(2025, 2, 1)


def make_run(status=RunStatus.COMPLETED):
    return PayrollRun(
        id=1,
        run_number="PR-2025-01-001",
        pay_period_start=date(2025, 1, 1),
        pay_period_end=date(2025, 1, 31),
        pay_date=date(2025, 1, 31),
        status=status,
    )


def make_payslip(employee_id, net_pay, run_id=1, name=None):
    return Payslip(
        payroll_run_id=run_id,
        employee_id=employee_id,
        employee_name=name or f"Employee {employee_id}",
        employee_email=f"{employee_id}@example.com",
        pay_period_start=date(2025, 1, 1),
        pay_period_end=date(2025, 1, 31),
        pay_date=date(2025, 1, 31),
        base_pay=net_pay,
        gross_pay=net_pay,
        federal_tax=0,
        state_tax=0,
        social_security=0,
        medicare=0,
        health_insurance=0,
        retirement_contribution=0,
        total_deductions=0,
        net_pay=net_pay,
        ytd_gross_pay=net_pay,
        ytd_deductions=0,
        ytd_net_pay=net_pay,
    )


BANK = {
    "E1": BankDetails("000123456789", "021000021", "Chase"),
    "E2": BankDetails("987654321", "026009593", "Bank of America"),
}


def test_scenario_d_employee_without_routing_is_skipped():
    payslips = [make_payslip("E1", 336750), make_payslip("E2", 250000)]
    bank = {"E1": BANK["E1"], "E2": BankDetails("987654321", "", "")}

    export = BankExportGenerator().generate(make_run(), payslips, bank, ExportType.ACH, created_on=CREATED_ON)

    assert export.total_transactions == 1
    assert export.total_amount == 336750
    assert export.skipped_for_export == ["E2"]


def test_ach_layout_and_trailer():
    payslips = [make_payslip("E2", 250000, name="Maria Makinen"), make_payslip("E1", 336750, name="Sam Sample")]

    export = BankExportGenerator(company_name="Acme Payroll", company_id="9999999999").generate(
        make_run(), payslips, BANK, "ach", created_on=CREATED_ON)
    content = export.content.decode("ascii")
    lines = content.splitlines()

    assert content.endswith("\n")
    assert all(len(line) == RECORD_LENGTH for line in lines)
    assert [line[0] for line in lines] == ["1", "6", "6", "9"]

    header = lines[0]
    assert header[1:24] == "ACME PAYROLL".ljust(23)
    assert header[24:34] == "9999999999"
    assert header[49:55] == "250131"
    assert header[55:61] == "250201"

    # Details come out in employee order
    first, second = lines[1], lines[2]
    assert first[1:3] == "22"
    assert first[3:12] == "021000021"
    assert first[12:29] == "000123456789".ljust(17)
    assert first[29:39] == "0000336750"
    assert first[39:54] == "E1".ljust(15)
    assert first[54:76] == "SAM SAMPLE".ljust(22)
    assert first[76:83] == "0000001"
    assert second[29:39] == "0000250000"

    trailer = lines[3]
    assert trailer[1:7] == "000002"
    assert trailer[7:17] == str(2100002 + 2600959).rjust(10, "0")
    assert trailer[17:29] == "000000586750"
    assert trailer[29:41] == "000000000000"

    assert export.total_amount == 586750
    assert export.total_transactions == 2
    assert export.file_name == "bank-export-ach-PR-2025-01-001-2025-02-01.txt"
    assert export.mime_type == "text/plain"


def test_negative_net_pay_is_exported_as_debit():
    payslips = [make_payslip("E1", 336750), make_payslip("E2", -5000)]

    export = BankExportGenerator().generate(make_run(), payslips, BANK, ExportType.ACH, created_on=CREATED_ON)
    lines = export.content.decode("ascii").splitlines()

    assert lines[2][1:3] == "27"
    assert lines[2][29:39] == "0000005000"
    assert lines[-1][17:29] == "000000336750"
    assert lines[-1][29:41] == "000000005000"
    assert export.total_amount == 331750


def test_csv_layout():
    payslips = [make_payslip("E1", 336750, name="Sam Sample"), make_payslip("E2", 250001, name="Maria Makinen")]

    export = BankExportGenerator().generate(make_run(), payslips, BANK, ExportType.CSV, created_on=CREATED_ON)
    rows = list(csv.reader(io.StringIO(export.content.decode("utf-8"))))

    assert rows[0] == ["Employee Name", "Routing Number", "Account Number", "Amount", "Pay Date"]
    assert rows[1] == ["Sam Sample", "021000021", "000123456789", "3367.50", "2025-01-31"]
    assert rows[2] == ["Maria Makinen", "026009593", "987654321", "2500.01", "2025-01-31"]
    assert export.total_amount == 586751
    assert export.file_name == "bank-export-csv-PR-2025-01-001-2025-02-01.csv"
    assert export.mime_type == "text/csv"


def test_csv_can_mask_account_numbers():
    export = BankExportGenerator(mask_account_numbers=True).generate(
        make_run(), [make_payslip("E1", 100)], BANK, ExportType.CSV, created_on=CREATED_ON)
    rows = list(csv.reader(io.StringIO(export.content.decode("utf-8"))))
    assert rows[1][2] == "****6789"


def test_empty_export_still_reconciles():
    export = BankExportGenerator().generate(make_run(), [make_payslip("E9", 100)], BANK, ExportType.ACH,
                                            created_on=CREATED_ON)
    assert export.total_transactions == 0
    assert export.total_amount == 0
    assert export.skipped_for_export == ["E9"]
    assert export.content.decode("ascii").splitlines()[-1][1:7] == "000000"


@pytest.mark.parametrize("status", [RunStatus.DRAFT, RunStatus.PROCESSING, RunStatus.FAILED])
def test_only_completed_runs_can_be_exported(status):
    with pytest.raises(InvalidRunState):
        BankExportGenerator().generate(make_run(status), [make_payslip("E1", 100)], BANK, ExportType.ACH)


def test_payslip_from_another_run_is_an_invariant_violation():
    with pytest.raises(InvariantViolation):
        BankExportGenerator().generate(make_run(), [make_payslip("E1", 100, run_id=2)], BANK, ExportType.CSV)


def test_amount_too_large_for_ach_field_is_an_invariant_violation():
    with pytest.raises(InvariantViolation):
        BankExportGenerator().generate(make_run(), [make_payslip("E1", 10 ** 10)], BANK, ExportType.ACH)


def test_unknown_export_type_is_rejected():
    with pytest.raises(ValidationError):
        BankExportGenerator().generate(make_run(), [], BANK, "BACS")
