"""
Bank payment files for a completed payroll run.

ACH-style layout (94-character records, newline terminated)::

    Header   1 | company name 23 | company id 10 | run number 15 |
               effective date YYMMDD | creation date YYMMDD | filler
    Detail   6 | transaction code 2 (22 credit, 27 debit) | routing 9 |
               account 17 | amount in cents 10 | employee id 15 |
               receiver name 22 | trace number 7 | filler
    Trailer  9 | entry count 6 | entry hash 10 | total credit 12 |
               total debit 12 | filler

CSV layout: ``Employee Name,Routing Number,Account Number,Amount,Pay Date``.

Every file is parsed back after it is built and compared with the payslips
it was built from; a mismatch raises InvariantViolation and nothing is
returned.
"""

import csv
import io
import logging
import unicodedata
from datetime import date
from decimal import Decimal
from typing import Iterable, List, Mapping, Optional, Tuple

from payrun.config.settings import ACH_COMPANY_ID, ACH_COMPANY_NAME, CSV_MASK_ACCOUNT_NUMBERS
from payrun.exceptions import InvalidRunState, InvariantViolation
from payrun.models.compensation import BankDetails
from payrun.models.export import ExportFile, ExportType
from payrun.models.payroll import PayrollRun, Payslip, RunStatus
from payrun.utils.formatters import format_amount, format_date_ach, format_date_iso, mask_account_number
from payrun.utils.validators import validate_routing_number

logger = logging.getLogger(__name__)

RECORD_LENGTH = 94
CREDIT = "22"
DEBIT = "27"
CSV_HEADER = ["Employee Name", "Routing Number", "Account Number", "Amount", "Pay Date"]


def _ascii(text: str) -> str:
    normalized = unicodedata.normalize("NFKD", text or "")
    return normalized.encode("ascii", "ignore").decode("ascii")


def _alpha(text: str, width: int) -> str:
    """Left-justified, space padded, truncated"""
    return _ascii(text)[:width].ljust(width)


def _numeric(value: int, width: int, field: str, run_id: Optional[int] = None) -> str:
    """Right-justified, zero padded; values that do not fit are an error"""
    digits = str(value)
    if value < 0 or len(digits) > width:
        raise InvariantViolation(f"{field} {value} does not fit {width} digits", run_id=run_id)
    return digits.rjust(width, "0")


class BankExportGenerator:
    """Build ACH-style or CSV payment files that reconcile with a run"""

    def __init__(self, company_name: str = ACH_COMPANY_NAME, company_id: str = ACH_COMPANY_ID,
                 mask_account_numbers: bool = CSV_MASK_ACCOUNT_NUMBERS):
        self.company_name = company_name
        self.company_id = company_id
        self.mask_account_numbers = mask_account_numbers

    def generate(self, run: PayrollRun, payslips: Iterable[Payslip],
                 bank_details: Mapping[str, BankDetails], export_type: ExportType,
                 created_on: Optional[date] = None) -> ExportFile:
        export_type = ExportType.parse(export_type)
        if run.status != RunStatus.COMPLETED:
            raise InvalidRunState(
                f"Bank export requires a completed run (status is {run.status.value})", run_id=run.id
            )
        created_on = created_on or date.today()

        included, skipped = self._split(run, payslips, bank_details)
        expected_total = sum(p.net_pay for p, _ in included)
        expected_count = len(included)

        if export_type == ExportType.ACH:
            content = self._build_ach(run, included, created_on)
            parsed_count, parsed_total = self._verify_ach(content, run)
            extension = "txt"
        else:
            content = self._build_csv(run, included)
            parsed_count, parsed_total = self._verify_csv(content)
            extension = "csv"

        if parsed_count != expected_count or parsed_total != expected_total:
            raise InvariantViolation(
                "Bank export does not reconcile with payslips",
                run_id=run.id,
                expected_total=expected_total,
                exported_total=parsed_total,
                expected_transactions=expected_count,
                exported_transactions=parsed_count,
            )

        file_name = f"bank-export-{export_type.value.lower()}-{run.run_number}-{format_date_iso(created_on)}.{extension}"
        logger.info("Generated %s export %s: %d transactions, %s total, %d skipped",
                    export_type.value, file_name, expected_count, format_amount(expected_total), len(skipped))
        return ExportFile(
            export_type=export_type,
            file_name=file_name,
            content=content.encode("ascii" if export_type == ExportType.ACH else "utf-8"),
            total_amount=expected_total,
            total_transactions=expected_count,
            skipped_for_export=skipped,
        )

    def _split(self, run: PayrollRun, payslips: Iterable[Payslip],
               bank_details: Mapping[str, BankDetails]) -> Tuple[List[Tuple[Payslip, BankDetails]], List[str]]:
        included, skipped = [], []
        for payslip in sorted(payslips, key=lambda p: p.employee_id):
            if payslip.payroll_run_id != run.id:
                raise InvariantViolation("Payslip belongs to another run", run_id=run.id,
                                         employee_id=payslip.employee_id)
            details = bank_details.get(payslip.employee_id)
            if details is None or not details.is_complete:
                logger.info("Run %s: no bank details for %s, excluded from export",
                            run.run_number, payslip.employee_id)
                skipped.append(payslip.employee_id)
                continue
            if not validate_routing_number(details.routing_number.strip()):
                logger.warning("Run %s: routing number for %s fails the checksum",
                               run.run_number, payslip.employee_id)
            included.append((payslip, details))
        return included, skipped

    # ========== ACH ==========

    def _build_ach(self, run: PayrollRun, included, created_on: date) -> str:
        records = [
            "1"
            + _alpha(self.company_name.upper(), 23)
            + _alpha(self.company_id, 10)
            + _alpha(run.run_number, 15)
            + format_date_ach(run.pay_date)
            + format_date_ach(created_on)
        ]

        entry_hash = total_credit = total_debit = 0
        for sequence, (payslip, details) in enumerate(included, start=1):
            routing = details.routing_number.strip()[:9].rjust(9, "0")
            amount = abs(payslip.net_pay)
            if payslip.net_pay < 0:
                code = DEBIT
                total_debit += amount
            else:
                code = CREDIT
                total_credit += amount
            entry_hash += int(routing[:8]) if routing[:8].isdigit() else 0
            records.append(
                "6"
                + code
                + routing
                + _alpha(details.account_number.strip(), 17)
                + _numeric(amount, 10, "Amount", run.id)
                + _alpha(payslip.employee_id, 15)
                + _alpha(payslip.employee_name.upper(), 22)
                + _numeric(sequence, 7, "Trace number", run.id)
            )

        records.append(
            "9"
            + _numeric(len(included), 6, "Entry count", run.id)
            + _numeric(entry_hash % 10 ** 10, 10, "Entry hash", run.id)
            + _numeric(total_credit, 12, "Total credit", run.id)
            + _numeric(total_debit, 12, "Total debit", run.id)
        )
        return "".join(record.ljust(RECORD_LENGTH) + "\n" for record in records)

    def _verify_ach(self, content: str, run: PayrollRun) -> Tuple[int, int]:
        lines = content.splitlines()
        if len(lines) < 2 or not lines[0].startswith("1") or not lines[-1].startswith("9"):
            raise InvariantViolation("ACH file is missing its header or trailer", run_id=run.id)
        if any(len(line) != RECORD_LENGTH for line in lines):
            raise InvariantViolation("ACH record has the wrong length", run_id=run.id)

        count = credit = debit = 0
        for line in lines[1:-1]:
            if not line.startswith("6"):
                raise InvariantViolation(f"Unexpected ACH record type {line[0]!r}", run_id=run.id)
            amount = int(line[29:39])
            if line[1:3] == DEBIT:
                debit += amount
            else:
                credit += amount
            count += 1

        trailer = lines[-1]
        if (int(trailer[1:7]) != count or int(trailer[17:29]) != credit
                or int(trailer[29:41]) != debit):
            raise InvariantViolation("ACH trailer does not match its detail records", run_id=run.id)
        return count, credit - debit

    # ========== CSV ==========

    def _build_csv(self, run: PayrollRun, included) -> str:
        buffer = io.StringIO()
        writer = csv.writer(buffer, lineterminator="\n")
        writer.writerow(CSV_HEADER)
        for payslip, details in included:
            account = details.account_number.strip()
            writer.writerow([
                payslip.employee_name,
                details.routing_number.strip(),
                mask_account_number(account) if self.mask_account_numbers else account,
                format_amount(payslip.net_pay),
                format_date_iso(payslip.pay_date),
            ])
        return buffer.getvalue()

    def _verify_csv(self, content: str) -> Tuple[int, int]:
        rows = list(csv.reader(io.StringIO(content)))
        body = rows[1:]
        total = sum(int(Decimal(row[3]) * 100) for row in body)
        return len(body), total
