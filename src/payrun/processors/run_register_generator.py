import openpyxl
from openpyxl.styles import Font, Alignment, Border, Side, PatternFill
from openpyxl.utils import get_column_letter
from pathlib import Path
from typing import List, Optional
from payrun.config.settings import OUTPUT_DIR
from payrun.models.payroll import PayrollRun, Payslip
from payrun.utils.formatters import cents_to_decimal

MONEY_FORMAT = '#,##0.00'

# (header, payslip attribute, is money)
REGISTER_COLUMNS = [
    ("Employee ID", "employee_id", False),
    ("Name", "employee_name", False),
    ("Email", "employee_email", False),
    ("Base Pay", "base_pay", True),
    ("Gross Pay", "gross_pay", True),
    ("Federal Tax", "federal_tax", True),
    ("State Tax", "state_tax", True),
    ("Social Security", "social_security", True),
    ("Medicare", "medicare", True),
    ("Health Insurance", "health_insurance", True),
    ("Retirement", "retirement_contribution", True),
    ("Other Deductions", "other_deductions", True),
    ("Total Deductions", "total_deductions", True),
    ("Net Pay", "net_pay", True),
    ("YTD Gross", "ytd_gross_pay", True),
    ("YTD Net", "ytd_net_pay", True),
]


class RunRegisterGenerator:
    """Generate the payroll register for one run: every payslip plus totals"""

    def __init__(self, output_dir: Optional[Path] = None):
        self.output_dir = Path(output_dir or OUTPUT_DIR) / "registers"
        self.output_dir.mkdir(parents=True, exist_ok=True)

    def generate(self, run: PayrollRun, payslips: List[Payslip]) -> str:
        """Generate run register sheet"""

        wb = openpyxl.Workbook()
        ws = wb.active
        ws.title = "Register"

        # Define styles
        bold_font = Font(bold=True)
        red_bold_font = Font(color="FF0000", bold=True)
        header_fill = PatternFill(start_color="B4C7E7", end_color="B4C7E7", fill_type="solid")
        yellow_fill = PatternFill(start_color="FFFF00", end_color="FFFF00", fill_type="solid")
        thin_border = Border(
            left=Side(style='thin'),
            right=Side(style='thin'),
            top=Side(style='thin'),
            bottom=Side(style='thin')
        )

        # Title rows
        ws['A1'] = f"Payroll Register {run.run_number}"
        ws['A1'].font = Font(bold=True, size=14)
        ws['A2'] = (f"Period {run.pay_period_start:%Y-%m-%d} - {run.pay_period_end:%Y-%m-%d}, "
                    f"pay date {run.pay_date:%Y-%m-%d}, status {run.status.value}")

        # Column headers
        header_row = 4
        for col_idx, (header, _, _) in enumerate(REGISTER_COLUMNS, start=1):
            cell = ws.cell(row=header_row, column=col_idx)
            cell.value = header
            cell.font = bold_font
            cell.fill = header_fill
            cell.border = thin_border
            cell.alignment = Alignment(horizontal='center', vertical='center', wrap_text=True)

        # Data rows
        row = header_row + 1
        for payslip in payslips:
            for col_idx, (_, attribute, is_money) in enumerate(REGISTER_COLUMNS, start=1):
                value = getattr(payslip, attribute)
                cell = ws.cell(row=row, column=col_idx)
                cell.value = cents_to_decimal(value) if is_money else value
                cell.border = thin_border
                if is_money:
                    cell.number_format = MONEY_FORMAT
            if payslip.net_pay < 0:
                ws.cell(row=row, column=self._column_of("net_pay")).font = red_bold_font
            row += 1

        # Totals row
        ws.cell(row=row, column=1).value = "TOTAL"
        ws.cell(row=row, column=1).font = bold_font
        for col_idx, (_, attribute, is_money) in enumerate(REGISTER_COLUMNS, start=1):
            if not is_money or attribute.startswith("ytd_"):
                continue
            cell = ws.cell(row=row, column=col_idx)
            cell.value = cents_to_decimal(sum(getattr(p, attribute) for p in payslips))
            cell.number_format = MONEY_FORMAT
            cell.font = bold_font
            cell.fill = yellow_fill
            cell.border = thin_border

        # Column widths
        for col_idx, (header, _, _) in enumerate(REGISTER_COLUMNS, start=1):
            ws.column_dimensions[get_column_letter(col_idx)].width = max(12, len(header) + 2)
        ws.column_dimensions['B'].width = 25
        ws.column_dimensions['C'].width = 30

        self._write_exceptions(wb, run, bold_font, header_fill, thin_border)

        filename = f"payroll_register_{run.run_number}.xlsx"
        filepath = self.output_dir / filename
        wb.save(filepath)

        return str(filepath)

    def _write_exceptions(self, wb, run, bold_font, header_fill, thin_border):
        """Skipped employees, calculation errors and warnings"""
        ws = wb.create_sheet("Exceptions")
        for col_idx, header in enumerate(["Employee ID", "Kind", "Reason", "Detail"], start=1):
            cell = ws.cell(row=1, column=col_idx)
            cell.value = header
            cell.font = bold_font
            cell.fill = header_fill
            cell.border = thin_border
        for row, exception in enumerate(run.exceptions, start=2):
            ws.cell(row=row, column=1).value = exception.employee_id
            ws.cell(row=row, column=2).value = exception.kind
            ws.cell(row=row, column=3).value = exception.reason
            ws.cell(row=row, column=4).value = exception.detail
        ws.column_dimensions['A'].width = 15
        ws.column_dimensions['C'].width = 20
        ws.column_dimensions['D'].width = 60

    @staticmethod
    def _column_of(attribute: str) -> int:
        for col_idx, (_, name, _) in enumerate(REGISTER_COLUMNS, start=1):
            if name == attribute:
                return col_idx
        raise KeyError(attribute)
