import openpyxl
from openpyxl.styles import Font, Border, Side, PatternFill
from pathlib import Path
from typing import Optional
from payrun.config.settings import OUTPUT_DIR
from payrun.models.payroll import Payslip
from payrun.utils.formatters import cents_to_decimal

MONEY_FORMAT = '#,##0.00'


class PayslipGenerator:
    """Generate individual payslip Excel files"""

    def __init__(self, output_dir: Optional[Path] = None, company_name: str = "AdminOS"):
        self.output_dir = Path(output_dir or OUTPUT_DIR) / "payslips"
        self.output_dir.mkdir(parents=True, exist_ok=True)
        self.company_name = company_name

    def generate(self, payslip: Payslip, run_number: str) -> str:
        """Generate payslip Excel file"""

        # Create workbook
        wb = openpyxl.Workbook()
        ws = wb.active
        ws.title = "Payslip"

        # Set column widths
        ws.column_dimensions['A'].width = 30
        ws.column_dimensions['B'].width = 18
        ws.column_dimensions['C'].width = 4
        ws.column_dimensions['D'].width = 22
        ws.column_dimensions['E'].width = 24

        # Define styles
        header_font = Font(bold=True, size=14, color="2563EB")
        bold_font = Font(bold=True)
        header_fill = PatternFill(start_color="F3F4F6", end_color="F3F4F6", fill_type="solid")
        thin_border = Border(
            left=Side(style='thin'),
            right=Side(style='thin'),
            top=Side(style='thin'),
            bottom=Side(style='thin')
        )

        # Header section
        ws['A1'] = "PAYSLIP"
        ws['A1'].font = header_font
        ws['E1'] = self.company_name
        ws['E1'].font = bold_font

        ws['A3'] = "Employee Information"
        ws['A3'].font = bold_font
        ws['A4'] = f"Name: {payslip.employee_name}"
        ws['A5'] = f"Email: {payslip.employee_email}"
        ws['A6'] = f"Employee ID: {payslip.employee_id}"

        ws['D3'] = "Pay Period"
        ws['D3'].font = bold_font
        ws['D4'] = "Period"
        ws['E4'] = f"{payslip.pay_period_start:%Y-%m-%d} - {payslip.pay_period_end:%Y-%m-%d}"
        ws['D5'] = "Pay Date"
        ws['E5'] = f"{payslip.pay_date:%Y-%m-%d}"
        ws['D6'] = "Payroll Run"
        ws['E6'] = run_number

        earnings = [
            ("Base Salary", payslip.base_pay),
            (f"Hourly ({payslip.hours_worked} hrs)", payslip.hourly_pay),
            ("Overtime", payslip.overtime_pay),
            ("Bonus", payslip.bonus),
            ("Commission", payslip.commission),
            ("Allowances", payslip.allowances),
            ("Other Earnings", payslip.other_earnings),
        ]
        deductions = [
            ("Federal Tax", payslip.federal_tax),
            ("State Tax", payslip.state_tax),
            ("Social Security", payslip.social_security),
            ("Medicare", payslip.medicare),
            ("Health Insurance", payslip.health_insurance),
            ("Retirement Contribution", payslip.retirement_contribution),
            ("Other Deductions", payslip.other_deductions),
        ]

        row = 8
        row = self._write_section(ws, row, "Earnings", earnings, "Gross Pay", payslip.gross_pay,
                                  bold_font, header_fill, thin_border)
        row += 1
        row = self._write_section(ws, row, "Deductions", deductions, "Total Deductions",
                                  payslip.total_deductions, bold_font, header_fill, thin_border)
        row += 1

        # Net payment
        ws[f'A{row}'] = "Net Pay"
        ws[f'A{row}'].font = Font(bold=True, size=14)
        ws[f'B{row}'] = cents_to_decimal(payslip.net_pay)
        ws[f'B{row}'].font = Font(bold=True, size=14)
        ws[f'B{row}'].number_format = MONEY_FORMAT
        row += 2

        # Year-to-date summary
        ws[f'A{row}'] = "Year-to-Date Summary"
        ws[f'A{row}'].font = bold_font
        ws[f'A{row}'].fill = header_fill
        row += 1
        for label, amount in (("YTD Gross Pay", payslip.ytd_gross_pay),
                              ("YTD Deductions", payslip.ytd_deductions),
                              ("YTD Net Pay", payslip.ytd_net_pay)):
            ws[f'A{row}'] = label
            ws[f'B{row}'] = cents_to_decimal(amount)
            ws[f'B{row}'].number_format = MONEY_FORMAT
            row += 1

        row += 1
        ws[f'A{row}'] = "This is a computer-generated payslip. No signature is required."

        # Generate filename
        filename = f"{payslip.employee_id}_{run_number}_payslip.xlsx"
        filepath = self.output_dir / filename

        # Save workbook
        wb.save(filepath)

        return str(filepath)

    def _write_section(self, ws, row, title, lines, total_label, total, bold_font, fill, border):
        ws[f'A{row}'] = title
        ws[f'B{row}'] = "Amount"
        for col in ('A', 'B'):
            ws[f'{col}{row}'].font = bold_font
            ws[f'{col}{row}'].fill = fill
            ws[f'{col}{row}'].border = border
        row += 1

        # First line always, the rest only when non-zero
        for index, (label, amount) in enumerate(lines):
            if index and not amount:
                continue
            ws[f'A{row}'] = label
            ws[f'B{row}'] = cents_to_decimal(amount)
            ws[f'B{row}'].number_format = MONEY_FORMAT
            row += 1

        ws[f'A{row}'] = total_label
        ws[f'B{row}'] = cents_to_decimal(total)
        ws[f'B{row}'].number_format = MONEY_FORMAT
        for col in ('A', 'B'):
            ws[f'{col}{row}'].font = bold_font
            ws[f'{col}{row}'].border = border
        return row + 1
