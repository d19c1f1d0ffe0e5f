import openpyxl
from openpyxl.styles import Font, Alignment, Border, Side, PatternFill
from pathlib import Path
from typing import Optional
from datetime import date
from payrun.config.settings import OUTPUT_DIR
from payrun.database.repository import PayrollRepository
from payrun.exceptions import NotFoundError
from payrun.utils.formatters import cents_to_decimal


class AnnualSummaryGenerator:
    """Generate annual summary for all workers"""

    def __init__(self, repository: PayrollRepository, output_dir: Optional[Path] = None):
        self.repo = repository
        self.output_dir = Path(output_dir or OUTPUT_DIR) / "annual"
        self.output_dir.mkdir(parents=True, exist_ok=True)

    def generate_all_workers_annual_summary(self, year: int) -> str:
        """Generate annual summary for all workers"""

        # Get all employees
        employees = self.repo.list_employees()

        if not employees:
            raise NotFoundError("No employees found")

        # Create workbook
        wb = openpyxl.Workbook()
        ws = wb.active
        ws.title = f"{year} All Workers"

        # Set column widths
        ws.column_dimensions['A'].width = 15
        ws.column_dimensions['B'].width = 25
        for col in ['C', 'D', 'E', 'F', 'G', 'H', 'I', 'J']:
            ws.column_dimensions[col].width = 18

        # Define styles
        bold_font = Font(bold=True)
        header_fill = PatternFill(start_color="B4C7E7", end_color="B4C7E7", fill_type="solid")
        thin_border = Border(
            left=Side(style='thin'),
            right=Side(style='thin'),
            top=Side(style='thin'),
            bottom=Side(style='thin')
        )

        headers = [
            "Employee ID", "Name", "Payslips", "Gross Pay", "Federal Tax", "State Tax",
            "Social Security + Medicare", "Retirement", "Total Deductions", "Net Pay",
        ]

        # Header row
        row = 1
        for col_idx, header in enumerate(headers, start=1):
            cell = ws.cell(row=row, column=col_idx)
            cell.value = header
            cell.font = bold_font
            cell.fill = header_fill
            cell.border = thin_border
            cell.alignment = Alignment(horizontal='center', vertical='center', wrap_text=True)

        # Data rows
        row = 2
        year_end = date(year, 12, 31)

        for employee in employees:
            records = self.repo.list_payslips_for_employee_in_year(employee.employee_id, year,
                                                                    up_to=year_end)

            if not records:
                continue

            values = [
                employee.employee_id,
                employee.name,
                len(records),
                sum(r.gross_pay for r in records),
                sum(r.federal_tax for r in records),
                sum(r.state_tax for r in records),
                sum(r.social_security + r.medicare for r in records),
                sum(r.retirement_contribution for r in records),
                sum(r.total_deductions for r in records),
                sum(r.net_pay for r in records),
            ]

            for col_idx, value in enumerate(values, start=1):
                cell = ws.cell(row=row, column=col_idx)
                if col_idx > 3:
                    cell.value = cents_to_decimal(value)
                    cell.number_format = '#,##0.00'
                else:
                    cell.value = value
                cell.border = thin_border

            row += 1

        # Generate filename
        filename = f"annual_summary_all_workers_{year}.xlsx"
        filepath = self.output_dir / filename

        # Save workbook
        wb.save(filepath)

        return str(filepath)
