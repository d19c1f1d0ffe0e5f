from .payroll_calculator import calculate, validate_inputs
from .compensation_resolver import CompensationResolver, select_effective
from .ytd_aggregator import accumulate
from .payroll_run_engine import PayrollRunEngine
from .bank_export_generator import BankExportGenerator
from .payslip_generator import PayslipGenerator
from .run_register_generator import RunRegisterGenerator
from .annual_summary_generator import AnnualSummaryGenerator


__all__ = [
    'calculate',
    'validate_inputs',
    'CompensationResolver',
    'select_effective',
    'accumulate',
    'PayrollRunEngine',
    'BankExportGenerator',
    'PayslipGenerator',
    'RunRegisterGenerator',
    'AnnualSummaryGenerator'
]
