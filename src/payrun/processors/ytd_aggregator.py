from typing import Iterable

from payrun.models.payroll import PayCalculation, Payslip, YTDTotals


def accumulate(previous_payslips: Iterable[Payslip], new_calculation: PayCalculation) -> YTDTotals:
    """Year-to-date totals including the new calculation.

    The caller passes this year's earlier payslips in any order.
    """
    gross = new_calculation.gross_pay
    deductions = new_calculation.total_deductions
    net = new_calculation.net_pay
    for payslip in previous_payslips:
        gross += payslip.gross_pay
        deductions += payslip.total_deductions
        net += payslip.net_pay
    return YTDTotals(gross_pay=gross, deductions=deductions, net_pay=net)
