"""ORM guards that keep payslips append-only."""

from sqlalchemy import event

from payrun.exceptions import ImmutablePayslipError
from .models import PayslipDB

_registered = False


def _reject_payslip_update(mapper, connection, target):
    raise ImmutablePayslipError(
        "Payslips cannot be modified after creation",
        run_id=target.payroll_run_id,
        employee_id=target.employee_id,
    )


def _reject_payslip_delete(mapper, connection, target):
    raise ImmutablePayslipError(
        "Payslips cannot be deleted",
        run_id=target.payroll_run_id,
        employee_id=target.employee_id,
    )


def register_immutability_listeners():
    global _registered
    if _registered:
        return
    event.listen(PayslipDB, "before_update", _reject_payslip_update)
    event.listen(PayslipDB, "before_delete", _reject_payslip_delete)
    _registered = True
