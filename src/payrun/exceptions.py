"""
Typed exceptions for payroll processing.

Every error carries a machine-readable ``code`` and the run / employee it
relates to, so a failure can be reconstructed from the log line alone.

    PayrollError
    +-- ValidationError
    |   +-- DuplicateRunNumber
    |   +-- CalculationError
    |   +-- InvalidRunState
    +-- NotFoundError
    |   +-- CompensationNotFound
    |   +-- RunNotFound
    +-- DuplicatePayslip
    +-- PersistenceError
    +-- InvariantViolation
    +-- ImmutablePayslipError
"""

from typing import Optional


class PayrollError(Exception):
    """Base class for all payroll errors"""

    code = "PAYROLL_ERROR"

    def __init__(self, message: str, run_id: Optional[int] = None,
                 employee_id: Optional[str] = None, **details):
        super().__init__(message)
        self.message = message
        self.run_id = run_id
        self.employee_id = employee_id
        self.details = details

    def to_dict(self) -> dict:
        data = {"code": self.code, "message": self.message}
        if self.run_id is not None:
            data["run_id"] = self.run_id
        if self.employee_id is not None:
            data["employee_id"] = self.employee_id
        data.update(self.details)
        return data

    def __str__(self):
        context = []
        if self.run_id is not None:
            context.append(f"run_id={self.run_id}")
        if self.employee_id is not None:
            context.append(f"employee_id={self.employee_id}")
        if context:
            return f"{self.message} ({', '.join(context)})"
        return self.message


class ValidationError(PayrollError):
    """Rejected before any state change"""
    code = "VALIDATION_ERROR"


class DuplicateRunNumber(ValidationError):
    code = "DUPLICATE_RUN_NUMBER"

    def __init__(self, run_number: str):
        super().__init__(f"Run number {run_number} is already in use", run_number=run_number)
        self.run_number = run_number


class CalculationError(ValidationError):
    """Malformed compensation input for a single employee"""
    code = "CALCULATION_ERROR"

    def __init__(self, message: str, field: Optional[str] = None, **kwargs):
        super().__init__(message, field=field, **kwargs)
        self.field = field


class InvalidRunState(ValidationError):
    code = "INVALID_RUN_STATE"


class NotFoundError(PayrollError):
    code = "NOT_FOUND"


class CompensationNotFound(NotFoundError):
    code = "COMPENSATION_NOT_FOUND"


class RunNotFound(NotFoundError):
    code = "RUN_NOT_FOUND"


class DuplicatePayslip(PayrollError):
    """A payslip already exists for (run, employee); benign on retry"""
    code = "DUPLICATE_PAYSLIP"


class PersistenceError(PayrollError):
    """The store is unreachable or rejected a write"""
    code = "PERSISTENCE_ERROR"

    def __init__(self, message: str, transient: bool = True, **kwargs):
        super().__init__(message, **kwargs)
        self.transient = transient


class InvariantViolation(PayrollError):
    """Internal totals do not reconcile; never retryable"""
    code = "INVARIANT_VIOLATION"


class ImmutablePayslipError(PayrollError):
    code = "IMMUTABLE_PAYSLIP"
