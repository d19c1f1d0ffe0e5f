from datetime import date
from typing import Iterable, List, Protocol

from payrun.exceptions import CompensationNotFound
from payrun.models.compensation import CompensationRecord


class CompensationSource(Protocol):
    def list_compensation_for_employee(self, employee_id: str) -> List[CompensationRecord]:
        ...


def select_effective(records: Iterable[CompensationRecord], as_of_date: date) -> CompensationRecord:
    """Latest record effective on or before as_of_date; later entries win ties"""
    selected = None
    for record in records:
        if record.effective_date > as_of_date:
            continue
        if selected is None or record.effective_date >= selected.effective_date:
            selected = record
    return selected


class CompensationResolver:
    """Find the compensation record that applies on a given date"""

    def __init__(self, source: CompensationSource):
        self.source = source

    def resolve(self, employee_id: str, as_of_date: date) -> CompensationRecord:
        record = select_effective(self.source.list_compensation_for_employee(employee_id), as_of_date)
        if record is None:
            raise CompensationNotFound(
                f"No compensation record effective on or before {as_of_date}",
                employee_id=employee_id,
            )
        return record
