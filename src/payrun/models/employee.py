from dataclasses import dataclass
from enum import Enum
from typing import Optional


class EmployeeStatus(str, Enum):
    ACTIVE = "Active"
    INACTIVE = "Inactive"


@dataclass
class Employee:
    """Employee data model"""
    employee_id: str
    name: str
    email: str
    department: Optional[str] = None
    status: EmployeeStatus = EmployeeStatus.ACTIVE

    @property
    def is_active(self) -> bool:
        return self.status == EmployeeStatus.ACTIVE

    def __str__(self):
        return f"Employee({self.employee_id}, {self.name})"
