from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import List, Optional

from payrun.exceptions import ValidationError


class ExportType(str, Enum):
    ACH = "ACH"
    CSV = "CSV"

    @classmethod
    def parse(cls, value) -> "ExportType":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).upper())
        except ValueError:
            raise ValidationError(f"Unsupported export type: {value}") from None


@dataclass
class ExportFile:
    """Bank payment file plus the figures it must reconcile to"""
    export_type: ExportType
    file_name: str
    content: bytes
    total_amount: int
    total_transactions: int
    skipped_for_export: List[str] = field(default_factory=list)
    batch_id: Optional[int] = None

    @property
    def mime_type(self) -> str:
        return "text/csv" if self.export_type == ExportType.CSV else "text/plain"


@dataclass
class BankExportBatch:
    payroll_run_id: int
    export_type: ExportType
    file_name: str
    total_amount: int
    total_transactions: int
    export_date: date
    status: str = "generated"
    skipped_for_export: List[str] = field(default_factory=list)
    id: Optional[int] = None
