from .db import SessionLocal, Base, configure_engine, init_db, repository_scope, session_scope
from .models import (
    EmployeeDB,
    CompensationRecordDB,
    PayrollRunDB,
    PayslipDB,
    BankExportDB
)
from .repository import PayrollRepository

__all__ = [
    'SessionLocal',
    'Base',
    'configure_engine',
    'init_db',
    'repository_scope',
    'session_scope',
    'EmployeeDB',
    'CompensationRecordDB',
    'PayrollRunDB',
    'PayslipDB',
    'BankExportDB',
    'PayrollRepository'
]
