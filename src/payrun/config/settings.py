import os
from decimal import Decimal
from pathlib import Path
from dotenv import load_dotenv

load_dotenv()

# Base directory
BASE_DIR = Path(__file__).resolve().parent.parent.parent.parent

# Database
DATABASE_URL = os.getenv("DATABASE_URL", f"sqlite:///{BASE_DIR / 'data' / 'payroll.db'}")

# Paths
OUTPUT_DIR = Path(os.getenv("OUTPUT_DIR", str(BASE_DIR / "output")))
DATA_DIR = BASE_DIR / "data"

# Application settings
DEBUG = os.getenv("DEBUG", "False").lower() == "true"
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
SECRET_KEY = os.getenv("SECRET_KEY", "change-me")

# Payroll processing
PAYROLL_MAX_WORKERS = int(os.getenv("PAYROLL_MAX_WORKERS", "4"))
ALLOW_CONCURRENT_RUNS = os.getenv("ALLOW_CONCURRENT_RUNS", "False").lower() == "true"

# Statutory defaults used when a compensation record leaves the rate unset
DEFAULT_SOCIAL_SECURITY_PCT = Decimal(os.getenv("DEFAULT_SOCIAL_SECURITY_PCT", "6.2"))
DEFAULT_MEDICARE_PCT = Decimal(os.getenv("DEFAULT_MEDICARE_PCT", "1.45"))

# Bank export
ACH_COMPANY_NAME = os.getenv("ACH_COMPANY_NAME", "ADMINOS PAYROLL")
ACH_COMPANY_ID = os.getenv("ACH_COMPANY_ID", "1234567890")
CSV_MASK_ACCOUNT_NUMBERS = os.getenv("CSV_MASK_ACCOUNT_NUMBERS", "False").lower() == "true"
