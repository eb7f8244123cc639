"""
Billing configuration

Values come from the environment, with a local .env loaded first.

Env vars:
  BILLING_DB_PATH       SQLite DB path (default: billing.db)
  BILLING_LOG_LEVEL     log level name (default: INFO)
  BILLING_CLOUD_MODE    'rest' | 'memory' (default: rest)
  CLOUD_BASE            base URL of the remote document store (unset = always offline)
  CLOUD_API_PREFIX      collection path prefix (default: /api/collections)
  CLOUD_API_KEY         API key for token auth
  CLOUD_API_SECRET      API secret for token auth
  CLOUD_TIMEOUT         seconds for remote data calls (default: 20)
  CLOUD_PING_PATH       path probed by the connectivity check (default: /api/ping)
  CLOUD_PING_TIMEOUT    seconds for the connectivity check (default: 3)
"""
import logging
import os
from typing import Optional

from dotenv import load_dotenv

load_dotenv()


def _env_string(name: str, default: Optional[str] = None) -> Optional[str]:
    """Return trimmed string-valued env vars, normalizing empty strings to None."""
    raw = os.getenv(name, default)
    if raw is None:
        return default
    if isinstance(raw, str):
        clean = raw.strip()
        return clean if clean else default
    return raw


def _env_float(name: str, default: float) -> float:
    try:
        return float(_env_string(name, str(default)))
    except (TypeError, ValueError):
        return default


DB_PATH = _env_string('BILLING_DB_PATH', 'billing.db')
LOG_LEVEL = (_env_string('BILLING_LOG_LEVEL', 'INFO') or 'INFO').upper()
CLOUD_MODE = (_env_string('BILLING_CLOUD_MODE', 'rest') or 'rest').lower()

CLOUD_BASE = _env_string('CLOUD_BASE')            # e.g., https://cloud.example.com
CLOUD_API_PREFIX = _env_string('CLOUD_API_PREFIX', '/api/collections')
CLOUD_API_KEY = _env_string('CLOUD_API_KEY')
CLOUD_API_SECRET = _env_string('CLOUD_API_SECRET')
CLOUD_TIMEOUT = _env_float('CLOUD_TIMEOUT', 20.0)
CLOUD_PING_PATH = _env_string('CLOUD_PING_PATH', '/api/ping')
CLOUD_PING_TIMEOUT = _env_float('CLOUD_PING_TIMEOUT', 3.0)

# Fixed business constants
VAT_MULTIPLIER = '1.05'
MONEY_PLACES = 3
CURRENCY = 'OMR'
INVOICE_PREFIX = 'INV-'
RECEIPT_PREFIX = 'REC-'
NUMBER_WIDTH = 5
INVOICE_COUNTER_KEY = 'invoiceCounter'
RECEIPT_COUNTER_KEY = 'receiptCounter'

_LOGGING_READY = False


def setup_logging(level: Optional[str] = None) -> None:
    global _LOGGING_READY
    if _LOGGING_READY:
        return
    name = (level or LOG_LEVEL or 'INFO').upper()
    logging.basicConfig(
        level=getattr(logging, name, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    _LOGGING_READY = True
