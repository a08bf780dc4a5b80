# L1: Ingestion Layer - Date bucket extraction
import re
from typing import Optional, Any
from datetime import date, datetime, timedelta


# Spreadsheet serial day 0 (1900 date system, leap-year bug included)
EXCEL_EPOCH = datetime(1899, 12, 30)
EXCEL_SERIAL_MIN = 40000  # 2009-07-06
EXCEL_SERIAL_MAX = 100000

_ISO_RE = re.compile(r"^(\d{4})-(\d{1,2})")
_SLASH_RE = re.compile(r"^(\d{4})/(\d{1,2})")
_COMPACT_RE = re.compile(r"^(\d{4})(\d{2})(\d{2})$")


def _bucket(year: int, month: int) -> Optional[str]:
    if 1 <= month <= 12:
        return f"{year:04d}-{month:02d}"
    return None


def extract_month(value: Any) -> Optional[str]:
    """
    Normalize an ERP date value to a YYYY-MM bucket key.

    Accepts ISO strings (2024-03-15), slash-delimited strings (2024/3/15),
    compact numerics (20240315), spreadsheet serial numbers and
    date/datetime objects. Returns None when the value cannot be parsed.
    """
    if value is None:
        return None
    if isinstance(value, datetime) or isinstance(value, date):
        return _bucket(value.year, value.month)
    if isinstance(value, bool):
        return None
    if isinstance(value, float) and value.is_integer():
        # 20240315.0 must read like the integer 20240315
        value = int(value)

    text = str(value).strip()
    if not text:
        return None

    match = _ISO_RE.match(text)
    if match:
        return _bucket(int(match.group(1)), int(match.group(2)))

    match = _SLASH_RE.match(text)
    if match:
        return _bucket(int(match.group(1)), int(match.group(2)))

    match = _COMPACT_RE.match(text)
    if match:
        return _bucket(int(match.group(1)), int(match.group(2)))

    try:
        serial = float(text)
    except ValueError:
        return None
    if EXCEL_SERIAL_MIN < serial < EXCEL_SERIAL_MAX:
        converted = EXCEL_EPOCH + timedelta(days=serial)
        return _bucket(converted.year, converted.month)
    return None


def month_distance(start: str, end: str) -> int:
    """Number of whole months from start to end (both YYYY-MM)."""
    start_year, start_month = (int(p) for p in start.split("-"))
    end_year, end_month = (int(p) for p in end.split("-"))
    return (end_year - start_year) * 12 + (end_month - start_month)


def month_span_years(months) -> float:
    """Inclusive span of a set of month keys expressed in years (at least one month)."""
    months = [m for m in months if m]
    if not months:
        return 1.0
    span = month_distance(min(months), max(months)) + 1
    return max(span / 12, 1 / 12)
