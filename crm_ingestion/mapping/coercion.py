"""
Type coercion: raw cell value -> canonical output text. Pure, ZERO I/O.

Output rows are CSV-bound, so every coerced value is rendered as text:
numbers canonical (``1234.5``, ``1000``), dates ``YYYY-MM-DD``, booleans
``true``/``false``.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from decimal import Decimal, InvalidOperation
from typing import Any

from crm_ingestion.domain.types import TypeHint

# Excel serial day 0 (Windows 1900 date system; absorbs the 1900 leap-year bug)
EXCEL_EPOCH = date(1899, 12, 30)
_MAX_EXCEL_SERIAL = 2_958_465  # 9999-12-31

_CURRENCY_SYMBOLS_RE = re.compile(r"[$€£¥₹¢]")
_CURRENCY_CODE_RE = re.compile(r"^\s*(USD|EUR|GBP|CAD|AUD|INR|JPY|CHF|MXN)\s*|\s*(USD|EUR|GBP|CAD|AUD|INR|JPY|CHF|MXN)\s*$", re.IGNORECASE)
_PLAIN_NUMBER_RE = re.compile(r"^[+-]?(\d+(\.\d*)?|\.\d+)$")
_US_GROUPED_RE = re.compile(r"^[+-]?\d{1,3}(,\d{3})+(\.\d+)?$")
_EU_GROUPED_RE = re.compile(r"^[+-]?\d{1,3}(\.\d{3})+(,\d+)?$")
_SERIAL_RE = re.compile(r"^\d+(\.\d+)?$")
_ISO_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}")

_DATE_FORMATS = (
    "%Y/%m/%d",
    "%m/%d/%Y",
    "%m/%d/%y",
    "%m/%d/%Y %I:%M %p",
    "%m/%d/%Y %I:%M:%S %p",
    "%m/%d/%Y %H:%M",
    "%m/%d/%Y %H:%M:%S",
    "%m-%d-%Y",
    "%d.%m.%Y",
    "%d-%b-%Y",
    "%d %b %Y",
    "%d %B %Y",
    "%b %d, %Y",
    "%B %d, %Y",
    "%b %d %Y",
    "%B %d %Y",
)

_TRUE_WORDS = frozenset({"true", "yes", "1"})
_FALSE_WORDS = frozenset({"false", "no", "0"})


@dataclass(frozen=True)
class CoercionResult:
    """Result of coercing a value to a type hint."""

    success: bool
    value: str = ""
    code: str | None = None
    message: str | None = None


# -----------------------------------------------------------------------------
# Rendering
# -----------------------------------------------------------------------------


def format_decimal(d: Decimal) -> str:
    """Render a Decimal without exponent or trailing zeros (``1E+3`` -> ``1000``)."""
    text = format(d.normalize(), "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    if text in ("-0", ""):
        return "0"
    return text


def cell_to_text(value: Any) -> str:
    """Render any raw cell / config value as trimmed output text."""
    if value is None:
        return ""
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        if value != value or value in (float("inf"), float("-inf")):
            return ""
        return format_decimal(Decimal(repr(value)))
    if isinstance(value, Decimal):
        return format_decimal(value)
    if isinstance(value, datetime):
        if value.hour == value.minute == value.second == value.microsecond == 0:
            return value.date().isoformat()
        return value.isoformat()
    if isinstance(value, date):
        return value.isoformat()
    return str(value).strip()


def is_blank(value: Any) -> bool:
    return cell_to_text(value) == ""


# -----------------------------------------------------------------------------
# Parsers (return None on failure)
# -----------------------------------------------------------------------------


def parse_number(value: Any) -> Decimal | None:
    """
    Locale-tolerant numeric parse.

    Strips currency symbols/codes, whitespace and apostrophe grouping;
    ``(500)`` and ``500-`` are negative. When both ``,`` and ``.`` appear the
    right-most one is the decimal separator; a lone ``,`` followed by exactly
    three digits is a thousands separator, otherwise a decimal comma.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return Decimal(value)
    if isinstance(value, float):
        if value != value or value in (float("inf"), float("-inf")):
            return None
        return Decimal(repr(value))
    if isinstance(value, Decimal):
        return value if value.is_finite() else None
    if not isinstance(value, str):
        return None

    s = value.strip()
    if not s:
        return None
    s = _CURRENCY_SYMBOLS_RE.sub("", s)
    s = _CURRENCY_CODE_RE.sub("", s)
    s = re.sub(r"[\s']", "", s)

    negative = False
    if s.startswith("(") and s.endswith(")"):
        negative, s = True, s[1:-1]
    if s.endswith("-") and not s.startswith("-"):
        negative, s = True, s[:-1]
    if s.startswith("-") and negative:
        return None

    if "," in s and "." in s:
        if s.rfind(",") > s.rfind("."):
            s = s.replace(".", "").replace(",", ".")
        else:
            s = s.replace(",", "")
    elif "," in s:
        if _US_GROUPED_RE.match(s):
            s = s.replace(",", "")
        elif s.count(",") == 1:
            s = s.replace(",", ".")
        else:
            return None
    elif s.count(".") > 1:
        if not _EU_GROUPED_RE.match(s):
            return None
        s = s.replace(".", "")

    if not _PLAIN_NUMBER_RE.match(s):
        return None
    try:
        d = Decimal(s)
    except InvalidOperation:
        return None
    return -d if negative else d


def excel_serial_to_date(serial: float) -> date | None:
    if not 1 <= serial <= _MAX_EXCEL_SERIAL:
        return None
    return EXCEL_EPOCH + timedelta(days=int(serial))


def parse_date(value: Any) -> date | None:
    """ISO-8601 first, then spreadsheet serials, then common export formats (US month-first)."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float, Decimal)):
        return excel_serial_to_date(float(value))
    if not isinstance(value, str):
        return None

    s = value.strip()
    if not s:
        return None
    if _ISO_DATE_RE.match(s):
        try:
            return datetime.fromisoformat(s.replace("Z", "+00:00")).date()
        except ValueError:
            try:
                return date.fromisoformat(s[:10])
            except ValueError:
                return None
    if _SERIAL_RE.match(s):
        return excel_serial_to_date(float(s))
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(s, fmt).date()
        except ValueError:
            continue
    return None


def parse_boolean(value: Any) -> bool | None:
    """``true/false/yes/no/1/0``, case-insensitive."""
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float, Decimal)):
        if value == 1:
            return True
        if value == 0:
            return False
        return None
    if not isinstance(value, str):
        return None
    low = value.strip().lower()
    if low in _TRUE_WORDS:
        return True
    if low in _FALSE_WORDS:
        return False
    return None


# -----------------------------------------------------------------------------
# Coercion entry point
# -----------------------------------------------------------------------------


def coerce_value(value: Any, hint: TypeHint) -> CoercionResult:
    """
    Coerce a non-empty raw value to ``hint``. Pure function.

    Empty values are the caller's concern (required/default handling) and
    are returned unchanged as ``""``.
    """
    text = cell_to_text(value)
    if not text:
        return CoercionResult(success=True, value="")

    if hint == TypeHint.STRING:
        return CoercionResult(success=True, value=text)

    if hint == TypeHint.NUMBER:
        d = parse_number(value)
        if d is None:
            return CoercionResult(
                success=False,
                code="INVALID_NUMBER",
                message=f"cannot parse number from {text!r}",
            )
        return CoercionResult(success=True, value=format_decimal(d))

    if hint == TypeHint.DATE:
        d = parse_date(value)
        if d is None:
            return CoercionResult(
                success=False,
                code="INVALID_DATE",
                message=f"cannot parse date from {text!r}",
            )
        return CoercionResult(success=True, value=d.isoformat())

    if hint == TypeHint.BOOLEAN:
        b = parse_boolean(value)
        if b is None:
            return CoercionResult(
                success=False,
                code="INVALID_BOOLEAN",
                message=f"cannot parse boolean from {text!r}",
            )
        return CoercionResult(success=True, value="true" if b else "false")

    return CoercionResult(success=False, code="UNSUPPORTED_TYPE", message=f"unsupported type hint: {hint}")
