"""
Field format validators (email, phone, URL, state, postal code).

Pure predicates over already-trimmed, non-empty strings. Empty values are
always accepted here; whether an empty value is acceptable is the
``required`` flag's business, not the format check's.
"""

from __future__ import annotations

import re
from collections.abc import Callable
from urllib.parse import urlparse

from crm_ingestion.domain.types import FormatCheck

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_PHONE_RE = re.compile(r"^[\d\s\-()+]+$")
_DOMAIN_RE = re.compile(r"^[a-zA-Z0-9][a-zA-Z0-9-]{0,61}[a-zA-Z0-9]?\.[a-zA-Z]{2,}$")
_STATE_RE = re.compile(r"^[A-Z]{2}$")
_POSTAL_RE = re.compile(r"^[\dA-Z\s\-]+$", re.IGNORECASE)


def validate_email(value: str) -> bool:
    if not value.strip():
        return True
    return bool(_EMAIL_RE.match(value.strip()))


def validate_phone(value: str) -> bool:
    """Digits, spaces, dashes, parentheses and plus sign only."""
    if not value.strip():
        return True
    return bool(_PHONE_RE.match(value.strip()))


def validate_url(value: str) -> bool:
    """Absolute URL with scheme and host, or a bare domain like ``example.com``."""
    v = value.strip()
    if not v:
        return True
    parsed = urlparse(v)
    if parsed.scheme and parsed.netloc:
        return True
    return bool(_DOMAIN_RE.match(v))


def validate_state(value: str) -> bool:
    """Two-letter state/province code."""
    if not value.strip():
        return True
    return bool(_STATE_RE.match(value.strip().upper()))


def validate_postal_code(value: str) -> bool:
    """US ZIP, ZIP+4, and common international shapes (``A1A 1A1``)."""
    if not value.strip():
        return True
    return bool(_POSTAL_RE.match(value.strip()))


FORMAT_VALIDATORS: dict[FormatCheck, Callable[[str], bool]] = {
    FormatCheck.EMAIL: validate_email,
    FormatCheck.PHONE: validate_phone,
    FormatCheck.URL: validate_url,
    FormatCheck.STATE: validate_state,
    FormatCheck.POSTAL: validate_postal_code,
}

FORMAT_LABELS: dict[FormatCheck, str] = {
    FormatCheck.EMAIL: "email",
    FormatCheck.PHONE: "phone",
    FormatCheck.URL: "URL",
    FormatCheck.STATE: "state/province (must be 2-letter code)",
    FormatCheck.POSTAL: "postal code",
}


def check_format(value: str, check: FormatCheck) -> bool:
    """Return True when ``value`` satisfies ``check``."""
    return FORMAT_VALIDATORS[check](value)
