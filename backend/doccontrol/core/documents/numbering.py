"""
Document number formatting.

Real numbers look like ``MRT-ITX-PRX-006``: company code, department code,
document type code (each three upper-case letters, short codes padded with
``X``) and a three digit sequence that is scoped to the prefix. Until a
number is allocated a document carries a ``PENDING-<epoch ms>-<hex>``
placeholder.
"""
import re
import secrets
from datetime import datetime, timezone
from typing import Iterable

from doccontrol.errors import Conflict, ValidationError

PENDING_PREFIX = "PENDING-"
MAX_SEQUENCE = 999

DOCUMENT_NUMBER_RE = re.compile(r"^[A-Z]{3}-[A-Z]{3}-[A-Z]{3}-\d{3}$")


def _code(value: str | None) -> str:
    return (value or "")[:3].upper().ljust(3, "X")


def build_prefix(company_code: str, dept_code: str | None, type_code: str | None) -> str:
    if not dept_code or not type_code:
        raise ValidationError("Department and document type must both have a code")
    return f"{_code(company_code)}-{_code(dept_code)}-{_code(type_code)}"


def next_document_number(prefix: str, existing: Iterable[str]) -> str:
    """
    >>> next_document_number("MRT-ITX-PRX", ["MRT-ITX-PRX-001", "MRT-ITX-PRX-005"])
    'MRT-ITX-PRX-006'
    """
    pattern = re.compile(rf"^{re.escape(prefix)}-(\d+)$", re.IGNORECASE)
    highest = 0
    for number in existing:
        if not number or is_pending_number(number):
            continue
        match = pattern.match(number.strip())
        if match:
            highest = max(highest, int(match.group(1)))
    sequence = highest + 1
    if sequence > MAX_SEQUENCE:
        raise Conflict(f"Sequence for {prefix} is exhausted")
    return f"{prefix}-{sequence:03d}"


def normalize_manual_number(raw: str | None) -> str:
    value = (raw or "").strip().upper()
    if not DOCUMENT_NUMBER_RE.match(value):
        raise ValidationError("Invalid format. Expected XXX-XXX-XXX-NNN (e.g. MRT-ITX-PRX-007)")
    return value


def pending_document_number(now: datetime | None = None) -> str:
    now = now or datetime.now(timezone.utc)
    millis = int(now.timestamp() * 1000)
    return f"{PENDING_PREFIX}{millis}-{secrets.token_hex(3)}"


def is_pending_number(value: str | None) -> bool:
    return bool(value) and value.startswith(PENDING_PREFIX)
