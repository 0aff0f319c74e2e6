from datetime import datetime, timezone

import pytest

from doccontrol.core.documents.numbering import (
    DOCUMENT_NUMBER_RE, build_prefix, is_pending_number, next_document_number, normalize_manual_number,
    pending_document_number,
)
from doccontrol.errors import Conflict, ValidationError


def test_prefix_pads_short_codes():
    assert build_prefix("MRT", "IT", "PR") == "MRT-ITX-PRX"


def test_prefix_truncates_and_uppercases():
    assert build_prefix("mrt", "finance", "sop") == "MRT-FIN-SOP"


def test_prefix_requires_both_codes():
    with pytest.raises(ValidationError):
        build_prefix("MRT", "", "PR")
    with pytest.raises(ValidationError):
        build_prefix("MRT", "IT", None)


def test_first_number_in_prefix():
    assert next_document_number("MRT-ITX-PRX", []) == "MRT-ITX-PRX-001"


def test_next_number_is_max_plus_one():
    existing = ["MRT-ITX-PRX-001", "MRT-ITX-PRX-005", "MRT-ITX-PRX-003"]
    assert next_document_number("MRT-ITX-PRX", existing) == "MRT-ITX-PRX-006"


def test_next_number_ignores_other_prefixes_and_placeholders():
    existing = ["MRT-HRX-PRX-010", "PENDING-1700000000000-abc123", "MRT-ITX-PRX-002", "", None]
    assert next_document_number("MRT-ITX-PRX", existing) == "MRT-ITX-PRX-003"


def test_sequence_exhausted():
    with pytest.raises(Conflict):
        next_document_number("MRT-ITX-PRX", ["MRT-ITX-PRX-999"])


def test_manual_number_normalised():
    assert normalize_manual_number("  mrt-itx-prx-007 ") == "MRT-ITX-PRX-007"


@pytest.mark.parametrize("raw", ["", None, "MRT-IT-PRX-007", "MRT-ITX-PRX-07", "MRT-ITX-PRX-0007", "MRT_ITX_PRX_007"])
def test_manual_number_rejects_bad_format(raw):
    with pytest.raises(ValidationError):
        normalize_manual_number(raw)


def test_pending_number_shape():
    now = datetime(2026, 3, 1, tzinfo=timezone.utc)
    value = pending_document_number(now)
    assert value.startswith(f"PENDING-{int(now.timestamp() * 1000)}-")
    assert is_pending_number(value)
    assert not DOCUMENT_NUMBER_RE.match(value)


def test_pending_numbers_are_unique():
    now = datetime(2026, 3, 1, tzinfo=timezone.utc)
    assert pending_document_number(now) != pending_document_number(now)


def test_real_number_is_not_pending():
    assert not is_pending_number("MRT-ITX-PRX-001")
    assert not is_pending_number(None)
