"""
Document statuses, the transition table and the pure rules that decide when
the workflow moves on its own.
"""
import calendar
from datetime import date
from typing import Iterable

from doccontrol.core.documents.models import ROLE_TYPE_APPROVER, ROLE_TYPE_REVIEWER, DocumentAssignment


class DocumentStatus:
    INITIATION = "Initiation"
    REVIEW = "Review"
    WAITING_APPROVAL = "Waiting Approval"
    APPROVED = "Approved"
    CLOSED = "Closed"
    REJECTED = "Rejected"
    CANCEL = "Cancel"

    ALL = (INITIATION, REVIEW, WAITING_APPROVAL, APPROVED, CLOSED, REJECTED, CANCEL)
    PRE_APPROVAL = (INITIATION, REVIEW, WAITING_APPROVAL)
    PUBLISHED = (APPROVED, CLOSED)
    TERMINAL = (APPROVED, CLOSED, REJECTED, CANCEL)


VALID_TRANSITIONS = {
    DocumentStatus.INITIATION: [DocumentStatus.REVIEW, DocumentStatus.WAITING_APPROVAL, DocumentStatus.REJECTED, DocumentStatus.CANCEL],
    DocumentStatus.REVIEW: [DocumentStatus.INITIATION, DocumentStatus.WAITING_APPROVAL, DocumentStatus.REJECTED, DocumentStatus.CANCEL],
    DocumentStatus.WAITING_APPROVAL: [
        DocumentStatus.INITIATION, DocumentStatus.REVIEW, DocumentStatus.APPROVED, DocumentStatus.REJECTED, DocumentStatus.CANCEL,
    ],
    DocumentStatus.APPROVED: [DocumentStatus.CLOSED],
    DocumentStatus.CLOSED: [],
    DocumentStatus.REJECTED: [],
    DocumentStatus.CANCEL: [],
}

REVIEW_DECISIONS = ("submitted", "approved", "requested_changes")

APPROVAL_APPROVED = "approved"
APPROVAL_REJECTED = "rejected"


def can_transition(current: str, new: str) -> bool:
    return new in VALID_TRANSITIONS.get(current, [])


def _of_role(assignments: Iterable[DocumentAssignment], role_type: str) -> list[DocumentAssignment]:
    return [a for a in assignments if a.role_type == role_type]


def pending_reviewers(assignments: Iterable[DocumentAssignment]) -> list[DocumentAssignment]:
    return [a for a in _of_role(assignments, ROLE_TYPE_REVIEWER) if not a.is_completed]


def pending_approvers(assignments: Iterable[DocumentAssignment]) -> list[DocumentAssignment]:
    return [a for a in _of_role(assignments, ROLE_TYPE_APPROVER) if not a.is_completed]


def all_approvers_done(assignments: Iterable[DocumentAssignment]) -> bool:
    """False when there are no approvers at all."""
    approvers = _of_role(assignments, ROLE_TYPE_APPROVER)
    return bool(approvers) and all(a.is_completed for a in approvers)


def derive_pre_approval_status(assignments: Iterable[DocumentAssignment]) -> str:
    """
    Status a pre-approval document should sit in given its assignments:
    pending reviewers keep it in Review, otherwise any reviewer or approver
    makes it ready for approval, and a bare document stays in Initiation.
    """
    assignments = list(assignments)
    if pending_reviewers(assignments):
        return DocumentStatus.REVIEW
    if _of_role(assignments, ROLE_TYPE_REVIEWER) or _of_role(assignments, ROLE_TYPE_APPROVER):
        return DocumentStatus.WAITING_APPROVAL
    return DocumentStatus.INITIATION


def add_years(start: date, years: int) -> date:
    """Same day ``years`` later. Feb 29 becomes Feb 28 in non-leap years."""
    target_year = start.year + years
    if start.month == 2 and start.day == 29 and not calendar.isleap(target_year):
        return date(target_year, 2, 28)
    return start.replace(year=target_year)
