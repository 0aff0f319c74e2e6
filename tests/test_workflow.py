import uuid
from datetime import date

from doccontrol.core.documents.models import (
    DocumentAssignment, ROLE_TYPE_APPROVER, ROLE_TYPE_REVIEWER, ROLE_TYPE_SUBMITTER,
)
from doccontrol.core.documents.workflow import (
    DocumentStatus, VALID_TRANSITIONS, add_years, all_approvers_done, can_transition, derive_pre_approval_status,
    pending_approvers, pending_reviewers,
)


def _assignment(role_type: str, done: bool = False) -> DocumentAssignment:
    return DocumentAssignment(
        id=uuid.uuid4(), document_id=uuid.uuid4(), user_id=uuid.uuid4(), role_type=role_type, is_completed=done,
    )


def test_terminal_statuses_have_no_exits():
    for status in (DocumentStatus.CLOSED, DocumentStatus.REJECTED, DocumentStatus.CANCEL):
        assert VALID_TRANSITIONS[status] == []


def test_approved_only_closes():
    assert can_transition(DocumentStatus.APPROVED, DocumentStatus.CLOSED)
    assert not can_transition(DocumentStatus.APPROVED, DocumentStatus.CANCEL)
    assert not can_transition(DocumentStatus.APPROVED, DocumentStatus.REJECTED)


def test_approval_only_from_waiting_approval():
    assert can_transition(DocumentStatus.WAITING_APPROVAL, DocumentStatus.APPROVED)
    assert not can_transition(DocumentStatus.INITIATION, DocumentStatus.APPROVED)
    assert not can_transition(DocumentStatus.REVIEW, DocumentStatus.APPROVED)


def test_cancel_allowed_before_approval():
    for status in DocumentStatus.PRE_APPROVAL:
        assert can_transition(status, DocumentStatus.CANCEL)


def test_unknown_status_has_no_transitions():
    assert not can_transition("Draft", DocumentStatus.REVIEW)


def test_status_groups_partition_all():
    assert set(DocumentStatus.PRE_APPROVAL) | set(DocumentStatus.TERMINAL) == set(DocumentStatus.ALL)
    assert not set(DocumentStatus.PRE_APPROVAL) & set(DocumentStatus.TERMINAL)


def test_derived_status_with_pending_reviewer_is_review():
    assignments = [_assignment(ROLE_TYPE_SUBMITTER, True), _assignment(ROLE_TYPE_REVIEWER), _assignment(ROLE_TYPE_APPROVER)]
    assert derive_pre_approval_status(assignments) == DocumentStatus.REVIEW


def test_derived_status_after_reviews_is_waiting_approval():
    assignments = [_assignment(ROLE_TYPE_REVIEWER, True), _assignment(ROLE_TYPE_APPROVER)]
    assert derive_pre_approval_status(assignments) == DocumentStatus.WAITING_APPROVAL


def test_derived_status_approvers_only_is_waiting_approval():
    assert derive_pre_approval_status([_assignment(ROLE_TYPE_APPROVER)]) == DocumentStatus.WAITING_APPROVAL


def test_derived_status_bare_document_stays_in_initiation():
    assert derive_pre_approval_status([_assignment(ROLE_TYPE_SUBMITTER)]) == DocumentStatus.INITIATION
    assert derive_pre_approval_status([]) == DocumentStatus.INITIATION


def test_pending_lists_filter_by_role_and_completion():
    open_reviewer = _assignment(ROLE_TYPE_REVIEWER)
    open_approver = _assignment(ROLE_TYPE_APPROVER)
    assignments = [open_reviewer, _assignment(ROLE_TYPE_REVIEWER, True), open_approver, _assignment(ROLE_TYPE_SUBMITTER)]
    assert pending_reviewers(assignments) == [open_reviewer]
    assert pending_approvers(assignments) == [open_approver]


def test_all_approvers_done():
    assert all_approvers_done([_assignment(ROLE_TYPE_APPROVER, True), _assignment(ROLE_TYPE_APPROVER, True)])
    assert not all_approvers_done([_assignment(ROLE_TYPE_APPROVER, True), _assignment(ROLE_TYPE_APPROVER)])


def test_no_approvers_never_counts_as_done():
    """An empty approver set must not publish a document."""
    assert not all_approvers_done([])
    assert not all_approvers_done([_assignment(ROLE_TYPE_REVIEWER, True)])


def test_add_years():
    assert add_years(date(2026, 5, 17), 3) == date(2029, 5, 17)


def test_add_years_leap_day():
    assert add_years(date(2028, 2, 29), 3) == date(2031, 2, 28)
    assert add_years(date(2028, 2, 29), 4) == date(2032, 2, 29)
