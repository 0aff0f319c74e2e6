import uuid
from datetime import date, timedelta

import pytest

from conftest import make_reference_data, make_user
from doccontrol.core.documents.models import Document, DocumentAssignment, ROLE_TYPE_APPROVER, ROLE_TYPE_REVIEWER
from doccontrol.core.documents.workflow import DocumentStatus
from doccontrol.core.notifications.email import Outbox
from doccontrol.core.rbac.models import ROLE_MQS_REPS
from doccontrol.core.reminders import service
from doccontrol.core.reminders.service import days_between, format_date, scan_reminders, should_send_overdue_reminder

TODAY = date(2026, 3, 10)


@pytest.mark.parametrize("days_overdue,expected", [
    (-3, False), (0, False), (1, True), (2, False), (6, False), (7, True), (8, False), (14, True), (21, True),
])
def test_overdue_throttle(days_overdue, expected):
    assert should_send_overdue_reminder(days_overdue) is expected


def test_overdue_throttle_custom_interval():
    assert should_send_overdue_reminder(3, interval=3)
    assert not should_send_overdue_reminder(7, interval=3)


def test_days_between():
    assert days_between(TODAY, TODAY + timedelta(days=3)) == 3
    assert days_between(TODAY, TODAY - timedelta(days=2)) == -2


def test_format_date():
    assert format_date(date(2026, 3, 5)) == "March 5, 2026"


async def _document(db, owner, department, doc_type, status, **fields) -> Document:
    document = Document(
        id=uuid.uuid4(), document_number=f"PENDING-{uuid.uuid4().hex[:12]}", title="Forklift Checklist",
        status=status, department_id=department.id, document_type_id=doc_type.id, created_by=owner.user_id,
        **fields,
    )
    db.add(document)
    await db.flush()
    return document


async def _assign(db, document, user, role_type, done=False):
    db.add(DocumentAssignment(
        document_id=document.id, user_id=user.user_id, role_type=role_type, is_completed=done,
    ))
    await db.flush()


def test_deadline_reminders_go_to_pending_assignees(run_db):
    async def scenario(db):
        department, doc_type = await make_reference_data(db)
        owner = await make_user(db, "owner@example.com", ROLE_MQS_REPS)
        reviewer = await make_user(db, "reviewer@example.com")
        done_reviewer = await make_user(db, "done@example.com")
        approver = await make_user(db, "approver@example.com")
        document = await _document(
            db, owner, department, doc_type, DocumentStatus.REVIEW, target_approval_date=TODAY + timedelta(days=2),
        )
        await _assign(db, document, reviewer, ROLE_TYPE_REVIEWER)
        await _assign(db, document, done_reviewer, ROLE_TYPE_REVIEWER, done=True)
        await _assign(db, document, approver, ROLE_TYPE_APPROVER)
        # outside the horizon
        await _document(db, owner, department, doc_type, DocumentStatus.REVIEW, target_approval_date=TODAY + timedelta(days=10))

        outbox = Outbox()
        counters = await scan_reminders(db, TODAY, outbox)
        return counters, outbox

    counters, outbox = run_db(scenario)
    assert counters.deadline_reminders == 2
    assert counters.overdue_reminders == 0
    assert sorted(m.to[0] for m in outbox) == ["approver@example.com", "reviewer@example.com"]
    message = next(iter(outbox))
    assert message.template == "reminder"
    assert message.subject == "Reminder: Forklift Checklist - 2 days"
    assert message.data["target_date"] == "March 12, 2026"


def test_overdue_reminder_includes_owner_on_throttle_days(run_db):
    async def scenario(db):
        department, doc_type = await make_reference_data(db)
        owner = await make_user(db, "owner@example.com", ROLE_MQS_REPS)
        approver = await make_user(db, "approver@example.com")
        due_today = await _document(
            db, owner, department, doc_type, DocumentStatus.WAITING_APPROVAL,
            target_approval_date=TODAY - timedelta(days=7),
        )
        await _assign(db, due_today, approver, ROLE_TYPE_APPROVER)
        skipped = await _document(
            db, owner, department, doc_type, DocumentStatus.WAITING_APPROVAL,
            target_approval_date=TODAY - timedelta(days=3),
        )
        await _assign(db, skipped, approver, ROLE_TYPE_APPROVER)

        outbox = Outbox()
        counters = await scan_reminders(db, TODAY, outbox)
        return counters, outbox

    counters, outbox = run_db(scenario)
    assert counters.overdue_reminders == 2
    roles = {m.to[0]: m.data["recipient_role"] for m in outbox}
    assert roles == {"approver@example.com": "Approver", "owner@example.com": "Document Owner"}
    assert all(m.subject == "Overdue: Forklift Checklist" for m in outbox)


def test_terminal_documents_are_ignored(run_db):
    async def scenario(db):
        department, doc_type = await make_reference_data(db)
        owner = await make_user(db, "owner@example.com", ROLE_MQS_REPS)
        reviewer = await make_user(db, "reviewer@example.com")
        for status in (DocumentStatus.REJECTED, DocumentStatus.CANCEL):
            document = await _document(db, owner, department, doc_type, status, target_approval_date=TODAY)
            await _assign(db, document, reviewer, ROLE_TYPE_REVIEWER)
        outbox = Outbox()
        counters = await scan_reminders(db, TODAY, outbox)
        return counters, outbox

    counters, outbox = run_db(scenario)
    assert counters.deadline_reminders == 0
    assert len(outbox) == 0


def test_expiry_warnings_on_configured_days(run_db, monkeypatch):
    monkeypatch.setattr(service.settings, "EXPIRY_WARNING_DAYS", [30, 7])

    async def scenario(db):
        department, doc_type = await make_reference_data(db)
        owner = await make_user(db, "owner@example.com", ROLE_MQS_REPS)
        await _document(db, owner, department, doc_type, DocumentStatus.APPROVED, expiry_date=TODAY + timedelta(days=30))
        await _document(db, owner, department, doc_type, DocumentStatus.CLOSED, expiry_date=TODAY + timedelta(days=7))
        await _document(db, owner, department, doc_type, DocumentStatus.APPROVED, expiry_date=TODAY + timedelta(days=8))
        outbox = Outbox()
        counters = await scan_reminders(db, TODAY, outbox)
        return counters, outbox

    counters, outbox = run_db(scenario)
    assert counters.expiry_reminders == 2
    assert [m.subject for m in outbox] == [
        "Document Expiring: Forklift Checklist - 30 days",
        "Document Expiring: Forklift Checklist - 7 days",
    ]
    assert {m.to for m in outbox} == {("owner@example.com",)}
