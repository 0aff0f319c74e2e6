from datetime import date, timedelta

import pytest
from sqlalchemy import select

from conftest import future, make_reference_data, make_user
from doccontrol.core.documents import service
from doccontrol.core.documents.models import (
    DocumentApproval, DocumentReview, ROLE_TYPE_APPROVER, ROLE_TYPE_REVIEWER, ROLE_TYPE_SUBMITTER,
)
from doccontrol.core.documents.schemas import DocumentCreate, DocumentUpdate
from doccontrol.core.documents.workflow import DocumentStatus, add_years
from doccontrol.core.notifications.email import Outbox
from doccontrol.core.notifications.models import Notification
from doccontrol.core.rbac.models import ROLE_ADMIN, ROLE_MQS_REPS, ROLE_USER
from doccontrol.core.timeline import models as events
from doccontrol.core.timeline.service import list_events
from doccontrol.errors import Conflict, Forbidden, NotFound, ValidationError


async def _world(db, reviewers: int = 2, approvers: int = 1):
    department, doc_type = await make_reference_data(db)
    owner = await make_user(db, "owner@example.com", ROLE_MQS_REPS)
    admin = await make_user(db, "admin@example.com", ROLE_ADMIN)
    rs = [await make_user(db, f"reviewer{i}@example.com", ROLE_USER) for i in range(reviewers)]
    aps = [await make_user(db, f"approver{i}@example.com", ROLE_USER) for i in range(approvers)]
    return department, doc_type, owner, admin, rs, aps


async def _create(db, owner, department, doc_type, reviewers, approvers, outbox=None, **extra):
    data = DocumentCreate(
        title="IT Access Procedure",
        department_id=department.id,
        document_type_id=doc_type.id,
        target_approval_date=future(),
        reviewer_ids=[r.user_id for r in reviewers],
        approver_ids=[a.user_id for a in approvers],
        **extra,
    )
    return await service.create_document(db, owner, data, outbox if outbox is not None else Outbox())


async def _slot(db, document, who, role_type):
    return next(
        a for a in await service.get_assignments(db, document.id)
        if a.user_id == who.user_id and a.role_type == role_type
    )


# ── Create ────────────────────────────────────────────────────────────────────

def test_create_with_reviewers_goes_to_review(run_db):
    async def scenario(db):
        department, doc_type, owner, _, rs, aps = await _world(db)
        outbox = Outbox()
        document = await _create(db, owner, department, doc_type, rs, aps, outbox)

        assert document.status == DocumentStatus.REVIEW
        assert document.document_number.startswith("PENDING-")
        assignments = await service.get_assignments(db, document.id)
        assert sorted(a.role_type for a in assignments) == [
            ROLE_TYPE_APPROVER, ROLE_TYPE_REVIEWER, ROLE_TYPE_REVIEWER, ROLE_TYPE_SUBMITTER,
        ]
        assert [m.template for m in outbox] == ["assignmentReviewer", "assignmentReviewer", "assignmentApprover"]
        kinds = {e.event_type for e in await list_events(db, document.id)}
        assert {events.EVENT_CREATED, events.EVENT_SUBMITTED} <= kinds
        notified = (await db.execute(select(Notification.user_id))).scalars().all()
        assert set(notified) == {rs[0].user_id, rs[1].user_id, aps[0].user_id}

    run_db(scenario)


def test_create_with_approvers_only_waits_for_approval(run_db):
    async def scenario(db):
        department, doc_type, owner, _, _, aps = await _world(db, reviewers=0)
        document = await _create(db, owner, department, doc_type, [], aps)
        assert document.status == DocumentStatus.WAITING_APPROVAL

    run_db(scenario)


def test_create_without_assignees_stays_in_initiation(run_db):
    async def scenario(db):
        department, doc_type, owner, *_ = await _world(db, reviewers=0, approvers=0)
        document = await _create(db, owner, department, doc_type, [], [])
        assert document.status == DocumentStatus.INITIATION

    run_db(scenario)


def test_plain_user_cannot_create(run_db):
    async def scenario(db):
        department, doc_type, _, _, rs, aps = await _world(db)
        with pytest.raises(Forbidden):
            await _create(db, rs[0], department, doc_type, [], aps)

    run_db(scenario)


def test_create_rejects_blank_title_and_past_target(run_db):
    async def scenario(db):
        department, doc_type, owner, *_ = await _world(db)
        with pytest.raises(ValidationError):
            await service.create_document(db, owner, DocumentCreate(
                title="   ", department_id=department.id, document_type_id=doc_type.id,
            ), Outbox())
        with pytest.raises(ValidationError):
            await service.create_document(db, owner, DocumentCreate(
                title="Late", department_id=department.id, document_type_id=doc_type.id,
                target_approval_date=date.today() - timedelta(days=1),
            ), Outbox())

    run_db(scenario)


def test_duplicate_assignees_collapse(run_db):
    async def scenario(db):
        department, doc_type, owner, _, rs, aps = await _world(db, reviewers=1)
        document = await _create(db, owner, department, doc_type, [rs[0], rs[0]], aps)
        reviewers = [a for a in await service.get_assignments(db, document.id) if a.role_type == ROLE_TYPE_REVIEWER]
        assert len(reviewers) == 1

    run_db(scenario)


# ── Review and approval ───────────────────────────────────────────────────────

def test_full_lifecycle_publishes_with_expiry(run_db):
    async def scenario(db):
        department, doc_type, owner, _, rs, aps = await _world(db)
        document = await _create(db, owner, department, doc_type, rs, aps)

        outbox = Outbox()
        first = await _slot(db, document, rs[0], ROLE_TYPE_REVIEWER)
        await service.submit_review(db, rs[0], document.id, first.id, "approved", None, outbox)
        assert document.status == DocumentStatus.REVIEW

        second = await _slot(db, document, rs[1], ROLE_TYPE_REVIEWER)
        await service.submit_review(db, rs[1], document.id, second.id, "submitted", "Looks fine", outbox)
        assert document.status == DocumentStatus.WAITING_APPROVAL
        assert "readyForApproval" in [m.template for m in outbox]

        slot = await _slot(db, document, aps[0], ROLE_TYPE_APPROVER)
        await service.approve_document(db, aps[0], document.id, slot.id, "Approved", outbox)

        assert document.status == DocumentStatus.APPROVED
        assert document.effective_date == date.today()
        assert document.expiry_date == add_years(date.today(), 3)
        assert document.approved_at is not None
        reviews = (await db.execute(select(DocumentReview))).scalars().all()
        assert {r.status for r in reviews} == {"approved", "submitted"}
        kinds = [e.event_type for e in await list_events(db, document.id)]
        assert events.EVENT_PUBLISHED in kinds

    run_db(scenario)


def test_second_approver_required_before_publish(run_db):
    async def scenario(db):
        department, doc_type, owner, _, _, aps = await _world(db, reviewers=0, approvers=2)
        document = await _create(db, owner, department, doc_type, [], aps)
        slot = await _slot(db, document, aps[0], ROLE_TYPE_APPROVER)
        await service.approve_document(db, aps[0], document.id, slot.id, None, Outbox())
        assert document.status == DocumentStatus.WAITING_APPROVAL

    run_db(scenario)


def test_cannot_approve_while_reviews_pending(run_db):
    async def scenario(db):
        department, doc_type, owner, _, rs, aps = await _world(db)
        document = await _create(db, owner, department, doc_type, rs, aps)
        slot = await _slot(db, document, aps[0], ROLE_TYPE_APPROVER)
        with pytest.raises(Conflict, match="Cannot approve until all reviewers complete"):
            await service.approve_document(db, aps[0], document.id, slot.id, None, Outbox())
        assert not slot.is_completed

    run_db(scenario)


def test_review_cannot_be_completed_twice(run_db):
    async def scenario(db):
        department, doc_type, owner, _, rs, aps = await _world(db)
        document = await _create(db, owner, department, doc_type, rs, aps)
        slot = await _slot(db, document, rs[0], ROLE_TYPE_REVIEWER)
        await service.submit_review(db, rs[0], document.id, slot.id, "submitted", None, Outbox())
        first_completed_at = slot.completed_at
        with pytest.raises(Conflict, match="already completed"):
            await service.submit_review(db, rs[0], document.id, slot.id, "approved", None, Outbox())
        assert (await _slot(db, document, rs[0], ROLE_TYPE_REVIEWER)).completed_at == first_completed_at

    run_db(scenario)


def test_requested_changes_needs_comment(run_db):
    async def scenario(db):
        department, doc_type, owner, _, rs, aps = await _world(db)
        document = await _create(db, owner, department, doc_type, rs, aps)
        slot = await _slot(db, document, rs[0], ROLE_TYPE_REVIEWER)
        with pytest.raises(ValidationError):
            await service.submit_review(db, rs[0], document.id, slot.id, "requested_changes", "  ", Outbox())

    run_db(scenario)


def test_review_on_someone_elses_slot_not_found(run_db):
    async def scenario(db):
        department, doc_type, owner, _, rs, aps = await _world(db)
        document = await _create(db, owner, department, doc_type, rs, aps)
        slot = await _slot(db, document, rs[0], ROLE_TYPE_REVIEWER)
        with pytest.raises(NotFound):
            await service.submit_review(db, rs[1], document.id, slot.id, "submitted", None, Outbox())

    run_db(scenario)


def test_reject_requires_reason_and_is_terminal(run_db):
    async def scenario(db):
        department, doc_type, owner, _, _, aps = await _world(db, reviewers=0, approvers=2)
        document = await _create(db, owner, department, doc_type, [], aps)
        slot = await _slot(db, document, aps[0], ROLE_TYPE_APPROVER)
        with pytest.raises(ValidationError):
            await service.reject_document(db, aps[0], document.id, slot.id, "", Outbox())

        outbox = Outbox()
        await service.reject_document(db, aps[0], document.id, slot.id, "Scope is wrong", outbox)
        assert document.status == DocumentStatus.REJECTED
        assert document.rejection_reason == "Scope is wrong"
        assert document.rejected_at is not None
        assert [m.template for m in outbox] == ["approvalSubmitted"]
        decisions = (await db.execute(select(DocumentApproval.decision))).scalars().all()
        assert decisions == ["rejected"]

        other = await _slot(db, document, aps[1], ROLE_TYPE_APPROVER)
        with pytest.raises(Conflict):
            await service.approve_document(db, aps[1], document.id, other.id, None, Outbox())

    run_db(scenario)


# ── Close and cancel ──────────────────────────────────────────────────────────

def test_cancel_before_approval(run_db):
    async def scenario(db):
        department, doc_type, owner, _, rs, aps = await _world(db)
        document = await _create(db, owner, department, doc_type, rs, aps)
        with pytest.raises(ValidationError):
            await service.cancel_document(db, owner, document.id, " ", Outbox())
        with pytest.raises(Forbidden):
            await service.cancel_document(db, rs[0], document.id, "Not needed", Outbox())

        await service.cancel_document(db, owner, document.id, "Not needed", Outbox())
        assert document.status == DocumentStatus.CANCEL
        assert document.cancellation_reason == "Not needed"

    run_db(scenario)


def test_close_only_after_approval(run_db):
    async def scenario(db):
        department, doc_type, owner, admin, _, aps = await _world(db, reviewers=0)
        document = await _create(db, owner, department, doc_type, [], aps)
        with pytest.raises(Conflict):
            await service.close_document(db, admin, document.id, None, Outbox())

        slot = await _slot(db, document, aps[0], ROLE_TYPE_APPROVER)
        await service.approve_document(db, aps[0], document.id, slot.id, None, Outbox())
        with pytest.raises(Conflict):
            await service.cancel_document(db, admin, document.id, "Too late", Outbox())

        outbox = Outbox()
        await service.close_document(db, admin, document.id, "Superseded", outbox)
        assert document.status == DocumentStatus.CLOSED
        assert document.closing_comment == "Superseded"
        assert [m.template for m in outbox] == ["statusChanged"]

    run_db(scenario)


# ── Numbering ─────────────────────────────────────────────────────────────────

def test_assign_numbers_in_sequence(run_db):
    async def scenario(db):
        department, doc_type, owner, admin, _, aps = await _world(db, reviewers=0)
        first = await _create(db, owner, department, doc_type, [], aps)
        second = await _create(db, owner, department, doc_type, [], aps)

        assert await service.preview_document_number(db, department.id, doc_type.id) == "MRT-ITX-PRX-001"
        await service.assign_document_number(db, admin, first.id)
        await service.assign_document_number(db, admin, second.id)
        assert first.document_number == "MRT-ITX-PRX-001"
        assert second.document_number == "MRT-ITX-PRX-002"

        with pytest.raises(Conflict):
            await service.assign_document_number(db, admin, first.id)

    run_db(scenario)


def test_manual_number_must_be_unique(run_db):
    async def scenario(db):
        department, doc_type, owner, admin, _, aps = await _world(db, reviewers=0)
        first = await _create(db, owner, department, doc_type, [], aps)
        second = await _create(db, owner, department, doc_type, [], aps)
        await service.assign_document_number(db, admin, first.id, "mrt-itx-prx-007")
        assert first.document_number == "MRT-ITX-PRX-007"

        with pytest.raises(Conflict):
            await service.assign_document_number(db, admin, second.id, "MRT-ITX-PRX-007")
        with pytest.raises(ValidationError):
            await service.assign_document_number(db, admin, second.id, "7")
        await service.assign_document_number(db, admin, second.id)
        assert second.document_number == "MRT-ITX-PRX-008"

    run_db(scenario)


def test_only_controllers_assign_numbers(run_db):
    async def scenario(db):
        department, doc_type, owner, _, _, aps = await _world(db, reviewers=0)
        document = await _create(db, owner, department, doc_type, [], aps)
        with pytest.raises(Forbidden):
            await service.assign_document_number(db, owner, document.id)

    run_db(scenario)


# ── Editing ───────────────────────────────────────────────────────────────────

def test_edit_removing_reviewers_moves_to_waiting_approval(run_db):
    async def scenario(db):
        department, doc_type, owner, admin, rs, aps = await _world(db)
        document = await _create(db, owner, department, doc_type, rs, aps)
        outbox = Outbox()
        await service.update_document(db, admin, document.id, DocumentUpdate(reviewer_ids=[]), outbox)
        assert document.status == DocumentStatus.WAITING_APPROVAL

        assert [(m.template, m.to) for m in outbox] == [("readyForApproval", ("approver0@example.com",))]
        notices = (await db.execute(
            select(Notification).where(Notification.user_id == aps[0].user_id)
        )).scalars().all()
        assert "Ready for your approval" in [n.title for n in notices]

    run_db(scenario)


def test_edit_new_approver_gets_assignment_mail_only(run_db):
    async def scenario(db):
        department, doc_type, owner, admin, rs, aps = await _world(db, reviewers=1, approvers=2)
        document = await _create(db, owner, department, doc_type, rs, aps[:1])
        outbox = Outbox()
        await service.update_document(
            db, admin, document.id,
            DocumentUpdate(reviewer_ids=[], approver_ids=[aps[0].user_id, aps[1].user_id]), outbox,
        )
        assert document.status == DocumentStatus.WAITING_APPROVAL
        assert sorted((m.template, m.to[0]) for m in outbox) == [
            ("assignmentApprover", "approver1@example.com"),
            ("readyForApproval", "approver0@example.com"),
        ]

    run_db(scenario)


def test_edit_dropping_last_pending_approver_publishes(run_db):
    async def scenario(db):
        department, doc_type, owner, admin, _, aps = await _world(db, reviewers=0, approvers=2)
        document = await _create(db, owner, department, doc_type, [], aps)
        slot = await _slot(db, document, aps[0], ROLE_TYPE_APPROVER)
        await service.approve_document(db, aps[0], document.id, slot.id, None, Outbox())
        assert document.status == DocumentStatus.WAITING_APPROVAL

        await service.update_document(
            db, admin, document.id, DocumentUpdate(approver_ids=[aps[0].user_id]), Outbox(),
        )
        assert document.status == DocumentStatus.APPROVED
        assert document.expiry_date == add_years(date.today(), 3)
        kinds = [e.event_type for e in await list_events(db, document.id)]
        assert events.EVENT_PUBLISHED in kinds

    run_db(scenario)


def test_edit_adding_reviewer_returns_to_review(run_db):
    async def scenario(db):
        department, doc_type, owner, admin, rs, aps = await _world(db)
        document = await _create(db, owner, department, doc_type, [], aps)
        assert document.status == DocumentStatus.WAITING_APPROVAL

        outbox = Outbox()
        await service.update_document(
            db, admin, document.id, DocumentUpdate(reviewer_ids=[rs[0].user_id]), outbox,
        )
        assert document.status == DocumentStatus.REVIEW
        assert [m.template for m in outbox] == ["assignmentReviewer"]

    run_db(scenario)


def test_edit_preserves_completed_reviews(run_db):
    async def scenario(db):
        department, doc_type, owner, admin, rs, aps = await _world(db)
        document = await _create(db, owner, department, doc_type, rs, aps)
        slot = await _slot(db, document, rs[0], ROLE_TYPE_REVIEWER)
        await service.submit_review(db, rs[0], document.id, slot.id, "submitted", None, Outbox())

        await service.update_document(
            db, admin, document.id, DocumentUpdate(reviewer_ids=[rs[1].user_id]), Outbox(),
        )
        reviewers = {
            a.user_id for a in await service.get_assignments(db, document.id) if a.role_type == ROLE_TYPE_REVIEWER
        }
        assert reviewers == {rs[0].user_id, rs[1].user_id}

    run_db(scenario)


def test_edit_delete_mode_drops_completed_reviews(run_db, monkeypatch):
    monkeypatch.setattr(service.settings, "ON_EDIT_REMOVE_COMPLETED", "delete")

    async def scenario(db):
        department, doc_type, owner, admin, rs, aps = await _world(db)
        document = await _create(db, owner, department, doc_type, rs, aps)
        slot = await _slot(db, document, rs[0], ROLE_TYPE_REVIEWER)
        await service.submit_review(db, rs[0], document.id, slot.id, "submitted", None, Outbox())

        await service.update_document(
            db, admin, document.id, DocumentUpdate(reviewer_ids=[rs[1].user_id]), Outbox(),
        )
        reviewers = {
            a.user_id for a in await service.get_assignments(db, document.id) if a.role_type == ROLE_TYPE_REVIEWER
        }
        assert reviewers == {rs[1].user_id}

    run_db(scenario)


def test_only_controllers_edit_and_not_after_approval(run_db):
    async def scenario(db):
        department, doc_type, owner, admin, _, aps = await _world(db, reviewers=0)
        document = await _create(db, owner, department, doc_type, [], aps)
        with pytest.raises(Forbidden):
            await service.update_document(db, owner, document.id, DocumentUpdate(title="New"), Outbox())

        slot = await _slot(db, document, aps[0], ROLE_TYPE_APPROVER)
        await service.approve_document(db, aps[0], document.id, slot.id, None, Outbox())
        with pytest.raises(Conflict):
            await service.update_document(db, admin, document.id, DocumentUpdate(title="New"), Outbox())

    run_db(scenario)


# ── Reads ─────────────────────────────────────────────────────────────────────

def test_pending_assignments_block_approvers_until_reviews_done(run_db):
    async def scenario(db):
        department, doc_type, owner, _, rs, aps = await _world(db, reviewers=1)
        document = await _create(db, owner, department, doc_type, rs, aps)

        [(assignment, doc, can_act)] = await service.list_pending_assignments(db, aps[0])
        assert doc.id == document.id and assignment.role_type == ROLE_TYPE_APPROVER
        assert can_act is False
        [(_, _, reviewer_can_act)] = await service.list_pending_assignments(db, rs[0])
        assert reviewer_can_act is True

        slot = await _slot(db, document, rs[0], ROLE_TYPE_REVIEWER)
        await service.submit_review(db, rs[0], document.id, slot.id, "submitted", None, Outbox())
        [(_, _, can_act)] = await service.list_pending_assignments(db, aps[0])
        assert can_act is True
        assert await service.list_pending_assignments(db, rs[0]) == []

    run_db(scenario)


def test_comment_notifies_creator(run_db):
    async def scenario(db):
        department, doc_type, owner, _, rs, aps = await _world(db)
        document = await _create(db, owner, department, doc_type, rs, aps)
        with pytest.raises(ValidationError):
            await service.add_comment(db, rs[0], document.id, "  ")

        comment = await service.add_comment(db, rs[0], document.id, "Section 3 needs a diagram")
        assert comment.content == "Section 3 needs a diagram"
        titles = (await db.execute(
            select(Notification.title).where(Notification.user_id == owner.user_id)
        )).scalars().all()
        assert titles == ["New comment"]

    run_db(scenario)


def test_detail_and_search(run_db):
    async def scenario(db):
        department, doc_type, owner, _, rs, aps = await _world(db)
        document = await _create(db, owner, department, doc_type, rs, aps, affected_department_ids=[department.id])

        detail = await service.get_document_detail(db, document.id)
        assert detail["document"].id == document.id
        assert detail["affected_department_ids"] == [department.id]
        assert len(detail["assignments"]) == 4

        assert [d.id for d in await service.list_documents(db, search="access")] == [document.id]
        assert await service.list_documents(db, status=DocumentStatus.APPROVED) == []
        with pytest.raises(NotFound):
            await service.get_document_detail(db, owner.user_id)

    run_db(scenario)
