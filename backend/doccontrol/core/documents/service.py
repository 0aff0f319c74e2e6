import logging
import uuid
from datetime import date, datetime
from typing import Iterable

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from doccontrol.core.departments.models import Department
from doccontrol.core.document_types.models import DocumentType
from doccontrol.core.documents.models import (
    Document, DocumentAssignment, DocumentReview, DocumentApproval, DocumentComment, AffectedDepartment,
    ROLE_TYPE_SUBMITTER, ROLE_TYPE_REVIEWER, ROLE_TYPE_APPROVER,
)
from doccontrol.core.documents.numbering import (
    build_prefix, next_document_number, normalize_manual_number, pending_document_number, is_pending_number,
)
from doccontrol.core.documents.schemas import DocumentCreate, DocumentUpdate
from doccontrol.core.documents.workflow import (
    DocumentStatus, REVIEW_DECISIONS, APPROVAL_APPROVED, APPROVAL_REJECTED,
    add_years, all_approvers_done, can_transition, derive_pre_approval_status, pending_approvers, pending_reviewers,
)
from doccontrol.core.notifications import service as notifications
from doccontrol.core.notifications.email import Outbox
from doccontrol.core.notifications.models import (
    NOTIFICATION_APPROVAL_REQUEST, NOTIFICATION_COMMENT, NOTIFICATION_REVIEW_REQUEST, NOTIFICATION_STATUS_CHANGE,
)
from doccontrol.core.rbac.models import User, ROLE_ADMIN, ROLE_BPM, ROLE_MQS_REPS
from doccontrol.core.rbac.service import get_users
from doccontrol.core.timeline import models as events
from doccontrol.core.timeline.service import list_events, record_event
from doccontrol.db.base import utcnow
from doccontrol.dependencies import CurrentUser
from doccontrol.errors import Conflict, Forbidden, NotFound, ValidationError
from doccontrol.settings import get_settings

logger = logging.getLogger(__name__)
settings = get_settings()

CONTROLLER_ROLES = (ROLE_ADMIN, ROLE_BPM)
CREATOR_ROLES = (ROLE_ADMIN, ROLE_BPM, ROLE_MQS_REPS)


# ── Lookups ───────────────────────────────────────────────────────────────────

def document_link(document_id: uuid.UUID) -> str:
    return f"/dashboard/documents/{document_id}"


def display_name(user: User | None) -> str:
    if user is None:
        return "Unknown user"
    return user.full_name or user.email


async def get_document(db: AsyncSession, document_id: uuid.UUID) -> Document | None:
    result = await db.execute(select(Document).where(Document.id == document_id))
    return result.scalar_one_or_none()


async def _require_document(db: AsyncSession, document_id: uuid.UUID) -> Document:
    document = await get_document(db, document_id)
    if not document:
        raise NotFound("Document not found")
    return document


async def get_assignments(db: AsyncSession, document_id: uuid.UUID) -> list[DocumentAssignment]:
    """Fresh read of every assignment on the document. Never served from stale session state."""
    result = await db.execute(
        select(DocumentAssignment)
        .where(DocumentAssignment.document_id == document_id)
        .order_by(DocumentAssignment.role_type, DocumentAssignment.sequence_order)
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


async def _users_by_id(db: AsyncSession, user_ids) -> dict[uuid.UUID, User]:
    return {u.id: u for u in await get_users(db, list(dict.fromkeys(user_ids)))}


async def _caller_assignment(
    db: AsyncSession, document_id: uuid.UUID, assignment_id: uuid.UUID, caller: CurrentUser, role_type: str
) -> DocumentAssignment:
    result = await db.execute(
        select(DocumentAssignment).where(
            DocumentAssignment.id == assignment_id,
            DocumentAssignment.document_id == document_id,
            DocumentAssignment.user_id == caller.user_id,
            DocumentAssignment.role_type == role_type,
        )
    )
    assignment = result.scalar_one_or_none()
    if not assignment:
        raise NotFound(f"No {role_type} assignment for you on this document")
    return assignment


def _assert_transition(document: Document, new_status: str) -> None:
    if not can_transition(document.status, new_status):
        raise Conflict(f"Cannot move a document from '{document.status}' to '{new_status}'")


def _assert_pre_approval(document: Document) -> None:
    if document.status not in DocumentStatus.PRE_APPROVAL:
        raise Conflict(f"Document is '{document.status}' and no longer accepts review or approval")


# ── Numbering ─────────────────────────────────────────────────────────────────

async def _next_number(db: AsyncSession, department_id: uuid.UUID, document_type_id: uuid.UUID) -> str:
    department = await db.get(Department, department_id)
    doc_type = await db.get(DocumentType, document_type_id)
    if not department or not doc_type:
        raise ValidationError("Document has no valid department or document type")
    prefix = build_prefix(settings.COMPANY_CODE, department.code, doc_type.code)
    result = await db.execute(
        select(Document.document_number).where(func.upper(Document.document_number).like(f"{prefix}-%"))
    )
    return next_document_number(prefix, result.scalars().all())


async def preview_document_number(db: AsyncSession, department_id: uuid.UUID, document_type_id: uuid.UUID) -> str:
    return await _next_number(db, department_id, document_type_id)


async def assign_document_number(
    db: AsyncSession, caller: CurrentUser, document_id: uuid.UUID, manual_number: str | None = None
) -> Document:
    if not caller.has_any_role(*CONTROLLER_ROLES):
        raise Forbidden("Only Admin or BPM can assign document numbers")
    document = await _require_document(db, document_id)
    if not is_pending_number(document.document_number):
        raise Conflict(f"Document already has number {document.document_number}")

    if manual_number and manual_number.strip():
        number = normalize_manual_number(manual_number)
        clash = await db.execute(
            select(Document.id).where(func.upper(Document.document_number) == number, Document.id != document.id)
        )
        if clash.first():
            raise Conflict(f"Document number {number} already exists")
        mode = "manual"
    else:
        number = await _next_number(db, document.department_id, document.document_type_id)
        mode = "automatic"

    previous = document.document_number
    document.document_number = number
    try:
        await db.flush()
    except IntegrityError as e:
        raise Conflict(f"Document number {number} already exists") from e

    await record_event(
        db,
        document_id=document.id,
        event_type=events.EVENT_EDITED,
        event_title="Document Number Assigned",
        event_description=f"Document number {number} assigned",
        performed_by=caller.user_id,
        metadata={"document_number": number, "previous": previous, "mode": mode},
    )
    logger.info("Document number assigned. document_id=%s number=%s mode=%s", document.id, number, mode)
    return document


# ── Assignment tracking ───────────────────────────────────────────────────────

def _build_assignments(
    document_id: uuid.UUID, user_ids: list[uuid.UUID], role_type: str, assigned_by: uuid.UUID
) -> list[DocumentAssignment]:
    return [
        DocumentAssignment(
            document_id=document_id, user_id=user_id, role_type=role_type,
            sequence_order=position, assigned_by=assigned_by, assigned_at=utcnow(),
        )
        for position, user_id in enumerate(dict.fromkeys(user_ids), start=1)
    ]


async def _reconcile_assignments(
    db: AsyncSession, document: Document, role_type: str, desired: list[uuid.UUID], assigned_by: uuid.UUID
) -> list[uuid.UUID]:
    """
    Bring one role's assignment set in line with ``desired``.
    Returns the user ids that were newly assigned.
    """
    result = await db.execute(
        select(DocumentAssignment).where(
            DocumentAssignment.document_id == document.id, DocumentAssignment.role_type == role_type
        )
    )
    current = {a.user_id: a for a in result.scalars().all()}
    added: list[uuid.UUID] = []
    for position, user_id in enumerate(dict.fromkeys(desired), start=1):
        existing = current.pop(user_id, None)
        if existing:
            existing.sequence_order = position
            continue
        db.add(DocumentAssignment(
            document_id=document.id, user_id=user_id, role_type=role_type,
            sequence_order=position, assigned_by=assigned_by, assigned_at=utcnow(),
        ))
        added.append(user_id)

    for removed in current.values():
        if removed.is_completed and settings.ON_EDIT_REMOVE_COMPLETED == "preserve":
            continue
        await db.delete(removed)
    await db.flush()
    return added


async def complete_assignment(db: AsyncSession, assignment_id: uuid.UUID) -> datetime:
    """
    Mark an assignment completed iff it is still open. Exactly one caller can win;
    every later call fails and the first completed_at stays in place.
    """
    now = utcnow()
    result = await db.execute(
        update(DocumentAssignment)
        .where(DocumentAssignment.id == assignment_id, DocumentAssignment.is_completed == False)
        .values(is_completed=True, completed_at=now)
    )
    if result.rowcount != 1:
        raise Conflict("Assignment already completed")
    return now


# ── Validation helpers ────────────────────────────────────────────────────────

async def _require_active_department(db: AsyncSession, department_id: uuid.UUID) -> Department:
    department = await db.get(Department, department_id)
    if not department or not department.is_active or department.deleted_at is not None:
        raise ValidationError("Department not found or inactive")
    return department


async def _require_active_document_type(db: AsyncSession, document_type_id: uuid.UUID) -> DocumentType:
    doc_type = await db.get(DocumentType, document_type_id)
    if not doc_type or not doc_type.is_active:
        raise ValidationError("Document type not found or inactive")
    return doc_type


async def _require_active_users(db: AsyncSession, user_ids: list[uuid.UUID]) -> dict[uuid.UUID, User]:
    users = await _users_by_id(db, user_ids)
    missing = [uid for uid in dict.fromkeys(user_ids) if uid not in users or not users[uid].is_active]
    if missing:
        raise ValidationError(f"Unknown or inactive user(s): {', '.join(str(m) for m in missing)}")
    return users


async def _require_departments(db: AsyncSession, department_ids: list[uuid.UUID]) -> None:
    wanted = set(department_ids)
    if not wanted:
        return
    result = await db.execute(
        select(Department.id).where(Department.id.in_(wanted), Department.deleted_at.is_(None))
    )
    if wanted - set(result.scalars().all()):
        raise ValidationError("One or more affected departments do not exist")


def _clean_title(title: str | None) -> str:
    title = (title or "").strip()
    if not title:
        raise ValidationError("Title is required")
    return title


def _check_target_date(target: date | None) -> None:
    if target is not None and target < date.today():
        raise ValidationError("Target approval date cannot be in the past")


async def _replace_affected_departments(db: AsyncSession, document_id: uuid.UUID, department_ids: list[uuid.UUID]) -> None:
    await db.execute(delete(AffectedDepartment).where(AffectedDepartment.document_id == document_id))
    db.add_all(
        AffectedDepartment(document_id=document_id, department_id=dept_id)
        for dept_id in dict.fromkeys(department_ids)
    )
    await db.flush()


# ── Notifications ─────────────────────────────────────────────────────────────

def _email_data(document: Document, **extra) -> dict:
    return {
        "document_id": str(document.id),
        "document_title": document.title,
        "document_number": document.document_number,
        **extra,
    }


async def _announce_assignments(
    db: AsyncSession, document: Document, caller: CurrentUser, reviewer_ids: list[uuid.UUID],
    approver_ids: list[uuid.UUID], outbox: Outbox,
) -> None:
    users = await _users_by_id(db, [*reviewer_ids, *approver_ids])
    assigner = display_name(caller.user)
    link = document_link(document.id)
    for uid in reviewer_ids:
        if uid in users:
            outbox.add(users[uid].email, f"Review assignment: {document.title}", "assignmentReviewer",
                       **_email_data(document, assigner_name=assigner))
    for uid in approver_ids:
        if uid in users:
            outbox.add(users[uid].email, f"Approval assignment: {document.title}", "assignmentApprover",
                       **_email_data(document, assigner_name=assigner))
    await notifications.notify(
        db, reviewer_ids, type=NOTIFICATION_REVIEW_REQUEST, title="New review assignment",
        message=f"You have been assigned to review '{document.title}'", document_id=document.id, link=link,
    )
    await notifications.notify(
        db, approver_ids, type=NOTIFICATION_APPROVAL_REQUEST, title="New approval assignment",
        message=f"You have been assigned to approve '{document.title}'", document_id=document.id, link=link,
    )


async def _notify_owner(
    db: AsyncSession, document: Document, caller: CurrentUser, outbox: Outbox, *,
    title: str, message: str, template: str, subject: str, type: str = NOTIFICATION_STATUS_CHANGE, **data,
) -> None:
    """Tell the creator what happened, unless the creator did it."""
    if document.created_by == caller.user_id:
        return
    owner = (await _users_by_id(db, [document.created_by])).get(document.created_by)
    if owner:
        outbox.add(owner.email, subject, template, **_email_data(document, **data))
    await notifications.notify(
        db, [document.created_by], type=type, title=title, message=message,
        document_id=document.id, link=document_link(document.id),
    )


# ── Status changes ────────────────────────────────────────────────────────────

async def _announce_ready_for_approval(
    db: AsyncSession, document: Document, assignments: list[DocumentAssignment], outbox: Outbox,
    skip: Iterable[uuid.UUID] = (),
) -> None:
    skip = set(skip)
    approver_ids = [a.user_id for a in pending_approvers(assignments) if a.user_id not in skip]
    users = await _users_by_id(db, approver_ids)
    for uid in approver_ids:
        if uid in users:
            outbox.add(users[uid].email, f"Ready for approval: {document.title}", "readyForApproval",
                       **_email_data(document))
    await notifications.notify(
        db, approver_ids, type=NOTIFICATION_APPROVAL_REQUEST, title="Ready for your approval",
        message=f"All reviews are complete for '{document.title}'", document_id=document.id,
        link=document_link(document.id),
    )


async def _apply_derived_status(
    db: AsyncSession, document: Document, caller: CurrentUser, assignments: list[DocumentAssignment],
    outbox: Outbox | None = None, newly_assigned: Iterable[uuid.UUID] = (),
) -> None:
    """
    Move a pre-approval document to the status its assignments imply. With an
    outbox, approvers are told when the document becomes ready for approval;
    approvers in ``newly_assigned`` already get an assignment e-mail.
    """
    target = derive_pre_approval_status(assignments)
    if target == document.status or document.status not in DocumentStatus.PRE_APPROVAL:
        return
    old_status = document.status
    _assert_transition(document, target)
    document.status = target
    await db.flush()
    if target == DocumentStatus.REVIEW:
        title, event_type = "Sent for Review", events.EVENT_SUBMITTED
    elif target == DocumentStatus.WAITING_APPROVAL:
        title, event_type = "Ready for Approval", events.EVENT_SUBMITTED_FOR_APPROVAL
    else:
        title, event_type = "Returned to Initiation", events.EVENT_EDITED
    await record_event(
        db, document_id=document.id, event_type=event_type, event_title=title,
        old_status=old_status, new_status=target, performed_by=caller.user_id,
    )
    if outbox is not None and target == DocumentStatus.WAITING_APPROVAL:
        await _announce_ready_for_approval(db, document, assignments, outbox, skip=newly_assigned)
    logger.info("Document status derived. document_id=%s %s -> %s", document.id, old_status, target)


async def _advance_to_waiting_approval(
    db: AsyncSession, document: Document, caller: CurrentUser, assignments: list[DocumentAssignment], outbox: Outbox
) -> bool:
    old_status = document.status
    result = await db.execute(
        update(Document)
        .where(Document.id == document.id, Document.status.in_((DocumentStatus.INITIATION, DocumentStatus.REVIEW)))
        .values(status=DocumentStatus.WAITING_APPROVAL, updated_at=utcnow())
    )
    if not result.rowcount:
        return False
    await record_event(
        db, document_id=document.id, event_type=events.EVENT_SUBMITTED_FOR_APPROVAL,
        event_title="Submitted for Approval", event_description="All reviewers have completed their review",
        old_status=old_status, new_status=DocumentStatus.WAITING_APPROVAL, performed_by=caller.user_id,
    )
    await _announce_ready_for_approval(db, document, assignments, outbox)
    logger.info("Document waiting approval. document_id=%s", document.id)
    return True


async def _publish(db: AsyncSession, document: Document, caller: CurrentUser, outbox: Outbox) -> bool:
    old_status = document.status
    now = utcnow()
    today = date.today()
    expiry = add_years(today, settings.DOCUMENT_EXPIRY_YEARS)
    result = await db.execute(
        update(Document)
        .where(Document.id == document.id, Document.status.in_(DocumentStatus.PRE_APPROVAL))
        .values(
            status=DocumentStatus.APPROVED, approved_at=now, published_at=now,
            effective_date=today, expiry_date=expiry, updated_at=now,
        )
    )
    if not result.rowcount:
        return False
    await record_event(
        db, document_id=document.id, event_type=events.EVENT_PUBLISHED, event_title="Document Published",
        event_description=f"All approvals received. Effective {today.isoformat()}, expires {expiry.isoformat()}",
        old_status=old_status, new_status=DocumentStatus.APPROVED, performed_by=caller.user_id,
        metadata={"effective_date": today.isoformat(), "expiry_date": expiry.isoformat()},
    )
    await _notify_owner(
        db, document, caller, outbox,
        title="Document approved", message=f"'{document.title}' has been approved and published",
        template="statusChanged", subject=f"Document approved: {document.title}",
        old_status=old_status, new_status=DocumentStatus.APPROVED, actor_name=display_name(caller.user),
    )
    logger.info("Document approved. document_id=%s expiry=%s", document.id, expiry)
    return True


# ── Operations ────────────────────────────────────────────────────────────────

async def create_document(db: AsyncSession, caller: CurrentUser, data: DocumentCreate, outbox: Outbox) -> Document:
    if not caller.has_any_role(*CREATOR_ROLES):
        raise Forbidden("Only Admin, BPM or MQS Reps can create documents")
    title = _clean_title(data.title)
    await _require_active_department(db, data.department_id)
    await _require_active_document_type(db, data.document_type_id)
    _check_target_date(data.target_approval_date)
    await _require_active_users(db, [*data.reviewer_ids, *data.approver_ids])
    await _require_departments(db, data.affected_department_ids)

    document = Document(
        document_number=pending_document_number(),
        title=title,
        description=data.description,
        status=DocumentStatus.INITIATION,
        version=data.version or "1.0",
        department_id=data.department_id,
        document_type_id=data.document_type_id,
        draft_link=data.draft_link,
        target_approval_date=data.target_approval_date,
        created_by=caller.user_id,
    )
    db.add(document)
    await db.flush()

    reviewer_ids = list(dict.fromkeys(data.reviewer_ids))
    approver_ids = list(dict.fromkeys(data.approver_ids))
    db.add_all([
        *_build_assignments(document.id, [caller.user_id], ROLE_TYPE_SUBMITTER, caller.user_id),
        *_build_assignments(document.id, reviewer_ids, ROLE_TYPE_REVIEWER, caller.user_id),
        *_build_assignments(document.id, approver_ids, ROLE_TYPE_APPROVER, caller.user_id),
    ])
    await db.flush()
    if data.affected_department_ids:
        await _replace_affected_departments(db, document.id, data.affected_department_ids)

    await record_event(
        db, document_id=document.id, event_type=events.EVENT_CREATED, event_title="Document Initiated",
        event_description=f"Document '{title}' created", new_status=DocumentStatus.INITIATION,
        performed_by=caller.user_id,
        metadata={"reviewers": len(reviewer_ids), "approvers": len(approver_ids)},
    )
    await _apply_derived_status(db, document, caller, await get_assignments(db, document.id))
    await _announce_assignments(db, document, caller, reviewer_ids, approver_ids, outbox)
    logger.info("Document created. document_id=%s status=%s", document.id, document.status)
    return document


async def update_document(
    db: AsyncSession, caller: CurrentUser, document_id: uuid.UUID, data: DocumentUpdate, outbox: Outbox
) -> Document:
    if not caller.has_any_role(*CONTROLLER_ROLES):
        raise Forbidden("Only Admin or BPM can edit documents")
    document = await _require_document(db, document_id)
    if document.status not in DocumentStatus.PRE_APPROVAL:
        raise Conflict(f"Document is '{document.status}' and can no longer be edited")

    changes = data.model_dump(exclude_unset=True)
    scalar_fields = ("title", "description", "draft_link", "final_link", "target_approval_date", "version")
    changed: list[str] = []
    if "title" in changes:
        changes["title"] = _clean_title(changes["title"])
    if "version" in changes and not changes["version"]:
        del changes["version"]
    if changes.get("department_id") is not None:
        await _require_active_department(db, changes["department_id"])
        document.department_id = changes["department_id"]
        changed.append("department_id")
    if changes.get("document_type_id") is not None:
        await _require_active_document_type(db, changes["document_type_id"])
        document.document_type_id = changes["document_type_id"]
        changed.append("document_type_id")
    if "target_approval_date" in changes and changes["target_approval_date"] != document.target_approval_date:
        _check_target_date(changes["target_approval_date"])
    for field in scalar_fields:
        if field in changes and getattr(document, field) != changes[field]:
            setattr(document, field, changes[field])
            changed.append(field)

    if data.affected_department_ids is not None:
        await _require_departments(db, data.affected_department_ids)
        await _replace_affected_departments(db, document.id, data.affected_department_ids)
        changed.append("affected_departments")

    added_reviewers: list[uuid.UUID] = []
    added_approvers: list[uuid.UUID] = []
    if data.reviewer_ids is not None:
        await _require_active_users(db, data.reviewer_ids)
        added_reviewers = await _reconcile_assignments(db, document, ROLE_TYPE_REVIEWER, data.reviewer_ids, caller.user_id)
        changed.append("reviewers")
    if data.approver_ids is not None:
        await _require_active_users(db, data.approver_ids)
        added_approvers = await _reconcile_assignments(db, document, ROLE_TYPE_APPROVER, data.approver_ids, caller.user_id)
        changed.append("approvers")
    await db.flush()

    await record_event(
        db, document_id=document.id, event_type=events.EVENT_EDITED, event_title="Document Updated",
        event_description=f"Updated: {', '.join(changed)}" if changed else "No changes",
        performed_by=caller.user_id, metadata={"fields": changed},
    )
    assignments = await get_assignments(db, document.id)
    await _apply_derived_status(db, document, caller, assignments, outbox, newly_assigned=added_approvers)
    await _announce_assignments(db, document, caller, added_reviewers, added_approvers, outbox)
    if not pending_reviewers(assignments) and all_approvers_done(assignments):
        await _publish(db, document, caller, outbox)
    return document


async def submit_review(
    db: AsyncSession, caller: CurrentUser, document_id: uuid.UUID, assignment_id: uuid.UUID,
    decision: str, comment: str | None, outbox: Outbox,
) -> Document:
    if decision not in REVIEW_DECISIONS:
        raise ValidationError(f"Invalid review decision '{decision}'")
    comment = (comment or "").strip() or None
    if decision == "requested_changes" and not comment:
        raise ValidationError("A comment is required when requesting changes")

    document = await _require_document(db, document_id)
    _assert_pre_approval(document)
    assignment = await _caller_assignment(db, document.id, assignment_id, caller, ROLE_TYPE_REVIEWER)
    completed_at = await complete_assignment(db, assignment.id)

    existing = (await db.execute(
        select(DocumentReview).where(DocumentReview.document_id == document.id, DocumentReview.reviewer_id == caller.user_id)
    )).scalar_one_or_none()
    if existing:
        existing.assignment_id = assignment.id
        existing.status = decision
        existing.comments = comment
        existing.submitted_at = completed_at
    else:
        db.add(DocumentReview(
            document_id=document.id, reviewer_id=caller.user_id, assignment_id=assignment.id,
            status=decision, comments=comment, submitted_at=completed_at,
        ))
    if comment:
        db.add(DocumentComment(document_id=document.id, user_id=caller.user_id, content=comment))
    await db.flush()

    reviewer_name = display_name(caller.user)
    await record_event(
        db, document_id=document.id, event_type=events.EVENT_REVIEW_COMPLETED, event_title="Review Completed",
        event_description=f"{reviewer_name} submitted review: {decision}", performed_by=caller.user_id,
        metadata={"decision": decision, "assignment_id": str(assignment.id)},
    )
    await _notify_owner(
        db, document, caller, outbox,
        title="Review submitted", message=f"{reviewer_name} reviewed '{document.title}'",
        template="reviewSubmitted", subject=f"Review submitted: {document.title}",
        reviewer_name=reviewer_name, review_status=decision, comments=comment,
    )

    assignments = await get_assignments(db, document.id)
    if not pending_reviewers(assignments):
        await _advance_to_waiting_approval(db, document, caller, assignments, outbox)
    return document


async def _record_approval_decision(
    db: AsyncSession, caller: CurrentUser, document: Document, assignment_id: uuid.UUID
) -> tuple[DocumentAssignment, datetime]:
    """Shared gate for approve and reject: caller owns the approver slot and reviews are done."""
    _assert_pre_approval(document)
    assignment = await _caller_assignment(db, document.id, assignment_id, caller, ROLE_TYPE_APPROVER)
    if pending_reviewers(await get_assignments(db, document.id)):
        raise Conflict("Cannot approve until all reviewers complete")
    completed_at = await complete_assignment(db, assignment.id)
    return assignment, completed_at


async def approve_document(
    db: AsyncSession, caller: CurrentUser, document_id: uuid.UUID, assignment_id: uuid.UUID,
    comment: str | None, outbox: Outbox,
) -> Document:
    comment = (comment or "").strip() or None
    document = await _require_document(db, document_id)
    assignment, decided_at = await _record_approval_decision(db, caller, document, assignment_id)

    db.add(DocumentApproval(
        document_id=document.id, approver_id=caller.user_id, assignment_id=assignment.id,
        decision=APPROVAL_APPROVED, comments=comment, decided_at=decided_at,
    ))
    if comment:
        db.add(DocumentComment(document_id=document.id, user_id=caller.user_id, content=comment))
    await db.flush()

    approver_name = display_name(caller.user)
    await record_event(
        db, document_id=document.id, event_type=events.EVENT_APPROVED, event_title="Approval Given",
        event_description=f"{approver_name} approved the document", performed_by=caller.user_id,
        metadata={"assignment_id": str(assignment.id)},
    )
    await _notify_owner(
        db, document, caller, outbox,
        title="Approval given", message=f"{approver_name} approved '{document.title}'",
        template="approvalSubmitted", subject=f"Approval given: {document.title}",
        approver_name=approver_name, decision=APPROVAL_APPROVED, comments=comment,
    )

    if all_approvers_done(await get_assignments(db, document.id)):
        await _publish(db, document, caller, outbox)
    return document


async def reject_document(
    db: AsyncSession, caller: CurrentUser, document_id: uuid.UUID, assignment_id: uuid.UUID,
    reason: str | None, outbox: Outbox,
) -> Document:
    reason = (reason or "").strip()
    if not reason:
        raise ValidationError("A rejection reason is required")
    document = await _require_document(db, document_id)
    assignment, decided_at = await _record_approval_decision(db, caller, document, assignment_id)

    db.add(DocumentApproval(
        document_id=document.id, approver_id=caller.user_id, assignment_id=assignment.id,
        decision=APPROVAL_REJECTED, comments=reason, decided_at=decided_at,
    ))
    old_status = document.status
    result = await db.execute(
        update(Document)
        .where(Document.id == document.id, Document.status.in_(DocumentStatus.PRE_APPROVAL))
        .values(status=DocumentStatus.REJECTED, rejected_at=decided_at, rejection_reason=reason, updated_at=decided_at)
    )
    if not result.rowcount:
        raise Conflict("Document is no longer awaiting approval")

    approver_name = display_name(caller.user)
    await record_event(
        db, document_id=document.id, event_type=events.EVENT_REJECTED, event_title="Document Rejected",
        event_description=reason, old_status=old_status, new_status=DocumentStatus.REJECTED,
        performed_by=caller.user_id, metadata={"assignment_id": str(assignment.id)},
    )
    await _notify_owner(
        db, document, caller, outbox,
        title="Document rejected", message=f"{approver_name} rejected '{document.title}': {reason}",
        template="approvalSubmitted", subject=f"Document rejected: {document.title}",
        approver_name=approver_name, decision=APPROVAL_REJECTED, comments=reason,
    )
    logger.info("Document rejected. document_id=%s by=%s", document.id, caller.user_id)
    return document


def _assert_owner_or_controller(document: Document, caller: CurrentUser, action: str) -> None:
    if not (caller.has_any_role(*CONTROLLER_ROLES) or document.created_by == caller.user_id):
        raise Forbidden(f"Only Admin, BPM or the document creator can {action} this document")


async def close_document(
    db: AsyncSession, caller: CurrentUser, document_id: uuid.UUID, comment: str | None, outbox: Outbox
) -> Document:
    document = await _require_document(db, document_id)
    _assert_owner_or_controller(document, caller, "close")
    if document.status != DocumentStatus.APPROVED:
        raise Conflict("Only approved documents can be closed")
    comment = (comment or "").strip() or None

    now = utcnow()
    result = await db.execute(
        update(Document)
        .where(Document.id == document.id, Document.status == DocumentStatus.APPROVED)
        .values(status=DocumentStatus.CLOSED, closed_at=now, closing_comment=comment, updated_at=now)
    )
    if not result.rowcount:
        raise Conflict("Only approved documents can be closed")
    await record_event(
        db, document_id=document.id, event_type=events.EVENT_CLOSED, event_title="Document Closed",
        event_description=comment, old_status=DocumentStatus.APPROVED, new_status=DocumentStatus.CLOSED,
        performed_by=caller.user_id,
    )
    await _notify_owner(
        db, document, caller, outbox,
        title="Document closed", message=f"'{document.title}' has been closed",
        template="statusChanged", subject=f"Document closed: {document.title}",
        old_status=DocumentStatus.APPROVED, new_status=DocumentStatus.CLOSED,
        actor_name=display_name(caller.user), comments=comment,
    )
    logger.info("Document closed. document_id=%s", document.id)
    return document


async def cancel_document(
    db: AsyncSession, caller: CurrentUser, document_id: uuid.UUID, reason: str | None, outbox: Outbox
) -> Document:
    reason = (reason or "").strip()
    if not reason:
        raise ValidationError("A cancellation reason is required")
    document = await _require_document(db, document_id)
    _assert_owner_or_controller(document, caller, "cancel")
    _assert_transition(document, DocumentStatus.CANCEL)

    old_status = document.status
    now = utcnow()
    result = await db.execute(
        update(Document)
        .where(Document.id == document.id, Document.status.in_(DocumentStatus.PRE_APPROVAL))
        .values(status=DocumentStatus.CANCEL, cancelled_at=now, cancellation_reason=reason, updated_at=now)
    )
    if not result.rowcount:
        raise Conflict("Document can no longer be cancelled")
    await record_event(
        db, document_id=document.id, event_type=events.EVENT_CANCELLED, event_title="Document Cancelled",
        event_description=reason, old_status=old_status, new_status=DocumentStatus.CANCEL,
        performed_by=caller.user_id,
    )

    open_work = [a.user_id for a in await get_assignments(db, document.id)
                 if not a.is_completed and a.role_type != ROLE_TYPE_SUBMITTER and a.user_id != caller.user_id]
    await notifications.notify(
        db, open_work, type=NOTIFICATION_STATUS_CHANGE, title="Document cancelled",
        message=f"'{document.title}' was cancelled: {reason}", document_id=document.id,
        link=document_link(document.id),
    )
    await _notify_owner(
        db, document, caller, outbox,
        title="Document cancelled", message=f"'{document.title}' was cancelled: {reason}",
        template="statusChanged", subject=f"Document cancelled: {document.title}",
        old_status=old_status, new_status=DocumentStatus.CANCEL,
        actor_name=display_name(caller.user), comments=reason,
    )
    logger.info("Document cancelled. document_id=%s", document.id)
    return document


# ── Reads ─────────────────────────────────────────────────────────────────────

async def get_document_detail(db: AsyncSession, document_id: uuid.UUID) -> dict:
    document = await _require_document(db, document_id)
    reviews = await db.execute(
        select(DocumentReview).where(DocumentReview.document_id == document.id).order_by(DocumentReview.submitted_at)
    )
    approvals = await db.execute(
        select(DocumentApproval).where(DocumentApproval.document_id == document.id).order_by(DocumentApproval.decided_at)
    )
    comments = await db.execute(
        select(DocumentComment).where(DocumentComment.document_id == document.id).order_by(DocumentComment.created_at)
    )
    affected = await db.execute(
        select(AffectedDepartment.department_id).where(AffectedDepartment.document_id == document.id)
    )
    return {
        "document": document,
        "assignments": await get_assignments(db, document.id),
        "reviews": list(reviews.scalars().all()),
        "approvals": list(approvals.scalars().all()),
        "comments": list(comments.scalars().all()),
        "timeline": await list_events(db, document.id),
        "affected_department_ids": list(affected.scalars().all()),
    }


async def list_documents(
    db: AsyncSession,
    status: str | None = None,
    department_id: uuid.UUID | None = None,
    search: str | None = None,
    limit: int = 100,
    offset: int = 0,
) -> list[Document]:
    query = select(Document).order_by(Document.created_at.desc())
    if status:
        query = query.where(Document.status == status)
    if department_id:
        query = query.where(Document.department_id == department_id)
    if search and search.strip():
        pattern = f"%{search.strip().lower()}%"
        query = query.where(or_(
            func.lower(Document.title).like(pattern), func.lower(Document.document_number).like(pattern)
        ))
    result = await db.execute(query.offset(offset).limit(limit))
    return list(result.scalars().all())


async def list_pending_assignments(db: AsyncSession, caller: CurrentUser) -> list[tuple[DocumentAssignment, Document, bool]]:
    """Open reviewer and approver work for the caller. ``can_act`` is False for approvers still blocked on reviews."""
    result = await db.execute(
        select(DocumentAssignment, Document)
        .join(Document, Document.id == DocumentAssignment.document_id)
        .where(
            DocumentAssignment.user_id == caller.user_id,
            DocumentAssignment.is_completed == False,
            DocumentAssignment.role_type.in_((ROLE_TYPE_REVIEWER, ROLE_TYPE_APPROVER)),
            Document.status.in_(DocumentStatus.PRE_APPROVAL),
        )
        .order_by(Document.target_approval_date.is_(None), Document.target_approval_date, Document.created_at)
    )
    rows = result.all()
    document_ids = {doc.id for _, doc in rows}
    blocked: set[uuid.UUID] = set()
    if document_ids:
        pending = await db.execute(
            select(DocumentAssignment.document_id).where(
                DocumentAssignment.document_id.in_(document_ids),
                DocumentAssignment.role_type == ROLE_TYPE_REVIEWER,
                DocumentAssignment.is_completed == False,
            )
        )
        blocked = set(pending.scalars().all())
    return [
        (assignment, doc, assignment.role_type == ROLE_TYPE_REVIEWER or doc.id not in blocked)
        for assignment, doc in rows
    ]


async def add_comment(db: AsyncSession, caller: CurrentUser, document_id: uuid.UUID, content: str | None) -> DocumentComment:
    content = (content or "").strip()
    if not content:
        raise ValidationError("Comment cannot be empty")
    document = await _require_document(db, document_id)
    comment = DocumentComment(document_id=document.id, user_id=caller.user_id, content=content)
    db.add(comment)
    await db.flush()
    await record_event(
        db, document_id=document.id, event_type=events.EVENT_COMMENT_ADDED, event_title="Comment Added",
        event_description=content[:200], performed_by=caller.user_id,
    )
    if document.created_by != caller.user_id:
        await notifications.notify(
            db, [document.created_by], type=NOTIFICATION_COMMENT, title="New comment",
            message=f"{display_name(caller.user)} commented on '{document.title}'",
            document_id=document.id, link=document_link(document.id),
        )
    await db.refresh(comment)
    return comment


async def list_timeline(db: AsyncSession, document_id: uuid.UUID):
    document = await _require_document(db, document_id)
    return await list_events(db, document.id)
