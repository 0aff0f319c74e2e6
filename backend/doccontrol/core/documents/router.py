import uuid
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from doccontrol.core.documents import service
from doccontrol.core.documents.schemas import (
    DocumentCreate, DocumentUpdate, DocumentRead, DocumentDetail, PendingAssignment, AssignmentRead, NumberPreview,
    AssignNumberRequest, ReviewSubmit, ApproveRequest, RejectRequest, CloseRequest, CancelRequest,
    CommentCreate, CommentRead,
)
from doccontrol.core.notifications.email import Outbox
from doccontrol.core.timeline.schemas import TimelineEntryRead
from doccontrol.dependencies import get_db, get_outbox, get_current_user, CurrentUser
from doccontrol.errors import ActionResult, ok

router = APIRouter(prefix="/documents", tags=["documents"])


def _result(message: str, document) -> ActionResult:
    return ok(message, data=DocumentRead.model_validate(document))


@router.post("", response_model=ActionResult, status_code=201)
async def create_document(
    data: DocumentCreate,
    db: AsyncSession = Depends(get_db),
    outbox: Outbox = Depends(get_outbox),
    current: CurrentUser = Depends(get_current_user),
):
    document = await service.create_document(db, current, data, outbox)
    return _result("Document created", document)


@router.get("", response_model=list[DocumentRead])
async def list_documents(
    status: str | None = None,
    department_id: uuid.UUID | None = None,
    search: str | None = None,
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
    _: CurrentUser = Depends(get_current_user),
):
    return await service.list_documents(db, status=status, department_id=department_id, search=search, limit=limit, offset=offset)


@router.get("/pending", response_model=list[PendingAssignment])
async def list_pending(db: AsyncSession = Depends(get_db), current: CurrentUser = Depends(get_current_user)):
    rows = await service.list_pending_assignments(db, current)
    return [
        PendingAssignment(
            assignment=AssignmentRead.model_validate(assignment),
            document=DocumentRead.model_validate(document),
            can_act=can_act,
        )
        for assignment, document, can_act in rows
    ]


@router.get("/number-preview", response_model=NumberPreview)
async def preview_number(
    department_id: uuid.UUID,
    document_type_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    _: CurrentUser = Depends(get_current_user),
):
    return NumberPreview(document_number=await service.preview_document_number(db, department_id, document_type_id))


@router.get("/{document_id}", response_model=DocumentDetail)
async def get_document(document_id: uuid.UUID, db: AsyncSession = Depends(get_db), _: CurrentUser = Depends(get_current_user)):
    detail = await service.get_document_detail(db, document_id)
    return DocumentDetail.model_validate(detail, from_attributes=True)


@router.patch("/{document_id}", response_model=ActionResult)
async def update_document(
    document_id: uuid.UUID,
    data: DocumentUpdate,
    db: AsyncSession = Depends(get_db),
    outbox: Outbox = Depends(get_outbox),
    current: CurrentUser = Depends(get_current_user),
):
    document = await service.update_document(db, current, document_id, data, outbox)
    return _result("Document updated", document)


@router.post("/{document_id}/number", response_model=ActionResult)
async def assign_number(
    document_id: uuid.UUID,
    body: AssignNumberRequest,
    db: AsyncSession = Depends(get_db),
    current: CurrentUser = Depends(get_current_user),
):
    document = await service.assign_document_number(db, current, document_id, body.manual_number)
    return _result(f"Document number {document.document_number} assigned", document)


@router.post("/{document_id}/reviews", response_model=ActionResult)
async def submit_review(
    document_id: uuid.UUID,
    body: ReviewSubmit,
    db: AsyncSession = Depends(get_db),
    outbox: Outbox = Depends(get_outbox),
    current: CurrentUser = Depends(get_current_user),
):
    document = await service.submit_review(db, current, document_id, body.assignment_id, body.decision, body.comment, outbox)
    return _result("Review submitted", document)


@router.post("/{document_id}/approve", response_model=ActionResult)
async def approve_document(
    document_id: uuid.UUID,
    body: ApproveRequest,
    db: AsyncSession = Depends(get_db),
    outbox: Outbox = Depends(get_outbox),
    current: CurrentUser = Depends(get_current_user),
):
    document = await service.approve_document(db, current, document_id, body.assignment_id, body.comment, outbox)
    return _result("Document approved", document)


@router.post("/{document_id}/reject", response_model=ActionResult)
async def reject_document(
    document_id: uuid.UUID,
    body: RejectRequest,
    db: AsyncSession = Depends(get_db),
    outbox: Outbox = Depends(get_outbox),
    current: CurrentUser = Depends(get_current_user),
):
    document = await service.reject_document(db, current, document_id, body.assignment_id, body.reason, outbox)
    return _result("Document rejected", document)


@router.post("/{document_id}/close", response_model=ActionResult)
async def close_document(
    document_id: uuid.UUID,
    body: CloseRequest,
    db: AsyncSession = Depends(get_db),
    outbox: Outbox = Depends(get_outbox),
    current: CurrentUser = Depends(get_current_user),
):
    document = await service.close_document(db, current, document_id, body.comment, outbox)
    return _result("Document closed", document)


@router.post("/{document_id}/cancel", response_model=ActionResult)
async def cancel_document(
    document_id: uuid.UUID,
    body: CancelRequest,
    db: AsyncSession = Depends(get_db),
    outbox: Outbox = Depends(get_outbox),
    current: CurrentUser = Depends(get_current_user),
):
    document = await service.cancel_document(db, current, document_id, body.reason, outbox)
    return _result("Document cancelled", document)


@router.post("/{document_id}/comments", response_model=ActionResult, status_code=201)
async def add_comment(
    document_id: uuid.UUID,
    body: CommentCreate,
    db: AsyncSession = Depends(get_db),
    current: CurrentUser = Depends(get_current_user),
):
    comment = await service.add_comment(db, current, document_id, body.content)
    return ok("Comment added", data=CommentRead.model_validate(comment))


@router.get("/{document_id}/timeline", response_model=list[TimelineEntryRead])
async def list_timeline(document_id: uuid.UUID, db: AsyncSession = Depends(get_db), _: CurrentUser = Depends(get_current_user)):
    return await service.list_timeline(db, document_id)
