import uuid
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from doccontrol.core.document_types.models import DocumentType
from doccontrol.core.document_types.schemas import DocumentTypeCreate, DocumentTypeUpdate
from doccontrol.errors import Conflict, NotFound


async def _assert_code_free(db: AsyncSession, code: str, exclude_id: uuid.UUID | None = None) -> None:
    query = select(DocumentType.id).where(func.upper(DocumentType.code) == code.upper())
    if exclude_id:
        query = query.where(DocumentType.id != exclude_id)
    if (await db.execute(query)).first():
        raise Conflict(f"Document type code '{code.upper()}' already exists")


async def create_document_type(db: AsyncSession, data: DocumentTypeCreate) -> DocumentType:
    await _assert_code_free(db, data.code)
    values = data.model_dump()
    values["code"] = values["code"].strip().upper()
    doc_type = DocumentType(**values)
    db.add(doc_type)
    await db.flush()
    await db.refresh(doc_type)
    return doc_type


async def get_document_type(db: AsyncSession, document_type_id: uuid.UUID) -> DocumentType | None:
    result = await db.execute(select(DocumentType).where(DocumentType.id == document_type_id))
    return result.scalar_one_or_none()


async def require_document_type(db: AsyncSession, document_type_id: uuid.UUID) -> DocumentType:
    doc_type = await get_document_type(db, document_type_id)
    if not doc_type:
        raise NotFound("Document type not found")
    return doc_type


async def list_document_types(db: AsyncSession, active_only: bool = False) -> list[DocumentType]:
    query = select(DocumentType).order_by(DocumentType.sort_order, DocumentType.name)
    if active_only:
        query = query.where(DocumentType.is_active == True)
    result = await db.execute(query)
    return list(result.scalars().all())


async def update_document_type(db: AsyncSession, doc_type: DocumentType, data: DocumentTypeUpdate) -> DocumentType:
    values = data.model_dump(exclude_none=True)
    if "code" in values:
        await _assert_code_free(db, values["code"], exclude_id=doc_type.id)
        values["code"] = values["code"].strip().upper()
    for field, value in values.items():
        setattr(doc_type, field, value)
    await db.flush()
    await db.refresh(doc_type)
    return doc_type


async def deactivate_document_type(db: AsyncSession, doc_type: DocumentType) -> None:
    doc_type.is_active = False
    await db.flush()
