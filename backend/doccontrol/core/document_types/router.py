import uuid
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from doccontrol.core.document_types import service
from doccontrol.core.document_types.schemas import DocumentTypeCreate, DocumentTypeUpdate, DocumentTypeRead
from doccontrol.dependencies import get_db, get_current_user, require_document_controller, CurrentUser

router = APIRouter(tags=["document types"])


@router.post("/document-types", response_model=DocumentTypeRead, status_code=201)
async def create_document_type(data: DocumentTypeCreate, db: AsyncSession = Depends(get_db), _: CurrentUser = Depends(require_document_controller)):
    return await service.create_document_type(db, data)


@router.get("/document-types", response_model=list[DocumentTypeRead])
async def list_document_types(active_only: bool = False, db: AsyncSession = Depends(get_db), _: CurrentUser = Depends(get_current_user)):
    return await service.list_document_types(db, active_only=active_only)


@router.patch("/document-types/{document_type_id}", response_model=DocumentTypeRead)
async def update_document_type(document_type_id: uuid.UUID, data: DocumentTypeUpdate, db: AsyncSession = Depends(get_db), _: CurrentUser = Depends(require_document_controller)):
    doc_type = await service.require_document_type(db, document_type_id)
    return await service.update_document_type(db, doc_type, data)


@router.delete("/document-types/{document_type_id}", status_code=204)
async def deactivate_document_type(document_type_id: uuid.UUID, db: AsyncSession = Depends(get_db), _: CurrentUser = Depends(require_document_controller)):
    doc_type = await service.require_document_type(db, document_type_id)
    await service.deactivate_document_type(db, doc_type)
