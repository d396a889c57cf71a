from __future__ import annotations

import logging
import re
from urllib.parse import quote

from fastapi import (
    APIRouter,
    Depends,
    File,
    Form,
    Header,
    HTTPException,
    Request,
    UploadFile,
    status,
)
from fastapi.responses import StreamingResponse
from sqlalchemy import select
from sqlalchemy.orm import Session

from wecare_portal.core.settings import settings
from wecare_portal.db.session import get_db
from wecare_portal.deps import ensure_owner_or_staff, get_current_user, require_roles
from wecare_portal.models.audit_log import AuditEntityType
from wecare_portal.models.document import Document
from wecare_portal.models.user import Role, User
from wecare_portal.schemas.document import DocumentDeleteOut, DocumentOut
from wecare_portal.services import storage
from wecare_portal.services.audit import log_event

router = APIRouter(prefix="/documents", tags=["documents"])
logger = logging.getLogger("wecare_portal.documents")

DOCUMENT_TYPES = {
    "passport",
    "id_card",
    "insurance_card",
    "lab_result",
    "prescription",
    "medical_report",
    "referral_letter",
    "other",
}


def sanitize_filename(value: str) -> str:
    cleaned = re.sub(r"[^A-Za-z0-9._-]+", "_", value).strip("._")
    return cleaned or "document"


def content_disposition(disposition: str, filename: str) -> str:
    fallback = sanitize_filename(filename)
    return f"{disposition}; filename=\"{fallback}\"; filename*=UTF-8''{quote(filename)}"


def get_document_or_404(db: Session, document_id: int, user: User) -> Document:
    document = db.get(Document, document_id)
    if not document:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Document not found")
    ensure_owner_or_staff(user, document.patient_user_id, detail="Document not found")
    return document


def _stream_document(
    db: Session,
    document: Document,
    *,
    user: User,
    disposition: str,
    action: str,
    request: Request,
    request_id: str | None,
) -> StreamingResponse:
    try:
        handle = storage.open_file(document.storage_key)
    except FileNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Document file missing")
    log_event(
        db,
        actor=user,
        action=action,
        entity_type=AuditEntityType.document,
        entity_id=document.id,
        patient_user_id=document.patient_user_id,
        after_data={"filename": document.original_filename},
        request=request,
        request_id=request_id,
    )
    db.commit()
    headers = {"Content-Disposition": content_disposition(disposition, document.original_filename)}
    return StreamingResponse(handle, media_type=document.mime_type, headers=headers)


@router.post("/upload", response_model=DocumentOut, status_code=status.HTTP_201_CREATED)
def upload_document(
    request: Request,
    file: UploadFile = File(...),
    document_type: str = Form(default="other"),
    db: Session = Depends(get_db),
    user: User = Depends(require_roles(Role.patient.value)),
    request_id: str | None = Header(default=None),
):
    if not file.filename:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Filename required")
    if document_type not in DOCUMENT_TYPES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unsupported document type: {document_type}",
        )

    try:
        storage_key, byte_size = storage.save_upload(file, settings.max_document_bytes)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE, detail=str(exc))
    except OSError:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to store document",
        )

    document = Document(
        patient_user_id=user.id,
        document_type=document_type,
        original_filename=file.filename,
        mime_type=file.content_type or "application/octet-stream",
        file_size=byte_size,
        storage_key=storage_key,
        uploaded_by_user_id=user.id,
    )
    db.add(document)
    db.flush()
    log_event(
        db,
        actor=user,
        action="document.uploaded",
        entity_type=AuditEntityType.document,
        entity_id=document.id,
        patient_user_id=document.patient_user_id,
        after_data={
            "document_type": document.document_type,
            "original_filename": document.original_filename,
            "mime_type": document.mime_type,
            "file_size": document.file_size,
        },
        request=request,
        request_id=request_id,
    )
    db.commit()
    db.refresh(document)
    return document


@router.get("", response_model=list[DocumentOut])
def list_documents(
    document_type: str | None = None,
    db: Session = Depends(get_db),
    user: User = Depends(require_roles(Role.patient.value)),
):
    stmt = select(Document).where(Document.patient_user_id == user.id)
    if document_type:
        if document_type not in DOCUMENT_TYPES:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Unsupported document type: {document_type}",
            )
        stmt = stmt.where(Document.document_type == document_type)
    stmt = stmt.order_by(Document.uploaded_at.desc(), Document.id.desc())
    return list(db.scalars(stmt))


@router.get("/{document_id}", response_model=DocumentOut)
def get_document(
    document_id: int,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    return get_document_or_404(db, document_id, user)


@router.get("/{document_id}/view")
def view_document(
    document_id: int,
    request: Request,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    request_id: str | None = Header(default=None),
):
    document = get_document_or_404(db, document_id, user)
    return _stream_document(
        db,
        document,
        user=user,
        disposition="inline",
        action="document.viewed",
        request=request,
        request_id=request_id,
    )


@router.get("/{document_id}/download")
def download_document(
    document_id: int,
    request: Request,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    request_id: str | None = Header(default=None),
):
    document = get_document_or_404(db, document_id, user)
    return _stream_document(
        db,
        document,
        user=user,
        disposition="attachment",
        action="document.downloaded",
        request=request,
        request_id=request_id,
    )


@router.delete("/{document_id}", response_model=DocumentDeleteOut)
def delete_document(
    document_id: int,
    request: Request,
    db: Session = Depends(get_db),
    user: User = Depends(require_roles(Role.patient.value, Role.admin.value)),
    request_id: str | None = Header(default=None),
):
    document = get_document_or_404(db, document_id, user)
    before_data = {
        "patient_user_id": document.patient_user_id,
        "document_type": document.document_type,
        "original_filename": document.original_filename,
        "file_size": document.file_size,
    }
    storage_key = document.storage_key
    db.delete(document)
    log_event(
        db,
        actor=user,
        action="document.deleted",
        entity_type=AuditEntityType.document,
        entity_id=document_id,
        patient_user_id=before_data["patient_user_id"],
        before_data=before_data,
        request=request,
        request_id=request_id,
    )
    db.commit()
    try:
        storage.delete_file(storage_key)
    except OSError:
        logger.warning("Stored file for document %s could not be removed", document_id)
    return DocumentDeleteOut(success=True, message="Document deleted successfully")
