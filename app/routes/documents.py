import logging
import os
import uuid
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, UploadFile, status
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ..auth import get_current_user, require_admin, require_roles
from ..config import UPLOADS_DIR
from ..database import get_db
from ..models import Document, User
from ..shared.serializers import row_to_dict

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/documents", tags=["Documents"])

DOCUMENTS_SUBDIR = os.path.join("uploads", "documents")
MAX_UPLOAD_BYTES = 20 * 1024 * 1024
DANGEROUS_FILENAME_CHARS = ["..", "/", "\\", "<", ">", ":", '"', "|", "?", "*"]

DOCUMENT_FIELDS = {
    "propertyId": "property_id",
    "ownerId": "owner_id",
    "bookingId": "booking_id",
    "expenseId": "expense_id",
    "type": "type",
    "title": "title",
    "fileName": "file_name",
    "fileUrl": "file_url",
    "fileSize": "file_size",
    "mimeType": "mime_type",
    "description": "description",
}


class DocumentPayload(BaseModel):
    propertyId: Optional[str] = None
    ownerId: Optional[str] = None
    bookingId: Optional[str] = None
    expenseId: Optional[str] = None
    type: Optional[str] = None
    title: Optional[str] = None
    fileName: Optional[str] = None
    fileUrl: Optional[str] = None
    fileSize: Optional[int] = None
    mimeType: Optional[str] = None
    description: Optional[str] = None


def safe_filename(filename: Optional[str]) -> str:
    """Keep the extension, replace the name with a UUID"""
    if not filename:
        raise HTTPException(status_code=400, detail="Filename is required")
    for char in DANGEROUS_FILENAME_CHARS:
        if char in filename:
            raise HTTPException(status_code=400, detail=f"Invalid filename - contains dangerous character '{char}'")
    _, ext = os.path.splitext(filename)
    return f"{uuid.uuid4().hex}{ext.lower()}"


def _get_document(db: Session, document_id: str) -> Document:
    document = db.query(Document).filter(Document.id == document_id).first()
    if not document:
        raise HTTPException(status_code=404, detail="Document not found")
    return document


@router.get("")
async def list_documents(
    propertyId: Optional[str] = Query(None),
    ownerId: Optional[str] = Query(None),
    bookingId: Optional[str] = Query(None),
    type: Optional[str] = Query(None),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    query = db.query(Document)
    if current_user.role == "OWNER":
        query = query.filter(Document.owner_id == current_user.owner_id)
    elif not current_user.is_admin:
        raise HTTPException(status_code=403, detail="Forbidden")
    elif ownerId:
        query = query.filter(Document.owner_id == ownerId)
    if propertyId:
        query = query.filter(Document.property_id == propertyId)
    if bookingId:
        query = query.filter(Document.booking_id == bookingId)
    if type:
        query = query.filter(Document.type == type)
    return [row_to_dict(d) for d in query.order_by(Document.created_at.desc()).all()]


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_document(
    data: DocumentPayload,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Register an already-hosted file"""
    if not data.title or not data.fileUrl:
        raise HTTPException(status_code=400, detail="Title and file URL are required")
    values = {DOCUMENT_FIELDS[k]: v for k, v in data.model_dump(exclude_unset=True).items()}
    values.setdefault("type", "OTHER")
    document = Document(uploaded_by_id=current_user.id, **values)
    db.add(document)
    db.commit()
    db.refresh(document)
    return row_to_dict(document)


@router.post("/upload", status_code=status.HTTP_201_CREATED)
async def upload_document(
    file: UploadFile = File(...),
    title: Optional[str] = Form(None),
    type: str = Form("OTHER"),
    propertyId: Optional[str] = Form(None),
    ownerId: Optional[str] = Form(None),
    bookingId: Optional[str] = Form(None),
    expenseId: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    current_user: User = Depends(require_roles("MANAGER", "GENERAL_MANAGER")),
    db: Session = Depends(get_db),
):
    """Store an uploaded file under the public uploads dir and record it"""
    stored_name = safe_filename(file.filename)
    content = await file.read()
    if len(content) > MAX_UPLOAD_BYTES:
        raise HTTPException(status_code=400, detail="File too large. Maximum size is 20MB")

    target_dir = os.path.join(UPLOADS_DIR, DOCUMENTS_SUBDIR)
    os.makedirs(target_dir, exist_ok=True)
    with open(os.path.join(target_dir, stored_name), "wb") as f:
        f.write(content)

    document = Document(
        property_id=propertyId,
        owner_id=ownerId,
        booking_id=bookingId,
        expense_id=expenseId,
        type=type,
        title=title or file.filename,
        file_name=file.filename,
        file_url=f"/uploads/documents/{stored_name}",
        file_size=len(content),
        mime_type=file.content_type,
        description=description,
        uploaded_by_id=current_user.id,
    )
    db.add(document)
    db.commit()
    db.refresh(document)
    logger.info(f"✅ Uploaded document {document.id} ({len(content)} bytes)")
    return row_to_dict(document)


@router.get("/{document_id}")
async def get_document(
    document_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    document = _get_document(db, document_id)
    if current_user.role == "OWNER" and document.owner_id != current_user.owner_id:
        raise HTTPException(status_code=403, detail="Forbidden")
    return row_to_dict(document)


@router.patch("/{document_id}")
async def update_document(
    document_id: str,
    data: DocumentPayload,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    document = _get_document(db, document_id)
    for key, value in data.model_dump(exclude_unset=True).items():
        if value is None and key in ("type", "title", "fileUrl"):
            continue
        setattr(document, DOCUMENT_FIELDS[key], value)
    db.commit()
    db.refresh(document)
    return row_to_dict(document)


@router.delete("/{document_id}")
async def delete_document(
    document_id: str,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    document = _get_document(db, document_id)
    if document.file_url and document.file_url.startswith("/uploads/"):
        path = os.path.join(UPLOADS_DIR, document.file_url.lstrip("/"))
        if os.path.isfile(path):
            os.remove(path)
    db.delete(document)
    db.commit()
    return {"success": True}
