"""Statement router - FastAPI endpoints for owner statements"""

import logging
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query, status
from fastapi.responses import Response
from sqlalchemy.orm import Session

from ...auth import get_current_user, require_admin
from ...database import get_db
from ...models import Statement, User
from ...services.notification_service import run_notification_job, send_statement_ready_notification
from ...services.statement_pdf import statement_pdf_filename
from ...shared.serializers import row_to_dict
from .schemas import StatementGenerate, StatementPreviewAll
from .service import StatementService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/statements", tags=["Statements"])


def get_statement_service(db: Session = Depends(get_db)) -> StatementService:
    """Dependency injection for StatementService"""
    return StatementService(db)


def serialize_statement(statement: Statement, with_lines: bool = False) -> dict:
    data = row_to_dict(statement)
    if statement.owner:
        data["owner"] = {"id": statement.owner.id, "name": statement.owner.name, "email": statement.owner.email}
    if with_lines:
        data["lines"] = [row_to_dict(line) for line in statement.lines]
    return data


def pdf_response(statement_id: str, pdf_bytes: bytes) -> Response:
    return Response(
        content=pdf_bytes,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{statement_pdf_filename(statement_id)}"'},
    )


@router.get("")
async def list_statements(
    ownerId: Optional[str] = Query(None),
    status_filter: Optional[str] = Query(None, alias="status"),
    current_user: User = Depends(get_current_user),
    service: StatementService = Depends(get_statement_service),
):
    return [serialize_statement(s) for s in service.list_statements(current_user, ownerId, status_filter)]


@router.post("/generate", status_code=status.HTTP_201_CREATED)
async def generate_statement(
    data: StatementGenerate,
    current_user: User = Depends(require_admin),
    service: StatementService = Depends(get_statement_service),
):
    """Generate a DRAFT statement with its line items"""
    return serialize_statement(service.generate(data), with_lines=True)


@router.post("/preview-all")
async def preview_all_statements(
    data: StatementPreviewAll,
    current_user: User = Depends(require_admin),
    service: StatementService = Depends(get_statement_service),
):
    """Statement previews for every owner with activity in the period; nothing is saved"""
    return service.preview_all(data)


@router.get("/{statement_id}")
async def get_statement(
    statement_id: str,
    current_user: User = Depends(get_current_user),
    service: StatementService = Depends(get_statement_service),
):
    return serialize_statement(service.get_statement(statement_id, current_user), with_lines=True)


@router.post("/{statement_id}/finalize")
async def finalize_statement(
    statement_id: str,
    background_tasks: BackgroundTasks,
    current_user: User = Depends(require_admin),
    service: StatementService = Depends(get_statement_service),
):
    """Finalize into a STATEMENT_NET transaction and return the PDF"""
    statement, pdf_bytes = service.finalize(statement_id, current_user)
    background_tasks.add_task(run_notification_job, send_statement_ready_notification, statement.id)
    return pdf_response(statement.id, pdf_bytes)


@router.get("/{statement_id}/pdf")
async def download_statement_pdf(
    statement_id: str,
    current_user: User = Depends(get_current_user),
    service: StatementService = Depends(get_statement_service),
):
    return pdf_response(statement_id, service.get_pdf(statement_id, current_user))


@router.delete("/{statement_id}")
async def delete_statement(
    statement_id: str,
    current_user: User = Depends(require_admin),
    service: StatementService = Depends(get_statement_service),
):
    service.delete(statement_id)
    return {"success": True}
