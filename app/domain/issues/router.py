"""Issue router - FastAPI endpoints for property issues"""

import logging
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query, status
from sqlalchemy.orm import Session

from ...auth import get_current_user, require_admin, require_roles
from ...database import get_db
from ...models import Issue, User
from ...services.notification_service import run_notification_job, send_issue_notification
from ...shared.serializers import row_to_dict
from .schemas import AttachmentCreate, CommentCreate, IssueCreate, IssueUpdate
from .service import IssueService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/issues", tags=["Issues"])


def get_issue_service(db: Session = Depends(get_db)) -> IssueService:
    """Dependency injection for IssueService"""
    return IssueService(db)


def serialize_issue(issue: Issue, detail: bool = False) -> dict:
    data = row_to_dict(issue)
    if issue.property:
        data["property"] = {"id": issue.property.id, "name": issue.property.name, "ownerId": issue.property.owner_id}
    data["assignedContact"] = row_to_dict(issue.assigned_contact)
    if detail:
        data["attachments"] = [row_to_dict(a) for a in issue.attachments]
        data["comments"] = [row_to_dict(c) for c in sorted(issue.comments, key=lambda c: c.created_at)]
    return data


# ============================================================================
# CORE CRUD OPERATIONS
# ============================================================================


@router.get("")
async def list_issues(
    propertyId: Optional[str] = Query(None),
    status_filter: Optional[str] = Query(None, alias="status"),
    priority: Optional[str] = Query(None),
    current_user: User = Depends(get_current_user),
    service: IssueService = Depends(get_issue_service),
):
    issues = service.list_issues(current_user, propertyId, status_filter, priority)
    return [serialize_issue(i) for i in issues]


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_issue(
    data: IssueCreate,
    background_tasks: BackgroundTasks,
    current_user: User = Depends(get_current_user),
    service: IssueService = Depends(get_issue_service),
):
    """Report an issue; the property's owner is notified"""
    issue = service.create_issue(data, current_user)
    background_tasks.add_task(
        run_notification_job, send_issue_notification, issue.id, "created", [issue.property.owner_id]
    )
    return serialize_issue(issue, detail=True)


@router.get("/{issue_id}")
async def get_issue(
    issue_id: str,
    current_user: User = Depends(get_current_user),
    service: IssueService = Depends(get_issue_service),
):
    return serialize_issue(service.get_issue(issue_id, current_user), detail=True)


@router.patch("/{issue_id}")
async def update_issue(
    issue_id: str,
    data: IssueUpdate,
    background_tasks: BackgroundTasks,
    current_user: User = Depends(require_roles("MANAGER", "GENERAL_MANAGER")),
    service: IssueService = Depends(get_issue_service),
):
    issue, event, recipients = service.update_issue(issue_id, data, current_user)
    if event:
        background_tasks.add_task(run_notification_job, send_issue_notification, issue.id, event, recipients)
    return serialize_issue(issue, detail=True)


@router.delete("/{issue_id}")
async def delete_issue(
    issue_id: str,
    current_user: User = Depends(require_admin),
    service: IssueService = Depends(get_issue_service),
):
    service.delete_issue(issue_id)
    return {"success": True}


# ============================================================================
# COMMENTS & ATTACHMENTS
# ============================================================================


@router.post("/{issue_id}/comments", status_code=status.HTTP_201_CREATED)
async def add_comment(
    issue_id: str,
    data: CommentCreate,
    background_tasks: BackgroundTasks,
    current_user: User = Depends(get_current_user),
    service: IssueService = Depends(get_issue_service),
):
    comment = service.add_comment(issue_id, data, current_user)
    issue = service.get_issue(issue_id)
    background_tasks.add_task(
        run_notification_job, send_issue_notification, issue_id, "commented", [issue.property.owner_id]
    )
    return row_to_dict(comment)


@router.post("/{issue_id}/attachments", status_code=status.HTTP_201_CREATED)
async def add_attachment(
    issue_id: str,
    data: AttachmentCreate,
    current_user: User = Depends(get_current_user),
    service: IssueService = Depends(get_issue_service),
):
    return row_to_dict(service.add_attachment(issue_id, data, current_user))


@router.delete("/{issue_id}/attachments/{attachment_id}")
async def delete_attachment(
    issue_id: str,
    attachment_id: str,
    current_user: User = Depends(require_roles("MANAGER", "GENERAL_MANAGER")),
    service: IssueService = Depends(get_issue_service),
):
    service.delete_attachment(issue_id, attachment_id)
    return {"success": True}
