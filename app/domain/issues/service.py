"""Issue service - Property issues, comments and attachments"""

import logging
from datetime import datetime
from typing import Optional

from fastapi import HTTPException
from sqlalchemy.orm import Session, joinedload

from ...models import Contact, Issue, IssueAttachment, IssueComment, Property, User
from .schemas import AttachmentCreate, CommentCreate, IssueCreate, IssueUpdate

logger = logging.getLogger(__name__)

CLOSING_STATUSES = ("RESOLVED", "CLOSED")


class IssueService:
    """Service layer for issue business logic"""

    def __init__(self, db: Session):
        self.db = db

    def _visible_property_ids(self, user: User) -> Optional[list[str]]:
        """None means every property"""
        if user.is_admin or user.role == "GENERAL_MANAGER":
            return None
        query = self.db.query(Property.id)
        if user.role == "OWNER":
            query = query.filter(Property.owner_id == user.owner_id)
        else:
            query = query.filter(Property.manager_id == user.id)
        return [row.id for row in query.all()]

    def list_issues(
        self,
        user: User,
        property_id: Optional[str] = None,
        status: Optional[str] = None,
        priority: Optional[str] = None,
    ) -> list[Issue]:
        query = self.db.query(Issue).options(
            joinedload(Issue.property), joinedload(Issue.assigned_contact)
        )
        property_ids = self._visible_property_ids(user)
        if property_ids is not None:
            query = query.filter(Issue.property_id.in_(property_ids))
        if property_id:
            query = query.filter(Issue.property_id == property_id)
        if status:
            query = query.filter(Issue.status == status)
        if priority:
            query = query.filter(Issue.priority == priority)
        return query.order_by(Issue.created_at.desc()).all()

    def get_issue(self, issue_id: str, user: Optional[User] = None) -> Issue:
        issue = (
            self.db.query(Issue)
            .options(
                joinedload(Issue.property),
                joinedload(Issue.assigned_contact),
                joinedload(Issue.attachments),
                joinedload(Issue.comments),
            )
            .filter(Issue.id == issue_id)
            .first()
        )
        if not issue:
            raise HTTPException(status_code=404, detail="Issue not found")
        if user is not None:
            property_ids = self._visible_property_ids(user)
            if property_ids is not None and issue.property_id not in property_ids:
                raise HTTPException(status_code=403, detail="Forbidden")
        return issue

    def create_issue(self, data: IssueCreate, user: User) -> Issue:
        prop = self.db.query(Property).filter(Property.id == data.propertyId).first()
        if not prop:
            raise HTTPException(status_code=404, detail="Property not found")

        issue = Issue(
            property_id=prop.id,
            title=data.title,
            description=data.description,
            priority=data.priority,
            status="OPEN",
            reported_by_id=user.id,
            assigned_to_user_id=data.assignedToUserId,
            assigned_contact_id=data.assignedContactId,
        )
        self.db.add(issue)
        self.db.commit()
        logger.info(f"📥 Issue {issue.id} reported for property {prop.id} ({data.priority})")
        return self.get_issue(issue.id)

    def update_issue(self, issue_id: str, data: IssueUpdate, user: User) -> tuple[Issue, Optional[str], list[str]]:
        """
        Apply the update and work out which notification it triggers.

        Returns (issue, event, recipient owner ids); event is None when nothing
        worth notifying changed.
        """
        issue = self.get_issue(issue_id)
        updates = data.model_dump(exclude_unset=True)
        old_status = issue.status

        field_map = {
            "title": "title",
            "description": "description",
            "status": "status",
            "priority": "priority",
            "assignedToUserId": "assigned_to_user_id",
            "assignedContactId": "assigned_contact_id",
        }
        for key, value in updates.items():
            setattr(issue, field_map[key], value)

        if updates.get("status") in CLOSING_STATUSES and old_status not in CLOSING_STATUSES:
            issue.resolved_at = datetime.utcnow()
            issue.resolved_by_id = user.id

        self.db.commit()
        issue = self.get_issue(issue_id)

        recipients = [issue.property.owner_id] if issue.property else []
        event = None
        if updates.get("assignedContactId"):
            event = "assigned"
            contact = self.db.query(Contact).filter(Contact.id == updates["assignedContactId"]).first()
            if contact and contact.owner_id and contact.owner_id not in recipients:
                recipients.append(contact.owner_id)
        elif "status" in updates and issue.status != old_status:
            event = "status_changed"

        return issue, event, recipients

    def delete_issue(self, issue_id: str) -> None:
        issue = self.get_issue(issue_id)
        self.db.delete(issue)
        self.db.commit()

    def add_comment(self, issue_id: str, data: CommentCreate, user: User) -> IssueComment:
        issue = self.get_issue(issue_id, user)
        comment = IssueComment(issue_id=issue.id, user_id=user.id, content=data.content)
        self.db.add(comment)
        self.db.commit()
        self.db.refresh(comment)
        return comment

    def add_attachment(self, issue_id: str, data: AttachmentCreate, user: User) -> IssueAttachment:
        issue = self.get_issue(issue_id, user)
        attachment = IssueAttachment(
            issue_id=issue.id, file_url=data.fileUrl, file_name=data.fileName, mime_type=data.mimeType
        )
        self.db.add(attachment)
        self.db.commit()
        self.db.refresh(attachment)
        return attachment

    def delete_attachment(self, issue_id: str, attachment_id: str) -> None:
        attachment = (
            self.db.query(IssueAttachment)
            .filter(IssueAttachment.id == attachment_id, IssueAttachment.issue_id == issue_id)
            .first()
        )
        if not attachment:
            raise HTTPException(status_code=404, detail="Attachment not found")
        self.db.delete(attachment)
        self.db.commit()
