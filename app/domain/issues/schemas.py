"""Issue domain schemas"""

from typing import Optional

from pydantic import BaseModel, field_validator

ISSUE_STATUSES = ("OPEN", "IN_PROGRESS", "RESOLVED", "CLOSED")
ISSUE_PRIORITIES = ("LOW", "MEDIUM", "HIGH", "URGENT")


def _check_choice(value, choices, field):
    if value is not None and value not in choices:
        raise ValueError(f"{field} must be one of {', '.join(choices)}")
    return value


class IssueCreate(BaseModel):
    propertyId: str
    title: str
    description: Optional[str] = None
    priority: str = "MEDIUM"
    assignedToUserId: Optional[str] = None
    assignedContactId: Optional[str] = None

    @field_validator("title")
    @classmethod
    def check_title(cls, v):
        if not v.strip():
            raise ValueError("Title is required")
        return v.strip()

    @field_validator("priority")
    @classmethod
    def check_priority(cls, v):
        return _check_choice(v, ISSUE_PRIORITIES, "priority")


class IssueUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    status: Optional[str] = None
    priority: Optional[str] = None
    assignedToUserId: Optional[str] = None
    assignedContactId: Optional[str] = None

    @field_validator("status")
    @classmethod
    def check_status(cls, v):
        return _check_choice(v, ISSUE_STATUSES, "status")

    @field_validator("priority")
    @classmethod
    def check_priority(cls, v):
        return _check_choice(v, ISSUE_PRIORITIES, "priority")


class CommentCreate(BaseModel):
    content: str

    @field_validator("content")
    @classmethod
    def check_content(cls, v):
        if not v.strip():
            raise ValueError("Comment cannot be empty")
        return v


class AttachmentCreate(BaseModel):
    fileUrl: str
    fileName: Optional[str] = None
    mimeType: Optional[str] = None
