"""
Email and SMS notification templates
One default template per type: setting isDefault clears it on the others.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ..auth import require_admin
from ..database import get_db
from ..email_service import render_branded_email
from ..models import EmailTemplate, SmsTemplate, User
from ..security_utils import sanitize_html
from ..services.template_service import (
    SMS_TEMPLATE_VARIABLES,
    get_sms_template_variables,
    replace_email_variables,
    replace_sms_variables,
    seed_default_sms_templates,
)
from ..shared.serializers import row_to_dict

logger = logging.getLogger(__name__)

email_router = APIRouter(prefix="/email-templates", tags=["Email Templates"])
sms_router = APIRouter(prefix="/sms-templates", tags=["SMS Templates"])


class EmailTemplatePayload(BaseModel):
    name: Optional[str] = None
    type: Optional[str] = None
    subject: Optional[str] = None
    body: Optional[str] = None
    isDefault: Optional[bool] = None
    isActive: Optional[bool] = None


class SmsTemplatePayload(BaseModel):
    name: Optional[str] = None
    type: Optional[str] = None
    body: Optional[str] = None
    isDefault: Optional[bool] = None
    isActive: Optional[bool] = None


class PreviewRequest(BaseModel):
    templateId: Optional[str] = None
    subject: Optional[str] = None
    body: Optional[str] = None
    variables: dict = {}


class SmsPreviewRequest(BaseModel):
    templateId: Optional[str] = None
    body: Optional[str] = None
    variables: dict = {}


def _clear_other_defaults(db: Session, model, template_type: str, keep_id: Optional[str] = None) -> None:
    query = db.query(model).filter(model.type == template_type, model.is_default.is_(True))
    if keep_id:
        query = query.filter(model.id != keep_id)
    query.update({model.is_default: False}, synchronize_session=False)


def _get_or_404(db: Session, model, template_id: str, label: str):
    template = db.query(model).filter(model.id == template_id).first()
    if not template:
        raise HTTPException(status_code=404, detail=f"{label} not found")
    return template


# ============================================================================
# EMAIL TEMPLATES
# ============================================================================


@email_router.get("")
async def list_email_templates(
    type: Optional[str] = Query(None),
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    query = db.query(EmailTemplate)
    if type:
        query = query.filter(EmailTemplate.type == type)
    return [row_to_dict(t) for t in query.order_by(EmailTemplate.type.asc(), EmailTemplate.name.asc()).all()]


@email_router.post("", status_code=status.HTTP_201_CREATED)
async def create_email_template(
    data: EmailTemplatePayload,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    if not data.name or not data.type or not data.subject or not data.body:
        raise HTTPException(status_code=400, detail="Name, type, subject and body are required")
    if data.isDefault:
        _clear_other_defaults(db, EmailTemplate, data.type)
    template = EmailTemplate(
        name=data.name,
        type=data.type,
        subject=data.subject,
        body=sanitize_html(data.body),
        is_default=bool(data.isDefault),
        is_active=True if data.isActive is None else data.isActive,
        created_by_id=current_user.id,
    )
    db.add(template)
    db.commit()
    db.refresh(template)
    logger.info(f"✅ Email template '{template.name}' ({template.type}) created")
    return row_to_dict(template)


@email_router.post("/preview")
async def preview_email_template(
    data: PreviewRequest,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    if data.templateId:
        template = _get_or_404(db, EmailTemplate, data.templateId, "Email template")
        subject, body = template.subject, template.body
    else:
        if not data.body:
            raise HTTPException(status_code=400, detail="Template ID or body is required")
        subject, body = data.subject or "", sanitize_html(data.body)

    rendered_subject = replace_email_variables(subject, data.variables)
    rendered_body = replace_email_variables(body, data.variables)
    html = render_branded_email(db, rendered_body, title=rendered_subject or "HostHub Notification")
    return {"subject": rendered_subject, "html": html}


@email_router.get("/{template_id}")
async def get_email_template(
    template_id: str,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return row_to_dict(_get_or_404(db, EmailTemplate, template_id, "Email template"))


@email_router.patch("/{template_id}")
async def update_email_template(
    template_id: str,
    data: EmailTemplatePayload,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    template = _get_or_404(db, EmailTemplate, template_id, "Email template")
    updates = data.model_dump(exclude_unset=True, exclude_none=True)
    if "name" in updates:
        template.name = updates["name"]
    if "type" in updates:
        template.type = updates["type"]
    if "subject" in updates:
        template.subject = updates["subject"]
    if "body" in updates:
        template.body = sanitize_html(updates["body"])
    if "isActive" in updates:
        template.is_active = updates["isActive"]
    if "isDefault" in updates:
        if updates["isDefault"]:
            _clear_other_defaults(db, EmailTemplate, template.type, keep_id=template.id)
        template.is_default = updates["isDefault"]
    db.commit()
    db.refresh(template)
    return row_to_dict(template)


@email_router.delete("/{template_id}")
async def delete_email_template(
    template_id: str,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    db.delete(_get_or_404(db, EmailTemplate, template_id, "Email template"))
    db.commit()
    return {"success": True}


# ============================================================================
# SMS TEMPLATES
# ============================================================================


@sms_router.get("/variables")
async def sms_template_variables(
    type: Optional[str] = Query(None),
    current_user: User = Depends(require_admin),
):
    """Variable catalog, for one type or all of them"""
    if type:
        return {"type": type, "variables": get_sms_template_variables(type)}
    return SMS_TEMPLATE_VARIABLES


@sms_router.post("/seed")
async def seed_sms_templates(
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    created = seed_default_sms_templates(db, created_by_id=current_user.id)
    return {"success": True, "created": created}


@sms_router.post("/preview")
async def preview_sms_template(
    data: SmsPreviewRequest,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    if data.templateId:
        body = _get_or_404(db, SmsTemplate, data.templateId, "SMS template").body
    elif data.body:
        body = data.body
    else:
        raise HTTPException(status_code=400, detail="Template ID or body is required")
    message = replace_sms_variables(body, data.variables)
    return {"message": message, "length": len(message)}


@sms_router.get("")
async def list_sms_templates(
    type: Optional[str] = Query(None),
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    query = db.query(SmsTemplate)
    if type:
        query = query.filter(SmsTemplate.type == type)
    return [row_to_dict(t) for t in query.order_by(SmsTemplate.type.asc(), SmsTemplate.name.asc()).all()]


@sms_router.post("", status_code=status.HTTP_201_CREATED)
async def create_sms_template(
    data: SmsTemplatePayload,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    if not data.name or not data.type or not data.body:
        raise HTTPException(status_code=400, detail="Name, type and body are required")
    if data.isDefault:
        _clear_other_defaults(db, SmsTemplate, data.type)
    template = SmsTemplate(
        name=data.name,
        type=data.type,
        body=data.body,
        is_default=bool(data.isDefault),
        is_active=True if data.isActive is None else data.isActive,
        created_by_id=current_user.id,
    )
    db.add(template)
    db.commit()
    db.refresh(template)
    logger.info(f"✅ SMS template '{template.name}' ({template.type}) created")
    return row_to_dict(template)


@sms_router.get("/{template_id}")
async def get_sms_template(
    template_id: str,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return row_to_dict(_get_or_404(db, SmsTemplate, template_id, "SMS template"))


@sms_router.patch("/{template_id}")
async def update_sms_template(
    template_id: str,
    data: SmsTemplatePayload,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    template = _get_or_404(db, SmsTemplate, template_id, "SMS template")
    updates = data.model_dump(exclude_unset=True, exclude_none=True)
    for key, column in (("name", "name"), ("type", "type"), ("body", "body"), ("isActive", "is_active")):
        if key in updates:
            setattr(template, column, updates[key])
    if "isDefault" in updates:
        if updates["isDefault"]:
            _clear_other_defaults(db, SmsTemplate, template.type, keep_id=template.id)
        template.is_default = updates["isDefault"]
    db.commit()
    db.refresh(template)
    return row_to_dict(template)


@sms_router.delete("/{template_id}")
async def delete_sms_template(
    template_id: str,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    db.delete(_get_or_404(db, SmsTemplate, template_id, "SMS template"))
    db.commit()
    return {"success": True}
