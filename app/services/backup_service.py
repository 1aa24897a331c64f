"""
Backup export

v1.1 JSON: {version, createdAt, includesFiles, data, files}. `data` holds one
list per table (camelCase rows), `files` every upload as base64.
v2.0 archive: tar.gz with manifest.json, database.json and the uploads/ tree.
"""

import base64
import io
import json
import logging
import os
import tarfile
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session, joinedload

from ..config import UPLOADS_DIR
from ..models import (
    AIInsightCache,
    Booking,
    Contact,
    Document,
    EmailTemplate,
    Expense,
    GuestContact,
    InventoryHistory,
    InventoryItem,
    Issue,
    Notification,
    Owner,
    OwnerTransaction,
    Payout,
    Property,
    RecurringTask,
    Report,
    Setting,
    SmsTemplate,
    Statement,
    Task,
    User,
)
from ..shared.serializers import row_to_dict
from .settings_service import SECRET_SETTING_KEYS

logger = logging.getLogger(__name__)

BACKUP_VERSION = "1.1"
ARCHIVE_VERSION = "2.0"
UPLOADS_SUBDIR = "uploads"

MIME_TYPES = {
    "png": "image/png",
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "gif": "image/gif",
    "webp": "image/webp",
    "svg": "image/svg+xml",
    "pdf": "application/pdf",
    "mp4": "video/mp4",
    "mov": "video/quicktime",
    "avi": "video/x-msvideo",
}

# data key -> model for the tables exported as flat rows
FLAT_TABLES = {
    "properties": Property,
    "bookings": Booking,
    "expenses": Expense,
    "tasks": Task,
    "documents": Document,
    "contacts": Contact,
    "guestContacts": GuestContact,
    "payouts": Payout,
    "ownerTransactions": OwnerTransaction,
    "recurringTasks": RecurringTask,
    "reports": Report,
    "inventoryItems": InventoryItem,
    "inventoryHistory": InventoryHistory,
    "notifications": Notification,
    "aiInsightCache": AIInsightCache,
    "emailTemplates": EmailTemplate,
    "smsTemplates": SmsTemplate,
}


def get_mime_type(filename: str) -> str:
    ext = filename.rsplit(".", 1)[-1].lower() if "." in filename else ""
    return MIME_TYPES.get(ext, "application/octet-stream")


def uploads_root() -> str:
    return os.path.join(UPLOADS_DIR, UPLOADS_SUBDIR)


def collect_files(root: Optional[str] = None) -> list[dict]:
    """Every file under the uploads dir as {path: "uploads/...", name, data, mimeType}"""
    root = root or uploads_root()
    files = []
    if not os.path.isdir(root):
        logger.info(f"📁 Uploads directory {root} not found, backing up no files")
        return files

    for dirpath, _dirnames, filenames in os.walk(root):
        for filename in sorted(filenames):
            full_path = os.path.join(dirpath, filename)
            relative = os.path.relpath(full_path, root).replace(os.sep, "/")
            try:
                with open(full_path, "rb") as f:
                    data = base64.b64encode(f.read()).decode("ascii")
            except OSError as e:
                logger.error(f"❌ Failed to read {full_path}: {e}")
                continue
            files.append(
                {
                    "path": f"{UPLOADS_SUBDIR}/{relative}",
                    "name": filename,
                    "data": data,
                    "mimeType": get_mime_type(filename),
                }
            )
    return files


def export_data(db: Session) -> dict:
    """All tables as JSON-ready lists. SUPER_ADMIN users and secret settings are left out."""
    data: dict[str, list] = {}

    users = db.query(User).filter(User.role != "SUPER_ADMIN").all()
    data["users"] = [row_to_dict(u) for u in users]

    owners = db.query(Owner).options(joinedload(Owner.wallet), joinedload(Owner.user)).all()
    data["owners"] = []
    for owner in owners:
        row = row_to_dict(owner)
        row["wallet"] = row_to_dict(owner.wallet)
        row["user"] = row_to_dict(owner.user) if owner.user and owner.user.role != "SUPER_ADMIN" else None
        data["owners"].append(row)

    statements = db.query(Statement).options(joinedload(Statement.lines)).all()
    data["statements"] = [{**row_to_dict(s), "lines": [row_to_dict(line) for line in s.lines]} for s in statements]

    issues = db.query(Issue).options(joinedload(Issue.attachments), joinedload(Issue.comments)).all()
    data["issues"] = [
        {
            **row_to_dict(i),
            "attachments": [row_to_dict(a) for a in i.attachments],
            "comments": [row_to_dict(c) for c in i.comments],
        }
        for i in issues
    ]

    for key, model in FLAT_TABLES.items():
        data[key] = [row_to_dict(row) for row in db.query(model).all()]

    settings = db.query(Setting).filter(Setting.key.notin_(SECRET_SETTING_KEYS)).all()
    data["settings"] = [row_to_dict(s) for s in settings]
    return data


def create_backup(db: Session, include_files: bool = True) -> dict:
    files = collect_files() if include_files else []
    backup = {
        "version": BACKUP_VERSION,
        "createdAt": datetime.utcnow().isoformat() + "Z",
        "includesFiles": include_files,
        "data": export_data(db),
        "files": files,
    }
    logger.info(
        f"💾 Backup created: {sum(len(rows) for rows in backup['data'].values())} rows, {len(files)} files"
    )
    return backup


def backup_filename(now: Optional[datetime] = None, extension: str = "json") -> str:
    now = now or datetime.utcnow()
    return f"hosthub-backup-{now.strftime('%Y-%m-%d')}.{extension}"


def _add_bytes(tar: tarfile.TarFile, name: str, payload: bytes) -> None:
    info = tarfile.TarInfo(name=name)
    info.size = len(payload)
    info.mtime = int(datetime.utcnow().timestamp())
    tar.addfile(info, io.BytesIO(payload))


def create_backup_archive(db: Session) -> bytes:
    """v2.0 archive: manifest.json + database.json + uploads/"""
    data = export_data(db)
    created_at = datetime.utcnow().isoformat() + "Z"
    manifest = {
        "version": ARCHIVE_VERSION,
        "createdAt": created_at,
        "database": "database.json",
        "tables": {key: len(rows) for key, rows in data.items()},
    }
    database = {"version": BACKUP_VERSION, "createdAt": created_at, "data": data}

    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode="w:gz") as tar:
        _add_bytes(tar, "manifest.json", json.dumps(manifest, indent=2).encode("utf-8"))
        _add_bytes(tar, "database.json", json.dumps(database, default=str).encode("utf-8"))
        root = uploads_root()
        if os.path.isdir(root):
            tar.add(root, arcname=UPLOADS_SUBDIR)
    logger.info(f"📦 Backup archive created ({buffer.tell()} bytes)")
    return buffer.getvalue()
