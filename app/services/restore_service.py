"""
Backup restore

v1.0 / v1.1 JSON backups are upserted by primary key inside one transaction,
parents before children. Optional references to rows that do not exist are
nulled; rows whose required parent is missing are skipped.

v2.0 archives (.tar.gz / .tgz / .zip) carry either database.sql (pg_dump custom
format or plain SQL, restored with the PostgreSQL client tools) or
database.json (restored like a v1 backup), plus the uploads/ tree.
"""

import base64
import json
import logging
import os
import shutil
import subprocess
import tarfile
import tempfile
import zipfile
from typing import Optional

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ..config import DATABASE_URL, UPLOADS_DIR
from ..database import IS_SQLITE, Base
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
    IssueAttachment,
    IssueComment,
    Notification,
    Owner,
    OwnerTransaction,
    OwnerWallet,
    Payout,
    Property,
    RecurringTask,
    Report,
    Setting,
    SmsTemplate,
    Statement,
    StatementLine,
    Task,
    User,
)
from ..shared.serializers import dict_to_columns
from .backup_service import BACKUP_VERSION, uploads_root

logger = logging.getLogger(__name__)

SUPPORTED_VERSIONS = ("1.0", "1.1")
ARCHIVE_EXTENSIONS = (".tar.gz", ".tgz", ".zip")
PG_CUSTOM_DUMP_MAGIC = b"PGDMP"
SQL_RESTORE_TIMEOUT = 600

# Children first; users and owners are handled separately
CLEAR_ORDER = [
    StatementLine,
    IssueComment,
    IssueAttachment,
    InventoryHistory,
    InventoryItem,
    Statement,
    Issue,
    Document,
    Expense,
    Task,
    Booking,
    OwnerTransaction,
    Payout,
    RecurringTask,
    Report,
    Notification,
    AIInsightCache,
    GuestContact,
    Contact,
    Property,
    OwnerWallet,
    EmailTemplate,
    SmsTemplate,
]

# Tables whose row count must survive an archive restore
VERIFIED_TABLES = {
    "owners": Owner,
    "users": User,
    "properties": Property,
    "bookings": Booking,
    "expenses": Expense,
    "statements": Statement,
    "issues": Issue,
    "tasks": Task,
}


class RestoreVerificationError(Exception):
    pass


def _model_for_table(table):
    for mapper in Base.registry.mappers:
        if mapper.local_table is table:
            return mapper.class_
    return None


def _resolve_references(db: Session, model, values: dict) -> bool:
    """
    Null optional foreign keys whose target row is missing.
    Returns False when a required foreign key points nowhere.
    """
    for column in model.__table__.columns:
        value = values.get(column.key)
        if value is None or not column.foreign_keys:
            continue
        target = _model_for_table(next(iter(column.foreign_keys)).column.table)
        if target is None or db.get(target, value) is not None:
            continue
        if column.nullable:
            values[column.key] = None
        else:
            logger.warning(f"⚠️ Skipping {model.__tablename__} {values.get('id')}: missing {column.key} {value}")
            return False
    return True


def _upsert(db: Session, model, row: Optional[dict]):
    if not row:
        return None
    values = dict_to_columns(model, row)
    if not values.get("id"):
        return None
    if not _resolve_references(db, model, values):
        return None
    return db.merge(model(**values))


def _restore_user(db: Session, row: Optional[dict]) -> None:
    if not row:
        return
    values = dict_to_columns(User, row)
    if not values.get("id"):
        return
    if values.get("email"):
        clash = db.query(User).filter(User.email == values["email"], User.id != values["id"]).first()
        if clash:
            logger.warning(f"⚠️ Skipping user {values['id']}: email {values['email']} belongs to another user")
            return
    if values.get("owner_id"):
        linked = db.query(User).filter(User.owner_id == values["owner_id"], User.id != values["id"]).first()
        if linked:
            values["owner_id"] = None
    if _resolve_references(db, User, values):
        db.merge(User(**values))


def _restore_wallet(db: Session, row: Optional[dict]) -> None:
    if not row:
        return
    values = dict_to_columns(OwnerWallet, row)
    if not values.get("id") or not _resolve_references(db, OwnerWallet, values):
        return
    existing = db.query(OwnerWallet).filter(OwnerWallet.owner_id == values["owner_id"]).first()
    if existing and existing.id != values["id"]:
        # One wallet per owner: fold the backup's figures into the wallet already there
        for key, value in values.items():
            if key != "id":
                setattr(existing, key, value)
        return
    db.merge(OwnerWallet(**values))


def _restore_setting(db: Session, row: dict) -> None:
    values = dict_to_columns(Setting, row)
    if not values.get("key"):
        return
    existing = db.query(Setting).filter(Setting.key == values["key"]).first()
    if existing:
        existing.value = values.get("value")
        existing.category = values.get("category") or existing.category
        return
    db.merge(Setting(**values))


def clear_business_data(db: Session) -> dict:
    """
    Delete owners and everything hanging off them. Users and settings are kept;
    OWNER logins lose their owner link. Returns deleted row counts per table.
    """
    counts = {}
    for model in CLEAR_ORDER:
        counts[model.__tablename__] = db.query(model).delete(synchronize_session=False)
    db.query(User).update({User.owner_id: None}, synchronize_session=False)
    counts[Owner.__tablename__] = db.query(Owner).delete(synchronize_session=False)
    db.flush()
    # Bulk deletes bypass the identity map
    db.expunge_all()
    return counts


def clear_existing_data(db: Session) -> None:
    """Delete everything restorable, keeping SUPER_ADMIN users and settings"""
    clear_business_data(db)
    db.query(User).filter(User.role != "SUPER_ADMIN").delete(synchronize_session=False)
    db.flush()
    db.expunge_all()
    logger.info("🗑️ Existing data cleared before restore")


def restore_data(db: Session, data: dict, clear_existing: bool = False) -> None:
    """Upsert every table of a backup `data` block; the caller commits"""
    if clear_existing:
        clear_existing_data(db)

    def step(key, model):
        for row in data.get(key) or []:
            _upsert(db, model, row)
        db.flush()

    step("owners", Owner)

    for row in data.get("users") or []:
        _restore_user(db, row)
    db.flush()

    for owner in data.get("owners") or []:
        _restore_user(db, owner.get("user"))
        _restore_wallet(db, owner.get("wallet"))
    db.flush()

    step("properties", Property)
    step("contacts", Contact)
    step("guestContacts", GuestContact)
    step("bookings", Booking)
    step("recurringTasks", RecurringTask)
    step("tasks", Task)
    step("expenses", Expense)

    for statement in data.get("statements") or []:
        if _upsert(db, Statement, statement) is None:
            continue
        db.flush()
        for line in statement.get("lines") or []:
            _upsert(db, StatementLine, line)
    db.flush()

    for issue in data.get("issues") or []:
        if _upsert(db, Issue, issue) is None:
            continue
        db.flush()
        for attachment in issue.get("attachments") or []:
            _upsert(db, IssueAttachment, attachment)
        for comment in issue.get("comments") or []:
            _upsert(db, IssueComment, comment)
    db.flush()

    step("documents", Document)
    step("payouts", Payout)
    step("ownerTransactions", OwnerTransaction)
    step("reports", Report)
    step("inventoryItems", InventoryItem)
    step("inventoryHistory", InventoryHistory)
    step("notifications", Notification)
    step("aiInsightCache", AIInsightCache)
    step("emailTemplates", EmailTemplate)
    step("smsTemplates", SmsTemplate)

    for row in data.get("settings") or []:
        _restore_setting(db, row)
    db.flush()


def _safe_upload_target(relative_path: str) -> Optional[str]:
    """Resolve an "uploads/..." path under UPLOADS_DIR, None when it escapes"""
    normalized = relative_path.replace("\\", "/")
    if not normalized.startswith("uploads/") or os.path.isabs(normalized):
        return None
    root = os.path.abspath(uploads_root())
    target = os.path.abspath(os.path.join(UPLOADS_DIR, normalized))
    if os.path.commonpath([root, target]) != root:
        return None
    return target


def restore_files(files: list[dict]) -> tuple[int, int]:
    restored = skipped = 0
    for entry in files:
        target = _safe_upload_target(entry.get("path") or "")
        if not target or not entry.get("data"):
            skipped += 1
            continue
        try:
            os.makedirs(os.path.dirname(target), exist_ok=True)
            with open(target, "wb") as f:
                f.write(base64.b64decode(entry["data"]))
            restored += 1
        except (OSError, ValueError) as e:
            logger.error(f"❌ Failed to restore file {entry.get('path')}: {e}")
            skipped += 1
    return restored, skipped


def validate_backup(backup) -> None:
    if not isinstance(backup, dict) or not isinstance(backup.get("data"), dict):
        raise HTTPException(status_code=400, detail="Invalid backup format")
    if backup.get("version") not in SUPPORTED_VERSIONS:
        raise HTTPException(status_code=400, detail="Unsupported backup version")


def restore_backup(db: Session, backup: dict, clear_existing: bool = False) -> dict:
    validate_backup(backup)
    try:
        restore_data(db, backup["data"], clear_existing=clear_existing)
        db.commit()
    except Exception as e:
        db.rollback()
        logger.error(f"❌ Restore failed, transaction rolled back: {e}")
        raise HTTPException(status_code=500, detail=f"Failed to restore backup: {e}")

    files_restored, files_skipped = restore_files(backup.get("files") or [])
    logger.info(f"♻️ Backup v{backup['version']} restored ({files_restored} files, {files_skipped} skipped)")
    return {
        "success": True,
        "message": "Backup restored successfully",
        "filesRestored": files_restored,
        "filesSkipped": files_skipped,
    }


# ============================================================================
# v2.0 ARCHIVES
# ============================================================================


def table_counts(db: Session) -> dict[str, int]:
    return {name: db.query(model).count() for name, model in VERIFIED_TABLES.items()}


def verify_counts(before: dict[str, int], after: dict[str, int]) -> None:
    for table, count in before.items():
        if count > 0 and after.get(table, 0) == 0:
            raise RestoreVerificationError(f"Restore verification failed: {table} count dropped from {count} to 0")


def _safe_member_path(dest: str, name: str) -> str:
    normalized = name.replace("\\", "/")
    if os.path.isabs(normalized) or ".." in normalized.split("/"):
        raise HTTPException(status_code=400, detail=f"Unsafe path in archive: {name}")
    target = os.path.abspath(os.path.join(dest, normalized))
    if os.path.commonpath([os.path.abspath(dest), target]) != os.path.abspath(dest):
        raise HTTPException(status_code=400, detail=f"Unsafe path in archive: {name}")
    return target


def safe_extract(archive_path: str, dest: str, is_zip: bool) -> None:
    """Extract regular files and directories only, rejecting path traversal"""
    if is_zip:
        with zipfile.ZipFile(archive_path) as archive:
            for info in archive.infolist():
                target = _safe_member_path(dest, info.filename)
                if info.is_dir():
                    os.makedirs(target, exist_ok=True)
                    continue
                os.makedirs(os.path.dirname(target), exist_ok=True)
                with archive.open(info) as src, open(target, "wb") as out:
                    shutil.copyfileobj(src, out)
        return

    with tarfile.open(archive_path, "r:*") as archive:
        for member in archive.getmembers():
            target = _safe_member_path(dest, member.name)
            if member.isdir():
                os.makedirs(target, exist_ok=True)
            elif member.isfile():
                os.makedirs(os.path.dirname(target), exist_ok=True)
                src = archive.extractfile(member)
                with src, open(target, "wb") as out:
                    shutil.copyfileobj(src, out)
            else:
                logger.warning(f"⚠️ Skipping archive member {member.name} (not a regular file)")


def _archive_root(dest: str) -> str:
    """Archives may wrap everything in a single top-level folder"""
    entries = os.listdir(dest)
    if len(entries) == 1 and os.path.isdir(os.path.join(dest, entries[0])):
        inner = os.path.join(dest, entries[0])
        if any(os.path.exists(os.path.join(inner, n)) for n in ("database.sql", "database.json", "manifest.json")):
            return inner
    return dest


def run_sql_restore(sql_path: str) -> None:
    if IS_SQLITE:
        raise HTTPException(status_code=400, detail="SQL dumps can only be restored into a PostgreSQL database")

    with open(sql_path, "rb") as f:
        magic = f.read(len(PG_CUSTOM_DUMP_MAGIC))
    if magic == PG_CUSTOM_DUMP_MAGIC:
        command = ["pg_restore", "--clean", "--if-exists", "--no-owner", "--dbname", DATABASE_URL, sql_path]
    else:
        command = ["psql", DATABASE_URL, "-v", "ON_ERROR_STOP=1", "-f", sql_path]

    logger.info(f"🐘 Restoring database with {command[0]}")
    try:
        result = subprocess.run(command, capture_output=True, text=True, timeout=SQL_RESTORE_TIMEOUT)
    except FileNotFoundError as e:
        raise HTTPException(status_code=500, detail=f"{command[0]} is not installed on the server") from e
    except subprocess.TimeoutExpired as e:
        raise HTTPException(status_code=500, detail=f"Database restore timed out after {SQL_RESTORE_TIMEOUT} seconds") from e

    if result.returncode != 0:
        raise HTTPException(status_code=500, detail=f"Database restore failed: {result.stderr.strip()[:1000]}")


def mirror_uploads(source: str) -> int:
    """Copy an extracted uploads/ tree into {UPLOADS_DIR}/uploads"""
    if not os.path.isdir(source):
        return 0
    destination = uploads_root()
    copied = 0
    for dirpath, _dirnames, filenames in os.walk(source):
        relative = os.path.relpath(dirpath, source)
        target_dir = os.path.normpath(os.path.join(destination, relative))
        os.makedirs(target_dir, exist_ok=True)
        for filename in filenames:
            shutil.copy2(os.path.join(dirpath, filename), os.path.join(target_dir, filename))
            copied += 1
    return copied


def restore_archive(db: Session, archive_path: str, filename: str) -> dict:
    lower = (filename or "").lower()
    if not lower.endswith(ARCHIVE_EXTENSIONS):
        raise HTTPException(status_code=400, detail="Unsupported archive format. Upload a .tar.gz, .tgz or .zip file")

    before = table_counts(db)
    with tempfile.TemporaryDirectory(prefix="hosthub-restore-") as workdir:
        safe_extract(archive_path, workdir, is_zip=lower.endswith(".zip"))
        root = _archive_root(workdir)
        sql_path = os.path.join(root, "database.sql")
        json_path = os.path.join(root, "database.json")

        if os.path.isfile(sql_path):
            source = "database.sql"
            run_sql_restore(sql_path)
            db.expire_all()
            after = table_counts(db)
            verify_counts(before, after)
        elif os.path.isfile(json_path):
            source = "database.json"
            with open(json_path, encoding="utf-8") as f:
                payload = json.load(f)
            backup = payload if "data" in payload else {"version": BACKUP_VERSION, "data": payload}
            validate_backup(backup)
            try:
                restore_data(db, backup["data"], clear_existing=True)
                after = table_counts(db)
                verify_counts(before, after)
                db.commit()
            except Exception:
                db.rollback()
                raise
        else:
            raise HTTPException(status_code=400, detail="Archive must contain database.sql or database.json")

        files_restored = mirror_uploads(os.path.join(root, "uploads"))

    logger.info(f"♻️ Archive {filename} restored from {source}, {files_restored} files")
    return {
        "success": True,
        "message": f"Archive restored from {source}",
        "source": source,
        "filesRestored": files_restored,
        "counts": after,
    }
