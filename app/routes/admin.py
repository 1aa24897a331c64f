import json
import logging
import os
import tempfile

from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ..auth import require_admin
from ..database import get_db
from ..models import User
from ..services.backup_service import backup_filename, create_backup, create_backup_archive
from ..services.cron_service import cron_status, setup_cron
from ..services.metrics_service import PERIODS, compute_admin_metrics
from ..services.restore_service import (
    RestoreVerificationError,
    clear_business_data,
    restore_archive,
    restore_backup,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["Admin"])


class RestoreRequest(BaseModel):
    backup: dict
    clearExisting: bool = False


class ClearDataRequest(BaseModel):
    confirm: bool = False


# ============================================================================
# METRICS
# ============================================================================


@router.get("/metrics")
async def admin_metrics(
    period: str = Query("month"),
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    if period not in PERIODS:
        raise HTTPException(status_code=400, detail=f"period must be one of {', '.join(PERIODS)}")
    return compute_admin_metrics(db, period)


# ============================================================================
# BACKUP / RESTORE
# ============================================================================


@router.get("/backup")
async def download_backup(
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    backup = create_backup(db)
    return Response(
        content=json.dumps(backup, indent=2, default=str),
        media_type="application/json",
        headers={"Content-Disposition": f'attachment; filename="{backup_filename()}"'},
    )


@router.get("/backup/archive")
async def download_backup_archive(
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return Response(
        content=create_backup_archive(db),
        media_type="application/gzip",
        headers={"Content-Disposition": f'attachment; filename="{backup_filename(extension="tar.gz")}"'},
    )


@router.post("/restore")
async def restore(
    data: RestoreRequest,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    logger.info(f"♻️ Restore requested by {current_user.email} (clearExisting={data.clearExisting})")
    return restore_backup(db, data.backup, clear_existing=data.clearExisting)


@router.post("/restore/archive")
async def restore_from_archive(
    file: UploadFile = File(...),
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    logger.info(f"♻️ Archive restore of {file.filename} requested by {current_user.email}")
    suffix = ".zip" if (file.filename or "").lower().endswith(".zip") else ".tar.gz"
    handle, path = tempfile.mkstemp(suffix=suffix)
    try:
        with os.fdopen(handle, "wb") as out:
            out.write(await file.read())
        return restore_archive(db, path, file.filename)
    except RestoreVerificationError as e:
        logger.error(f"❌ {e}")
        raise HTTPException(status_code=500, detail=str(e))
    finally:
        os.remove(path)


@router.post("/clear-data")
async def clear_data(
    data: ClearDataRequest,
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Wipe owners, properties and all their records; users and settings survive"""
    if current_user.role != "SUPER_ADMIN":
        raise HTTPException(status_code=403, detail="Only a super admin can clear data")
    if not data.confirm:
        raise HTTPException(status_code=400, detail="Confirmation required")

    counts = clear_business_data(db)
    db.commit()
    logger.warning(f"🗑️ All business data cleared by {current_user.email}")
    return {"success": True, "deleted": counts}


# ============================================================================
# CRON
# ============================================================================


@router.post("/setup-cron")
async def install_cron(current_user: User = Depends(require_admin)):
    status_code, body = setup_cron()
    return JSONResponse(status_code=status_code, content=body)


@router.get("/setup-cron")
async def get_cron_status(current_user: User = Depends(require_admin)):
    return cron_status()
