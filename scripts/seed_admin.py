#!/usr/bin/env python3
"""
Create the first SUPER_ADMIN login.
Usage: SEED_ADMIN_EMAIL=... SEED_ADMIN_PASSWORD=... python scripts/seed_admin.py
"""
import logging
import os
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from app import models  # noqa: E402,F401 - register all tables
from app.database import Base, SessionLocal, engine  # noqa: E402
from app.services.seed_service import ensure_super_admin  # noqa: E402

logging.basicConfig(level=logging.INFO, format="%(message)s")
logger = logging.getLogger(__name__)


def main() -> int:
    email = os.getenv("SEED_ADMIN_EMAIL")
    password = os.getenv("SEED_ADMIN_PASSWORD")
    if not email or not password:
        logger.error("❌ SEED_ADMIN_EMAIL and SEED_ADMIN_PASSWORD must be set")
        return 1

    Base.metadata.create_all(bind=engine, checkfirst=True)
    db = SessionLocal()
    try:
        ensure_super_admin(db, email, password, os.getenv("SEED_ADMIN_NAME"))
    except ValueError as e:
        logger.error(f"❌ {e}")
        return 1
    finally:
        db.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
