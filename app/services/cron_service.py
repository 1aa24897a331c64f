"""
Host crontab setup for the cron endpoints (reminders, recurring tasks)
Deployments without the arq worker rely on these curl jobs instead.
"""

import logging
import os
import subprocess
from pathlib import Path

logger = logging.getLogger(__name__)

SETUP_SCRIPT = Path(__file__).resolve().parents[2] / "scripts" / "setup-cron.sh"
SETUP_TIMEOUT = 30
CRON_MARKERS = ("HostHub", "/reminders/run", "/recurring-tasks/generate")

CRON_JOBS = [
    ("0 * * * *", "/reminders/run", "Reminders (every hour)"),
    ("0 0 * * *", "/recurring-tasks/generate", "Recurring Tasks (daily at midnight)"),
]


def cron_environment() -> dict:
    return {
        "cronSecret": os.getenv("CRON_SECRET"),
        "appUrl": os.getenv("NEXT_PUBLIC_APP_URL"),
    }


def manual_instructions(app_url: str, secret: str) -> dict:
    base = app_url.rstrip("/")
    return {
        "method1": f"SSH into your server and run: bash {SETUP_SCRIPT.relative_to(SETUP_SCRIPT.parents[1])}",
        "method2": "Or manually edit crontab: crontab -e",
        "cronJobs": [
            {
                "schedule": schedule,
                "command": f'curl -X GET "{base}{path}" -H "Authorization: Bearer {secret}" -s -o /dev/null',
                "description": description,
            }
            for schedule, path, description in CRON_JOBS
        ],
    }


def setup_cron() -> tuple[int, dict]:
    """Install the crontab entries; returns (status_code, body)"""
    env = cron_environment()
    if not env["cronSecret"]:
        return 400, {"error": "CRON_SECRET environment variable is not set"}
    if not env["appUrl"]:
        return 400, {"error": "NEXT_PUBLIC_APP_URL environment variable is not set"}

    instructions = manual_instructions(env["appUrl"], env["cronSecret"])
    if not SETUP_SCRIPT.exists():
        return 404, {
            "success": False,
            "message": "Setup script not found. Please set up cron jobs manually.",
            "instructions": instructions,
        }

    try:
        result = subprocess.run(
            ["bash", str(SETUP_SCRIPT)],
            capture_output=True,
            text=True,
            timeout=SETUP_TIMEOUT,
            env={**os.environ, "CRON_SECRET": env["cronSecret"], "NEXT_PUBLIC_APP_URL": env["appUrl"]},
        )
        if result.returncode != 0:
            raise RuntimeError(result.stderr.strip() or result.stdout.strip() or f"exit code {result.returncode}")
    except (OSError, subprocess.TimeoutExpired, RuntimeError) as e:
        logger.error(f"❌ Cron setup failed: {e}")
        return 500, {
            "success": False,
            "message": "Automatic setup failed. Please set up cron jobs manually.",
            "error": str(e),
            "instructions": instructions,
        }

    logger.info("⏲️ Cron jobs installed")
    return 200, {"success": True, "message": "Cron jobs set up successfully", "output": result.stdout, "method": "bash"}


def cron_status() -> dict:
    try:
        result = subprocess.run(["crontab", "-l"], capture_output=True, text=True, timeout=5)
        lines = result.stdout.splitlines() if result.returncode == 0 else []
        jobs = [line for line in lines if any(marker in line for marker in CRON_MARKERS)]
        status = "installed" if jobs else "not_installed"
    except (OSError, subprocess.TimeoutExpired) as e:
        logger.warning(f"⚠️ crontab unavailable: {e}")
        status, jobs = "unavailable", []

    env = cron_environment()
    return {
        "status": status,
        "cronJobs": jobs,
        "environment": {"hasCronSecret": bool(env["cronSecret"]), "hasAppUrl": bool(env["appUrl"])},
    }
