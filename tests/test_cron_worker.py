from app import worker
from app.services import cron_service
from app.services.cron_service import cron_status, manual_instructions, setup_cron


class Completed:
    def __init__(self, returncode=0, stdout="", stderr=""):
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr


def test_setup_requires_environment(monkeypatch):
    monkeypatch.delenv("NEXT_PUBLIC_APP_URL", raising=False)

    status_code, body = setup_cron()

    assert status_code == 400
    assert body == {"error": "NEXT_PUBLIC_APP_URL environment variable is not set"}


def test_manual_instructions_use_bearer_secret():
    instructions = manual_instructions("https://app.hosthub.com/", "s3cret")

    commands = [job["command"] for job in instructions["cronJobs"]]
    assert commands[0] == (
        'curl -X GET "https://app.hosthub.com/reminders/run" -H "Authorization: Bearer s3cret" -s -o /dev/null'
    )
    assert [job["schedule"] for job in instructions["cronJobs"]] == ["0 * * * *", "0 0 * * *"]


def test_setup_runs_script(monkeypatch):
    monkeypatch.setenv("NEXT_PUBLIC_APP_URL", "https://app.hosthub.com")
    calls = []

    def fake_run(command, **kwargs):
        calls.append((command, kwargs["env"]["CRON_SECRET"]))
        return Completed(stdout="installed")

    monkeypatch.setattr(cron_service.subprocess, "run", fake_run)

    status_code, body = setup_cron()

    assert status_code == 200
    assert body["output"] == "installed"
    assert calls[0][0][0] == "bash"
    assert calls[0][1] == "test-cron-secret"


def test_setup_failure_returns_instructions(monkeypatch):
    monkeypatch.setenv("NEXT_PUBLIC_APP_URL", "https://app.hosthub.com")
    monkeypatch.setattr(cron_service.subprocess, "run", lambda *a, **kw: Completed(1, stderr="no crontab"))

    status_code, body = setup_cron()

    assert status_code == 500
    assert body["error"] == "no crontab"
    assert len(body["instructions"]["cronJobs"]) == 2


def test_cron_status(monkeypatch):
    listing = "0 * * * * curl https://app/reminders/run\n5 4 * * * backup.sh\n"
    monkeypatch.setattr(cron_service.subprocess, "run", lambda *a, **kw: Completed(stdout=listing))

    status = cron_status()

    assert status["status"] == "installed"
    assert status["cronJobs"] == ["0 * * * * curl https://app/reminders/run"]
    assert status["environment"]["hasCronSecret"] is True


def test_cron_status_without_crontab(monkeypatch):
    def missing(*args, **kwargs):
        raise FileNotFoundError("crontab")

    monkeypatch.setattr(cron_service.subprocess, "run", missing)

    assert cron_status()["status"] == "unavailable"


def test_setup_cron_endpoint_requires_admin(client, manager):
    from tests.conftest import auth_headers

    assert client.post("/admin/setup-cron", headers=auth_headers(manager)).status_code == 403


def test_worker_schedules_both_jobs():
    names = {job.coroutine.__name__ for job in worker.WorkerSettings.cron_jobs}
    assert names == {"run_reminders_task", "generate_recurring_tasks_task"}


async def test_worker_recurring_task_job(db, prop):
    from datetime import datetime

    from app.models import RecurringTask, Task

    db.add(
        RecurringTask(
            property_id=prop.id,
            title="Check pool",
            frequency="DAILY",
            start_date=datetime(2000, 1, 1),
            next_run_date=datetime(2000, 1, 1),
        )
    )
    db.commit()

    result = await worker.generate_recurring_tasks_task({})

    assert result["generated"] == 1
    assert db.query(Task).count() == 1
