from datetime import datetime

import pytest

from app.models import RecurringTask, Task
from app.services.recurring_task_service import calculate_next_run_date, first_run_date, generate_recurring_tasks

CRON = {"Authorization": "Bearer test-cron-secret"}


@pytest.mark.parametrize(
    "frequency,interval,last_run,dow,dom,expected",
    [
        ("DAILY", 3, datetime(2026, 3, 30), None, None, datetime(2026, 4, 2)),
        ("WEEKLY", 2, datetime(2026, 3, 2), None, None, datetime(2026, 3, 16)),
        # Monday -> next Wednesday
        ("WEEKLY", 1, datetime(2026, 3, 2), 3, None, datetime(2026, 3, 4)),
        # same weekday rolls a full week
        ("WEEKLY", 1, datetime(2026, 3, 2), 1, None, datetime(2026, 3, 9)),
        ("MONTHLY", 1, datetime(2026, 1, 31), None, 31, datetime(2026, 2, 28)),
        ("MONTHLY", 1, datetime(2026, 2, 28), None, 31, datetime(2026, 3, 31)),
        ("QUARTERLY", 2, datetime(2026, 1, 15), None, None, datetime(2026, 7, 15)),
        ("YEARLY", 1, datetime(2024, 2, 29), None, None, datetime(2025, 2, 28)),
    ],
)
def test_calculate_next_run_date(frequency, interval, last_run, dow, dom, expected):
    assert calculate_next_run_date(frequency, interval, last_run, dow, dom) == expected


def test_unknown_frequency_raises():
    with pytest.raises(ValueError):
        calculate_next_run_date("HOURLY", 1, datetime(2026, 1, 1))


def test_first_run_date():
    start = datetime(2026, 3, 10)  # Tuesday
    assert first_run_date("DAILY", start) == start
    assert first_run_date("WEEKLY", start, day_of_week=5) == datetime(2026, 3, 13)
    assert first_run_date("MONTHLY", start, day_of_month=20) == datetime(2026, 3, 20)


def add_template(db, prop=None, **overrides):
    values = {
        "property_id": prop.id if prop else None,
        "title": "Pool service",
        "type": "MAINTENANCE",
        "frequency": "WEEKLY",
        "interval": 1,
        "start_date": datetime(2026, 3, 1),
        "next_run_date": datetime(2026, 3, 15, 9, 0),
        "cost_estimate": 120.0,
    }
    values.update(overrides)
    template = RecurringTask(**values)
    db.add(template)
    db.commit()
    return template


def test_generate_creates_task_and_advances(db, prop, now):
    template = add_template(db, prop)

    result = generate_recurring_tasks(db, now=now)

    assert result == {"generated": 1, "errors": []}
    task = db.query(Task).filter(Task.recurring_task_id == template.id).one()
    assert task.status == "PENDING"
    assert task.scheduled_at == datetime(2026, 3, 15)
    assert task.due_at == datetime(2026, 3, 15, 23, 59, 59)
    assert task.cost_estimate == 120.0
    db.refresh(template)
    assert template.next_run_date == datetime(2026, 3, 22)
    assert template.total_generated == 1


def test_generate_skips_inactive_expired_and_future(db, prop, now):
    add_template(db, prop, is_active=False)
    add_template(db, prop, end_date=datetime(2026, 3, 1))
    add_template(db, prop, next_run_date=datetime(2026, 3, 20))
    add_template(db, prop, start_date=datetime(2026, 4, 1))

    assert generate_recurring_tasks(db, now=now)["generated"] == 0
    assert db.query(Task).count() == 0


def test_generate_reports_missing_property(db, now):
    add_template(db, None, title="Orphan")

    result = generate_recurring_tasks(db, now=now)

    assert result["generated"] == 0
    assert result["errors"] == ['Recurring task "Orphan" has no property assigned']


def test_generate_endpoint_accepts_cron_secret(client, db, prop):
    add_template(db, prop, next_run_date=datetime(2000, 1, 1))

    response = client.post("/recurring-tasks/generate", headers=CRON)

    assert response.status_code == 200
    assert response.json()["generated"] == 1


def test_generate_endpoint_rejects_bad_secret(client):
    assert client.get("/recurring-tasks/generate").status_code == 401
    assert client.get("/recurring-tasks/generate", headers={"Authorization": "Bearer nope"}).status_code == 401


def test_create_computes_first_run(client, admin_headers, prop):
    response = client.post(
        "/recurring-tasks",
        json={
            "propertyId": prop.id,
            "title": "Deep clean",
            "frequency": "WEEKLY",
            "dayOfWeek": "FRIDAY",
            "startDate": "2026-03-10T00:00:00Z",
        },
        headers=admin_headers,
    )

    assert response.status_code == 201
    data = response.json()
    assert data["dayOfWeek"] == 5
    assert data["nextRunDate"] == "2026-03-13T00:00:00"
    assert data["property"]["nickname"] == "Labone"


@pytest.mark.parametrize(
    "patch",
    [{"frequency": "HOURLY"}, {"dayOfWeek": "FUNDAY"}, {"dayOfMonth": 32}, {"interval": 0}],
)
def test_create_validation(client, admin_headers, prop, patch):
    body = {"propertyId": prop.id, "title": "x", "frequency": "MONTHLY", "startDate": "2026-03-10T00:00:00Z"}
    body.update(patch)
    assert client.post("/recurring-tasks", json=body, headers=admin_headers).status_code == 422


def test_delete_keeps_generated_tasks(client, db, admin_headers, prop, now):
    template = add_template(db, prop)
    generate_recurring_tasks(db, now=now)

    assert client.delete(f"/recurring-tasks/{template.id}", headers=admin_headers).status_code == 200

    db.expire_all()
    task = db.query(Task).one()
    assert task.recurring_task_id is None
