# tests/test_routes.py

from zoneinfo import ZoneInfo

import pytest
from fastapi.testclient import TestClient

from core.errors import StoreError
from core.lifecycle import TaskLifecycleEngine
from core.store import InMemoryTaskStore
from main import app
from routes.tasks import get_engine

UTC = ZoneInfo("UTC")
DUE = "2024-01-01T10:00:00+00:00"


@pytest.fixture()
def client(engine):
    # No context manager: the lifespan (Mongo, scheduler) is not started
    app.dependency_overrides[get_engine] = lambda: engine
    yield TestClient(app)
    app.dependency_overrides.clear()


def _create(client, text="Buy milk", type_="one-time", due_at=DUE):
    response = client.post("/api/todos", json={"text": text, "type": type_, "dueAt": due_at})
    assert response.status_code == 201
    return response.json()["data"]


def test_create_returns_camel_case_task(client) -> None:
    response = client.post("/api/todos", json={"text": "Buy milk", "type": "one-time", "dueAt": DUE})

    assert response.status_code == 201
    body = response.json()
    assert body["success"] is True
    assert body["message"] == "Todo created successfully"
    task = body["data"]
    assert task["id"]
    assert "_id" not in task and "__v" not in task
    assert task["state"] == "pending"
    assert task["dueAt"] == DUE
    assert task["isReactivation"] is False
    assert task["createdAt"] == "2024-01-01T08:00:00+00:00"
    assert "due_at" not in task


def test_create_validation_error_is_400(client) -> None:
    response = client.post("/api/todos", json={"text": "  ", "type": "one-time", "dueAt": DUE})

    assert response.status_code == 400
    assert response.json() == {
        "success": False,
        "error": "Validation failed",
        "message": "Task text cannot be empty",
    }


def test_one_time_without_due_date_is_400(client) -> None:
    response = client.post("/api/todos", json={"text": "Pay rent", "type": "one-time"})
    assert response.status_code == 400


def test_lifecycle_over_http(client, clock) -> None:
    task = _create(client)

    activated = client.patch(f"/api/todos/{task['id']}/activate").json()["data"]
    assert activated["state"] == "active"
    assert activated["activatedAt"] == "2024-01-01T08:00:00+00:00"

    clock.advance(minutes=30)
    completed = client.patch(f"/api/todos/{task['id']}/complete").json()["data"]
    assert completed["state"] == "completed"
    assert completed["completedAt"] == "2024-01-01T08:30:00+00:00"

    fetched = client.get(f"/api/todos/{task['id']}").json()["data"]
    assert fetched == completed


def test_reactivate_returns_201_with_lineage(client) -> None:
    task = _create(client)
    client.patch(f"/api/todos/{task['id']}/fail")

    response = client.patch(
        f"/api/todos/{task['id']}/reactivate",
        json={"newDueAt": "2024-01-03T10:00:00+00:00"},
    )

    assert response.status_code == 201
    copy = response.json()["data"]
    assert copy["id"] != task["id"]
    assert copy["originalId"] == task["id"]
    assert copy["isReactivation"] is True
    assert copy["state"] == "active"
    assert copy["dueAt"] == "2024-01-03T10:00:00+00:00"


def test_reactivate_without_body_keeps_due_date(client) -> None:
    task = _create(client)
    response = client.patch(f"/api/todos/{task['id']}/reactivate")

    assert response.status_code == 201
    assert response.json()["data"]["dueAt"] == DUE


def test_update_text(client) -> None:
    task = _create(client)
    response = client.put(f"/api/todos/{task['id']}", json={"text": "Buy oat milk"})

    assert response.status_code == 200
    assert response.json()["data"]["text"] == "Buy oat milk"


def test_unknown_task_is_404(client) -> None:
    missing = "65a000000000000000000000"
    for response in (
        client.get(f"/api/todos/{missing}"),
        client.patch(f"/api/todos/{missing}/complete"),
        client.delete(f"/api/todos/{missing}"),
    ):
        assert response.status_code == 404
        assert response.json()["success"] is False


def test_strict_transition_violation_is_409(client, strict_engine) -> None:
    app.dependency_overrides[get_engine] = lambda: strict_engine
    task = _create(client)

    response = client.patch(f"/api/todos/{task['id']}/complete")

    assert response.status_code == 409
    assert response.json()["error"] == "Transition not allowed"


def test_grouped_listing_and_filters(client) -> None:
    pending = _create(client, "Pending one")
    active = _create(client, "Stretch", "daily", None)
    client.patch(f"/api/todos/{active['id']}/activate")

    body = client.get("/api/todos").json()
    assert body["count"] == 2
    assert [t["id"] for t in body["data"]["pending"]] == [pending["id"]]
    assert [t["id"] for t in body["data"]["active"]] == [active["id"]]
    assert body["data"]["completed"] == [] and body["data"]["failed"] == []

    by_state = client.get("/api/todos/state/active").json()
    assert by_state["count"] == 1

    daily = client.get("/api/todos/type/daily", params={"active": "true"}).json()
    assert [t["id"] for t in daily["data"]] == [active["id"]]
    assert daily["data"][0]["dueAt"] is None

    found = client.get("/api/todos/search", params={"q": "stretch"}).json()
    assert [t["id"] for t in found["data"]] == [active["id"]]


def test_overdue_and_daily_today_endpoints(client, clock) -> None:
    task = _create(client)
    client.patch(f"/api/todos/{task['id']}/activate")
    daily = _create(client, "Journal", "daily", None)
    client.patch(f"/api/todos/{daily['id']}/activate")

    clock.set(2024, 1, 1, 11, 0)
    overdue = client.get("/api/todos/overdue").json()
    assert [t["id"] for t in overdue["data"]] == [task["id"]]

    today = client.get("/api/todos/daily/today").json()
    assert [t["id"] for t in today["data"]] == [daily["id"]]


def test_bulk_delete_by_state(client) -> None:
    done = _create(client, "Done")
    client.patch(f"/api/todos/{done['id']}/complete")
    failed = _create(client, "Failed")
    client.patch(f"/api/todos/{failed['id']}/fail")
    _create(client, "Still pending")

    response = client.delete("/api/todos/completed")
    assert response.json()["data"] == {"deletedCount": 1}
    assert client.delete("/api/todos/failed").json()["data"] == {"deletedCount": 1}
    assert client.get("/api/todos").json()["count"] == 1


def test_delete_single_task(client) -> None:
    task = _create(client)
    response = client.delete(f"/api/todos/{task['id']}")

    assert response.status_code == 200
    assert response.json()["data"] == {"id": task["id"]}
    assert client.get(f"/api/todos/{task['id']}").status_code == 404


def test_past_due_date_is_rejected_on_create(client) -> None:
    # The clock fixture sits at 08:00 UTC
    response = client.post("/api/todos", json={"text": "Too late", "type": "one-time", "dueAt": "2024-01-01T07:00:00+00:00"})
    assert response.status_code == 400
    assert response.json()["message"] == "Due date must be in the future"

    now = client.post("/api/todos", json={"text": "Right now", "type": "one-time", "dueAt": "2024-01-01T08:00:00+00:00"})
    assert now.status_code == 400
    assert client.get("/api/todos").json()["count"] == 0


def test_daily_task_ignores_past_due_date(client) -> None:
    response = client.post("/api/todos", json={"text": "Stretch", "type": "daily", "dueAt": "2024-01-01T07:00:00+00:00"})
    assert response.status_code == 201
    assert response.json()["data"]["dueAt"] is None


def test_create_requires_type(client) -> None:
    response = client.post("/api/todos", json={"text": "Buy milk", "dueAt": DUE})
    assert response.status_code == 422
    assert client.get("/api/todos").json()["count"] == 0


def test_past_new_due_date_is_rejected_on_reactivate(client) -> None:
    task = _create(client)

    response = client.patch(f"/api/todos/{task['id']}/reactivate", json={"newDueAt": "2023-12-31T10:00:00+00:00"})

    assert response.status_code == 400
    assert response.json()["message"] == "New due date must be in the future"
    assert client.get("/api/todos").json()["count"] == 1


def test_process_overdue_runs_the_sweep(client, clock) -> None:
    task = _create(client)
    client.patch(f"/api/todos/{task['id']}/activate")
    clock.set(2024, 1, 1, 11, 0)

    response = client.post("/api/todos/process/overdue")

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["data"]["overdue"] == 1
    assert client.get("/api/todos/overdue").json()["count"] == 0


def test_process_daily_runs_the_reset(client, clock) -> None:
    daily = _create(client, "Journal", "daily", None)
    client.patch(f"/api/todos/{daily['id']}/activate")
    clock.set(2024, 1, 2, 9, 0)

    response = client.post("/api/todos/process/daily")

    assert response.status_code == 200
    assert response.json()["data"] == {"missed": 1, "renewed": 0, "errors": 0}
    today = client.get("/api/todos/daily/today").json()["data"]
    assert [t["originalId"] for t in today] == [daily["id"]]


class UnreachableStore(InMemoryTaskStore):
    async def get(self, task_id):
        raise StoreError("Task store get failed: connection refused")


def test_store_errors_are_503(clock) -> None:
    engine = TaskLifecycleEngine(UnreachableStore(), tz=UTC, clock=clock)
    app.dependency_overrides[get_engine] = lambda: engine
    try:
        response = TestClient(app).get("/api/todos/65a000000000000000000000")
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 503
    assert response.json() == {
        "success": False,
        "error": "Task store unavailable",
        "message": "Task store get failed: connection refused",
    }


def test_malformed_id_is_404(client) -> None:
    response = client.get("/api/todos/not-an-object-id")
    assert response.status_code == 404
    assert response.json()["error"] == "Task not found"
