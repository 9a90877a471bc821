from datetime import timedelta
from unittest.mock import AsyncMock
from uuid import uuid4

import pytest
from httpx import AsyncClient

from progress_service.main import app
from tests.conftest import NOW

pytestmark = pytest.mark.asyncio


def _headers(user_id):
    return {"X-User-Id": str(user_id)}


async def _create_goal(client: AsyncClient, user_id, target=1000, days=30, name="Laptop"):
    response = await client.post(
        "/api/v1/goals",
        json={
            "name": name,
            "targetAmount": target,
            "targetDate": (NOW.date() + timedelta(days=days)).isoformat(),
            "category": "PURCHASE",
        },
        headers=_headers(user_id),
    )
    assert response.status_code == 201, response.text
    return response.json()["goalId"]


async def _create_budget(client: AsyncClient, user_id, total=1000, categories=None):
    response = await client.post(
        "/api/v1/budgets",
        json={
            "name": "June",
            "period": "MONTHLY",
            "totalAmount": total,
            "startDate": "2025-06-01",
            "endDate": "2025-06-30",
            "categories": categories or [],
        },
        headers=_headers(user_id),
    )
    assert response.status_code == 201, response.text
    return response.json()


async def test_missing_user_header(client: AsyncClient):
    response = await client.get("/api/v1/goals")

    assert response.status_code == 401


async def test_invalid_user_header(client: AsyncClient):
    response = await client.get("/api/v1/goals", headers={"X-User-Id": "nope"})

    assert response.status_code == 400


async def test_goal_lifecycle(client: AsyncClient, user_id, faker, frozen_now):
    name = faker.sentence(nb_words=3)
    goal_id = await _create_goal(client, user_id, name=name)

    response = await client.get(f"/api/v1/goals/{goal_id}", headers=_headers(user_id))
    assert response.status_code == 200
    body = response.json()
    assert body["name"] == name
    assert body["status"] == "NOT_STARTED"
    assert body["daysRemaining"] == 30
    assert float(body["targetAmount"]) == 1000

    response = await client.patch(
        f"/api/v1/goals/{goal_id}",
        json={"currentAmount": 500},
        headers=_headers(user_id),
    )
    assert response.status_code == 200
    body = response.json()
    assert body["goal"]["status"] == "IN_PROGRESS"
    assert float(body["goal"]["progressPercentage"]) == 50
    assert [e["type"] for e in body["events"]] == ["GOAL_PROGRESS"]
    assert body["events"][0]["payload"]["progressPercentage"] == 50

    response = await client.get("/api/v1/goals", headers=_headers(user_id))
    assert [g["id"] for g in response.json()] == [goal_id]

    response = await client.delete(f"/api/v1/goals/{goal_id}", headers=_headers(user_id))
    assert response.status_code == 204

    response = await client.get(f"/api/v1/goals/{goal_id}", headers=_headers(user_id))
    assert response.status_code == 404


async def test_goal_completion(client: AsyncClient, user_id, frozen_now):
    goal_id = await _create_goal(client, user_id, target=200)

    response = await client.patch(
        f"/api/v1/goals/{goal_id}",
        json={"currentAmount": 250},
        headers=_headers(user_id),
    )

    body = response.json()
    assert body["goal"]["status"] == "COMPLETED"
    assert float(body["goal"]["currentAmount"]) == 200
    assert body["goal"]["completedAt"] is not None
    assert [e["type"] for e in body["events"]] == ["GOAL_PROGRESS", "GOAL_COMPLETED"]
    assert body["events"][1]["priority"] == "HIGH"
    assert body["events"][0]["payload"]["isCompleted"] is True

    response = await client.patch(
        f"/api/v1/goals/{goal_id}",
        json={"currentAmount": 10},
        headers=_headers(user_id),
    )
    assert response.status_code == 200
    assert response.json()["events"] == []


async def test_negative_progress_is_bad_request(client: AsyncClient, user_id, frozen_now):
    goal_id = await _create_goal(client, user_id)

    response = await client.patch(
        f"/api/v1/goals/{goal_id}",
        json={"currentAmount": -5},
        headers=_headers(user_id),
    )

    assert response.status_code == 400
    assert "negative" in response.json()["detail"]


async def test_goal_in_the_past_is_bad_request(client: AsyncClient, user_id, frozen_now):
    response = await client.post(
        "/api/v1/goals",
        json={
            "name": "Late",
            "targetAmount": 100,
            "targetDate": (NOW.date() - timedelta(days=1)).isoformat(),
        },
        headers=_headers(user_id),
    )

    assert response.status_code == 400


async def test_goal_schema_validation(client: AsyncClient, user_id):
    response = await client.post(
        "/api/v1/goals",
        json={"name": "", "targetAmount": 0, "targetDate": "not-a-date"},
        headers=_headers(user_id),
    )

    assert response.status_code == 422


async def test_progress_on_unknown_goal(client: AsyncClient, user_id):
    response = await client.patch(
        f"/api/v1/goals/{uuid4()}",
        json={"currentAmount": 5},
        headers=_headers(user_id),
    )

    assert response.status_code == 404


async def test_check_deadlines_endpoint(client: AsyncClient, user_id, frozen_now):
    await _create_goal(client, user_id, days=2, name="Soon")
    await _create_goal(client, user_id, days=1, name="Tomorrow")
    frozen_now.tick(timedelta(days=2))

    response = await client.post("/api/v1/goals/check-deadlines", headers=_headers(user_id))

    assert response.status_code == 200
    assert response.json() == {"checkedGoals": 2, "overdueGoals": 1, "eventsEmitted": 2}

    response = await client.get(
        "/api/v1/notifications",
        params={"type": "GOAL_OVERDUE"},
        headers=_headers(user_id),
    )
    data = response.json()["data"]
    assert len(data) == 1
    assert data[0]["priority"] == "HIGH"
    assert data[0]["data"]["daysOverdue"] == 1


async def test_budget_spending_flow(client: AsyncClient, user_id, frozen_now):
    created = await _create_budget(
        client,
        user_id,
        categories=[{"name": "food", "allocatedAmount": 600}],
    )
    budget_id = created["budgetId"]
    assert created["allocationWarning"] is False

    response = await client.post(
        f"/api/v1/budgets/{budget_id}/spending",
        json={"category": "food", "delta": 850},
        headers=_headers(user_id),
    )

    assert response.status_code == 200
    body = response.json()
    assert float(body["budget"]["spentPercentage"]) == 85
    assert [e["type"] for e in body["events"]] == ["BUDGET_THRESHOLD"]
    assert body["events"][0]["payload"]["threshold"] == 80
    assert body["events"][0]["payload"]["category"] == "food"

    response = await client.post(
        f"/api/v1/budgets/{budget_id}/spending",
        json={"delta": 300},
        headers=_headers(user_id),
    )
    types = [e["type"] for e in response.json()["events"]]
    assert types == ["BUDGET_THRESHOLD", "BUDGET_EXCEEDED"]

    response = await client.get(
        "/api/v1/notifications",
        params={"budgetId": budget_id},
        headers=_headers(user_id),
    )
    assert len(response.json()["data"]) == 3


async def test_budget_unknown_category(client: AsyncClient, user_id, frozen_now):
    budget_id = (await _create_budget(client, user_id))["budgetId"]

    response = await client.post(
        f"/api/v1/budgets/{budget_id}/spending",
        json={"category": "travel", "delta": 10},
        headers=_headers(user_id),
    )

    assert response.status_code == 400


async def test_budget_duplicate_category_names(client: AsyncClient, user_id):
    response = await client.post(
        "/api/v1/budgets",
        json={
            "name": "Dup",
            "period": "WEEKLY",
            "totalAmount": 100,
            "startDate": "2025-06-01",
            "endDate": "2025-06-07",
            "categories": [{"name": "food"}, {"name": "food"}],
        },
        headers=_headers(user_id),
    )

    assert response.status_code == 422


async def test_archived_budget_is_precondition_failed(client: AsyncClient, user_id, frozen_now):
    budget_id = (await _create_budget(client, user_id))["budgetId"]

    response = await client.delete(f"/api/v1/budgets/{budget_id}", headers=_headers(user_id))
    assert response.status_code == 204

    response = await client.post(
        f"/api/v1/budgets/{budget_id}/spending",
        json={"delta": 10},
        headers=_headers(user_id),
    )
    assert response.status_code == 412

    response = await client.get(f"/api/v1/budgets/{budget_id}", headers=_headers(user_id))
    assert response.json()["status"] == "ARCHIVED"


async def test_budget_of_other_user(client: AsyncClient, user_id, frozen_now):
    budget_id = (await _create_budget(client, user_id))["budgetId"]

    response = await client.get(f"/api/v1/budgets/{budget_id}", headers=_headers(uuid4()))

    assert response.status_code == 404


async def test_notification_preferences(client: AsyncClient, user_id, frozen_now):
    response = await client.get("/api/v1/notifications/preferences", headers=_headers(user_id))
    assert response.json() == {
        "goalProgress": True,
        "goalCompletion": True,
        "goalDeadlines": True,
        "budgetAlerts": True,
    }

    response = await client.put(
        "/api/v1/notifications/preferences",
        json={"goalProgress": False},
        headers=_headers(user_id),
    )
    assert response.status_code == 200
    assert response.json()["goalProgress"] is False

    goal_id = await _create_goal(client, user_id)
    await client.patch(
        f"/api/v1/goals/{goal_id}",
        json={"currentAmount": 100},
        headers=_headers(user_id),
    )

    response = await client.get("/api/v1/notifications", headers=_headers(user_id))
    assert response.json()["data"] == []


async def test_mark_notification_read(client: AsyncClient, user_id, frozen_now):
    goal_id = await _create_goal(client, user_id)
    await client.patch(
        f"/api/v1/goals/{goal_id}",
        json={"currentAmount": 100},
        headers=_headers(user_id),
    )
    response = await client.get(
        "/api/v1/notifications",
        params={"goalId": goal_id},
        headers=_headers(user_id),
    )
    notification = response.json()["data"][0]
    assert notification["isRead"] is False
    assert notification["type"] == "GOAL_PROGRESS"

    response = await client.patch(
        f"/api/v1/notifications/{notification['id']}/read",
        headers=_headers(user_id),
    )
    assert response.status_code == 200
    assert response.json()["isRead"] is True

    response = await client.patch(
        f"/api/v1/notifications/{uuid4()}/read",
        headers=_headers(user_id),
    )
    assert response.status_code == 404


async def test_request_id_is_echoed(client: AsyncClient, user_id):
    response = await client.get(
        "/api/v1/goals",
        headers={**_headers(user_id), "X-Request-ID": "req-123"},
    )

    assert response.headers["X-Request-ID"] == "req-123"


async def test_health_reports_missing_redis(client: AsyncClient):
    response = await client.get("/api/v1/health")

    assert response.status_code == 503
    assert response.json()["components"] == {"db": "ok", "redis": "disconnected"}


async def test_health_ok(client: AsyncClient):
    app.state.arq_pool = AsyncMock()

    response = await client.get("/api/v1/health")

    assert response.status_code == 200
    assert response.json()["status"] == "ok"


async def test_metrics_exposed(client: AsyncClient):
    response = await client.get("/metrics")

    assert response.status_code == 200
    assert "progress_events_total" in response.text


async def test_check_deadlines_requires_user_header(client: AsyncClient):
    response = await client.post("/api/v1/goals/check-deadlines")

    assert response.status_code == 401


async def test_sub_scale_amounts_are_unprocessable(client: AsyncClient, user_id, frozen_now):
    goal_id = await _create_goal(client, user_id)
    budget_id = (await _create_budget(client, user_id))["budgetId"]

    response = await client.patch(
        f"/api/v1/goals/{goal_id}",
        json={"currentAmount": "0.00001"},
        headers=_headers(user_id),
    )
    assert response.status_code == 422

    response = await client.post(
        f"/api/v1/budgets/{budget_id}/spending",
        json={"delta": "0.004"},
        headers=_headers(user_id),
    )
    assert response.status_code == 422


async def test_update_budget(client: AsyncClient, user_id, faker, frozen_now):
    budget_id = (await _create_budget(client, user_id, total=1000))["budgetId"]
    await client.post(
        f"/api/v1/budgets/{budget_id}/spending",
        json={"delta": 850},
        headers=_headers(user_id),
    )
    name = faker.word()

    response = await client.patch(
        f"/api/v1/budgets/{budget_id}",
        json={"name": name, "totalAmount": 800},
        headers=_headers(user_id),
    )

    assert response.status_code == 200, response.text
    body = response.json()
    assert body["budget"]["name"] == name
    assert float(body["budget"]["totalAmount"]) == 800
    assert [e["type"] for e in body["events"]] == ["BUDGET_THRESHOLD", "BUDGET_EXCEEDED"]

    await client.delete(f"/api/v1/budgets/{budget_id}", headers=_headers(user_id))
    response = await client.patch(
        f"/api/v1/budgets/{budget_id}",
        json={"totalAmount": 900},
        headers=_headers(user_id),
    )
    assert response.status_code == 412


async def test_delete_notification(client: AsyncClient, user_id, frozen_now):
    goal_id = await _create_goal(client, user_id)
    await client.patch(
        f"/api/v1/goals/{goal_id}",
        json={"currentAmount": 100},
        headers=_headers(user_id),
    )
    response = await client.get("/api/v1/notifications", headers=_headers(user_id))
    notification_id = response.json()["data"][0]["id"]

    response = await client.delete(
        f"/api/v1/notifications/{notification_id}",
        headers=_headers(user_id),
    )
    assert response.status_code == 204

    response = await client.get("/api/v1/notifications", headers=_headers(user_id))
    assert response.json()["data"] == []

    response = await client.delete(
        f"/api/v1/notifications/{notification_id}",
        headers=_headers(user_id),
    )
    assert response.status_code == 404
