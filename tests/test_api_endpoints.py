import csv
import io
import json
import uuid
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from app.dependencies import build_scoring_services
from app.main import app

from conftest import at


def _event_body(lead_id, event_type="email_open", minute=0, **extra):
    body = {
        "event_id": f"evt_{uuid.uuid4().hex}",
        "event_type": event_type,
        "lead_id": str(lead_id),
        "timestamp": at(minute).isoformat(),
    }
    body.update(extra)
    return body


class TestCORSMiddleware:
    """Verify that CORS headers are present on responses."""

    @pytest.mark.asyncio
    async def test_cors_headers_on_get(self, async_client):
        response = await async_client.get(
            "/api/v1/health",
            headers={"Origin": "http://localhost:3000"},
        )
        assert response.status_code == 200
        assert (
            response.headers.get("access-control-allow-origin")
            == "http://localhost:3000"
        )


class TestHealthEndpoint:
    @pytest.mark.asyncio
    async def test_health_reports_components(self, async_client):
        response = await async_client.get("/api/v1/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "ok"
        assert body["database"] == "ok"
        assert body["redis"] == "disabled"
        assert body["workers"]["running"] is False


class TestSubmitEvent:
    @pytest.mark.asyncio
    async def test_queued_by_default(self, async_client, create_lead):
        lead = await create_lead()
        body = _event_body(lead.lead_id, "purchase")

        response = await async_client.post("/api/v1/events", json=body)

        assert response.status_code == 202
        assert response.json()["job_id"] == body["event_id"]
        job = await async_client.get(f"/api/v1/queue/jobs/{body['event_id']}")
        assert job.json()["state"] == "waiting"
        assert job.json()["priority"] == 1

    @pytest.mark.asyncio
    async def test_sync_applies_then_reports_duplicate(self, async_client, create_lead):
        lead = await create_lead()
        body = _event_body(lead.lead_id, "demo_request", sync=True)

        first = await async_client.post("/api/v1/events", json=body)
        second = await async_client.post("/api/v1/events", json=body)

        assert first.status_code == 201
        assert first.json()["outcome"] == "applied"
        assert first.json()["new_score"] == 50
        assert second.status_code == 200
        assert second.json()["duplicate"] is True

    @pytest.mark.asyncio
    async def test_unknown_event_type_returns_422(self, async_client):
        response = await async_client.post(
            "/api/v1/events", json=_event_body(uuid.uuid4(), "teleport")
        )

        assert response.status_code == 422
        assert response.json()["type"] == "validation_error"

    @pytest.mark.asyncio
    async def test_missing_lead_id_returns_422(self, async_client):
        response = await async_client.post(
            "/api/v1/events", json={"event_id": "evt_1", "event_type": "page_view"}
        )
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_sync_unknown_lead_returns_404(self, async_client):
        response = await async_client.post(
            "/api/v1/events", json=_event_body(uuid.uuid4(), sync=True)
        )

        assert response.status_code == 404
        assert response.json()["type"] == "lead_not_found"

    @pytest.mark.asyncio
    async def test_sync_inactive_rule_returns_404(self, async_client, create_lead, set_rule):
        await set_rule("page_view", active=False)
        lead = await create_lead()

        response = await async_client.post(
            "/api/v1/events", json=_event_body(lead.lead_id, "page_view", sync=True)
        )

        assert response.status_code == 404
        assert response.json()["type"] == "no_active_rule"


class TestSubmitBatch:
    @pytest.mark.asyncio
    async def test_batch_is_queued(self, async_client, create_lead):
        lead = await create_lead()
        events = [_event_body(lead.lead_id, minute=i) for i in range(3)]

        response = await async_client.post("/api/v1/events/batch", json={"events": events})

        assert response.status_code == 202
        assert response.json()["queued"] == 3
        stats = await async_client.get("/api/v1/queue/stats")
        assert stats.json()["waiting"] == 3

    @pytest.mark.asyncio
    async def test_batch_over_limit_returns_422(self, async_client):
        app.state.services.queue.max_batch_size = 2
        events = [_event_body(uuid.uuid4(), minute=i) for i in range(3)]

        response = await async_client.post("/api/v1/events/batch", json={"events": events})

        assert response.status_code == 422
        assert response.json()["type"] == "invalid_event"
        stats = await async_client.get("/api/v1/queue/stats")
        assert stats.json()["total"] == 0

    @pytest.mark.asyncio
    async def test_empty_batch_returns_422(self, async_client):
        response = await async_client.post("/api/v1/events/batch", json={"events": []})
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_sync_batch_reports_counts(self, async_client, create_lead):
        lead = await create_lead()
        events = [
            _event_body(lead.lead_id, "purchase", minute=2),
            _event_body(lead.lead_id, "email_open", minute=1),
            _event_body(uuid.uuid4(), "page_view", minute=3),
        ]

        response = await async_client.post(
            "/api/v1/events/batch", json={"events": events, "sync": True}
        )

        assert response.status_code == 200
        body = response.json()
        assert (body["processed"], body["failed"], body["out_of_order"]) == (2, 1, 0)


class TestLeadEndpoints:
    @pytest.mark.asyncio
    async def test_get_lead_and_history(self, async_client, create_lead):
        lead = await create_lead(name="Grace Lee")
        for event_type, minute in (("purchase", 1), ("email_open", 0)):
            await async_client.post(
                "/api/v1/events",
                json=_event_body(lead.lead_id, event_type, minute, sync=True),
            )

        detail = await async_client.get(f"/api/v1/leads/{lead.lead_id}")
        history = await async_client.get(f"/api/v1/leads/{lead.lead_id}/history")
        events = await async_client.get(f"/api/v1/leads/{lead.lead_id}/events")

        assert detail.json()["current_score"] == 110
        assert detail.json()["name"] == "Grace Lee"
        assert [h["score"] for h in history.json()] == [10, 110]
        assert [e["event_type"] for e in events.json()] == ["purchase", "email_open"]
        assert all(e["processed"] for e in events.json())

    @pytest.mark.asyncio
    async def test_unknown_lead_returns_404(self, async_client):
        missing = uuid.uuid4()
        for path in ("", "/history", "/events"):
            response = await async_client.get(f"/api/v1/leads/{missing}{path}")
            assert response.status_code == 404
            assert response.json()["type"] == "lead_not_found"

    @pytest.mark.asyncio
    async def test_leaderboard_orders_by_score(self, async_client, create_lead):
        low = await create_lead(name="Low")
        high = await create_lead(name="High")
        await async_client.post("/api/v1/events", json=_event_body(low.lead_id, "page_view", sync=True))
        await async_client.post("/api/v1/events", json=_event_body(high.lead_id, "purchase", sync=True))

        response = await async_client.get("/api/v1/leads/leaderboard", params={"limit": 2})

        assert [lead["name"] for lead in response.json()] == ["High", "Low"]

    @pytest.mark.asyncio
    async def test_recalculate_and_replay(self, async_client, create_lead):
        lead = await create_lead()
        await async_client.post("/api/v1/events", json=_event_body(lead.lead_id, "purchase", sync=True))
        await async_client.put("/api/v1/rules/purchase", json={"points": 70})

        recalc = await async_client.post(f"/api/v1/leads/{lead.lead_id}/recalculate")
        replay = await async_client.post("/api/v1/replay")

        assert recalc.status_code == 200
        assert (recalc.json()["previous_score"], recalc.json()["new_score"]) == (100, 70)
        assert replay.json()["success"] is True
        assert replay.json()["results"][0]["new_score"] == 70


class TestExportEndpoints:
    """CSV downloads of leads and a lead's event ledger."""

    @pytest.mark.asyncio
    async def test_export_leads_orders_by_score(self, async_client, create_lead):
        low = await create_lead(name="Low", company=None)
        high = await create_lead(name="High", company="=HYPERLINK()")
        await async_client.post("/api/v1/events", json=_event_body(low.lead_id, "page_view", sync=True))
        await async_client.post("/api/v1/events", json=_event_body(high.lead_id, "purchase", sync=True))

        response = await async_client.get("/api/v1/export/leads")

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        assert response.headers["content-disposition"] == "attachment; filename=leads.csv"
        rows = list(csv.reader(io.StringIO(response.text)))
        assert rows[0] == ["Name", "Email", "Company", "Score", "Status", "Created"]
        assert [(r[0], r[2], r[3], r[4]) for r in rows[1:]] == [
            ("High", "'=HYPERLINK()", "100", "new"),
            ("Low", "", "5", "new"),
        ]

    @pytest.mark.asyncio
    async def test_export_lead_events(self, async_client, create_lead):
        lead = await create_lead(name="Grace  Lee")
        first = _event_body(lead.lead_id, "email_open", 0, metadata={"campaign": "spring"})
        second = _event_body(lead.lead_id, "purchase", 1)
        for body in (first, second):
            await async_client.post("/api/v1/events", json={**body, "sync": True})

        response = await async_client.get(f"/api/v1/export/events/{lead.lead_id}")

        assert response.status_code == 200
        assert (
            response.headers["content-disposition"]
            == "attachment; filename=events-Grace-Lee.csv"
        )
        rows = list(csv.reader(io.StringIO(response.text)))
        assert rows[0] == ["Event ID", "Event Type", "Timestamp", "Processed", "Metadata"]
        assert [r[0] for r in rows[1:]] == [second["event_id"], first["event_id"]]
        assert rows[2][3] == "true"
        assert json.loads(rows[2][4]) == {"campaign": "spring"}

    @pytest.mark.asyncio
    async def test_export_events_for_unknown_lead(self, async_client):
        response = await async_client.get(f"/api/v1/export/events/{uuid.uuid4()}")

        assert response.status_code == 404
        assert response.json()["type"] == "lead_not_found"


class TestRuleEndpoints:
    @pytest.mark.asyncio
    async def test_list_and_get(self, async_client):
        rules = await async_client.get("/api/v1/rules")
        purchase = await async_client.get("/api/v1/rules/purchase")

        assert len(rules.json()) == 5
        assert purchase.json()["points"] == 100

    @pytest.mark.asyncio
    async def test_update_rule(self, async_client):
        response = await async_client.put(
            "/api/v1/rules/email_open", json={"points": -20, "active": False}
        )

        assert response.status_code == 200
        assert (response.json()["points"], response.json()["active"]) == (-20, False)

    @pytest.mark.asyncio
    async def test_unknown_rule_returns_404(self, async_client):
        response = await async_client.get("/api/v1/rules/teleport")
        assert response.status_code == 404
        assert response.json()["type"] == "rule_not_found"

    @pytest.mark.asyncio
    async def test_empty_update_returns_422(self, async_client):
        response = await async_client.put("/api/v1/rules/purchase", json={})
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_out_of_range_points_return_422(self, async_client):
        response = await async_client.put("/api/v1/rules/purchase", json={"points": 5000})
        assert response.status_code == 422
        assert response.json()["type"] == "invalid_rule"


class TestQueueEndpoints:
    @pytest.mark.asyncio
    async def test_unknown_job_returns_404(self, async_client):
        response = await async_client.get("/api/v1/queue/jobs/missing")
        assert response.status_code == 404
        assert response.json()["type"] == "job_not_found"

    @pytest.mark.asyncio
    async def test_retry_dead_lettered_job(self, async_client):
        queue = app.state.services.queue
        body = _event_body(uuid.uuid4())
        await async_client.post("/api/v1/events", json=body)
        [job] = await queue.claim(1)
        await queue.fail(job, "Lead not found", retryable=False)

        response = await async_client.post(f"/api/v1/queue/jobs/{body['event_id']}/retry")

        assert response.json()["state"] == "waiting"
        assert response.json()["attempts_made"] == 0

    @pytest.mark.asyncio
    async def test_clean_completed(self, async_client):
        response = await async_client.post("/api/v1/queue/clean", params={"older_than_hours": 1})

        assert response.status_code == 200
        assert response.json()["removed"] == 0


class TestScoreWebSocket:
    """Subscription handshake over the real-time endpoint."""

    def test_subscribe_and_unsubscribe(self):
        app.state.services = build_scoring_services(MagicMock())
        client = TestClient(app)
        lead_id = str(uuid.uuid4())

        with client.websocket_connect("/api/v1/ws/scores") as websocket:
            websocket.send_json({"action": "subscribe", "lead_id": lead_id})
            assert websocket.receive_json() == {
                "event": "subscribed",
                "data": {"lead_id": lead_id},
            }
            assert len(app.state.services.hub.subscribers(lead_id)) == 1

            websocket.send_json({"action": "unsubscribe", "lead_id": lead_id})
            assert websocket.receive_json()["event"] == "unsubscribed"

            websocket.send_text("not json")
            assert websocket.receive_json()["event"] == "error"

        assert app.state.services.hub.client_count == 0
