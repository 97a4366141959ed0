"""
API tests for the table router.
"""

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from core.cache import get_cache, use_cache
from core.deps import get_db
from core.exceptions import register_exception_handlers
from modules.tables.routers.table_router import router
from modules.tables.websocket.table_websocket import get_broadcaster, use_broadcaster

MANAGER = {"X-Actor-Id": "100", "X-Actor-Role": "manager"}
WAITER = {"X-Actor-Id": "200", "X-Actor-Role": "waiter"}


@pytest.fixture
def client(db_session, broadcaster, cache):
    app = FastAPI()
    register_exception_handlers(app)
    app.include_router(router)
    app.dependency_overrides[get_db] = lambda: db_session

    previous_cache, previous_broadcaster = get_cache(), get_broadcaster()
    use_cache(cache)
    use_broadcaster(broadcaster)
    try:
        with TestClient(app) as test_client:
            yield test_client
    finally:
        use_cache(previous_cache)
        use_broadcaster(previous_broadcaster)


@pytest.fixture
def table_payload(outlet, floor):
    return {
        "outlet_id": outlet.id,
        "floor_id": floor.id,
        "table_number": "T1",
        "capacity": 4,
        "position": {"position_x": 40, "position_y": 60},
    }


class TestTableCrudAPI:
    def test_create_and_fetch(self, client, table_payload):
        response = client.post("/api/v1/tables", json=table_payload, headers=WAITER)

        assert response.status_code == 201
        created = response.json()
        assert created["status"] == "available"
        assert created["position"]["position_x"] == 40

        fetched = client.get(f"/api/v1/tables/{created['id']}")
        assert fetched.status_code == 200
        assert fetched.json()["table_number"] == "T1"

    def test_duplicate_number_conflict(self, client, table_payload):
        client.post("/api/v1/tables", json=table_payload, headers=WAITER)

        response = client.post("/api/v1/tables", json=table_payload, headers=WAITER)

        assert response.status_code == 409
        assert response.json()["error_code"] == "DUPLICATE_TABLE_NUMBER"

    def test_unknown_table_404(self, client):
        response = client.get("/api/v1/tables/999")

        assert response.status_code == 404
        assert response.json()["path"] == "/api/v1/tables/999"

    def test_list_and_delete(self, client, outlet, make_table):
        table = make_table("T1")
        make_table("T2")

        assert client.delete(f"/api/v1/tables/{table.id}", headers=WAITER).status_code == 200

        listed = client.get(f"/api/v1/tables/outlet/{outlet.id}").json()
        assert [t["table_number"] for t in listed] == ["T2"]

    def test_reference_data(self, client):
        statuses = client.get("/api/v1/tables/statuses").json()
        shapes = client.get("/api/v1/tables/shapes").json()

        assert {"value": "billing", "label": "Billing"} in statuses
        assert len(shapes) == 5

    def test_non_numeric_actor_header(self, client, table_payload):
        response = client.post(
            "/api/v1/tables", json=table_payload, headers={"X-Actor-Id": "waiter-7"}
        )

        assert response.status_code == 400


class TestStateAPI:
    def test_unknown_status_400(self, client, make_table):
        table = make_table("T1")

        response = client.patch(
            f"/api/v1/tables/{table.id}/status", json={"status": "dirty"}, headers=WAITER
        )

        assert response.status_code == 400
        assert response.json()["error_code"] == "VALIDATION_ERROR"

    def test_seating_refused_without_shift(self, client, make_table):
        table = make_table("T1")

        response = client.post(
            f"/api/v1/tables/{table.id}/session", json={"guest_count": 2}, headers=WAITER
        )

        assert response.status_code == 412
        assert response.json()["error_code"] == "SHIFT_CLOSED"

    def test_session_round_trip(self, client, broadcaster, make_table, open_shift):
        table = make_table("T1")

        started = client.post(
            f"/api/v1/tables/{table.id}/session", json={"guest_count": 2}, headers=WAITER
        )
        assert started.status_code == 201
        assert started.json()["table"]["status"] == "occupied"

        current = client.get(f"/api/v1/tables/{table.id}/session").json()
        assert current["guest_count"] == 2

        linked = client.post(
            f"/api/v1/tables/{table.id}/session/order", json={"order_id": 77}, headers=WAITER
        )
        assert linked.json()["order_id"] == 77

        ended = client.post(f"/api/v1/tables/{table.id}/session/end", headers=WAITER)
        assert ended.status_code == 200
        assert ended.json()["table"]["status"] == "available"

        assert client.get(f"/api/v1/tables/{table.id}/session").json() is None
        assert broadcaster.events_for(table.id) == [
            "session_started",
            "order_linked",
            "session_ended",
        ]

        history = client.get(f"/api/v1/tables/{table.id}/history").json()
        assert [h["event_type"] for h in history] == [
            "session_ended",
            "order_linked",
            "session_started",
        ]

    def test_transfer_requires_elevated_role(self, client, make_table, open_shift):
        table = make_table("T1")
        client.post(f"/api/v1/tables/{table.id}/session", json={}, headers=WAITER)
        url = f"/api/v1/tables/{table.id}/session/transfer"

        denied = client.post(url, json={"new_actor_id": 201}, headers=WAITER)
        allowed = client.post(url, json={"new_actor_id": 201}, headers=MANAGER)

        assert denied.status_code == 403
        assert denied.json()["error_code"] == "PERMISSION_DENIED"
        assert allowed.status_code == 200
        assert allowed.json()["started_by"] == 201


class TestMergeAPI:
    def test_merge_and_unmerge(self, client, make_table):
        t1 = make_table("T1", capacity=4)
        t2 = make_table("T2", capacity=2)

        merged = client.post(
            f"/api/v1/tables/{t1.id}/merge", json={"table_ids": [t2.id]}, headers=WAITER
        )
        assert merged.status_code == 200
        assert merged.json()[0]["capacity_added"] == 2

        check = client.get(f"/api/v1/tables/{t1.id}/capacity-check").json()
        assert check["consistent"] is True

        unmerged = client.post(f"/api/v1/tables/{t2.id}/unmerge", headers=WAITER)
        assert unmerged.status_code == 200
        assert unmerged.json()["table"]["capacity"] == 4
        assert client.get(f"/api/v1/tables/{t1.id}/merged").json() == []

    def test_empty_merge_list_is_rejected(self, client, make_table):
        t1 = make_table("T1")

        response = client.post(
            f"/api/v1/tables/{t1.id}/merge", json={"table_ids": []}, headers=WAITER
        )

        assert response.status_code == 422


class TestFloorAPI:
    def test_floor_view_and_details(self, client, floor, make_table, open_shift):
        table = make_table("T1")

        view = client.get(f"/api/v1/tables/floor/{floor.id}").json()
        details = client.get(f"/api/v1/tables/{table.id}/details").json()

        assert view["shift"]["is_open"] is True
        assert view["tables"][0]["table_number"] == "T1"
        assert details["status_summary"]["can_seat"] is True

    def test_floor_report_window(self, client, floor, make_table):
        make_table("T1")

        report = client.get(
            f"/api/v1/tables/floor/{floor.id}/report",
            params={"from": "2026-03-01T00:00:00Z", "to": "2026-03-02T00:00:00Z"},
        ).json()

        assert report["period"]["from"] == "2026-03-01T00:00:00+00:00"
        assert report["summary"]["total_tables"] == 1

    def test_realtime_status(self, client, outlet, other_floor, make_table, open_shift):
        table = make_table("T1")
        make_table("R1", on_floor=other_floor)
        client.post(f"/api/v1/tables/{table.id}/session", json={"guest_count": 2}, headers=WAITER)

        everything = client.get(f"/api/v1/tables/realtime/{outlet.id}").json()
        rooftop = client.get(
            f"/api/v1/tables/realtime/{outlet.id}", params={"floor_id": other_floor.id}
        ).json()

        assert [r["table_number"] for r in everything] == ["T1", "R1"]
        assert everything[0]["status"] == "occupied"
        assert everything[0]["guest_count"] == 2
        assert [r["table_number"] for r in rooftop] == ["R1"]

    def test_running_kots_for_free_table(self, client, make_table):
        table = make_table("T1")

        response = client.get(f"/api/v1/tables/{table.id}/kots")

        assert response.status_code == 200
        assert response.json() == []
        assert client.get("/api/v1/tables/999/kots").status_code == 404
