from __future__ import annotations

import json

from fastapi.testclient import TestClient

from conftest import USER_DRAFT, StubOracle

from erpforge.api.main import create_app


def _create_users(client) -> str:
    r = client.post("/api/menus", json=USER_DRAFT)
    assert r.status_code == 201, r.text
    return r.json()["data"]["id"]


def test_health_endpoints(client):
    assert client.get("/health/live").json() == {"status": "ok"}
    assert client.get("/health/ready").json() == {"status": "ready"}

    body = client.get("/api/health").json()
    assert body["status"] == "ok"
    assert body["autoPersist"] is False


def test_request_id_header_roundtrip(client):
    r = client.get("/api/health", headers={"X-Request-Id": "test-rid-123"})
    assert r.headers.get("X-Request-Id") == "test-rid-123"
    assert len(client.get("/api/health").headers["X-Request-Id"]) > 10


def test_menu_lifecycle(client):
    menu_id = _create_users(client)
    assert menu_id == "user_registration"

    listed = client.get("/api/menus").json()["data"]
    assert [m["id"] for m in listed] == [menu_id]

    menu = client.get(f"/api/menus/{menu_id}").json()["data"]
    assert menu["tableName"] == "users"
    assert [c["name"] for c in menu["schema"]["columns"]][0] == "id"

    schema = client.get(f"/api/menus/{menu_id}/schema").json()["data"]
    assert schema["entityId"] == menu_id

    assert client.delete(f"/api/menus/{menu_id}").json()["success"] is True
    assert client.get(f"/api/menus/{menu_id}").status_code == 404
    assert client.get(f"/api/data/{menu_id}").status_code == 404
    # deleting again is fine
    assert client.delete(f"/api/menus/{menu_id}").status_code == 200


def test_create_menu_validation(client):
    assert client.post("/api/menus", json={"columns": []}).status_code == 400
    r = client.post("/api/menus", json={"menuName": "Bad", "columns": [{"name": "s", "type": "select"}]})
    assert r.status_code == 422


def test_row_crud_and_filters(client):
    menu_id = _create_users(client)

    r = client.post(f"/api/data/{menu_id}", json={"name": "Kim", "email": "bad-email", "age": "31"})
    assert r.status_code == 201
    kim = r.json()["data"]
    assert kim["email"] == "bad-email"
    assert kim["age"] == 31
    client.post(f"/api/data/{menu_id}", json={"name": "Park"})

    found = client.get(f"/api/data/{menu_id}", params={"name": "ki"}).json()
    assert found["count"] == 1
    assert found["data"][0]["name"] == "Kim"

    assert client.get(f"/api/data/{menu_id}/{kim['id']}").json()["data"]["name"] == "Kim"
    assert client.get(f"/api/data/{menu_id}/nope").status_code == 404

    upd = client.put(f"/api/data/{menu_id}/{kim['id']}", json={"id": "forged", "createdAt": "2000-01-01", "age": 32})
    assert upd.status_code == 200
    assert upd.json()["data"]["id"] == kim["id"]
    assert upd.json()["data"]["createdAt"] == kim["createdAt"]
    assert upd.json()["data"]["age"] == 32

    assert client.delete(f"/api/data/{menu_id}/{kim['id']}").status_code == 200
    assert client.delete(f"/api/data/{menu_id}/{kim['id']}").status_code == 404
    assert client.put(f"/api/data/{menu_id}/{kim['id']}", json={}).status_code == 404


def test_duplicate_row_id_is_conflict(client):
    menu_id = _create_users(client)
    assert client.post(f"/api/data/{menu_id}", json={"id": "a", "name": "x"}).status_code == 201
    assert client.post(f"/api/data/{menu_id}", json={"id": "a", "name": "y"}).status_code == 409


def test_bulk_insert(client):
    menu_id = _create_users(client)

    r = client.post(f"/api/data/{menu_id}/bulk", json={"rows": [{"name": "a"}, 5, {"name": "b"}]})
    assert r.status_code == 200
    data = r.json()["data"]
    assert len(data["succeeded"]) == 2
    assert data["failed"][0]["input"] == 5

    assert client.post(f"/api/data/{menu_id}/bulk", json={"rows": "nope"}).status_code == 400
    assert client.post("/api/data/missing/bulk", json={"rows": []}).status_code == 404


def test_schema_editing(client):
    menu_id = _create_users(client)

    r = client.post(f"/api/schema/{menu_id}/add-column", json={"column": {"name": "birthday", "type": "date"}})
    assert r.status_code == 200
    assert "birthday" in [c["name"] for c in r.json()["data"]["columns"]]
    assert client.post(f"/api/schema/{menu_id}/add-column", json={"column": {"name": "birthday"}}).status_code == 409
    assert client.post(f"/api/schema/{menu_id}/add-column", json={}).status_code == 400

    r = client.delete(f"/api/schema/{menu_id}/column/phone")
    assert "phone" not in [c["name"] for c in r.json()["data"]["columns"]]
    assert client.delete(f"/api/schema/{menu_id}/column/id").status_code == 409

    r = client.put(f"/api/schema/{menu_id}", json={"columns": [{"name": "title"}]})
    assert r.status_code == 200
    names = [c["name"] for c in r.json()["data"]["schema"]["columns"]]
    assert names == ["id", "title", "createdAt", "updatedAt"]
    assert client.put("/api/schema/missing", json={"columns": []}).status_code == 404


def test_stats(client):
    menu_id = _create_users(client)
    client.post(f"/api/data/{menu_id}", json={"name": "Kim"})

    stats = client.get("/api/menus/system/stats").json()["data"]
    assert stats["entityCount"] == 1
    assert stats["totalRowCount"] == 1


def test_metrics_endpoints(client):
    _create_users(client)

    snap = client.get("/api/v1/metrics/snapshot").json()
    assert snap["entities_created"] == 1
    assert snap["entities"] == 1
    assert snap["dirty_entities"] == 1

    r = client.get("/metrics")
    assert r.status_code == 200
    assert "erpforge_http_requests_total" in r.text


def test_unhandled_error_is_shaped(client, monkeypatch):
    store = client.app.state.store

    def boom():
        raise RuntimeError("secret internals")

    monkeypatch.setattr(store, "stats", boom)
    r = client.get("/api/menus/system/stats", headers={"X-Request-Id": "rid-1"})

    assert r.status_code == 500
    assert r.json() == {"success": False, "detail": "Internal Server Error", "request_id": "rid-1"}
    assert "Traceback" not in r.text
    assert "secret internals" not in r.text


def test_lifespan_loads_and_flushes(settings):
    with TestClient(create_app(settings, oracle=StubOracle())) as c:
        menu_id = _create_users(c)
        c.post(f"/api/data/{menu_id}", json={"name": "Kim"})

    artifact = json.loads((settings.data_dir / f"{menu_id}.json").read_text(encoding="utf-8"))
    assert artifact["data"][0]["name"] == "Kim"

    with TestClient(create_app(settings, oracle=StubOracle())) as c:
        rows = c.get(f"/api/data/{menu_id}").json()["data"]
    assert [r["name"] for r in rows] == ["Kim"]
