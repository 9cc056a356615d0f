"""Tests for the site, device and feature CRUD endpoints."""

import pytest

from qa_dashboard.models import Result


# ── Sites / devices ──────────────────────────────────────────────────────────

@pytest.mark.asyncio
class TestSitesApi:
    async def test_create_and_get_site(self, client):
        resp = await client.post("/api/sites", json={"name": "viblys.com"})
        assert resp.status_code == 201
        created = resp.json()
        assert created["name"] == "viblys.com"
        assert created["created_at"] is not None

        resp = await client.get(f"/api/sites/{created['id']}")
        assert resp.status_code == 200
        assert resp.json()["name"] == "viblys.com"

    async def test_list_sites_in_id_order(self, client, catalog):
        resp = await client.get("/api/sites")
        assert resp.status_code == 200
        assert [s["name"] for s in resp.json()] == ["senti.live", "shorts.senti.live"]

    async def test_duplicate_name_conflicts(self, client, catalog):
        resp = await client.post("/api/sites", json={"name": "senti.live"})
        assert resp.status_code == 409

    async def test_missing_name_is_bad_request(self, client):
        resp = await client.post("/api/sites", json={})
        assert resp.status_code == 400

        resp = await client.post("/api/sites", json={"name": ""})
        assert resp.status_code == 400

    async def test_unknown_site_not_found(self, client):
        resp = await client.get("/api/sites/999")
        assert resp.status_code == 404
        assert resp.json()["detail"] == "Site not found"

    async def test_rename_site(self, client, catalog):
        resp = await client.put(f"/api/sites/{catalog['shorts']}", json={"name": "hothinge.com"})
        assert resp.status_code == 200
        assert resp.json()["name"] == "hothinge.com"

    async def test_rename_to_taken_name_conflicts(self, client, catalog):
        resp = await client.put(f"/api/sites/{catalog['shorts']}", json={"name": "senti.live"})
        assert resp.status_code == 409

    async def test_rename_to_own_name_is_allowed(self, client, catalog):
        resp = await client.put(f"/api/sites/{catalog['senti']}", json={"name": "senti.live"})
        assert resp.status_code == 200

    async def test_delete_unused_site(self, client, catalog):
        resp = await client.delete(f"/api/sites/{catalog['shorts']}")
        assert resp.status_code == 200
        assert resp.json() == {"message": "Site deleted successfully"}

        resp = await client.get(f"/api/sites/{catalog['shorts']}")
        assert resp.status_code == 404

    async def test_delete_referenced_site_conflicts(self, client, catalog, session_maker):
        async with session_maker() as session:
            session.add(Result(
                site_id=catalog["senti"],
                device_id=catalog["desktop"],
                feature_id=catalog["chat"],
                status="passed",
                browser="chrome",
            ))
            await session.commit()

        resp = await client.delete(f"/api/sites/{catalog['senti']}")
        assert resp.status_code == 409
        assert "referenced by 1 result" in resp.json()["detail"]

    async def test_device_crud(self, client):
        resp = await client.post("/api/devices", json={"name": "Mobile"})
        assert resp.status_code == 201
        device_id = resp.json()["id"]

        resp = await client.put(f"/api/devices/{device_id}", json={"name": "Tablet"})
        assert resp.json()["name"] == "Tablet"

        resp = await client.delete(f"/api/devices/{device_id}")
        assert resp.json() == {"message": "Device deleted successfully"}


# ── Features ─────────────────────────────────────────────────────────────────

@pytest.mark.asyncio
class TestFeaturesApi:
    async def test_create_feature_with_kind(self, client):
        resp = await client.post("/api/features", json={"name": "Age Verification", "kind": "age_verification"})
        assert resp.status_code == 201
        assert resp.json()["kind"] == "age_verification"

    async def test_create_feature_without_kind(self, client):
        resp = await client.post("/api/features", json={"name": "Stories"})
        assert resp.status_code == 201
        assert resp.json()["kind"] is None

    async def test_unknown_kind_is_bad_request(self, client):
        resp = await client.post("/api/features", json={"name": "Stories", "kind": "teleport"})
        assert resp.status_code == 400

    async def test_rename_keeps_kind(self, client, catalog):
        resp = await client.put(f"/api/features/{catalog['chat']}", json={"name": "Chat"})
        assert resp.status_code == 200
        data = resp.json()
        assert data["name"] == "Chat"
        assert data["kind"] == "chat"

    async def test_clear_kind(self, client, catalog):
        resp = await client.put(
            f"/api/features/{catalog['chat']}", json={"name": "Chat Functionality", "kind": None}
        )
        assert resp.status_code == 200
        assert resp.json()["kind"] is None

    async def test_delete_message(self, client, catalog):
        resp = await client.delete(f"/api/features/{catalog['paywall']}")
        assert resp.json() == {"message": "Feature deleted successfully"}
