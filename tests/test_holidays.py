"""Holiday calendar test suite — CRUD, one holiday per date, role checks."""

from __future__ import annotations


async def test_holiday_lifecycle(client, hr_headers):
    body = {"date": "2026-01-26", "name": "Republic Day", "type": "national"}

    created = await client.post("/api/v1/holidays", json=body, headers=hr_headers)
    assert created.status_code == 201
    holiday = created.json()["data"]
    assert holiday["year"] == 2026
    assert holiday["is_active"] is True

    duplicate = await client.post("/api/v1/holidays", json=body, headers=hr_headers)
    assert duplicate.status_code == 400
    assert duplicate.json()["error"] == "A holiday already exists on 2026-01-26."

    listing = await client.get("/api/v1/holidays", params={"year": 2026}, headers=hr_headers)
    assert [h["name"] for h in listing.json()["data"]] == ["Republic Day"]

    deleted = await client.delete(f"/api/v1/holidays/{holiday['id']}", headers=hr_headers)
    assert deleted.status_code == 200

    recreated = await client.post("/api/v1/holidays", json=body, headers=hr_headers)
    assert recreated.status_code == 201


async def test_update_holiday(client, hr_headers):
    created = await client.post(
        "/api/v1/holidays",
        json={"date": "2025-10-20", "name": "Diwali", "type": "national"},
        headers=hr_headers,
    )
    holiday_id = created.json()["data"]["id"]

    resp = await client.put(
        f"/api/v1/holidays/{holiday_id}",
        json={"name": "Diwali (Lakshmi Puja)", "is_active": False},
        headers=hr_headers,
    )
    assert resp.status_code == 200
    assert resp.json()["data"]["name"] == "Diwali (Lakshmi Puja)"

    active = await client.get(
        "/api/v1/holidays", params={"active_only": True}, headers=hr_headers
    )
    assert active.json()["data"] == []


async def test_list_filters_by_year(client, hr_headers):
    for day, name in [("2025-12-25", "Christmas"), ("2026-01-01", "New Year")]:
        await client.post("/api/v1/holidays", json={"date": day, "name": name}, headers=hr_headers)

    resp = await client.get("/api/v1/holidays", params={"year": 2025}, headers=hr_headers)
    assert [h["name"] for h in resp.json()["data"]] == ["Christmas"]


async def test_employee_reads_but_cannot_write(client, hr_headers, employee_headers):
    await client.post(
        "/api/v1/holidays", json={"date": "2026-01-26", "name": "Republic Day"}, headers=hr_headers
    )

    listing = await client.get("/api/v1/holidays", headers=employee_headers)
    assert listing.status_code == 200
    assert len(listing.json()["data"]) == 1

    resp = await client.post(
        "/api/v1/holidays", json={"date": "2026-08-15", "name": "Independence Day"}, headers=employee_headers
    )
    assert resp.status_code == 403


async def test_delete_unknown_holiday(client, hr_headers):
    resp = await client.delete(
        "/api/v1/holidays/00000000-0000-0000-0000-000000000000", headers=hr_headers
    )
    assert resp.status_code == 404


async def test_holidays_require_auth(client):
    resp = await client.get("/api/v1/holidays")
    assert resp.status_code == 401
