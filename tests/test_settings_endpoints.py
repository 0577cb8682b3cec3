from __future__ import annotations

from app.payouts.threshold import get_payout_threshold_cents
from tests.conftest import admin_headers, creator_headers, make_partner


def test_public_settings(client):
    r = client.get("/v1/settings/public")
    assert r.status_code == 200
    assert r.json() == {"global_payout_threshold_cents": 30000, "currency": "INR"}


def test_admin_updates_threshold(client, store):
    r = client.patch(
        "/v1/admin/settings",
        json={"global_payout_threshold_cents": 50000},
        headers=admin_headers(),
    )
    assert r.status_code == 200, r.text
    assert r.json()["global_payout_threshold_cents"] == 50000
    assert get_payout_threshold_cents(store) == 50000

    r = client.get("/v1/admin/settings", headers=admin_headers())
    assert r.json()["global_payout_threshold_cents"] == 50000
    assert r.json()["updated_at"] is not None

    [event] = [e for e in store.audit_events if e["action"] == "SETTINGS_PAYOUT_THRESHOLD_UPDATED"]
    assert event["metadata"] == {"previous_cents": 30000, "new_cents": 50000}


def test_threshold_must_be_positive(client):
    r = client.patch("/v1/admin/settings", json={"global_payout_threshold_cents": 0}, headers=admin_headers())
    assert r.status_code == 422


def test_creator_cannot_update_settings(client, store):
    partner = make_partner(store)
    r = client.patch(
        "/v1/admin/settings",
        json={"global_payout_threshold_cents": 1},
        headers=creator_headers(partner.id),
    )
    assert r.status_code == 403


def test_threshold_falls_back_when_settings_unreadable(store, monkeypatch):
    def broken():
        raise RuntimeError("settings table missing")

    monkeypatch.setattr(store, "get_settings", broken)
    assert get_payout_threshold_cents(store) == 30000
