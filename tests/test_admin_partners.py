from __future__ import annotations

import uuid

from tests.conftest import admin_headers, make_partner


def test_create_partner_with_explicit_code(client, store):
    r = client.post(
        "/v1/admin/partners",
        json={
            "creator_name": "Asha Rao",
            "referral_code": "asha10",
            "buyer_identifier": "asha-discord-1",
            "discount_percent": "5",
            "commission_percent": "12.5",
            "max_uses": 100,
        },
        headers=admin_headers(),
    )
    assert r.status_code == 201, r.text
    data = r.json()
    assert data["referral_code"] == "ASHA10"
    assert data["status"] == "active"
    assert data["pending_commission_cents"] == 0
    assert data["max_uses"] == 100

    partner = store.get_partner_by_code("ASHA10")
    assert str(partner.commission_percent) == "12.5"
    assert any(e["action"] == "PARTNER_CREATED" for e in store.audit_events)


def test_create_partner_generates_code_from_name(client, store):
    r = client.post("/v1/admin/partners", json={"creator_name": "Ravi K."}, headers=admin_headers())
    assert r.status_code == 201, r.text
    code = r.json()["referral_code"]
    assert code.startswith("RAVIK")
    assert len(code) == len("RAVIK") + 3


def test_duplicate_code_is_conflict(client, store):
    make_partner(store, referral_code="TAKEN1")
    r = client.post(
        "/v1/admin/partners",
        json={"creator_name": "Someone", "referral_code": "taken1"},
        headers=admin_headers(),
    )
    assert r.status_code == 409
    assert r.json()["detail"] == "REFERRAL_CODE_TAKEN"


def test_percent_out_of_range_is_rejected(client):
    r = client.post(
        "/v1/admin/partners",
        json={"creator_name": "Someone", "commission_percent": "150"},
        headers=admin_headers(),
    )
    assert r.status_code == 422


def test_list_and_filter_by_status(client, store):
    active = make_partner(store)
    banned = make_partner(store, status="banned")

    r = client.get("/v1/admin/partners?status=banned", headers=admin_headers())
    assert r.status_code == 200
    assert [p["id"] for p in r.json()["partners"]] == [str(banned.id)]

    r = client.get("/v1/admin/partners", headers=admin_headers())
    ids = {p["id"] for p in r.json()["partners"]}
    assert {str(active.id), str(banned.id)} <= ids


def test_patch_status_and_percent(client, store):
    partner = make_partner(store)
    r = client.patch(
        f"/v1/admin/partners/{partner.id}",
        json={"status": "paused", "commission_percent": "15"},
        headers=admin_headers(),
    )
    assert r.status_code == 200, r.text
    after = store.get_partner(partner.id)
    assert after.status == "paused"
    assert str(after.commission_percent) == "15"


def test_patch_unknown_partner(client):
    r = client.patch(f"/v1/admin/partners/{uuid.uuid4()}", json={"status": "paused"}, headers=admin_headers())
    assert r.status_code == 404


def test_adjust_commission_and_detail(client, store):
    partner = make_partner(store, pending_commission_cents=10000)

    r = client.post(
        f"/v1/admin/partners/{partner.id}/adjust",
        json={"amount_cents": -2500, "note": "refund clawback"},
        headers=admin_headers(),
    )
    assert r.status_code == 200, r.text
    adj = r.json()
    assert adj["previous_balance_cents"] == 10000
    assert adj["new_balance_cents"] == 7500
    assert adj["adjusted_by"] == "admin@settlement.test"

    r = client.get(f"/v1/admin/partners/{partner.id}", headers=admin_headers())
    assert r.status_code == 200
    data = r.json()
    assert data["partner"]["pending_commission_cents"] == 7500
    assert [a["amount_cents"] for a in data["adjustments"]] == [-2500]


def test_adjust_cannot_go_negative(client, store):
    partner = make_partner(store, pending_commission_cents=1000)
    r = client.post(
        f"/v1/admin/partners/{partner.id}/adjust",
        json={"amount_cents": -1001},
        headers=admin_headers(),
    )
    assert r.status_code == 409
    assert r.json()["detail"] == "INSUFFICIENT_BALANCE"
    assert store.get_partner(partner.id).pending_commission_cents == 1000


def test_adjust_zero_is_invalid(client, store):
    partner = make_partner(store)
    r = client.post(f"/v1/admin/partners/{partner.id}/adjust", json={"amount_cents": 0}, headers=admin_headers())
    assert r.status_code == 400
    assert r.json()["detail"] == "INVALID_AMOUNT"
