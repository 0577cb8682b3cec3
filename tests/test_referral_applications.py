from __future__ import annotations

import threading
import uuid
from decimal import Decimal

import pytest

from app.errors import Conflict, ValidationFailed
from app.referrals import model as rm
from app.referrals.applications import approve_application, submit_application
from app.workers import dispatch
from tests.conftest import admin_headers, make_partner


ADMIN = "admin@settlement.test"


def _apply_body(**overrides):
    body = {
        "creator_name": "Ravi Plays",
        "email": "Ravi@Example.com",
        "buyer_identifier": "RaviMC",
        "contact_handle": "ravi#1234",
        "channel_link": "https://youtube.com/@ravi",
        "description": "weekly survival streams",
    }
    body.update(overrides)
    return body


def _submit(store, **overrides):
    body = _apply_body(**overrides)
    return submit_application(store, **body)


def test_apply_creates_pending_application(client, store):
    r = client.post("/v1/referrals/apply", json=_apply_body())
    assert r.status_code == 201, r.text
    assert r.json()["status"] == "pending"

    application = store.get_referral_application(uuid.UUID(r.json()["id"]))
    assert application.email == "ravi@example.com"
    assert application.buyer_identifier == "RaviMC"
    assert application.partner_id is None


def test_apply_twice_while_pending_conflicts(client):
    assert client.post("/v1/referrals/apply", json=_apply_body()).status_code == 201

    # same person, different email casing and a new handle
    r = client.post("/v1/referrals/apply", json=_apply_body(email="RAVI@example.com", contact_handle="ravi#9"))
    assert r.status_code == 409
    assert r.json()["detail"] == "APPLICATION_PENDING"

    # same game account, case-insensitive
    r = client.post(
        "/v1/referrals/apply",
        json=_apply_body(email="other@example.com", contact_handle="other#1", buyer_identifier="ravimc"),
    )
    assert r.status_code == 409


def test_apply_after_approval_conflicts(client, store):
    application = _submit(store)
    approve_application(store, application.id, actor=ADMIN)

    r = client.post("/v1/referrals/apply", json=_apply_body())
    assert r.status_code == 409
    assert r.json()["detail"] == "ALREADY_APPROVED_PARTNER"


def test_apply_allowed_again_after_rejection(client, store):
    first = client.post("/v1/referrals/apply", json=_apply_body()).json()
    r = client.post(
        f"/v1/admin/applications/{first['id']}/reject",
        json={"review_reason": "channel too small"},
        headers=admin_headers(),
    )
    assert r.status_code == 200, r.text

    assert client.post("/v1/referrals/apply", json=_apply_body()).status_code == 201


def test_apply_validation(client):
    r = client.post("/v1/referrals/apply", json=_apply_body(email="not-an-email"))
    assert r.status_code == 400
    assert r.json()["detail"] == "INVALID_EMAIL"

    r = client.post("/v1/referrals/apply", json=_apply_body(channel_link="   "))
    assert r.status_code == 400
    assert r.json()["detail"] == "APPLICATION_FIELDS_REQUIRED"


def test_admin_application_routes_require_admin(client):
    assert client.get("/v1/admin/applications").status_code == 401
    assert client.post(f"/v1/admin/applications/{uuid.uuid4()}/approve", json={}).status_code == 401


def test_admin_lists_newest_first_with_status_filter(client, store):
    first = _submit(store)
    second = _submit(store, email="b@example.com", contact_handle="b#1", buyer_identifier="BeeMC")
    approve_application(store, second.id, actor=ADMIN)

    r = client.get("/v1/admin/applications", headers=admin_headers())
    assert r.status_code == 200, r.text
    ids = [a["id"] for a in r.json()["applications"]]
    assert set(ids) == {str(first.id), str(second.id)}

    r = client.get("/v1/admin/applications?status=pending", headers=admin_headers())
    assert [a["id"] for a in r.json()["applications"]] == [str(first.id)]


def test_approve_creates_linked_partner_with_generated_code(client, store):
    application = _submit(store)

    r = client.post(
        f"/v1/admin/applications/{application.id}/approve",
        json={"review_reason": "great fit"},
        headers=admin_headers(),
    )
    assert r.status_code == 200, r.text
    data = r.json()
    assert data["application"]["status"] == "approved"
    assert data["application"]["review_reason"] == "great fit"
    assert data["application"]["reviewed_by"] == "admin@settlement.test"

    partner = store.get_partner(uuid.UUID(data["partner"]["id"]))
    assert partner.referral_code.startswith("RAVIPL")
    assert partner.application_id == application.id
    assert partner.buyer_identifier == "RaviMC"
    assert partner.discount_percent == Decimal("10")
    assert partner.commission_percent == Decimal("10")
    assert store.get_referral_application(application.id).partner_id == partner.id
    assert any(e["action"] == "REFERRAL_APPLICATION_APPROVED" for e in store.audit_events)


def test_approve_with_custom_code_and_percents(client, store):
    application = _submit(store)

    r = client.post(
        f"/v1/admin/applications/{application.id}/approve",
        json={"referral_code": "ravi15", "discount_percent": "15", "commission_percent": "12.5"},
        headers=admin_headers(),
    )
    assert r.status_code == 200, r.text
    partner = r.json()["partner"]
    assert partner["referral_code"] == "RAVI15"
    assert Decimal(partner["discount_percent"]) == Decimal("15")
    assert Decimal(partner["commission_percent"]) == Decimal("12.5")


def test_approve_with_taken_code_leaves_application_pending(client, store):
    make_partner(store, referral_code="RAVI15")
    application = _submit(store)

    r = client.post(
        f"/v1/admin/applications/{application.id}/approve",
        json={"referral_code": "RAVI15"},
        headers=admin_headers(),
    )
    assert r.status_code == 409
    assert r.json()["detail"] == "REFERRAL_CODE_TAKEN"
    assert store.get_referral_application(application.id).status == rm.APPLICATION_PENDING


def test_partner_creation_failure_hands_application_back(store):
    application = _submit(store)

    with pytest.raises(ValidationFailed):
        approve_application(store, application.id, actor=ADMIN, commission_percent=Decimal("150"))

    after = store.get_referral_application(application.id)
    assert after.status == rm.APPLICATION_PENDING
    assert after.partner_id is None
    assert store.list_partners() == []


def test_approve_twice_conflicts(client, store):
    application = _submit(store)
    approve_application(store, application.id, actor=ADMIN)

    r = client.post(f"/v1/admin/applications/{application.id}/approve", json={}, headers=admin_headers())
    assert r.status_code == 409
    assert r.json()["detail"] == "APPLICATION_ALREADY_APPROVED"


def test_concurrent_approvals_create_one_partner(store):
    application = _submit(store)
    barrier = threading.Barrier(6)
    outcomes = []
    lock = threading.Lock()

    def worker():
        barrier.wait()
        try:
            approve_application(store, application.id, actor=ADMIN)
            result = "approved"
        except Conflict:
            result = "conflict"
        with lock:
            outcomes.append(result)

    threads = [threading.Thread(target=worker) for _ in range(6)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert outcomes.count("approved") == 1
    assert outcomes.count("conflict") == 5
    assert len(store.list_partners()) == 1


def test_rejected_application_can_be_approved_later(client, store):
    application = _submit(store)
    r = client.post(f"/v1/admin/applications/{application.id}/reject", json={}, headers=admin_headers())
    assert r.status_code == 200, r.text
    assert r.json()["status"] == "rejected"
    assert r.json()["review_reason"] == ""

    r = client.post(f"/v1/admin/applications/{application.id}/approve", json={}, headers=admin_headers())
    assert r.status_code == 200, r.text


def test_reject_approved_application_conflicts(client, store):
    application = _submit(store)
    approve_application(store, application.id, actor=ADMIN)

    r = client.post(
        f"/v1/admin/applications/{application.id}/reject",
        json={"review_reason": "changed mind"},
        headers=admin_headers(),
    )
    assert r.status_code == 409
    assert store.get_referral_application(application.id).status == rm.APPLICATION_APPROVED


def test_unknown_application(client):
    r = client.post(f"/v1/admin/applications/{uuid.uuid4()}/reject", json={}, headers=admin_headers())
    assert r.status_code == 404
    assert r.json()["detail"] == "APPLICATION_NOT_FOUND"


def test_approved_partner_cannot_self_refer(client, store):
    application = _submit(store)
    _, partner = approve_application(store, application.id, actor=ADMIN)
    dispatch.drain()

    r = client.post("/v1/referrals/validate", json={"referral_code": partner.referral_code, "buyer_id": "RaviMC"})
    assert r.status_code == 400
    assert r.json()["detail"] == "SELF_REFERRAL"
