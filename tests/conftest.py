# tests/conftest.py

import os
import sys
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, Optional

import pytest
from fastapi.testclient import TestClient

from app.catalog.model import Product
from app.orders import model as om
from app.orders.model import Order, OrderItem
from app.providers.mock import MockGateway
from app.referrals.model import ReferralPartner
from app.store.memory import MemoryStore
from app.workers import dispatch
from deps.store import get_gateway, get_store
from main import app
from security import ROLE_ADMIN, ROLE_CREATOR, create_access_token
from settings import settings


SCRIPT_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", "scripts"))
if SCRIPT_DIR not in sys.path:
    sys.path.insert(0, SCRIPT_DIR)

WEBHOOK_SECRET = "pytest_webhook_secret"


# ---------------------------
# Store + Client
# ---------------------------

@pytest.fixture()
def store() -> MemoryStore:
    return MemoryStore(default_payout_threshold_cents=30000)


@pytest.fixture()
def gateway() -> MockGateway:
    return MockGateway()


@pytest.fixture()
def client(store: MemoryStore, gateway: MockGateway) -> TestClient:
    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_gateway] = lambda: gateway
    # Needed so tests can assert 500s instead of pytest re-raising server exceptions
    yield TestClient(app, raise_server_exceptions=False)
    app.dependency_overrides.clear()


@pytest.fixture(autouse=True)
def _webhook_secret(monkeypatch):
    monkeypatch.setenv("RAZORPAY_WEBHOOK_SECRET", WEBHOOK_SECRET)
    monkeypatch.delenv("EVENT_WEBHOOK_URL", raising=False)
    monkeypatch.setattr(settings, "EVENT_WEBHOOK_URL", "", raising=False)


@pytest.fixture(autouse=True)
def _drain_detached():
    yield
    dispatch.drain(timeout=5.0)


# ---------------------------
# Auth Helpers
# ---------------------------

def _auth_headers(token: str) -> Dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def admin_headers(subject: str = "admin@settlement.test") -> Dict[str, str]:
    return _auth_headers(create_access_token(subject, ROLE_ADMIN))


def creator_headers(partner_id) -> Dict[str, str]:
    return _auth_headers(create_access_token(str(partner_id), ROLE_CREATOR))


# ---------------------------
# Record factories
# ---------------------------

def _now() -> datetime:
    return datetime.now(timezone.utc)


def make_partner(store: MemoryStore, **overrides) -> ReferralPartner:
    now = _now()
    fields = dict(
        id=uuid.uuid4(),
        creator_name="Asha Creator",
        referral_code=f"ASHA{uuid.uuid4().hex[:4].upper()}",
        created_at=now,
        updated_at=now,
        buyer_identifier=f"buyer-{uuid.uuid4().hex[:6]}",
        discount_percent=Decimal("10"),
        commission_percent=Decimal("10"),
    )
    fields.update(overrides)
    return store.insert_partner(ReferralPartner(**fields))


def make_product(store: MemoryStore, *, price_cents: int = 50000, **overrides) -> Product:
    fields = dict(id=uuid.uuid4(), title="Starter Rank", price_cents=price_cents)
    fields.update(overrides)
    return store.insert_product(Product(**fields))


def make_order(
    store: MemoryStore,
    *,
    total_cents: int = 100000,
    partner: Optional[ReferralPartner] = None,
    commission_percent: Optional[Decimal] = None,
    **overrides,
) -> Order:
    now = _now()
    product_id = uuid.uuid4()
    fields = dict(
        id=uuid.uuid4(),
        buyer_id=f"buyer-{uuid.uuid4().hex[:6]}",
        email="buyer@example.com",
        items=(OrderItem(product_id=product_id, title="Item", unit_price_cents=total_cents, quantity=1),),
        subtotal_cents=total_cents,
        discount_cents=0,
        total_cents=total_cents,
        currency="INR",
        gateway_order_id=f"order_{uuid.uuid4().hex[:14]}",
        created_at=now,
        updated_at=now,
    )
    if partner is not None:
        fields.update(
            referral_code=partner.referral_code,
            referral_partner_id=partner.id,
            commission_percent=commission_percent if commission_percent is not None else partner.commission_percent,
        )
    fields.update(overrides)
    return store.insert_order(Order(**fields))


def make_paid_order(store: MemoryStore, **kwargs) -> Order:
    order = make_order(store, **kwargs)
    paid = store.mark_order_paid(
        order.gateway_order_id,
        gateway_payment_id=f"pay_{uuid.uuid4().hex[:14]}",
        paid_at=_now(),
    )
    assert paid is not None
    assert paid.status == om.PAID
    return paid
