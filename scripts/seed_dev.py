"""
Seed a Postgres dev/staging database with one product and one referral
partner, and print a creator token for it.

Usage:
  DATABASE_URL=... python scripts/seed_dev.py
"""
import os
import sys
import uuid
from datetime import datetime, timezone
from decimal import Decimal

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from app.catalog.model import Product  # noqa: E402
from app.referrals.model import ReferralPartner  # noqa: E402
from app.store.base import DuplicateRecord  # noqa: E402
from app.store.postgres import PostgresStore  # noqa: E402
from security import ROLE_ADMIN, ROLE_CREATOR, create_access_token  # noqa: E402


def die(message, code=1):
    print(message)
    sys.exit(code)


def _get_env(name, default=None):
    return os.getenv(name, default)


def _ensure_partner(store, code, buyer_identifier):
    existing = store.get_partner_by_code(code)
    if existing:
        return existing, False
    now = datetime.now(timezone.utc)
    partner = ReferralPartner(
        id=uuid.uuid4(),
        creator_name=_get_env("SEED_CREATOR_NAME", "Dev Creator"),
        referral_code=code,
        created_at=now,
        updated_at=now,
        buyer_identifier=buyer_identifier,
        discount_percent=Decimal(_get_env("SEED_DISCOUNT_PERCENT", "10")),
        commission_percent=Decimal(_get_env("SEED_COMMISSION_PERCENT", "10")),
    )
    try:
        return store.insert_partner(partner), True
    except DuplicateRecord:
        return store.get_partner_by_code(code), False


def main():
    if not (_get_env("DATABASE_URL") or "").strip():
        die("DATABASE_URL is required")

    store = PostgresStore()
    store.ping()

    product = store.insert_product(
        Product(
            id=uuid.uuid4(),
            title=_get_env("SEED_PRODUCT_TITLE", "Dev Rank"),
            price_cents=int(_get_env("SEED_PRODUCT_PRICE_CENTS", "50000")),
        )
    )
    code = (_get_env("SEED_REFERRAL_CODE", "DEV10") or "DEV10").strip().upper()
    partner, created = _ensure_partner(store, code, _get_env("SEED_PARTNER_BUYER_ID", "dev-creator"))

    print("product_id=%s price_cents=%s" % (product.id, product.price_cents))
    print("partner_id=%s referral_code=%s created=%s" % (partner.id, partner.referral_code, created))
    print("creator_token=%s" % create_access_token(str(partner.id), ROLE_CREATOR))
    print("admin_token=%s" % create_access_token(_get_env("SEED_ADMIN_SUBJECT", "dev-admin"), ROLE_ADMIN))


if __name__ == "__main__":
    main()
