from __future__ import annotations

from decimal import Decimal

import pytest

from app.errors import NotFound, ValidationFailed
from app.referrals.codes import compute_discount, generate_referral_code, normalize_code, resolve_referral_code
from tests.conftest import make_partner


def test_normalize_code():
    assert normalize_code("  asha10 ") == "ASHA10"
    assert normalize_code(None) == ""


def test_compute_discount_half_up_and_capped():
    assert compute_discount(100000, Decimal("10")) == 10000
    assert compute_discount(105, Decimal("10")) == 11
    assert compute_discount(104, Decimal("10")) == 10
    assert compute_discount(5000, Decimal("0")) == 0
    assert compute_discount(5000, Decimal("100")) == 5000


def test_resolve_requires_code(store):
    with pytest.raises(ValidationFailed) as exc:
        resolve_referral_code(store, "   ")
    assert exc.value.code == "REFERRAL_CODE_REQUIRED"


def test_resolve_unknown_code(store):
    with pytest.raises(NotFound):
        resolve_referral_code(store, "NOPE")


def test_resolve_is_case_insensitive(store):
    partner = make_partner(store, referral_code="ASHA10")
    assert resolve_referral_code(store, "asha10").id == partner.id


def test_generate_code_avoids_taken_codes(store, monkeypatch):
    make_partner(store, referral_code="ASHAAAA")
    choices = iter("AAA" "BBB")
    monkeypatch.setattr("app.referrals.codes.secrets.choice", lambda alphabet: next(choices))

    assert generate_referral_code(store, "Asha") == "ASHABBB"


def test_generate_code_falls_back_when_prefix_crowded(store, monkeypatch):
    make_partner(store, referral_code="REFAAA")
    monkeypatch.setattr("app.referrals.codes.secrets.choice", lambda alphabet: "A")

    code = generate_referral_code(store, "!!!")
    assert code.startswith("REF")
    assert code != "REFAAA"
    assert len(code) == len("REF") + 6
