from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from typing import Annotated, Any, Literal, Optional, Union
from uuid import UUID

from pydantic import BaseModel, Field


PENDING = "pending"
PROCESSING = "processing"
COMPLETED = "completed"
REJECTED = "rejected"

OPEN_STATUSES = (PENDING, PROCESSING)


@dataclass(frozen=True)
class PayoutRequest:
    id: UUID
    partner_id: UUID
    amount_cents: int
    creator_name: str
    referral_code: str
    real_name: str
    method: str
    requested_at: datetime
    details: dict[str, Any] = field(default_factory=dict)
    status: str = PENDING
    transaction_reference: str = ""
    rejection_reason: str = ""
    processed_by: Optional[str] = None
    processed_at: Optional[datetime] = None


@dataclass(frozen=True)
class PayoutRecord:
    """Immutable history row written whenever ledger money actually leaves."""

    id: UUID
    partner_id: UUID
    amount_cents: int
    creator_name: str
    referral_code: str
    processed_by: str
    created_at: datetime
    method: Optional[str] = None
    transaction_reference: Optional[str] = None
    payout_request_id: Optional[UUID] = None
    note: str = ""


# -------- payout method details (tagged by method) --------

class BankDetails(BaseModel):
    method: Literal["bank"] = "bank"
    account_number: str = Field(min_length=4, max_length=34)
    ifsc_code: str = Field(min_length=4, max_length=20)
    account_holder_name: str = Field(min_length=1, max_length=120)


class UpiDetails(BaseModel):
    method: Literal["upi"] = "upi"
    upi_id: str = Field(min_length=3, max_length=100, pattern=r"^[^@\s]+@[^@\s]+$")


class QrDetails(BaseModel):
    method: Literal["qr"] = "qr"
    qr_image_url: str = Field(min_length=8, max_length=500, pattern=r"^https?://")
    note: str = ""


PayoutDetails = Annotated[Union[BankDetails, UpiDetails, QrDetails], Field(discriminator="method")]
