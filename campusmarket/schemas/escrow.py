from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field


class EscrowOpen(BaseModel):
    buyer_name: str = Field(min_length=2, max_length=200)
    buyer_phone: str = Field(min_length=10, max_length=40)
    buyer_email: str | None = Field(default=None, max_length=320)
    # marketplace account of the buyer, when they have one
    buyer_id: str | None = Field(default=None, max_length=120)


class EscrowReason(BaseModel):
    reason: str | None = Field(default=None, max_length=1000)


class EscrowOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    listing_id: str
    seller_id: str
    amount: Decimal
    buyer_id: str | None
    buyer_name: str
    buyer_phone: str
    buyer_email: str | None
    status: str
    disputed_by: str | None
    resolution_reason: str | None
    created_at: datetime | None = None
    released_at: datetime | None = None
