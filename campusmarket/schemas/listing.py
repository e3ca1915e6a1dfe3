from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field


class ListingCreate(BaseModel):
    title: str = Field(min_length=3, max_length=200)
    description: str = Field(default="", max_length=5000)
    price: Decimal
    category_id: str = Field(min_length=1)


class ListingOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    seller_id: str
    category_id: str
    title: str
    description: str
    price: Decimal
    status: str
    created_at: datetime | None = None
    updated_at: datetime | None = None


class CommissionQuoteOut(BaseModel):
    listing_id: str
    price: Decimal
    rate: Decimal
    amount: Decimal
    status: str


class CommissionPaymentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    listing_id: str
    amount: Decimal
    rate: Decimal
    status: str
    provider_reference: str | None
    created_at: datetime | None = None


class CommissionReceiptOut(BaseModel):
    listing: ListingOut
    payment: CommissionPaymentOut


class RejectIn(BaseModel):
    reason: str | None = Field(default=None, max_length=1000)


class SellerStatsOut(BaseModel):
    listings_by_status: dict[str, int]
    total_sales: int
    total_earnings: Decimal


class FavoriteToggleOut(BaseModel):
    listing_id: str
    favorited: bool
