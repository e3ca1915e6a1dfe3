import enum
from datetime import datetime
from decimal import Decimal

from sqlalchemy import CheckConstraint, ForeignKey, Index, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.types import DateTime

from campusmarket.core.ids import gen_id

from campusmarket.models.base import Base, AuditMixin


class ListingStatus(str, enum.Enum):
    PENDING_COMMISSION = "PENDING_COMMISSION"  # waiting for the seller's commission payment
    PENDING_REVIEW = "PENDING_REVIEW"          # commission paid, waiting for an admin
    ACTIVE = "ACTIVE"                          # approved and visible to buyers
    SOLD = "SOLD"
    REJECTED = "REJECTED"
    ARCHIVED = "ARCHIVED"                      # withdrawn by the seller


_STATUS_VALUES = ", ".join(f"'{s.value}'" for s in ListingStatus)


class Listing(AuditMixin, Base):
    __tablename__ = "listings"
    __mapper_args__ = {"eager_defaults": True}
    __table_args__ = (
        CheckConstraint(f"status IN ({_STATUS_VALUES})", name="ck_listings_status"),
        CheckConstraint("price > 0", name="ck_listings_price_positive"),
        Index("ix_listings_seller_status", "seller_id", "status"),
        Index("ix_listings_status_created_at", "status", "created_at"),
    )

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: gen_id("lst"))

    seller_id: Mapped[str] = mapped_column(String(120), nullable=False)
    category_id: Mapped[str] = mapped_column(String, ForeignKey("categories.id"), nullable=False)

    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")

    # fixed at creation; commission and escrow amounts are snapshotted from it
    price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    status: Mapped[str] = mapped_column(String(30), nullable=False, default=ListingStatus.PENDING_COMMISSION.value)

    # soft delete keeps ledger and escrow rows pointing at a real row
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
