import enum
from datetime import datetime
from decimal import Decimal

from sqlalchemy import CheckConstraint, ForeignKey, Index, Numeric, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.types import DateTime

from campusmarket.core.ids import gen_id

from campusmarket.models.base import Base, AuditMixin


class EscrowStatus(str, enum.Enum):
    HOLDING = "HOLDING"    # platform holds the buyer's money
    RELEASED = "RELEASED"  # paid out to the seller
    REFUNDED = "REFUNDED"  # returned to the buyer
    DISPUTED = "DISPUTED"  # frozen until an admin releases or refunds


_STATUS_VALUES = ", ".join(f"'{s.value}'" for s in EscrowStatus)


class EscrowTransaction(AuditMixin, Base):
    __tablename__ = "escrow_transactions"
    __mapper_args__ = {"eager_defaults": True}
    __table_args__ = (
        CheckConstraint(f"status IN ({_STATUS_VALUES})", name="ck_escrow_status"),
        CheckConstraint("amount > 0", name="ck_escrow_amount_positive"),
        # at most one open escrow per listing
        Index(
            "uq_escrow_holding_per_listing",
            "listing_id",
            unique=True,
            postgresql_where=text("status = 'HOLDING'"),
            sqlite_where=text("status = 'HOLDING'"),
        ),
        Index("ix_escrow_status_created_at", "status", "created_at"),
    )

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: gen_id("esc"))

    listing_id: Mapped[str] = mapped_column(String, ForeignKey("listings.id"), nullable=False, index=True)
    seller_id: Mapped[str] = mapped_column(String(120), nullable=False, index=True)

    # snapshot of the listing price when the escrow was opened
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    buyer_id: Mapped[str | None] = mapped_column(String(120), nullable=True, index=True)
    buyer_name: Mapped[str] = mapped_column(String(200), nullable=False)
    buyer_phone: Mapped[str] = mapped_column(String(40), nullable=False)
    buyer_email: Mapped[str | None] = mapped_column(String(320), nullable=True)

    status: Mapped[str] = mapped_column(String(20), nullable=False, default=EscrowStatus.HOLDING.value)

    disputed_by: Mapped[str | None] = mapped_column(String(120), nullable=True)
    resolution_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    released_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
