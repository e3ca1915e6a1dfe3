from datetime import datetime
from decimal import Decimal

from sqlalchemy import CheckConstraint, ForeignKey, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func
from sqlalchemy.types import DateTime

from campusmarket.core.ids import gen_id

from campusmarket.models.base import Base


class CommissionPayment(Base):
    __tablename__ = "commission_payments"
    __mapper_args__ = {"eager_defaults": True}
    __table_args__ = (
        # only settled charges are recorded; a failed charge rolls the row back
        CheckConstraint("status IN ('SUCCEEDED')", name="ck_commission_payments_status"),
    )

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: gen_id("cmp"))

    # one payment per listing; the unique constraint is the last line of defence against a double charge
    listing_id: Mapped[str] = mapped_column(String, ForeignKey("listings.id"), nullable=False, unique=True)
    seller_id: Mapped[str] = mapped_column(String(120), nullable=False, index=True)

    # computed once at payment time, never re-derived from the listing
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    rate: Mapped[Decimal] = mapped_column(Numeric(6, 4), nullable=False)

    status: Mapped[str] = mapped_column(String(30), nullable=False, default="SUCCEEDED")
    provider_reference: Mapped[str | None] = mapped_column(String(200), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
