from datetime import datetime

from sqlalchemy import Boolean, String, Text
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func
from sqlalchemy.types import DateTime

from campusmarket.core.ids import gen_id

from campusmarket.models.base import Base


class ApiKey(Base):
    __tablename__ = "api_keys"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: gen_id("key"))

    # identity is issued upstream; we only map a key to (user, role)
    user_id: Mapped[str] = mapped_column(String(120), nullable=False, index=True)

    # Role: "SELLER" can list and buy; "ADMIN" moderates listings and settles escrow;
    # "SYSTEM" is the checkout integration that records sales.
    role: Mapped[str] = mapped_column(String(20), nullable=False)

    key_prefix: Mapped[str] = mapped_column(String(16), nullable=False, index=True)
    key_hash: Mapped[str] = mapped_column(Text, nullable=False, unique=True)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    rotated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
