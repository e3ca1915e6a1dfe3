from sqlalchemy import ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column

from campusmarket.core.ids import gen_id

from campusmarket.models.base import Base


class Category(Base):
    __tablename__ = "categories"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: gen_id("cat"))
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    slug: Mapped[str] = mapped_column(String(120), nullable=False, unique=True)

    # top-level categories ("Clothes", "Electronics") have no parent
    parent_id: Mapped[str | None] = mapped_column(String, ForeignKey("categories.id"), nullable=True)
