from alembic import op
import sqlalchemy as sa

revision = "0002_listings_commission"
down_revision = "0001_foundations"
branch_labels = None
depends_on = None

LISTING_STATUSES = ("PENDING_COMMISSION", "PENDING_REVIEW", "ACTIVE", "SOLD", "REJECTED", "ARCHIVED")

def upgrade():
    op.create_table(
        "listings",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("seller_id", sa.String(length=120), nullable=False),
        sa.Column("category_id", sa.String(), sa.ForeignKey("categories.id"), nullable=False),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("price", sa.Numeric(12, 2), nullable=False),
        sa.Column("status", sa.String(length=30), nullable=False, server_default="PENDING_COMMISSION"),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.CheckConstraint(
            "status IN (" + ", ".join(f"'{s}'" for s in LISTING_STATUSES) + ")",
            name="ck_listings_status",
        ),
        sa.CheckConstraint("price > 0", name="ck_listings_price_positive"),
    )
    op.create_index("ix_listings_seller_status", "listings", ["seller_id", "status"])
    op.create_index("ix_listings_status_created_at", "listings", ["status", "created_at"])

    op.create_table(
        "commission_payments",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("listing_id", sa.String(), sa.ForeignKey("listings.id"), nullable=False, unique=True),
        sa.Column("seller_id", sa.String(length=120), nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("rate", sa.Numeric(6, 4), nullable=False),
        sa.Column("status", sa.String(length=30), nullable=False, server_default="SUCCEEDED"),
        sa.Column("provider_reference", sa.String(length=200), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.CheckConstraint("status IN ('SUCCEEDED')", name="ck_commission_payments_status"),
    )
    op.create_index("ix_commission_payments_seller_id", "commission_payments", ["seller_id"])

def downgrade():
    op.drop_index("ix_commission_payments_seller_id", table_name="commission_payments")
    op.drop_table("commission_payments")

    op.drop_index("ix_listings_status_created_at", table_name="listings")
    op.drop_index("ix_listings_seller_status", table_name="listings")
    op.drop_table("listings")
