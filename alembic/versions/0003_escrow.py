from alembic import op
import sqlalchemy as sa

revision = "0003_escrow"
down_revision = "0002_listings_commission"
branch_labels = None
depends_on = None

def upgrade():
    op.create_table(
        "escrow_transactions",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("listing_id", sa.String(), sa.ForeignKey("listings.id"), nullable=False),
        sa.Column("seller_id", sa.String(length=120), nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("buyer_id", sa.String(length=120), nullable=True),
        sa.Column("buyer_name", sa.String(length=200), nullable=False),
        sa.Column("buyer_phone", sa.String(length=40), nullable=False),
        sa.Column("buyer_email", sa.String(length=320), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="HOLDING"),
        sa.Column("disputed_by", sa.String(length=120), nullable=True),
        sa.Column("resolution_reason", sa.Text(), nullable=True),
        sa.Column("released_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.CheckConstraint(
            "status IN ('HOLDING', 'RELEASED', 'REFUNDED', 'DISPUTED')", name="ck_escrow_status"
        ),
        sa.CheckConstraint("amount > 0", name="ck_escrow_amount_positive"),
    )
    op.create_index("ix_escrow_transactions_listing_id", "escrow_transactions", ["listing_id"])
    op.create_index("ix_escrow_transactions_seller_id", "escrow_transactions", ["seller_id"])
    op.create_index("ix_escrow_transactions_buyer_id", "escrow_transactions", ["buyer_id"])
    op.create_index("ix_escrow_status_created_at", "escrow_transactions", ["status", "created_at"])

    # at most one HOLDING escrow per listing
    op.create_index(
        "uq_escrow_holding_per_listing",
        "escrow_transactions",
        ["listing_id"],
        unique=True,
        postgresql_where=sa.text("status = 'HOLDING'"),
    )

def downgrade():
    op.drop_index("uq_escrow_holding_per_listing", table_name="escrow_transactions")
    op.drop_index("ix_escrow_status_created_at", table_name="escrow_transactions")
    op.drop_index("ix_escrow_transactions_buyer_id", table_name="escrow_transactions")
    op.drop_index("ix_escrow_transactions_seller_id", table_name="escrow_transactions")
    op.drop_index("ix_escrow_transactions_listing_id", table_name="escrow_transactions")
    op.drop_table("escrow_transactions")
