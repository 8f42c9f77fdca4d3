"""create wine lot tokenization tables

Revision ID: 3f2a9c1d7e01
Revises:
Create Date: 2026-10-19 10:12:41.208311

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '3f2a9c1d7e01'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade():
    op.create_table(
        "wine_lots",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("issuer_public_key", sa.String(length=56), nullable=False),
        sa.Column("token_code", sa.String(length=12), nullable=False),
        sa.Column("winery_name", sa.String(length=256), nullable=False),
        sa.Column("region", sa.String(length=128), nullable=False),
        sa.Column("country", sa.String(length=128), nullable=False),
        sa.Column("appellation", sa.String(length=256), nullable=True),
        sa.Column("vineyard", sa.String(length=256), nullable=True),
        sa.Column("vintage", sa.Integer(), nullable=False),
        sa.Column("bottle_format_ml", sa.Integer(), nullable=False, server_default=sa.text("750")),
        sa.Column("bottle_count", sa.Integer(), nullable=False),
        sa.Column("price_per_bottle_usd", sa.Numeric(18, 6), nullable=False),
        sa.Column("platform_fee_bps", sa.Integer(), nullable=False, server_default=sa.text("1000")),
        sa.Column("sku", sa.String(length=128), nullable=True),
        sa.Column("custodial_partner", sa.String(length=256), nullable=True),
        sa.Column("storage_location", sa.String(length=256), nullable=True),
        sa.Column("insurance_policy", sa.String(length=256), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column(
            "documentation_urls",
            postgresql.JSONB,
            server_default=sa.text("'[]'::jsonb"),
            nullable=False,
        ),
        sa.Column(
            "token_metadata",
            postgresql.JSONB,
            server_default=sa.text("'{}'::jsonb"),
            nullable=False,
        ),
        sa.Column("distribution_public_key", sa.String(length=56), nullable=False),
        sa.Column("distribution_secret_encrypted", sa.Text(), nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False, server_default="created"),
        sa.Column("trustline_tx_hash", sa.String(length=64), nullable=True),
        sa.Column("emission_tx_hash", sa.String(length=64), nullable=True),
        sa.Column("emitted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("distribution_tx_hash", sa.String(length=64), nullable=True),
        sa.Column("distributed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.UniqueConstraint("issuer_public_key", "token_code", name="uq_wine_lots_issuer_token"),
        sa.CheckConstraint("platform_fee_bps >= 0 AND platform_fee_bps <= 10000", name="ck_wine_lots_fee_bps"),
        sa.CheckConstraint("bottle_count > 0", name="ck_wine_lots_bottle_count_positive"),
    )
    op.create_index("ix_wine_lots_status", "wine_lots", ["status"])

    op.create_table(
        "wine_token_issuances",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column(
            "wine_lot_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("wine_lots.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("seq", sa.Integer(), nullable=False),
        sa.Column("total_supply", sa.String(length=32), nullable=False),
        sa.Column("price_per_unit_usd", sa.Numeric(18, 7), nullable=False),
        sa.Column("reserve_ratio_bps", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("emission_xdr", sa.Text(), nullable=False),
        sa.Column("emission_tx_hash", sa.String(length=64), nullable=True),
        sa.Column("issued_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("superseded_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.UniqueConstraint("wine_lot_id", "seq", name="uq_issuance_lot_seq"),
        sa.CheckConstraint(
            "reserve_ratio_bps >= 0 AND reserve_ratio_bps <= 10000",
            name="ck_issuance_reserve_bps",
        ),
    )
    op.create_index("ix_issuance_lot", "wine_token_issuances", ["wine_lot_id"])

    op.create_table(
        "wine_distributions",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column(
            "wine_lot_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("wine_lots.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("platform_amount", sa.String(length=32), nullable=False),
        sa.Column("winery_amount", sa.String(length=32), nullable=False),
        sa.Column("reserve_amount", sa.String(length=32), nullable=False),
        sa.Column("distribution_tx_hash", sa.String(length=64), nullable=False),
        sa.Column("distribution_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    )
    op.create_index("ix_distribution_lot", "wine_distributions", ["wine_lot_id"])
    op.create_index("ix_distribution_at", "wine_distributions", ["distribution_at"])

    op.create_table(
        "lot_audit_logs",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("wine_lot_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("action", sa.String(length=64), nullable=False),
        sa.Column("from_status", sa.String(length=32), nullable=True),
        sa.Column("to_status", sa.String(length=32), nullable=True),
        sa.Column("request_id", sa.String(length=128), nullable=True),
        sa.Column(
            "details_json",
            postgresql.JSONB,
            server_default=sa.text("'{}'::jsonb"),
            nullable=False,
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    )
    op.create_index("ix_lot_audit_lot", "lot_audit_logs", ["wine_lot_id"])
    op.create_index("ix_lot_audit_created_at", "lot_audit_logs", ["created_at"])


def downgrade():
    op.drop_index("ix_lot_audit_created_at", table_name="lot_audit_logs")
    op.drop_index("ix_lot_audit_lot", table_name="lot_audit_logs")
    op.drop_table("lot_audit_logs")

    op.drop_index("ix_distribution_at", table_name="wine_distributions")
    op.drop_index("ix_distribution_lot", table_name="wine_distributions")
    op.drop_table("wine_distributions")

    op.drop_index("ix_issuance_lot", table_name="wine_token_issuances")
    op.drop_table("wine_token_issuances")

    op.drop_index("ix_wine_lots_status", table_name="wine_lots")
    op.drop_table("wine_lots")
