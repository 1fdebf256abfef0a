"""Initial schema for tracked tokens and launch signals.

Revision ID: 001_initial
Revises:
Create Date: 2026-10-19 00:00:00.000000+00:00
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Tracked tokens, one row per launched token
    op.create_table(
        "tracked_tokens",
        sa.Column("address", sa.String(42), nullable=False),
        sa.Column("name", sa.String(256), nullable=True),
        sa.Column("symbol", sa.String(64), nullable=True),
        sa.Column("decimals", sa.Integer(), nullable=True),
        sa.Column("total_supply", sa.String(80), nullable=False),
        sa.Column("creator", sa.String(42), nullable=False),
        sa.Column("creation_block", sa.BigInteger(), nullable=False),
        sa.Column("creation_tx_hash", sa.String(66), nullable=False),
        sa.Column("mint_recipient", sa.String(42), nullable=True),
        sa.Column("mint_log", sa.JSON(), nullable=True),
        sa.Column("allocation_log", sa.JSON(), nullable=True),
        sa.Column("issuer_residual_holding", sa.String(80), nullable=False),
        sa.Column("allocation_found", sa.Boolean(), nullable=False),
        sa.Column("buy_count", sa.Integer(), nullable=False),
        sa.Column("sell_count", sa.Integer(), nullable=False),
        sa.Column("unique_buyers", sa.JSON(), nullable=False),
        sa.Column("unique_sellers", sa.JSON(), nullable=False),
        sa.Column("total_buy_volume", sa.String(80), nullable=False),
        sa.Column("total_sell_volume", sa.String(80), nullable=False),
        sa.Column("trades", sa.JSON(), nullable=False),
        sa.Column("wallet_transfers", sa.JSON(), nullable=False),
        sa.Column("cross_platform_trades", sa.JSON(), nullable=False),
        sa.Column("data_errors", sa.JSON(), nullable=False),
        sa.Column("risk_score", sa.Integer(), nullable=False),
        sa.Column("risk_level", sa.String(16), nullable=False),
        sa.Column("risk_flags", sa.JSON(), nullable=False),
        sa.Column("detected_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("address"),
    )
    op.create_index("idx_tracked_tokens_creator", "tracked_tokens", ["creator"])
    op.create_index("idx_tracked_tokens_creation_block", "tracked_tokens", ["creation_block"])
    op.create_index("idx_tracked_tokens_risk_score", "tracked_tokens", ["risk_score"])

    # Early-activity snapshots
    op.create_table(
        "launch_signals",
        sa.Column("token_address", sa.String(42), nullable=False),
        sa.Column("creation_block", sa.BigInteger(), nullable=False),
        sa.Column("analyzed_block", sa.BigInteger(), nullable=False),
        sa.Column("trade_count", sa.Integer(), nullable=False),
        sa.Column("blocks_with_activity", sa.Integer(), nullable=False),
        sa.Column("unique_traders", sa.Integer(), nullable=False),
        sa.Column("buy_count", sa.Integer(), nullable=False),
        sa.Column("sell_count", sa.Integer(), nullable=False),
        sa.Column("total_buy_volume", sa.String(80), nullable=False),
        sa.Column("total_sell_volume", sa.String(80), nullable=False),
        sa.Column("qualified_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("token_address"),
    )
    op.create_index("idx_launch_signals_qualified_at", "launch_signals", ["qualified_at"])


def downgrade() -> None:
    op.drop_index("idx_launch_signals_qualified_at", table_name="launch_signals")
    op.drop_table("launch_signals")

    op.drop_index("idx_tracked_tokens_risk_score", table_name="tracked_tokens")
    op.drop_index("idx_tracked_tokens_creation_block", table_name="tracked_tokens")
    op.drop_index("idx_tracked_tokens_creator", table_name="tracked_tokens")
    op.drop_table("tracked_tokens")
