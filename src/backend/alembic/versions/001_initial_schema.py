"""Initial schema for RoomComfort

Revision ID: 001
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Create roles table
    op.create_table(
        "roles",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(50), unique=True, nullable=False, index=True),
        sa.Column("description", sa.String(255), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )

    # Create users table
    op.create_table(
        "users",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("username", sa.String(50), unique=True, nullable=False, index=True),
        sa.Column("email", sa.String(100), nullable=False),
        sa.Column("hashed_password", sa.String(255), nullable=False),
        sa.Column("role_id", sa.Integer, sa.ForeignKey("roles.id"), nullable=False, index=True),
        sa.Column("is_active", sa.Boolean, default=True, nullable=False),
        sa.Column("version", sa.Integer, nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )

    # Create ownerships table (one owner per chip)
    op.create_table(
        "ownerships",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("chip_id", sa.String(64), unique=True, nullable=False, index=True),
        sa.Column(
            "user_id",
            sa.Integer,
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
        sa.Column("room_name", sa.String(100), nullable=False),
        sa.Column("image_name", sa.String(200), nullable=False),
        sa.Column("version", sa.Integer, nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )

    # Create thresholds table
    op.create_table(
        "thresholds",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(100), unique=True, nullable=False, index=True),
        sa.Column("low_value", sa.Float, nullable=True),
        sa.Column("high_value", sa.Float, nullable=True),
        sa.Column("low_message", sa.Text, nullable=True),
        sa.Column("high_message", sa.Text, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )

    # Create threshold_adjustments table
    op.create_table(
        "threshold_adjustments",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Integer, sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column(
            "ownership_id",
            sa.Integer,
            sa.ForeignKey("ownerships.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
        sa.Column(
            "threshold_id",
            sa.Integer,
            sa.ForeignKey("thresholds.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
        sa.Column("low_delta", sa.Float, nullable=False, server_default="0"),
        sa.Column("high_delta", sa.Float, nullable=False, server_default="0"),
        sa.Column("version", sa.Integer, nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint(
            "user_id", "ownership_id", "threshold_id",
            name="uq_threshold_adjustments_scope",
        ),
    )

    # Create readings table
    op.create_table(
        "readings",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("chip_id", sa.String(64), nullable=False, index=True),
        sa.Column("temperature_dht", sa.Float, nullable=True),
        sa.Column("humidity_dht", sa.Float, nullable=True),
        sa.Column("temperature_bme", sa.Float, nullable=True),
        sa.Column("humidity_bme", sa.Float, nullable=True),
        sa.Column("pressure", sa.Float, nullable=True),
        sa.Column("altitude", sa.Float, nullable=True),
        sa.Column("gas_detected", sa.Boolean, nullable=True),
        sa.Column("light", sa.Boolean, nullable=True),
        sa.Column("mq2_analog", sa.Integer, nullable=True),
        sa.Column("mq2_analog_percent", sa.Float, nullable=True),
        sa.Column("light_analog", sa.Integer, nullable=True),
        sa.Column("light_analog_percent", sa.Float, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_readings_chip_id_created_at", "readings", ["chip_id", "created_at"])

    # Create recommendations table (at most one per reading)
    op.create_table(
        "recommendations",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "reading_id",
            sa.Integer,
            sa.ForeignKey("readings.id", ondelete="CASCADE"),
            unique=True,
            nullable=False,
        ),
        sa.Column(
            "ownership_id",
            sa.Integer,
            sa.ForeignKey("ownerships.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
        sa.Column("text", sa.Text, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, index=True),
    )


def downgrade() -> None:
    op.drop_table("recommendations")
    op.drop_index("ix_readings_chip_id_created_at", table_name="readings")
    op.drop_table("readings")
    op.drop_table("threshold_adjustments")
    op.drop_table("thresholds")
    op.drop_table("ownerships")
    op.drop_table("users")
    op.drop_table("roles")
