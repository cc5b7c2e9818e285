"""Initial schema - properties with ledger mirror columns, appointments.

Revision ID: 001_initial
Revises: None
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID

revision: str = "001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "properties",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("description", sa.Text, nullable=False),
        sa.Column("location", sa.String(300), nullable=False),
        sa.Column("type", sa.String(20), nullable=False),
        sa.Column("purpose", sa.String(20), nullable=False),
        sa.Column("price", sa.Numeric(24, 4), nullable=False),
        sa.Column("appointment_fee", sa.Numeric(24, 4), nullable=False, server_default="0"),
        sa.Column("size", sa.JSON, nullable=False),
        sa.Column("images", sa.JSON, nullable=False),
        sa.Column("videos", sa.JSON, nullable=False),
        sa.Column("tags", sa.JSON, nullable=False),
        sa.Column("amenities", sa.JSON, nullable=False),
        sa.Column("agent", sa.JSON, nullable=False),
        sa.Column("additional_details", sa.JSON, nullable=True),
        sa.Column("is_featured", sa.Boolean, nullable=False, server_default="false"),
        sa.Column("date_posted", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("views", sa.Integer, nullable=False, server_default="0"),
        sa.Column("favorites", sa.Integer, nullable=False, server_default="0"),
        sa.Column("rating", sa.Float, nullable=True),
        sa.Column("review_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("region", sa.String(100), nullable=False),
        sa.Column("district", sa.String(100), nullable=False, server_default=""),
        sa.Column("area", sa.String(100), nullable=False, server_default=""),
        sa.Column("token_id", sa.String(80), nullable=True),
        sa.Column("mint_tx_ref", sa.String(80), nullable=True),
        sa.Column("on_chain", sa.Boolean, nullable=False, server_default="false"),
        sa.Column("verified", sa.Boolean, nullable=False, server_default="false"),
        sa.Column("verification_tx_ref", sa.String(80), nullable=True),
        sa.Column("verified_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("owner_wallet_address", sa.String(80), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("NOT verified OR on_chain", name="ck_properties_verified_on_chain"),
    )
    op.create_index("ix_properties_location", "properties", ["location"])
    op.create_index("ix_properties_region", "properties", ["region"])
    op.create_index("ix_properties_token_id", "properties", ["token_id"], unique=True)
    op.create_index("ix_properties_on_chain", "properties", ["on_chain"])
    op.create_index("ix_properties_verified", "properties", ["verified"])

    op.create_table(
        "appointments",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "property_id", UUID(as_uuid=True),
            sa.ForeignKey("properties.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("email", sa.String(200), nullable=False),
        sa.Column("phone", sa.String(50), nullable=False),
        sa.Column("appointment_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("duration", sa.String(50), nullable=True),
        sa.Column("purpose", sa.String(200), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_appointments_property_id", "appointments", ["property_id"])


def downgrade() -> None:
    op.drop_index("ix_appointments_property_id", table_name="appointments")
    op.drop_table("appointments")
    op.drop_index("ix_properties_verified", table_name="properties")
    op.drop_index("ix_properties_on_chain", table_name="properties")
    op.drop_index("ix_properties_token_id", table_name="properties")
    op.drop_index("ix_properties_region", table_name="properties")
    op.drop_index("ix_properties_location", table_name="properties")
    op.drop_table("properties")
