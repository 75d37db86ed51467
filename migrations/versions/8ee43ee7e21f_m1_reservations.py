"""m1 reservations and opening hours

Revision ID: 8ee43ee7e21f
Revises: 
Create Date: 2025-11-05 10:41:37.107128

"""
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op


# revision identifiers, used by Alembic.
revision: str = '8ee43ee7e21f'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "opening_hours",
        sa.Column("id", sa.String(length=32), primary_key=True),
        sa.Column("document", sa.Text(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )

    op.create_table(
        "reservation",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("user_id", sa.String(length=128), nullable=False),
        sa.Column("date", sa.String(length=10), nullable=False),
        sa.Column("time", sa.String(length=5), nullable=False),
        sa.Column("area", sa.String(length=16), nullable=False),
        sa.Column("people", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="pending"),
        sa.Column("enc", sa.Text(), nullable=False),
        sa.Column("email_hash", sa.String(length=64), nullable=False),
        sa.Column("date_index", sa.String(length=10), nullable=False),
        sa.Column("ip_hash", sa.String(length=64), nullable=True),
        sa.Column("ua_hash", sa.String(length=64), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("people BETWEEN 1 AND 100", name="ck_reservation_people"),
        sa.CheckConstraint(
            "status IN ('pending', 'accepted', 'rejected', 'completed', 'cancelled')",
            name="ck_reservation_status",
        ),
    )
    op.create_index("ix_reservation_slot_status", "reservation", ["date", "area", "time", "status"])
    op.create_index("ix_reservation_email_hash", "reservation", ["email_hash"])
    op.create_index("ix_reservation_date_index", "reservation", ["date_index"])
    op.create_index("ix_reservation_user_id", "reservation", ["user_id"])


def downgrade() -> None:
    op.drop_index("ix_reservation_user_id", table_name="reservation")
    op.drop_index("ix_reservation_date_index", table_name="reservation")
    op.drop_index("ix_reservation_email_hash", table_name="reservation")
    op.drop_index("ix_reservation_slot_status", table_name="reservation")
    op.drop_table("reservation")
    op.drop_table("opening_hours")
