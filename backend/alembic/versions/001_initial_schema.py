"""Initial schema: catalog, reservations, line items and payment records.

Revision ID: 001
Revises: None
Create Date: 2026-10-18
"""
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

CATEGORIES = (
    "Multimedia", "Musical", "Luxury", "Entertainment", "Meeting",
    "BeautyDecor", "Adventure", "PartyPalace", "CateringTent",
)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    ]


def _enum(name: str, *values: str, length: int = 20) -> sa.Enum:
    return sa.Enum(*values, name=name, native_enum=False, length=length)


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("firstname", sa.String(100), nullable=False),
        sa.Column("lastname", sa.String(100), nullable=False),
        sa.Column("phone_number", sa.String(20), nullable=True),
        sa.Column("role", _enum("role", "ADMIN", "USER"), nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_users_id", "users", ["id"])
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "resources",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("address", sa.String(255), nullable=True),
        sa.Column("location", sa.String(255), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
    )
    op.create_index("ix_resources_id", "resources", ["id"])

    op.create_table(
        "event_types",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("title", sa.String(150), nullable=False, unique=True),
        *_timestamps(),
    )
    op.create_index("ix_event_types_id", "event_types", ["id"])

    op.create_table(
        "service_line_items",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("resource_id", sa.Integer(), sa.ForeignKey("resources.id", ondelete="CASCADE"), nullable=False),
        sa.Column("category", _enum("servicecategory", *CATEGORIES, length=30), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("price", sa.Numeric(12, 2), nullable=False),
        sa.Column("offer_price", sa.Numeric(12, 2), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("resource_id", "category", "name", name="uq_service_item_resource_category_name"),
        sa.CheckConstraint("price >= 0", name="check_service_item_price_non_negative"),
    )
    op.create_index("ix_service_line_items_id", "service_line_items", ["id"])
    op.create_index("ix_service_items_resource_category", "service_line_items", ["resource_id", "category"])

    op.create_table(
        "reservations",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("resource_id", sa.Integer(), sa.ForeignKey("resources.id"), nullable=False),
        sa.Column("event_type_id", sa.Integer(), sa.ForeignKey("event_types.id"), nullable=False),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=False),
        sa.Column("start_time", sa.Time(), nullable=True),
        sa.Column("end_time", sa.Time(), nullable=True),
        sa.Column("total_price", sa.Numeric(12, 2), nullable=False),
        sa.Column("approval_status", _enum("approvalstatus", "PENDING", "APPROVED", "REJECTED"), nullable=False),
        sa.Column("payment_status", _enum("paymentstatus", "UNPAID", "PAID"), nullable=False),
        *_timestamps(),
        sa.CheckConstraint("end_date >= start_date", name="check_reservation_date_order"),
        sa.CheckConstraint("total_price >= 0", name="check_reservation_total_non_negative"),
    )
    op.create_index("ix_reservations_id", "reservations", ["id"])
    op.create_index("ix_reservations_user_id", "reservations", ["user_id"])
    # Overlap checks filter on resource then date range
    op.create_index("ix_reservations_resource_dates", "reservations", ["resource_id", "start_date", "end_date"])
    op.create_index("ix_reservations_start_date", "reservations", ["start_date"])

    op.create_table(
        "reservation_line_items",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "reservation_id", sa.Integer(),
            sa.ForeignKey("reservations.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column(
            "service_item_id", sa.Integer(),
            sa.ForeignKey("service_line_items.id", ondelete="RESTRICT"), nullable=False,
        ),
        sa.Column("category", _enum("servicecategory", *CATEGORIES, length=30), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("price", sa.Numeric(12, 2), nullable=False),
        sa.Column("offer_price", sa.Numeric(12, 2), nullable=True),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.CheckConstraint("amount >= 0", name="check_line_item_amount_non_negative"),
    )
    op.create_index("ix_reservation_line_items_reservation_id", "reservation_line_items", ["reservation_id"])

    op.create_table(
        "payment_records",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "reservation_id", sa.Integer(),
            sa.ForeignKey("reservations.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("provider", _enum("paymentprovider", "KHALTI", "STRIPE"), nullable=False),
        sa.Column("status", _enum("paymentrecordstatus", "PENDING", "COMPLETED"), nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("provider_reference", sa.String(255), nullable=False),
        sa.Column("transaction_id", sa.String(255), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("provider", "provider_reference", name="uq_payment_provider_reference"),
    )
    op.create_index("ix_payment_records_id", "payment_records", ["id"])
    op.create_index("ix_payment_records_reservation_id", "payment_records", ["reservation_id"])


def downgrade() -> None:
    op.drop_table("payment_records")
    op.drop_table("reservation_line_items")
    op.drop_table("reservations")
    op.drop_table("service_line_items")
    op.drop_table("event_types")
    op.drop_table("resources")
    op.drop_table("users")
