"""billing core tables

Revision ID: 0001_billing_core
Revises:
Create Date: 2026-10-19T09:00:00Z
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "0001_billing_core"
down_revision = None
branch_labels = None
depends_on = None


def _id():
    return sa.Column("id", sa.String(length=36), primary_key=True)


def _created():
    return sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now())


def _updated():
    return sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now())


def _money(name, nullable=False):
    if nullable:
        return sa.Column(name, sa.Numeric(18, 2), nullable=True)
    return sa.Column(name, sa.Numeric(18, 2), nullable=False, server_default="0")


def _count(name):
    return sa.Column(name, sa.Integer(), nullable=False, server_default="0")


def upgrade():
    # ---- reference data owned by the surrounding application ----
    op.create_table(
        "auth_user",
        _id(),
        _created(),
        sa.Column("email", sa.String(length=256), nullable=False),
        sa.Column("full_name", sa.String(length=256), nullable=False, server_default=""),
        sa.Column("phone", sa.String(length=32), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("is_staff", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("staff_role", sa.String(length=64), nullable=True),
        sa.Column("roles", sa.JSON(), nullable=False),
    )
    op.create_index("ix_auth_user_email", "auth_user", ["email"], unique=True)
    op.create_index("ix_auth_user_full_name", "auth_user", ["full_name"])

    op.create_table(
        "hotel_info",
        _id(),
        _created(),
        _updated(),
        sa.Column("name", sa.String(length=256), nullable=False),
        sa.Column("gst_number", sa.String(length=32), nullable=True),
        sa.Column("address", sa.Text(), nullable=True),
        sa.Column("logo_url", sa.String(length=512), nullable=True),
        sa.Column("primary_phone", sa.String(length=32), nullable=True),
        sa.Column("primary_email", sa.String(length=256), nullable=True),
        sa.Column("invoice_prefix", sa.String(length=8), nullable=True),
        sa.Column("gst_percentage", sa.Numeric(5, 2), nullable=False, server_default="18"),
        sa.Column("service_tax_percentage", sa.Numeric(5, 2), nullable=False, server_default="0"),
        sa.Column("other_taxes", sa.JSON(), nullable=False),
        sa.Column("tax_enabled", sa.Boolean(), nullable=False, server_default=sa.true()),
    )

    op.create_table(
        "room_type",
        _id(),
        _created(),
        sa.Column("name", sa.String(length=128), nullable=False, unique=True),
        sa.Column("price", sa.Numeric(18, 2), nullable=False),
        sa.Column("max_occupancy", sa.Integer(), nullable=False, server_default="2"),
    )

    op.create_table(
        "room",
        _id(),
        _created(),
        sa.Column("room_number", sa.String(length=16), nullable=False, unique=True),
        sa.Column("room_type_id", sa.String(length=36), sa.ForeignKey("room_type.id"), nullable=False),
        sa.Column("available_for_booking", sa.Boolean(), nullable=False, server_default=sa.true()),
    )
    op.create_index("ix_room_room_type_id", "room", ["room_type_id"])

    op.create_table(
        "hotel_service",
        _id(),
        _created(),
        sa.Column("name", sa.String(length=128), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("category", sa.String(length=32), nullable=False),
        _money("price"),
        sa.Column("taxable", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
    )
    op.create_index("ix_hotel_service_category", "hotel_service", ["category"])

    # ---- bookings and bills ----
    op.create_table(
        "booking",
        _id(),
        _created(),
        _updated(),
        sa.Column("guest_name", sa.String(length=256), nullable=False),
        sa.Column("guest_email", sa.String(length=256), nullable=True),
        sa.Column("guest_phone", sa.String(length=32), nullable=True),
        sa.Column("room_id", sa.String(length=36), sa.ForeignKey("room.id"), nullable=False),
        sa.Column("check_in", sa.Date(), nullable=False),
        sa.Column("check_out", sa.Date(), nullable=False),
        sa.Column("nights", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("adults", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("children", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("source", sa.String(length=24), nullable=False, server_default="website"),
        sa.Column("status", sa.String(length=24), nullable=False, server_default="confirmed"),
        sa.Column("payment_status", sa.String(length=24), nullable=False, server_default="pending"),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
        _money("room_base_amount", nullable=True),
        _money("room_discount_amount"),
        _money("base_amount"),
        _money("discount_amount"),
        _money("gst_amount"),
        _money("service_tax_amount"),
        _money("other_tax_amount"),
        _money("total_tax_amount"),
        _money("total_amount"),
        _money("recognized_revenue", nullable=True),
        sa.Column("recognized_breakdown", sa.JSON(), nullable=True),
        _money("recognized_adjustment", nullable=True),
        sa.Column("recognized_guest_user_id", sa.String(length=36), nullable=True),
    )
    op.create_index("ix_booking_guest_email", "booking", ["guest_email"])
    op.create_index("ix_booking_room_id", "booking", ["room_id"])
    op.create_index("ix_booking_check_in", "booking", ["check_in"])
    op.create_index("ix_booking_check_out", "booking", ["check_out"])
    op.create_index("ix_booking_payment_status", "booking", ["payment_status"])
    op.create_index("ix_booking_status_checkin", "booking", ["payment_status", "check_in"])

    op.create_table(
        "bill_item",
        _id(),
        _created(),
        _updated(),
        sa.Column("booking_id", sa.String(length=36), sa.ForeignKey("booking.id"), nullable=False),
        sa.Column("service_id", sa.String(length=36), sa.ForeignKey("hotel_service.id"), nullable=True),
        sa.Column("item_name", sa.String(length=256), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("quantity", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("unit_price", sa.Numeric(18, 2), nullable=False),
        _money("discount"),
        sa.Column("gst_applicable", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("gst_percentage", sa.Numeric(5, 2), nullable=True),
        _money("total_price"),
        sa.Column("tax_rate", sa.Numeric(6, 2), nullable=False, server_default="0"),
        _money("tax_amount"),
        _money("final_amount"),
        sa.Column("added_by", sa.String(length=128), nullable=True),
    )
    op.create_index("ix_bill_item_booking_id", "bill_item", ["booking_id"])
    op.create_index("ix_bill_item_service_id", "bill_item", ["service_id"])

    op.create_table(
        "payment",
        _id(),
        _created(),
        sa.Column("booking_id", sa.String(length=36), sa.ForeignKey("booking.id"), nullable=False),
        sa.Column("amount", sa.Numeric(18, 2), nullable=False),
        sa.Column("payment_method", sa.String(length=24), nullable=False),
        sa.Column("payment_reference", sa.String(length=128), nullable=True),
        sa.Column("transaction_id", sa.String(length=128), nullable=True),
        sa.Column("received_by", sa.String(length=128), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("payment_date", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_payment_booking_id", "payment", ["booking_id"])
    op.create_index("ix_payment_payment_date", "payment", ["payment_date"])

    op.create_table(
        "split_payment",
        _id(),
        _created(),
        sa.Column("booking_id", sa.String(length=36), sa.ForeignKey("booking.id"), nullable=False),
        sa.Column("amount", sa.Numeric(18, 2), nullable=False),
        sa.Column("payment_method", sa.String(length=24), nullable=False),
        sa.Column("description", sa.String(length=256), nullable=True),
        sa.Column("status", sa.String(length=24), nullable=False, server_default="pending"),
    )
    op.create_index("ix_split_payment_booking_id", "split_payment", ["booking_id"])

    # ---- ledger ----
    op.create_table(
        "ledger_account",
        _id(),
        _created(),
        _updated(),
        sa.Column("name", sa.String(length=256), nullable=False),
        sa.Column("account_type", sa.String(length=24), nullable=False, server_default="current"),
        _money("balance"),
        sa.Column("owner_user_id", sa.String(length=36), sa.ForeignKey("auth_user.id"), nullable=True),
        sa.Column("is_main_account", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("description", sa.Text(), nullable=True),
    )
    op.create_index("ix_ledger_account_owner_user_id", "ledger_account", ["owner_user_id"])
    op.create_index(
        "ux_ledger_account_single_main",
        "ledger_account",
        ["is_main_account"],
        unique=True,
        postgresql_where=sa.text("is_main_account AND is_active"),
        sqlite_where=sa.text("is_main_account = 1 AND is_active = 1"),
    )
    op.create_index(
        "ux_ledger_account_owner_active",
        "ledger_account",
        ["owner_user_id"],
        unique=True,
        postgresql_where=sa.text("owner_user_id IS NOT NULL AND is_active"),
        sqlite_where=sa.text("owner_user_id IS NOT NULL AND is_active = 1"),
    )

    op.create_table(
        "ledger_transaction",
        _id(),
        _created(),
        sa.Column("account_id", sa.String(length=36), sa.ForeignKey("ledger_account.id"), nullable=False),
        sa.Column("type", sa.String(length=8), nullable=False),
        sa.Column("category", sa.String(length=48), nullable=False),
        sa.Column("amount", sa.Numeric(18, 2), nullable=False),
        sa.Column("balance_after", sa.Numeric(18, 2), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("reference_id", sa.String(length=64), nullable=True),
        sa.Column("reference_type", sa.String(length=24), nullable=True),
        sa.Column("payment_method", sa.String(length=24), nullable=True),
        sa.Column("processed_by", sa.String(length=128), nullable=False, server_default="system"),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("transaction_date", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("is_modification", sa.Boolean(), nullable=False, server_default=sa.false()),
        _money("original_amount", nullable=True),
        sa.Column("modification_reason", sa.Text(), nullable=True),
    )
    op.create_index("ix_ledger_transaction_account_id", "ledger_transaction", ["account_id"])
    op.create_index("ix_ledger_transaction_category", "ledger_transaction", ["category"])
    op.create_index("ix_ledger_transaction_reference_id", "ledger_transaction", ["reference_id"])
    op.create_index("ix_ledger_transaction_transaction_date", "ledger_transaction", ["transaction_date"])
    op.create_index("ix_ledger_txn_account_time", "ledger_transaction", ["account_id", "transaction_date"])

    # ---- revenue reports ----
    op.create_table(
        "revenue_report",
        _id(),
        _created(),
        _updated(),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("period_type", sa.String(length=16), nullable=False),
        *[_money(f"{c}_revenue") for c in (
            "accommodation", "food_beverage", "spa", "transport", "laundry", "minibar", "conference", "other",
        )],
        _money("total_revenue"),
        *[_money(f"{m}_payments") for m in (
            "cash", "card", "upi", "bank_transfer", "online_gateway", "cheque", "wallet",
        )],
        *[_count(f"{s}_bookings") for s in (
            "website", "phone", "walk_in", "ota", "corporate", "agent", "referral",
        )],
        _count("total_bookings"),
        _money("tax_collected"),
        _money("outstanding_amount"),
        sa.Column("recomputed_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("date", "period_type", name="uq_revenue_report_period"),
    )
    op.create_index("ix_revenue_report_date", "revenue_report", ["date"])

    # ---- invoicing ----
    op.create_table(
        "invoice",
        _id(),
        _created(),
        _updated(),
        sa.Column("invoice_number", sa.String(length=32), nullable=False),
        sa.Column("booking_id", sa.String(length=36), sa.ForeignKey("booking.id"), nullable=False, unique=True),
        sa.Column("guest_name", sa.String(length=256), nullable=False),
        sa.Column("guest_email", sa.String(length=256), nullable=True),
        sa.Column("guest_phone", sa.String(length=32), nullable=True),
        sa.Column("guest_gst_number", sa.String(length=32), nullable=True),
        sa.Column("check_in", sa.Date(), nullable=False),
        sa.Column("check_out", sa.Date(), nullable=False),
        sa.Column("nights", sa.Integer(), nullable=False),
        sa.Column("adults", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("children", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("room_type_name", sa.String(length=128), nullable=True),
        sa.Column("room_number", sa.String(length=16), nullable=True),
        sa.Column("base_amount", sa.Numeric(18, 2), nullable=False),
        _money("discount_amount"),
        _money("gst_amount"),
        _money("service_tax_amount"),
        _money("other_tax_amount"),
        _money("total_tax_amount"),
        sa.Column("total_amount", sa.Numeric(18, 2), nullable=False),
        _money("cgst_amount"),
        _money("sgst_amount"),
        _money("igst_amount"),
        sa.Column("is_inter_state", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("status", sa.String(length=24), nullable=False, server_default="pending"),
        sa.Column("issued_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("due_date", sa.Date(), nullable=False),
        sa.Column("paid_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("terms", sa.Text(), nullable=True),
    )
    op.create_index("ix_invoice_invoice_number", "invoice", ["invoice_number"], unique=True)
    op.create_index("ix_invoice_status", "invoice", ["status"])
    op.create_index("ix_invoice_issued_date", "invoice", ["issued_date"])

    op.create_table(
        "invoice_item",
        _id(),
        _created(),
        sa.Column("invoice_id", sa.String(length=36), sa.ForeignKey("invoice.id"), nullable=False),
        sa.Column("line_number", sa.Integer(), nullable=False),
        sa.Column("service_id", sa.String(length=36), nullable=True),
        sa.Column("item_name", sa.String(length=256), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("hsn_code", sa.String(length=8), nullable=False, server_default="9963"),
        sa.Column("quantity", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("unit_price", sa.Numeric(18, 2), nullable=False),
        sa.Column("total_price", sa.Numeric(18, 2), nullable=False),
        _money("discount"),
        sa.Column("taxable_amount", sa.Numeric(18, 2), nullable=False),
        sa.Column("tax_rate", sa.Numeric(6, 2), nullable=False, server_default="0"),
        _money("cgst_amount"),
        _money("sgst_amount"),
        _money("igst_amount"),
        _money("tax_amount"),
        sa.Column("final_amount", sa.Numeric(18, 2), nullable=False),
    )
    op.create_index("ix_invoice_item_invoice_id", "invoice_item", ["invoice_id"])

    op.create_table(
        "guest_billing_view",
        _id(),
        _created(),
        sa.Column("booking_id", sa.String(length=36), sa.ForeignKey("booking.id"), nullable=False),
        sa.Column("access_token", sa.String(length=64), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("view_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_viewed", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_guest_billing_view_booking_id", "guest_billing_view", ["booking_id"])
    op.create_index("ix_guest_billing_view_access_token", "guest_billing_view", ["access_token"], unique=True)

    # ---- platform ----
    op.create_table(
        "outbox_event",
        _id(),
        _created(),
        sa.Column("topic", sa.String(length=128), nullable=False),
        sa.Column("payload", sa.JSON(), nullable=False),
        sa.Column("available_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("attempt_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.Column("delivered", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("delivered_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_outbox_event_topic", "outbox_event", ["topic"])
    op.create_index("ix_outbox_topic_created", "outbox_event", ["topic", "created_at"])
    op.create_index("ix_outbox_delivery", "outbox_event", ["delivered", "available_at"])

    op.create_table(
        "sys_audit_log",
        _id(),
        _created(),
        sa.Column("actor", sa.String(length=128), nullable=False),
        sa.Column("action", sa.String(length=128), nullable=False),
        sa.Column("entity_type", sa.String(length=64), nullable=False),
        sa.Column("entity_id", sa.String(length=64), nullable=True),
        sa.Column("payload", sa.JSON(), nullable=False),
    )
    op.create_index("ix_sys_audit_log_actor", "sys_audit_log", ["actor"])
    op.create_index("ix_sys_audit_log_action", "sys_audit_log", ["action"])
    op.create_index("ix_sys_audit_log_entity_type", "sys_audit_log", ["entity_type"])
    op.create_index("ix_sys_audit_log_entity_id", "sys_audit_log", ["entity_id"])
    op.create_index("ix_audit_entity_time", "sys_audit_log", ["entity_type", "entity_id", "created_at"])


def downgrade():
    for table in (
        "sys_audit_log",
        "outbox_event",
        "guest_billing_view",
        "invoice_item",
        "invoice",
        "revenue_report",
        "ledger_transaction",
        "ledger_account",
        "split_payment",
        "payment",
        "bill_item",
        "booking",
        "hotel_service",
        "room",
        "room_type",
        "hotel_info",
        "auth_user",
    ):
        op.drop_table(table)
