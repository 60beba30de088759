"""mulch fundraiser schema

Revision ID: 3f9a1c7d2b60
Revises:
Create Date: 2026-03-02 19:14:08.412006
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "3f9a1c7d2b60"
down_revision = None
branch_labels = None
depends_on = None


# -----------------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------------
def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    ]


def _payment_ref_columns():
    # PayPal (legacy) and Stripe Checkout (current); at most one set is populated.
    return [
        sa.Column("paypal_order_id", sa.String(length=64), nullable=True),
        sa.Column("paypal_payer_id", sa.String(length=64), nullable=True),
        sa.Column("paypal_payment_source", sa.String(length=40), nullable=True),
        sa.Column("stripe_session_id", sa.String(length=255), nullable=True),
        sa.Column("stripe_payment_intent_id", sa.String(length=255), nullable=True),
        sa.Column("stripe_customer_id", sa.String(length=255), nullable=True),
    ]


def _payment_ref_indexes(table: str):
    op.create_index(f"ix_{table}_created_at", table, ["created_at"], unique=False)
    op.create_index(f"ix_{table}_paypal_order_id", table, ["paypal_order_id"], unique=True)
    op.create_index(f"ix_{table}_stripe_session_id", table, ["stripe_session_id"], unique=True)
    op.create_index(f"ix_{table}_stripe_payment_intent_id", table, ["stripe_payment_intent_id"], unique=False)


def upgrade():
    # --- customers ---
    op.create_table(
        "customers",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("name", sa.String(length=160), nullable=False),
        sa.Column("email", sa.String(length=160), nullable=False),
        sa.Column("phone", sa.String(length=40), nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_customers_identity", "customers", ["email", "phone", "name"], unique=False)
    op.create_index("ix_customers_created_at", "customers", ["created_at"], unique=False)

    # --- mulch_orders ---
    op.create_table(
        "mulch_orders",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("price_per_unit_cents", sa.Integer(), nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False),
        sa.Column("order_type", sa.String(length=20), nullable=False),
        sa.Column("color", sa.String(length=20), nullable=False),
        sa.Column("street_address", sa.String(length=255), nullable=False),
        sa.Column("neighborhood", sa.String(length=120), nullable=False),
        sa.Column("note", sa.Text(), nullable=True),
        sa.Column("referral_source", sa.String(length=40), nullable=True),
        sa.Column("referral_source_details", sa.String(length=255), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("paid_at", sa.DateTime(), nullable=True),
        sa.Column("customer_id", sa.Integer(), sa.ForeignKey("customers.id"), nullable=False),
        *_payment_ref_columns(),
        *_timestamps(),
        sa.CheckConstraint("quantity > 0", name="ck_mulch_orders_quantity_pos"),
        sa.CheckConstraint("price_per_unit_cents >= 0", name="ck_mulch_orders_price_nonneg"),
        sa.CheckConstraint(
            "status in ('PENDING','PAID','FULFILLED','CANCELLED','REFUNDED')",
            name="ck_mulch_orders_status",
        ),
    )
    _payment_ref_indexes("mulch_orders")
    op.create_index("ix_mulch_orders_status", "mulch_orders", ["status"], unique=False)
    op.create_index("ix_mulch_orders_neighborhood", "mulch_orders", ["neighborhood"], unique=False)
    op.create_index("ix_mulch_orders_customer_id", "mulch_orders", ["customer_id"], unique=False)
    op.create_index("ix_mulch_orders_status_created", "mulch_orders", ["status", "created_at"], unique=False)

    # --- donations ---
    op.create_table(
        "donations",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("donor_given_name", sa.String(length=120), nullable=True),
        sa.Column("donor_surname", sa.String(length=120), nullable=True),
        sa.Column("donor_email", sa.String(length=160), nullable=True),
        *_payment_ref_columns(),
        *_timestamps(),
        sa.CheckConstraint("amount_cents > 0", name="ck_donations_amount_pos"),
        sa.CheckConstraint("status in ('PAID','REFUNDED')", name="ck_donations_status"),
    )
    _payment_ref_indexes("donations")
    op.create_index("ix_donations_status", "donations", ["status"], unique=False)
    op.create_index("ix_donations_donor_email", "donations", ["donor_email"], unique=False)

    # --- stripe_events ---
    op.create_table(
        "stripe_events",
        sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
        sa.Column("event_id", sa.String(length=120), nullable=False),
        sa.Column("type", sa.String(length=120), nullable=False),
        sa.Column("livemode", sa.Boolean(), nullable=False),
        sa.Column("object_id", sa.String(length=255), nullable=True),
        sa.Column("status", sa.String(length=40), nullable=False),
        sa.Column("error", sa.Text(), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_stripe_events_event_id", "stripe_events", ["event_id"], unique=True)
    op.create_index("ix_stripe_events_type", "stripe_events", ["type"], unique=False)
    op.create_index("ix_stripe_events_object_id", "stripe_events", ["object_id"], unique=False)
    op.create_index("ix_stripe_events_status", "stripe_events", ["status"], unique=False)
    op.create_index("ix_stripe_events_created_at", "stripe_events", ["created_at"], unique=False)
    op.create_index("ix_stripe_events_type_created", "stripe_events", ["type", "created_at"], unique=False)


def downgrade():
    op.drop_table("stripe_events")
    op.drop_table("donations")
    op.drop_table("mulch_orders")
    op.drop_table("customers")
