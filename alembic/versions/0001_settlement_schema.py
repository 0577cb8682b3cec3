"""settlement schema: orders, referral partners, payouts, fraud log

Revision ID: 0001_settlement_schema
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""

from __future__ import annotations

from alembic import op


revision = "0001_settlement_schema"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.execute("CREATE EXTENSION IF NOT EXISTS pgcrypto;")
    op.execute("CREATE SCHEMA IF NOT EXISTS app;")

    op.execute(
        """
        CREATE TABLE IF NOT EXISTS app.products (
            id uuid PRIMARY KEY DEFAULT gen_random_uuid(),
            title text NOT NULL,
            price_cents bigint NOT NULL CHECK (price_cents >= 0),
            is_active boolean NOT NULL DEFAULT TRUE,
            instructions jsonb NOT NULL DEFAULT '[]'::jsonb,
            total_sold bigint NOT NULL DEFAULT 0,
            total_revenue_cents bigint NOT NULL DEFAULT 0,
            created_at timestamptz NOT NULL DEFAULT now(),
            updated_at timestamptz NOT NULL DEFAULT now()
        );
        """
    )

    op.execute(
        """
        CREATE TABLE IF NOT EXISTS app.referral_partners (
            id uuid PRIMARY KEY DEFAULT gen_random_uuid(),
            creator_name text NOT NULL,
            referral_code text NOT NULL,
            buyer_identifier text NOT NULL DEFAULT '',
            email text NOT NULL DEFAULT '',
            discount_percent numeric(5,2) NOT NULL DEFAULT 10 CHECK (discount_percent BETWEEN 0 AND 100),
            commission_percent numeric(5,2) NOT NULL DEFAULT 10 CHECK (commission_percent BETWEEN 0 AND 100),
            total_uses integer NOT NULL DEFAULT 0,
            total_revenue_cents bigint NOT NULL DEFAULT 0,
            total_commission_cents bigint NOT NULL DEFAULT 0,
            pending_commission_cents bigint NOT NULL DEFAULT 0,
            total_paid_out_cents bigint NOT NULL DEFAULT 0,
            payout_threshold_cents bigint NOT NULL DEFAULT 30000,
            max_uses integer,
            expires_at timestamptz,
            status text NOT NULL DEFAULT 'active',
            created_at timestamptz NOT NULL DEFAULT now(),
            updated_at timestamptz NOT NULL DEFAULT now(),
            CONSTRAINT referral_partners_code_upper CHECK (referral_code = upper(referral_code)),
            CONSTRAINT referral_partners_status_chk CHECK (status IN ('active', 'paused', 'banned')),
            CONSTRAINT referral_partners_pending_nonneg CHECK (pending_commission_cents >= 0),
            CONSTRAINT referral_partners_uses_cap CHECK (max_uses IS NULL OR total_uses <= max_uses)
        );
        """
    )
    op.execute(
        "CREATE UNIQUE INDEX IF NOT EXISTS referral_partners_code_uq ON app.referral_partners (referral_code);"
    )

    op.execute(
        """
        CREATE TABLE IF NOT EXISTS app.orders (
            id uuid PRIMARY KEY DEFAULT gen_random_uuid(),
            buyer_id text NOT NULL,
            email text NOT NULL DEFAULT '',
            items jsonb NOT NULL DEFAULT '[]'::jsonb,
            subtotal_cents bigint NOT NULL,
            discount_cents bigint NOT NULL DEFAULT 0,
            total_cents bigint NOT NULL CHECK (total_cents > 0),
            currency text NOT NULL,
            gateway_order_id text,
            gateway_payment_id text,
            referral_code text,
            referral_partner_id uuid,
            commission_percent numeric(5,2) NOT NULL DEFAULT 0,
            commission_settled boolean NOT NULL DEFAULT FALSE,
            status text NOT NULL DEFAULT 'created',
            payment_status text NOT NULL DEFAULT 'created',
            fulfillment_status text NOT NULL DEFAULT 'pending',
            fulfillment_log jsonb NOT NULL DEFAULT '[]'::jsonb,
            webhook_verified boolean NOT NULL DEFAULT FALSE,
            created_at timestamptz NOT NULL DEFAULT now(),
            updated_at timestamptz NOT NULL DEFAULT now(),
            paid_at timestamptz,
            delivered_at timestamptz,
            CONSTRAINT orders_status_chk CHECK (status IN ('created', 'pending', 'paid', 'delivered', 'failed', 'refunded')),
            CONSTRAINT orders_payment_status_chk CHECK (payment_status IN ('created', 'attempted', 'paid', 'failed')),
            CONSTRAINT orders_fulfillment_status_chk CHECK (fulfillment_status IN ('pending', 'delivered', 'failed', 'skipped'))
        );
        """
    )
    op.execute(
        """
        CREATE UNIQUE INDEX IF NOT EXISTS orders_gateway_order_id_uq
        ON app.orders (gateway_order_id) WHERE gateway_order_id IS NOT NULL;
        """
    )
    op.execute(
        """
        CREATE UNIQUE INDEX IF NOT EXISTS orders_gateway_payment_id_uq
        ON app.orders (gateway_payment_id) WHERE gateway_payment_id IS NOT NULL;
        """
    )
    op.execute("CREATE INDEX IF NOT EXISTS orders_referral_code_idx ON app.orders (referral_code);")

    op.execute(
        """
        CREATE TABLE IF NOT EXISTS app.payout_requests (
            id uuid PRIMARY KEY DEFAULT gen_random_uuid(),
            partner_id uuid NOT NULL REFERENCES app.referral_partners (id),
            amount_cents bigint NOT NULL CHECK (amount_cents > 0),
            creator_name text NOT NULL,
            referral_code text NOT NULL,
            real_name text NOT NULL,
            method text NOT NULL CHECK (method IN ('bank', 'upi', 'qr')),
            details jsonb NOT NULL DEFAULT '{}'::jsonb,
            status text NOT NULL DEFAULT 'pending'
                CHECK (status IN ('pending', 'processing', 'completed', 'rejected')),
            transaction_reference text NOT NULL DEFAULT '',
            rejection_reason text NOT NULL DEFAULT '',
            processed_by text,
            requested_at timestamptz NOT NULL DEFAULT now(),
            processed_at timestamptz,
            CONSTRAINT payout_requests_completed_ref CHECK (status <> 'completed' OR transaction_reference <> '')
        );
        """
    )
    op.execute(
        "CREATE INDEX IF NOT EXISTS payout_requests_partner_status_idx ON app.payout_requests (partner_id, status);"
    )
    # one open request per partner
    op.execute(
        """
        CREATE UNIQUE INDEX IF NOT EXISTS payout_requests_one_open_uq
        ON app.payout_requests (partner_id) WHERE status IN ('pending', 'processing');
        """
    )

    op.execute(
        """
        CREATE TABLE IF NOT EXISTS app.payout_records (
            id uuid PRIMARY KEY DEFAULT gen_random_uuid(),
            partner_id uuid NOT NULL REFERENCES app.referral_partners (id),
            amount_cents bigint NOT NULL CHECK (amount_cents > 0),
            creator_name text NOT NULL,
            referral_code text NOT NULL,
            method text,
            transaction_reference text,
            payout_request_id uuid REFERENCES app.payout_requests (id),
            processed_by text NOT NULL,
            note text NOT NULL DEFAULT '',
            created_at timestamptz NOT NULL DEFAULT now()
        );
        """
    )
    op.execute(
        "CREATE INDEX IF NOT EXISTS payout_records_partner_idx ON app.payout_records (partner_id, created_at DESC);"
    )

    op.execute(
        """
        CREATE TABLE IF NOT EXISTS app.commission_adjustments (
            id uuid PRIMARY KEY DEFAULT gen_random_uuid(),
            partner_id uuid NOT NULL REFERENCES app.referral_partners (id),
            amount_cents bigint NOT NULL,
            previous_balance_cents bigint NOT NULL,
            new_balance_cents bigint NOT NULL CHECK (new_balance_cents >= 0),
            note text NOT NULL DEFAULT '',
            adjusted_by text NOT NULL,
            created_at timestamptz NOT NULL DEFAULT now()
        );
        """
    )

    op.execute(
        """
        CREATE TABLE IF NOT EXISTS app.referral_fraud_logs (
            id uuid PRIMARY KEY DEFAULT gen_random_uuid(),
            referral_code text NOT NULL,
            type text NOT NULL
                CHECK (type IN ('code_usage', 'self_use', 'rapid_repeat', 'suspicious_pattern')),
            ip text,
            email text,
            buyer_id text,
            details text NOT NULL DEFAULT '',
            created_at timestamptz NOT NULL DEFAULT now()
        );
        """
    )
    op.execute(
        """
        CREATE INDEX IF NOT EXISTS referral_fraud_logs_code_type_idx
        ON app.referral_fraud_logs (referral_code, type, created_at DESC);
        """
    )

    op.execute(
        """
        CREATE TABLE IF NOT EXISTS app.audit_log (
            id uuid PRIMARY KEY DEFAULT gen_random_uuid(),
            actor text NOT NULL,
            action text NOT NULL,
            target_id text,
            metadata jsonb NOT NULL DEFAULT '{}'::jsonb,
            created_at timestamptz NOT NULL DEFAULT now()
        );
        """
    )

    op.execute(
        """
        CREATE TABLE IF NOT EXISTS app.settings (
            key text PRIMARY KEY,
            global_payout_threshold_cents bigint NOT NULL CHECK (global_payout_threshold_cents > 0),
            updated_at timestamptz NOT NULL DEFAULT now()
        );
        """
    )


def downgrade() -> None:
    for table in (
        "settings",
        "audit_log",
        "referral_fraud_logs",
        "commission_adjustments",
        "payout_records",
        "payout_requests",
        "orders",
        "referral_partners",
        "products",
    ):
        op.execute(f"DROP TABLE IF EXISTS app.{table};")
