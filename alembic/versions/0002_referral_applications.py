"""referral applications and partner -> application link

Revision ID: 0002_referral_applications
Revises: 0001_settlement_schema
Create Date: 2026-10-20 00:00:00.000000

"""

from __future__ import annotations

from alembic import op


revision = "0002_referral_applications"
down_revision = "0001_settlement_schema"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.execute(
        """
        CREATE TABLE IF NOT EXISTS app.referral_applications (
            id uuid PRIMARY KEY DEFAULT gen_random_uuid(),
            creator_name text NOT NULL,
            email text NOT NULL,
            buyer_identifier text NOT NULL,
            contact_handle text NOT NULL,
            channel_link text NOT NULL,
            description text NOT NULL DEFAULT '',
            status text NOT NULL DEFAULT 'pending'
                CHECK (status IN ('pending', 'approved', 'rejected')),
            review_reason text NOT NULL DEFAULT '',
            reviewed_by text,
            reviewed_at timestamptz,
            partner_id uuid REFERENCES app.referral_partners (id),
            created_at timestamptz NOT NULL DEFAULT now(),
            updated_at timestamptz NOT NULL DEFAULT now(),
            CONSTRAINT referral_applications_email_lower CHECK (email = lower(email))
        );
        """
    )
    op.execute(
        "CREATE INDEX IF NOT EXISTS referral_applications_status_idx ON app.referral_applications (status, created_at DESC);"
    )
    op.execute(
        "CREATE INDEX IF NOT EXISTS referral_applications_contact_idx ON app.referral_applications (contact_handle);"
    )
    # one live application per email
    op.execute(
        """
        CREATE UNIQUE INDEX IF NOT EXISTS referral_applications_live_email_uq
        ON app.referral_applications (email) WHERE status IN ('pending', 'approved');
        """
    )

    op.execute(
        """
        ALTER TABLE app.referral_partners
        ADD COLUMN IF NOT EXISTS application_id uuid REFERENCES app.referral_applications (id);
        """
    )


def downgrade() -> None:
    op.execute("ALTER TABLE app.referral_partners DROP COLUMN IF EXISTS application_id;")
    op.execute("DROP TABLE IF EXISTS app.referral_applications;")
