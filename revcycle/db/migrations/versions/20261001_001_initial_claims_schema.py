"""Create claims, lines, event log and remittance ledger tables.

Revision ID: 20261001_001
Revises:
Create Date: 2026-10-01
"""

from alembic import op
import sqlalchemy as sa

# Revision identifiers
revision = "20261001_001"
down_revision = None
branch_labels = None
depends_on = None

MONEY = sa.Numeric(12, 2)


def upgrade() -> None:
    """Create the claims schema."""

    # NOTE: Status and type columns are plain strings; the Python models
    # validate them against their enums.

    op.create_table(
        "claims",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("claim_number", sa.String(30), nullable=False),
        sa.Column("version", sa.Integer, nullable=False),
        sa.Column("claim_type", sa.String(20), nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        # Parties
        sa.Column("patient_id", sa.String(64), nullable=False),
        sa.Column("patient_name", sa.String(200), nullable=True),
        sa.Column("provider_id", sa.String(64), nullable=True),
        sa.Column("provider_name", sa.String(200), nullable=True),
        # Insurance
        sa.Column("payer_id", sa.String(50), nullable=True),
        sa.Column("payer_name", sa.String(200), nullable=True),
        sa.Column("member_id", sa.String(50), nullable=True),
        sa.Column("policy_number", sa.String(50), nullable=True),
        sa.Column("group_number", sa.String(50), nullable=True),
        # Clinical context
        sa.Column("diagnosis_codes", sa.JSON, nullable=False),
        sa.Column("place_of_service", sa.String(2), nullable=True),
        sa.Column("date_of_service", sa.Date, nullable=True),
        sa.Column("notes", sa.Text, nullable=True),
        # Financial summary
        sa.Column("total_charge", MONEY, nullable=False),
        sa.Column("total_allowed", MONEY, nullable=True),
        sa.Column("total_paid", MONEY, nullable=False),
        sa.Column("patient_responsibility", MONEY, nullable=False),
        # Scrub
        sa.Column("scrub_passed", sa.Boolean, nullable=True),
        sa.Column("scrub_result", sa.JSON, nullable=True),
        sa.Column("scrub_content_hash", sa.String(64), nullable=True),
        sa.Column("scrubbed_at", sa.DateTime(timezone=True), nullable=True),
        # Submission
        sa.Column("control_number", sa.String(30), nullable=True),
        sa.Column("submission_count", sa.Integer, nullable=False),
        sa.Column("gateway_reference", sa.String(100), nullable=True),
        sa.Column("submitted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("payer_claim_number", sa.String(50), nullable=True),
        sa.Column("payer_status", sa.JSON, nullable=True),
        sa.Column("last_status_check_at", sa.DateTime(timezone=True), nullable=True),
        # Timestamps
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_claims_claim_number", "claims", ["claim_number"], unique=True)
    op.create_index("ix_claims_control_number", "claims", ["control_number"], unique=True)
    op.create_index("ix_claims_status", "claims", ["status"])
    op.create_index("ix_claims_patient_id", "claims", ["patient_id"])
    op.create_index("ix_claims_payer_id", "claims", ["payer_id"])
    op.create_index("ix_claims_date_of_service", "claims", ["date_of_service"])
    op.create_index("ix_claims_status_date", "claims", ["status", "date_of_service"])

    op.create_table(
        "claim_lines",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "claim_id",
            sa.Integer,
            sa.ForeignKey("claims.id", ondelete="RESTRICT"),
            nullable=False,
            index=True,
        ),
        sa.Column("line_number", sa.Integer, nullable=False),
        sa.Column("procedure_code", sa.String(20), nullable=False),
        sa.Column("description", sa.String(500), nullable=True),
        sa.Column("modifier", sa.String(10), nullable=True),
        sa.Column("units", sa.Integer, nullable=False),
        sa.Column("charge_amount", MONEY, nullable=False),
        sa.Column("allowed_amount", MONEY, nullable=True),
        sa.Column("paid_amount", MONEY, nullable=False),
        sa.Column("diagnosis_pointers", sa.JSON, nullable=False),
        sa.UniqueConstraint("claim_id", "line_number", name="uq_claim_lines_claim_line"),
    )

    op.create_table(
        "revenue_cycle_events",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "claim_id",
            sa.Integer,
            sa.ForeignKey("claims.id", ondelete="RESTRICT"),
            nullable=False,
            index=True,
        ),
        sa.Column("sequence", sa.Integer, nullable=False),
        sa.Column("event_type", sa.String(30), nullable=False),
        sa.Column("old_status", sa.String(20), nullable=True),
        sa.Column("new_status", sa.String(20), nullable=True),
        sa.Column("details", sa.JSON, nullable=False),
        sa.Column("actor", sa.String(100), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("claim_id", "sequence", name="uq_revenue_cycle_events_claim_seq"),
    )

    op.create_table(
        "remittance_batches",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("batch_id", sa.String(64), nullable=False),
        sa.Column("check_number", sa.String(50), nullable=False),
        sa.Column("payer_id", sa.String(50), nullable=True),
        sa.Column("payer_name", sa.String(200), nullable=True),
        sa.Column("payment_amount", MONEY, nullable=False),
        sa.Column("payment_method", sa.String(3), nullable=False),
        sa.Column("payment_date", sa.Date, nullable=True),
        sa.Column("claim_count", sa.Integer, nullable=False),
        sa.Column("received_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_remittance_batches_batch_id", "remittance_batches", ["batch_id"], unique=True)

    op.create_table(
        "applied_remittances",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("batch_id", sa.String(64), nullable=False, index=True),
        sa.Column("control_number", sa.String(30), nullable=False),
        sa.Column(
            "claim_id",
            sa.Integer,
            sa.ForeignKey("claims.id", ondelete="RESTRICT"),
            nullable=False,
            index=True,
        ),
        sa.Column("outcome", sa.JSON, nullable=False),
        sa.Column("applied_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("batch_id", "control_number", name="uq_applied_remittances_batch_claim"),
    )


def downgrade() -> None:
    """Drop the claims schema."""
    op.drop_table("applied_remittances")
    op.drop_index("ix_remittance_batches_batch_id", table_name="remittance_batches")
    op.drop_table("remittance_batches")
    op.drop_table("revenue_cycle_events")
    op.drop_table("claim_lines")
    op.drop_index("ix_claims_status_date", table_name="claims")
    op.drop_index("ix_claims_date_of_service", table_name="claims")
    op.drop_index("ix_claims_payer_id", table_name="claims")
    op.drop_index("ix_claims_patient_id", table_name="claims")
    op.drop_index("ix_claims_status", table_name="claims")
    op.drop_index("ix_claims_control_number", table_name="claims")
    op.drop_index("ix_claims_claim_number", table_name="claims")
    op.drop_table("claims")
