"""
001 — Risk scoring schema: rules, current scores, score history, alerts

Revision ID: 001
Create Date: 2026-10-17
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB

revision = "001"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("NOW()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("NOW()")),
    ]


def upgrade() -> None:
    # ── Rule catalog ──
    op.create_table(
        "risk_rules",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("tenant_id", sa.String(36), nullable=True),
        sa.Column("scope", sa.String(20), nullable=False),
        sa.Column("code", sa.String(100), nullable=False),
        sa.Column("description", sa.String(500), nullable=True),
        sa.Column("weight", sa.Float, nullable=False),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("default_severity", sa.String(20), nullable=False, server_default="medium"),
        sa.Column("config", JSONB, nullable=False, server_default=sa.text("'{}'::jsonb")),
        *_timestamps(),
        sa.UniqueConstraint("tenant_id", "code", name="uq_risk_rules_tenant_code"),
        sa.CheckConstraint("weight >= 0 AND weight <= 100", name="ck_risk_rules_weight"),
        sa.CheckConstraint("scope IN ('document', 'company')", name="ck_risk_rules_scope"),
    )
    op.create_index("ix_risk_rules_tenant_id", "risk_rules", ["tenant_id"])
    op.create_index("ix_risk_rules_scope_active", "risk_rules", ["scope", "is_active"])
    # NULL tenant_id is distinct under a plain unique constraint; globals need their own
    op.create_index(
        "uq_risk_rules_global_code", "risk_rules", ["code"],
        unique=True, postgresql_where=sa.text("tenant_id IS NULL"),
    )

    # ── Current scores ──
    op.create_table(
        "document_risk_scores",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("tenant_id", sa.String(36), nullable=False),
        sa.Column("document_id", sa.String(36), nullable=False),
        sa.Column("score", sa.Float, nullable=False),
        sa.Column("severity", sa.String(20), nullable=False),
        sa.Column("triggered_rule_codes", JSONB, nullable=False, server_default=sa.text("'[]'::jsonb")),
        sa.Column("generated_at", sa.DateTime(timezone=True), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint("tenant_id", "document_id", name="uq_document_risk_scores_tenant_document"),
    )
    op.create_index("ix_document_risk_scores_tenant_severity", "document_risk_scores", ["tenant_id", "severity"])
    op.create_index("ix_document_risk_scores_generated_at", "document_risk_scores", ["generated_at"])

    op.create_table(
        "client_company_risk_scores",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("tenant_id", sa.String(36), nullable=False),
        sa.Column("client_company_id", sa.String(36), nullable=False),
        sa.Column("score", sa.Float, nullable=False),
        sa.Column("severity", sa.String(20), nullable=False),
        sa.Column("triggered_rule_codes", JSONB, nullable=False, server_default=sa.text("'[]'::jsonb")),
        sa.Column("generated_at", sa.DateTime(timezone=True), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint("tenant_id", "client_company_id", name="uq_client_company_risk_scores_tenant_company"),
    )
    op.create_index(
        "ix_client_company_risk_scores_tenant_severity", "client_company_risk_scores", ["tenant_id", "severity"],
    )
    op.create_index("ix_client_company_risk_scores_generated_at", "client_company_risk_scores", ["generated_at"])

    # ── History (append-only) ──
    op.create_table(
        "risk_score_history",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("tenant_id", sa.String(36), nullable=False),
        sa.Column("entity_type", sa.String(20), nullable=False),
        sa.Column("entity_id", sa.String(36), nullable=False),
        sa.Column("score", sa.Float, nullable=False),
        sa.Column("severity", sa.String(20), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index(
        "ix_risk_score_history_entity", "risk_score_history",
        ["tenant_id", "entity_type", "entity_id", "created_at"],
    )

    # ── Alerts ──
    op.create_table(
        "risk_alerts",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("tenant_id", sa.String(36), nullable=False),
        sa.Column("client_company_id", sa.String(36), nullable=True),
        sa.Column("document_id", sa.String(36), nullable=True),
        sa.Column("type", sa.String(100), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("message", sa.Text, nullable=False),
        sa.Column("severity", sa.String(20), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="open"),
        *_timestamps(),
    )
    op.create_index(
        "ix_risk_alerts_dedup", "risk_alerts",
        ["tenant_id", "client_company_id", "document_id", "type", "status"],
    )


def downgrade() -> None:
    op.drop_table("risk_alerts")
    op.drop_table("risk_score_history")
    op.drop_table("client_company_risk_scores")
    op.drop_table("document_risk_scores")
    op.drop_table("risk_rules")
