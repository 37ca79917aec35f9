"""
002 — Seed the global default rule catalog

Global rules (tenant_id NULL). Tenants adjust them by creating an override
with the same code through /v1/admin/rules.

Revision ID: 002
Create Date: 2026-10-17
"""
import uuid

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB

revision = "002"
down_revision = "001"
branch_labels = None
depends_on = None

# (scope, code, weight, default_severity, description, config)
DEFAULT_RULES = [
    # ── Document ──
    ("document", "INV_DUE_BEFORE_ISSUE", 40, "high", "Due date precedes the issue date", {}),
    ("document", "INV_TOTAL_MISMATCH", 35, "high", "Line items do not add up to the invoice total", {}),
    ("document", "VAT_RATE_INCONSISTENCY", 25, "medium", "VAT amount inconsistent with the stated rate", {}),
    ("document", "AMOUNT_DATE_INCONSISTENCY", 20, "medium", "Amount or date inconsistent with the ledger entry", {}),
    ("document", "CHART_MISMATCH", 15, "medium", "Posting account does not fit the document type", {}),
    ("document", "INV_DUPLICATE_NUMBER", 30, "high", "Invoice number already used", {}),
    ("document", "INV_MISSING_TAX_NUMBER", 10, "low", "Counterparty tax number missing", {}),
    ("document", "DOC_PARSING_FAILED", 20, "medium", "Document could not be parsed", {}),
    ("document", "INV_DUPLICATE_INVOICE", 35, "high", "Same amount and counterparty within 30 days", {}),
    ("document", "UNUSUAL_COUNTERPARTY", 20, "medium", "Dormant counterparty or abnormal amount", {}),
    ("document", "NEW_COUNTERPARTY", 10, "low", "First dealing with this counterparty", {}),
    ("document", "BENFORDS_LAW_VIOLATION", 25, "medium", "Company amounts deviate from Benford's Law", {}),
    ("document", "ROUND_NUMBER_SUSPICIOUS", 35, "medium", "High share of round amounts", {}),
    ("document", "UNUSUAL_TIMING", 15, "low", "Odd-hour, weekend or month-end clustering", {}),
    # ── Company ──
    ("company", "COMP_MANY_HIGH_RISK_DOCS", 30, "high", "Many high-risk documents in the period",
     {"threshold": 5, "days": 90}),
    ("company", "COMP_HIGH_RISK_RATIO", 30, "high", "High share of invoices linked to high-risk documents",
     {"threshold": 0.3}),
    ("company", "COMP_FREQUENT_DUPLICATES", 20, "medium", "Repeated invoice numbers", {"threshold": 3}),
    ("company", "COMP_BENFORDS_LAW_VIOLATION", 20, "medium", "Transactions deviate from Benford's Law", {}),
    ("company", "COMP_CIRCULAR_TRANSACTIONS", 35, "high", "Counterparty on both sales and purchase side", {}),
    ("company", "COMP_UNUSUAL_VAT_PATTERNS", 20, "medium", "Effective VAT rates outside the statutory set", {}),
    ("company", "COMP_DATE_MANIPULATION", 25, "high", "Future-dated, due-before-issue or backdated invoices", {}),
    ("company", "COMP_HIGH_FRAUD_PATTERNS", 30, "high", "Several fraud patterns detected at once",
     {"threshold": 3}),
]

risk_rules = sa.table(
    "risk_rules",
    sa.column("id", sa.String),
    sa.column("tenant_id", sa.String),
    sa.column("scope", sa.String),
    sa.column("code", sa.String),
    sa.column("description", sa.String),
    sa.column("weight", sa.Float),
    sa.column("is_active", sa.Boolean),
    sa.column("default_severity", sa.String),
    sa.column("config", JSONB),
)


def upgrade() -> None:
    op.bulk_insert(risk_rules, [
        {
            "id": str(uuid.uuid4()),
            "tenant_id": None,
            "scope": scope,
            "code": code,
            "description": description,
            "weight": weight,
            "is_active": True,
            "default_severity": severity,
            "config": config,
        }
        for scope, code, weight, severity, description, config in DEFAULT_RULES
    ])


def downgrade() -> None:
    codes = [code for _, code, *_ in DEFAULT_RULES]
    op.execute(risk_rules.delete().where(risk_rules.c.tenant_id.is_(None), risk_rules.c.code.in_(codes)))
