"""
Engine-owned tables: rule catalog, current scores, score history, alerts.
Migrated by migrations/versions/001_risk_scoring_schema.py.
"""
import uuid
from datetime import datetime, timezone

from sqlalchemy import JSON, Boolean, Column, DateTime, Float, Index, String, Text, UniqueConstraint

from app.models.database import Base


def _uuid() -> str:
    return str(uuid.uuid4())


def _now() -> datetime:
    return datetime.now(timezone.utc)


class RiskRuleRow(Base):
    __tablename__ = "risk_rules"
    __table_args__ = (
        UniqueConstraint("tenant_id", "code", name="uq_risk_rules_tenant_code"),
        Index("ix_risk_rules_scope_active", "scope", "is_active"),
    )

    id = Column(String(36), primary_key=True, default=_uuid)
    tenant_id = Column(String(36), nullable=True, index=True)  # NULL → global rule
    scope = Column(String(20), nullable=False)
    code = Column(String(100), nullable=False)
    description = Column(String(500), nullable=True)
    weight = Column(Float, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    default_severity = Column(String(20), nullable=False, default="medium")
    config = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), default=_now, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_now, onupdate=_now, nullable=False)

    def __repr__(self):
        return f"<RiskRuleRow {self.code} tenant={self.tenant_id} weight={self.weight}>"


class DocumentRiskScoreRow(Base):
    __tablename__ = "document_risk_scores"
    __table_args__ = (
        UniqueConstraint("tenant_id", "document_id", name="uq_document_risk_scores_tenant_document"),
        Index("ix_document_risk_scores_tenant_severity", "tenant_id", "severity"),
    )

    id = Column(String(36), primary_key=True, default=_uuid)
    tenant_id = Column(String(36), nullable=False)
    document_id = Column(String(36), nullable=False)
    score = Column(Float, nullable=False)
    severity = Column(String(20), nullable=False)
    triggered_rule_codes = Column(JSON, nullable=False, default=list)
    generated_at = Column(DateTime(timezone=True), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), default=_now, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_now, onupdate=_now, nullable=False)


class ClientCompanyRiskScoreRow(Base):
    __tablename__ = "client_company_risk_scores"
    __table_args__ = (
        UniqueConstraint("tenant_id", "client_company_id", name="uq_client_company_risk_scores_tenant_company"),
        Index("ix_client_company_risk_scores_tenant_severity", "tenant_id", "severity"),
    )

    id = Column(String(36), primary_key=True, default=_uuid)
    tenant_id = Column(String(36), nullable=False)
    client_company_id = Column(String(36), nullable=False)
    score = Column(Float, nullable=False)
    severity = Column(String(20), nullable=False)
    triggered_rule_codes = Column(JSON, nullable=False, default=list)
    generated_at = Column(DateTime(timezone=True), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), default=_now, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_now, onupdate=_now, nullable=False)


class RiskScoreHistoryRow(Base):
    """Append-only. Nothing in the service updates or deletes these rows."""
    __tablename__ = "risk_score_history"
    __table_args__ = (
        Index("ix_risk_score_history_entity", "tenant_id", "entity_type", "entity_id", "created_at"),
    )

    id = Column(String(36), primary_key=True, default=_uuid)
    tenant_id = Column(String(36), nullable=False)
    entity_type = Column(String(20), nullable=False)  # document | company
    entity_id = Column(String(36), nullable=False)
    score = Column(Float, nullable=False)
    severity = Column(String(20), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False)


class RiskAlertRow(Base):
    __tablename__ = "risk_alerts"
    __table_args__ = (
        Index("ix_risk_alerts_dedup", "tenant_id", "client_company_id", "document_id", "type", "status"),
    )

    id = Column(String(36), primary_key=True, default=_uuid)
    tenant_id = Column(String(36), nullable=False)
    client_company_id = Column(String(36), nullable=True)
    document_id = Column(String(36), nullable=True)
    type = Column(String(100), nullable=False)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    severity = Column(String(20), nullable=False)
    status = Column(String(20), nullable=False, default="open")  # open | in_progress | resolved | dismissed
    created_at = Column(DateTime(timezone=True), default=_now, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_now, onupdate=_now, nullable=False)
