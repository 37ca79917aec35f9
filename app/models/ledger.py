"""
Platform-owned ledger tables, mapped read-only.

The accounting platform creates and migrates these; the risk engine only
selects from them (see LedgerRepository). They are kept on a separate
metadata object so alembic autogenerate never touches them.
"""
from sqlalchemy import JSON, Boolean, Column, Date, DateTime, Float, MetaData, String
from sqlalchemy.orm import DeclarativeBase


class LedgerBase(DeclarativeBase):
    metadata = MetaData()


class ClientCompanyRow(LedgerBase):
    __tablename__ = "client_companies"

    id = Column(String(36), primary_key=True)
    tenant_id = Column(String(36), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    tax_number = Column(String(50), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)


class DocumentRow(LedgerBase):
    __tablename__ = "documents"

    id = Column(String(36), primary_key=True)
    tenant_id = Column(String(36), nullable=False, index=True)
    client_company_id = Column(String(36), nullable=True)
    related_invoice_id = Column(String(36), nullable=True)
    is_deleted = Column(Boolean, nullable=False, default=False)


class DocumentRiskFeaturesRow(LedgerBase):
    __tablename__ = "document_risk_features"

    id = Column(String(36), primary_key=True)
    tenant_id = Column(String(36), nullable=False)
    document_id = Column(String(36), nullable=False, unique=True)
    features = Column(JSON, nullable=False, default=dict)
    risk_flags = Column(JSON, nullable=False, default=list)
    risk_score = Column(Float, nullable=True)
    generated_at = Column(DateTime(timezone=True), nullable=True)


class InvoiceRow(LedgerBase):
    __tablename__ = "invoices"

    id = Column(String(36), primary_key=True)
    tenant_id = Column(String(36), nullable=False, index=True)
    client_company_id = Column(String(36), nullable=True)
    external_id = Column(String(100), nullable=True)
    direction = Column(String(20), nullable=False, default="sale")
    counterparty_name = Column(String(255), nullable=True)
    counterparty_tax_number = Column(String(50), nullable=True)
    issue_date = Column(Date, nullable=False)
    due_date = Column(Date, nullable=True)
    total_amount = Column(Float, nullable=False)
    tax_amount = Column(Float, nullable=False, default=0.0)
    created_at = Column(DateTime(timezone=True), nullable=True)


class TransactionRow(LedgerBase):
    __tablename__ = "transactions"

    id = Column(String(36), primary_key=True)
    tenant_id = Column(String(36), nullable=False, index=True)
    client_company_id = Column(String(36), nullable=True)
    occurred_at = Column(DateTime(timezone=True), nullable=False)
    amount = Column(Float, nullable=False)
    counterparty_name = Column(String(255), nullable=True)
