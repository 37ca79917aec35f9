"""
Read-only access to the accounting platform's ledger tables.

Every query filters by tenant_id; an entity that exists under another tenant
is reported exactly like a missing one (NotFoundError).
"""
from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from typing import Awaitable, Callable, Optional, TypeVar

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import NotFoundError
from app.models.ledger import (
    ClientCompanyRow,
    DocumentRiskFeaturesRow,
    DocumentRow,
    InvoiceRow,
    TransactionRow,
)
from app.schemas.ledger import (
    ClientCompanyRecord,
    CounterpartyEvent,
    DocumentRecord,
    InvoiceRecord,
    TransactionRecord,
)
from app.schemas.risk import DocumentRiskFeatures, RiskFlag
from app.scoring.ledger_patterns import normalize_counterparty_name

logger = structlog.get_logger()

AMOUNT_TOLERANCE = 0.005

T = TypeVar("T")


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite hands back naive datetimes; everything in the engine is UTC-aware."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def _invoice_record(row: InvoiceRow) -> InvoiceRecord:
    return InvoiceRecord(
        id=row.id,
        tenant_id=row.tenant_id,
        client_company_id=row.client_company_id,
        issue_date=row.issue_date,
        total_amount=float(row.total_amount),
        tax_amount=float(row.tax_amount or 0.0),
        external_id=row.external_id,
        direction=row.direction,
        counterparty_name=row.counterparty_name,
        counterparty_tax_number=row.counterparty_tax_number,
        due_date=row.due_date,
        created_at=as_utc(row.created_at),
    )


class LedgerRepository:

    def __init__(self, session: AsyncSession):
        self.session = session

    async def isolated(self, read: Callable[[], Awaitable[T]]) -> T:
        """
        Run a best-effort read inside a SAVEPOINT. On PostgreSQL a failed
        statement aborts the enclosing transaction; rolling back to the
        savepoint keeps the session usable for the score writes that follow.
        """
        async with self.session.begin_nested():
            return await read()

    # ── Companies ──

    async def get_company(self, tenant_id: str, client_company_id: str) -> ClientCompanyRecord:
        stmt = select(ClientCompanyRow).where(
            ClientCompanyRow.id == client_company_id,
            ClientCompanyRow.tenant_id == tenant_id,
        )
        row = (await self.session.execute(stmt)).scalar_one_or_none()
        if row is None:
            raise NotFoundError("Client company", client_company_id)
        return ClientCompanyRecord(
            id=row.id, tenant_id=row.tenant_id, name=row.name,
            tax_number=row.tax_number, is_active=row.is_active,
        )

    async def list_active_companies(self, tenant_id: str) -> list[ClientCompanyRecord]:
        stmt = (
            select(ClientCompanyRow)
            .where(ClientCompanyRow.tenant_id == tenant_id, ClientCompanyRow.is_active.is_(True))
            .order_by(ClientCompanyRow.id)
        )
        rows = (await self.session.execute(stmt)).scalars().all()
        return [
            ClientCompanyRecord(id=r.id, tenant_id=r.tenant_id, name=r.name, tax_number=r.tax_number)
            for r in rows
        ]

    # ── Documents ──

    async def get_document(self, tenant_id: str, document_id: str) -> DocumentRecord:
        stmt = select(DocumentRow).where(
            DocumentRow.id == document_id,
            DocumentRow.tenant_id == tenant_id,
            DocumentRow.is_deleted.is_(False),
        )
        row = (await self.session.execute(stmt)).scalar_one_or_none()
        if row is None:
            raise NotFoundError("Document", document_id)

        invoice = None
        if row.related_invoice_id:
            invoice = await self.get_invoice(tenant_id, row.related_invoice_id)
        return DocumentRecord(
            id=row.id,
            tenant_id=row.tenant_id,
            client_company_id=row.client_company_id,
            related_invoice=invoice,
        )

    async def get_document_features(self, tenant_id: str, document_id: str) -> Optional[DocumentRiskFeatures]:
        stmt = select(DocumentRiskFeaturesRow).where(
            DocumentRiskFeaturesRow.document_id == document_id,
            DocumentRiskFeaturesRow.tenant_id == tenant_id,
        )
        row = (await self.session.execute(stmt)).scalar_one_or_none()
        if row is None:
            return None
        return DocumentRiskFeatures(
            tenant_id=row.tenant_id,
            document_id=row.document_id,
            features=row.features or {},
            risk_flags=[RiskFlag.model_validate(f) for f in (row.risk_flags or [])],
            risk_score=row.risk_score,
            generated_at=as_utc(row.generated_at),
        )

    # ── Invoices ──

    async def get_invoice(self, tenant_id: str, invoice_id: str) -> Optional[InvoiceRecord]:
        stmt = select(InvoiceRow).where(InvoiceRow.id == invoice_id, InvoiceRow.tenant_id == tenant_id)
        row = (await self.session.execute(stmt)).scalar_one_or_none()
        return _invoice_record(row) if row is not None else None

    async def list_invoices(self, tenant_id: str, client_company_id: str, since: date) -> list[InvoiceRecord]:
        stmt = (
            select(InvoiceRow)
            .where(
                InvoiceRow.tenant_id == tenant_id,
                InvoiceRow.client_company_id == client_company_id,
                InvoiceRow.issue_date >= since,
            )
            .order_by(InvoiceRow.issue_date, InvoiceRow.id)
        )
        return [_invoice_record(r) for r in (await self.session.execute(stmt)).scalars().all()]

    async def list_duplicate_candidates(self, invoice: InvoiceRecord, window_days: int) -> list[InvoiceRecord]:
        """Same-tenant invoices with (nearly) the same amount issued within ±window_days."""
        stmt = select(InvoiceRow).where(
            InvoiceRow.tenant_id == invoice.tenant_id,
            InvoiceRow.id != invoice.id,
            InvoiceRow.total_amount.between(
                invoice.total_amount - AMOUNT_TOLERANCE, invoice.total_amount + AMOUNT_TOLERANCE
            ),
            InvoiceRow.issue_date.between(
                invoice.issue_date - timedelta(days=window_days),
                invoice.issue_date + timedelta(days=window_days),
            ),
        )
        return [_invoice_record(r) for r in (await self.session.execute(stmt)).scalars().all()]

    async def counterparty_history(self, invoice: InvoiceRecord) -> list[CounterpartyEvent]:
        """
        Earlier dealings of the invoice's company with the same counterparty
        (matched on the normalized name), excluding the invoice itself.
        """
        name = normalize_counterparty_name(invoice.counterparty_name)
        if name is None or invoice.client_company_id is None:
            return []
        stmt = select(InvoiceRow).where(
            InvoiceRow.tenant_id == invoice.tenant_id,
            InvoiceRow.client_company_id == invoice.client_company_id,
            InvoiceRow.id != invoice.id,
            InvoiceRow.counterparty_name.is_not(None),
            InvoiceRow.issue_date <= invoice.issue_date,
        )
        rows = (await self.session.execute(stmt)).scalars().all()
        return [
            CounterpartyEvent(occurred_on=r.issue_date, amount=float(r.total_amount))
            for r in rows
            if normalize_counterparty_name(r.counterparty_name) == name
        ]

    # ── Transactions ──

    async def list_transactions(
        self, tenant_id: str, client_company_id: str, since: datetime,
    ) -> list[TransactionRecord]:
        stmt = (
            select(TransactionRow)
            .where(
                TransactionRow.tenant_id == tenant_id,
                TransactionRow.client_company_id == client_company_id,
                TransactionRow.occurred_at >= since,
            )
            .order_by(TransactionRow.occurred_at)
        )
        rows = (await self.session.execute(stmt)).scalars().all()
        return [
            TransactionRecord(
                id=r.id,
                occurred_at=as_utc(r.occurred_at),
                amount=float(r.amount),
                counterparty_name=r.counterparty_name,
            )
            for r in rows
        ]
