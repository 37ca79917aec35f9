"""
Current-score upserts and append-only score history.

upsert_current_score is a single INSERT … ON CONFLICT DO UPDATE keyed by
(tenant, entity), so concurrent evaluations of the same entity settle on
the last writer without a read-modify-write race. PostgreSQL in production,
SQLite in the test-suite.
"""
from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, Union

from sqlalchemy import select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.ledger import DocumentRow
from app.models.risk import ClientCompanyRiskScoreRow, DocumentRiskScoreRow, RiskScoreHistoryRow
from app.schemas.risk import EntityType, RiskScoreHistoryEntry, Severity
from app.services.ledger_repository import as_utc

_SCORE_TABLES = {
    EntityType.DOCUMENT: (DocumentRiskScoreRow, "document_id"),
    EntityType.COMPANY: (ClientCompanyRiskScoreRow, "client_company_id"),
}

_INSERT_BY_DIALECT = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


@dataclass(frozen=True)
class CurrentScore:
    entity_type: EntityType
    entity_id: str
    score: float
    severity: str
    triggered_rule_codes: list[str]
    generated_at: datetime


@dataclass(frozen=True)
class DocumentScoreRecord:
    """A stored document score joined with its document's related invoice."""
    document_id: str
    score: float
    severity: str  # as stored; callers re-derive from score
    generated_at: datetime
    related_invoice_id: Optional[str] = None


class ScoreStore:

    def __init__(self, session: AsyncSession):
        self.session = session

    def _insert(self, table):
        dialect = self.session.get_bind().dialect.name
        try:
            return _INSERT_BY_DIALECT[dialect](table)
        except KeyError:
            raise RuntimeError(f"Score upsert not supported on dialect {dialect}") from None

    async def upsert_current_score(
        self,
        tenant_id: str,
        entity_type: Union[EntityType, str],
        entity_id: str,
        score: float,
        severity: Union[Severity, str],
        triggered_codes: list[str],
        generated_at: datetime,
    ) -> None:
        model, entity_column = _SCORE_TABLES[EntityType(entity_type)]
        now = datetime.now(timezone.utc)
        stmt = self._insert(model).values(
            id=str(uuid.uuid4()),
            tenant_id=tenant_id,
            score=score,
            severity=Severity(severity).value,
            triggered_rule_codes=list(triggered_codes),
            generated_at=generated_at,
            created_at=now,
            updated_at=now,
            **{entity_column: entity_id},
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["tenant_id", entity_column],
            set_={
                "score": stmt.excluded.score,
                "severity": stmt.excluded.severity,
                "triggered_rule_codes": stmt.excluded.triggered_rule_codes,
                "generated_at": stmt.excluded.generated_at,
                "updated_at": stmt.excluded.updated_at,
            },
        )
        await self.session.execute(stmt)

    async def append_history(
        self,
        tenant_id: str,
        entity_type: Union[EntityType, str],
        entity_id: str,
        score: float,
        severity: Union[Severity, str],
        created_at: datetime,
    ) -> None:
        self.session.add(RiskScoreHistoryRow(
            id=str(uuid.uuid4()),
            tenant_id=tenant_id,
            entity_type=EntityType(entity_type).value,
            entity_id=entity_id,
            score=score,
            severity=Severity(severity).value,
            created_at=created_at,
        ))
        await self.session.flush()

    async def commit(self) -> None:
        await self.session.commit()

    # ── Reads ──

    async def get_current_score(
        self, tenant_id: str, entity_type: Union[EntityType, str], entity_id: str,
    ) -> Optional[CurrentScore]:
        entity_type = EntityType(entity_type)
        model, entity_column = _SCORE_TABLES[entity_type]
        stmt = select(model).where(
            model.tenant_id == tenant_id,
            getattr(model, entity_column) == entity_id,
        )
        row = (await self.session.execute(stmt)).scalar_one_or_none()
        if row is None:
            return None
        return CurrentScore(
            entity_type=entity_type,
            entity_id=entity_id,
            score=float(row.score),
            severity=row.severity,
            triggered_rule_codes=list(row.triggered_rule_codes or []),
            generated_at=as_utc(row.generated_at),
        )

    async def list_history(
        self,
        tenant_id: str,
        entity_type: Union[EntityType, str],
        entity_id: str,
        since: Optional[datetime] = None,
    ) -> list[RiskScoreHistoryEntry]:
        entity_type = EntityType(entity_type)
        stmt = select(RiskScoreHistoryRow).where(
            RiskScoreHistoryRow.tenant_id == tenant_id,
            RiskScoreHistoryRow.entity_type == entity_type.value,
            RiskScoreHistoryRow.entity_id == entity_id,
        )
        if since is not None:
            stmt = stmt.where(RiskScoreHistoryRow.created_at >= since)
        stmt = stmt.order_by(RiskScoreHistoryRow.created_at, RiskScoreHistoryRow.id)

        rows = (await self.session.execute(stmt)).scalars().all()
        return [
            RiskScoreHistoryEntry(
                entity_type=entity_type,
                entity_id=r.entity_id,
                score=float(r.score),
                severity=Severity(r.severity),
                created_at=as_utc(r.created_at),
            )
            for r in rows
        ]

    async def list_document_scores(
        self, tenant_id: str, client_company_id: str, since: datetime,
    ) -> list[DocumentScoreRecord]:
        stmt = (
            select(DocumentRiskScoreRow, DocumentRow.related_invoice_id)
            .join(
                DocumentRow,
                (DocumentRow.id == DocumentRiskScoreRow.document_id)
                & (DocumentRow.tenant_id == DocumentRiskScoreRow.tenant_id),
            )
            .where(
                DocumentRiskScoreRow.tenant_id == tenant_id,
                DocumentRow.client_company_id == client_company_id,
                DocumentRow.is_deleted.is_(False),
                DocumentRiskScoreRow.generated_at >= since,
            )
            .order_by(DocumentRiskScoreRow.generated_at)
        )
        result = await self.session.execute(stmt)
        return [
            DocumentScoreRecord(
                document_id=row.document_id,
                score=float(row.score),
                severity=row.severity,
                generated_at=as_utc(row.generated_at),
                related_invoice_id=invoice_id,
            )
            for row, invoice_id in result.all()
        ]
