"""
Shared fixtures: in-memory collaborators for the evaluator, plus a SQLite
(aiosqlite) session for the SQL-backed stores.
"""
from datetime import date, datetime, timezone
from typing import Optional

import pytest
from sqlalchemy import event
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.core.config import Settings
from app.core.errors import NotFoundError, TransientDependencyFailure
from app.models import risk  # noqa: F401  registers the engine-owned tables
from app.models.database import Base
from app.models.ledger import LedgerBase
from app.schemas.ledger import ClientCompanyRecord, CounterpartyEvent, DocumentRecord, InvoiceRecord
from app.schemas.risk import EntityType, RiskRule, RiskScoreHistoryEntry, Severity
from app.scoring.ledger_patterns import normalize_counterparty_name
from app.services.rule_catalog import merge_rules
from app.services.score_store import CurrentScore

NOW = datetime(2026, 3, 18, 12, 0, tzinfo=timezone.utc)  # a Wednesday
TENANT = "tenant-a"
OTHER_TENANT = "tenant-b"


def make_rule(code: str, weight: float, scope: str = "document", tenant_id: Optional[str] = None,
              active: bool = True, **config) -> RiskRule:
    return RiskRule(
        id=f"{tenant_id or 'global'}-{code}",
        tenant_id=tenant_id,
        code=code,
        scope=scope,
        weight=weight,
        active=active,
        config=config,
    )


def make_invoice(id: str, amount: float, issue_date: date, tenant_id: str = TENANT,
                 company_id: str = "co-1", **kwargs) -> InvoiceRecord:
    return InvoiceRecord(
        id=id,
        tenant_id=tenant_id,
        client_company_id=company_id,
        issue_date=issue_date,
        total_amount=amount,
        **kwargs,
    )


# ═══════════════════════════════════════════════════════════════
# In-memory collaborators
# ═══════════════════════════════════════════════════════════════

class FakeRuleCatalog:

    def __init__(self, rules=()):
        self.rules = list(rules)

    async def load_active_rules(self, tenant_id, scope=None):
        visible = [r for r in self.rules if scope is None or r.scope == scope]
        return merge_rules(
            (r for r in visible if r.tenant_id is None),
            (r for r in visible if r.tenant_id == tenant_id),
        )


class FakeLedger:

    def __init__(self):
        self.companies: dict[str, ClientCompanyRecord] = {}
        self.documents: dict[str, DocumentRecord] = {}
        self.features = {}
        self.invoices: list[InvoiceRecord] = []
        self.transactions = {}  # (tenant, company) → [TransactionRecord]
        self.fail_transactions = False

    def add_company(self, id, tenant_id=TENANT, is_active=True):
        self.companies[id] = ClientCompanyRecord(id=id, tenant_id=tenant_id, name=id, is_active=is_active)

    def add_document(self, id, features, tenant_id=TENANT, company_id="co-1", invoice=None):
        self.documents[id] = DocumentRecord(
            id=id, tenant_id=tenant_id, client_company_id=company_id, related_invoice=invoice,
        )
        self.features[id] = features
        if invoice is not None:
            self.invoices.append(invoice)

    async def isolated(self, read):
        return await read()

    async def get_company(self, tenant_id, client_company_id):
        company = self.companies.get(client_company_id)
        if company is None or company.tenant_id != tenant_id:
            raise NotFoundError("Client company", client_company_id)
        return company

    async def list_active_companies(self, tenant_id):
        return sorted(
            (c for c in self.companies.values() if c.tenant_id == tenant_id and c.is_active),
            key=lambda c: c.id,
        )

    async def get_document(self, tenant_id, document_id):
        document = self.documents.get(document_id)
        if document is None or document.tenant_id != tenant_id:
            raise NotFoundError("Document", document_id)
        return document

    async def get_document_features(self, tenant_id, document_id):
        features = self.features.get(document_id)
        if features is None or features.tenant_id != tenant_id:
            return None
        return features

    async def list_invoices(self, tenant_id, client_company_id, since):
        return [
            i for i in self.invoices
            if i.tenant_id == tenant_id and i.client_company_id == client_company_id and i.issue_date >= since
        ]

    async def list_duplicate_candidates(self, invoice, window_days):
        return [i for i in self.invoices if i.tenant_id == invoice.tenant_id]

    async def counterparty_history(self, invoice):
        name = normalize_counterparty_name(invoice.counterparty_name)
        return [
            CounterpartyEvent(occurred_on=i.issue_date, amount=i.total_amount)
            for i in self.invoices
            if i.id != invoice.id
            and i.client_company_id == invoice.client_company_id
            and normalize_counterparty_name(i.counterparty_name) == name
            and i.issue_date <= invoice.issue_date
        ]

    async def list_transactions(self, tenant_id, client_company_id, since):
        if self.fail_transactions:
            raise TransientDependencyFailure("ledger read timed out")
        return list(self.transactions.get((tenant_id, client_company_id), []))


class FakeScoreStore:

    def __init__(self):
        self.current: dict[tuple, CurrentScore] = {}
        self.history: list[tuple[str, RiskScoreHistoryEntry]] = []
        self.document_scores = {}  # (tenant, company) → [DocumentScoreRecord]
        self.commits = 0

    async def upsert_current_score(self, tenant_id, entity_type, entity_id, score, severity,
                                   triggered_codes, generated_at):
        entity_type = EntityType(entity_type)
        self.current[(tenant_id, entity_type, entity_id)] = CurrentScore(
            entity_type=entity_type,
            entity_id=entity_id,
            score=score,
            severity=Severity(severity).value,
            triggered_rule_codes=list(triggered_codes),
            generated_at=generated_at,
        )

    async def append_history(self, tenant_id, entity_type, entity_id, score, severity, created_at):
        self.history.append((tenant_id, RiskScoreHistoryEntry(
            entity_type=EntityType(entity_type),
            entity_id=entity_id,
            score=score,
            severity=Severity(severity),
            created_at=created_at,
        )))

    async def commit(self):
        self.commits += 1

    async def get_current_score(self, tenant_id, entity_type, entity_id):
        return self.current.get((tenant_id, EntityType(entity_type), entity_id))

    async def list_history(self, tenant_id, entity_type, entity_id, since=None):
        entries = [
            h for t, h in self.history
            if t == tenant_id and h.entity_type == EntityType(entity_type) and h.entity_id == entity_id
            and (since is None or h.created_at >= since)
        ]
        return sorted(entries, key=lambda h: h.created_at)

    async def list_document_scores(self, tenant_id, client_company_id, since):
        return [
            d for d in self.document_scores.get((tenant_id, client_company_id), [])
            if d.generated_at >= since
        ]


class FakeAlerts:

    def __init__(self):
        self.dispatched = []

    async def dispatch(self, alert):
        self.dispatched.append(alert)
        return f"alert-{len(self.dispatched)}"


# ═══════════════════════════════════════════════════════════════
# Fixtures
# ═══════════════════════════════════════════════════════════════

@pytest.fixture
def settings():
    return Settings(auth_enabled=False, kafka_enabled=False)


@pytest.fixture
def ledger():
    return FakeLedger()


@pytest.fixture
def scores():
    return FakeScoreStore()


@pytest.fixture
def alerts():
    return FakeAlerts()


@pytest.fixture
async def sql_session():
    engine = create_async_engine("sqlite+aiosqlite://", poolclass=StaticPool)

    # let SQLAlchemy own BEGIN so SAVEPOINTs behave as on PostgreSQL
    @event.listens_for(engine.sync_engine, "connect")
    def _no_driver_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
        await conn.run_sync(LedgerBase.metadata.create_all)

    session_factory = async_sessionmaker(engine, expire_on_commit=False)
    async with session_factory() as session:
        yield session
    await engine.dispose()
