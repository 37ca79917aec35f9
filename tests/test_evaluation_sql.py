"""
Document evaluation against the SQL-backed collaborators (SQLite via aiosqlite).
"""
from conftest import TENANT
from sqlalchemy import event, text

from app.models.ledger import ClientCompanyRow, DocumentRiskFeaturesRow, DocumentRow
from app.models.risk import RiskRuleRow
from app.schemas.risk import EntityType, Severity
from app.services.ledger_repository import LedgerRepository
from app.services.risk_evaluator import build_risk_engine
from app.services.score_store import ScoreStore


async def _seed(session):
    session.add_all([
        RiskRuleRow(tenant_id=None, scope="document", code="INV_DUE_BEFORE_ISSUE", weight=40, config={}),
        ClientCompanyRow(id="co-1", tenant_id=TENANT, name="Acme"),
        DocumentRow(id="doc-1", tenant_id=TENANT, client_company_id="co-1"),
        DocumentRiskFeaturesRow(
            id="f-1", tenant_id=TENANT, document_id="doc-1",
            features={"dateInconsistency": True}, risk_flags=[], risk_score=0.4,
        ),
    ])
    await session.commit()


class TestFailedLedgerRead:

    async def test_score_is_written_after_failed_read(self, sql_session, settings, monkeypatch):
        await _seed(sql_session)

        async def broken_read(self, tenant_id, client_company_id, since):
            await self.session.execute(text("SELECT amount FROM archived_transactions"))

        monkeypatch.setattr(LedgerRepository, "list_transactions", broken_read)

        savepoint_rollbacks = []
        event.listen(
            sql_session.bind.sync_engine, "rollback_savepoint",
            lambda conn, name, context: savepoint_rollbacks.append(name),
        )

        result = await build_risk_engine(sql_session, settings).evaluate_document(TENANT, "doc-1")

        assert result.score == 40.0
        assert result.severity == Severity.MEDIUM
        assert result.degraded_signals == ["benfords_law", "round_number", "unusual_timing"]
        assert len(savepoint_rollbacks) == 1

        store = ScoreStore(sql_session)
        current = await store.get_current_score(TENANT, EntityType.DOCUMENT, "doc-1")
        assert current.score == 40.0
        assert len(await store.list_history(TENANT, EntityType.DOCUMENT, "doc-1")) == 1

    async def test_successful_reads_release_their_savepoints(self, sql_session, settings):
        await _seed(sql_session)

        result = await build_risk_engine(sql_session, settings).evaluate_document(TENANT, "doc-1")

        assert result.degraded_signals == []
        assert result.triggered_rule_codes == ["INV_DUE_BEFORE_ISSUE"]
