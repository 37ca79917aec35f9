"""
Tests for alert deduplication and event publication (SQLite).
"""
from datetime import timedelta

from conftest import NOW, TENANT
from sqlalchemy import func, select

from app.models.risk import RiskAlertRow
from app.schemas.risk import AlertRequest, Severity
from app.services.alert_dispatcher import AlertDispatcher


def _alert(document_id="doc-1", message="Document scored 75.00") -> AlertRequest:
    return AlertRequest(
        tenant_id=TENANT,
        client_company_id="co-1",
        document_id=document_id,
        type="RISK_THRESHOLD_EXCEEDED",
        title="High risk document",
        message=message,
        severity=Severity.HIGH,
    )


class _Clock:
    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now


async def _count(session) -> int:
    return (await session.execute(select(func.count()).select_from(RiskAlertRow))).scalar_one()


class TestAlertDispatcher:

    async def test_dedup_within_window(self, sql_session, settings):
        events = []

        async def publish(event):
            events.append(event)

        dispatcher = AlertDispatcher(sql_session, settings, publish=publish, clock=lambda: NOW)
        first = await dispatcher.dispatch(_alert())
        second = await dispatcher.dispatch(_alert(message="Document scored 90.00"))

        assert first == second
        assert await _count(sql_session) == 1
        row = await sql_session.get(RiskAlertRow, first)
        assert row.message == "Document scored 90.00"
        assert [e["deduplicated"] for e in events] == [False, True]
        assert events[0]["event_type"] == "RISK_ALERT_RAISED"

    async def test_new_alert_after_window(self, sql_session, settings):
        clock = _Clock(NOW)

        async def publish(event):
            pass

        dispatcher = AlertDispatcher(sql_session, settings, publish=publish, clock=clock)
        first = await dispatcher.dispatch(_alert())
        clock.now = NOW + timedelta(hours=25)
        second = await dispatcher.dispatch(_alert())

        assert first != second
        assert await _count(sql_session) == 2

    async def test_resolved_alert_not_reused(self, sql_session, settings):
        async def publish(event):
            pass

        dispatcher = AlertDispatcher(sql_session, settings, publish=publish, clock=lambda: NOW)
        first = await dispatcher.dispatch(_alert())
        row = await sql_session.get(RiskAlertRow, first)
        row.status = "resolved"
        await sql_session.commit()

        second = await dispatcher.dispatch(_alert())
        assert first != second

    async def test_company_alert_matches_null_document(self, sql_session, settings):
        async def publish(event):
            pass

        dispatcher = AlertDispatcher(sql_session, settings, publish=publish, clock=lambda: NOW)
        first = await dispatcher.dispatch(_alert(document_id=None))
        second = await dispatcher.dispatch(_alert(document_id=None))
        third = await dispatcher.dispatch(_alert(document_id="doc-9"))

        assert first == second
        assert third != first
