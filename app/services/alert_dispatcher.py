"""
Alert dispatcher for high-severity evaluations.

An open / in-progress alert for the same (tenant, company, document, type)
raised within the dedup window is refreshed instead of duplicated. Every write
is followed by a RISK_ALERT_RAISED event on Kafka.
"""
from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Optional

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import Settings, get_settings
from app.models.risk import RiskAlertRow
from app.schemas.risk import AlertRequest
from app.services.event_publisher import publish_alert_event

logger = structlog.get_logger()

OPEN_STATUSES = ("open", "in_progress")
ALERT_EVENT_TYPE = "RISK_ALERT_RAISED"


def _matches(column, value: Optional[str]):
    return column.is_(None) if value is None else column == value


class AlertDispatcher:

    def __init__(
        self,
        session: AsyncSession,
        settings: Optional[Settings] = None,
        publish: Callable[[dict[str, Any]], Awaitable[None]] = publish_alert_event,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.session = session
        self.settings = settings or get_settings()
        self._publish = publish
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    async def dispatch(self, alert: AlertRequest) -> str:
        now = self._clock()
        since = now - timedelta(hours=self.settings.alert_dedup_hours)

        stmt = (
            select(RiskAlertRow)
            .where(
                RiskAlertRow.tenant_id == alert.tenant_id,
                _matches(RiskAlertRow.client_company_id, alert.client_company_id),
                _matches(RiskAlertRow.document_id, alert.document_id),
                RiskAlertRow.type == alert.type,
                RiskAlertRow.status.in_(OPEN_STATUSES),
                RiskAlertRow.created_at >= since,
            )
            .order_by(RiskAlertRow.created_at.desc())
            .limit(1)
        )
        existing = (await self.session.execute(stmt)).scalar_one_or_none()

        if existing is not None:
            existing.title = alert.title
            existing.message = alert.message
            existing.severity = alert.severity.value
            existing.updated_at = now
            alert_id, deduplicated = existing.id, True
        else:
            alert_id, deduplicated = str(uuid.uuid4()), False
            self.session.add(RiskAlertRow(
                id=alert_id,
                tenant_id=alert.tenant_id,
                client_company_id=alert.client_company_id,
                document_id=alert.document_id,
                type=alert.type,
                title=alert.title,
                message=alert.message,
                severity=alert.severity.value,
                status="open",
                created_at=now,
                updated_at=now,
            ))
        await self.session.commit()

        logger.info(
            "risk_alert_dispatched",
            alert_id=alert_id,
            tenant_id=alert.tenant_id,
            client_company_id=alert.client_company_id,
            document_id=alert.document_id,
            alert_type=alert.type,
            deduplicated=deduplicated,
        )

        await self._publish({
            "event_type": ALERT_EVENT_TYPE,
            "alert_id": alert_id,
            "tenant_id": alert.tenant_id,
            "client_company_id": alert.client_company_id,
            "document_id": alert.document_id,
            "type": alert.type,
            "severity": alert.severity.value,
            "title": alert.title,
            "deduplicated": deduplicated,
            "raised_at": now.isoformat(),
        })
        return alert_id
