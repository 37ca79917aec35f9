"""
Document + client-company risk evaluation.

Orchestrates, per evaluation:
  1. Active rules for the scope (RuleCatalog)
  2. Context building (features / ledger reads / fraud signals)
  3. Rule-set scoring (app.scoring.engine.evaluate_rules)
  4. Current-score upsert + one history entry (ScoreStore)
  5. Alert for high severity (AlertDispatcher, optional)

Core inputs (rules, features, the entity itself) propagate their errors.
Fraud signals never do: each is isolated and falls back to a neutral default,
reported in degraded_signals.
"""
from __future__ import annotations

import asyncio
from collections import Counter
from datetime import datetime, timedelta, timezone, tzinfo
from typing import Callable, Optional
from zoneinfo import ZoneInfo

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import Settings, get_settings
from app.core.errors import MissingFeaturesError
from app.core.metrics import EVALUATION_SECONDS, EVALUATIONS
from app.schemas.ledger import DocumentRecord, InvoiceRecord, TransactionRecord
from app.schemas.risk import (
    AlertRequest,
    ClientCompanyRiskScore,
    DocumentRiskFeatures,
    DocumentRiskScore,
    EntityType,
    RiskRule,
    RuleScope,
    Severity,
)
from app.scoring.engine import (
    CompanyContext,
    DocumentContext,
    DocumentSignals,
    RuleEvaluation,
    ScoredDocument,
    evaluate_rules,
)
from app.scoring.fraud_patterns import (
    analyze_benfords_law,
    analyze_timing_patterns,
    is_round_number_suspicious,
)
from app.scoring.ledger_patterns import (
    FraudScan,
    analyze_counterparty,
    detect_company_fraud_patterns,
    is_duplicate_invoice,
)
from app.scoring.rules import MANY_HIGH_RISK_DOCS_CODE, company_rules, document_rules
from app.scoring.severity import severity_of
from app.scoring.signals import SignalOutcome, compute_signal, compute_signal_async, degraded_names
from app.services.alert_dispatcher import AlertDispatcher
from app.services.ledger_repository import LedgerRepository
from app.services.rule_catalog import RuleCatalog
from app.services.score_store import ScoreStore

logger = structlog.get_logger()

THRESHOLD_ALERT_TYPE = "RISK_THRESHOLD_EXCEEDED"
TRANSACTION_SIGNALS = ("benfords_law", "round_number", "unusual_timing")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _transaction_signals(
    transactions: list[TransactionRecord], tz: Optional[tzinfo] = None, **log_context
) -> tuple[SignalOutcome[bool], SignalOutcome[bool], SignalOutcome[bool]]:
    """CPU-bound; run via asyncio.to_thread."""
    amounts = [t.amount for t in transactions]
    moments = [t.occurred_at for t in transactions]
    return (
        compute_signal("benfords_law", lambda: analyze_benfords_law(amounts).violation, False, **log_context),
        compute_signal("round_number", lambda: is_round_number_suspicious(amounts), False, **log_context),
        compute_signal("unusual_timing", lambda: analyze_timing_patterns(moments, tz).unusual_timing, False, **log_context),
    )


class RiskRuleEngine:

    def __init__(
        self,
        rules,
        ledger,
        scores,
        alerts=None,
        settings: Optional[Settings] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.rules = rules
        self.ledger = ledger
        self.scores = scores
        self.alerts = alerts
        self.settings = settings or get_settings()
        self._clock = clock or _utcnow
        self.business_tz = ZoneInfo(self.settings.business_timezone)

    # ═══════════════════════════════════════════════════════════════
    # DOCUMENT
    # ═══════════════════════════════════════════════════════════════

    async def evaluate_document(
        self,
        tenant_id: str,
        document_id: str,
        features: Optional[DocumentRiskFeatures] = None,
    ) -> DocumentRiskScore:
        with EVALUATION_SECONDS.labels(entity_type=EntityType.DOCUMENT.value).time():
            rules = await self.rules.load_active_rules(tenant_id, RuleScope.DOCUMENT)

            if features is None:
                features = await self.ledger.get_document_features(tenant_id, document_id)
                if features is None:
                    raise MissingFeaturesError(document_id)
            elif features.tenant_id != tenant_id or features.document_id != document_id:
                raise MissingFeaturesError(document_id)

            document = await self.ledger.get_document(tenant_id, document_id)
            signals = await self._document_signals(tenant_id, document)

            evaluation = evaluate_rules(rules, document_rules, DocumentContext(features, signals))
            generated_at = self._clock()
            await self._persist(tenant_id, EntityType.DOCUMENT, document_id, evaluation, generated_at)

        result = DocumentRiskScore(
            tenant_id=tenant_id,
            document_id=document_id,
            score=evaluation.score,
            severity=evaluation.severity,
            triggered_rule_codes=evaluation.triggered_rule_codes,
            generated_at=generated_at,
            degraded_signals=list(signals.degraded),
        )
        self._log_complete(EntityType.DOCUMENT, tenant_id, document_id, evaluation, signals.degraded)

        if evaluation.severity == Severity.HIGH and self.alerts is not None:
            await self.alerts.dispatch(AlertRequest(
                tenant_id=tenant_id,
                client_company_id=document.client_company_id,
                document_id=document_id,
                type=THRESHOLD_ALERT_TYPE,
                title="High risk document",
                message=(
                    f"Document scored {evaluation.score:.2f} "
                    f"(rules: {', '.join(evaluation.triggered_rule_codes) or 'none'})"
                ),
                severity=evaluation.severity,
            ))
        return result

    async def _document_signals(self, tenant_id: str, document: DocumentRecord) -> DocumentSignals:
        log_context = {"tenant_id": tenant_id, "document_id": document.id}
        degraded: list[str] = []
        benford = round_numbers = timing = False

        # ── Company transaction statistics ──
        if document.client_company_id:
            since = self._clock() - timedelta(days=self.settings.transaction_lookback_days)
            fetched = await compute_signal_async(
                "transactions",
                lambda: self.ledger.isolated(
                    lambda: self.ledger.list_transactions(tenant_id, document.client_company_id, since)
                ),
                None,
                **log_context,
            )
            if fetched.degraded:
                degraded.extend(TRANSACTION_SIGNALS)
            else:
                outcomes = await asyncio.to_thread(
                    _transaction_signals, fetched.value, self.business_tz, **log_context,
                )
                benford, round_numbers, timing = (o.value for o in outcomes)
                degraded.extend(degraded_names(*outcomes))

        # ── Invoice-level signals ──
        duplicate = counterparty = None
        invoice = document.related_invoice
        if invoice is not None:
            dup = await compute_signal_async(
                "duplicate_invoice",
                lambda: self.ledger.isolated(lambda: self._is_duplicate(invoice)),
                False,
                **log_context,
            )
            duplicate = dup.value
            if dup.degraded:
                degraded.append(dup.name)

            if invoice.counterparty_name:
                cp = await compute_signal_async(
                    "counterparty",
                    lambda: self.ledger.isolated(lambda: self._counterparty(invoice)),
                    None,
                    **log_context,
                )
                counterparty = cp.value
                if cp.degraded:
                    degraded.append(cp.name)

        return DocumentSignals(
            is_duplicate_invoice=duplicate,
            counterparty=counterparty,
            benfords_violation=benford,
            round_number_suspicious=round_numbers,
            unusual_timing=timing,
            degraded=tuple(sorted(degraded)),
        )

    async def _is_duplicate(self, invoice: InvoiceRecord) -> bool:
        window = self.settings.duplicate_window_days
        candidates = await self.ledger.list_duplicate_candidates(invoice, window)
        return is_duplicate_invoice(invoice, candidates, window)

    async def _counterparty(self, invoice: InvoiceRecord):
        history = await self.ledger.counterparty_history(invoice)
        return analyze_counterparty(history, invoice.total_amount, invoice.issue_date)

    # ═══════════════════════════════════════════════════════════════
    # CLIENT COMPANY
    # ═══════════════════════════════════════════════════════════════

    async def evaluate_client_company(self, tenant_id: str, client_company_id: str) -> ClientCompanyRiskScore:
        with EVALUATION_SECONDS.labels(entity_type=EntityType.COMPANY.value).time():
            rules = await self.rules.load_active_rules(tenant_id, RuleScope.COMPANY)
            await self.ledger.get_company(tenant_id, client_company_id)

            context = await self._company_context(tenant_id, client_company_id, rules)
            evaluation = evaluate_rules(rules, company_rules, context)
            generated_at = self._clock()
            await self._persist(tenant_id, EntityType.COMPANY, client_company_id, evaluation, generated_at)

        degraded = context.fraud.degraded
        result = ClientCompanyRiskScore(
            tenant_id=tenant_id,
            client_company_id=client_company_id,
            score=evaluation.score,
            severity=evaluation.severity,
            triggered_rule_codes=evaluation.triggered_rule_codes,
            generated_at=generated_at,
            degraded_signals=list(degraded),
        )
        self._log_complete(EntityType.COMPANY, tenant_id, client_company_id, evaluation, degraded)

        if evaluation.severity == Severity.HIGH and self.alerts is not None:
            await self.alerts.dispatch(AlertRequest(
                tenant_id=tenant_id,
                client_company_id=client_company_id,
                type=THRESHOLD_ALERT_TYPE,
                title="High risk client company",
                message=(
                    f"Client company scored {evaluation.score:.2f} "
                    f"(rules: {', '.join(evaluation.triggered_rule_codes) or 'none'})"
                ),
                severity=evaluation.severity,
            ))
        return result

    def company_window_days(self, rules: list[RiskRule]) -> int:
        configured = [
            r.config.get("days") for r in rules
            if r.code == MANY_HIGH_RISK_DOCS_CODE and r.config.get("days") is not None
        ]
        return max([self.settings.company_window_days, *configured])

    async def _company_context(self, tenant_id: str, client_company_id: str, rules: list[RiskRule]) -> CompanyContext:
        now = self._clock()
        window_start = now - timedelta(days=self.company_window_days(rules))
        lookback_start = min(window_start, now - timedelta(days=self.settings.transaction_lookback_days))
        log_context = {"tenant_id": tenant_id, "client_company_id": client_company_id}

        # ── Stored document scores (severity re-derived) ──
        documents = []
        for stored in await self.scores.list_document_scores(tenant_id, client_company_id, window_start):
            severity = severity_of(stored.score)
            if stored.severity != severity.value:
                logger.warning(
                    "severity_mismatch",
                    document_id=stored.document_id,
                    stored_severity=stored.severity,
                    derived_severity=severity.value,
                    score=stored.score,
                    **log_context,
                )
            documents.append(ScoredDocument(
                document_id=stored.document_id,
                score=stored.score,
                severity=severity,
                generated_at=stored.generated_at,
                related_invoice_id=stored.related_invoice_id,
            ))

        # ── Invoices ──
        invoices = await self.ledger.list_invoices(tenant_id, client_company_id, lookback_start.date())
        in_window = [inv for inv in invoices if inv.issue_date >= window_start.date()]
        external_ids = Counter(inv.external_id for inv in in_window if inv.external_id)
        duplicates = tuple(sorted(code for code, n in external_ids.items() if n > 1))

        # ── Fraud patterns ──
        fetched = await compute_signal_async(
            "transactions",
            lambda: self.ledger.isolated(
                lambda: self.ledger.list_transactions(tenant_id, client_company_id, lookback_start)
            ),
            None,
            **log_context,
        )
        scan = await asyncio.to_thread(
            detect_company_fraud_patterns, fetched.value or [], invoices, now, self.business_tz, **log_context,
        )
        if fetched.degraded:
            scan = FraudScan(
                patterns=tuple(p for p in scan.patterns if p.type not in TRANSACTION_SIGNALS),
                degraded=tuple(sorted(set(scan.degraded) | set(TRANSACTION_SIGNALS))),
            )

        return CompanyContext(
            client_company_id=client_company_id,
            now=now,
            documents=tuple(documents),
            total_invoice_count=len(in_window),
            duplicate_invoice_numbers=duplicates,
            fraud=scan,
        )

    # ═══════════════════════════════════════════════════════════════
    # Shared
    # ═══════════════════════════════════════════════════════════════

    async def _persist(
        self,
        tenant_id: str,
        entity_type: EntityType,
        entity_id: str,
        evaluation: RuleEvaluation,
        generated_at: datetime,
    ) -> None:
        await self.scores.upsert_current_score(
            tenant_id, entity_type, entity_id,
            evaluation.score, evaluation.severity, evaluation.triggered_rule_codes, generated_at,
        )
        await self.scores.append_history(
            tenant_id, entity_type, entity_id, evaluation.score, evaluation.severity, generated_at,
        )
        await self.scores.commit()

    def _log_complete(self, entity_type, tenant_id, entity_id, evaluation: RuleEvaluation, degraded) -> None:
        EVALUATIONS.labels(entity_type=entity_type.value, severity=evaluation.severity.value).inc()
        logger.info(
            "risk_evaluation_complete",
            entity_type=entity_type.value,
            tenant_id=tenant_id,
            entity_id=entity_id,
            score=evaluation.score,
            severity=evaluation.severity.value,
            triggered_rule_codes=evaluation.triggered_rule_codes,
            degraded_signals=list(degraded),
        )


def build_risk_engine(session: AsyncSession, settings: Optional[Settings] = None) -> RiskRuleEngine:
    """Wire the SQL-backed collaborators around one session."""
    settings = settings or get_settings()
    return RiskRuleEngine(
        rules=RuleCatalog(session),
        ledger=LedgerRepository(session),
        scores=ScoreStore(session),
        alerts=AlertDispatcher(session, settings),
        settings=settings,
    )
