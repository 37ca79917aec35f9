"""
Rule-set scoring.

Orchestrates, for one entity:
  1. Predicate dispatch for every active rule (through a RuleRegistry)
  2. Weighted sum of the triggered rules
  3. Clamp to [0, 100]
  4. Severity from the clamped score

This is the only place a score is computed. The evaluation contexts below are
built by app.services.risk_evaluator and are read-only to the predicates.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any, Optional, Sequence

import structlog

from app.schemas.risk import DocumentRiskFeatures, RiskRule, Severity
from app.scoring.ledger_patterns import CounterpartyAnalysis, FraudScan
from app.scoring.severity import clamp_score, severity_of

if TYPE_CHECKING:
    from app.scoring.rules import RuleRegistry

logger = structlog.get_logger()


# ═══════════════════════════════════════════════════════════════
# Evaluation contexts
# ═══════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class DocumentSignals:
    """Fraud signals for one document. None means "not applicable" (no invoice / counterparty)."""
    is_duplicate_invoice: Optional[bool] = None
    counterparty: Optional[CounterpartyAnalysis] = None
    benfords_violation: bool = False
    round_number_suspicious: bool = False
    unusual_timing: bool = False
    degraded: tuple[str, ...] = ()


@dataclass(frozen=True)
class DocumentContext:
    features: DocumentRiskFeatures
    signals: DocumentSignals = field(default_factory=DocumentSignals)

    def feature(self, name: str) -> Any:
        return self.features.features.get(name)

    def has_flag(self, code: str) -> bool:
        return any(f.code == code for f in self.features.risk_flags)


@dataclass(frozen=True)
class ScoredDocument:
    document_id: str
    score: float
    severity: Severity
    generated_at: datetime
    related_invoice_id: Optional[str] = None


@dataclass(frozen=True)
class CompanyContext:
    client_company_id: str
    now: datetime
    documents: tuple[ScoredDocument, ...] = ()
    total_invoice_count: int = 0
    duplicate_invoice_numbers: tuple[str, ...] = ()
    fraud: FraudScan = field(default_factory=FraudScan)

    @property
    def high_risk_documents(self) -> list[ScoredDocument]:
        return [d for d in self.documents if d.severity == Severity.HIGH]

    @property
    def high_risk_document_count(self) -> int:
        return len(self.high_risk_documents)

    @property
    def high_risk_invoice_count(self) -> int:
        return len({d.related_invoice_id for d in self.high_risk_documents if d.related_invoice_id})

    @property
    def fraud_pattern_count(self) -> int:
        return self.fraud.detected_count


# ═══════════════════════════════════════════════════════════════
# Scoring
# ═══════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class RuleEvaluation:
    score: float
    severity: Severity
    triggered_rule_codes: list[str]


def evaluate_rules(rules: Sequence[RiskRule], registry: "RuleRegistry", context: Any) -> RuleEvaluation:
    """
    Sum the weights of every rule whose predicate holds, clamp, and bucket.
    Rules are visited in code order so the triggered list is deterministic.
    """
    total = 0.0
    triggered: list[str] = []

    for rule in sorted(rules, key=lambda r: r.code):
        if not rule.active:
            continue
        if registry.evaluate(rule, context):
            total += rule.weight
            triggered.append(rule.code)

    score = clamp_score(total)
    return RuleEvaluation(score=score, severity=severity_of(score), triggered_rule_codes=triggered)
