"""
Rule predicate registries.

Each rule code maps to one predicate over an evaluation context. Unknown codes
go to the registry's fallback:
  document → true when the code is present in the feature record's risk_flags
  company  → false
"""
from __future__ import annotations

from datetime import timedelta
from typing import Any, Callable, Generic, TypeVar

from app.schemas.risk import RiskRule
from app.scoring.engine import CompanyContext, DocumentContext

C = TypeVar("C")
Predicate = Callable[[RiskRule, C], bool]


class RuleRegistry(Generic[C]):

    def __init__(self, name: str, fallback: Predicate):
        self.name = name
        self._fallback = fallback
        self._predicates: dict[str, Predicate] = {}

    def register(self, code: str) -> Callable[[Predicate], Predicate]:
        def decorator(fn: Predicate) -> Predicate:
            if code in self._predicates:
                raise ValueError(f"{self.name}: predicate for {code} already registered")
            self._predicates[code] = fn
            return fn
        return decorator

    def __contains__(self, code: str) -> bool:
        return code in self._predicates

    @property
    def codes(self) -> list[str]:
        return sorted(self._predicates)

    def evaluate(self, rule: RiskRule, context: C) -> bool:
        predicate = self._predicates.get(rule.code, self._fallback)
        return bool(predicate(rule, context))


def _config_value(rule: RiskRule, key: str, default: Any) -> Any:
    """Configured value, honouring explicit zeros; None / missing → default."""
    value = rule.config.get(key)
    return default if value is None else value


# ═══════════════════════════════════════════════════════════════
# DOCUMENT RULES
# ═══════════════════════════════════════════════════════════════

document_rules: RuleRegistry[DocumentContext] = RuleRegistry(
    "document",
    fallback=lambda rule, ctx: ctx.has_flag(rule.code),
)


def _feature_rule(code: str, feature: str) -> None:
    document_rules.register(code)(lambda rule, ctx: ctx.feature(feature) is True)


# ── Feature checks (produced upstream by feature extraction) ──
_feature_rule("INV_DUE_BEFORE_ISSUE", "dateInconsistency")
_feature_rule("INV_TOTAL_MISMATCH", "amountMismatch")
_feature_rule("VAT_RATE_INCONSISTENCY", "vatRateInconsistency")
_feature_rule("AMOUNT_DATE_INCONSISTENCY", "amountDateInconsistency")
_feature_rule("CHART_MISMATCH", "chartMismatch")
_feature_rule("INV_DUPLICATE_NUMBER", "duplicateInvoiceNumber")


@document_rules.register("INV_MISSING_TAX_NUMBER")
def _missing_tax_number(rule: RiskRule, ctx: DocumentContext) -> bool:
    # a duplicate number already explains the missing fields
    return ctx.feature("hasMissingFields") is True and ctx.feature("duplicateInvoiceNumber") is not True


@document_rules.register("DOC_PARSING_FAILED")
def _parsing_failed(rule: RiskRule, ctx: DocumentContext) -> bool:
    # an empty risk_flags list is a clean parse, not a failure
    return ctx.features.risk_score is None


# ── Fraud signals ──

@document_rules.register("INV_DUPLICATE_INVOICE")
def _duplicate_invoice(rule: RiskRule, ctx: DocumentContext) -> bool:
    return ctx.signals.is_duplicate_invoice is True


@document_rules.register("UNUSUAL_COUNTERPARTY")
def _unusual_counterparty(rule: RiskRule, ctx: DocumentContext) -> bool:
    cp = ctx.signals.counterparty
    return cp is not None and cp.is_unusual


@document_rules.register("NEW_COUNTERPARTY")
def _new_counterparty(rule: RiskRule, ctx: DocumentContext) -> bool:
    cp = ctx.signals.counterparty
    return cp is not None and cp.is_new


@document_rules.register("BENFORDS_LAW_VIOLATION")
def _benford(rule: RiskRule, ctx: DocumentContext) -> bool:
    return ctx.signals.benfords_violation


@document_rules.register("ROUND_NUMBER_SUSPICIOUS")
def _round_numbers(rule: RiskRule, ctx: DocumentContext) -> bool:
    return ctx.signals.round_number_suspicious


@document_rules.register("UNUSUAL_TIMING")
def _unusual_timing(rule: RiskRule, ctx: DocumentContext) -> bool:
    return ctx.signals.unusual_timing


# ═══════════════════════════════════════════════════════════════
# COMPANY RULES
#   Thresholds are read from rule.config; comparisons are strict (>).
# ═══════════════════════════════════════════════════════════════

company_rules: RuleRegistry[CompanyContext] = RuleRegistry(
    "company",
    fallback=lambda rule, ctx: False,
)

MANY_HIGH_RISK_DOCS_CODE = "COMP_MANY_HIGH_RISK_DOCS"
DEFAULT_HIGH_RISK_DOCS_THRESHOLD = 5
DEFAULT_HIGH_RISK_DOCS_DAYS = 90
DEFAULT_HIGH_RISK_RATIO = 0.3
DEFAULT_DUPLICATE_THRESHOLD = 3
DEFAULT_FRAUD_PATTERN_THRESHOLD = 3


@company_rules.register(MANY_HIGH_RISK_DOCS_CODE)
def _many_high_risk_docs(rule: RiskRule, ctx: CompanyContext) -> bool:
    threshold = _config_value(rule, "threshold", DEFAULT_HIGH_RISK_DOCS_THRESHOLD)
    days = _config_value(rule, "days", DEFAULT_HIGH_RISK_DOCS_DAYS)
    since = ctx.now - timedelta(days=days)
    in_period = sum(1 for d in ctx.high_risk_documents if d.generated_at >= since)
    return in_period > threshold


@company_rules.register("COMP_HIGH_RISK_RATIO")
def _high_risk_ratio(rule: RiskRule, ctx: CompanyContext) -> bool:
    if ctx.total_invoice_count == 0:
        return False
    threshold = _config_value(rule, "threshold", DEFAULT_HIGH_RISK_RATIO)
    return ctx.high_risk_invoice_count / ctx.total_invoice_count > threshold


@company_rules.register("COMP_FREQUENT_DUPLICATES")
def _frequent_duplicates(rule: RiskRule, ctx: CompanyContext) -> bool:
    threshold = _config_value(rule, "threshold", DEFAULT_DUPLICATE_THRESHOLD)
    return len(ctx.duplicate_invoice_numbers) > threshold


def _pattern_rule(code: str, pattern_type: str) -> None:
    company_rules.register(code)(lambda rule, ctx: ctx.fraud.detected(pattern_type))


_pattern_rule("COMP_BENFORDS_LAW_VIOLATION", "benfords_law")
_pattern_rule("COMP_CIRCULAR_TRANSACTIONS", "circular_transaction")
_pattern_rule("COMP_UNUSUAL_VAT_PATTERNS", "vat_pattern")
_pattern_rule("COMP_DATE_MANIPULATION", "date_manipulation")


@company_rules.register("COMP_HIGH_FRAUD_PATTERNS")
def _high_fraud_patterns(rule: RiskRule, ctx: CompanyContext) -> bool:
    threshold = _config_value(rule, "threshold", DEFAULT_FRAUD_PATTERN_THRESHOLD)
    return ctx.fraud_pattern_count > threshold
