"""
Invoice / counterparty fraud pattern detectors, plus the company-wide scan.

  1. Counterparty analysis   — new counterparty, dormant reactivation, abnormal amount
  2. Duplicate invoices      — same amount (+ counterparty) within ±30 days
  3. Circular transactions   — same counterparty on both the sales and purchase side
  4. Unusual VAT patterns    — effective rates outside the statutory set
  5. Date manipulation       — future-dated, due-before-issue, bulk backdating
  6. Company fraud scan      — runs every detector in isolation → FraudScan

All functions are pure: they only see the records handed to them.
"""
from __future__ import annotations

import statistics
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, tzinfo
from typing import Any, Iterable, Optional, Sequence, Union

from app.schemas.ledger import CounterpartyEvent, InvoiceRecord, TransactionRecord
from app.scoring.fraud_patterns import (
    BENFORD_HIGH_CHI_SQUARE,
    analyze_benfords_law,
    analyze_timing_patterns,
    detect_round_numbers,
    is_round_number_suspicious,
)
from app.scoring.signals import compute_signal


def _as_date(value: Union[date, datetime]) -> date:
    return value.date() if isinstance(value, datetime) else value


def normalize_counterparty_name(name: Optional[str]) -> Optional[str]:
    if not name:
        return None
    normalized = " ".join(name.split()).casefold()
    return normalized or None


def _cents(amount: float) -> int:
    return round(float(amount) * 100)


# ═══════════════════════════════════════════════════════════════
# 1. COUNTERPARTY ANALYSIS
# ═══════════════════════════════════════════════════════════════
DORMANCY_DAYS = 90
ABNORMAL_AMOUNT_MULTIPLE = 3.0
ABNORMAL_AMOUNT_ZSCORE = 3.0
MIN_HISTORY_FOR_ZSCORE = 3


@dataclass(frozen=True)
class CounterpartyAnalysis:
    is_new: bool
    is_unusual: bool
    reasons: tuple[str, ...] = ()
    history_count: int = 0
    average_amount: Optional[float] = None
    days_since_last_seen: Optional[int] = None


def analyze_counterparty(
    history: Sequence[CounterpartyEvent],
    amount: float,
    on_date: Union[date, datetime],
) -> CounterpartyAnalysis:
    """
    Classify a counterparty against this company's own history with it.
    `history` must not contain the event being analysed.
    """
    events = [e for e in history if isinstance(e.occurred_on, date)]
    if not events:
        return CounterpartyAnalysis(is_new=True, is_unusual=False)

    today = _as_date(on_date)
    last_seen = max(_as_date(e.occurred_on) for e in events)
    days_since = (today - last_seen).days

    amounts = [abs(float(e.amount)) for e in events]
    mean = statistics.fmean(amounts)
    current = abs(float(amount))

    reasons = []
    if days_since > DORMANCY_DAYS:
        reasons.append("dormant_reactivation")

    abnormal = mean > 0 and current > mean * ABNORMAL_AMOUNT_MULTIPLE
    if not abnormal and len(amounts) >= MIN_HISTORY_FOR_ZSCORE:
        stdev = statistics.stdev(amounts)
        abnormal = stdev > 0 and (current - mean) / stdev > ABNORMAL_AMOUNT_ZSCORE
    if abnormal:
        reasons.append("abnormal_amount")

    return CounterpartyAnalysis(
        is_new=False,
        is_unusual=bool(reasons),
        reasons=tuple(reasons),
        history_count=len(events),
        average_amount=round(mean, 2),
        days_since_last_seen=days_since,
    )


# ═══════════════════════════════════════════════════════════════
# 2. DUPLICATE INVOICES
#    Same tenant, different id, same amount (to the cent),
#    same counterparty when the target names one, issue dates ±window.
# ═══════════════════════════════════════════════════════════════
DUPLICATE_WINDOW_DAYS = 30


def find_duplicate_invoices(
    target: InvoiceRecord,
    candidates: Iterable[InvoiceRecord],
    window_days: int = DUPLICATE_WINDOW_DAYS,
) -> list[InvoiceRecord]:
    target_cents = _cents(target.total_amount)
    target_name = normalize_counterparty_name(target.counterparty_name)
    target_date = _as_date(target.issue_date)

    duplicates = []
    for c in candidates:
        if c.id == target.id or c.tenant_id != target.tenant_id:
            continue
        if _cents(c.total_amount) != target_cents:
            continue
        if target_name and normalize_counterparty_name(c.counterparty_name) != target_name:
            continue
        if abs((_as_date(c.issue_date) - target_date).days) > window_days:
            continue
        duplicates.append(c)
    return duplicates


def is_duplicate_invoice(
    target: InvoiceRecord,
    candidates: Iterable[InvoiceRecord],
    window_days: int = DUPLICATE_WINDOW_DAYS,
) -> bool:
    return bool(find_duplicate_invoices(target, candidates, window_days))


# ═══════════════════════════════════════════════════════════════
# Company-level patterns
# ═══════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class FraudPattern:
    type: str
    detected: bool
    severity: str = "low"  # low | medium | high
    stats: dict[str, Any] = field(default_factory=dict)


# ── 3. Circular transactions ──
CIRCULAR_MIN_VOLUME = 10_000.0


def _counterparty_key(inv: InvoiceRecord) -> Optional[str]:
    if inv.counterparty_tax_number:
        return inv.counterparty_tax_number.strip()
    return normalize_counterparty_name(inv.counterparty_name)


def detect_circular_transactions(invoices: Sequence[InvoiceRecord]) -> FraudPattern:
    """A counterparty that both buys from and sells to the company in volume."""
    volume: dict[str, dict[str, float]] = defaultdict(lambda: {"sale": 0.0, "purchase": 0.0})
    for inv in invoices:
        key = _counterparty_key(inv)
        if key is None or inv.direction not in ("sale", "purchase"):
            continue
        volume[key][inv.direction] += abs(float(inv.total_amount))

    circular = sorted(
        key for key, v in volume.items()
        if v["sale"] > CIRCULAR_MIN_VOLUME and v["purchase"] > CIRCULAR_MIN_VOLUME
    )
    return FraudPattern(
        type="circular_transaction",
        detected=bool(circular),
        severity="high" if circular else "low",
        stats={"counterparties": circular},
    )


# ── 4. Unusual VAT patterns ──
STANDARD_VAT_RATES = (0.0, 0.01, 0.08, 0.10, 0.18, 0.20)
VAT_RATE_TOLERANCE = 0.005
VAT_MAX_EFFECTIVE_RATE = 0.25
VAT_NONSTANDARD_SHARE = 0.3
VAT_MIN_INVOICES = 5


def detect_unusual_vat_patterns(invoices: Sequence[InvoiceRecord]) -> FraudPattern:
    taxed = [
        inv for inv in invoices
        if inv.tax_amount and inv.tax_amount > 0 and inv.total_amount - inv.tax_amount > 0
    ]
    if len(taxed) < VAT_MIN_INVOICES:
        return FraudPattern(type="vat_pattern", detected=False, stats={"taxed_invoices": len(taxed)})

    total_tax = sum(float(inv.tax_amount) for inv in taxed)
    total_base = sum(float(inv.total_amount - inv.tax_amount) for inv in taxed)
    effective_rate = total_tax / total_base

    nonstandard = 0
    for inv in taxed:
        rate = float(inv.tax_amount) / float(inv.total_amount - inv.tax_amount)
        if min(abs(rate - s) for s in STANDARD_VAT_RATES) > VAT_RATE_TOLERANCE:
            nonstandard += 1
    nonstandard_share = nonstandard / len(taxed)

    detected = effective_rate > VAT_MAX_EFFECTIVE_RATE or nonstandard_share > VAT_NONSTANDARD_SHARE
    return FraudPattern(
        type="vat_pattern",
        detected=detected,
        severity="medium" if detected else "low",
        stats={
            "taxed_invoices": len(taxed),
            "effective_rate": round(effective_rate, 4),
            "nonstandard_share": round(nonstandard_share, 4),
        },
    )


# ── 5. Date manipulation ──
FUTURE_TOLERANCE_DAYS = 1
BACKDATING_DAYS = 90
BACKDATED_SHARE = 0.2
MIN_INVOICES_FOR_BACKDATING = 5


def detect_date_manipulation(invoices: Sequence[InvoiceRecord], now: datetime) -> FraudPattern:
    horizon = _as_date(now) + timedelta(days=FUTURE_TOLERANCE_DAYS)

    future_dated = [inv.id for inv in invoices if _as_date(inv.issue_date) > horizon]
    due_before_issue = [
        inv.id for inv in invoices
        if inv.due_date is not None and _as_date(inv.due_date) < _as_date(inv.issue_date)
    ]
    backdated = [
        inv.id for inv in invoices
        if inv.created_at is not None
        and (_as_date(inv.created_at) - _as_date(inv.issue_date)).days > BACKDATING_DAYS
    ]
    bulk_backdating = (
        len(invoices) >= MIN_INVOICES_FOR_BACKDATING
        and len(backdated) / len(invoices) > BACKDATED_SHARE
    )

    detected = bool(future_dated or due_before_issue or bulk_backdating)
    return FraudPattern(
        type="date_manipulation",
        detected=detected,
        severity="high" if future_dated else ("medium" if detected else "low"),
        stats={
            "future_dated": len(future_dated),
            "due_before_issue": len(due_before_issue),
            "backdated": len(backdated),
        },
    )


# ═══════════════════════════════════════════════════════════════
# 6. COMPANY FRAUD SCAN
# ═══════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class FraudScan:
    patterns: tuple[FraudPattern, ...] = ()
    degraded: tuple[str, ...] = ()

    def detected(self, pattern_type: str) -> bool:
        return any(p.detected for p in self.patterns if p.type == pattern_type)

    @property
    def detected_count(self) -> int:
        return sum(1 for p in self.patterns if p.detected)


def _benford_pattern(amounts: Sequence[float]) -> FraudPattern:
    result = analyze_benfords_law(amounts)
    severity = "low"
    if result.violation:
        severity = "high" if result.chi_square > BENFORD_HIGH_CHI_SQUARE else "medium"
    return FraudPattern(
        type="benfords_law",
        detected=result.violation,
        severity=severity,
        stats={"chi_square": result.chi_square, "sample_size": result.sample_size},
    )


def _round_number_pattern(amounts: Sequence[float]) -> FraudPattern:
    hits = detect_round_numbers(amounts)
    ratio = len(hits) / len(amounts) if amounts else 0.0
    detected = is_round_number_suspicious(amounts)
    return FraudPattern(
        type="round_number",
        detected=detected,
        severity=("high" if ratio > 0.5 else "medium") if detected else "low",
        stats={"round_count": len(hits), "ratio": round(ratio, 4)},
    )


def _timing_pattern(transactions: Sequence[TransactionRecord], tz: Optional[tzinfo] = None) -> FraudPattern:
    result = analyze_timing_patterns([t.occurred_at for t in transactions], tz)
    peak = max((p.percentage for p in result.patterns), default=0.0)
    severity = "high" if peak > 50 else "medium" if peak > 30 else "low"
    return FraudPattern(
        type="unusual_timing",
        detected=result.unusual_timing,
        severity=severity,
        stats={"patterns": [p.type for p in result.patterns], "peak_percentage": peak},
    )


def detect_company_fraud_patterns(
    transactions: Sequence[TransactionRecord],
    invoices: Sequence[InvoiceRecord],
    now: datetime,
    tz: Optional[tzinfo] = None,
    **log_context: Any,
) -> FraudScan:
    """
    Run every company-level detector. A failing detector is reported as
    degraded and contributes no pattern; the others still run.
    """
    amounts = [t.amount for t in transactions]
    outcomes = [
        compute_signal("benfords_law", lambda: _benford_pattern(amounts), None, **log_context),
        compute_signal("round_number", lambda: _round_number_pattern(amounts), None, **log_context),
        compute_signal("unusual_timing", lambda: _timing_pattern(transactions, tz), None, **log_context),
        compute_signal("circular_transaction", lambda: detect_circular_transactions(invoices), None, **log_context),
        compute_signal("vat_pattern", lambda: detect_unusual_vat_patterns(invoices), None, **log_context),
        compute_signal("date_manipulation", lambda: detect_date_manipulation(invoices, now), None, **log_context),
    ]
    return FraudScan(
        patterns=tuple(o.value for o in outcomes if o.value is not None),
        degraded=tuple(o.name for o in outcomes if o.degraded),
    )
