"""
Transaction-level fraud pattern detectors.

Pure, stateless analyzers over a company's transaction amounts / timestamps:
  1. Benford's Law — leading-digit chi-square test
  2. Round numbers  — exact multiples of 100 / 1000
  3. Timing         — odd hours, weekends, month-end clustering

Each detector returns a neutral (no violation) result when the input is too
small or malformed for a statistically meaningful judgment; none of them raise
on data shape.
"""
from __future__ import annotations

import calendar
import math
from dataclasses import dataclass, field
from datetime import date, datetime, tzinfo
from typing import Iterable, Optional, Sequence, Union


# ═══════════════════════════════════════════════════════════════
# 1. BENFORD'S LAW
#    P(d) = log10(1 + 1/d), d = 1..9
#    Chi-square with 8 degrees of freedom, critical value at α=0.05
# ═══════════════════════════════════════════════════════════════
BENFORD_MIN_SAMPLE = 20
BENFORD_CRITICAL_CHI_SQUARE = 15.507
BENFORD_HIGH_CHI_SQUARE = 25.0

BENFORD_EXPECTED: dict[int, float] = {d: math.log10(1 + 1 / d) for d in range(1, 10)}


@dataclass(frozen=True)
class BenfordResult:
    violation: bool
    chi_square: float
    sample_size: int
    expected_distribution: dict[int, float] = field(default_factory=dict)  # percent
    observed_distribution: dict[int, float] = field(default_factory=dict)  # percent


def leading_digit(value: float) -> int:
    """First significant digit of |value|; 0 for zero / non-finite input."""
    x = abs(value)
    if x == 0 or not math.isfinite(x):
        return 0
    return int(f"{x:e}"[0])


def _usable_amounts(amounts: Iterable) -> list[float]:
    usable = []
    for a in amounts:
        try:
            x = abs(float(a))
        except (TypeError, ValueError):
            continue
        if x > 0 and math.isfinite(x):
            usable.append(x)
    return usable


def analyze_benfords_law(amounts: Iterable[float]) -> BenfordResult:
    values = _usable_amounts(amounts)
    n = len(values)
    if n < BENFORD_MIN_SAMPLE:
        return BenfordResult(violation=False, chi_square=0.0, sample_size=n)

    counts = {d: 0 for d in range(1, 10)}
    for v in values:
        counts[leading_digit(v)] += 1

    chi_square = 0.0
    for d, p in BENFORD_EXPECTED.items():
        expected = n * p
        chi_square += (counts[d] - expected) ** 2 / expected

    return BenfordResult(
        violation=chi_square > BENFORD_CRITICAL_CHI_SQUARE,
        chi_square=round(chi_square, 4),
        sample_size=n,
        expected_distribution={d: round(p * 100, 2) for d, p in BENFORD_EXPECTED.items()},
        observed_distribution={d: round(c / n * 100, 2) for d, c in counts.items()},
    )


# ═══════════════════════════════════════════════════════════════
# 2. ROUND NUMBERS
#    high   → exact multiple of 1000, amount >= 1000
#    medium → exact multiple of 100,  amount >= 100
#    Evaluated on integer cents so float noise (0.1 + 0.2) never counts.
# ═══════════════════════════════════════════════════════════════
ROUND_NUMBER_SUSPICIOUS_RATIO = 0.3


@dataclass(frozen=True)
class RoundNumberHit:
    amount: float
    roundness: str  # high | medium


def _roundness(amount: float) -> Optional[str]:
    try:
        cents = round(abs(float(amount)) * 100)
    except (TypeError, ValueError, OverflowError):
        return None
    if cents == 0:
        return None
    if cents % 100_000 == 0:
        return "high"
    if cents % 10_000 == 0:
        return "medium"
    return None


def detect_round_numbers(amounts: Iterable[float]) -> list[RoundNumberHit]:
    hits = []
    for amount in amounts:
        roundness = _roundness(amount)
        if roundness:
            hits.append(RoundNumberHit(amount=float(amount), roundness=roundness))
    return hits


def round_number_ratio(amounts: Sequence[float]) -> float:
    if not amounts:
        return 0.0
    return len(detect_round_numbers(amounts)) / len(amounts)


def is_round_number_suspicious(
    amounts: Sequence[float],
    ratio: float = ROUND_NUMBER_SUSPICIOUS_RATIO,
) -> bool:
    return len(amounts) > 0 and round_number_ratio(amounts) >= ratio


# ═══════════════════════════════════════════════════════════════
# 3. TIMING PATTERNS
#    odd_hours    → before 09:00 or from 18:00, share > 30%
#    weekend      → Saturday / Sunday,         share > 20%
#    end_of_month → last 3 days of the month,  share > 40%
#    The hour check only applies to values carrying a time of day.
# ═══════════════════════════════════════════════════════════════
BUSINESS_HOURS = (9, 18)
ODD_HOURS_THRESHOLD_PCT = 30.0
WEEKEND_THRESHOLD_PCT = 20.0
MONTH_END_THRESHOLD_PCT = 40.0
MONTH_END_DAYS = 3


@dataclass(frozen=True)
class TimingPattern:
    type: str  # odd_hours | weekend | end_of_month
    count: int
    percentage: float


@dataclass(frozen=True)
class TimingResult:
    unusual_timing: bool
    patterns: tuple[TimingPattern, ...] = ()


def _is_month_end(d: date) -> bool:
    days_in_month = calendar.monthrange(d.year, d.month)[1]
    return d.day > days_in_month - MONTH_END_DAYS


def _local(moment: Union[date, datetime], tz: Optional[tzinfo]) -> Union[date, datetime]:
    if tz is not None and isinstance(moment, datetime) and moment.tzinfo is not None:
        return moment.astimezone(tz)
    return moment


def analyze_timing_patterns(
    moments: Sequence[Union[date, datetime]],
    tz: Optional[tzinfo] = None,
) -> TimingResult:
    """
    Hours, weekdays and month ends are judged on the business-local clock:
    aware datetimes are converted to tz first. Naive values are taken as local.
    """
    valid = [_local(m, tz) for m in moments if isinstance(m, date)]
    if not valid:
        return TimingResult(unusual_timing=False)

    timed = [m for m in valid if isinstance(m, datetime)]
    odd_hours = sum(1 for m in timed if not (BUSINESS_HOURS[0] <= m.hour < BUSINESS_HOURS[1]))
    weekend = sum(1 for m in valid if m.weekday() >= 5)
    month_end = sum(1 for m in valid if _is_month_end(m))

    patterns = []
    if timed:
        pct = odd_hours / len(timed) * 100
        if pct > ODD_HOURS_THRESHOLD_PCT:
            patterns.append(TimingPattern("odd_hours", odd_hours, round(pct, 2)))

    total = len(valid)
    pct = weekend / total * 100
    if pct > WEEKEND_THRESHOLD_PCT:
        patterns.append(TimingPattern("weekend", weekend, round(pct, 2)))

    pct = month_end / total * 100
    if pct > MONTH_END_THRESHOLD_PCT:
        patterns.append(TimingPattern("end_of_month", month_end, round(pct, 2)))

    return TimingResult(unusual_timing=bool(patterns), patterns=tuple(patterns))
