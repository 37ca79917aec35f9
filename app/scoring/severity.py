"""
Score → severity mapping, shared by the document and company evaluators.

  score <= 30  → low
  score <= 65  → medium
  score >  65  → high

Severity is never stored independently of the score it was derived from.
"""
from __future__ import annotations

from app.schemas.risk import Severity

SCORE_MIN = 0.0
SCORE_MAX = 100.0

LOW_MAX = 30.0
MEDIUM_MAX = 65.0


def clamp_score(value: float) -> float:
    return round(min(SCORE_MAX, max(SCORE_MIN, float(value))), 2)


def severity_of(score: float) -> Severity:
    if score <= LOW_MAX:
        return Severity.LOW
    if score <= MEDIUM_MAX:
        return Severity.MEDIUM
    return Severity.HIGH
