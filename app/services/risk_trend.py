"""
Risk trend view over the score history (read only).

The window is split in two halves; the direction compares the average score of
the recent half against the earlier half:
  diff >  5 → increasing
  diff < -5 → decreasing
  otherwise (or either half empty) → stable
"""
from __future__ import annotations

import statistics
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional, Sequence, Union

from app.core.errors import NotFoundError
from app.schemas.risk import EntityType, RiskScoreHistoryEntry, RiskTrend, TrendDirection

TREND_TOLERANCE = 5.0
DEFAULT_TREND_DAYS = 90


def trend_direction(
    current: Sequence[float],
    prior: Sequence[float],
    tolerance: float = TREND_TOLERANCE,
) -> TrendDirection:
    if not current or not prior:
        return TrendDirection.STABLE
    diff = statistics.fmean(current) - statistics.fmean(prior)
    if diff > tolerance:
        return TrendDirection.INCREASING
    if diff < -tolerance:
        return TrendDirection.DECREASING
    return TrendDirection.STABLE


def summarize_trend(
    entity_type: EntityType,
    entity_id: str,
    current_score: float,
    history: Sequence[RiskScoreHistoryEntry],
    since: datetime,
    now: datetime,
) -> RiskTrend:
    midpoint = since + (now - since) / 2
    prior = [h.score for h in history if h.created_at < midpoint]
    recent = [h.score for h in history if h.created_at >= midpoint]
    scores = [h.score for h in history] or [current_score]

    return RiskTrend(
        entity_type=entity_type,
        entity_id=entity_id,
        history=list(history),
        current_score=current_score,
        previous_score=history[-2].score if len(history) >= 2 else None,
        trend=trend_direction(recent, prior),
        average_score=round(statistics.fmean(scores), 2),
        min_score=min(scores),
        max_score=max(scores),
    )


class RiskTrendService:

    def __init__(self, scores, clock: Optional[Callable[[], datetime]] = None):
        self.scores = scores
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    async def get_risk_trend(
        self,
        tenant_id: str,
        entity_type: Union[EntityType, str],
        entity_id: str,
        days: int = DEFAULT_TREND_DAYS,
    ) -> RiskTrend:
        entity_type = EntityType(entity_type)
        current = await self.scores.get_current_score(tenant_id, entity_type, entity_id)
        if current is None:
            raise NotFoundError(f"{entity_type.value.capitalize()} risk score", entity_id)

        now = self._clock()
        since = now - timedelta(days=days)
        history = await self.scores.list_history(tenant_id, entity_type, entity_id, since=since)
        return summarize_trend(entity_type, entity_id, current.score, history, since, now)
