"""
Per-signal failure isolation.

Every fraud signal is computed through `compute_signal` / `compute_signal_async`.
A failure never propagates: the outcome carries the neutral default and is
marked degraded, so callers can tell "computed False" from "defaulted".
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, Optional, TypeVar

import structlog

from app.core.metrics import DEGRADED_SIGNALS

logger = structlog.get_logger()

T = TypeVar("T")


@dataclass(frozen=True)
class SignalOutcome(Generic[T]):
    name: str
    value: T
    degraded: bool = False
    error: Optional[str] = None

    @classmethod
    def ok(cls, name: str, value: T) -> "SignalOutcome[T]":
        return cls(name=name, value=value)

    @classmethod
    def degraded_default(cls, name: str, default: T, error: str) -> "SignalOutcome[T]":
        return cls(name=name, value=default, degraded=True, error=error)


def _degrade(name: str, default: Any, exc: Exception, **context: Any) -> SignalOutcome:
    logger.warning(
        "fraud_signal_degraded",
        signal=name,
        error=str(exc),
        error_type=type(exc).__name__,
        **context,
    )
    DEGRADED_SIGNALS.labels(signal=name).inc()
    return SignalOutcome.degraded_default(name, default, str(exc))


def compute_signal(name: str, fn: Callable[[], T], default: T, **context: Any) -> SignalOutcome[T]:
    try:
        return SignalOutcome.ok(name, fn())
    except Exception as e:
        return _degrade(name, default, e, **context)


async def compute_signal_async(
    name: str,
    fn: Callable[[], Awaitable[T]],
    default: T,
    **context: Any,
) -> SignalOutcome[T]:
    try:
        return SignalOutcome.ok(name, await fn())
    except Exception as e:
        return _degrade(name, default, e, **context)


def degraded_names(*outcomes: SignalOutcome) -> list[str]:
    return sorted({o.name for o in outcomes if o.degraded})
