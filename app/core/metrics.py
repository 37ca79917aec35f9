"""
Prometheus collectors for the evaluation path.
Exposed through the /metrics ASGI app mounted in app.main.
"""
from prometheus_client import Counter, Histogram

EVALUATIONS = Counter(
    "risk_evaluations_total",
    "Completed risk evaluations",
    ["entity_type", "severity"],
)

EVALUATION_SECONDS = Histogram(
    "risk_evaluation_seconds",
    "Wall time of one risk evaluation including data fetches",
    ["entity_type"],
)

DEGRADED_SIGNALS = Counter(
    "risk_signal_degraded_total",
    "Fraud signals that fell back to their neutral default",
    ["signal"],
)
