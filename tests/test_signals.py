"""
Tests for per-signal failure isolation.
"""
from app.core.errors import TransientDependencyFailure
from app.scoring.signals import SignalOutcome, compute_signal, compute_signal_async, degraded_names


def _fail():
    raise TransientDependencyFailure("lookup timed out")


class TestComputeSignal:

    def test_value_passes_through(self):
        outcome = compute_signal("round_number", lambda: True, False)
        assert outcome == SignalOutcome(name="round_number", value=True)

    def test_failure_yields_default(self):
        outcome = compute_signal("benfords_law", _fail, False, tenant_id="t")
        assert outcome.value is False
        assert outcome.degraded is True
        assert outcome.error == "lookup timed out"

    async def test_async_failure_yields_default(self):
        async def fetch():
            _fail()

        outcome = await compute_signal_async("counterparty", fetch, None)
        assert outcome.value is None
        assert outcome.degraded is True


class TestDegradedNames:

    def test_only_degraded_sorted_and_unique(self):
        outcomes = [
            compute_signal("unusual_timing", _fail, False),
            compute_signal("round_number", lambda: True, False),
            compute_signal("benfords_law", _fail, False),
            compute_signal("benfords_law", _fail, False),
        ]
        assert degraded_names(*outcomes) == ["benfords_law", "unusual_timing"]

    def test_none_degraded(self):
        assert degraded_names(compute_signal("round_number", lambda: False, False)) == []
