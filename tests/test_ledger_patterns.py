"""
Unit tests for invoice / counterparty detectors and the company fraud scan.
"""
from datetime import date, datetime, timedelta, timezone
from zoneinfo import ZoneInfo

from conftest import NOW, OTHER_TENANT, make_invoice

from app.schemas.ledger import CounterpartyEvent, TransactionRecord
from app.scoring import ledger_patterns
from app.scoring.ledger_patterns import (
    analyze_counterparty,
    detect_circular_transactions,
    detect_company_fraud_patterns,
    detect_date_manipulation,
    detect_unusual_vat_patterns,
    find_duplicate_invoices,
    is_duplicate_invoice,
)

TODAY = date(2026, 3, 18)


class TestCounterparty:
    def test_empty_history_is_new(self):
        result = analyze_counterparty([], 500.0, TODAY)
        assert result.is_new is True
        assert result.is_unusual is False

    def test_regular_counterparty(self):
        history = [CounterpartyEvent(TODAY - timedelta(days=d), 500.0) for d in (10, 40, 70)]
        result = analyze_counterparty(history, 520.0, TODAY)
        assert result.is_new is False
        assert result.is_unusual is False
        assert result.history_count == 3

    def test_dormant_reactivation(self):
        history = [CounterpartyEvent(TODAY - timedelta(days=120), 500.0)]
        result = analyze_counterparty(history, 500.0, TODAY)
        assert result.is_unusual is True
        assert result.reasons == ("dormant_reactivation",)

    def test_amount_far_above_mean(self):
        history = [CounterpartyEvent(TODAY - timedelta(days=5), 100.0)]
        result = analyze_counterparty(history, 350.0, TODAY)
        assert "abnormal_amount" in result.reasons

    def test_zscore_outlier(self):
        # mean 1000, stdev ~8 → 1100 is far beyond 3σ but below 3× mean
        history = [CounterpartyEvent(TODAY - timedelta(days=d), a)
                   for d, a in ((5, 990.0), (15, 1000.0), (25, 1010.0), (35, 1000.0))]
        result = analyze_counterparty(history, 1100.0, TODAY)
        assert result.reasons == ("abnormal_amount",)

    def test_accepts_datetime(self):
        history = [CounterpartyEvent(TODAY - timedelta(days=3), 100.0)]
        result = analyze_counterparty(history, 100.0, NOW)
        assert result.days_since_last_seen == 3


class TestDuplicateInvoices:
    def test_same_amount_ten_days_apart(self):
        target = make_invoice("i1", 1250.0, TODAY, counterparty_name="ACME Ltd")
        other = make_invoice("i2", 1250.0, TODAY - timedelta(days=10), counterparty_name="  acme ltd ")
        assert is_duplicate_invoice(target, [other]) is True

    def test_forty_days_apart_is_not(self):
        target = make_invoice("i1", 1250.0, TODAY)
        other = make_invoice("i2", 1250.0, TODAY - timedelta(days=40))
        assert is_duplicate_invoice(target, [other]) is False

    def test_counterparty_must_match_when_named(self):
        target = make_invoice("i1", 1250.0, TODAY, counterparty_name="ACME Ltd")
        other = make_invoice("i2", 1250.0, TODAY, counterparty_name="Globex")
        assert is_duplicate_invoice(target, [other]) is False

    def test_itself_and_other_tenants_ignored(self):
        target = make_invoice("i1", 1250.0, TODAY)
        foreign = make_invoice("i9", 1250.0, TODAY, tenant_id=OTHER_TENANT)
        assert find_duplicate_invoices(target, [target, foreign]) == []

    def test_amount_compared_to_the_cent(self):
        target = make_invoice("i1", 1250.00, TODAY)
        other = make_invoice("i2", 1250.01, TODAY)
        assert is_duplicate_invoice(target, [other]) is False


class TestCircularTransactions:
    def test_both_sides_above_volume(self):
        invoices = [
            make_invoice("s1", 12_000.0, TODAY, direction="sale", counterparty_tax_number="123"),
            make_invoice("p1", 11_000.0, TODAY, direction="purchase", counterparty_tax_number="123"),
        ]
        pattern = detect_circular_transactions(invoices)
        assert pattern.detected is True
        assert pattern.stats["counterparties"] == ["123"]

    def test_one_side_only(self):
        invoices = [make_invoice("s1", 50_000.0, TODAY, direction="sale", counterparty_name="Globex")]
        assert detect_circular_transactions(invoices).detected is False


class TestVatPatterns:
    def test_too_few_taxed_invoices(self):
        invoices = [make_invoice(f"i{n}", 150.0, TODAY, tax_amount=50.0) for n in range(4)]
        assert detect_unusual_vat_patterns(invoices).detected is False

    def test_standard_rates(self):
        # base 100, tax 20 → 20%
        invoices = [make_invoice(f"i{n}", 120.0, TODAY, tax_amount=20.0) for n in range(6)]
        assert detect_unusual_vat_patterns(invoices).detected is False

    def test_nonstandard_rates(self):
        # base 100, tax 13 → 13%
        invoices = [make_invoice(f"i{n}", 113.0, TODAY, tax_amount=13.0) for n in range(6)]
        pattern = detect_unusual_vat_patterns(invoices)
        assert pattern.detected is True
        assert pattern.stats["nonstandard_share"] == 1.0


class TestDateManipulation:
    def test_future_dated(self):
        invoices = [make_invoice("i1", 100.0, TODAY + timedelta(days=5))]
        pattern = detect_date_manipulation(invoices, NOW)
        assert pattern.detected is True
        assert pattern.severity == "high"

    def test_tomorrow_is_tolerated(self):
        invoices = [make_invoice("i1", 100.0, TODAY + timedelta(days=1))]
        assert detect_date_manipulation(invoices, NOW).detected is False

    def test_due_before_issue(self):
        invoices = [make_invoice("i1", 100.0, TODAY, due_date=TODAY - timedelta(days=3))]
        assert detect_date_manipulation(invoices, NOW).detected is True

    def test_bulk_backdating(self):
        old = TODAY - timedelta(days=200)
        invoices = [
            make_invoice(f"i{n}", 100.0, old, created_at=NOW) for n in range(2)
        ] + [
            make_invoice(f"j{n}", 100.0, TODAY, created_at=NOW) for n in range(3)
        ]
        pattern = detect_date_manipulation(invoices, NOW)
        assert pattern.detected is True
        assert pattern.stats["backdated"] == 2


class TestCompanyFraudScan:
    def _transactions(self):
        return [
            TransactionRecord(id=f"t{n}", occurred_at=datetime(2026, 3, 2 + n, 10, tzinfo=timezone.utc), amount=a)
            for n, a in enumerate([1000.0, 2000.0, 123.45, 234.56])
        ]

    def test_reports_every_detector(self):
        scan = detect_company_fraud_patterns(self._transactions(), [], NOW)
        assert {p.type for p in scan.patterns} == {
            "benfords_law", "round_number", "unusual_timing",
            "circular_transaction", "vat_pattern", "date_manipulation",
        }
        assert scan.detected("round_number") is True
        assert scan.detected_count == 1
        assert scan.degraded == ()

    def test_failing_detector_is_isolated(self, monkeypatch):
        def boom(invoices):
            raise RuntimeError("vat table unavailable")

        monkeypatch.setattr(ledger_patterns, "detect_unusual_vat_patterns", boom)
        scan = detect_company_fraud_patterns(self._transactions(), [], NOW)

        assert scan.degraded == ("vat_pattern",)
        assert "vat_pattern" not in {p.type for p in scan.patterns}
        assert scan.detected("round_number") is True

    def test_timing_uses_business_zone(self):
        # 07:00 UTC is 10:00 in Istanbul
        transactions = [
            TransactionRecord(id=f"t{n}", occurred_at=datetime(2026, 3, 2 + n, 7, tzinfo=timezone.utc), amount=120.0)
            for n in range(4)
        ]
        assert detect_company_fraud_patterns(transactions, [], NOW).detected("unusual_timing") is True
        scan = detect_company_fraud_patterns(transactions, [], NOW, ZoneInfo("Europe/Istanbul"))
        assert scan.detected("unusual_timing") is False
