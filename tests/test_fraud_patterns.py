"""
Unit tests for the transaction-level detectors: Benford, round numbers, timing.
"""
import math
from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo

from app.scoring.fraud_patterns import (
    analyze_benfords_law,
    analyze_timing_patterns,
    detect_round_numbers,
    is_round_number_suspicious,
    leading_digit,
)


ISTANBUL = ZoneInfo("Europe/Istanbul")


def _local_office_hours_in_utc() -> list[datetime]:
    """Tue-Thu bookings at 10:00-11:30 Istanbul time, stored as UTC instants."""
    days = (3, 4, 5, 10, 11, 12, 17, 18, 19, 24, 25, 26)  # March 2026
    return [
        datetime(2026, 3, d, 10 + (i % 2), 30 * (i % 2), tzinfo=ISTANBUL).astimezone(timezone.utc)
        for i, d in enumerate(days)
    ]


def _benford_sample() -> list[float]:
    """~100 amounts whose leading digits follow Benford's distribution."""
    amounts = []
    for d in range(1, 10):
        count = round(100 * math.log10(1 + 1 / d))
        amounts.extend(d * 100 + k + 0.5 for k in range(count))
    return amounts


class TestLeadingDigit:
    def test_integer(self):
        assert leading_digit(4821) == 4

    def test_fraction(self):
        assert leading_digit(0.0072) == 7

    def test_negative(self):
        assert leading_digit(-315.2) == 3

    def test_zero(self):
        assert leading_digit(0) == 0


class TestBenford:
    def test_small_sample_never_violates(self):
        result = analyze_benfords_law([900.0 + i for i in range(19)])
        assert result.violation is False
        assert result.sample_size == 19

    def test_conforming_sample(self):
        result = analyze_benfords_law(_benford_sample())
        assert result.violation is False
        assert result.chi_square < 15.507

    def test_all_nines_violates(self):
        result = analyze_benfords_law([900.0 + i for i in range(30)])
        assert result.violation is True
        assert result.observed_distribution[9] == 100.0

    def test_zeros_and_garbage_dropped(self):
        amounts = [0, 0.0, float("nan"), float("inf"), None, "x"] + [1.5] * 5
        result = analyze_benfords_law(amounts)
        assert result.sample_size == 5
        assert result.violation is False

    def test_expected_distribution_reported(self):
        result = analyze_benfords_law(_benford_sample())
        assert result.expected_distribution[1] == 30.1


class TestRoundNumbers:
    def test_thousands_are_high(self):
        hits = detect_round_numbers([5000.0])
        assert hits[0].roundness == "high"

    def test_hundreds_are_medium(self):
        hits = detect_round_numbers([300.0])
        assert hits[0].roundness == "medium"

    def test_non_round_ignored(self):
        assert detect_round_numbers([123.45, 99.99, 50.0]) == []

    def test_float_noise_does_not_matter(self):
        hits = detect_round_numbers([0.1 + 0.2, 1000.0000000001])
        assert [h.roundness for h in hits] == ["high"]

    def test_thirty_percent_is_suspicious(self):
        amounts = [1000.0, 2000.0, 5000.0] + [123.45] * 7
        assert is_round_number_suspicious(amounts) is True

    def test_ten_percent_is_not(self):
        amounts = [1000.0] + [123.45] * 9
        assert is_round_number_suspicious(amounts) is False

    def test_empty_is_not(self):
        assert is_round_number_suspicious([]) is False


class TestTiming:
    def test_empty_input(self):
        assert analyze_timing_patterns([]).unusual_timing is False

    def test_business_hours_weekdays(self):
        moments = [datetime(2026, 3, d, 10, 0) for d in (2, 3, 4, 5, 9, 10, 11, 12)]
        assert analyze_timing_patterns(moments).unusual_timing is False

    def test_weekend_share(self):
        # 2026-03-07 / 08 are Saturday / Sunday
        moments = [datetime(2026, 3, 7, 11), datetime(2026, 3, 8, 11)] + \
            [datetime(2026, 3, d, 11) for d in (2, 3, 4, 5)]
        result = analyze_timing_patterns(moments)
        assert result.unusual_timing is True
        assert [p.type for p in result.patterns] == ["weekend"]

    def test_odd_hours_only_for_timed_values(self):
        dates_only = [date(2026, 3, d) for d in (2, 3, 4, 5, 9)]
        result = analyze_timing_patterns(dates_only)
        assert all(p.type != "odd_hours" for p in result.patterns)

    def test_odd_hours(self):
        moments = [datetime(2026, 3, d, 23, 30) for d in (2, 3)] + \
            [datetime(2026, 3, d, 10) for d in (4, 5, 9)]
        result = analyze_timing_patterns(moments)
        odd = [p for p in result.patterns if p.type == "odd_hours"]
        assert odd and odd[0].count == 2 and odd[0].percentage == 40.0

    def test_month_end_clustering(self):
        # February 2026 has 28 days → 26, 27, 28 are month end
        moments = [date(2026, 2, 26), date(2026, 2, 27), date(2026, 3, 30), date(2026, 3, 4)]
        result = analyze_timing_patterns(moments)
        assert "end_of_month" in [p.type for p in result.patterns]

    def test_utc_instants_judged_on_business_clock(self):
        moments = _local_office_hours_in_utc()
        assert all(m.hour < 9 for m in moments)  # 07:00-08:30 UTC
        assert analyze_timing_patterns(moments, ISTANBUL).unusual_timing is False

    def test_without_zone_utc_hours_are_used(self):
        result = analyze_timing_patterns(_local_office_hours_in_utc())
        assert [(p.type, p.count) for p in result.patterns] == [("odd_hours", 12)]

    def test_weekday_follows_business_clock(self):
        # Sunday 22:30 UTC is Monday 01:30 in Istanbul
        sunday_night = datetime(2026, 3, 8, 22, 30, tzinfo=timezone.utc)
        result = analyze_timing_patterns([sunday_night], ISTANBUL)
        assert [p.type for p in result.patterns] == ["odd_hours"]
