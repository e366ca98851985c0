"""
Tests for TheftPatternAnalyzer: frequency, diversity, injected response similarity.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from backend_ciphergenix.config import Settings
from backend_ciphergenix.detection.models import ThreatLevel
from backend_ciphergenix.theft.analyzer import QueryRecord, TheftPatternAnalyzer, risk_level_for

T0 = 1_700_000_000.0


@pytest.fixture
def theft_settings() -> Settings:
    return Settings(test_mode=True, theft_window_seconds=60.0, theft_max_frequency=1.0)


def _burst(client="scraper", n=120, unique=2):
    """n queries within one minute cycling over `unique` distinct inputs."""
    return [QueryRecord(client, "fraud-v3", f"q{i % unique}", T0 + i * 0.5) for i in range(n)]


class _FixedSimilarity:
    def __init__(self, value):
        self.value = value

    def correlation(self, records):
        return self.value


def test_empty_log_is_zero_low(theft_settings):
    result = TheftPatternAnalyzer(theft_settings).analyze([])
    assert result.query_count == 0
    assert result.theft_probability == 0.0
    assert result.risk_level is ThreatLevel.LOW


def test_repetitive_burst_without_similarity(theft_settings):
    """Saturated frequency and low diversity alone stay just under the alert threshold."""
    analyzer = TheftPatternAnalyzer(theft_settings)
    result = analyzer.analyze(_burst())
    assert result.frequency == pytest.approx(2.0)
    assert result.diversity == pytest.approx(2 / 120)
    assert result.response_correlation == 0.0
    assert result.theft_probability == pytest.approx(0.4 + 0.3 * (1 - 2 / 120))
    assert result.risk_level is ThreatLevel.HIGH
    assert analyzer.is_alert(result) is False


def test_burst_with_correlated_responses_alerts(theft_settings):
    analyzer = TheftPatternAnalyzer(theft_settings, similarity=_FixedSimilarity(1.0))
    result = analyzer.analyze(_burst())
    assert result.risk_level is ThreatLevel.CRITICAL
    assert analyzer.is_alert(result) is True
    assert result.client_id == "scraper"
    assert result.model_id == "fraud-v3"


def test_slow_diverse_traffic_is_low(theft_settings):
    start = datetime(2026, 1, 1, tzinfo=timezone.utc)
    records = [
        QueryRecord("analyst", "fraud-v3", f"q{i}", start + timedelta(hours=i)) for i in range(10)
    ]
    result = TheftPatternAnalyzer(theft_settings).analyze(records)
    assert result.diversity == 1.0
    assert result.frequency == pytest.approx(10 / (9 * 3600))
    assert result.risk_level is ThreatLevel.LOW


def test_failing_similarity_counts_as_zero(theft_settings):
    class _Broken:
        def correlation(self, records):
            raise RuntimeError("similarity service down")

    result = TheftPatternAnalyzer(theft_settings, similarity=_Broken()).analyze(_burst())
    assert result.response_correlation == 0.0


def test_analyze_by_client(theft_settings):
    records = _burst("scraper") + [QueryRecord("app", "fraud-v3", "unique-1", T0)]
    results = TheftPatternAnalyzer(theft_settings).analyze_by_client(records)
    assert set(results) == {"app", "scraper"}
    assert results["scraper"].theft_probability > results["app"].theft_probability
    assert results["app"].query_count == 1


@pytest.mark.parametrize(
    "p,level",
    [(0.0, ThreatLevel.LOW), (0.4, ThreatLevel.LOW), (0.41, ThreatLevel.MEDIUM), (0.61, ThreatLevel.HIGH), (0.81, ThreatLevel.CRITICAL)],
)
def test_risk_levels(p, level):
    assert risk_level_for(p) is level
