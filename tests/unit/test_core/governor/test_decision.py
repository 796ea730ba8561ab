"""Tests for the degradation decision table."""

import pytest

from marketdata_mcp.config import GovernorConfig
from marketdata_mcp.core.governor.decision import decide
from marketdata_mcp.core.governor.models import Decision, QualityAssessment, Request
from marketdata_mcp.core.governor.quality import assess

REQUEST = Request("AAPL price")
CONTENT = "price: $190.12"


def qa(score=100, signal=True, error=False):
    return QualityAssessment(score=score, has_domain_signal=signal, is_error_page=error)


class TestEmptyRow:
    """Row 1: empty request or content."""

    def test_empty_request(self):
        """Test an empty request yields EMPTY."""
        assert decide(Request("  "), CONTENT, qa(), 4500) == Decision.EMPTY

    def test_empty_content(self):
        """Test empty content yields EMPTY even at low capacity."""
        assert decide(REQUEST, "", qa(), 10) == Decision.EMPTY


class TestEmergencyFloor:
    """Row 2: remaining below the emergency floor."""

    @pytest.mark.parametrize("score", [0, 45, 70, 100])
    def test_no_signal_always_skips(self, score):
        """Test missing domain signal yields SKIP regardless of score."""
        assert decide(REQUEST, CONTENT, qa(score=score, signal=False), 99) == Decision.SKIP

    def test_signal_yields_emergency(self):
        """Test domain signal yields EMERGENCY."""
        assert decide(REQUEST, CONTENT, qa(), 99) == Decision.EMERGENCY

    def test_negative_remaining(self):
        """Test an overshot ledger behaves like the emergency floor."""
        assert decide(REQUEST, CONTENT, qa(), -20) == Decision.EMERGENCY


class TestLowFloor:
    """Row 3: remaining below the low floor."""

    def test_error_page_skips(self):
        """Test error pages are skipped."""
        assert decide(REQUEST, CONTENT, qa(error=True), 299) == Decision.SKIP

    def test_otherwise_key_metrics(self):
        """Test everything else is KEY_METRICS."""
        assert decide(REQUEST, CONTENT, qa(score=20, signal=False), 100) == Decision.KEY_METRICS


class TestScoreBands:
    """Row 4: score bands with plenty of capacity."""

    @pytest.mark.parametrize(
        "score,expected",
        [
            (0, Decision.SKIP),
            (30, Decision.SKIP),
            (31, Decision.EMERGENCY),
            (50, Decision.EMERGENCY),
            (51, Decision.KEY_METRICS),
            (70, Decision.KEY_METRICS),
            (71, Decision.SUMMARY),
            (85, Decision.SUMMARY),
            (86, Decision.FILTERED),
            (100, Decision.FILTERED),
        ],
    )
    def test_band_boundaries(self, score, expected):
        """Test each band's inclusive boundaries."""
        assert decide(REQUEST, CONTENT, qa(score=score), 4500) == expected

    def test_error_page_skips(self):
        """Test error pages skip even with a high score."""
        assert decide(REQUEST, CONTENT, qa(score=100, error=True), 4500) == Decision.SKIP

    def test_tagged_request_prefers_minimal(self):
        """Test zone-tagged requests get MINIMAL in the 51-70 band."""
        tagged = Request("AAPL price", tag="us")
        assert decide(tagged, CONTENT, qa(score=60), 4500) == Decision.MINIMAL

    def test_long_content_summarized(self):
        """Test content over max_content_length is summarized instead of filtered."""
        config = GovernorConfig(max_content_length=20)
        long_content = "price: $190.12 " * 5
        assert decide(REQUEST, long_content, qa(score=100), 4500, config) == Decision.SUMMARY

    @pytest.mark.parametrize(
        "score,expected",
        [
            (20, Decision.SKIP),
            (40, Decision.EMERGENCY),
            (60, Decision.KEY_METRICS),
            (80, Decision.SUMMARY),
        ],
    )
    def test_long_content_keeps_lower_bands(self, score, expected):
        """Test long content only demotes FILTERED; lower bands are unchanged."""
        config = GovernorConfig(max_content_length=20)
        long_content = "price: $190.12 " * 5
        assert decide(REQUEST, long_content, qa(score=score), 4500, config) == expected

    def test_custom_floors(self):
        """Test floors follow the config."""
        config = GovernorConfig(emergency_floor=1000, low_floor=2000)
        assert decide(REQUEST, CONTENT, qa(), 999, config) == Decision.EMERGENCY
        assert decide(REQUEST, CONTENT, qa(), 1999, config) == Decision.KEY_METRICS


class TestScenarios:
    """End-to-end decision scenarios on real assessments."""

    def test_high_quality_plenty_of_capacity_is_filtered(self):
        """Test clean priced content at full capacity is FILTERED."""
        content = "price: $123.45, market cap: $10B"
        decision = decide(Request("XYZ current price"), content, assess(content), 5000)
        assert decision == Decision.FILTERED

    def test_no_currency_near_empty_budget_skips(self):
        """Test content without signal at remaining 50 is SKIP."""
        content = "Company overview and history of the business"
        assert decide(REQUEST, content, assess(content), 50) == Decision.SKIP

    @pytest.mark.parametrize("remaining", [50, 250, 4500])
    def test_not_found_page_skips_at_any_capacity(self, remaining):
        """Test a 404 page is SKIP at every capacity."""
        content = "404 Not Found"
        assert decide(REQUEST, content, assess(content), remaining) == Decision.SKIP

    def test_deterministic(self):
        """Test the same inputs always give the same decision."""
        content = "price: $1, eps 3"
        results = {decide(REQUEST, content, assess(content), 600) for _ in range(20)}
        assert len(results) == 1
