# SPDX-License-Identifier: Apache-2.0

"""
Unit tests for gap analytics and the analytics service.
"""

from unittest.mock import Mock

from reliefnet.domain.analytics import compute_analytics, compute_match_rate
from reliefnet.models.responses import MatchingAnalytics
from reliefnet.services.analytics import AnalyticsService


class TestComputeAnalytics:
    """Test supply, demand, gap and match rate derivation."""

    def test_empty_snapshot(self):
        """No offers and no requests give zero totals and a zero match rate."""
        analytics = compute_analytics([], [])

        assert analytics.supply.total == 0
        assert analytics.demand.total == 0
        assert analytics.gaps == []
        assert analytics.match_rate == 0

    def test_supply_counts_every_status(self, make_offer):
        """Supply quantities include committed, delivered and cancelled offers."""
        offers = [
            make_offer(resource_type="water", quantity=100),
            make_offer(resource_type="water", quantity=30, status="committed", matched_request_id="r-1"),
            make_offer(resource_type="food", quantity=20, status="delivered", matched_request_id="r-2"),
            make_offer(resource_type="food", quantity=5, status="cancelled")
        ]

        supply = compute_analytics(offers, []).supply

        assert supply.total == 4
        assert (supply.available, supply.committed, supply.delivered, supply.cancelled) == (1, 1, 1, 1)
        assert supply.by_type == {"water": 130, "food": 25}

    def test_demand_counts_only_pending(self, make_request):
        """Demand by type and urgency only reflects pending requests."""
        requests = [
            make_request(resource_type="water", quantity=40, urgency="critical"),
            make_request(resource_type="water", quantity=60, urgency="high"),
            make_request(resource_type="medical", quantity=10, urgency="critical"),
            make_request(resource_type="water", quantity=500, status="fulfilled"),
            make_request(resource_type="food", quantity=70, status="in_progress")
        ]

        demand = compute_analytics([], requests).demand

        assert demand.total == 5
        assert (demand.pending, demand.in_progress, demand.fulfilled, demand.cancelled) == (3, 1, 1, 0)
        assert demand.by_type == {"water": 100, "medical": 10}
        assert demand.by_urgency == {"critical": 2, "high": 1}

    def test_gaps_sorted_by_type(self, make_offer, make_request):
        """Only shortfalls are reported, ordered by resource type."""
        offers = [make_offer(resource_type="water", quantity=50), make_offer(resource_type="food", quantity=500)]
        requests = [
            make_request(resource_type="water", quantity=80),
            make_request(resource_type="medical", quantity=15),
            make_request(resource_type="food", quantity=100)
        ]

        gaps = compute_analytics(offers, requests).gaps

        assert [(g.resource_type, g.supply, g.demand, g.gap) for g in gaps] == [
            ("medical", 0, 15, 15),
            ("water", 50, 80, 30)
        ]

    def test_match_rate_rounds(self, make_request):
        """Match rate is the rounded share of requests that left pending."""
        requests = [
            make_request(status="in_progress"),
            make_request(),
            make_request()
        ]

        assert compute_match_rate(requests) == 33
        assert compute_match_rate(requests[:2]) == 50
        assert compute_match_rate([]) == 0


class TestAnalyticsService:
    """Test caching around analytics computation."""

    def test_recomputes_and_caches_on_miss(self, store, make_offer, make_request):
        """A cache miss computes from the store and caches the result."""
        store.add_offer(make_offer(quantity=10))
        store.add_request(make_request(quantity=25))
        cache = Mock()
        cache.get_cached_analytics.return_value = None

        analytics = AnalyticsService(store, cache=cache, ttl_seconds=30).compute_analytics()

        assert analytics.gaps[0].gap == 15
        cache.cache_analytics.assert_called_once()
        payload, ttl = cache.cache_analytics.call_args[0]
        assert ttl == 30
        assert payload["gaps"][0]["resource_type"] == "water"

    def test_serves_cached_snapshot(self):
        """A cache hit skips the store."""
        store = Mock()
        cache = Mock()
        cache.get_cached_analytics.return_value = MatchingAnalytics(match_rate=75).model_dump(mode="json")

        analytics = AnalyticsService(store, cache=cache).compute_analytics()

        assert analytics.match_rate == 75
        store.get_all_offers.assert_not_called()

    def test_malformed_cache_falls_back(self, store):
        """Unreadable cached data is ignored."""
        cache = Mock()
        cache.get_cached_analytics.return_value = {"match_rate": "lots"}

        analytics = AnalyticsService(store, cache=cache).compute_analytics()

        assert analytics.match_rate == 0

    def test_works_without_cache(self, store, make_request):
        """Analytics compute without Redis."""
        store.add_request(make_request(status="fulfilled"))

        assert AnalyticsService(store).compute_analytics().match_rate == 100
