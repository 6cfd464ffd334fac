# SPDX-License-Identifier: Apache-2.0

"""
Gap analytics service with short-lived Redis caching.
"""

import logging
import os
from typing import Optional

from opentelemetry import trace
from pydantic import ValidationError

from ..domain.analytics import compute_analytics
from ..models.responses import MatchingAnalytics

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


class AnalyticsService:
    """Read-only supply/demand analytics over the current store."""

    def __init__(self, store, cache=None, ttl_seconds: Optional[int] = None):
        """
        Args:
            store: Persistence service (MongoDBService or a compatible double)
            cache: Redis service used for caching, optional
            ttl_seconds: Cache TTL, defaults to ANALYTICS_CACHE_TTL_SECONDS
        """
        self.store = store
        self.cache = cache
        self.ttl_seconds = ttl_seconds if ttl_seconds is not None else int(
            os.getenv('ANALYTICS_CACHE_TTL_SECONDS', '60')
        )

    def compute_analytics(self, use_cache: bool = True) -> MatchingAnalytics:
        """
        Supply, demand, gaps and match rate for all offers and requests.

        Cached snapshots are served when present; cache misses and Redis
        outages fall back to recomputation.
        """
        with tracer.start_as_current_span("analytics.compute") as span:
            if use_cache and self.cache is not None:
                cached = self.cache.get_cached_analytics()
                if cached is not None:
                    try:
                        analytics = MatchingAnalytics.model_validate(cached)
                        span.set_attribute("analytics.cache", "hit")
                        return analytics
                    except ValidationError as e:
                        logger.warning(f"Discarding malformed cached analytics: {e}")

            span.set_attribute("analytics.cache", "miss")
            offers = self.store.get_all_offers()
            requests = self.store.get_all_requests()
            analytics = compute_analytics(offers, requests)

            span.set_attributes({
                "analytics.offers": len(offers),
                "analytics.requests": len(requests),
                "analytics.gaps": len(analytics.gaps),
                "analytics.match_rate": analytics.match_rate
            })
            logger.debug(
                "Matching analytics recomputed",
                extra={
                    "extra_fields": {
                        "offers": len(offers),
                        "requests": len(requests),
                        "gaps": len(analytics.gaps),
                        "match_rate": analytics.match_rate
                    }
                }
            )

            if self.cache is not None:
                self.cache.cache_analytics(analytics.model_dump(mode="json"), self.ttl_seconds)

            return analytics
