"""
ReliefNet Credibility & Allocation Engine - Application Entry Point

This module wires the persistence, cache and messaging integrations into the
engine services. HTTP routing lives in the hosting application, which calls
the services exposed on ReliefNetApp.
"""

import os
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from .observability.config import setup_observability
from .services.mongodb import MongoDBService
from .services.redis import RedisService
from .services.amqp import AMQPService, create_amqp_service
from .services.credibility import CredibilityService
from .services.allocation import AllocationService, create_batch_lock
from .services.analytics import AnalyticsService

logger = logging.getLogger(__name__)


@dataclass
class ReliefNetApp:
    """Container for the configured engine services."""
    environment: str
    mongodb: MongoDBService
    redis: RedisService
    amqp: Optional[AMQPService]
    credibility: CredibilityService
    allocation: AllocationService
    analytics: AnalyticsService

    def health_check(self) -> Dict[str, Any]:
        """Aggregate health of external dependencies."""
        return {
            "environment": self.environment,
            "mongodb": self.mongodb.health_check(),
            "redis": self.redis.health_check(),
            "amqp": {"status": "healthy" if self.amqp and self.amqp.health_check() else "unavailable"}
        }

    def close(self) -> None:
        """Release pooled connections."""
        self.mongodb.close_connection()


def create_app(
    mongodb: Optional[MongoDBService] = None,
    redis: Optional[RedisService] = None,
    amqp: Optional[AMQPService] = None,
    observability: bool = True
) -> ReliefNetApp:
    """
    Build the engine from environment configuration.

    Args:
        mongodb: Persistence service override
        redis: Redis service override
        amqp: Event publisher override
        observability: Install tracing and structured logging

    Returns:
        ReliefNetApp with all services wired
    """
    environment = os.getenv('ENVIRONMENT', 'development')

    if observability:
        setup_observability()

    mongodb = mongodb or MongoDBService(
        os.getenv('MONGODB_URI', 'mongodb://localhost:27017/reliefnet_dev'),
        os.getenv('MONGODB_DATABASE', 'reliefnet_dev')
    )
    redis = redis or RedisService(os.getenv('REDIS_URL'), os.getenv('REDIS_TOKEN'))

    if amqp is None and os.getenv('AMQP_URL'):
        amqp = create_amqp_service()
    if amqp is None:
        logger.warning("No AMQP_URL configured, engine events will not be published")

    credibility = CredibilityService(mongodb)
    allocation = AllocationService(
        mongodb,
        notifier=amqp,
        batch_lock=create_batch_lock(redis),
        credibility=credibility,
        cache=redis
    )
    analytics = AnalyticsService(mongodb, cache=redis)

    logger.info(f"ReliefNet engine initialized ({environment})")

    return ReliefNetApp(
        environment=environment,
        mongodb=mongodb,
        redis=redis,
        amqp=amqp,
        credibility=credibility,
        allocation=allocation,
        analytics=analytics
    )
