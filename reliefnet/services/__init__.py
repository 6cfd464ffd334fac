# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Services package - Engine services, external integrations and side effects.
"""

from .mongodb import MongoDBService, get_mongodb_service, close_mongodb_connection
from .amqp import AMQPService, AMQPConfig, PublishResult, create_amqp_service
from .redis import RedisService, create_redis_service
from .credibility import CredibilityService
from .allocation import AllocationService, BatchRunLock, create_batch_lock
from .analytics import AnalyticsService

__all__ = [
    "MongoDBService",
    "get_mongodb_service",
    "close_mongodb_connection",
    "AMQPService",
    "AMQPConfig",
    "PublishResult",
    "create_amqp_service",
    "RedisService",
    "create_redis_service",
    "CredibilityService",
    "AllocationService",
    "BatchRunLock",
    "create_batch_lock",
    "AnalyticsService"
]
