#!/usr/bin/env python3
# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Script to create MongoDB indexes and declare the AMQP events exchange.
"""

import sys
import os
import logging

from reliefnet.services.mongodb import get_mongodb_service, close_mongodb_connection
from reliefnet.services.amqp import create_amqp_service

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

logger = logging.getLogger(__name__)


def main():
    """Create MongoDB indexes and the events exchange."""
    try:
        logger.info("Starting infrastructure setup...")

        mongodb_service = get_mongodb_service()

        health = mongodb_service.health_check()
        if health['status'] != 'healthy':
            logger.error(f"MongoDB is not healthy: {health}")
            sys.exit(1)

        logger.info(f"Connected to MongoDB {health['version']} - Database: {health['database']}")

        mongodb_service.create_indexes()

        if os.getenv('AMQP_URL'):
            if not create_amqp_service().setup_exchange():
                logger.error("Failed to declare AMQP events exchange")
                sys.exit(1)
        else:
            logger.info("AMQP_URL not set, skipping exchange declaration")

        logger.info("Infrastructure setup completed successfully!")

    except Exception as e:
        logger.error(f"Failed to set up infrastructure: {e}")
        sys.exit(1)
    finally:
        close_mongodb_connection()


if __name__ == "__main__":
    main()
