#!/usr/bin/env python3
# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Operator sweep: run one batch allocation pass and print the result as JSON.
"""

import sys
import logging

from reliefnet.app import create_app
from reliefnet.errors import BatchInProgressError

logger = logging.getLogger(__name__)


def main():
    """Run a batch allocation with services configured from the environment."""
    app = create_app()
    try:
        result = app.allocation.run_batch_allocation()
        print(result.model_dump_json(indent=2))
    except BatchInProgressError as e:
        logger.warning(f"Batch allocation skipped: {e}")
        sys.exit(2)
    except Exception as e:
        logger.error(f"Batch allocation failed: {e}", exc_info=True)
        sys.exit(1)
    finally:
        app.close()


if __name__ == "__main__":
    main()
