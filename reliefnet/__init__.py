# SPDX-License-Identifier: Apache-2.0

"""
ReliefNet credibility and allocation engine.
"""

__version__ = "1.0.0"
