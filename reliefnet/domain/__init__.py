# SPDX-License-Identifier: Apache-2.0

"""
Domain logic package for the ReliefNet credibility and allocation engine.

This package contains pure scoring, ranking and lifecycle functions with no
side effects. All domain functions are testable without external services.
"""
