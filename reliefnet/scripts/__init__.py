# SPDX-License-Identifier: Apache-2.0

"""
Operational scripts for the ReliefNet engine.
"""
