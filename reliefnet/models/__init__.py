# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Models package - Pydantic schemas and data models for the ReliefNet engine.
"""

# Base models
from .base import BaseEntity

# Enumerations
from .enums import (
    DisasterType,
    Severity,
    FlagType,
    ResourceType,
    Urgency,
    OfferStatus,
    RequestStatus,
    MatchSuggestionStatus,
    VoteType
)

# Core entities
from .entities import (
    DisasterReport,
    ReportVote,
    UserReputation,
    AidOffer,
    ResourceRequest,
    MatchSuggestion
)

# Response models
from .responses import (
    MatchResponse,
    BatchMatch,
    BatchAllocationResult,
    SupplySummary,
    DemandSummary,
    ResourceGap,
    MatchingAnalytics
)

__all__ = [
    # Base models
    "BaseEntity",

    # Enumerations
    "DisasterType",
    "Severity",
    "FlagType",
    "ResourceType",
    "Urgency",
    "OfferStatus",
    "RequestStatus",
    "MatchSuggestionStatus",
    "VoteType",

    # Core entities
    "DisasterReport",
    "ReportVote",
    "UserReputation",
    "AidOffer",
    "ResourceRequest",
    "MatchSuggestion",

    # Response models
    "MatchResponse",
    "BatchMatch",
    "BatchAllocationResult",
    "SupplySummary",
    "DemandSummary",
    "ResourceGap",
    "MatchingAnalytics"
]
