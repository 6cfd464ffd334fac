# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Enumeration types for the ReliefNet credibility and allocation engine.
"""

from enum import Enum


class DisasterType(str, Enum):
    """Incident type reported by citizens."""
    FIRE = "fire"
    FLOOD = "flood"
    EARTHQUAKE = "earthquake"
    STORM = "storm"
    ROAD_ACCIDENT = "road_accident"
    EPIDEMIC = "epidemic"
    LANDSLIDE = "landslide"
    GAS_LEAK = "gas_leak"
    BUILDING_COLLAPSE = "building_collapse"
    CHEMICAL_SPILL = "chemical_spill"
    POWER_OUTAGE = "power_outage"
    WATER_CONTAMINATION = "water_contamination"
    OTHER = "other"


class Severity(str, Enum):
    """Report severity levels."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class FlagType(str, Enum):
    """Moderation flags that exclude a report from prioritized lists."""
    FALSE_REPORT = "false_report"
    DUPLICATE = "duplicate"
    SPAM = "spam"


class ResourceType(str, Enum):
    """Resource categories shared by aid offers and resource requests."""
    FOOD = "food"
    WATER = "water"
    SHELTER = "shelter"
    MEDICAL = "medical"
    CLOTHING = "clothing"
    BLANKETS = "blankets"
    OTHER = "other"


class Urgency(str, Enum):
    """Resource request urgency levels."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class OfferStatus(str, Enum):
    """Aid offer lifecycle status."""
    AVAILABLE = "available"
    COMMITTED = "committed"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class RequestStatus(str, Enum):
    """Resource request lifecycle status."""
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    FULFILLED = "fulfilled"
    CANCELLED = "cancelled"


class MatchSuggestionStatus(str, Enum):
    """Match suggestion review status.

    Only PENDING is written by the allocation engine; acceptance and
    rejection belong to the review workflow.
    """
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class VoteType(str, Enum):
    """Community vote direction."""
    UPVOTE = "upvote"
    DOWNVOTE = "downvote"


# Allowed forward transitions for the offer and request state machines
OFFER_TRANSITIONS = {
    OfferStatus.AVAILABLE: {OfferStatus.COMMITTED, OfferStatus.CANCELLED},
    OfferStatus.COMMITTED: {OfferStatus.DELIVERED, OfferStatus.CANCELLED},
    OfferStatus.DELIVERED: set(),
    OfferStatus.CANCELLED: set(),
}

REQUEST_TRANSITIONS = {
    RequestStatus.PENDING: {RequestStatus.IN_PROGRESS, RequestStatus.CANCELLED},
    RequestStatus.IN_PROGRESS: {RequestStatus.FULFILLED, RequestStatus.CANCELLED},
    RequestStatus.FULFILLED: set(),
    RequestStatus.CANCELLED: set(),
}
