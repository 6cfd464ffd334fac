# SPDX-License-Identifier: Apache-2.0

"""
Match scoring between aid offers and resource requests.

This module contains pure functions that estimate how well one offer serves
one request and rank candidate lists deterministically. Missing optional
signals (coordinates) contribute nothing rather than a penalty.
"""

import math
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Sequence, Tuple

from ..models.entities import AidOffer, ResourceRequest
from ..models.enums import Urgency
from .consensus import sanitize_count


BASE_SCORE = 50
QUANTITY_BONUS = 20
URGENCY_BONUS = {
    Urgency.CRITICAL.value: 15,
    Urgency.HIGH.value: 10,
    Urgency.MEDIUM.value: 5,
    Urgency.LOW.value: 0,
}
# (upper bound in km, bonus), checked in order
PROXIMITY_BANDS = (
    (5.0, 15),
    (20.0, 10),
    (50.0, 5),
)
EARTH_RADIUS_KM = 6371.0

# Single-pair lookups only surface reasonable candidates
MIN_SUGGESTION_SCORE = 40
MAX_SUGGESTIONS = 5


@dataclass(frozen=True)
class MatchScore:
    """Compatibility of one offer with one request."""
    score: int
    reasoning: str
    distance_km: Optional[float] = None


@dataclass(frozen=True)
class MatchCandidate:
    """A scored pairing, carrying the candidate's creation time for tie-breaks."""
    request_id: str
    offer_id: str
    score: int
    reasoning: str
    distance_km: Optional[float]
    candidate_id: str
    candidate_created_at: datetime


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance between two coordinates in kilometers."""
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lon / 2) ** 2
    )
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def distance_between(offer: AidOffer, request: ResourceRequest) -> Optional[float]:
    """Distance in km when both sides carry coordinates, otherwise None."""
    if not (offer.has_coordinates() and request.has_coordinates()):
        return None
    return haversine_km(offer.latitude, offer.longitude, request.latitude, request.longitude)


def proximity_bonus(distance_km: Optional[float]) -> int:
    """Bonus for nearby supply; unknown distance earns nothing."""
    if distance_km is None:
        return 0
    for limit, bonus in PROXIMITY_BANDS:
        if distance_km < limit:
            return bonus
    return 0


def score_match(offer: AidOffer, request: ResourceRequest) -> MatchScore:
    """
    Score the pairing of one offer with one request.
    
    Resource type is a hard filter. Otherwise the score starts at 50 and
    adds quantity coverage (up to 20), urgency (up to 15, scaled by
    coverage for partial offers) and proximity (up to 15).
    
    Args:
        offer: Aid offer
        request: Resource request
        
    Returns:
        MatchScore with a score in [0, 100] and reasoning
    """
    if offer.resource_type != request.resource_type:
        return MatchScore(score=0, reasoning="Resource type mismatch.")
    
    offered = sanitize_count(offer.quantity)
    needed = sanitize_count(request.quantity)
    if offered <= 0:
        return MatchScore(score=0, reasoning="Offer has no usable quantity.")
    
    sufficient = offered >= needed
    coverage = 1.0 if sufficient else offered / needed
    
    score = BASE_SCORE
    score += QUANTITY_BONUS if sufficient else math.floor(coverage * QUANTITY_BONUS)
    
    urgency_bonus = URGENCY_BONUS.get(request.urgency, 0)
    score += urgency_bonus if sufficient else math.floor(urgency_bonus * coverage)
    
    distance = distance_between(offer, request)
    score += proximity_bonus(distance)
    
    parts = [f"{request.urgency} urgency request."]
    if distance is not None:
        parts.append(f"Distance: {distance:.1f}km.")
    parts.append("Offer covers full need." if sufficient else "Offer partially covers need.")
    
    return MatchScore(
        score=max(0, min(100, int(score))),
        reasoning=" ".join(parts),
        distance_km=distance
    )


def _sort_key(candidate: MatchCandidate) -> Tuple[int, datetime, str]:
    return (-candidate.score, candidate.candidate_created_at, candidate.candidate_id)


def rank_offers_for_request(request: ResourceRequest, offers: Sequence[AidOffer]) -> List[MatchCandidate]:
    """
    Score every same-type offer for a request, best first.
    
    Ties are broken by earlier offer creation time, then offer id.
    """
    candidates = []
    for offer in offers:
        if offer.resource_type != request.resource_type:
            continue
        result = score_match(offer, request)
        candidates.append(MatchCandidate(
            request_id=request.id,
            offer_id=offer.id,
            score=result.score,
            reasoning=result.reasoning,
            distance_km=result.distance_km,
            candidate_id=offer.id,
            candidate_created_at=offer.created_at
        ))
    return sorted(candidates, key=_sort_key)


def rank_requests_for_offer(offer: AidOffer, requests: Sequence[ResourceRequest]) -> List[MatchCandidate]:
    """
    Score every same-type request for an offer, best first.
    
    Ties are broken by earlier request creation time, then request id.
    """
    candidates = []
    for request in requests:
        if request.resource_type != offer.resource_type:
            continue
        result = score_match(offer, request)
        candidates.append(MatchCandidate(
            request_id=request.id,
            offer_id=offer.id,
            score=result.score,
            reasoning=result.reasoning,
            distance_km=result.distance_km,
            candidate_id=request.id,
            candidate_created_at=request.created_at
        ))
    return sorted(candidates, key=_sort_key)


def top_suggestions(
    candidates: Sequence[MatchCandidate],
    min_score: int = MIN_SUGGESTION_SCORE,
    limit: int = MAX_SUGGESTIONS
) -> List[MatchCandidate]:
    """Keep ranked candidates at or above min_score, at most limit of them."""
    return [c for c in candidates if c.score >= min_score][:limit]


def best_candidate(candidates: Sequence[MatchCandidate]) -> Optional[MatchCandidate]:
    """First ranked candidate with a positive score, if any."""
    if candidates and candidates[0].score > 0:
        return candidates[0]
    return None


def allocation_order(requests: Sequence[ResourceRequest]) -> List[ResourceRequest]:
    """Batch processing order: oldest unmet demand first, ties by id."""
    return sorted(requests, key=lambda r: (r.created_at, r.id))
