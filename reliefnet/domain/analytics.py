# SPDX-License-Identifier: Apache-2.0

"""
Supply/demand gap analytics.

Supply by type sums quantities over offers in every status (total capacity
ever pledged), while demand by type only counts pending requests (unmet
need). The asymmetry is intentional for dashboards, but note that committed
or delivered supply still offsets pending demand in the gap figures.
"""

from typing import Dict, Sequence

from ..models.entities import AidOffer, ResourceRequest
from ..models.enums import OfferStatus, RequestStatus
from ..models.responses import DemandSummary, MatchingAnalytics, ResourceGap, SupplySummary
from .consensus import round_half_up, sanitize_count


def summarize_supply(offers: Sequence[AidOffer]) -> SupplySummary:
    """Count offers by status and sum quantities by resource type."""
    by_type: Dict[str, int] = {}
    counts = {status.value: 0 for status in OfferStatus}
    
    for offer in offers:
        counts[offer.status] = counts.get(offer.status, 0) + 1
        by_type[offer.resource_type] = by_type.get(offer.resource_type, 0) + sanitize_count(offer.quantity)
    
    return SupplySummary(
        total=len(offers),
        available=counts[OfferStatus.AVAILABLE.value],
        committed=counts[OfferStatus.COMMITTED.value],
        delivered=counts[OfferStatus.DELIVERED.value],
        cancelled=counts[OfferStatus.CANCELLED.value],
        by_type=by_type
    )


def summarize_demand(requests: Sequence[ResourceRequest]) -> DemandSummary:
    """Count requests by status; sum pending quantities by type and count pending by urgency."""
    by_type: Dict[str, int] = {}
    by_urgency: Dict[str, int] = {}
    counts = {status.value: 0 for status in RequestStatus}
    
    for request in requests:
        counts[request.status] = counts.get(request.status, 0) + 1
        if request.status == RequestStatus.PENDING:
            by_type[request.resource_type] = by_type.get(request.resource_type, 0) + sanitize_count(request.quantity)
            by_urgency[request.urgency] = by_urgency.get(request.urgency, 0) + 1
    
    return DemandSummary(
        total=len(requests),
        pending=counts[RequestStatus.PENDING.value],
        in_progress=counts[RequestStatus.IN_PROGRESS.value],
        fulfilled=counts[RequestStatus.FULFILLED.value],
        cancelled=counts[RequestStatus.CANCELLED.value],
        by_type=by_type,
        by_urgency=by_urgency
    )


def compute_gaps(supply_by_type: Dict[str, int], demand_by_type: Dict[str, int]) -> list:
    """Resource types where demand exceeds supply, sorted by type."""
    gaps = []
    for resource_type in sorted(set(supply_by_type) | set(demand_by_type)):
        supply = supply_by_type.get(resource_type, 0)
        demand = demand_by_type.get(resource_type, 0)
        gap = demand - supply
        if gap > 0:
            gaps.append(ResourceGap(resource_type=resource_type, supply=supply, demand=demand, gap=gap))
    return gaps


def compute_match_rate(requests: Sequence[ResourceRequest]) -> int:
    """Percentage of requests that left pending; 0 when there are none."""
    if not requests:
        return 0
    handled = sum(1 for r in requests if r.status != RequestStatus.PENDING)
    return round_half_up(handled / len(requests) * 100)


def compute_analytics(offers: Sequence[AidOffer], requests: Sequence[ResourceRequest]) -> MatchingAnalytics:
    """
    Derive supply, demand, gaps and match rate from offer/request snapshots.
    
    Args:
        offers: All aid offers, any status
        requests: All resource requests, any status
        
    Returns:
        MatchingAnalytics snapshot
    """
    supply = summarize_supply(offers)
    demand = summarize_demand(requests)
    
    return MatchingAnalytics(
        supply=supply,
        demand=demand,
        gaps=compute_gaps(supply.by_type, demand.by_type),
        match_rate=compute_match_rate(requests)
    )
