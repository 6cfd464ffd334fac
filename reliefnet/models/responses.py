# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Result models returned by the allocation engine and gap analytics.
"""

from datetime import datetime
from typing import Dict, List, Optional
from pydantic import BaseModel, Field, ConfigDict


class ResultModel(BaseModel):
    """Base for engine results serialized to callers and event payloads."""
    
    model_config = ConfigDict(
        use_enum_values=True
    )


class MatchResponse(ResultModel):
    """One candidate returned by a single-pair lookup."""
    
    request_id: str = Field(..., description="Resource request ID")
    offer_id: str = Field(..., description="Aid offer ID")
    score: int = Field(..., ge=0, le=100, description="Match score")
    reasoning: str = Field(..., description="Human-readable reasoning")
    distance_km: Optional[float] = Field(None, description="Distance when both sides have coordinates")


class BatchMatch(ResultModel):
    """A request matched during a batch run."""
    
    request_id: str
    offer_id: str
    score: int = Field(..., ge=0, le=100)
    reasoning: str
    resource_type: str
    request_quantity: int
    offer_quantity: int
    urgency: str
    suggestion_id: str = Field(..., description="Persisted match suggestion ID")


class BatchAllocationResult(ResultModel):
    """Summary of a batch allocation run."""
    
    batch_id: str
    total_requests: int = 0
    total_offers: int = 0
    matched_count: int = 0
    matches: List[BatchMatch] = Field(default_factory=list)
    partial_failures: int = Field(default=0, description="Suggestions that could not be persisted")
    skipped_requests: int = Field(default=0, description="Requests skipped on scoring errors")
    started_at: datetime = Field(default_factory=datetime.utcnow)
    completed_at: Optional[datetime] = None
    
    def completion_event(self) -> Dict[str, object]:
        """Payload for the batch completion notification."""
        return {
            "batch_id": self.batch_id,
            "total_requests": self.total_requests,
            "total_offers": self.total_offers,
            "matched_count": self.matched_count,
            "partial_failures": self.partial_failures,
            "timestamp": (self.completed_at or datetime.utcnow()).isoformat() + "Z"
        }


class SupplySummary(ResultModel):
    """Offer totals. by_type sums quantities over offers in every status."""
    
    total: int = 0
    available: int = 0
    committed: int = 0
    delivered: int = 0
    cancelled: int = 0
    by_type: Dict[str, int] = Field(default_factory=dict)


class DemandSummary(ResultModel):
    """Request totals. by_type and by_urgency only count pending requests."""
    
    total: int = 0
    pending: int = 0
    in_progress: int = 0
    fulfilled: int = 0
    cancelled: int = 0
    by_type: Dict[str, int] = Field(default_factory=dict)
    by_urgency: Dict[str, int] = Field(default_factory=dict)


class ResourceGap(ResultModel):
    """Shortfall for one resource type."""
    
    resource_type: str
    supply: int
    demand: int
    gap: int


class MatchingAnalytics(ResultModel):
    """Supply/demand snapshot with computed gaps and match rate."""
    
    supply: SupplySummary = Field(default_factory=SupplySummary)
    demand: DemandSummary = Field(default_factory=DemandSummary)
    gaps: List[ResourceGap] = Field(default_factory=list)
    match_rate: int = Field(default=0, ge=0, le=100)
