# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Core entity models for the ReliefNet credibility and allocation engine.
"""

from datetime import datetime
from typing import Optional
from pydantic import Field, field_validator, model_validator
from .base import BaseEntity
from .enums import (
    DisasterType,
    Severity,
    FlagType,
    ResourceType,
    Urgency,
    OfferStatus,
    RequestStatus,
    MatchSuggestionStatus,
    VoteType,
    OFFER_TRANSITIONS,
    REQUEST_TRANSITIONS
)


def _validate_coordinate(value: Optional[float], limit: float, name: str) -> Optional[float]:
    if value is None:
        return value
    if not -limit <= value <= limit:
        raise ValueError(f'{name} must be between {-limit} and {limit}')
    return value


class GeoLocated(BaseEntity):
    """Mixin for records that may carry GPS coordinates."""
    
    location: Optional[str] = Field(None, max_length=500, description="Free-form location")
    latitude: Optional[float] = Field(None, description="Latitude in decimal degrees")
    longitude: Optional[float] = Field(None, description="Longitude in decimal degrees")
    
    @field_validator('latitude')
    @classmethod
    def validate_latitude(cls, v):
        """Validate latitude range."""
        return _validate_coordinate(v, 90.0, 'Latitude')
    
    @field_validator('longitude')
    @classmethod
    def validate_longitude(cls, v):
        """Validate longitude range."""
        return _validate_coordinate(v, 180.0, 'Longitude')
    
    def has_coordinates(self) -> bool:
        """Check whether both coordinates are present."""
        return self.latitude is not None and self.longitude is not None


class DisasterReport(GeoLocated):
    """Citizen incident report with community credibility signals."""
    
    user_id: str = Field(..., description="Reporter user ID")
    title: str = Field(..., min_length=1, max_length=200, description="Report title")
    description: Optional[str] = Field(None, max_length=5000, description="Report description")
    type: DisasterType = Field(..., description="Incident type")
    severity: Severity = Field(..., description="Incident severity")
    upvotes: int = Field(default=0, ge=0, description="Upvote count")
    downvotes: int = Field(default=0, ge=0, description="Downvote count")
    verification_count: int = Field(default=0, ge=0, description="Responder verification count")
    ai_validation_score: Optional[int] = Field(None, ge=0, le=100, description="Heuristic validation score")
    confirmed_by: Optional[str] = Field(None, description="Responder who officially confirmed")
    confirmed_at: Optional[datetime] = Field(None, description="Confirmation timestamp")
    flag_type: Optional[FlagType] = Field(None, description="Moderation flag")
    flagged_by: Optional[str] = Field(None, description="Moderator who flagged")
    flagged_at: Optional[datetime] = Field(None, description="Flag timestamp")
    consensus_score: int = Field(default=0, ge=0, le=100, description="Derived consensus score")
    priority_score: Optional[int] = Field(None, ge=0, le=100, description="Operator-assigned priority")
    
    @field_validator('title')
    @classmethod
    def validate_title(cls, v):
        """Validate report title."""
        if not v.strip():
            raise ValueError('Report title cannot be empty')
        return v.strip()
    
    def is_confirmed(self) -> bool:
        """Check if an official responder confirmed the report."""
        return self.confirmed_by is not None
    
    def is_flagged(self) -> bool:
        """Check if the report carries a moderation flag."""
        return self.flag_type is not None


class ReportVote(BaseEntity):
    """A single user's vote on a report."""
    
    report_id: str = Field(..., description="Voted report ID")
    user_id: str = Field(..., description="Voter user ID")
    vote_type: VoteType = Field(..., description="Vote direction")


class UserReputation(BaseEntity):
    """Aggregated reputation counters for one user."""
    
    user_id: str = Field(..., description="User ID")
    trust_score: int = Field(default=50, ge=0, le=100, description="Derived trust score")
    total_reports: int = Field(default=0, ge=0)
    verified_reports: int = Field(default=0, ge=0)
    false_reports: int = Field(default=0, ge=0)
    verifications_given: int = Field(default=0, ge=0)
    upvotes_received: int = Field(default=0, ge=0)
    downvotes_received: int = Field(default=0, ge=0)
    resources_provided: int = Field(default=0, ge=0)


class AidOffer(GeoLocated):
    """Supply posted by a volunteer or NGO."""
    
    user_id: str = Field(..., description="Supplier user ID")
    resource_type: ResourceType = Field(..., description="Offered resource type")
    quantity: int = Field(..., gt=0, description="Offered quantity")
    description: Optional[str] = Field(None, max_length=2000, description="Offer description")
    status: OfferStatus = Field(default=OfferStatus.AVAILABLE, description="Lifecycle status")
    matched_request_id: Optional[str] = Field(None, description="Request this offer is committed to")
    delivered_at: Optional[datetime] = Field(None, description="Delivery timestamp")
    
    @model_validator(mode='after')
    def validate_match_consistency(self):
        """A matched request is present exactly for committed or delivered offers."""
        matched_statuses = (OfferStatus.COMMITTED, OfferStatus.DELIVERED)
        if self.status in matched_statuses and not self.matched_request_id:
            raise ValueError(f'matched_request_id is required when status is {self.status}')
        if self.status not in matched_statuses and self.matched_request_id:
            raise ValueError(f'matched_request_id must be empty when status is {self.status}')
        return self
    
    def can_transition_to(self, status: OfferStatus) -> bool:
        """Check the forward-only offer state machine."""
        return OfferStatus(status) in OFFER_TRANSITIONS[OfferStatus(self.status)]


class ResourceRequest(GeoLocated):
    """Demand posted by someone who needs resources."""
    
    user_id: str = Field(..., description="Requester user ID")
    resource_type: ResourceType = Field(..., description="Requested resource type")
    quantity: int = Field(..., gt=0, description="Requested quantity")
    urgency: Urgency = Field(..., description="Request urgency")
    description: Optional[str] = Field(None, max_length=2000, description="Request description")
    status: RequestStatus = Field(default=RequestStatus.PENDING, description="Lifecycle status")
    disaster_report_id: Optional[str] = Field(None, description="Related disaster report")
    fulfilled_by: Optional[str] = Field(None, description="Supplier who fulfilled the request")
    fulfilled_at: Optional[datetime] = Field(None, description="Fulfillment timestamp")
    
    def can_transition_to(self, status: RequestStatus) -> bool:
        """Check the forward-only request state machine."""
        return RequestStatus(status) in REQUEST_TRANSITIONS[RequestStatus(self.status)]


class MatchSuggestion(BaseEntity):
    """Audit record of an offer proposed for a request by a batch run."""
    
    request_id: str = Field(..., description="Matched request ID")
    offer_id: str = Field(..., description="Matched offer ID")
    score: int = Field(..., ge=0, le=100, description="Match score")
    reasoning: str = Field(..., max_length=500, description="Human-readable reasoning")
    status: MatchSuggestionStatus = Field(default=MatchSuggestionStatus.PENDING, description="Review status")
    batch_id: Optional[str] = Field(None, description="Batch run that produced the suggestion")
