# SPDX-License-Identifier: Apache-2.0

"""
Offer and request lifecycle transitions.

Pure functions that return updated copies of offers and requests, enforcing
the forward-only state machines and the rule that an offer carries a matched
request exactly while committed or delivered.
"""

from datetime import datetime
from typing import Any, Dict, Optional

from ..errors import InvalidStateError
from ..models.entities import AidOffer, ResourceRequest
from ..models.enums import OfferStatus, RequestStatus


def _revalidate(entity, updates: Dict[str, Any]):
    data = entity.model_dump()
    data.update(updates)
    data["updated_at"] = datetime.utcnow()
    return type(entity).model_validate(data)


def transition_offer(
    offer: AidOffer,
    status: OfferStatus,
    matched_request_id: Optional[str] = None
) -> AidOffer:
    """
    Move an offer to a new status.
    
    Args:
        offer: Current offer
        status: Target status
        matched_request_id: Request to attach when committing
        
    Returns:
        Updated offer copy
        
    Raises:
        InvalidStateError: If the transition is not allowed
    """
    if not offer.can_transition_to(status):
        raise InvalidStateError(
            f"Aid offer {offer.id} cannot move from {offer.status} to {OfferStatus(status).value}"
        )
    
    updates: Dict[str, Any] = {"status": OfferStatus(status).value}
    if status == OfferStatus.COMMITTED:
        if not matched_request_id:
            raise InvalidStateError("Committing an aid offer requires a request")
        updates["matched_request_id"] = matched_request_id
    elif status == OfferStatus.CANCELLED:
        updates["matched_request_id"] = None
    elif status == OfferStatus.DELIVERED:
        updates["delivered_at"] = datetime.utcnow()
    
    return _revalidate(offer, updates)


def transition_request(
    request: ResourceRequest,
    status: RequestStatus,
    fulfilled_by: Optional[str] = None
) -> ResourceRequest:
    """
    Move a request to a new status.
    
    Raises:
        InvalidStateError: If the transition is not allowed
    """
    if not request.can_transition_to(status):
        raise InvalidStateError(
            f"Resource request {request.id} cannot move from {request.status} to {RequestStatus(status).value}"
        )
    
    updates: Dict[str, Any] = {"status": RequestStatus(status).value}
    if status == RequestStatus.FULFILLED:
        updates["fulfilled_by"] = fulfilled_by
        updates["fulfilled_at"] = datetime.utcnow()
    
    return _revalidate(request, updates)


def validate_commitment(offer: AidOffer, request: ResourceRequest) -> None:
    """
    Check that an offer can be committed to a request.
    
    Raises:
        InvalidStateError: On status or resource type conflicts
    """
    if offer.status != OfferStatus.AVAILABLE:
        raise InvalidStateError(f"Aid offer {offer.id} is not available (status: {offer.status})")
    if request.status != RequestStatus.PENDING:
        raise InvalidStateError(f"Resource request {request.id} is not pending (status: {request.status})")
    if offer.resource_type != request.resource_type:
        raise InvalidStateError(
            f"Resource type mismatch: offer is {offer.resource_type}, request is {request.resource_type}"
        )
