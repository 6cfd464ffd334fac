# SPDX-License-Identifier: Apache-2.0

"""
Allocation engine: single-pair match lookups, batch allocation and the
aid offer lifecycle.

A batch run greedily pairs pending requests with available offers. Each run
keeps its own consumption set so an offer is suggested for at most one
request per run, and runs are serialized by BatchRunLock so two runs never
consume from the same snapshot.
"""

import logging
import os
import threading
import uuid
from contextlib import contextmanager
from datetime import datetime
from typing import List, Optional, Set

from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode

from ..domain.lifecycle import transition_offer, transition_request, validate_commitment
from ..domain.matching import (
    MatchCandidate,
    allocation_order,
    best_candidate,
    rank_offers_for_request,
    rank_requests_for_offer,
    top_suggestions
)
from ..errors import BatchInProgressError, ComputationError, InvalidStateError, NotFoundError
from ..models.entities import AidOffer, MatchSuggestion, ResourceRequest
from ..models.enums import OfferStatus, RequestStatus
from ..models.responses import BatchAllocationResult, BatchMatch, MatchResponse
from .credibility import CredibilityService
from .redis import BATCH_LOCK_KEY

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


BATCH_COMPLETE_EVENT = "batch_matching_complete"
PERSIST_ATTEMPTS = 2


class BatchRunLock:
    """
    Serializes batch allocation runs.

    A process-level lock guards runs within one worker; when a Redis service
    is configured a SET NX EX lock extends the guarantee across processes.
    A configured but unreachable Redis blocks the run.
    """

    def __init__(self, redis_service=None, timeout_seconds: float = 30.0, ttl_seconds: int = 300):
        self.redis_service = redis_service
        self.timeout_seconds = timeout_seconds
        self.ttl_seconds = ttl_seconds
        self._local = threading.Lock()

    @contextmanager
    def hold(self):
        """
        Hold the batch lock for the duration of the block.

        Raises:
            BatchInProgressError: If another run holds the lock
        """
        if not self._local.acquire(timeout=self.timeout_seconds):
            raise BatchInProgressError(
                f"Batch allocation already running in this process (waited {self.timeout_seconds}s)"
            )

        token = None
        try:
            if self.redis_service is not None and self.redis_service.is_configured():
                if not self.redis_service.is_available():
                    raise BatchInProgressError(
                        "Redis is configured but unreachable, cannot take the distributed batch lock"
                    )
                token = self.redis_service.acquire_lock(BATCH_LOCK_KEY, self.ttl_seconds)
                if token is None:
                    raise BatchInProgressError("Batch allocation already running in another process")
            yield
        finally:
            if token is not None:
                self.redis_service.release_lock(BATCH_LOCK_KEY, token)
            self._local.release()


def create_batch_lock(redis_service=None) -> BatchRunLock:
    """Factory function to create the batch lock from environment."""
    return BatchRunLock(
        redis_service=redis_service,
        timeout_seconds=float(os.getenv('BATCH_LOCK_TIMEOUT_SECONDS', '30')),
        ttl_seconds=int(os.getenv('BATCH_LOCK_TTL_SECONDS', '300'))
    )


def _to_response(candidate: MatchCandidate) -> MatchResponse:
    return MatchResponse(
        request_id=candidate.request_id,
        offer_id=candidate.offer_id,
        score=candidate.score,
        reasoning=candidate.reasoning,
        distance_km=round(candidate.distance_km, 2) if candidate.distance_km is not None else None
    )


class AllocationService:
    """Matches aid offers to resource requests and drives offer lifecycle."""

    def __init__(self, store, notifier=None, batch_lock: Optional[BatchRunLock] = None,
                 credibility: Optional[CredibilityService] = None, cache=None):
        """
        Args:
            store: Persistence service (MongoDBService or a compatible double)
            notifier: Event publisher exposing publish_event, optional
            batch_lock: Lock serializing batch runs
            credibility: Credibility service for supplier reputation
            cache: Redis service whose analytics cache is dropped on lifecycle changes
        """
        self.store = store
        self.notifier = notifier
        self.batch_lock = batch_lock or BatchRunLock()
        self.credibility = credibility or CredibilityService(store)
        self.cache = cache

    def _require_offer(self, offer_id: str) -> AidOffer:
        offer = self.store.get_offer(offer_id)
        if offer is None:
            raise NotFoundError("AidOffer", offer_id)
        return offer

    def _require_request(self, request_id: str) -> ResourceRequest:
        request = self.store.get_request(request_id)
        if request is None:
            raise NotFoundError("ResourceRequest", request_id)
        return request

    # Single-pair lookups

    def find_matches_for_request(self, request_id: str) -> List[MatchResponse]:
        """
        Best available offers for one request, read-only.

        Raises:
            NotFoundError: If the request does not exist
            ComputationError: If scoring fails
        """
        with tracer.start_as_current_span("allocation.find_matches_for_request") as span:
            span.set_attribute("request.id", request_id)
            request = self._require_request(request_id)
            offers = self.store.get_available_offers()

            try:
                ranked = rank_offers_for_request(request, offers)
            except (TypeError, ValueError, ArithmeticError) as e:
                span.record_exception(e)
                span.set_status(Status(StatusCode.ERROR, str(e)))
                raise ComputationError(f"Failed to score offers for request {request_id}: {e}", request_id) from e

            matches = [_to_response(c) for c in top_suggestions(ranked)]
            span.set_attribute("matches.count", len(matches))
            return matches

    def find_matches_for_offer(self, offer_id: str) -> List[MatchResponse]:
        """
        Best pending requests for one offer, read-only.

        Raises:
            NotFoundError: If the offer does not exist
            ComputationError: If scoring fails
        """
        with tracer.start_as_current_span("allocation.find_matches_for_offer") as span:
            span.set_attribute("offer.id", offer_id)
            offer = self._require_offer(offer_id)
            requests = self.store.get_pending_requests()

            try:
                ranked = rank_requests_for_offer(offer, requests)
            except (TypeError, ValueError, ArithmeticError) as e:
                span.record_exception(e)
                span.set_status(Status(StatusCode.ERROR, str(e)))
                raise ComputationError(f"Failed to score requests for offer {offer_id}: {e}", offer_id) from e

            matches = [_to_response(c) for c in top_suggestions(ranked)]
            span.set_attribute("matches.count", len(matches))
            return matches

    # Batch allocation

    def run_batch_allocation(self) -> BatchAllocationResult:
        """
        Run one serialized batch allocation pass.

        The completion event is published after the batch lock is released.

        Raises:
            BatchInProgressError: If another run holds the batch lock
        """
        with self.batch_lock.hold():
            result = self._run_batch()

        self._notify(BATCH_COMPLETE_EVENT, result.completion_event(), correlation_id=result.batch_id)
        return result

    def _run_batch(self) -> BatchAllocationResult:
        result = BatchAllocationResult(batch_id=str(uuid.uuid4()))

        with tracer.start_as_current_span("allocation.run_batch") as span:
            span.set_attribute("batch.id", result.batch_id)

            offers = self.store.get_available_offers()
            requests = self.store.get_pending_requests()
            result.total_offers = len(offers)
            result.total_requests = len(requests)

            pool = self._usable_offers(offers)

            if pool and requests:
                consumed: Set[str] = set()
                for request in allocation_order(requests):
                    self._allocate_one(request, pool, consumed, result)

            result.completed_at = datetime.utcnow()

            span.set_attributes({
                "batch.total_requests": result.total_requests,
                "batch.total_offers": result.total_offers,
                "batch.matched_count": result.matched_count,
                "batch.partial_failures": result.partial_failures
            })

            logger.info(
                f"Batch allocation {result.batch_id} matched {result.matched_count} of {result.total_requests} requests",
                extra={
                    "extra_fields": {
                        "batch_id": result.batch_id,
                        "total_requests": result.total_requests,
                        "total_offers": result.total_offers,
                        "matched_count": result.matched_count,
                        "partial_failures": result.partial_failures,
                        "skipped_requests": result.skipped_requests
                    }
                }
            )

        return result

    def _usable_offers(self, offers: List[AidOffer]) -> List[AidOffer]:
        usable = []
        for offer in offers:
            if offer.status != OfferStatus.AVAILABLE:
                logger.warning(
                    f"Skipping aid offer {offer.id} in batch: status is {offer.status}",
                    extra={"extra_fields": {"offer_id": offer.id, "status": offer.status}}
                )
                continue
            usable.append(offer)
        return usable

    def _allocate_one(
        self,
        request: ResourceRequest,
        pool: List[AidOffer],
        consumed: Set[str],
        result: BatchAllocationResult
    ) -> None:
        remaining = [o for o in pool if o.id not in consumed]
        if not remaining:
            return

        try:
            candidate = best_candidate(rank_offers_for_request(request, remaining))
        except Exception as e:
            result.skipped_requests += 1
            logger.error(
                f"Scoring failed for request {request.id}, leaving it unmatched: {e}",
                extra={"extra_fields": {"batch_id": result.batch_id, "request_id": request.id}},
                exc_info=True
            )
            return

        if candidate is None:
            return

        suggestion = self._persist_suggestion(candidate, result.batch_id)
        if suggestion is None:
            # Offer stays in the pool for later requests
            result.partial_failures += 1
            return

        consumed.add(candidate.offer_id)
        offer = next(o for o in remaining if o.id == candidate.offer_id)
        result.matches.append(BatchMatch(
            request_id=request.id,
            offer_id=offer.id,
            score=candidate.score,
            reasoning=candidate.reasoning,
            resource_type=request.resource_type,
            request_quantity=request.quantity,
            offer_quantity=offer.quantity,
            urgency=request.urgency,
            suggestion_id=suggestion.id
        ))
        result.matched_count += 1

    def _persist_suggestion(self, candidate: MatchCandidate, batch_id: str) -> Optional[MatchSuggestion]:
        for attempt in range(1, PERSIST_ATTEMPTS + 1):
            try:
                return self.store.create_match_suggestion(
                    request_id=candidate.request_id,
                    offer_id=candidate.offer_id,
                    score=candidate.score,
                    reasoning=candidate.reasoning,
                    batch_id=batch_id
                )
            except Exception as e:
                logger.warning(
                    f"Failed to persist match suggestion (attempt {attempt}/{PERSIST_ATTEMPTS}): {e}",
                    extra={
                        "extra_fields": {
                            "batch_id": batch_id,
                            "request_id": candidate.request_id,
                            "offer_id": candidate.offer_id,
                            "attempt": attempt
                        }
                    }
                )
        return None

    # Offer lifecycle

    def commit_offer(self, offer_id: str, request_id: str) -> AidOffer:
        """
        Commit an available offer to a pending request.

        Raises:
            NotFoundError: If the offer or request does not exist
            InvalidStateError: If either side is in the wrong state
        """
        offer = self._require_offer(offer_id)
        request = self._require_request(request_id)
        validate_commitment(offer, request)

        committed = transition_offer(offer, OfferStatus.COMMITTED, matched_request_id=request.id)
        in_progress = transition_request(request, RequestStatus.IN_PROGRESS)

        if not self.store.match_offer_to_request(offer.id, request.id):
            raise InvalidStateError(f"Aid offer {offer.id} was committed by another caller")
        self.store.save_request(in_progress)

        logger.info(f"Aid offer {offer.id} committed to request {request.id}")
        self._after_lifecycle_change("aid_offer_committed", committed)
        return committed

    def deliver_offer(self, offer_id: str, user_id: str) -> AidOffer:
        """
        Mark a committed offer delivered and fulfil its request.

        Only the supplier who posted the offer can deliver it; the supplier's
        resources_provided counter is incremented.

        Raises:
            NotFoundError: If the offer does not exist
            InvalidStateError: If the offer is not committed, belongs to someone else
                or was changed concurrently
        """
        offer = self._require_offer(offer_id)
        if offer.user_id != user_id:
            raise InvalidStateError(f"Aid offer {offer.id} can only be delivered by its supplier")

        delivered = transition_offer(offer, OfferStatus.DELIVERED)
        if not self.store.save_offer(delivered, expected_status=offer.status):
            raise InvalidStateError(f"Aid offer {offer.id} was changed by another caller")

        request = self.store.get_request(offer.matched_request_id)
        fulfilled = False
        if request is not None and request.can_transition_to(RequestStatus.FULFILLED):
            fulfilled = self.store.save_request(
                transition_request(request, RequestStatus.FULFILLED, fulfilled_by=user_id),
                expected_status=request.status
            )
        if not fulfilled:
            logger.warning(
                f"Matched request {offer.matched_request_id} for offer {offer.id} cannot be fulfilled",
                extra={"extra_fields": {"offer_id": offer.id, "request_id": offer.matched_request_id}}
            )

        self.credibility.record_resource_provided(user_id)

        logger.info(f"Aid offer {offer.id} delivered by {user_id}")
        self._after_lifecycle_change("aid_offer_delivered", delivered)
        return delivered

    def cancel_offer(self, offer_id: str) -> AidOffer:
        """
        Cancel an available or committed offer, clearing its matched request.

        Raises:
            NotFoundError: If the offer does not exist
            InvalidStateError: If the offer is delivered, already cancelled
                or was changed concurrently
        """
        offer = self._require_offer(offer_id)
        cancelled = transition_offer(offer, OfferStatus.CANCELLED)
        if not self.store.save_offer(cancelled, expected_status=offer.status):
            raise InvalidStateError(f"Aid offer {offer.id} was changed by another caller")

        if offer.matched_request_id:
            logger.warning(
                f"Aid offer {offer.id} cancelled while committed to request {offer.matched_request_id}",
                extra={"extra_fields": {"offer_id": offer.id, "request_id": offer.matched_request_id}}
            )
        else:
            logger.info(f"Aid offer {offer.id} cancelled")

        self._after_lifecycle_change("aid_offer_cancelled", cancelled)
        return cancelled

    def _after_lifecycle_change(self, event_type: str, offer: AidOffer) -> None:
        if self.cache is not None:
            self.cache.invalidate_analytics()
        self._notify(event_type, {
            "offer_id": offer.id,
            "status": offer.status,
            "matched_request_id": offer.matched_request_id,
            "resource_type": offer.resource_type,
            "quantity": offer.quantity
        })

    def _notify(self, event_type: str, payload: dict, correlation_id: Optional[str] = None) -> None:
        if self.notifier is None:
            logger.debug(f"No notifier configured, dropping {event_type} event")
            return

        try:
            publish = self.notifier.publish_event(event_type, payload, correlation_id=correlation_id)
        except Exception as e:
            logger.error(f"Failed to publish {event_type} event: {e}", exc_info=True)
            return

        if not publish.success:
            logger.warning(
                f"Event {event_type} was not published: {publish.error}",
                extra={"extra_fields": {"event_type": event_type, "correlation_id": publish.correlation_id}}
            )
