# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Pytest configuration and fixtures.
"""

import os
import itertools
import pytest
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from reliefnet.errors import PersistenceError
from reliefnet.models.entities import (
    AidOffer, DisasterReport, MatchSuggestion, ReportVote, ResourceRequest, UserReputation
)
from reliefnet.models.enums import OfferStatus, RequestStatus, VoteType
from reliefnet.domain.lifecycle import transition_offer, transition_request
from reliefnet.domain.reports import prioritize_reports

# Set test environment
os.environ['ENVIRONMENT'] = 'test'
os.environ['MONGODB_DATABASE'] = 'reliefnet_test'
os.environ['OTEL_ENABLED'] = 'false'

BASE_TIME = datetime(2024, 1, 15, 10, 0, 0)


def _replace(entity, updates: Dict):
    data = entity.model_dump()
    data.update(updates)
    data["updated_at"] = datetime.utcnow()
    return type(entity).model_validate(data)


class InMemoryStore:
    """Dictionary-backed stand-in for MongoDBService."""

    def __init__(self):
        self.reports: Dict[str, DisasterReport] = {}
        self.votes: List[ReportVote] = []
        self.verifications: List[Dict[str, str]] = []
        self.reputations: Dict[str, UserReputation] = {}
        self.offers: Dict[str, AidOffer] = {}
        self.requests: Dict[str, ResourceRequest] = {}
        self.suggestions: List[MatchSuggestion] = []
        # Number of upcoming create_match_suggestion calls that fail
        self.failing_suggestion_writes = 0
        self.suggestion_write_error = PersistenceError
        self.suggestion_write_attempts = 0

    # Seeding helpers

    def add_report(self, report: DisasterReport) -> DisasterReport:
        self.reports[report.id] = report
        return report

    def add_offer(self, offer: AidOffer) -> AidOffer:
        self.offers[offer.id] = offer
        return offer

    def add_request(self, request: ResourceRequest) -> ResourceRequest:
        self.requests[request.id] = request
        return request

    def add_vote(self, report_id: str, user_id: str, vote_type: VoteType) -> None:
        self.votes.append(ReportVote(report_id=report_id, user_id=user_id, vote_type=vote_type))

    def add_verification(self, report_id: str, user_id: str) -> None:
        self.verifications.append({"report_id": report_id, "user_id": user_id})

    # Reports

    def get_report(self, report_id: str) -> Optional[DisasterReport]:
        return self.reports.get(report_id)

    def update_report(self, report_id: str, updates: Dict) -> bool:
        report = self.reports.get(report_id)
        if report is None:
            return False
        self.reports[report_id] = _replace(report, updates)
        return True

    def get_vote_counts(self, report_id: str) -> Dict[str, int]:
        votes = [v for v in self.votes if v.report_id == report_id]
        return {
            "upvotes": sum(1 for v in votes if v.vote_type == VoteType.UPVOTE),
            "downvotes": sum(1 for v in votes if v.vote_type == VoteType.DOWNVOTE)
        }

    def get_verification_count(self, report_id: str) -> int:
        return sum(1 for v in self.verifications if v["report_id"] == report_id)

    def get_prioritized_reports(self, limit: int = 100) -> List[DisasterReport]:
        return prioritize_reports(list(self.reports.values()), limit=limit or None)

    # Reputation

    def get_user_reputation(self, user_id: str) -> Optional[UserReputation]:
        return self.reputations.get(user_id)

    def update_user_reputation(self, user_id: str, updates: Dict) -> bool:
        reputation = self.reputations.get(user_id)
        if reputation is None:
            return False
        self.reputations[user_id] = _replace(reputation, updates)
        return True

    def increment_reputation(self, user_id: str, increments: Dict[str, int]) -> UserReputation:
        reputation = self.reputations.get(user_id) or UserReputation(user_id=user_id)
        updates = {k: getattr(reputation, k) + v for k, v in increments.items()}
        self.reputations[user_id] = _replace(reputation, updates)
        return self.reputations[user_id]

    # Offers and requests

    def get_offer(self, offer_id: str) -> Optional[AidOffer]:
        return self.offers.get(offer_id)

    def get_request(self, request_id: str) -> Optional[ResourceRequest]:
        return self.requests.get(request_id)

    def get_available_offers(self) -> List[AidOffer]:
        offers = [o for o in self.offers.values() if o.status == OfferStatus.AVAILABLE]
        return sorted(offers, key=lambda o: o.created_at)

    def get_pending_requests(self) -> List[ResourceRequest]:
        requests = [r for r in self.requests.values() if r.status == RequestStatus.PENDING]
        return sorted(requests, key=lambda r: r.created_at)

    def get_all_offers(self) -> List[AidOffer]:
        return list(self.offers.values())

    def get_all_requests(self) -> List[ResourceRequest]:
        return list(self.requests.values())

    def save_offer(self, offer: AidOffer, expected_status: Optional[OfferStatus] = None) -> bool:
        current = self.offers.get(offer.id)
        if current is None:
            return False
        if expected_status is not None and current.status != OfferStatus(expected_status).value:
            return False
        self.offers[offer.id] = offer
        return True

    def save_request(self, request: ResourceRequest, expected_status: Optional[RequestStatus] = None) -> bool:
        current = self.requests.get(request.id)
        if current is None:
            return False
        if expected_status is not None and current.status != RequestStatus(expected_status).value:
            return False
        self.requests[request.id] = request
        return True

    def update_offer_status(self, offer_id: str, status: OfferStatus) -> bool:
        offer = self.offers.get(offer_id)
        if offer is None:
            return False
        return self.save_offer(transition_offer(offer, status), expected_status=offer.status)

    def update_request_status(self, request_id: str, status: RequestStatus) -> bool:
        request = self.requests.get(request_id)
        if request is None:
            return False
        return self.save_request(transition_request(request, status), expected_status=request.status)

    def match_offer_to_request(self, offer_id: str, request_id: str) -> bool:
        offer = self.offers.get(offer_id)
        if offer is None or offer.status != OfferStatus.AVAILABLE:
            return False
        self.offers[offer_id] = _replace(offer, {
            "status": OfferStatus.COMMITTED.value,
            "matched_request_id": request_id
        })
        return True

    # Match suggestions

    def create_match_suggestion(self, request_id, offer_id, score, reasoning, batch_id=None, **kwargs):
        self.suggestion_write_attempts += 1
        if self.failing_suggestion_writes > 0:
            self.failing_suggestion_writes -= 1
            raise self.suggestion_write_error("simulated write failure")
        suggestion = MatchSuggestion(
            request_id=request_id,
            offer_id=offer_id,
            score=score,
            reasoning=reasoning,
            batch_id=batch_id
        )
        self.suggestions.append(suggestion)
        return suggestion

    def get_match_suggestions(self, batch_id: Optional[str] = None) -> List[MatchSuggestion]:
        return [s for s in self.suggestions if batch_id is None or s.batch_id == batch_id]


@pytest.fixture
def store():
    """Empty in-memory store."""
    return InMemoryStore()


@pytest.fixture
def make_offer():
    """Factory for aid offers; minutes offsets creation time from a fixed base."""
    counter = itertools.count(1)

    def _make(resource_type="water", quantity=100, minutes=0, **overrides):
        data = {
            "id": f"offer-{next(counter):03d}",
            "user_id": "supplier-1",
            "resource_type": resource_type,
            "quantity": quantity,
            "created_at": BASE_TIME + timedelta(minutes=minutes)
        }
        data.update(overrides)
        return AidOffer(**data)

    return _make


@pytest.fixture
def make_request():
    """Factory for resource requests; minutes offsets creation time from a fixed base."""
    counter = itertools.count(1)

    def _make(resource_type="water", quantity=50, urgency="high", minutes=0, **overrides):
        data = {
            "id": f"request-{next(counter):03d}",
            "user_id": "requester-1",
            "resource_type": resource_type,
            "quantity": quantity,
            "urgency": urgency,
            "created_at": BASE_TIME + timedelta(minutes=minutes)
        }
        data.update(overrides)
        return ResourceRequest(**data)

    return _make


@pytest.fixture
def make_report():
    """Factory for disaster reports."""
    counter = itertools.count(1)

    def _make(minutes=0, **overrides):
        data = {
            "id": f"report-{next(counter):03d}",
            "user_id": "reporter-1",
            "title": "Flooded underpass on Main Street",
            "type": "flood",
            "severity": "high",
            "created_at": BASE_TIME + timedelta(minutes=minutes)
        }
        data.update(overrides)
        return DisasterReport(**data)

    return _make
