# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Unit tests for MongoDB service layer.
"""

import pytest
from datetime import datetime
from unittest.mock import MagicMock, patch
from bson import ObjectId
from bson.errors import InvalidDocument
from pymongo import DESCENDING
from pymongo.errors import PyMongoError

from reliefnet.errors import InvalidStateError, PersistenceError
from reliefnet.models.entities import AidOffer
from reliefnet.models.enums import OfferStatus, RequestStatus
from reliefnet.services.mongodb import (
    AID_OFFERS,
    MATCH_SUGGESTIONS,
    REPORT_VOTES,
    MongoDBService
)


class TestMongoDBService:
    """Test MongoDB service functionality against a mocked collection."""

    @pytest.fixture
    def collection(self):
        """Mocked pymongo collection."""
        return MagicMock()

    @pytest.fixture
    def mongodb_service(self, collection):
        """MongoDB service with get_collection patched."""
        service = MongoDBService("mongodb://localhost:27017/reliefnet_test", "reliefnet_test")
        with patch.object(service, "get_collection", return_value=collection) as get_collection:
            service.get_collection_mock = get_collection
            yield service

    def test_get_vote_counts(self, mongodb_service, collection):
        """Aggregated vote groups map to upvotes and downvotes."""
        collection.aggregate.return_value = [
            {"_id": "upvote", "count": 7},
            {"_id": "downvote", "count": 2}
        ]

        counts = mongodb_service.get_vote_counts("report-1")

        assert counts == {"upvotes": 7, "downvotes": 2}
        mongodb_service.get_collection_mock.assert_called_with(REPORT_VOTES)
        pipeline = collection.aggregate.call_args[0][0]
        assert pipeline[0] == {"$match": {"reportId": "report-1"}}

    def test_get_vote_counts_without_votes(self, mongodb_service, collection):
        """Reports without votes count zero of each."""
        collection.aggregate.return_value = []

        assert mongodb_service.get_vote_counts("report-1") == {"upvotes": 0, "downvotes": 0}

    def test_get_verification_count(self, mongodb_service, collection):
        """Verifications are counted per report."""
        collection.count_documents.return_value = 4

        assert mongodb_service.get_verification_count("report-1") == 4
        collection.count_documents.assert_called_once_with({"reportId": "report-1"})

    def test_get_offer_by_object_id(self, mongodb_service, collection):
        """ObjectId strings are queried as ObjectIds."""
        object_id = ObjectId()
        collection.find_one.return_value = {
            "_id": object_id,
            "userId": "supplier-1",
            "resourceType": "water",
            "quantity": 12,
            "status": "available"
        }

        offer = mongodb_service.get_offer(str(object_id))

        assert isinstance(offer, AidOffer)
        assert offer.id == str(object_id)
        collection.find_one.assert_called_once_with({"_id": object_id})

    def test_get_missing_offer(self, mongodb_service, collection):
        """Missing documents return None."""
        collection.find_one.return_value = None

        assert mongodb_service.get_offer("not-an-object-id") is None
        collection.find_one.assert_called_once_with({"_id": "not-an-object-id"})

    def test_read_errors_raise_persistence_error(self, mongodb_service, collection):
        """Driver errors are wrapped."""
        collection.find_one.side_effect = PyMongoError("connection reset")

        with pytest.raises(PersistenceError) as exc_info:
            mongodb_service.get_report("report-1")

        assert isinstance(exc_info.value.__cause__, PyMongoError)

    def test_update_report_maps_fields(self, mongodb_service, collection):
        """Snake-case updates are written with camelCase keys."""
        collection.update_one.return_value = MagicMock(matched_count=1)

        assert mongodb_service.update_report("report-1", {"consensus_score": 70, "verification_count": 3})

        update = collection.update_one.call_args[0][1]["$set"]
        assert update["consensusScore"] == 70
        assert update["verificationCount"] == 3
        assert isinstance(update["updatedAt"], datetime)

    def test_increment_reputation_upserts(self, mongodb_service, collection):
        """Counters are incremented atomically with defaults on insert."""
        collection.find_one_and_update.return_value = {
            "_id": ObjectId(),
            "userId": "user-1",
            "verificationsGiven": 1,
            "trustScore": 50
        }

        reputation = mongodb_service.increment_reputation("user-1", {"verifications_given": 1})

        assert reputation.verifications_given == 1
        query, update = collection.find_one_and_update.call_args[0]
        kwargs = collection.find_one_and_update.call_args[1]
        assert query == {"userId": "user-1"}
        assert update["$inc"] == {"verificationsGiven": 1}
        assert "verificationsGiven" not in update["$setOnInsert"]
        assert "updatedAt" not in update["$setOnInsert"]
        assert "userId" not in update["$setOnInsert"]
        assert update["$setOnInsert"]["trustScore"] == 50
        assert kwargs["upsert"] is True

    def test_match_offer_is_compare_and_set(self, mongodb_service, collection):
        """Only available offers are committed."""
        collection.update_one.return_value = MagicMock(modified_count=0)
        offer_id = str(ObjectId())

        assert mongodb_service.match_offer_to_request(offer_id, "request-1") is False

        query, update = collection.update_one.call_args[0]
        assert query == {"_id": ObjectId(offer_id), "status": "available"}
        assert update["$set"]["status"] == "committed"
        assert update["$set"]["matchedRequestId"] == "request-1"

    def test_get_available_offers(self, mongodb_service, collection):
        """Available offers are queried by status."""
        collection.find.return_value = MagicMock()
        collection.find.return_value.sort.return_value = iter([])

        assert mongodb_service.get_available_offers() == []

        mongodb_service.get_collection_mock.assert_called_with(AID_OFFERS)
        collection.find.assert_called_once_with({"status": "available"})

    def test_get_prioritized_reports_excludes_flagged(self, mongodb_service, collection):
        """The priority query filters out flagged reports and sorts by priority."""
        cursor = MagicMock()
        collection.find.return_value = cursor
        cursor.sort.return_value = cursor
        cursor.limit.return_value = iter([])

        mongodb_service.get_prioritized_reports(limit=10)

        collection.find.assert_called_once_with({"flagType": None})
        sort = cursor.sort.call_args[0][0]
        assert sort[0] == ("priorityScore", DESCENDING)
        cursor.limit.assert_called_once_with(10)

    def test_create_match_suggestion(self, mongodb_service, collection):
        """Suggestions are inserted pending with their batch id."""
        collection.insert_one.return_value = MagicMock(inserted_id=ObjectId())

        suggestion = mongodb_service.create_match_suggestion(
            request_id="request-1", offer_id="offer-1", score=80, reasoning="ok", batch_id="batch-1"
        )

        document = collection.insert_one.call_args[0][0]
        assert document["batchId"] == "batch-1"
        assert document["status"] == "pending"
        assert suggestion.score == 80
        mongodb_service.get_collection_mock.assert_called_with(MATCH_SUGGESTIONS)

    def test_create_match_suggestion_failure(self, mongodb_service, collection):
        """Insert errors raise PersistenceError."""
        collection.insert_one.side_effect = PyMongoError("write concern")

        with pytest.raises(PersistenceError):
            mongodb_service.create_match_suggestion("request-1", "offer-1", 80, "ok")

    def test_health_check_unhealthy(self):
        """Connection failures report unhealthy instead of raising."""
        service = MongoDBService("mongodb://localhost:1/reliefnet_test", "reliefnet_test")
        with patch("reliefnet.services.mongodb.MongoClient", side_effect=PyMongoError("unreachable")):
            health = service.health_check()

        assert health["status"] == "unhealthy"
        assert health["database"] == "reliefnet_test"

    def test_save_offer_conditional_on_status(self, mongodb_service, collection):
        """An expected status turns the write into a compare-and-set."""
        collection.update_one.return_value = MagicMock(matched_count=0)
        offer_id = str(ObjectId())
        offer = AidOffer(
            id=offer_id, user_id="supplier-1", resource_type="water", quantity=5,
            status="delivered", matched_request_id="request-1"
        )

        assert mongodb_service.save_offer(offer, expected_status=OfferStatus.COMMITTED) is False

        query, update = collection.update_one.call_args[0]
        assert query == {"_id": ObjectId(offer_id), "status": "committed"}
        assert update["$set"]["status"] == "delivered"

    def test_update_offer_status_follows_state_machine(self, mongodb_service, collection):
        """Committing without a request is rejected before any write."""
        collection.find_one.return_value = {
            "_id": ObjectId(),
            "userId": "supplier-1",
            "resourceType": "water",
            "quantity": 12,
            "status": "available"
        }

        with pytest.raises(InvalidStateError):
            mongodb_service.update_offer_status(str(collection.find_one.return_value["_id"]), OfferStatus.COMMITTED)

        collection.update_one.assert_not_called()

    def test_update_offer_status_cancels(self, mongodb_service, collection):
        """Cancelling clears the matched request under the current status."""
        object_id = ObjectId()
        collection.find_one.return_value = {
            "_id": object_id,
            "userId": "supplier-1",
            "resourceType": "water",
            "quantity": 12,
            "status": "committed",
            "matchedRequestId": "request-1"
        }
        collection.update_one.return_value = MagicMock(matched_count=1)

        assert mongodb_service.update_offer_status(str(object_id), OfferStatus.CANCELLED) is True

        query, update = collection.update_one.call_args[0]
        assert query == {"_id": object_id, "status": "committed"}
        assert update["$set"]["status"] == "cancelled"
        assert update["$set"]["matchedRequestId"] is None

    def test_update_request_status_rejects_backward_move(self, mongodb_service, collection):
        """Requests never move back to pending."""
        collection.find_one.return_value = {
            "_id": ObjectId(),
            "userId": "requester-1",
            "resourceType": "water",
            "quantity": 10,
            "urgency": "high",
            "status": "in_progress"
        }

        with pytest.raises(InvalidStateError):
            mongodb_service.update_request_status("request-1", RequestStatus.PENDING)

        collection.update_one.assert_not_called()

    def test_invalid_document_raises_persistence_error(self, mongodb_service, collection):
        """BSON encoding errors are wrapped like driver errors."""
        collection.insert_one.side_effect = InvalidDocument("cannot encode object")

        with pytest.raises(PersistenceError):
            mongodb_service.create_match_suggestion("request-1", "offer-1", 80, "ok")
