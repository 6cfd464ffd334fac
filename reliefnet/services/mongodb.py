# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
MongoDB service layer for reports, reputation, offers, requests and match suggestions.
"""

import os
import logging
from datetime import datetime
from typing import List, Dict, Optional, Any
from pymongo import MongoClient, ASCENDING, DESCENDING, ReturnDocument
from pymongo.collection import Collection
from pymongo.database import Database
from pymongo.errors import (
    ConnectionFailure,
    ServerSelectionTimeoutError,
    PyMongoError
)
from bson import ObjectId
from bson.errors import InvalidDocument

from ..domain.lifecycle import transition_offer, transition_request
from ..errors import PersistenceError
from ..models.entities import (
    DisasterReport, UserReputation, AidOffer, ResourceRequest, MatchSuggestion
)
from ..models.enums import OfferStatus, RequestStatus, VoteType, MatchSuggestionStatus

logger = logging.getLogger(__name__)


REPORTS = "disaster_reports"
REPORT_VOTES = "report_votes"
REPORT_VERIFICATIONS = "report_verifications"
USER_REPUTATION = "user_reputation"
AID_OFFERS = "aid_offers"
RESOURCE_REQUESTS = "resource_requests"
MATCH_SUGGESTIONS = "match_suggestions"

# camelCase document keys for reputation counters
REPUTATION_FIELDS = {
    "total_reports": "totalReports",
    "verified_reports": "verifiedReports",
    "false_reports": "falseReports",
    "verifications_given": "verificationsGiven",
    "upvotes_received": "upvotesReceived",
    "downvotes_received": "downvotesReceived",
    "resources_provided": "resourcesProvided",
    "trust_score": "trustScore",
}

REPORT_FIELDS = {
    "upvotes": "upvotes",
    "downvotes": "downvotes",
    "verification_count": "verificationCount",
    "consensus_score": "consensusScore",
    "confirmed_by": "confirmedBy",
    "confirmed_at": "confirmedAt",
    "flag_type": "flagType",
    "flagged_by": "flaggedBy",
    "flagged_at": "flaggedAt",
    "priority_score": "priorityScore",
    "ai_validation_score": "aiValidationScore",
}


class MongoDBService:
    """MongoDB persistence for the credibility and allocation engine."""

    def __init__(self, connection_string: str = None, database_name: str = None):
        """Initialize MongoDB service with connection pooling."""
        self.connection_string = connection_string or os.getenv(
            'MONGODB_URI',
            'mongodb://localhost:27017/reliefnet_dev'
        )
        self.database_name = database_name or os.getenv('MONGODB_DATABASE', 'reliefnet_dev')
        self._client: Optional[MongoClient] = None
        self._database: Optional[Database] = None

        # Connection pool settings
        self.max_pool_size = int(os.getenv('MONGODB_MAX_POOL_SIZE', '10'))
        self.min_pool_size = int(os.getenv('MONGODB_MIN_POOL_SIZE', '1'))
        self.max_idle_time_ms = int(os.getenv('MONGODB_MAX_IDLE_TIME_MS', '30000'))
        self.server_selection_timeout_ms = int(os.getenv('MONGODB_SERVER_SELECTION_TIMEOUT_MS', '5000'))

        logger.info(f"MongoDB service initialized for database: {self.database_name}")

    @property
    def client(self) -> MongoClient:
        """Get MongoDB client with connection pooling."""
        if self._client is None:
            try:
                self._client = MongoClient(
                    self.connection_string,
                    maxPoolSize=self.max_pool_size,
                    minPoolSize=self.min_pool_size,
                    maxIdleTimeMS=self.max_idle_time_ms,
                    serverSelectionTimeoutMS=self.server_selection_timeout_ms,
                    retryWrites=True,
                    retryReads=True
                )
                # Test connection
                self._client.admin.command('ping')
                logger.info("MongoDB connection established successfully")
            except (ConnectionFailure, ServerSelectionTimeoutError) as e:
                logger.error(f"Failed to connect to MongoDB: {e}")
                raise

        return self._client

    @property
    def database(self) -> Database:
        """Get MongoDB database."""
        if self._database is None:
            self._database = self.client[self.database_name]
        return self._database

    def get_collection(self, collection_name: str) -> Collection:
        """Get MongoDB collection."""
        return self.database[collection_name]

    def close_connection(self) -> None:
        """Close MongoDB connection."""
        if self._client:
            self._client.close()
            self._client = None
            self._database = None
            logger.info("MongoDB connection closed")

    def health_check(self) -> Dict[str, Any]:
        """Check MongoDB connection health."""
        try:
            result = self.client.admin.command('ping')
            server_info = self.client.server_info()

            return {
                'status': 'healthy',
                'ping': result.get('ok') == 1,
                'version': server_info.get('version'),
                'database': self.database_name,
                'connection_pool_size': self.max_pool_size
            }
        except Exception as e:
            logger.error(f"MongoDB health check failed: {e}")
            return {
                'status': 'unhealthy',
                'error': str(e),
                'database': self.database_name
            }

    def _id_query(self, doc_id: str) -> Dict:
        """Match a document by ObjectId when the id parses as one, else by raw id."""
        if ObjectId.is_valid(doc_id):
            return {"_id": ObjectId(doc_id)}
        return {"_id": doc_id}

    def _find_one(self, collection: str, query: Dict) -> Optional[Dict]:
        try:
            return self.get_collection(collection).find_one(query)
        except PyMongoError as e:
            logger.error(f"Failed to read from {collection}: {e}")
            raise PersistenceError(f"Failed to read from {collection}: {e}") from e

    def _find(self, collection: str, query: Dict, sort: List = None, limit: int = 0) -> List[Dict]:
        try:
            cursor = self.get_collection(collection).find(query)
            if sort:
                cursor = cursor.sort(sort)
            if limit:
                cursor = cursor.limit(limit)
            documents = list(cursor)
            logger.debug(f"Found {len(documents)} documents in {collection}")
            return documents
        except PyMongoError as e:
            logger.error(f"Failed to find documents in {collection}: {e}")
            raise PersistenceError(f"Failed to find documents in {collection}: {e}") from e

    def _update_one(self, collection: str, doc_id: str, updates: Dict, conditions: Optional[Dict] = None) -> bool:
        query = self._id_query(doc_id)
        query.update(conditions or {})
        try:
            updates = dict(updates)
            updates["updatedAt"] = datetime.utcnow()
            result = self.get_collection(collection).update_one(query, {"$set": updates})

            if result.matched_count > 0:
                logger.info(f"Updated document {doc_id} in {collection}")
                return True
            logger.warning(f"No document updated for {doc_id} in {collection}")
            return False
        except PyMongoError as e:
            logger.error(f"Failed to update document {doc_id} in {collection}: {e}")
            raise PersistenceError(f"Failed to update {doc_id} in {collection}: {e}") from e

    def _insert(self, collection: str, document: Dict) -> str:
        try:
            result = self.get_collection(collection).insert_one(document)
            logger.info(f"Created document in {collection}: {result.inserted_id}")
            return str(result.inserted_id)
        except (PyMongoError, InvalidDocument) as e:
            logger.error(f"Failed to create document in {collection}: {e}")
            raise PersistenceError(f"Failed to create document in {collection}: {e}") from e

    # Reports and credibility signals

    def get_report(self, report_id: str) -> Optional[DisasterReport]:
        """Get a disaster report by ID."""
        return DisasterReport.from_document(self._find_one(REPORTS, self._id_query(report_id)))

    def update_report(self, report_id: str, updates: Dict[str, Any]) -> bool:
        """Apply field updates (snake_case names) to a report."""
        return self._update_one(REPORTS, report_id, {REPORT_FIELDS[k]: v for k, v in updates.items()})

    def get_vote_counts(self, report_id: str) -> Dict[str, int]:
        """Count upvotes and downvotes cast on a report."""
        pipeline = [
            {"$match": {"reportId": report_id}},
            {"$group": {"_id": "$voteType", "count": {"$sum": 1}}}
        ]
        try:
            rows = list(self.get_collection(REPORT_VOTES).aggregate(pipeline))
        except PyMongoError as e:
            logger.error(f"Failed to count votes for report {report_id}: {e}")
            raise PersistenceError(f"Failed to count votes for report {report_id}: {e}") from e

        counts = {row["_id"]: row["count"] for row in rows}
        return {
            "upvotes": counts.get(VoteType.UPVOTE.value, 0),
            "downvotes": counts.get(VoteType.DOWNVOTE.value, 0)
        }

    def get_verification_count(self, report_id: str) -> int:
        """Count responder verifications recorded for a report."""
        try:
            return self.get_collection(REPORT_VERIFICATIONS).count_documents({"reportId": report_id})
        except PyMongoError as e:
            logger.error(f"Failed to count verifications for report {report_id}: {e}")
            raise PersistenceError(f"Failed to count verifications for report {report_id}: {e}") from e

    def get_prioritized_reports(self, limit: int = 100) -> List[DisasterReport]:
        """Unflagged reports ordered by priority, consensus and recency."""
        documents = self._find(
            REPORTS,
            {"flagType": None},
            sort=[("priorityScore", DESCENDING), ("consensusScore", DESCENDING), ("createdAt", DESCENDING)],
            limit=limit
        )
        return [DisasterReport.from_document(doc) for doc in documents]

    # Reputation

    def get_user_reputation(self, user_id: str) -> Optional[UserReputation]:
        """Get reputation counters for a user."""
        return UserReputation.from_document(self._find_one(USER_REPUTATION, {"userId": user_id}))

    def update_user_reputation(self, user_id: str, updates: Dict[str, Any]) -> bool:
        """Apply a partial update (snake_case names) to a user's reputation."""
        mapped = {REPUTATION_FIELDS[k]: v for k, v in updates.items()}
        mapped["updatedAt"] = datetime.utcnow()
        try:
            result = self.get_collection(USER_REPUTATION).update_one({"userId": user_id}, {"$set": mapped})
            return result.matched_count > 0
        except PyMongoError as e:
            logger.error(f"Failed to update reputation for {user_id}: {e}")
            raise PersistenceError(f"Failed to update reputation for {user_id}: {e}") from e

    def increment_reputation(self, user_id: str, increments: Dict[str, int]) -> UserReputation:
        """
        Atomically increment reputation counters, creating the record on first use.

        Returns:
            The reputation after the increment
        """
        now = datetime.utcnow()
        defaults = UserReputation(user_id=user_id).to_document()
        inc = {REPUTATION_FIELDS[k]: v for k, v in increments.items()}
        # Fields under $inc cannot also appear in $setOnInsert
        on_insert = {k: v for k, v in defaults.items() if k not in inc and k not in ("updatedAt", "userId")}

        try:
            document = self.get_collection(USER_REPUTATION).find_one_and_update(
                {"userId": user_id},
                {"$inc": inc, "$set": {"updatedAt": now}, "$setOnInsert": on_insert},
                upsert=True,
                return_document=ReturnDocument.AFTER
            )
        except PyMongoError as e:
            logger.error(f"Failed to increment reputation for {user_id}: {e}")
            raise PersistenceError(f"Failed to increment reputation for {user_id}: {e}") from e

        logger.debug(f"Incremented reputation counters for {user_id}: {increments}")
        return UserReputation.from_document(document)

    # Offers and requests

    def get_offer(self, offer_id: str) -> Optional[AidOffer]:
        """Get an aid offer by ID."""
        return AidOffer.from_document(self._find_one(AID_OFFERS, self._id_query(offer_id)))

    def get_request(self, request_id: str) -> Optional[ResourceRequest]:
        """Get a resource request by ID."""
        return ResourceRequest.from_document(self._find_one(RESOURCE_REQUESTS, self._id_query(request_id)))

    def get_available_offers(self) -> List[AidOffer]:
        """Offers with status available, oldest first."""
        documents = self._find(AID_OFFERS, {"status": OfferStatus.AVAILABLE.value}, sort=[("createdAt", ASCENDING)])
        return [AidOffer.from_document(doc) for doc in documents]

    def get_pending_requests(self) -> List[ResourceRequest]:
        """Requests with status pending, oldest first."""
        documents = self._find(
            RESOURCE_REQUESTS, {"status": RequestStatus.PENDING.value}, sort=[("createdAt", ASCENDING)]
        )
        return [ResourceRequest.from_document(doc) for doc in documents]

    def get_all_offers(self) -> List[AidOffer]:
        """Every aid offer regardless of status."""
        return [AidOffer.from_document(doc) for doc in self._find(AID_OFFERS, {})]

    def get_all_requests(self) -> List[ResourceRequest]:
        """Every resource request regardless of status."""
        return [ResourceRequest.from_document(doc) for doc in self._find(RESOURCE_REQUESTS, {})]

    def save_offer(self, offer: AidOffer, expected_status: Optional[OfferStatus] = None) -> bool:
        """
        Persist status fields of an offer produced by a lifecycle transition.

        With expected_status the write only applies while the stored offer
        still has that status; False means another caller changed it first.
        """
        conditions = {"status": OfferStatus(expected_status).value} if expected_status else None
        return self._update_one(AID_OFFERS, offer.id, {
            "status": offer.status,
            "matchedRequestId": offer.matched_request_id,
            "deliveredAt": offer.delivered_at
        }, conditions)

    def save_request(self, request: ResourceRequest, expected_status: Optional[RequestStatus] = None) -> bool:
        """Persist status fields of a request, optionally conditional on its stored status."""
        conditions = {"status": RequestStatus(expected_status).value} if expected_status else None
        return self._update_one(RESOURCE_REQUESTS, request.id, {
            "status": request.status,
            "fulfilledBy": request.fulfilled_by,
            "fulfilledAt": request.fulfilled_at
        }, conditions)

    def update_offer_status(self, offer_id: str, status: OfferStatus) -> bool:
        """
        Move a stored offer to a new status through the offer state machine.

        Committing needs a request; use match_offer_to_request for that.

        Raises:
            InvalidStateError: If the transition is not allowed
        """
        offer = self.get_offer(offer_id)
        if offer is None:
            return False
        return self.save_offer(transition_offer(offer, OfferStatus(status)), expected_status=offer.status)

    def update_request_status(self, request_id: str, status: RequestStatus) -> bool:
        """
        Move a stored request to a new status through the request state machine.

        Raises:
            InvalidStateError: If the transition is not allowed
        """
        request = self.get_request(request_id)
        if request is None:
            return False
        return self.save_request(
            transition_request(request, RequestStatus(status)), expected_status=request.status
        )

    def match_offer_to_request(self, offer_id: str, request_id: str) -> bool:
        """
        Commit an available offer to a request.

        The status filter makes the commit a compare-and-set: a concurrent
        commit of the same offer leaves this call unmatched.
        """
        query = self._id_query(offer_id)
        query["status"] = OfferStatus.AVAILABLE.value
        try:
            result = self.get_collection(AID_OFFERS).update_one(query, {"$set": {
                "status": OfferStatus.COMMITTED.value,
                "matchedRequestId": request_id,
                "updatedAt": datetime.utcnow()
            }})
        except PyMongoError as e:
            logger.error(f"Failed to match offer {offer_id} to request {request_id}: {e}")
            raise PersistenceError(f"Failed to match offer {offer_id}: {e}") from e

        if result.modified_count == 0:
            logger.warning(f"Offer {offer_id} was not available for matching")
            return False
        logger.info(f"Matched offer {offer_id} to request {request_id}")
        return True

    # Match suggestions

    def create_match_suggestion(
        self,
        request_id: str,
        offer_id: str,
        score: int,
        reasoning: str,
        status: MatchSuggestionStatus = MatchSuggestionStatus.PENDING,
        batch_id: Optional[str] = None
    ) -> MatchSuggestion:
        """Persist a match suggestion produced by a batch run."""
        suggestion = MatchSuggestion(
            request_id=request_id,
            offer_id=offer_id,
            score=score,
            reasoning=reasoning,
            status=status,
            batch_id=batch_id
        )
        self._insert(MATCH_SUGGESTIONS, suggestion.to_document())
        return suggestion

    def get_match_suggestions(self, batch_id: Optional[str] = None) -> List[MatchSuggestion]:
        """List match suggestions, optionally for one batch run."""
        query = {"batchId": batch_id} if batch_id else {}
        documents = self._find(MATCH_SUGGESTIONS, query, sort=[("createdAt", ASCENDING)])
        return [MatchSuggestion.from_document(doc) for doc in documents]

    # Index Management

    def create_indexes(self) -> None:
        """Create performance indexes for all collections."""
        try:
            logger.info("Creating MongoDB indexes...")

            reports = self.get_collection(REPORTS)
            reports.create_index([("flagType", ASCENDING), ("priorityScore", DESCENDING), ("createdAt", DESCENDING)])
            reports.create_index("userId")

            votes = self.get_collection(REPORT_VOTES)
            votes.create_index([("reportId", ASCENDING), ("userId", ASCENDING)], unique=True)

            verifications = self.get_collection(REPORT_VERIFICATIONS)
            verifications.create_index([("reportId", ASCENDING), ("userId", ASCENDING)], unique=True)

            reputation = self.get_collection(USER_REPUTATION)
            reputation.create_index("userId", unique=True)

            offers = self.get_collection(AID_OFFERS)
            offers.create_index([("status", ASCENDING), ("createdAt", ASCENDING)])
            offers.create_index([("resourceType", ASCENDING), ("status", ASCENDING)])

            requests = self.get_collection(RESOURCE_REQUESTS)
            requests.create_index([("status", ASCENDING), ("createdAt", ASCENDING)])
            requests.create_index([("resourceType", ASCENDING), ("status", ASCENDING)])

            suggestions = self.get_collection(MATCH_SUGGESTIONS)
            suggestions.create_index([("requestId", ASCENDING), ("createdAt", DESCENDING)])
            suggestions.create_index("batchId")

            logger.info("MongoDB indexes created successfully")

        except Exception as e:
            logger.error(f"Failed to create MongoDB indexes: {e}")
            raise


# Singleton instance for application use
_mongodb_service: Optional[MongoDBService] = None


def get_mongodb_service() -> MongoDBService:
    """Get singleton MongoDB service instance."""
    global _mongodb_service
    if _mongodb_service is None:
        _mongodb_service = MongoDBService()
    return _mongodb_service


def close_mongodb_connection() -> None:
    """Close MongoDB connection (for cleanup)."""
    global _mongodb_service
    if _mongodb_service:
        _mongodb_service.close_connection()
