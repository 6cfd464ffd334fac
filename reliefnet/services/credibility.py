# SPDX-License-Identifier: Apache-2.0

"""
Credibility service: keeps consensus and trust scores in step with the store.

Callers invoke this service after every vote, verification, confirmation or
moderation mutation. Scores are always recomputed from current counters so
repeated calls converge on the same value.
"""

import logging
from datetime import datetime
from typing import List, Optional

from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode

from ..domain.consensus import compute_consensus, signals_from_report
from ..domain.reports import is_false_report_flag, prioritize_reports
from ..domain.trust import compute_trust
from ..errors import NotFoundError
from ..models.entities import DisasterReport, UserReputation
from ..models.enums import FlagType

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


class CredibilityService:
    """Consensus and trust recomputation on top of the persistence layer."""

    def __init__(self, store):
        """
        Args:
            store: Persistence service (MongoDBService or a compatible double)
        """
        self.store = store

    def _require_report(self, report_id: str) -> DisasterReport:
        report = self.store.get_report(report_id)
        if report is None:
            raise NotFoundError("DisasterReport", report_id)
        return report

    def recompute_consensus(self, report_id: str) -> int:
        """
        Recompute and persist a report's consensus score.

        Vote and verification counts are re-read from their own collections
        and written back alongside the score.

        Raises:
            NotFoundError: If the report does not exist
        """
        with tracer.start_as_current_span("credibility.recompute_consensus") as span:
            span.set_attribute("report.id", report_id)
            try:
                report = self._require_report(report_id)
                votes = self.store.get_vote_counts(report_id)
                verification_count = self.store.get_verification_count(report_id)

                signals = signals_from_report(
                    report,
                    upvotes=votes["upvotes"],
                    downvotes=votes["downvotes"],
                    verification_count=verification_count
                )
                score = compute_consensus(signals)

                self.store.update_report(report_id, {
                    "consensus_score": score,
                    "upvotes": signals.upvotes,
                    "downvotes": signals.downvotes,
                    "verification_count": signals.verification_count
                })
            except Exception as e:
                span.record_exception(e)
                span.set_status(Status(StatusCode.ERROR, str(e)))
                raise

            span.set_attribute("report.consensus_score", score)
            logger.info(
                f"Consensus recomputed for report {report_id}: {score}",
                extra={
                    "extra_fields": {
                        "report_id": report_id,
                        "consensus_score": score,
                        "upvotes": signals.upvotes,
                        "downvotes": signals.downvotes,
                        "verification_count": signals.verification_count,
                        "confirmed": signals.confirmed
                    }
                }
            )
            return score

    def recompute_trust(self, user_id: str) -> int:
        """
        Recompute and persist a user's trust score.

        Raises:
            NotFoundError: If the user has no reputation record
        """
        with tracer.start_as_current_span("credibility.recompute_trust") as span:
            span.set_attribute("user.id", user_id)
            reputation = self.store.get_user_reputation(user_id)
            if reputation is None:
                error = NotFoundError("UserReputation", user_id)
                span.record_exception(error)
                span.set_status(Status(StatusCode.ERROR, str(error)))
                raise error

            return self._persist_trust(reputation)

    def _persist_trust(self, reputation: UserReputation) -> int:
        score = compute_trust(reputation)
        self.store.update_user_reputation(reputation.user_id, {"trust_score": score})
        logger.info(
            f"Trust recomputed for user {reputation.user_id}: {score}",
            extra={"extra_fields": {"user_id": reputation.user_id, "trust_score": score}}
        )
        return score

    def _increment(self, user_id: str, **increments) -> int:
        reputation = self.store.increment_reputation(user_id, increments)
        return self._persist_trust(reputation)

    # Reputation events

    def record_report_submitted(self, user_id: str, verified: bool = False) -> int:
        """Count a submitted report; verified reports also count toward accuracy."""
        if verified:
            return self._increment(user_id, total_reports=1, verified_reports=1)
        return self._increment(user_id, total_reports=1)

    def record_report_verified(self, user_id: str) -> int:
        """Count one of the user's earlier reports as verified."""
        return self._increment(user_id, verified_reports=1)

    def record_verification_given(self, user_id: str) -> int:
        """Count a verification performed by a responder."""
        return self._increment(user_id, verifications_given=1)

    def record_resource_provided(self, user_id: str) -> int:
        """Count a delivered aid offer for its supplier."""
        return self._increment(user_id, resources_provided=1)

    def record_false_report(self, user_id: str) -> int:
        """Count a report moderated as false."""
        return self._increment(user_id, false_reports=1)

    def record_vote_received(self, user_id: str, upvote: bool) -> int:
        """Count a vote cast on one of the user's reports."""
        if upvote:
            return self._increment(user_id, upvotes_received=1)
        return self._increment(user_id, downvotes_received=1)

    # Confirmation and moderation

    def confirm_report(self, report_id: str, responder_id: str) -> int:
        """Mark a report officially confirmed and recompute its consensus."""
        self._require_report(report_id)
        self.store.update_report(report_id, {
            "confirmed_by": responder_id,
            "confirmed_at": datetime.utcnow()
        })
        logger.info(f"Report {report_id} confirmed by {responder_id}")
        return self.recompute_consensus(report_id)

    def unconfirm_report(self, report_id: str) -> int:
        """Clear an official confirmation and recompute consensus."""
        self._require_report(report_id)
        self.store.update_report(report_id, {"confirmed_by": None, "confirmed_at": None})
        logger.info(f"Report {report_id} confirmation removed")
        return self.recompute_consensus(report_id)

    def flag_report(self, report_id: str, flag_type: FlagType, admin_id: str) -> DisasterReport:
        """
        Flag a report, hiding it from prioritized lists.

        False-report flags also count against the reporter. Re-flagging a
        report already flagged as false does not count twice.
        """
        report = self._require_report(report_id)
        flag_value = FlagType(flag_type).value

        self.store.update_report(report_id, {
            "flag_type": flag_value,
            "flagged_by": admin_id,
            "flagged_at": datetime.utcnow()
        })
        logger.info(
            f"Report {report_id} flagged as {flag_value}",
            extra={"extra_fields": {"report_id": report_id, "flag_type": flag_value, "admin_id": admin_id}}
        )

        if is_false_report_flag(flag_value) and not is_false_report_flag(report.flag_type):
            self.record_false_report(report.user_id)

        return self._require_report(report_id)

    def unflag_report(self, report_id: str) -> DisasterReport:
        """Remove a moderation flag; reputation counters are left untouched."""
        self._require_report(report_id)
        self.store.update_report(report_id, {"flag_type": None, "flagged_by": None, "flagged_at": None})
        logger.info(f"Report {report_id} unflagged")
        return self._require_report(report_id)

    def get_prioritized_reports(self, limit: Optional[int] = 50) -> List[DisasterReport]:
        """Unflagged reports by priority score, consensus, then recency."""
        with tracer.start_as_current_span("credibility.get_prioritized_reports") as span:
            reports = self.store.get_prioritized_reports(limit=limit or 0)
            ordered = prioritize_reports(reports, limit=limit)
            span.set_attribute("reports.count", len(ordered))
            return ordered
