# SPDX-License-Identifier: Apache-2.0

"""
Trust scoring for users from aggregated reputation counters.
"""

from ..models.entities import UserReputation
from .consensus import clamp, round_half_up, sanitize_count


BASELINE_TRUST = 50
NEUTRAL_RATE = 50.0
VERIFICATION_RATE_WEIGHT = 0.3
FALSE_REPORT_WEIGHT = 0.5
VERIFICATIONS_GIVEN_WEIGHT = 0.5
VERIFICATIONS_GIVEN_CAP = 15
UPVOTE_RATIO_WEIGHT = 0.2
RESOURCES_PROVIDED_WEIGHT = 1
RESOURCES_PROVIDED_CAP = 20

REPUTATION_COUNTERS = (
    "total_reports",
    "verified_reports",
    "false_reports",
    "verifications_given",
    "upvotes_received",
    "downvotes_received",
    "resources_provided",
)


def compute_trust(reputation: UserReputation) -> int:
    """
    Compute the 0-100 trust score for a user.
    
    Starts from a neutral 50 and adjusts for report accuracy, false
    reports, verification activity, votes received and resources provided.
    A reputation with all-zero counters scores exactly 50.
    
    Args:
        reputation: Reputation counters for the user
        
    Returns:
        Integer trust score in [0, 100]
    """
    total_reports = sanitize_count(reputation.total_reports)
    verified_reports = sanitize_count(reputation.verified_reports)
    false_reports = sanitize_count(reputation.false_reports)
    verifications_given = sanitize_count(reputation.verifications_given)
    upvotes = sanitize_count(reputation.upvotes_received)
    downvotes = sanitize_count(reputation.downvotes_received)
    resources_provided = sanitize_count(reputation.resources_provided)
    
    score = float(BASELINE_TRUST)
    
    if total_reports > 0:
        verification_rate = verified_reports / total_reports * 100
        false_report_rate = false_reports / total_reports * 100
    else:
        verification_rate = NEUTRAL_RATE
        false_report_rate = 0.0
    
    score += (verification_rate - NEUTRAL_RATE) * VERIFICATION_RATE_WEIGHT
    score -= false_report_rate * FALSE_REPORT_WEIGHT
    score += min(VERIFICATIONS_GIVEN_CAP, verifications_given * VERIFICATIONS_GIVEN_WEIGHT)
    
    votes_received = upvotes + downvotes
    upvote_ratio = upvotes / votes_received * 100 if votes_received > 0 else NEUTRAL_RATE
    score += (upvote_ratio - NEUTRAL_RATE) * UPVOTE_RATIO_WEIGHT
    
    score += min(RESOURCES_PROVIDED_CAP, resources_provided * RESOURCES_PROVIDED_WEIGHT)
    
    return int(clamp(round_half_up(score), 0, 100))
