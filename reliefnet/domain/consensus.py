# SPDX-License-Identifier: Apache-2.0

"""
Consensus scoring for disaster reports.

Pure functions that blend community votes, responder verifications, the
heuristic validation score and official confirmation into a bounded 0-100
consensus score. The score is always recomputed from current counters,
never patched incrementally.
"""

import math
from dataclasses import dataclass
from typing import Optional

from ..models.entities import DisasterReport


VOTE_WEIGHT = 5
VOTE_TERM_LIMIT = 100
VERIFICATION_WEIGHT = 10
VERIFICATION_TERM_CAP = 50
AI_TERM_WEIGHT = 20
CONFIRMATION_BONUS = 30


@dataclass(frozen=True)
class ConsensusSignals:
    """Current credibility signals for one report."""
    upvotes: int = 0
    downvotes: int = 0
    verification_count: int = 0
    ai_score: Optional[float] = None
    confirmed: bool = False


def clamp(value: float, lower: float, upper: float) -> float:
    """Clamp value to the closed interval [lower, upper]."""
    return max(lower, min(upper, value))


def round_half_up(value: float) -> int:
    """Round to the nearest integer with halves going up."""
    return int(math.floor(value + 0.5))


def sanitize_count(value) -> int:
    """Coerce a counter to a non-negative integer, treating NaN/None as 0."""
    if value is None:
        return 0
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0
    if math.isnan(number) or number < 0:
        return 0
    if math.isinf(number):
        return 0
    return int(number)


def sanitize_score(value) -> float:
    """Coerce a 0-100 sub-score, treating NaN/None as 0."""
    if value is None:
        return 0.0
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(number):
        return 0.0
    return clamp(number, 0.0, 100.0)


def signals_from_report(
    report: DisasterReport,
    upvotes: Optional[int] = None,
    downvotes: Optional[int] = None,
    verification_count: Optional[int] = None
) -> ConsensusSignals:
    """
    Build consensus signals from a report, optionally overriding counters.
    
    Args:
        report: Report carrying the stored counters
        upvotes: Fresh upvote count from the vote store
        downvotes: Fresh downvote count from the vote store
        verification_count: Fresh verification count
        
    Returns:
        ConsensusSignals for compute_consensus
    """
    return ConsensusSignals(
        upvotes=report.upvotes if upvotes is None else upvotes,
        downvotes=report.downvotes if downvotes is None else downvotes,
        verification_count=report.verification_count if verification_count is None else verification_count,
        ai_score=report.ai_validation_score,
        confirmed=report.is_confirmed()
    )


def compute_consensus(signals: ConsensusSignals) -> int:
    """
    Compute the 0-100 consensus score for a report.
    
    Each term is bounded before summation: votes are capped to +/-100,
    verifications to 50, the heuristic score contributes at most 20 and
    official confirmation adds a flat 30.
    
    Args:
        signals: Current report signals
        
    Returns:
        Integer consensus score in [0, 100]
    """
    upvotes = sanitize_count(signals.upvotes)
    downvotes = sanitize_count(signals.downvotes)
    verifications = sanitize_count(signals.verification_count)
    ai_score = sanitize_score(signals.ai_score)
    
    vote_term = clamp((upvotes - downvotes) * VOTE_WEIGHT, -VOTE_TERM_LIMIT, VOTE_TERM_LIMIT)
    verification_term = min(VERIFICATION_TERM_CAP, verifications * VERIFICATION_WEIGHT)
    ai_term = (ai_score / 100) * AI_TERM_WEIGHT
    confirmation_term = CONFIRMATION_BONUS if signals.confirmed else 0
    
    total = vote_term + verification_term + ai_term + confirmation_term
    
    return int(clamp(round_half_up(total), 0, 100))
