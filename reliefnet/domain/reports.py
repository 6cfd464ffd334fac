# SPDX-License-Identifier: Apache-2.0

"""
Report prioritization and moderation rules.
"""

from datetime import datetime
from typing import List, Optional, Sequence

from ..models.entities import DisasterReport
from ..models.enums import FlagType


def prioritize_reports(reports: Sequence[DisasterReport], limit: Optional[int] = None) -> List[DisasterReport]:
    """
    Order unflagged reports for responders.
    
    Flagged reports (false report, duplicate, spam) are always excluded.
    Ordering is operator priority first (unset counts as lowest), then
    consensus score, then most recent.
    
    Args:
        reports: Candidate reports
        limit: Optional maximum number of reports
        
    Returns:
        Ordered list of unflagged reports
    """
    visible = [r for r in reports if not r.is_flagged()]
    
    ordered = sorted(
        visible,
        key=lambda r: (
            r.priority_score if r.priority_score is not None else -1,
            r.consensus_score,
            r.created_at or datetime.min
        ),
        reverse=True
    )
    
    if limit is not None:
        return ordered[:limit]
    return ordered


def is_false_report_flag(flag_type: Optional[str]) -> bool:
    """Only false-report flags count against the reporter's reputation."""
    return flag_type == FlagType.FALSE_REPORT.value
