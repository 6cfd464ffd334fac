# SPDX-License-Identifier: Apache-2.0

"""
Exception taxonomy for the credibility and allocation engine.
"""

from typing import Optional


class ReliefNetError(Exception):
    """Base class for engine errors."""
    pass


class NotFoundError(ReliefNetError):
    """Raised when a referenced report, offer, request or reputation does not exist."""
    
    def __init__(self, entity: str, entity_id: str):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} not found: {entity_id}")


class InvalidStateError(ReliefNetError):
    """Raised when an entity is not in a state that allows the operation."""
    pass


class ComputationError(ReliefNetError):
    """Raised when scoring fails unexpectedly for one item."""
    
    def __init__(self, message: str, entity_id: Optional[str] = None):
        self.entity_id = entity_id
        super().__init__(message)


class PersistenceError(ReliefNetError):
    """Raised when a store write fails after a score was computed."""
    pass


class BatchInProgressError(ReliefNetError):
    """Raised when another batch allocation run holds the batch lock."""
    pass
