"""
Priority scoring package.
"""

from .repository import (
    EmailRepository,
    PriorityRepository,
    SenderAnalyticsRepository,
    TriageRepositoryError,
)
from .service import (
    PriorityEngine,
    PriorityNotFoundError,
    PriorityRecalculationError,
    explain_priority,
)

__all__ = [
    "EmailRepository",
    "PriorityEngine",
    "PriorityNotFoundError",
    "PriorityRecalculationError",
    "PriorityRepository",
    "SenderAnalyticsRepository",
    "TriageRepositoryError",
    "explain_priority",
]
