"""
Triage domain models.
"""

from .models import (
    BUILTIN_CATEGORIES,
    Category,
    ClassificationMethod,
    ClassificationResult,
    EmailFilter,
    FilteredEmail,
    Message,
    MissingMessageFieldsError,
    PrioritizedEmail,
    PriorityBand,
    PriorityFactors,
    PriorityScore,
    SenderAnalytics,
    StoredEmail,
    build_message,
    ensure_utc,
)

__all__ = [
    "BUILTIN_CATEGORIES",
    "Category",
    "ClassificationMethod",
    "ClassificationResult",
    "EmailFilter",
    "FilteredEmail",
    "Message",
    "MissingMessageFieldsError",
    "PrioritizedEmail",
    "PriorityBand",
    "PriorityFactors",
    "PriorityScore",
    "SenderAnalytics",
    "StoredEmail",
    "build_message",
    "ensure_utc",
]
