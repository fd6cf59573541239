"""
Classification package.

Provides the rule-based Classifier, its fingerprint cache, and the
repository that persists classification results.
"""

from .cache import ClassificationCache, fingerprint
from .repository import ClassificationRepository
from .service import ClassificationBatchError, Classifier, format_classification

__all__ = [
    "ClassificationBatchError",
    "ClassificationCache",
    "ClassificationRepository",
    "Classifier",
    "fingerprint",
    "format_classification",
]
