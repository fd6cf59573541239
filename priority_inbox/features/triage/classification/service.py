"""
Rule-based message classifier.

Matches a message against the configured classification rules and falls
back to fixed heuristics when nothing matches. Results are cached per
message fingerprint; persistence is an explicit, separate call.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import UTC, datetime, timedelta
from typing import Any

from priority_inbox.config import settings
from priority_inbox.features.triage.domain import (
    BUILTIN_CATEGORIES,
    Category,
    ClassificationMethod,
    ClassificationResult,
    Message,
)
from priority_inbox.features.triage.rules import PriorityConfig, matches_rule
from priority_inbox.infrastructure.observability.logging import get_logger

from .cache import ClassificationCache, fingerprint
from .repository import ClassificationRepository

logger = get_logger(__name__)


class ClassificationBatchError(Exception):
    """Raised when one message in a batch cannot be classified."""

    def __init__(self, message: str, message_id: str | None = None):
        super().__init__(message)
        self.message_id = message_id


class Classifier:
    AUTOMATED_SENDER_MARKERS = ("noreply@", "no-reply@", "notifications@")

    # Checked in order after the automated-sender test; first hit wins.
    SUBJECT_HEURISTICS = (
        (("newsletter", "subscription", "digest"), Category.NEWSLETTERS, 0.75, "Newsletter keywords in subject"),
        (("sale", "offer", "discount", "% off", "deal"), Category.PROMOTIONS, 0.80, "Promotional keywords detected"),
        (("invoice", "payment", "receipt", "bill"), Category.INVOICE, 0.85, "Financial keywords detected"),
        (("urgent", "asap", "important", "critical"), Category.URGENT, 0.90, "Urgent keywords detected"),
    )

    def __init__(
        self,
        config: PriorityConfig,
        repository: Any = ClassificationRepository,
        cache: ClassificationCache | None = None,
    ):
        self.config = config
        self.repository = repository
        if cache is None:
            cache = ClassificationCache(ttl=timedelta(hours=settings.CLASSIFICATION_CACHE_TTL_HOURS))
        self.cache = cache

    def classify(self, message: Message) -> ClassificationResult:
        """
        Classify a message.

        Order: fresh cache entry, ignored sender, ignored subject, best
        matching rule, default heuristics. Never raises for a well-formed
        message.
        """
        key = fingerprint(message)
        cached = self.cache.get(key)
        if cached is not None:
            # The fingerprint ignores the id; answer for the message asked about.
            cached.message_id = message.id
            return cached

        if self.config.should_ignore_sender(message.sender):
            return self._result(
                message,
                Category.SPAM,
                0.99,
                ["ignored", "auto"],
                "Sender is in ignore list",
            )

        if self.config.should_ignore_subject(message.subject):
            return self._result(
                message,
                Category.NEWSLETTERS,
                0.95,
                ["ignored", "auto"],
                "Subject matches ignore pattern",
            )

        result = self._classify_by_rules(message) or self._default_classification(message)
        self.cache.set(key, result)

        logger.debug(
            "Message classified",
            message_id=message.id,
            category=str(result.category),
            confidence=result.confidence,
        )
        return result

    def classify_batch(self, messages: Iterable[Message]) -> list[ClassificationResult]:
        """Classify every message, failing the whole batch on the first error."""
        results = []
        for message in messages:
            try:
                results.append(self.classify(message))
            except Exception as exc:
                logger.error("Batch classification failed", message_id=message.id, error=str(exc))
                raise ClassificationBatchError(
                    f"failed to classify email {message.id}: {exc}", message_id=message.id
                ) from exc
        return results

    def _classify_by_rules(self, message: Message) -> ClassificationResult | None:
        matched = [
            (category, rule)
            for category, rule in self.config.classification_rules.items()
            if matches_rule(message, rule)
        ]
        if not matched:
            return None

        # Highest confidence wins; equal confidence goes to the smallest category name.
        category, rule = min(matched, key=lambda item: (-item[1].confidence, item[0]))
        return self._result(
            message,
            category,
            rule.confidence,
            list(rule.tags),
            f"Matched rule: {rule.description}",
        )

    def _default_classification(self, message: Message) -> ClassificationResult:
        sender = message.sender.lower()
        subject = message.subject.lower()
        tags = ["default", "heuristic"]

        if any(marker in sender for marker in self.AUTOMATED_SENDER_MARKERS):
            return self._result(message, Category.NEWSLETTERS, 0.70, tags, "Automated sender detected")

        for keywords, category, confidence, reasoning in self.SUBJECT_HEURISTICS:
            if any(keyword in subject for keyword in keywords):
                return self._result(message, category, confidence, tags, reasoning)

        return self._result(
            message,
            Category.PERSONAL,
            0.50,
            tags,
            "Default classification - no specific rules matched",
        )

    @staticmethod
    def _result(
        message: Message, category: str, confidence: float, tags: list[str], reasoning: str
    ) -> ClassificationResult:
        return ClassificationResult(
            message_id=message.id,
            category=str(category),
            confidence=confidence,
            method=ClassificationMethod.RULES,
            tags=tags,
            reasoning=reasoning,
            timestamp=datetime.now(UTC),
        )

    async def save_classification(self, result: ClassificationResult) -> None:
        await self.repository.save(result)

    async def get_classification(self, message_id: str) -> ClassificationResult | None:
        return await self.repository.get(message_id)

    async def learn_from_feedback(self, message_id: str, correct_category: str) -> ClassificationResult:
        """Record the user's category as an authoritative override."""
        result = ClassificationResult(
            message_id=message_id,
            category=correct_category,
            confidence=1.0,
            method=ClassificationMethod.USER,
            tags=["user_corrected"],
            reasoning="User feedback",
            timestamp=datetime.now(UTC),
        )
        await self.save_classification(result)

        logger.info(
            "Classification corrected by user", message_id=message_id, category=correct_category
        )
        return result

    def categories(self) -> list[str]:
        categories = list(self.config.classification_rules)
        categories.extend(str(c) for c in BUILTIN_CATEGORIES if str(c) not in categories)
        return categories

    def get_stats(self) -> dict[str, Any]:
        return {
            "cache_size": len(self.cache),
            "rules_count": len(self.config.classification_rules),
            "categories": self.categories(),
        }

    def clear_cache(self) -> None:
        self.cache.clear()


def format_classification(result: ClassificationResult, message: Message) -> str:
    """Render a classification for the chat/HTTP layer."""
    tags = ", ".join(result.tags) if result.tags else "none"
    return (
        "Email Classification Result\n"
        "\n"
        f"Category: {result.category}\n"
        f"Confidence: {result.confidence * 100:.0f}%\n"
        f"Method: {result.method}\n"
        f"Tags: {tags}\n"
        "\n"
        f"Reasoning: {result.reasoning}\n"
        "\n"
        f"From: {message.sender}\n"
        f"Subject: {message.subject}"
    )
