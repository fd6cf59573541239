"""
Priority scoring engine.

Scores a message 0-100 from six independent factors:

    sender      (0-30)  VIP list, important domains, learned sender analytics
    keywords    (0-20)  urgent keywords in subject/body, action phrases
    temporal    (0-15)  how recently the message arrived
    category    (0-15)  configured boost for the message's classification
    engagement  (0-10)  historical read/reply rates for the sender
    thread      (0-10)  replies and forwards

The sum is clamped to 0-100, then optionally reduced by time decay. Every
factor appends exactly one human-readable line to the reasoning chain, in
the order above.
"""

import math
from datetime import UTC, datetime, timedelta
from typing import Any

from priority_inbox.config import settings
from priority_inbox.db.helpers import DatabaseError
from priority_inbox.features.triage.classification import Classifier
from priority_inbox.features.triage.domain import (
    Category,
    EmailFilter,
    FilteredEmail,
    Message,
    PrioritizedEmail,
    PriorityBand,
    PriorityFactors,
    PriorityScore,
    SenderAnalytics,
    build_message,
)
from priority_inbox.features.triage.rules import PriorityConfig, extract_domain
from priority_inbox.infrastructure.observability.logging import get_logger

from .repository import EmailRepository, PriorityRepository, SenderAnalyticsRepository

logger = get_logger(__name__)

SENDER_CAP = 30
KEYWORD_CAP = 20
TEMPORAL_CAP = 15
CATEGORY_CAP = 15
ENGAGEMENT_CAP = 10
THREAD_CAP = 10

ACTION_KEYWORDS = ("action required", "please respond", "response needed", "deadline", "due date")
THREAD_MARKERS = ("re:", "fwd:")


class PriorityRecalculationError(Exception):
    """Raised when one message in a recalculation run cannot be scored or saved."""

    def __init__(self, message: str, message_id: str | None = None):
        super().__init__(message)
        self.message_id = message_id


class PriorityNotFoundError(LookupError):
    """Raised when no persisted priority exists for a message id."""

    def __init__(self, message_id: str):
        super().__init__(f"no priority found for email {message_id}")
        self.message_id = message_id


def explain_priority(score: PriorityScore) -> str:
    """Render a score, its band, and the reasoning chain as a bulleted report."""
    lines = [
        f"Priority Score: {score.score}/100\n",
        "\n",
        f"{PriorityBand.for_score(score.score)} PRIORITY\n",
        "\n",
        "Score Breakdown:\n",
    ]
    lines.extend(f"  • {reason}\n" for reason in score.reasoning)
    return "".join(lines)


class PriorityEngine:
    def __init__(
        self,
        config: PriorityConfig,
        classifier: Classifier,
        analytics_repository: Any = SenderAnalyticsRepository,
        priority_repository: Any = PriorityRepository,
        email_repository: Any = EmailRepository,
        batch_limit: int | None = None,
    ):
        self.config = config
        self.classifier = classifier
        self.analytics_repository = analytics_repository
        self.priority_repository = priority_repository
        self.email_repository = email_repository
        self.batch_limit = batch_limit or settings.RECALCULATE_BATCH_LIMIT

    async def calculate_priority(self, message: Message, now: datetime | None = None) -> PriorityScore:
        """
        Score a single message.

        Never raises for a well-formed message: missing sender history and
        classification failures both degrade to zero points.
        """
        now = now or datetime.now(UTC)
        age = message.age(now)
        analytics = await self._load_analytics(message.sender)

        sender_points, sender_reason = self._sender_factor(message, analytics)
        keyword_points, keyword_reason = self._keyword_factor(message)
        temporal_points, temporal_reason = self._temporal_factor(age)
        category_points, category_reason, category = await self._category_factor(message)
        engagement_points, engagement_reason = self._engagement_factor(analytics)
        thread_points, thread_reason = self._thread_factor(message)

        factors = PriorityFactors(
            sender=sender_points,
            keywords=keyword_points,
            temporal=temporal_points,
            category=category_points,
            engagement=engagement_points,
            thread=thread_points,
        )
        reasoning = [
            sender_reason,
            keyword_reason,
            temporal_reason,
            category_reason,
            engagement_reason,
            thread_reason,
        ]

        score = _clamp(factors.total(), 0, 100)
        decayed, decay_reason = self._apply_time_decay(score, age)
        if decay_reason:
            reasoning.append(decay_reason)
        score = _clamp(decayed, 0, 100)

        return PriorityScore(
            message_id=message.id,
            score=score,
            factors=factors,
            reasoning=reasoning,
            category=category,
            timestamp=now,
        )

    async def _load_analytics(self, sender: str) -> SenderAnalytics | None:
        try:
            return await self.analytics_repository.get(sender)
        except DatabaseError as e:
            logger.warning("Sender analytics lookup failed", sender=sender, error=str(e))
            return None

    def _sender_factor(self, message: Message, analytics: SenderAnalytics | None) -> tuple[int, str]:
        if self.config.is_vip_sender(message.sender):
            return SENDER_CAP, "VIP sender (+30)"

        domain = extract_domain(message.sender)
        if self.config.is_important_domain(domain):
            return 20, f"Important domain: {domain} (+20)"

        if analytics is not None:
            if analytics.is_vip:
                return 25, "Learned VIP sender (+25)"

            bonus = min(analytics.engagement_score * 15 // 100, SENDER_CAP)
            if bonus > 0:
                return bonus, f"Engagement score: {analytics.engagement_score} (+{bonus})"

        return 0, "Unknown sender (+0)"

    def _keyword_factor(self, message: Message) -> tuple[int, str]:
        keyword = self.config.find_urgent_keyword(message.subject)
        if keyword:
            return KEYWORD_CAP, f"Urgent keyword in subject: '{keyword}' (+20)"

        keyword = self.config.find_urgent_keyword(message.body_snippet)
        if keyword:
            return 15, f"Urgent keyword in body: '{keyword}' (+15)"

        subject = message.subject.lower()
        body = message.body_snippet.lower()
        for phrase in ACTION_KEYWORDS:
            if phrase in subject or phrase in body:
                return 10, f"Action keyword: '{phrase}' (+10)"

        return 0, "No urgent keywords (+0)"

    @staticmethod
    def _temporal_factor(age: timedelta) -> tuple[int, str]:
        if age < timedelta(hours=1):
            return TEMPORAL_CAP, "Very recent: <1 hour (+15)"
        if age < timedelta(hours=6):
            return 10, "Recent: <6 hours (+10)"
        if age < timedelta(hours=24):
            return 5, "Today (+5)"
        if age < timedelta(days=3):
            return 2, "Last 3 days (+2)"
        return 0, f"Old: {age.days} days (+0)"

    async def _category_factor(self, message: Message) -> tuple[int, str, str]:
        classification = None
        if message.id:
            try:
                classification = await self.classifier.get_classification(message.id)
            except DatabaseError as e:
                logger.warning("Stored classification lookup failed", message_id=message.id, error=str(e))

        try:
            if classification is None:
                classification = self.classifier.classify(message)
        except Exception as e:
            logger.warning("Classification unavailable for scoring", message_id=message.id, error=str(e))
            return 0, "Unknown category (+0)", str(Category.UNKNOWN)

        category = classification.category
        boost = self.config.category_priority(category)
        # Negative configured boosts contribute nothing here.
        points = _clamp(boost, 0, CATEGORY_CAP)

        if boost < 0:
            return points, f"Category '{category}' ({boost})", category
        return points, f"Category '{category}' (+{points})", category

    @staticmethod
    def _engagement_factor(analytics: SenderAnalytics | None) -> tuple[int, str]:
        if analytics is None or analytics.total_emails <= 0:
            return 0, "No engagement history (+0)"

        read_rate = analytics.read_rate
        reply_rate = analytics.reply_rate
        points = min(math.floor(read_rate * 5 + reply_rate * 5), ENGAGEMENT_CAP)

        if points > 5:
            return points, (
                f"High engagement: {read_rate * 100:.0f}% read, "
                f"{reply_rate * 100:.0f}% reply (+{points})"
            )
        if points > 0:
            return points, f"Some engagement (+{points})"
        return 0, "No engagement history (+0)"

    @staticmethod
    def _thread_factor(message: Message) -> tuple[int, str]:
        subject = message.subject.lower()
        if any(marker in subject for marker in THREAD_MARKERS):
            return THREAD_CAP, "Part of active thread (+10)"
        return 0, "New conversation (+0)"

    def _apply_time_decay(self, score: int, age: timedelta) -> tuple[int, str | None]:
        decay = self.config.priority_rules.time_decay
        if not decay.enabled:
            return score, None

        hours_old = age.total_seconds() / 3600
        if hours_old <= decay.max_age_hours:
            return score, None

        factor = max(0.0, 1.0 - decay.decay_rate * (hours_old / 24))
        new_score = math.floor(score * factor)
        reduction = score - new_score
        if reduction <= 0:
            return score, None

        return new_score, f"Time decay: -{reduction} (age: {hours_old / 24:.1f} days)"

    async def save_priority(self, score: PriorityScore) -> None:
        await self.priority_repository.save(score)

    async def recalculate_priorities(self, account_id: str) -> int:
        """
        Rescore and persist every recent email for an account.

        Processes sequentially and stops at the first failure.

        Returns:
            Number of emails rescored

        Raises:
            PriorityRecalculationError: wrapping the first per-email failure
        """
        emails = await self.email_repository.list_emails(account_id, self.batch_limit)
        logger.info("Recalculating priorities", account_id=account_id, email_count=len(emails))

        for email in emails:
            try:
                score = await self.calculate_priority(email.to_message())
                await self.save_priority(score)
            except Exception as e:
                logger.error(
                    "Priority recalculation failed",
                    account_id=account_id,
                    message_id=email.id,
                    error=str(e),
                )
                raise PriorityRecalculationError(
                    f"failed to recalculate priority for email {email.id}: {e}", message_id=email.id
                ) from e

        logger.info("Priorities recalculated", account_id=account_id, email_count=len(emails))
        return len(emails)

    async def get_priority_emails(
        self, account_id: str, min_score: int = 70, limit: int = 20
    ) -> list[PrioritizedEmail]:
        return await self.priority_repository.fetch_priority_emails(account_id, min_score, limit)

    async def filter_emails(self, criteria: EmailFilter) -> list[FilteredEmail]:
        """List stored emails by category, minimum priority, read state, and date range."""
        emails = await self.email_repository.filter_emails(criteria)
        logger.info(
            "Emails filtered",
            account_id=criteria.account_id,
            category=criteria.category,
            min_priority=criteria.min_priority,
            count=len(emails),
        )
        return emails

    async def update_vip_status(self, sender: str, is_vip: bool) -> SenderAnalytics:
        """Flag or unflag a sender as VIP, creating a zero-history record if needed."""
        analytics = await self.analytics_repository.get(sender)
        if analytics is None:
            analytics = SenderAnalytics.empty(sender)
        analytics.is_vip = is_vip

        await self.analytics_repository.upsert(analytics)
        return analytics

    async def get_priority_breakdown(self, message_id: str) -> PriorityScore:
        score = await self.priority_repository.get(message_id)
        if score is None:
            raise PriorityNotFoundError(message_id)
        return score

    async def analyze_priority(
        self,
        *,
        message_id: str = "",
        sender: str = "",
        subject: str = "",
        body_snippet: str = "",
        received_at: datetime | None = None,
    ) -> PriorityScore:
        """
        Explain a persisted score by id, or score an ad-hoc message.

        Raises:
            PriorityNotFoundError: message_id given without sender and no score stored
            MissingMessageFieldsError: ad-hoc analysis without sender or subject
        """
        if message_id and not sender:
            return await self.get_priority_breakdown(message_id)

        message = build_message(
            sender,
            subject,
            message_id=message_id,
            body_snippet=body_snippet,
            received_at=received_at,
        )
        return await self.calculate_priority(message)

    async def analyze_priority_distribution(self, account_id: str) -> dict[str, int]:
        return await self.priority_repository.fetch_score_distribution(account_id)

    def explain_priority(self, score: PriorityScore) -> str:
        return explain_priority(score)

    def get_stats(self) -> dict[str, Any]:
        rules = self.config.priority_rules
        return {
            "vip_senders": len(rules.vip_senders),
            "important_domains": len(rules.important_domains),
            "urgent_keywords": len(rules.urgent_keywords),
            "time_decay_enabled": rules.time_decay.enabled,
        }


def _clamp(value: int, low: int, high: int) -> int:
    return max(low, min(value, high))
