"""
Domain models for message triage.

These dataclasses describe the records that flow from the mail transport
through the classifier and priority engine into the persistent store.
They carry no scoring logic so repositories, services, and the HTTP layer
can share them.
"""

from dataclasses import dataclass, field, fields
from datetime import UTC, datetime
from enum import StrEnum


class Category(StrEnum):
    """Built-in category labels. Rule sets may add their own."""

    WORK = "work"
    PERSONAL = "personal"
    PROMOTIONS = "promotions"
    INVOICE = "invoice"
    NEWSLETTERS = "newsletters"
    URGENT = "urgent"
    SPAM = "spam"
    UNKNOWN = "unknown"


BUILTIN_CATEGORIES = [
    Category.PERSONAL,
    Category.SPAM,
    Category.NEWSLETTERS,
    Category.PROMOTIONS,
    Category.INVOICE,
    Category.URGENT,
]


class ClassificationMethod(StrEnum):
    RULES = "rules"
    AI = "ai"
    HYBRID = "hybrid"
    USER = "user"


class PriorityBand(StrEnum):
    CRITICAL = "CRITICAL"
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"
    MINIMAL = "MINIMAL"

    @classmethod
    def for_score(cls, score: int) -> "PriorityBand":
        if score >= 90:
            return cls.CRITICAL
        if score >= 70:
            return cls.HIGH
        if score >= 40:
            return cls.MEDIUM
        if score >= 20:
            return cls.LOW
        return cls.MINIMAL


class MissingMessageFieldsError(ValueError):
    """Raised when an ad-hoc message lacks the sender or subject."""


def ensure_utc(value: datetime) -> datetime:
    """Treat naive timestamps as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


@dataclass(frozen=True, slots=True)
class Message:
    """A single email as supplied by the mail transport."""

    id: str
    sender: str
    subject: str
    received_at: datetime
    recipient: str = ""
    body_snippet: str = ""
    headers: dict[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "received_at", ensure_utc(self.received_at))

    def age(self, now: datetime | None = None):
        return (now or datetime.now(UTC)) - self.received_at


def build_message(
    sender: str,
    subject: str,
    *,
    message_id: str = "",
    recipient: str = "",
    body_snippet: str = "",
    received_at: datetime | None = None,
    headers: dict[str, str] | None = None,
) -> Message:
    """Build a message for on-the-fly analysis, rejecting missing essentials."""
    if not sender or not sender.strip() or not subject or not subject.strip():
        raise MissingMessageFieldsError("sender and subject are required")

    return Message(
        id=message_id,
        sender=sender.strip(),
        subject=subject,
        recipient=recipient,
        body_snippet=body_snippet,
        received_at=received_at or datetime.now(UTC),
        headers=dict(headers or {}),
    )


@dataclass(slots=True)
class ClassificationResult:
    message_id: str
    category: str
    confidence: float
    method: str
    tags: list[str]
    reasoning: str
    timestamp: datetime


@dataclass(slots=True)
class PriorityFactors:
    """Per-factor point contributions, one named field per factor."""

    sender: int = 0
    keywords: int = 0
    temporal: int = 0
    category: int = 0
    engagement: int = 0
    thread: int = 0

    def total(self) -> int:
        return self.sender + self.keywords + self.temporal + self.category + self.engagement + self.thread

    def as_dict(self) -> dict[str, int]:
        return {
            "sender": self.sender,
            "keywords": self.keywords,
            "temporal": self.temporal,
            "category": self.category,
            "engagement": self.engagement,
            "thread": self.thread,
        }

    @classmethod
    def from_dict(cls, data: dict | None) -> "PriorityFactors":
        data = data or {}
        return cls(**{f.name: int(data.get(f.name, 0) or 0) for f in fields(cls)})


@dataclass(slots=True)
class PriorityScore:
    message_id: str
    score: int
    factors: PriorityFactors
    reasoning: list[str]
    category: str
    timestamp: datetime

    @property
    def band(self) -> PriorityBand:
        return PriorityBand.for_score(self.score)


@dataclass(slots=True)
class SenderAnalytics:
    """Historical engagement numbers for one sender address."""

    email_address: str
    total_emails: int = 0
    read_count: int = 0
    reply_count: int = 0
    avg_response_time: int | None = None  # minutes
    last_interaction: datetime | None = None
    engagement_score: int = 0
    is_vip: bool = False

    @classmethod
    def empty(cls, email_address: str) -> "SenderAnalytics":
        return cls(email_address=email_address)

    @property
    def read_rate(self) -> float:
        if self.total_emails <= 0:
            return 0.0
        return self.read_count / self.total_emails

    @property
    def reply_rate(self) -> float:
        if self.total_emails <= 0:
            return 0.0
        return self.reply_count / self.total_emails


@dataclass(slots=True)
class StoredEmail:
    """Represents an emails row as persisted for an account."""

    id: str
    account_id: str
    sender: str
    subject: str
    received_at: datetime
    recipient: str = ""
    body_snippet: str = ""
    thread_id: str | None = None
    headers: dict[str, str] = field(default_factory=dict)
    is_read: bool = False
    is_starred: bool = False

    def to_message(self) -> Message:
        return Message(
            id=self.id,
            sender=self.sender,
            subject=self.subject or "",
            recipient=self.recipient or "",
            body_snippet=self.body_snippet or "",
            received_at=self.received_at,
            headers=dict(self.headers or {}),
        )


@dataclass(slots=True)
class PrioritizedEmail:
    """A stored email joined with its persisted priority score."""

    email: StoredEmail
    priority: PriorityScore


@dataclass(slots=True)
class EmailFilter:
    """Criteria for listing stored emails by category, priority, read state, and date."""

    account_id: str | None = None
    category: str | None = None
    min_priority: int = 0
    unread_only: bool = False
    date_from: datetime | None = None
    date_to: datetime | None = None
    limit: int = 50


@dataclass(slots=True)
class FilteredEmail:
    """A stored email with its persisted category ("unknown" if unclassified) and score (0 if unscored)."""

    email: StoredEmail
    category: str
    score: int
