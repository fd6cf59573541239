"""
Triage API request and response models.
Used by the triage router for input validation and serialization.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from priority_inbox.features.triage.domain import (
    ClassificationResult,
    FilteredEmail,
    PrioritizedEmail,
    PriorityScore,
)


class ClassifyRequest(BaseModel):
    """Ad-hoc message to classify. Persisted when message_id is supplied."""

    message_id: str | None = Field(default=None, description="Email id; enables persistence")
    sender: str = Field(default="", description="From address")
    subject: str = Field(default="", description="Subject line")
    recipient: str = Field(default="", description="To address")
    body_snippet: str = Field(default="", description="Leading text of the body")
    received_at: datetime | None = Field(default=None, description="Defaults to now")
    headers: dict[str, str] = Field(default_factory=dict)


class FeedbackRequest(BaseModel):
    """User correction of a classification."""

    category: str = Field(..., min_length=1, description="Correct category label")


class AnalyzePriorityRequest(BaseModel):
    """Explain a stored score by id, or score an ad-hoc message."""

    message_id: str = Field(default="", description="Email id of a persisted score")
    sender: str = Field(default="", description="From address for ad-hoc analysis")
    subject: str = Field(default="", description="Subject for ad-hoc analysis")
    body_snippet: str = Field(default="")
    received_at: datetime | None = Field(default=None)


class VipStatusRequest(BaseModel):
    is_vip: bool = Field(..., description="Whether the sender should be treated as VIP")


class ClassificationResponse(BaseModel):
    message_id: str
    category: str
    confidence: float
    method: str
    tags: list[str]
    reasoning: str
    timestamp: datetime
    summary: str | None = None

    @classmethod
    def from_result(cls, result: ClassificationResult, summary: str | None = None) -> "ClassificationResponse":
        return cls(
            message_id=result.message_id,
            category=str(result.category),
            confidence=result.confidence,
            method=str(result.method),
            tags=list(result.tags),
            reasoning=result.reasoning,
            timestamp=result.timestamp,
            summary=summary,
        )


class PriorityResponse(BaseModel):
    message_id: str
    score: int
    band: str
    category: str
    factors: dict[str, int]
    reasoning: list[str]
    timestamp: datetime
    explanation: str

    @classmethod
    def from_score(cls, score: PriorityScore, explanation: str) -> "PriorityResponse":
        return cls(
            message_id=score.message_id,
            score=score.score,
            band=str(score.band),
            category=score.category,
            factors=score.factors.as_dict(),
            reasoning=list(score.reasoning),
            timestamp=score.timestamp,
            explanation=explanation,
        )


class PriorityEmailResponse(BaseModel):
    id: str
    thread_id: str | None = None
    sender: str
    subject: str
    received_at: datetime
    is_read: bool
    is_starred: bool
    score: int
    band: str
    category: str

    @classmethod
    def from_prioritized(cls, item: PrioritizedEmail) -> "PriorityEmailResponse":
        return cls(
            id=item.email.id,
            thread_id=item.email.thread_id,
            sender=item.email.sender,
            subject=item.email.subject,
            received_at=item.email.received_at,
            is_read=item.email.is_read,
            is_starred=item.email.is_starred,
            score=item.priority.score,
            band=str(item.priority.band),
            category=item.priority.category,
        )


class PriorityInboxResponse(BaseModel):
    account_id: str
    min_score: int
    emails: list[PriorityEmailResponse]
    count: int


class FilteredEmailResponse(BaseModel):
    id: str
    account_id: str
    sender: str
    subject: str
    received_at: datetime
    is_read: bool
    category: str
    score: int

    @classmethod
    def from_filtered(cls, item: FilteredEmail) -> "FilteredEmailResponse":
        return cls(
            id=item.email.id,
            account_id=item.email.account_id,
            sender=item.email.sender,
            subject=item.email.subject,
            received_at=item.email.received_at,
            is_read=item.email.is_read,
            category=item.category,
            score=item.score,
        )


class EmailFilterResponse(BaseModel):
    filters: dict[str, Any] = Field(description="Criteria that were applied")
    emails: list[FilteredEmailResponse]
    count: int


class RecalculateResponse(BaseModel):
    account_id: str
    recalculated: int


class DistributionResponse(BaseModel):
    account_id: str
    distribution: dict[str, int]


class SenderVipResponse(BaseModel):
    email_address: str
    is_vip: bool


class TriageStatsResponse(BaseModel):
    classifier: dict[str, Any]
    priority: dict[str, Any]
