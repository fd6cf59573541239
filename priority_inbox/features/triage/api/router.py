"""
Triage routes.

HTTP surface over the classifier and priority engine built at startup and
stored on app.state.
"""

from dataclasses import asdict
from datetime import UTC, date, datetime, time

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status

from priority_inbox.db.helpers import DatabaseError
from priority_inbox.features.triage.classification import Classifier, format_classification
from priority_inbox.features.triage.domain import (
    EmailFilter,
    MissingMessageFieldsError,
    build_message,
    ensure_utc,
)
from priority_inbox.features.triage.priority import (
    PriorityEngine,
    PriorityNotFoundError,
    PriorityRecalculationError,
)
from priority_inbox.infrastructure.observability.logging import get_logger, log_triage_result

from .schemas import (
    AnalyzePriorityRequest,
    ClassificationResponse,
    ClassifyRequest,
    DistributionResponse,
    EmailFilterResponse,
    FeedbackRequest,
    FilteredEmailResponse,
    PriorityEmailResponse,
    PriorityInboxResponse,
    PriorityResponse,
    RecalculateResponse,
    SenderVipResponse,
    TriageStatsResponse,
    VipStatusRequest,
)

logger = get_logger(__name__)

router = APIRouter(prefix="/triage", tags=["triage"])


def get_classifier(request: Request) -> Classifier:
    return request.app.state.classifier


def get_priority_engine(request: Request) -> PriorityEngine:
    return request.app.state.priority_engine


def parse_date_bound(value: str | None, *, end_of_day: bool = False) -> datetime | None:
    """
    Parse a filter date given as YYYY-MM-DD or an ISO 8601 / RFC 3339 timestamp.

    A bare date covers the whole day: midnight UTC as a lower bound, the last
    instant of the day as an upper bound. Raises ValueError for anything else.
    """
    if not value:
        return None
    if len(value) == 10:
        day = date.fromisoformat(value)
        return datetime.combine(day, time.max if end_of_day else time.min, tzinfo=UTC)
    return ensure_utc(datetime.fromisoformat(value))


@router.post("/classify", response_model=ClassificationResponse)
async def classify_message(
    body: ClassifyRequest, classifier: Classifier = Depends(get_classifier)
):
    """Classify an ad-hoc message and persist the result when an id is given."""
    try:
        message = build_message(
            body.sender,
            body.subject,
            message_id=body.message_id or "",
            recipient=body.recipient,
            body_snippet=body.body_snippet,
            received_at=body.received_at,
            headers=body.headers,
        )
    except MissingMessageFieldsError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    result = classifier.classify(message)

    if body.message_id:
        try:
            await classifier.save_classification(result)
        except DatabaseError as e:
            logger.error("Failed to save classification", message_id=body.message_id, error=str(e))
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Failed to save classification",
            )

    log_triage_result(message.id or None, str(result.category), method=str(result.method))
    return ClassificationResponse.from_result(result, summary=format_classification(result, message))


@router.post("/classify/{message_id}/feedback", response_model=ClassificationResponse)
async def submit_classification_feedback(
    message_id: str, body: FeedbackRequest, classifier: Classifier = Depends(get_classifier)
):
    """Override a classification with the user's category."""
    try:
        result = await classifier.learn_from_feedback(message_id, body.category)
    except DatabaseError as e:
        logger.error("Failed to record feedback", message_id=message_id, error=str(e))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to record feedback",
        )

    return ClassificationResponse.from_result(result)


@router.post("/priority/analyze", response_model=PriorityResponse)
async def analyze_priority(
    body: AnalyzePriorityRequest, engine: PriorityEngine = Depends(get_priority_engine)
):
    """Explain a stored priority, or score a message on the fly."""
    try:
        score = await engine.analyze_priority(
            message_id=body.message_id,
            sender=body.sender,
            subject=body.subject,
            body_snippet=body.body_snippet,
            received_at=body.received_at,
        )
    except MissingMessageFieldsError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except PriorityNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except DatabaseError as e:
        logger.error("Priority analysis failed", message_id=body.message_id, error=str(e))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to analyze priority",
        )

    log_triage_result(score.message_id or None, score.category, score=score.score)
    return PriorityResponse.from_score(score, engine.explain_priority(score))


@router.get("/priority/inbox", response_model=PriorityInboxResponse)
async def get_priority_inbox(
    account_id: str = Query(..., min_length=1, description="Account to list"),
    min_score: int = Query(default=70, ge=0, le=100, description="Minimum priority score"),
    limit: int = Query(default=20, ge=1, le=1000, description="Maximum emails to return"),
    engine: PriorityEngine = Depends(get_priority_engine),
):
    """Highest-priority emails for an account."""
    try:
        items = await engine.get_priority_emails(account_id, min_score, limit)
    except DatabaseError as e:
        logger.error("Failed to load priority inbox", account_id=account_id, error=str(e))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to load priority emails",
        )

    emails = [PriorityEmailResponse.from_prioritized(item) for item in items]
    return PriorityInboxResponse(account_id=account_id, min_score=min_score, emails=emails, count=len(emails))


@router.get("/emails/filter", response_model=EmailFilterResponse)
async def filter_emails(
    account_id: str | None = Query(default=None, description="Restrict to one account"),
    category: str | None = Query(default=None, min_length=1, description="Persisted classification category"),
    min_priority: int = Query(default=0, ge=0, le=100, description="Minimum persisted priority score"),
    unread_only: bool = Query(default=False, description="Only unread emails"),
    date_from: str | None = Query(default=None, description="YYYY-MM-DD or RFC 3339, inclusive"),
    date_to: str | None = Query(default=None, description="YYYY-MM-DD or RFC 3339, inclusive"),
    limit: int = Query(default=50, ge=1, le=200, description="Maximum emails to return"),
    engine: PriorityEngine = Depends(get_priority_engine),
):
    """Smart filter over stored emails by category, priority, read state, and date range."""
    try:
        criteria = EmailFilter(
            account_id=account_id,
            category=category,
            min_priority=min_priority,
            unread_only=unread_only,
            date_from=parse_date_bound(date_from),
            date_to=parse_date_bound(date_to, end_of_day=True),
            limit=limit,
        )
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="date_from and date_to must be YYYY-MM-DD or RFC 3339 timestamps",
        )

    try:
        items = await engine.filter_emails(criteria)
    except DatabaseError as e:
        logger.error("Failed to filter emails", account_id=account_id, error=str(e))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to filter emails",
        )

    emails = [FilteredEmailResponse.from_filtered(item) for item in items]
    return EmailFilterResponse(filters=asdict(criteria), emails=emails, count=len(emails))


@router.post("/priority/recalculate/{account_id}", response_model=RecalculateResponse)
async def recalculate_priorities(account_id: str, engine: PriorityEngine = Depends(get_priority_engine)):
    """Rescore every recent email for an account."""
    try:
        count = await engine.recalculate_priorities(account_id)
    except PriorityRecalculationError as e:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))
    except DatabaseError as e:
        logger.error("Failed to list emails for recalculation", account_id=account_id, error=str(e))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to recalculate priorities",
        )

    return RecalculateResponse(account_id=account_id, recalculated=count)


@router.get("/priority/distribution/{account_id}", response_model=DistributionResponse)
async def get_priority_distribution(account_id: str, engine: PriorityEngine = Depends(get_priority_engine)):
    try:
        distribution = await engine.analyze_priority_distribution(account_id)
    except DatabaseError as e:
        logger.error("Failed to load priority distribution", account_id=account_id, error=str(e))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to load priority distribution",
        )

    return DistributionResponse(account_id=account_id, distribution=distribution)


@router.put("/senders/{sender}/vip", response_model=SenderVipResponse)
async def update_sender_vip_status(
    sender: str, body: VipStatusRequest, engine: PriorityEngine = Depends(get_priority_engine)
):
    try:
        analytics = await engine.update_vip_status(sender, body.is_vip)
    except DatabaseError as e:
        logger.error("Failed to update VIP status", sender=sender, error=str(e))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update VIP status",
        )

    return SenderVipResponse(email_address=analytics.email_address, is_vip=analytics.is_vip)


@router.get("/stats", response_model=TriageStatsResponse)
async def get_triage_stats(
    classifier: Classifier = Depends(get_classifier),
    engine: PriorityEngine = Depends(get_priority_engine),
):
    return TriageStatsResponse(classifier=classifier.get_stats(), priority=engine.get_stats())
