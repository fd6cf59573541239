from datetime import UTC, datetime
from unittest.mock import AsyncMock

import pytest

from priority_inbox.features.triage.classification import ClassificationRepository
from priority_inbox.features.triage.domain import EmailFilter, PriorityFactors, PriorityScore
from priority_inbox.features.triage.priority import (
    EmailRepository,
    PriorityRepository,
    SenderAnalyticsRepository,
    TriageRepositoryError,
)

NOW = datetime(2024, 6, 3, 12, 0, tzinfo=UTC)


@pytest.mark.asyncio
async def test_classification_get_maps_row(monkeypatch):
    fetch_mock = AsyncMock(
        return_value={
            "email_id": "m-1",
            "category": "work",
            "confidence": 0.9,
            "method": "rules",
            "tags": ["work"],
            "reasoning": "Matched rule: Work",
            "classified_at": NOW,
        }
    )
    monkeypatch.setattr("priority_inbox.features.triage.classification.repository.fetch_one", fetch_mock)

    result = await ClassificationRepository.get("m-1")

    assert result.category == "work"
    assert result.tags == ["work"]
    assert fetch_mock.await_args.args[1] == ("m-1",)


@pytest.mark.asyncio
async def test_classification_get_missing_returns_none(monkeypatch):
    monkeypatch.setattr(
        "priority_inbox.features.triage.classification.repository.fetch_one", AsyncMock(return_value=None)
    )

    assert await ClassificationRepository.get("absent") is None


@pytest.mark.asyncio
async def test_priority_save_upserts_json_columns(monkeypatch):
    execute_mock = AsyncMock(return_value=1)
    monkeypatch.setattr("priority_inbox.features.triage.priority.repository.execute_query", execute_mock)
    score = PriorityScore(
        message_id="m-1",
        score=42,
        factors=PriorityFactors(sender=20, temporal=15, category=5, thread=2),
        reasoning=["one", "two"],
        category="personal",
        timestamp=NOW,
    )

    await PriorityRepository.save(score)

    query, params = execute_mock.await_args.args
    assert "ON CONFLICT (email_id) DO UPDATE" in query
    assert params[0] == "m-1"
    assert params[1] == 42
    assert params[2].obj == score.factors.as_dict()
    assert params[3].obj == ["one", "two"]


@pytest.mark.asyncio
async def test_priority_get_rebuilds_factors(monkeypatch):
    monkeypatch.setattr(
        "priority_inbox.features.triage.priority.repository.fetch_one",
        AsyncMock(
            return_value={
                "email_id": "m-1",
                "score": 57,
                "factors": {"sender": 30, "keywords": 20},
                "reasoning": ["VIP sender (+30)"],
                "category": "work",
                "calculated_at": NOW,
            }
        ),
    )

    score = await PriorityRepository.get("m-1")

    assert score.factors == PriorityFactors(sender=30, keywords=20)
    assert score.reasoning == ["VIP sender (+30)"]


@pytest.mark.asyncio
async def test_score_distribution(monkeypatch):
    monkeypatch.setattr(
        "priority_inbox.features.triage.priority.repository.fetch_one",
        AsyncMock(return_value={"critical": 1, "high": 2, "medium": 3, "low": 0, "minimal": None}),
    )

    distribution = await PriorityRepository.fetch_score_distribution("acct-1")

    assert distribution == {"critical": 1, "high": 2, "medium": 3, "low": 0, "minimal": 0}


@pytest.mark.asyncio
async def test_score_distribution_without_row_raises(monkeypatch):
    monkeypatch.setattr(
        "priority_inbox.features.triage.priority.repository.fetch_one", AsyncMock(return_value=None)
    )

    with pytest.raises(TriageRepositoryError):
        await PriorityRepository.fetch_score_distribution("acct-1")


@pytest.mark.asyncio
async def test_list_emails_maps_rows(monkeypatch):
    fetch_mock = AsyncMock(
        return_value=[
            {
                "id": "e1",
                "account_id": "acct-1",
                "thread_id": None,
                "from_addr": "a@example.org",
                "to_addr": None,
                "subject": None,
                "body_snippet": "hi",
                "headers": None,
                "received_at": NOW,
                "is_read": True,
                "is_starred": False,
            }
        ]
    )
    monkeypatch.setattr("priority_inbox.features.triage.priority.repository.fetch_all", fetch_mock)

    emails = await EmailRepository.list_emails("acct-1", 1000)

    assert len(emails) == 1
    message = emails[0].to_message()
    assert message.sender == "a@example.org"
    assert message.subject == ""
    assert message.recipient == ""
    assert fetch_mock.await_args.args[1] == ("acct-1", 1000)


def _email_row(**overrides):
    row = {
        "id": "e1",
        "account_id": "acct-1",
        "thread_id": None,
        "from_addr": "a@example.org",
        "to_addr": None,
        "subject": "Quarterly invoice",
        "body_snippet": "",
        "headers": {},
        "received_at": NOW,
        "is_read": False,
        "is_starred": False,
    }
    row.update(overrides)
    return row


@pytest.mark.asyncio
async def test_filter_emails_applies_every_criterion(monkeypatch):
    fetch_mock = AsyncMock(return_value=[_email_row(category="invoice", score=64)])
    monkeypatch.setattr("priority_inbox.features.triage.priority.repository.fetch_all", fetch_mock)
    criteria = EmailFilter(
        account_id="acct-1",
        category="invoice",
        min_priority=50,
        unread_only=True,
        date_from=datetime(2024, 6, 1, tzinfo=UTC),
        date_to=datetime(2024, 6, 3, 23, 59, tzinfo=UTC),
        limit=10,
    )

    results = await EmailRepository.filter_emails(criteria)

    query, params = fetch_mock.await_args.args
    assert "LEFT JOIN classifications c" in query
    assert "LEFT JOIN priorities p" in query
    assert "e.is_read = false" in query
    assert "ORDER BY e.received_at DESC" in query
    assert params == ("acct-1", "invoice", 50, criteria.date_from, criteria.date_to, 10)
    assert results[0].email.id == "e1"
    assert results[0].category == "invoice"
    assert results[0].score == 64


@pytest.mark.asyncio
async def test_filter_emails_without_criteria_keeps_unclassified_rows(monkeypatch):
    fetch_mock = AsyncMock(return_value=[_email_row(category="unknown", score=0)])
    monkeypatch.setattr("priority_inbox.features.triage.priority.repository.fetch_all", fetch_mock)

    results = await EmailRepository.filter_emails(EmailFilter())

    query, params = fetch_mock.await_args.args
    assert "COALESCE(c.category, 'unknown')" in query
    assert "c.category = %s" not in query
    assert "p.score >= %s" not in query
    assert "e.account_id = %s" not in query
    assert params == (50,)
    assert (results[0].category, results[0].score) == ("unknown", 0)


@pytest.mark.asyncio
async def test_sender_analytics_missing_returns_none(monkeypatch):
    monkeypatch.setattr(
        "priority_inbox.features.triage.priority.repository.fetch_one", AsyncMock(return_value=None)
    )

    assert await SenderAnalyticsRepository.get("nobody@example.org") is None
