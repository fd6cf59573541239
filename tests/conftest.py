from datetime import UTC, datetime, timedelta

import pytest

from priority_inbox.config import DEFAULT_RULES_PATH
from priority_inbox.db.helpers import DatabaseError
from priority_inbox.features.triage.classification import ClassificationCache, Classifier
from priority_inbox.features.triage.domain import Message, PrioritizedEmail
from priority_inbox.features.triage.priority import PriorityEngine
from priority_inbox.features.triage.rules import load_priority_config


class FakeClassificationRepository:
    def __init__(self):
        self.store = {}
        self.error: Exception | None = None

    async def save(self, result):
        if self.error:
            raise self.error
        self.store[result.message_id] = result

    async def get(self, message_id):
        if self.error:
            raise self.error
        return self.store.get(message_id)


class FakeSenderAnalyticsRepository:
    def __init__(self):
        self.store = {}
        self.error: Exception | None = None
        self.get_calls = 0

    async def get(self, email_address):
        self.get_calls += 1
        if self.error:
            raise self.error
        return self.store.get(email_address)

    async def upsert(self, analytics):
        self.store[analytics.email_address] = analytics


class FakePriorityRepository:
    def __init__(self):
        self.store = {}
        self.emails = {}
        self.save_error: Exception | None = None

    async def save(self, score):
        if self.save_error:
            raise self.save_error
        self.store[score.message_id] = score

    async def get(self, message_id):
        return self.store.get(message_id)

    async def fetch_priority_emails(self, account_id, min_score, limit):
        items = [
            PrioritizedEmail(email=email, priority=self.store[email.id])
            for email in self.emails.get(account_id, [])
            if email.id in self.store and self.store[email.id].score >= min_score
        ]
        items.sort(key=lambda item: (item.priority.score, item.email.received_at), reverse=True)
        return items[:limit]

    async def fetch_score_distribution(self, account_id):
        raise DatabaseError("not supported by fake", operation="fetch_score_distribution")


class FakeEmailRepository:
    def __init__(self):
        self.emails = {}
        self.calls = []
        self.filtered = []
        self.filter_calls = []

    async def list_emails(self, account_id, limit):
        self.calls.append((account_id, limit))
        return self.emails.get(account_id, [])[:limit]

    async def filter_emails(self, criteria):
        self.filter_calls.append(criteria)
        return self.filtered[: criteria.limit]


@pytest.fixture
def priority_config():
    return load_priority_config(DEFAULT_RULES_PATH)


@pytest.fixture
def classification_repository():
    return FakeClassificationRepository()


@pytest.fixture
def analytics_repository():
    return FakeSenderAnalyticsRepository()


@pytest.fixture
def priority_repository():
    return FakePriorityRepository()


@pytest.fixture
def email_repository():
    return FakeEmailRepository()


@pytest.fixture
def classifier(priority_config, classification_repository):
    return Classifier(
        priority_config,
        repository=classification_repository,
        cache=ClassificationCache(ttl=timedelta(hours=24)),
    )


@pytest.fixture
def engine(priority_config, classifier, analytics_repository, priority_repository, email_repository):
    return PriorityEngine(
        priority_config,
        classifier,
        analytics_repository=analytics_repository,
        priority_repository=priority_repository,
        email_repository=email_repository,
        batch_limit=1000,
    )


@pytest.fixture
def fixed_now():
    return datetime(2024, 6, 3, 12, 0, tzinfo=UTC)


@pytest.fixture
def make_message(fixed_now):
    def _make(**overrides):
        fields = {
            "id": "msg-1",
            "sender": "someone@example.org",
            "subject": "Hello there",
            "received_at": fixed_now - timedelta(minutes=10),
            "recipient": "me@example.org",
            "body_snippet": "",
            "headers": {},
        }
        fields.update(overrides)
        return Message(**fields)

    return _make
