"""In-memory classification cache keyed by message fingerprint."""

from __future__ import annotations

import hashlib
import threading
from dataclasses import replace
from datetime import UTC, datetime, timedelta

from priority_inbox.features.triage.domain import ClassificationResult, Message

DEFAULT_TTL = timedelta(hours=24)


def fingerprint(message: Message) -> str:
    data = f"{message.sender}:{message.subject}:{message.received_at.isoformat()}"
    return hashlib.md5(data.encode("utf-8")).hexdigest()


def _detached(result: ClassificationResult) -> ClassificationResult:
    return replace(result, tags=list(result.tags))


class ClassificationCache:
    """
    Last classification per fingerprint.

    Entries older than the TTL are reported as misses and overwritten by the
    next store; nothing is evicted proactively. A single lock serializes
    access so one Classifier can be shared by concurrent workers. Results are
    copied on the way in and out, so callers never share an entry.
    """

    def __init__(self, ttl: timedelta = DEFAULT_TTL):
        self.ttl = ttl
        self._entries: dict[str, ClassificationResult] = {}
        self._lock = threading.Lock()

    def get(self, key: str, now: datetime | None = None) -> ClassificationResult | None:
        now = now or datetime.now(UTC)
        with self._lock:
            entry = self._entries.get(key)
        if entry is None or now - entry.timestamp >= self.ttl:
            return None
        return _detached(entry)

    def set(self, key: str, result: ClassificationResult) -> None:
        with self._lock:
            self._entries[key] = _detached(result)

    def clear(self) -> None:
        with self._lock:
            self._entries = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
